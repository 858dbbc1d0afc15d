"""Hierarchical community records for graph-aware retrieval.

## RAG Theory: Hierarchical Community Structure

GraphRAG (arXiv:2404.16130) answers thematic questions from community
summaries at several granularities:
- Level 0: finest partition, produced directly by label propagation
- Level n: communities of level n-1 merged by running label propagation
  again on the community meta-graph

Unlike Leiden's numbering (0 = coarsest), levels here grow coarser as the
number increases, and the community count never increases from one level
to the next.

## Data Flow

1. community.detect_hierarchical() builds one list[Community] per level
2. Each Community keeps its flattened entity members plus the ids of the
   level below it was merged from
3. Keys like "community_L1_3" identify a community across the pipeline
"""

import re
from dataclasses import dataclass, field
from typing import Iterable, Optional

from ragloom.config import MIN_COMMUNITY_SIZE
from ragloom.shared.files import setup_logging

logger = setup_logging(__name__)

_KEY_PATTERN = re.compile(r"^community_L(\d+)_(\d+)$")


@dataclass(frozen=True)
class Community:
    """A detected community at one hierarchy level.

    Attributes:
        id: Community key (see build_community_key).
        member_ids: Entity ids in this community (flattened across levels).
        level: Hierarchy depth (0 = finest).
        child_ids: Level n-1 community ids merged into this one (empty at level 0).
        label: The propagation label that formed the community.

    Example:
        >>> c = Community(id="community_L0_0", member_ids=frozenset({"a", "b"}), level=0)
        >>> len(c)
        2
    """

    id: str
    member_ids: frozenset[str]
    level: int = 0
    child_ids: tuple[str, ...] = field(default_factory=tuple)
    label: Optional[str] = None

    def __len__(self) -> int:
        return len(self.member_ids)

    def __post_init__(self) -> None:
        if self.level < 0:
            raise ValueError(f"Community level must be >= 0, got {self.level}")


def build_community_key(level: int, community_id: int) -> str:
    """Build the canonical community key (e.g. "community_L0_42")."""
    return f"community_L{level}_{community_id}"


def parse_community_key(key: str) -> tuple[int, int]:
    """Parse a community key back into (level, community_id).

    Raises:
        ValueError: If the key is not in community_L{level}_{id} form.
    """
    match = _KEY_PATTERN.match(key)
    if match is None:
        raise ValueError(f"Invalid community key: {key!r}")
    return int(match.group(1)), int(match.group(2))


def filter_communities_by_size(
    communities: Iterable[Community],
    min_size: int = MIN_COMMUNITY_SIZE,
) -> list[Community]:
    """Keep communities with at least `min_size` members, preserving order."""
    communities = list(communities)
    kept = [c for c in communities if len(c) >= min_size]
    if len(kept) < len(communities):
        logger.info(f"[communities] Filtered {len(communities) - len(kept)} communities below size {min_size}")
    return kept
