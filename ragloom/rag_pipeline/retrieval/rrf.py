"""Reciprocal Rank Fusion for multi-source retrieval.

## RAG Theory: RRF Merging

Vector search, keyword search and graph traversal each return a ranked
list whose scores live on different scales. RRF (Cormack et al., 2009)
merges the lists using ranks only, so no score normalization is needed.

Formula: RRF_score(d) = sum(1 / (k + rank(d, s))) over sources s containing d

Key properties:
- rank is 1-based within each source list
- k (default 60) controls how quickly lower ranks lose influence
- items found by several sources get boosted

## Determinism

- Per-id contributions are summed with math.fsum, so the total does not
  depend on the order sources are visited.
- Ties are broken by the order an id was first encountered across sources
  (sources in list order, items in rank order). Python's sort is stable,
  so iterating ids in first-seen order and sorting by score is enough.
- Content and metadata come from the first source that produced the id.

## Data Flow

1. Strategies collect (source_tag, ranked items) pairs
2. Track id -> contributions for each list
3. Sort by fused score, replace ScoredItem.score with it
"""

import math
import time
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Optional, Sequence

from ragloom.config import RRF_K
from ragloom.rag_pipeline.context import ScoredItem
from ragloom.shared.files import setup_logging

logger = setup_logging(__name__)

# A ranked list from one retrieval source, tagged for contribution tracking
Source = tuple[str, Sequence[ScoredItem]]


@dataclass
class RRFResult:
    """Result of RRF merging operation.

    Attributes:
        results: Merged and sorted ScoredItem list with RRF scores.
        source_contributions: Maps item id to the source tags that found it.
        merge_time_ms: Time taken for merge operation.
    """

    results: list[ScoredItem]
    source_contributions: dict[str, list[str]] = field(default_factory=dict)
    merge_time_ms: float = 0.0


def reciprocal_rank_fusion(
    sources: Sequence[Source],
    k: int = RRF_K,
    top_k: Optional[int] = None,
) -> RRFResult:
    """Merge ranked lists using Reciprocal Rank Fusion.

    Args:
        sources: (source_tag, items) pairs, each list sorted best-first.
        k: RRF smoothing constant (must be positive).
        top_k: Optional cap on the number of merged results.

    Returns:
        RRFResult with merged results sorted by RRF score.

    Raises:
        ValueError: If k is not positive.

    Example:
        >>> fused = reciprocal_rank_fusion([("vector", vec_items), ("keyword", kw_items)])
        >>> fused.results[0].score  # 1/61 + 1/61 if both lists rank it first
    """
    if k <= 0:
        raise ValueError(f"RRF k must be positive, got {k}")

    start_time = time.time()

    contributions: dict[str, list[float]] = {}
    first_seen: dict[str, ScoredItem] = {}
    found_by: dict[str, list[str]] = defaultdict(list)

    for source_tag, items in sources:
        seen_in_source: set[str] = set()
        for rank, item in enumerate(items, start=1):
            # An id repeated inside one list only counts at its best rank
            if item.id in seen_in_source:
                continue
            seen_in_source.add(item.id)

            if item.id not in first_seen:
                first_seen[item.id] = item
                contributions[item.id] = []
            contributions[item.id].append(1.0 / (k + rank))
            found_by[item.id].append(source_tag)

    scores = {item_id: math.fsum(parts) for item_id, parts in contributions.items()}
    ordered_ids = sorted(first_seen, key=lambda item_id: -scores[item_id])
    if top_k is not None:
        ordered_ids = ordered_ids[:top_k]

    merged = [first_seen[item_id].with_score(scores[item_id]) for item_id in ordered_ids]
    elapsed_ms = (time.time() - start_time) * 1000

    logger.info(
        f"[RRF] Merged {len(sources)} sources, "
        f"{sum(len(items) for _, items in sources)} total results -> {len(merged)} unique"
    )

    return RRFResult(
        results=merged,
        source_contributions=dict(found_by),
        merge_time_ms=elapsed_ms,
    )


def fuse(sources: Sequence[Source], k: int = RRF_K) -> list[ScoredItem]:
    """Fuse ranked sources and return only the merged list."""
    return reciprocal_rank_fusion(sources, k=k).results
