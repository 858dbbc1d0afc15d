"""In-memory vector store for tests, notebooks and small corpora.

Vector search ranks by cosine similarity (numpy). Keyword search ranks by
the fraction of query terms present in the passage, a crude stand-in for
BM25 that keeps results deterministic.
"""

import re
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Optional, Union

import numpy as np

from ragloom.rag_pipeline.context import ScoredItem
from ragloom.shared.errors import DimensionMismatchError, InvalidResponseError

_TOKEN = re.compile(r"\w+")


def _terms(text: str) -> set[str]:
    return set(_TOKEN.findall(text.lower()))


@dataclass
class _Entry:
    id: str
    content: str
    vector: Optional[np.ndarray]
    metadata: dict[str, Any] = field(default_factory=dict)


class InMemoryVectorStore:
    """VectorStore protocol over plain Python lists, one list per index."""

    def __init__(self):
        self._indexes: dict[str, list[_Entry]] = defaultdict(list)
        self._dimensions: dict[str, int] = {}

    def add(
        self,
        index_id: str,
        id: str,
        content: str,
        vector: Optional[list[float]] = None,
        metadata: Optional[dict[str, Any]] = None,
    ) -> None:
        """Add one passage. All vectors in an index must share a dimension."""
        array = None
        if vector is not None:
            array = np.asarray(vector, dtype=float)
            expected = self._dimensions.setdefault(index_id, len(array))
            if len(array) != expected:
                raise DimensionMismatchError(expected, len(array))
        self._indexes[index_id].append(_Entry(id, content, array, dict(metadata or {})))

    def __len__(self) -> int:
        return sum(len(entries) for entries in self._indexes.values())

    def search(
        self,
        index_id: str,
        query: Union[list[float], str],
        k: int,
        opts: Optional[dict[str, Any]] = None,
    ) -> list[ScoredItem]:
        entries = self._indexes.get(index_id, [])
        if isinstance(query, str):
            scored = self._keyword_scores(entries, query)
        else:
            scored = self._vector_scores(index_id, entries, query)

        # Stable sort keeps insertion order among equal scores
        scored.sort(key=lambda pair: -pair[1])
        return [
            ScoredItem(id=entry.id, content=entry.content, score=score, metadata=dict(entry.metadata))
            for entry, score in scored[:k]
        ]

    def _vector_scores(self, index_id: str, entries: list[_Entry], query: list[float]) -> list:
        vector = np.asarray(query, dtype=float)
        if vector.ndim != 1:
            raise InvalidResponseError("query vector must be one-dimensional")
        expected = self._dimensions.get(index_id)
        if expected is not None and len(vector) != expected:
            raise DimensionMismatchError(expected, len(vector))

        query_norm = np.linalg.norm(vector)
        scored = []
        for entry in entries:
            if entry.vector is None:
                continue
            denom = query_norm * np.linalg.norm(entry.vector)
            score = float(np.dot(vector, entry.vector) / denom) if denom else 0.0
            scored.append((entry, score))
        return scored

    def _keyword_scores(self, entries: list[_Entry], query: str) -> list:
        wanted = _terms(query)
        if not wanted:
            return []
        scored = []
        for entry in entries:
            overlap = len(wanted & _terms(entry.content))
            if overlap:
                scored.append((entry, overlap / len(wanted)))
        return scored
