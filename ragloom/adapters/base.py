"""Collaborator interfaces consumed by the orchestration core.

Strategies and stages depend on these Protocols, never on a concrete
adapter. Every method either returns its value or raises a RAGError
subclass (see ragloom.shared.errors).

Capabilities:
    embedder     : text -> Embedding
    vector_store : vector (semantic) or text (keyword/BM25) -> ranked ScoredItems
    graph_store  : Cypher-style query -> list of record dicts
    llm          : chat messages -> Completion
    scorer       : (query, items) -> rescored items, best-first
"""

from dataclasses import dataclass, field, fields
from typing import Any, Optional, Protocol, Union, runtime_checkable

from ragloom.rag_pipeline.context import ScoredItem
from ragloom.shared.errors import AdapterUnavailableError


@dataclass(frozen=True)
class Embedding:
    vector: list[float]
    dimensions: int


@dataclass(frozen=True)
class Completion:
    content: str
    finish_reason: str = "stop"
    usage: dict[str, Any] = field(default_factory=dict)


@runtime_checkable
class Embedder(Protocol):
    def embed(self, text: str, opts: Optional[dict[str, Any]] = None) -> Embedding:
        ...


@runtime_checkable
class VectorStore(Protocol):
    def search(
        self,
        index_id: str,
        query: Union[list[float], str],
        k: int,
        opts: Optional[dict[str, Any]] = None,
    ) -> list[ScoredItem]:
        """Vector search when `query` is a vector, keyword search when it is text."""
        ...


@runtime_checkable
class GraphStore(Protocol):
    def query(
        self,
        graph_id: str,
        query_expr: str,
        params: Optional[dict[str, Any]] = None,
    ) -> list[dict[str, Any]]:
        ...


@runtime_checkable
class LLM(Protocol):
    def complete(
        self,
        messages: list[dict[str, str]],
        opts: Optional[dict[str, Any]] = None,
    ) -> Completion:
        ...


@runtime_checkable
class Scorer(Protocol):
    def rerank(
        self,
        query: str,
        items: list[ScoredItem],
        opts: Optional[dict[str, Any]] = None,
    ) -> list[ScoredItem]:
        ...


@dataclass
class AdapterSet:
    """The collaborators available to a request, resolved by capability name."""

    embedder: Optional[Embedder] = None
    vector_store: Optional[VectorStore] = None
    graph_store: Optional[GraphStore] = None
    llm: Optional[LLM] = None
    scorer: Optional[Scorer] = None

    def available(self) -> set[str]:
        return {f.name for f in fields(self) if getattr(self, f.name) is not None}

    def require(self, name: str) -> Any:
        """Return the adapter for `name` or raise AdapterUnavailableError."""
        adapter = getattr(self, name, None)
        if adapter is None:
            raise AdapterUnavailableError(name)
        return adapter

    def check(self, names: set[str]) -> None:
        """Raise for the first missing capability (sorted for stable errors)."""
        missing = sorted(names - self.available())
        if missing:
            raise AdapterUnavailableError(missing[0])


def complete_text(llm: LLM, prompt: str, opts: Optional[dict[str, Any]] = None) -> str:
    """Single-prompt convenience wrapper returning stripped content."""
    completion = llm.complete([{"role": "user", "content": prompt}], opts or {})
    return completion.content.strip()
