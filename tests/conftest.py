"""Shared fakes for pipeline tests.

The fakes implement the collaborator protocols in ragloom.adapters.base
without any network access. Each one records its calls so tests can
assert on what the pipeline asked for.
"""

import threading
from collections import deque
from typing import Any, Callable, Optional, Union

import pytest

from ragloom.adapters.base import AdapterSet, Completion, Embedding
from ragloom.adapters.memory import InMemoryVectorStore
from ragloom.graph.community import EDGES_QUERY, NODE_IDS_QUERY
from ragloom.rag_pipeline.context import ScoredItem
from ragloom.rag_pipeline.retrieval.strategies.graph_aware import FIND_NODE_QUERY, neighbours_query
from ragloom.shared.errors import LLMFailureError


# =========================================================================
# Helpers
# =========================================================================


def make_item(item_id: str, score: float = 0.0, content: Optional[str] = None, **metadata) -> ScoredItem:
    return ScoredItem(id=item_id, content=content or f"passage {item_id}", score=score, metadata=metadata)


def make_items(*ids: str) -> list[ScoredItem]:
    """Items ranked in argument order with descending scores."""
    return [make_item(item_id, score=1.0 - i * 0.1) for i, item_id in enumerate(ids)]


# =========================================================================
# Fake collaborators
# =========================================================================


class FakeLLM:
    """LLM that replays scripted replies.

    Each reply is a string, an exception instance (raised), or a callable
    taking the prompt and returning a string. When the script runs out the
    `default` reply is used.
    """

    def __init__(self, replies=(), default: Union[str, Exception, None] = "ok"):
        self.replies = deque(replies)
        self.default = default
        self.calls: list[dict[str, Any]] = []
        self._lock = threading.Lock()

    @property
    def prompts(self) -> list[str]:
        return [call["messages"][-1]["content"] for call in self.calls]

    def complete(self, messages, opts=None) -> Completion:
        with self._lock:
            self.calls.append({"messages": messages, "opts": dict(opts or {})})
            reply = self.replies.popleft() if self.replies else self.default
        if isinstance(reply, Exception):
            raise reply
        if callable(reply):
            reply = reply(messages[-1]["content"])
        if reply is None:
            raise LLMFailureError("script exhausted")
        return Completion(content=reply)


class FakeEmbedder:
    """Embedder returning a fixed vector (or a per-text vector when mapped)."""

    def __init__(self, vector=(1.0, 0.0, 0.0), vectors: Optional[dict[str, list[float]]] = None, error=None):
        self.vector = list(vector)
        self.vectors = vectors or {}
        self.error = error
        self.calls: list[str] = []

    def embed(self, text, opts=None) -> Embedding:
        self.calls.append(text)
        if self.error is not None:
            raise self.error
        vector = list(self.vectors.get(text, self.vector))
        return Embedding(vector=vector, dimensions=len(vector))


class FakeScorer:
    """Scorer that applies a fixed id -> score map (or raises)."""

    def __init__(self, scores: Optional[dict[str, float]] = None, error=None, fn: Optional[Callable] = None):
        self.scores = scores or {}
        self.error = error
        self.fn = fn
        self.calls: list[tuple[str, list[ScoredItem], dict]] = []

    def rerank(self, query, items, opts=None):
        self.calls.append((query, list(items), dict(opts or {})))
        if self.error is not None:
            raise self.error
        if self.fn is not None:
            return self.fn(query, items, opts)
        rescored = [item.with_score(self.scores.get(item.id, 0.0)) for item in items]
        return sorted(rescored, key=lambda item: -item.score)


class FakeGraphStore:
    """In-memory graph answering the Cypher queries the engine issues.

    Nodes are {id: {"name": ..., "description": ..., "labels": [...]}};
    edges are (source, target) pairs.
    """

    def __init__(self, nodes=None, edges=(), error=None):
        if isinstance(nodes, dict):
            self.nodes = nodes
        else:
            self.nodes = {node_id: {"name": node_id} for node_id in (nodes or [])}
        self.edges = list(edges)
        self.error = error
        self.calls: list[tuple[str, str, dict]] = []

    def _neighbours(self, node_id: str, depth: int) -> list[str]:
        adjacency: dict[str, set[str]] = {n: set() for n in self.nodes}
        for source, target in self.edges:
            adjacency.setdefault(source, set()).add(target)
            adjacency.setdefault(target, set()).add(source)
        seen = {node_id}
        frontier = [node_id]
        found = []
        for _ in range(depth):
            next_frontier = []
            for node in frontier:
                for neighbour in sorted(adjacency.get(node, ())):
                    if neighbour not in seen:
                        seen.add(neighbour)
                        found.append(neighbour)
                        next_frontier.append(neighbour)
            frontier = next_frontier
        return found

    def _record(self, node_id: str) -> dict[str, Any]:
        props = self.nodes.get(node_id, {})
        return {
            "id": node_id,
            "name": props.get("name", node_id),
            "description": props.get("description"),
            "labels": props.get("labels", ["Entity"]),
        }

    def query(self, graph_id, query_expr, params=None):
        params = params or {}
        self.calls.append((graph_id, query_expr, params))
        if self.error is not None:
            raise self.error

        if query_expr == NODE_IDS_QUERY:
            return [{"id": node_id} for node_id in self.nodes]
        if query_expr == EDGES_QUERY:
            return [{"source": s, "target": t} for s, t in self.edges]
        if query_expr == FIND_NODE_QUERY:
            wanted = params["entity"].lower()
            for node_id, props in self.nodes.items():
                if wanted in props.get("name", node_id).lower():
                    return [self._record(node_id)]
            return []
        for depth in range(1, 6):
            if query_expr == neighbours_query(depth):
                found = self._neighbours(params["node_id"], depth)
                return [self._record(n) for n in found[: params.get("limit", len(found))]]
        raise AssertionError(f"unexpected query: {query_expr}")


# =========================================================================
# Fixtures
# =========================================================================


@pytest.fixture
def vector_store():
    """Three passages about languages, indexed under "docs"."""
    store = InMemoryVectorStore()
    store.add("docs", "elixir", "Elixir runs on the BEAM virtual machine", [1.0, 0.0, 0.0])
    store.add("docs", "go", "Go compiles to native code with goroutines", [0.8, 0.6, 0.0])
    store.add("docs", "rust", "Rust guarantees memory safety", [0.0, 0.0, 1.0])
    return store


@pytest.fixture
def embedder():
    return FakeEmbedder()


@pytest.fixture
def adapters(embedder, vector_store):
    return AdapterSet(embedder=embedder, vector_store=vector_store)
