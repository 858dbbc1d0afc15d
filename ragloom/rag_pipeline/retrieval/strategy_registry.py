"""Retrieval strategy contract, shared dataclasses, and factory.

## RAG Theory: Strategy Pattern for Retrieval

Each retrieval mode composes the same building blocks (rank fusion,
reranking, grounded generation, community detection) differently over
injected collaborators. Callers depend only on the protocol below, so
swapping strategies needs no change in orchestration code.

## Contents

1. **Protocol + dataclasses**: RetrievalContext, RetrievalResult, RetrievalStrategy
2. **Pipeline bridge**: apply_strategy (RequestContext in, RequestContext out)
3. **Factory**: get_strategy, list_strategies, register_strategy

## Available Strategies

- hybrid: vector + keyword search fused with RRF, optional rerank
- self_critiquing: hybrid retrieval + grounded answer with critique
- graph_aware: graph traversal and/or community summaries fused with vector results

## Failure Policy

A strategy checks its required adapters before doing any work and raises
AdapterUnavailableError if one is missing. Collaborator errors propagate
as RAGError; a strategy never returns a partially populated result.
"""

import time
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Protocol, Type, runtime_checkable

from ragloom.adapters.base import AdapterSet
from ragloom.config import COLLABORATOR_TIMEOUT_S, DEFAULT_GRAPH_ID, DEFAULT_TOP_K, MAX_TOP_K, RRF_K
from ragloom.rag_pipeline.context import GroundingResult, RequestContext, ScoredItem
from ragloom.shared.errors import RAGError
from ragloom.shared.files import setup_logging

logger = setup_logging(__name__)


# =============================================================================
# PROTOCOL + DATACLASSES
# =============================================================================


@dataclass
class RetrievalContext:
    """Everything a strategy needs besides the query.

    Attributes:
        adapters: Available collaborators (embedder, vector_store, graph_store, llm, scorer).
        index_id: Vector index / collection to search.
        graph_id: Graph to traverse for graph-aware retrieval.
        top_k: Final number of results to return.
        timeout: Deadline in seconds for each collaborator call (None = no deadline).
        rrf_k: RRF smoothing constant.
    """

    adapters: AdapterSet
    index_id: str = "default"
    graph_id: str = DEFAULT_GRAPH_ID
    top_k: int = DEFAULT_TOP_K
    timeout: Optional[float] = COLLABORATOR_TIMEOUT_S
    rrf_k: int = RRF_K


@dataclass
class RetrievalResult:
    """Unified output of every strategy.

    Attributes:
        items: Final ranked passages.
        answer: Generated answer, when the strategy produces one.
        strategy: Name of the strategy that produced this result.
        timing_ms: Wall-clock time spent in retrieve().
        critique: Final grounding evaluation of `answer`.
        metadata: Strategy-specific details for logging (source counts, mode, communities...).
    """

    items: list[ScoredItem] = field(default_factory=list)
    answer: Optional[str] = None
    strategy: str = ""
    timing_ms: float = 0.0
    critique: Optional[GroundingResult] = None
    metadata: dict[str, Any] = field(default_factory=dict)


@runtime_checkable
class RetrievalStrategy(Protocol):
    """Protocol for retrieval strategies.

    Implementations:
        - HybridRetrieval: embed -> vector + keyword search in parallel -> RRF -> optional rerank
        - SelfCritiquingRetrieval: hybrid retrieval -> grounding loop -> answer + critique
        - GraphAwareRetrieval: entities/communities from the graph store -> RRF with vector results
    """

    strategy_id: str

    def name(self) -> str:
        ...

    def required_adapters(self) -> set[str]:
        ...

    def retrieve(
        self,
        query: str,
        context: RetrievalContext,
        opts: Optional[dict[str, Any]] = None,
    ) -> RetrievalResult:
        ...


class BaseStrategy:
    """Shared plumbing: name(), adapter check and timing."""

    strategy_id = ""
    required: frozenset[str] = frozenset()

    def name(self) -> str:
        return self.strategy_id

    def required_adapters(self) -> set[str]:
        return set(self.required)

    def result_count(self, context: RetrievalContext, opts: dict[str, Any]) -> int:
        """Requested number of results (opts["k"] or context.top_k), capped at MAX_TOP_K."""
        k = int(opts.get("k", context.top_k))
        if k > MAX_TOP_K:
            logger.warning(f"[{self.name()}] k={k} exceeds MAX_TOP_K, using {MAX_TOP_K}")
            return MAX_TOP_K
        return k

    def retrieve(
        self,
        query: str,
        context: RetrievalContext,
        opts: Optional[dict[str, Any]] = None,
    ) -> RetrievalResult:
        context.adapters.check(self.required_adapters())
        start_time = time.time()
        result = self._retrieve(query, context, dict(opts or {}))
        result.strategy = self.name()
        result.timing_ms = (time.time() - start_time) * 1000
        logger.info(f"[{self.name()}] {len(result.items)} items in {result.timing_ms:.0f}ms")
        return result

    def _retrieve(self, query: str, context: RetrievalContext, opts: dict[str, Any]) -> RetrievalResult:
        raise NotImplementedError


# =============================================================================
# PIPELINE BRIDGE
# =============================================================================


def apply_strategy(
    ctx: RequestContext,
    strategy: RetrievalStrategy,
    context: RetrievalContext,
    opts: Optional[dict[str, Any]] = None,
) -> RequestContext:
    """Run `strategy` for ctx.effective_query and store its output on the context.

    A halted or errored context is returned unchanged. A strategy failure
    halts the pipeline.
    """
    if ctx.has_error:
        return ctx

    try:
        result = strategy.retrieve(ctx.effective_query, context, {**ctx.options, **(opts or {})})
    except RAGError as e:
        logger.error(f"[{strategy.name()}] Retrieval failed: {e}")
        return ctx.halt(e)

    changes: dict[str, Any] = {"results": result.items}
    if result.answer is not None:
        changes.update(answer=result.answer, context_used=result.items, grounding=result.critique)
    return ctx.update(**changes)


# =============================================================================
# STRATEGY FACTORY
# =============================================================================

# Lazy-loaded to avoid circular imports (strategy impls import from this module)
_STRATEGY_CLASSES: Optional[Dict[str, Type]] = None


def _get_strategy_classes() -> Dict[str, Type]:
    """Lazily load strategy class registry to avoid circular imports."""
    global _STRATEGY_CLASSES
    if _STRATEGY_CLASSES is None:
        from ragloom.rag_pipeline.retrieval.strategies.hybrid import HybridRetrieval
        from ragloom.rag_pipeline.retrieval.strategies.self_critiquing import SelfCritiquingRetrieval
        from ragloom.rag_pipeline.retrieval.strategies.graph_aware import GraphAwareRetrieval

        _STRATEGY_CLASSES = {
            HybridRetrieval.strategy_id: HybridRetrieval,
            SelfCritiquingRetrieval.strategy_id: SelfCritiquingRetrieval,
            GraphAwareRetrieval.strategy_id: GraphAwareRetrieval,
        }
    return _STRATEGY_CLASSES


def get_strategy(strategy_id: str, **kwargs: Any) -> RetrievalStrategy:
    """Get strategy instance by ID.

    Args:
        strategy_id: One of list_strategies().
        **kwargs: Forwarded to the strategy constructor.

    Raises:
        ValueError: If strategy_id is not registered.
    """
    classes = _get_strategy_classes()
    if strategy_id not in classes:
        available = list(classes.keys())
        raise ValueError(f"Unknown strategy '{strategy_id}'. Available: {available}")
    return classes[strategy_id](**kwargs)


def list_strategies() -> list[str]:
    """List all registered strategy IDs."""
    return list(_get_strategy_classes().keys())


def register_strategy(strategy_class: Type, strategy_id: Optional[str] = None) -> None:
    """Register a strategy class (for extensions/plugins).

    Args:
        strategy_class: Class implementing the RetrievalStrategy protocol.
        strategy_id: Registry key (defaults to strategy_class.strategy_id).

    Raises:
        ValueError: If no id is given and the class defines none.
    """
    key = strategy_id or getattr(strategy_class, "strategy_id", "")
    if not key:
        raise ValueError(f"{strategy_class.__name__} has no strategy_id")
    _get_strategy_classes()[key] = strategy_class
