"""Reranking stage: rescoring, threshold filtering and capping.

## RAG Theory: Two-Stage Retrieval

First-stage retrieval (vector + keyword + RRF) optimises recall. A second
scorer that sees query and passage together (cross-encoder or LLM judge)
then reorders the candidates for precision. This module is the pipeline
wrapper around such a scorer; the scorer itself is a collaborator
(see ragloom.adapters.cross_encoder and ragloom.adapters.llm_scorer).

## Failure Policy

Reranking is the only stage that self-heals. If the scorer raises or
times out, the wrapper logs a warning and keeps the original results
untouched with empty rerank_scores. A reranking failure never halts the
pipeline.

## Data Flow

1. Skip when the context is halted, errored, or has no results
2. scorer(effective_query, results, opts) -> rescored items (best-first)
3. Drop items scoring below threshold (threshold <= 0 disables)
4. Record id -> score for the survivors (if track_scores)
5. Cap to limit
"""

import time
from dataclasses import dataclass, field
from typing import Any, Callable, Hashable, Optional, Sequence, Union

from ragloom.adapters.base import Scorer
from ragloom.config import RERANK_THRESHOLD
from ragloom.rag_pipeline.context import RequestContext, ScoredItem
from ragloom.shared.files import setup_logging
from ragloom.shared.timeouts import call_with_timeout

logger = setup_logging(__name__)

ScoreFunction = Callable[[str, list[ScoredItem], dict[str, Any]], list[ScoredItem]]
ScorerLike = Union[Scorer, ScoreFunction]


@dataclass
class RerankResult:
    """Result of direct reranking with order tracking.

    Attributes:
        results: Filtered and capped items with scorer scores.
        order_changes: {"id", "before_rank", "after_rank", "before_score", "after_score"}
            for every returned item.
        rerank_time_ms: Time spent in the scorer and filtering.
    """

    results: list[ScoredItem]
    order_changes: list[dict[str, Any]] = field(default_factory=list)
    rerank_time_ms: float = 0.0


def _invoke_scorer(
    scorer: ScorerLike,
    query: str,
    items: list[ScoredItem],
    opts: dict[str, Any],
    timeout: Optional[float],
) -> list[ScoredItem]:
    score_fn = scorer.rerank if hasattr(scorer, "rerank") else scorer
    return call_with_timeout(score_fn, query, items, opts, timeout=timeout, operation="rerank")


def _filter_and_cap(
    items: list[ScoredItem],
    threshold: float,
    limit: int,
) -> tuple[list[ScoredItem], list[ScoredItem]]:
    survivors = items if threshold <= 0 else [item for item in items if item.score >= threshold]
    return survivors, survivors[:limit]


def _order_changes(before: Sequence[ScoredItem], after: Sequence[ScoredItem]) -> list[dict[str, Any]]:
    before_rank = {item.id: (rank, item.score) for rank, item in enumerate(before, start=1)}
    changes = []
    for after_rank, item in enumerate(after, start=1):
        rank, score = before_rank.get(item.id, (None, None))
        changes.append({
            "id": item.id,
            "before_rank": rank,
            "after_rank": after_rank,
            "before_score": score,
            "after_score": item.score,
        })
    return changes


def rerank(
    ctx: RequestContext,
    scorer: ScorerLike,
    threshold: float = RERANK_THRESHOLD,
    limit: Optional[int] = None,
    track_scores: bool = True,
    opts: Optional[dict[str, Any]] = None,
    timeout: Optional[float] = None,
) -> RequestContext:
    """Rerank ctx.results with `scorer`, degrading to pass-through on failure.

    Args:
        ctx: Pipeline context.
        scorer: Scorer collaborator, or a plain function with the same signature.
        threshold: Minimum score to keep (<= 0 disables filtering).
        limit: Maximum number of results (default: number of input results).
        track_scores: Populate ctx.rerank_scores for the items that passed the threshold.
        opts: Extra options forwarded to the scorer.
        timeout: Deadline in seconds for the scorer call.

    Returns:
        New context with reranked results, or the original results and empty
        rerank_scores when skipped or when the scorer fails.
    """
    if ctx.has_error or not ctx.results:
        return ctx.update(rerank_scores={})

    limit = len(ctx.results) if limit is None else limit
    scorer_opts = {**(opts or {}), "top_n": limit}
    start_time = time.time()

    try:
        rescored = _invoke_scorer(scorer, ctx.effective_query, list(ctx.results), scorer_opts, timeout)
    except Exception as e:
        logger.warning(f"[rerank] Reranking failed: {e}, using original results")
        return ctx.update(rerank_scores={})

    survivors, final = _filter_and_cap(rescored, threshold, limit)
    scores = {item.id: item.score for item in survivors} if track_scores else {}

    elapsed_ms = (time.time() - start_time) * 1000
    logger.info(
        f"[rerank] {len(ctx.results)} -> {len(final)} results "
        f"(threshold={threshold}, limit={limit}) in {elapsed_ms:.0f}ms"
    )

    return ctx.update(results=final, rerank_scores=scores)


def rerank_items(
    query: str,
    items: list[ScoredItem],
    scorer: ScorerLike,
    threshold: float = RERANK_THRESHOLD,
    limit: Optional[int] = None,
    opts: Optional[dict[str, Any]] = None,
    timeout: Optional[float] = None,
) -> RerankResult:
    """Rerank a list directly. Unlike `rerank`, scorer failures propagate.

    Raises:
        RAGError: Whatever the scorer raises (including CollaboratorTimeoutError).
    """
    if not items:
        return RerankResult(results=[])

    limit = len(items) if limit is None else limit
    start_time = time.time()
    rescored = _invoke_scorer(scorer, query, list(items), {**(opts or {}), "top_n": limit}, timeout)
    _, final = _filter_and_cap(rescored, threshold, limit)

    return RerankResult(
        results=final,
        order_changes=_order_changes(items, final),
        rerank_time_ms=(time.time() - start_time) * 1000,
    )


def deduplicate(
    items: Sequence[ScoredItem],
    key: Union[str, Callable[[ScoredItem], Hashable]] = "id",
) -> list[ScoredItem]:
    """Drop repeated items, keeping the first occurrence of each key.

    Args:
        items: Items in priority order.
        key: Attribute name ("id", "content") or a function returning the key.
            Items whose key is None are always kept.

    Returns:
        Survivors in their original relative order.
    """
    key_fn = key if callable(key) else (lambda item: getattr(item, key))
    seen: set[Hashable] = set()
    unique = []
    for item in items:
        value = key_fn(item)
        if value is not None and value in seen:
            continue
        if value is not None:
            seen.add(value)
        unique.append(item)
    return unique
