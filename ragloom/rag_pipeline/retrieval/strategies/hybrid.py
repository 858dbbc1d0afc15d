"""Hybrid retrieval: vector + keyword search fused with RRF.

Semantic (vector) search finds paraphrases; keyword (BM25) search finds
exact terms, names and identifiers that embeddings blur. Running both and
merging with Reciprocal Rank Fusion gets the recall of both without having
to normalise their scores.

Key algorithm:
    1. Keyword search starts immediately on its own thread
    2. Embed the query, then vector search (on a second thread)
    3. Join both within one deadline, fuse with RRF (vector list first, so its metadata wins ties)
    4. Take top-k, optionally rerank with the scorer collaborator

Each side fetches 2*k candidates so fusion has something to reorder.
A failing keyword search degrades to vector-only results; a failing
embedder or vector search fails the strategy.
"""

import time
from typing import Any

from ragloom.config import RERANK_THRESHOLD
from ragloom.rag_pipeline.context import RequestContext, ScoredItem
from ragloom.rag_pipeline.retrieval.reranking import rerank
from ragloom.rag_pipeline.retrieval.rrf import reciprocal_rank_fusion
from ragloom.rag_pipeline.retrieval.strategy_registry import (
    BaseStrategy,
    RetrievalContext,
    RetrievalResult,
)
from ragloom.shared.errors import RAGError
from ragloom.shared.files import setup_logging
from ragloom.shared.timeouts import start_call, wait_for

logger = setup_logging(__name__)


class HybridRetrieval(BaseStrategy):
    """Hybrid strategy: parallel vector and keyword search merged with RRF.

    Options (opts):
        k: Number of results (defaults to context.top_k).
        filter: Passed through to the vector store.
        rerank: Rerank fused results when a scorer is available (default True).
        rerank_threshold: Minimum scorer score to keep.

    Attributes:
        strategy_id: "hybrid"
    """

    strategy_id = "hybrid"
    required = frozenset({"embedder", "vector_store"})

    def search(
        self,
        query: str,
        context: RetrievalContext,
        opts: dict[str, Any],
    ) -> tuple[list[ScoredItem], dict[str, Any]]:
        """Run both searches in parallel and fuse them. Returns (items, metadata)."""
        adapters = context.adapters
        embedder = adapters.require("embedder")
        store = adapters.require("vector_store")
        k = self.result_count(context, opts)
        candidates = k * 2
        store_opts = {"filter": opts["filter"]} if opts.get("filter") is not None else {}

        def vector_search() -> list[ScoredItem]:
            embedding = embedder.embed(query, {})
            return store.search(context.index_id, embedding.vector, candidates, store_opts)

        def keyword_search() -> list[ScoredItem]:
            return store.search(context.index_id, query, candidates, store_opts)

        # Both searches share one deadline measured from the moment they start
        started = time.monotonic()
        keyword_future = start_call(keyword_search, operation="keyword_search")
        vector_future = start_call(vector_search, operation="vector_search")

        vector_items = wait_for(vector_future, context.timeout, "vector_search")
        remaining = None if context.timeout is None else max(0.0, context.timeout - (time.monotonic() - started))
        try:
            keyword_items = wait_for(keyword_future, remaining, "keyword_search")
        except RAGError as e:
            logger.warning(f"[hybrid] Keyword search unavailable ({e}), using vector results only")
            keyword_items = []

        fused = reciprocal_rank_fusion(
            [("vector", vector_items), ("keyword", keyword_items)],
            k=context.rrf_k,
            top_k=k,
        )
        metadata = {
            "vector_count": len(vector_items),
            "keyword_count": len(keyword_items),
            "source_contributions": fused.source_contributions,
        }
        return fused.results, metadata

    def maybe_rerank(
        self,
        query: str,
        items: list[ScoredItem],
        context: RetrievalContext,
        opts: dict[str, Any],
    ) -> tuple[list[ScoredItem], dict[str, float]]:
        scorer = context.adapters.scorer
        if scorer is None or not opts.get("rerank", True) or not items:
            return items, {}

        ctx = RequestContext.new(query).update(results=items)
        ctx = rerank(
            ctx,
            scorer,
            threshold=float(opts.get("rerank_threshold", RERANK_THRESHOLD)),
            limit=self.result_count(context, opts),
            timeout=context.timeout,
        )
        return ctx.results, ctx.rerank_scores

    def _retrieve(self, query: str, context: RetrievalContext, opts: dict[str, Any]) -> RetrievalResult:
        items, metadata = self.search(query, context, opts)
        items, rerank_scores = self.maybe_rerank(query, items, context, opts)
        metadata["rerank_scores"] = rerank_scores
        return RetrievalResult(items=items, metadata=metadata)
