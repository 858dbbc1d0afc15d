"""Self-critiquing retrieval: hybrid search plus a grounded, self-checked answer.

Retrieval alone cannot tell whether the passages actually answer the
question. This strategy runs hybrid retrieval, then the grounding loop:
the LLM answers from the passages, judges its own answer against them,
and corrects unsupported claims up to max_corrections times. The final
judgement is returned as the critique, so callers can see how well the
answer is supported.

Key algorithm:
    1. HybridRetrieval.search (+ optional rerank)
    2. GroundingLoop(generate, evaluate, correct) over the retrieved items
    3. Return items, answer and the last GroundingResult as critique

A failing generate / evaluate / correct call fails the whole strategy.
"""

from typing import Any, Optional

from ragloom.config import MAX_CORRECTIONS
from ragloom.rag_pipeline.context import RequestContext
from ragloom.rag_pipeline.generation.answer_generator import LLMAnswerer
from ragloom.rag_pipeline.generation.grounding_loop import GroundingLoop
from ragloom.rag_pipeline.retrieval.strategies.hybrid import HybridRetrieval
from ragloom.rag_pipeline.retrieval.strategy_registry import (
    BaseStrategy,
    RetrievalContext,
    RetrievalResult,
)
from ragloom.shared.files import setup_logging

logger = setup_logging(__name__)


def run_grounding(
    question: str,
    items: list,
    context: RetrievalContext,
    opts: dict[str, Any],
    answerer: Optional[LLMAnswerer] = None,
) -> RequestContext:
    """Run the grounding loop for `question` over `items`.

    Raises:
        RAGError: If any loop collaborator failed.
    """
    answerer = answerer or LLMAnswerer(context.adapters.require("llm"))
    loop = GroundingLoop(
        answerer.generate,
        answerer.evaluate,
        answerer.correct,
        max_corrections=int(opts.get("max_corrections", MAX_CORRECTIONS)),
        timeout=context.timeout,
    )
    ctx = loop.run(RequestContext.new(question).update(results=items))
    if ctx.error is not None:
        raise ctx.error
    return ctx


class SelfCritiquingRetrieval(BaseStrategy):
    """Hybrid retrieval followed by bounded self-correction of the answer.

    Options (opts):
        max_corrections: Correction budget for the grounding loop.
        Any HybridRetrieval option (k, filter, rerank, rerank_threshold).

    Attributes:
        strategy_id: "self_critiquing"
    """

    strategy_id = "self_critiquing"
    required = frozenset({"embedder", "vector_store", "llm"})

    def __init__(self, answerer: Optional[LLMAnswerer] = None):
        self.answerer = answerer
        self.hybrid = HybridRetrieval()

    def _retrieve(self, query: str, context: RetrievalContext, opts: dict[str, Any]) -> RetrievalResult:
        items, metadata = self.hybrid.search(query, context, opts)
        items, metadata["rerank_scores"] = self.hybrid.maybe_rerank(query, items, context, opts)

        ctx = run_grounding(query, items, context, opts, self.answerer)
        metadata["correction_count"] = ctx.correction_count
        metadata["corrections"] = [c.previous_answer for c in ctx.corrections]

        logger.info(
            f"[self_critiquing] grounded={ctx.grounding.grounded} "
            f"score={ctx.grounding.score:.2f} corrections={ctx.correction_count}"
        )
        return RetrievalResult(
            items=items,
            answer=ctx.answer,
            critique=ctx.grounding,
            metadata=metadata,
        )
