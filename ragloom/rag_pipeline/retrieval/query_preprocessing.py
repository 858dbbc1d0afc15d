"""Query preprocessing: rewrite -> expand -> decompose.

## RAG Theory: Query Preprocessing

Conversational questions make poor search queries. Three optional steps
transform the question before retrieval:
1. **Rewrite** strips filler ("Hey, can you tell me...") into a standalone query
2. **Expand** adds synonyms and spelled-out acronyms to improve recall
3. **Decompose** splits a multi-part question into independent sub-questions

## Failure Policy

Preprocessing is an optimisation, never a requirement. Each step is a
no-op on a halted context; if its collaborator fails, the step logs a
warning and returns the context unchanged. Empty output falls back to
the original text.

## Data Flow

    question -> rewritten_query           (rewrite reads question)
             -> expanded_query            (expand reads rewritten_query or question)
             -> sub_questions             (decompose reads the effective query)
"""

from dataclasses import dataclass
from typing import Iterable, Optional, Protocol

from ragloom.adapters.base import LLM, complete_text
from ragloom.config import PREPROCESSING_MODEL
from ragloom.prompts import DECOMPOSITION_PROMPT, EXPANSION_PROMPT, REWRITE_PROMPT
from ragloom.rag_pipeline.context import RequestContext
from ragloom.rag_pipeline.retrieval.query_schemas import DecompositionResult
from ragloom.shared.errors import RAGError
from ragloom.shared.files import setup_logging
from ragloom.shared.openrouter_client import parse_structured
from ragloom.shared.timeouts import call_with_timeout

logger = setup_logging(__name__)

STEPS = ("rewrite", "expand", "decompose")


class QueryRewriter(Protocol):
    def rewrite(self, query: str) -> str:
        ...


class QueryExpander(Protocol):
    def expand(self, query: str) -> str:
        ...


class QueryDecomposer(Protocol):
    def decompose(self, query: str) -> list[str]:
        ...


def _strip_quotes(text: str) -> str:
    return text.strip().strip('"').strip()


# =============================================================================
# LLM-BACKED COLLABORATORS
# =============================================================================


@dataclass
class LLMQueryRewriter:
    """Rewrites conversational input into a standalone search query."""

    llm: LLM
    model: str = PREPROCESSING_MODEL

    def rewrite(self, query: str) -> str:
        rewritten = _strip_quotes(complete_text(self.llm, REWRITE_PROMPT.format(query=query), {"model": self.model}))
        return rewritten or query


@dataclass
class LLMQueryExpander:
    """Adds synonyms and related terms to a query."""

    llm: LLM
    model: str = PREPROCESSING_MODEL

    def expand(self, query: str) -> str:
        expanded = _strip_quotes(complete_text(self.llm, EXPANSION_PROMPT.format(query=query), {"model": self.model}))
        return expanded or query


@dataclass
class LLMQueryDecomposer:
    """Splits complex questions into 2-4 independent sub-questions.

    Accepts "sub_questions", "subquestions" or "questions" as the JSON key.
    Falls back to [query] when the model returns nothing usable.
    """

    llm: LLM
    model: str = PREPROCESSING_MODEL

    def decompose(self, query: str) -> list[str]:
        content = complete_text(
            self.llm,
            DECOMPOSITION_PROMPT.format(query=query),
            {"model": self.model, "temperature": 0.0},
        )
        result = parse_structured(content, DecompositionResult)
        sub_questions = [q.strip() for q in result.sub_questions if q and q.strip()]
        if not sub_questions:
            logger.warning("[decompose] No sub-questions extracted, using original")
            return [query]
        logger.info(f"[decompose] Generated {len(sub_questions)} sub-questions")
        return sub_questions


# =============================================================================
# PIPELINE STAGE
# =============================================================================


@dataclass
class QueryProcessor:
    """Applies the optional preprocessing chain to a RequestContext.

    Attributes:
        rewriter: Rewrite collaborator (step skipped when None).
        expander: Expansion collaborator (step skipped when None).
        decomposer: Decomposition collaborator (step skipped when None).
        timeout: Deadline in seconds for each collaborator call.
    """

    rewriter: Optional[QueryRewriter] = None
    expander: Optional[QueryExpander] = None
    decomposer: Optional[QueryDecomposer] = None
    timeout: Optional[float] = None

    def rewrite(self, ctx: RequestContext) -> RequestContext:
        if ctx.halted or self.rewriter is None:
            return ctx
        try:
            rewritten = call_with_timeout(
                self.rewriter.rewrite, ctx.question, timeout=self.timeout, operation="rewrite"
            )
        except RAGError as e:
            logger.warning(f"[rewrite] Error: {e}, keeping original question")
            return ctx
        rewritten = (rewritten or "").strip() or ctx.question
        logger.info(f"[rewrite] '{ctx.question[:60]}' -> '{rewritten[:60]}'")
        return ctx.update(rewritten_query=rewritten)

    def expand(self, ctx: RequestContext) -> RequestContext:
        if ctx.halted or self.expander is None:
            return ctx
        source = ctx.rewritten_query or ctx.question
        try:
            expanded = call_with_timeout(
                self.expander.expand, source, timeout=self.timeout, operation="expand"
            )
        except RAGError as e:
            logger.warning(f"[expand] Error: {e}, keeping unexpanded query")
            return ctx
        expanded = (expanded or "").strip() or source
        logger.info(f"[expand] {len(source.split())} -> {len(expanded.split())} terms")
        return ctx.update(expanded_query=expanded)

    def decompose(self, ctx: RequestContext) -> RequestContext:
        if ctx.halted or self.decomposer is None:
            return ctx
        query = ctx.effective_query
        try:
            sub_questions = call_with_timeout(
                self.decomposer.decompose, query, timeout=self.timeout, operation="decompose"
            )
        except RAGError as e:
            logger.warning(f"[decompose] Error: {e}, using original query")
            return ctx
        sub_questions = [q for q in (sub_questions or []) if q and q.strip()] or [query]
        return ctx.update(sub_questions=sub_questions)

    def process(self, ctx: RequestContext, skip: Iterable[str] = ()) -> RequestContext:
        """Run rewrite, expand and decompose in order, minus the steps in `skip`.

        Raises:
            ValueError: If `skip` names an unknown step.
        """
        skip = set(skip)
        unknown = skip - set(STEPS)
        if unknown:
            raise ValueError(f"Unknown preprocessing steps {sorted(unknown)}. Available: {list(STEPS)}")

        for step in STEPS:
            if step not in skip:
                ctx = getattr(self, step)(ctx)
        return ctx
