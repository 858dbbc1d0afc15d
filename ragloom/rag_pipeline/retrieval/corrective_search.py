"""Corrective search: retry retrieval with a better query when results fall short.

## RAG Theory: Corrective Retrieval

A first search can come back empty or off-topic because the user's
phrasing does not match the corpus. Instead of answering from poor
context, the loop checks sufficiency and asks the LLM for a better query:

1. Search with the effective query
2. Too few results, or the LLM judge says "insufficient" -> rewrite the query
3. Repeat, at most `max_iterations` searches in total

The bound is the only termination guarantee besides sufficiency. A judge
failure counts as "sufficient" and a rewrite failure ends the loop with
the current results, so LLM problems never cause extra searches.
A search failure halts the pipeline.
"""

from dataclasses import dataclass, field
from typing import Callable, Optional

from ragloom.adapters.base import LLM, complete_text
from ragloom.config import CORRECTIVE_MAX_ITERATIONS, CORRECTIVE_MIN_RESULTS, PREPROCESSING_MODEL
from ragloom.prompts import SEARCH_REWRITE_PROMPT, SUFFICIENCY_PROMPT
from ragloom.rag_pipeline.context import RequestContext, ScoredItem
from ragloom.rag_pipeline.retrieval.query_schemas import RewrittenQuery, SufficiencyResult
from ragloom.shared.errors import RAGError
from ragloom.shared.files import setup_logging
from ragloom.shared.openrouter_client import parse_structured
from ragloom.shared.timeouts import call_with_timeout

logger = setup_logging(__name__)

SearchFn = Callable[[str], list[ScoredItem]]


@dataclass(frozen=True)
class SearchAttempt:
    query: str
    result_count: int
    feedback: Optional[str] = None


def _preview(items: list[ScoredItem], limit: int = 5) -> str:
    if not items:
        return "(no results)"
    return "\n".join(f"[{i}] {item.content[:200]}" for i, item in enumerate(items[:limit], 1))


@dataclass
class CorrectiveSearch:
    """Bounded search-sufficiency loop.

    Attributes:
        search: Function running one search for a query string.
        llm: Judge and rewriter. Without it, only the min_results check applies
            and an insufficient result set cannot be corrected.
        max_iterations: Maximum number of searches.
        min_results: Fewer results than this is always insufficient.
        timeout: Deadline in seconds for each search / LLM call.
        attempts: Searches made during the last run.
    """

    search: SearchFn
    llm: Optional[LLM] = None
    max_iterations: int = CORRECTIVE_MAX_ITERATIONS
    min_results: int = CORRECTIVE_MIN_RESULTS
    timeout: Optional[float] = None
    model: str = PREPROCESSING_MODEL
    attempts: list[SearchAttempt] = field(default_factory=list)

    def _is_sufficient(self, question: str, items: list[ScoredItem]) -> tuple[bool, Optional[str]]:
        if len(items) < self.min_results:
            return False, "Not enough results found"
        if self.llm is None:
            return True, None
        prompt = SUFFICIENCY_PROMPT.format(question=question, results=_preview(items))
        try:
            content = call_with_timeout(
                complete_text, self.llm, prompt, {"model": self.model, "temperature": 0.0},
                timeout=self.timeout, operation="sufficiency",
            )
            verdict = parse_structured(content, SufficiencyResult)
        except RAGError as e:
            logger.warning(f"[corrective] Sufficiency check failed: {e}, accepting results")
            return True, None
        return verdict.sufficient, verdict.reasoning or None

    def _rewrite(self, question: str, query: str, items: list[ScoredItem], feedback: Optional[str]) -> Optional[str]:
        if self.llm is None:
            return None
        prompt = SEARCH_REWRITE_PROMPT.format(
            query=query,
            question=question,
            results=_preview(items),
            feedback=feedback or "Results do not answer the question",
        )
        try:
            content = call_with_timeout(
                complete_text, self.llm, prompt, {"model": self.model},
                timeout=self.timeout, operation="search_rewrite",
            )
            new_query = parse_structured(content, RewrittenQuery).query.strip()
        except RAGError as e:
            logger.warning(f"[corrective] Query rewrite failed: {e}")
            return None
        return new_query if new_query and new_query != query else None

    def run(self, ctx: RequestContext) -> RequestContext:
        self.attempts = []
        if ctx.has_error:
            return ctx

        query = ctx.effective_query
        while True:
            try:
                items = call_with_timeout(self.search, query, timeout=self.timeout, operation="search")
            except RAGError as e:
                logger.error(f"[corrective] Search failed: {e}")
                return ctx.halt(e)

            sufficient, feedback = self._is_sufficient(ctx.question, items)
            self.attempts.append(SearchAttempt(query=query, result_count=len(items), feedback=feedback))

            if sufficient or len(self.attempts) >= self.max_iterations:
                break
            new_query = self._rewrite(ctx.question, query, items, feedback)
            if new_query is None:
                break
            logger.info(f"[corrective] Attempt {len(self.attempts)} insufficient, retrying with '{new_query[:60]}'")
            query = new_query

        logger.info(f"[corrective] {len(self.attempts)} searches, {len(items)} results")
        return ctx.update(results=items)


def corrective_search(
    ctx: RequestContext,
    search: SearchFn,
    llm: Optional[LLM] = None,
    max_iterations: int = CORRECTIVE_MAX_ITERATIONS,
    min_results: int = CORRECTIVE_MIN_RESULTS,
    timeout: Optional[float] = None,
) -> RequestContext:
    """Functional entry point for CorrectiveSearch.run()."""
    return CorrectiveSearch(search, llm, max_iterations, min_results, timeout).run(ctx)
