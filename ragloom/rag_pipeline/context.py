"""Request-scoped pipeline state.

## RAG Theory: One Context Per Question

Every stage of the pipeline (query preprocessing, retrieval, reranking,
grounded answer generation) reads a RequestContext and returns a new one.
The context is never mutated in place: stages call `ctx.update(...)`,
`ctx.halt(...)` or `ctx.fail(...)`, which build a copy with
dataclasses.replace(). A context is owned by exactly one request, so
no locking is needed.

## Failure Semantics

- `halted`  : an upstream stage stopped the pipeline. Every later stage
              must return the context unchanged.
- `error`   : a stage hit a terminal failure. Set once, never cleared.
              `fail()` sets it without halting (e.g. grounding loop failures),
              `halt()` sets both.

## Data Flow

question -> rewritten_query -> expanded_query -> sub_questions
         -> results (ScoredItem) -> rerank_scores -> answer / context_used
"""

from dataclasses import dataclass, field, replace
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from ragloom.shared.errors import RAGError


@dataclass(frozen=True)
class ScoredItem:
    """A single retrieved passage with its current score.

    Items are immutable once produced by a source. Later stages attach
    new scores with `with_score()`, which returns a copy.

    Attributes:
        id: Unique identifier within one result set.
        content: Passage text.
        score: Source-specific relevance score (higher is better).
        metadata: Source-provided metadata (book, section, node labels, ...).
    """

    id: str
    content: str
    score: float = 0.0
    metadata: dict[str, Any] = field(default_factory=dict)

    def with_score(self, score: float, **extra_metadata: Any) -> "ScoredItem":
        metadata = {**self.metadata, **extra_metadata} if extra_metadata else self.metadata
        return replace(self, score=float(score), metadata=metadata)


class GroundingResult(BaseModel):
    """Outcome of one grounding evaluation. Produced fresh per call."""

    model_config = ConfigDict(frozen=True)

    grounded: bool
    score: float = Field(ge=0.0, le=1.0, description="How well the answer is supported (0-1)")
    ungrounded_claims: list[str] = Field(
        default_factory=list,
        description="Claims in the answer that the context does not support",
    )
    feedback: Optional[str] = Field(
        default=None,
        description="Explanation of grounding issues, used to guide correction",
    )


@dataclass(frozen=True)
class Correction:
    """One correction attempt made by the grounding loop."""

    previous_answer: str
    feedback: Optional[str] = None


@dataclass(frozen=True)
class RequestContext:
    """State threaded through every pipeline stage for one question.

    Attributes:
        question: The user's original question.
        rewritten_query: Cleaned standalone query (QueryProcessor.rewrite).
        expanded_query: Query with synonyms added (QueryProcessor.expand).
        sub_questions: Independent sub-questions (QueryProcessor.decompose).
        selected_sources: Indexes/collections chosen for retrieval.
        selection_reasoning: Why those sources were chosen.
        results: Current ranked result set.
        rerank_scores: id -> score from the last successful rerank.
        answer: Final answer text.
        context_used: Passages the answer was generated from.
        correction_count: Number of grounding corrections performed.
        corrections: History of corrected answers and their feedback.
        grounding: Last grounding evaluation made for `answer`.
        halted: True once an upstream stage stopped the pipeline.
        error: Terminal error for this request.
        options: Free-form request options.
    """

    question: str
    rewritten_query: Optional[str] = None
    expanded_query: Optional[str] = None
    sub_questions: list[str] = field(default_factory=list)
    selected_sources: list[str] = field(default_factory=list)
    selection_reasoning: Optional[str] = None
    results: list[ScoredItem] = field(default_factory=list)
    rerank_scores: dict[str, float] = field(default_factory=dict)
    answer: Optional[str] = None
    context_used: list[ScoredItem] = field(default_factory=list)
    correction_count: int = 0
    corrections: list[Correction] = field(default_factory=list)
    grounding: Optional[GroundingResult] = None
    halted: bool = False
    error: Optional[RAGError] = None
    options: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def new(cls, question: str, **options: Any) -> "RequestContext":
        return cls(question=question, options=dict(options))

    @property
    def effective_query(self) -> str:
        """expanded_query if present, else rewritten_query, else question."""
        return self.expanded_query or self.rewritten_query or self.question

    @property
    def has_error(self) -> bool:
        return self.halted or self.error is not None

    def option(self, key: str, default: Any = None) -> Any:
        return self.options.get(key, default)

    def update(self, **changes: Any) -> "RequestContext":
        return replace(self, **changes)

    def halt(self, error: RAGError) -> "RequestContext":
        """Stop the pipeline: every later stage short-circuits."""
        return replace(self, halted=True, error=error)

    def fail(self, error: RAGError) -> "RequestContext":
        """Record a local terminal failure without halting."""
        if self.error is not None:
            return self
        return replace(self, error=error)
