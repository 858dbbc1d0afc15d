"""LLM-backed collaborators for the grounding loop.

## RAG Theory: Generate, Judge, Correct

The same LLM plays three roles:
1. **Generator** answers the question from numbered passages.
2. **Judge** checks every claim against the passages and returns a
   grounding verdict as JSON.
3. **Corrector** rewrites an ungrounded answer using the judge's feedback
   and the list of unsupported claims.

## Library Usage

Talks to the injected LLM collaborator (ragloom.adapters.base.LLM).
Judge output is validated with Pydantic (GroundingResponse) and repaired
with json_repair when malformed. If no JSON can be recovered the answer
is treated as grounded, so a broken judge degrades to "accept".

## Data Flow

1. Retrieved ScoredItems -> numbered context "[1] ...", "[2] ..."
2. ANSWER_PROMPT -> answer text
3. GROUNDING_PROMPT -> GroundingResult (score >= threshold counts as grounded)
4. CORRECTION_PROMPT -> corrected answer text
"""

import re
from dataclasses import dataclass, field
from typing import Any, Optional

from ragloom.adapters.base import LLM, complete_text
from ragloom.config import GENERATION_MAX_TOKENS, GENERATION_MODEL, GROUNDING_THRESHOLD
from ragloom.prompts import ANSWER_PROMPT, CORRECTION_PROMPT, GROUNDING_PROMPT
from ragloom.rag_pipeline.context import GroundingResult, ScoredItem
from ragloom.rag_pipeline.generation.schemas import GroundingResponse
from ragloom.shared.errors import InvalidResponseError
from ragloom.shared.files import setup_logging
from ragloom.shared.openrouter_client import parse_structured

logger = setup_logging(__name__)

_JSON_OBJECT = re.compile(r"\{[\s\S]*\}")


def format_context(items: list[ScoredItem]) -> str:
    """Format passages as numbered context for the LLM.

    Returns:
        "[1] text\\n\\n[2] text ..." or "No context provided." when empty.
    """
    if not items:
        return "No context provided."
    return "\n\n".join(f"[{i}] {item.content}" for i, item in enumerate(items, 1))


def extract_source_citations(answer: str, num_items: int) -> list[int]:
    """Return the unique [n] citation numbers (1-based) that point at real passages."""
    citations = set()
    for match in re.finditer(r"\[(\d+)\]", answer):
        num = int(match.group(1))
        if 1 <= num <= num_items:
            citations.add(num)
    return sorted(citations)


def parse_grounding(content: str, threshold: float = GROUNDING_THRESHOLD) -> GroundingResult:
    """Turn judge output into a GroundingResult.

    The first {...} block is parsed. A score at or above `threshold` counts
    as grounded even if the judge said otherwise; unparseable output counts
    as grounded with score 1.0.
    """
    match = _JSON_OBJECT.search(content)
    if match is None:
        logger.warning("[grounding] No JSON in judge response, treating answer as grounded")
        return GroundingResult(grounded=True, score=1.0)

    try:
        parsed = parse_structured(match.group(0), GroundingResponse)
    except InvalidResponseError as e:
        logger.warning(f"[grounding] {e}, treating answer as grounded")
        return GroundingResult(grounded=True, score=1.0)

    return GroundingResult(
        grounded=parsed.grounded or parsed.score >= threshold,
        score=parsed.score,
        ungrounded_claims=parsed.ungrounded_claims,
        feedback=parsed.feedback or None,
    )


@dataclass
class LLMAnswerer:
    """Generator, judge and corrector backed by one LLM collaborator.

    Pass the bound methods to GroundingLoop:

        >>> answerer = LLMAnswerer(llm)
        >>> loop = GroundingLoop(answerer.generate, answerer.evaluate, answerer.correct)

    Attributes:
        llm: LLM collaborator.
        model: Model id forwarded in the completion options.
        grounding_threshold: Judge score at which an answer is accepted.
        temperature: Sampling temperature for generation and correction.
    """

    llm: LLM
    model: str = GENERATION_MODEL
    grounding_threshold: float = GROUNDING_THRESHOLD
    temperature: float = 0.3
    extra_opts: dict[str, Any] = field(default_factory=dict)

    def _opts(self, temperature: Optional[float] = None) -> dict[str, Any]:
        return {
            "model": self.model,
            "temperature": self.temperature if temperature is None else temperature,
            "max_tokens": GENERATION_MAX_TOKENS,
            **self.extra_opts,
        }

    def generate(self, question: str, context: list[ScoredItem]) -> str:
        prompt = ANSWER_PROMPT.format(context=format_context(context), question=question)
        answer = complete_text(self.llm, prompt, self._opts())
        logger.info(
            f"[grounding] Generated answer ({len(answer)} chars, "
            f"cited {len(extract_source_citations(answer, len(context)))} sources)"
        )
        return answer

    def evaluate(self, question: str, answer: str, context: list[ScoredItem]) -> GroundingResult:
        prompt = GROUNDING_PROMPT.format(
            context=format_context(context),
            question=question,
            answer=answer,
        )
        content = complete_text(self.llm, prompt, self._opts(temperature=0.0))
        return parse_grounding(content, self.grounding_threshold)

    def correct(
        self,
        question: str,
        answer: str,
        grounding: GroundingResult,
        context: list[ScoredItem],
    ) -> str:
        claims = "\n".join(f"- {claim}" for claim in grounding.ungrounded_claims) or "None listed"
        prompt = CORRECTION_PROMPT.format(
            context=format_context(context),
            question=question,
            previous_answer=answer,
            feedback=grounding.feedback or "Answer needs improvement",
            ungrounded_claims=claims,
        )
        return complete_text(self.llm, prompt, self._opts())
