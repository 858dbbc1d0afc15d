"""Bounded self-correcting answer generation.

## RAG Theory: Grounded Generation

An LLM answer is only useful in RAG if its claims are supported by the
retrieved passages. The grounding loop generates an answer, asks an
evaluator whether it is grounded, and if not, asks a corrector to rewrite
it using the evaluator's feedback. The number of corrections is capped,
so the loop always terminates.

## State Machine

    GENERATING -> EVALUATING -> DONE
                      |  ^
                      v  |
                   CORRECTING

- DONE is reached when the evaluator accepts the answer, or when the
  correction budget is spent (the last answer is accepted as best effort).
- FAILED is reached when generate / evaluate / correct raises a RAGError.
  The error is stored on ctx.error; ctx.halted is left alone so callers
  can tell a local failure from an upstream halt.

## Collaborators

    generate(question, context) -> str
    evaluate(question, answer, context) -> GroundingResult
    correct(question, answer, grounding, context) -> str

See answer_generator.py for the LLM-backed implementations.
"""

import time
from enum import Enum
from typing import Callable, Optional

from ragloom.config import MAX_CORRECTIONS
from ragloom.rag_pipeline.context import Correction, GroundingResult, RequestContext, ScoredItem
from ragloom.shared.errors import RAGError
from ragloom.shared.files import setup_logging
from ragloom.shared.timeouts import call_with_timeout

logger = setup_logging(__name__)

GenerateFn = Callable[[str, list[ScoredItem]], str]
EvaluateFn = Callable[[str, str, list[ScoredItem]], GroundingResult]
CorrectFn = Callable[[str, str, GroundingResult, list[ScoredItem]], str]


class LoopState(Enum):
    GENERATING = "generating"
    EVALUATING = "evaluating"
    CORRECTING = "correcting"
    DONE = "done"
    FAILED = "failed"


class GroundingLoop:
    """Generate -> evaluate -> correct, bounded by max_corrections.

    Attributes:
        generate: Produces the first answer.
        evaluate: Judges whether an answer is grounded in the context.
        correct: Rewrites an ungrounded answer using the evaluation.
        max_corrections: Maximum correction attempts (0 = accept after one evaluation).
        timeout: Deadline in seconds for each collaborator call.
        transitions: States visited during the last run (for logging and tests).
    """

    def __init__(
        self,
        generate: GenerateFn,
        evaluate: EvaluateFn,
        correct: CorrectFn,
        max_corrections: int = MAX_CORRECTIONS,
        timeout: Optional[float] = None,
    ):
        if max_corrections < 0:
            raise ValueError(f"max_corrections must be >= 0, got {max_corrections}")
        self.generate = generate
        self.evaluate = evaluate
        self.correct = correct
        self.max_corrections = max_corrections
        self.timeout = timeout
        self.transitions: list[LoopState] = []

    def _enter(self, state: LoopState) -> None:
        self.transitions.append(state)
        logger.debug(f"[grounding] -> {state.value}")

    def run(self, ctx: RequestContext) -> RequestContext:
        """Produce a grounded (or best-effort) answer for ctx.question.

        Returns:
            Context with answer, context_used, grounding, correction_count and
            corrections set, or with error set if a collaborator failed.
        """
        self.transitions = []
        if ctx.has_error:
            return ctx

        start_time = time.time()
        context_used = list(ctx.results)
        question = ctx.question
        count = 0
        corrections: list[Correction] = []

        self._enter(LoopState.GENERATING)
        try:
            current = call_with_timeout(
                self.generate, question, context_used, timeout=self.timeout, operation="generate"
            )
        except RAGError as e:
            self._enter(LoopState.FAILED)
            logger.error(f"[grounding] Generation failed: {e}")
            return ctx.fail(e)

        while True:
            self._enter(LoopState.EVALUATING)
            try:
                grounding = call_with_timeout(
                    self.evaluate, question, current, context_used,
                    timeout=self.timeout, operation="evaluate",
                )
            except RAGError as e:
                self._enter(LoopState.FAILED)
                logger.error(f"[grounding] Evaluation failed: {e}")
                return ctx.update(correction_count=count, corrections=corrections).fail(e)

            if grounding.grounded or count >= self.max_corrections:
                self._enter(LoopState.DONE)
                if not grounding.grounded:
                    logger.warning(
                        f"[grounding] Correction budget ({self.max_corrections}) spent, "
                        f"accepting ungrounded answer (score={grounding.score:.2f})"
                    )
                logger.info(
                    f"[grounding] Done: grounded={grounding.grounded} corrections={count} "
                    f"in {(time.time() - start_time) * 1000:.0f}ms"
                )
                return ctx.update(
                    answer=current,
                    context_used=context_used,
                    grounding=grounding,
                    correction_count=count,
                    corrections=corrections,
                )

            self._enter(LoopState.CORRECTING)
            try:
                corrected = call_with_timeout(
                    self.correct, question, current, grounding, context_used,
                    timeout=self.timeout, operation="correct",
                )
            except RAGError as e:
                self._enter(LoopState.FAILED)
                logger.error(f"[grounding] Correction failed: {e}")
                return ctx.update(correction_count=count, corrections=corrections).fail(e)

            corrections.append(Correction(previous_answer=current, feedback=grounding.feedback))
            count += 1
            logger.info(f"[grounding] Correction {count}/{self.max_corrections} (score={grounding.score:.2f})")
            current = corrected


def answer(
    ctx: RequestContext,
    generate: GenerateFn,
    evaluate: EvaluateFn,
    correct: CorrectFn,
    max_corrections: int = MAX_CORRECTIONS,
    timeout: Optional[float] = None,
) -> RequestContext:
    """Run one GroundingLoop over ctx (functional entry point)."""
    return GroundingLoop(generate, evaluate, correct, max_corrections, timeout).run(ctx)
