"""Pydantic schemas for grounding-evaluation LLM responses.

The evaluator prompt asks for {grounded, score, ungrounded_claims, feedback}.
Models are lenient about missing fields; anything the model leaves out
defaults to "grounded" so that a terse judge never triggers corrections.
"""

from typing import Optional

from pydantic import BaseModel, Field, field_validator


class GroundingResponse(BaseModel):
    """Raw grounding verdict as returned by the LLM judge."""

    grounded: bool = Field(default=True, description="Whether every claim is supported")
    score: float = Field(default=1.0, description="How well grounded the answer is (0-1)")
    ungrounded_claims: list[str] = Field(
        default_factory=list,
        description="Claims not supported by the context",
    )
    feedback: Optional[str] = Field(
        default=None,
        description="Explanation of issues if not grounded",
    )

    @field_validator("score")
    @classmethod
    def clamp_score(cls, value: float) -> float:
        return min(1.0, max(0.0, value))
