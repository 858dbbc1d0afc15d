"""Answer generation and grounding-driven correction."""

from ragloom.rag_pipeline.generation.grounding_loop import GroundingLoop, LoopState, answer
from ragloom.rag_pipeline.generation.answer_generator import LLMAnswerer

__all__ = ["GroundingLoop", "LoopState", "answer", "LLMAnswerer"]
