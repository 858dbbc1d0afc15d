"""LLM-as-judge relevance scorer.

Asks an LLM to score every candidate passage from 1 to 10 in a single
call, then normalises the scores to [0, 1]. Useful when no cross-encoder
model is installed, at the cost of one extra LLM round trip.
"""

from dataclasses import dataclass
from typing import Any, Optional

from ragloom.adapters.base import LLM
from ragloom.config import LLM_RERANK_MAX_SCORE, PREPROCESSING_MODEL
from ragloom.prompts import RERANK_PROMPT
from ragloom.rag_pipeline.context import ScoredItem
from ragloom.rag_pipeline.retrieval.query_schemas import RelevanceScores
from ragloom.shared.files import setup_logging
from ragloom.shared.openrouter_client import parse_structured

logger = setup_logging(__name__)

# Passages are truncated in the prompt to keep it bounded
MAX_PASSAGE_CHARS = 800


@dataclass
class LLMScorer:
    """Scorer protocol backed by an LLM collaborator.

    Items the LLM does not mention get score 0.0. The original retrieval
    score is kept in metadata["retrieval_score"].
    """

    llm: LLM
    model: str = PREPROCESSING_MODEL
    max_score: float = LLM_RERANK_MAX_SCORE

    def rerank(
        self,
        query: str,
        items: list[ScoredItem],
        opts: Optional[dict[str, Any]] = None,
    ) -> list[ScoredItem]:
        if not items:
            return []

        documents = "\n\n".join(
            f"[{idx}] {item.content[:MAX_PASSAGE_CHARS]}" for idx, item in enumerate(items)
        )
        prompt = RERANK_PROMPT.format(query=query, documents=documents)
        completion = self.llm.complete(
            [{"role": "user", "content": prompt}],
            {"model": self.model, "temperature": 0.0, "json_mode": True},
        )
        parsed = parse_structured(completion.content, RelevanceScores)

        by_index: dict[int, float] = {}
        for entry in parsed.scores:
            if 0 <= entry.index < len(items) and entry.index not in by_index:
                by_index[entry.index] = min(max(entry.score / self.max_score, 0.0), 1.0)

        rescored = [
            item.with_score(by_index.get(idx, 0.0), retrieval_score=item.score)
            for idx, item in enumerate(items)
        ]
        rescored.sort(key=lambda item: -item.score)

        logger.info(f"[LLMScorer] scored {len(by_index)}/{len(items)} passages")
        return rescored
