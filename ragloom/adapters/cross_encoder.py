"""Cross-encoder relevance scorer.

## What is a Cross-Encoder?

A cross-encoder takes the query and a passage as ONE input and outputs a
single relevance score. Embeddings (bi-encoders) encode both texts
separately and compare vectors, so they never see the two side by side.

```
Input: "[CLS] What metaphor does Marcus Aurelius use? [SEP] He likens humans to puppets... [SEP]"
        ↓
    Full Transformer Attention (query attends to passage, and vice versa)
        ↓
    Relevance Score: 0.95
```

## Library Usage

sentence-transformers CrossEncoder. The model is loaded once per process
and shared by every CrossEncoderScorer using the same model name.
Install with the `rerank` extra.
"""

from typing import Any, Optional

from sentence_transformers import CrossEncoder

from ragloom.config import RERANK_MODEL
from ragloom.rag_pipeline.context import ScoredItem
from ragloom.shared.files import setup_logging

logger = setup_logging(__name__)

# Loaded models by name (avoids reloading on each call)
_models: dict[str, CrossEncoder] = {}


def get_reranker(model_name: str = RERANK_MODEL) -> CrossEncoder:
    """Get or load the cross-encoder model.

    First call downloads the model from HuggingFace Hub; later calls reuse it.
    """
    if model_name not in _models:
        logger.info(f"Loading reranker model: {model_name}")
        _models[model_name] = CrossEncoder(model_name)
        logger.info("Reranker loaded successfully")
    return _models[model_name]


class CrossEncoderScorer:
    """Scorer protocol backed by a sentence-transformers CrossEncoder."""

    def __init__(self, model_name: str = RERANK_MODEL):
        self.model_name = model_name

    def rerank(
        self,
        query: str,
        items: list[ScoredItem],
        opts: Optional[dict[str, Any]] = None,
    ) -> list[ScoredItem]:
        if not items:
            return []

        model = get_reranker(self.model_name)
        pairs = [[query, item.content] for item in items]
        scores = model.predict(pairs)
        logger.debug(f"Score range: [{min(scores):.3f}, {max(scores):.3f}]")

        rescored = [
            item.with_score(float(score), retrieval_score=item.score)
            for item, score in zip(items, scores)
        ]
        rescored.sort(key=lambda item: -item.score)
        return rescored
