"""OpenRouter-backed LLM and Embedder adapters.

Thin wrappers that expose ragloom.shared.openrouter_client through the
LLM and Embedder protocols. Retry, backoff and error mapping live in
the client; these classes only translate options and shapes.
"""

from dataclasses import dataclass
from typing import Any, Optional

from ragloom.adapters.base import Completion, Embedding
from ragloom.config import (
    EMBEDDING_MODEL_ID,
    GENERATION_MAX_TOKENS,
    GENERATION_MODEL,
    MAX_RETRIES,
)
from ragloom.shared.errors import InvalidResponseError
from ragloom.shared.files import setup_logging
from ragloom.shared.openrouter_client import call_chat_completion, post_with_retries

logger = setup_logging(__name__)


@dataclass
class OpenRouterLLM:
    """LLM protocol over OpenRouter chat completions.

    Per-call opts override the instance defaults:
        model, temperature, max_tokens, top_p, json_mode, timeout.
    """

    model: str = GENERATION_MODEL
    temperature: float = 0.3
    max_tokens: int = GENERATION_MAX_TOKENS
    timeout: float = 60
    max_retries: int = MAX_RETRIES

    def complete(
        self,
        messages: list[dict[str, str]],
        opts: Optional[dict[str, Any]] = None,
    ) -> Completion:
        opts = opts or {}
        content = call_chat_completion(
            messages=messages,
            model=opts.get("model", self.model),
            temperature=opts.get("temperature", self.temperature),
            max_tokens=opts.get("max_tokens", self.max_tokens),
            top_p=opts.get("top_p"),
            json_mode=opts.get("json_mode", False),
            timeout=opts.get("timeout", self.timeout),
            max_retries=self.max_retries,
        )
        return Completion(content=content)


@dataclass
class OpenRouterEmbedder:
    """Embedder protocol over the OpenRouter /embeddings endpoint."""

    model: str = EMBEDDING_MODEL_ID
    timeout: float = 30
    max_retries: int = MAX_RETRIES

    def embed(self, text: str, opts: Optional[dict[str, Any]] = None) -> Embedding:
        opts = opts or {}
        payload = {"model": opts.get("model", self.model), "input": [text]}
        result = post_with_retries(
            "/embeddings",
            payload,
            timeout=opts.get("timeout", self.timeout),
            max_retries=self.max_retries,
        )

        data = result.get("data") or []
        if not data or "embedding" not in data[0]:
            raise InvalidResponseError("embedding response without data")

        vector = [float(x) for x in data[0]["embedding"]]
        logger.debug(f"[embed] model={payload['model']} dims={len(vector)}")
        return Embedding(vector=vector, dimensions=len(vector))
