"""Unified OpenRouter API client.

## RAG Theory: Centralized LLM Communication

Every LLM call made by the engine (query rewriting, grounding evaluation,
entity extraction, relevance scoring) goes through this module so that
retry logic, error mapping and request logging live in one place.

## Library Usage

Uses `requests` for HTTP calls with exponential backoff on:
- Rate limits (429) from OpenRouter
- Temporary server errors (5xx)
- Network transients (requests.RequestException)

Structured outputs use OpenRouter's json_object response format plus
Pydantic validation, with `json_repair` as a fallback for malformed JSON.

## Error Mapping

- Missing API key           -> NotConfiguredError
- Exhausted 429 retries     -> RateLimitError (an LLMFailureError)
- Non-retryable HTTP errors -> APIError (an LLMFailureError)
- requests timeout          -> CollaboratorTimeoutError
- Unparseable JSON          -> InvalidResponseError
"""

import time
from typing import Any, Optional, Type, TypeVar

import requests
from json_repair import repair_json
from pydantic import BaseModel, ValidationError as PydanticValidationError

from ragloom.config import (
    BACKOFF_BASE,
    MAX_RETRIES,
    OPENROUTER_API_KEY,
    OPENROUTER_BASE_URL,
)
from ragloom.shared.errors import (
    CollaboratorTimeoutError,
    InvalidResponseError,
    LLMFailureError,
    NotConfiguredError,
)
from ragloom.shared.files import setup_logging

logger = setup_logging(__name__)

T = TypeVar("T", bound=BaseModel)


class OpenRouterError(LLMFailureError):
    """Base exception for OpenRouter API errors."""
    pass


class RateLimitError(OpenRouterError):
    """Raised when rate limit is exceeded after all retries."""
    pass


class APIError(OpenRouterError):
    """Raised when API returns an error response."""
    pass


def _headers() -> dict[str, str]:
    if not OPENROUTER_API_KEY:
        raise NotConfiguredError("OPENROUTER_API_KEY")
    return {
        "Authorization": f"Bearer {OPENROUTER_API_KEY}",
        "Content-Type": "application/json",
    }


def post_with_retries(
    path: str,
    payload: dict[str, Any],
    timeout: float = 60,
    max_retries: int = MAX_RETRIES,
    backoff_base: float = BACKOFF_BASE,
) -> dict[str, Any]:
    """POST a JSON payload to OpenRouter, retrying transient failures.

    Args:
        path: Endpoint path relative to OPENROUTER_BASE_URL (e.g. "/chat/completions").
        payload: JSON body.
        timeout: Per-request timeout in seconds.
        max_retries: Number of retries on 429/5xx/network errors.
        backoff_base: Backoff multiplier for retries.

    Returns:
        Decoded JSON response body.

    Raises:
        NotConfiguredError: If the API key is missing.
        RateLimitError: If rate limited after all retries.
        APIError: On non-retryable HTTP errors.
        CollaboratorTimeoutError: If the final attempt timed out.
        OpenRouterError: On other transport failures after all retries.
    """
    url = f"{OPENROUTER_BASE_URL}{path}"
    headers = _headers()

    for attempt in range(max_retries + 1):
        try:
            response = requests.post(url, json=payload, headers=headers, timeout=timeout)
        except requests.Timeout as exc:
            if attempt < max_retries:
                delay = backoff_base ** (attempt + 1)
                logger.warning(f"Request timed out, retry {attempt + 1}/{max_retries} in {delay:.1f}s")
                time.sleep(delay)
                continue
            raise CollaboratorTimeoutError(path, timeout) from exc
        except requests.RequestException as exc:
            if attempt < max_retries:
                delay = backoff_base ** (attempt + 1)
                logger.warning(
                    f"Request failed ({exc}), retry {attempt + 1}/{max_retries} in {delay:.1f}s"
                )
                time.sleep(delay)
                continue
            raise OpenRouterError(f"Request failed after {max_retries} retries: {exc}") from exc

        if response.status_code == 200:
            return response.json()

        if response.status_code >= 500 or response.status_code == 429:
            if attempt < max_retries:
                retry_after = response.headers.get("retry-after")
                try:
                    delay = float(retry_after) if retry_after else backoff_base ** (attempt + 1)
                except ValueError:
                    delay = backoff_base ** (attempt + 1)
                error_type = "Rate limit" if response.status_code == 429 else "Server error"
                logger.warning(
                    f"{error_type} ({response.status_code}), "
                    f"retry {attempt + 1}/{max_retries} after {delay:.1f}s"
                )
                time.sleep(delay)
                continue
            if response.status_code == 429:
                raise RateLimitError(f"Rate limited after {max_retries} retries")
            raise APIError(f"Server error {response.status_code} after {max_retries} retries")

        try:
            error_detail = response.json().get("error", {}).get("message", response.text)
        except (ValueError, KeyError, AttributeError):
            error_detail = response.text
        raise APIError(f"API error {response.status_code}: {error_detail}")

    raise OpenRouterError("Max retries exceeded")


def _extract_content(result: dict[str, Any]) -> str:
    # OpenRouter sometimes returns 200 with an error body and no choices
    if not result.get("choices"):
        error_msg = (result.get("error") or {}).get("message", str(result))
        raise APIError(f"Response without choices: {error_msg}")
    content = result["choices"][0]["message"].get("content")
    if content is None:
        raise InvalidResponseError("completion content is empty")
    return content


def call_chat_completion(
    messages: list[dict[str, str]],
    model: str,
    temperature: float = 0.3,
    max_tokens: int = 1024,
    top_p: Optional[float] = None,
    json_mode: bool = False,
    timeout: float = 60,
    max_retries: int = MAX_RETRIES,
) -> str:
    """Call OpenRouter chat completion API with retry logic.

    Args:
        messages: List of message dicts with 'role' and 'content' keys.
        model: OpenRouter model ID (e.g., "deepseek/deepseek-v3.2").
        temperature: Sampling temperature.
        max_tokens: Maximum tokens in response.
        top_p: Optional nucleus sampling threshold.
        json_mode: If True, request JSON response format.
        timeout: Request timeout in seconds.
        max_retries: Number of retries on failure.

    Returns:
        The assistant's response content as a string.

    Example:
        >>> call_chat_completion(
        ...     messages=[{"role": "user", "content": "What is 2+2?"}],
        ...     model="deepseek/deepseek-v3.2",
        ... )
        "4"
    """
    payload: dict[str, Any] = {
        "model": model,
        "messages": messages,
        "temperature": temperature,
        "max_tokens": max_tokens,
    }
    if top_p is not None:
        payload["top_p"] = top_p
    if json_mode:
        payload["response_format"] = {"type": "json_object"}

    result = post_with_retries("/chat/completions", payload, timeout=timeout, max_retries=max_retries)
    content = _extract_content(result)

    chars_in = sum(len(m.get("content", "")) for m in messages)
    logger.info(f"[LLM] model={model} chars_in={chars_in} chars_out={len(content)}")
    return content


def strip_code_fences(content: str) -> str:
    """Remove ```json ... ``` fences some models wrap around JSON output."""
    stripped = content.strip()
    if stripped.startswith("```"):
        first_newline = stripped.find("\n")
        stripped = stripped[first_newline + 1:] if first_newline != -1 else stripped[3:]
        if stripped.endswith("```"):
            stripped = stripped[:-3].rstrip()
    return stripped


def parse_structured(content: str, response_model: Type[T]) -> T:
    """Validate LLM text against a Pydantic model, repairing malformed JSON.

    Raises:
        InvalidResponseError: If the content cannot be parsed even after repair.
    """
    content = strip_code_fences(content)
    try:
        return response_model.model_validate_json(content)
    except PydanticValidationError:
        repaired = repair_json(content, return_objects=False)
        logger.warning(f"Repaired malformed JSON from LLM ({len(content)} -> {len(repaired)} chars)")
        try:
            return response_model.model_validate_json(repaired)
        except PydanticValidationError as exc:
            raise InvalidResponseError(
                f"{response_model.__name__} validation failed: {exc.error_count()} errors"
            ) from exc
