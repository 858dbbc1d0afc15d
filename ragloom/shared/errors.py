"""Error taxonomy shared by every pipeline stage and collaborator.

Collaborators (embedder, LLM, vector store, graph store, scorer) signal
failure by raising a subclass of RAGError. Pipeline stages decide per
component whether that failure degrades (reranker), is terminal for the
request (grounding loop), or propagates to the caller (strategies).

The `kind` attribute gives a stable, machine-readable tag for each
category so callers can branch without isinstance chains.
"""

from typing import Optional


class RAGError(Exception):
    """Base exception for all orchestration and collaborator failures."""

    kind = "rag_error"


class AdapterUnavailableError(RAGError):
    """Raised when a strategy needs a collaborator that was not supplied."""

    kind = "adapter_unavailable"

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Adapter unavailable: {name}")


class DimensionMismatchError(RAGError):
    """Raised when a query vector does not match the index dimensionality."""

    kind = "dimension_mismatch"

    def __init__(self, expected: int, actual: int):
        self.expected = expected
        self.actual = actual
        super().__init__(f"Dimension mismatch: expected {expected}, got {actual}")


class CollaboratorTimeoutError(RAGError):
    """Raised when a collaborator call exceeds its deadline."""

    kind = "timeout"

    def __init__(self, operation: str = "collaborator", seconds: Optional[float] = None):
        self.operation = operation
        self.seconds = seconds
        detail = f" after {seconds:.1f}s" if seconds is not None else ""
        super().__init__(f"Timeout in {operation}{detail}")


class LLMFailureError(RAGError):
    """Raised when an LLM call fails (transport, rate limit, empty response)."""

    kind = "llm_failure"

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"LLM failure: {reason}")


class InvalidResponseError(RAGError):
    """Raised when a collaborator returns data that cannot be interpreted."""

    kind = "invalid_response"

    def __init__(self, detail: str):
        self.detail = detail
        super().__init__(f"Invalid response: {detail}")


class NotConfiguredError(RAGError):
    """Raised when a required configuration key is missing."""

    kind = "not_configured"

    def __init__(self, key: str):
        self.key = key
        super().__init__(f"Not configured: {key}")
