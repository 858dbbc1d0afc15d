# Shared utilities for RAGloom

from .files import setup_logging
from .errors import (
    RAGError,
    AdapterUnavailableError,
    DimensionMismatchError,
    CollaboratorTimeoutError,
    LLMFailureError,
    InvalidResponseError,
    NotConfiguredError,
)
from .timeouts import call_with_timeout, start_call, wait_for
