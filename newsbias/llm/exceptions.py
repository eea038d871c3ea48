"""LLM-related exceptions."""

from enum import Enum
from typing import Any, Dict, Optional


class LLMError(Exception):
    """Base LLM error."""
    pass


class ProviderErrorType(str, Enum):
    """Failure categories a provider attempt can end in."""

    AUTHENTICATION = "authentication"
    RATE_LIMIT = "rate_limit"
    NETWORK = "network"
    INVALID_RESPONSE = "invalid_response"
    MODEL = "model"
    TIMEOUT = "timeout"
    CONFIGURATION = "configuration"
    UNKNOWN = "unknown"


RETRYABLE_ERROR_TYPES = frozenset({
    ProviderErrorType.RATE_LIMIT,
    ProviderErrorType.NETWORK,
    ProviderErrorType.TIMEOUT,
})


class ProviderError(LLMError):
    """Typed provider error.

    Callers branch on ``error_type``; the message is for humans only.
    """

    def __init__(
        self,
        error_type: ProviderErrorType,
        provider: str,
        message: str,
        status_code: Optional[int] = None,
        retry_after: Optional[float] = None,
        cause: Optional[BaseException] = None,
    ):
        self.error_type = error_type
        self.provider = provider
        self.message = message
        self.status_code = status_code
        self.retry_after = retry_after
        self.cause = cause
        super().__init__(f"[{provider}] {error_type.value}: {message}")

    @property
    def retryable(self) -> bool:
        """Whether another attempt against the same provider may succeed."""
        return self.error_type in RETRYABLE_ERROR_TYPES

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error_type": self.error_type.value,
            "provider": self.provider,
            "message": self.message,
            "status_code": self.status_code,
        }
