"""
Structured error types for the companion service layer.

Adapters raise these internally and convert them into failure results at
their public boundary, so callers only ever see ``OperationResult`` objects.
"""

import time
from enum import Enum
from typing import Any


class ErrorKind(str, Enum):
    """Failure taxonomy exposed on failure results."""

    NOT_CONFIGURED = "not_configured"
    INVALID_INPUT = "invalid_input"
    TRANSPORT_FAILURE = "transport_failure"
    TIMEOUT = "timeout"
    PROVIDER_ERROR = "provider_error"
    NO_SPEECH_DETECTED = "no_speech_detected"
    CANCELLED = "cancelled"


# Kinds that are safe to retry without user action
RETRYABLE_KINDS = {
    ErrorKind.TRANSPORT_FAILURE,
    ErrorKind.TIMEOUT,
}


class CompanionError(Exception):
    """Base for all typed service errors."""

    kind: ErrorKind = ErrorKind.TRANSPORT_FAILURE

    def __init__(self, message: str, *, code: str = "") -> None:
        super().__init__(message)
        self.message = message or self.kind.value.replace("_", " ")
        self.code = code or self.kind.value.upper()
        self.timestamp = time.time()

    @property
    def is_retryable(self) -> bool:
        return self.kind in RETRYABLE_KINDS

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "code": self.code,
            "message": self.message,
            "is_retryable": self.is_retryable,
            "timestamp": self.timestamp,
        }


class NotConfiguredError(CompanionError):
    kind = ErrorKind.NOT_CONFIGURED


class InvalidInputError(CompanionError):
    kind = ErrorKind.INVALID_INPUT

    def __init__(self, message: str, *, field: str | None = None, **kw: Any) -> None:
        super().__init__(message, **kw)
        self.field = field


class TransportFailure(CompanionError):
    kind = ErrorKind.TRANSPORT_FAILURE


class TimeoutFailure(CompanionError):
    kind = ErrorKind.TIMEOUT

    def __init__(self, message: str, *, timeout_s: float | None = None, **kw: Any) -> None:
        super().__init__(message, **kw)
        self.timeout_s = timeout_s


class ProviderError(CompanionError):
    kind = ErrorKind.PROVIDER_ERROR

    def __init__(
        self,
        message: str,
        *,
        provider: str,
        status: int | None = None,
        detail: str = "",
        **kw: Any,
    ) -> None:
        super().__init__(message, **kw)
        self.provider = provider
        self.status = status
        self.detail = detail

    @property
    def is_retryable(self) -> bool:
        return self.status is not None and (self.status == 429 or self.status >= 500)

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data.update({"provider": self.provider, "status": self.status})
        return data


class NoSpeechDetectedError(CompanionError):
    kind = ErrorKind.NO_SPEECH_DETECTED

    def __init__(self, message: str = "No speech detected", **kw: Any) -> None:
        super().__init__(message, **kw)


class OperationCancelled(CompanionError):
    kind = ErrorKind.CANCELLED
