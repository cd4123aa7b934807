"""Discriminated operation results returned by every adapter.

A result is either a success (``ok=True``, payload fields meaningful) or a
failure (``ok=False``, ``error`` non-empty, ``kind`` set). ``to_dict()``
renders the wire shape used by UI collaborators.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, TypeVar

from companion.core.errors import CompanionError, ErrorKind

R = TypeVar("R", bound="OperationResult")

GENERIC_ERROR = "Unknown error"


@dataclass
class OperationResult:
    ok: bool = True
    error: str | None = None
    kind: ErrorKind | None = None

    def __post_init__(self) -> None:
        if self.ok:
            self.error = None
            self.kind = None
        else:
            self.error = (self.error or "").strip() or GENERIC_ERROR
            self.kind = self.kind or ErrorKind.TRANSPORT_FAILURE

    @classmethod
    def failure(cls: type[R], error: str, kind: ErrorKind | None = None) -> R:
        return cls(ok=False, error=error, kind=kind)

    @classmethod
    def from_error(cls: type[R], exc: CompanionError) -> R:
        return cls.failure(exc.message, exc.kind)

    def _payload(self) -> dict[str, Any]:
        return {}

    def to_dict(self) -> dict[str, Any]:
        if not self.ok:
            return {"ok": False, "error": self.error}
        return {"ok": True, **self._payload()}


@dataclass
class HealthResult(OperationResult):
    server_identity: Any = None

    def _payload(self) -> dict[str, Any]:
        return {"clawdbot": self.server_identity}

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        # The backend may answer with a non-"ok" status but still identify itself
        if not self.ok and self.server_identity is not None:
            data["clawdbot"] = self.server_identity
        return data


@dataclass
class ChatResult(OperationResult):
    response: str = ""
    session_id: str | None = None
    latency_ms: int = 0

    def _payload(self) -> dict[str, Any]:
        return {
            "response": self.response,
            "sessionId": self.session_id,
            "latencyMs": self.latency_ms,
        }


@dataclass
class TranscriptionResult(OperationResult):
    text: str = ""

    def _payload(self) -> dict[str, Any]:
        return {"text": self.text}


@dataclass
class SpeechResult(OperationResult):
    audio: bytes | None = None
    latency_ms: int = 0
    provider: str = ""

    def _payload(self) -> dict[str, Any]:
        return {"audioBlob": self.audio, "latencyMs": self.latency_ms, "provider": self.provider}


@dataclass
class VoiceSessionResult(OperationResult):
    transcription: str = ""
    response: str = ""
    audio: bytes | None = None
    latency_ms: int = 0
    timings: dict[str, Any] = field(default_factory=dict)

    def _payload(self) -> dict[str, Any]:
        return {
            "transcription": self.transcription,
            "response": self.response,
            "audioBlob": self.audio,
            "latencyMs": self.latency_ms,
            "timings": dict(self.timings),
        }


@dataclass
class ResetResult(OperationResult):
    pass
