"""Provider protocols shared by the speech adapters and the voice pipeline."""

from __future__ import annotations

from typing import Callable, Optional, Protocol, Union, runtime_checkable

from companion.core.logging import get_logger
from companion.core.results import SpeechResult, TranscriptionResult

_log = get_logger("media.types")

# Receives a stage tag such as "transcribing" or "connecting"
ProgressCallback = Callable[[str], None]

# bytes, a filesystem path, a file:// URI or an http(s):// URL
AudioSource = Union[bytes, bytearray, str]


def notify_progress(on_progress: Optional[ProgressCallback], stage: str) -> None:
    """Invoke a progress callback; a failing callback is logged, not raised."""
    if on_progress is None:
        return
    try:
        on_progress(stage)
    except Exception as e:
        _log.warning("Progress callback failed", stage=stage, error=str(e)[:100])


@runtime_checkable
class SpeechToTextProvider(Protocol):
    """Protocol for STT adapters (Deepgram, ...)."""

    name: str

    def is_configured(self) -> bool: ...

    async def speech_to_text(self, audio: AudioSource) -> TranscriptionResult: ...


@runtime_checkable
class TextToSpeechProvider(Protocol):
    """Protocol for TTS adapters (Cartesia, ElevenLabs, ...)."""

    name: str

    def is_configured(self) -> bool: ...

    async def synthesize(
        self, text: str, on_progress: Optional[ProgressCallback] = None
    ) -> SpeechResult: ...
