"""Playback events decoupled from the voice pipeline.

The pipeline never plays audio itself. When a voice turn produces audio it
emits ``audio_ready``; whatever owns the speaker subscribes and plays it.
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List
import time

from companion.core.logging import get_logger

_log = get_logger("core.events")

AUDIO_READY = "audio_ready"
TURN_FAILED = "turn_failed"

Listener = Callable[[Any], None]


@dataclass
class AudioReady:
    """Synthesized reply ready for playback."""

    audio: bytes
    text: str
    provider: str
    session_id: str | None = None
    created_at: float = field(default_factory=time.time)


class PlaybackEvents:
    """Minimal synchronous event emitter keyed by event name."""

    def __init__(self) -> None:
        self._listeners: Dict[str, List[Listener]] = {}

    def subscribe(self, event: str, listener: Listener) -> Callable[[], None]:
        """Register ``listener``; returns a callable that unsubscribes it."""
        self._listeners.setdefault(event, []).append(listener)

        def _unsubscribe() -> None:
            self.unsubscribe(event, listener)

        return _unsubscribe

    def unsubscribe(self, event: str, listener: Listener) -> None:
        listeners = self._listeners.get(event, [])
        if listener in listeners:
            listeners.remove(listener)

    def listener_count(self, event: str) -> int:
        return len(self._listeners.get(event, []))

    def emit(self, event: str, payload: Any) -> int:
        """Deliver ``payload`` to every listener; returns how many succeeded.

        A failing listener is logged and does not stop the others.
        """
        delivered = 0
        for listener in list(self._listeners.get(event, [])):
            try:
                listener(payload)
                delivered += 1
            except Exception as e:
                _log.warning("Listener failed", event=event, error=str(e)[:100])
        return delivered
