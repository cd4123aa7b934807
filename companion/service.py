"""
CompanionService: single entry point used by UI collaborators.

Owns one ``ServiceConfig`` and one pooled ``HttpTransport`` and wires them
into the chat, speech and voice-pipeline adapters. Every public coroutine
returns a result object instead of raising.
"""

from typing import Any, Mapping, Optional, Union

from companion.config import ServiceConfig
from companion.core.cancellation import CancelToken, Deadline
from companion.core.events import PlaybackEvents
from companion.core.health import health_check
from companion.core.logging import get_logger, logged
from companion.core.pipeline.voice_pipeline import VoicePipeline
from companion.core.results import (
    ChatResult,
    HealthResult,
    ResetResult,
    SpeechResult,
    TranscriptionResult,
    VoiceSessionResult,
)
from companion.core.text_streamer import CharCallback, stream_text
from companion.core.transport import HttpTransport
from companion.llm.chat_client import ChatClient, ChunkCallback
from companion.media.cartesia_tts import CartesiaTTS
from companion.media.elevenlabs_tts import ElevenLabsTTS
from companion.media.transcribe import DeepgramTranscriber
from companion.media.types import AudioSource, ProgressCallback

_log = get_logger("service")


class CompanionService:
    """Facade over the backend chat, Deepgram, ElevenLabs and Cartesia.

    Usage:
        async with CompanionService.from_env() as service:
            health = await service.health_check()
            reply = await service.chat("hola")
    """

    def __init__(
        self,
        config: Optional[ServiceConfig] = None,
        transport: Optional[HttpTransport] = None,
        events: Optional[PlaybackEvents] = None,
    ) -> None:
        self.config = config or ServiceConfig()
        self.transport = transport or HttpTransport()
        self.events = events or PlaybackEvents()

        self.chat_client = ChatClient(self.config, self.transport)
        self.transcriber = DeepgramTranscriber(self.config, self.transport)
        self.elevenlabs = ElevenLabsTTS(self.config, self.transport)
        self.cartesia = CartesiaTTS(self.config, self.transport)
        # Cartesia first: lower latency and reports connection progress
        self.pipeline = VoicePipeline(
            self.transcriber,
            self.chat_client,
            [self.cartesia, self.elevenlabs],
            self.events,
        )

    @classmethod
    def from_env(cls, dotenv: bool = True) -> "CompanionService":
        return cls(ServiceConfig.from_env(dotenv=dotenv))

    async def aclose(self) -> None:
        await self.transport.aclose()

    async def __aenter__(self) -> "CompanionService":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    def configure(self, partial: Optional[Mapping[str, Any]] = None, **overrides: Any) -> ServiceConfig:
        """Merge settings; only truthy values overwrite. See ``ServiceConfig.configure``."""
        return self.config.configure(partial, **overrides)

    def get_config(self) -> dict[str, Any]:
        return self.config.snapshot()

    @logged()
    async def health_check(self) -> HealthResult:
        return await health_check(self.config, self.transport)

    async def chat(
        self,
        message: str,
        session_id: Optional[str] = None,
        on_chunk: Optional[ChunkCallback] = None,
    ) -> ChatResult:
        return await self.chat_client.chat(message, session_id, on_chunk)

    async def chat_with_file(
        self,
        message: Optional[str],
        file_uri: str,
        file_name: str,
        file_type: Optional[str] = None,
        on_chunk: Optional[ChunkCallback] = None,
    ) -> ChatResult:
        return await self.chat_client.chat_with_file(message, file_uri, file_name, file_type, on_chunk)

    async def speech_to_text(self, audio: AudioSource) -> TranscriptionResult:
        return await self.transcriber.speech_to_text(audio)

    async def text_to_speech(self, text: str) -> SpeechResult:
        """Synthesize with ElevenLabs."""
        return await self.elevenlabs.synthesize(text)

    async def text_to_speech_cartesia(
        self, text: str, on_progress: Optional[ProgressCallback] = None
    ) -> SpeechResult:
        """Synthesize with Cartesia, reporting connecting/receiving/complete."""
        return await self.cartesia.synthesize(text, on_progress)

    async def process_voice(
        self,
        audio: AudioSource,
        session_id: Optional[str] = None,
        on_progress: Optional[ProgressCallback] = None,
        cancel_token: Optional[CancelToken] = None,
        deadline: Union[Deadline, float, None] = None,
    ) -> VoiceSessionResult:
        return await self.pipeline.run(audio, session_id, on_progress, cancel_token, deadline)

    async def reset_session(self, session_id: Optional[str] = None) -> ResetResult:
        return await self.chat_client.reset_session(session_id)

    async def stream_text(
        self,
        full_text: str,
        on_char: CharCallback,
        char_delay: float = 15,
        word_delay: float = 30,
        sentence_delay: float = 80,
        cancel_token: Optional[CancelToken] = None,
    ) -> str:
        return await stream_text(full_text, on_char, char_delay, word_delay, sentence_delay, cancel_token)
