"""ElevenLabs text-to-speech adapter."""

import time
from typing import Optional

from companion.config import ELEVENLABS_TTS_URL, ServiceConfig
from companion.core.errors import CompanionError, NotConfiguredError
from companion.core.logging import get_logger
from companion.core.results import SpeechResult
from companion.core.transport import HttpTransport, raise_for_provider_status
from companion.media.tts_utils import require_text
from companion.media.types import ProgressCallback

_log = get_logger("media.elevenlabs")


class ElevenLabsTTS:
    """Synthesizes speech with a configured ElevenLabs voice.

    Does not report progress; ``on_progress`` is accepted for interface
    compatibility with other providers and ignored.
    """

    name = "elevenlabs"

    def __init__(self, config: ServiceConfig, transport: HttpTransport) -> None:
        self.config = config
        self.transport = transport

    def is_configured(self) -> bool:
        return bool(self.config.elevenlabs_api_key)

    async def synthesize(
        self, text: str, on_progress: Optional[ProgressCallback] = None
    ) -> SpeechResult:
        try:
            return await self._synthesize(text)
        except CompanionError as e:
            _log.error("tts failed", provider=self.name, error=e.message[:100])
            return SpeechResult.from_error(e)

    async def _synthesize(self, text: str) -> SpeechResult:
        config = self.config
        if not config.elevenlabs_api_key:
            raise NotConfiguredError("ElevenLabs API key not configured")
        require_text(text)

        url = f"{ELEVENLABS_TTS_URL}/{config.elevenlabs_voice_id}"
        headers = {
            "xi-api-key": config.elevenlabs_api_key,
            "Accept": "audio/mpeg",
        }
        payload = {
            "text": text,
            "model_id": config.elevenlabs_model_id,
            "voice_settings": {
                "stability": config.elevenlabs_stability,
                "similarity_boost": config.elevenlabs_similarity_boost,
            },
        }

        _log.info("tts start", provider=self.name, text_len=len(text))
        start_time = time.perf_counter()
        response = await self.transport.request(
            "POST",
            url,
            provider=self.name,
            timeout=config.tts_timeout,
            headers=headers,
            json=payload,
        )
        latency_ms = int((time.perf_counter() - start_time) * 1000)
        raise_for_provider_status(response, self.name, "ElevenLabs error")

        audio = response.content
        _log.info("tts done", provider=self.name, dur_ms=latency_ms, bytes=len(audio))
        return SpeechResult(audio=audio, latency_ms=latency_ms, provider=self.name)
