"""Cartesia text-to-speech adapter with connection progress reporting."""

import time
from typing import Optional

from companion.config import CARTESIA_TTS_URL, ServiceConfig
from companion.core.errors import CompanionError, NotConfiguredError
from companion.core.logging import get_logger
from companion.core.pipeline.stages import SynthesisStage
from companion.core.results import SpeechResult
from companion.core.transport import HttpTransport, raise_for_provider_status
from companion.media.tts_utils import require_text
from companion.media.types import ProgressCallback, notify_progress

_log = get_logger("media.cartesia")

OUTPUT_FORMAT = {
    "container": "mp3",
    "encoding": "mp3",
    "sample_rate": 44100,
}


class CartesiaTTS:
    """Synthesizes speech through Cartesia's ``/tts/bytes`` endpoint.

    Progress tags, each at most once and in this order:
    ``connecting`` before the request, ``receiving`` once response headers
    arrive, ``complete`` after the whole audio body has been read.
    """

    name = "cartesia"

    def __init__(self, config: ServiceConfig, transport: HttpTransport) -> None:
        self.config = config
        self.transport = transport

    def is_configured(self) -> bool:
        return bool(self.config.cartesia_api_key)

    async def synthesize(
        self, text: str, on_progress: Optional[ProgressCallback] = None
    ) -> SpeechResult:
        try:
            return await self._synthesize(text, on_progress)
        except CompanionError as e:
            _log.error("tts failed", provider=self.name, error=e.message[:100])
            return SpeechResult.from_error(e)

    async def _synthesize(
        self, text: str, on_progress: Optional[ProgressCallback]
    ) -> SpeechResult:
        config = self.config
        if not config.cartesia_api_key:
            raise NotConfiguredError("Cartesia API key not configured")
        require_text(text)

        headers = {
            "Cartesia-Version": config.cartesia_version,
            "X-API-Key": config.cartesia_api_key,
        }
        payload = {
            "model_id": config.cartesia_model_id,
            "transcript": text,
            "voice": {
                "mode": "id",
                "id": config.cartesia_voice_id,
            },
            "output_format": dict(OUTPUT_FORMAT),
        }

        _log.info("tts start", provider=self.name, model=config.cartesia_model_id, text_len=len(text))
        notify_progress(on_progress, SynthesisStage.CONNECTING.value)
        start_time = time.perf_counter()

        async with self.transport.stream(
            "POST",
            CARTESIA_TTS_URL,
            provider=self.name,
            timeout=config.tts_timeout,
            headers=headers,
            json=payload,
        ) as response:
            notify_progress(on_progress, SynthesisStage.RECEIVING.value)
            latency_ms = int((time.perf_counter() - start_time) * 1000)
            _log.debug("tts headers recv", provider=self.name, status=response.status_code, dur_ms=latency_ms)
            audio = await response.aread()

        raise_for_provider_status(response, self.name, "Cartesia error")

        notify_progress(on_progress, SynthesisStage.COMPLETE.value)
        _log.info("tts done", provider=self.name, dur_ms=latency_ms, bytes=len(audio))
        return SpeechResult(audio=audio, latency_ms=latency_ms, provider=self.name)
