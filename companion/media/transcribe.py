import time
from typing import Any

from companion.config import DEEPGRAM_LISTEN_URL, ServiceConfig
from companion.core.errors import CompanionError, NotConfiguredError, ProviderError
from companion.core.logging import get_logger
from companion.core.results import TranscriptionResult
from companion.core.transport import HttpTransport, raise_for_provider_status
from companion.media.audio import load_audio
from companion.media.types import AudioSource

_log = get_logger("media.transcribe")


def extract_transcript(payload: Any) -> str:
    """Pull ``results.channels[0].alternatives[0].transcript``; ``""`` if absent."""
    if not isinstance(payload, dict):
        return ""
    results = payload.get("results")
    if not isinstance(results, dict):
        return ""
    channels = results.get("channels")
    if not isinstance(channels, list) or not channels or not isinstance(channels[0], dict):
        return ""
    alternatives = channels[0].get("alternatives")
    if not isinstance(alternatives, list) or not alternatives or not isinstance(alternatives[0], dict):
        return ""
    transcript = alternatives[0].get("transcript")
    return transcript if isinstance(transcript, str) else ""


class DeepgramTranscriber:
    """Speech-to-text through Deepgram's pre-recorded ``/v1/listen`` API."""

    name = "deepgram"

    def __init__(self, config: ServiceConfig, transport: HttpTransport) -> None:
        self.config = config
        self.transport = transport

    def is_configured(self) -> bool:
        return bool(self.config.deepgram_api_key)

    async def speech_to_text(self, audio: AudioSource) -> TranscriptionResult:
        """Transcribe recorded audio. Never raises; failures become results."""
        try:
            text = await self._transcribe(audio)
        except CompanionError as e:
            _log.error("stt failed", provider=self.name, error=e.message[:100])
            return TranscriptionResult.from_error(e)
        return TranscriptionResult(text=text)

    async def _transcribe(self, audio: AudioSource) -> str:
        config = self.config
        if not config.deepgram_api_key:
            raise NotConfiguredError("Deepgram API key not configured")

        audio_data, content_type = await load_audio(audio, self.transport, config.stt_timeout)

        size_kb = len(audio_data) / 1024
        _log.info("stt start", file_size_kb=round(size_kb, 2), format=content_type, provider=self.name)

        params = {
            "model": config.stt_model,
            "language": config.stt_language,
        }
        headers = {
            "Authorization": f"Token {config.deepgram_api_key}",
            "Content-Type": content_type,
        }

        start_time = time.perf_counter()
        _log.debug("stt api call", provider=self.name, model=config.stt_model)

        response = await self.transport.request(
            "POST",
            DEEPGRAM_LISTEN_URL,
            provider=self.name,
            timeout=config.stt_timeout,
            params=params,
            headers=headers,
            content=audio_data,
        )
        dur_ms = int((time.perf_counter() - start_time) * 1000)
        raise_for_provider_status(response, self.name, "Deepgram error")

        try:
            payload = response.json()
        except ValueError:
            raise ProviderError(
                "Deepgram returned an invalid response", provider=self.name, status=response.status_code
            )

        transcript = extract_transcript(payload)
        _log.info("stt done", dur_ms=dur_ms, text_len=len(transcript))
        return transcript
