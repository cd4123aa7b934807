import os
from dataclasses import dataclass, fields
from typing import Any, Mapping, Optional

from dotenv import load_dotenv

from companion.core.logging import get_logger

_log = get_logger("config")

DEFAULT_SESSION_ID = "mobile-main"
DEFAULT_ELEVENLABS_VOICE_ID = "k9294w367tNmQIywtFJI"
DEFAULT_CARTESIA_VOICE_ID = "5ae6768d-7263-4c26-8d3a-a22976c534df"

# =============================================================================
# Provider endpoints
# =============================================================================
DEEPGRAM_LISTEN_URL = "https://api.deepgram.com/v1/listen"
ELEVENLABS_TTS_URL = "https://api.elevenlabs.io/v1/text-to-speech"
CARTESIA_TTS_URL = "https://api.cartesia.ai/tts/bytes"

# =============================================================================
# Timeouts (seconds)
# =============================================================================
TIMEOUT_HEALTH = 5.0
TIMEOUT_CHAT = 60.0
TIMEOUT_STT = 30.0
TIMEOUT_TTS = 30.0
TIMEOUT_HTTP_CONNECT = 5.0

# camelCase names used by UI collaborators and the chat backend
WIRE_NAMES = {
    "serverUrl": "server_url",
    "authToken": "auth_token",
    "sessionId": "session_id",
    "deepgramApiKey": "deepgram_api_key",
    "elevenLabsApiKey": "elevenlabs_api_key",
    "elevenLabsVoiceId": "elevenlabs_voice_id",
    "cartesiaApiKey": "cartesia_api_key",
    "cartesiaVoiceId": "cartesia_voice_id",
}


def _get_float_env(name: str, default: float) -> float:
    """Get float value from environment variable.

    Args:
        name: Environment variable name
        default: Default value if not set or invalid

    Returns:
        Float value from env or default
    """
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError:
        _log.warning("Invalid float env", env=name, value=raw)
        return default


@dataclass
class ServiceConfig:
    """Connection settings and provider credentials shared by all adapters.

    One instance is built at application start and handed to every adapter.
    Adapters read it on each call, so ``configure()`` applies to the next call.
    """

    server_url: str = ""
    auth_token: str = ""
    session_id: str = DEFAULT_SESSION_ID

    deepgram_api_key: str = ""
    stt_model: str = "nova-2"
    stt_language: str = "es"

    elevenlabs_api_key: str = ""
    elevenlabs_voice_id: str = DEFAULT_ELEVENLABS_VOICE_ID
    elevenlabs_model_id: str = "eleven_monolingual_v1"
    elevenlabs_stability: float = 0.5
    elevenlabs_similarity_boost: float = 0.75

    cartesia_api_key: str = ""
    cartesia_voice_id: str = DEFAULT_CARTESIA_VOICE_ID
    cartesia_model_id: str = "sonic-turbo"
    cartesia_version: str = "2025-04-16"

    health_timeout: float = TIMEOUT_HEALTH
    chat_timeout: float = TIMEOUT_CHAT
    stt_timeout: float = TIMEOUT_STT
    tts_timeout: float = TIMEOUT_TTS

    def __post_init__(self) -> None:
        self.server_url = self.server_url.rstrip("/")

    def configure(self, partial: Optional[Mapping[str, Any]] = None, **overrides: Any) -> "ServiceConfig":
        """Merge new values into this configuration.

        Accepts python field names or camelCase wire names. Only truthy
        values overwrite; missing or falsy ones keep the current value.

        Raises:
            ValueError: If a key does not name a configuration field
        """
        incoming = dict(partial or {})
        incoming.update(overrides)

        valid = {f.name for f in fields(self)}
        updated = []
        for key, value in incoming.items():
            name = WIRE_NAMES.get(key, key)
            if name not in valid:
                raise ValueError(f"Unknown configuration field: {key}")
            if not value:
                continue
            if name == "server_url":
                value = str(value).rstrip("/")
            setattr(self, name, value)
            updated.append(name)

        if updated:
            _log.info("config updated", fields=updated)
        return self

    def snapshot(self) -> dict[str, Any]:
        """Return the UI-facing view of the configuration, without secrets."""
        return {
            "serverUrl": self.server_url,
            "sessionId": self.session_id,
            "hasAuthToken": bool(self.auth_token),
            "hasDeepgramKey": bool(self.deepgram_api_key),
            "hasElevenLabsKey": bool(self.elevenlabs_api_key),
            "hasCartesiaKey": bool(self.cartesia_api_key),
            "elevenLabsVoiceId": self.elevenlabs_voice_id,
            "cartesiaVoiceId": self.cartesia_voice_id,
        }

    @classmethod
    def from_env(cls, dotenv: bool = True) -> "ServiceConfig":
        """Build a configuration from ``COMPANION_*`` and provider env vars."""
        if dotenv:
            load_dotenv()

        config = cls(
            health_timeout=_get_float_env("COMPANION_HEALTH_TIMEOUT", TIMEOUT_HEALTH),
            chat_timeout=_get_float_env("COMPANION_CHAT_TIMEOUT", TIMEOUT_CHAT),
            stt_timeout=_get_float_env("COMPANION_STT_TIMEOUT", TIMEOUT_STT),
            tts_timeout=_get_float_env("COMPANION_TTS_TIMEOUT", TIMEOUT_TTS),
        )
        config.configure(
            server_url=os.getenv("COMPANION_SERVER_URL", ""),
            auth_token=os.getenv("COMPANION_AUTH_TOKEN", ""),
            session_id=os.getenv("COMPANION_SESSION_ID", ""),
            deepgram_api_key=os.getenv("DEEPGRAM_API_KEY", ""),
            stt_model=os.getenv("DEEPGRAM_MODEL", ""),
            stt_language=os.getenv("DEEPGRAM_LANGUAGE", ""),
            elevenlabs_api_key=os.getenv("ELEVENLABS_API_KEY", ""),
            elevenlabs_voice_id=os.getenv("ELEVENLABS_VOICE_ID", ""),
            cartesia_api_key=os.getenv("CARTESIA_API_KEY", ""),
            cartesia_voice_id=os.getenv("CARTESIA_VOICE_ID", ""),
        )
        return config
