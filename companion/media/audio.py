"""Load recorded audio from wherever the UI left it."""

import asyncio
import mimetypes
import os
from pathlib import Path
from urllib.parse import unquote, urlparse

from companion.core.errors import InvalidInputError, ProviderError
from companion.core.logging import get_logger
from companion.core.transport import HttpTransport
from companion.media.types import AudioSource

_log = get_logger("media.audio")

DEFAULT_AUDIO_TYPE = "audio/wav"

_EXTRA_TYPES = {
    ".m4a": "audio/mp4",
    ".caf": "audio/x-caf",
    ".3gp": "audio/3gpp",
    ".webm": "audio/webm",
    ".ogg": "audio/ogg",
}


def guess_audio_type(locator: str) -> str:
    """Content type for an audio locator, ``audio/wav`` when unknown."""
    path = urlparse(locator).path if "://" in locator else locator
    ext = os.path.splitext(path)[1].lower()
    if ext in _EXTRA_TYPES:
        return _EXTRA_TYPES[ext]
    guessed, _ = mimetypes.guess_type(path)
    if guessed and guessed.startswith("audio/"):
        return guessed
    return DEFAULT_AUDIO_TYPE


def _local_path(locator: str) -> Path:
    if locator.startswith("file://"):
        return Path(unquote(urlparse(locator).path))
    return Path(locator).expanduser()


def _read_file(path: Path) -> bytes:
    with open(path, "rb") as f:
        return f.read()


async def load_audio(
    source: AudioSource,
    transport: HttpTransport,
    timeout: float,
) -> tuple[bytes, str]:
    """Return ``(audio_bytes, content_type)`` for ``source``.

    Raises:
        InvalidInputError: If the source is empty or the file is missing
        ProviderError: If a remote source answers with a non-2xx status
    """
    if isinstance(source, (bytes, bytearray)):
        if not source:
            raise InvalidInputError("Audio is empty", field="audio")
        return bytes(source), DEFAULT_AUDIO_TYPE

    locator = (source or "").strip()
    if not locator:
        raise InvalidInputError("Audio source not provided", field="audio")

    content_type = guess_audio_type(locator)

    if locator.startswith(("http://", "https://")):
        response = await transport.request("GET", locator, provider="audio", timeout=timeout)
        if not response.is_success:
            raise ProviderError(
                f"Audio download failed: {response.status_code}",
                provider="audio",
                status=response.status_code,
            )
        header_type = response.headers.get("content-type", "").split(";")[0].strip()
        if header_type.startswith("audio/"):
            content_type = header_type
        data = response.content
    else:
        path = _local_path(locator)
        try:
            data = await asyncio.to_thread(_read_file, path)
        except FileNotFoundError:
            _log.error("audio file not found", file_path=str(path))
            raise InvalidInputError(f"Audio file not found: {path}", field="audio")
        except OSError as e:
            _log.error("audio file read error", file_path=str(path), error=str(e))
            raise InvalidInputError(f"Audio file unreadable: {path}", field="audio") from e

    if not data:
        raise InvalidInputError("Audio is empty", field="audio")

    _log.debug("audio loaded", file_size_kb=round(len(data) / 1024, 2), format=content_type)
    return data, content_type
