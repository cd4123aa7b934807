"""Shared TTS helpers: input checks, text cleanup and provider selection."""

import re
from typing import Optional, Sequence

from companion.core.errors import InvalidInputError
from companion.core.logging import get_logger
from companion.media.types import TextToSpeechProvider

_log = get_logger("media.tts_utils")


def require_text(text: Optional[str]) -> str:
    """Return ``text`` unchanged.

    Raises:
        InvalidInputError: If text is empty or whitespace-only
    """
    if not text or not text.strip():
        raise InvalidInputError("Text cannot be empty", field="text")
    return text


def clean_text_for_tts(text: str) -> str:
    """Strip markdown and symbols a voice should not read out.

    Args:
        text: Raw assistant reply, possibly with markdown formatting

    Returns:
        Plain text suitable for synthesis
    """
    text = re.sub(r"```[\s\S]*?```", "", text)
    text = re.sub(r"\*\*(.+?)\*\*", r"\1", text)
    text = re.sub(r"\*(.+?)\*", r"\1", text)
    text = re.sub(r"`(.+?)`", r"\1", text)
    text = re.sub(r"#{1,6}\s*", "", text)
    text = re.sub(r"\[(.+?)\]\(.+?\)", r"\1", text)
    text = re.sub(r"[^\w\s,.!?¡¿;:'\"()~\-]", "", text)
    text = re.sub(r"\s+", " ", text).strip()
    return text


def select_tts_provider(
    providers: Sequence[TextToSpeechProvider],
) -> Optional[TextToSpeechProvider]:
    """First provider in priority order that has credentials, else None."""
    for provider in providers:
        if provider.is_configured():
            return provider
    _log.debug("No TTS provider configured", candidates=[p.name for p in providers])
    return None
