"""Typewriter-style reveal of an already-complete reply."""

import asyncio
from typing import Callable, Optional

from companion.core.cancellation import CancelToken
from companion.core.logging import get_logger

_log = get_logger("core.text_streamer")

SENTENCE_END = frozenset(".!?")

CharCallback = Callable[[str, str], None]


def char_pause_ms(char: str, char_delay: float, word_delay: float, sentence_delay: float) -> float:
    """Pause after emitting ``char``, in milliseconds."""
    if char == " ":
        return word_delay
    if char in SENTENCE_END:
        return sentence_delay
    return char_delay


async def stream_text(
    full_text: str,
    on_char: CharCallback,
    char_delay: float = 15,
    word_delay: float = 30,
    sentence_delay: float = 80,
    cancel_token: Optional[CancelToken] = None,
) -> str:
    """Reveal ``full_text`` one character at a time.

    Calls ``on_char(char, accumulated)`` for each character, then waits
    ``word_delay`` ms after a space, ``sentence_delay`` ms after ``.``, ``!``
    or ``?`` and ``char_delay`` ms otherwise.

    Args:
        full_text: Text to reveal
        on_char: Receives the new character and the text revealed so far
        char_delay: Pause after ordinary characters (ms)
        word_delay: Pause after spaces (ms)
        sentence_delay: Pause after sentence terminators (ms)
        cancel_token: Stops the reveal early when cancelled

    Returns:
        The full text, or the part revealed before cancellation

    Raises:
        ValueError: If any delay is negative
    """
    for label, value in (("char_delay", char_delay), ("word_delay", word_delay), ("sentence_delay", sentence_delay)):
        if value < 0:
            raise ValueError(f"{label} must be >= 0, got {value}")

    accumulated = ""
    for char in full_text:
        if cancel_token is not None and cancel_token.cancelled:
            break

        accumulated += char
        try:
            on_char(char, accumulated)
        except Exception as e:
            _log.warning("Char callback failed", error=str(e)[:100])

        pause = char_pause_ms(char, char_delay, word_delay, sentence_delay) / 1000
        if cancel_token is not None:
            if await cancel_token.sleep(pause):
                break
        else:
            await asyncio.sleep(pause)

    if len(accumulated) < len(full_text):
        _log.debug("Text stream cancelled", shown=len(accumulated), total=len(full_text))
    return accumulated
