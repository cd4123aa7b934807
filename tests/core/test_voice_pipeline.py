"""Tests for companion.core.pipeline.voice_pipeline.VoicePipeline.

Covers:
- stage order and progress tags
- short-circuit on STT / empty transcript / chat failure
- non-fatal TTS failure and provider priority
- cancellation, deadlines and playback events
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from companion.config import ServiceConfig
from companion.core.cancellation import CancelToken
from companion.core.errors import ErrorKind
from companion.core.events import AUDIO_READY, TURN_FAILED, AudioReady, PlaybackEvents
from companion.core.logging import get_request_id
from companion.core.pipeline.voice_pipeline import NO_TTS_PROVIDER, VoicePipeline
from companion.core.results import ChatResult, SpeechResult, TranscriptionResult


def _stt(result: TranscriptionResult) -> MagicMock:
    stt = MagicMock()
    stt.name = "deepgram"
    stt.is_configured.return_value = True
    stt.speech_to_text = AsyncMock(return_value=result)
    return stt


def _chat(result: ChatResult) -> MagicMock:
    chat = MagicMock()
    chat.config = ServiceConfig()
    chat.chat = AsyncMock(return_value=result)
    return chat


def _tts(name: str, configured: bool = True, result: SpeechResult = None) -> MagicMock:
    tts = MagicMock()
    tts.name = name
    tts.is_configured.return_value = configured
    tts.synthesize = AsyncMock(
        return_value=result or SpeechResult(audio=f"{name}-audio".encode(), latency_ms=5, provider=name)
    )
    return tts


async def _hang(*args, **kwargs):
    await asyncio.sleep(10)


@pytest.fixture
def stt():
    return _stt(TranscriptionResult(text="hola"))


@pytest.fixture
def chat():
    return _chat(ChatResult(response="¡Hola! ¿Qué tal?", session_id="mobile-main", latency_ms=250))


@pytest.fixture
def cartesia():
    return _tts("cartesia")


@pytest.fixture
def elevenlabs():
    return _tts("elevenlabs")


@pytest.fixture
def events():
    return PlaybackEvents()


@pytest.fixture
def pipeline(stt, chat, cartesia, elevenlabs, events):
    return VoicePipeline(stt, chat, [cartesia, elevenlabs], events)


# ---------------------------------------------------------------------------
# Happy path
# ---------------------------------------------------------------------------


class TestSuccessfulTurn:

    async def test_full_turn(self, pipeline, stt, chat, cartesia):
        progress = []

        result = await pipeline.run(b"RIFF", session_id="s1", on_progress=progress.append)

        assert result.ok is True
        assert result.transcription == "hola"
        assert result.response == "¡Hola! ¿Qué tal?"
        assert result.audio == b"cartesia-audio"
        assert result.latency_ms == 250
        assert progress == ["transcribing", "thinking", "speaking"]
        stt.speech_to_text.assert_awaited_once_with(b"RIFF")
        chat.chat.assert_awaited_once_with("hola", "s1")

    async def test_timings_recorded(self, pipeline):
        result = await pipeline.run(b"RIFF")

        for key in ("stt_ms", "chat_ms", "tts_ms", "total_ms"):
            assert key in result.timings
        assert result.timings["tts_provider"] == "cartesia"
        assert "tts_error" not in result.timings

    async def test_progress_callback_passed_to_tts(self, pipeline, cartesia):
        progress = []

        await pipeline.run(b"RIFF", on_progress=progress.append)

        assert cartesia.synthesize.await_args.kwargs["on_progress"] == progress.append

    async def test_reply_cleaned_before_synthesis(self, stt, cartesia, events):
        chat = _chat(ChatResult(response="**Hola** `mundo`", latency_ms=1))
        pipeline = VoicePipeline(stt, chat, [cartesia], events)

        result = await pipeline.run(b"RIFF")

        assert cartesia.synthesize.await_args.args[0] == "Hola mundo"
        assert result.response == "**Hola** `mundo`"

    async def test_audio_ready_emitted(self, pipeline, events):
        received = []
        events.subscribe(AUDIO_READY, received.append)

        await pipeline.run(b"RIFF", session_id="s9")

        assert len(received) == 1
        payload = received[0]
        assert isinstance(payload, AudioReady)
        assert payload.audio == b"cartesia-audio"
        assert payload.provider == "cartesia"
        assert payload.session_id == "s9"

    async def test_failing_progress_callback_ignored(self, pipeline):
        def on_progress(stage):
            raise RuntimeError("ui crashed")

        result = await pipeline.run(b"RIFF", on_progress=on_progress)

        assert result.ok is True

    async def test_request_id_scoped_to_turn(self, pipeline, stt):
        seen = []

        async def capture(audio):
            seen.append(get_request_id())
            return TranscriptionResult(text="hola")

        stt.speech_to_text.side_effect = capture
        before = get_request_id()

        await pipeline.run(b"RIFF")

        assert seen[0] is not None
        assert len(seen[0]) == 8
        assert get_request_id() == before


# ---------------------------------------------------------------------------
# Short-circuiting failures
# ---------------------------------------------------------------------------


class TestFailedStages:

    async def test_stt_failure_skips_chat(self, chat, cartesia, events):
        stt = _stt(TranscriptionResult.failure("Deepgram error: 401 Invalid credentials", ErrorKind.PROVIDER_ERROR))
        pipeline = VoicePipeline(stt, chat, [cartesia], events)
        progress = []

        result = await pipeline.run(b"RIFF", on_progress=progress.append)

        assert result.ok is False
        assert result.error == "STT failed: Deepgram error: 401 Invalid credentials"
        assert result.kind == ErrorKind.PROVIDER_ERROR
        assert progress == ["transcribing"]
        chat.chat.assert_not_awaited()
        cartesia.synthesize.assert_not_awaited()

    @pytest.mark.parametrize("text", ["", "   "])
    async def test_empty_transcript(self, text, chat, cartesia, events):
        pipeline = VoicePipeline(_stt(TranscriptionResult(text=text)), chat, [cartesia], events)

        result = await pipeline.run(b"RIFF")

        assert result.ok is False
        assert result.error == "No speech detected"
        assert result.kind == ErrorKind.NO_SPEECH_DETECTED
        chat.chat.assert_not_awaited()

    async def test_chat_failure_skips_tts(self, stt, cartesia, elevenlabs, events):
        chat = _chat(ChatResult.failure("Server error (500)", ErrorKind.PROVIDER_ERROR))
        pipeline = VoicePipeline(stt, chat, [cartesia, elevenlabs], events)
        progress = []

        result = await pipeline.run(b"RIFF", on_progress=progress.append)

        assert result.ok is False
        assert result.error == "Chat failed: Server error (500)"
        assert progress == ["transcribing", "thinking"]
        cartesia.synthesize.assert_not_awaited()
        elevenlabs.synthesize.assert_not_awaited()

    async def test_turn_failed_emitted(self, chat, cartesia, events):
        stt = _stt(TranscriptionResult.failure("boom"))
        failures = []
        events.subscribe(TURN_FAILED, failures.append)

        result = await VoicePipeline(stt, chat, [cartesia], events).run(b"RIFF")

        assert failures == [result]


# ---------------------------------------------------------------------------
# Speech synthesis
# ---------------------------------------------------------------------------


class TestSynthesis:

    async def test_tts_failure_is_not_fatal(self, stt, chat, events):
        cartesia = _tts("cartesia", result=SpeechResult.failure("Cartesia error: 500", ErrorKind.PROVIDER_ERROR))
        pipeline = VoicePipeline(stt, chat, [cartesia], events)
        received = []
        events.subscribe(AUDIO_READY, received.append)

        result = await pipeline.run(b"RIFF")

        assert result.ok is True
        assert result.audio is None
        assert result.response == "¡Hola! ¿Qué tal?"
        assert result.timings["tts_error"] == "Cartesia error: 500"
        assert received == []

    async def test_no_provider_configured(self, stt, chat, events):
        cartesia = _tts("cartesia", configured=False)
        elevenlabs = _tts("elevenlabs", configured=False)
        pipeline = VoicePipeline(stt, chat, [cartesia, elevenlabs], events)
        progress = []

        result = await pipeline.run(b"RIFF", on_progress=progress.append)

        assert result.ok is True
        assert result.audio is None
        assert result.timings["tts_error"] == NO_TTS_PROVIDER
        assert progress == ["transcribing", "thinking", "speaking"]
        cartesia.synthesize.assert_not_awaited()
        elevenlabs.synthesize.assert_not_awaited()

    async def test_first_configured_provider_wins(self, pipeline, cartesia, elevenlabs):
        await pipeline.run(b"RIFF")

        cartesia.synthesize.assert_awaited_once()
        elevenlabs.synthesize.assert_not_awaited()

    async def test_falls_through_to_elevenlabs(self, stt, chat, elevenlabs, events):
        cartesia = _tts("cartesia", configured=False)
        pipeline = VoicePipeline(stt, chat, [cartesia, elevenlabs], events)

        result = await pipeline.run(b"RIFF")

        assert result.audio == b"elevenlabs-audio"
        cartesia.synthesize.assert_not_awaited()


# ---------------------------------------------------------------------------
# Cancellation and deadlines
# ---------------------------------------------------------------------------


class TestCancellation:

    async def test_cancelled_before_start(self, pipeline, stt):
        token = CancelToken()
        token.cancel()

        result = await pipeline.run(b"RIFF", cancel_token=token)

        assert result.ok is False
        assert result.error == "Voice turn cancelled"
        assert result.kind == ErrorKind.CANCELLED
        stt.speech_to_text.assert_not_awaited()

    async def test_cancelled_during_chat(self, pipeline, chat, cartesia):
        chat.chat.side_effect = _hang
        token = CancelToken()
        asyncio.get_running_loop().call_later(0.02, token.cancel)

        result = await asyncio.wait_for(pipeline.run(b"RIFF", cancel_token=token), timeout=2.0)

        assert result.ok is False
        assert result.error == "Voice turn cancelled"
        cartesia.synthesize.assert_not_awaited()

    async def test_deadline_during_chat(self, pipeline, chat):
        chat.chat.side_effect = _hang

        result = await asyncio.wait_for(pipeline.run(b"RIFF", deadline=0.05), timeout=2.0)

        assert result.ok is False
        assert result.error == "Voice turn timed out during thinking"
        assert result.kind == ErrorKind.TIMEOUT

    async def test_deadline_during_synthesis_keeps_turn(self, pipeline, cartesia, events):
        cartesia.synthesize.side_effect = _hang
        played, failed = [], []
        events.subscribe(AUDIO_READY, played.append)
        events.subscribe(TURN_FAILED, failed.append)

        result = await asyncio.wait_for(pipeline.run(b"RIFF", deadline=0.05), timeout=2.0)

        assert result.ok is True
        assert result.transcription == "hola"
        assert result.response == "¡Hola! ¿Qué tal?"
        assert result.audio is None
        assert result.timings["tts_error"] == "speech synthesis timed out"
        assert played == []
        assert failed == []

    async def test_deadline_not_reached(self, pipeline):
        result = await pipeline.run(b"RIFF", deadline=5)
        assert result.ok is True
