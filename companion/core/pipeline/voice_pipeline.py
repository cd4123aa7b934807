"""One spoken turn: transcribe, ask the backend, synthesize the reply."""

import time
import uuid
from typing import Any, Optional, Sequence, Union

from companion.core.cancellation import CancelToken, Deadline, guarded
from companion.core.errors import ErrorKind, OperationCancelled, TimeoutFailure
from companion.core.events import AUDIO_READY, TURN_FAILED, AudioReady, PlaybackEvents
from companion.core.logging import get_logger, reset_request_id, set_request_id
from companion.core.pipeline.stages import PipelineStage, StageTracker
from companion.core.results import SpeechResult, VoiceSessionResult
from companion.llm.chat_client import ChatClient
from companion.media.tts_utils import clean_text_for_tts, select_tts_provider
from companion.media.types import (
    AudioSource,
    ProgressCallback,
    SpeechToTextProvider,
    TextToSpeechProvider,
    notify_progress,
)

_log = get_logger("pipeline.voice")

NO_TTS_PROVIDER = "No TTS provider configured"


def _elapsed_ms(start: float) -> int:
    return int((time.perf_counter() - start) * 1000)


class VoicePipeline:
    """Runs voice turns through STT, chat and TTS in strict order.

    A failed stage ends the turn and later stages never run, except that
    speech synthesis is best effort: a turn whose TTS fails still succeeds
    with ``audio=None`` and the reason in ``timings["tts_error"]``.

    Usage:
        pipeline = VoicePipeline(stt, chat, [cartesia, elevenlabs], events)
        result = await pipeline.run("/tmp/rec.m4a", on_progress=print)
    """

    def __init__(
        self,
        stt: SpeechToTextProvider,
        chat: ChatClient,
        tts_providers: Sequence[TextToSpeechProvider],
        events: Optional[PlaybackEvents] = None,
    ) -> None:
        self.stt = stt
        self.chat = chat
        self.tts_providers = list(tts_providers)
        self.events = events or PlaybackEvents()

    async def run(
        self,
        audio: AudioSource,
        session_id: Optional[str] = None,
        on_progress: Optional[ProgressCallback] = None,
        cancel_token: Optional[CancelToken] = None,
        deadline: Union[Deadline, float, None] = None,
    ) -> VoiceSessionResult:
        """Process one recorded utterance.

        Args:
            audio: Recording as bytes, path, file:// URI or http(s) URL
            session_id: Backend conversation id; configured default if None
            on_progress: Receives stage tags (transcribing, thinking,
                speaking, plus TTS sub-stages)
            cancel_token: Aborts the turn between or during stages
            deadline: Time budget for the whole turn, in seconds. Running
                out while speaking only drops the audio.

        Returns:
            VoiceSessionResult; never raises for service failures
        """
        turn_id = uuid.uuid4().hex
        ctx = set_request_id(turn_id[:8])
        if deadline is not None and not isinstance(deadline, Deadline):
            deadline = Deadline(float(deadline))

        tracker = StageTracker(turn_id)
        start_time = time.perf_counter()
        try:
            result = await self._run(audio, session_id, on_progress, cancel_token, deadline, tracker)
        except OperationCancelled:
            result = VoiceSessionResult.failure("Voice turn cancelled", ErrorKind.CANCELLED)
        except TimeoutFailure:
            result = VoiceSessionResult.failure(
                f"Voice turn timed out during {tracker.stage.value}", ErrorKind.TIMEOUT
            )

        try:
            total_ms = _elapsed_ms(start_time)
            if result.ok:
                tracker.advance(PipelineStage.DONE)
                result.timings["total_ms"] = total_ms
                _log.info("voice turn done", dur_ms=total_ms, has_audio=result.audio is not None)
                if result.audio is not None:
                    self._emit_audio(result, session_id)
            else:
                failed_stage = tracker.stage.value
                tracker.advance(PipelineStage.FAILED)
                _log.warning("voice turn failed", stage=failed_stage, error=result.error, dur_ms=total_ms)
                self.events.emit(TURN_FAILED, result)
            return result
        finally:
            reset_request_id(ctx)

    def _enter(
        self,
        tracker: StageTracker,
        stage: PipelineStage,
        on_progress: Optional[ProgressCallback],
        cancel_token: Optional[CancelToken],
    ) -> None:
        if cancel_token is not None:
            cancel_token.raise_if_cancelled("Voice turn cancelled")
        tracker.advance(stage)
        notify_progress(on_progress, stage.value)

    async def _run(
        self,
        audio: AudioSource,
        session_id: Optional[str],
        on_progress: Optional[ProgressCallback],
        cancel_token: Optional[CancelToken],
        deadline: Optional[Deadline],
        tracker: StageTracker,
    ) -> VoiceSessionResult:
        timings: dict[str, Any] = {}

        self._enter(tracker, PipelineStage.TRANSCRIBING, on_progress, cancel_token)
        stage_start = time.perf_counter()
        stt_result = await guarded(
            self.stt.speech_to_text(audio),
            token=cancel_token,
            deadline=deadline,
            label="transcription",
        )
        timings["stt_ms"] = _elapsed_ms(stage_start)
        if not stt_result.ok:
            return VoiceSessionResult.failure(f"STT failed: {stt_result.error}", stt_result.kind)
        transcription = stt_result.text.strip()
        if not transcription:
            return VoiceSessionResult.failure("No speech detected", ErrorKind.NO_SPEECH_DETECTED)
        _log.info("voice stt", text_len=len(transcription), dur_ms=timings["stt_ms"])

        self._enter(tracker, PipelineStage.THINKING, on_progress, cancel_token)
        stage_start = time.perf_counter()
        chat_result = await guarded(
            self.chat.chat(transcription, session_id),
            token=cancel_token,
            deadline=deadline,
            label="chat",
        )
        timings["chat_ms"] = _elapsed_ms(stage_start)
        if not chat_result.ok:
            return VoiceSessionResult.failure(f"Chat failed: {chat_result.error}", chat_result.kind)
        reply = chat_result.response

        self._enter(tracker, PipelineStage.SPEAKING, on_progress, cancel_token)
        stage_start = time.perf_counter()
        audio_out = None
        speech_text = clean_text_for_tts(reply) or reply
        provider = select_tts_provider(self.tts_providers)
        if provider is None:
            timings["tts_error"] = NO_TTS_PROVIDER
        else:
            try:
                speech = await guarded(
                    provider.synthesize(speech_text, on_progress=on_progress),
                    token=cancel_token,
                    deadline=deadline,
                    label="speech synthesis",
                )
            except TimeoutFailure as e:
                speech = SpeechResult.from_error(e)
            if speech.ok:
                audio_out = speech.audio
                timings["tts_provider"] = speech.provider
            else:
                timings["tts_error"] = speech.error
                _log.warning("voice tts failed, continuing", provider=provider.name, error=speech.error)
        timings["tts_ms"] = _elapsed_ms(stage_start)

        return VoiceSessionResult(
            transcription=transcription,
            response=reply,
            audio=audio_out,
            latency_ms=chat_result.latency_ms,
            timings=timings,
        )

    def _emit_audio(self, result: VoiceSessionResult, session_id: Optional[str]) -> None:
        payload = AudioReady(
            audio=result.audio or b"",
            text=result.response,
            provider=str(result.timings.get("tts_provider", "")),
            session_id=session_id or self.chat.config.session_id,
        )
        delivered = self.events.emit(AUDIO_READY, payload)
        _log.debug("audio ready emitted", listeners=delivered)
