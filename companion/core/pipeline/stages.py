"""Voice turn stage machine."""

from enum import Enum

from companion.core.logging import get_logger

_log = get_logger("pipeline.stages")


class PipelineStage(str, Enum):
    IDLE = "idle"
    TRANSCRIBING = "transcribing"
    THINKING = "thinking"
    SPEAKING = "speaking"
    DONE = "done"
    FAILED = "failed"


class SynthesisStage(str, Enum):
    """Sub-stages reported by progress-aware TTS providers."""

    CONNECTING = "connecting"
    RECEIVING = "receiving"
    COMPLETE = "complete"


VALID_TRANSITIONS = {
    PipelineStage.IDLE: {PipelineStage.TRANSCRIBING, PipelineStage.FAILED},
    PipelineStage.TRANSCRIBING: {PipelineStage.THINKING, PipelineStage.FAILED},
    PipelineStage.THINKING: {PipelineStage.SPEAKING, PipelineStage.FAILED},
    PipelineStage.SPEAKING: {PipelineStage.DONE, PipelineStage.FAILED},
    PipelineStage.DONE: set(),
    PipelineStage.FAILED: set(),
}

# Stages announced to progress callbacks
REPORTED_STAGES = (
    PipelineStage.TRANSCRIBING,
    PipelineStage.THINKING,
    PipelineStage.SPEAKING,
)


class StageTransitionError(Exception):
    """Raised when a voice turn tries to skip or revisit a stage."""
    pass


class StageTracker:
    """Tracks one voice turn through its stages, forward only."""

    def __init__(self, turn_id: str):
        self.turn_id = turn_id
        self._stage = PipelineStage.IDLE
        self.history: list[PipelineStage] = [PipelineStage.IDLE]

    @property
    def stage(self) -> PipelineStage:
        return self._stage

    @property
    def finished(self) -> bool:
        return self._stage in (PipelineStage.DONE, PipelineStage.FAILED)

    def advance(self, new_stage: PipelineStage) -> None:
        """Move to ``new_stage``.

        Raises:
            StageTransitionError: If the transition is not allowed
        """
        if new_stage not in VALID_TRANSITIONS.get(self._stage, set()):
            raise StageTransitionError(
                f"Invalid: {self._stage.value} -> {new_stage.value}"
            )
        old = self._stage
        self._stage = new_stage
        self.history.append(new_stage)
        _log.debug(
            "Stage transition",
            turn=self.turn_id[:8],
            old=old.value,
            new=new_stage.value,
        )
