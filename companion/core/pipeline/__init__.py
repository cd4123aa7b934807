from .stages import (
    PipelineStage,
    REPORTED_STAGES,
    StageTracker,
    StageTransitionError,
    SynthesisStage,
    VALID_TRANSITIONS,
)

__all__ = [
    "PipelineStage",
    "SynthesisStage",
    "StageTracker",
    "StageTransitionError",
    "VALID_TRANSITIONS",
    "REPORTED_STAGES",
]
