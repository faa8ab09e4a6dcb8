from .context import RunContext
from .events import EventType
from .runner import PipelineRunner, RunnerConfig
from .stage import Stage, StageFn, StageResult
from .state import BuildOutcome, BuildStatus, ScratchState, StateStore, classify_build
from .types import UploadEvent, upload_event_from_message

__all__ = [
    "RunContext",
    "EventType",
    "PipelineRunner",
    "RunnerConfig",
    "Stage",
    "StageFn",
    "StageResult",
    "BuildOutcome",
    "BuildStatus",
    "ScratchState",
    "StateStore",
    "classify_build",
    "UploadEvent",
    "upload_event_from_message",
]
