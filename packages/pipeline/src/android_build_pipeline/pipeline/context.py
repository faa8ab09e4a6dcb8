from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

from android_build_pipeline.core import (
    ILogger,
    PipelineTimeoutError,
    ScratchLayout,
    Settings,
    monotonic_ms,
    sha256_file,
)

from .events import EventSink, EventType, make_event
from .state import ScratchState, StateStore
from .types import ArtifactRef, UploadEvent


# Envelope fields of every event; stage data may not reuse them.
_RESERVED_EVENT_KEYS = frozenset({"event_type", "run_id"})


@dataclass(slots=True)
class RunContext:
    """
    Context shared across stages for a single pipeline invocation.
    """

    run_id: str
    build_id: str
    settings: Settings
    layout: ScratchLayout
    state: ScratchState
    logger: ILogger
    events: EventSink

    upload: Optional[UploadEvent] = None
    store: Optional[StateStore] = None
    deadline_ms: Optional[int] = None

    # optional free-form metadata
    meta: dict[str, Any] = field(default_factory=dict)

    def stage_logger(self, stage: str) -> ILogger:
        return self.logger.bind(stage=stage)

    def emit(self, event: EventType | str, **kw: object) -> None:
        event_value = event.value if isinstance(event, EventType) else str(event)
        clash = _RESERVED_EVENT_KEYS.intersection(kw)
        if clash:
            raise ValueError(
                f"Event {event_value} data uses reserved key(s) {sorted(clash)}"
            )
        stage = kw.pop("stage", None)
        self.events.emit(
            make_event(
                event_type=event_value,
                run_id=self.run_id,
                stage=str(stage) if stage else None,
                **kw,
            )
        )
        # Keep event chatter at debug level to leave console logs readable.
        self.logger.debug(event_value, event_type=event_value, stage=stage, **kw)

    def persist_state(self) -> None:
        if self.store is not None:
            self.store.save(self.state)

    def remaining_s(self) -> float | None:
        if self.deadline_ms is None:
            return None
        return max(0.0, (self.deadline_ms - monotonic_ms()) / 1000.0)

    def check_deadline(self) -> None:
        remaining = self.remaining_s()
        if remaining is not None and remaining <= 0:
            raise PipelineTimeoutError(
                f"Pipeline exceeded its {self.settings.pipeline_timeout_s:g}s budget"
            )

    def record_artifact(
        self,
        *,
        stage: str,
        path: Path,
        content_type: str | None = None,
        rel_to: Path | None = None,
    ) -> ArtifactRef:
        p = Path(path)
        digest = sha256_file(p)
        rel = str(p if rel_to is None else p.relative_to(rel_to))
        art = ArtifactRef(
            path=rel, bytes=digest.bytes, sha256=digest.sha256, content_type=content_type
        )
        self.emit(
            EventType.ARTIFACT_WRITTEN,
            stage=stage,
            path=art.path,
            bytes=art.bytes,
            sha256=art.sha256,
            content_type=art.content_type,
        )
        return art
