from __future__ import annotations

import json
import os
import platform
import socket
import threading
from dataclasses import asdict
from enum import Enum
from pathlib import Path
from typing import Any, Optional

from android_build_pipeline.core import utc_now_iso

from .types import Event


class EventType(str, Enum):
    RUN_ENV = "run.env"
    RUN_START = "run.start"
    RUN_TIMEOUT = "run.timeout"
    RUN_FINISH = "run.finish"

    STAGE_START = "stage.start"
    STAGE_WARN = "stage.warn"
    STAGE_METRICS = "stage.metrics"
    STAGE_SUCCESS = "stage.success"
    STAGE_FAILED = "stage.failed"
    STAGE_SKIPPED = "stage.skipped"

    ARTIFACT_WRITTEN = "artifact.written"

    FETCH_START = "fetch.start"
    FETCH_FINISH = "fetch.finish"

    EXTRACT_DETECTED = "extract.detected"
    EXTRACT_FINISH = "extract.finish"

    BUILD_COMMAND = "build.command"
    BUILD_GRADLE_INSTALL = "build.gradle_install"
    BUILD_FINISH = "build.finish"

    NOTIFY_SKIPPED = "notify.skipped"
    NOTIFY_SENT = "notify.sent"

    FINALIZE_STATUS = "finalize.status"


class EventSink:
    """
    Append-only JSON-lines log of one pipeline invocation.

    Lines are flushed as they are written so a run killed by the build
    timeout still leaves everything up to the kill on disk.
    """

    def __init__(self, path: Path, *, build_id: str | None = None) -> None:
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.count = 0
        self._lock = threading.Lock()

        self.emit(
            Event(
                type=EventType.RUN_ENV.value,
                ts_utc=utc_now_iso(),
                run_id="__init__",
                data={
                    "build_id": build_id,
                    "hostname": socket.gethostname(),
                    "pid": os.getpid(),
                    "python": platform.python_version(),
                    "cwd": str(Path.cwd()),
                },
            )
        )

    def emit(self, event: Event) -> None:
        line = json.dumps(asdict(event), ensure_ascii=False, default=str)
        with self._lock, self.path.open("a", encoding="utf-8") as f:
            f.write(line + "\n")
            self.count += 1

    def read(self) -> list[Event]:
        if not self.path.exists():
            return []
        with self.path.open("r", encoding="utf-8") as f:
            return [Event(**json.loads(line)) for line in f if line.strip()]

    def close(self) -> None:
        return


def make_event(
    *,
    event_type: EventType | str,
    run_id: str,
    stage: Optional[str] = None,
    **data: Any,
) -> Event:
    type_value = (
        event_type.value if isinstance(event_type, EventType) else str(event_type)
    )
    return Event(
        type=type_value,
        ts_utc=utc_now_iso(),
        run_id=run_id,
        stage=stage,
        data=dict(data),
    )
