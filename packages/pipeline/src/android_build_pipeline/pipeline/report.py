from __future__ import annotations

from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Optional

from android_build_pipeline.core import atomic_write_json

from .stage import StageResult


@dataclass(slots=True)
class RunReport:
    run_id: str
    build_id: str
    started_at_utc: str
    finished_at_utc: str
    status: str  # "success" | "failed" | "timeout"
    exit_code: int
    duration_ms: int

    stages: list[StageResult] = field(default_factory=list)
    events_jsonl: Optional[str] = None
    meta: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    def write_json(self, path: Path) -> None:
        atomic_write_json(Path(path), self.to_dict())


def build_run_report(
    *,
    run_id: str,
    build_id: str,
    started_at_utc: str,
    finished_at_utc: str,
    duration_ms: int,
    exit_code: int,
    timed_out: bool,
    stage_results: list[StageResult],
    events_jsonl: str | None,
    meta: dict[str, Any] | None = None,
) -> RunReport:
    if timed_out:
        status = "timeout"
    elif exit_code == 0:
        status = "success"
    else:
        status = "failed"
    return RunReport(
        run_id=run_id,
        build_id=build_id,
        started_at_utc=started_at_utc,
        finished_at_utc=finished_at_utc,
        status=status,
        exit_code=exit_code,
        duration_ms=duration_ms,
        stages=stage_results,
        events_jsonl=events_jsonl,
        meta=meta or {},
    )
