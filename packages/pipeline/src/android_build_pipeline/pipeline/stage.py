from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Optional, Protocol

from android_build_pipeline.core import StageError, monotonic_ms, utc_now_iso
from android_build_pipeline.core.errors import stage_error_from_exc

from .context import RunContext
from .events import EventType
from .types import ArtifactRef


def format_duration_ms(ms: int) -> str:
    """Return a short human-readable duration string."""
    if ms < 1000:
        return f"{ms} ms"
    return f"{ms / 1000:.2f} s"


StageFn = Callable[[RunContext], dict[str, Any] | None]


@dataclass(slots=True)
class FunctionStage:
    """
    Adapter that turns a plain function into a Stage.

    `always` stages run even after an earlier stage failed, like a
    `finally` block for the whole pipeline.
    """

    stage_id: str
    fn: StageFn
    always: bool = False

    def run(self, ctx: RunContext) -> dict[str, Any] | None:
        return self.fn(ctx)


@dataclass(slots=True)
class StageResult:
    stage: str
    status: str  # "success" | "failed" | "skipped"
    started_at_utc: str
    finished_at_utc: str
    duration_ms: int

    outputs: dict[str, Any] = field(default_factory=dict)
    metrics: dict[str, Any] = field(default_factory=dict)
    warnings: list[str] = field(default_factory=list)
    artifacts: list[ArtifactRef] = field(default_factory=list)
    exit_code: Optional[int] = None
    error: Optional[StageError] = None


class Stage(Protocol):
    stage_id: str
    always: bool

    def run(self, ctx: RunContext) -> dict[str, Any] | None: ...


def skipped_result(ctx: RunContext, stage: Stage, *, reason: str) -> StageResult:
    now = utc_now_iso()
    ctx.emit(EventType.STAGE_SKIPPED, stage=stage.stage_id, reason=reason)
    ctx.stage_logger(stage.stage_id).info("Stage skipped", reason=reason)
    return StageResult(
        stage=stage.stage_id,
        status="skipped",
        started_at_utc=now,
        finished_at_utc=now,
        duration_ms=0,
        warnings=[reason],
    )


@dataclass(slots=True)
class _Extras:
    """Bookkeeping keys a stage may return next to its real outputs."""

    warnings: list[str] = field(default_factory=list)
    metrics: dict[str, Any] = field(default_factory=dict)
    artifacts: list[ArtifactRef] = field(default_factory=list)
    exit_code: Optional[int] = None


def _split_outputs(stage_id: str, out: object) -> tuple[dict[str, Any], _Extras]:
    if out is None:
        return {}, _Extras()
    if not isinstance(out, dict):
        raise TypeError(
            f"Stage {stage_id} returned {type(out).__name__}, expected dict or None"
        )

    out = dict(out)
    extras = _Extras()
    w = out.pop("_warnings", None)
    if isinstance(w, list):
        extras.warnings = [str(x) for x in w]
    m = out.pop("_metrics", None)
    if isinstance(m, dict):
        extras.metrics = dict(m)
    a = out.pop("_artifacts", None)
    if isinstance(a, list):
        extras.artifacts = list(a)
    code = out.pop("_exit_code", None)
    if code is not None:
        extras.exit_code = int(code)
    return out, extras


def run_stage(
    *,
    ctx: RunContext,
    stage: Stage,
    index: int | None = None,
    total: int | None = None,
) -> StageResult:
    """
    Run one stage and turn whatever happens into a StageResult.

    Exceptions never escape: they become a "failed" result carrying a
    StageError, which is what lets the always-stages run afterwards.
    """
    stage_id = stage.stage_id
    log = ctx.stage_logger(stage_id)
    position = f"{index}/{total}" if index is not None and total is not None else None

    t0 = monotonic_ms()
    started_at = utc_now_iso()
    ctx.emit(EventType.STAGE_START, stage=stage_id)
    log.info("Stage starting", position=position)

    try:
        out, extras = _split_outputs(stage_id, stage.run(ctx))
    except Exception as e:
        duration = monotonic_ms() - t0
        ctx.emit(
            EventType.STAGE_FAILED,
            stage=stage_id,
            duration_ms=duration,
            exc_type=type(e).__name__,
            message=str(e),
        )
        log.exception(
            "Stage failed",
            position=position,
            duration=format_duration_ms(duration),
            exc_type=type(e).__name__,
            error=str(e),
        )
        return StageResult(
            stage=stage_id,
            status="failed",
            started_at_utc=started_at,
            finished_at_utc=utc_now_iso(),
            duration_ms=duration,
            error=stage_error_from_exc(e),
        )

    for w in extras.warnings:
        ctx.emit(EventType.STAGE_WARN, stage=stage_id, message=w)
        log.warning(w)
    if extras.metrics:
        ctx.emit(EventType.STAGE_METRICS, stage=stage_id, metrics=extras.metrics)

    duration = monotonic_ms() - t0
    ctx.emit(EventType.STAGE_SUCCESS, stage=stage_id, duration_ms=duration)

    fields: dict[str, object] = {
        "position": position,
        "duration": format_duration_ms(duration),
        "outputs": sorted(out),
    }
    if extras.warnings:
        fields["warnings"] = len(extras.warnings)
    if extras.artifacts:
        fields["artifacts"] = len(extras.artifacts)
    if extras.exit_code is not None:
        fields["exit_code"] = extras.exit_code
    log.info("Stage succeeded", **fields)

    return StageResult(
        stage=stage_id,
        status="success",
        started_at_utc=started_at,
        finished_at_utc=utc_now_iso(),
        duration_ms=duration,
        outputs=out,
        metrics=extras.metrics,
        warnings=extras.warnings,
        artifacts=extras.artifacts,
        exit_code=extras.exit_code,
    )
