from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Sequence

from android_build_pipeline.core import (
    GENERIC_FAILURE_EXIT_CODE,
    TIMEOUT_EXIT_CODE,
    ILogger,
    PipelineTimeoutError,
    RunProvenance,
    ScratchLayout,
    Settings,
    configure_logging,
    get_logger,
    monotonic_ms,
    new_run_id,
)

from .context import RunContext
from .events import EventSink, EventType, make_event, utc_now_iso
from .report import build_run_report
from .stage import (
    FunctionStage,
    Stage,
    StageFn,
    StageResult,
    format_duration_ms,
    run_stage,
    skipped_result,
)
from .state import StateStore
from .types import UploadEvent


@dataclass(slots=True)
class RunnerConfig:
    stop_on_failure: bool = True


def default_logger() -> ILogger:
    """
    Provide a structlog BoundLogger that satisfies ILogger.
    """
    configure_logging()
    return get_logger("pipeline")


def resolve_exit_code(results: Sequence[StageResult], *, timed_out: bool) -> int:
    """
    A stage-reported exit code (the status propagator) wins; a timeout comes
    next; any other failed stage turns a clean run into a generic failure.
    """
    for r in results:
        if r.exit_code:
            return r.exit_code
    if timed_out:
        return TIMEOUT_EXIT_CODE
    if any(r.status == "failed" for r in results):
        return GENERIC_FAILURE_EXIT_CODE
    return 0


class PipelineRunner:
    def __init__(
        self,
        *,
        stages: Sequence[Stage],
        cfg: RunnerConfig | None = None,
        logger: ILogger | None = None,
    ) -> None:
        self.stages = list(stages)
        self.cfg = cfg or RunnerConfig()
        self.logger: ILogger = logger or default_logger()

        ids = [s.stage_id for s in self.stages]
        if len(ids) != len(set(ids)):
            dupes = sorted({x for x in ids if ids.count(x) > 1})
            raise ValueError(f"Duplicate stage_id(s): {dupes}")

    @staticmethod
    def fn(stage_id: str, fn: StageFn, *, always: bool = False) -> Stage:
        return FunctionStage(stage_id=stage_id, fn=fn, always=always)

    def run(
        self,
        *,
        settings: Settings,
        build_id: str,
        upload: UploadEvent | None = None,
        run_id: str | None = None,
        meta: dict[str, Any] | None = None,
    ) -> tuple[int, RunContext]:
        """
        Execute the stages in order and write, under the build's scratch dir:
          - state.json (after every stage)
          - runs/{run_id}/events.jsonl
          - runs/{run_id}/run_report.json

        Returns: (exit_code, context)
        """
        meta = meta or {}
        rid = run_id or new_run_id()
        layout = ScratchLayout.for_build(settings.scratch_root, build_id)
        layout.ensure_dirs()
        run_root = layout.run_dir(rid)
        run_root.mkdir(parents=True, exist_ok=True)

        events_path = run_root / "events.jsonl"
        sink = EventSink(events_path, build_id=build_id)
        store = StateStore(layout.state_json())

        started_at = utc_now_iso()
        t0 = monotonic_ms()

        ctx = RunContext(
            run_id=rid,
            build_id=build_id,
            settings=settings,
            layout=layout,
            state=store.load(),
            logger=self.logger,
            events=sink,
            upload=upload,
            store=store,
            deadline_ms=t0 + int(settings.pipeline_timeout_s * 1000),
            meta=meta,
        )
        provenance = RunProvenance(run_id=rid, build_id=build_id, started_at_utc=started_at)

        self.logger.info(
            "Pipeline starting",
            run_id=rid,
            build_id=build_id,
            stages=[s.stage_id for s in self.stages],
            scratch=str(layout.root),
            meta_keys=sorted(meta.keys()),
        )
        sink.emit(
            make_event(
                event_type=EventType.RUN_START,
                run_id=rid,
                stage=None,
                provenance=provenance.to_dict(),
                **meta,
            )
        )

        results: list[StageResult] = []
        aborted_by: str | None = None

        total = len(self.stages)
        for idx, st in enumerate(self.stages, start=1):
            if not st.always:
                if aborted_by is not None:
                    results.append(
                        skipped_result(ctx, st, reason=f"aborted after {aborted_by}")
                    )
                    continue
                try:
                    ctx.check_deadline()
                except PipelineTimeoutError as e:
                    aborted_by = "timeout"
                    ctx.state.timed_out = True
                    ctx.persist_state()
                    ctx.emit(EventType.RUN_TIMEOUT, before_stage=st.stage_id)
                    self.logger.error(
                        "Pipeline timeout",
                        error=str(e),
                        budget_s=settings.pipeline_timeout_s,
                        before_stage=st.stage_id,
                    )
                    results.append(skipped_result(ctx, st, reason="pipeline timeout"))
                    continue

            res = run_stage(ctx=ctx, stage=st, index=idx, total=total)
            results.append(res)
            ctx.persist_state()

            if (
                res.status == "failed"
                and not st.always
                and self.cfg.stop_on_failure
                and aborted_by is None
            ):
                self.logger.error(
                    "Skipping remaining regular stages", failed_stage=st.stage_id
                )
                aborted_by = st.stage_id

        finished_at = utc_now_iso()
        duration = monotonic_ms() - t0
        timed_out = ctx.state.timed_out
        exit_code = resolve_exit_code(results, timed_out=timed_out)

        report = build_run_report(
            run_id=rid,
            build_id=build_id,
            started_at_utc=started_at,
            finished_at_utc=finished_at,
            duration_ms=duration,
            exit_code=exit_code,
            timed_out=timed_out,
            stage_results=results,
            events_jsonl=str(events_path),
            meta=meta,
        )

        report_json = run_root / "run_report.json"
        report.write_json(report_json)
        ctx.meta["report_json"] = str(report_json)

        sink.emit(
            make_event(
                event_type=EventType.RUN_FINISH,
                run_id=rid,
                stage=None,
                status=report.status,
                exit_code=exit_code,
                duration_ms=duration,
                report_json=str(report_json),
            )
        )
        sink.close()

        self.logger.info(
            "Run Complete",
            duration_ms=duration,
            duration=format_duration_ms(duration),
            report=str(report_json),
            events=str(events_path),
            event_count=sink.count,
            status=report.status,
            exit_code=exit_code,
        )

        return exit_code, ctx
