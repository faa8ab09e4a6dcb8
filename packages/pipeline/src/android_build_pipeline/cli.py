from __future__ import annotations

import argparse
import json
import os
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from android_build_pipeline.core import (
    Settings,
    bind,
    clear_bindings,
    configure_logging,
    get_logger,
    load_settings,
    new_run_id,
    read_json,
)
from android_build_pipeline.pipeline.context import RunContext
from android_build_pipeline.pipeline.runner import PipelineRunner, RunnerConfig
from android_build_pipeline.pipeline.stage import Stage, StageFn
from android_build_pipeline.pipeline.types import UploadEvent, upload_event_from_message
from android_build_pipeline.stages import (
    stage_build,
    stage_extract,
    stage_fetch,
    stage_finalize,
    stage_notify,
)

console = Console(stderr=True)


@dataclass(frozen=True, slots=True)
class _CommonArgs:
    cmd: str
    build_id: str
    scratch_root: str | None
    event_file: str | None
    bucket: str | None
    object_key: str | None


def _add_common_args(p: argparse.ArgumentParser) -> None:
    p.add_argument(
        "--build-id",
        default=os.environ.get("BUILD_ID") or None,
        help="Build identifier issued by the orchestrator. Defaults to $BUILD_ID, else a new id.",
    )
    p.add_argument(
        "--scratch-root",
        default=None,
        help="Parent of per-build scratch dirs (overrides ANDROID_BUILD_SCRATCH_ROOT).",
    )
    p.add_argument(
        "--event-file",
        default=None,
        help="Pub/Sub push body or attribute JSON describing the upload ('-' reads stdin).",
    )
    p.add_argument("--bucket", default=None, help="Bucket of the uploaded object.")
    p.add_argument(
        "--object", dest="object_key", default=None, help="Key of the uploaded object."
    )


def _build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="android-build-pipeline")
    sub = p.add_subparsers(dest="cmd", required=True)

    commands: dict[str, str] = {
        "fetch": "Download the uploaded object into the build's scratch dir",
        "extract": "Check the download is an archive, expand it and pick the project dir",
        "build": "Run Gradle against the project dir and record the outcome",
        "notify": "Send the build report to the configured webhook",
        "finalize": "Exit with the status of the recorded build",
        "run": "Run the complete pipeline",
    }

    for cmd, help_text in commands.items():
        sp = sub.add_parser(cmd, help=help_text)
        _add_common_args(sp)

    return p


def _common(args: argparse.Namespace) -> _CommonArgs:
    return _CommonArgs(
        cmd=str(args.cmd),
        build_id=str(args.build_id) if args.build_id else new_run_id(),
        scratch_root=str(args.scratch_root) if args.scratch_root else None,
        event_file=str(args.event_file) if args.event_file else None,
        bucket=args.bucket,
        object_key=args.object_key,
    )


_STAGE_FNS: dict[str, StageFn] = {
    "fetch": stage_fetch,
    "extract": stage_extract,
    "build": stage_build,
    "notify": stage_notify,
    "finalize": stage_finalize,
}

# Stages that run even after an earlier stage failed.
_ALWAYS = frozenset({"notify", "finalize"})

_PIPELINES: dict[str, tuple[str, ...]] = {
    "fetch": ("fetch",),
    "extract": ("extract",),
    "build": ("build",),
    "notify": ("notify",),
    "finalize": ("finalize",),
    "run": ("fetch", "extract", "build", "notify", "finalize"),
}


def _with_status(stage_id: str, fn: StageFn) -> StageFn:
    def _run_with_status(ctx: RunContext) -> dict[str, Any] | None:
        with console.status(f"[bold]{stage_id}[/]", spinner="dots"):
            return fn(ctx)

    return _run_with_status


def build_stages(cmd: str, *, show_status: bool = True) -> list[Stage]:
    stage_ids = _PIPELINES[cmd]
    return [
        PipelineRunner.fn(
            stage_id=sid,
            fn=_with_status(sid, _STAGE_FNS[sid]) if show_status else _STAGE_FNS[sid],
            always=sid in _ALWAYS,
        )
        for sid in stage_ids
    ]


def _read_event_json(event_file: str) -> dict[str, Any]:
    if event_file == "-":
        obj = json.loads(sys.stdin.read())
    else:
        obj = read_json(Path(event_file))
    if not isinstance(obj, dict):
        raise ValueError(f"Event JSON must be an object, got {type(obj).__name__}")
    return obj


def resolve_upload(common: _CommonArgs) -> UploadEvent | None:
    """
    Upload event from --event-file, with --bucket/--object taking precedence.
    None when the command was given neither. An unreadable event file counts
    as an event without attributes.
    """
    if common.event_file is None and common.bucket is None and common.object_key is None:
        return None

    body: dict[str, Any] = {}
    if common.event_file:
        try:
            body = _read_event_json(common.event_file)
        except (ValueError, OSError) as e:
            # fetch reports the missing attributes
            get_logger("android_build_pipeline").error(
                "Unreadable upload event", event_file=common.event_file, error=str(e)
            )
    ev = upload_event_from_message(body, build_id=common.build_id)
    return UploadEvent(
        bucket=(common.bucket if common.bucket is not None else ev.bucket).strip(),
        object_key=(
            common.object_key if common.object_key is not None else ev.object_key
        ).strip(),
        build_id=common.build_id,
        event_type=ev.event_type,
        generation=ev.generation,
    )


def run_command(
    cmd: str,
    *,
    settings: Settings,
    build_id: str,
    upload: UploadEvent | None = None,
    run_id: str | None = None,
    show_status: bool = True,
) -> tuple[int, RunContext]:
    log = get_logger("android_build_pipeline")
    runner = PipelineRunner(
        stages=build_stages(cmd, show_status=show_status),
        cfg=RunnerConfig(stop_on_failure=True),
        logger=log,
    )
    meta: dict[str, object] = {
        "command": cmd,
        "upload": upload.to_dict() if upload else None,
        "trigger_name": settings.trigger_name,
    }
    return runner.run(
        settings=settings, build_id=build_id, upload=upload, run_id=run_id, meta=meta
    )


def main(argv: list[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    common = _common(args)

    s = load_settings()
    if common.scratch_root:
        s = s.model_copy(update={"scratch_root": Path(common.scratch_root)})
    configure_logging(level=s.log_level, fmt=s.log_format)

    run_id = new_run_id()
    clear_bindings()
    bind(run_id=run_id, command=common.cmd, build_id=common.build_id)

    upload = resolve_upload(common)

    console.print(
        Panel.fit(
            Text(
                f"android-build-pipeline - {common.cmd}\n"
                f"build_id={common.build_id}\nrun_id={run_id}",
                style="bold",
            ),
            title="Run",
        )
    )

    exit_code, ctx = run_command(
        common.cmd, settings=s, build_id=common.build_id, upload=upload, run_id=run_id
    )

    tbl = Table(title="Result", show_header=True, box=None)
    tbl.add_row(
        "status", "[green]ok[/green]" if exit_code == 0 else f"[red]failed ({exit_code})[/red]"
    )
    tbl.add_row("scratch", str(ctx.layout.root))
    tbl.add_row("report", str(ctx.meta.get("report_json", "")))
    console.print(tbl)

    return int(exit_code)


if __name__ == "__main__":
    raise SystemExit(main())
