from __future__ import annotations

import subprocess
from pathlib import Path
from typing import Any

import httpx

from android_build_pipeline.core import (
    GENERIC_FAILURE_EXIT_CODE,
    TIMEOUT_EXIT_CODE,
    PipelineError,
    relpath_posix,
)
from android_build_pipeline.core.http import make_http_client
from android_build_pipeline.pipeline.context import RunContext
from android_build_pipeline.pipeline.events import EventType
from android_build_pipeline.pipeline.state import classify_build

from .artifacts import find_artifacts
from .gradle import (
    GradleCommand,
    find_wrapper,
    install_gradle,
    installed_command,
    run_gradle,
    wrapper_command,
)


def _resolve_command(ctx: RunContext, project_dir: Path) -> GradleCommand:
    wrapper = find_wrapper(project_dir)
    if wrapper is not None:
        return wrapper_command(wrapper)

    version = ctx.settings.gradle_version
    ctx.emit(EventType.BUILD_GRADLE_INSTALL, stage="build", version=version)

    client: httpx.Client | None = None
    try:
        client = make_http_client(
            timeout=httpx.Timeout(connect=10.0, read=120.0, write=30.0, pool=10.0)
        )
        gradle_bin = install_gradle(
            client,
            version=version,
            base_url=ctx.settings.gradle_distribution_base,
            dest_root=ctx.layout.gradle_root(),
        )
    finally:
        if client is not None:
            client.close()
    return installed_command(gradle_bin, version=version)


def stage_build(ctx: RunContext) -> dict[str, Any]:
    """
    Run Gradle and record the outcome in the scratch state.

    Never raises: every failure ends up in build_success/build_exit_code so
    the notify and finalize stages still see it.
    """
    log = ctx.stage_logger("build")
    state = ctx.state
    warnings: list[str] = []

    project_dir: Path | None = None
    exit_code = GENERIC_FAILURE_EXIT_CODE
    cmd: GradleCommand | None = None

    try:
        project_dir = Path(state.require("project_dir", stage="build"))
        if not project_dir.is_dir():
            raise PipelineError(f"Project directory does not exist: {project_dir}")

        cmd = _resolve_command(ctx, project_dir)
        ctx.emit(
            EventType.BUILD_COMMAND,
            stage="build",
            argv=list(cmd.argv),
            uses_wrapper=cmd.uses_wrapper,
            gradle_version=cmd.gradle_version,
        )
        exit_code = run_gradle(
            cmd,
            cwd=project_dir,
            log_path=ctx.layout.build_log(),
            timeout_s=ctx.remaining_s(),
        )
    except subprocess.TimeoutExpired:
        state.timed_out = True
        exit_code = TIMEOUT_EXIT_CODE
        warnings.append("Gradle was stopped by the pipeline timeout")
    except (PipelineError, OSError, httpx.HTTPError) as e:
        exit_code = GENERIC_FAILURE_EXIT_CODE
        warnings.append(f"Build could not run: {e}")
        log.error("Build could not run", error=str(e), exc_type=type(e).__name__)

    artifacts: list[Path] = []
    if project_dir is not None and project_dir.is_dir():
        artifacts = find_artifacts(project_dir)

    outcome = classify_build(exit_code=exit_code, artifact_count=len(artifacts))
    rel_artifacts = [relpath_posix(p, project_dir) for p in artifacts] if project_dir else []
    state.record_outcome(outcome, artifacts=rel_artifacts)

    if exit_code == 0 and not artifacts:
        warnings.append("Gradle exited 0 but produced no .apk; recording failure")

    refs = [
        ctx.record_artifact(
            stage="build",
            path=p,
            content_type="application/vnd.android.package-archive",
            rel_to=ctx.layout.root,
        )
        for p in artifacts
    ]

    ctx.emit(
        EventType.BUILD_FINISH,
        stage="build",
        status=outcome.status.value,
        exit_code=outcome.exit_code,
        artifact_count=outcome.artifact_count,
    )
    log.info(
        "Build finished",
        status=outcome.status.value,
        exit_code=outcome.exit_code,
        artifact_count=outcome.artifact_count,
        log=str(ctx.layout.build_log()),
    )

    return {
        "outcome": outcome.to_dict(),
        "uses_wrapper": cmd.uses_wrapper if cmd is not None else None,
        "artifacts": rel_artifacts,
        "build_log": str(ctx.layout.build_log()),
        "_artifacts": refs,
        "_warnings": warnings,
        "_metrics": {"artifacts": outcome.artifact_count, "exit_code": outcome.exit_code},
    }
