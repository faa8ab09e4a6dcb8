from __future__ import annotations

from typing import Any

from android_build_pipeline.core import GENERIC_FAILURE_EXIT_CODE, TIMEOUT_EXIT_CODE
from android_build_pipeline.pipeline.context import RunContext
from android_build_pipeline.pipeline.events import EventType
from android_build_pipeline.pipeline.state import ScratchState


def exit_code_for(state: ScratchState) -> int:
    """
    Process exit status that mirrors the Android build:
      - timeout            -> 124
      - no recorded build  -> 1
      - success            -> 0
      - failure            -> the build's exit code, or 1 when that was 0
    """
    if state.timed_out:
        return TIMEOUT_EXIT_CODE
    outcome = state.outcome()
    if outcome is None:
        return GENERIC_FAILURE_EXIT_CODE
    if outcome.succeeded:
        return 0
    return outcome.exit_code or GENERIC_FAILURE_EXIT_CODE


def stage_finalize(ctx: RunContext) -> dict[str, Any]:
    state = ctx.state
    code = exit_code_for(state)

    ctx.emit(
        EventType.FINALIZE_STATUS,
        stage="finalize",
        exit_code=code,
        build_success=state.build_success,
        build_exit_code=state.build_exit_code,
        timed_out=state.timed_out,
    )

    return {
        "build_success": state.build_success,
        "build_exit_code": state.build_exit_code,
        "timed_out": state.timed_out,
        "_exit_code": code,
    }
