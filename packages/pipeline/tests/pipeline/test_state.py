from __future__ import annotations

from pathlib import Path

import pytest
from android_build_pipeline.core import StateFieldMissingError
from android_build_pipeline.pipeline.state import (
    BuildStatus,
    ScratchState,
    StateStore,
    classify_build,
)


@pytest.mark.parametrize(
    ("exit_code", "artifacts", "status"),
    [
        (0, 1, BuildStatus.SUCCESS),
        (0, 3, BuildStatus.SUCCESS),
        (0, 0, BuildStatus.FAILURE),
        (1, 1, BuildStatus.FAILURE),
        (137, 0, BuildStatus.FAILURE),
    ],
)
def test_classify_build_needs_exit_zero_and_an_artifact(
    exit_code: int, artifacts: int, status: BuildStatus
) -> None:
    outcome = classify_build(exit_code=exit_code, artifact_count=artifacts)
    assert outcome.status is status
    assert outcome.exit_code == exit_code


def test_require_missing_field_is_a_pipeline_error() -> None:
    state = ScratchState(filename="app.zip")
    assert state.require("filename") == "app.zip"
    with pytest.raises(StateFieldMissingError) as ei:
        state.require("project_dir", stage="build")
    assert ei.value.field == "project_dir"


def test_outcome_absent_until_recorded() -> None:
    state = ScratchState()
    assert state.outcome() is None

    state.record_outcome(
        classify_build(exit_code=0, artifact_count=0), artifacts=[]
    )
    outcome = state.outcome()
    assert outcome is not None
    assert outcome.status is BuildStatus.FAILURE
    assert state.build_success is False
    assert state.build_exit_code == 0


def test_failure_without_exit_code_reads_as_generic_failure() -> None:
    state = ScratchState(build_success=False)
    outcome = state.outcome()
    assert outcome is not None and outcome.exit_code == 1


def test_store_persists_between_processes(tmp_path: Path) -> None:
    store = StateStore(tmp_path / "state.json")
    assert store.load() == ScratchState()

    state = ScratchState(filename="app.zip", bucket_name="uploads", project_dir="/w/MyApp")
    state.record_outcome(
        classify_build(exit_code=0, artifact_count=1), artifacts=["app/app-debug.apk"]
    )
    store.save(state)

    again = StateStore(tmp_path / "state.json").load()
    assert again == state
    assert again.outcome() == state.outcome()


def test_unknown_state_fields_are_rejected() -> None:
    with pytest.raises(ValueError):
        ScratchState.model_validate({"filename": "a.zip", "bogus": 1})
