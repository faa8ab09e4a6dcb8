from __future__ import annotations

import json
from collections.abc import Iterator
from pathlib import Path

import pytest
from android_build_pipeline import cli
from android_build_pipeline.core import ScratchLayout, load_settings
from android_build_pipeline.pipeline.state import ScratchState, StateStore, classify_build

from conftest import WEBHOOK_URL, WebhookRecorder, android_project_zip, client_factory, storage_transport


@pytest.fixture
def env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Iterator[Path]:
    scratch = tmp_path / "scratch"
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("BUILD_ID", raising=False)
    for key, value in {
        "ANDROID_BUILD_PROJECT_ID": "demo-project",
        "ANDROID_BUILD_WEBHOOK_URL": WEBHOOK_URL,
        "ANDROID_BUILD_WEBHOOK_RETRY_DELAY_S": "0",
        "ANDROID_BUILD_GCS_API_BASE": "https://storage.example.test",
        "ANDROID_BUILD_SCRATCH_ROOT": str(scratch),
        "ANDROID_BUILD_LOG_FORMAT": "json",
    }.items():
        monkeypatch.setenv(key, value)
    load_settings.cache_clear()
    yield scratch
    load_settings.cache_clear()


def test_run_from_pubsub_event_file(
    env: Path, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    hook = WebhookRecorder([200])
    monkeypatch.setattr(
        "android_build_pipeline.stages.fetch.stage.make_http_client",
        client_factory(storage_transport({"uploads/MyApp.zip": android_project_zip()})),
    )
    monkeypatch.setattr(
        "android_build_pipeline.stages.notify.stage.make_http_client",
        client_factory(hook.transport()),
    )
    event = tmp_path / "event.json"
    event.write_text(
        json.dumps({"message": {"attributes": {"bucketId": "uploads", "objectId": "MyApp.zip"}}})
    )

    code = cli.main(["run", "--build-id", "cli-1", "--event-file", str(event)])

    assert code == 0
    assert hook.payloads[0]["build_id"] == "cli-1"
    assert (env / "cli-1" / "state.json").is_file()


def test_build_id_from_environment(env: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("BUILD_ID", "from-env")

    code = cli.main(["finalize"])

    assert code == 1
    assert (env / "from-env" / "state.json").is_file()


def test_finalize_reads_state_left_by_earlier_steps(env: Path) -> None:
    state = ScratchState(filename="MyApp.zip", project_dir="/w/MyApp")
    state.record_outcome(classify_build(exit_code=5, artifact_count=0), artifacts=[])
    StateStore(ScratchLayout.for_build(env, "b-7").state_json()).save(state)

    assert cli.main(["finalize", "--build-id", "b-7"]) == 5


def test_fetch_without_event_fails(env: Path) -> None:
    assert cli.main(["fetch", "--build-id", "b-8"]) == 1


def test_scratch_root_flag_overrides_settings(env: Path, tmp_path: Path) -> None:
    other = tmp_path / "elsewhere"
    cli.main(["finalize", "--build-id", "b-9", "--scratch-root", str(other)])
    assert (other / "b-9" / "state.json").is_file()


@pytest.mark.parametrize("raw", ["{not json", "[1, 2]"])
def test_unreadable_event_still_reports_failure(
    env: Path, tmp_path: Path, monkeypatch: pytest.MonkeyPatch, raw: str
) -> None:
    hook = WebhookRecorder([200])
    monkeypatch.setattr(
        "android_build_pipeline.stages.notify.stage.make_http_client",
        client_factory(hook.transport()),
    )
    event = tmp_path / "event.json"
    event.write_text(raw)

    code = cli.main(["run", "--build-id", "bad-event", "--event-file", str(event)])

    assert code == 1
    assert len(hook.payloads) == 1
    assert hook.payloads[0]["status"] == "FAILURE"
    assert hook.payloads[0]["failure_reason"] == "download/process failure"


def test_missing_event_file_still_reports_failure(
    env: Path, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    hook = WebhookRecorder([200])
    monkeypatch.setattr(
        "android_build_pipeline.stages.notify.stage.make_http_client",
        client_factory(hook.transport()),
    )

    code = cli.main(["run", "--build-id", "no-event", "--event-file", str(tmp_path / "nope.json")])

    assert code == 1
    assert len(hook.payloads) == 1
