from __future__ import annotations

import time
from pathlib import Path

import pytest
from android_build_pipeline.core import Settings, monotonic_ms
from android_build_pipeline.pipeline.state import BuildStatus
from android_build_pipeline.stages.build import stage_build
from android_build_pipeline.stages.build.gradle import distribution_url

from conftest import FAKE_GRADLEW_FAIL, FAKE_GRADLEW_NO_APK, FAKE_GRADLEW_OK, make_ctx

BUILD_MODULE = "android_build_pipeline.stages.build.stage"


def _project(settings: Settings, gradlew: str | None):
    ctx = make_ctx(settings)
    project = ctx.layout.extract_dir() / "MyApp"
    project.mkdir(parents=True)
    (project / "settings.gradle").write_text("rootProject.name = 'MyApp'\n")
    if gradlew is not None:
        # left non-executable, as zip extraction does
        (project / "gradlew").write_text(gradlew)
    ctx.state.filename = "MyApp.zip"
    ctx.state.extract_dir = str(ctx.layout.extract_dir())
    ctx.state.project_dir = str(project)
    return ctx, project


def test_wrapper_build_succeeds_with_apk(settings: Settings) -> None:
    ctx, project = _project(settings, FAKE_GRADLEW_OK)

    out = stage_build(ctx)

    args = (project / "gradle-args.txt").read_text().split()
    assert args == ["clean", "assembleDebug", "--no-daemon", "--parallel", "--build-cache"]
    assert ctx.state.build_success is True
    assert ctx.state.build_exit_code == 0
    assert ctx.state.artifact_count == 1
    assert ctx.state.artifacts == ["app/build/outputs/apk/debug/app-debug.apk"]
    assert out["uses_wrapper"] is True
    assert out["_warnings"] == []
    assert ctx.layout.build_log().is_file()


def test_exit_zero_without_apk_is_failure(settings: Settings) -> None:
    ctx, _ = _project(settings, FAKE_GRADLEW_NO_APK)

    out = stage_build(ctx)

    outcome = ctx.state.outcome()
    assert outcome is not None and outcome.status is BuildStatus.FAILURE
    assert ctx.state.build_exit_code == 0
    assert ctx.state.artifact_count == 0
    assert any("no .apk" in w for w in out["_warnings"])


def test_compilation_failure_keeps_exit_code(settings: Settings) -> None:
    ctx, _ = _project(settings, FAKE_GRADLEW_FAIL)

    stage_build(ctx)

    assert ctx.state.build_success is False
    assert ctx.state.build_exit_code == 3
    assert "Compilation failed" in ctx.layout.build_log().read_text()


def test_killed_by_signal_reports_128_plus_n(settings: Settings) -> None:
    ctx, _ = _project(settings, "#!/bin/sh\nkill -9 $$\n")

    stage_build(ctx)

    assert ctx.state.build_success is False
    assert ctx.state.build_exit_code == 137


def test_pipeline_deadline_stops_gradle(settings: Settings) -> None:
    ctx, _ = _project(settings, "#!/bin/sh\nexec sleep 30\n")
    ctx.deadline_ms = monotonic_ms() + 300

    out = stage_build(ctx)

    assert ctx.state.timed_out is True
    assert ctx.state.build_exit_code == 124
    assert ctx.state.build_success is False
    assert any("timeout" in w for w in out["_warnings"])


def test_deadline_also_stops_background_children(settings: Settings) -> None:
    ctx, project = _project(
        settings, "#!/bin/sh\nmkdir -p out\n(sleep 1.5; echo x > out/late.apk) &\nwait\n"
    )
    ctx.deadline_ms = monotonic_ms() + 300

    stage_build(ctx)
    time.sleep(2.5)

    assert ctx.state.timed_out is True
    assert not (project / "out" / "late.apk").exists()


def test_missing_project_dir_records_failure(settings: Settings) -> None:
    ctx = make_ctx(settings)

    out = stage_build(ctx)

    assert ctx.state.build_success is False
    assert ctx.state.build_exit_code == 1
    assert out["uses_wrapper"] is None


def test_without_wrapper_installs_gradle(
    settings: Settings, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    fake_bin = tmp_path / "gradle-home" / "bin" / "gradle"
    fake_bin.parent.mkdir(parents=True)
    fake_bin.write_text(FAKE_GRADLEW_OK)
    fake_bin.chmod(0o755)

    calls: list[dict] = []

    def _install(client, **kw):
        calls.append(kw)
        return fake_bin

    monkeypatch.setattr(f"{BUILD_MODULE}.install_gradle", _install)
    ctx, project = _project(settings, None)

    out = stage_build(ctx)

    assert calls and calls[0]["version"] == settings.gradle_version
    assert calls[0]["dest_root"] == ctx.layout.gradle_root()
    args = (project / "gradle-args.txt").read_text().split()
    assert args == ["clean", "assembleDebug", "--no-daemon"]
    assert out["uses_wrapper"] is False
    assert ctx.state.build_success is True


def test_gradle_install_failure_is_a_build_failure(
    settings: Settings, monkeypatch: pytest.MonkeyPatch
) -> None:
    from android_build_pipeline.core import BuildToolInvocationError

    def _install(client, **kw):
        raise BuildToolInvocationError("distribution unavailable")

    monkeypatch.setattr(f"{BUILD_MODULE}.install_gradle", _install)
    ctx, _ = _project(settings, None)

    out = stage_build(ctx)

    assert ctx.state.build_success is False
    assert ctx.state.build_exit_code == 1
    assert any("distribution unavailable" in w for w in out["_warnings"])


def test_distribution_url() -> None:
    assert (
        distribution_url("https://services.gradle.org/distributions/", "8.7")
        == "https://services.gradle.org/distributions/gradle-8.7-bin.zip"
    )
