from __future__ import annotations

from pathlib import Path

import pytest
from android_build_pipeline.core import errors, paths, provenance
from android_build_pipeline.core.config import Settings
from pydantic import ValidationError


def test_settings_defaults() -> None:
    s = Settings(_env_file=None)
    assert s.webhook_timeout_s == 30.0
    assert s.webhook_max_attempts == 3
    assert s.notifications_enabled is True
    assert s.webhook_url == ""
    assert s.notifications_active is False


def test_settings_read_prefixed_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("ANDROID_BUILD_TRIGGER_NAME", "apk-on-upload")
    monkeypatch.setenv("ANDROID_BUILD_NOTIFICATIONS_ENABLED", "false")
    s = Settings(_env_file=None)
    assert s.trigger_name == "apk-on-upload"
    assert s.notifications_enabled is False


@pytest.mark.parametrize(
    "url", ["ftp://example.com/hook", "example.com/hook", "https://", "file:///tmp/x"]
)
def test_webhook_url_must_be_http(url: str) -> None:
    with pytest.raises(ValidationError):
        Settings(_env_file=None, webhook_url=url)


def test_webhook_url_accepts_http_https_and_empty() -> None:
    assert Settings(_env_file=None, webhook_url="  ").webhook_url == ""
    s = Settings(_env_file=None, webhook_url="http://hooks.local:8080/x")
    assert s.notifications_active is True


def test_settings_to_dict_masks_token() -> None:
    s = Settings(_env_file=None, gcs_access_token="secret")
    assert s.to_dict()["gcs_access_token"] == "***"


def test_scratch_layout(tmp_path: Path) -> None:
    layout = paths.ScratchLayout.for_build(tmp_path, "b-42")
    assert layout.root == tmp_path / "b-42"
    assert layout.source_file("app.zip") == tmp_path / "b-42" / "source" / "app.zip"
    assert layout.gradle_home("8.7") == tmp_path / "b-42" / "gradle" / "gradle-8.7"

    layout.ensure_dirs()
    assert layout.source_tmp_dir().is_dir()
    assert layout.runs_root().is_dir()


def test_stage_error_and_run_id() -> None:
    try:
        raise errors.UnsupportedFormatError("not an archive")
    except Exception as exc:
        err = errors.stage_error_from_exc(exc)
    assert err.exc_type == "UnsupportedFormatError"
    assert "not an archive" in err.message
    assert "UnsupportedFormatError" in err.traceback

    rid1, rid2 = provenance.new_run_id(), provenance.new_run_id()
    assert rid1 != rid2 and len(rid1) == 32


def test_state_field_missing_error_message() -> None:
    e = errors.StateFieldMissingError("project_dir", stage="build")
    assert isinstance(e, errors.PipelineError)
    assert "project_dir" in str(e) and "build" in str(e)


@pytest.mark.parametrize(
    ("level", "severity"),
    [("info", "INFO"), ("warning", "WARNING"), ("warn", "WARNING"), ("error", "ERROR")],
)
def test_json_log_lines_carry_cloud_logging_severity(level: str, severity: str) -> None:
    from android_build_pipeline.core.logging import add_severity

    out = add_severity(None, level, {"event": "x", "level": level})
    assert out["severity"] == severity
