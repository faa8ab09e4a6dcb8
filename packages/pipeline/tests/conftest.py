from __future__ import annotations

import io
import json
import zipfile
from urllib.parse import unquote
from pathlib import Path
from typing import Callable

import httpx
import pytest
import structlog
from android_build_pipeline.core import ScratchLayout, Settings
from android_build_pipeline.pipeline.context import RunContext
from android_build_pipeline.pipeline.events import EventSink
from android_build_pipeline.pipeline.state import ScratchState
from android_build_pipeline.pipeline.types import UploadEvent

WEBHOOK_URL = "https://hooks.example.com/android-build"

FAKE_GRADLEW_OK = """#!/bin/sh
echo "$@" > gradle-args.txt
mkdir -p app/build/outputs/apk/debug
echo apk > app/build/outputs/apk/debug/app-debug.apk
exit 0
"""

FAKE_GRADLEW_NO_APK = """#!/bin/sh
echo "$@" > gradle-args.txt
exit 0
"""

FAKE_GRADLEW_FAIL = """#!/bin/sh
echo "Compilation failed" >&2
exit 3
"""


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        _env_file=None,
        project_id="demo-project",
        region="europe-west1",
        trigger_name="android-build-trigger",
        webhook_url=WEBHOOK_URL,
        webhook_retry_delay_s=0,
        scratch_root=tmp_path / "scratch",
        gcs_api_base="https://storage.example.test",
    )


def make_ctx(
    settings: Settings,
    *,
    build_id: str = "build-1",
    upload: UploadEvent | None = None,
    state: ScratchState | None = None,
) -> RunContext:
    layout = ScratchLayout.for_build(settings.scratch_root, build_id)
    layout.ensure_dirs()
    return RunContext(
        run_id="run-1",
        build_id=build_id,
        settings=settings,
        layout=layout,
        state=state or ScratchState(),
        logger=structlog.get_logger("test"),
        events=EventSink(layout.run_dir("run-1") / "events.jsonl"),
        upload=upload,
    )


def zip_bytes(files: dict[str, str]) -> bytes:
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w") as zf:
        for name, content in files.items():
            zf.writestr(name, content)
    return buf.getvalue()


def android_project_zip(gradlew: str | None = FAKE_GRADLEW_OK, *, root: str = "MyApp") -> bytes:
    files = {
        f"{root}/settings.gradle": "rootProject.name = 'MyApp'\n",
        f"{root}/app/build.gradle": "plugins { id 'com.android.application' }\n",
    }
    if gradlew is not None:
        files[f"{root}/gradlew"] = gradlew
    return zip_bytes(files)


def storage_transport(objects: dict[str, bytes]) -> httpx.MockTransport:
    """Serves GCS JSON API media downloads keyed by '{bucket}/{object}'."""

    def handler(request: httpx.Request) -> httpx.Response:
        path = request.url.path
        prefix = "/storage/v1/b/"
        if not path.startswith(prefix) or request.url.params.get("alt") != "media":
            return httpx.Response(400)
        bucket, _, obj = path[len(prefix) :].partition("/o/")
        body = objects.get(f"{bucket}/{unquote(obj)}")
        if body is None:
            return httpx.Response(404, text="No such object")
        return httpx.Response(
            200, content=body, headers={"Content-Type": "application/octet-stream"}
        )

    return httpx.MockTransport(handler)


class WebhookRecorder:
    """Webhook double answering with a scripted sequence of status codes."""

    def __init__(self, statuses: list[int]) -> None:
        self.statuses = list(statuses)
        self.requests: list[httpx.Request] = []

    @property
    def payloads(self) -> list[dict]:
        return [json.loads(r.content) for r in self.requests]

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        idx = min(len(self.requests), len(self.statuses)) - 1
        return httpx.Response(self.statuses[idx])

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


def client_factory(transport: httpx.BaseTransport) -> Callable[..., httpx.Client]:
    def _make(**_: object) -> httpx.Client:
        return httpx.Client(transport=transport)

    return _make
