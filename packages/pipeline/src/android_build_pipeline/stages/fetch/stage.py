from __future__ import annotations

from typing import Any

import httpx

from android_build_pipeline.core import BucketMismatchError, MissingAttributeError
from android_build_pipeline.core.http import make_http_client
from android_build_pipeline.pipeline.context import RunContext
from android_build_pipeline.pipeline.events import EventType
from android_build_pipeline.pipeline.state import ScratchState

from .filename import object_filename
from .gcs import download_object


def stage_fetch(ctx: RunContext) -> dict[str, Any]:
    # A fetch starts a new attempt; nothing recorded by an earlier one survives.
    ctx.state = ScratchState()

    upload = ctx.upload
    if upload is None:
        raise MissingAttributeError("stage_fetch requires an upload event")

    # The notification shape is not guaranteed upstream.
    if not upload.bucket:
        raise MissingAttributeError("Upload event has no bucketId attribute")
    if not upload.object_key:
        raise MissingAttributeError("Upload event has no objectId attribute")

    target = ctx.settings.target_bucket
    if target and upload.bucket != target:
        raise BucketMismatchError(
            f"Upload event bucket {upload.bucket!r} is not the target bucket {target!r}"
        )

    filename = object_filename(upload.object_key)
    layout = ctx.layout

    ctx.emit(
        EventType.FETCH_START,
        stage="fetch",
        bucket=upload.bucket,
        object_key=upload.object_key,
        filename=filename,
        upload_event_type=upload.event_type,
        generation=upload.generation,
    )

    client: httpx.Client | None = None
    try:
        client = make_http_client()
        fetched = download_object(
            client,
            settings=ctx.settings,
            bucket=upload.bucket,
            object_key=upload.object_key,
            filename=filename,
            dest_dir=layout.source_dir(),
            tmp_dir=layout.source_tmp_dir(),
        )
    finally:
        if client is not None:
            client.close()

    state = ctx.state
    state.filename = fetched.filename
    state.bucket_name = fetched.bucket
    state.object_key = fetched.object_key
    state.source_path = fetched.path
    state.source_sha256 = fetched.sha256
    state.source_bytes = fetched.bytes

    art = ctx.record_artifact(
        stage="fetch",
        path=layout.source_file(fetched.filename),
        content_type=fetched.content_type,
        rel_to=layout.root,
    )

    ctx.emit(
        EventType.FETCH_FINISH,
        stage="fetch",
        filename=fetched.filename,
        bytes=fetched.bytes,
        sha256=fetched.sha256,
    )

    return {
        "object": fetched.to_dict(),
        "_artifacts": [art],
        "_metrics": {"bytes": fetched.bytes},
    }
