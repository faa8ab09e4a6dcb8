from __future__ import annotations

import os
from pathlib import Path
from urllib.parse import quote

import httpx
import structlog

from android_build_pipeline.core import (
    ObjectFetchError,
    Settings,
    atomic_move,
    safe_unlink,
    sha256_file,
    utc_now_iso,
)
from android_build_pipeline.core.http import HttpFetchError, stream_get_to_file

from .models import FetchedObject

log = structlog.get_logger(__name__)

METADATA_TOKEN_URL = (
    "http://metadata.google.internal/computeMetadata/v1/"
    "instance/service-accounts/default/token"
)


def object_media_url(api_base: str, bucket: str, object_key: str) -> str:
    """GCS JSON API download URL; both path segments are fully percent-encoded."""
    return (
        f"{api_base.rstrip('/')}/storage/v1/b/{quote(bucket, safe='')}"
        f"/o/{quote(object_key, safe='')}?alt=media"
    )


def resolve_access_token(settings: Settings, client: httpx.Client) -> str | None:
    """
    Explicit token first, then the metadata server when enabled; None means
    anonymous access (public buckets, emulators).
    """
    if settings.gcs_access_token:
        return settings.gcs_access_token
    if not settings.gcs_use_metadata_token:
        return None

    try:
        resp = client.get(METADATA_TOKEN_URL, headers={"Metadata-Flavor": "Google"})
        resp.raise_for_status()
        token = resp.json().get("access_token")
    except (httpx.HTTPError, ValueError) as e:
        raise ObjectFetchError(f"Could not obtain metadata server token: {e}") from e

    if not token:
        raise ObjectFetchError("Metadata server returned no access_token")
    return str(token)


def download_object(
    client: httpx.Client,
    *,
    settings: Settings,
    bucket: str,
    object_key: str,
    filename: str,
    dest_dir: Path,
    tmp_dir: Path,
) -> FetchedObject:
    """
    Copy one object into dest_dir/filename. A single attempt: a failed read
    is retried by re-running the pipeline, not here.
    """
    url = object_media_url(settings.gcs_api_base, bucket, object_key)
    headers: dict[str, str] = {}
    token = resolve_access_token(settings, client)
    if token:
        headers["Authorization"] = f"Bearer {token}"

    tmp_path = tmp_dir / f"{filename}.{os.getpid()}.part"
    final_path = dest_dir / filename

    try:
        dl = stream_get_to_file(
            client,
            url=url,
            dest_path=tmp_path,
            headers=headers,
            max_attempts=1,
        )
    except HttpFetchError as e:
        raise ObjectFetchError(f"gs://{bucket}/{object_key}: {e}") from e

    if dl.bytes_written <= 0:
        safe_unlink(tmp_path)
        raise ObjectFetchError(f"gs://{bucket}/{object_key}: object is empty")

    atomic_move(tmp_path, final_path)
    digest = sha256_file(final_path)

    log.info(
        "gcs.downloaded",
        bucket=bucket,
        object_key=object_key,
        path=str(final_path),
        bytes=digest.bytes,
    )

    return FetchedObject(
        bucket=bucket,
        object_key=object_key,
        filename=filename,
        path=str(final_path),
        sha256=digest.sha256,
        bytes=digest.bytes,
        content_type=dl.content_type,
        retrieved_at_utc=utc_now_iso(),
    )
