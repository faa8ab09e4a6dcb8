from __future__ import annotations

from datetime import datetime
from enum import StrEnum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict

from android_build_pipeline.core import GENERIC_FAILURE_EXIT_CODE, Settings, utc_timestamp
from android_build_pipeline.pipeline.state import (
    BuildOutcome,
    BuildStatus,
    ScratchState,
)

UNKNOWN = "unknown"


class FailureReason(StrEnum):
    DOWNLOAD = "download/process failure"
    EXTRACTION = "extraction failure"
    BUILD = "build compilation failure"


def classify_failure(state: ScratchState) -> FailureReason:
    """
    Best-effort diagnosis, first match wins: only one reason is ever reported.
    """
    if not state.filename:
        return FailureReason.DOWNLOAD
    if not state.project_dir:
        return FailureReason.EXTRACTION
    return FailureReason.BUILD


def build_log_url(*, project_id: str, region: str, build_id: str) -> str:
    return (
        f"https://console.cloud.google.com/cloud-build/builds;region={region}/"
        f"{build_id}?project={project_id}"
    )


class NotificationPayload(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    status: BuildStatus
    project_id: str
    build_id: str
    trigger_name: str
    source_object: str
    source_bucket: str
    build_log_url: str
    timestamp: str
    failure_reason: Optional[FailureReason] = None
    message: str

    def to_json_dict(self) -> dict[str, Any]:
        # failure_reason is left out entirely on success
        return self.model_dump(mode="json", exclude_none=True)


def build_payload(
    *,
    state: ScratchState,
    settings: Settings,
    build_id: str,
    now: datetime | None = None,
) -> NotificationPayload:
    outcome = state.outcome()
    recorded = outcome is not None
    if outcome is None:
        outcome = BuildOutcome(
            status=BuildStatus.FAILURE,
            exit_code=GENERIC_FAILURE_EXIT_CODE,
            artifact_count=0,
        )

    source_object = state.object_key or state.filename or UNKNOWN
    source_bucket = state.bucket_name or UNKNOWN

    reason: FailureReason | None = None
    if outcome.succeeded:
        message = (
            f"Android build succeeded for {source_object}: "
            f"{outcome.artifact_count} APK(s) produced"
        )
    else:
        reason = classify_failure(state)
        if recorded:
            message = f"Android build failed for {source_object} ({reason.value})"
        else:
            message = (
                f"Android build did not complete for {source_object}: "
                "no build result was recorded"
            )

    return NotificationPayload(
        status=outcome.status,
        project_id=settings.project_id,
        build_id=build_id,
        trigger_name=settings.trigger_name,
        source_object=source_object,
        source_bucket=source_bucket,
        build_log_url=build_log_url(
            project_id=settings.project_id,
            region=settings.region,
            build_id=build_id,
        ),
        timestamp=utc_timestamp(now),
        failure_reason=reason,
        message=message,
    )
