from .payload import (
    FailureReason,
    NotificationPayload,
    build_log_url,
    build_payload,
    classify_failure,
)
from .stage import stage_notify

__all__ = [
    "FailureReason",
    "NotificationPayload",
    "build_log_url",
    "build_payload",
    "classify_failure",
    "stage_notify",
]
