from __future__ import annotations

import traceback
from dataclasses import dataclass


class PipelineError(RuntimeError):
    """Base error"""


@dataclass(frozen=True, slots=True)
class StageError:
    """
    A normalized error record for stage failures.
    """

    exc_type: str
    message: str
    traceback: str


def stage_error_from_exc(exc: BaseException) -> StageError:
    return StageError(
        exc_type=type(exc).__name__,
        message=str(exc),
        traceback=traceback.format_exc(),
    )


class TransientError(PipelineError):
    """
    Retryable failures such as network timeouts, temporary upstream 5xx
    """


class InputDataError(PipelineError):
    """
    Non-retryable: the uploaded event or object is present but invalid
    w.r.t. expectations
    """


class MissingAttributeError(InputDataError):
    """Upload event lacks a bucket or object attribute"""


class BucketMismatchError(InputDataError):
    """Upload event names a bucket other than the configured target bucket"""


class ObjectFetchError(PipelineError):
    """Storage object could not be retrieved"""


class UnsupportedFormatError(InputDataError):
    """Uploaded object is not an extractable archive"""


class ProjectDirectoryNotFoundError(InputDataError):
    """Archive does not contain a usable top-level project directory"""


class BuildToolInvocationError(PipelineError):
    """Gradle could not be installed or started"""


class NotificationDeliveryError(PipelineError):
    """Webhook did not answer 2xx within the retry budget"""


class PipelineTimeoutError(PipelineError):
    """Whole-run wall clock budget exhausted"""


class StateFieldMissingError(PipelineError):
    """A stage needs a scratch state field that no earlier stage wrote"""

    def __init__(self, field: str, *, stage: str | None = None) -> None:
        where = f" (needed by {stage})" if stage else ""
        super().__init__(f"Scratch state field {field!r} is not set{where}")
        self.field = field
        self.stage = stage
