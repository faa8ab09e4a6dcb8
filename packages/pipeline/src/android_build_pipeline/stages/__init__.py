from .build import stage_build
from .extract import stage_extract
from .fetch import stage_fetch
from .finalize import stage_finalize
from .notify import stage_notify

__all__ = [
    "stage_fetch",
    "stage_extract",
    "stage_build",
    "stage_notify",
    "stage_finalize",
]
