from .config import (
    GENERIC_FAILURE_EXIT_CODE,
    TIMEOUT_EXIT_CODE,
    Settings,
    load_settings,
)
from .errors import (
    BucketMismatchError,
    BuildToolInvocationError,
    InputDataError,
    MissingAttributeError,
    NotificationDeliveryError,
    ObjectFetchError,
    PipelineError,
    PipelineTimeoutError,
    ProjectDirectoryNotFoundError,
    StageError,
    StateFieldMissingError,
    TransientError,
    UnsupportedFormatError,
)
from .fs import (
    atomic_move,
    atomic_write_text,
    ensure_parent,
    make_executable,
    relpath_posix,
    reset_dir,
    safe_unlink,
)
from .hashing import sha256_file
from .json import atomic_write_json, read_json
from .logging import ILogger, bind, clear_bindings, configure_logging, get_logger
from .paths import ScratchLayout
from .provenance import RunProvenance, new_run_id
from .time import monotonic_ms, utc_now_iso, utc_timestamp

__all__ = [
    "GENERIC_FAILURE_EXIT_CODE",
    "TIMEOUT_EXIT_CODE",
    "Settings",
    "load_settings",
    "BucketMismatchError",
    "BuildToolInvocationError",
    "InputDataError",
    "MissingAttributeError",
    "NotificationDeliveryError",
    "ObjectFetchError",
    "PipelineError",
    "PipelineTimeoutError",
    "ProjectDirectoryNotFoundError",
    "StageError",
    "StateFieldMissingError",
    "TransientError",
    "UnsupportedFormatError",
    "atomic_move",
    "atomic_write_text",
    "ensure_parent",
    "make_executable",
    "relpath_posix",
    "reset_dir",
    "safe_unlink",
    "sha256_file",
    "atomic_write_json",
    "read_json",
    "ILogger",
    "bind",
    "clear_bindings",
    "configure_logging",
    "get_logger",
    "ScratchLayout",
    "RunProvenance",
    "new_run_id",
    "monotonic_ms",
    "utc_now_iso",
    "utc_timestamp",
]
