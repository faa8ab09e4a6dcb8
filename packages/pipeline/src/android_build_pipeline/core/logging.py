from __future__ import annotations

import logging
import sys
from typing import Any, Protocol, runtime_checkable

import structlog
from rich.console import Console
from rich.logging import RichHandler
from structlog.contextvars import bind_contextvars, clear_contextvars, merge_contextvars
from structlog.typing import EventDict, Processor, WrappedLogger

_CONFIGURED = False

# Noisy at INFO; every request already shows up in our own events.
_QUIET_LOGGERS = ("httpx", "httpcore")


@runtime_checkable
class ILogger(Protocol):
    def debug(self, event: str, **kw: Any) -> Any: ...
    def info(self, event: str, **kw: Any) -> Any: ...
    def warning(self, event: str, **kw: Any) -> Any: ...
    def error(self, event: str, **kw: Any) -> Any: ...
    def exception(self, event: str, **kw: Any) -> Any: ...
    def bind(self, **kw: Any) -> "ILogger": ...


def add_severity(_: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    """Cloud Logging reads the level of a JSON line from `severity`."""
    level = event_dict.get("level", method_name)
    event_dict["severity"] = "WARNING" if level == "warn" else str(level).upper()
    return event_dict


def _console_handler() -> tuple[logging.Handler, list[Processor]]:
    handler = RichHandler(
        console=Console(stderr=True),
        rich_tracebacks=True,
        markup=False,
        show_time=False,
        show_path=False,
    )
    return handler, [structlog.processors.KeyValueRenderer(sort_keys=True)]


def _json_handler() -> tuple[logging.Handler, list[Processor]]:
    # build steps forward stdout verbatim to Cloud Logging
    handler = logging.StreamHandler(stream=sys.stdout)
    return handler, [
        add_severity,
        structlog.processors.dict_tracebacks,
        structlog.processors.JSONRenderer(),
    ]


def configure_logging(
    *, level: str = "INFO", fmt: str = "console", force: bool = False
) -> None:
    global _CONFIGURED
    if _CONFIGURED and not force:
        return

    lvl = level.upper()
    handler, renderers = _json_handler() if fmt == "json" else _console_handler()
    handler.setFormatter(logging.Formatter("%(message)s"))
    handler.setLevel(lvl)

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(lvl)
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    shared: list[Processor] = [
        merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
    ]
    if fmt != "json":
        shared.append(structlog.processors.format_exc_info)

    structlog.configure(
        processors=[*shared, *renderers],
        wrapper_class=structlog.make_filtering_bound_logger(lvl),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    _CONFIGURED = True


def get_logger(name: str = "android_build_pipeline") -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


def bind(**values: Any) -> None:
    bind_contextvars(**values)


def clear_bindings() -> None:
    clear_contextvars()
