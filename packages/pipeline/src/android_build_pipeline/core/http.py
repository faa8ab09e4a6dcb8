from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Mapping, TypeVar

import httpx
import structlog
from tenacity import RetryCallState, Retrying, retry_if_exception_type, stop_after_attempt
from tenacity.wait import wait_fixed

from .errors import InputDataError, TransientError
from .fs import safe_unlink

T = TypeVar("T")

log = structlog.get_logger(__name__)

USER_AGENT = "android-build-pipeline/0.1"

# Statuses worth another GET; the webhook POST retries every non-2xx instead.
_RETRYABLE_GET_STATUSES = frozenset({408, 429, 500, 502, 503, 504})

_SNIPPET_CHARS = 200


class HttpFetchError(RuntimeError):
    """Base class for HTTP failures raised by this module."""


class HttpStatusError(HttpFetchError, InputDataError):
    """A final, non-2xx answer that another attempt would not change."""

    def __init__(
        self, *, method: str, url: str, status_code: int, body_snippet: str | None = None
    ) -> None:
        detail = f" ({body_snippet})" if body_snippet else ""
        super().__init__(f"{method} {url} answered HTTP {status_code}{detail}")
        self.method = method
        self.url = url
        self.status_code = status_code


class HttpRetriesExceeded(HttpFetchError, TransientError):
    def __init__(
        self, *, method: str, url: str, attempts: int, last_error: BaseException
    ) -> None:
        super().__init__(f"{method} {url} failed after {attempts} attempt(s): {last_error}")
        self.method = method
        self.url = url
        self.attempts = attempts
        self.last_error = last_error


class _RetryableStatus(Exception):
    def __init__(self, method: str, url: str, status_code: int) -> None:
        super().__init__(f"{method} {url} answered HTTP {status_code}")
        self.status_code = status_code


# What a further attempt may fix.
_RETRY_ON = (httpx.TransportError, _RetryableStatus)


def make_http_client(
    *,
    timeout: httpx.Timeout | float | None = None,
    follow_redirects: bool = True,
    transport: httpx.BaseTransport | None = None,
) -> httpx.Client:
    return httpx.Client(
        timeout=timeout or httpx.Timeout(30.0, connect=5.0, pool=5.0),
        follow_redirects=follow_redirects,
        headers={"User-Agent": USER_AGENT},
        transport=transport,
    )


def is_success_status(code: int) -> bool:
    return 200 <= code < 300


def is_retryable_status(code: int) -> bool:
    return code in _RETRYABLE_GET_STATUSES


def _log_retry(method: str, url: str) -> Callable[[RetryCallState], None]:
    def _before_sleep(state: RetryCallState) -> None:
        exc = state.outcome.exception() if state.outcome else None
        log.warning(
            "http.retry",
            method=method,
            url=url,
            attempt=state.attempt_number,
            sleep_s=state.next_action.sleep if state.next_action else None,
            error=str(exc) if exc else None,
        )

    return _before_sleep


def _with_retries(
    fn: Callable[[], T],
    *,
    method: str,
    url: str,
    max_attempts: int,
    delay_s: float,
) -> T:
    """
    Call fn until it returns, raises something outside _RETRY_ON, or
    max_attempts calls have failed. Exhaustion raises HttpRetriesExceeded.
    """
    attempts = 0

    def _attempt() -> T:
        nonlocal attempts
        attempts += 1
        return fn()

    retrying = Retrying(
        stop=stop_after_attempt(max_attempts),
        wait=wait_fixed(delay_s),
        retry=retry_if_exception_type(_RETRY_ON),
        before_sleep=_log_retry(method, url),
        reraise=True,
    )
    try:
        return retrying(_attempt)
    except _RETRY_ON as e:
        raise HttpRetriesExceeded(
            method=method, url=url, attempts=attempts, last_error=e
        ) from e


def _body_snippet(resp: httpx.Response) -> str | None:
    try:
        raw = resp.read()
    except httpx.HTTPError:
        return None
    text = raw[: _SNIPPET_CHARS * 4].decode("utf-8", errors="replace")
    return text[:_SNIPPET_CHARS].strip() or None


def post_json_with_retries(
    client: httpx.Client,
    *,
    url: str,
    payload: Mapping[str, Any],
    max_attempts: int = 3,
    delay_s: float = 5.0,
    timeout_s: float = 30.0,
) -> httpx.Response:
    """
    POST `payload` as JSON until a 2xx arrives or `max_attempts` is used up.

    Every non-2xx status is retried with a fixed delay between attempts.
    """

    def _post() -> httpx.Response:
        resp = client.post(
            url,
            json=dict(payload),
            headers={"Content-Type": "application/json"},
            timeout=timeout_s,
        )
        if not is_success_status(resp.status_code):
            raise _RetryableStatus("POST", url, resp.status_code)
        return resp

    return _with_retries(
        _post, method="POST", url=url, max_attempts=max_attempts, delay_s=delay_s
    )


@dataclass(frozen=True, slots=True)
class HttpDownloadResult:
    status_code: int
    final_url: str
    content_type: str | None
    bytes_written: int


def _write_body(resp: httpx.Response, dest: Path, chunk_bytes: int) -> int:
    dest.parent.mkdir(parents=True, exist_ok=True)
    written = 0
    with dest.open("wb") as f:
        for chunk in resp.iter_bytes(chunk_size=chunk_bytes):
            f.write(chunk)
            written += len(chunk)
        f.flush()
        os.fsync(f.fileno())
    return written


def stream_get_to_file(
    client: httpx.Client,
    *,
    url: str,
    dest_path: os.PathLike[str] | str,
    headers: Mapping[str, str] | None = None,
    max_attempts: int = 1,
    chunk_bytes: int = 1024 * 128,
    delay_s: float = 1.0,
) -> HttpDownloadResult:
    """
    Stream a 2xx GET body into dest_path.

    dest_path should be a temp path: on any failure it is removed, and moving
    a complete download into place is up to the caller.
    """
    dest = Path(dest_path)

    def _get() -> HttpDownloadResult:
        safe_unlink(dest)
        with client.stream("GET", url, headers=headers) as resp:
            code = resp.status_code
            if not is_success_status(code):
                if is_retryable_status(code):
                    raise _RetryableStatus("GET", url, code)
                raise HttpStatusError(
                    method="GET", url=url, status_code=code, body_snippet=_body_snippet(resp)
                )
            return HttpDownloadResult(
                status_code=code,
                final_url=str(resp.url),
                content_type=resp.headers.get("Content-Type"),
                bytes_written=_write_body(resp, dest, chunk_bytes),
            )

    try:
        return _with_retries(
            _get, method="GET", url=url, max_attempts=max_attempts, delay_s=delay_s
        )
    except BaseException:
        safe_unlink(dest)
        raise
