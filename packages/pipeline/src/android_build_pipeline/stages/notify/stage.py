from __future__ import annotations

from typing import Any

import httpx

from android_build_pipeline.core import NotificationDeliveryError
from android_build_pipeline.core.http import (
    HttpFetchError,
    HttpRetriesExceeded,
    make_http_client,
    post_json_with_retries,
)
from android_build_pipeline.pipeline.context import RunContext
from android_build_pipeline.pipeline.events import EventType

from .payload import build_payload


def _skip(ctx: RunContext, reason: str) -> dict[str, Any]:
    ctx.emit(EventType.NOTIFY_SKIPPED, stage="notify", reason=reason)
    return {"delivered": False, "skipped": reason}


def stage_notify(ctx: RunContext) -> dict[str, Any]:
    """
    Report the build result to the configured webhook, whatever it was.

    Disabled or unconfigured notifications are a no-op. Delivery that never
    gets a 2xx fails the stage, and with it the run.
    """
    settings = ctx.settings
    if not settings.notifications_enabled:
        return _skip(ctx, "notifications disabled")
    if not settings.webhook_url:
        return _skip(ctx, "no webhook_url configured")

    payload = build_payload(state=ctx.state, settings=settings, build_id=ctx.build_id)
    body = payload.to_json_dict()

    client: httpx.Client | None = None
    try:
        client = make_http_client(timeout=settings.webhook_timeout_s)
        resp = post_json_with_retries(
            client,
            url=settings.webhook_url,
            payload=body,
            max_attempts=settings.webhook_max_attempts,
            delay_s=settings.webhook_retry_delay_s,
            timeout_s=settings.webhook_timeout_s,
        )
    except HttpFetchError as e:
        attempts = e.attempts if isinstance(e, HttpRetriesExceeded) else 1
        raise NotificationDeliveryError(
            f"Webhook delivery failed after {attempts} attempt(s): {e}"
        ) from e
    finally:
        if client is not None:
            client.close()

    ctx.emit(
        EventType.NOTIFY_SENT,
        stage="notify",
        status=body["status"],
        http_status=resp.status_code,
        failure_reason=body.get("failure_reason"),
    )

    return {
        "delivered": True,
        "http_status": resp.status_code,
        "payload": body,
    }
