"""Outbound calls to the external automation workflow.

The workflow is reachable through several redundant webhook URLs. Each call
walks the list in order, trying every endpoint a bounded number of times,
and turns whatever the workflow answers into one display string.
"""

import asyncio
import json
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Optional

import httpx

from app.config import settings
from app.logging_config import get_logger
from app.services.alert_service import alert_warning

logger = get_logger("webhook_client")

EVENT_TYPE = "com.twilio.messaging.inbound-message.received"
EVENT_DATASCHEMA = "https://events-schemas.twilio.com/Messaging.InboundMessageV1/5"

MESSAGE_FIELDS = ("output", "message", "response", "result")
ELLIPSIS = "..."

MSG_WORKFLOW_UNAVAILABLE = "Sorry, the assistant is unavailable right now. Please try again in a few minutes."


@dataclass
class WebhookReply:
    ok: bool
    message: str
    error: Optional[str] = None


def build_envelope(sender: str, message: str, *, now: Optional[float] = None) -> dict[str, Any]:
    """CloudEvents-shaped inbound-message event, as the workflow expects it."""
    ts = now if now is not None else time.time()
    ts_ms = int(ts * 1000)
    iso_time = datetime.fromtimestamp(ts, tz=timezone.utc).isoformat().replace("+00:00", "Z")
    return {
        "specversion": "1.0",
        "type": EVENT_TYPE,
        "source": settings.envelope_source,
        "id": f"msg-{ts_ms}",
        "dataschema": EVENT_DATASCHEMA,
        "datacontenttype": "application/json",
        "time": iso_time,
        "data": {
            "numMedia": 0,
            "timestamp": iso_time,
            "recipients": [],
            "accountSid": settings.envelope_account_sid,
            "messagingServiceSid": settings.envelope_messaging_service_sid,
            "to": settings.envelope_to,
            "numSegments": 1,
            "messageSid": f"SM{ts_ms}",
            "eventName": EVENT_TYPE,
            "body": message,
            "from": sender,
        },
    }


def _stringify(value: Any) -> str:
    if isinstance(value, str):
        return value
    return json.dumps(value, ensure_ascii=False)


def _pick_field(body: dict) -> Optional[str]:
    for field in MESSAGE_FIELDS:
        value = body.get(field)
        if value not in (None, "", [], {}):
            return _stringify(value)
    return None


def extract_display_message(body: Any, max_length: Optional[int] = None) -> str:
    """Pull a human-readable message out of a workflow response body.

    Checks output/message/response/result, then the same names under "data",
    then falls back to the whole body as text.
    """
    max_length = max_length if max_length is not None else settings.max_display_length

    candidate = body
    if isinstance(candidate, list) and candidate and isinstance(candidate[0], dict):
        candidate = candidate[0]

    text = None
    if isinstance(candidate, dict):
        text = _pick_field(candidate)
        nested = candidate.get("data")
        if text is None and isinstance(nested, dict):
            text = _pick_field(nested)
    if text is None:
        text = _stringify(body)

    return truncate(text, max_length)


def truncate(text: str, max_length: int) -> str:
    if len(text) <= max_length:
        return text
    return text[: max(max_length - len(ELLIPSIS), 0)] + ELLIPSIS


def _read_body(response: httpx.Response) -> Any:
    content_type = response.headers.get("content-type", "")
    if "application/json" in content_type:
        try:
            return response.json()
        except ValueError:
            return response.text
    return response.text


class WebhookClient:
    """Calls the workflow across redundant endpoints with bounded retries."""

    def __init__(
        self,
        endpoints: Optional[list[str]] = None,
        *,
        attempts_per_endpoint: Optional[int] = None,
        retry_backoff_seconds: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep_func=asyncio.sleep,
        clock=time.time,
    ):
        self.endpoints = list(endpoints if endpoints is not None else settings.webhook_endpoints)
        self.attempts_per_endpoint = (
            attempts_per_endpoint if attempts_per_endpoint is not None else settings.webhook_attempts_per_endpoint
        )
        self.retry_backoff_seconds = (
            retry_backoff_seconds if retry_backoff_seconds is not None else settings.webhook_retry_backoff_seconds
        )
        self._transport = transport
        self._sleep = sleep_func
        self._clock = clock

    async def call(self, sender: str, message: str, timeout_seconds: float) -> WebhookReply:
        payload = build_envelope(sender, message, now=self._clock())
        last_detail = "No webhook endpoints configured"

        async with httpx.AsyncClient(transport=self._transport) as client:
            for url in self.endpoints:
                for attempt in range(1, self.attempts_per_endpoint + 1):
                    log_context = {"url": url, "attempt": attempt, "recipient": sender}
                    try:
                        # per-phase httpx limits plus one overall deadline for the attempt
                        response = await asyncio.wait_for(
                            client.post(url, json=payload, timeout=httpx.Timeout(timeout_seconds)),
                            timeout_seconds,
                        )
                    except (httpx.TimeoutException, asyncio.TimeoutError):
                        last_detail = f"Timed out after {timeout_seconds}s"
                        logger.warning("Webhook attempt timed out", extra={"context": log_context})
                        break
                    except httpx.HTTPError as exc:
                        last_detail = str(exc) or exc.__class__.__name__
                        logger.warning(
                            "Webhook attempt failed",
                            extra={"context": {**log_context, "error": last_detail}},
                        )
                    else:
                        body = _read_body(response)
                        if response.is_success:
                            logger.info(
                                "Webhook answered",
                                extra={"context": {**log_context, "status": response.status_code}},
                            )
                            return WebhookReply(ok=True, message=extract_display_message(body))
                        last_detail = f"Status {response.status_code}: {_stringify(body)[:200]}"
                        logger.warning(
                            "Webhook attempt rejected",
                            extra={"context": {**log_context, "status": response.status_code}},
                        )

                    if attempt < self.attempts_per_endpoint:
                        await self._sleep(self.retry_backoff_seconds)

        logger.error(
            "All webhook endpoints failed",
            extra={"context": {"recipient": sender, "error": last_detail}},
        )
        await alert_warning("Workflow webhook unreachable", {"recipient": sender, "error": last_detail})
        return WebhookReply(ok=False, message=MSG_WORKFLOW_UNAVAILABLE, error=last_detail)
