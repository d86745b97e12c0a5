"""Single webhook delivery attempt: HTTP POST, classification and attempt logging."""
from __future__ import annotations

import asyncio
import json

import structlog
from aiohttp import ClientResponse, ClientSession, ClientTimeout

from webhook_service.domain.webhooks import (
    AttemptResult,
    DeliveryAttemptRecord,
    DeliveryEvent,
    DeliveryLogSink,
    WebhookConfig,
    classify_status,
    serialize_event,
)
from webhook_service.settings import settings
from webhook_service.signing import EVENT_HEADER, SIGNATURE_HEADER, sign_payload

logger = structlog.get_logger(__name__)

CONNECTION_FAILED_BODY = "Connection failed"
TIMED_OUT_BODY = "Request timed out"

# utf-8 needs at most 4 bytes per character
_MAX_BYTES_PER_CHAR = 4


async def record_attempt(sink: DeliveryLogSink, record: DeliveryAttemptRecord) -> bool:
    """Append ``record`` to the log sink. Returns False instead of raising on sink failure."""
    try:
        await sink.append_attempt(record)
    except Exception:
        logger.exception(
            "webhook_log append failed",
            webhook_config_id=record.webhook_config_id,
            event_type=record.event_type,
            attempt_number=record.attempt_number,
            status_code=record.status_code,
        )
        return False
    return True


class WebhookDeliveryExecutor:
    """Performs one bounded POST per call and logs exactly one attempt record."""

    def __init__(
        self,
        session: ClientSession,
        log_sink: DeliveryLogSink,
        *,
        timeout_seconds: float | None = None,
        response_body_limit: int | None = None,
    ):
        self._session = session
        self._log_sink = log_sink
        self._timeout = ClientTimeout(
            total=timeout_seconds if timeout_seconds is not None else settings.webhook_request_timeout_seconds
        )
        self._body_limit = (
            response_body_limit if response_body_limit is not None else settings.webhook_response_body_limit
        )

    def build_headers(self, config: WebhookConfig, event: DeliveryEvent, body_bytes: bytes) -> dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            EVENT_HEADER: event.event_type,
        }
        if config.secret:
            headers[SIGNATURE_HEADER] = sign_payload(body_bytes, config.secret)
        return headers

    async def attempt(
        self, config: WebhookConfig, event: DeliveryEvent, attempt_number: int
    ) -> AttemptResult:
        body = serialize_event(event)
        body_bytes = body.encode("utf-8")
        headers = self.build_headers(config, event, body_bytes)

        try:
            # Redirects are not followed: the target was only validated for config.url.
            async with self._session.post(
                config.url,
                data=body_bytes,
                headers=headers,
                timeout=self._timeout,
                allow_redirects=False,
            ) as resp:
                status_code = resp.status
                response_body = await self._read_body(resp)
        except asyncio.TimeoutError:
            status_code, response_body = 0, TIMED_OUT_BODY
        except Exception as exc:
            logger.warning(
                "webhook request failed",
                webhook_config_id=config.id,
                attempt_number=attempt_number,
                error=str(exc) or exc.__class__.__name__,
            )
            status_code, response_body = 0, CONNECTION_FAILED_BODY

        outcome = classify_status(status_code)
        logged = await record_attempt(
            self._log_sink,
            DeliveryAttemptRecord(
                webhook_config_id=config.id,
                event_type=event.event_type,
                payload=json.loads(body),
                status_code=status_code,
                response_body=response_body[: self._body_limit],
                attempt_number=attempt_number,
            ),
        )
        logger.info(
            "webhook attempt finished",
            webhook_config_id=config.id,
            event_type=event.event_type,
            attempt_number=attempt_number,
            status_code=status_code,
            outcome=outcome.value,
        )
        return AttemptResult(
            outcome=outcome,
            status_code=status_code,
            response_body=response_body[: self._body_limit],
            logged=logged,
        )

    async def _read_body(self, resp: ClientResponse) -> str:
        """Read at most ``response_body_limit`` characters; any read failure yields ''."""
        max_bytes = self._body_limit * _MAX_BYTES_PER_CHAR
        raw = bytearray()
        try:
            while len(raw) < max_bytes:
                chunk = await resp.content.read(max_bytes - len(raw))
                if not chunk:
                    break
                raw.extend(chunk)
        except Exception as exc:
            logger.warning("webhook response read failed", status_code=resp.status, error=str(exc))
            return ""
        try:
            text = raw.decode(resp.charset or "utf-8", errors="replace")
        except LookupError:
            text = raw.decode("utf-8", errors="replace")
        return text[: self._body_limit]
