"""Webhook dispatcher: resolves targets for an event and drives per-target retries."""
from __future__ import annotations

import asyncio
import json
from typing import Any, Awaitable, Callable

import structlog
from aiohttp import ClientSession, ClientTimeout, web

from webhook_service.core.exceptions import InvalidEventPayloadError, UnknownEventTypeError
from webhook_service.db.pool import get_pool
from webhook_service.domain.enums import DeliveryStatus, WebhookEventType
from webhook_service.domain.webhooks import (
    AttemptResult,
    ConfigurationStore,
    DeliveryAttemptRecord,
    DeliveryEvent,
    DeliveryLogSink,
    DeliveryState,
    WebhookConfig,
    backoff_seconds,
)
from webhook_service.repositories.webhooks import WebhookConfigRepository, WebhookLogRepository
from webhook_service.settings import settings
from webhook_service.url_validation import UrlValidation, validate_webhook_url
from webhook_service.webhooks_delivery import WebhookDeliveryExecutor, record_attempt

logger = structlog.get_logger(__name__)

BLOCKED_RESPONSE_BODY = "Blocked: webhook URL failed SSRF validation"

_WEBHOOK_SESSION_KEY = "webhook_http_session"
_WEBHOOK_DISPATCHER_KEY = "webhook_dispatcher"

UrlValidator = Callable[[str], UrlValidation]
SleepFn = Callable[[float], Awaitable[Any]]


class WebhookDispatcher:
    """Fans one creator event out to every subscribed, active webhook target.

    Each target runs its own retry state machine; a failure or block on one
    target never stops the others. ``dispatch`` returns once every target has
    reached a terminal state and raises only for programmer errors (unknown
    event type, non-JSON data).
    """

    def __init__(
        self,
        config_store: ConfigurationStore,
        log_sink: DeliveryLogSink,
        executor: WebhookDeliveryExecutor,
        *,
        max_attempts: int | None = None,
        max_concurrency: int | None = None,
        validator: UrlValidator = validate_webhook_url,
        sleep: SleepFn = asyncio.sleep,
    ):
        self._configs = config_store
        self._log_sink = log_sink
        self._executor = executor
        self._max_attempts = max_attempts if max_attempts is not None else settings.webhook_max_attempts
        self._semaphore = asyncio.Semaphore(
            max_concurrency if max_concurrency is not None else settings.webhook_dispatch_max_concurrency
        )
        self._validate = validator
        self._sleep = sleep
        self._inflight_attempts: set[asyncio.Task[AttemptResult]] = set()
        self._background: set[asyncio.Task[None]] = set()

    @staticmethod
    def build_event(event_type: str, data: dict[str, Any]) -> DeliveryEvent:
        try:
            WebhookEventType(event_type)
        except ValueError:
            raise UnknownEventTypeError(f"Unknown webhook event type: {event_type!r}") from None
        try:
            # detach from the caller's objects; also rejects non-JSON values up front
            detached = json.loads(json.dumps(data, allow_nan=False))
        except (TypeError, ValueError) as exc:
            raise InvalidEventPayloadError(f"Event data is not JSON-serializable: {exc}") from exc
        if not isinstance(detached, dict):
            raise InvalidEventPayloadError("Event data must be a JSON object")
        return DeliveryEvent(event_type=event_type, data=detached)

    async def dispatch(self, creator_id: str, event_type: str, data: dict[str, Any]) -> None:
        await self._dispatch_event(creator_id, self.build_event(event_type, data))

    def dispatch_in_background(
        self, creator_id: str, event_type: str, data: dict[str, Any]
    ) -> asyncio.Task[None]:
        """Schedule delivery without awaiting it. Programmer errors surface immediately."""
        event = self.build_event(event_type, data)
        task = asyncio.create_task(self._dispatch_event(creator_id, event))
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    async def _dispatch_event(self, creator_id: str, event: DeliveryEvent) -> None:
        event_type = event.event_type
        try:
            configs = await self._configs.load_active_configs(creator_id)
        except Exception:
            logger.exception("webhook configs load failed", creator_id=creator_id, event_type=event_type)
            return

        targets = [c for c in configs if c.subscribes_to(event_type)]
        if not targets:
            return

        states = await asyncio.gather(*(self._run_target(config, event) for config in targets))
        logger.info(
            "webhook dispatched",
            creator_id=creator_id,
            event_type=event_type,
            targets=len(targets),
            statuses=[s.status.value for s in states if s is not None],
        )

    async def aclose(self) -> None:
        """Abandon pending dispatches and wait for attempts already on the wire."""
        for task in list(self._background):
            task.cancel()
        await asyncio.gather(*self._background, return_exceptions=True)
        if self._inflight_attempts:
            await asyncio.gather(*self._inflight_attempts, return_exceptions=True)

    async def _run_target(self, config: WebhookConfig, event: DeliveryEvent) -> DeliveryState | None:
        try:
            return await self._deliver(config, event)
        except Exception:
            logger.exception(
                "webhook target delivery failed",
                webhook_config_id=config.id,
                event_type=event.event_type,
            )
            return None

    async def _deliver(self, config: WebhookConfig, event: DeliveryEvent) -> DeliveryState:
        state = DeliveryState()

        # Re-check at send time: the stored URL may have been edited outside the
        # config service, or the blocking rules may have changed since it was saved.
        validation = self._validate(config.url)
        if not validation.ok:
            logger.warning(
                "webhook url blocked",
                webhook_config_id=config.id,
                event_type=event.event_type,
                reason=validation.reason,
            )
            await record_attempt(
                self._log_sink,
                DeliveryAttemptRecord(
                    webhook_config_id=config.id,
                    event_type=event.event_type,
                    payload=event.data,
                    status_code=0,
                    response_body=BLOCKED_RESPONSE_BODY,
                    attempt_number=1,
                ),
            )
            return state.block()

        while True:
            state = state.begin_attempt()
            result = await self._attempt(config, event, state.attempt_number)
            state = state.complete_attempt(result, max_attempts=self._max_attempts)
            if state.is_terminal:
                break
            await self._sleep(backoff_seconds(state.attempt_number))

        if state.status is DeliveryStatus.EXHAUSTED:
            logger.warning(
                "webhook delivery exhausted",
                webhook_config_id=config.id,
                event_type=event.event_type,
                attempts=state.attempt_number,
                last_status_code=state.last_status_code,
            )
        return state

    async def _attempt(self, config: WebhookConfig, event: DeliveryEvent, attempt_number: int) -> AttemptResult:
        # A concurrency slot covers only the request itself, never the backoff sleep.
        # Shielded so a cancelled dispatch lets the request reach its own timeout
        # and log its outcome; retries after it are abandoned.
        await self._semaphore.acquire()
        task = asyncio.ensure_future(self._executor.attempt(config, event, attempt_number))
        task.add_done_callback(lambda _: self._semaphore.release())
        self._inflight_attempts.add(task)
        task.add_done_callback(self._inflight_attempts.discard)
        return await asyncio.shield(task)


async def start_webhook_dispatcher(app: web.Application) -> None:
    pool = await get_pool()
    session = ClientSession(timeout=ClientTimeout(total=settings.webhook_request_timeout_seconds))
    log_repository = WebhookLogRepository(pool)
    app[_WEBHOOK_SESSION_KEY] = session
    app[_WEBHOOK_DISPATCHER_KEY] = WebhookDispatcher(
        WebhookConfigRepository(pool),
        log_repository,
        WebhookDeliveryExecutor(session, log_repository),
    )


async def stop_webhook_dispatcher(app: web.Application) -> None:
    dispatcher: WebhookDispatcher | None = app.get(_WEBHOOK_DISPATCHER_KEY)
    if dispatcher is not None:
        await dispatcher.aclose()
    session = app.get(_WEBHOOK_SESSION_KEY)
    if session is not None:
        await session.close()


def get_dispatcher(app: web.Application) -> WebhookDispatcher:
    return app[_WEBHOOK_DISPATCHER_KEY]
