"""Webhook configuration service (creator-facing CRUD + delivery log queries)."""
from __future__ import annotations

import secrets
from typing import Iterable, List

from webhook_service.core.exceptions import (
    InvalidWebhookConfigError,
    NotFoundError,
    UnknownEventTypeError,
)
from webhook_service.domain.enums import WebhookEventType
from webhook_service.domain.webhooks import WebhookConfig, WebhookLogEntry, WebhookLogWithUrl
from webhook_service.repositories.webhooks import WebhookConfigRepository, WebhookLogRepository
from webhook_service.url_validation import ensure_safe_webhook_url

MIN_LOG_LIMIT = 1
MAX_LOG_LIMIT = 100
DEFAULT_LOG_LIMIT = 50


def generate_secret() -> str:
    return secrets.token_hex(32)


def _normalize_events(events: Iterable[str]) -> list[str]:
    normalized: list[str] = []
    for event in events:
        try:
            value = WebhookEventType(event).value
        except ValueError:
            raise UnknownEventTypeError(f"Unknown webhook event type: {event!r}") from None
        if value not in normalized:
            normalized.append(value)
    if not normalized:
        raise InvalidWebhookConfigError("At least one event type is required")
    return normalized


def _check_limit(limit: int) -> int:
    if not MIN_LOG_LIMIT <= limit <= MAX_LOG_LIMIT:
        raise InvalidWebhookConfigError(
            f"limit must be between {MIN_LOG_LIMIT} and {MAX_LOG_LIMIT}"
        )
    return limit


class WebhookConfigService:
    def __init__(
        self,
        config_repository: WebhookConfigRepository,
        log_repository: WebhookLogRepository,
    ):
        self._configs = config_repository
        self._logs = log_repository

    async def create_config(
        self,
        *,
        creator_id: str,
        url: str,
        events: list[str],
        secret: str | None = None,
    ) -> WebhookConfig:
        ensure_safe_webhook_url(url)
        return await self._configs.create(
            creator_id=creator_id,
            url=url,
            events=_normalize_events(events),
            secret=secret or generate_secret(),
        )

    async def update_config(
        self,
        creator_id: str,
        config_id: str,
        *,
        url: str | None = None,
        events: list[str] | None = None,
        active: bool | None = None,
    ) -> WebhookConfig:
        if url is not None:
            ensure_safe_webhook_url(url)
        return await self._configs.update(
            creator_id,
            config_id,
            url=url,
            events=_normalize_events(events) if events is not None else None,
            active=active,
        )

    async def delete_config(self, creator_id: str, config_id: str) -> None:
        await self._configs.delete(creator_id, config_id)

    async def list_configs(self, creator_id: str) -> List[WebhookConfig]:
        return await self._configs.list_by_creator(creator_id)

    async def regenerate_secret(self, creator_id: str, config_id: str) -> WebhookConfig:
        return await self._configs.set_secret(creator_id, config_id, generate_secret())

    async def get_logs(
        self, creator_id: str, config_id: str, *, limit: int = DEFAULT_LOG_LIMIT
    ) -> List[WebhookLogEntry]:
        _check_limit(limit)
        try:
            await self._configs.get(creator_id, config_id)
        except NotFoundError:
            # another creator's config looks the same as a missing one
            return []
        return await self._logs.list_by_config(config_id, limit=limit)

    async def get_recent_logs(
        self, creator_id: str, *, limit: int = DEFAULT_LOG_LIMIT
    ) -> List[WebhookLogWithUrl]:
        _check_limit(limit)
        return await self._logs.list_recent_for_creator(creator_id, limit=limit)

    @staticmethod
    def event_types() -> list[dict[str, str]]:
        return [{"value": e.value, "label": e.label} for e in WebhookEventType]
