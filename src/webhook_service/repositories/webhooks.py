"""Webhook repositories (target configs + delivery log)."""
from __future__ import annotations

import json
from typing import Any, List

from asyncpg import Pool, Record  # type: ignore[import-untyped]

from webhook_service.core.exceptions import NotFoundError
from webhook_service.domain.webhooks import (
    DeliveryAttemptRecord,
    WebhookConfig,
    WebhookLogEntry,
    WebhookLogWithUrl,
)
from webhook_service.repositories.base import BaseRepository

_LOG_COLUMNS = """
    l.id, l.webhook_config_id, l.event AS event_type, l.payload, l.status_code,
    l.response_body, l.attempt_number, l.delivered_at
"""


class WebhookConfigRepository(BaseRepository):
    """Configuration store for webhook targets, scoped by creator."""

    def __init__(self, pool: Pool):
        super().__init__(pool)

    @staticmethod
    def _to_model(record: Record) -> WebhookConfig:
        return WebhookConfig.model_validate(dict(record))

    async def load_active_configs(self, creator_id: str) -> List[WebhookConfig]:
        records = await self._fetch(
            """
            SELECT *
            FROM webhook_config
            WHERE creator_id = $1 AND active = true
            ORDER BY created_at ASC
            """,
            creator_id,
        )
        return [self._to_model(r) for r in records]

    async def list_by_creator(self, creator_id: str) -> List[WebhookConfig]:
        records = await self._fetch(
            """
            SELECT *
            FROM webhook_config
            WHERE creator_id = $1
            ORDER BY created_at DESC
            """,
            creator_id,
        )
        return [self._to_model(r) for r in records]

    async def get(self, creator_id: str, config_id: str) -> WebhookConfig:
        record = await self._fetchrow(
            "SELECT * FROM webhook_config WHERE id = $1 AND creator_id = $2",
            config_id,
            creator_id,
        )
        if record is None:
            raise NotFoundError("Webhook config not found")
        return self._to_model(record)

    async def create(
        self,
        *,
        creator_id: str,
        url: str,
        events: list[str],
        secret: str | None,
    ) -> WebhookConfig:
        record = await self._fetchrow(
            """
            INSERT INTO webhook_config (creator_id, url, events, secret, active)
            VALUES ($1, $2, $3::text[], $4, true)
            RETURNING *
            """,
            creator_id,
            url,
            events,
            secret,
        )
        assert record is not None
        return self._to_model(record)

    async def update(
        self,
        creator_id: str,
        config_id: str,
        *,
        url: str | None = None,
        events: list[str] | None = None,
        active: bool | None = None,
    ) -> WebhookConfig:
        record = await self._fetchrow(
            """
            UPDATE webhook_config
            SET url = COALESCE($3, url),
                events = COALESCE($4::text[], events),
                active = COALESCE($5, active)
            WHERE id = $1 AND creator_id = $2
            RETURNING *
            """,
            config_id,
            creator_id,
            url,
            events,
            active,
        )
        if record is None:
            raise NotFoundError("Webhook config not found")
        return self._to_model(record)

    async def set_secret(self, creator_id: str, config_id: str, secret: str) -> WebhookConfig:
        record = await self._fetchrow(
            """
            UPDATE webhook_config
            SET secret = $3
            WHERE id = $1 AND creator_id = $2
            RETURNING *
            """,
            config_id,
            creator_id,
            secret,
        )
        if record is None:
            raise NotFoundError("Webhook config not found")
        return self._to_model(record)

    async def delete(self, creator_id: str, config_id: str) -> None:
        record = await self._fetchrow(
            """
            DELETE FROM webhook_config
            WHERE id = $1 AND creator_id = $2
            RETURNING id
            """,
            config_id,
            creator_id,
        )
        if record is None:
            raise NotFoundError("Webhook config not found")


class WebhookLogRepository(BaseRepository):
    """Append-only delivery log. One INSERT per attempt, no transaction spans a delivery."""

    def __init__(self, pool: Pool):
        super().__init__(pool)

    @staticmethod
    def _normalize(payload: dict[str, Any]) -> dict[str, Any]:
        value = payload.get("payload")
        if isinstance(value, str):
            payload["payload"] = json.loads(value)
        elif value is None:
            payload["payload"] = {}
        if payload.get("response_body") is None:
            payload["response_body"] = ""
        if payload.get("status_code") is None:
            payload["status_code"] = 0
        return payload

    async def append_attempt(self, record: DeliveryAttemptRecord) -> None:
        await self._execute(
            """
            INSERT INTO webhook_log (
                webhook_config_id, event, payload, status_code, response_body, attempt_number
            )
            VALUES ($1, $2, $3::jsonb, $4, $5, $6)
            """,
            record.webhook_config_id,
            record.event_type,
            json.dumps(record.payload),
            record.status_code,
            record.response_body,
            record.attempt_number,
        )

    async def list_by_config(self, config_id: str, *, limit: int = 50) -> List[WebhookLogEntry]:
        records = await self._fetch(
            f"""
            SELECT {_LOG_COLUMNS}
            FROM webhook_log l
            WHERE l.webhook_config_id = $1
            ORDER BY l.delivered_at DESC
            LIMIT $2
            """,
            config_id,
            limit,
        )
        return [WebhookLogEntry.model_validate(self._normalize(dict(r))) for r in records]

    async def list_recent_for_creator(
        self, creator_id: str, *, limit: int = 50
    ) -> List[WebhookLogWithUrl]:
        records = await self._fetch(
            f"""
            SELECT {_LOG_COLUMNS}, c.url AS webhook_url
            FROM webhook_log l
            JOIN webhook_config c ON c.id = l.webhook_config_id
            WHERE c.creator_id = $1
            ORDER BY l.delivered_at DESC
            LIMIT $2
            """,
            creator_id,
            limit,
        )
        return [WebhookLogWithUrl.model_validate(self._normalize(dict(r))) for r in records]
