"""Webhook domain primitives."""
from __future__ import annotations

import json
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Any, Protocol

from pydantic import BaseModel, ConfigDict, Field

from webhook_service.domain.enums import (
    TERMINAL_DELIVERY_STATUSES,
    DeliveryOutcome,
    DeliveryStatus,
)


class WebhookConfig(BaseModel):
    """Tenant-owned delivery target. Read-only for the delivery core."""

    id: str
    creator_id: str
    url: str
    secret: str | None = None
    events: frozenset[str] = Field(default_factory=frozenset)
    active: bool = True
    created_at: datetime | None = None

    def subscribes_to(self, event_type: str) -> bool:
        return self.active and event_type in self.events


class DeliveryEvent(BaseModel):
    """One event handed to the dispatcher; serialized identically on every attempt."""

    model_config = ConfigDict(frozen=True)

    event_type: str
    data: dict[str, Any] = Field(default_factory=dict)
    occurred_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def timestamp(self) -> str:
        # millisecond precision, Z suffix: 2024-01-01T12:00:00.000Z
        ts = self.occurred_at.astimezone(timezone.utc).isoformat(timespec="milliseconds")
        return ts.replace("+00:00", "Z")


def serialize_event(event: DeliveryEvent) -> str:
    """Canonical wire body. The returned string is both signed and sent."""
    return json.dumps(
        {"event": event.event_type, "data": event.data, "timestamp": event.timestamp},
        separators=(",", ":"),
        ensure_ascii=False,
        allow_nan=False,
    )


class DeliveryAttemptRecord(BaseModel):
    """One appended row per HTTP attempt or validation rejection."""

    webhook_config_id: str
    event_type: str
    payload: dict[str, Any]
    status_code: int = 0
    response_body: str = ""
    attempt_number: int = Field(default=1, ge=1)


class WebhookLogEntry(DeliveryAttemptRecord):
    id: str
    delivered_at: datetime


class WebhookLogWithUrl(WebhookLogEntry):
    webhook_url: str


@dataclass(frozen=True)
class AttemptResult:
    outcome: DeliveryOutcome
    status_code: int
    response_body: str
    logged: bool = True


def classify_status(status_code: int) -> DeliveryOutcome:
    """2xx succeeds, 4xx is the receiver's contract error, anything else is retried."""
    if 200 <= status_code < 300:
        return DeliveryOutcome.SUCCESS
    if 400 <= status_code < 500:
        return DeliveryOutcome.PERMANENT_FAILURE
    return DeliveryOutcome.RETRYABLE_FAILURE


def backoff_seconds(attempt_number: int) -> float:
    """Delay after a retryable failure on ``attempt_number`` (1-based): 2s, 4s, 8s..."""
    return float(2**attempt_number)


@dataclass(frozen=True)
class DeliveryState:
    """Stack-local retry state for one target within one dispatch call."""

    status: DeliveryStatus = DeliveryStatus.PENDING
    attempt_number: int = 0
    last_status_code: int | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_DELIVERY_STATUSES

    def begin_attempt(self) -> DeliveryState:
        if self.status not in (DeliveryStatus.PENDING, DeliveryStatus.BACKING_OFF):
            raise ValueError(f"Cannot start an attempt from state {self.status.value}")
        return replace(self, status=DeliveryStatus.ATTEMPTING, attempt_number=self.attempt_number + 1)

    def complete_attempt(self, result: AttemptResult, *, max_attempts: int) -> DeliveryState:
        if self.status is not DeliveryStatus.ATTEMPTING:
            raise ValueError(f"No attempt in progress (state {self.status.value})")
        if result.outcome is DeliveryOutcome.SUCCESS:
            status = DeliveryStatus.SUCCEEDED
        elif result.outcome is DeliveryOutcome.PERMANENT_FAILURE:
            status = DeliveryStatus.PERMANENT_FAILURE
        elif self.attempt_number >= max_attempts:
            status = DeliveryStatus.EXHAUSTED
        else:
            status = DeliveryStatus.BACKING_OFF
        return replace(self, status=status, last_status_code=result.status_code)

    def block(self) -> DeliveryState:
        return replace(self, status=DeliveryStatus.BLOCKED, attempt_number=1, last_status_code=0)


class ConfigurationStore(Protocol):
    async def load_active_configs(self, creator_id: str) -> list[WebhookConfig]:
        ...


class DeliveryLogSink(Protocol):
    async def append_attempt(self, record: DeliveryAttemptRecord) -> None:
        ...
