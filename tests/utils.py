"""Test doubles and builders shared across the suite."""
from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, Mapping

from webhook_service.domain.webhooks import (
    AttemptResult,
    DeliveryAttemptRecord,
    DeliveryEvent,
    WebhookConfig,
    classify_status,
)
from webhook_service.webhooks_delivery import record_attempt


class FakeConfigStore:
    """In-memory configuration store keyed by creator."""

    def __init__(self, configs: list[WebhookConfig] | None = None):
        self.configs = list(configs or [])
        self.calls: list[str] = []

    async def load_active_configs(self, creator_id: str) -> list[WebhookConfig]:
        self.calls.append(creator_id)
        return [c for c in self.configs if c.creator_id == creator_id and c.active]


class RecordingLogSink:
    def __init__(self) -> None:
        self.records: list[DeliveryAttemptRecord] = []

    async def append_attempt(self, record: DeliveryAttemptRecord) -> None:
        self.records.append(record)

    def for_config(self, config_id: str) -> list[DeliveryAttemptRecord]:
        return [r for r in self.records if r.webhook_config_id == config_id]


class FailingLogSink:
    def __init__(self) -> None:
        self.calls = 0

    async def append_attempt(self, record: DeliveryAttemptRecord) -> None:
        self.calls += 1
        raise RuntimeError("log storage unavailable")


class ScriptedExecutor:
    """Returns scripted status codes per config and logs like the real executor."""

    def __init__(self, log_sink, script: dict[str, list[int]], *, delay: float = 0.0):
        self._log_sink = log_sink
        self._script = {key: list(codes) for key, codes in script.items()}
        self._delay = delay
        self.calls: list[tuple[str, int]] = []
        self.events: list[DeliveryEvent] = []

    async def attempt(self, config: WebhookConfig, event: DeliveryEvent, attempt_number: int) -> AttemptResult:
        self.calls.append((config.id, attempt_number))
        self.events.append(event)
        if self._delay:
            await asyncio.sleep(self._delay)
        codes = self._script.get(config.id) or [200]
        status_code = codes.pop(0) if len(codes) > 1 else codes[0]
        logged = await record_attempt(
            self._log_sink,
            DeliveryAttemptRecord(
                webhook_config_id=config.id,
                event_type=event.event_type,
                payload={"event": event.event_type, "data": event.data},
                status_code=status_code,
                response_body="",
                attempt_number=attempt_number,
            ),
        )
        return AttemptResult(
            outcome=classify_status(status_code),
            status_code=status_code,
            response_body="",
            logged=logged,
        )


class RecordingSleep:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@dataclass
class ReceivedRequest:
    path: str
    headers: Mapping[str, str]
    raw: bytes


@dataclass
class Receiver:
    """Local webhook endpoint; replies with scripted (status, body) pairs, then 200."""

    base_url: str = ""
    script: list[tuple[int, str]] = field(default_factory=list)
    delay: float = 0.0
    received: list[ReceivedRequest] = field(default_factory=list)

    def url(self, path: str = "/hook") -> str:
        return f"{self.base_url}{path}"


def make_config(config_id: str = "cfg-1", **overrides: Any) -> WebhookConfig:
    values: dict[str, Any] = {
        "id": config_id,
        "creator_id": "creator-1",
        "url": "https://hooks.example.com/receive",
        "secret": "test-secret",
        "events": ["payment.succeeded"],
        "active": True,
    }
    values.update(overrides)
    return WebhookConfig.model_validate(values)

