"""Unit tests for WebhookConfigService with mocked repositories."""
from __future__ import annotations

import re
from unittest.mock import AsyncMock

import pytest

from webhook_service.core.exceptions import (
    InvalidWebhookConfigError,
    NotFoundError,
    UnknownEventTypeError,
    UnsafeWebhookUrlError,
)
from webhook_service.services.webhooks import WebhookConfigService

from tests.utils import make_config

HEX_64 = re.compile(r"^[0-9a-f]{64}$")


@pytest.fixture
def config_repo():
    repo = AsyncMock()
    repo.create = AsyncMock(return_value=make_config())
    repo.update = AsyncMock(return_value=make_config())
    repo.set_secret = AsyncMock(return_value=make_config())
    repo.get = AsyncMock(return_value=make_config())
    repo.list_by_creator = AsyncMock(return_value=[make_config()])
    return repo


@pytest.fixture
def log_repo():
    repo = AsyncMock()
    repo.list_by_config = AsyncMock(return_value=[])
    repo.list_recent_for_creator = AsyncMock(return_value=[])
    return repo


@pytest.fixture
def service(config_repo, log_repo):
    return WebhookConfigService(config_repo, log_repo)


@pytest.mark.asyncio
async def test_create_generates_secret_when_missing(service, config_repo):
    await service.create_config(
        creator_id="creator-1",
        url="https://hooks.example.com/in",
        events=["payment.succeeded", "payment.succeeded", "quiz.completed"],
    )

    kwargs = config_repo.create.await_args.kwargs
    assert kwargs["creator_id"] == "creator-1"
    assert kwargs["events"] == ["payment.succeeded", "quiz.completed"]
    assert HEX_64.match(kwargs["secret"])


@pytest.mark.asyncio
async def test_create_keeps_provided_secret(service, config_repo):
    await service.create_config(
        creator_id="creator-1",
        url="https://hooks.example.com/in",
        events=["student.created"],
        secret="mine",
    )
    assert config_repo.create.await_args.kwargs["secret"] == "mine"


@pytest.mark.asyncio
async def test_create_rejects_unsafe_url(service, config_repo):
    with pytest.raises(UnsafeWebhookUrlError):
        await service.create_config(
            creator_id="creator-1", url="http://127.0.0.1:8080/admin", events=["payment.succeeded"]
        )
    config_repo.create.assert_not_awaited()


@pytest.mark.asyncio
async def test_create_rejects_unknown_event(service, config_repo):
    with pytest.raises(UnknownEventTypeError):
        await service.create_config(
            creator_id="creator-1", url="https://hooks.example.com/in", events=["course.deleted"]
        )
    config_repo.create.assert_not_awaited()


@pytest.mark.asyncio
async def test_create_requires_at_least_one_event(service):
    with pytest.raises(InvalidWebhookConfigError):
        await service.create_config(creator_id="creator-1", url="https://hooks.example.com/in", events=[])


@pytest.mark.asyncio
async def test_update_revalidates_changed_url(service, config_repo):
    with pytest.raises(UnsafeWebhookUrlError):
        await service.update_config("creator-1", "cfg-1", url="http://metadata.google.internal/")
    config_repo.update.assert_not_awaited()


@pytest.mark.asyncio
async def test_update_passes_only_given_fields(service, config_repo):
    await service.update_config("creator-1", "cfg-1", active=False)
    config_repo.update.assert_awaited_once_with(
        "creator-1", "cfg-1", url=None, events=None, active=False
    )


@pytest.mark.asyncio
async def test_regenerate_secret(service, config_repo):
    await service.regenerate_secret("creator-1", "cfg-1")
    creator_id, config_id, secret = config_repo.set_secret.await_args.args
    assert (creator_id, config_id) == ("creator-1", "cfg-1")
    assert HEX_64.match(secret)


@pytest.mark.asyncio
async def test_get_logs_for_foreign_config_is_empty(service, config_repo, log_repo):
    config_repo.get = AsyncMock(side_effect=NotFoundError("Webhook config not found"))

    assert await service.get_logs("creator-2", "cfg-1") == []
    log_repo.list_by_config.assert_not_awaited()


@pytest.mark.asyncio
async def test_get_logs_uses_default_limit(service, log_repo):
    await service.get_logs("creator-1", "cfg-1")
    log_repo.list_by_config.assert_awaited_once_with("cfg-1", limit=50)


@pytest.mark.asyncio
@pytest.mark.parametrize("limit", [0, 101])
async def test_log_limit_is_bounded(service, limit):
    with pytest.raises(InvalidWebhookConfigError):
        await service.get_logs("creator-1", "cfg-1", limit=limit)
    with pytest.raises(InvalidWebhookConfigError):
        await service.get_recent_logs("creator-1", limit=limit)


@pytest.mark.asyncio
async def test_delete_propagates_not_found(service, config_repo):
    config_repo.delete = AsyncMock(side_effect=NotFoundError("Webhook config not found"))
    with pytest.raises(NotFoundError):
        await service.delete_config("creator-1", "missing")


def test_event_types_have_labels():
    types = WebhookConfigService.event_types()
    assert len(types) == 7
    assert {"value": "enrollment.created", "label": "Enrollment Created"} in types
