"""Repository package exports."""

from webhook_service.repositories.webhooks import WebhookConfigRepository, WebhookLogRepository

__all__ = [
    "WebhookConfigRepository",
    "WebhookLogRepository",
]
