"""Domain services exports."""

from webhook_service.services.webhooks import WebhookConfigService

__all__ = [
    "WebhookConfigService",
]
