"""Common exceptions for domain, delivery and repository layers."""
from __future__ import annotations


class WebhookServiceError(Exception):
    """Base error for the webhook service."""


class RepositoryError(WebhookServiceError):
    """Raised when repository operations fail."""


class NotFoundError(RepositoryError):
    """Raised when requested entity is missing."""


class UnsafeWebhookUrlError(WebhookServiceError, ValueError):
    """Raised when a webhook URL points at a blocked destination."""

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


class UnknownEventTypeError(WebhookServiceError, ValueError):
    """Raised when an event type is not one of the supported webhook events."""


class InvalidEventPayloadError(WebhookServiceError, ValueError):
    """Raised when event data cannot be serialized to JSON."""


class InvalidWebhookConfigError(WebhookServiceError, ValueError):
    """Raised when a webhook configuration change is rejected."""
