"""Domain enums for webhook configuration and delivery."""
from __future__ import annotations

from enum import Enum


class WebhookEventType(str, Enum):
    """Events a creator can subscribe a webhook to."""

    ENROLLMENT_CREATED = "enrollment.created"
    ENROLLMENT_COMPLETED = "enrollment.completed"
    PAYMENT_SUCCEEDED = "payment.succeeded"
    PAYMENT_FAILED = "payment.failed"
    STUDENT_CREATED = "student.created"
    QUIZ_COMPLETED = "quiz.completed"
    CERTIFICATE_ISSUED = "certificate.issued"

    @property
    def label(self) -> str:
        return " ".join(part.capitalize() for part in self.value.split("."))


class DeliveryOutcome(str, Enum):
    """Classification of a single delivery attempt."""

    SUCCESS = "success"
    PERMANENT_FAILURE = "permanent_failure"
    RETRYABLE_FAILURE = "retryable_failure"


class DeliveryStatus(str, Enum):
    """Per-target delivery lifecycle within one dispatch call."""

    PENDING = "pending"
    ATTEMPTING = "attempting"
    BACKING_OFF = "backing_off"
    SUCCEEDED = "succeeded"
    PERMANENT_FAILURE = "permanent_failure"
    EXHAUSTED = "exhausted"
    BLOCKED = "blocked"


TERMINAL_DELIVERY_STATUSES = frozenset(
    {
        DeliveryStatus.SUCCEEDED,
        DeliveryStatus.PERMANENT_FAILURE,
        DeliveryStatus.EXHAUSTED,
        DeliveryStatus.BLOCKED,
    }
)
