"""HMAC signing of webhook bodies."""
from __future__ import annotations

import hmac
from hashlib import sha256

SIGNATURE_HEADER = "X-Webhook-Signature"
EVENT_HEADER = "X-Webhook-Event"


def _to_bytes(payload: str | bytes) -> bytes:
    return payload.encode("utf-8") if isinstance(payload, str) else payload


def sign_payload(payload: str | bytes, secret: str) -> str:
    """Lowercase hex HMAC-SHA256 of the exact body bytes."""
    return hmac.new(secret.encode("utf-8"), _to_bytes(payload), sha256).hexdigest()


def verify_signature(payload: str | bytes, signature: str, secret: str) -> bool:
    """Receiver-side check, constant time."""
    if not signature or not signature.isascii():
        return False
    expected = sign_payload(payload, secret)
    return hmac.compare_digest(expected, signature.strip().lower())
