"""SSRF protection for webhook URLs.

Blocks private/internal networks, localhost and cloud metadata endpoints by
looking at the literal host in the URL. Hostnames are never resolved, so a
public name that resolves to a private address (DNS rebinding) is not caught
here.
"""
from __future__ import annotations

import ipaddress
import string
from dataclasses import dataclass
from urllib.parse import urlsplit

from webhook_service.core.exceptions import UnsafeWebhookUrlError

ALLOWED_SCHEMES = frozenset({"http", "https"})

BLOCKED_HOSTNAMES = frozenset(
    {
        "localhost",
        "127.0.0.1",
        "0.0.0.0",
        "::1",
        "::",
        "::0",
        "metadata.google.internal",
        "metadata.goog",
        "metadata",
        "instance-data",
        "169.254.169.254",
    }
)

BLOCKED_HOSTNAME_SUFFIXES = (".local", ".internal", ".localhost")

_PRIVATE_IPV4_NETWORKS = (
    ipaddress.ip_network("10.0.0.0/8"),
    ipaddress.ip_network("172.16.0.0/12"),
    ipaddress.ip_network("192.168.0.0/16"),
    ipaddress.ip_network("127.0.0.0/8"),
    ipaddress.ip_network("169.254.0.0/16"),
    ipaddress.ip_network("0.0.0.0/8"),
)

_PRIVATE_IPV6_NETWORKS = (
    ipaddress.ip_network("::1/128"),
    ipaddress.ip_network("::/128"),
    ipaddress.ip_network("fe80::/10"),
    ipaddress.ip_network("fc00::/7"),
)

_STANDARD_PORTS = frozenset({80, 443})
_PRIVILEGED_PORT_LIMIT = 1024


@dataclass(frozen=True)
class UrlValidation:
    ok: bool
    reason: str | None = None

    @classmethod
    def accept(cls) -> UrlValidation:
        return cls(ok=True)

    @classmethod
    def reject(cls, reason: str) -> UrlValidation:
        return cls(ok=False, reason=reason)

    def __bool__(self) -> bool:
        return self.ok


def _parse_ipv4_part(part: str) -> int | None:
    if not part or not part.isascii():
        return None
    if part[:2].lower() == "0x":
        digits = part[2:]
        if not all(c in string.hexdigits for c in digits):
            return None
        return int(digits, 16) if digits else 0
    if not part.isdigit():
        return None
    if len(part) > 1 and part.startswith("0"):
        if not all(c in string.octdigits for c in part):
            return None
        return int(part, 8)
    return int(part)


def parse_ipv4_literal(host: str) -> ipaddress.IPv4Address | None:
    """Parse dotted IPv4 in every form resolvers accept (``127.1``, ``0x7f.0.0.1``, ``2130706433``)."""
    parts = host.split(".")
    if len(parts) > 4:
        return None
    numbers = [_parse_ipv4_part(p) for p in parts]
    if any(n is None for n in numbers):
        return None
    *head, last = numbers
    if any(n > 0xFF for n in head):
        return None
    if last >= 1 << (8 * (5 - len(parts))):
        return None
    value = last
    for index, octet in enumerate(head):
        value += octet << (8 * (3 - index))
    return ipaddress.IPv4Address(value)


def _is_private_ipv4(address: ipaddress.IPv4Address) -> bool:
    return any(address in net for net in _PRIVATE_IPV4_NETWORKS)


def _check_ipv6(host: str) -> str | None:
    try:
        address = ipaddress.IPv6Address(host.split("%", 1)[0])
    except ValueError:
        return "Webhook URL has an invalid IPv6 address"
    if any(address in net for net in _PRIVATE_IPV6_NETWORKS):
        return "Webhook URL must not point to private IPv6 addresses"
    if address.ipv4_mapped is not None and _is_private_ipv4(address.ipv4_mapped):
        return "Webhook URL must not point to private IP addresses"
    return None


def validate_webhook_url(url: str) -> UrlValidation:
    """Classify ``url`` as safe or unsafe for outbound delivery. Never raises."""
    try:
        parsed = urlsplit(url.strip())
        port = parsed.port
    except (ValueError, AttributeError):
        return UrlValidation.reject("Invalid webhook URL")

    if not parsed.scheme or not parsed.netloc:
        return UrlValidation.reject("Invalid webhook URL")

    if parsed.scheme.lower() not in ALLOWED_SCHEMES:
        return UrlValidation.reject("Webhook URL must use HTTPS or HTTP protocol")

    hostname = (parsed.hostname or "").rstrip(".")
    if not hostname:
        return UrlValidation.reject("Invalid webhook URL")

    if hostname in BLOCKED_HOSTNAMES:
        return UrlValidation.reject("Webhook URL must not point to localhost or internal services")

    if hostname.endswith(BLOCKED_HOSTNAME_SUFFIXES):
        return UrlValidation.reject("Webhook URL must not point to internal services")

    # urlsplit strips the brackets; only bracketed literals contain ':'
    if ":" in hostname:
        reason = _check_ipv6(hostname)
        if reason:
            return UrlValidation.reject(reason)
    else:
        ipv4 = parse_ipv4_literal(hostname)
        if ipv4 is not None and _is_private_ipv4(ipv4):
            return UrlValidation.reject("Webhook URL must not point to private IP addresses")

    if port is not None and port < _PRIVILEGED_PORT_LIMIT and port not in _STANDARD_PORTS:
        return UrlValidation.reject("Webhook URL uses a restricted port")

    return UrlValidation.accept()


def ensure_safe_webhook_url(url: str) -> str:
    """Save-time variant: raise :class:`UnsafeWebhookUrlError` instead of returning a result."""
    result = validate_webhook_url(url)
    if not result.ok:
        raise UnsafeWebhookUrlError(result.reason or "Invalid webhook URL")
    return url
