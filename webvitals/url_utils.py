"""Shared URL utilities: normalize target URLs, validate them and derive domains."""

from __future__ import annotations

import ipaddress
import re
from urllib.parse import urlparse

INVALID_DOMAIN = "invalid-domain"

_LOCAL_HOSTNAMES = {"localhost", "localhost.localdomain", "ip6-localhost", "ip6-loopback"}
_SCHEME_RE = re.compile(r"^[a-z][a-z0-9+.-]*://", re.IGNORECASE)


class InvalidTargetError(ValueError):
    """Raised when a URL cannot be tracked."""


class DuplicateTargetError(ValueError):
    """Raised when a URL is already tracked."""


def normalize_target_url(url: str) -> str:
    """Add a scheme when missing and canonicalize scheme and host casing."""
    url = url.strip()
    if not url:
        raise InvalidTargetError("URL is required")
    if not _SCHEME_RE.match(url):
        url = "https://" + url
    try:
        parsed = urlparse(url)
        # Accessing port validates it
        parsed.port
    except ValueError as e:
        raise InvalidTargetError(f"Invalid URL format: {e}") from e
    if parsed.scheme.lower() not in ("http", "https"):
        raise InvalidTargetError(f"Unsupported URL scheme: {parsed.scheme}")
    if not parsed.hostname:
        raise InvalidTargetError("URL must include a host")
    path = parsed.path or "/"
    query = f"?{parsed.query}" if parsed.query else ""
    return f"{parsed.scheme.lower()}://{parsed.netloc.lower()}{path}{query}"


def is_local_host(hostname: str) -> bool:
    """True for loopback, private-network and local-only hostnames."""
    hostname = hostname.lower().strip("[]")
    if hostname in _LOCAL_HOSTNAMES or hostname.endswith(".localhost") or hostname.endswith(".local"):
        return True
    try:
        addr = ipaddress.ip_address(hostname)
    except ValueError:
        return False
    return addr.is_loopback or addr.is_private or addr.is_link_local or addr.is_unspecified


def validate_target_url(url: str) -> str:
    """Normalize a URL and reject ones PageSpeed Insights cannot reach."""
    normalized = normalize_target_url(url)
    hostname = urlparse(normalized).hostname or ""
    if is_local_host(hostname):
        raise InvalidTargetError(
            f"Local addresses cannot be analyzed by PageSpeed Insights: {hostname}"
        )
    if "." not in hostname and ":" not in hostname:
        raise InvalidTargetError(f"Host must be a fully qualified domain name: {hostname}")
    return normalized


def extract_domain(url: str) -> str:
    """Hostname without a leading ``www.``, or ``invalid-domain``."""
    candidate = url if url.startswith("http") else f"https://{url}"
    try:
        hostname = urlparse(candidate).hostname
    except ValueError:
        return INVALID_DOMAIN
    if not hostname:
        return INVALID_DOMAIN
    return re.sub(r"^www\.", "", hostname)
