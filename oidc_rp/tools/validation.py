"""Checks on the provider information and client registration passed to the client."""

from __future__ import annotations

from urllib.parse import urlparse


def validate_url(url: str) -> bool:
    """Checks that a provider endpoint or issuer is an absolute http(s) URL."""
    try:
        parsed = urlparse(url.strip())
        return bool(parsed.scheme in ("http", "https") and parsed.netloc)
    except (ValueError, TypeError, AttributeError):
        return False


def sanitize_client_secret(secret: str) -> str:
    """Strips whitespace around the client secret, empty if none is set."""
    return secret.strip() if secret else ""


def validate_client_id(client_id: str) -> bool:
    """A client_id must contain more than whitespace."""
    return bool(client_id and client_id.strip())
