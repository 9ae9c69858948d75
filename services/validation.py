"""URL normalization and validation for analysis requests."""
from __future__ import annotations

import re
from urllib.parse import urlparse

from services.errors import InvalidInputError

_VALID_HOSTNAME = re.compile(r"^[a-zA-Z0-9.-]+$")
_PRIVATE_IP = re.compile(r"^(10\.|172\.(1[6-9]|2[0-9]|3[01])\.|192\.168\.)")
_DUPLICATE_SLASHES = re.compile(r"([^:]/)/+")
_LOCAL_HOSTS = {"localhost", "127.0.0.1", "0.0.0.0", "::1"}


def normalize_url(raw: object) -> str:
    """Return a normalized absolute URL or raise ``InvalidInputError``."""
    if not isinstance(raw, str) or not raw.strip():
        raise InvalidInputError("URL is required")

    candidate = raw.strip()
    if not candidate.startswith(("http://", "https://")):
        candidate = f"https://{candidate}"
    candidate = _DUPLICATE_SLASHES.sub(r"\1", candidate)

    try:
        parsed = urlparse(candidate)
        hostname = parsed.hostname or ""
    except ValueError as exc:
        raise InvalidInputError(
            "Please enter a valid URL format (e.g., fast.com or https://example.com)"
        ) from exc

    if hostname in _LOCAL_HOSTS:
        raise InvalidInputError("Local URLs cannot be analyzed. Please use a public website.")
    if len(hostname) < 3:
        raise InvalidInputError("Please enter a valid domain name")
    if "." not in hostname:
        raise InvalidInputError("Please enter a valid domain (e.g., example.com)")
    if not _VALID_HOSTNAME.match(hostname):
        raise InvalidInputError("Domain contains invalid characters")
    if _PRIVATE_IP.match(hostname):
        raise InvalidInputError("Private IP addresses cannot be analyzed. Please use a public website.")

    return candidate
