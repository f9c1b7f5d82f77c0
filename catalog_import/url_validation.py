"""URL validation and sanitization utilities.

Source exports and remote APIs are untrusted; asset URLs are cleaned before
they reach the store.
"""

import re
from typing import Optional
from urllib.parse import urlparse

__all__ = [
    "URLValidationError",
    "sanitize_url",
    "is_safe_asset_url",
    "validate_base_url",
    "DANGEROUS_SCHEMES",
]


class URLValidationError(Exception):
    """Raised when URL validation fails."""
    pass


# Dangerous URL schemes to reject
DANGEROUS_SCHEMES = {"javascript", "data", "vbscript", "file"}

CONTROL_CHARS_RE = re.compile(r"[\x00-\x1f\x7f-\x9f]")


def sanitize_url(url: Optional[str]) -> str:
    """Strip whitespace, control characters and encoded null bytes."""
    if not url:
        return ""
    url = CONTROL_CHARS_RE.sub("", url.strip())
    return url.replace("%00", "")


def is_safe_asset_url(url: Optional[str]) -> bool:
    """True if ``url`` may be stored as an image/document location.

    Relative paths are accepted (exports sometimes carry them); scripting and
    inline-data schemes are not.
    """
    cleaned = sanitize_url(url)
    if not cleaned:
        return False
    scheme = urlparse(cleaned).scheme.lower()
    return scheme not in DANGEROUS_SCHEMES


def validate_base_url(url: str) -> str:
    """Validate a remote API base URL.

    Returns:
        The sanitized URL without a trailing slash

    Raises:
        URLValidationError: If the URL is not absolute http(s)
    """
    cleaned = sanitize_url(url)
    if not cleaned:
        raise URLValidationError("Empty URL")

    parsed = urlparse(cleaned)
    if parsed.scheme not in ("http", "https"):
        raise URLValidationError(f"Unsupported scheme '{parsed.scheme}' in {cleaned}")
    if not parsed.netloc:
        raise URLValidationError(f"Missing host in {cleaned}")

    return cleaned.rstrip("/")
