"""
Validation and normalization of submitted URLs.

A submitted URL without a scheme is assumed to be https. The normalized form
has a lowercase scheme and host and at least a "/" path, so the same page
submitted twice is stored the same way.
"""

import re
from urllib.parse import urlsplit, urlunsplit

_SCHEME = re.compile(r"^[A-Za-z][A-Za-z0-9+.-]*://")
# Labels may contain underscores
_LABEL = r"[a-z0-9_]([a-z0-9_-]*[a-z0-9_])?"
_HOSTNAME = re.compile(rf"^{_LABEL}(\.{_LABEL})*\.?$")


class URLValidationError(ValueError):
    """A submitted URL is missing or malformed."""


def normalize_url(url: str | None) -> str:
    """
    Validate a submitted URL and return its normalized absolute form.

    Args:
        url: URL as typed by the user, with or without a scheme

    Returns:
        Absolute http(s) URL

    Raises:
        URLValidationError: If the URL is empty or malformed
    """
    if url is None or not url.strip():
        raise URLValidationError("URL is required")

    url = url.strip()
    if not _SCHEME.match(url):
        url = f"https://{url}"

    try:
        parts = urlsplit(url)
        port = parts.port
    except ValueError as e:
        raise URLValidationError("Invalid URL format") from e

    scheme = parts.scheme.lower()
    hostname = parts.hostname
    if scheme not in ("http", "https") or not hostname:
        raise URLValidationError("Invalid URL format")
    if any(ch.isspace() for ch in url):
        raise URLValidationError("Invalid URL format")

    if ":" in hostname:
        # IPv6 literal, urlsplit strips the brackets
        host = f"[{hostname}]"
    else:
        try:
            host = hostname.encode("idna").decode("ascii")
        except UnicodeError as e:
            raise URLValidationError("Invalid URL format") from e
        if not _HOSTNAME.match(host):
            raise URLValidationError("Invalid URL format")

    netloc = host if port is None else f"{host}:{port}"
    if parts.username is not None:
        userinfo = parts.username
        if parts.password is not None:
            userinfo = f"{userinfo}:{parts.password}"
        netloc = f"{userinfo}@{netloc}"

    return urlunsplit((scheme, netloc, parts.path or "/", parts.query, parts.fragment))
