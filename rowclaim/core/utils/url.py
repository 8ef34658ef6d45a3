# rowclaim/core/utils/url.py
"""Database URL helpers for logging."""

from __future__ import annotations

from urllib.parse import urlparse, urlunparse


def mask_database_url(url: str) -> str:
    """Replace the password in a database URL with ``***``.

    Falls back to plain string splitting when ``urlparse`` rejects the URL.
    """
    try:
        parsed = urlparse(url)
        if not parsed.password:
            return url
        netloc = parsed.netloc.replace(f':{parsed.password}@', ':***@')
        return urlunparse(parsed._replace(netloc=netloc))
    except Exception:
        if '@' not in url:
            return url
        credentials, host_part = url.split('@', 1)
        return f"{credentials.rsplit(':', 1)[0]}:***@{host_part}"
