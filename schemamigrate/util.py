"""Small helpers shared by the runner."""

from __future__ import annotations

from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit


def to_unsigned(n: int) -> int:
    """Return ``n``, raising ValueError when it is negative."""
    if n < 0:
        raise ValueError(f"to_unsigned({n}) expects input >= 0")
    return n


def filter_custom_query(url: str) -> str:
    """Drop every query parameter whose name starts with ``x-``.

    The remaining parameters are re-encoded sorted by name.
    """
    parts = urlsplit(url)
    kept = [
        (key, value)
        for key, value in parse_qsl(parts.query, keep_blank_values=True)
        if not key.startswith("x-")
    ]
    kept.sort(key=lambda kv: kv[0])
    return urlunsplit(parts._replace(query=urlencode(kept)))