"""Utility helpers for Happenings."""

from __future__ import annotations

from datetime import UTC, datetime
import re
import unicodedata
import uuid

_slug_invalid = re.compile(r"[^a-z0-9]+")


def utcnow() -> datetime:
    """Return a naive UTC datetime."""

    return datetime.now(UTC).replace(tzinfo=None)


def slugify(value: str) -> str:
    """Return a canonical slug suitable for URLs."""
    value = (
        unicodedata.normalize("NFKD", value or "")
        .encode("ascii", "ignore")
        .decode("ascii")
    )
    value = value.strip().lower()
    value = _slug_invalid.sub("-", value)
    value = value.strip("-")
    return value


def is_uuid(value: str | None) -> bool:
    """Return True when ``value`` parses as a UUID."""
    if not value:
        return False
    try:
        uuid.UUID(str(value))
    except ValueError:
        return False
    return True


def clean_optional(value: str | None) -> str | None:
    """Strip whitespace and collapse empty strings to ``None``."""
    if value is None:
        return None
    cleaned = str(value).strip()
    return cleaned or None
