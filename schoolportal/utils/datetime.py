# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""DateTime utilities for SchoolPortal.

All Python datetimes handled by the services are timezone-aware UTC. Values
read back from the document store, however, come in several physical
representations depending on who wrote them: native timestamps, epoch
milliseconds written by older clients, ISO strings, or ``{"seconds": ...}``
maps from JSON exports. ``to_instant`` folds all of them into one comparable
datetime; listings sort on that, never on the raw values.

Usage:
------
    from schoolportal.utils.datetime import utc_now, to_instant

    now = utc_now()
    rows.sort(key=lambda row: to_instant(row.get("createdAt")), reverse=True)
"""

from datetime import datetime, timedelta, timezone
from typing import Any

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def utc_now() -> datetime:
    """Get current UTC time as timezone-aware datetime.

    Returns:
        Timezone-aware datetime representing current UTC time.
    """
    return datetime.now(timezone.utc)


def now_ms() -> int:
    """Current time as integer epoch milliseconds."""
    return int(utc_now().timestamp() * 1000)


def utc_from_ms(value: float) -> datetime:
    """Create a timezone-aware UTC datetime from epoch milliseconds."""
    return EPOCH + timedelta(milliseconds=value)


def ensure_utc(dt: datetime | None) -> datetime | None:
    """Ensure a datetime is timezone-aware UTC.

    Args:
        dt: A datetime object (naive or aware) or None.

    Returns:
        Timezone-aware UTC datetime or None. Naive values are assumed UTC.
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def to_instant(value: Any) -> datetime:
    """Normalize a stored timestamp to a comparable UTC datetime.

    Accepted representations:
        - ``datetime`` (including Firestore ``DatetimeWithNanoseconds``)
        - numbers, read as epoch milliseconds
        - ISO-8601 strings (a trailing ``Z`` is accepted)
        - mappings with ``seconds`` / ``_seconds`` and optional nanos
        - objects exposing ``to_datetime()`` or ``timestamp()``

    Anything else, including ``None``, maps to the Unix epoch so it sorts
    last in descending listings.

    Args:
        value: Raw value read from a document.

    Returns:
        Timezone-aware UTC datetime.
    """
    if value is None:
        return EPOCH
    if isinstance(value, datetime):
        return ensure_utc(value)
    if isinstance(value, bool):
        return EPOCH
    if isinstance(value, (int, float)):
        try:
            return utc_from_ms(value)
        except OverflowError:
            return EPOCH
    if isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            return ensure_utc(datetime.fromisoformat(text))
        except ValueError:
            return EPOCH
    if isinstance(value, dict):
        seconds = value.get("seconds", value.get("_seconds"))
        if isinstance(seconds, (int, float)) and not isinstance(seconds, bool):
            nanos = value.get("nanoseconds", value.get("_nanoseconds")) or 0
            return EPOCH + timedelta(seconds=seconds, microseconds=nanos / 1000)
        return EPOCH
    to_datetime = getattr(value, "to_datetime", None)
    if callable(to_datetime):
        return ensure_utc(to_datetime())
    timestamp = getattr(value, "timestamp", None)
    if callable(timestamp):
        return EPOCH + timedelta(seconds=timestamp())
    return EPOCH


def format_datetime(dt: datetime | None) -> str | None:
    """Format datetime to ISO 8601 string, or None."""
    if dt is None:
        return None
    return ensure_utc(dt).isoformat()
