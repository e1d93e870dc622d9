"""Datetime parsing helpers for integrations (Luma payloads, sync state)."""

from __future__ import annotations

import re
from datetime import datetime, timezone


def ensure_utc(value: datetime | None) -> datetime | None:
    """Treat naive datetimes as UTC; convert aware ones to UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_iso_datetime(raw_value: object) -> datetime | None:
    """
    Parse an ISO 8601 timestamp (or epoch seconds/milliseconds) to aware UTC.

    Returns None for empty or unparseable values.
    """
    if isinstance(raw_value, datetime):
        return ensure_utc(raw_value)
    if not isinstance(raw_value, str):
        return None
    value = raw_value.strip()
    if not value:
        return None

    # Epoch timestamps (seconds or milliseconds)
    if re.fullmatch(r"\d{10,13}", value):
        ts = int(value)
        if len(value) == 13:
            ts = ts / 1000
        return datetime.fromtimestamp(ts, tz=timezone.utc)

    try:
        return ensure_utc(datetime.fromisoformat(value.replace("Z", "+00:00")))
    except ValueError:
        return None


def isoformat_utc(value: datetime | None) -> str | None:
    """Serialize as ISO 8601 with a Z suffix (the format Luma accepts)."""
    value = ensure_utc(value)
    if value is None:
        return None
    return value.strftime("%Y-%m-%dT%H:%M:%S.") + f"{value.microsecond // 1000:03d}Z"
