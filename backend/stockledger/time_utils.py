"""
Canonical time handling for the ledger.

- Stored datetimes are UTC-naive (tzinfo=None).
- Inputs may be ISO-8601 strings with 'Z' or offsets, or datetimes; aware
  values are converted to UTC, naive values are taken as UTC already.
- Output is ISO-8601 with a trailing 'Z', second precision.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def normalize_datetime(dt: Optional[datetime]) -> Optional[datetime]:
    if dt is None or dt.tzinfo is None:
        return dt
    return dt.astimezone(timezone.utc).replace(tzinfo=None)


def parse_iso_datetime(value: Optional[str]) -> Optional[datetime]:
    """None or blank -> None; raises ValueError for anything unparseable."""
    if value is None or not value.strip():
        return None
    text = value.strip()
    if text[-1:] in ("Z", "z"):
        text = text[:-1] + "+00:00"
    return normalize_datetime(datetime.fromisoformat(text))


def coerce_as_of(value) -> Optional[datetime]:
    """
    Accept None, a datetime or an ISO string for as-of filters.

    As-of filters are inclusive everywhere: created_at <= as_of.
    """
    if value is None or isinstance(value, datetime):
        return normalize_datetime(value)
    if isinstance(value, str):
        return parse_iso_datetime(value)
    raise ValueError("invalid as_of")


def to_utc_z(dt: Optional[datetime]) -> Optional[str]:
    if dt is None:
        return None
    aware = dt.replace(tzinfo=timezone.utc) if dt.tzinfo is None else dt.astimezone(timezone.utc)
    return aware.replace(microsecond=0).isoformat().replace("+00:00", "Z")
