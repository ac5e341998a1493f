"""Timestamp parsing and formatting shared by the client, replay and cache layers."""

from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Optional


def parse_timestamp(value: object) -> Optional[datetime]:
    """Parse an Azure DevOps ISO8601 timestamp into a timezone-aware UTC datetime.

    Returns ``None`` for empty or unparseable values; callers treat those as
    absent rather than failing the item.
    """
    if isinstance(value, datetime):
        parsed = value
    else:
        if not value or not isinstance(value, str):
            return None
        text = value.strip()
        normalized = text[:-1] + "+00:00" if text.endswith("Z") else text
        try:
            parsed = datetime.fromisoformat(normalized)
        except ValueError:
            return None

    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def format_timestamp(value: datetime) -> str:
    """Format a datetime as UTC ISO8601 with a ``Z`` suffix."""
    utc_value = value.astimezone(timezone.utc)
    return utc_value.isoformat().replace("+00:00", "Z")


def format_date(value: Optional[date]) -> str:
    if value is None:
        return ""
    return value.isoformat()


def days_between(start: datetime, end: date) -> int:
    """Whole calendar days from ``start`` to ``end``, never negative.

    Only calendar dates are compared, so partial days are truncated and an
    interval that opens and closes on the same day contributes zero.
    """
    end_date = end.date() if isinstance(end, datetime) else end
    return max(0, (end_date - start.date()).days)
