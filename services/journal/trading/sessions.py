"""Trading session detection and journal date helpers (all UTC)."""

import re
from datetime import date, datetime, timezone

from errors import ValidationError

_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")

# (name, start hour, end hour) in UTC, checked in order; first match wins.
SESSION_WINDOWS = [
    ("NY Open", 14.5, 16.0),
    ("Pre-NY", 12.0, 14.5),
    ("London", 7.0, 12.0),
    ("Asia", 0.0, 7.0),
    ("NY Session", 16.0, 21.0),
]
AFTER_HOURS = "After Hours"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def today_str() -> str:
    return utc_now().date().isoformat()


def parse_date(value: str, field: str = "date") -> str:
    """Validate a ``YYYY-MM-DD`` string and return it unchanged."""
    if not isinstance(value, str) or not _DATE_RE.match(value):
        raise ValidationError(f"Invalid {field} format. Use YYYY-MM-DD", error="Invalid date")
    try:
        date.fromisoformat(value)
    except ValueError as e:
        raise ValidationError(f"Invalid {field}: {value}", error="Invalid date") from e
    return value


def parse_timestamp(value: str | None) -> datetime:
    """ISO timestamp -> aware UTC datetime. Naive values are taken as UTC."""
    if not value:
        return utc_now()
    try:
        dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError as e:
        raise ValidationError(f"Invalid timestamp: {value}", error="Invalid date") from e
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def detect_session(when: datetime | None = None) -> str:
    when = (when or utc_now()).astimezone(timezone.utc)
    hour = when.hour + when.minute / 60
    for name, start, end in SESSION_WINDOWS:
        if start <= hour < end:
            return name
    return AFTER_HOURS
