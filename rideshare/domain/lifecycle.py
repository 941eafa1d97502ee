"""Time rules for the ride lifecycle: staleness and retention."""

from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone

from .errors import InvalidInputError

# An OPEN ride is closed once this much time has passed since departure.
STALE_AFTER = timedelta(hours=6)

# Retention windows, measured from departure.
RETENTION = timedelta(days=7)
CONFIRMED_RETENTION = timedelta(days=30)

# Listing keeps rides that departed up to this long ago.
ACTIVE_LISTING_WINDOW = timedelta(hours=12)

# Popular destinations look back this far.
POPULARITY_WINDOW = timedelta(days=30)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Naive datetimes are taken to be UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_instant(value: str | datetime) -> datetime:
    """Parse an ISO-8601 instant, raising ``InvalidInputError`` on garbage."""
    if isinstance(value, datetime):
        return as_utc(value)
    if not isinstance(value, str) or not value.strip():
        raise InvalidInputError("Invalid date format")
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        return as_utc(datetime.fromisoformat(text))
    except ValueError:
        raise InvalidInputError("Invalid date format") from None


def parse_day(value: str) -> tuple[datetime, datetime]:
    """Return the [start, end) UTC bounds of an ISO calendar day."""
    try:
        day = date.fromisoformat(value.strip()[:10])
    except ValueError:
        raise InvalidInputError("Invalid date format") from None
    start = datetime.combine(day, time.min, tzinfo=timezone.utc)
    return start, start + timedelta(days=1)


def retention_deadline(departure: datetime, has_confirmed: bool) -> datetime:
    window = CONFIRMED_RETENTION if has_confirmed else RETENTION
    return as_utc(departure) + window


def stale_cutoff(now: datetime) -> datetime:
    """Rides departing at or before this instant are stale if still OPEN."""
    return as_utc(now) - STALE_AFTER
