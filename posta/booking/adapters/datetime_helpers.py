import datetime as dt
from zoneinfo import ZoneInfo

from loguru import logger


def utc_now() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


def resolve_timezone(name: str) -> dt.tzinfo:
    """Resolve a timezone name, falling back to UTC if invalid."""
    try:
        return ZoneInfo(name)
    except Exception:
        logger.warning("Invalid clinic timezone '{}'; defaulting to UTC", name)
        return dt.timezone.utc


def parse_instant(value: object, tz: dt.tzinfo = dt.timezone.utc) -> dt.datetime | None:
    """Parse a datetime or ISO 8601 string into an aware datetime.

    Naive values are interpreted in ``tz``.  A trailing ``Z`` is accepted
    as UTC.  Returns ``None`` for anything that cannot be parsed.
    """
    if isinstance(value, dt.datetime):
        parsed = value
    elif isinstance(value, str) and value.strip():
        text = value.strip()
        if text[-1] in "Zz":
            text = text[:-1] + "+00:00"
        try:
            parsed = dt.datetime.fromisoformat(text)
        except ValueError:
            return None
    else:
        return None

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=tz)
    return parsed


def weekday_name(value: dt.datetime, tz: dt.tzinfo) -> str:
    """Return the English weekday name of ``value`` in ``tz`` (``"Monday"``)."""
    return value.astimezone(tz).strftime("%A")
