import re
from datetime import datetime, timedelta, timezone
from typing import Optional, Union

_DURATION_RE = re.compile(r"^(-?)(\d+)([smhd])$")
_UNIT_SECONDS = {"s": 1, "m": 60, "h": 3600, "d": 86400}


def parse_iso_date(date_str: str) -> Optional[datetime]:
    """
    Parses an ISO 8601 date string into a datetime object.
    Handles the 'Z' suffix and RFC 3339 timestamps carrying nanoseconds,
    which is what the Google APIs return.

    Returns:
        A datetime object or None if parsing fails.
    """
    if not date_str:
        return None

    if date_str.endswith("Z"):
        date_str = date_str[:-1] + "+00:00"

    # datetime.fromisoformat() accepts at most 6 fractional digits.
    match = re.match(r"^(.*T\d{2}:\d{2}:\d{2})\.(\d+)(.*)$", date_str)
    if match:
        date_str = f"{match.group(1)}.{match.group(2)[:6].ljust(6, '0')}{match.group(3)}"

    try:
        return datetime.fromisoformat(date_str)
    except ValueError:
        return None


def ensure_utc(dt: Union[datetime, str]) -> datetime:
    """
    Ensures a datetime object is timezone-aware and in UTC.
    If input is a string, it parses it first.
    If input is naive, it assumes UTC.
    """
    if isinstance(dt, str):
        parsed = parse_iso_date(dt)
        if not parsed:
            raise ValueError(f"Invalid date string: {dt}")
        dt = parsed

    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    else:
        dt = dt.astimezone(timezone.utc)

    return dt


def to_iso_z(dt: datetime) -> str:
    """
    Converts a datetime to an ISO 8601 string with 'Z' suffix for UTC.
    """
    return ensure_utc(dt).isoformat().replace("+00:00", "Z")


def parse_duration(value: str) -> timedelta:
    """
    Parses a duration string like '1m', '5m', '1h' or '-75m' into a timedelta.

    Raises:
        ValueError: If the string is not a valid duration.
    """
    match = _DURATION_RE.match(value.strip().lower()) if value else None
    if not match:
        raise ValueError(f"Invalid duration format: '{value}'. Use 's', 'm', 'h' or 'd'.")

    sign, amount, unit = match.groups()
    seconds = int(amount) * _UNIT_SECONDS[unit]
    return timedelta(seconds=-seconds if sign else seconds)
