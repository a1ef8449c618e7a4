import re
from datetime import datetime, timezone
from typing import Optional, Union

# Azure emits up to seven fractional digits; fromisoformat() accepts at most six.
_FRACTION_RE = re.compile(r"\.(\d+)")


def parse_iso_date(date_str: str) -> Optional[datetime]:
    """
    Parses an ISO 8601 timestamp as returned by the ARM and Graph APIs.

    A trailing 'Z' is read as UTC and fractional seconds are cut or padded
    to microseconds before handing the string to datetime.fromisoformat().

    Returns:
        A datetime object or None if parsing fails.
    """
    if not date_str:
        return None

    if date_str.endswith("Z"):
        date_str = date_str[:-1] + "+00:00"
    date_str = _FRACTION_RE.sub(lambda m: "." + m.group(1)[:6].ljust(6, "0"), date_str, count=1)

    try:
        return datetime.fromisoformat(date_str)
    except ValueError:
        return None


def ensure_utc(value: Union[datetime, str]) -> datetime:
    """Returns an aware UTC datetime; strings are parsed and naive values taken as UTC."""
    if isinstance(value, str):
        parsed = parse_iso_date(value)
        if parsed is None:
            raise ValueError(f"Invalid date string: {value}")
        value = parsed

    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def to_epoch_seconds(value: Union[datetime, str]) -> float:
    """Seconds since the Unix epoch, fractional part included."""
    return ensure_utc(value).timestamp()
