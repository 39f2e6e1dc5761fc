"""
Date and Time utilities

This module handles XMLTV timestamp parsing and the conversions needed to store
programme times as ISO8601 strings plus epoch seconds.
"""
from datetime import datetime, timedelta, timezone
import logging


logger = logging.getLogger(__name__)

_XMLTV_TIME_FORMATS = {
    14: '%Y%m%d%H%M%S',
    12: '%Y%m%d%H%M',
    8: '%Y%m%d',
}


class DateFormatError(ValueError):
    """Raised when date format is invalid"""
    pass


def utc_now() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def parse_xmltv_time(time_str: str) -> datetime:
    """
    Convert XMLTV time format to a UTC datetime

    Args:
        time_str: XMLTV time like '20080715003000 -0600' (seconds and offset optional)

    Returns:
        Timezone-aware datetime in UTC

    Raises:
        DateFormatError: If the value is not a valid XMLTV timestamp
    """
    if not time_str or not time_str.strip():
        raise DateFormatError("Empty XMLTV time value")

    # Split time and timezone
    parts = time_str.strip().split()
    time_part = parts[0]  # YYYYMMDDHHMMSS
    tz_part = parts[1] if len(parts) > 1 else '+0000'

    # Some feeds glue the offset to the time: 20080715003000+0100
    for sign in ('+', '-'):
        if sign in time_part:
            time_part, offset = time_part.split(sign, 1)
            tz_part = sign + offset
            break

    fmt = _XMLTV_TIME_FORMATS.get(len(time_part))
    if fmt is None:
        raise DateFormatError(f"Invalid XMLTV time value: '{time_str}'")

    try:
        dt = datetime.strptime(time_part, fmt)

        # Parse timezone offset (±HHMM)
        if tz_part.upper() in ('Z', 'UTC', 'GMT'):
            tz_offset_minutes = 0
        else:
            tz_sign = 1 if tz_part[0] == '+' else -1
            tz_hours = int(tz_part[1:3])
            tz_mins = int(tz_part[3:5] or 0)
            tz_offset_minutes = tz_sign * (tz_hours * 60 + tz_mins)
    except (ValueError, IndexError) as e:
        raise DateFormatError(f"Invalid XMLTV time value: '{time_str}'") from e

    # Convert to UTC
    try:
        dt_utc = dt - timedelta(minutes=tz_offset_minutes)
    except OverflowError as e:
        raise DateFormatError(f"XMLTV time out of range: '{time_str}'") from e

    return dt_utc.replace(tzinfo=timezone.utc)


def to_iso8601(value: datetime) -> str:
    """Render a UTC datetime as ISO8601 with millisecond precision and a Z suffix."""
    return value.astimezone(timezone.utc).isoformat(timespec='milliseconds').replace('+00:00', 'Z')


def to_epoch_seconds(value: datetime) -> int:
    """Epoch seconds, truncated."""
    return int(value.timestamp())
