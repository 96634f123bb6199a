"""
Schedule time parsing for Social Timeline

Accepted forms:
    - Relative: "in 5m", "in 2h", "in 1d", "in 30 minutes", "in 2 hours"
    - Time of day: "15:00", "15:30:10", "3pm", "3:30 pm" (today, or
      tomorrow when that time has already passed)
    - Date and time: "2030-01-15 14:30", "2030-01-15T14:30:00"
    - ISO 8601 with offset: "2030-01-15T14:30:00Z", "2030-01-15T14:30:00+01:00"

Times without an offset are local time. The result is always UTC.
"""

import re
from datetime import datetime, timedelta, timezone
from typing import Optional

SHORT_RELATIVE_PATTERN = re.compile(r"^(\d+)\s*([smhdw])$")
LONG_RELATIVE_PATTERN = re.compile(r"^(\d+)\s+([a-z]+)$")
CLOCK_PATTERN = re.compile(r"^(\d{1,2}):(\d{2})(?::(\d{2}))?$")
MERIDIEM_PATTERN = re.compile(r"^(\d{1,2})(?::(\d{2}))?\s*(am|pm)$")

SHORT_UNITS = {
    "s": "seconds",
    "m": "minutes",
    "h": "hours",
    "d": "days",
    "w": "weeks",
}

LONG_UNITS = {
    "second": "seconds",
    "sec": "seconds",
    "minute": "minutes",
    "min": "minutes",
    "hour": "hours",
    "hr": "hours",
    "day": "days",
    "week": "weeks",
}

SUPPORTED_FORMATS = (
    "Supported formats:\n"
    "  - Relative: 'in 5m', 'in 2h', 'in 1d', 'in 30 minutes'\n"
    "  - Time today: '15:00', '3pm', '15:30'\n"
    "  - Date+time: 'YYYY-MM-DD 15:00'"
)


def parse_schedule_time(value: str, now: Optional[datetime] = None) -> datetime:
    """Parse a schedule time into an aware UTC datetime

    Args:
        value: User input in one of the accepted forms
        now: Reference time, defaults to the current time

    Raises:
        ValueError: when the input matches none of the accepted forms
    """
    now = now or datetime.now(timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    text = (value or "").strip()
    lowered = text.lower()

    if lowered.startswith("in "):
        return now + _parse_relative(lowered[3:].strip())

    parsed = _parse_datetime(text)
    if parsed is not None:
        return parsed

    parsed = _parse_time_of_day(lowered, now)
    if parsed is not None:
        return parsed

    raise ValueError(f"Could not parse schedule time: '{text}'\n{SUPPORTED_FORMATS}")


def _parse_relative(text: str) -> timedelta:
    match = SHORT_RELATIVE_PATTERN.match(text)
    if match:
        return timedelta(**{SHORT_UNITS[match.group(2)]: int(match.group(1))})

    match = LONG_RELATIVE_PATTERN.match(text)
    if match:
        unit = match.group(2)
        if unit.endswith("s"):
            unit = unit[:-1]
        if unit not in LONG_UNITS:
            raise ValueError(f"Unknown time unit: {match.group(2)}")
        return timedelta(**{LONG_UNITS[unit]: int(match.group(1))})

    raise ValueError(
        f"Could not parse relative time: '{text}'\n"
        "Examples: '5m', '2h', '1d', '30 minutes', '2 hours'"
    )


def _parse_datetime(text: str) -> Optional[datetime]:
    # Date-only and time-only strings are handled elsewhere
    if len(text) < 16:
        return None
    if text[-1] in "Zz":
        text = text[:-1] + "+00:00"

    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None

    # A naive datetime is local time; astimezone() interprets it that way
    return parsed.astimezone(timezone.utc)


def _parse_time_of_day(text: str, now: datetime) -> Optional[datetime]:
    match = CLOCK_PATTERN.match(text)
    if match:
        hour, minute = int(match.group(1)), int(match.group(2))
        second = int(match.group(3) or 0)
    else:
        match = MERIDIEM_PATTERN.match(text.replace(" ", ""))
        if not match:
            return None
        hour, minute, second = int(match.group(1)), int(match.group(2) or 0), 0
        if not 1 <= hour <= 12:
            raise ValueError(f"Invalid hour in '{text}'")
        if match.group(3) == "pm" and hour != 12:
            hour += 12
        elif match.group(3) == "am" and hour == 12:
            hour = 0

    if hour > 23 or minute > 59 or second > 59:
        raise ValueError(f"Invalid time of day: '{text}'")

    local_now = now.astimezone()
    candidate = local_now.replace(
        hour=hour, minute=minute, second=second, microsecond=0
    )
    if candidate <= local_now:
        candidate += timedelta(days=1)
    return candidate.astimezone(timezone.utc)
