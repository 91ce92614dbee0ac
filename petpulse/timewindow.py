"""
Minute-offset helpers shared by booking, calendar and notification code
"""
import re
from datetime import datetime

from .errors import InvalidArgument

MINUTES_PER_DAY = 24 * 60

DATE_ISO_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def minutes_to_label(minutes: int) -> str:
    """Convert a 0-1439 minute offset to 'hh:mm AM/PM'"""
    if isinstance(minutes, bool) or not isinstance(minutes, int):
        raise InvalidArgument(f"minutes must be an integer, got {minutes!r}")
    if minutes < 0 or minutes >= MINUTES_PER_DAY:
        raise InvalidArgument(f"minutes out of range 0-{MINUTES_PER_DAY - 1}: {minutes}")

    hours, mins = divmod(minutes, 60)
    hours_12 = (hours + 11) % 12 + 1
    suffix = "PM" if hours >= 12 else "AM"
    return f"{hours_12:02d}:{mins:02d} {suffix}"


def end_label(minutes: int) -> str:
    """Label for the end of a window; 1440 is the midnight that closes the day"""
    if minutes == MINUTES_PER_DAY:
        return minutes_to_label(0)
    return minutes_to_label(minutes)


def window_label(start: int, end: int) -> str:
    return f"{minutes_to_label(start)}–{end_label(end)}"


def is_valid_date_iso(value) -> bool:
    """True if value is a 'YYYY-MM-DD' string naming a real calendar date"""
    if not isinstance(value, str) or not DATE_ISO_PATTERN.match(value):
        return False
    try:
        datetime.strptime(value, "%Y-%m-%d")
    except ValueError:
        return False
    return True


def intervals_overlap(start_a: int, end_a: int, start_b: int, end_b: int) -> bool:
    # half-open intervals: touching endpoints do not overlap
    return start_a < end_b and start_b < end_a
