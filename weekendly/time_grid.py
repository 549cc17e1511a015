"""Clock time <-> minute offsets on the bounded day axis.

All start times are kept as ``HH:MM`` text on activities and converted to
minutes since midnight for arithmetic. Slot rounding and pointer mapping live
here so the placement code never does pixel math itself.
"""
from __future__ import annotations

import math
import re

from weekendly.errors import InvalidFormat
from weekendly.settings import GridConfig

MINUTES_PER_DAY = 24 * 60
DEFAULT_TIME_TEXT = "08:00"

_TIME_RE = re.compile(r"^(\d{1,2}):(\d{2})$")


def clamp(value, low, high):
    return min(max(value, low), high)


def to_minutes(time_text: str) -> int:
    match = _TIME_RE.match(str(time_text or "").strip())
    if not match:
        raise InvalidFormat(f"Invalid time text: {time_text!r}")
    hour, minute = int(match.group(1)), int(match.group(2))
    if not (0 <= hour <= 23 and 0 <= minute <= 59):
        raise InvalidFormat(f"Time out of range: {time_text!r}")
    return hour * 60 + minute


def to_minutes_or(time_text: str, fallback: int) -> int:
    try:
        return to_minutes(time_text)
    except InvalidFormat:
        return fallback


def to_time_text(minutes: int) -> str:
    total = clamp(int(minutes), 0, MINUTES_PER_DAY - 1)
    return f"{total // 60:02d}:{total % 60:02d}"


def normalize_time(value) -> str:
    """Lenient form normalization: clamp out-of-range parts, default on garbage."""
    match = _TIME_RE.match(str(value or "").strip())
    if not match:
        return DEFAULT_TIME_TEXT
    hour = clamp(int(match.group(1)), 0, 23)
    minute = clamp(int(match.group(2)), 0, 59)
    return f"{hour:02d}:{minute:02d}"


def round_to_slot(minutes: float, slot_size: int) -> int:
    if slot_size <= 0:
        raise ValueError("slot_size must be positive")
    # Ties go to the larger multiple.
    return int(math.floor(minutes / slot_size + 0.5)) * slot_size


def ceil_to_slot(minutes: int, slot_size: int) -> int:
    return -(-int(minutes) // slot_size) * slot_size


def normalize_duration(duration, slot_size: int) -> int:
    try:
        value = float(duration)
    except (TypeError, ValueError):
        value = slot_size
    return max(slot_size, round_to_slot(value, slot_size))


def position_from_pointer(
    pointer_offset: float,
    track_height: float,
    day_start_minutes: int,
    day_end_minutes: int,
    slot_size: int,
    padding: float = 0.0,
) -> int:
    """Map a pointer offset inside the drop track to a slot-aligned minute.

    ``pointer_offset`` is measured from the top edge of the track element.
    The usable range excludes ``padding`` at both ends.
    """
    usable_height = max(1.0, float(track_height) - 2 * padding)
    ratio = clamp((float(pointer_offset) - padding) / usable_height, 0.0, 1.0)
    total = day_end_minutes - day_start_minutes
    minutes = day_start_minutes + round_to_slot(ratio * total, slot_size)
    return clamp(minutes, day_start_minutes, day_end_minutes)


def pointer_to_minutes(pointer_offset: float, track_height: float, grid: GridConfig) -> int:
    return position_from_pointer(
        pointer_offset,
        track_height,
        grid.day_start_minutes,
        grid.day_end_minutes,
        grid.slot_minutes,
        grid.track_padding,
    )
