from __future__ import annotations

import logging
from typing import Iterable, Optional

from weekendly.errors import ConflictError, PayloadValidationError
from weekendly.schemas import Activity

logger = logging.getLogger(__name__)


def intervals_overlap(start_a: int, end_a: int, start_b: int, end_b: int) -> bool:
    # Half-open [start, end): touching intervals do not overlap.
    return start_a < end_b and start_b < end_a


def find_conflict(
    existing: Iterable[Activity],
    candidate: Activity,
    exclude_id: Optional[str] = None,
) -> Optional[Activity]:
    c_start = candidate.start_minutes
    c_end = c_start + candidate.duration_mins
    for activity in existing:
        if activity.day != candidate.day or activity.id == exclude_id:
            continue
        if intervals_overlap(c_start, c_end, activity.start_minutes, activity.end_minutes):
            logger.debug(
                "Conflict: %s %s+%s overlaps %s %s+%s",
                candidate.title,
                candidate.start,
                candidate.duration_mins,
                activity.title,
                activity.start,
                activity.duration_mins,
            )
            return activity
    return None


def has_conflict(
    existing: Iterable[Activity],
    candidate: Activity,
    exclude_id: Optional[str] = None,
) -> bool:
    return find_conflict(existing, candidate, exclude_id) is not None


def check_schedule(activities: Iterable[Activity]) -> None:
    """Reject a whole activity list that repeats an id or overlaps itself."""
    accepted: list[Activity] = []
    seen: set[str] = set()
    for candidate in activities:
        if candidate.id in seen:
            raise PayloadValidationError(f"Duplicate activity id: {candidate.id}")
        seen.add(candidate.id)
        conflicting = find_conflict(accepted, candidate)
        if conflicting is not None:
            raise ConflictError(candidate, conflicting)
        accepted.append(candidate)
