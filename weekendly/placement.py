"""Insert, move, edit and remove activities on the two-day grid.

Every mutation is decided against the in-memory list first (conflicts and
missing ids fail before anything changes), then committed, then handed to the
commit sink as the full activity list. A sink failure leaves the in-memory
commit in place and re-raises as StorageWriteFailure.
"""
from __future__ import annotations

import logging
import time
from typing import Awaitable, Callable, Iterable, List, Optional
from uuid import uuid4

from pydantic import ValidationError

from weekendly.conflicts import check_schedule, find_conflict
from weekendly.errors import ConflictError, NotFoundError, PayloadValidationError, StorageWriteFailure
from weekendly.history import ScheduleHistory
from weekendly.schemas import Activity, ActivityDraft, ActivityPatch, format_validation_error
from weekendly.settings import GridConfig
from weekendly.time_grid import (
    ceil_to_slot,
    normalize_duration,
    normalize_time,
    round_to_slot,
    to_minutes,
    to_minutes_or,
    to_time_text,
)

logger = logging.getLogger(__name__)

CommitSink = Callable[[List[Activity]], Awaitable[None]]

SUGGEST_EMPTY_DEFAULT = 10 * 60
SUGGEST_FLOOR = 7 * 60
SUGGEST_STEP = 30
UNTITLED = "Untitled"
_REQUIRED_FIELDS = {"title", "category", "day", "start", "duration_mins"}


def new_activity_id(prefix: str = "act") -> str:
    return f"{prefix}_{int(time.time() * 1000)}_{uuid4().hex[:6]}"


def suggest_next_slot(
    activities: Iterable[Activity],
    day: str = "saturday",
    grid: Optional[GridConfig] = None,
) -> int:
    grid = grid or GridConfig()
    day_acts = [a for a in activities if a.day == day]
    if not day_acts:
        return SUGGEST_EMPTY_DEFAULT
    latest_end = max([SUGGEST_FLOOR] + [a.end_minutes for a in day_acts])
    rounded = ceil_to_slot(latest_end, SUGGEST_STEP)
    return min(rounded, grid.day_end_minutes - SUGGEST_STEP)


class PlacementEngine:
    def __init__(
        self,
        grid: GridConfig,
        activities: Optional[Iterable[Activity]] = None,
        sink: Optional[CommitSink] = None,
        history: Optional[ScheduleHistory] = None,
    ):
        self.grid = grid
        self._activities: list[Activity] = list(activities or [])
        self._sink = sink
        self.history = history or ScheduleHistory()

    @property
    def activities(self) -> list[Activity]:
        return list(self._activities)

    def by_day(self, day: str) -> list[Activity]:
        return sorted((a for a in self._activities if a.day == day), key=lambda a: a.start_minutes)

    def get(self, activity_id: str) -> Activity:
        for activity in self._activities:
            if activity.id == activity_id:
                return activity
        raise NotFoundError("activity", activity_id)

    # Normalization

    def _fit_duration(self, duration) -> int:
        slot = self.grid.slot_minutes
        window = self.grid.day_end_minutes - self.grid.day_start_minutes
        longest = max(slot, (window // slot) * slot)
        return min(normalize_duration(duration, slot), longest)

    def _fit_start(self, start_minutes: int, duration: int) -> int:
        start = round_to_slot(start_minutes, self.grid.slot_minutes)
        start = min(start, self.grid.day_end_minutes - duration)
        return max(start, self.grid.day_start_minutes)

    # Operations

    async def insert(self, day: str, start_minutes: int, draft: ActivityDraft, activity_id: Optional[str] = None) -> Activity:
        duration = self._fit_duration(draft.duration_mins)
        start = self._fit_start(start_minutes, duration)
        candidate = Activity(
            id=activity_id or new_activity_id(),
            title=draft.title,
            category=draft.category,
            day=day,
            start=to_time_text(start),
            duration_mins=duration,
            mood=draft.mood,
            notes=draft.notes or "",
        )
        self._check(candidate)
        await self._commit([*self._activities, candidate])
        return candidate

    async def move(self, activity_id: str, day: str, start_minutes: int) -> Activity:
        found = self.get(activity_id)
        start = self._fit_start(start_minutes, found.duration_mins)
        candidate = found.model_copy(update={"day": day, "start": to_time_text(start)})
        self._check(candidate, exclude_id=activity_id)
        await self._commit([candidate if a.id == activity_id else a for a in self._activities])
        return candidate

    async def resize_or_edit(self, activity_id: str, patch) -> Activity:
        found = self.get(activity_id)
        if isinstance(patch, ActivityPatch):
            changes = patch.model_dump(exclude_unset=True)
        else:
            changes = dict(patch or {})
            changes.pop("id", None)
            if "durationMins" in changes:
                changes["duration_mins"] = changes.pop("durationMins")

        merged = found.model_dump()
        # null on a required field means "leave as is"
        merged.update(
            {k: v for k, v in changes.items() if k in merged and not (v is None and k in _REQUIRED_FIELDS)}
        )
        merged["title"] = str(merged.get("title") or "").strip() or UNTITLED
        duration = self._fit_duration(merged.get("duration_mins"))
        start_text = normalize_time(merged.get("start"))
        start = self._fit_start(to_minutes_or(start_text, self.grid.day_start_minutes), duration)
        merged["duration_mins"] = duration
        merged["start"] = to_time_text(start)
        try:
            candidate = Activity.model_validate(merged)
        except ValidationError as exc:
            raise PayloadValidationError(format_validation_error(exc)) from exc

        self._check(candidate, exclude_id=activity_id)
        await self._commit([candidate if a.id == activity_id else a for a in self._activities])
        return candidate

    async def remove(self, activity_id: str) -> None:
        remaining = [a for a in self._activities if a.id != activity_id]
        if len(remaining) == len(self._activities):
            return
        await self._commit(remaining)

    async def clear(self) -> None:
        if not self._activities:
            return
        await self._commit([])

    async def replace_all(self, activities: Iterable[Activity]) -> None:
        """Swap in a whole list (share link / JSON import); not merged."""
        incoming = list(activities)
        check_schedule(incoming)
        await self._commit(incoming)

    def suggest_next_slot(self, day: str = "saturday") -> int:
        return suggest_next_slot(self._activities, day, self.grid)

    async def undo(self) -> bool:
        previous = self.history.undo(self._activities)
        if previous is None:
            return False
        self._activities = previous
        await self._persist()
        return True

    async def redo(self) -> bool:
        following = self.history.redo(self._activities)
        if following is None:
            return False
        self._activities = following
        await self._persist()
        return True

    # Internals

    def _check(self, candidate: Activity, exclude_id: Optional[str] = None) -> None:
        conflicting = find_conflict(self._activities, candidate, exclude_id)
        if conflicting is not None:
            logger.info("Rejected %s on %s at %s: overlaps %s", candidate.title, candidate.day, candidate.start, conflicting.id)
            raise ConflictError(candidate, conflicting)

    async def _commit(self, activities: list[Activity]) -> None:
        self.history.record(self._activities)
        self._activities = activities
        await self._persist()

    async def _persist(self) -> None:
        if self._sink is None:
            return
        try:
            await self._sink(list(self._activities))
        except StorageWriteFailure as exc:
            logger.exception("Failed to persist %s activities", len(self._activities))
            exc.committed = list(self._activities)
            raise


def start_from_text(value: str, grid: GridConfig) -> int:
    """Parse a requested start, falling back to the window start on bad text."""
    try:
        return to_minutes(value)
    except ValueError:
        return grid.day_start_minutes
