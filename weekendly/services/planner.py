from __future__ import annotations

import logging
from typing import Optional

from weekendly.conflicts import check_schedule
from weekendly.errors import NotFoundError
from weekendly.placement import PlacementEngine, start_from_text
from weekendly.schemas import Activity, ActivityDraft, Plan, PlanDraft, PlanMetadata, SharePayload, parse_drag_payload
from weekendly.services import catalog
from weekendly.settings import GridConfig
from weekendly.storage import PersistenceStore
from weekendly.time_grid import pointer_to_minutes, to_minutes_or

logger = logging.getLogger(__name__)


class PlannerService:
    """Keeps one in-memory PlacementEngine per plan, bound to the store.

    The engine's list is what the UI renders; the store receives the full list
    after every committed change.
    """

    def __init__(self, store: PersistenceStore, grid: GridConfig):
        self.store = store
        self.grid = grid
        self._engines: dict[str, PlacementEngine] = {}

    async def engine_for(self, plan_id: str) -> PlacementEngine:
        engine = self._engines.get(plan_id)
        if engine is not None:
            return engine
        plan = await self.store.get_plan(plan_id)
        if plan is None:
            raise NotFoundError("plan", plan_id)
        engine = PlacementEngine(self.grid, plan.activities, sink=self.store.activity_sink(plan_id))
        self._engines[plan_id] = engine
        return engine

    def forget(self, plan_id: str) -> None:
        self._engines.pop(plan_id, None)

    async def insert(self, plan_id: str, day: str, start_text: str, draft: ActivityDraft) -> Activity:
        engine = await self.engine_for(plan_id)
        start = start_from_text(start_text, self.grid)
        return await engine.insert(day, start, draft)

    async def drop(
        self,
        plan_id: str,
        day: str,
        pointer_offset: float,
        track_height: float,
        activity_id: Optional[str] = None,
        payload=None,
    ) -> Activity:
        engine = await self.engine_for(plan_id)
        minutes = pointer_to_minutes(pointer_offset, track_height, self.grid)
        if activity_id:
            return await engine.move(activity_id, day, minutes)
        draft = parse_drag_payload(payload)
        return await engine.insert(day, minutes, draft)

    async def add_catalog_item(self, plan_id: str, item: catalog.CatalogItem) -> Activity:
        engine = await self.engine_for(plan_id)
        draft = catalog.to_draft(item, self.grid.slot_minutes)
        day = item.day or "saturday"
        if item.start:
            start = to_minutes_or(item.start, engine.suggest_next_slot())
        else:
            start = engine.suggest_next_slot()
        return await engine.insert(day, start, draft)

    async def replace_activities(self, plan_id: str, activities: list[Activity]) -> list[Activity]:
        engine = await self.engine_for(plan_id)
        await engine.replace_all(activities)
        return engine.activities

    async def load_shared(self, payload: SharePayload) -> Optional[Plan]:
        """Make a decoded share/JSON payload the current plan for its theme."""
        if payload.theme is None:
            return None
        check_schedule(payload.activities)
        plan = await self.store.get_theme_plan(payload.theme)
        if plan is None:
            plan_id = await self.store.save_plan(
                PlanDraft(theme=payload.theme, metadata=PlanMetadata(is_template=False))
            )
        else:
            plan_id = plan.id
        await self.replace_activities(plan_id, list(payload.activities))
        logger.info("Loaded shared %s plan into %s", payload.theme, plan_id)
        return await self.store.get_plan(plan_id)
