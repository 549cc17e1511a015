from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Body, Depends, HTTPException, Query

from weekendly.auth import require_api_token
from weekendly.deps import get_planner
from weekendly.schemas import ActivityPatch, DropRequest, InsertRequest, MoveRequest
from weekendly.placement import start_from_text
from weekendly.services import catalog
from weekendly.services.planner import PlannerService
from weekendly.time_grid import to_time_text
from weekendly.viewport import DEFAULT_OVERSCAN, compute_window, timeline_window

router = APIRouter(dependencies=[Depends(require_api_token)])

ROW_HEIGHT = 72


def _committed(engine) -> dict:
    return {"activities": [a.to_payload() for a in engine.activities]}


@router.get("/v1/plans/{plan_id}/activities")
async def list_activities(plan_id: str, planner: PlannerService = Depends(get_planner)):
    engine = await planner.engine_for(plan_id)
    return {
        "saturday": [a.to_payload() for a in engine.by_day("saturday")],
        "sunday": [a.to_payload() for a in engine.by_day("sunday")],
    }


@router.post("/v1/plans/{plan_id}/activities", status_code=201)
async def insert_activity(plan_id: str, payload: InsertRequest, planner: PlannerService = Depends(get_planner)):
    activity = await planner.insert(plan_id, payload.day, payload.start, payload.activity)
    engine = await planner.engine_for(plan_id)
    return {"activity": activity.to_payload(), **_committed(engine)}


@router.post("/v1/plans/{plan_id}/drop")
async def drop_activity(plan_id: str, payload: DropRequest, planner: PlannerService = Depends(get_planner)):
    activity = await planner.drop(
        plan_id,
        payload.day,
        payload.pointer_offset,
        payload.track_height,
        activity_id=payload.activity_id,
        payload=payload.payload,
    )
    engine = await planner.engine_for(plan_id)
    return {"activity": activity.to_payload(), **_committed(engine)}


@router.post("/v1/plans/{plan_id}/activities/{activity_id}/move")
async def move_activity(
    plan_id: str,
    activity_id: str,
    payload: MoveRequest,
    planner: PlannerService = Depends(get_planner),
):
    engine = await planner.engine_for(plan_id)
    start = start_from_text(payload.start, engine.grid)
    activity = await engine.move(activity_id, payload.day, start)
    return {"activity": activity.to_payload(), **_committed(engine)}


@router.patch("/v1/plans/{plan_id}/activities/{activity_id}")
async def edit_activity(
    plan_id: str,
    activity_id: str,
    payload: ActivityPatch,
    planner: PlannerService = Depends(get_planner),
):
    engine = await planner.engine_for(plan_id)
    activity = await engine.resize_or_edit(activity_id, payload)
    return {"activity": activity.to_payload(), **_committed(engine)}


@router.delete("/v1/plans/{plan_id}/activities/{activity_id}")
async def remove_activity(plan_id: str, activity_id: str, planner: PlannerService = Depends(get_planner)):
    engine = await planner.engine_for(plan_id)
    await engine.remove(activity_id)
    return _committed(engine)


@router.post("/v1/plans/{plan_id}/clear")
async def clear_activities(plan_id: str, planner: PlannerService = Depends(get_planner)):
    engine = await planner.engine_for(plan_id)
    await engine.clear()
    return _committed(engine)


@router.post("/v1/plans/{plan_id}/undo")
async def undo(plan_id: str, planner: PlannerService = Depends(get_planner)):
    engine = await planner.engine_for(plan_id)
    changed = await engine.undo()
    return {"changed": changed, **_committed(engine)}


@router.post("/v1/plans/{plan_id}/redo")
async def redo(plan_id: str, planner: PlannerService = Depends(get_planner)):
    engine = await planner.engine_for(plan_id)
    changed = await engine.redo()
    return {"changed": changed, **_committed(engine)}


@router.get("/v1/catalog")
async def list_catalog():
    return {"items": [item.model_dump(by_alias=True) for item in catalog.DEFAULT_CATALOG]}


@router.post("/v1/plans/{plan_id}/catalog", status_code=201)
async def add_custom_catalog_item(
    plan_id: str,
    payload: Dict[str, Any] = Body(...),
    planner: PlannerService = Depends(get_planner),
):
    item = catalog.parse_catalog_item(payload)
    activity = await planner.add_catalog_item(plan_id, item)
    engine = await planner.engine_for(plan_id)
    return {"activity": activity.to_payload(), **_committed(engine)}


@router.post("/v1/plans/{plan_id}/catalog/{item_id}", status_code=201)
async def add_from_catalog(plan_id: str, item_id: str, planner: PlannerService = Depends(get_planner)):
    item = catalog.get_catalog_item(item_id)
    if item is None:
        raise HTTPException(status_code=404, detail="Catalog item not found")
    activity = await planner.add_catalog_item(plan_id, item)
    engine = await planner.engine_for(plan_id)
    return {"activity": activity.to_payload(), **_committed(engine)}


@router.get("/v1/plans/{plan_id}/suggest-slot")
async def suggest_slot(plan_id: str, planner: PlannerService = Depends(get_planner)):
    engine = await planner.engine_for(plan_id)
    minutes = engine.suggest_next_slot()
    return {"minutes": minutes, "start": to_time_text(minutes)}


@router.get("/v1/plans/{plan_id}/viewport")
async def viewport(
    plan_id: str,
    container_height: float = Query(..., gt=0),
    scroll_offset: float = Query(0, ge=0),
    overscan: int = Query(DEFAULT_OVERSCAN, ge=0),
    threshold: int | None = Query(None, ge=0),
    variable: bool = Query(False),
    planner: PlannerService = Depends(get_planner),
):
    engine = await planner.engine_for(plan_id)
    ordered = engine.by_day("saturday") + engine.by_day("sunday")
    kwargs = {"threshold": threshold} if threshold is not None else {}
    if variable:
        window = timeline_window(ordered, container_height, scroll_offset, overscan=overscan, **kwargs)
    else:
        window = compute_window(len(ordered), ROW_HEIGHT, container_height, scroll_offset, overscan=overscan, **kwargs)
    return {
        "windowed": window.windowed,
        "totalHeight": window.total_height,
        "items": [
            {
                "index": item.index,
                "start": item.start,
                "end": item.end,
                "size": item.size,
                "activity": ordered[item.index].to_payload(),
            }
            for item in window.items
        ],
    }
