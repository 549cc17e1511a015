from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException

from weekendly.auth import require_api_token
from weekendly.deps import get_planner, get_store
from weekendly.schemas import THEMES, PlanDraft, PlanPatch, ThemePlanRequest
from weekendly.services.planner import PlannerService
from weekendly.storage import PersistenceStore

logger = logging.getLogger(__name__)

router = APIRouter(dependencies=[Depends(require_api_token)])


def _check_theme(theme: str) -> None:
    if theme not in THEMES:
        raise HTTPException(status_code=400, detail="Invalid theme")


@router.post("/v1/plans", status_code=201)
async def create_plan(payload: PlanDraft, store: PersistenceStore = Depends(get_store)):
    plan_id = await store.save_plan(payload)
    plan = await store.get_plan(plan_id)
    return plan.to_payload()


@router.get("/v1/plans")
async def list_plans(store: PersistenceStore = Depends(get_store)):
    plans = await store.get_all_plans()
    return {"items": [plan.to_payload() for plan in plans]}


@router.get("/v1/plans/theme/{theme}")
async def get_theme_plan(theme: str, store: PersistenceStore = Depends(get_store)):
    _check_theme(theme)
    plan = await store.get_theme_plan(theme)
    if plan is None:
        activities = await store.load_theme_activities(theme)
        return {"plan": None, "activities": [a.to_payload() for a in activities or []]}
    return {"plan": plan.to_payload(), "activities": [a.to_payload() for a in plan.activities]}


@router.put("/v1/plans/theme/{theme}")
async def save_theme_plan(
    theme: str,
    payload: ThemePlanRequest,
    store: PersistenceStore = Depends(get_store),
    planner: PlannerService = Depends(get_planner),
):
    _check_theme(theme)
    plan = await store.save_theme_plan(theme, payload.activities)
    planner.forget(plan.id)
    return plan.to_payload()


@router.get("/v1/plans/{plan_id}")
async def get_plan(plan_id: str, store: PersistenceStore = Depends(get_store)):
    plan = await store.get_plan(plan_id)
    if plan is None:
        raise HTTPException(status_code=404, detail="Plan not found")
    return plan.to_payload()


@router.patch("/v1/plans/{plan_id}")
async def patch_plan(
    plan_id: str,
    payload: PlanPatch,
    store: PersistenceStore = Depends(get_store),
    planner: PlannerService = Depends(get_planner),
):
    plan = await store.update_plan(plan_id, payload)
    if "activities" in payload.model_fields_set:
        planner.forget(plan_id)
    return plan.to_payload()


@router.delete("/v1/plans/{plan_id}")
async def delete_plan(
    plan_id: str,
    store: PersistenceStore = Depends(get_store),
    planner: PlannerService = Depends(get_planner),
):
    await store.delete_plan(plan_id)
    planner.forget(plan_id)
    logger.info("Deleted plan %s", plan_id)
    return {"ok": True}
