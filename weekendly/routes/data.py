from __future__ import annotations

import logging
from typing import Any, Dict

from fastapi import APIRouter, Body, Depends, Query
from fastapi.responses import PlainTextResponse

from weekendly.auth import require_api_token
from weekendly.deps import get_app_settings, get_planner, get_store
from weekendly.schemas import PlanJsonRequest, ShareLoadRequest, SharePayload
from weekendly.services import exports
from weekendly.services.planner import PlannerService
from weekendly.settings import Settings
from weekendly.storage import PersistenceStore

logger = logging.getLogger(__name__)

router = APIRouter(dependencies=[Depends(require_api_token)])


@router.get("/v1/stats")
async def stats(store: PersistenceStore = Depends(get_store)):
    result = await store.get_stats()
    return result.to_payload()


@router.get("/v1/export")
async def export_all(store: PersistenceStore = Depends(get_store)):
    return await store.export_all_data()


@router.post("/v1/import")
async def import_all(
    payload: Dict[str, Any] = Body(...),
    store: PersistenceStore = Depends(get_store),
):
    plan_ids = await store.import_data(payload)
    logger.info("Imported %s plans", len(plan_ids))
    return {"ok": True, "planIds": plan_ids}


@router.get("/v1/plans/{plan_id}/export.ics")
async def export_ics(
    plan_id: str,
    planner: PlannerService = Depends(get_planner),
    settings: Settings = Depends(get_app_settings),
):
    engine = await planner.engine_for(plan_id)
    body = exports.build_ics(
        engine.activities,
        app_name=settings.app_name,
        timezone_name=settings.calendar_timezone,
    )
    return PlainTextResponse(
        body,
        media_type="text/calendar",
        headers={"Content-Disposition": 'attachment; filename="weekend-plan.ics"'},
    )


@router.get("/v1/plans/{plan_id}/export.txt")
async def export_text(plan_id: str, planner: PlannerService = Depends(get_planner)):
    engine = await planner.engine_for(plan_id)
    return PlainTextResponse(exports.format_schedule_text(engine.activities))


@router.get("/v1/plans/{plan_id}/export.json")
async def export_json(
    plan_id: str,
    store: PersistenceStore = Depends(get_store),
    planner: PlannerService = Depends(get_planner),
):
    engine = await planner.engine_for(plan_id)
    plan = await store.get_plan(plan_id)
    return PlainTextResponse(
        exports.plan_to_json(plan.theme if plan else None, engine.activities),
        media_type="application/json",
    )


@router.get("/v1/plans/{plan_id}/share")
async def share(
    plan_id: str,
    base_url: str = Query(""),
    store: PersistenceStore = Depends(get_store),
    planner: PlannerService = Depends(get_planner),
):
    engine = await planner.engine_for(plan_id)
    plan = await store.get_plan(plan_id)
    theme = plan.theme if plan else None
    return {
        "url": exports.share_url(base_url, theme, engine.activities),
        "fragment": exports.encode_share_fragment(theme, engine.activities),
    }


async def _load(payload: SharePayload, planner: PlannerService) -> dict:
    plan = await planner.load_shared(payload)
    return {
        "theme": payload.theme,
        "activities": [a.to_payload() for a in payload.activities],
        "plan": plan.to_payload() if plan else None,
    }


@router.post("/v1/share/load")
async def load_share(payload: ShareLoadRequest, planner: PlannerService = Depends(get_planner)):
    decoded = exports.decode_share_fragment(payload.fragment)
    result = await _load(decoded, planner)
    result["url"] = exports.strip_share_fragment(payload.fragment)
    return result


@router.post("/v1/plans/import-json")
async def import_plan_json(payload: PlanJsonRequest, planner: PlannerService = Depends(get_planner)):
    return await _load(exports.parse_plan_json(payload.text), planner)
