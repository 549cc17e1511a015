from __future__ import annotations

from fastapi import APIRouter, Depends

from weekendly.auth import require_api_token
from weekendly.deps import get_store
from weekendly.schemas import SettingValue
from weekendly.storage import PersistenceStore
from weekendly.time_grid import normalize_time

router = APIRouter(dependencies=[Depends(require_api_token)])

TIME_SETTING_KEYS = {"startTime", "endTime"}


@router.get("/v1/settings/{key}")
async def get_setting(key: str, store: PersistenceStore = Depends(get_store)):
    return {"key": key, "value": await store.get_setting(key)}


@router.put("/v1/settings/{key}")
async def put_setting(key: str, payload: SettingValue, store: PersistenceStore = Depends(get_store)):
    value = payload.value
    if key in TIME_SETTING_KEYS:
        value = normalize_time(value)
    await store.save_setting(key, value)
    return {"key": key, "value": value}
