from __future__ import annotations

from fastapi import Request

from weekendly.services.planner import PlannerService
from weekendly.settings import Settings
from weekendly.storage import PersistenceStore


def get_store(request: Request) -> PersistenceStore:
    return request.app.state.store


def get_planner(request: Request) -> PlannerService:
    return request.app.state.planner


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings
