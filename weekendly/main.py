from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from weekendly.errors import ConflictError, NotFoundError, PayloadValidationError, StorageWriteFailure
from weekendly.routes import activities, data, plans, settings as settings_routes
from weekendly.services.planner import PlannerService
from weekendly.settings import Settings, get_settings
from weekendly.storage import FlatKeyStore, PersistenceStore


def build_store(settings: Settings) -> PersistenceStore:
    flat_store = FlatKeyStore(settings.flat_store_path or None, quota_bytes=settings.flat_store_quota_bytes)
    database_url = settings.database_url if settings.structured_backend_enabled else None
    return PersistenceStore(database_url, flat_store)


def create_app(settings: Settings | None = None, store: PersistenceStore | None = None) -> FastAPI:
    settings = settings or get_settings()
    logging.basicConfig(
        level=str(settings.log_level or "INFO").upper(),
        format="%(asctime)s %(levelname)s %(name)s - %(message)s",
    )
    app = FastAPI(title="Weekendly API", version="0.1.0")

    store = store or build_store(settings)
    app.state.settings = settings
    app.state.store = store
    app.state.planner = PlannerService(store, settings.grid_config())
    app.state.storage_status = None

    app.include_router(plans.router)
    app.include_router(activities.router)
    app.include_router(settings_routes.router)
    app.include_router(data.router)

    @app.on_event("startup")
    async def _startup():
        app.state.storage_status = await store.init()

    @app.on_event("shutdown")
    async def _shutdown():
        await store.close()

    @app.exception_handler(ConflictError)
    async def _conflict_handler(request: Request, exc: ConflictError):
        conflicting = getattr(exc.conflicting, "id", None)
        return JSONResponse(status_code=409, content={"detail": str(exc), "conflictsWith": conflicting})

    @app.exception_handler(NotFoundError)
    async def _not_found_handler(request: Request, exc: NotFoundError):
        return JSONResponse(status_code=404, content={"detail": str(exc)})

    @app.exception_handler(PayloadValidationError)
    async def _payload_handler(request: Request, exc: PayloadValidationError):
        return JSONResponse(status_code=422, content={"detail": str(exc)})

    @app.exception_handler(StorageWriteFailure)
    async def _storage_handler(request: Request, exc: StorageWriteFailure):
        logging.getLogger("weekendly").error("Storage write failed: %s", exc)
        committed = [a.to_payload() for a in exc.committed] if exc.committed is not None else None
        return JSONResponse(status_code=503, content={"detail": "Save failed", "activities": committed})

    @app.exception_handler(Exception)
    async def _unhandled_exception_handler(request: Request, exc: Exception):
        logging.getLogger("weekendly").exception("Unhandled exception: %s", exc)
        return JSONResponse(status_code=500, content={"detail": "Internal error"})

    @app.get("/health")
    async def health():
        return {"ok": True, "storage": app.state.storage_status}

    return app


app = create_app()
