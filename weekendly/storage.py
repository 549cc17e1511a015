"""Plan, activity and settings persistence.

Two backends share one interface:

* ``StructuredBackend``: SQLAlchemy async engine with ``plans``,
  ``activities`` (secondary index rows keyed by plan id), ``settings`` and
  ``sync`` tables.
* ``FlatKeyBackend``: a single key -> JSON text namespace kept in one JSON
  file. Activities live inside the plan blob.

``PersistenceStore.init()`` picks exactly one of them for the lifetime of the
store. There is no retry and no migration between them.
"""
from __future__ import annotations

import json
import logging
import os
import tempfile
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional, Union
from uuid import uuid4

from pydantic import ValidationError
from sqlalchemy import text as sql_text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine

from weekendly.conflicts import check_schedule
from weekendly.db import build_engine, build_sessionmaker
from weekendly.db_init import ACTIVITIES_TABLE, PLANS_TABLE, SETTINGS_TABLE, init_db
from weekendly.errors import BackendUnavailable, NotFoundError, PayloadValidationError, StorageWriteFailure
from weekendly.schemas import (
    Activity,
    PersistenceStats,
    Plan,
    PlanDraft,
    PlanMetadata,
    PlanPatch,
    format_validation_error,
)

logger = logging.getLogger(__name__)

STATUS_READY = "ready"
STATUS_DEGRADED = "degraded"

PLAN_KEY_PREFIX = "plan."
SETTINGS_KEY_PREFIX = "settings."
PLAN_ID_PREFIX = "plan_"

EXPORTED_SETTING_KEYS = [
    "theme",
    "colorScheme",
    "autoSave",
    "defaultDuration",
    "timeFormat",
    "notifications",
    "startTime",
    "endTime",
    "weekendStart",
    "showTutorial",
    "compactMode",
]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_plan_id() -> str:
    return f"{PLAN_ID_PREFIX}{int(time.time() * 1000)}_{uuid4().hex[:6]}"


def _dumps(value: Any) -> str:
    return json.dumps(value, ensure_ascii=False, default=str)


def _plan_json(plan: Plan) -> str:
    return _dumps(plan.to_payload())


def _activity_rows(plan_id: str, activities: Iterable[Activity]) -> list[dict]:
    return [
        {
            "plan_id": plan_id,
            "id": activity.id,
            "title": activity.title,
            "category": activity.category,
            "day": activity.day,
            "start": activity.start,
            "duration_mins": activity.duration_mins,
            "mood": activity.mood,
            "notes": activity.notes,
        }
        for activity in activities
    ]


class StructuredBackend:
    kind = "structured"

    def __init__(self, engine: AsyncEngine):
        self.engine = engine
        self._sessions = build_sessionmaker(engine)

    @classmethod
    async def open(cls, database_url: str) -> "StructuredBackend":
        engine = None
        try:
            engine = build_engine(database_url)
            await init_db(engine)
        except Exception as exc:
            if engine is not None:
                await engine.dispose()
            raise BackendUnavailable(f"Structured backend unavailable: {exc}") from exc
        return cls(engine)

    async def close(self) -> None:
        await self.engine.dispose()

    @staticmethod
    def _row_to_plan(row) -> Plan:
        metadata = json.loads(row["metadata_json"]) if row.get("metadata_json") else None
        return Plan.model_validate(
            {
                "id": row["id"],
                "theme": row["theme"],
                "activities": json.loads(row.get("activities_json") or "[]"),
                "createdAt": row["created_at"],
                "updatedAt": row["updated_at"],
                "version": int(row.get("version") or 1),
                "metadata": metadata,
            }
        )

    @staticmethod
    def _plan_params(plan: Plan) -> dict:
        return {
            "id": plan.id,
            "theme": plan.theme,
            "activities_json": _dumps([a.to_payload() for a in plan.activities]),
            "metadata_json": _dumps(plan.metadata.to_payload()) if plan.metadata else None,
            "is_template": int(plan.is_template),
            "version": plan.version,
            "created_at": plan.created_at.isoformat(),
            "updated_at": plan.updated_at.isoformat(),
        }

    async def _insert_activity_rows(self, session, plan_id: str, activities: Iterable[Activity]) -> None:
        rows = _activity_rows(plan_id, activities)
        if not rows:
            return
        await session.execute(
            sql_text(
                f"""
                INSERT INTO {ACTIVITIES_TABLE}
                (plan_id, id, title, category, day, start, duration_mins, mood, notes)
                VALUES (:plan_id, :id, :title, :category, :day, :start, :duration_mins, :mood, :notes)
                """
            ),
            rows,
        )

    async def insert_plan(self, plan: Plan) -> None:
        try:
            async with self._sessions() as session:
                await session.execute(
                    sql_text(
                        f"""
                        INSERT INTO {PLANS_TABLE}
                        (id, theme, activities_json, metadata_json, is_template, version, created_at, updated_at)
                        VALUES
                        (:id, :theme, :activities_json, :metadata_json, :is_template, :version, :created_at, :updated_at)
                        """
                    ),
                    self._plan_params(plan),
                )
                await self._insert_activity_rows(session, plan.id, plan.activities)
                await session.commit()
        except SQLAlchemyError as exc:
            raise StorageWriteFailure(f"Failed to save plan {plan.id}") from exc

    async def write_plan(self, plan: Plan, replace_activities: bool) -> None:
        try:
            async with self._sessions() as session:
                result = await session.execute(
                    sql_text(
                        f"""
                        UPDATE {PLANS_TABLE}
                        SET theme = :theme,
                            activities_json = :activities_json,
                            metadata_json = :metadata_json,
                            is_template = :is_template,
                            version = :version,
                            updated_at = :updated_at
                        WHERE id = :id
                        """
                    ),
                    self._plan_params(plan),
                )
                if result.rowcount == 0:
                    await session.rollback()
                    raise NotFoundError("plan", plan.id)
                if replace_activities:
                    # Full replace inside the same transaction as the plan row.
                    await session.execute(
                        sql_text(f"DELETE FROM {ACTIVITIES_TABLE} WHERE plan_id = :plan_id"),
                        {"plan_id": plan.id},
                    )
                    await self._insert_activity_rows(session, plan.id, plan.activities)
                await session.commit()
        except SQLAlchemyError as exc:
            raise StorageWriteFailure(f"Failed to update plan {plan.id}") from exc

    async def read_plan(self, plan_id: str) -> Optional[Plan]:
        async with self._sessions() as session:
            row = (await session.execute(
                sql_text(f"SELECT * FROM {PLANS_TABLE} WHERE id = :id"),
                {"id": plan_id},
            )).mappings().fetchone()
        return self._row_to_plan(dict(row)) if row else None

    async def read_all_plans(self) -> list[Plan]:
        async with self._sessions() as session:
            rows = (await session.execute(
                sql_text(f"SELECT * FROM {PLANS_TABLE} ORDER BY created_at ASC, id ASC")
            )).mappings().all()
        return [self._row_to_plan(dict(row)) for row in rows]

    async def list_plan_activities(self, plan_id: str) -> list[Activity]:
        async with self._sessions() as session:
            rows = (await session.execute(
                sql_text(
                    f"""
                    SELECT id, title, category, day, start, duration_mins, mood, notes
                    FROM {ACTIVITIES_TABLE}
                    WHERE plan_id = :plan_id
                    ORDER BY day, start
                    """
                ),
                {"plan_id": plan_id},
            )).mappings().all()
        return [Activity.model_validate(dict(row)) for row in rows]

    async def remove_plan(self, plan_id: str) -> None:
        try:
            async with self._sessions() as session:
                await session.execute(
                    sql_text(f"DELETE FROM {ACTIVITIES_TABLE} WHERE plan_id = :plan_id"),
                    {"plan_id": plan_id},
                )
                await session.execute(
                    sql_text(f"DELETE FROM {PLANS_TABLE} WHERE id = :plan_id"),
                    {"plan_id": plan_id},
                )
                await session.commit()
        except SQLAlchemyError as exc:
            raise StorageWriteFailure(f"Failed to delete plan {plan_id}") from exc

    async def get_setting(self, key: str) -> Any:
        async with self._sessions() as session:
            row = (await session.execute(
                sql_text(f"SELECT value FROM {SETTINGS_TABLE} WHERE key = :key"),
                {"key": key},
            )).fetchone()
        if not row or row[0] is None:
            return None
        return json.loads(row[0])

    async def set_setting(self, key: str, value: Any) -> None:
        try:
            async with self._sessions() as session:
                await session.execute(
                    sql_text(
                        f"INSERT INTO {SETTINGS_TABLE} (key, value, updated_at) VALUES (:key, :value, :updated_at) "
                        "ON CONFLICT(key) DO UPDATE SET value=EXCLUDED.value, updated_at=EXCLUDED.updated_at"
                    ),
                    {"key": key, "value": _dumps(value), "updated_at": _utcnow().isoformat()},
                )
                await session.commit()
        except SQLAlchemyError as exc:
            raise StorageWriteFailure(f"Failed to save setting {key}") from exc

    async def counts(self) -> tuple[int, int]:
        async with self._sessions() as session:
            plans = (await session.execute(sql_text(f"SELECT COUNT(*) FROM {PLANS_TABLE}"))).scalar_one()
            activities = (await session.execute(sql_text(f"SELECT COUNT(*) FROM {ACTIVITIES_TABLE}"))).scalar_one()
        return int(plans or 0), int(activities or 0)


class FlatKeyStore:
    """String key -> string value namespace persisted as one JSON object.

    ``quota_bytes`` caps the serialized size; a write past it fails the way a
    full browser key-value store does. ``path=None`` keeps it in memory only.
    """

    def __init__(self, path: Optional[Union[str, Path]] = None, quota_bytes: Optional[int] = None):
        self.path = Path(path) if path else None
        self.quota_bytes = quota_bytes
        self._data: dict[str, str] = self._load()

    def _load(self) -> dict[str, str]:
        if self.path is None or not self.path.exists():
            return {}
        try:
            payload = json.loads(self.path.read_text(encoding="utf-8") or "{}")
        except (OSError, ValueError) as exc:
            logger.warning("Ignoring unreadable flat store %s: %s", self.path, exc)
            return {}
        if not isinstance(payload, dict):
            return {}
        return {str(k): str(v) for k, v in payload.items()}

    def _flush(self, data: dict[str, str]) -> None:
        serialized = json.dumps(data, ensure_ascii=False)
        if self.quota_bytes is not None and len(serialized.encode("utf-8")) > self.quota_bytes:
            raise StorageWriteFailure("Flat store quota exceeded")
        if self.path is None:
            return
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(prefix=".flat-", dir=str(self.path.parent))
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(serialized)
            os.replace(tmp_name, self.path)
        except OSError as exc:
            raise StorageWriteFailure(f"Failed to write flat store {self.path}") from exc

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        data = dict(self._data)
        data[key] = value
        self._flush(data)
        self._data = data

    def remove(self, key: str) -> None:
        if key not in self._data:
            return
        data = dict(self._data)
        del data[key]
        self._flush(data)
        self._data = data

    def keys(self) -> list[str]:
        return list(self._data.keys())


class FlatKeyBackend:
    kind = "flat"

    def __init__(self, store: FlatKeyStore):
        self.store = store

    async def close(self) -> None:
        return None

    @staticmethod
    def plan_key(plan_id: str) -> str:
        return f"{PLAN_KEY_PREFIX}{plan_id}"

    def _decode_plan(self, key: str, raw: Optional[str]) -> Optional[Plan]:
        if not raw:
            return None
        try:
            return Plan.model_validate(json.loads(raw))
        except (ValueError, ValidationError) as exc:
            logger.warning("Failed to parse plan data under %s: %s", key, exc)
            return None

    async def insert_plan(self, plan: Plan) -> None:
        self.store.set(self.plan_key(plan.id), _plan_json(plan))

    async def write_plan(self, plan: Plan, replace_activities: bool) -> None:
        key = self.plan_key(plan.id)
        if self.store.get(key) is None:
            raise NotFoundError("plan", plan.id)
        self.store.set(key, _plan_json(plan))

    async def read_plan(self, plan_id: str) -> Optional[Plan]:
        key = self.plan_key(plan_id)
        return self._decode_plan(key, self.store.get(key))

    async def read_all_plans(self) -> list[Plan]:
        plans = []
        for key in self.store.keys():
            if not key.startswith(PLAN_KEY_PREFIX + PLAN_ID_PREFIX):
                continue
            plan = self._decode_plan(key, self.store.get(key))
            if plan is not None:
                plans.append(plan)
        plans.sort(key=lambda p: (p.created_at, p.id))
        return plans

    async def list_plan_activities(self, plan_id: str) -> list[Activity]:
        plan = await self.read_plan(plan_id)
        return list(plan.activities) if plan else []

    async def remove_plan(self, plan_id: str) -> None:
        self.store.remove(self.plan_key(plan_id))

    async def get_setting(self, key: str) -> Any:
        raw = self.store.get(f"{SETTINGS_KEY_PREFIX}{key}")
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except ValueError:
            logger.warning("Ignoring unreadable setting %s", key)
            return None

    async def set_setting(self, key: str, value: Any) -> None:
        self.store.set(f"{SETTINGS_KEY_PREFIX}{key}", _dumps(value))

    async def counts(self) -> tuple[int, int]:
        plans = await self.read_all_plans()
        return len(plans), sum(len(plan.activities) for plan in plans)

    async def write_theme_mirror(self, theme: str, activities: List[Activity]) -> None:
        self.store.set(self.plan_key(theme), _dumps([a.to_payload() for a in activities]))

    async def read_theme_mirror(self, theme: str) -> Optional[list[Activity]]:
        raw = self.store.get(self.plan_key(theme))
        if not raw:
            return None
        try:
            return [Activity.model_validate(item) for item in json.loads(raw)]
        except (ValueError, TypeError, ValidationError) as exc:
            logger.warning("Ignoring unreadable theme mirror %s: %s", theme, exc)
            return None


Backend = Union[StructuredBackend, FlatKeyBackend]


class PersistenceStore:
    def __init__(
        self,
        database_url: Optional[str],
        flat_store: FlatKeyStore,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.database_url = database_url
        self.flat_store = flat_store
        self.clock = clock
        self._backend: Optional[Backend] = None

    async def init(self) -> str:
        if self._backend is not None:
            return self.status
        if self.database_url:
            try:
                self._backend = await StructuredBackend.open(self.database_url)
                logger.info("Structured backend ready")
            except BackendUnavailable as exc:
                logger.warning("%s; using flat-key store for this session", exc)
        else:
            logger.warning("No structured backend configured; using flat-key store")
        if self._backend is None:
            self._backend = FlatKeyBackend(self.flat_store)
        return self.status

    async def close(self) -> None:
        if self._backend is not None:
            await self._backend.close()

    @property
    def backend(self) -> Backend:
        if self._backend is None:
            raise RuntimeError("PersistenceStore.init() has not been awaited")
        return self._backend

    @property
    def status(self) -> str:
        return STATUS_READY if isinstance(self._backend, StructuredBackend) else STATUS_DEGRADED

    # Plans

    async def save_plan(self, draft: Union[PlanDraft, Dict[str, Any]]) -> str:
        if not isinstance(draft, PlanDraft):
            draft = _validate_draft(draft)
        check_schedule(draft.activities)
        now = self.clock()
        plan = Plan(
            id=new_plan_id(),
            theme=draft.theme,
            activities=list(draft.activities),
            created_at=now,
            updated_at=now,
            version=1,
            metadata=draft.metadata,
        )
        await self.backend.insert_plan(plan)
        logger.info("Saved plan %s (%s activities)", plan.id, len(plan.activities))
        return plan.id

    async def update_plan(self, plan_id: str, patch: Union[PlanPatch, Dict[str, Any]]) -> Plan:
        if not isinstance(patch, PlanPatch):
            try:
                patch = PlanPatch.model_validate(patch or {})
            except ValidationError as exc:
                raise PayloadValidationError(format_validation_error(exc)) from exc
        existing = await self.backend.read_plan(plan_id)
        if existing is None:
            raise NotFoundError("plan", plan_id)
        changes = {name: getattr(patch, name) for name in patch.model_fields_set}
        if "activities" in changes:
            check_schedule(changes["activities"])
        # Version is advisory: never taken from the patch, never checked.
        merged = {
            **existing.model_dump(),
            **changes,
            "updated_at": self.clock(),
            "version": existing.version + 1,
        }
        try:
            updated = Plan.model_validate(merged)
        except ValidationError as exc:
            raise PayloadValidationError(format_validation_error(exc)) from exc
        await self.backend.write_plan(updated, replace_activities="activities" in changes)
        return updated

    async def get_plan(self, plan_id: str) -> Optional[Plan]:
        return await self.backend.read_plan(plan_id)

    async def get_all_plans(self) -> list[Plan]:
        return await self.backend.read_all_plans()

    async def get_plan_activities(self, plan_id: str) -> list[Activity]:
        return await self.backend.list_plan_activities(plan_id)

    async def delete_plan(self, plan_id: str) -> None:
        await self.backend.remove_plan(plan_id)

    def activity_sink(self, plan_id: str):
        async def _sink(activities: List[Activity]) -> None:
            await self.update_plan(plan_id, PlanPatch(activities=activities))

        return _sink

    # Theme-keyed plans

    async def get_theme_plan(self, theme: str) -> Optional[Plan]:
        for plan in await self.get_all_plans():
            if plan.theme == theme and not plan.is_template:
                return plan
        return None

    async def save_theme_plan(self, theme: str, activities: List[Activity]) -> Plan:
        existing = await self.get_theme_plan(theme)
        if existing is not None:
            plan = await self.update_plan(existing.id, PlanPatch(activities=activities))
        else:
            plan_id = await self.save_plan(
                PlanDraft(theme=theme, activities=activities, metadata=PlanMetadata(is_template=False))
            )
            plan = await self.get_plan(plan_id)
        if isinstance(self.backend, FlatKeyBackend):
            await self.backend.write_theme_mirror(theme, activities)
        return plan

    async def load_theme_activities(self, theme: str) -> Optional[list[Activity]]:
        plan = await self.get_theme_plan(theme)
        if plan is not None:
            return list(plan.activities)
        if isinstance(self.backend, FlatKeyBackend):
            return await self.backend.read_theme_mirror(theme)
        return None

    # Settings

    async def save_setting(self, key: str, value: Any) -> None:
        await self.backend.set_setting(key, value)

    async def get_setting(self, key: str) -> Any:
        return await self.backend.get_setting(key)

    async def get_stats(self) -> PersistenceStats:
        total_plans, total_activities = await self.backend.counts()
        return PersistenceStats(
            total_plans=total_plans,
            total_activities=total_activities,
            storage_used=0,
            last_sync=self.clock(),
        )

    # Export / import

    async def export_all_data(self) -> dict:
        plans = await self.get_all_plans()
        settings: dict[str, Any] = {}
        for key in EXPORTED_SETTING_KEYS:
            value = await self.get_setting(key)
            if value is not None:
                settings[key] = value
        return {"plans": [plan.to_payload() for plan in plans], "settings": settings}

    async def import_data(self, data: Dict[str, Any]) -> list[str]:
        if not isinstance(data, dict):
            raise PayloadValidationError("Import data must be an object")
        raw_plans = data.get("plans") or []
        raw_settings = data.get("settings") or {}
        if not isinstance(raw_plans, list) or not isinstance(raw_settings, dict):
            raise PayloadValidationError("Import data must contain a plans list and a settings object")
        drafts = [_validate_draft(item) for item in raw_plans]
        for draft in drafts:
            check_schedule(draft.activities)
        new_ids = []
        for draft in drafts:
            new_ids.append(await self.save_plan(draft))
        for key, value in raw_settings.items():
            await self.save_setting(str(key), value)
        return new_ids


def _validate_draft(data: Any) -> PlanDraft:
    try:
        return PlanDraft.model_validate(data)
    except ValidationError as exc:
        raise PayloadValidationError(format_validation_error(exc)) from exc
