from __future__ import annotations

from sqlalchemy import text as sql_text
from sqlalchemy.ext.asyncio import AsyncEngine


PLANS_TABLE = "plans"
ACTIVITIES_TABLE = "activities"
SETTINGS_TABLE = "settings"
SYNC_TABLE = "sync"


async def init_db(engine: AsyncEngine) -> None:
    async with engine.begin() as conn:
        await conn.execute(
            sql_text(
                f"""
                CREATE TABLE IF NOT EXISTS {PLANS_TABLE} (
                    id TEXT PRIMARY KEY,
                    theme TEXT NOT NULL,
                    activities_json TEXT NOT NULL,
                    metadata_json TEXT,
                    is_template INTEGER DEFAULT 0,
                    version INTEGER NOT NULL DEFAULT 1,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
                """
            )
        )
        await conn.execute(
            sql_text(
                f"""
                CREATE TABLE IF NOT EXISTS {ACTIVITIES_TABLE} (
                    plan_id TEXT NOT NULL,
                    id TEXT NOT NULL,
                    title TEXT NOT NULL,
                    category TEXT NOT NULL,
                    day TEXT NOT NULL,
                    start TEXT NOT NULL,
                    duration_mins INTEGER NOT NULL,
                    mood TEXT,
                    notes TEXT,
                    PRIMARY KEY (plan_id, id)
                )
                """
            )
        )
        await conn.execute(
            sql_text(
                f"""
                CREATE TABLE IF NOT EXISTS {SETTINGS_TABLE} (
                    key TEXT PRIMARY KEY,
                    value TEXT,
                    updated_at TEXT
                )
                """
            )
        )
        await conn.execute(
            sql_text(
                f"""
                CREATE TABLE IF NOT EXISTS {SYNC_TABLE} (
                    key TEXT PRIMARY KEY,
                    value TEXT,
                    updated_at TEXT
                )
                """
            )
        )
        for index_sql in (
            f"CREATE INDEX IF NOT EXISTS idx_{PLANS_TABLE}_theme ON {PLANS_TABLE} (theme)",
            f"CREATE INDEX IF NOT EXISTS idx_{PLANS_TABLE}_created_at ON {PLANS_TABLE} (created_at)",
            f"CREATE INDEX IF NOT EXISTS idx_{PLANS_TABLE}_updated_at ON {PLANS_TABLE} (updated_at)",
            f"CREATE INDEX IF NOT EXISTS idx_{ACTIVITIES_TABLE}_category ON {ACTIVITIES_TABLE} (category)",
            f"CREATE INDEX IF NOT EXISTS idx_{ACTIVITIES_TABLE}_day ON {ACTIVITIES_TABLE} (day)",
            f"CREATE INDEX IF NOT EXISTS idx_{ACTIVITIES_TABLE}_plan_id ON {ACTIVITIES_TABLE} (plan_id)",
        ):
            await conn.execute(sql_text(index_sql))
