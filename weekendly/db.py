from __future__ import annotations

import logging
from urllib.parse import urlparse, urlunparse, parse_qsl, urlencode

from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncEngine

logger = logging.getLogger(__name__)


_ASYNC_PREFIXES = ("postgres://", "postgresql://", "postgresql+psycopg2://")
# libpq options asyncpg does not understand
_DROPPED_QUERY_KEYS = {"sslmode", "channel_binding", "ssl"}


def normalize_database_url(database_url: str) -> str:
    url = str(database_url or "").strip()
    if url.startswith("sqlite:///"):
        return "sqlite+aiosqlite:///" + url[len("sqlite:///") :]
    for prefix in _ASYNC_PREFIXES:
        if url.startswith(prefix):
            url = "postgresql+asyncpg://" + url[len(prefix) :]
            break
    if not url.startswith("postgresql+asyncpg://"):
        return url
    parsed = urlparse(url)
    query = parse_qsl(parsed.query, keep_blank_values=True)
    kept = [(key, value) for key, value in query if key not in _DROPPED_QUERY_KEYS]
    if any(key == "sslmode" for key, _ in query):
        kept.append(("ssl", "true"))
    return urlunparse(parsed._replace(query=urlencode(kept)))


def build_engine(database_url: str) -> AsyncEngine:
    db_url = normalize_database_url(database_url)
    if db_url.startswith("sqlite"):
        return create_async_engine(db_url, future=True)
    connect_args: dict = {}
    try:
        parsed = urlparse(db_url)
        host = parsed.hostname or ""
        if host and host not in {"localhost", "127.0.0.1"}:
            connect_args["ssl"] = True
    except ValueError:
        logger.debug("Failed to parse database URL for SSL hint.")
    engine_kwargs = {"pool_pre_ping": True, "future": True, "pool_size": 5, "max_overflow": 5}
    if connect_args:
        return create_async_engine(db_url, connect_args=connect_args, **engine_kwargs)
    return create_async_engine(db_url, **engine_kwargs)


def build_sessionmaker(engine: AsyncEngine) -> async_sessionmaker:
    return async_sessionmaker(engine, expire_on_commit=False)
