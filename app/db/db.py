"""Async engine for the SQL wiki store (asyncpg for Postgres, aiosqlite locally)."""

import ssl
from typing import Optional, Tuple

from sqlalchemy import text
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlmodel import SQLModel

from app.config.logger import app_logger
from app.config.settings import settings

_engine: Optional[AsyncEngine] = None
_session_maker: Optional[async_sessionmaker] = None


def get_db_url() -> str:
    """Resolve ``settings.effective_database_url`` to an async driver URL.

    ``sslmode`` is dropped from Postgres URLs; asyncpg takes TLS through
    ``connect_args`` instead.
    """
    raw = settings.effective_database_url
    if not raw:
        raise ValueError("DATABASE_URL not configured")

    url = make_url(raw)
    if url.get_backend_name() in ("postgresql", "postgres"):
        url = url.set(drivername="postgresql+asyncpg").difference_update_query(["sslmode"])
    elif url.get_backend_name() == "sqlite" and url.drivername == "sqlite":
        url = url.set(drivername="sqlite+aiosqlite")
    return url.render_as_string(hide_password=False)


def build_engine(db_url: str) -> AsyncEngine:
    if db_url.startswith("postgresql+asyncpg://"):
        # Supabase poolers present certificates that do not match the host
        ssl_context = ssl.create_default_context()
        ssl_context.check_hostname = False
        ssl_context.verify_mode = ssl.CERT_NONE
        return create_async_engine(db_url, pool_size=5, max_overflow=0, connect_args={"ssl": ssl_context})
    return create_async_engine(db_url)


async def create_tables(engine: AsyncEngine) -> None:
    from app.models import WikiDocument  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)


async def init_db() -> None:
    """Create the engine and the wiki_content table; failures leave the store unavailable."""
    global _engine, _session_maker

    try:
        db_url = get_db_url()
        _engine = build_engine(db_url)
        _session_maker = async_sessionmaker(_engine, class_=AsyncSession, expire_on_commit=False)
        await create_tables(_engine)
        app_logger.info(f"SQL wiki store ready ({make_url(db_url).get_backend_name()})")
    except Exception as e:
        app_logger.error(f"Failed to initialize database: {type(e).__name__}: {e}")
        app_logger.warning("SQL wiki store unavailable; set WIKI_STORE_BACKEND=supabase to use the REST API")


async def close_db() -> None:
    global _engine, _session_maker

    if _engine:
        await _engine.dispose()
        _engine = None
        _session_maker = None
        app_logger.info("Database connection closed")


def get_session_maker() -> async_sessionmaker:
    if not _session_maker:
        raise RuntimeError("Database not initialized. Check DATABASE_URL or use the Supabase wiki store.")
    return _session_maker


async def ping_database() -> Tuple[bool, str]:
    if not _session_maker:
        return False, "Database not initialized"

    try:
        async with _session_maker() as session:
            row = (await session.execute(text("SELECT 1"))).scalar()
    except Exception as e:
        return False, f"Database query failed: {e}"
    if row != 1:
        return False, f"Unexpected response: {row}"
    return True, "Database connection healthy"
