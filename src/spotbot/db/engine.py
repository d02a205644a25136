"""Async SQLAlchemy engine and session factory.

Usage:
    engine = create_engine(settings.database_url)
    await init_db(engine)
    async with get_session(engine) as session:
        ...
"""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from sqlalchemy import event, text
from sqlalchemy.ext.asyncio import (
    AsyncConnection,
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from spotbot.db.models import Base

logger = logging.getLogger(__name__)


def _is_sqlite(database_url: str) -> bool:
    return database_url.startswith("sqlite")


def create_engine(database_url: str) -> AsyncEngine:
    """Create an async SQLAlchemy engine.

    For SQLite, enables WAL journal mode and a 15-second busy timeout so
    overlapping Slack events don't immediately fail with "database is locked".
    """
    if not _is_sqlite(database_url):
        return create_async_engine(database_url, echo=False)

    engine = create_async_engine(database_url, echo=False, connect_args={"timeout": 15})

    @event.listens_for(engine.sync_engine, "connect")
    def _set_sqlite_pragmas(dbapi_conn: object, connection_record: object) -> None:
        cursor = dbapi_conn.cursor()  # type: ignore[union-attr]
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute("PRAGMA synchronous=NORMAL")
        cursor.execute("PRAGMA busy_timeout=15000")
        cursor.close()

    return engine


# One session factory per engine instance, keyed by the sync engine identity
# so test engines stay isolated. The engine is kept alongside the factory so a
# recycled id() never hands back a factory bound to a disposed engine.
_session_factories: dict[int, tuple[AsyncEngine, async_sessionmaker[AsyncSession]]] = {}


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Return a cached session factory bound to *engine*."""
    key = id(engine.sync_engine)
    cached = _session_factories.get(key)
    if cached is None or cached[0] is not engine:
        cached = (engine, async_sessionmaker(engine, expire_on_commit=False))
        _session_factories[key] = cached
    return cached[1]


@asynccontextmanager
async def get_session(engine: AsyncEngine) -> AsyncGenerator[AsyncSession, None]:
    """Yield an async session that auto-commits on success, rolls back on error."""
    factory = create_session_factory(engine)
    async with factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:  # re-raised after rollback
            await session.rollback()
            raise


async def init_db(engine: AsyncEngine) -> None:
    """Create missing tables, then add missing columns to existing ones."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
        if conn.dialect.name == "sqlite":
            added = await auto_migrate_schema(conn)
            if added:
                logger.info("auto_migrate: %d column(s) added", added)


# ---------------------------------------------------------------------------
# Auto-migration: detect and add missing columns at startup
# ---------------------------------------------------------------------------

_SQLITE_TYPE_MAP: dict[str, str] = {
    "String": "VARCHAR",
    "DateTime": "DATETIME",
    "JSON": "JSON",
}


def _sqlite_col_type(sa_type: object) -> str:
    """Convert a SQLAlchemy type to a SQLite type string."""
    type_name = type(sa_type).__name__
    base = _SQLITE_TYPE_MAP.get(type_name, "TEXT")
    if type_name == "String" and getattr(sa_type, "length", None):
        return f"VARCHAR({sa_type.length})"  # type: ignore[attr-defined]
    return base


def _scalar_default_sql(column: object) -> str | None:
    """Extract a SQL DEFAULT literal from a column, or None.

    Callable defaults (e.g. ``default=_uuid``) are Python-side only and
    have no SQL equivalent.
    """
    if column.server_default is not None:  # type: ignore[union-attr]
        return str(column.server_default.arg)  # type: ignore[union-attr]
    if column.default is not None and column.default.is_scalar:  # type: ignore[union-attr]
        val = column.default.arg  # type: ignore[union-attr]
        if isinstance(val, str):
            escaped = val.replace("'", "''")
            return f"'{escaped}'"
    return None


async def auto_migrate_schema(conn: AsyncConnection) -> int:
    """Compare ORM models against the actual SQLite schema, add missing columns.

    Only additive changes are handled. A missing column that is NOT NULL
    with no SQL default is skipped with a warning, since existing rows
    would violate the constraint.

    Returns the number of columns added.
    """
    added = 0
    for table_name, table in Base.metadata.tables.items():
        result = await conn.execute(text(f"PRAGMA table_info({table_name})"))
        rows = result.fetchall()
        if not rows:
            continue
        existing_cols = {row[1] for row in rows}

        for column in table.columns:
            if column.name in existing_cols:
                continue

            col_type = _sqlite_col_type(column.type)
            default_sql = _scalar_default_sql(column)

            if default_sql is not None:
                col_def = f"{column.name} {col_type} DEFAULT {default_sql}"
            elif column.nullable:
                col_def = f"{column.name} {col_type}"
            else:
                logger.warning(
                    "auto_migrate: skipping %s.%s: NOT NULL with no SQL default",
                    table_name,
                    column.name,
                )
                continue

            await conn.execute(text(f"ALTER TABLE {table_name} ADD COLUMN {col_def}"))
            logger.info("auto_migrate: added %s.%s", table_name, column.name)
            added += 1

    return added
