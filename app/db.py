from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator

from sqlalchemy import event
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncConnection,
    AsyncEngine,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from app.settings import Settings


class Base(DeclarativeBase):
    """Base for every model."""
    pass


# -----------------------------------------------------------------------------
# Engine
# -----------------------------------------------------------------------------
# The URL must be ASYNC, e.g.:
#  - MySQL:  "mysql+aiomysql://root:@localhost:3306/sms_spi"
#  - SQLite: "sqlite+aiosqlite:///./sms.db"
def make_engine(url: str) -> AsyncEngine:
    engine = create_async_engine(
        url,
        echo=False,
        pool_pre_ping=True,
        future=True,
    )

    if make_url(url).get_backend_name().startswith("sqlite"):

        @event.listens_for(engine.sync_engine, "connect")
        def _set_sqlite_pragma(dbapi_connection, connection_record):  # type: ignore[no-redef]
            cursor = dbapi_connection.cursor()
            try:
                cursor.execute("PRAGMA foreign_keys=ON;")
            finally:
                cursor.close()

    return engine


@asynccontextmanager
async def open_connection(settings: Settings) -> AsyncIterator[AsyncConnection]:
    """
    One live connection for a maintenance script.
    The connection is closed and the engine disposed on exit, errors included.
    """
    engine = make_engine(settings.database_url())
    try:
        async with engine.connect() as conn:
            yield conn
    finally:
        await engine.dispose()


# -----------------------------------------------------------------------------
# Schema bootstrap
# -----------------------------------------------------------------------------
async def init_db(conn: AsyncConnection) -> None:
    """
    Creates tbl_role / tbl_user if they are missing.
    Other tables are left alone.
    """
    # Import models so they register in Base.metadata
    from app import models  # noqa: F401

    await conn.run_sync(Base.metadata.create_all)
    await conn.commit()
