"""Read-only schema checks for the maintenance scripts.

The inspector runs on the sync side of the async connection, so the same
checks work on MySQL and on SQLite.
"""
from __future__ import annotations

from typing import List

import sqlalchemy as sa
from sqlalchemy.ext.asyncio import AsyncConnection


async def table_names(conn: AsyncConnection) -> List[str]:
    return await conn.run_sync(lambda sync_conn: sa.inspect(sync_conn).get_table_names())


async def table_exists(conn: AsyncConnection, table: str) -> bool:
    return table in await table_names(conn)


async def column_names(conn: AsyncConnection, table: str) -> List[str]:
    def _columns(sync_conn) -> List[str]:
        return [col["name"] for col in sa.inspect(sync_conn).get_columns(table)]

    return await conn.run_sync(_columns)


async def column_exists(conn: AsyncConnection, table: str, column: str) -> bool:
    """True if `table` already has `column`. No side effects."""
    return column in await column_names(conn, table)


async def unique_on_column(conn: AsyncConnection, table: str, column: str) -> bool:
    """True if a unique index or unique constraint covers exactly `column`."""

    def _check(sync_conn) -> bool:
        insp = sa.inspect(sync_conn)
        for idx in insp.get_indexes(table):
            if idx.get("unique") and list(idx.get("column_names") or []) == [column]:
                return True
        for uq in insp.get_unique_constraints(table):
            if list(uq.get("column_names") or []) == [column]:
                return True
        return False

    return await conn.run_sync(_check)
