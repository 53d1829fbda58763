# migrate_backfill_usernames.py
"""
Gives a username to every user that still has none (NULL or '').

    python migrate_backfill_usernames.py

Safe to re-run. Adds the column when missing and the unique index when it
is not there yet, so it also finishes a migrate_add_username.py run that
stopped half way (fix any leftover duplicate by hand first).
"""
from __future__ import annotations

import asyncio
from typing import Dict, Optional

from sqlalchemy.ext.asyncio import AsyncConnection

from app.db import open_connection
from app.schema import column_exists, unique_on_column
from app.settings import Settings, settings as default_settings
from app.usernames import (
    USERNAME_COLUMN,
    add_unique_index,
    add_username_column,
    assign_usernames,
    fetch_users,
    load_taken_usernames,
)
from app.utils.logging import configure_logging, logger


async def run(conn: AsyncConnection, settings: Settings) -> Dict[int, str]:
    table = settings.USER_TABLE

    if not await column_exists(conn, table, USERNAME_COLUMN):
        logger.info("Adding %s column to %s table...", USERNAME_COLUMN, table)
        await add_username_column(conn, table)

    users = await fetch_users(conn, table, missing_only=True)
    logger.info("Found %d users without a username. Generating usernames...", len(users))

    taken = await load_taken_usernames(conn, table)
    assigned = await assign_usernames(conn, table, users, taken, fallback=settings.USERNAME_FALLBACK)

    if not await unique_on_column(conn, table, USERNAME_COLUMN):
        logger.info("Adding unique constraint to %s column...", USERNAME_COLUMN)
        await add_unique_index(conn, table)

    return assigned


async def main(settings: Optional[Settings] = None) -> int:
    settings = settings or default_settings
    configure_logging(settings.LOG_LEVEL)
    logger.info("Starting migration to add usernames for existing users...")
    try:
        async with open_connection(settings) as conn:
            assigned = await run(conn, settings)
    except Exception as e:
        logger.exception(f"Error during migration: {e}")
        return 1
    logger.info("Migration completed successfully! Updated: %d", len(assigned))
    return 0


if __name__ == "__main__":
    raise SystemExit(asyncio.run(main()))
