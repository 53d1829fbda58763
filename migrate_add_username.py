# migrate_add_username.py
"""
Adds tbl_user.username and fills it from the email local part.

    python migrate_add_username.py

Does nothing if the column already exists. A failure half way leaves the
rows already written in place; use migrate_backfill_usernames.py to finish.
"""
from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Dict, Optional

from sqlalchemy.ext.asyncio import AsyncConnection

from app.db import open_connection
from app.schema import column_exists
from app.settings import Settings, settings as default_settings
from app.usernames import (
    USERNAME_COLUMN,
    add_unique_index,
    add_username_column,
    assign_usernames,
    fetch_users,
)
from app.utils.logging import configure_logging, logger


@dataclass
class MigrationResult:
    skipped: bool = False
    assignments: Dict[int, str] = field(default_factory=dict)


async def run(conn: AsyncConnection, settings: Settings) -> MigrationResult:
    table = settings.USER_TABLE

    logger.info("Checking if %s column exists...", USERNAME_COLUMN)
    if await column_exists(conn, table, USERNAME_COLUMN):
        logger.info("Username column already exists in %s table.", table)
        return MigrationResult(skipped=True)

    logger.info("Adding %s column to %s table...", USERNAME_COLUMN, table)
    await add_username_column(conn, table)

    logger.info("Column added. Generating usernames for existing users...")
    users = await fetch_users(conn, table)
    logger.info("Found %d users that need usernames.", len(users))

    # nothing has a username yet, the set fills up as rows are assigned
    assigned = await assign_usernames(conn, table, users, set(), fallback=settings.USERNAME_FALLBACK)

    logger.info("Adding unique constraint to %s column...", USERNAME_COLUMN)
    await add_unique_index(conn, table)
    return MigrationResult(assignments=assigned)


async def main(settings: Optional[Settings] = None) -> int:
    settings = settings or default_settings
    configure_logging(settings.LOG_LEVEL)
    logger.info("Starting migration to add username field to %s table...", settings.USER_TABLE)
    try:
        async with open_connection(settings) as conn:
            await run(conn, settings)
    except Exception as e:
        logger.exception(f"Error during migration: {e}")
        return 1
    logger.info("Migration completed successfully!")
    return 0


if __name__ == "__main__":
    raise SystemExit(asyncio.run(main()))
