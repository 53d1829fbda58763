# setup_and_migrate.py
"""
Fresh install / upgrade in one go:
  1. migrate_login_tables      (tbl_role, tbl_user)
  2. migrate_backfill_usernames

Stops at the first step that fails and exits with its code.
"""
from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, List, Optional, Tuple

import migrate_backfill_usernames
import migrate_login_tables
from app.settings import Settings, settings as default_settings
from app.utils.logging import configure_logging, logger

Step = Tuple[str, Callable[[Settings], Awaitable[int]]]

STEPS: List[Step] = [
    ("migrate_login_tables", migrate_login_tables.main),
    ("migrate_backfill_usernames", migrate_backfill_usernames.main),
]


async def main(settings: Optional[Settings] = None, steps: Optional[List[Step]] = None) -> int:
    settings = settings or default_settings
    configure_logging(settings.LOG_LEVEL)
    logger.info("Starting setup and migration process...")

    for name, step in (steps if steps is not None else STEPS):
        logger.info("Running %s...", name)
        code = await step(settings)
        if code != 0:
            logger.error("%s failed with code %s.", name, code)
            return code
        logger.info("%s completed successfully.", name)

    logger.info("Setup and migration completed successfully!")
    return 0


if __name__ == "__main__":
    raise SystemExit(asyncio.run(main()))
