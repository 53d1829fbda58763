# migrate_login_tables.py
"""Creates tbl_role / tbl_user when they are missing and seeds the default roles."""
from __future__ import annotations

import asyncio
from typing import List, Optional, Tuple

from sqlalchemy import func, insert, select
from sqlalchemy.ext.asyncio import AsyncConnection

from app.db import init_db, open_connection
from app.models import Role, User
from app.settings import Settings, settings as default_settings
from app.utils.logging import configure_logging, logger

DEFAULT_ROLES = ("admin", "teacher", "student", "parent")


async def seed_roles(conn: AsyncConnection) -> List[str]:
    """Inserts the default roles that are not there yet. Returns the added names."""
    res = await conn.execute(select(Role.name))
    existing = {row[0] for row in res.fetchall()}
    missing = [name for name in DEFAULT_ROLES if name not in existing]
    if missing:
        await conn.execute(insert(Role), [{"name": name} for name in missing])
        await conn.commit()
        logger.info("Roles created: %s", ", ".join(missing))
    return missing


async def run(conn: AsyncConnection) -> Tuple[int, int]:
    await init_db(conn)
    await seed_roles(conn)

    logger.info("Verifying table creation...")
    roles = (await conn.execute(select(func.count()).select_from(Role.__table__))).scalar_one()
    users = (await conn.execute(select(func.count()).select_from(User.__table__))).scalar_one()
    logger.info("Login tables ready. Roles: %d, Users: %d", roles, users)
    return roles, users


async def main(settings: Optional[Settings] = None) -> int:
    settings = settings or default_settings
    configure_logging(settings.LOG_LEVEL)
    logger.info("Setting up login tables...")
    try:
        async with open_connection(settings) as conn:
            await run(conn)
    except Exception as e:
        logger.exception(f"Error setting up login tables: {e}")
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(asyncio.run(main()))
