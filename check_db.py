# check_db.py
"""Read-only look at the account tables: columns, counts, a few sample users."""
from __future__ import annotations

import asyncio
from typing import Any, Dict, Optional

from sqlalchemy import column, func, select, table as sa_table
from sqlalchemy.ext.asyncio import AsyncConnection

from app.db import open_connection
from app.models import Role
from app.schema import column_names, table_exists, unique_on_column
from app.settings import Settings, settings as default_settings
from app.usernames import USERNAME_COLUMN
from app.utils.logging import configure_logging, logger

SAMPLE_SIZE = 5


async def collect_report(conn: AsyncConnection, table: str) -> Dict[str, Any]:
    report: Dict[str, Any] = {"table": table, "exists": False}
    if not await table_exists(conn, table):
        return report

    columns = await column_names(conn, table)
    report.update(
        exists=True,
        columns=columns,
        has_username=USERNAME_COLUMN in columns,
        username_unique=(
            USERNAME_COLUMN in columns and await unique_on_column(conn, table, USERNAME_COLUMN)
        ),
    )

    users = sa_table(table, column("id"), column("name"), column("email"), column("password"), column("role_id"))
    report["user_count"] = (
        await conn.execute(select(func.count()).select_from(users))
    ).scalar_one()

    query = select(users.c.id, users.c.name, users.c.email, users.c.password)
    if await table_exists(conn, Role.__tablename__):
        roles = Role.__table__
        query = query.add_columns(roles.c.name.label("role")).select_from(
            users.outerjoin(roles, roles.c.id == users.c.role_id)
        )
    rows = (await conn.execute(query.order_by(users.c.id).limit(SAMPLE_SIZE))).mappings().all()

    report["sample"] = [
        {
            "id": r["id"],
            "name": r["name"],
            "email": r["email"],
            "password": "******" if r["password"] else None,
            "role": r.get("role"),
        }
        for r in rows
    ]
    return report


async def main(settings: Optional[Settings] = None) -> int:
    settings = settings or default_settings
    configure_logging(settings.LOG_LEVEL)
    logger.info("Attempting to connect to database...")
    try:
        async with open_connection(settings) as conn:
            report = await collect_report(conn, settings.USER_TABLE)
    except Exception as e:
        logger.exception(f"Error checking database: {e}")
        return 1

    table = report["table"]
    if not report["exists"]:
        logger.info("%s table does not exist in this database", table)
        return 0

    logger.info("%s columns: %s", table, ", ".join(report["columns"]))
    logger.info(
        "username column: %s, unique: %s",
        "yes" if report["has_username"] else "no",
        "yes" if report["username_unique"] else "no",
    )
    logger.info("Found %d users in the database", report["user_count"])
    for user in report["sample"]:
        logger.info("Sample user: %s", user)
    return 0


if __name__ == "__main__":
    raise SystemExit(asyncio.run(main()))
