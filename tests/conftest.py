"""Shared fixtures: a throwaway SQLite database per test.

Adds the repository root to sys.path so the root-level scripts import in CI
where the checkout directory may not be on PYTHONPATH.
"""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Iterable, Optional, Tuple

import pytest
from sqlalchemy import text

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.db import open_connection  # noqa: E402
from app.settings import Settings  # noqa: E402

LEGACY_USER_DDL = """
CREATE TABLE tbl_user (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name VARCHAR(255) NOT NULL,
    email VARCHAR(255) NOT NULL UNIQUE,
    password VARCHAR(255) NOT NULL,
    role_id INTEGER NOT NULL,
    status VARCHAR(1) DEFAULT '1'
)
"""

ROLE_DDL = """
CREATE TABLE tbl_role (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name VARCHAR(50) NOT NULL UNIQUE,
    description TEXT
)
"""


@pytest.fixture
def db_settings(tmp_path) -> Settings:
    return Settings(
        DATABASE_URL=f"sqlite+aiosqlite:///{tmp_path / 'sms.db'}",
        USER_TABLE="tbl_user",
        USERNAME_FALLBACK="",
        LOG_LEVEL="INFO",
    )


async def seed_users(
    settings: Settings,
    emails: Iterable[str],
    *,
    with_username: Optional[Iterable[Optional[str]]] = None,
    with_roles: bool = False,
) -> None:
    """Creates the pre-migration tbl_user and inserts one row per email."""
    emails = list(emails)
    async with open_connection(settings) as conn:
        await conn.execute(text(LEGACY_USER_DDL))
        role_id = 1
        if with_roles:
            await conn.execute(text(ROLE_DDL))
            await conn.execute(text("INSERT INTO tbl_role (id, name) VALUES (1, 'admin'), (2, 'teacher')"))
        for i, email in enumerate(emails, start=1):
            await conn.execute(
                text(
                    "INSERT INTO tbl_user (id, name, email, password, role_id) "
                    "VALUES (:id, :name, :email, :password, :role_id)"
                ),
                {"id": i, "name": f"User {i}", "email": email, "password": "hash", "role_id": role_id},
            )
        if with_username is not None:
            await conn.execute(text("ALTER TABLE tbl_user ADD COLUMN username VARCHAR(50)"))
            for i, username in enumerate(with_username, start=1):
                await conn.execute(
                    text("UPDATE tbl_user SET username = :u WHERE id = :id"), {"u": username, "id": i}
                )
        await conn.commit()


async def fetch_usernames(settings: Settings) -> list[Tuple[int, Optional[str]]]:
    async with open_connection(settings) as conn:
        res = await conn.execute(text("SELECT id, username FROM tbl_user ORDER BY id"))
        return [(row[0], row[1]) for row in res.fetchall()]


async def duplicate_usernames(settings: Settings) -> list:
    async with open_connection(settings) as conn:
        res = await conn.execute(text(
            "SELECT username, COUNT(*) FROM tbl_user GROUP BY username HAVING COUNT(*) > 1"
        ))
        return res.fetchall()
