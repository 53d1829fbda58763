from __future__ import annotations

import re
from typing import Callable, Dict, Iterable, Optional, Set, Tuple

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncConnection

from app.utils.logging import logger

USERNAME_COLUMN = "username"
USERNAME_LENGTH = 50

_NON_ALNUM = re.compile(r"[^A-Za-z0-9]")


# =========================
#   Derivation / resolving
# =========================
def derive_base_username(email: str) -> str:
    """
    Local part of the email (before the first '@') with every character
    outside [A-Za-z0-9] removed. May return an empty string.
    """
    local = (email or "").split("@", 1)[0]
    return _NON_ALNUM.sub("", local)


def username_base(email: str, fallback: str = "") -> str:
    """An empty fallback keeps an empty base, which resolves to "", "1", "2", ..."""
    return derive_base_username(email) or fallback


def resolve_unique_username(base: str, taken: Iterable[str], *, ignore_case: bool = False) -> str:
    """
    First free value among base, base1, base2, ...
    With ignore_case the comparison follows a case-insensitive collation
    (MySQL default), where "JaneDoe" collides with "janedoe".
    """
    if ignore_case:
        return _first_free(base, {u.lower() for u in taken}, str.lower)
    seen = taken if isinstance(taken, (set, frozenset)) else set(taken)
    return _first_free(base, seen, str)


def _first_free(base: str, seen: Set[str], norm: Callable[[str], str]) -> str:
    # seen holds values already passed through norm
    candidate = base
    counter = 1
    while norm(candidate) in seen:
        candidate = f"{base}{counter}"
        counter += 1
    return candidate


# =========================
#       DB helpers
# =========================
def _q(conn: AsyncConnection, name: str) -> str:
    return conn.dialect.identifier_preparer.quote(name)


def is_mysql(conn: AsyncConnection) -> bool:
    return conn.dialect.name in ("mysql", "mariadb")


def unique_index_name(table: str) -> str:
    return f"uq_{table}_{USERNAME_COLUMN}"


async def add_username_column(conn: AsyncConnection, table: str) -> None:
    """Nullable, no index yet: the index goes on once every row is filled."""
    ddl = f"ALTER TABLE {_q(conn, table)} ADD COLUMN {USERNAME_COLUMN} VARCHAR({USERNAME_LENGTH})"
    if is_mysql(conn):
        ddl += " AFTER id"
    await conn.execute(text(ddl))
    await conn.commit()


async def add_unique_index(conn: AsyncConnection, table: str) -> None:
    """Fails with IntegrityError if a duplicate username is left in the table."""
    await conn.execute(text(
        f"CREATE UNIQUE INDEX {_q(conn, unique_index_name(table))} "
        f"ON {_q(conn, table)} ({USERNAME_COLUMN})"
    ))
    await conn.commit()


async def load_taken_usernames(conn: AsyncConnection, table: str) -> Set[str]:
    res = await conn.execute(text(
        f"SELECT {USERNAME_COLUMN} FROM {_q(conn, table)} "
        f"WHERE {USERNAME_COLUMN} IS NOT NULL AND {USERNAME_COLUMN} <> ''"
    ))
    return {row[0] for row in res.fetchall()}


async def fetch_users(conn: AsyncConnection, table: str, *, missing_only: bool = False) -> list[Tuple[int, str]]:
    sql = f"SELECT id, email FROM {_q(conn, table)}"
    if missing_only:
        sql += f" WHERE {USERNAME_COLUMN} IS NULL OR {USERNAME_COLUMN} = ''"
    sql += " ORDER BY id"
    res = await conn.execute(text(sql))
    return [(row[0], row[1]) for row in res.fetchall()]


async def set_username(conn: AsyncConnection, table: str, user_id: int, username: str) -> None:
    await conn.execute(
        text(f"UPDATE {_q(conn, table)} SET {USERNAME_COLUMN} = :username WHERE id = :id"),
        {"username": username, "id": user_id},
    )
    await conn.commit()


async def assign_usernames(
    conn: AsyncConnection,
    table: str,
    users: Iterable[Tuple[int, str]],
    taken: Optional[Set[str]] = None,
    *,
    fallback: str = "",
) -> Dict[int, str]:
    """
    Gives every (id, email) a unique username and writes it back row by row.
    Each row commits on its own; an error stops the loop and propagates.
    """
    if taken is None:
        taken = await load_taken_usernames(conn, table)
    # default MySQL collations compare usernames case-insensitively
    norm: Callable[[str], str] = str.lower if is_mysql(conn) else str
    seen = {norm(u) for u in taken}

    assigned: Dict[int, str] = {}
    for user_id, email in users:
        base = username_base(email, fallback)
        username = _first_free(base, seen, norm)
        await set_username(conn, table, user_id, username)
        taken.add(username)
        seen.add(norm(username))
        assigned[user_id] = username
        logger.info('User ID %s: generated username "%s" from email %s', user_id, username, email)
    return assigned
