import pytest
from sqlalchemy import text

import migrate_backfill_usernames
from app.db import open_connection
from app.schema import column_exists, unique_on_column
from conftest import duplicate_usernames, fetch_usernames, seed_users


@pytest.mark.asyncio
async def test_fills_only_missing_usernames(db_settings):
    await seed_users(
        db_settings,
        ["jane.doe@example.com", "janedoe@other.org", "kim@example.com", "jane-doe@x.io"],
        with_username=["janedoe", None, "kimmy", ""],
    )

    async with open_connection(db_settings) as conn:
        assigned = await migrate_backfill_usernames.run(conn, db_settings)

    assert assigned == {2: "janedoe1", 4: "janedoe2"}
    assert await fetch_usernames(db_settings) == [
        (1, "janedoe"),
        (2, "janedoe1"),
        (3, "kimmy"),
        (4, "janedoe2"),
    ]
    assert await duplicate_usernames(db_settings) == []


@pytest.mark.asyncio
async def test_adds_column_and_index_when_missing(db_settings):
    await seed_users(db_settings, ["a+b@example.com", "ab@example.com"])

    assert await migrate_backfill_usernames.main(db_settings) == 0

    assert await fetch_usernames(db_settings) == [(1, "ab"), (2, "ab1")]
    async with open_connection(db_settings) as conn:
        assert await column_exists(conn, "tbl_user", "username")
        assert await unique_on_column(conn, "tbl_user", "username")


@pytest.mark.asyncio
async def test_rerun_assigns_nothing(db_settings):
    await seed_users(db_settings, ["jane.doe@example.com"], with_username=[None])

    assert await migrate_backfill_usernames.main(db_settings) == 0
    before = await fetch_usernames(db_settings)

    async with open_connection(db_settings) as conn:
        assert await migrate_backfill_usernames.run(conn, db_settings) == {}

    assert await fetch_usernames(db_settings) == before


@pytest.mark.asyncio
async def test_finishes_a_run_that_stopped_before_the_index(db_settings):
    # all rows filled, index never created
    await seed_users(
        db_settings,
        ["jane.doe@example.com", "john@example.com"],
        with_username=["janedoe", "john"],
    )

    async with open_connection(db_settings) as conn:
        assert not await unique_on_column(conn, "tbl_user", "username")
        assert await migrate_backfill_usernames.run(conn, db_settings) == {}
        assert await unique_on_column(conn, "tbl_user", "username")


@pytest.mark.asyncio
async def test_leftover_duplicate_fails_until_fixed(db_settings):
    await seed_users(
        db_settings,
        ["jane.doe@example.com", "jane@example.com"],
        with_username=["janedoe", "janedoe"],
    )

    assert await migrate_backfill_usernames.main(db_settings) == 1

    # manual fix, then re-run
    async with open_connection(db_settings) as conn:
        await conn.execute(text("UPDATE tbl_user SET username = 'jane' WHERE id = 2"))
        await conn.commit()

    assert await migrate_backfill_usernames.main(db_settings) == 0
    async with open_connection(db_settings) as conn:
        assert await unique_on_column(conn, "tbl_user", "username")
