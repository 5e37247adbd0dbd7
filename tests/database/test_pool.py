"""
Tests for the pooled store access layer
"""

import asyncio
from pathlib import Path

import pytest
from sqlalchemy import func, insert, select

from usergraph.config import Settings
from usergraph.database.pool import ConnectionPool, async_database_url
from usergraph.dbmodels import Users
from usergraph.errors import ConfigurationError, PoolExhausted, QueryRejected, StoreUnavailable


def test_async_database_url_maps_postgres_to_asyncpg():
    assert (
        async_database_url("postgresql://u:p@localhost:5432/app")
        == "postgresql+asyncpg://u:p@localhost:5432/app"
    )
    assert async_database_url("postgres://u@h/db") == "postgresql+asyncpg://u@h/db"
    assert async_database_url("sqlite+aiosqlite:///x.db") == "sqlite+aiosqlite:///x.db"


def test_from_settings_requires_database_url(monkeypatch):
    monkeypatch.delenv("USERGRAPH_DATABASE_URL", raising=False)
    monkeypatch.delenv("DATABASE_URL", raising=False)
    settings = Settings(_env_file=None)

    with pytest.raises(ConfigurationError):
        ConnectionPool.from_settings(settings)


class TestExecute:
    @pytest.mark.asyncio
    async def test_insert_and_select(self, pool):
        rows = await pool.execute(insert(Users).values(name="Ada").returning(Users.id))
        user_id = rows[0]["id"]

        rows = await pool.execute(select(Users.id, Users.name).where(Users.id == user_id))
        assert [dict(row) for row in rows] == [{"id": user_id, "name": "Ada"}]

    @pytest.mark.asyncio
    async def test_text_statement_with_params(self, pool):
        await pool.execute(insert(Users).values(name="Grace"))

        rows = await pool.execute("SELECT name FROM users WHERE name = :name", {"name": "Grace"})
        assert rows[0]["name"] == "Grace"

    @pytest.mark.asyncio
    async def test_statement_without_rows_returns_empty_list(self, pool):
        assert await pool.execute(insert(Users).values(name="Linus")) == []

    @pytest.mark.asyncio
    async def test_writes_are_committed(self, pool):
        await pool.execute(insert(Users).values(name="Barbara"))

        rows = await pool.execute(select(func.count().label("total")).select_from(Users))
        assert rows[0]["total"] == 1

    @pytest.mark.asyncio
    async def test_not_null_violation_is_rejected(self, pool):
        with pytest.raises(QueryRejected):
            await pool.execute(insert(Users).values(name=None))

        assert pool.checked_out == 0

    @pytest.mark.asyncio
    async def test_empty_name_violates_check_constraint(self, pool):
        with pytest.raises(QueryRejected):
            await pool.execute(insert(Users).values(name=""))

    @pytest.mark.asyncio
    async def test_unreachable_store_is_unavailable(self, tmp_path: Path):
        url = f"sqlite+aiosqlite:///{tmp_path / 'missing' / 'dir' / 'db.sqlite'}"
        pool = ConnectionPool.from_url(url, pool_size=1, timeout=1.0)
        try:
            with pytest.raises(StoreUnavailable):
                await pool.ping()
            assert pool.checked_out == 0
        finally:
            await pool.dispose()


class TestScopedAcquisition:
    @pytest.mark.asyncio
    async def test_connection_is_released_after_block(self, pool):
        async with pool.connection():
            assert pool.checked_out == 1
        assert pool.checked_out == 0

    @pytest.mark.asyncio
    async def test_connection_is_released_when_block_raises(self, pool):
        with pytest.raises(RuntimeError):
            async with pool.connection():
                raise RuntimeError("boom")
        assert pool.checked_out == 0

    @pytest.mark.asyncio
    async def test_connection_is_released_on_cancellation(self, pool):
        started = asyncio.Event()

        async def hold() -> None:
            async with pool.connection():
                started.set()
                await asyncio.sleep(10)

        task = asyncio.create_task(hold())
        await started.wait()
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert pool.checked_out == 0

    @pytest.mark.asyncio
    async def test_release_twice_is_harmless(self, pool):
        conn = await pool.acquire()
        await pool.release(conn)
        await pool.release(conn)
        assert pool.checked_out == 0


class TestExhaustion:
    @pytest.mark.asyncio
    async def test_acquire_times_out_when_pool_is_full(self, make_pool):
        pool = await make_pool(pool_size=1, timeout=0.2)

        async with pool.connection():
            with pytest.raises(PoolExhausted):
                await pool.acquire()
        assert pool.checked_out == 0

    @pytest.mark.asyncio
    async def test_waiter_succeeds_once_a_slot_frees(self, make_pool):
        pool = await make_pool(pool_size=2, timeout=5.0)

        async def hold() -> int:
            async with pool.connection():
                await asyncio.sleep(0.05)
                return pool.checked_out

        observed = await asyncio.gather(*(hold() for _ in range(3)))

        assert max(observed) <= 2
        assert pool.checked_out == 0
