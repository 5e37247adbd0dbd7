"""
Shared pytest fixtures and configuration for all tests.
"""

import os
from collections.abc import AsyncGenerator, Callable, Generator
from pathlib import Path
from typing import Any

import pytest
import pytest_asyncio

from usergraph.database.pool import ConnectionPool
from usergraph.dbmodels import Base
from usergraph.graphql import ExecutionEngine, GraphQLRequest, RequestContext


@pytest.fixture
def database_url(tmp_path: Path) -> str:
    """File-backed SQLite store, fresh for every test."""
    return f"sqlite+aiosqlite:///{tmp_path / 'usergraph.db'}"


async def create_tables(pool: ConnectionPool) -> None:
    async with pool.engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


@pytest_asyncio.fixture
async def make_pool(database_url: str) -> AsyncGenerator[Callable[..., Any], None]:
    """Factory for pools over the test database; every pool is disposed at teardown."""
    pools: list[ConnectionPool] = []

    async def make(**options: Any) -> ConnectionPool:
        options = {"pool_size": 3, "max_overflow": 0, "timeout": 2.0, **options}
        pool = ConnectionPool.from_url(database_url, **options)
        pools.append(pool)
        await create_tables(pool)
        return pool

    yield make
    for pool in pools:
        await pool.dispose()


@pytest_asyncio.fixture
async def pool(make_pool: Callable[..., Any]) -> ConnectionPool:
    """Connection pool over a migrated test database."""
    return await make_pool()


@pytest.fixture
def context(pool: ConnectionPool) -> RequestContext:
    return RequestContext(pool=pool)


@pytest.fixture
def engine() -> ExecutionEngine:
    return ExecutionEngine()


@pytest.fixture
def run_query(engine: ExecutionEngine, context: RequestContext):
    """Execute a document against the test database and return the wire envelope."""

    async def run(
        query: str,
        variables: dict[str, Any] | None = None,
        operation_name: str | None = None,
        **kwargs: Any,
    ) -> dict[str, Any]:
        request = GraphQLRequest(query=query, variables=variables, operation_name=operation_name)
        result = await engine.execute(request, context, **kwargs)
        return result.formatted

    return run


@pytest.fixture(autouse=True)
def reset_environment() -> Generator[None, None, None]:
    """Reset environment variables for each test."""
    original_env = os.environ.copy()
    yield
    os.environ.clear()
    os.environ.update(original_env)


# Test markers
def pytest_configure(config: Any) -> None:
    """Register custom markers."""
    config.addinivalue_line("markers", "slow: mark test as slow running")
    config.addinivalue_line("markers", "integration: mark test as integration test")
    config.addinivalue_line("markers", "unit: mark test as unit test")
