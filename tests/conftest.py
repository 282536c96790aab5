"""
API Sync Backend - Test Configuration (conftest.py)
====================================================

Fixture Hierarchy:
    Module import:
    └── environment overrides (SQLite file DB, quiet logging, no rate limit)

    Function-scoped:
    ├── database:         fresh schema per test (create_all / drop_all)
    ├── db_session:       AsyncSession on that schema
    ├── test_client:      httpx AsyncClient bound to the app via ASGITransport
    ├── mock_db_session:  AsyncMock session for tests that need no database
    └── spec_factory:     builds SpecIn payloads from keyword arguments
"""

import os
import tempfile

# Must run before anything imports apisync.config
_TEST_DIR = tempfile.mkdtemp(prefix="apisync_test_")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_TEST_DIR}/test.db"
os.environ["LOG_LEVEL"] = "WARNING"
os.environ["RATE_LIMIT_REQUESTS"] = "100000"
os.environ["CORS_ORIGINS"] = "http://test"

from typing import Any, Dict, List, Optional  # noqa: E402
from unittest.mock import AsyncMock, MagicMock  # noqa: E402

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402

from apisync.database import async_session_factory, create_schema, drop_schema  # noqa: E402
from apisync.schemas.endpoint import SpecIn  # noqa: E402


@pytest_asyncio.fixture
async def database():
    """Empty schema for one test."""
    await create_schema()
    yield
    await drop_schema()


@pytest_asyncio.fixture
async def db_session(database):
    """
    A session on the test database.

    Services only flush; call `await db_session.commit()` in the test when
    another session must see the data.
    """
    async with async_session_factory() as session:
        yield session
        await session.rollback()


@pytest_asyncio.fixture
async def test_client(database):
    """
    Usage:
        async def test_health(test_client):
            response = await test_client.get("/health")
            assert response.status_code == 200
    """
    from apisync.main import app

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest.fixture
def mock_db_session():
    session = AsyncMock()
    session.execute = AsyncMock()
    session.flush = AsyncMock()
    session.commit = AsyncMock()
    session.rollback = AsyncMock()
    session.close = AsyncMock()
    session.add = MagicMock()
    return session


def make_spec(
    parameters: Optional[List[Dict[str, Any]]] = None,
    headers: Optional[List[Dict[str, Any]]] = None,
    status_codes: Optional[List[Any]] = None,
    **fields: Any,
) -> SpecIn:
    """
    Build a SpecIn. Status codes may be given as bare ints.

        make_spec(parameters=[{"name": "id", "type": "STRING", "required": True}],
                  status_codes=[200, 404])
    """
    codes = [{"code": c} if isinstance(c, int) else c for c in status_codes or []]
    return SpecIn.model_validate(
        {
            "parameters": parameters or [],
            "headers": headers or [],
            "statusCodes": codes,
            **fields,
        }
    )


def spec_json(spec: SpecIn) -> Dict[str, Any]:
    """camelCase request body for a SpecIn."""
    return spec.model_dump(mode="json", by_alias=True)


@pytest.fixture
def spec_factory():
    return make_spec
