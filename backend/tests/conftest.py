"""
AutismCad Backend — Test Configuration (conftest.py)
=====================================================

What:  Shared pytest fixtures for the whole suite.
How:   Environment variables are set before any autismcad import so the
       settings singleton picks up the test values (SQLite file database,
       temporary storage root, fixed signing secret, cheap bcrypt cost).

Fixtures:
    mock_db_session  AsyncMock standing in for AsyncSession
    temp_storage     fresh storage directory per test
    sample_png_bytes smallest PNG python-magic recognizes
    db_session       real AsyncSession on a fresh SQLite file with every table created
    session_user     factory for SessionUser instances
    test_client      httpx AsyncClient bound to the FastAPI app (no server)
"""

import os
import tempfile
from contextlib import asynccontextmanager
from unittest.mock import AsyncMock, MagicMock

os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///./autismcad_test.db"
os.environ["AUTH_SECRET"] = "test-secret-with-at-least-32-characters!"
os.environ["STORAGE_ROOT"] = tempfile.mkdtemp(prefix="autismcad_test_")
os.environ["BCRYPT_COST"] = "8"
os.environ["LOG_LEVEL"] = "WARNING"

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

import autismcad.models  # noqa: F401
from autismcad.auth.session import SessionUser
from autismcad.database import Base


@asynccontextmanager
async def _nested():
    yield


@pytest.fixture
def mock_db_session():
    """
    A MagicMock that simulates AsyncSession.

    begin_nested() returns a no-op async context manager so savepoint blocks
    in the services run their body normally.

    Usage:
        mock_db_session.execute.return_value = result_mock(scalar=None)
    """
    session = AsyncMock()
    session.execute = AsyncMock()
    session.flush = AsyncMock()
    session.commit = AsyncMock()
    session.rollback = AsyncMock()
    session.close = AsyncMock()
    session.refresh = AsyncMock()
    session.add = MagicMock()
    session.begin_nested = MagicMock(side_effect=lambda: _nested())
    return session


def result_mock(scalar=None, first=None, rows=None, scalars=None):
    """A stand-in for sqlalchemy Result exposing the accessors the services use."""
    result = MagicMock()
    result.scalar_one_or_none.return_value = scalar
    result.scalar.return_value = scalar
    result.first.return_value = first
    result.all.return_value = rows or []
    result.scalars.return_value.all.return_value = scalars or []
    return result


@pytest.fixture
def temp_storage(tmp_path):
    storage_dir = tmp_path / "storage"
    storage_dir.mkdir()
    return str(storage_dir)


@pytest.fixture
def sample_png_bytes():
    """8-byte PNG signature plus an IHDR chunk: enough for libmagic to say image/png."""
    return (
        b"\x89PNG\r\n\x1a\n"
        b"\x00\x00\x00\rIHDR\x00\x00\x00\x01\x00\x00\x00\x01\x08\x02\x00\x00\x00\x90wS\xde"
        b"\x00\x00\x00\x0cIDATx\x9cc\xf8\x0f\x00\x00\x01\x01\x00\x05\x18\xd8N"
        b"\x00\x00\x00\x00IEND\xaeB`\x82"
    )


@pytest.fixture
def session_user():
    def make(user_id: int = 1, role: str = "admin-geral") -> SessionUser:
        return SessionUser(id=user_id, role=role)

    return make


@pytest_asyncio.fixture
async def test_client():
    """
    Usage:
        async def test_health(test_client):
            response = await test_client.get("/health")
    """
    from autismcad.main import app

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest.fixture
def make_result():
    return result_mock


@pytest_asyncio.fixture
async def db_session(tmp_path):
    """
    AsyncSession on a throwaway SQLite database built from Base.metadata,
    so partial unique indexes and the services' SQL run for real.

    pysqlite's own transaction handling breaks SAVEPOINT (begin_nested);
    BEGIN is emitted explicitly instead.
    """
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'clinic.db'}")

    @event.listens_for(engine.sync_engine, "connect")
    def _autocommit_driver(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _explicit_begin(conn):
        conn.exec_driver_sql("BEGIN")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with factory() as session:
        yield session

    await engine.dispose()
