"""Test fixtures for the object sync tests.

Provides:
- Per-test SQLite database (aiosqlite) with the object sync tables created
- session_factory matching the repositories' Callable[..., AsyncGenerator] contract
- Settings with explicit delimiter, time zone and temporary id prefixes
- RecordingDiagnostics sink
"""

from __future__ import annotations

from collections.abc import AsyncGenerator

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine

from src.objectsync.config import Settings
from src.objectsync.core.database import init_db
from src.objectsync.core.diagnostics import RecordingDiagnostics
from src.objectsync.mapping.ledger import ObjectMapLedger
from src.objectsync.mapping.repository import FieldMapRepository


@pytest.fixture
def settings() -> Settings:
    """Settings independent of the environment and any .env file."""
    return Settings(
        _env_file=None,
        DATABASE_URL="sqlite+aiosqlite:///objectsync-test.db",
        ARRAY_DELIMITER=";",
        LOCAL_TIMEZONE="UTC",
        TEMP_PUSH_PREFIX="tmp_sf_",
        TEMP_PULL_PREFIX="tmp_wp_",
        SCHEMA_VERSION="1.0.0",
    )


@pytest_asyncio.fixture
async def engine(tmp_path):
    """Per-test SQLite database file; each session gets its own connection."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'objectsync.db'}")
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    """Async generator factory yielding sessions bound to the test engine."""

    async def factory() -> AsyncGenerator[AsyncSession, None]:
        async with AsyncSession(engine, expire_on_commit=False) as session:
            yield session

    return factory


@pytest.fixture
def diagnostics() -> RecordingDiagnostics:
    return RecordingDiagnostics()


@pytest.fixture
def ledger(session_factory, diagnostics, settings) -> ObjectMapLedger:
    return ObjectMapLedger(session_factory, diagnostics=diagnostics, settings=settings)


@pytest.fixture
def fieldmap_repo(session_factory, settings) -> FieldMapRepository:
    return FieldMapRepository(session_factory, settings=settings)
