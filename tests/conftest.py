"""Pytest configuration and fixtures for unitsync tests.

Provides common fixtures for testing: environment, an in-memory database
and a seeded project with buildings and layouts.
"""

from __future__ import annotations

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from unitsync.config import ImportConfig, reset_config
from unitsync.db.connection import build_engine
from unitsync.db.models import (
    Base,
    BuildingModel,
    ProjectModel,
    UnitImportModel,
    UnitLayoutModel,
)


@pytest.fixture(autouse=True)
def test_env(monkeypatch):
    """Point configuration at an in-memory database for every test."""
    monkeypatch.setenv("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
    monkeypatch.delenv("UNITS_IMPORT_API_TOKEN", raising=False)
    monkeypatch.delenv("UNITSYNC_AUTH_DISABLED", raising=False)
    reset_config()
    yield
    reset_config()


@pytest.fixture
def import_config() -> ImportConfig:
    """Fast import settings: no backoff, short timeout."""
    return ImportConfig(
        transaction_timeout_seconds=10.0,
        retry_attempts=2,
        retry_backoff_base=0.0,
        retry_backoff_max=0.0,
        max_reported_errors=200,
    )


@pytest_asyncio.fixture()
async def db_session() -> AsyncSession:
    """Create in-memory database for testing."""
    engine = build_engine("sqlite+aiosqlite:///:memory:")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    SessionLocal = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    session = SessionLocal()
    try:
        yield session
    finally:
        await session.close()
        await engine.dispose()


@pytest_asyncio.fixture()
async def project(db_session: AsyncSession) -> ProjectModel:
    """Project with two buildings and two layouts."""
    project = ProjectModel(id="proj-1", name="Sunset Residences")
    db_session.add(project)
    await db_session.flush()

    db_session.add_all(
        [
            BuildingModel(id="bldg-a", project_id=project.id, name="Tower A"),
            UnitLayoutModel(id="layout-1br", project_id=project.id, name="1BR"),
            UnitLayoutModel(id="layout-2br", project_id=project.id, name="2BR Deluxe"),
        ]
    )
    await db_session.flush()
    db_session.add(BuildingModel(id="bldg-b", project_id=project.id, name="Tower B"))
    await db_session.commit()
    return project


@pytest.fixture
def make_import_record(db_session: AsyncSession):
    """Factory for persisted import records."""

    async def _make(project_id: str = "proj-1", total: int = 0, **kwargs) -> UnitImportModel:
        record = UnitImportModel(
            project_id=project_id,
            imported_by=kwargs.pop("imported_by", "tester"),
            total_units=total,
            processed=False,
            raw_data=kwargs.pop("raw_data", {}),
            **kwargs,
        )
        db_session.add(record)
        await db_session.commit()
        return record

    return _make
