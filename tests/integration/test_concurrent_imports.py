"""Integration tests for imports racing on the same project.

Uses a file-backed SQLite database so each session gets its own connection
and its own transaction. SQLite serializes writers: the import whose
transaction commits last decides the unit's final state.
"""

from __future__ import annotations

import asyncio

import pytest
import pytest_asyncio
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from unitsync.config import ImportConfig
from unitsync.db.connection import build_engine
from unitsync.db.models import (
    Base,
    BuildingModel,
    ProjectModel,
    UnitImportModel,
    UnitModel,
    UnitVersionModel,
)
from unitsync.pipeline.reconciler import UnitReconciler

pytestmark = pytest.mark.integration

MAPPING = {"Unit": "unit_number", "Selling": "selling_price"}


@pytest_asyncio.fixture()
async def session_factory(tmp_path):
    """Session factory over a seeded database file."""
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'units.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    SessionLocal = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with SessionLocal() as session:
        session.add(ProjectModel(id="proj-1", name="Sunset Residences"))
        await session.flush()
        session.add(BuildingModel(id="bldg-a", project_id="proj-1", name="Tower A"))
        await session.commit()

    try:
        yield SessionLocal
    finally:
        await engine.dispose()


async def start_import(SessionLocal, imported_by: str) -> str:
    async with SessionLocal() as session:
        record = UnitImportModel(
            project_id="proj-1",
            imported_by=imported_by,
            total_units=1,
            processed=False,
            raw_data={},
        )
        session.add(record)
        await session.commit()
        return record.id


async def import_price(SessionLocal, import_id: str, price: int, config: ImportConfig):
    async with SessionLocal() as session:
        reconciler = UnitReconciler(session, config)
        return await reconciler.reconcile(
            "proj-1", [{"Unit": "A1", "Selling": price}], MAPPING, import_record_id=import_id
        )


async def versions_of_a1(SessionLocal) -> list[UnitVersionModel]:
    async with SessionLocal() as session:
        stmt = (
            select(UnitVersionModel)
            .join(UnitModel, UnitModel.id == UnitVersionModel.unit_id)
            .where(UnitModel.number == "A1")
            .order_by(UnitVersionModel.sequence)
        )
        return list((await session.execute(stmt)).scalars().all())


async def units_named_a1(SessionLocal) -> list[UnitModel]:
    async with SessionLocal() as session:
        result = await session.execute(select(UnitModel).where(UnitModel.number == "A1"))
        return list(result.scalars().all())


@pytest.mark.asyncio
async def test_later_commit_from_another_session_wins(session_factory, import_config):
    first_id = await start_import(session_factory, "alice")
    second_id = await start_import(session_factory, "crm-feed")

    first = await import_price(session_factory, first_id, 100, import_config)
    second = await import_price(session_factory, second_id, 200, import_config)

    assert (first.created, first.updated) == (1, 0)
    assert (second.created, second.updated) == (0, 1)

    units = await units_named_a1(session_factory)
    assert len(units) == 1
    assert units[0].price == 200.0

    versions = await versions_of_a1(session_factory)
    assert [(v.sequence, v.import_id) for v in versions] == [(1, first_id), (2, second_id)]
    assert versions[1].version_metadata["changes"]["before"]["price"] == 100.0


@pytest.mark.asyncio
async def test_racing_imports_serialize_on_commit(session_factory):
    """Whichever import commits second updates the unit the first one created."""
    config = ImportConfig(
        transaction_timeout_seconds=30.0,
        retry_attempts=20,
        retry_backoff_base=0.02,
        retry_backoff_max=0.2,
    )
    prices = {
        await start_import(session_factory, "alice"): 100,
        await start_import(session_factory, "crm-feed"): 200,
    }

    results = await asyncio.gather(
        *(
            import_price(session_factory, import_id, price, config)
            for import_id, price in prices.items()
        )
    )

    assert sorted((r.created, r.updated) for r in results) == [(0, 1), (1, 0)]

    units = await units_named_a1(session_factory)
    assert len(units) == 1

    versions = await versions_of_a1(session_factory)
    assert [v.sequence for v in versions] == [1, 2]
    assert versions[0].version_metadata["updateType"] == "CREATE"
    assert versions[1].version_metadata["updateType"] == "UPDATE"
    assert {v.import_id for v in versions} == set(prices)

    last_committed = versions[1].import_id
    assert units[0].price == float(prices[last_committed])

    async with session_factory() as session:
        processed = await session.execute(
            select(func.count())
            .select_from(UnitImportModel)
            .where(UnitImportModel.processed.is_(True))
        )
        assert processed.scalar_one() == 2
