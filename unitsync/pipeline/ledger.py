"""Unit version ledger.

Append-only history of import-driven unit mutations. Every create or update
of a unit writes exactly one version row in the same transaction, so a
unit's history can be replayed import by import.
"""

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from unitsync.db.models import UnitImportModel, UnitModel, UnitVersionModel
from unitsync.errors import UnitNotFoundError
from unitsync.models import RawRow, UpdateType

logger = logging.getLogger(__name__)

# Snapshot columns compared between consecutive versions
_TRACKED_FIELDS = (
    ("number", "number"),
    ("floor", "floor"),
    ("building_id", "buildingId"),
    ("layout_id", "layoutId"),
    ("discount_price", "discountPrice"),
    ("status", "status"),
    ("area", "area"),
    ("description", "description"),
    ("view", "view"),
)


class VersionLedger:
    """Writes and reads unit_versions rows."""

    def __init__(self, session: AsyncSession):
        """Initialize ledger with database session.

        Args:
            session: Active async SQLAlchemy session
        """
        self.session = session

    async def record_create(
        self, unit: UnitModel, import_id: str, original_data: RawRow
    ) -> UnitVersionModel:
        """Version for a freshly created unit; keeps the source row."""
        return await self._append(
            unit,
            import_id,
            metadata={
                "originalData": original_data,
                "updateType": UpdateType.CREATE.value,
            },
            sequence=1,
        )

    async def record_update(
        self,
        unit: UnitModel,
        import_id: str,
        before: dict[str, Any],
        original_data: RawRow | None = None,
        reason: str | None = None,
    ) -> UnitVersionModel:
        """Version for an update; ``before`` is the unit snapshot prior to mutation."""
        metadata: dict[str, Any] = {
            "changes": {"before": before, "after": unit.snapshot()},
            "updateType": UpdateType.UPDATE.value,
        }
        if original_data is not None:
            metadata["originalData"] = original_data
        if reason:
            metadata["reason"] = reason

        return await self._append(unit, import_id, metadata=metadata)

    async def _append(
        self,
        unit: UnitModel,
        import_id: str,
        metadata: dict[str, Any],
        sequence: int | None = None,
    ) -> UnitVersionModel:
        if sequence is None:
            sequence = await self._next_sequence(unit.id)

        version = UnitVersionModel(
            unit_id=unit.id,
            import_id=import_id,
            number=unit.number,
            floor=unit.floor,
            building_id=unit.building_id,
            layout_id=unit.layout_id,
            price=unit.price,
            discount_price=unit.discount_price,
            area=unit.area,
            status=unit.status,
            description=unit.description,
            view=unit.view,
            version_metadata=metadata,
            sequence=sequence,
        )
        self.session.add(version)
        await self.session.flush()
        return version

    async def _next_sequence(self, unit_id: str) -> int:
        stmt = select(func.max(UnitVersionModel.sequence)).where(
            UnitVersionModel.unit_id == unit_id
        )
        current = (await self.session.execute(stmt)).scalar_one_or_none()
        return (current or 0) + 1

    async def count(self, unit_id: str) -> int:
        stmt = select(func.count()).select_from(UnitVersionModel).where(
            UnitVersionModel.unit_id == unit_id
        )
        return (await self.session.execute(stmt)).scalar_one()

    async def history(
        self, project_id: str, unit_id: str, page: int = 1, limit: int = 10
    ) -> dict[str, Any]:
        """Paginated version history, newest first, with changes against the previous version.

        Args:
            project_id: Project the unit must belong to
            unit_id: Unit to read history for
            page: 1-based page number
            limit: Versions per page

        Returns:
            {"data": [...], "pagination": {page, limit, totalCount, totalPages}}

        Raises:
            UnitNotFoundError: If the unit is not in the project
        """
        unit = await self.session.get(UnitModel, unit_id)
        if unit is None or unit.project_id != project_id:
            raise UnitNotFoundError("Unit not found in this project")

        page = max(page, 1)
        limit = max(limit, 1)
        total = await self.count(unit_id)

        # One extra row: the version just before the page, for the last item's changes
        stmt = (
            select(UnitVersionModel, UnitImportModel)
            .join(UnitImportModel, UnitImportModel.id == UnitVersionModel.import_id)
            .where(UnitVersionModel.unit_id == unit_id)
            .order_by(UnitVersionModel.sequence.desc())
            .offset((page - 1) * limit)
            .limit(limit + 1)
        )
        rows = (await self.session.execute(stmt)).all()

        data = []
        for index, (version, unit_import) in enumerate(rows[:limit]):
            previous = rows[index + 1][0] if index + 1 < len(rows) else None
            data.append(_format_version(version, unit_import, previous))

        return {
            "data": data,
            "pagination": {
                "page": page,
                "limit": limit,
                "totalCount": total,
                "totalPages": (total + limit - 1) // limit,
            },
        }

    async def for_import(self, import_id: str) -> list[UnitVersionModel]:
        stmt = (
            select(UnitVersionModel)
            .where(UnitVersionModel.import_id == import_id)
            .order_by(UnitVersionModel.version_date, UnitVersionModel.sequence)
        )
        return list((await self.session.execute(stmt)).scalars().all())


def _format_version(
    version: UnitVersionModel,
    unit_import: UnitImportModel,
    previous: UnitVersionModel | None,
) -> dict[str, Any]:
    return {
        "id": version.id,
        "sequence": version.sequence,
        "versionDate": version.version_date.isoformat() if version.version_date else None,
        "number": version.number,
        "floor": version.floor,
        "buildingId": version.building_id,
        "layoutId": version.layout_id,
        "price": version.price,
        "discountPrice": version.discount_price,
        "status": version.status,
        "area": version.area,
        "description": version.description,
        "view": version.view,
        "updateType": (version.version_metadata or {}).get("updateType"),
        "import": {
            "id": unit_import.id,
            "date": unit_import.imported_at.isoformat() if unit_import.imported_at else None,
            "importedBy": unit_import.imported_by,
            "currency": unit_import.currency,
        },
        "changes": diff_versions(previous, version) if previous else None,
    }


def diff_versions(previous: UnitVersionModel, current: UnitVersionModel) -> dict[str, Any]:
    """Per-field changes between two versions; unchanged fields are omitted."""
    changes: dict[str, Any] = {}

    if previous.price != current.price:
        old, new = previous.price, current.price
        changes["price"] = {
            "from": old,
            "to": new,
            "diff": new - old if old is not None and new is not None else None,
            "percentDiff": (new - old) / old * 100 if old and new is not None else None,
        }

    for attr, key in _TRACKED_FIELDS:
        old, new = getattr(previous, attr), getattr(current, attr)
        if old != new:
            changes[key] = {"from": old, "to": new}

    return changes
