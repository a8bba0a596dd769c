"""Reconciliation engine: merge an import batch into a project's inventory.

One import is one database transaction:
1. Load project, buildings and layouts
2. Normalize every row (pure, before any write)
3. Retire: non-SOLD units whose number is absent from the batch become SOLD
4. Create/update incoming units in submission order
5. Mark the import record processed, with counts, and commit

Retirement is computed against the units as they were before this batch
touched anything, so units created by the batch can never be retired by it.
Per-row failures are rolled back to a savepoint and counted as skipped; any
other failure rolls back the whole import.
"""

from __future__ import annotations

import asyncio
import logging
import secrets
import string
from collections.abc import Sequence
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import and_, select
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from unitsync.canonical.normalizer import (
    CatalogEntry,
    NormalizedRow,
    ProjectCatalog,
    RowNormalizer,
    resolve_price,
)
from unitsync.config import ImportConfig
from unitsync.db.models import (
    BuildingModel,
    ProjectModel,
    UnitImportModel,
    UnitLayoutModel,
    UnitModel,
)
from unitsync.errors import (
    ImportNotFoundError,
    ImportTransactionError,
    ProjectNotFoundError,
    UnitSyncError,
)
from unitsync.models import CanonicalUnit, RawRow, UnitStatus
from unitsync.pipeline.ledger import VersionLedger
from unitsync.pipeline.types import ImportResult

logger = logging.getLogger(__name__)

RETIRED_REASON = "Unit absent from import, marked as sold"

_SLUG_ALPHABET = string.ascii_lowercase + string.digits


def make_slug(floor: int, number: str) -> str:
    """Unit slug: floor-{floor}-unit-{number}-{5 random chars}."""
    suffix = "".join(secrets.choice(_SLUG_ALPHABET) for _ in range(5))
    return f"floor-{floor}-unit-{number}-{suffix}"


async def load_catalog(session: AsyncSession, project_id: str) -> ProjectCatalog:
    """Buildings and layouts of a project.

    Raises:
        ProjectNotFoundError: If the project does not exist
    """
    if await session.get(ProjectModel, project_id) is None:
        raise ProjectNotFoundError(f"Project with ID {project_id} not found")

    buildings = await session.execute(
        select(BuildingModel.id, BuildingModel.name)
        .where(BuildingModel.project_id == project_id)
        .order_by(BuildingModel.created_at, BuildingModel.id)
    )
    layouts = await session.execute(
        select(UnitLayoutModel.id, UnitLayoutModel.name)
        .where(UnitLayoutModel.project_id == project_id)
        .order_by(UnitLayoutModel.id)
    )
    return ProjectCatalog(
        project_id=project_id,
        buildings=tuple(CatalogEntry(id=row.id, name=row.name) for row in buildings),
        layouts=tuple(CatalogEntry(id=row.id, name=row.name) for row in layouts),
    )


class UnitReconciler:
    """Applies one import batch to the units table."""

    def __init__(self, session: AsyncSession, config: ImportConfig | None = None):
        """Initialize reconciler.

        The reconciler owns the session's transaction: it commits on success
        and rolls back on failure.

        Args:
            session: Async SQLAlchemy session (no transaction in progress)
            config: Timeout, retry and error-reporting settings
        """
        self.session = session
        self.config = config or ImportConfig()
        self.ledger = VersionLedger(session)

    async def reconcile(
        self,
        project_id: str,
        rows: Sequence[RawRow],
        mapping: dict[str, str],
        *,
        import_record_id: str,
        update_existing: bool = True,
        default_building_id: str | None = None,
    ) -> ImportResult:
        """Reconcile a batch and commit it as one transaction.

        Args:
            project_id: Target project
            rows: Raw source rows, in submission order
            mapping: header → canonical field or "ignore"
            import_record_id: Persisted ImportRecord this run belongs to
            update_existing: Update units that already exist (else skip them)
            default_building_id: Building for rows that do not name one

        Returns:
            ImportResult with counts, warnings and bounded errors

        Raises:
            ProjectNotFoundError: If the project does not exist
            ImportNotFoundError: If the import record does not exist
            ImportTransactionError: If the transaction failed or timed out;
                nothing was applied and the record carries last_error
        """
        retrying = AsyncRetrying(
            stop=stop_after_attempt(max(self.config.retry_attempts, 1)),
            wait=wait_exponential(
                multiplier=self.config.retry_backoff_base,
                max=self.config.retry_backoff_max,
            ),
            retry=retry_if_exception_type(OperationalError),
            reraise=True,
        )

        try:
            async for attempt in retrying:
                with attempt:
                    if attempt.retry_state.attempt_number > 1:
                        logger.warning(
                            f"Retrying import {import_record_id} "
                            f"(attempt {attempt.retry_state.attempt_number})"
                        )
                    result = await self._attempt(
                        project_id,
                        rows,
                        mapping,
                        import_record_id=import_record_id,
                        update_existing=update_existing,
                        default_building_id=default_building_id,
                    )
        except UnitSyncError:
            raise
        except asyncio.TimeoutError as e:
            message = (
                f"Import transaction exceeded {self.config.transaction_timeout_seconds:g}s "
                "and was rolled back"
            )
            await self._record_failure(import_record_id, message)
            raise ImportTransactionError(message, details={"importId": import_record_id}) from e
        except Exception as e:
            message = f"Import transaction failed and was rolled back: {e}"
            await self._record_failure(import_record_id, message)
            raise ImportTransactionError(message, details={"importId": import_record_id}) from e

        return result

    async def _attempt(
        self,
        project_id: str,
        rows: Sequence[RawRow],
        mapping: dict[str, str],
        **kwargs: Any,
    ) -> ImportResult:
        """One transaction: run under the timeout, commit or roll back."""
        try:
            result = await asyncio.wait_for(
                self._run(project_id, rows, mapping, **kwargs),
                timeout=self.config.transaction_timeout_seconds,
            )
            await self.session.commit()
            return result
        except BaseException:
            await self.session.rollback()
            raise

    async def _run(
        self,
        project_id: str,
        rows: Sequence[RawRow],
        mapping: dict[str, str],
        *,
        import_record_id: str,
        update_existing: bool,
        default_building_id: str | None,
    ) -> ImportResult:
        import_record = await self.session.get(UnitImportModel, import_record_id)
        if import_record is None:
            raise ImportNotFoundError(f"Import {import_record_id} not found")

        catalog = await load_catalog(self.session, project_id)
        normalizer = RowNormalizer(mapping, catalog, default_building_id)
        normalized = self._normalize_rows(normalizer, rows)

        result = ImportResult(
            total=len(rows),
            max_errors=self.config.max_reported_errors,
            import_id=import_record_id,
        )
        for row in normalized:
            result.warnings.extend(row.warnings)

        logger.info(
            f"Reconciling {len(rows)} rows into project {project_id} "
            f"(import {import_record_id}, update_existing={update_existing})"
        )

        # Rows with a number but another error still count as present
        incoming = {row.unit_number for row in normalized if row.unit_number}
        await self._retire_missing(project_id, incoming, import_record_id, result)

        for row in normalized:
            await self._apply_row(project_id, row, import_record_id, update_existing, result)

        import_record.created_units = result.created
        import_record.updated_units = result.updated
        import_record.skipped_units = result.skipped
        import_record.marked_as_sold = result.marked_as_sold
        import_record.processed = True
        import_record.processed_at = datetime.now(timezone.utc)
        import_record.last_error = None
        await self.session.flush()

        logger.info(
            f"Import {import_record_id} complete: created={result.created} "
            f"updated={result.updated} skipped={result.skipped} "
            f"marked_as_sold={result.marked_as_sold}"
        )
        return result

    def _normalize_rows(
        self, normalizer: RowNormalizer, rows: Sequence[RawRow]
    ) -> list[NormalizedRow]:
        """Normalize every row; a row that blows up is rejected on its own."""
        normalized = []
        for i, raw_row in enumerate(rows, start=1):
            try:
                normalized.append(normalizer.normalize(raw_row, i))
            except Exception as e:
                logger.warning(f"Row {i} could not be normalized: {e}")
                normalized.append(
                    NormalizedRow(
                        row_number=i,
                        raw=raw_row,
                        error=f"Row {i}: could not be normalized ({e})",
                    )
                )
        return normalized

    async def _retire_missing(
        self,
        project_id: str,
        incoming: set[str],
        import_record_id: str,
        result: ImportResult,
    ) -> None:
        stmt = (
            select(UnitModel)
            .where(
                and_(
                    UnitModel.project_id == project_id,
                    UnitModel.status != UnitStatus.SOLD.value,
                )
            )
            .order_by(UnitModel.number, UnitModel.id)
        )
        active = list((await self.session.execute(stmt)).scalars().all())

        for unit in active:
            if unit.number in incoming:
                continue

            before = unit.snapshot()
            unit.status = UnitStatus.SOLD.value
            await self.session.flush()
            await self.ledger.record_update(
                unit, import_record_id, before, reason=RETIRED_REASON
            )
            result.marked_as_sold += 1
            logger.debug(f"Unit {unit.number} marked as SOLD (not found in import)")

    async def _apply_row(
        self,
        project_id: str,
        row: NormalizedRow,
        import_record_id: str,
        update_existing: bool,
        result: ImportResult,
    ) -> None:
        if not row.is_valid:
            result.skip(row.error)
            return

        unit = row.unit
        savepoint = await self.session.begin_nested()
        try:
            existing = await self._find_unit(project_id, unit)

            if existing is not None and not update_existing:
                await savepoint.commit()
                result.skip()
                return

            if existing is not None:
                await self._update_unit(existing, unit, row.raw, import_record_id)
                outcome = "updated"
            else:
                await self._create_unit(project_id, unit, row.raw, import_record_id)
                outcome = "created"

            await savepoint.commit()
        except (OperationalError, asyncio.CancelledError):
            # Transaction-level: let the whole import roll back (and retry)
            raise
        except Exception as e:
            await savepoint.rollback()
            logger.warning(f"Row {row.row_number} (unit {unit.unit_number}) failed: {e}")
            result.skip(f"Error processing unit {unit.unit_number}: {e}")
            return

        if outcome == "created":
            result.created += 1
        else:
            result.updated += 1

    async def _find_unit(self, project_id: str, unit: CanonicalUnit) -> UnitModel | None:
        conditions = [UnitModel.project_id == project_id, UnitModel.number == unit.unit_number]
        if unit.building_id:
            conditions.append(UnitModel.building_id == unit.building_id)

        stmt = select(UnitModel).where(and_(*conditions)).order_by(UnitModel.created_at).limit(1)
        return (await self.session.execute(stmt)).scalar_one_or_none()

    async def _create_unit(
        self, project_id: str, unit: CanonicalUnit, raw: RawRow, import_record_id: str
    ) -> UnitModel:
        floor = unit.floor_number if unit.floor_number is not None else 0
        model = UnitModel(
            project_id=project_id,
            number=unit.unit_number,
            floor=floor,
            slug=make_slug(floor, unit.unit_number),
            building_id=unit.building_id,
            layout_id=unit.layout_id,
            status=(unit.status or UnitStatus.AVAILABLE).value,
            price=resolve_price(unit),
            discount_price=unit.discount_price,
            area=unit.area if unit.area is not None else 0.0,
            bedrooms=unit.bedrooms if unit.bedrooms is not None else 0,
            bathrooms=unit.bathrooms if unit.bathrooms is not None else 0,
            description=unit.description,
            view=unit.view,
        )
        self.session.add(model)
        await self.session.flush()
        await self.ledger.record_create(model, import_record_id, original_data=raw)
        return model

    async def _update_unit(
        self, existing: UnitModel, unit: CanonicalUnit, raw: RawRow, import_record_id: str
    ) -> UnitModel:
        before = existing.snapshot()

        for attr, value in _present_fields(unit).items():
            setattr(existing, attr, value)
        existing.price = resolve_price(unit, stored=existing.price)
        existing.slug = make_slug(existing.floor, existing.number)

        await self.session.flush()
        await self.ledger.record_update(existing, import_record_id, before, original_data=raw)
        return existing

    async def _record_failure(self, import_record_id: str, message: str) -> None:
        """Store last_error in its own short transaction; processed stays false."""
        logger.error(f"Import {import_record_id} failed: {message}")
        try:
            record = await self.session.get(UnitImportModel, import_record_id)
            if record is not None:
                record.last_error = message[:2000]
                record.processed = False
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            logger.exception(f"Could not record failure on import {import_record_id}")


def _present_fields(unit: CanonicalUnit) -> dict[str, Any]:
    """Unit columns carried by the row; absent values never overwrite stored ones."""
    candidates = {
        "floor": unit.floor_number,
        "building_id": unit.building_id,
        "layout_id": unit.layout_id,
        "status": unit.status.value if unit.status else None,
        "discount_price": unit.discount_price,
        "area": unit.area,
        "bedrooms": unit.bedrooms,
        "bathrooms": unit.bathrooms,
        "description": unit.description,
        "view": unit.view,
    }
    return {attr: value for attr, value in candidates.items() if value is not None}
