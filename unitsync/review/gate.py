"""Import session and approval gate.

Decides whether an import may reconcile right away or must wait for a human
to approve its field mapping:

    NO_MAPPING → AUTO_MAPPING_CREATED (pending) → APPROVED → PROCESSED

Interactive callers are trusted and always reconcile. Automated callers need
an approved mapping; without one the gate infers a mapping, stores it
unapproved together with the raw batch, and returns a PendingImport. A
pending import never touches units or versions.
"""

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import and_, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from unitsync.config import ImportConfig
from unitsync.db.models import FieldMappingModel, ProjectModel, UnitImportModel
from unitsync.errors import (
    ImportAlreadyProcessedError,
    ImportNotFoundError,
    InvalidImportDataError,
    MappingNotApprovedError,
    MissingParameterError,
    NoImportDataError,
    ProjectNotFoundError,
)
from unitsync.mapping.keywords import KeywordDictionary
from unitsync.mapping.matcher import collect_headers, identity_mapping, infer_mapping
from unitsync.mapping.store import FieldMappingStore
from unitsync.models import Caller, ImportRequest
from unitsync.pipeline.reconciler import UnitReconciler
from unitsync.pipeline.types import ImportResult, PendingImport

logger = logging.getLogger(__name__)


class ImportGate:
    """Entry point for submitting and resuming unit imports."""

    def __init__(
        self,
        session: AsyncSession,
        config: ImportConfig | None = None,
        dictionary: KeywordDictionary | None = None,
    ):
        """Initialize gate.

        Args:
            session: Async SQLAlchemy session; the gate commits on it
            config: Import tunables (timeouts, retries, post-pass threshold)
            dictionary: Keyword dictionary for inferring mappings
        """
        self.session = session
        self.config = config or ImportConfig()
        self.dictionary = dictionary or KeywordDictionary.default()
        self.mappings = FieldMappingStore(session)

    async def submit(
        self, project_id: str, request: ImportRequest, caller: Caller
    ) -> ImportResult | PendingImport:
        """Submit an import batch.

        Args:
            project_id: Target project
            request: Rows plus import options
            caller: Who is importing and how they authenticated

        Returns:
            ImportResult if the batch was reconciled, PendingImport if it is
            waiting for mapping approval

        Raises:
            ProjectNotFoundError: If the project does not exist
            MappingNotFoundError: If an explicit mapping id is not in the project
            MappingNotApprovedError: If an automated caller names an unapproved mapping
            ImportTransactionError: If reconciliation failed and was rolled back
        """
        await self._require_project(project_id)

        if caller.is_trusted:
            mapping_id, mapping = await self._interactive_mapping(project_id, request)
        else:
            resolved = await self._automated_mapping(project_id, request)
            if resolved is None:
                return await self._park(project_id, request, caller)
            mapping_id, mapping = resolved

        record = await self._create_record(project_id, request, caller, mapping_id)
        await self.session.commit()

        logger.info(
            f"Import {record.id} accepted for project {project_id} "
            f"({len(request.data)} rows, caller={caller.kind.value})"
        )
        return await self._reconcile(project_id, record.id, request, mapping)

    async def process_pending(
        self, project_id: str, import_id: str | None, caller: Caller | None = None
    ) -> ImportResult:
        """Reconcile a stored pending import once its mapping is approved.

        Raises:
            MissingParameterError: If no import id was given
            ProjectNotFoundError: If the project does not exist
            ImportNotFoundError: If the import is not in the project
            ImportAlreadyProcessedError: If the import was already reconciled
            MappingNotApprovedError: If the import's mapping is missing or unapproved
            NoImportDataError: If the stored snapshot has no rows
            ImportTransactionError: If reconciliation failed; the import stays retryable
        """
        if not import_id:
            raise MissingParameterError("Import ID is required")

        await self._require_project(project_id)

        record = await self.session.get(UnitImportModel, import_id)
        if record is None or record.project_id != project_id:
            raise ImportNotFoundError("Import not found", details={"importId": import_id})
        if record.processed:
            raise ImportAlreadyProcessedError(
                "Import has already been processed", details={"importId": import_id}
            )

        mapping = None
        if record.field_mapping_id:
            mapping = await self.mappings.get(project_id, record.field_mapping_id)
        if mapping is None or not mapping.is_approved:
            raise MappingNotApprovedError(
                "Field mapping is not approved",
                details={"fieldMappingId": record.field_mapping_id},
            )

        request = self._load_snapshot(record)
        mappings = dict(mapping.mappings)
        await self.session.commit()

        logger.info(
            f"Processing pending import {record.id} with mapping {mapping.id} "
            f"(requested by {caller.username if caller else 'system'})"
        )
        return await self._reconcile(project_id, record.id, request, mappings)

    async def list_pending(self, project_id: str) -> list[dict[str, Any]]:
        """Unprocessed imports whose mapping still awaits approval, newest first."""
        await self._require_project(project_id)

        stmt = (
            select(UnitImportModel)
            .join(FieldMappingModel, FieldMappingModel.id == UnitImportModel.field_mapping_id)
            .where(
                and_(
                    UnitImportModel.project_id == project_id,
                    UnitImportModel.processed.is_(False),
                    FieldMappingModel.is_approved.is_(False),
                )
            )
            .order_by(UnitImportModel.imported_at.desc())
        )
        records = (await self.session.execute(stmt)).scalars().all()

        sample_size = self.config.pending_sample_size
        return [
            {
                "id": record.id,
                "mappingId": record.field_mapping_id or "",
                "createdAt": record.imported_at.isoformat() if record.imported_at else None,
                "totalUnits": record.total_units,
                "importedBy": record.imported_by or "system",
                "sampleData": list((record.raw_data or {}).get("data") or [])[:sample_size],
            }
            for record in records
        ]

    async def history(self, project_id: str, page: int = 1, limit: int = 20) -> dict[str, Any]:
        """Import records for a project, newest first."""
        await self._require_project(project_id)
        page, limit = max(page, 1), max(limit, 1)

        total = (
            await self.session.execute(
                select(func.count())
                .select_from(UnitImportModel)
                .where(UnitImportModel.project_id == project_id)
            )
        ).scalar_one()
        stmt = (
            select(UnitImportModel)
            .where(UnitImportModel.project_id == project_id)
            .order_by(UnitImportModel.imported_at.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        records = (await self.session.execute(stmt)).scalars().all()

        return {
            "data": [record.to_dict() for record in records],
            "pagination": {
                "page": page,
                "limit": limit,
                "totalCount": total,
                "totalPages": (total + limit - 1) // limit,
            },
        }

    async def _interactive_mapping(
        self, project_id: str, request: ImportRequest
    ) -> tuple[str | None, dict[str, str]]:
        if request.field_mapping_id:
            mapping = await self.mappings.require(project_id, request.field_mapping_id)
            return mapping.id, dict(mapping.mappings)
        return None, identity_mapping(collect_headers(request.data))

    async def _automated_mapping(
        self, project_id: str, request: ImportRequest
    ) -> tuple[str, dict[str, str]] | None:
        """Approved mapping for an automated caller, or None to park the import."""
        if request.field_mapping_id:
            mapping = await self.mappings.require(project_id, request.field_mapping_id)
            if not mapping.is_approved:
                raise MappingNotApprovedError(
                    "Field mapping is not approved",
                    details={"fieldMappingId": mapping.id},
                )
            return mapping.id, dict(mapping.mappings)

        default = await self.mappings.get_default_approved(project_id)
        if default is not None:
            return default.id, dict(default.mappings)
        return None

    async def _park(self, project_id: str, request: ImportRequest, caller: Caller) -> PendingImport:
        suggestion = infer_mapping(
            collect_headers(request.data),
            self.dictionary,
            unit_number_min_score=self.config.unit_number_fuzzy_min_score,
        )
        mapping = await self.mappings.create_auto(project_id, suggestion, created_by=caller.username)
        record = await self._create_record(project_id, request, caller, mapping.id)
        await self.session.commit()

        logger.info(
            f"Import {record.id} for project {project_id} pending approval of "
            f"auto-generated mapping {mapping.id}"
        )
        return PendingImport(
            import_id=record.id,
            field_mapping_id=mapping.id,
            total=len(request.data),
            ambiguous=suggestion.ambiguous,
            shared_targets=suggestion.shared_targets,
        )

    async def _create_record(
        self,
        project_id: str,
        request: ImportRequest,
        caller: Caller,
        mapping_id: str | None,
    ) -> UnitImportModel:
        record = UnitImportModel(
            project_id=project_id,
            imported_by=caller.username,
            total_units=len(request.data),
            processed=False,
            raw_data=request.snapshot(),
            field_mapping_id=mapping_id,
            currency=request.currency,
            price_update_date=request.price_update_date,
        )
        self.session.add(record)
        await self.session.flush()
        return record

    async def _reconcile(
        self, project_id: str, import_id: str, request: ImportRequest, mapping: dict[str, str]
    ) -> ImportResult:
        reconciler = UnitReconciler(self.session, self.config)
        return await reconciler.reconcile(
            project_id,
            request.data,
            mapping,
            import_record_id=import_id,
            update_existing=request.update_existing,
            default_building_id=request.default_building_id,
        )

    def _load_snapshot(self, record: UnitImportModel) -> ImportRequest:
        raw = record.raw_data or {}
        if not raw.get("data"):
            raise NoImportDataError("No data to import", details={"importId": record.id})
        try:
            return ImportRequest.model_validate(raw)
        except ValueError as e:
            raise InvalidImportDataError(
                "Invalid import data", details={"importId": record.id, "reason": str(e)}
            ) from e

    async def _require_project(self, project_id: str) -> None:
        if await self.session.get(ProjectModel, project_id) is None:
            raise ProjectNotFoundError("Project not found", details={"projectId": project_id})
