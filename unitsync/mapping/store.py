"""Field mapping store for unitsync.

Persists named header → field mappings per project. Enforces the invariant:
at most one default mapping per project (the store clears other defaults
whenever one is set). Mappings are never deleted by the import pipeline.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import and_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from unitsync.db.models import FieldMappingModel, ProjectModel
from unitsync.errors import (
    InvalidImportDataError,
    MappingNotFoundError,
    ProjectNotFoundError,
)
from unitsync.models import IGNORE, CanonicalField, MappingSuggestion

logger = logging.getLogger(__name__)


def validate_mapping_targets(mappings: dict[str, str]) -> None:
    """Reject mappings that point at anything but a canonical field or "ignore".

    Raises:
        InvalidImportDataError: If any target is unknown
    """
    allowed = CanonicalField.values() | {IGNORE}
    unknown = sorted({target for target in mappings.values() if target not in allowed})
    if unknown:
        raise InvalidImportDataError(
            "Field mapping contains unknown target fields",
            details={"unknownFields": unknown, "allowed": sorted(allowed)},
        )


def auto_mapping_name(now: datetime | None = None) -> str:
    now = now or datetime.now(timezone.utc)
    return f"Auto-generated mapping {now.strftime('%Y-%m-%d %H:%M:%S')}"


class FieldMappingStore:
    """CRUD for project field mappings."""

    def __init__(self, session: AsyncSession):
        """Initialize store with database session.

        Args:
            session: SQLAlchemy async session
        """
        self.session = session

    async def get(self, project_id: str, mapping_id: str) -> FieldMappingModel | None:
        """Mapping by id, scoped to the project (other projects' ids are not visible)."""
        stmt = select(FieldMappingModel).where(
            and_(
                FieldMappingModel.id == mapping_id,
                FieldMappingModel.project_id == project_id,
            )
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def require(self, project_id: str, mapping_id: str) -> FieldMappingModel:
        """Like get(), but raises MappingNotFoundError when missing."""
        mapping = await self.get(project_id, mapping_id)
        if mapping is None:
            raise MappingNotFoundError(
                f"Field mapping {mapping_id} not found in project {project_id}",
                details={"fieldMappingId": mapping_id},
            )
        return mapping

    async def get_default_approved(self, project_id: str) -> FieldMappingModel | None:
        """The project's approved default mapping, if one exists."""
        stmt = (
            select(FieldMappingModel)
            .where(
                and_(
                    FieldMappingModel.project_id == project_id,
                    FieldMappingModel.is_default.is_(True),
                    FieldMappingModel.is_approved.is_(True),
                )
            )
            .order_by(FieldMappingModel.created_at.desc())
            .limit(1)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def list_approved(self, project_id: str) -> list[FieldMappingModel]:
        """Approved mappings, default first, then newest first."""
        stmt = (
            select(FieldMappingModel)
            .where(
                and_(
                    FieldMappingModel.project_id == project_id,
                    FieldMappingModel.is_approved.is_(True),
                )
            )
            .order_by(FieldMappingModel.is_default.desc(), FieldMappingModel.created_at.desc())
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def create(
        self,
        project_id: str,
        name: str,
        mappings: dict[str, str],
        created_by: str,
        is_default: bool = False,
        is_approved: bool = False,
        review_notes: dict | None = None,
    ) -> FieldMappingModel:
        """Persist a new mapping.

        Args:
            project_id: Owning project
            name: Display name
            mappings: header → canonical field or "ignore"
            created_by: Username or "system"
            is_default: Make this the project's default (clears other defaults)
            is_approved: Whether automated imports may use it straight away
            review_notes: Matcher notes for the reviewer (ambiguous headers,
                fields several headers map to)

        Returns:
            The flushed FieldMappingModel (id populated)

        Raises:
            ProjectNotFoundError: If the project does not exist
            InvalidImportDataError: If a mapping target is unknown
        """
        validate_mapping_targets(mappings)
        await self._require_project(project_id)

        if is_default:
            await self._clear_defaults(project_id)

        now = datetime.now(timezone.utc)
        mapping = FieldMappingModel(
            project_id=project_id,
            name=name,
            mappings=dict(mappings),
            is_default=is_default,
            is_approved=is_approved,
            review_notes=review_notes or {},
            created_by=created_by,
            created_at=now,
            approved_by=created_by if is_approved else None,
            approved_at=now if is_approved else None,
        )
        self.session.add(mapping)
        await self.session.flush()

        logger.info(
            f"Created field mapping {mapping.id} for project {project_id} "
            f"(default={is_default}, approved={is_approved})"
        )
        return mapping

    async def create_auto(
        self, project_id: str, suggestion: MappingSuggestion, created_by: str
    ) -> FieldMappingModel:
        """Persist an inferred mapping as unapproved, default, awaiting review."""
        review_notes = {}
        if suggestion.ambiguous:
            review_notes["ambiguousHeaders"] = suggestion.ambiguous
        if suggestion.shared_targets:
            review_notes["sharedTargets"] = suggestion.shared_targets
        return await self.create(
            project_id=project_id,
            name=auto_mapping_name(),
            mappings=suggestion.mappings,
            created_by=created_by,
            is_default=True,
            is_approved=False,
            review_notes=review_notes,
        )

    async def set_default(self, project_id: str, mapping_id: str) -> FieldMappingModel:
        mapping = await self.require(project_id, mapping_id)
        await self._clear_defaults(project_id)
        mapping.is_default = True
        await self.session.flush()
        return mapping

    async def approve(
        self,
        project_id: str,
        mapping_id: str,
        approved_by: str,
        mappings: dict[str, str] | None = None,
        make_default: bool = True,
    ) -> FieldMappingModel:
        """Mark a mapping approved, optionally correcting it first.

        Raises:
            MappingNotFoundError: If the mapping is not in the project
            InvalidImportDataError: If corrected mappings contain unknown targets
        """
        mapping = await self.require(project_id, mapping_id)

        if mappings is not None:
            validate_mapping_targets(mappings)
            mapping.mappings = dict(mappings)

        if make_default:
            await self._clear_defaults(project_id)
            mapping.is_default = True

        mapping.is_approved = True
        mapping.approved_by = approved_by
        mapping.approved_at = datetime.now(timezone.utc)
        await self.session.flush()

        logger.info(f"Field mapping {mapping_id} approved by {approved_by}")
        return mapping

    async def _clear_defaults(self, project_id: str) -> None:
        stmt = (
            update(FieldMappingModel)
            .where(
                and_(
                    FieldMappingModel.project_id == project_id,
                    FieldMappingModel.is_default.is_(True),
                )
            )
            .values(is_default=False)
            .execution_options(synchronize_session="fetch")
        )
        await self.session.execute(stmt)

    async def _require_project(self, project_id: str) -> None:
        if await self.session.get(ProjectModel, project_id) is None:
            raise ProjectNotFoundError(f"Project {project_id} not found")
