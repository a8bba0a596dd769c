"""SQLAlchemy async database models for unitsync.

Projects, buildings and layouts are owned by the surrounding application and
are read-only to the import pipeline. Units are mutated by reconciliation;
unit_versions is the append-only ledger of those mutations.
"""

from __future__ import annotations

from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return str(uuid4())


class Base(DeclarativeBase):
    """Base class for all models."""

    pass


class ProjectModel(Base):
    """Development project that owns buildings, layouts and units."""

    __tablename__ = "projects"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    name: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, nullable=False
    )


class BuildingModel(Base):
    __tablename__ = "buildings"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    project_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, nullable=False
    )


class UnitLayoutModel(Base):
    __tablename__ = "unit_layouts"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    project_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str | None] = mapped_column(Text)


class UnitModel(Base):
    """Durable inventory record; one row per physical unit."""

    __tablename__ = "units"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    project_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("projects.id", ondelete="CASCADE"), nullable=False
    )
    building_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("buildings.id", ondelete="SET NULL")
    )
    layout_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("unit_layouts.id", ondelete="SET NULL")
    )

    number: Mapped[str] = mapped_column(Text, nullable=False)
    floor: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    slug: Mapped[str | None] = mapped_column(Text)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="AVAILABLE")

    price: Mapped[float] = mapped_column(
        Numeric(14, 2, asdecimal=False), nullable=False, default=0
    )
    discount_price: Mapped[float | None] = mapped_column(Numeric(14, 2, asdecimal=False))
    area: Mapped[float | None] = mapped_column(Float)
    bedrooms: Mapped[int | None] = mapped_column(Integer)
    bathrooms: Mapped[int | None] = mapped_column(Integer)
    description: Mapped[str | None] = mapped_column(Text)
    view: Mapped[str | None] = mapped_column(Text)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False
    )

    __table_args__ = (
        Index("idx_units_project_number", "project_id", "number"),  # Natural key lookup
        Index("idx_units_project_status", "project_id", "status"),  # Retirement sweep
        Index("idx_units_building", "building_id"),
    )

    def snapshot(self) -> dict:
        """JSON-safe view used for version before/after payloads."""
        return {
            "id": self.id,
            "projectId": self.project_id,
            "buildingId": self.building_id,
            "layoutId": self.layout_id,
            "number": self.number,
            "floor": self.floor,
            "slug": self.slug,
            "status": self.status,
            "price": float(self.price) if self.price is not None else None,
            "discountPrice": (
                float(self.discount_price) if self.discount_price is not None else None
            ),
            "area": self.area,
            "bedrooms": self.bedrooms,
            "bathrooms": self.bathrooms,
            "description": self.description,
            "view": self.view,
        }


class FieldMappingModel(Base):
    """Named, reusable header → canonical field mapping for a project."""

    __tablename__ = "unit_field_mappings"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    project_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(Text, nullable=False)
    mappings: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    is_default: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_approved: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # Headers the matcher could not place unambiguously
    review_notes: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)

    created_by: Mapped[str] = mapped_column(Text, nullable=False, default="system")
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, nullable=False
    )
    approved_by: Mapped[str | None] = mapped_column(Text)
    approved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    __table_args__ = (
        Index("idx_field_mappings_project_default", "project_id", "is_default", "is_approved"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "projectId": self.project_id,
            "name": self.name,
            "mappings": dict(self.mappings or {}),
            "isDefault": self.is_default,
            "isApproved": self.is_approved,
            "reviewNotes": dict(self.review_notes or {}),
            "createdBy": self.created_by,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
            "approvedBy": self.approved_by,
            "approvedAt": self.approved_at.isoformat() if self.approved_at else None,
        }


class UnitImportModel(Base):
    """One row per import attempt; the replayable record of what was submitted."""

    __tablename__ = "unit_imports"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    project_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("projects.id", ondelete="CASCADE"), nullable=False
    )
    imported_by: Mapped[str] = mapped_column(Text, nullable=False, default="system")

    total_units: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_units: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    updated_units: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    skipped_units: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    marked_as_sold: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    processed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    raw_data: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    field_mapping_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("unit_field_mappings.id", ondelete="SET NULL")
    )
    currency: Mapped[str | None] = mapped_column(String(8))
    price_update_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    last_error: Mapped[str | None] = mapped_column(Text)

    imported_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, nullable=False
    )
    processed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    __table_args__ = (
        Index("idx_unit_imports_project_date", "project_id", "imported_at"),
        Index("idx_unit_imports_pending", "project_id", "processed"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "projectId": self.project_id,
            "importedBy": self.imported_by,
            "importedAt": self.imported_at.isoformat() if self.imported_at else None,
            "totalUnits": self.total_units,
            "createdUnits": self.created_units,
            "updatedUnits": self.updated_units,
            "skippedUnits": self.skipped_units,
            "markedAsSold": self.marked_as_sold,
            "processed": self.processed,
            "processedAt": self.processed_at.isoformat() if self.processed_at else None,
            "fieldMappingId": self.field_mapping_id,
            "currency": self.currency,
            "priceUpdateDate": (
                self.price_update_date.isoformat() if self.price_update_date else None
            ),
            "lastError": self.last_error,
        }


class UnitVersionModel(Base):
    """Append-only snapshot of a unit after one import-driven mutation."""

    __tablename__ = "unit_versions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    unit_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("units.id", ondelete="CASCADE"), nullable=False
    )
    import_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("unit_imports.id", ondelete="CASCADE"), nullable=False
    )

    # Snapshot fields
    number: Mapped[str] = mapped_column(Text, nullable=False)
    floor: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    building_id: Mapped[str | None] = mapped_column(String(36))
    layout_id: Mapped[str | None] = mapped_column(String(36))
    price: Mapped[float | None] = mapped_column(Numeric(14, 2, asdecimal=False))
    discount_price: Mapped[float | None] = mapped_column(Numeric(14, 2, asdecimal=False))
    area: Mapped[float | None] = mapped_column(Float)
    status: Mapped[str] = mapped_column(String(16), nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    view: Mapped[str | None] = mapped_column(Text)

    # {originalData | changes: {before, after}, updateType}
    version_metadata: Mapped[dict] = mapped_column("metadata", JSON, nullable=False, default=dict)

    # Monotonic within a unit; keeps ordering stable when timestamps collide
    sequence: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    version_date: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, nullable=False
    )

    __table_args__ = (
        Index("idx_unit_versions_unit_seq", "unit_id", "sequence"),
        Index("idx_unit_versions_import", "import_id"),
    )
