"""Database layer for unitsync with async SQLAlchemy."""

from unitsync.db.connection import get_session, init_db
from unitsync.db.models import (
    Base,
    BuildingModel,
    FieldMappingModel,
    ProjectModel,
    UnitImportModel,
    UnitLayoutModel,
    UnitModel,
    UnitVersionModel,
)

__all__ = [
    "Base",
    "ProjectModel",
    "BuildingModel",
    "UnitLayoutModel",
    "UnitModel",
    "FieldMappingModel",
    "UnitImportModel",
    "UnitVersionModel",
    "get_session",
    "init_db",
]
