"""Type definitions for import pipeline operations."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

DEFAULT_MAX_REPORTED_ERRORS = 200


class ImportStatus(str, Enum):
    """Outcome of an import call."""

    PROCESSED = "processed"
    PENDING_APPROVAL = "pending_approval"


@dataclass
class ImportResult:
    """Counters and messages for one reconciliation run.

    ``errors`` keeps at most ``max_errors`` messages; the rest are counted in
    ``suppressed_errors`` and summarized as a trailing entry in to_dict().
    """

    total: int = 0
    created: int = 0
    updated: int = 0
    skipped: int = 0
    marked_as_sold: int = 0
    warnings: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    suppressed_errors: int = 0
    max_errors: int = DEFAULT_MAX_REPORTED_ERRORS
    import_id: str | None = None

    @property
    def processed(self) -> int:
        return self.created + self.updated + self.skipped

    @property
    def success(self) -> bool:
        return self.processed == self.total

    def add_error(self, message: str) -> None:
        if len(self.errors) < self.max_errors:
            self.errors.append(message)
        else:
            self.suppressed_errors += 1

    def skip(self, message: str | None = None) -> None:
        """Count a skipped row, recording why if there is a reason."""
        self.skipped += 1
        if message:
            self.add_error(message)

    def reported_errors(self) -> list[str]:
        if not self.suppressed_errors:
            return list(self.errors)
        return [*self.errors, f"{self.suppressed_errors} more errors suppressed"]

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "success": self.success,
            "total": self.total,
            "processed": self.processed,
            "created": self.created,
            "updated": self.updated,
            "skipped": self.skipped,
            "markedAsSold": self.marked_as_sold,
            "warnings": list(self.warnings),
            "errors": self.reported_errors(),
        }
        if self.import_id:
            payload["importId"] = self.import_id
        return payload


@dataclass
class PendingImport:
    """An automated import parked until its inferred mapping is approved."""

    import_id: str
    field_mapping_id: str
    total: int
    ambiguous: dict[str, list[str]] = field(default_factory=dict)
    shared_targets: dict[str, list[str]] = field(default_factory=dict)

    status = ImportStatus.PENDING_APPROVAL

    @property
    def message(self) -> str:
        return (
            "A field mapping was generated automatically and needs approval "
            "before these units are imported."
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": True,
            "status": self.status.value,
            "importId": self.import_id,
            "fieldMappingId": self.field_mapping_id,
            "total": self.total,
            "message": self.message,
            "ambiguousHeaders": self.ambiguous,
            "sharedTargets": self.shared_targets,
        }
