"""Batch-level failures raised by the import pipeline.

Row-level problems never raise; they are collected on ImportResult. Anything
in this module aborts the whole call and is rendered by the web layer as
``{"error": kind, "message": ..., "details": ...}``.
"""

from __future__ import annotations

from typing import Any


class UnitSyncError(Exception):
    """Base class for failures that abort an import call."""

    kind = "serverError"
    status_code = 500

    def __init__(self, message: str, details: Any = None):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"error": self.kind, "message": self.message}
        if self.details is not None:
            payload["details"] = self.details
        return payload


class ProjectNotFoundError(UnitSyncError):
    kind = "projectNotFound"
    status_code = 404


class MappingNotFoundError(UnitSyncError):
    kind = "mappingNotFound"
    status_code = 404


class MappingNotApprovedError(UnitSyncError):
    kind = "mappingNotApproved"
    status_code = 400


class ImportNotFoundError(UnitSyncError):
    kind = "importNotFound"
    status_code = 404


class ImportAlreadyProcessedError(UnitSyncError):
    kind = "importAlreadyProcessed"
    status_code = 409


class InvalidImportDataError(UnitSyncError):
    kind = "invalidData"
    status_code = 400


class ImportTransactionError(UnitSyncError):
    """The reconciliation transaction failed or timed out and was rolled back."""

    kind = "transactionError"
    status_code = 500


class UnitNotFoundError(UnitSyncError):
    kind = "unitNotFound"
    status_code = 404


class NoImportDataError(InvalidImportDataError):
    kind = "noData"


class MissingParameterError(InvalidImportDataError):
    kind = "missingParameter"
