"""Request models for the unitsync web API.

The import request body itself is unitsync.models.ImportRequest, shared with
the CLI.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


# ============================================================================
# Field Mapping Models
# ============================================================================


class FieldMappingCreate(BaseModel):
    """Create a field mapping (interactive users; approved on creation)."""

    model_config = ConfigDict(populate_by_name=True)

    name: str = Field(min_length=1)
    mappings: dict[str, str]
    is_default: bool = Field(default=False, alias="isDefault")


class FieldMappingApproval(BaseModel):
    """Approve a mapping, optionally correcting it first."""

    model_config = ConfigDict(populate_by_name=True)

    mappings: dict[str, str] | None = None
    make_default: bool = Field(default=True, alias="makeDefault")


class MappingSuggestRequest(BaseModel):
    headers: list[str] = Field(min_length=1)


# ============================================================================
# Authentication Models
# ============================================================================


class LoginRequest(BaseModel):
    username: str
    password: str
