"""unitsync Pydantic models for type-safe data validation.

Canonical field vocabulary, the normalized unit record that reaches the
reconciliation engine, and the request model shared by the web and CLI
entry points.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

IGNORE = "ignore"

RawValue = Union[str, int, float, bool, None]
RawRow = dict[str, Any]


class CanonicalField(str, Enum):
    """Known unit attributes a source column can be mapped onto."""

    UNIT_NUMBER = "unit_number"
    FLOOR_NUMBER = "floor_number"
    BUILDING = "building"
    LAYOUT_ID = "layout_id"
    AVAILABILITY_STATUS = "availability_status"
    BASE_PRICE_EXCL_VAT = "base_price_excl_vat"
    FINAL_PRICE_INCL_VAT = "final_price_incl_vat"
    SELLING_PRICE = "selling_price"
    DISCOUNT_PRICE = "discount_price"
    UNIT_DESCRIPTION = "unit_description"
    VIEW_DESCRIPTION = "view_description"
    AREA = "area"
    BEDROOMS = "bedrooms"
    BATHROOMS = "bathrooms"

    @classmethod
    def values(cls) -> frozenset[str]:
        return frozenset(member.value for member in cls)


REQUIRED_FIELDS = (CanonicalField.UNIT_NUMBER,)


class UnitStatus(str, Enum):
    """Sales status of a unit."""

    AVAILABLE = "AVAILABLE"
    RESERVED = "RESERVED"
    SOLD = "SOLD"


class UpdateType(str, Enum):
    """Kind of mutation recorded on a version row."""

    CREATE = "CREATE"
    UPDATE = "UPDATE"


class CallerKind(str, Enum):
    """How the caller of an import authenticated."""

    INTERACTIVE = "interactive"  # Session cookie, trusted
    AUTOMATED = "automated"  # Shared-secret header, gated


class Caller(BaseModel):
    """Authenticated identity attached to an import call."""

    kind: CallerKind
    username: str = "system"

    @property
    def is_trusted(self) -> bool:
        return self.kind == CallerKind.INTERACTIVE


class CanonicalUnit(BaseModel):
    """Normalized unit record produced by the row normalizer.

    ``None`` means "absent in the source row"; absent values never overwrite
    stored values on update.
    """

    model_config = ConfigDict(frozen=True)

    unit_number: str
    floor_number: int | None = None
    building_id: str | None = None
    layout_id: str | None = None
    status: UnitStatus | None = None

    base_price_excl_vat: float | None = None
    final_price_incl_vat: float | None = None
    selling_price: float | None = None
    discount_price: float | None = None

    area: float | None = None
    bedrooms: int | None = None
    bathrooms: int | None = None
    description: str | None = None
    view: str | None = None

    @field_validator("unit_number")
    @classmethod
    def validate_unit_number(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("unit_number must be non-empty")
        return v

    def listing_price(self, stored: float | None = None) -> float:
        """Final price with base → final → selling → stored → 0 precedence."""
        for candidate in (
            self.base_price_excl_vat,
            self.final_price_incl_vat,
            self.selling_price,
            stored,
        ):
            if candidate is not None:
                return candidate
        return 0.0


class ImportRequest(BaseModel):
    """Body of an import call (web or CLI)."""

    model_config = ConfigDict(populate_by_name=True)

    data: list[dict[str, Any]] = Field(min_length=1)
    update_existing: bool = Field(default=True, alias="updateExisting")
    default_building_id: str | None = Field(default=None, alias="defaultBuildingId")
    currency: str | None = None
    price_update_date: datetime | None = Field(default=None, alias="priceUpdateDate")
    field_mapping_id: str | None = Field(default=None, alias="fieldMappingId")

    def snapshot(self) -> dict[str, Any]:
        """JSON-safe copy of the request, stored as the replayable raw data."""
        return self.model_dump(mode="json", by_alias=True)


class MappingSuggestion(BaseModel):
    """Result of inferring a header → field mapping."""

    mappings: dict[str, str]
    ambiguous: dict[str, list[str]] = Field(default_factory=dict)
    # field → headers that all map to it; the rightmost non-empty cell wins
    shared_targets: dict[str, list[str]] = Field(default_factory=dict)

    @property
    def mapped_fields(self) -> set[str]:
        return {target for target in self.mappings.values() if target != IGNORE}

    @property
    def has_required_fields(self) -> bool:
        return all(f.value in self.mapped_fields for f in REQUIRED_FIELDS)
