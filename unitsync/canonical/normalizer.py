"""Row normalizer: raw source row → CanonicalUnit.

Pure transform. Applies a field mapping, parses numbers and statuses, and
resolves building and layout references against a project catalog loaded
by the caller. Problems with one row never raise: they come back as a
warning (row still imported) or an error (row rejected).
"""

from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass, field
from typing import Any

from pydantic import ValidationError

from unitsync.models import IGNORE, CanonicalField, CanonicalUnit, RawRow, UnitStatus

logger = logging.getLogger(__name__)

# Tokens that mean "no value" rather than zero
MISSING_TOKENS = frozenset({"", "na", "n/a", "-"})

_SOLD_MARKERS = ("sold", "продан")
_RESERVED_MARKERS = ("reserved", "booked", "резерв", "бронь", "забронир")
_AVAILABLE_MARKERS = ("available", "free", "for sale", "свобод", "в продаже", "доступ")

_LEADING_INT = re.compile(r"^\s*([-+]?\d+)")


def parse_number(value: Any) -> float | None:
    """Parse a numeric or price cell.

    Strips everything but digits, "." and "-" ("€ 1,250,000" → 1250000.0).
    Missing tokens (NA, N/A, "-", empty) and unparseable text give None, as
    do values that are not finite (inf, NaN, overflow).
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        try:
            number = float(value)
        except OverflowError:
            return None
        return number if math.isfinite(number) else None

    text = str(value).strip()
    if text.lower() in MISSING_TOKENS:
        return None

    cleaned = re.sub(r"[^\d.\-]", "", text)
    try:
        number = float(cleaned)
    except ValueError:
        return None
    return number if math.isfinite(number) else None


def parse_int(value: Any) -> int | None:
    """Parse an integer cell by its leading digits ("3rd" → 3, "Ground" → None)."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if math.isfinite(value) else None

    match = _LEADING_INT.match(str(value))
    return int(match.group(1)) if match else None


def parse_status(value: Any) -> tuple[UnitStatus | None, bool]:
    """Map free-text availability to a UnitStatus.

    Returns:
        (status, recognized). Absent input gives (None, True). Unrecognized
        text gives (AVAILABLE, False) so the caller can warn.
    """
    if value is None:
        return None, True

    text = str(value).strip().lower()
    if not text:
        return None, True

    if any(marker in text for marker in _SOLD_MARKERS):
        return UnitStatus.SOLD, True
    if any(marker in text for marker in _RESERVED_MARKERS):
        return UnitStatus.RESERVED, True
    if any(marker in text for marker in _AVAILABLE_MARKERS):
        return UnitStatus.AVAILABLE, True
    return UnitStatus.AVAILABLE, False


def _clean_text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, float):
        return math.isnan(value)
    return isinstance(value, str) and not value.strip()


def _display_number(value: Any) -> str:
    # 101.0 from a spreadsheet reader is unit "101"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return "" if value is None else str(value).strip()


@dataclass(frozen=True, slots=True)
class CatalogEntry:
    id: str
    name: str | None


@dataclass(frozen=True)
class ProjectCatalog:
    """Buildings and layouts of one project, in creation order."""

    project_id: str
    buildings: tuple[CatalogEntry, ...] = ()
    layouts: tuple[CatalogEntry, ...] = ()

    def has_building(self, building_id: str) -> bool:
        return any(b.id == building_id for b in self.buildings)

    def find_building(self, name: str) -> str | None:
        """Exact lowercase name match, else first name where either contains the other."""
        wanted = name.strip().lower()
        if not wanted:
            return None

        named = [(b.name.strip().lower(), b.id) for b in self.buildings if b.name]
        for building_name, building_id in named:
            if building_name == wanted:
                return building_id
        for building_name, building_id in named:
            if wanted in building_name or building_name in wanted:
                return building_id
        return None

    def find_layout(self, reference: str) -> str | None:
        """Layout by id, then by exact name, then by case-insensitive name."""
        reference = reference.strip()
        for layout in self.layouts:
            if layout.id == reference:
                return layout.id
        for layout in self.layouts:
            if layout.name == reference:
                return layout.id
        lowered = reference.lower()
        for layout in self.layouts:
            if layout.name and layout.name.lower() == lowered:
                return layout.id
        return None

    def layout_names(self) -> str:
        names = [f'"{layout.name}"' for layout in self.layouts if layout.name]
        return ", ".join(names) or "none"


@dataclass
class NormalizedRow:
    """Result of normalizing one source row."""

    row_number: int
    raw: RawRow
    unit_number: str | None = None
    unit: CanonicalUnit | None = None
    warnings: list[str] = field(default_factory=list)
    error: str | None = None

    @property
    def is_valid(self) -> bool:
        return self.unit is not None and self.error is None


class RowNormalizer:
    """Applies a field mapping and project lookups to raw rows."""

    def __init__(
        self,
        mapping: dict[str, str],
        catalog: ProjectCatalog,
        default_building_id: str | None = None,
    ):
        """Initialize normalizer.

        Args:
            mapping: header → canonical field or "ignore"
            catalog: Buildings and layouts of the target project
            default_building_id: Building for rows that do not name one
        """
        allowed = CanonicalField.values()
        # Unknown targets are dropped, never passed through
        self.mapping = {
            header: target
            for header, target in mapping.items()
            if target != IGNORE and target in allowed
        }
        self.catalog = catalog
        self.default_building_id = default_building_id

    def apply_mapping(self, raw_row: RawRow) -> dict[str, Any]:
        """Rename mapped columns to canonical fields.

        When several columns map to one field the rightmost non-empty cell
        wins; an empty cell never erases a value from an earlier column.
        """
        mapped: dict[str, Any] = {}
        for header, value in raw_row.items():
            target = self.mapping.get(str(header))
            if target is None:
                continue
            if target in mapped and _is_blank(value):
                continue
            mapped[target] = value
        return mapped

    def normalize(self, raw_row: RawRow, row_number: int) -> NormalizedRow:
        """Normalize one raw row.

        Args:
            raw_row: Source row as parsed from the file (header → cell)
            row_number: 1-based position in the submission, used in messages

        Returns:
            NormalizedRow with either a CanonicalUnit or an error
        """
        row = NormalizedRow(row_number=row_number, raw=raw_row)
        mapped = self.apply_mapping(raw_row)

        unit_number = _display_number(mapped.get(CanonicalField.UNIT_NUMBER.value))
        if not unit_number:
            row.error = f"Row {row_number}: unit without unit_number skipped"
            return row

        row.unit_number = unit_number
        label = f"Unit {unit_number}"
        try:
            self._fill(row, mapped, label)
        except Exception as e:
            logger.warning(f"Row {row_number} ({label}) could not be normalized: {e}")
            row.unit = None
            row.error = f"{label}: could not be normalized ({e})"
        return row

    def _fill(self, row: NormalizedRow, mapped: dict[str, Any], label: str) -> None:
        """Resolve references and parse values of a row that has a unit number."""
        building_id, building_error = self._resolve_building(mapped, label, row.warnings)
        if building_error:
            row.error = building_error
            return

        layout_id = None
        layout_ref = _clean_text(mapped.get(CanonicalField.LAYOUT_ID.value))
        if layout_ref:
            layout_id = self.catalog.find_layout(layout_ref)
            if layout_id is None:
                row.warnings.append(
                    f'{label}: layout with ID/name "{layout_ref}" not found in this '
                    f"project. Available layouts: {self.catalog.layout_names()}"
                )

        raw_status = mapped.get(CanonicalField.AVAILABILITY_STATUS.value)
        status, recognized = parse_status(raw_status)
        if not recognized:
            row.warnings.append(
                f'{label}: unrecognized status "{raw_status}", treated as AVAILABLE'
            )

        try:
            row.unit = CanonicalUnit(
                unit_number=row.unit_number,
                floor_number=parse_int(mapped.get(CanonicalField.FLOOR_NUMBER.value)),
                building_id=building_id,
                layout_id=layout_id,
                status=status,
                base_price_excl_vat=parse_number(
                    mapped.get(CanonicalField.BASE_PRICE_EXCL_VAT.value)
                ),
                final_price_incl_vat=parse_number(
                    mapped.get(CanonicalField.FINAL_PRICE_INCL_VAT.value)
                ),
                selling_price=parse_number(mapped.get(CanonicalField.SELLING_PRICE.value)),
                discount_price=parse_number(mapped.get(CanonicalField.DISCOUNT_PRICE.value)),
                area=parse_number(mapped.get(CanonicalField.AREA.value)),
                bedrooms=parse_int(mapped.get(CanonicalField.BEDROOMS.value)),
                bathrooms=parse_int(mapped.get(CanonicalField.BATHROOMS.value)),
                description=_clean_text(mapped.get(CanonicalField.UNIT_DESCRIPTION.value)),
                view=_clean_text(mapped.get(CanonicalField.VIEW_DESCRIPTION.value)),
            )
        except ValidationError as e:
            row.error = f"{label}: invalid values ({e.error_count()} validation errors)"

    def _resolve_building(
        self, mapped: dict[str, Any], label: str, warnings: list[str]
    ) -> tuple[str | None, str | None]:
        """Returns (building_id, error)."""
        building_name = _clean_text(mapped.get(CanonicalField.BUILDING.value))
        if building_name:
            building_id = self.catalog.find_building(building_name)
            if building_id:
                return building_id, None
            warnings.append(f'{label}: building "{building_name}" not found')

        if self.default_building_id:
            if self.catalog.has_building(self.default_building_id):
                return self.default_building_id, None
            return None, (
                f"{label}: default building {self.default_building_id} "
                "does not belong to this project"
            )

        if self.catalog.buildings:
            return self.catalog.buildings[0].id, None

        return None, f"{label}: project has no buildings, unit cannot be placed"


def resolve_price(unit: CanonicalUnit, stored: float | None = None) -> float:
    """Listing price: base → final → selling → stored (updates only) → 0."""
    return unit.listing_price(stored)
