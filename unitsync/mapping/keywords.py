"""Multilingual keyword dictionary used to recognize source column headers.

The dictionary is an immutable value: the matcher never reads module state,
callers pass the dictionary they want (the shipped default, or a localized
override loaded from YAML).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

from unitsync.models import CanonicalField

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class FieldKeywords:
    """Synonyms for one field.

    ``field`` is usually a CanonicalField value. Entries for columns the
    inventory does not store (comments, ownership) are still listed so their
    headers are recognized and ignored instead of leaking into a looser match.
    """

    field: str
    label: str
    keywords: tuple[str, ...]

    @property
    def is_canonical(self) -> bool:
        return self.field in CanonicalField.values()


_DEFAULT_ENTRIES: tuple[FieldKeywords, ...] = (
    FieldKeywords(
        CanonicalField.UNIT_NUMBER.value,
        "Unit Number",
        ("number", "unit number", "unit", "unit no", "no", "номер", "№", "unit id", "id"),
    ),
    FieldKeywords(
        CanonicalField.FLOOR_NUMBER.value,
        "Floor",
        ("floor", "этаж", "level", "floor number", "floor no", "storey", "story"),
    ),
    FieldKeywords(
        CanonicalField.BUILDING.value,
        "Building",
        ("building", "здание", "tower", "block", "корпус", "башня", "блок"),
    ),
    FieldKeywords(
        CanonicalField.LAYOUT_ID.value,
        "Layout",
        ("layout", "layout id", "layout type", "type id", "plan id", "планировка"),
    ),
    FieldKeywords(
        CanonicalField.AVAILABILITY_STATUS.value,
        "Availability Status",
        ("status", "статус", "availability", "доступность", "unit status", "available"),
    ),
    FieldKeywords(
        CanonicalField.BASE_PRICE_EXCL_VAT.value,
        "Base Price (excl. VAT)",
        ("base price", "price excl vat", "price excluding vat", "base", "цена без ндс"),
    ),
    FieldKeywords(
        CanonicalField.FINAL_PRICE_INCL_VAT.value,
        "Final Price (incl. VAT)",
        ("final price", "price incl vat", "price including vat", "final", "цена с ндс"),
    ),
    FieldKeywords(
        CanonicalField.SELLING_PRICE.value,
        "Selling Price",
        ("selling price", "sale price", "price", "цена", "стоимость", "cost"),
    ),
    FieldKeywords(
        CanonicalField.DISCOUNT_PRICE.value,
        "Discount Price",
        (
            "discount",
            "sale price",
            "скидка",
            "цена со скидкой",
            "special price",
            "promo price",
        ),
    ),
    FieldKeywords(
        CanonicalField.UNIT_DESCRIPTION.value,
        "Description",
        ("description", "desc", "описание", "unit description", "about"),
    ),
    FieldKeywords(
        CanonicalField.VIEW_DESCRIPTION.value,
        "View",
        ("view", "вид", "окна", "window view", "unit view", "facing", "outlook"),
    ),
    FieldKeywords(
        "comment",
        "Comment",
        (
            "comment",
            "note",
            "комментарий",
            "примечание",
            "заметка",
            "notes",
            "remarks",
        ),
    ),
    FieldKeywords(
        CanonicalField.AREA.value,
        "Area",
        (
            "area",
            "площадь",
            "size",
            "total area",
            "total size",
            "sqm",
            "м²",
            "sq.m",
            "per sqm",
            "per m2",
            "m2",
            "square meter",
            "square meters",
            "sq meter",
            "sq meters",
            "квм",
            "кв.м",
            "кв м",
        ),
    ),
    FieldKeywords(
        CanonicalField.BEDROOMS.value,
        "Bedrooms",
        ("bedrooms", "beds", "спальни", "комнаты", "bed", "br", "bedroom", "bd"),
    ),
    FieldKeywords(
        CanonicalField.BATHROOMS.value,
        "Bathrooms",
        (
            "bathrooms",
            "baths",
            "ванные",
            "санузлы",
            "bath",
            "ba",
            "bathroom",
            "wc",
            "toilet",
        ),
    ),
    FieldKeywords(
        "ownership",
        "Ownership",
        (
            "ownership",
            "владение",
            "own type",
            "тип владения",
            "tenure",
            "freehold",
            "leasehold",
        ),
    ),
)


@dataclass(frozen=True, slots=True)
class KeywordDictionary:
    """Ordered, immutable collection of field synonyms.

    Order matters: it is the tie-break when two fields match a header
    equally well.
    """

    entries: tuple[FieldKeywords, ...]

    @classmethod
    def default(cls) -> KeywordDictionary:
        """English and Russian synonyms shipped with unitsync."""
        return cls(_DEFAULT_ENTRIES)

    @classmethod
    def from_yaml(cls, path: Path, base: KeywordDictionary | None = None) -> KeywordDictionary:
        """Load a localized dictionary from YAML.

        The file maps field names to either a keyword list or a mapping with
        ``label`` and ``keywords``::

            unit_number:
              label: Numéro
              keywords: [numéro, lot]
            floor_number: [étage, niveau]

        Fields present in the file replace the same field in ``base``; new
        fields are appended after the base entries.

        Raises:
            ValueError: If the file is not a mapping of fields to keywords
        """
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}

        if not isinstance(data, dict):
            raise ValueError(f"Keyword file {path} must map field names to keywords")

        overrides = {str(field): _parse_entry(str(field), value) for field, value in data.items()}

        merged: list[FieldKeywords] = []
        for entry in (base.entries if base else ()):
            merged.append(overrides.pop(entry.field, entry))
        merged.extend(overrides.values())

        logger.info(f"Loaded keyword dictionary from {path} ({len(merged)} fields)")
        return cls(tuple(merged))

    def get(self, field: str) -> FieldKeywords | None:
        for entry in self.entries:
            if entry.field == field:
                return entry
        return None

    def __iter__(self):
        return iter(self.entries)

    def __len__(self) -> int:
        return len(self.entries)


def _parse_entry(field: str, value: Any) -> FieldKeywords:
    if isinstance(value, list):
        label, keywords = field.replace("_", " ").title(), value
    elif isinstance(value, dict):
        label = str(value.get("label") or field.replace("_", " ").title())
        keywords = value.get("keywords") or []
    else:
        raise ValueError(f"Field {field!r}: expected a keyword list or a mapping")

    return FieldKeywords(field, label, tuple(str(k) for k in keywords))


def load_keyword_dictionary(path: Path | None = None) -> KeywordDictionary:
    """Default dictionary, optionally overlaid with a YAML override file."""
    default = KeywordDictionary.default()
    if path is None:
        return default
    return KeywordDictionary.from_yaml(path, base=default)
