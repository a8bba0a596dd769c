"""Unit tests for unitsync Pydantic models.

Tests data validation, field constraints, and model behavior.
"""

from __future__ import annotations

from datetime import datetime

import pytest
from pydantic import ValidationError

from unitsync.models import (
    Caller,
    CallerKind,
    CanonicalField,
    CanonicalUnit,
    ImportRequest,
    MappingSuggestion,
)


class TestCanonicalUnit:
    def test_unit_number_is_trimmed(self):
        assert CanonicalUnit(unit_number="  A-101 ").unit_number == "A-101"

    def test_unit_number_required_non_empty(self):
        with pytest.raises(ValidationError):
            CanonicalUnit(unit_number="   ")

    def test_frozen(self):
        unit = CanonicalUnit(unit_number="1")
        with pytest.raises(ValidationError):
            unit.unit_number = "2"

    def test_listing_price_precedence(self):
        unit = CanonicalUnit(unit_number="1", final_price_incl_vat=110, selling_price=120)
        assert unit.listing_price() == 110
        assert unit.listing_price(stored=50) == 110


class TestImportRequest:
    """Test the import body shared by web and CLI."""

    def test_aliases_and_defaults(self):
        request = ImportRequest.model_validate(
            {"data": [{"No": "1"}], "defaultBuildingId": "b1", "fieldMappingId": "m1"}
        )

        assert request.update_existing is True
        assert request.default_building_id == "b1"
        assert request.field_mapping_id == "m1"
        assert request.currency is None

    def test_empty_data_rejected(self):
        with pytest.raises(ValidationError):
            ImportRequest(data=[])

    def test_snapshot_round_trips(self):
        request = ImportRequest(
            data=[{"No": "1", "Price": 100}],
            update_existing=False,
            currency="EUR",
            price_update_date=datetime(2024, 5, 1, 12, 0),
        )

        snapshot = request.snapshot()

        assert snapshot["updateExisting"] is False
        assert snapshot["priceUpdateDate"] == "2024-05-01T12:00:00"
        assert ImportRequest.model_validate(snapshot) == request


class TestCallerAndSuggestion:
    def test_only_interactive_callers_are_trusted(self):
        assert Caller(kind=CallerKind.INTERACTIVE).is_trusted
        assert not Caller(kind=CallerKind.AUTOMATED).is_trusted

    def test_suggestion_required_fields(self):
        suggestion = MappingSuggestion(mappings={"No": "unit_number", "X": "ignore"})

        assert suggestion.mapped_fields == {"unit_number"}
        assert suggestion.has_required_fields
        assert not MappingSuggestion(mappings={"X": "ignore"}).has_required_fields

    def test_canonical_field_values(self):
        values = CanonicalField.values()
        assert "unit_number" in values
        assert "ignore" not in values
        assert len(values) == 14
