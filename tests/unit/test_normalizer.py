import pytest

from unitsync.canonical.normalizer import (
    CatalogEntry,
    ProjectCatalog,
    RowNormalizer,
    parse_int,
    parse_number,
    parse_status,
    resolve_price,
)
from unitsync.models import CanonicalUnit, UnitStatus

MAPPING = {
    "No": "unit_number",
    "Floor": "floor_number",
    "Price": "selling_price",
    "Status": "availability_status",
    "Layout": "layout_id",
    "Building": "building",
    "Notes": "ignore",
    "Parking": "parking",
}


@pytest.fixture
def catalog() -> ProjectCatalog:
    return ProjectCatalog(
        project_id="proj-1",
        buildings=(CatalogEntry("bldg-a", "Tower A"), CatalogEntry("bldg-b", "Tower B")),
        layouts=(CatalogEntry("layout-1br", "1BR"), CatalogEntry("layout-2br", "2BR Deluxe")),
    )


@pytest.fixture
def normalizer(catalog) -> RowNormalizer:
    return RowNormalizer(MAPPING, catalog)


def test_parse_number_strips_currency_and_separators():
    assert parse_number("€ 1,250,000") == 1250000.0
    assert parse_number(" 85.5 ") == 85.5
    assert parse_number("-1500") == -1500.0
    assert parse_number(42) == 42.0


def test_parse_number_missing_tokens():
    for token in ("", "NA", "n/a", "-", None, True):
        assert parse_number(token) is None
    assert parse_number("call us") is None


def test_parse_int_uses_leading_digits():
    assert parse_int("3rd") == 3
    assert parse_int(2.0) == 2
    assert parse_int("Ground") is None
    assert parse_int(None) is None


@pytest.mark.parametrize("value", [float("inf"), float("-inf"), float("nan")])
def test_non_finite_values_are_missing(value):
    assert parse_int(value) is None
    assert parse_number(value) is None


def test_parse_number_overflow_is_missing():
    assert parse_number(10**400) is None
    assert parse_number("9" * 400) is None


def test_parse_status_english_and_russian():
    assert parse_status("Sold") == (UnitStatus.SOLD, True)
    assert parse_status("Booked") == (UnitStatus.RESERVED, True)
    assert parse_status("Забронирована") == (UnitStatus.RESERVED, True)
    assert parse_status("Свободна") == (UnitStatus.AVAILABLE, True)
    assert parse_status("For sale") == (UnitStatus.AVAILABLE, True)


def test_parse_status_absent_and_unrecognized():
    assert parse_status(None) == (None, True)
    assert parse_status("   ") == (None, True)
    assert parse_status("Maybe later") == (UnitStatus.AVAILABLE, False)


def test_catalog_building_lookup(catalog):
    assert catalog.find_building("tower b") == "bldg-b"
    assert catalog.find_building("Tower B North") == "bldg-b"
    assert catalog.find_building("Tower Z") is None


def test_catalog_layout_lookup(catalog):
    assert catalog.find_layout("layout-2br") == "layout-2br"
    assert catalog.find_layout("1BR") == "layout-1br"
    assert catalog.find_layout("2br deluxe") == "layout-2br"
    assert catalog.find_layout("3BR") is None


def test_unknown_and_ignored_targets_are_dropped(normalizer):
    assert "Notes" not in normalizer.mapping
    assert "Parking" not in normalizer.mapping
    assert normalizer.apply_mapping({"No": "1", "Notes": "x", "Parking": "P1"}) == {
        "unit_number": "1"
    }


def test_rightmost_non_empty_value_wins(catalog):
    normalizer = RowNormalizer({"Price": "selling_price", "Cost": "selling_price"}, catalog)

    assert normalizer.apply_mapping({"Price": 400, "Cost": 500}) == {"selling_price": 500}
    assert normalizer.apply_mapping({"Price": 400, "Cost": " "}) == {"selling_price": 400}
    assert normalizer.apply_mapping({"Price": "", "Cost": 500}) == {"selling_price": 500}
    assert normalizer.apply_mapping({"Price": 400, "Cost": float("nan")}) == {
        "selling_price": 400
    }


def test_later_unit_number_column_overrides_earlier(catalog):
    normalizer = RowNormalizer(
        {"Unit Type": "unit_number", "Unit No": "unit_number"}, catalog
    )

    row = normalizer.normalize({"Unit Type": "2BR", "Unit No": "A-101"}, row_number=1)

    assert row.unit_number == "A-101"


def test_normalize_full_row(normalizer):
    row = normalizer.normalize(
        {"No": 101.0, "Floor": "3", "Price": "€ 250,000", "Status": "Reserved", "Layout": "1BR"},
        row_number=1,
    )

    assert row.is_valid
    assert row.warnings == []
    assert row.unit_number == "101"
    unit = row.unit
    assert unit.unit_number == "101"
    assert unit.floor_number == 3
    assert unit.selling_price == 250000.0
    assert unit.status == UnitStatus.RESERVED
    assert unit.layout_id == "layout-1br"
    assert unit.building_id == "bldg-a"  # first building of the project


def test_non_finite_cells_normalize_as_missing(normalizer):
    row = normalizer.normalize(
        {"No": "B1", "Floor": float("inf"), "Price": float("nan")}, row_number=2
    )

    assert row.is_valid
    assert row.unit.floor_number is None
    assert row.unit.selling_price is None


def test_unexpected_failure_rejects_only_that_row(normalizer, monkeypatch):
    def broken_lookup(self, reference):
        raise RuntimeError("lookup failed")

    monkeypatch.setattr(ProjectCatalog, "find_layout", broken_lookup)

    row = normalizer.normalize({"No": "A1", "Layout": "1BR"}, row_number=4)

    assert not row.is_valid
    assert row.unit is None
    assert row.unit_number == "A1"
    assert row.error == "Unit A1: could not be normalized (lookup failed)"


def test_missing_unit_number_is_rejected(normalizer):
    row = normalizer.normalize({"No": "  ", "Floor": 2}, row_number=7)

    assert not row.is_valid
    assert row.unit_number is None
    assert row.error == "Row 7: unit without unit_number skipped"


def test_unknown_layout_warns_and_keeps_row(normalizer):
    row = normalizer.normalize({"No": "A1", "Layout": "3BR"}, row_number=1)

    assert row.is_valid
    assert row.unit.layout_id is None
    assert len(row.warnings) == 1
    assert 'layout with ID/name "3BR" not found' in row.warnings[0]
    assert '"1BR", "2BR Deluxe"' in row.warnings[0]


def test_building_name_resolves(normalizer):
    row = normalizer.normalize({"No": "A1", "Building": "Tower B"}, row_number=1)
    assert row.unit.building_id == "bldg-b"


def test_unknown_building_falls_back_to_default(catalog):
    normalizer = RowNormalizer(MAPPING, catalog, default_building_id="bldg-b")
    row = normalizer.normalize({"No": "A1", "Building": "Tower Z"}, row_number=1)

    assert row.is_valid
    assert row.unit.building_id == "bldg-b"
    assert row.warnings == ['Unit A1: building "Tower Z" not found']


def test_default_building_from_another_project_is_row_error(catalog):
    normalizer = RowNormalizer(MAPPING, catalog, default_building_id="bldg-elsewhere")
    row = normalizer.normalize({"No": "A1"}, row_number=1)

    assert not row.is_valid
    assert row.unit_number == "A1"
    assert "does not belong to this project" in row.error


def test_project_without_buildings_is_row_error():
    normalizer = RowNormalizer(MAPPING, ProjectCatalog(project_id="empty"))
    row = normalizer.normalize({"No": "A1"}, row_number=1)

    assert not row.is_valid
    assert "project has no buildings" in row.error


def test_unrecognized_status_warns(normalizer):
    row = normalizer.normalize({"No": "A1", "Status": "Maybe later"}, row_number=1)

    assert row.unit.status == UnitStatus.AVAILABLE
    assert row.warnings == ['Unit A1: unrecognized status "Maybe later", treated as AVAILABLE']


def test_absent_status_stays_absent(normalizer):
    row = normalizer.normalize({"No": "A1"}, row_number=1)
    assert row.unit.status is None


def test_price_precedence():
    unit = CanonicalUnit(
        unit_number="1",
        base_price_excl_vat=100,
        final_price_incl_vat=110,
        selling_price=120,
    )
    assert resolve_price(unit) == 100


def test_price_precedence_falls_through():
    assert resolve_price(CanonicalUnit(unit_number="1", selling_price=120)) == 120
    assert resolve_price(CanonicalUnit(unit_number="1"), stored=90) == 90
    assert resolve_price(CanonicalUnit(unit_number="1")) == 0
    # Zero is a price, not a missing value
    assert resolve_price(CanonicalUnit(unit_number="1", base_price_excl_vat=0), stored=90) == 0
