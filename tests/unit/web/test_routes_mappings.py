"""Tests for unitsync.web.routes.mappings - Field mapping routes."""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from fastapi.testclient import TestClient

from unitsync.errors import InvalidImportDataError, MappingNotFoundError
from unitsync.web.app import app as web_app
from unitsync.web.auth import require_auth


@pytest.fixture
def app():
    web_app.dependency_overrides[require_auth] = lambda: "alice"
    yield web_app
    web_app.dependency_overrides.clear()


@pytest.fixture
def client(app):
    """Create test client."""
    return TestClient(app)


@pytest.fixture
def mock_db_session():
    """Mock database session with async context manager."""
    session = AsyncMock()

    async_cm = AsyncMock()
    async_cm.__aenter__.return_value = session
    async_cm.__aexit__.return_value = None

    return async_cm


@pytest.fixture
def mock_mapping():
    """Mock mapping for testing."""
    mapping = MagicMock()
    mapping.to_dict.return_value = {
        "id": "map-1",
        "projectId": "proj-1",
        "name": "Sales sheet",
        "mappings": {"Unit": "unit_number", "Price": "selling_price"},
        "isDefault": True,
        "isApproved": True,
        "reviewNotes": {},
        "createdBy": "alice",
        "createdAt": "2024-05-01T12:00:00+00:00",
        "approvedBy": "alice",
        "approvedAt": "2024-05-01T12:00:00+00:00",
    }
    return mapping


class TestListMappings:
    """Tests for GET /projects/{id}/units/field-mappings."""

    @patch("unitsync.web.routes.mappings.FieldMappingStore")
    @patch("unitsync.web.routes.mappings.get_session")
    def test_lists_approved_mappings(
        self, mock_get_session, mock_store_cls, client, mock_db_session, mock_mapping
    ):
        mock_get_session.return_value = mock_db_session
        mock_store_cls.return_value.list_approved = AsyncMock(return_value=[mock_mapping])

        response = client.get("/projects/proj-1/units/field-mappings")

        assert response.status_code == 200
        data = response.json()["data"]
        assert len(data) == 1
        assert data[0]["id"] == "map-1"
        mock_store_cls.return_value.list_approved.assert_awaited_once_with("proj-1")

    def test_requires_auth(self):
        client = TestClient(web_app)
        response = client.get("/projects/proj-1/units/field-mappings")
        assert response.status_code == 401


class TestCreateMapping:
    """Tests for POST /projects/{id}/units/field-mappings."""

    @patch("unitsync.web.routes.mappings.FieldMappingStore")
    @patch("unitsync.web.routes.mappings.get_session")
    def test_user_mappings_are_approved_on_creation(
        self, mock_get_session, mock_store_cls, client, mock_db_session, mock_mapping
    ):
        mock_get_session.return_value = mock_db_session
        mock_store_cls.return_value.create = AsyncMock(return_value=mock_mapping)

        response = client.post(
            "/projects/proj-1/units/field-mappings",
            json={
                "name": "Sales sheet",
                "mappings": {"Unit": "unit_number", "Price": "selling_price"},
                "isDefault": True,
            },
        )

        assert response.status_code == 200
        assert response.json()["isApproved"] is True
        mock_store_cls.return_value.create.assert_awaited_once_with(
            "proj-1",
            name="Sales sheet",
            mappings={"Unit": "unit_number", "Price": "selling_price"},
            created_by="alice",
            is_default=True,
            is_approved=True,
        )

    def test_name_required(self, client):
        response = client.post(
            "/projects/proj-1/units/field-mappings",
            json={"name": "", "mappings": {"Unit": "unit_number"}},
        )

        assert response.status_code == 400
        assert response.json()["error"] == "invalidData"

    @patch("unitsync.web.routes.mappings.FieldMappingStore")
    @patch("unitsync.web.routes.mappings.get_session")
    def test_unknown_target_field(self, mock_get_session, mock_store_cls, client, mock_db_session):
        mock_get_session.return_value = mock_db_session
        mock_store_cls.return_value.create = AsyncMock(
            side_effect=InvalidImportDataError(
                "Unknown target fields", details={"unknownFields": ["parking"]}
            )
        )

        response = client.post(
            "/projects/proj-1/units/field-mappings",
            json={"name": "Bad", "mappings": {"Spot": "parking"}},
        )

        assert response.status_code == 400
        assert response.json()["details"] == {"unknownFields": ["parking"]}


class TestApproveMapping:
    """Tests for POST /projects/{id}/units/field-mappings/{mappingId}/approve."""

    @patch("unitsync.web.routes.mappings.approve_mapping")
    @patch("unitsync.web.routes.mappings.get_session")
    def test_approve_with_corrections(
        self, mock_get_session, mock_approve, client, mock_db_session, mock_mapping
    ):
        mock_get_session.return_value = mock_db_session
        mock_approve.return_value = mock_mapping

        response = client.post(
            "/projects/proj-1/units/field-mappings/map-1/approve",
            json={"mappings": {"Sale Price": "discount_price"}, "makeDefault": False},
        )

        assert response.status_code == 200
        assert response.json()["id"] == "map-1"
        kwargs = mock_approve.call_args.kwargs
        assert kwargs["approved_by"] == "alice"
        assert kwargs["mappings"] == {"Sale Price": "discount_price"}
        assert kwargs["make_default"] is False

    @patch("unitsync.web.routes.mappings.approve_mapping")
    @patch("unitsync.web.routes.mappings.get_session")
    def test_approve_without_body(
        self, mock_get_session, mock_approve, client, mock_db_session, mock_mapping
    ):
        mock_get_session.return_value = mock_db_session
        mock_approve.return_value = mock_mapping

        response = client.post("/projects/proj-1/units/field-mappings/map-1/approve")

        assert response.status_code == 200
        kwargs = mock_approve.call_args.kwargs
        assert kwargs["mappings"] is None
        assert kwargs["make_default"] is True

    @patch("unitsync.web.routes.mappings.approve_mapping")
    @patch("unitsync.web.routes.mappings.get_session")
    def test_unknown_mapping(self, mock_get_session, mock_approve, client, mock_db_session):
        mock_get_session.return_value = mock_db_session
        mock_approve.side_effect = MappingNotFoundError("Field mapping not found")

        response = client.post("/projects/proj-1/units/field-mappings/nope/approve")

        assert response.status_code == 404
        assert response.json()["error"] == "mappingNotFound"


class TestSuggestMapping:
    """Tests for POST /projects/{id}/units/field-mappings/suggest."""

    def test_suggest_runs_matcher(self, client):
        response = client.post(
            "/projects/proj-1/units/field-mappings/suggest",
            json={"headers": ["Unit No", "Floor", "Sale Price", "Notes"]},
        )

        assert response.status_code == 200
        body = response.json()
        assert body["mappings"] == {
            "Unit No": "unit_number",
            "Floor": "floor_number",
            "Sale Price": "selling_price",
            "Notes": "ignore",
        }
        assert body["ambiguousHeaders"] == {"Sale Price": ["selling_price", "discount_price"]}
        assert body["hasRequiredFields"] is True

    def test_suggest_requires_headers(self, client):
        response = client.post(
            "/projects/proj-1/units/field-mappings/suggest", json={"headers": []}
        )
        assert response.status_code == 400
