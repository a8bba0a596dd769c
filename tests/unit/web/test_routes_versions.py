"""Tests for unitsync.web.routes.versions - Unit version history routes."""

from unittest.mock import AsyncMock, patch

import pytest
from fastapi.testclient import TestClient

from unitsync.errors import UnitNotFoundError
from unitsync.web.app import app as web_app
from unitsync.web.auth import require_auth


@pytest.fixture
def client():
    web_app.dependency_overrides[require_auth] = lambda: "alice"
    yield TestClient(web_app)
    web_app.dependency_overrides.clear()


@pytest.fixture
def mock_db_session():
    session = AsyncMock()

    async_cm = AsyncMock()
    async_cm.__aenter__.return_value = session
    async_cm.__aexit__.return_value = None

    return async_cm


@patch("unitsync.web.routes.versions.VersionLedger")
@patch("unitsync.web.routes.versions.get_session")
def test_versions_are_paginated(mock_get_session, mock_ledger_cls, client, mock_db_session):
    mock_get_session.return_value = mock_db_session
    payload = {
        "data": [{"id": "v2", "sequence": 2, "changes": {"price": {"from": 100, "to": 120}}}],
        "pagination": {"page": 1, "limit": 1, "totalCount": 2, "totalPages": 2},
    }
    mock_ledger_cls.return_value.history = AsyncMock(return_value=payload)

    response = client.get("/projects/proj-1/units/unit-1/versions?limit=1")

    assert response.status_code == 200
    assert response.json() == payload
    mock_ledger_cls.return_value.history.assert_awaited_once_with(
        "proj-1", "unit-1", page=1, limit=1
    )


@patch("unitsync.web.routes.versions.VersionLedger")
@patch("unitsync.web.routes.versions.get_session")
def test_unit_from_another_project(mock_get_session, mock_ledger_cls, client, mock_db_session):
    mock_get_session.return_value = mock_db_session
    mock_ledger_cls.return_value.history = AsyncMock(
        side_effect=UnitNotFoundError("Unit not found in this project")
    )

    response = client.get("/projects/proj-1/units/unit-9/versions")

    assert response.status_code == 404
    assert response.json()["error"] == "unitNotFound"
