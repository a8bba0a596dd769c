"""Tests for UnitReconciler failure handling with a mocked session."""

import asyncio
import re
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from unitsync.config import ImportConfig
from unitsync.errors import ImportTransactionError
from unitsync.pipeline.reconciler import UnitReconciler, make_slug


@pytest.fixture
def session():
    session = AsyncMock()
    session.add = MagicMock()
    return session


def test_make_slug():
    slug = make_slug(3, "A-301")
    assert re.fullmatch(r"floor-3-unit-A-301-[a-z0-9]{5}", slug)


@pytest.mark.asyncio
async def test_timeout_rolls_back_and_records_error(session):
    record = MagicMock()
    session.get.return_value = record
    config = ImportConfig(transaction_timeout_seconds=0.01, retry_backoff_base=0)

    async def slow_run(*args, **kwargs):
        await asyncio.sleep(1)

    reconciler = UnitReconciler(session, config)
    with patch.object(reconciler, "_run", side_effect=slow_run):
        with pytest.raises(ImportTransactionError, match="exceeded 0.01s"):
            await reconciler.reconcile("proj-1", [{"Unit": "1"}], {}, import_record_id="imp-1")

    session.rollback.assert_awaited()
    assert "rolled back" in record.last_error
    assert record.processed is False
    session.commit.assert_awaited_once()


@pytest.mark.asyncio
async def test_timeout_is_not_retried(session):
    session.get.return_value = MagicMock()
    config = ImportConfig(transaction_timeout_seconds=0.01, retry_attempts=3, retry_backoff_base=0)
    calls = 0

    async def slow_run(*args, **kwargs):
        nonlocal calls
        calls += 1
        await asyncio.sleep(1)

    reconciler = UnitReconciler(session, config)
    with patch.object(reconciler, "_run", side_effect=slow_run):
        with pytest.raises(ImportTransactionError):
            await reconciler.reconcile("proj-1", [], {}, import_record_id="imp-1")

    assert calls == 1
