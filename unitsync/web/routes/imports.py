"""Unit import routes.

Handles batch imports from interactive users and automated feeds, the
approval-gated pending queue, and import history.

Routes:
- POST /projects/{project_id}/units/import                  - Submit an import batch
- POST /projects/{project_id}/units/import/process-pending  - Reconcile an approved pending import
- GET  /projects/{project_id}/units/import/pending          - List imports awaiting mapping approval
- GET  /projects/{project_id}/imports                       - Import history
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Query

from unitsync.config import ImportConfig
from unitsync.db.connection import get_session
from unitsync.mapping.keywords import KeywordDictionary
from unitsync.models import Caller, CallerKind, ImportRequest
from unitsync.review.gate import ImportGate
from unitsync.web.auth import get_import_caller, require_auth
from unitsync.web.dependencies import get_import_config, get_keyword_dictionary

logger = logging.getLogger(__name__)

# Create router with imports tag
router = APIRouter(tags=["imports"])


# ============================================================================
# Import Routes
# ============================================================================


@router.post("/projects/{project_id}/units/import")
async def import_units(
    project_id: str,
    body: ImportRequest,
    caller: Caller = Depends(get_import_caller),
    config: ImportConfig = Depends(get_import_config),
    dictionary: KeywordDictionary = Depends(get_keyword_dictionary),
):
    """Import a batch of units into a project.

    Interactive callers reconcile straight away. Automated callers without an
    approved mapping get a pending_approval response and nothing is written
    to units until the mapping is approved.
    """
    async with get_session() as session:
        gate = ImportGate(session, config=config, dictionary=dictionary)
        outcome = await gate.submit(project_id, body, caller)

    return outcome.to_dict()


@router.post("/projects/{project_id}/units/import/process-pending")
async def process_pending_import(
    project_id: str,
    import_id: str | None = Query(default=None, alias="importId"),
    username: str = Depends(require_auth),
    config: ImportConfig = Depends(get_import_config),
):
    """Reconcile a stored import whose field mapping has been approved."""
    caller = Caller(kind=CallerKind.INTERACTIVE, username=username)

    async with get_session() as session:
        gate = ImportGate(session, config=config)
        result = await gate.process_pending(project_id, import_id, caller)

    return {"success": True, "data": result.to_dict()}


@router.get("/projects/{project_id}/units/import/pending")
async def list_pending_imports(
    project_id: str,
    username: str = Depends(require_auth),
    config: ImportConfig = Depends(get_import_config),
):
    """Imports waiting for a human to approve their auto-generated mapping."""
    async with get_session() as session:
        pending = await ImportGate(session, config=config).list_pending(project_id)

    return {"data": pending}


@router.get("/projects/{project_id}/imports")
async def import_history(
    project_id: str,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    username: str = Depends(require_auth),
):
    async with get_session() as session:
        return await ImportGate(session).history(project_id, page=page, limit=limit)
