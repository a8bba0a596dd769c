"""Unit version history routes.

Routes:
- GET /projects/{project_id}/units/{unit_id}/versions - Paginated version history
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from unitsync.db.connection import get_session
from unitsync.pipeline.ledger import VersionLedger
from unitsync.web.auth import require_auth

router = APIRouter(tags=["versions"])


# ============================================================================
# Version History Routes
# ============================================================================


@router.get("/projects/{project_id}/units/{unit_id}/versions")
async def unit_versions(
    project_id: str,
    unit_id: str,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    username: str = Depends(require_auth),
):
    """Versions of a unit, newest first, each with its changes from the one before."""
    async with get_session() as session:
        return await VersionLedger(session).history(project_id, unit_id, page=page, limit=limit)
