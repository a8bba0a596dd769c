"""Field mapping routes.

Routes:
- GET  /projects/{project_id}/units/field-mappings                        - Approved mappings
- POST /projects/{project_id}/units/field-mappings                        - Create a mapping
- POST /projects/{project_id}/units/field-mappings/suggest                - Infer a mapping for headers
- POST /projects/{project_id}/units/field-mappings/{mapping_id}/approve   - Approve (and correct) a mapping
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException

from unitsync.config import ImportConfig
from unitsync.db.connection import get_session
from unitsync.mapping.keywords import KeywordDictionary
from unitsync.mapping.store import FieldMappingStore
from unitsync.review.service import approve_mapping, suggest_mapping
from unitsync.web.auth import require_auth
from unitsync.web.dependencies import get_import_config, get_keyword_dictionary
from unitsync.web.models import (
    FieldMappingApproval,
    FieldMappingCreate,
    MappingSuggestRequest,
)

logger = logging.getLogger(__name__)

# Create router with mappings tag
router = APIRouter(tags=["mappings"])


# ============================================================================
# Field Mapping Routes
# ============================================================================


@router.get("/projects/{project_id}/units/field-mappings")
async def list_field_mappings(project_id: str, username: str = Depends(require_auth)):
    """Approved mappings for the project, default first."""
    async with get_session() as session:
        mappings = await FieldMappingStore(session).list_approved(project_id)
        data = [mapping.to_dict() for mapping in mappings]

    return {"data": data}


@router.post("/projects/{project_id}/units/field-mappings")
async def create_field_mapping(
    project_id: str,
    body: FieldMappingCreate,
    username: str = Depends(require_auth),
):
    """Create a mapping by hand.

    Mappings written by an interactive user are approved on creation;
    ``isDefault`` clears the default flag on every other mapping.
    """
    async with get_session() as session:
        mapping = await FieldMappingStore(session).create(
            project_id,
            name=body.name,
            mappings=body.mappings,
            created_by=username,
            is_default=body.is_default,
            is_approved=True,
        )
        payload = mapping.to_dict()

    return payload


@router.post("/projects/{project_id}/units/field-mappings/suggest")
async def suggest_field_mapping(
    project_id: str,
    body: MappingSuggestRequest,
    username: str = Depends(require_auth),
    config: ImportConfig = Depends(get_import_config),
    dictionary: KeywordDictionary = Depends(get_keyword_dictionary),
):
    """Run the header matcher without storing anything."""
    try:
        suggestion = suggest_mapping(
            body.headers,
            dictionary,
            unit_number_min_score=config.unit_number_fuzzy_min_score,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e

    return {
        "mappings": suggestion.mappings,
        "ambiguousHeaders": suggestion.ambiguous,
        "sharedTargets": suggestion.shared_targets,
        "hasRequiredFields": suggestion.has_required_fields,
    }


@router.post("/projects/{project_id}/units/field-mappings/{mapping_id}/approve")
async def approve_field_mapping(
    project_id: str,
    mapping_id: str,
    body: FieldMappingApproval | None = None,
    username: str = Depends(require_auth),
):
    """Approve a mapping so automated imports (and pending ones) can use it."""
    body = body or FieldMappingApproval()

    async with get_session() as session:
        mapping = await approve_mapping(
            session,
            project_id,
            mapping_id,
            approved_by=username,
            mappings=body.mappings,
            make_default=body.make_default,
        )
        payload = mapping.to_dict()

    logger.info(f"Mapping {mapping_id} approved via API by {username}")
    return payload
