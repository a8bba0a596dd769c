"""Field mapping review operations (approve, suggest)."""

from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncSession

from unitsync.db.models import FieldMappingModel
from unitsync.mapping.keywords import KeywordDictionary
from unitsync.mapping.matcher import DEFAULT_UNIT_NUMBER_MIN_SCORE, infer_mapping
from unitsync.mapping.store import FieldMappingStore
from unitsync.models import MappingSuggestion


async def approve_mapping(
    session: AsyncSession,
    project_id: str,
    mapping_id: str,
    approved_by: str,
    mappings: dict[str, str] | None = None,
    make_default: bool = True,
) -> FieldMappingModel:
    """Approve a field mapping so automated imports may use it.

    Corrections from the reviewer replace the stored mapping before approval.
    Approving also resolves the matcher's ambiguity notes.
    """
    store = FieldMappingStore(session)
    mapping = await store.approve(
        project_id,
        mapping_id,
        approved_by=approved_by,
        mappings=mappings,
        make_default=make_default,
    )
    if mapping.review_notes:
        mapping.review_notes = {**mapping.review_notes, "resolvedBy": approved_by}
    await session.flush()
    return mapping


def suggest_mapping(
    headers: list[str],
    dictionary: KeywordDictionary | None = None,
    unit_number_min_score: int = DEFAULT_UNIT_NUMBER_MIN_SCORE,
) -> MappingSuggestion:
    """Run the matcher on a header list without persisting anything."""
    if not headers:
        raise ValueError("At least one header is required")

    return infer_mapping(
        headers,
        dictionary or KeywordDictionary.default(),
        unit_number_min_score=unit_number_min_score,
    )
