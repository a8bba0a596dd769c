"""Shared dependencies for unitsync web routes.

Usage:
    from fastapi import Depends
    from unitsync.web.dependencies import get_import_config

    @router.post("/endpoint")
    async def handler(config: ImportConfig = Depends(get_import_config)):
        ...
"""

from __future__ import annotations

from unitsync.config import ImportConfig, get_config
from unitsync.mapping.keywords import KeywordDictionary, load_keyword_dictionary

# Global singleton for the keyword dictionary
_dictionary: KeywordDictionary | None = None


def get_import_config() -> ImportConfig:
    return get_config().imports


def get_keyword_dictionary() -> KeywordDictionary:
    """Keyword dictionary for mapping inference, loaded once.

    Uses FIELD_KEYWORDS_PATH as an override on top of the shipped default
    when it is configured.
    """
    global _dictionary
    if _dictionary is None:
        _dictionary = load_keyword_dictionary(get_config().imports.field_keywords_path)
    return _dictionary


def reset_keyword_dictionary() -> None:
    global _dictionary
    _dictionary = None
