"""Field keyword matcher.

Maps arbitrary source column headers (any language, any punctuation) onto
canonical unit fields. Matching is pure and deterministic: the same headers
and dictionary always produce the same mapping.

Matching order for one header (first hit wins):
1. Exact: normalized header equals a field's label, its name or a keyword
2. Substring: header contains a keyword or a keyword contains the header;
   the longest keyword wins, ties go to the earlier field
3. Token: any header word equals, contains or is contained by a keyword word
"""

from __future__ import annotations

import re
import unicodedata
from collections.abc import Iterable
from dataclasses import dataclass, field

from rapidfuzz import fuzz

from unitsync.mapping.keywords import FieldKeywords, KeywordDictionary
from unitsync.models import IGNORE, CanonicalField, MappingSuggestion

DEFAULT_UNIT_NUMBER_MIN_SCORE = 80

# Keywords this short match almost anything under partial_ratio
_MIN_FUZZY_KEYWORD_LENGTH = 3

# Single letters ("m" from "sq.m") are only matched as whole words
_MIN_CONTAINED_WORD_LENGTH = 2


def normalize_header(text: str | None) -> str:
    """Normalize a header or keyword for comparison.

    Lowercase, Unicode NFKC (so "№" becomes "no" and "м²" becomes "м2"),
    punctuation and underscores to spaces, collapsed whitespace. Letters of
    any script are kept.
    """
    if not text:
        return ""

    text = unicodedata.normalize("NFKC", str(text)).lower()
    text = re.sub(r"[^\w\s]|_", " ", text)
    text = re.sub(r"\s+", " ", text)
    return text.strip()


@dataclass(frozen=True, slots=True)
class HeaderMatch:
    """Outcome of matching one header."""

    field: str | None
    strategy: str | None = None  # "exact", "substring" or "token"
    tied_with: tuple[str, ...] = ()

    @property
    def is_ambiguous(self) -> bool:
        return bool(self.tied_with)


@dataclass(frozen=True, slots=True)
class _PreparedField:
    field: str
    exact_terms: frozenset[str]
    keywords: tuple[str, ...]

    @classmethod
    def from_entry(cls, entry: FieldKeywords) -> _PreparedField:
        keywords = tuple(k for k in (normalize_header(k) for k in entry.keywords) if k)
        exact = {normalize_header(entry.label), normalize_header(entry.field), *keywords}
        exact.discard("")
        return cls(entry.field, frozenset(exact), keywords)


def _words_overlap(header_word: str, keyword_word: str) -> bool:
    if header_word == keyword_word:
        return True
    shorter, longer = sorted((header_word, keyword_word), key=len)
    return len(shorter) >= _MIN_CONTAINED_WORD_LENGTH and shorter in longer


def _prepare(dictionary: KeywordDictionary) -> list[_PreparedField]:
    return [_PreparedField.from_entry(entry) for entry in dictionary]


def _match_prepared(header: str, prepared: list[_PreparedField]) -> HeaderMatch:
    normalized = normalize_header(header)
    if not normalized:
        return HeaderMatch(None)

    # 1. Exact
    exact_hits = [p.field for p in prepared if normalized in p.exact_terms]
    if exact_hits:
        return HeaderMatch(exact_hits[0], "exact", tuple(exact_hits[1:]))

    # 2. Substring, scored by keyword length
    best_len = 0
    best_fields: list[str] = []
    for p in prepared:
        field_best = max(
            (len(k) for k in p.keywords if k in normalized or normalized in k),
            default=0,
        )
        if field_best == 0:
            continue
        if field_best > best_len:
            best_len, best_fields = field_best, [p.field]
        elif field_best == best_len:
            best_fields.append(p.field)
    if best_fields:
        return HeaderMatch(best_fields[0], "substring", tuple(best_fields[1:]))

    # 3. Token overlap
    header_words = normalized.split(" ")
    for p in prepared:
        for keyword in p.keywords:
            keyword_words = keyword.split(" ")
            if any(_words_overlap(hw, kw) for hw in header_words for kw in keyword_words):
                return HeaderMatch(p.field, "token")

    return HeaderMatch(None)


def match_header(header: str, dictionary: KeywordDictionary) -> HeaderMatch:
    """Match a single header against the dictionary.

    Args:
        header: Raw column header as it appears in the source file
        dictionary: Keyword dictionary to match against

    Returns:
        HeaderMatch with the winning field (None if nothing matched), the
        strategy that produced it and any fields that tied with it
    """
    return _match_prepared(header, _prepare(dictionary))


def _unit_number_score(header: str, keywords: tuple[str, ...]) -> float:
    """Best fuzzy score of an unmatched header against the unit_number keywords."""
    normalized = normalize_header(header)
    if not normalized:
        return 0.0

    return max(
        (
            fuzz.partial_ratio(normalized, k)
            for k in keywords
            if len(k) >= _MIN_FUZZY_KEYWORD_LENGTH
        ),
        default=0.0,
    )


@dataclass
class _Inference:
    mappings: dict[str, str] = field(default_factory=dict)
    ambiguous: dict[str, list[str]] = field(default_factory=dict)
    unmatched: list[str] = field(default_factory=list)

    def shared_targets(self) -> dict[str, list[str]]:
        """Fields that more than one header maps to, with those headers in order."""
        headers_by_field: dict[str, list[str]] = {}
        for header, target in self.mappings.items():
            if target != IGNORE:
                headers_by_field.setdefault(target, []).append(header)
        return {target: hs for target, hs in headers_by_field.items() if len(hs) > 1}


def infer_mapping(
    headers: Iterable[str],
    dictionary: KeywordDictionary,
    unit_number_min_score: int = DEFAULT_UNIT_NUMBER_MIN_SCORE,
) -> MappingSuggestion:
    """Infer a header → field mapping for a whole header set.

    Headers nothing matches map to "ignore", as do headers recognized as a
    field the inventory does not store. If no header landed on unit_number,
    the unmatched header with the best RapidFuzz partial_ratio at or above
    ``unit_number_min_score`` is reassigned to it.

    Several headers may land on one field; the rightmost non-empty cell wins
    at import time, and the suggestion lists them under ``shared_targets``.

    Args:
        headers: Column headers, in source order (duplicates are collapsed)
        dictionary: Keyword dictionary to match against
        unit_number_min_score: Minimum fuzzy score for the post-pass

    Returns:
        MappingSuggestion with the mapping, any headers whose winning field
        tied with another field, and fields shared by several headers
    """
    prepared = _prepare(dictionary)
    canonical = CanonicalField.values()
    result = _Inference()

    for header in dict.fromkeys(headers):
        match = _match_prepared(header, prepared)
        if match.field is None:
            result.mappings[header] = IGNORE
            result.unmatched.append(header)
            continue

        result.mappings[header] = match.field if match.field in canonical else IGNORE
        if match.is_ambiguous:
            result.ambiguous[header] = [match.field, *match.tied_with]

    unit_number = CanonicalField.UNIT_NUMBER.value
    entry = dictionary.get(unit_number)
    if entry is not None and unit_number not in result.mappings.values():
        keywords = _PreparedField.from_entry(entry).keywords
        best_header, best_score = None, 0.0
        for header in result.unmatched:
            score = _unit_number_score(header, keywords)
            if score >= unit_number_min_score and score > best_score:
                best_header, best_score = header, score

        if best_header is not None:
            result.mappings[best_header] = unit_number

    return MappingSuggestion(
        mappings=result.mappings,
        ambiguous=result.ambiguous,
        shared_targets=result.shared_targets(),
    )


_FIELD_ALIASES = {
    "floor": "floor_number",
    "base_price_excluding_vat": "base_price_excl_vat",
    "final_price_including_vat": "final_price_incl_vat",
    "view": "view_description",
}


def canonical_field_name(header: str) -> str:
    """Spell a header the way canonical fields are spelled ("Floor Number" → "floor_number")."""
    name = re.sub(r"\s+", "_", str(header).strip().lower())
    name = re.sub(r"[()]", "", name)
    name = re.sub(r"_+", "_", name)
    return _FIELD_ALIASES.get(name, name)


def identity_mapping(headers: Iterable[str]) -> dict[str, str]:
    """Mapping for headers that already use canonical field names.

    Used for interactive imports without a saved mapping: headers that spell
    a canonical field (modulo case, spaces and a few aliases) map to it,
    everything else is ignored.
    """
    canonical = CanonicalField.values()
    mapping = {}
    for header in dict.fromkeys(headers):
        name = canonical_field_name(header)
        mapping[header] = name if name in canonical else IGNORE
    return mapping


def collect_headers(rows: Iterable[dict]) -> list[str]:
    """Union of keys across rows, in first-seen order."""
    seen: dict[str, None] = {}
    for row in rows:
        for key in row:
            seen.setdefault(str(key), None)
    return list(seen)
