"""Header normalization, header-row detection and column mapping."""
from __future__ import annotations

import re
from typing import Any, Dict, List, Optional, Sequence

from vcport.mappings import ESSENTIAL_FIELDS, FIELD_KEYWORDS, HEADER_VARIANTS

_NON_ALNUM_RE = re.compile(r"[^a-z0-9]")


class IngestionError(RuntimeError):
    pass


def normalize_header(header: Any) -> str:
    """
    Lower-case a header and strip every non-alphanumeric character.

    Examples:
        'Total Investment  \\r\\n($ in Thousands)' -> 'totalinvestmentinthousands'
        'Implied MOIC (x) ' -> 'impliedmoicx'
        None -> ''
    """
    if header is None or not isinstance(header, str):
        return ""
    return _NON_ALNUM_RE.sub("", header.lower())


def _is_filled_string(cell: Any) -> bool:
    return isinstance(cell, str) and len(cell.strip()) > 0


def detect_header_row(rows: Sequence[Sequence[Any]], *, max_rows: int = 5) -> int:
    """
    Return the index of the row (among the first `max_rows`) with the most
    non-empty string cells.

    Title/banner rows above the real header usually carry one or two strings,
    so the densest text row wins. Ties keep the earliest row.
    """
    header_idx = 0
    max_filled = 0
    for i, row in enumerate(rows[:max_rows]):
        filled = sum(1 for cell in (row or []) if _is_filled_string(cell))
        if filled > max_filled:
            max_filled = filled
            header_idx = i
    return header_idx


def keyword_match_count(normalized_header: str, keywords: Sequence[str]) -> int:
    """Number of keywords contained in a normalized header."""
    if not normalized_header:
        return 0
    return sum(1 for kw in keywords if kw and kw in normalized_header)


def build_column_mapping(
    headers: Sequence[Any],
    *,
    variants: Optional[Dict[str, List[str]]] = None,
    keywords: Optional[Dict[str, List[str]]] = None,
) -> Dict[str, str]:
    """
    Map raw header strings to canonical field names.

    Priority-ordered rules:
    1. Exact: normalized header equals a normalized known variant of the field.
    2. Keyword: first unclaimed header containing min(2, len(keywords)) of the
       field's keywords.
    3. Otherwise the field stays unmapped.

    Each header is claimed by at most one field; each field by at most one header.
    """
    variants = HEADER_VARIANTS if variants is None else variants
    keywords = FIELD_KEYWORDS if keywords is None else keywords

    valid_headers = [h for h in headers if isinstance(h, str) and h.strip()]
    normalized = {h: normalize_header(h) for h in valid_headers}

    mapping: Dict[str, str] = {}
    mapped_fields = set()

    # Pass 1: exact variant match
    for field, field_variants in variants.items():
        targets = [normalize_header(v) for v in field_variants]
        for target in targets:
            if not target:
                continue
            hit = next(
                (h for h in valid_headers if h not in mapping and normalized[h] == target),
                None,
            )
            if hit is not None:
                mapping[hit] = field
                mapped_fields.add(field)
                break

    # Pass 2: keyword threshold for fields still unmapped
    for field, field_keywords in keywords.items():
        if field in mapped_fields or not field_keywords:
            continue
        threshold = min(2, len(field_keywords))
        for h in valid_headers:
            if h in mapping:
                continue
            if keyword_match_count(normalized[h], field_keywords) >= threshold:
                mapping[h] = field
                mapped_fields.add(field)
                break

    return mapping


def missing_essential_fields(mapping: Dict[str, str]) -> List[str]:
    found = set(mapping.values())
    return [f for f in ESSENTIAL_FIELDS if f not in found]


def require_essential_columns(mapping: Dict[str, str], headers: Sequence[Any]) -> None:
    """Raise IngestionError naming every essential field that could not be mapped."""
    missing = missing_essential_fields(mapping)
    if not missing:
        return
    available = [str(h) for h in headers if h is not None and str(h).strip()]
    raise IngestionError(
        f"Could not find essential columns for: {', '.join(missing)}. "
        f"Available headers: {', '.join(available) if available else '(none)'}"
    )
