"""Spreadsheet ingestion: header detection, column mapping and row parsing."""

from vcport.ingestion.core import (
    CompanyRecord,
    coerce_field,
    header_unit_multiplier,
    parse_currency,
    parse_multiplier,
    parse_percentage,
    parse_rating,
    parse_row,
)
from vcport.ingestion.matching import (
    IngestionError,
    build_column_mapping,
    detect_header_row,
    normalize_header,
    require_essential_columns,
)

__all__ = [
    "CompanyRecord",
    "coerce_field",
    "header_unit_multiplier",
    "parse_currency",
    "parse_multiplier",
    "parse_percentage",
    "parse_rating",
    "parse_row",
    "IngestionError",
    "build_column_mapping",
    "detect_header_row",
    "normalize_header",
    "require_essential_columns",
]
