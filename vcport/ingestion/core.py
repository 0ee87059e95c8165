"""Row parsing: one spreadsheet row -> one CompanyRecord."""
from __future__ import annotations

import math
import numbers
import re
from dataclasses import asdict, dataclass, field
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Sequence

import pandas as pd

from vcport.mappings import (
    BOOLEAN_FIELDS,
    CURRENCY_FIELDS,
    MULTIPLIER_FIELDS,
    NUMBER_FIELDS,
    PERCENT_FIELDS,
    RATING_FIELDS,
    attr_for_field,
    normalize_series_stage,
)

if TYPE_CHECKING:
    from vcport.analysis import AnalysisResult
    from vcport.revenue_analytics import DataCompleteness


@dataclass
class CompanyRecord:
    """Canonical portfolio company, one per spreadsheet row."""
    id: str
    company_name: str

    # Investment facts
    total_investment: Optional[float] = None
    equity_stake: Optional[float] = None          # 0-100
    additional_investment_requested: Optional[float] = None
    pre_money_valuation: Optional[float] = None
    post_money_valuation: Optional[float] = None
    total_raise_request: Optional[float] = None
    amount_requested_from_firm: Optional[float] = None
    ca_equity_valuation: Optional[float] = None
    current_valuation: Optional[float] = None

    # Performance facts
    moic: Optional[float] = None
    revenue_growth: Optional[float] = None
    projected_revenue_growth: Optional[float] = None
    burn_multiple: Optional[float] = None
    runway: Optional[float] = None                # months
    revenue: Optional[float] = None
    arr: Optional[float] = None
    current_arr: Optional[float] = None
    arr_ttm: Optional[float] = None
    ebitda_margin: Optional[float] = None

    # Revenue timeline (t-2 .. t+2)
    revenue_year_minus_2: Optional[float] = None
    revenue_year_minus_1: Optional[float] = None
    current_revenue: Optional[float] = None
    projected_revenue_year_1: Optional[float] = None
    projected_revenue_year_2: Optional[float] = None

    # Ratings and qualitative facts
    tam: Optional[int] = None
    barrier_to_entry: Optional[int] = None
    round_complexity: int = 3
    exit_timeline: int = 3
    exit_activity: Optional[str] = None
    industry: Optional[str] = None
    investor_interest: Optional[int] = None
    series_stage: Optional[str] = None
    top_performer: Optional[bool] = None
    valuation_methodology: Optional[str] = None
    ceo_name: Optional[str] = None

    # Derived
    is_existing_investment: bool = True
    total_return: Optional[float] = None
    overall_risk_score: Optional[int] = None

    # Revenue analytics
    yoy_growth_percent: Optional[float] = None
    historical_cagr_2y: Optional[float] = None
    forward_cagr_2y: Optional[float] = None
    forward_revenue_multiple: Optional[float] = None
    revenue_trajectory_score: Optional[float] = None
    trajectory_pattern: Optional[str] = None
    credibility_flag: Optional[str] = None
    primary_metric: Optional[str] = None
    data_completeness: Optional["DataCompleteness"] = None
    warning_flags: List[str] = field(default_factory=list)

    # AI augmentation
    analysis: Optional["AnalysisResult"] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


_PLACEHOLDERS = {"", "-", "n/a"}
_CURRENCY_STRIP_RE = re.compile(r"[$,\s%]")
_FLOAT_PREFIX_RE = re.compile(r"^[+-]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?")
_INT_PREFIX_RE = re.compile(r"^\s*([+-]?\d+)")
_NON_DIGIT_RE = re.compile(r"\D")
_TRAILING_X_RE = re.compile(r"[xX\s]+$")
_TRUE_STRINGS = {"y", "yes", "true"}


def is_blank(cell: Any) -> bool:
    """True for None, NaN/NaT and whitespace-only strings."""
    if cell is None:
        return True
    if isinstance(cell, str):
        return not cell.strip()
    try:
        return bool(pd.isna(cell))
    except (TypeError, ValueError):
        return False


def is_empty_row(row: Optional[Sequence[Any]]) -> bool:
    return not row or all(is_blank(c) for c in row)


def _is_number(cell: Any) -> bool:
    return isinstance(cell, numbers.Real) and not isinstance(cell, bool)


def _finite(v: Optional[float]) -> Optional[float]:
    if v is None or not math.isfinite(v):
        return None
    return v


def _parse_float(text: str) -> Optional[float]:
    """Leading-number parse: '18 months' -> 18.0, 'abc' -> None."""
    m = _FLOAT_PREFIX_RE.match(text)
    if not m:
        return None
    try:
        return _finite(float(m.group(0)))
    except ValueError:
        return None


def _parse_int(cell: Any) -> Optional[int]:
    if is_blank(cell) or isinstance(cell, bool):
        return None
    if _is_number(cell):
        v = float(cell)
        return int(v) if math.isfinite(v) else None
    m = _INT_PREFIX_RE.match(str(cell))
    return int(m.group(1)) if m else None


def header_unit_multiplier(header: Any) -> float:
    """
    Scale declared by a column header.

    Units are only taken from the header text, never inferred from magnitude:
    'Revenue ($ in Thousands)' -> 1000, 'ARR ($M)' -> 1_000_000, 'ARR' -> 1.
    """
    h = str(header or "").lower()
    if "thousand" in h or "(k)" in h or "$k" in h or "000s" in h:
        return 1_000.0
    if "million" in h or "(m)" in h or "$m" in h or "($mm)" in h:
        return 1_000_000.0
    return 1.0


def parse_currency(cell: Any) -> Optional[float]:
    """
    Parse a currency-like cell.

    Handles:
    - '$1,250' -> 1250.0
    - ' 12 % ' -> 12.0
    - '', '-', 'N/A' -> None
    """
    if is_blank(cell) or isinstance(cell, bool):
        return None
    if _is_number(cell):
        return _finite(float(cell))
    clean = _CURRENCY_STRIP_RE.sub("", str(cell))
    if clean.lower() in _PLACEHOLDERS:
        return None
    return _parse_float(clean)


def parse_percentage(cell: Any) -> Optional[float]:
    """
    Parse a percentage-like cell into 0-100 (or >100 for hyper-growth) units.

    A literal '%' keeps the number as written; otherwise a value strictly
    between 0 and 1 is read as a decimal fraction and multiplied by 100.
    """
    had_percent = isinstance(cell, str) and "%" in cell
    value = parse_currency(cell)
    if value is None:
        return None
    if had_percent:
        return value
    if 0 < value < 1:
        return value * 100
    return value


def parse_multiplier(cell: Any) -> Optional[float]:
    """'2.5x' -> 2.5, '1.2 X ' -> 1.2."""
    if is_blank(cell) or isinstance(cell, bool):
        return None
    if _is_number(cell):
        return _finite(float(cell))
    text = _TRAILING_X_RE.sub("", str(cell).strip())
    return _parse_float(text.replace(",", ""))


def parse_rating(cell: Any, *, default: int = 1, low: int = 1, high: int = 5) -> int:
    """Digits-only rating, clamped to [low, high]; unparseable or zero -> default."""
    if _is_number(cell) and math.isfinite(float(cell)):
        value = int(cell)
    else:
        digits = "" if is_blank(cell) else _NON_DIGIT_RE.sub("", str(cell))
        value = int(digits) if digits else 0
    if not value:
        return default
    return max(low, min(high, value))


def parse_bounded_int(cell: Any, *, low: int, high: int, default: Optional[int]) -> Optional[int]:
    """Integer in [low, high]; anything else -> default."""
    value = _parse_int(cell)
    if value is None or value < low or value > high:
        return default
    return value


def parse_bool(cell: Any) -> bool:
    if isinstance(cell, bool):
        return cell
    if is_blank(cell):
        return False
    return str(cell).strip().lower() in _TRUE_STRINGS


def cell_text(cell: Any) -> Optional[str]:
    """Trimmed string form of a cell; integral floats drop their '.0'."""
    if is_blank(cell):
        return None
    if isinstance(cell, float) and cell.is_integer():
        return str(int(cell))
    text = str(cell).strip()
    return text or None


def coerce_field(field_name: str, cell: Any, header: Any = None) -> Any:
    """Apply the per-field coercion rule. Never raises on malformed input."""
    if field_name in CURRENCY_FIELDS:
        value = parse_currency(cell)
        if value is None:
            return None
        if field_name == "totalInvestment":
            return value * 1000
        return value * header_unit_multiplier(header)
    if field_name in PERCENT_FIELDS:
        return parse_percentage(cell)
    if field_name in MULTIPLIER_FIELDS:
        return parse_multiplier(cell)
    if field_name in NUMBER_FIELDS:
        return parse_currency(cell)
    if field_name in RATING_FIELDS:
        return parse_rating(cell)
    if field_name == "roundComplexity":
        return parse_bounded_int(cell, low=1, high=5, default=3)
    if field_name == "exitTimeline":
        return parse_bounded_int(cell, low=1, high=20, default=3)
    if field_name == "investorInterest":
        return parse_bounded_int(cell, low=1, high=5, default=None)
    if field_name == "seriesStage":
        return normalize_series_stage(cell_text(cell) or "")
    if field_name in BOOLEAN_FIELDS:
        return parse_bool(cell)
    return cell_text(cell)


def derive_is_existing_investment(record: CompanyRecord) -> bool:
    """A zero in any of the funding fields marks a prospective (unfunded) company."""
    for v in (record.total_investment, record.equity_stake, record.ca_equity_valuation):
        if v is not None and v == 0:
            return False
    return True


def parse_row(
    row: Sequence[Any],
    headers: Sequence[Any],
    mapping: Dict[str, str],
    *,
    row_index: int,
) -> Optional[CompanyRecord]:
    """
    Convert one data row into a CompanyRecord.

    Returns None for an empty row or a row without a company name. Malformed
    cells degrade to None or the field's documented default.
    """
    if is_empty_row(row):
        return None

    values: Dict[str, Any] = {}
    for col, header in enumerate(headers):
        field_name = mapping.get(header) if isinstance(header, str) else None
        if not field_name or col >= len(row):
            continue
        cell = row[col]
        if is_blank(cell):
            continue
        value = coerce_field(field_name, cell, header)
        # Duplicate headers: a later blank/garbage cell must not erase an earlier value
        if value is None and values.get(field_name) is not None:
            continue
        values[field_name] = value

    name = values.pop("companyName", None)
    if not name:
        return None

    record = CompanyRecord(id=f"excel-{row_index}", company_name=name)
    for field_name, value in values.items():
        attr = attr_for_field(field_name)
        if attr is None:
            continue
        setattr(record, attr, value)

    record.is_existing_investment = derive_is_existing_investment(record)

    if record.total_investment and record.current_valuation:
        record.total_return = record.current_valuation - record.total_investment
        if not record.moic:
            record.moic = record.current_valuation / record.total_investment

    return record
