"""
Revenue trajectory analytics over the sparse five-point timeline
(t-2, t-1, current, t+1, t+2).

Every metric either yields a finite number or None plus a human-readable
warning; nothing here raises on missing data and NaN/Inf never leak into
a record.
"""
from __future__ import annotations

import math
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional

import numpy as np

from vcport.ingestion.core import CompanyRecord


@dataclass(frozen=True)
class MetricResult:
    value: Optional[float]
    warning: Optional[str] = None


@dataclass(frozen=True)
class TimelineData:
    year2: Optional[float]
    year1: Optional[float]
    current: Optional[float]
    projected1: Optional[float]
    projected2: Optional[float]

    def points(self) -> List[Optional[float]]:
        return [self.year2, self.year1, self.current, self.projected1, self.projected2]


@dataclass(frozen=True)
class FieldValidation:
    missing_critical_fields: List[str]
    can_calculate_yoy: bool
    can_calculate_historical_cagr: bool
    can_calculate_forward_cagr: bool
    can_calculate_exit_modeling: bool


@dataclass
class DataCompleteness:
    score: int                               # 0-100
    missing_critical_fields: List[str]
    can_calculate_yoy: bool
    can_calculate_historical_cagr: bool
    can_calculate_forward_cagr: bool
    can_calculate_exit_modeling: bool
    confidence_level: str                    # "high" | "medium" | "low" | "insufficient"


@dataclass
class RevenueAnalytics:
    yoy_growth_percent: Optional[float]
    historical_cagr_2y: Optional[float]
    forward_cagr_2y: Optional[float]
    forward_revenue_multiple: Optional[float]
    revenue_trajectory_score: Optional[float]
    trajectory_pattern: str                  # "accelerating" | "stagnating" | "volatile" | "insufficient_data"
    credibility_flag: str                    # "high" | "moderate" | "low" | "red_flag"
    primary_metric: str                      # "arr" | "revenue" | "none"
    timeline_data: TimelineData
    data_completeness: DataCompleteness
    warning_flags: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _positive(v: Optional[float]) -> bool:
    return v is not None and math.isfinite(v) and v > 0


def _finite_or_none(v: Optional[float]) -> Optional[float]:
    if v is None or not math.isfinite(v):
        return None
    return float(v)


def _current_revenue(record: CompanyRecord) -> Optional[float]:
    return record.current_revenue or record.revenue


def _current_arr(record: CompanyRecord) -> Optional[float]:
    return record.current_arr or record.arr


# ---------------------------------------------------------------------------
# Primary metric and data completeness
# ---------------------------------------------------------------------------

def determine_primary_metric(record: CompanyRecord) -> str:
    """Prefer ARR when a positive value exists, then Revenue, else 'none'."""
    if _positive(_current_arr(record)):
        return "arr"
    if _positive(_current_revenue(record)):
        return "revenue"
    return "none"


def validate_required_fields(record: CompanyRecord) -> FieldValidation:
    has_current = _positive(_current_revenue(record)) or _positive(_current_arr(record))

    missing: List[str] = []
    if not has_current:
        missing.append("Current Revenue/ARR")
    if not record.revenue_year_minus_1 and not record.revenue_growth:
        missing.append("Revenue Year -1")
    if not record.projected_revenue_year_1 and not record.projected_revenue_growth:
        missing.append("Projected Revenue +1")
    if not record.projected_revenue_year_2:
        missing.append("Projected Revenue +2")

    has_proj2 = record.projected_revenue_year_2 is not None
    return FieldValidation(
        missing_critical_fields=missing,
        can_calculate_yoy=has_current and record.revenue_year_minus_1 is not None,
        can_calculate_historical_cagr=has_current and record.revenue_year_minus_2 is not None,
        can_calculate_forward_cagr=has_current and has_proj2,
        can_calculate_exit_modeling=has_current and has_proj2 and record.post_money_valuation is not None,
    )


def data_completeness_score(record: CompanyRecord) -> int:
    """Share (0-100) of the eight tracked revenue fields that are present and non-zero."""
    tracked = [
        _current_revenue(record),
        _current_arr(record),
        record.revenue_year_minus_2,
        record.revenue_year_minus_1,
        record.projected_revenue_year_1,
        record.projected_revenue_year_2,
        record.revenue_growth,
        record.projected_revenue_growth,
    ]
    filled = sum(1 for v in tracked if v is not None and v != 0)
    return int(round(filled / len(tracked) * 100))


def confidence_level(completeness: int, missing_critical: int) -> str:
    if completeness >= 80 and missing_critical == 0:
        return "high"
    if completeness >= 60 and missing_critical <= 1:
        return "medium"
    if completeness >= 40:
        return "low"
    return "insufficient"


# ---------------------------------------------------------------------------
# Growth metrics
# ---------------------------------------------------------------------------

def yoy_growth(current: Optional[float], previous: Optional[float]) -> Optional[float]:
    if not _positive(current) or not _positive(previous):
        return None
    return _finite_or_none((current - previous) / previous * 100)


def cagr_2y(start: Optional[float], end: Optional[float]) -> Optional[float]:
    """Two-year compound growth in percent: (end/start)^(1/2) - 1."""
    if not _positive(start) or not _positive(end):
        return None
    return _finite_or_none((math.pow(end / start, 0.5) - 1) * 100)


def forward_revenue_multiple(exit_valuation: Optional[float], projected2: Optional[float]) -> Optional[float]:
    if not _positive(exit_valuation) or not _positive(projected2):
        return None
    return _finite_or_none(exit_valuation / projected2)


def yoy_growth_with_failsafe(record: CompanyRecord) -> MetricResult:
    current = _current_revenue(record)
    previous = record.revenue_year_minus_1
    if not _positive(current):
        return MetricResult(None, "Insufficient data: Current revenue missing")
    if not _positive(previous):
        return MetricResult(None, "Unable to calculate YoY Growth: Previous year revenue missing")
    return MetricResult(yoy_growth(current, previous))


def historical_cagr_with_failsafe(record: CompanyRecord) -> MetricResult:
    current = _current_revenue(record)
    year2 = record.revenue_year_minus_2
    if not _positive(current):
        return MetricResult(None, "Insufficient data: Current revenue missing")
    if not _positive(year2):
        return MetricResult(None, "Skip 2-Year CAGR: Year -2 revenue not available")
    return MetricResult(cagr_2y(year2, current))


def forward_cagr_with_failsafe(record: CompanyRecord) -> MetricResult:
    current = _current_revenue(record)
    projected2 = record.projected_revenue_year_2
    if not _positive(current):
        return MetricResult(None, "Insufficient data: Current revenue missing")
    if not _positive(projected2):
        return MetricResult(None, "Projection not available: Year +2 revenue missing")
    return MetricResult(cagr_2y(current, projected2))


def forward_multiple_with_failsafe(record: CompanyRecord) -> MetricResult:
    projected2 = record.projected_revenue_year_2
    exit_valuation = record.post_money_valuation
    if not _positive(projected2):
        return MetricResult(
            None,
            "Insufficient data to generate risk-adjusted outputs. Please provide Projected +2 Revenue.",
        )
    if not _positive(exit_valuation):
        return MetricResult(None, "Exit valuation not available for revenue multiple calculation")
    return MetricResult(forward_revenue_multiple(exit_valuation, projected2))


# ---------------------------------------------------------------------------
# Pattern, credibility and score
# ---------------------------------------------------------------------------

def timeline_for_metric(record: CompanyRecord, primary_metric: str) -> TimelineData:
    """ARR carries no historical or projected timeline; Revenue carries all five points."""
    if primary_metric == "arr":
        return TimelineData(None, None, _current_arr(record), None, None)
    if primary_metric == "revenue":
        return TimelineData(
            record.revenue_year_minus_2,
            record.revenue_year_minus_1,
            _current_revenue(record),
            record.projected_revenue_year_1,
            record.projected_revenue_year_2,
        )
    return TimelineData(None, None, None, None, None)


def growth_rates(points: List[Optional[float]]) -> List[float]:
    """Percent growth across each consecutive pair where both ends are positive."""
    rates: List[float] = []
    for prev, curr in zip(points, points[1:]):
        if _positive(prev) and _positive(curr):
            rates.append((curr - prev) / prev * 100)
    return rates


def determine_trajectory_pattern(timeline: TimelineData) -> str:
    points = timeline.points()
    if sum(1 for p in points if _positive(p)) < 3:
        return "insufficient_data"

    rates = growth_rates(points)
    if len(rates) < 2:
        return "insufficient_data"

    arr = np.asarray(rates, dtype=float)
    avg = float(arr.mean())
    variance = float(arr.var())  # population variance, pp^2

    is_accelerating = all(rates[i] >= rates[i - 1] * 0.8 for i in range(1, len(rates)))
    is_stagnating = avg < 15 and all(r < 30 for r in rates)
    is_volatile = variance > 2500

    if is_accelerating and avg > 25:
        return "accelerating"
    if is_volatile:
        return "volatile"
    if is_stagnating:
        return "stagnating"
    return "accelerating" if avg > 30 else "stagnating"


def determine_credibility_flag(
    historical_cagr: Optional[float],
    forward_cagr: Optional[float],
    investor_interest: Optional[int],
) -> str:
    """
    Compare projected vs. realized growth against external validation.

    investor_interest is the 1-5 rating of outside investor demand; absent
    interest counts as the weakest signal (1).
    """
    if historical_cagr is None and forward_cagr is None:
        return "low"

    historical = historical_cagr or 0.0
    forward = forward_cagr or 0.0
    interest = investor_interest or 1

    if forward > historical * 2 and forward > 100 and interest <= 2:
        return "red_flag"
    if interest >= 4 and forward <= historical * 1.5 and forward > 0:
        return "high"
    if interest <= 2 or forward > historical * 3:
        return "low"
    return "moderate"


_CREDIBILITY_POINTS = {"high": 1.0, "moderate": 0.7, "low": 0.3, "red_flag": -1.0}


def _cagr_tier_points(cagr: float) -> float:
    if cagr >= 100:
        return 2.0
    if cagr >= 50:
        return 1.5
    if cagr >= 25:
        return 1.0
    if cagr >= 0:
        return 0.5
    return 0.0


def calculate_trajectory_score(
    historical_cagr: Optional[float],
    forward_cagr: Optional[float],
    yoy_growth_percent: Optional[float],
    credibility_flag: Optional[str],
) -> Optional[float]:
    """0-5 score: up to 2 for historical CAGR, 2 for forward CAGR, +/-1 for credibility."""
    if historical_cagr is None and forward_cagr is None and yoy_growth_percent is None:
        return None

    score = 0.0
    if historical_cagr is not None:
        score += _cagr_tier_points(historical_cagr)
    if forward_cagr is not None:
        score += _cagr_tier_points(forward_cagr)
    if credibility_flag:
        score += _CREDIBILITY_POINTS.get(credibility_flag, 0.0)

    return round(max(0.0, min(5.0, score)), 1)


def trajectory_score_with_failsafe(
    historical_cagr: Optional[float],
    forward_cagr: Optional[float],
    yoy_growth_percent: Optional[float],
    credibility_flag: Optional[str],
    completeness: int,
) -> MetricResult:
    score = calculate_trajectory_score(historical_cagr, forward_cagr, yoy_growth_percent, credibility_flag)
    if score is None:
        return MetricResult(None, "Low confidence: Incomplete data prevents trajectory scoring")
    if completeness >= 80:
        return MetricResult(score)
    if completeness >= 60:
        return MetricResult(score, "Medium confidence: Some data gaps limit precision")
    if completeness >= 40:
        return MetricResult(score, "Low confidence: Significant data gaps affect reliability")
    return MetricResult(score, "Insufficient data: Results are directional only")


# ---------------------------------------------------------------------------
# Entry points
# ---------------------------------------------------------------------------

def compute_revenue_analytics(record: CompanyRecord) -> RevenueAnalytics:
    """Compute every revenue metric for a record, collecting warnings for skipped ones."""
    primary_metric = determine_primary_metric(record)
    validation = validate_required_fields(record)
    completeness = data_completeness_score(record)
    warnings: List[str] = []

    timeline = timeline_for_metric(record, primary_metric)
    if primary_metric == "none":
        warnings.append("No primary revenue metric available")

    yoy = yoy_growth_with_failsafe(record)
    historical = historical_cagr_with_failsafe(record)
    forward = forward_cagr_with_failsafe(record)
    multiple = forward_multiple_with_failsafe(record)
    for result in (yoy, historical, forward, multiple):
        if result.warning:
            warnings.append(result.warning)

    pattern = determine_trajectory_pattern(timeline)
    credibility = determine_credibility_flag(historical.value, forward.value, record.investor_interest)

    score = trajectory_score_with_failsafe(
        historical.value, forward.value, yoy.value, credibility, completeness
    )
    if score.warning:
        warnings.append(score.warning)

    level = confidence_level(completeness, len(validation.missing_critical_fields))
    if level == "insufficient":
        warnings.append(
            "Revenue trajectory limited by missing historical/projected data; outputs are directional only."
        )
    if not validation.can_calculate_exit_modeling:
        warnings.append(
            "Risk-adjusted monetization disabled: Missing projected revenue +2 or valuation data"
        )

    return RevenueAnalytics(
        yoy_growth_percent=yoy.value,
        historical_cagr_2y=historical.value,
        forward_cagr_2y=forward.value,
        forward_revenue_multiple=multiple.value,
        revenue_trajectory_score=score.value,
        trajectory_pattern=pattern,
        credibility_flag=credibility,
        primary_metric=primary_metric,
        timeline_data=timeline,
        data_completeness=DataCompleteness(
            score=completeness,
            missing_critical_fields=list(validation.missing_critical_fields),
            can_calculate_yoy=validation.can_calculate_yoy,
            can_calculate_historical_cagr=validation.can_calculate_historical_cagr,
            can_calculate_forward_cagr=validation.can_calculate_forward_cagr,
            can_calculate_exit_modeling=validation.can_calculate_exit_modeling,
            confidence_level=level,
        ),
        warning_flags=warnings,
    )


def enhance_record_with_analytics(record: CompanyRecord) -> CompanyRecord:
    """Attach computed analytics onto the record in place and return it."""
    analytics = compute_revenue_analytics(record)
    record.yoy_growth_percent = analytics.yoy_growth_percent
    record.historical_cagr_2y = analytics.historical_cagr_2y
    record.forward_cagr_2y = analytics.forward_cagr_2y
    record.forward_revenue_multiple = analytics.forward_revenue_multiple
    record.revenue_trajectory_score = analytics.revenue_trajectory_score
    record.trajectory_pattern = analytics.trajectory_pattern
    record.credibility_flag = analytics.credibility_flag
    record.primary_metric = analytics.primary_metric
    record.data_completeness = analytics.data_completeness
    record.warning_flags = list(analytics.warning_flags)
    return record
