"""
Revenue trajectory analytics: growth metrics, pattern, credibility, score
and completeness, including the degrade-with-warning paths.
"""
import math

import pytest

from vcport.ingestion.core import CompanyRecord
from vcport.revenue_analytics import (
    TimelineData,
    calculate_trajectory_score,
    cagr_2y,
    compute_revenue_analytics,
    confidence_level,
    data_completeness_score,
    determine_credibility_flag,
    determine_primary_metric,
    determine_trajectory_pattern,
    enhance_record_with_analytics,
    forward_revenue_multiple,
    yoy_growth,
)


def _full_record() -> CompanyRecord:
    return CompanyRecord(
        id="excel-1",
        company_name="Acme",
        revenue_year_minus_2=1_000_000,
        revenue_year_minus_1=2_000_000,
        current_revenue=4_000_000,
        projected_revenue_year_1=6_000_000,
        projected_revenue_year_2=9_000_000,
        post_money_valuation=90_000_000,
        revenue_growth=100,
        projected_revenue_growth=50,
        investor_interest=4,
    )


class TestGrowthMetrics:
    def test_yoy(self):
        assert yoy_growth(150, 100) == pytest.approx(50.0)
        assert yoy_growth(150, 0) is None
        assert yoy_growth(None, 100) is None

    def test_cagr_doubling_each_year(self):
        assert cagr_2y(100, 400) == pytest.approx(100.0)

    def test_cagr_requires_positive_endpoints(self):
        assert cagr_2y(0, 400) is None
        assert cagr_2y(100, -5) is None

    def test_forward_multiple(self):
        assert forward_revenue_multiple(90_000_000, 9_000_000) == pytest.approx(10.0)
        assert forward_revenue_multiple(None, 9_000_000) is None


class TestCredibility:
    """Projections vs. history vs. outside investor demand."""

    def test_red_flag(self):
        assert determine_credibility_flag(20, 150, 1) == "red_flag"

    def test_high(self):
        assert determine_credibility_flag(50, 60, 4) == "high"

    def test_high_requires_positive_forward(self):
        assert determine_credibility_flag(50, -10, 5) == "moderate"

    def test_low_when_interest_weak_or_missing(self):
        assert determine_credibility_flag(50, 60, 2) == "low"
        assert determine_credibility_flag(50, 60, None) == "low"

    def test_low_when_no_cagr(self):
        assert determine_credibility_flag(None, None, 5) == "low"

    def test_moderate(self):
        assert determine_credibility_flag(50, 60, 3) == "moderate"


class TestTrajectoryScore:
    def test_tiers_and_credibility(self):
        assert calculate_trajectory_score(100, 50, None, "high") == 4.5

    def test_clamped_to_five(self):
        assert calculate_trajectory_score(150, 150, None, "high") == 5.0

    def test_clamped_to_zero(self):
        assert calculate_trajectory_score(10, 10, None, "red_flag") == 0.0

    def test_none_without_growth_inputs(self):
        assert calculate_trajectory_score(None, None, None, "low") is None

    def test_yoy_alone_enables_score(self):
        assert calculate_trajectory_score(None, None, 40.0, "moderate") == 0.7


class TestTrajectoryPattern:
    def test_accelerating(self):
        timeline = TimelineData(100, 150, 225, 340, 510)
        assert determine_trajectory_pattern(timeline) == "accelerating"

    def test_stagnating(self):
        timeline = TimelineData(100, 105, 110, 115, 120)
        assert determine_trajectory_pattern(timeline) == "stagnating"

    def test_volatile(self):
        timeline = TimelineData(100, 300, 100, 300, 100)
        assert determine_trajectory_pattern(timeline) == "volatile"

    def test_decelerating_high_average_reads_accelerating(self):
        # rates 60 then 20: not steady, not volatile, average 40
        assert determine_trajectory_pattern(TimelineData(100, 160, 192, None, None)) == "accelerating"

    def test_decelerating_low_average_reads_stagnating(self):
        # rates 40 then 10: not steady, not volatile, average 25
        assert determine_trajectory_pattern(TimelineData(100, 140, 154, None, None)) == "stagnating"

    def test_too_few_points(self):
        assert determine_trajectory_pattern(TimelineData(None, None, 100, 200, None)) == "insufficient_data"

    def test_gaps_reduce_rates(self):
        # Three positive points but no two adjacent pairs
        timeline = TimelineData(100, None, 200, None, 400)
        assert determine_trajectory_pattern(timeline) == "insufficient_data"


class TestCompleteness:
    def test_confidence_levels(self):
        assert confidence_level(88, 0) == "high"
        assert confidence_level(80, 1) == "medium"
        assert confidence_level(60, 2) == "low"
        assert confidence_level(25, 0) == "insufficient"

    def test_zero_counts_as_missing(self):
        record = CompanyRecord(id="x", company_name="Z", current_revenue=0, revenue_growth=0)
        assert data_completeness_score(record) == 0


class TestComputeRevenueAnalytics:
    """End-to-end analytics on a single record."""

    def test_only_current_revenue(self):
        record = CompanyRecord(id="excel-1", company_name="Solo", current_revenue=1_000_000)
        analytics = compute_revenue_analytics(record)
        assert analytics.primary_metric == "revenue"
        assert analytics.yoy_growth_percent is None
        assert analytics.historical_cagr_2y is None
        assert analytics.forward_cagr_2y is None
        assert analytics.forward_revenue_multiple is None
        assert analytics.revenue_trajectory_score is None
        assert analytics.trajectory_pattern == "insufficient_data"
        assert analytics.credibility_flag == "low"
        assert analytics.data_completeness.confidence_level == "insufficient"
        assert analytics.warning_flags
        assert any("Previous year revenue missing" in w for w in analytics.warning_flags)

    def test_no_revenue_at_all(self):
        analytics = compute_revenue_analytics(CompanyRecord(id="excel-2", company_name="Empty"))
        assert analytics.primary_metric == "none"
        assert "No primary revenue metric available" in analytics.warning_flags
        assert analytics.data_completeness.score == 0

    def test_full_timeline(self):
        analytics = compute_revenue_analytics(_full_record())
        assert analytics.yoy_growth_percent == pytest.approx(100.0)
        assert analytics.historical_cagr_2y == pytest.approx(100.0)
        assert analytics.forward_cagr_2y == pytest.approx(50.0)
        assert analytics.forward_revenue_multiple == pytest.approx(10.0)
        assert analytics.credibility_flag == "high"
        assert analytics.revenue_trajectory_score == 4.5
        assert analytics.trajectory_pattern == "accelerating"
        assert analytics.data_completeness.confidence_level == "high"
        assert analytics.data_completeness.can_calculate_exit_modeling is True
        assert analytics.warning_flags == []

    def test_arr_primary_has_no_timeline(self):
        record = _full_record()
        record.current_arr = 5_000_000
        analytics = compute_revenue_analytics(record)
        assert analytics.primary_metric == "arr"
        assert analytics.timeline_data.points() == [None, None, 5_000_000, None, None]
        assert analytics.trajectory_pattern == "insufficient_data"
        # Growth metrics still come from the revenue series
        assert analytics.historical_cagr_2y == pytest.approx(100.0)

    def test_primary_metric_prefers_arr(self):
        record = CompanyRecord(id="x", company_name="A", revenue=100, arr=200)
        assert determine_primary_metric(record) == "arr"
        record.arr = 0
        assert determine_primary_metric(record) == "revenue"

    def test_no_nan_or_inf_leaks(self):
        record = CompanyRecord(
            id="x",
            company_name="Tiny",
            revenue_year_minus_2=1e-300,
            current_revenue=1e300,
            projected_revenue_year_2=1e300,
        )
        analytics = compute_revenue_analytics(record)
        for v in (
            analytics.yoy_growth_percent,
            analytics.historical_cagr_2y,
            analytics.forward_cagr_2y,
            analytics.forward_revenue_multiple,
            analytics.revenue_trajectory_score,
        ):
            assert v is None or math.isfinite(v)

    def test_enhance_sets_record_fields(self):
        record = enhance_record_with_analytics(_full_record())
        assert record.historical_cagr_2y == pytest.approx(100.0)
        assert record.revenue_trajectory_score == 4.5
        assert record.primary_metric == "revenue"
        assert record.data_completeness.score == 88
        assert record.warning_flags == []


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
