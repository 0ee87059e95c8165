"""
Row parsing: per-field coercion and CompanyRecord construction.

Units come from the header text only; ratings and bounded integers never
raise on garbage input.
"""
import pytest

from vcport.ingestion.core import (
    coerce_field,
    header_unit_multiplier,
    parse_bool,
    parse_currency,
    parse_multiplier,
    parse_percentage,
    parse_rating,
    parse_row,
)
from vcport.ingestion.matching import build_column_mapping
from vcport.mappings import normalize_series_stage

HEADERS = [
    "COMPANY",
    "Total Investment ($ in Thousands)",
    "Equity Stake % (Fully Diluted)",
    "Implied MOIC (x)",
]


class TestCurrency:
    def test_strips_symbols(self):
        assert parse_currency("$1,250") == 1250.0
        assert parse_currency(" 12 % ") == 12.0
        assert parse_currency(3000) == 3000.0

    def test_placeholders_are_none(self):
        for cell in ["", "-", "N/A", "n/a", None, float("nan")]:
            assert parse_currency(cell) is None

    def test_leading_number_is_used(self):
        assert parse_currency("18 months") == 18.0
        assert parse_currency("abc") is None

    def test_thousands_header_scales_value(self):
        assert coerce_field("revenue", "$1,250", "Revenue ($ in Thousands)") == 1_250_000

    def test_millions_header_scales_value(self):
        assert coerce_field("currentRevenue", 2.5, "Current Revenue ($M)") == 2_500_000

    def test_unlabelled_header_keeps_value(self):
        assert coerce_field("revenue", 1250, "Revenue") == 1250
        assert header_unit_multiplier("ARR") == 1.0

    def test_total_investment_always_in_thousands(self):
        assert coerce_field("totalInvestment", "$1,250", "Total Investment to Date") == 1_250_000
        assert coerce_field("totalInvestment", "500", "Total Investment ($ in Thousands)") == 500_000


class TestPercentage:
    """Fractions in (0, 1) are scaled; literal '%' is trusted as written."""

    def test_fraction_scaled(self):
        assert parse_percentage(0.15) == pytest.approx(15.0)

    def test_whole_number_kept(self):
        assert parse_percentage(15) == 15.0

    def test_percent_sign_kept(self):
        assert parse_percentage("15%") == 15.0
        assert parse_percentage("0.5%") == 0.5

    def test_zero_and_hyper_growth(self):
        assert parse_percentage(0) == 0.0
        assert parse_percentage("250%") == 250.0

    def test_garbage_is_none(self):
        assert parse_percentage("n/a") is None


class TestOtherCoercions:
    def test_multiplier_strips_x(self):
        assert parse_multiplier("2.5x") == 2.5
        assert parse_multiplier("1.2 X ") == 1.2
        assert parse_multiplier(3) == 3.0

    def test_rating_digits_and_clamp(self):
        assert parse_rating("4 (strong)") == 4
        assert parse_rating(9) == 5
        assert parse_rating("") == 1
        assert parse_rating("n/a") == 1

    def test_round_complexity_bounds(self):
        assert coerce_field("roundComplexity", 7) == 3
        assert coerce_field("roundComplexity", 2) == 2
        assert coerce_field("roundComplexity", "abc") == 3

    def test_exit_timeline_bounds(self):
        assert coerce_field("exitTimeline", 12) == 12
        assert coerce_field("exitTimeline", 25) == 3
        assert coerce_field("exitTimeline", 0) == 3

    def test_investor_interest_out_of_range_is_none(self):
        assert coerce_field("investorInterest", 6) is None
        assert coerce_field("investorInterest", "4") == 4

    def test_series_stage_normalized(self):
        assert coerce_field("seriesStage", "series b extension") == "Series B"
        assert normalize_series_stage("Late Stage") == "Growth"
        assert normalize_series_stage("B") == "Series B"
        assert normalize_series_stage("tbd") is None
        assert normalize_series_stage("Angel") == "Angel"

    def test_bool(self):
        assert parse_bool("Y") is True
        assert parse_bool("yes") is True
        assert parse_bool("no") is False
        assert parse_bool(None) is False

    def test_text_fields_trimmed(self):
        assert coerce_field("industry", "  Fintech ") == "Fintech"
        assert coerce_field("exitActivity", "High") == "High"


class TestParseRow:
    """Row -> CompanyRecord, including derived fields."""

    def setup_method(self):
        self.mapping = build_column_mapping(HEADERS)

    def test_enhanced_template_row(self):
        record = parse_row(["Acme", "500", "10", "2.5"], HEADERS, self.mapping, row_index=1)
        assert record is not None
        assert record.id == "excel-1"
        assert record.company_name == "Acme"
        assert record.total_investment == 500_000
        assert record.equity_stake == 10.0
        assert record.moic == 2.5
        assert record.is_existing_investment is True

    def test_defaults_when_columns_absent(self):
        record = parse_row(["Acme", "500", "10", "2.5"], HEADERS, self.mapping, row_index=1)
        assert record.round_complexity == 3
        assert record.exit_timeline == 3
        assert record.tam is None
        assert record.barrier_to_entry is None
        assert record.investor_interest is None

    def test_nameless_and_empty_rows_skipped(self):
        assert parse_row([None, 100, 5, 1.0], HEADERS, self.mapping, row_index=2) is None
        assert parse_row([None, "", None, None], HEADERS, self.mapping, row_index=3) is None
        assert parse_row([], HEADERS, self.mapping, row_index=4) is None

    def test_zero_equity_marks_prospective(self):
        record = parse_row(["Newco", "100", 0, None], HEADERS, self.mapping, row_index=5)
        assert record.equity_stake == 0.0
        assert record.is_existing_investment is False

    def test_short_row_tolerated(self):
        record = parse_row(["Acme", "500"], HEADERS, self.mapping, row_index=1)
        assert record.total_investment == 500_000
        assert record.equity_stake is None

    def test_duplicate_header_later_blank_does_not_erase(self):
        headers = ["Company", "Revenue", "Revenue"]
        mapping = build_column_mapping(headers)
        record = parse_row(["Acme", 1000, "n/a"], headers, mapping, row_index=1)
        assert record.revenue == 1000

    def test_current_valuation_derives_return_and_moic(self):
        headers = HEADERS[:3] + ["Current Valuation"]
        mapping = build_column_mapping(headers)
        record = parse_row(["Acme", "1000", "10", 2_000_000], headers, mapping, row_index=1)
        assert record.total_investment == 1_000_000
        assert record.total_return == 1_000_000
        assert record.moic == pytest.approx(2.0)

    def test_explicit_moic_not_overwritten(self):
        headers = HEADERS + ["Current Valuation"]
        mapping = build_column_mapping(headers)
        record = parse_row(["Acme", "1000", "10", "3.1x", 2_000_000], headers, mapping, row_index=1)
        assert record.moic == 3.1

    def test_garbage_cells_degrade(self):
        headers = HEADERS + ["Runway (Months)", "TAM", "Round Complexity (1-5)"]
        mapping = build_column_mapping(headers)
        record = parse_row(
            ["Acme", "lots", "ten", "??", "soon", "huge", "very"], headers, mapping, row_index=1
        )
        assert record.total_investment is None
        assert record.equity_stake is None
        assert record.moic is None
        assert record.runway is None
        assert record.tam == 1
        assert record.round_complexity == 3


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
