"""
Per-company analysis with stubbed model clients: minimum-viable-input gate,
response validation, failure fallback, research aggregation and pacing.
"""
import pytest

from vcport.analysis import (
    AnalysisConfig,
    analyze_company,
    analyze_portfolio,
    build_analysis_prompt,
    has_minimum_viable_inputs,
    missing_viable_inputs,
    parse_analysis_response,
)
from vcport.ingestion.core import CompanyRecord
from vcport.llm_client import LLMError, PerplexityChatClient
from vcport.research import conduct_external_research, extract_sources

NO_DELAY = AnalysisConfig(company_delay_s=0, research_delay_s=0)


class StubReasoningClient:
    def __init__(self, response=None, error=None):
        self.response = response or {}
        self.error = error
        self.calls = []

    def json_call(self, **kwargs):
        self.calls.append(kwargs)
        if self.error is not None:
            raise self.error
        return self.response


class StubResearchClient:
    def __init__(self, answer="", error=None):
        self.answer = answer
        self.error = error
        self.queries = []

    def chat(self, **kwargs):
        self.queries.append(kwargs["user"])
        if self.error is not None:
            raise self.error
        return self.answer


def _viable_record(name="Acme") -> CompanyRecord:
    return CompanyRecord(
        id="excel-1",
        company_name=name,
        total_investment=500_000,
        equity_stake=10,
        moic=2.0,
        revenue_growth=50,
        burn_multiple=1.2,
        runway=18,
        tam=4,
        exit_activity="High",
        additional_investment_requested=0,
    )


GOOD_RESPONSE = {
    "recommendation": "Invest $250K of $1M request",
    "timingBucket": "Double Down",
    "reasoning": "Strong growth.",
    "confidence": "4",
    "keyRisks": "Competition.",
    "suggestedAction": "Schedule partner meeting.",
    "externalSources": ["Crunchbase", "TechCrunch"],
}


class TestMinimumViableInputs:
    """Two or more missing critical inputs short-circuit the analysis."""

    def test_complete_record_is_viable(self):
        assert missing_viable_inputs(_viable_record()) == []
        assert has_minimum_viable_inputs(_viable_record())

    def test_zero_counts_as_missing_except_additional_investment(self):
        record = _viable_record()
        record.moic = 0
        assert missing_viable_inputs(record) == ["moic"]
        assert has_minimum_viable_inputs(record)

    def test_two_missing_fails(self):
        record = _viable_record()
        record.runway = None
        record.exit_activity = ""
        assert not has_minimum_viable_inputs(record)

    def test_insufficient_record_skips_model(self):
        client = StubReasoningClient(GOOD_RESPONSE)
        result = analyze_company(
            CompanyRecord(id="excel-1", company_name="Sparse"), NO_DELAY, reasoning_client=client
        )
        assert result.insufficient_data is True
        assert result.recommendation == "Insufficient data to assess"
        assert result.confidence == 1
        assert client.calls == []


class TestAnalyzeCompany:
    def test_valid_response(self):
        client = StubReasoningClient(GOOD_RESPONSE)
        result = analyze_company(_viable_record(), NO_DELAY, reasoning_client=client)
        assert result.recommendation == "Invest $250K of $1M request"
        assert result.timing_bucket == "Double Down"
        assert result.confidence == 4
        assert result.external_sources == "Crunchbase, TechCrunch"
        assert result.insufficient_data is False
        assert "Acme" in client.calls[0]["user"]

    def test_non_finite_confidence_does_not_raise(self):
        client = StubReasoningClient({"recommendation": "Invest", "confidence": float("nan")})
        result = analyze_company(_viable_record(), NO_DELAY, reasoning_client=client)
        assert result.recommendation == "Invest"
        assert result.confidence == 3

    def test_model_error_becomes_failed_result(self):
        client = StubReasoningClient(error=LLMError("OpenAI HTTP 500: boom"))
        result = analyze_company(_viable_record(), NO_DELAY, reasoning_client=client)
        assert result.recommendation == "Analysis failed"
        assert result.insufficient_data is True
        assert result.confidence == 1

    def test_research_feeds_prompt(self):
        research = StubResearchClient("Raised $20M Series B per Crunchbase; covered by TechCrunch.")
        client = StubReasoningClient({})
        result = analyze_company(
            _viable_record(), NO_DELAY, reasoning_client=client, research_client=research
        )
        assert len(research.queries) == 5
        assert "EXTERNAL RESEARCH DATA" in client.calls[0]["user"]
        assert result.external_sources == "Crunchbase, TechCrunch"


class TestParseAnalysisResponse:
    """Shape validation fills defaults and clamps confidence."""

    def test_defaults_for_missing_keys(self):
        result = parse_analysis_response({}, None)
        assert result.recommendation == "Analysis incomplete"
        assert result.timing_bucket == "Hold (3-6 Months)"
        assert result.confidence == 3
        assert result.external_sources == "Limited external research available"

    @pytest.mark.parametrize(
        "raw,expected",
        [(9, 5), (-2, 1), ("2/5", 2), ("high", 3), (None, 3), (4.7, 4), (float("nan"), 3), (float("inf"), 3)],
    )
    def test_confidence_clamped(self, raw, expected):
        assert parse_analysis_response({"confidence": raw}, None).confidence == expected


class TestAnalyzePortfolio:
    def test_attaches_results_and_paces(self):
        records = [_viable_record("Acme"), _viable_record("Beta")]
        sleeps = []
        progress = []
        config = AnalysisConfig(company_delay_s=2.0, research_delay_s=0)
        analyze_portfolio(
            records,
            config,
            reasoning_client=StubReasoningClient(GOOD_RESPONSE),
            on_progress=progress.append,
            sleep=sleeps.append,
        )
        assert all(r.analysis is not None for r in records)
        assert records[1].analysis.timing_bucket == "Double Down"
        assert sleeps == [2.0]
        assert progress == [50.0, 100.0]

    def test_one_failure_does_not_stop_the_rest(self):
        records = [CompanyRecord(id="excel-1", company_name="Sparse"), _viable_record("Beta")]
        analyze_portfolio(records, NO_DELAY, reasoning_client=StubReasoningClient(GOOD_RESPONSE))
        assert records[0].analysis.insufficient_data is True
        assert records[1].analysis.insufficient_data is False


class TestResearch:
    def test_sources_deduplicated(self):
        client = StubResearchClient("Crunchbase lists the round; TechCrunch and Crunchbase covered it.")
        result = conduct_external_research("Acme", client, delay_s=0)
        assert result.successful_queries == 5
        assert result.sources == ["Crunchbase", "TechCrunch"]
        assert "Crunchbase" in result.funding_data

    def test_failed_queries_degrade(self):
        client = StubResearchClient(error=LLMError("Perplexity HTTP 401"))
        sleeps = []
        result = conduct_external_research("Acme", client, delay_s=1.2, sleep=sleeps.append)
        assert result.successful_queries == 0
        assert result.funding_data == "Research query failed"
        assert result.sources == []
        assert sleeps == [1.2] * 5

    def test_extract_sources(self):
        assert extract_sources("See LinkedIn and a press release") == ["LinkedIn", "press release"]

    def test_prompt_includes_analytics(self):
        prompt = build_analysis_prompt(_viable_record(), None)
        assert "COMPANY: Acme" in prompt
        assert "REVENUE ANALYTICS" in prompt
        assert "Limited external data available" in prompt

    def test_prompt_includes_metric_summaries(self):
        record = _viable_record()
        record.current_revenue = 1_000_000
        record.current_arr = 1_500_000
        prompt = build_analysis_prompt(record, None)
        assert "SUMMARY: Acme has 50% YoY revenue growth" in prompt
        assert "FINANCIAL METRICS SUMMARY:" in prompt
        assert "Headline Revenue: $1.5M (ARR)" in prompt

    def test_sources_deduplicated_ignoring_case(self):
        client = StubResearchClient("LinkedIn shows growth; linkedin headcount up.")
        result = conduct_external_research("Acme", client, delay_s=0)
        assert result.sources == ["LinkedIn"]


class TestAnalysisConfig:
    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("OPENAI_API_KEY", " sk-test ")
        monkeypatch.delenv("PERPLEXITY_API_KEY", raising=False)
        config = AnalysisConfig.from_env(company_delay_s=None, reasoning_model="gpt-4o")
        assert config.openai_api_key == "sk-test"
        assert config.reasoning_model == "gpt-4o"
        assert config.company_delay_s == 2.0
        assert config.research_client() is None

    def test_research_client_when_key_present(self):
        client = AnalysisConfig(perplexity_api_key="pplx").research_client()
        assert isinstance(client, PerplexityChatClient)
        assert client.api_key == "pplx"


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
