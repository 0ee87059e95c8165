"""
Investment recommendation per company: spreadsheet metrics + revenue
analytics + optional web research -> reasoning model -> validated result.

The recommendation itself comes from the external model; this module only
assembles the prompt, validates the JSON shape and applies fallbacks.
"""
from __future__ import annotations

import math
import re
import time
from dataclasses import asdict, dataclass
from typing import Any, Callable, Dict, List, Optional

import requests

from vcport.formatting import (
    build_financial_metrics_summary,
    build_metrics_data_string,
    format_revenue,
)
from vcport.ingestion.core import CompanyRecord
from vcport.llm_client import ChatClient, LLMError, OpenAIChatClient, PerplexityChatClient
from vcport.research import ResearchResult, conduct_external_research
from vcport.secrets import get_openai_api_key, get_perplexity_api_key


@dataclass(frozen=True)
class AnalysisConfig:
    """Explicit configuration for the analysis step (keys are never read from globals)."""
    openai_api_key: Optional[str] = None
    perplexity_api_key: Optional[str] = None
    reasoning_model: str = "gpt-4.1-2025-04-14"
    research_model: str = "llama-3.1-sonar-small-128k-online"
    timeout_s: int = 120
    company_delay_s: float = 2.0
    research_delay_s: float = 1.2

    @classmethod
    def from_env(cls, **overrides: Any) -> "AnalysisConfig":
        values: Dict[str, Any] = {
            "openai_api_key": get_openai_api_key(),
            "perplexity_api_key": get_perplexity_api_key(),
        }
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)

    def reasoning_client(self) -> ChatClient:
        return OpenAIChatClient(
            model=self.reasoning_model,
            api_key=self.openai_api_key,
            timeout_s=self.timeout_s,
        )

    def research_client(self) -> Optional[ChatClient]:
        if not self.perplexity_api_key:
            return None
        return PerplexityChatClient(
            model=self.research_model,
            api_key=self.perplexity_api_key,
        )


@dataclass
class AnalysisResult:
    recommendation: str
    timing_bucket: str
    reasoning: str
    confidence: int                 # 1-5
    key_risks: str
    suggested_action: str
    external_sources: str
    insufficient_data: bool

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


TIMING_BUCKETS = [
    "Double Down",
    "Reinvest (3-12 Months)",
    "Hold (3-6 Months)",
    "Bridge Capital Only",
    "Exit Opportunistically",
    "Decline",
]

SYSTEM_PROMPT = (
    "You are an experienced venture capital partner with deep expertise in portfolio management. "
    "You have access to comprehensive business databases and must provide investment recommendations "
    "that integrate internal performance data with external market signals. Always follow the exact "
    "output format specified and use precise figures from the provided data."
)


def insufficient_data_result() -> AnalysisResult:
    return AnalysisResult(
        recommendation="Insufficient data to assess",
        timing_bucket="N/A",
        reasoning=(
            "Missing critical inputs (e.g., growth, burn, TAM, exit environment), which prevents a "
            "responsible investment recommendation. Recommend holding until updated data is provided."
        ),
        confidence=1,
        key_risks=(
            "Lack of visibility into company performance, capital efficiency, or exit feasibility "
            "makes additional investment highly speculative."
        ),
        suggested_action=(
            "Request updated financials, capital plan, and growth KPIs before reassessing capital deployment."
        ),
        external_sources="Limited data available",
        insufficient_data=True,
    )


def failed_analysis_result() -> AnalysisResult:
    return AnalysisResult(
        recommendation="Analysis failed",
        timing_bucket="N/A",
        reasoning="Technical error during analysis. Please try again.",
        confidence=1,
        key_risks="Unable to complete analysis due to technical issues.",
        suggested_action="Retry analysis or conduct manual review.",
        external_sources="Analysis incomplete",
        insufficient_data=True,
    )


def missing_viable_inputs(record: CompanyRecord) -> List[str]:
    """Critical inputs that are absent; zero counts as absent except for the investment request."""
    checks = [
        ("moic", record.moic),
        ("revenue_growth", record.revenue_growth),
        ("burn_multiple", record.burn_multiple),
        ("runway", record.runway),
        ("tam", record.tam),
        ("exit_activity", record.exit_activity),
        ("additional_investment_requested", record.additional_investment_requested),
    ]
    missing: List[str] = []
    for name, value in checks:
        if value is None or value == "":
            missing.append(name)
        elif isinstance(value, (int, float)) and value == 0 and name != "additional_investment_requested":
            missing.append(name)
    return missing


def has_minimum_viable_inputs(record: CompanyRecord) -> bool:
    return len(missing_viable_inputs(record)) < 2


def _fmt(v: Optional[float], suffix: str = "") -> str:
    return f"{v:g}{suffix}" if v is not None else "Not Available"


def _millions(v: Optional[float]) -> str:
    return f"${(v or 0) / 1_000_000:.1f}M"


def build_analysis_prompt(record: CompanyRecord, research: Optional[ResearchResult]) -> str:
    revenue_display = format_revenue(record.current_revenue or record.revenue, record.current_arr or record.arr)
    internal = [
        f"- Total Investment to Date: {_millions(record.total_investment)}",
        f"- Equity Stake (Fully Diluted): {_fmt(record.equity_stake, '%')}",
        f"- Implied MOIC: {_fmt(record.moic, 'x')}",
        f"- TTM Revenue Growth: {_fmt(record.revenue_growth, '%')}",
        f"- ARR (TTM): {_millions(record.arr_ttm) if record.arr_ttm else 'Not Available'}",
        f"- Burn Multiple: {_fmt(record.burn_multiple, 'x')}",
        f"- Runway: {_fmt(record.runway, ' months')}",
        f"- EBITDA Margin: {_fmt(record.ebitda_margin, '%') if record.ebitda_margin else 'Not Available'}",
        f"- TAM Rating: {record.tam if record.tam is not None else 'Not Available'}/5",
        f"- Exit Activity in Sector: {record.exit_activity or 'Not Available'}",
        f"- Barrier to Entry: {record.barrier_to_entry if record.barrier_to_entry is not None else 'Not Available'}/5",
        f"- Top 5 Industry Performer: {'Yes' if record.top_performer else 'No'}",
        f"- Series Stage: {record.series_stage or 'Not Available'}",
        f"- Existing Investment: {'Yes' if record.is_existing_investment else 'No (prospective)'}",
        f"- Additional Investment Requested: {_millions(record.additional_investment_requested)}",
    ]

    analytics = [
        f"- Primary Revenue Metric: {record.primary_metric or 'none'}",
        f"- Headline Revenue: {revenue_display['value']} ({revenue_display['type']})",
        f"- YoY Growth: {_fmt(record.yoy_growth_percent, '%')}",
        f"- Historical 2Y CAGR: {_fmt(record.historical_cagr_2y, '%')}",
        f"- Forward 2Y CAGR: {_fmt(record.forward_cagr_2y, '%')}",
        f"- Forward Revenue Multiple: {_fmt(record.forward_revenue_multiple, 'x')}",
        f"- Trajectory Pattern: {record.trajectory_pattern or 'insufficient_data'}",
        f"- Projection Credibility: {record.credibility_flag or 'low'}",
        f"- Revenue Trajectory Score: {_fmt(record.revenue_trajectory_score, '/5')}",
    ]
    if record.warning_flags:
        analytics.append(f"- Data Warnings: {'; '.join(record.warning_flags)}")

    if research is not None:
        external = "\n".join(
            [
                "EXTERNAL RESEARCH DATA:",
                f"- Funding Intelligence: {research.funding_data}",
                f"- Hiring Trends: {research.hiring_trends}",
                f"- Market Positioning: {research.market_positioning}",
                f"- Recent News: {research.recent_news}",
                f"- Competitor Activity: {research.competitor_activity}",
                f"- Research Sources: {', '.join(research.sources)}",
            ]
        )
    else:
        external = "EXTERNAL RESEARCH: Limited external data available"

    return f"""You are a venture capital investor making live recommendations. You must integrate internal Excel data with verified external market signals in every field.

COMPANY: {record.company_name}

SUMMARY: {build_financial_metrics_summary(record)}

INTERNAL EXCEL DATA:
{chr(10).join(internal)}

{build_metrics_data_string(record)}
REVENUE ANALYTICS:
{chr(10).join(analytics)}

{external}

SCORING WEIGHTS (Internal Model):
- Implied MOIC: 20%
- TTM Revenue Growth: 15%
- Burn Multiple: 15%
- Runway Post-Investment: 10%
- Exit Activity in Sector: 10%
- TAM: 10%
- Barrier to Entry: 10%
- Fund Dilution Exposure: 10%

UPSIDE SIGNAL GUIDELINES:
- TTM Revenue Growth > 50% YoY = Strong
- TAM Score 4-5 = Large/Expanding market
- Exit Activity "High" or "Moderate + recent comps" = Favorable
- MOIC > 1.7x = Attractive
- Burn Multiple < 1.5x = Efficient
- Barrier to Entry >= 4 = Defensible moat

DOWNSIDE RISK GUIDELINES:
- Burn Multiple > 2.5x = Inefficient
- Runway < 6 months = Concerning
- Exit Activity "Low" with no peer comps = Weak
- TTM Growth < 25% YoY = Weak
- Equity Stake < 5% = Dilution risk

MANDATORY OUTPUT FORMAT - Follow this structure exactly:

{{
  "recommendation": "Specific capital amount decision (e.g., 'Invest $250K of $1M request', 'Invest full $500K', 'Bridge Capital Only - $150K', 'Decline')",
  "timingBucket": "One of: {', '.join(TIMING_BUCKETS)}",
  "reasoning": "MUST follow 4-part structure: (1) internal performance stat using actual Excel data, (2) external validation from research, (3) specific downside risks, (4) investment logic and capital amount justification",
  "confidence": "Integer 1-5 where 5=complete internal+strong external validation, 3=solid internal but mixed external, 1=missing data",
  "keyRisks": "Must include at least 1 external-facing risk from research",
  "suggestedAction": "Tactical + specific next step",
  "externalSources": "List actual research sources used: Crunchbase, LinkedIn, TechCrunch, etc."
}}

CRITICAL REQUIREMENTS:
1. Use EXACT figures from Excel data in reasoning (don't approximate)
2. Cite specific external research findings if available
3. Each field must blend internal Excel data WITH external insights
4. Capital recommendation must specify exact dollar amounts
5. Confidence score based on data completeness AND external validation strength

Generate investment recommendation now:"""


_LEADING_INT_RE = re.compile(r"^\s*([+-]?\d+)")


def _text(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, list):
        value = ", ".join(str(v) for v in value)
    text = str(value).strip()
    return text or None


def _confidence(value: Any) -> int:
    """Integer 1-5; unparseable -> 3."""
    if isinstance(value, bool):
        return 3
    if isinstance(value, (int, float)):
        if not math.isfinite(value):
            return 3
        n = int(value)
    else:
        m = _LEADING_INT_RE.match(str(value or ""))
        if not m:
            return 3
        n = int(m.group(1))
    if n == 0:
        return 3
    return max(1, min(5, n))


def parse_analysis_response(data: Dict[str, Any], research: Optional[ResearchResult]) -> AnalysisResult:
    """Validate the model's JSON shape, filling defaults for absent keys."""
    default_sources = (
        ", ".join(research.sources) if research is not None and research.sources else ""
    ) or "Limited external research available"
    return AnalysisResult(
        recommendation=_text(data.get("recommendation")) or "Analysis incomplete",
        timing_bucket=_text(data.get("timingBucket")) or "Hold (3-6 Months)",
        reasoning=_text(data.get("reasoning")) or "Analysis could not be completed with available data.",
        confidence=_confidence(data.get("confidence")),
        key_risks=_text(data.get("keyRisks")) or "Unable to assess risks with current information.",
        suggested_action=_text(data.get("suggestedAction"))
        or "Request additional company data before proceeding.",
        external_sources=_text(data.get("externalSources")) or default_sources,
        insufficient_data=False,
    )


def analyze_company(
    record: CompanyRecord,
    config: AnalysisConfig,
    *,
    reasoning_client: Optional[ChatClient] = None,
    research_client: Optional[ChatClient] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> AnalysisResult:
    """Analyze one company. Never raises: failures become a fallback result."""
    tag = f"[{record.company_name}]"
    if not has_minimum_viable_inputs(record):
        print(f"{tag} Insufficient data, returning fallback response", flush=True)
        return insufficient_data_result()

    research_client = research_client if research_client is not None else config.research_client()
    research: Optional[ResearchResult] = None
    if research_client is not None:
        research = conduct_external_research(
            record.company_name,
            research_client,
            delay_s=config.research_delay_s,
            sleep=sleep,
        )

    client = reasoning_client if reasoning_client is not None else config.reasoning_client()
    prompt = build_analysis_prompt(record, research)
    try:
        print(f"{tag} Sending analysis request...", flush=True)
        data = client.json_call(
            system=SYSTEM_PROMPT,
            user=prompt,
            temperature=0.1,
            max_output_tokens=2500,
            sleep=sleep,
        )
    except (LLMError, requests.RequestException) as e:
        print(f"{tag} ERROR: analysis failed: {e}", flush=True)
        return failed_analysis_result()

    result = parse_analysis_response(data, research)
    print(f"{tag} {result.timing_bucket} (confidence {result.confidence}/5)", flush=True)
    return result


def analyze_portfolio(
    records: List[CompanyRecord],
    config: AnalysisConfig,
    *,
    reasoning_client: Optional[ChatClient] = None,
    research_client: Optional[ChatClient] = None,
    on_progress: Optional[Callable[[float], None]] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> List[CompanyRecord]:
    """
    Analyze every record in order and attach the result as `record.analysis`.

    Args:
        records: Parsed and enriched company records
        config: Keys, models and pacing
        reasoning_client / research_client: Override clients built from config
        on_progress: Called with percent complete (0-100) before each company
        sleep: Injected for tests; paces calls between companies

    Returns:
        The same records, augmented in place.
    """
    total = len(records)
    print(
        f"[analysis] Starting portfolio analysis for {total} companies "
        f"(research={'on' if (research_client or config.perplexity_api_key) else 'off'})",
        flush=True,
    )
    for i, record in enumerate(records):
        if on_progress is not None:
            on_progress((i + 1) / total * 100)
        print(f"[analysis] {i + 1}/{total}: {record.company_name}", flush=True)
        record.analysis = analyze_company(
            record,
            config,
            reasoning_client=reasoning_client,
            research_client=research_client,
            sleep=sleep,
        )
        if i < total - 1 and config.company_delay_s > 0:
            sleep(config.company_delay_s)
    print(f"[analysis] Complete. Analyzed {total} companies.", flush=True)
    return records
