"""Portfolio-level derived metrics: risk score, MOIC distribution, capital efficiency."""
from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from vcport.ingestion.core import CompanyRecord


@dataclass
class MOICBin:
    label: str
    low: float
    high: float
    companies: List[CompanyRecord] = field(default_factory=list)

    @property
    def count(self) -> int:
        return len(self.companies)


@dataclass(frozen=True)
class EfficiencyEntry:
    company_name: str
    efficiency: float
    burn_multiple: float
    tone: str            # "efficient" | "moderate" | "inefficient"


MOIC_BIN_EDGES = [
    ("<0.5x", 0.0, 0.5),
    ("0.5-1x", 0.5, 1.0),
    ("1-2x", 1.0, 2.0),
    ("2-3x", 2.0, 3.0),
    ("3-5x", 3.0, 5.0),
    ("5x+", 5.0, math.inf),
]


def overall_risk_score(record: CompanyRecord) -> int:
    """
    Heuristic 0-100 risk score; higher is riskier.

    Starts at 50 and adds +20 for burn multiple above 3, +15 for under a year
    of runway and +25 for shrinking revenue. Missing inputs add nothing.
    """
    score = 50
    if record.burn_multiple is not None and record.burn_multiple > 3:
        score += 20
    if record.runway is not None and record.runway < 12:
        score += 15
    if record.revenue_growth is not None and record.revenue_growth < 0:
        score += 25
    return min(100, score)


def risk_adjusted_moic(moic: Optional[float], confidence: Optional[int]) -> float:
    """MOIC weighted by analysis confidence (1-5)."""
    if not moic or not confidence:
        return 0.0
    return moic * (confidence / 5)


def categorize_by_moic_bins(records: List[CompanyRecord]) -> List[MOICBin]:
    bins = [MOICBin(label, low, high) for label, low, high in MOIC_BIN_EDGES]
    for r in records:
        if r.moic is None:
            continue
        for b in bins:
            if b.low <= r.moic < b.high:
                b.companies.append(r)
                break
    return bins


def capital_efficiency_leaderboard(records: List[CompanyRecord], *, top_n: int = 10) -> List[EfficiencyEntry]:
    """Rank companies by 1 / burn multiple (most efficient first)."""
    entries: List[EfficiencyEntry] = []
    for r in records:
        if not r.burn_multiple or not r.total_investment:
            continue
        efficiency = 1 / r.burn_multiple if r.burn_multiple > 0 else 0.0
        if r.burn_multiple <= 1.5:
            tone = "efficient"
        elif r.burn_multiple <= 3:
            tone = "moderate"
        else:
            tone = "inefficient"
        entries.append(EfficiencyEntry(r.company_name, efficiency, r.burn_multiple, tone))
    entries.sort(key=lambda e: e.efficiency, reverse=True)
    return entries[:top_n]


def portfolio_summary(records: List[CompanyRecord]) -> Dict[str, Any]:
    """
    Portfolio section of the run report.

    Risk-adjusted MOIC is only listed for companies that carry an analysis
    result, since it is weighted by the analysis confidence.
    """
    summary: Dict[str, Any] = {
        "moic_bins": {b.label: [r.company_name for r in b.companies] for b in categorize_by_moic_bins(records)},
        "efficiency_leaderboard": [
            {
                "company_name": e.company_name,
                "efficiency": round(e.efficiency, 3),
                "burn_multiple": e.burn_multiple,
                "tone": e.tone,
            }
            for e in capital_efficiency_leaderboard(records)
        ],
    }
    analyzed = [r for r in records if r.analysis is not None]
    if analyzed:
        summary["risk_adjusted_moic"] = {
            r.company_name: round(risk_adjusted_moic(r.moic, r.analysis.confidence), 3) for r in analyzed
        }
    return summary
