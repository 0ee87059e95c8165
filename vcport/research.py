"""
External market research via a web-grounded chat model.

Five fixed queries per company (funding, hiring, positioning, news,
competitors). A failed query degrades to a placeholder string; research
never aborts the analysis of a company.
"""
from __future__ import annotations

import re
import time
from dataclasses import asdict, dataclass, field
from typing import Any, Callable, Dict, List

import requests

from vcport.llm_client import ChatClient, LLMError

RESEARCH_SYSTEM_PROMPT = (
    "You are a venture capital research analyst. Provide factual, objective information from "
    "credible sources like Crunchbase, LinkedIn, TechCrunch, company press releases, and PitchBook. "
    "Focus on recent developments (last 6 months), funding activity, hiring trends, and market "
    "positioning. Be concise and cite specific sources."
)

RESEARCH_DOMAINS = [
    "crunchbase.com",
    "techcrunch.com",
    "linkedin.com",
    "pitchbook.com",
    "venturebeat.com",
]

_SOURCE_RE = re.compile(
    r"(Crunchbase|TechCrunch|LinkedIn|PitchBook|AngelList|VentureBeat|company blog|press release|SEC filing)",
    re.IGNORECASE,
)

_PLACEHOLDERS = [
    "No recent funding data found",
    "No hiring trend data available",
    "Limited market positioning data",
    "No recent news coverage found",
    "No competitor activity data",
]


@dataclass
class ResearchResult:
    funding_data: str
    hiring_trends: str
    market_positioning: str
    recent_news: str
    competitor_activity: str
    sources: List[str] = field(default_factory=list)
    successful_queries: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def research_queries(company_name: str) -> List[str]:
    return [
        f"{company_name} latest funding round Series A B C venture capital news 2024 2025",
        f"{company_name} hiring trends LinkedIn employee growth headcount team expansion",
        f"{company_name} market position competitors product launches partnerships TechCrunch",
        f"{company_name} recent news press releases product updates customer wins",
        f"{company_name} competitive landscape industry analysis market share",
    ]


def extract_sources(text: str) -> List[str]:
    """Source names mentioned in a research answer, in order of first mention."""
    return _SOURCE_RE.findall(text or "")


def _dedupe(items: List[str]) -> List[str]:
    """Case-insensitive de-duplication; the first spelling seen is kept."""
    seen = set()
    out: List[str] = []
    for item in items:
        key = item.lower()
        if key not in seen:
            seen.add(key)
            out.append(item)
    return out


def conduct_external_research(
    company_name: str,
    client: ChatClient,
    *,
    delay_s: float = 1.2,
    sleep: Callable[[float], None] = time.sleep,
) -> ResearchResult:
    print(f"[research] {company_name}: starting external research", flush=True)

    answers: List[str] = []
    sources: List[str] = []
    successful = 0
    queries = research_queries(company_name)

    for i, query in enumerate(queries, start=1):
        print(f"[research] query {i}/{len(queries)}: {query[:50]}...", flush=True)
        try:
            content = client.chat(
                system=RESEARCH_SYSTEM_PROMPT,
                user=query,
                temperature=0.1,
                max_output_tokens=400,
                extra={
                    "search_domain_filter": RESEARCH_DOMAINS,
                    "search_recency_filter": "month",
                    "return_related_questions": False,
                    "return_images": False,
                },
                sleep=sleep,
            )
            answers.append(content)
            successful += 1
            sources.extend(extract_sources(content))
        except LLMError as e:
            print(f"[research] query {i} failed: {e}", flush=True)
            answers.append("Research query failed")
        except requests.RequestException as e:
            print(f"[research] query {i} exception: {e}", flush=True)
            answers.append("Limited external data available")
        if delay_s > 0:
            sleep(delay_s)

    filled = [a or _PLACEHOLDERS[i] for i, a in enumerate(answers)]
    result = ResearchResult(
        funding_data=filled[0],
        hiring_trends=filled[1],
        market_positioning=filled[2],
        recent_news=filled[3],
        competitor_activity=filled[4],
        sources=_dedupe(sources),
        successful_queries=successful,
    )
    print(
        f"[research] {company_name}: {successful}/{len(queries)} queries ok, "
        f"{len(result.sources)} sources",
        flush=True,
    )
    return result
