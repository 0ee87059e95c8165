"""
Header-to-field mappings for portfolio spreadsheets.

These variants are accumulated from the portfolio templates seen in practice
("Main Page" sheets exported by fund admins). Keys are canonical field names;
values are the header strings observed for that field.
"""

from typing import Dict, List, Optional

# Canonical field name -> CompanyRecord attribute
FIELD_TO_ATTR: Dict[str, str] = {
    "companyName": "company_name",
    "totalInvestment": "total_investment",
    "equityStake": "equity_stake",
    "additionalInvestmentRequested": "additional_investment_requested",
    "preMoneyValuation": "pre_money_valuation",
    "postMoneyValuation": "post_money_valuation",
    "totalRaiseRequest": "total_raise_request",
    "amountRequestedFromFirm": "amount_requested_from_firm",
    "caEquityValuation": "ca_equity_valuation",
    "currentValuation": "current_valuation",
    "moic": "moic",
    "revenueGrowth": "revenue_growth",
    "projectedRevenueGrowth": "projected_revenue_growth",
    "burnMultiple": "burn_multiple",
    "runway": "runway",
    "revenue": "revenue",
    "arr": "arr",
    "currentARR": "current_arr",
    "arrTtm": "arr_ttm",
    "ebitdaMargin": "ebitda_margin",
    "revenueYearMinus2": "revenue_year_minus_2",
    "revenueYearMinus1": "revenue_year_minus_1",
    "currentRevenue": "current_revenue",
    "projectedRevenueYear1": "projected_revenue_year_1",
    "projectedRevenueYear2": "projected_revenue_year_2",
    "tam": "tam",
    "barrierToEntry": "barrier_to_entry",
    "roundComplexity": "round_complexity",
    "exitTimeline": "exit_timeline",
    "exitActivity": "exit_activity",
    "industry": "industry",
    "investorInterest": "investor_interest",
    "seriesStage": "series_stage",
    "topPerformer": "top_performer",
    "valuationMethodology": "valuation_methodology",
    "ceoName": "ceo_name",
}

ESSENTIAL_FIELDS: List[str] = ["companyName", "totalInvestment", "equityStake"]

# Field groups drive type coercion in the row parser
CURRENCY_FIELDS = {
    "totalInvestment",
    "additionalInvestmentRequested",
    "preMoneyValuation",
    "postMoneyValuation",
    "totalRaiseRequest",
    "amountRequestedFromFirm",
    "caEquityValuation",
    "currentValuation",
    "revenue",
    "arr",
    "currentARR",
    "arrTtm",
    "revenueYearMinus2",
    "revenueYearMinus1",
    "currentRevenue",
    "projectedRevenueYear1",
    "projectedRevenueYear2",
}
PERCENT_FIELDS = {"equityStake", "revenueGrowth", "projectedRevenueGrowth", "ebitdaMargin"}
MULTIPLIER_FIELDS = {"moic", "burnMultiple"}
NUMBER_FIELDS = {"runway"}
RATING_FIELDS = {"tam", "barrierToEntry"}
BOOLEAN_FIELDS = {"topPerformer"}

# Original single-sheet template (exact header set)
HEADER_VARIANTS_V1: Dict[str, List[str]] = {
    "companyName": ["Company Name"],
    "totalInvestment": ["Total Investment to Date"],
    "equityStake": ["Equity Stake (FD %)"],
    "moic": ["MOIC"],
    "revenueGrowth": ["TTM Revenue Growth"],
    "burnMultiple": ["Burn Multiple"],
    "runway": ["Runway"],
    "tam": ["TAM (1–5)"],
    "exitActivity": ["Exit Activity in Sector"],
    "barrierToEntry": ["Barrier to Entry (1–5)"],
    "additionalInvestmentRequested": ["Additional Investment Requested"],
}

# Enhanced "Main Page" template, including typo'd and line-broken variants
HEADER_VARIANTS_V2: Dict[str, List[str]] = {
    "companyName": ["COMPANY", "Company", "Portfolio Company"],
    "totalInvestment": [
        "Total Investment ($ in Thousands)",
        "Total Investment  \r\n($ in Thousands)",
        "Total Invested ($K)",
    ],
    "equityStake": ["Equity Stake % (Fully Diluted)", "Equity Stake %", "Ownership %"],
    "moic": ["MOIC (Implied)", "Implied MOIC (x)", "Implied MOIC (x) "],
    "revenueGrowth": ["TTM Revnue Growth ", "TTM Revenue Growth (%)"],
    "projectedRevenueGrowth": ["Projected Revenue Growth", "Projected Revenue Growth (%)"],
    "burnMultiple": [
        "Burn Multiple (Burn Rate / ARR)",
        "Burn Multiple (Net Burn/Net New ARR)",
        "Burn Multiple (Net Burn/Net New ARR) ",
    ],
    "runway": ["Runway (Months)", "Runway (Months) "],
    "tam": [
        "TAM Rating (1–5) (Competitive + Growing Market)",
        "TAM \r\n(1-5, 5 being completely untapped and growing market)",
        "TAM",
    ],
    "exitActivity": [
        "Exit Activity in Sector (High / Moderate / Low)",
        "Exit Activity in Sector (ie. High, Moderaate, Low)",
    ],
    "barrierToEntry": [
        "Barrier to Entry (1–5) (Advantage vs. New Firms to Enter)",
        "Barrier to Entry (1-5, 5 being the best because it's diffcult for potential competitors to enter the market)",
        "Barrier to Entry (1-5, 5 being the best because it's diffcult for potential competitors to enter the market) ",
    ],
    "additionalInvestmentRequested": [
        "Additional Investment Request",
        "Additional Investment Requested ($)",
    ],
    "preMoneyValuation": ["Pre-Money Valuation", "Pre Money Valuation ($)"],
    "postMoneyValuation": ["Post-Money Valuation", "Post Money Valuation ($)"],
    "totalRaiseRequest": ["Total Raise", "Total Round Size", "Total Raise Request ($)"],
    "amountRequestedFromFirm": ["Amount Requested from CA", "Amount Requested From Firm ($)"],
    "caEquityValuation": ["CA Equity Valuation", "CA Equity Value ($)"],
    "currentValuation": ["Current Valuation", "Valuation", "Company Valuation"],
    "revenue": ["Revenue", "Revenue ($)"],
    "arr": ["ARR", "ARR ($)"],
    "currentARR": ["Current ARR", "Current ARR ($)"],
    "arrTtm": ["ARR (TTM)", "TTM ARR"],
    "ebitdaMargin": ["EBITDA Margin", "EBITDA Margin (%)"],
    "revenueYearMinus2": ["Revenue (Year -2)", "Revenue Year -2", "Revenue T-2"],
    "revenueYearMinus1": ["Revenue (Year -1)", "Revenue Year -1", "Revenue T-1"],
    "currentRevenue": ["Current Revenue", "Current Revenue ($)", "Revenue (Current Year)"],
    "projectedRevenueYear1": ["Projected Revenue (Year +1)", "Projected Revenue Year +1"],
    "projectedRevenueYear2": ["Projected Revenue (Year +2)", "Projected Revenue Year +2"],
    "roundComplexity": ["Round Complexity (1-5)", "Round Complexity"],
    "exitTimeline": ["Exit Timeline (Years)", "Exit Timeline"],
    "industry": ["Industry", "Sector", "Industry Category"],
    "investorInterest": ["Investor Interest (1-5)", "Investor Interest"],
    "seriesStage": ["Series", "Stage", "Funding Stage", "Series Stage"],
    "topPerformer": ["Top 5 Industry Performer", "Top Performer (Y/N)"],
    "valuationMethodology": ["Valuation Methodology", "Valuation Method"],
    "ceoName": ["CEO", "CEO Name", "Chief Executive Officer", "Founder"],
}


def _merge_variants(*tables: Dict[str, List[str]]) -> Dict[str, List[str]]:
    merged: Dict[str, List[str]] = {}
    for table in tables:
        for field, variants in table.items():
            bucket = merged.setdefault(field, [])
            for v in variants:
                if v not in bucket:
                    bucket.append(v)
    return merged


HEADER_VARIANTS: Dict[str, List[str]] = _merge_variants(HEADER_VARIANTS_V1, HEADER_VARIANTS_V2)

# Keyword pass: a header matches when it contains min(2, len(keywords)) of them.
# Order matters: more specific fields claim their header before generic ones.
FIELD_KEYWORDS: Dict[str, List[str]] = {
    "companyName": ["company", "name"],
    "totalInvestment": ["total", "investment"],
    "equityStake": ["equity", "stake"],
    "additionalInvestmentRequested": ["additional", "investment", "request"],
    "amountRequestedFromFirm": ["amount", "requested"],
    "totalRaiseRequest": ["total", "raise"],
    "preMoneyValuation": ["pre", "money", "valuation"],
    "postMoneyValuation": ["post", "money", "valuation"],
    "caEquityValuation": ["ca", "equity", "valuation"],
    "projectedRevenueGrowth": ["projected", "revenue", "growth"],
    "projectedRevenueYear2": ["projected", "revenue", "2"],
    "projectedRevenueYear1": ["projected", "revenue", "1"],
    "revenueYearMinus2": ["revenue", "year", "2"],
    "revenueYearMinus1": ["revenue", "year", "1"],
    "currentRevenue": ["current", "revenue"],
    "currentARR": ["current", "arr"],
    "revenueGrowth": ["ttm", "revenue", "growth"],
    "moic": ["moic"],
    "burnMultiple": ["burn", "multiple"],
    "runway": ["runway"],
    "tam": ["tam"],
    "barrierToEntry": ["barrier", "entry"],
    "exitActivity": ["exit", "activity"],
    "exitTimeline": ["exit", "timeline"],
    "roundComplexity": ["round", "complexity"],
    "investorInterest": ["investor", "interest"],
    "seriesStage": ["series", "stage"],
    "ebitdaMargin": ["ebitda", "margin"],
    "topPerformer": ["top", "performer"],
    "valuationMethodology": ["valuation", "methodology"],
    "ceoName": ["ceo", "name"],
    "industry": ["industry", "sector"],
}

# Series stage normalization: first matching substring wins
SERIES_STAGE_RULES: List[tuple] = [
    ("seed", "Seed"),
    ("series a", "Series A"),
    ("series b", "Series B"),
    ("series c", "Series C"),
    ("growth", "Growth"),
    ("late", "Growth"),
    ("series d", "Growth"),
    ("series e", "Growth"),
]

SERIES_STAGE_PLACEHOLDERS = {"", "-", "n/a", "tbd"}

# Bare letters are common in the "Series" column ("A", "B", ...)
SERIES_STAGE_LETTERS: Dict[str, str] = {
    "a": "Series A",
    "b": "Series B",
    "c": "Series C",
}


def normalize_series_stage(value: Optional[str]) -> Optional[str]:
    """
    Normalize a free-text funding stage into Seed / Series A / B / C / Growth.

    Placeholders become None; unrecognized text passes through verbatim.
    """
    if value is None:
        return None
    text = str(value).strip()
    lower = text.lower()
    if lower in SERIES_STAGE_PLACEHOLDERS:
        return None
    if lower in SERIES_STAGE_LETTERS:
        return SERIES_STAGE_LETTERS[lower]
    for pattern, stage in SERIES_STAGE_RULES:
        if pattern in lower:
            return stage
    return text


def attr_for_field(field: str) -> Optional[str]:
    """Look up the CompanyRecord attribute for a canonical field name."""
    return FIELD_TO_ATTR.get(field)
