"""Number formatting and plain-text metric summaries for reports and prompts."""
from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Optional

from vcport.ingestion.core import CompanyRecord

_SCALES = [("B", 1_000_000_000), ("M", 1_000_000), ("K", 1_000)]
_FORCED_DIVISORS = {"B": 1_000_000_000, "M": 1_000_000, "K": 1_000, "": 1}


@dataclass(frozen=True)
class FormattedNumber:
    value: str
    raw: float
    scale: str           # "B" | "M" | "K" | ""


def format_large_number(
    amount: Optional[float],
    *,
    currency: bool = False,
    decimals: int = 1,
    force_scale: Optional[str] = None,
) -> FormattedNumber:
    """
    Scale a number to B/M/K.

    Examples:
        format_large_number(2_500_000, currency=True).value -> '$2.5M'
        format_large_number(3_000).value -> '3K'
        format_large_number(None).value -> 'N/A'
    """
    if amount is None or not math.isfinite(amount):
        return FormattedNumber("N/A", 0.0, "")

    abs_amount = abs(amount)
    if force_scale is not None:
        scale = force_scale
        divisor = _FORCED_DIVISORS.get(force_scale, 1)
    else:
        scale, divisor = "", 1
        for s, d in _SCALES:
            if abs_amount >= d:
                scale, divisor = s, d
                break

    if scale == "" and currency:
        if float(amount).is_integer():
            text = f"${amount:,.0f}" if amount >= 0 else f"-${abs_amount:,.0f}"
        else:
            text = f"${amount:,.2f}" if amount >= 0 else f"-${abs_amount:,.2f}"
        return FormattedNumber(text, float(amount), scale)

    scaled = abs_amount / divisor
    places = 0 if decimals == 0 or float(scaled).is_integer() else decimals
    sign = "-" if amount < 0 else ""
    symbol = "$" if currency else ""
    return FormattedNumber(f"{sign}{symbol}{scaled:.{places}f}{scale}", float(amount), scale)


def format_currency(amount: Optional[float]) -> str:
    return format_large_number(amount, currency=True).value


def format_revenue(revenue: Optional[float], arr: Optional[float]) -> dict:
    """Pick ARR when it is the only value or exceeds revenue by more than 20%."""
    has_arr = arr is not None and arr > 0
    has_revenue = revenue is not None and revenue > 0
    if not has_arr and not has_revenue:
        return {"value": "N/A", "type": "N/A", "primary": False}
    use_arr = has_arr and (not has_revenue or arr > revenue * 1.2)
    if use_arr:
        return {"value": format_currency(arr), "type": "ARR", "primary": True}
    return {"value": format_currency(revenue), "type": "Revenue", "primary": True}


def validate_revenue_amount(amount: float, field_name: str) -> dict:
    if amount < 0:
        return {"is_valid": False, "warning": f"{field_name} cannot be negative"}
    if 0 < amount < 1000:
        return {
            "is_valid": True,
            "warning": f"{field_name} of ${amount:g} seems unusually low - verify this is not in thousands or millions",
        }
    if amount > 50_000_000_000:
        return {
            "is_valid": True,
            "warning": f"{field_name} of {format_currency(amount)} seems unusually high for a startup",
        }
    return {"is_valid": True, "warning": None}


def _millions(v: Optional[float]) -> str:
    return f"{(v or 0) / 1_000_000:.1f}"


def _num(v: Optional[float]) -> str:
    if v is None:
        return ""
    return f"{v:g}"


def build_financial_metrics_summary(record: CompanyRecord) -> str:
    """One-sentence summary of the core spreadsheet metrics."""
    parts = [f"{record.company_name} has "]
    if record.revenue_growth is not None:
        parts.append(f"{_num(record.revenue_growth)}% YoY revenue growth")
    else:
        parts.append("revenue growth data not available")
    if record.burn_multiple is not None:
        parts.append(f" and maintains a burn multiple of {_num(record.burn_multiple)}x")
    else:
        parts.append(" and burn multiple data not available")
    if record.runway is not None:
        parts.append(f", with {_num(record.runway)} months of runway remaining")
    else:
        parts.append(", with runway data not available")
    if record.moic is not None:
        parts.append(f" and a current MOIC of {_num(record.moic)}x")
    else:
        parts.append(" and MOIC data not available")
    parts.append(
        f" based on our ${_millions(record.total_investment)}M investment representing "
        f"{_num(record.equity_stake) or 'N/A'}% equity stake."
    )
    return "".join(parts)


def build_metrics_data_string(record: CompanyRecord) -> str:
    def or_na(v: Optional[float], suffix: str) -> str:
        return f"{_num(v)}{suffix}" if v is not None else "Not available"

    lines = [
        "FINANCIAL METRICS SUMMARY:",
        f"• Company: {record.company_name}",
        f"• Total Investment: ${_millions(record.total_investment)}M",
        f"• Equity Stake: {or_na(record.equity_stake, '%')}",
        f"• Revenue Growth (YoY): {or_na(record.revenue_growth, '%')}",
        f"• Burn Multiple: {or_na(record.burn_multiple, 'x')}",
        f"• Current MOIC: {or_na(record.moic, 'x')}",
        f"• Runway: {or_na(record.runway, ' months')}",
        f"• Additional Investment Requested: ${_millions(record.additional_investment_requested)}M",
    ]
    return "\n".join(lines) + "\n"
