from __future__ import annotations

import csv
import io
import json
import time
from dataclasses import fields
from pathlib import Path
from typing import Any, BinaryIO, Dict, List, Optional, Union

import pandas as pd

from vcport.analysis import AnalysisConfig, analyze_portfolio
from vcport.ingestion.core import CompanyRecord, is_empty_row, parse_row
from vcport.ingestion.matching import (
    IngestionError,
    build_column_mapping,
    detect_header_row,
    require_essential_columns,
)
from vcport.formatting import format_revenue, validate_revenue_amount
from vcport.portfolio import overall_risk_score, portfolio_summary
from vcport.revenue_analytics import enhance_record_with_analytics

WorkbookSource = Union[str, Path, bytes, BinaryIO]

MAIN_SHEET = "Main Page"


def read_workbook_rows(source: WorkbookSource) -> Dict[str, List[List[Any]]]:
    """
    Read every sheet as raw rows (no header inference).

    Blank cells come back as None; no string is treated as a NaN marker, so a
    company literally named "NA" survives.
    """
    if isinstance(source, (bytes, bytearray)):
        source = io.BytesIO(source)
    try:
        frames = pd.read_excel(
            source,
            sheet_name=None,
            header=None,
            engine="openpyxl",
            keep_default_na=False,
        )
    except Exception as e:
        raise IngestionError(f"Failed to read Excel file: {e}") from e

    sheets: Dict[str, List[List[Any]]] = {}
    for name, df in frames.items():
        df = df.astype(object).where(pd.notna(df), None)
        sheets[str(name)] = df.values.tolist()
    return sheets


def select_sheet(sheets: Dict[str, List[List[Any]]], preferred: str = MAIN_SHEET) -> str:
    """Exact name, then whitespace-trimmed name, then the first sheet."""
    if not sheets:
        raise IngestionError("Excel file contains no worksheets")
    if preferred in sheets:
        return preferred
    for name in sheets:
        if name.strip() == preferred:
            return name
    return next(iter(sheets))


def revenue_amount_warnings(record: CompanyRecord) -> List[str]:
    """Sanity warnings for implausible revenue or ARR amounts."""
    warnings: List[str] = []
    for label, amount in (
        ("Current Revenue", record.current_revenue or record.revenue),
        ("ARR", record.current_arr or record.arr),
    ):
        if amount is None:
            continue
        warning = validate_revenue_amount(amount, label)["warning"]
        if warning:
            warnings.append(warning)
    return warnings


def parse_rows(rows: List[List[Any]], *, sheet_name: str = MAIN_SHEET) -> List[CompanyRecord]:
    """Turn raw sheet rows into enriched company records."""
    if len(rows) < 2:
        raise IngestionError("Excel file must contain at least a header row and one data row")

    header_idx = detect_header_row(rows)
    headers = list(rows[header_idx])
    mapping = build_column_mapping(headers)
    print(
        f"[ingest] sheet={sheet_name!r} header_row={header_idx} "
        f"mapped={len(mapping)}/{sum(1 for h in headers if isinstance(h, str) and h.strip())} columns",
        flush=True,
    )
    require_essential_columns(mapping, headers)

    records: List[CompanyRecord] = []
    for i, row in enumerate(rows[header_idx + 1:], start=header_idx + 1):
        if is_empty_row(row):
            continue
        record = parse_row(row, headers, mapping, row_index=i)
        if record is None:
            continue
        enhance_record_with_analytics(record)
        record.warning_flags.extend(revenue_amount_warnings(record))
        record.overall_risk_score = overall_risk_score(record)
        records.append(record)

    if not records:
        raise IngestionError("No valid company data found in Excel file")

    print(f"[ingest] parsed {len(records)} companies", flush=True)
    return records


def parse_portfolio_workbook(source: WorkbookSource) -> List[CompanyRecord]:
    """
    Parse a portfolio workbook into CompanyRecords.

    Args:
        source: Path, raw bytes, or binary file object of an .xlsx workbook

    Returns:
        One record per data row with a company name, revenue analytics attached.

    Raises:
        IngestionError: unreadable file, too few rows, missing essential
            columns, or no company rows.
    """
    sheets = read_workbook_rows(source)
    sheet_name = select_sheet(sheets)
    if sheet_name != MAIN_SHEET:
        print(f"[ingest] sheet {MAIN_SHEET!r} not found, using {sheet_name!r}", flush=True)
    return parse_rows(sheets[sheet_name], sheet_name=sheet_name)


# ---------------------------------------------------------------------------
# Output
# ---------------------------------------------------------------------------

_NESTED_FIELDS = {"data_completeness", "warning_flags", "analysis"}

RECORD_COLUMNS = [f.name for f in fields(CompanyRecord) if f.name not in _NESTED_FIELDS] + [
    "data_completeness_score",
    "confidence_level",
    "warning_flags",
]

ANALYSIS_COLUMNS = [
    "recommendation",
    "timing_bucket",
    "confidence",
    "reasoning",
    "key_risks",
    "suggested_action",
    "external_sources",
    "insufficient_data",
]


def record_to_row(record: CompanyRecord) -> Dict[str, Any]:
    """Flatten a record into one CSV row."""
    row: Dict[str, Any] = {
        f.name: getattr(record, f.name) for f in fields(CompanyRecord) if f.name not in _NESTED_FIELDS
    }
    completeness = record.data_completeness
    row["data_completeness_score"] = completeness.score if completeness is not None else ""
    row["confidence_level"] = completeness.confidence_level if completeness is not None else ""
    row["warning_flags"] = " | ".join(record.warning_flags)
    if record.analysis is not None:
        row.update({k: v for k, v in record.analysis.to_dict().items() if k in ANALYSIS_COLUMNS})
    return {k: ("" if v is None else v) for k, v in row.items()}


def _write_csv(path: Path, fieldnames: List[str], rows: List[Dict[str, Any]]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8", newline="") as f:
        w = csv.DictWriter(f, fieldnames=fieldnames)
        w.writeheader()
        for r in rows:
            w.writerow({k: r.get(k, "") for k in fieldnames})


def run_pipeline(
    *,
    file: Path | str,
    out_dir: Path | str = Path("data/outputs"),
    analyze: bool = False,
    config: Optional[AnalysisConfig] = None,
) -> Dict[str, Any]:
    """
    Ingest a workbook, optionally run the per-company analysis, and write
    companies.csv + run_report.json to out_dir.

    Returns:
        The report dict (also written to run_report.json).
    """
    file = Path(file).expanduser().resolve()
    out_dir = Path(out_dir).expanduser().resolve()
    out_dir.mkdir(parents=True, exist_ok=True)

    report: Dict[str, Any] = {
        "file": str(file),
        "started_at": time.strftime("%Y-%m-%dT%H:%M:%S"),
        "ok": False,
        "n_companies": 0,
        "analyzed": analyze,
        "companies": {},
        "errors": [],
    }

    records: List[CompanyRecord] = []
    try:
        records = parse_portfolio_workbook(file)
        if analyze:
            analyze_portfolio(records, config or AnalysisConfig.from_env())
        report["ok"] = True
    except IngestionError as e:
        import traceback
        report["errors"].append(str(e))
        report["traceback"] = traceback.format_exc()
        print(f"[ingest] ERROR: {e}", flush=True)

    for record in records:
        completeness = record.data_completeness
        report["companies"][record.id] = {
            "company_name": record.company_name,
            "primary_metric": record.primary_metric,
            "data_completeness": completeness.score if completeness is not None else None,
            "confidence_level": completeness.confidence_level if completeness is not None else None,
            "revenue_trajectory_score": record.revenue_trajectory_score,
            "revenue_display": format_revenue(record.current_revenue or record.revenue, record.current_arr or record.arr),
            "warning_flags": list(record.warning_flags),
            "analysis": record.analysis.to_dict() if record.analysis is not None else None,
        }
    report["n_companies"] = len(records)
    if records:
        report["portfolio"] = portfolio_summary(records)
        csv_path = out_dir / "companies.csv"
        columns = RECORD_COLUMNS + (ANALYSIS_COLUMNS if analyze else [])
        _write_csv(csv_path, columns, [record_to_row(r) for r in records])
        print(f"\nWrote {len(records)} rows to {csv_path}", flush=True)

    report_path = out_dir / "run_report.json"
    report_path.write_text(json.dumps(report, indent=2, default=str), encoding="utf-8")
    return report


# CLI entry point
if __name__ == "__main__":
    import argparse

    parser = argparse.ArgumentParser(description="Ingest a VC portfolio workbook and compute revenue analytics")
    parser.add_argument("--file", required=True, help="Path to the portfolio .xlsx workbook")
    parser.add_argument("--out-dir", default="data/outputs", help="Output directory")
    parser.add_argument("--analyze", action="store_true", help="Run per-company investment analysis")
    parser.add_argument("--model", default=None, help="Reasoning model (OpenAI)")
    parser.add_argument("--research-model", default=None, help="Research model (Perplexity)")
    parser.add_argument("--delay", type=float, default=None, help="Seconds between companies")

    args = parser.parse_args()

    run_pipeline(
        file=args.file,
        out_dir=args.out_dir,
        analyze=args.analyze,
        config=AnalysisConfig.from_env(
            reasoning_model=args.model,
            research_model=args.research_model,
            company_delay_s=args.delay,
        ),
    )
