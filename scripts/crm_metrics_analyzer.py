"""
CRM Metrics Analyzer
======================
Reads a CRM records export (cash entries, expenses, leads, deals, offers,
users) and produces period-over-period dashboard metrics at
data/processed/crm_metrics.json.

The export is a JSON object with optional arrays ``cash_entries``,
``expenses``, ``leads``, ``deals``, ``offers`` and ``users``.

Usage:
    python -m scripts.crm_metrics_analyzer
    python -m scripts.crm_metrics_analyzer --input data/raw/crm_export_2026-10-19.json
    python -m scripts.crm_metrics_analyzer --now 2026-10-19T12:00:00Z --output-dir reports
    python -m scripts.crm_metrics_analyzer --config configs/metrics.yaml --stdout

Exports:
    load_records, load_export, run_crm_analysis, write_metrics, main
"""

from __future__ import annotations

import argparse
import json
import sys
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, TypeVar

from pydantic import BaseModel, ValidationError

from models.crm_models import CashEntry, Deal, Expense, Lead, OfferRef, UserRef
from models.metrics_models import PeriodPair
from scripts.financial_analyzer import aggregate_financial_metrics, summarize_receivables
from scripts.insights_analyzer import InsightsAnalyzer
from scripts.lead_analyzer import aggregate_lead_metrics
from scripts.lib.calculations import compare_metrics
from scripts.lib.config import DEFAULT_CONFIG, load_config, week_start_index
from scripts.lib.errors import AnalysisError, DashboardError, SchemaValidationError
from scripts.lib.logger import setup_logger
from scripts.lib.periods import WINDOW_KEYS, WINDOW_LABELS, normalize_now, parse_ts
from scripts.lib.utils import atomic_write_json, find_latest_export, load_json_file
from scripts.pipeline_analyzer import aggregate_pipeline_metrics

logger = setup_logger("crm_metrics_analyzer")

T = TypeVar("T")

OUTPUT_FILENAME = "crm_metrics.json"

COLLECTIONS: Dict[str, type[BaseModel]] = {
    "cash_entries": CashEntry,
    "expenses": Expense,
    "leads": Lead,
    "deals": Deal,
    "offers": OfferRef,
    "users": UserRef,
}


# ============================================================================
# Loading
# ============================================================================

def load_records(data: Dict[str, Any]) -> Dict[str, List[BaseModel]]:
    """Validate every collection of an export into record models.

    Missing collections load as empty lists. A row that fails validation
    raises SchemaValidationError naming the collection and row index.
    """
    if not isinstance(data, dict):
        raise SchemaValidationError("Export root must be a JSON object")

    records: Dict[str, List[BaseModel]] = {}
    for name, model in COLLECTIONS.items():
        rows = data.get(name) or []
        if not isinstance(rows, list):
            raise SchemaValidationError(f"'{name}' must be a list", collection=name)
        parsed = []
        for index, row in enumerate(rows):
            try:
                parsed.append(model.model_validate(row))
            except ValidationError as e:
                raise SchemaValidationError(
                    f"Invalid {name}[{index}]: {e.errors()[0]['msg']}",
                    collection=name, index=index,
                ) from e
        records[name] = parsed
    return records


def load_export(path: Optional[str | Path] = None, config: Optional[Dict[str, Any]] = None) -> Dict[str, List[BaseModel]]:
    """Load an export file, defaulting to the newest one in the raw directory."""
    config = config or DEFAULT_CONFIG
    if path is None:
        paths = config["paths"]
        path = find_latest_export(paths["raw_dir"], paths["export_prefix"])
        if path is None:
            logger.warning("No export file found; analysing an empty record set.")
            return {name: [] for name in COLLECTIONS}

    logger.info("Loading records from %s", path)
    return load_records(load_json_file(path))


# ============================================================================
# Analysis
# ============================================================================

def _run_step(name: str, step: Callable[[], T]) -> T:
    logger.info("Running %s...", name)
    try:
        return step()
    except DashboardError:
        raise
    except Exception as e:
        raise AnalysisError(name, e) from e


def _dump_windows(windows: Dict[str, PeriodPair]) -> Dict[str, Any]:
    return {key: pair.model_dump(mode="json") for key, pair in windows.items()}


def _compare_windows(windows: Dict[str, PeriodPair]) -> Dict[str, Any]:
    return {
        key: {
            name: comparison.model_dump()
            for name, comparison in compare_metrics(pair.current, pair.previous).items()
        }
        for key, pair in windows.items()
    }


def run_crm_analysis(
    records: Dict[str, List[Any]],
    now: Optional[datetime] = None,
    config: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """Run every analyzer over one record set and assemble the output.

    ``now`` is captured once and shared by every analyzer.
    """
    config = config or DEFAULT_CONFIG
    now = normalize_now(now)

    cash_entries = records.get("cash_entries", [])
    expenses = records.get("expenses", [])
    leads = records.get("leads", [])
    deals = records.get("deals", [])
    offers = records.get("offers", [])
    users = records.get("users", [])

    logger.info(
        "Loaded: %d cash entries, %d expenses, %d leads, %d deals, %d offers, %d users",
        len(cash_entries), len(expenses), len(leads), len(deals), len(offers), len(users),
    )

    financial = _run_step(
        "FinancialAnalyzer",
        lambda: aggregate_financial_metrics(cash_entries, expenses, now, offers, users, config),
    )
    lead_metrics = _run_step("LeadFunnelAnalyzer", lambda: aggregate_lead_metrics(leads, now, config))
    pipeline = _run_step("PipelineAnalyzer", lambda: aggregate_pipeline_metrics(deals, now, config))
    receivables = _run_step(
        "Receivables summary",
        lambda: summarize_receivables(cash_entries, now, week_start_index(config)),
    )

    insights_analyzer = InsightsAnalyzer(config)
    insights = _run_step(
        "InsightsAnalyzer",
        lambda: {
            key: insights_analyzer.analyze(
                financial[key].current, lead_metrics[key].current, pipeline[key].current,
            )
            for key in WINDOW_KEYS
        },
    )

    return {
        "generated_at": normalize_now().isoformat(),
        "now": now.isoformat(),
        "periods": {
            key: {"label": label, "previous_label": previous}
            for key, (label, previous) in WINDOW_LABELS.items()
        },
        "record_counts": {name: len(records.get(name, [])) for name in COLLECTIONS},
        "financial": _dump_windows(financial),
        "leads": _dump_windows(lead_metrics),
        "pipeline": _dump_windows(pipeline),
        "comparisons": {
            "financial": _compare_windows(financial),
            "leads": _compare_windows(lead_metrics),
            "pipeline": _compare_windows(pipeline),
        },
        "receivables": receivables.model_dump(),
        "insights": insights,
        "config_used": config,
    }


def write_metrics(output: Dict[str, Any], output_dir: str | Path) -> Path:
    """Write the metrics JSON, raising AnalysisError if the write fails."""
    output_path = Path(output_dir) / OUTPUT_FILENAME
    if not atomic_write_json(output, output_path):
        raise AnalysisError("Write output", OSError(f"could not write {output_path}"))
    logger.info("Analysis complete. Output saved to %s", output_path)
    return output_path


# ============================================================================
# CLI
# ============================================================================

def _parse_now(value: str) -> datetime:
    parsed = parse_ts(value)
    if parsed is None:
        raise argparse.ArgumentTypeError(f"not a valid timestamp: {value!r}")
    return parsed


def _parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Compute period-over-period CRM dashboard metrics from a records export.",
    )
    parser.add_argument("--input", type=Path, default=None,
                        help="Records export (default: newest export in the raw data directory)")
    parser.add_argument("--output-dir", type=Path, default=None,
                        help="Directory for crm_metrics.json (default: data/processed)")
    parser.add_argument("--config", type=Path, default=None, help="YAML config overrides")
    parser.add_argument("--now", type=_parse_now, default=None,
                        help="Reference time as ISO-8601 (default: current UTC time)")
    parser.add_argument("--stdout", action="store_true", help="Print the JSON instead of writing it")
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    args = _parse_args(argv)
    try:
        config = load_config(args.config)
        records = load_export(args.input, config)
        output = run_crm_analysis(records, args.now, config)
        if args.stdout:
            print(json.dumps(output, indent=2, default=str))
        else:
            write_metrics(output, args.output_dir or config["paths"]["processed_dir"])
    except DashboardError as e:
        logger.error("%s", e)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
