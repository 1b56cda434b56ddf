"""
Sales Pipeline Analyzer
=========================
Counts deals per pipeline stage, sums pipeline value (raw, probability
weighted, won and lost), measures the sales cycle and composes the stage
funnel. Windowed on each deal's ``created_at``.

Exports:
    PipelineAnalyzer, aggregate_pipeline_metrics, DEAL_STAGES, LINEAR_STAGES
"""

from __future__ import annotations

from collections import Counter, defaultdict
from datetime import datetime
from functools import partial
from typing import Any, Dict, List, Optional, Sequence

from models.metrics_models import PeriodPair, PipelineMetrics, PipelineTrendPoint
from scripts.lib.calculations import compose_funnel, safe_div, safe_float
from scripts.lib.config import DEFAULT_CONFIG, week_start_index
from scripts.lib.logger import get_logger
from scripts.lib.periods import (
    aggregate_by_window,
    filter_by_range,
    get_field,
    month_windows,
    normalize_now,
    parse_ts,
)

logger = get_logger(__name__)

# stage value -> result field
DEAL_STAGES: Dict[str, str] = {
    "new_opportunity": "new_opportunities",
    "discovery_call_scheduled": "discovery_scheduled",
    "discovery_call_completed": "discovery_completed",
    "proposal_preparation": "proposal_prep",
    "proposal_sent": "proposal_sent",
    "proposal_review": "proposal_review",
    "negotiation": "negotiation",
    "contract_sent": "contract_sent",
    "contract_signed": "contract_signed",
    "project_kickoff": "project_kickoff",
    "on_hold": "on_hold",
    "lost": "lost",
}

STAGE_LABELS: Dict[str, str] = {
    "new_opportunity": "New Opportunity",
    "discovery_call_scheduled": "Discovery Scheduled",
    "discovery_call_completed": "Discovery Completed",
    "proposal_preparation": "Proposal Preparation",
    "proposal_sent": "Proposal Sent",
    "proposal_review": "Proposal Review",
    "negotiation": "Negotiation",
    "contract_sent": "Contract Sent",
    "contract_signed": "Contract Signed",
    "project_kickoff": "Project Kickoff",
    "on_hold": "On Hold",
    "lost": "Lost",
}

# Stages in pipeline order; on_hold and lost sit outside the line.
LINEAR_STAGES: List[str] = [
    "new_opportunity",
    "discovery_call_scheduled",
    "discovery_call_completed",
    "proposal_preparation",
    "proposal_sent",
    "proposal_review",
    "negotiation",
    "contract_sent",
    "contract_signed",
    "project_kickoff",
]

WON_STAGE = "contract_signed"
LOST_STAGE = "lost"
UNASSIGNED = "Unassigned"


def _days_between(start: Optional[datetime], end: Optional[datetime]) -> Optional[float]:
    if start is None or end is None:
        return None
    return (end - start).total_seconds() / 86400.0


class PipelineAnalyzer:
    """Stage counts and pipeline value for one set of deals."""

    def __init__(self, trend_months: int = 6):
        self.trend_months = trend_months

    @staticmethod
    def _owner_name(deal: Any) -> str:
        owner = get_field(deal, "owner")
        return get_field(owner, "full_name") or get_field(owner, "email") or get_field(deal, "deal_owner") or UNASSIGNED

    def analyze(self, deals: Sequence[Any], now: Optional[datetime] = None) -> PipelineMetrics:
        now = normalize_now(now)

        stage_counts: Counter = Counter({stage: 0 for stage in DEAL_STAGES})
        value_by_stage: Dict[str, float] = defaultdict(float)
        value_by_owner: Dict[str, float] = defaultdict(float)
        total_value = 0.0
        weighted_value = 0.0
        won_value = 0.0
        lost_value = 0.0
        cycle_days: List[float] = []

        for deal in deals:
            stage = get_field(deal, "stage")
            value = safe_float(get_field(deal, "deal_value"))
            probability = safe_float(get_field(deal, "probability"))

            if stage in stage_counts:
                stage_counts[stage] += 1
                value_by_stage[stage] += value
            value_by_owner[self._owner_name(deal)] += value

            total_value += value
            weighted_value += value * probability / 100

            if stage == WON_STAGE:
                won_value += value
                closed = parse_ts(get_field(deal, "won_date")) or parse_ts(get_field(deal, "actual_close_date"))
                days = _days_between(parse_ts(get_field(deal, "created_at")), closed)
                if days is not None and days >= 0:
                    cycle_days.append(days)
            elif stage == LOST_STAGE:
                lost_value += value

        total = len(deals)
        counts = {DEAL_STAGES[s]: n for s, n in stage_counts.items()}
        funnel = compose_funnel(
            [("total_deals", total)] + [(s, stage_counts[s]) for s in LINEAR_STAGES],
            labels={"total_deals": "Total Deals", **STAGE_LABELS},
        )

        return PipelineMetrics(
            total_deals=total,
            total_value=total_value,
            weighted_value=weighted_value,
            won_value=won_value,
            lost_value=lost_value,
            average_deal_size=safe_div(total_value, total),
            average_sales_cycle_days=safe_div(sum(cycle_days), len(cycle_days)),
            conversion_rate=safe_div(stage_counts[WON_STAGE], total) * 100,
            stage_counts=dict(stage_counts),
            value_by_stage=dict(value_by_stage),
            value_by_owner=dict(value_by_owner),
            funnel=funnel,
            monthly_trends=self._monthly_trends(deals, now),
            **counts,
        )

    def _monthly_trends(self, deals: Sequence[Any], now: datetime) -> list[PipelineTrendPoint]:
        trends = []
        for label, month in month_windows(now, self.trend_months):
            in_month = filter_by_range(deals, month, "created_at")
            trends.append(
                PipelineTrendPoint(
                    month=label,
                    deals=len(in_month),
                    total_value=sum(safe_float(get_field(d, "deal_value")) for d in in_month),
                    won_value=sum(
                        safe_float(get_field(d, "deal_value"))
                        for d in in_month
                        if get_field(d, "stage") == WON_STAGE
                    ),
                )
            )
        return trends


def aggregate_pipeline_metrics(
    deals: Sequence[Any],
    now: Optional[datetime] = None,
    config: Optional[Dict[str, Any]] = None,
) -> Dict[str, PeriodPair]:
    """Sales pipeline metrics for every comparison window."""
    config = config or DEFAULT_CONFIG
    now = normalize_now(now)
    analyzer = PipelineAnalyzer(config.get("trend_months", 6))

    logger.info("Aggregating pipeline metrics: %d deals", len(deals))
    return aggregate_by_window(
        {"deals": (deals, "created_at")},
        partial(analyzer.analyze, now=now),
        now,
        PipelineMetrics,
        week_start_index(config),
    )
