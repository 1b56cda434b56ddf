"""
Lead Funnel Analyzer
======================
Counts leads by status, checklist milestone and follow-up step, sums the
revenue they generated, and composes the lead funnel. Windowed on each
lead's ``created_at``.

Exports:
    LeadFunnelAnalyzer, aggregate_lead_metrics, LEAD_STATUSES, CHECKLIST_ITEMS
"""

from __future__ import annotations

from collections import Counter
from datetime import datetime
from functools import partial
from typing import Any, Dict, Optional, Sequence

from models.metrics_models import LeadFunnelMetrics, LeadTrendPoint, PeriodPair
from scripts.lib.calculations import compose_funnel, safe_div, safe_float
from scripts.lib.config import DEFAULT_CONFIG, week_start_index
from scripts.lib.logger import get_logger
from scripts.lib.periods import (
    aggregate_by_window,
    filter_by_range,
    get_field,
    month_windows,
    normalize_now,
)

logger = get_logger(__name__)

# status value -> result field
LEAD_STATUSES: Dict[str, str] = {
    "new": "new_leads",
    "contacted": "contacted",
    "qualified": "qualified",
    "proposal_sent": "proposal_sent",
    "closed_won": "closed_won",
    "closed_lost": "closed_lost",
    "nurturing": "nurturing",
    "unqualified": "unqualified",
}

# checklist key -> result field
CHECKLIST_ITEMS: Dict[str, str] = {
    "warm_lead": "warm_leads",
    "quality_conversation": "quality_conversation",
    "lead_magnet_sent": "lead_magnet_sent",
    "asset_consumed": "asset_consumed",
    "nurture_sequence": "nurture_sequence",
    "booking_requested": "booking_requested",
}

FOLLOW_UP_STEPS = 7

# Compared stage to stage in this order even though leads can skip steps.
# closed_lost and unqualified are exits from the funnel, not steps on it,
# so they are reported only as status counts.
FUNNEL_STAGES = (
    ("total_leads", "Total Leads"),
    ("new_leads", "New Leads"),
    ("warm_leads", "Warm Leads"),
    ("quality_conversation", "Quality Conversation"),
    ("lead_magnet_sent", "Lead Magnet Sent"),
    ("asset_consumed", "Asset Consumed"),
    ("nurture_sequence", "Nurture Sequence"),
    ("booking_requested", "Booking Requested"),
    ("qualified", "Qualified"),
    ("proposal_sent", "Proposal Sent"),
    ("closed_won", "Closed Won"),
)


class LeadFunnelAnalyzer:
    """Lead status, checklist and follow-up metrics for one set of leads."""

    def __init__(self, trend_months: int = 6):
        self.trend_months = trend_months

    def analyze(self, leads: Sequence[Any], now: Optional[datetime] = None) -> LeadFunnelMetrics:
        now = normalize_now(now)

        status_counts: Counter = Counter({status: 0 for status in LEAD_STATUSES})
        checklist_counts: Counter = Counter({field: 0 for field in CHECKLIST_ITEMS.values()})
        follow_ups = [0] * FOLLOW_UP_STEPS
        leads_by_source: Counter = Counter()
        revenue = 0.0
        cash = 0.0

        for lead in leads:
            status = get_field(lead, "status")
            if status in status_counts:
                status_counts[status] += 1

            checklist = get_field(lead, "lead_checklist")
            for item, field in CHECKLIST_ITEMS.items():
                if get_field(checklist, item) is True:
                    checklist_counts[field] += 1

            for step, done in enumerate(get_field(lead, "follow_ups_completed", [])[:FOLLOW_UP_STEPS]):
                if done:
                    follow_ups[step] += 1

            leads_by_source[get_field(lead, "lead_source") or "Unknown"] += 1
            revenue += safe_float(get_field(lead, "revenue_generated"))
            cash += safe_float(get_field(lead, "cash_collected"))

        total = len(leads)
        counts = {LEAD_STATUSES[s]: n for s, n in status_counts.items()}
        counts.update(checklist_counts)

        funnel_values = {"total_leads": total, **counts}
        funnel = compose_funnel(
            [(key, funnel_values[key]) for key, _ in FUNNEL_STAGES],
            labels=dict(FUNNEL_STAGES),
        )

        return LeadFunnelMetrics(
            total_leads=total,
            revenue_generated=revenue,
            cash_collected=cash,
            cash_collection_rate=safe_div(cash, revenue) * 100,
            win_rate=safe_div(counts["closed_won"], counts["closed_won"] + counts["closed_lost"]) * 100,
            follow_up_completion_rate=safe_div(sum(follow_ups), total * FOLLOW_UP_STEPS) * 100,
            status_counts=dict(status_counts),
            follow_ups_by_step=follow_ups,
            leads_by_source=dict(leads_by_source.most_common()),
            funnel=funnel,
            monthly_trends=self._monthly_trends(leads, now),
            **counts,
        )

    def _monthly_trends(self, leads: Sequence[Any], now: datetime) -> list[LeadTrendPoint]:
        trends = []
        for label, month in month_windows(now, self.trend_months):
            in_month = filter_by_range(leads, month, "created_at")
            trends.append(
                LeadTrendPoint(
                    month=label,
                    new_leads=len(in_month),
                    closed_won=sum(1 for lead in in_month if get_field(lead, "status") == "closed_won"),
                    revenue_generated=sum(safe_float(get_field(lead, "revenue_generated")) for lead in in_month),
                    cash_collected=sum(safe_float(get_field(lead, "cash_collected")) for lead in in_month),
                )
            )
        return trends


def aggregate_lead_metrics(
    leads: Sequence[Any],
    now: Optional[datetime] = None,
    config: Optional[Dict[str, Any]] = None,
) -> Dict[str, PeriodPair]:
    """Lead funnel metrics for every comparison window."""
    config = config or DEFAULT_CONFIG
    now = normalize_now(now)
    analyzer = LeadFunnelAnalyzer(config.get("trend_months", 6))

    logger.info("Aggregating lead metrics: %d leads", len(leads))
    return aggregate_by_window(
        {"leads": (leads, "created_at")},
        partial(analyzer.analyze, now=now),
        now,
        LeadFunnelMetrics,
        week_start_index(config),
    )
