"""
Insights Analyzer
===================
Turns a period's metrics into short labels for the insight panels: top
revenue source, health ratings, the stage that needs attention.

Exports:
    InsightsAnalyzer
"""

from __future__ import annotations

from typing import Any, Dict, Mapping, Optional

from models.metrics_models import FinancialMetrics, LeadFunnelMetrics, PipelineMetrics
from scripts.lib.calculations import safe_div
from scripts.lib.config import DEFAULT_CONFIG


def _top_key(breakdown: Mapping[str, float], empty_label: str) -> str:
    if not breakdown:
        return empty_label
    return max(breakdown.items(), key=lambda item: item[1])[0]


class InsightsAnalyzer:
    """Derive insight labels from the current period's metrics."""

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        config = config or DEFAULT_CONFIG
        thresholds = config.get("health_thresholds", DEFAULT_CONFIG["health_thresholds"])
        self.cash_flow_bands = thresholds["cash_flow"]
        self.profitability_bands = thresholds["profitability"]

    # ------------------------------------------------------------------
    # Financial
    # ------------------------------------------------------------------

    def cash_flow_health(self, metrics: FinancialMetrics) -> Dict[str, Any]:
        """Rate the share of receivables that is overdue."""
        ratio = metrics.overdue_receivables / (metrics.total_receivables or 1)
        bands = self.cash_flow_bands
        if ratio < bands["excellent"]:
            status, description = "Excellent", "Very low overdue rate"
        elif ratio < bands["good"]:
            status, description = "Good", "Manageable overdue rate"
        elif ratio < bands["fair"]:
            status, description = "Fair", "Monitor overdue payments"
        else:
            status, description = "Poor", "High overdue rate needs attention"
        return {"status": status, "description": description, "overdue_ratio": ratio}

    def profitability_health(self, metrics: FinancialMetrics) -> Dict[str, Any]:
        """Rate the profit margin."""
        margin = metrics.profit_margin
        bands = self.profitability_bands
        if margin > bands["excellent"]:
            status = "Excellent"
        elif margin > bands["good"]:
            status = "Good"
        elif margin > bands["fair"]:
            status = "Fair"
        elif margin > 0:
            status = "Poor"
        else:
            status = "Loss"
        return {"status": status, "profit_margin": margin}

    def financial(self, current: FinancialMetrics) -> Dict[str, Any]:
        return {
            "top_offer": _top_key(current.income_by_offer, "No offers"),
            "top_expense_type": _top_key(current.expenses_by_type, "No expenses"),
            "top_setter": _top_key(current.commissions_by_setter, "No setters"),
            "top_closer": _top_key(current.commissions_by_closer, "No closers"),
            "commission_rate": safe_div(current.total_commissions, current.total_income) * 100,
            "cash_flow_health": self.cash_flow_health(current),
            "profitability_health": self.profitability_health(current),
        }

    # ------------------------------------------------------------------
    # Pipeline
    # ------------------------------------------------------------------

    @staticmethod
    def top_performing_stage(metrics: PipelineMetrics) -> str:
        if metrics.contract_signed > 0:
            return "Closing"
        if metrics.negotiation > 0:
            return "Negotiation"
        if metrics.proposal_sent > 0:
            return "Proposal"
        return "Discovery"

    @staticmethod
    def needs_attention_stage(metrics: PipelineMetrics) -> str:
        stuck_after_proposal = metrics.proposal_sent > metrics.negotiation
        stuck_in_negotiation = metrics.negotiation > metrics.contract_signed
        if stuck_after_proposal and stuck_in_negotiation:
            return "Negotiation"
        if stuck_after_proposal:
            return "Proposal Follow-up"
        if stuck_in_negotiation:
            return "Closing"
        return "Lead Generation"

    def pipeline(self, current: PipelineMetrics) -> Dict[str, Any]:
        return {
            "top_performing_stage": self.top_performing_stage(current),
            "needs_attention_stage": self.needs_attention_stage(current),
            "deal_to_close_rate": safe_div(current.contract_signed, current.total_deals) * 100,
            "weighted_share": safe_div(current.weighted_value, current.total_value) * 100,
            "top_owner": _top_key(current.value_by_owner, "No owners"),
        }

    # ------------------------------------------------------------------
    # Leads
    # ------------------------------------------------------------------

    def leads(self, current: LeadFunnelMetrics) -> Dict[str, Any]:
        scored = [stage for stage in current.funnel if stage.drop_off is not None]
        biggest = max(scored, key=lambda stage: stage.drop_off) if scored else None
        return {
            "top_source": _top_key(current.leads_by_source, "No leads"),
            "biggest_drop_off_stage": biggest.label if biggest else None,
            "biggest_drop_off": biggest.drop_off if biggest else 0.0,
            "win_rate": current.win_rate,
        }

    def analyze(
        self,
        financial: FinancialMetrics,
        leads: LeadFunnelMetrics,
        pipeline: PipelineMetrics,
    ) -> Dict[str, Any]:
        return {
            "financial": self.financial(financial),
            "leads": self.leads(leads),
            "pipeline": self.pipeline(pipeline),
        }
