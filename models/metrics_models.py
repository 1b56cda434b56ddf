"""
CRM Metrics — Result Models
=============================

Output shapes of the aggregation engine. Every field defaults to zero or
empty, so a default-constructed model is the all-zero result used for
periods with no data.
"""
from __future__ import annotations

from typing import Dict, Generic, List, Optional, TypeVar

from pydantic import BaseModel, Field

MetricsT = TypeVar("MetricsT")


# ─── Building blocks ────────────────────────────────────────

class FunnelStage(BaseModel):
    """One stage of a linear funnel."""
    key: str
    label: str
    value: float = 0
    conversion_rate: Optional[float] = Field(None, description="None for the first stage")
    drop_off: Optional[float] = Field(None, description="None for the first stage")


class MetricComparison(BaseModel):
    """Current vs previous value of one KPI."""
    current: float = 0
    previous: float = 0
    change_pct: float = 0
    direction: str = "flat"


class FinancialTrendPoint(BaseModel):
    month: str
    income: float = 0
    expenses: float = 0
    profit: float = 0


class LeadTrendPoint(BaseModel):
    month: str
    new_leads: int = 0
    closed_won: int = 0
    revenue_generated: float = 0
    cash_collected: float = 0


class PipelineTrendPoint(BaseModel):
    month: str
    deals: int = 0
    total_value: float = 0
    won_value: float = 0


# ─── Financial ──────────────────────────────────────────────

class FinancialMetrics(BaseModel):
    """Income, expenses, commissions and receivables for one period."""
    total_income: float = 0
    total_expenses: float = 0
    net_profit: float = 0
    gross_profit: float = 0
    total_commissions: float = 0
    paid_income: float = 0
    total_receivables: float = 0
    outstanding_receivables: float = 0
    overdue_receivables: float = 0
    due_this_week: float = 0
    due_this_month: float = 0
    collection_rate: float = 0
    profit_margin: float = 0
    uninvoiced_expenses: float = 0
    entry_count: int = 0
    expense_count: int = 0
    income_by_offer: Dict[str, float] = Field(default_factory=dict)
    expenses_by_type: Dict[str, float] = Field(default_factory=dict)
    commissions_by_setter: Dict[str, float] = Field(default_factory=dict)
    commissions_by_closer: Dict[str, float] = Field(default_factory=dict)
    income_by_status: Dict[str, float] = Field(default_factory=dict)
    receivables_by_status: Dict[str, float] = Field(default_factory=dict)
    monthly_trends: List[FinancialTrendPoint] = Field(default_factory=list)


class ReceivablesSummary(BaseModel):
    """Totals shown above the receivables table."""
    total_receivables: float = 0
    total_outstanding: float = 0
    overdue_amount: float = 0
    overdue_count: int = 0
    due_this_week_amount: float = 0
    due_this_week_count: int = 0
    due_this_month_amount: float = 0
    due_this_month_count: int = 0


# ─── Lead funnel ────────────────────────────────────────────

class LeadFunnelMetrics(BaseModel):
    """Lead status, checklist and follow-up counts for one period."""
    total_leads: int = 0
    # status counts
    new_leads: int = 0
    contacted: int = 0
    qualified: int = 0
    proposal_sent: int = 0
    closed_won: int = 0
    closed_lost: int = 0
    nurturing: int = 0
    unqualified: int = 0
    # checklist milestones
    warm_leads: int = 0
    quality_conversation: int = 0
    lead_magnet_sent: int = 0
    asset_consumed: int = 0
    nurture_sequence: int = 0
    booking_requested: int = 0
    # money
    revenue_generated: float = 0
    cash_collected: float = 0
    cash_collection_rate: float = 0
    win_rate: float = 0
    follow_up_completion_rate: float = 0
    status_counts: Dict[str, int] = Field(default_factory=dict)
    follow_ups_by_step: List[int] = Field(default_factory=list)
    leads_by_source: Dict[str, int] = Field(default_factory=dict)
    funnel: List[FunnelStage] = Field(default_factory=list)
    monthly_trends: List[LeadTrendPoint] = Field(default_factory=list)


# ─── Sales pipeline ─────────────────────────────────────────

class PipelineMetrics(BaseModel):
    """Deal stage counts and pipeline value for one period."""
    total_deals: int = 0
    new_opportunities: int = 0
    discovery_scheduled: int = 0
    discovery_completed: int = 0
    proposal_prep: int = 0
    proposal_sent: int = 0
    proposal_review: int = 0
    negotiation: int = 0
    contract_sent: int = 0
    contract_signed: int = 0
    project_kickoff: int = 0
    on_hold: int = 0
    lost: int = 0
    total_value: float = 0
    weighted_value: float = 0
    won_value: float = 0
    lost_value: float = 0
    average_deal_size: float = 0
    average_sales_cycle_days: float = 0
    conversion_rate: float = 0
    stage_counts: Dict[str, int] = Field(default_factory=dict)
    value_by_stage: Dict[str, float] = Field(default_factory=dict)
    value_by_owner: Dict[str, float] = Field(default_factory=dict)
    funnel: List[FunnelStage] = Field(default_factory=list)
    monthly_trends: List[PipelineTrendPoint] = Field(default_factory=list)


# ─── Period pairing ─────────────────────────────────────────

class PeriodPair(BaseModel, Generic[MetricsT]):
    """Metrics for a window and for the window right before it."""
    current: MetricsT
    previous: MetricsT
