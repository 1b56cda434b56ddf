"""
CRM Metrics — Record Models
=============================

Input records as exported from the CRM tables: cash entries, expenses,
leads and deals, plus the offer/user rows they reference.

Date fields are parsed leniently. A missing or unparseable date becomes
None so the record drops out of every dated window instead of failing the
whole load.
"""
from __future__ import annotations

from datetime import datetime
from typing import Any, List, Literal, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from scripts.lib.calculations import compute_commissions
from scripts.lib.periods import parse_ts

PaymentStatus = Literal["Paid", "Canceled", "Refunded"]

LeadStatus = Literal[
    "new",
    "contacted",
    "qualified",
    "proposal_sent",
    "closed_won",
    "closed_lost",
    "nurturing",
    "unqualified",
]

DealStage = Literal[
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
    "lost",
    "on_hold",
]

FOLLOW_UP_STEPS = 7


# ─── References ─────────────────────────────────────────────

class OfferRef(BaseModel):
    """Offer a payment was made for."""
    id: Optional[str] = None
    name: Optional[str] = None


class UserRef(BaseModel):
    """Team member (setter, closer or deal owner)."""
    id: Optional[str] = None
    email: Optional[str] = None
    full_name: Optional[str] = None


# ─── Finances ───────────────────────────────────────────────

class CashEntry(BaseModel):
    """A single incoming payment."""
    id: Optional[str] = None
    date: Optional[datetime] = None
    due_date: Optional[datetime] = None
    income: float = Field(0, ge=0)
    gross_profit: float = 0
    contracted_amount: float = 0
    setter_percentage: float = Field(0, ge=0, le=100)
    closer_percentage: float = Field(0, ge=0, le=100)
    setter_payment: float = 0
    closer_payment: float = 0
    total_commissions: float = 0
    status: PaymentStatus = "Paid"
    payment_type: Optional[str] = None
    client_name: Optional[str] = None
    client_email: Optional[str] = None
    offer_id: Optional[str] = None
    setter_id: Optional[str] = None
    created_by: Optional[str] = None
    offer: Optional[OfferRef] = None
    setter: Optional[UserRef] = None
    creator: Optional[UserRef] = None

    @field_validator("date", "due_date", mode="before")
    @classmethod
    def parse_dates(cls, value: Any) -> Optional[datetime]:
        return parse_ts(value)

    @model_validator(mode="after")
    def check_amounts(self) -> "CashEntry":
        if self.gross_profit > self.income:
            raise ValueError("gross_profit cannot exceed income")
        if self.setter_percentage + self.closer_percentage > 100:
            raise ValueError("setter_percentage + closer_percentage cannot exceed 100")
        return self

    @model_validator(mode="after")
    def fill_commissions(self) -> "CashEntry":
        # Rows created outside the form may only carry percentages.
        provided = self.model_fields_set & {"setter_payment", "closer_payment", "total_commissions"}
        if not provided:
            split = compute_commissions(self.gross_profit, self.setter_percentage, self.closer_percentage)
            self.setter_payment = split.setter_payment
            self.closer_payment = split.closer_payment
            self.total_commissions = split.total_commissions
        return self


class Expense(BaseModel):
    """A single outgoing payment."""
    id: Optional[str] = None
    date: Optional[datetime] = None
    amount: float = 0
    expense_name: Optional[str] = None
    expense_type: str = "Other"
    invoice_filed: bool = False
    notes: Optional[str] = None
    created_by: Optional[str] = None

    @field_validator("date", mode="before")
    @classmethod
    def parse_dates(cls, value: Any) -> Optional[datetime]:
        return parse_ts(value)


# ─── Leads ──────────────────────────────────────────────────

class LeadChecklist(BaseModel):
    warm_lead: bool = False
    quality_conversation: bool = False
    lead_magnet_sent: bool = False
    asset_consumed: bool = False
    booking_requested: bool = False
    nurture_sequence: bool = False


class ChecklistDates(BaseModel):
    warm_lead: Optional[datetime] = None
    quality_conversation: Optional[datetime] = None
    lead_magnet_sent: Optional[datetime] = None
    asset_consumed: Optional[datetime] = None
    booking_requested: Optional[datetime] = None
    nurture_sequence: Optional[datetime] = None

    @field_validator("*", mode="before")
    @classmethod
    def parse_dates(cls, value: Any) -> Optional[datetime]:
        return parse_ts(value)


class Lead(BaseModel):
    """A lead and its progress through the checklist and follow-ups."""
    id: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[str] = None
    company: Optional[str] = None
    status: LeadStatus = "new"
    lead_source: Optional[str] = None
    lead_type: Optional[str] = None
    priority: Optional[str] = None
    revenue_generated: float = 0
    cash_collected: float = 0
    assigned_to: Optional[str] = None
    lead_checklist: LeadChecklist = Field(default_factory=LeadChecklist)
    checklist_dates: ChecklistDates = Field(default_factory=ChecklistDates)
    follow_ups_completed: List[bool] = Field(default_factory=lambda: [False] * FOLLOW_UP_STEPS)
    follow_up_dates: List[Optional[datetime]] = Field(default_factory=lambda: [None] * FOLLOW_UP_STEPS)
    created_at: Optional[datetime] = None

    @field_validator("created_at", mode="before")
    @classmethod
    def parse_dates(cls, value: Any) -> Optional[datetime]:
        return parse_ts(value)

    @field_validator("lead_checklist", "checklist_dates", mode="before")
    @classmethod
    def default_when_missing(cls, value: Any) -> Any:
        return {} if value is None else value

    @field_validator("follow_ups_completed", mode="before")
    @classmethod
    def check_follow_ups(cls, value: Any) -> Any:
        if value is None:
            return [False] * FOLLOW_UP_STEPS
        if not isinstance(value, (list, tuple)):
            raise ValueError("follow_ups_completed must be a list")
        if len(value) != FOLLOW_UP_STEPS:
            raise ValueError(f"follow_ups_completed must have {FOLLOW_UP_STEPS} entries, got {len(value)}")
        return value

    @field_validator("follow_up_dates", mode="before")
    @classmethod
    def parse_follow_up_dates(cls, value: Any) -> Any:
        if value is None:
            return [None] * FOLLOW_UP_STEPS
        if not isinstance(value, (list, tuple)):
            raise ValueError("follow_up_dates must be a list")
        return [parse_ts(v) for v in value]

    @model_validator(mode="after")
    def check_cash(self) -> "Lead":
        if self.cash_collected > self.revenue_generated:
            raise ValueError("cash_collected cannot exceed revenue_generated")
        return self


# ─── Deals ──────────────────────────────────────────────────

class Deal(BaseModel):
    """An opportunity moving through the sales pipeline."""
    id: Optional[str] = None
    lead_id: Optional[str] = None
    deal_name: Optional[str] = None
    deal_value: float = 0
    probability: float = Field(0, ge=0, le=100)
    stage: DealStage = "new_opportunity"
    deal_owner: Optional[str] = None
    owner: Optional[UserRef] = None
    service_type: Optional[str] = None
    deal_source: Optional[str] = None
    expected_close_date: Optional[datetime] = None
    actual_close_date: Optional[datetime] = None
    won_date: Optional[datetime] = None
    lost_date: Optional[datetime] = None
    created_at: Optional[datetime] = None

    @field_validator(
        "expected_close_date", "actual_close_date", "won_date", "lost_date", "created_at",
        mode="before",
    )
    @classmethod
    def parse_dates(cls, value: Any) -> Optional[datetime]:
        return parse_ts(value)
