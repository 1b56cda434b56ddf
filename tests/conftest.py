"""Shared fixtures for the CRM metrics tests."""

from datetime import datetime, timezone

import pytest

# Monday 19 October 2026, mid-afternoon UTC.
FIXED_NOW = datetime(2026, 10, 19, 15, 30, tzinfo=timezone.utc)


@pytest.fixture
def now():
    return FIXED_NOW


@pytest.fixture
def make_cash_entry():
    def _make(**overrides):
        entry = {
            "id": "ce-1",
            "date": "2026-10-05T10:00:00Z",
            "income": 100.0,
            "gross_profit": 80.0,
            "setter_payment": 0.0,
            "closer_payment": 0.0,
            "total_commissions": 0.0,
            "status": "Paid",
            "offer_id": None,
        }
        entry.update(overrides)
        return entry
    return _make


@pytest.fixture
def make_expense():
    def _make(**overrides):
        expense = {
            "id": "ex-1",
            "date": "2026-10-06",
            "amount": 50.0,
            "expense_type": "Software",
            "invoice_filed": True,
        }
        expense.update(overrides)
        return expense
    return _make


@pytest.fixture
def make_lead():
    def _make(**overrides):
        lead = {
            "id": "lead-1",
            "status": "new",
            "lead_source": "Referral",
            "revenue_generated": 0.0,
            "cash_collected": 0.0,
            "lead_checklist": {},
            "follow_ups_completed": [False] * 7,
            "created_at": "2026-10-10T09:00:00Z",
        }
        lead.update(overrides)
        return lead
    return _make


@pytest.fixture
def make_deal():
    def _make(**overrides):
        deal = {
            "id": "deal-1",
            "deal_name": "Website rebuild",
            "deal_value": 1000.0,
            "probability": 50,
            "stage": "new_opportunity",
            "created_at": "2026-10-10T09:00:00Z",
        }
        deal.update(overrides)
        return deal
    return _make
