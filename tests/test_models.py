"""Tests for the CRM record models."""

import pytest
from pydantic import ValidationError

from models.crm_models import CashEntry, Deal, Expense, Lead


class TestCashEntry:
    def test_commissions_filled_from_percentages(self):
        entry = CashEntry(income=1000, gross_profit=1000, setter_percentage=10, closer_percentage=20)
        assert entry.setter_payment == 100
        assert entry.closer_payment == 200
        assert entry.total_commissions == 300

    def test_stored_payments_are_kept(self):
        entry = CashEntry(income=1000, gross_profit=1000, setter_percentage=10, total_commissions=42)
        assert entry.total_commissions == 42
        assert entry.setter_payment == 0

    def test_bad_dates_become_none(self):
        entry = CashEntry(date="yesterday-ish", due_date="2026-10-30")
        assert entry.date is None
        assert entry.due_date.day == 30

    def test_unknown_status_rejected(self):
        with pytest.raises(ValidationError):
            CashEntry(status="Pending")

    def test_gross_profit_cannot_exceed_income(self):
        with pytest.raises(ValidationError, match="gross_profit cannot exceed income"):
            CashEntry(income=100, gross_profit=500)

    def test_percentages_cannot_exceed_100_together(self):
        with pytest.raises(ValidationError, match="cannot exceed 100"):
            CashEntry(income=100, gross_profit=100, setter_percentage=80, closer_percentage=80)

    @pytest.mark.parametrize("field, value", [
        ("setter_percentage", -5),
        ("closer_percentage", 120),
        ("income", -1),
    ])
    def test_out_of_range_values_rejected(self, field, value):
        with pytest.raises(ValidationError):
            CashEntry(**{field: value})


class TestExpense:
    def test_defaults(self):
        expense = Expense(amount="12.50")
        assert expense.amount == 12.5
        assert expense.expense_type == "Other"
        assert expense.invoice_filed is False


class TestLead:
    def test_missing_nested_fields_default(self):
        lead = Lead(lead_checklist=None, follow_ups_completed=None, follow_up_dates=None)
        assert lead.lead_checklist.warm_lead is False
        assert lead.follow_ups_completed == [False] * 7
        assert lead.follow_up_dates == [None] * 7

    def test_follow_ups_must_have_seven_entries(self):
        with pytest.raises(ValidationError):
            Lead(follow_ups_completed=[True, False])

    def test_follow_ups_must_be_a_list(self):
        with pytest.raises(ValidationError):
            Lead(follow_ups_completed=5)
        with pytest.raises(ValidationError):
            Lead(follow_up_dates=5)

    def test_cash_cannot_exceed_revenue(self):
        with pytest.raises(ValidationError, match="cash_collected cannot exceed revenue_generated"):
            Lead(revenue_generated=10, cash_collected=1000)
        assert Lead(revenue_generated=10, cash_collected=10).cash_collected == 10

    def test_checklist_dates_are_lenient(self):
        lead = Lead(checklist_dates={"warm_lead": "2026-10-01", "asset_consumed": "n/a"})
        assert lead.checklist_dates.warm_lead.month == 10
        assert lead.checklist_dates.asset_consumed is None


class TestDeal:
    def test_probability_bounds(self):
        with pytest.raises(ValidationError):
            Deal(probability=120)

    def test_unknown_stage_rejected(self):
        with pytest.raises(ValidationError):
            Deal(stage="closed")

