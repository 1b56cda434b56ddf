"""
Financial Metrics Analyzer
============================
Folds cash entries and expenses into income, profit, commission and
receivable metrics, and runs that fold over every comparison window.

Exports:
    FinancialAnalyzer, summarize_receivables, aggregate_financial_metrics
"""

from __future__ import annotations

from collections import defaultdict
from datetime import datetime, timedelta
from functools import partial
from typing import Any, Dict, Iterable, Optional, Sequence

from models.metrics_models import FinancialMetrics, FinancialTrendPoint, PeriodPair, ReceivablesSummary
from scripts.lib.calculations import safe_div, safe_float
from scripts.lib.config import DEFAULT_CONFIG, week_start_index
from scripts.lib.logger import get_logger
from scripts.lib.periods import (
    ONE_MS,
    SUNDAY,
    DateRange,
    add_months,
    aggregate_by_window,
    filter_by_range,
    get_field,
    month_windows,
    normalize_now,
    parse_ts,
    start_of_month,
    start_of_week,
)

logger = get_logger(__name__)

NO_OFFER = "No Offer"
PAID = "Paid"


# ---------------------------------------------------------------------------
# Name lookups
# ---------------------------------------------------------------------------

def _user_name(user: Any) -> Optional[str]:
    if user is None:
        return None
    return get_field(user, "full_name") or get_field(user, "email")


def build_offer_names(offers: Optional[Iterable[Any]]) -> Dict[str, str]:
    """Lookup offer_id -> offer name."""
    names: Dict[str, str] = {}
    for offer in offers or []:
        oid = get_field(offer, "id")
        name = get_field(offer, "name")
        if oid and name:
            names[str(oid)] = name
    return names


def build_user_names(users: Optional[Iterable[Any]]) -> Dict[str, str]:
    """Lookup user_id -> display name (full name, falling back to email)."""
    names: Dict[str, str] = {}
    for user in users or []:
        uid = get_field(user, "id")
        name = _user_name(user)
        if uid and name:
            names[str(uid)] = name
    return names


def _current_week(now: datetime, week_start: int) -> DateRange:
    start = start_of_week(now, week_start)
    return DateRange(start, start + timedelta(days=7) - ONE_MS)


def _current_month(now: datetime) -> DateRange:
    start = start_of_month(now)
    return DateRange(start, add_months(start, 1) - ONE_MS)


# ============================================================================
# Analyzer
# ============================================================================

class FinancialAnalyzer:
    """Income, expenses, commissions and receivables for one set of records."""

    def __init__(
        self,
        offers: Optional[Iterable[Any]] = None,
        users: Optional[Iterable[Any]] = None,
        week_start: int = SUNDAY,
        trend_months: int = 6,
    ):
        self.offer_names = build_offer_names(offers)
        self.user_names = build_user_names(users)
        self.week_start = week_start
        self.trend_months = trend_months

    def _offer_name(self, entry: Any) -> str:
        embedded = get_field(get_field(entry, "offer"), "name")
        if embedded:
            return embedded
        offer_id = get_field(entry, "offer_id")
        return self.offer_names.get(str(offer_id), NO_OFFER) if offer_id else NO_OFFER

    def _resolve_user(self, entry: Any, relation: str, id_field: str) -> Optional[str]:
        embedded = _user_name(get_field(entry, relation))
        if embedded:
            return embedded
        user_id = get_field(entry, id_field)
        return self.user_names.get(str(user_id)) if user_id else None

    def analyze(
        self,
        cash_entries: Sequence[Any],
        expenses: Sequence[Any],
        now: Optional[datetime] = None,
    ) -> FinancialMetrics:
        now = normalize_now(now)
        this_week = _current_week(now, self.week_start)
        this_month = _current_month(now)

        total_income = 0.0
        gross_profit = 0.0
        total_commissions = 0.0
        paid_income = 0.0
        total_receivables = 0.0
        paid_receivables = 0.0
        outstanding = 0.0
        overdue = 0.0
        due_this_week = 0.0
        due_this_month = 0.0

        income_by_offer: Dict[str, float] = defaultdict(float)
        commissions_by_setter: Dict[str, float] = defaultdict(float)
        commissions_by_closer: Dict[str, float] = defaultdict(float)
        income_by_status: Dict[str, float] = defaultdict(float)
        receivables_by_status: Dict[str, float] = defaultdict(float)

        for entry in cash_entries:
            income = safe_float(get_field(entry, "income"))
            status = get_field(entry, "status", PAID)
            is_paid = status == PAID

            total_income += income
            gross_profit += safe_float(get_field(entry, "gross_profit"))
            total_commissions += safe_float(get_field(entry, "total_commissions"))
            if is_paid:
                paid_income += income

            income_by_offer[self._offer_name(entry)] += income
            income_by_status[status] += income

            setter_payment = safe_float(get_field(entry, "setter_payment"))
            if setter_payment > 0:
                setter = self._resolve_user(entry, "setter", "setter_id")
                if setter:
                    commissions_by_setter[setter] += setter_payment

            # The closer is whoever recorded the payment.
            closer_payment = safe_float(get_field(entry, "closer_payment"))
            if closer_payment > 0:
                closer = self._resolve_user(entry, "creator", "created_by")
                if closer:
                    commissions_by_closer[closer] += closer_payment

            due = parse_ts(get_field(entry, "due_date"))
            if due is None:
                continue
            total_receivables += income
            receivables_by_status[status] += income
            if is_paid:
                paid_receivables += income
                continue
            outstanding += income
            if due < now:
                overdue += income
            if this_week.contains(due):
                due_this_week += income
            if this_month.contains(due):
                due_this_month += income

        total_expenses = 0.0
        uninvoiced = 0.0
        expenses_by_type: Dict[str, float] = defaultdict(float)
        for expense in expenses:
            amount = safe_float(get_field(expense, "amount"))
            total_expenses += amount
            expenses_by_type[get_field(expense, "expense_type", "Other")] += amount
            if not get_field(expense, "invoice_filed", False):
                uninvoiced += amount

        net_profit = gross_profit - total_commissions - total_expenses

        return FinancialMetrics(
            total_income=total_income,
            total_expenses=total_expenses,
            net_profit=net_profit,
            gross_profit=gross_profit,
            total_commissions=total_commissions,
            paid_income=paid_income,
            total_receivables=total_receivables,
            outstanding_receivables=outstanding,
            overdue_receivables=overdue,
            due_this_week=due_this_week,
            due_this_month=due_this_month,
            collection_rate=safe_div(paid_receivables, total_receivables) * 100,
            profit_margin=safe_div(net_profit, total_income) * 100,
            uninvoiced_expenses=uninvoiced,
            entry_count=len(cash_entries),
            expense_count=len(expenses),
            income_by_offer=dict(income_by_offer),
            expenses_by_type=dict(expenses_by_type),
            commissions_by_setter=dict(commissions_by_setter),
            commissions_by_closer=dict(commissions_by_closer),
            income_by_status=dict(income_by_status),
            receivables_by_status=dict(receivables_by_status),
            monthly_trends=self._monthly_trends(cash_entries, expenses, now),
        )

    def _monthly_trends(
        self,
        cash_entries: Sequence[Any],
        expenses: Sequence[Any],
        now: datetime,
    ) -> list[FinancialTrendPoint]:
        trends = []
        for label, month in month_windows(now, self.trend_months):
            income = sum(safe_float(get_field(e, "income")) for e in filter_by_range(cash_entries, month))
            spent = sum(safe_float(get_field(x, "amount")) for x in filter_by_range(expenses, month))
            trends.append(FinancialTrendPoint(month=label, income=income, expenses=spent, profit=income - spent))
        return trends


# ============================================================================
# Receivables
# ============================================================================

def summarize_receivables(
    cash_entries: Sequence[Any],
    now: Optional[datetime] = None,
    week_start: int = SUNDAY,
) -> ReceivablesSummary:
    """Totals for the receivables view: every cash entry with a due date."""
    now = normalize_now(now)
    this_week = _current_week(now, week_start)
    this_month = _current_month(now)
    summary = ReceivablesSummary()

    for entry in cash_entries:
        due = parse_ts(get_field(entry, "due_date"))
        if due is None:
            continue
        income = safe_float(get_field(entry, "income"))
        summary.total_receivables += income
        if get_field(entry, "status", PAID) == PAID:
            continue
        summary.total_outstanding += income
        if due < now:
            summary.overdue_amount += income
            summary.overdue_count += 1
        if this_week.contains(due):
            summary.due_this_week_amount += income
            summary.due_this_week_count += 1
        if this_month.contains(due):
            summary.due_this_month_amount += income
            summary.due_this_month_count += 1

    return summary


# ============================================================================
# Windowed aggregation
# ============================================================================

def aggregate_financial_metrics(
    cash_entries: Sequence[Any],
    expenses: Sequence[Any],
    now: Optional[datetime] = None,
    offers: Optional[Iterable[Any]] = None,
    users: Optional[Iterable[Any]] = None,
    config: Optional[Dict[str, Any]] = None,
) -> Dict[str, PeriodPair]:
    """Financial metrics for every comparison window.

    Cash entries and expenses are both windowed on their ``date`` field.
    """
    config = config or DEFAULT_CONFIG
    now = normalize_now(now)
    week_start = week_start_index(config)
    analyzer = FinancialAnalyzer(offers, users, week_start, config.get("trend_months", 6))

    logger.info(
        "Aggregating financial metrics: %d cash entries, %d expenses",
        len(cash_entries), len(expenses),
    )
    return aggregate_by_window(
        {"cash_entries": (cash_entries, "date"), "expenses": (expenses, "date")},
        partial(analyzer.analyze, now=now),
        now,
        FinancialMetrics,
        week_start,
    )
