"""
Shared arithmetic for the CRM metrics engine.

Two zero rules live here and must not be mixed up:

* ``safe_div`` returns a fallback (0 by default) for a zero denominator. Every
  ratio inside a metrics result uses it, including funnel conversion rates.
* ``pct_change`` is the period-over-period rule for KPI cards: 0 when both
  sides are 0, 100 when only the previous value is 0.

Usage:
    from scripts.lib.calculations import safe_div, pct_change, compose_funnel
"""

from __future__ import annotations

from typing import Dict, Iterable, NamedTuple, Tuple

from pydantic import BaseModel

from models.metrics_models import FunnelStage, MetricComparison


class CommissionSplit(NamedTuple):
    setter_payment: float
    closer_payment: float
    total_commissions: float


def safe_float(val, default: float = 0.0) -> float:
    """Safely convert a value to float."""
    if val is None or isinstance(val, bool):
        return default
    try:
        return float(val)
    except (ValueError, TypeError):
        return default


def safe_div(numerator: float, denominator: float, default: float = 0.0) -> float:
    """Zero-safe division."""
    if not denominator:
        return default
    return numerator / denominator


def pct_change(current: float, previous: float) -> float:
    """Percentage change from previous to current.

    0 when both are 0. When only previous is 0 the change is reported as
    100 for a positive current value and -100 for a negative one.
    """
    if previous == 0:
        if current > 0:
            return 100.0
        return -100.0 if current < 0 else 0.0
    return ((current - previous) / previous) * 100


def trend_direction(current: float, previous: float) -> str:
    if current > previous:
        return "up"
    if current < previous:
        return "down"
    return "flat"


def compute_commissions(
    gross_profit: float,
    setter_percentage: float,
    closer_percentage: float,
) -> CommissionSplit:
    """Setter and closer payments as a share of gross profit."""
    setter_payment = (gross_profit or 0) * (setter_percentage or 0) / 100
    closer_payment = (gross_profit or 0) * (closer_percentage or 0) / 100
    return CommissionSplit(setter_payment, closer_payment, setter_payment + closer_payment)


def compose_funnel(stages: Iterable[Tuple[str, float]], labels: Dict[str, str] = None) -> list[FunnelStage]:
    """Attach conversion and drop-off to an ordered stage sequence.

    Stages are treated as strictly linear: each one is compared with the
    stage right before it. The first stage has no conversion rate (None).
    """
    labels = labels or {}
    out: list[FunnelStage] = []
    prev_value = None
    for key, value in stages:
        if prev_value is None:
            conversion = None
            drop_off = None
        else:
            conversion = safe_div(value, prev_value) * 100
            drop_off = 100 - conversion
        out.append(
            FunnelStage(
                key=key,
                label=labels.get(key, key.replace("_", " ").title()),
                value=value,
                conversion_rate=conversion,
                drop_off=drop_off,
            )
        )
        prev_value = value
    return out


def compare_metrics(current: BaseModel, previous: BaseModel) -> Dict[str, MetricComparison]:
    """Compare every numeric scalar field of two results of the same shape."""
    comparisons: Dict[str, MetricComparison] = {}
    for name in type(current).model_fields:
        curr = getattr(current, name)
        prev = getattr(previous, name, 0)
        if isinstance(curr, bool) or not isinstance(curr, (int, float)):
            continue
        prev = prev if isinstance(prev, (int, float)) and not isinstance(prev, bool) else 0
        comparisons[name] = MetricComparison(
            current=curr,
            previous=prev,
            change_pct=round(pct_change(curr, prev), 1),
            direction=trend_direction(curr, prev),
        )
    return comparisons
