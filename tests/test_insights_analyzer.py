"""Tests for the insight labels."""

import pytest

from models.metrics_models import FinancialMetrics, FunnelStage, LeadFunnelMetrics, PipelineMetrics
from scripts.insights_analyzer import InsightsAnalyzer


@pytest.fixture
def insights():
    return InsightsAnalyzer()


class TestFinancialInsights:
    @pytest.mark.parametrize("overdue, expected", [
        (0, "Excellent"),
        (10, "Good"),
        (20, "Fair"),
        (50, "Poor"),
    ])
    def test_cash_flow_health(self, insights, overdue, expected):
        metrics = FinancialMetrics(total_receivables=100, overdue_receivables=overdue)
        assert insights.cash_flow_health(metrics)["status"] == expected

    @pytest.mark.parametrize("margin, expected", [
        (45, "Excellent"),
        (25, "Good"),
        (15, "Fair"),
        (5, "Poor"),
        (-10, "Loss"),
    ])
    def test_profitability_health(self, insights, margin, expected):
        assert insights.profitability_health(FinancialMetrics(profit_margin=margin))["status"] == expected

    def test_no_receivables_is_excellent(self, insights):
        assert insights.cash_flow_health(FinancialMetrics())["status"] == "Excellent"

    def test_top_offer_and_commission_rate(self, insights):
        metrics = FinancialMetrics(
            total_income=1000,
            total_commissions=250,
            income_by_offer={"Coaching": 700, "Workshop": 300},
        )
        result = insights.financial(metrics)
        assert result["top_offer"] == "Coaching"
        assert result["top_expense_type"] == "No expenses"
        assert result["commission_rate"] == 25

    def test_thresholds_come_from_config(self):
        config = {"health_thresholds": {
            "cash_flow": {"excellent": 0.5, "good": 0.6, "fair": 0.7},
            "profitability": {"excellent": 90, "good": 80, "fair": 70},
        }}
        analyzer = InsightsAnalyzer(config)
        metrics = FinancialMetrics(total_receivables=100, overdue_receivables=40, profit_margin=45)
        assert analyzer.cash_flow_health(metrics)["status"] == "Excellent"
        assert analyzer.profitability_health(metrics)["status"] == "Poor"


class TestPipelineInsights:
    def test_top_performing_stage(self, insights):
        assert insights.top_performing_stage(PipelineMetrics(contract_signed=1)) == "Closing"
        assert insights.top_performing_stage(PipelineMetrics(negotiation=2)) == "Negotiation"
        assert insights.top_performing_stage(PipelineMetrics()) == "Discovery"

    def test_needs_attention_stage(self, insights):
        assert insights.needs_attention_stage(PipelineMetrics(proposal_sent=3, negotiation=2, contract_signed=1)) == "Negotiation"
        assert insights.needs_attention_stage(PipelineMetrics(proposal_sent=3)) == "Proposal Follow-up"
        assert insights.needs_attention_stage(PipelineMetrics(negotiation=1)) == "Closing"
        assert insights.needs_attention_stage(PipelineMetrics()) == "Lead Generation"


class TestLeadInsights:
    def test_biggest_drop_off(self, insights):
        metrics = LeadFunnelMetrics(
            leads_by_source={"Referral": 3},
            funnel=[
                FunnelStage(key="a", label="A", value=10),
                FunnelStage(key="b", label="B", value=8, conversion_rate=80, drop_off=20),
                FunnelStage(key="c", label="C", value=2, conversion_rate=25, drop_off=75),
            ],
        )
        result = insights.leads(metrics)
        assert result["top_source"] == "Referral"
        assert result["biggest_drop_off_stage"] == "C"
        assert result["biggest_drop_off"] == 75

    def test_empty_funnel(self, insights):
        result = insights.leads(LeadFunnelMetrics())
        assert result["biggest_drop_off_stage"] is None
        assert result["top_source"] == "No leads"


class TestAnalyze:
    def test_sections(self, insights):
        result = insights.analyze(FinancialMetrics(), LeadFunnelMetrics(), PipelineMetrics())
        assert set(result) == {"financial", "leads", "pipeline"}
