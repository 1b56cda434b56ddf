"""End-to-end tests for the CRM metrics runner and CLI."""

import json
from unittest.mock import patch

import pytest

from scripts.crm_metrics_analyzer import load_export, load_records, main, run_crm_analysis
from scripts.lib.errors import DataFetchError, SchemaValidationError
from scripts.lib.periods import WINDOW_KEYS

CLEAN_ENV = {"METRICS_WEEK_START": "", "METRICS_TREND_MONTHS": ""}


@pytest.fixture
def export(make_cash_entry, make_expense, make_lead, make_deal):
    return {
        "cash_entries": [
            make_cash_entry(id="a", income=100, offer_id="o1", setter_id="u1", setter_payment=10),
            make_cash_entry(id="b", income=200, status="Canceled", due_date="2026-10-12"),
        ],
        "expenses": [make_expense(amount=30)],
        "leads": [make_lead(status="closed_won"), make_lead(status="closed_lost")],
        "deals": [make_deal(stage="proposal_sent", deal_value=2000)],
        "offers": [{"id": "o1", "name": "Coaching"}],
        "users": [{"id": "u1", "full_name": "Sam Setter"}],
    }


class TestLoadRecords:
    def test_missing_collections_are_empty(self):
        records = load_records({"cash_entries": [{"income": 5}]})
        assert len(records["cash_entries"]) == 1
        assert records["deals"] == []

    def test_invalid_row_names_collection_and_index(self, make_lead):
        data = {"leads": [make_lead(), make_lead(status="bogus")]}
        with pytest.raises(SchemaValidationError) as exc:
            load_records(data)
        assert exc.value.details == {"collection": "leads", "index": 1}
        assert exc.value.code == "SCHEMA_INVALID"

    def test_non_list_follow_ups_is_a_schema_error(self):
        with pytest.raises(SchemaValidationError) as exc:
            load_records({"leads": [{"follow_ups_completed": 5}]})
        assert exc.value.details == {"collection": "leads", "index": 0}

    def test_amount_invariants_are_schema_errors(self, make_cash_entry, make_lead):
        with pytest.raises(SchemaValidationError) as exc:
            load_records({"cash_entries": [make_cash_entry(income=100, gross_profit=500)]})
        assert exc.value.details["collection"] == "cash_entries"

        with pytest.raises(SchemaValidationError) as exc:
            load_records({"leads": [make_lead(revenue_generated=10, cash_collected=1000)]})
        assert exc.value.details["collection"] == "leads"

    def test_collection_must_be_list(self):
        with pytest.raises(SchemaValidationError):
            load_records({"deals": {"id": "x"}})

    def test_root_must_be_object(self):
        with pytest.raises(SchemaValidationError):
            load_records([])


class TestLoadExport:
    def test_newest_dated_export_wins(self, tmp_path):
        (tmp_path / "crm_export_2026-10-01.json").write_text(json.dumps({"deals": []}))
        (tmp_path / "crm_export_2026-10-18.json").write_text(json.dumps({"deals": [{"deal_value": 7}]}))
        config = {"paths": {"raw_dir": str(tmp_path), "export_prefix": "crm_export"}}
        records = load_export(config=config)
        assert records["deals"][0].deal_value == 7

    def test_no_export_gives_empty_records(self, tmp_path):
        config = {"paths": {"raw_dir": str(tmp_path), "export_prefix": "crm_export"}}
        assert load_export(config=config)["leads"] == []

    def test_missing_file_raises(self, tmp_path):
        with pytest.raises(DataFetchError):
            load_export(tmp_path / "missing.json")


class TestRunCrmAnalysis:
    def test_output_shape(self, now, export):
        output = run_crm_analysis(load_records(export), now)

        assert output["now"] == now.isoformat()
        assert output["record_counts"]["cash_entries"] == 2
        for family in ("financial", "leads", "pipeline"):
            assert set(output[family]) == set(WINDOW_KEYS)
            assert set(output["comparisons"][family]) == set(WINDOW_KEYS)
        assert set(output["insights"]) == set(WINDOW_KEYS)

    def test_values_flow_through(self, now, export):
        output = run_crm_analysis(load_records(export), now)
        month = output["financial"]["thisMonth"]["current"]

        assert month["total_income"] == 300
        assert month["income_by_offer"] == {"Coaching": 100, "No Offer": 200}
        assert month["commissions_by_setter"] == {"Sam Setter": 10}
        assert output["leads"]["thisMonth"]["current"]["win_rate"] == 50
        assert output["pipeline"]["allTime"]["current"]["proposal_sent"] == 1
        assert output["receivables"]["overdue_amount"] == 200
        assert output["comparisons"]["financial"]["thisMonth"]["total_income"]["change_pct"] == 100
        assert output["insights"]["thisMonth"]["financial"]["top_offer"] == "No Offer"

    def test_empty_records(self, now):
        output = run_crm_analysis({}, now)
        assert output["financial"]["allTime"]["current"]["total_income"] == 0
        assert output["comparisons"]["pipeline"]["today"]["total_deals"]["direction"] == "flat"


class TestMain:
    def test_writes_metrics_file(self, tmp_path, export):
        input_path = tmp_path / "export.json"
        input_path.write_text(json.dumps(export))
        out_dir = tmp_path / "out"

        with patch.dict("os.environ", CLEAN_ENV, clear=False):
            code = main(["--input", str(input_path), "--output-dir", str(out_dir), "--now", "2026-10-19T15:30:00Z"])

        assert code == 0
        output = json.loads((out_dir / "crm_metrics.json").read_text())
        assert output["now"].startswith("2026-10-19T15:30:00")
        assert output["config_used"]["week_start"] == "sunday"
        assert output["financial"]["thisMonth"]["current"]["total_income"] == 300

    def test_schema_error_exits_non_zero(self, tmp_path):
        input_path = tmp_path / "export.json"
        input_path.write_text(json.dumps({"deals": [{"probability": 500}]}))
        with patch.dict("os.environ", CLEAN_ENV, clear=False):
            code = main(["--input", str(input_path), "--output-dir", str(tmp_path)])
        assert code == 1
        assert not (tmp_path / "crm_metrics.json").exists()

    def test_bad_now_is_rejected(self):
        with pytest.raises(SystemExit):
            main(["--now", "not-a-time"])
