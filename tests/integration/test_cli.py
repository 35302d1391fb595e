"""
Integration tests for the command line interface against the local store.
"""
import json

import pytest
from click.testing import CliRunner

from main import cli
from receiving.builder import GRNBuilder
from receiving.errors import DataIntegrityError


@pytest.fixture
def runner(monkeypatch):
    monkeypatch.delenv("RECEIVING_API_URL", raising=False)
    monkeypatch.delenv("REQUIRE_BRAND", raising=False)
    return CliRunner()


@pytest.fixture
def store(runner, temp_dir, sample_po_csv, sample_po_lines_csv):
    """Local store loaded from the sample CSVs; returns the --db argument list."""
    db_args = ["--db", str(temp_dir / "cli.db")]
    result = runner.invoke(cli, db_args + [
        "load-pos", "--po-csv", str(sample_po_csv), "--po-lines-csv", str(sample_po_lines_csv),
    ])
    assert result.exit_code == 0, result.output
    assert "Loaded 3 purchase orders" in result.output
    return db_args


@pytest.mark.integration
class TestCli:

    def test_show(self, runner, store):
        result = runner.invoke(cli, store + ["show", "PO-2024-001"])

        assert result.exit_code == 0, result.output
        assert "ORDERED" in result.output
        assert "4/16 received, 12 remaining" in result.output

    def test_show_unknown_po(self, runner, store):
        result = runner.invoke(cli, store + ["show", "PO-NOPE"])
        assert result.exit_code == 1

    def test_receive_generate_and_link_invoice(self, runner, store):
        result = runner.invoke(cli, store + [
            "receive", "PO-2024-001", "--qty", "11=7", "--generate", "--date", "2024-01-25",
            "--driver", "Otieno",
        ])

        assert result.exit_code == 0, result.output
        assert "quantity 7 clamped to 6" in result.output
        assert "GRN-20240125-0001 created" in result.output
        assert "PARTIALLY_RECEIVED" in result.output

        result = runner.invoke(cli, store + ["grns", "--po", "PO-2024-001"])
        assert "GRN-20240125-0001" in result.output
        assert "6 units" in result.output

        result = runner.invoke(cli, store + ["link-invoice", "GRN-20240125-0001", "--invoice", "INV-88"])
        assert result.exit_code == 0, result.output
        assert "invoice INV-88" in result.output

        result = runner.invoke(cli, store + ["link-invoice", "GRN-20240125-0001", "--invoice", "INV-89"])
        assert result.exit_code == 1
        assert "already invoiced" in result.output

    def test_receive_with_typed_serials(self, runner, store):
        result = runner.invoke(cli, store + [
            "receive", "2", "--qty", "21=2", "--serials", "21=ret-1,ret-2", "--condition", "21=damaged",
            "--date", "2024-01-26",
        ])

        assert result.exit_code == 0, result.output
        assert "GRN-20240126-0001 created" in result.output
        assert "FULLY_RECEIVED" in result.output

    def test_dry_run_commits_nothing(self, runner, store):
        result = runner.invoke(cli, store + [
            "receive", "PO-2024-001", "--all", "--generate", "--date", "2024-01-25", "--dry-run",
        ])

        assert result.exit_code == 0, result.output
        payload = json.loads(result.output[result.output.index("{"):result.output.rindex("}") + 1])
        assert payload["po_id"] == 1
        assert sum(item["quantity_received"] for item in payload["items"]) == 12
        assert "FULLY_RECEIVED" in result.output

        result = runner.invoke(cli, store + ["grns"])
        assert "No GRNs found." in result.output

    def test_missing_serials_rejected(self, runner, store):
        result = runner.invoke(cli, store + ["receive", "PO-2024-001", "--qty", "12=2"])

        assert result.exit_code == 1
        assert "SERIAL_COUNT_MISMATCH" in result.output

    def test_cancelled_order_rejected(self, runner, store):
        result = runner.invoke(cli, store + ["receive", "PO-2024-003", "--all", "--generate"])

        assert result.exit_code == 1
        assert "ORDER_NOT_RECEIVABLE" in result.output

    def test_build_failure_reported_without_traceback(self, runner, store, monkeypatch):
        def failing_build(self, order, header, drafts):
            raise DataIntegrityError("Received quantity (7) exceeds ordered quantity (6)", 6, 7)

        monkeypatch.setattr(GRNBuilder, "build", failing_build)
        result = runner.invoke(cli, store + [
            "receive", "PO-2024-001", "--qty", "12=1", "--serials", "12=X1", "--date", "2024-01-25",
        ])

        assert result.exit_code == 1
        assert result.exception is None or isinstance(result.exception, SystemExit)
        assert "Error: Received quantity (7) exceeds ordered quantity (6)" in result.output

        result = runner.invoke(cli, store + ["grns"])
        assert "No GRNs found." in result.output

    def test_bad_pair_syntax(self, runner, store):
        result = runner.invoke(cli, store + ["receive", "PO-2024-001", "--qty", "eleven"])
        assert result.exit_code != 0
