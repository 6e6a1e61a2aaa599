"""
Tests for the CLI interface.
"""
import os

import pytest
import yaml
from typer.testing import CliRunner

from marketplace_finance.cli.main import app, EXIT_CODE_OK, EXIT_CODE_FAIL

runner = CliRunner()


@pytest.fixture
def db_path(tmp_path):
    """Create an initialized database for wallet commands."""
    path = str(tmp_path / "cli.db")
    result = runner.invoke(app, ["--db", path, "init"])
    assert result.exit_code == EXIT_CODE_OK
    return path


def invoke(db_path, *args):
    return runner.invoke(app, ["--db", db_path, *args])


class TestCalculatorCommands:
    """Test the stateless calculator commands."""

    def test_price_breakdown(self):
        """Test the price table for a VAT-registered vendor."""
        result = runner.invoke(
            app, ["price", "500", "--category", "home-decor-fragile", "--vat-registered"]
        )

        assert result.exit_code == EXIT_CODE_OK
        assert "Price Breakdown" in result.output
        assert "723.90" in result.output
        assert "570.00" in result.output
        assert "Commission rate: 25.00%" in result.output
        assert "Friendly price: 725.00" in result.output
        assert "Category band: 25.00% to 30.00% (high risk)" in result.output

    def test_price_unknown_category(self):
        """Test that an unknown category fails cleanly."""
        result = runner.invoke(app, ["price", "500", "--category", "spaceships"])
        assert result.exit_code == EXIT_CODE_FAIL
        assert "unknown category" in result.output

    def test_price_with_config(self, tmp_path):
        """Test that --config replaces the policy."""
        config_path = tmp_path / "policy.yaml"
        config_path.write_text(yaml.dump({
            "policy": {"vat_rate": "0.10"},
            "categories": {"ceramics": {"default_uplift_rate": 0.25}},
        }))

        result = runner.invoke(
            app, ["--config", str(config_path), "price", "500", "--category", "ceramics",
                  "--vat-registered"]
        )

        assert result.exit_code == EXIT_CODE_OK
        # 500 + 50 + 135 + 13.50
        assert "698.50" in result.output

    def test_invalid_config(self, tmp_path):
        """Test that a bad config file exits with failure."""
        config_path = tmp_path / "policy.yaml"
        config_path.write_text(yaml.dump({"budget": {"daily": 10}}))

        result = runner.invoke(app, ["--config", str(config_path), "price", "500",
                                     "--category", "ceramics"])

        assert result.exit_code == EXIT_CODE_FAIL
        assert "Invalid policy configuration" in result.output

    def test_escrow_released(self):
        """Test an old delivery is reported as released."""
        result = runner.invoke(app, ["escrow", "2024-01-01T00:00:00+00:00"])
        assert result.exit_code == EXIT_CODE_OK
        assert "Release date: 2024-01-15T00:00:00+00:00" in result.output
        assert "Released" in result.output

    def test_deviation_flagged(self):
        """Test a price 30% above benchmark is flagged."""
        result = runner.invoke(app, ["deviation", "130", "100"])
        assert result.exit_code == EXIT_CODE_OK
        assert "Deviation: 30.00%" in result.output
        assert "FLAGGED (above benchmark)" in result.output

    def test_deviation_invalid_benchmark(self):
        """Test a zero benchmark fails cleanly."""
        result = runner.invoke(app, ["deviation", "130", "0"])
        assert result.exit_code == EXIT_CODE_FAIL
        assert "Error" in result.output

    def test_shipping(self):
        """Test the shipping fee output."""
        result = runner.invoke(app, [
            "shipping", "--weight", "3", "--length", "10", "--width", "10",
            "--height", "10", "--base-rate", "30", "--per-kg-rate", "10",
        ])
        assert result.exit_code == EXIT_CODE_OK
        assert "Total fee: 50.00" in result.output
        assert "Customer fee: 40.00" in result.output


class TestWalletCommands:
    """Test wallet and ledger commands against a real database."""

    def test_init_creates_database(self, db_path):
        """Test that init creates the database file."""
        assert os.path.exists(db_path)

    def test_payout_flow(self, db_path):
        """Test funding a wallet and paying out."""
        assert invoke(db_path, "open-wallet", "vendor_1").exit_code == EXIT_CODE_OK

        result = invoke(db_path, "record", "vendor_1", "--type", "sale",
                        "--status", "available", "--amount", "600")
        assert result.exit_code == EXIT_CODE_OK
        assert "Recorded entry" in result.output

        result = invoke(db_path, "payout", "vendor_1", "500")
        assert result.exit_code == EXIT_CODE_OK
        assert "Payout recorded as entry" in result.output

        result = invoke(db_path, "wallet", "vendor_1")
        assert result.exit_code == EXIT_CODE_OK
        assert "100.00" in result.output
        assert "600.00" in result.output

        result = invoke(db_path, "ledger", "vendor_1")
        assert result.exit_code == EXIT_CODE_OK
        assert "payout" in result.output
        assert "-500.00" in result.output

    def test_payout_insufficient_balance(self, db_path):
        """Test that an overdraw exits with failure."""
        invoke(db_path, "open-wallet", "vendor_1")
        invoke(db_path, "record", "vendor_1", "--type", "sale",
               "--status", "available", "--amount", "50")

        result = invoke(db_path, "payout", "vendor_1", "600")

        assert result.exit_code == EXIT_CODE_FAIL
        assert "Insufficient available balance" in result.output

    def test_release_escrow(self, db_path):
        """Test moving pending funds to available."""
        invoke(db_path, "open-wallet", "vendor_1")
        invoke(db_path, "record", "vendor_1", "--type", "sale",
               "--status", "pending", "--amount", "300")

        result = invoke(db_path, "release", "vendor_1", "300",
                        "--delivered-on", "2024-01-01T00:00:00+00:00")

        assert result.exit_code == EXIT_CODE_OK
        assert "Released 300.00" in result.output

    def test_duplicate_wallet(self, db_path):
        """Test that opening a wallet twice fails."""
        invoke(db_path, "open-wallet", "vendor_1")
        result = invoke(db_path, "open-wallet", "vendor_1")
        assert result.exit_code == EXIT_CODE_FAIL
        assert "already exists" in result.output

    def test_unknown_wallet(self, db_path):
        """Test showing a wallet that was never opened."""
        result = invoke(db_path, "wallet", "ghost")
        assert result.exit_code == EXIT_CODE_FAIL

    def test_empty_ledger(self, db_path):
        """Test the ledger message for a vendor with no entries."""
        result = invoke(db_path, "ledger", "vendor_1")
        assert result.exit_code == EXIT_CODE_OK
        assert "No ledger entries" in result.output

    def test_record_zero_amount_rejected(self, db_path):
        """Test that a zero-amount entry is refused."""
        invoke(db_path, "open-wallet", "vendor_1")

        result = invoke(db_path, "record", "vendor_1", "--type", "sale",
                        "--status", "pending", "--amount", "0")

        assert result.exit_code == EXIT_CODE_FAIL
        assert "cannot be zero" in result.output
