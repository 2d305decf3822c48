"""CLI contract: one JSON object on stdout, JSON errors on stderr with exit 1."""
import pytest
from click.testing import CliRunner

from moon_agent.agent import MoonAgent
from moon_agent.cli import cli

from tests.conftest import MINT, payload


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def agent(config, store, jupiter):
    return MoonAgent(config, store, jupiter=jupiter)


class TestCalc:
    def test_size_json(self, runner, agent):
        result = runner.invoke(cli, ["calc", "size", "10000", "2", "1.0", "--stop-loss", "0.8"], obj=agent)
        assert result.exit_code == 0
        data = payload(result.output)
        assert data["command"] == "calc size"
        assert data["position_size"] == pytest.approx(1000)
        assert data["kelly_info"] is None

    def test_target_error_is_data_not_failure(self, runner, agent):
        result = runner.invoke(cli, ["calc", "target", "0", "1000", "100"], obj=agent)
        assert result.exit_code == 0
        assert payload(result.output)["error"] == "Invalid price"


class TestErrors:
    def test_scan_without_helius_key(self, runner, agent):
        result = runner.invoke(cli, ["scan", "--limit", "3"], obj=agent)
        assert result.exit_code == 1
        data = payload(result.output)
        assert data["error"] is True
        assert data["missing"] == "HELIUS_API_KEY"
        assert "HELIUS_API_KEY" in data["message"]

    def test_scan_base_is_rejected(self, runner, agent):
        result = runner.invoke(cli, ["scan", "base"], obj=agent)
        assert result.exit_code == 1
        assert "Solana-only" in payload(result.output)["message"]

    def test_buy_without_bankr_key(self, runner, agent):
        result = runner.invoke(cli, ["buy", "sol", MINT, "0.1"], obj=agent)
        assert result.exit_code == 1
        assert payload(result.output)["missing"] == "BANKR_API_KEY"

    def test_closing_unknown_entry(self, runner, agent):
        result = runner.invoke(cli, ["journal", "close", "j_nope", "1.0"], obj=agent)
        assert result.exit_code == 1
        assert "j_nope" in payload(result.output)["message"]


class TestJournalFlow:
    def test_add_then_show(self, runner, agent):
        result = runner.invoke(cli, ["journal", "add", "buy", "solana", MINT, "100", "0.5", "--narrative", "ai"], obj=agent)
        assert result.exit_code == 0
        assert payload(result.output)["entry"]["chain"] == "sol"

        result = runner.invoke(cli, ["journal", "--status", "open"], obj=agent)
        data = payload(result.output)
        assert data["count"] == 1
        assert data["entries"][0]["symbol"] == "MOON"

    def test_review_renders_infinite_profit_factor(self, runner, agent, store):
        entry = store.add_journal_entry("buy", "sol", MINT, price=1.0, token_amount=10)
        store.close_journal_entry(entry.id, exit_price=2.0, pnl=10, pnl_pct=100)
        result = runner.invoke(cli, ["journal", "review"], obj=agent)
        assert result.exit_code == 0
        assert payload(result.output)["profit_factor"] == "Infinity"


class TestWatchAndConfig:
    def test_watch_defaults_to_list(self, runner, agent):
        result = runner.invoke(cli, ["watch"], obj=agent)
        assert payload(result.output)["message"] == "Watchlist is empty"

    def test_watch_add_and_remove(self, runner, agent):
        runner.invoke(cli, ["watch", "add", MINT, "--target-sell", "2.0"], obj=agent)
        result = runner.invoke(cli, ["watch", "remove", MINT], obj=agent)
        assert payload(result.output)["success"] is True

    def test_config_update(self, runner, agent):
        result = runner.invoke(cli, ["config", "--goal-usd", "250000"], obj=agent)
        assert payload(result.output)["config"]["goal_usd"] == 250000
