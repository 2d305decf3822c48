import math

import pytest

from moon_agent.trading.journal import analyze_journal, compute_streaks
from moon_agent.trading.state import JournalEntry


def closed(n, pnl_pct, pnl=None, chain="sol", narratives=None):
    return JournalEntry(
        id=f"j_{n}", type="buy", chain=chain, mint=f"mint{n}", symbol=f"T{n}",
        status="closed", pnl_pct=pnl_pct, pnl=pnl if pnl is not None else pnl_pct,
        narratives=narratives or [],
    )


@pytest.fixture
def history():
    # W L W L L in stored order
    return [
        closed(1, 50, narratives=["ai", "memes"]),
        closed(2, -20, chain="base", narratives=["ai"]),
        closed(3, 10),
        closed(4, -5, chain="base"),
        closed(5, -5),
    ]


class TestAnalyzeJournal:
    def test_counts_and_rates(self, history):
        a = analyze_journal(history)
        assert a.total_trades == 5
        assert a.wins == 2
        assert a.losses == 3
        assert a.win_rate == pytest.approx(0.4)
        assert a.avg_win_pct == pytest.approx(30)
        assert a.avg_loss_pct == pytest.approx(10)
        assert a.avg_pnl_pct == pytest.approx(6)
        assert a.total_pnl == pytest.approx(30)
        assert a.total_pnl_pct == pytest.approx(30)

    def test_profit_factor_from_absolute_pnl(self, history):
        assert analyze_journal(history).profit_factor == pytest.approx(2.0)

    def test_best_and_worst(self, history):
        a = analyze_journal(history)
        assert a.best_trade.id == "j_1"
        assert a.worst_trade.id == "j_2"

    def test_kelly_from_history(self, history):
        """W=0.4, R=30/10=3 -> 20% Kelly, 10% half-Kelly."""
        a = analyze_journal(history)
        assert a.kelly_pct == pytest.approx(20)
        assert a.half_kelly_pct == pytest.approx(10)

    def test_narrative_buckets_count_multi_tag_trades_everywhere(self, history):
        by = analyze_journal(history).by_narrative
        assert by["ai"]["trades"] == 2
        assert by["ai"]["wins"] == 1
        assert by["ai"]["win_rate"] == pytest.approx(0.5)
        assert by["ai"]["avg_pnl_pct"] == pytest.approx(15)
        assert by["memes"]["trades"] == 1

    def test_chain_buckets(self, history):
        by = analyze_journal(history).by_chain
        assert by["sol"] == {"trades": 3, "wins": 2, "total_pnl": pytest.approx(55)}
        assert by["base"]["trades"] == 2
        assert by["base"]["total_pnl"] == pytest.approx(-25)

    def test_streaks_in_stored_order(self, history):
        s = analyze_journal(history).streaks
        assert s.current == -2
        assert s.best_win == 1
        assert s.worst_lose == 2

    def test_open_and_unpriced_entries_are_ignored(self, history):
        extra = [
            JournalEntry(id="open", type="buy", chain="sol", mint="m"),
            JournalEntry(id="nopnl", type="sell", chain="sol", mint="m", status="closed"),
        ]
        assert analyze_journal(history + extra).total_trades == 5


class TestEdgeCases:
    def test_no_closed_trades(self):
        a = analyze_journal([JournalEntry(id="x", type="buy", chain="sol", mint="m")])
        assert a.total_trades == 0
        assert a.to_dict()["message"] == "No closed trades to analyze"

    def test_only_wins_means_infinite_profit_factor(self):
        a = analyze_journal([closed(1, 10), closed(2, 20)])
        assert math.isinf(a.profit_factor)
        assert a.kelly_pct == 0.0

    def test_flat_trades_have_zero_profit_factor(self):
        """A zero return counts as a loss, but with no money made or lost the factor is 0."""
        a = analyze_journal([closed(1, 0, pnl=0)])
        assert a.losses == 1
        assert a.profit_factor == 0.0

    def test_winning_streak(self):
        s = compute_streaks([closed(1, -1), closed(2, 5), closed(3, 5), closed(4, 5)])
        assert s.current == 3
        assert s.best_win == 3
        assert s.worst_lose == 1

    def test_to_dict_is_serializable_shape(self, history):
        data = analyze_journal(history).to_dict()
        assert data["best_trade"]["symbol"] == "T1"
        assert data["streaks"] == {"current": -2, "best_win": 1, "worst_lose": 2}
