"""
Journal Analyzer - what the closed trades say about the strategy.

Only closed entries with a known pnl_pct count. Win means pnl_pct > 0.
Streaks are walked in stored order, which is assumed to be chronological.
"""

from dataclasses import asdict, dataclass, field
from typing import Optional

from moon_agent.strategies.sizing import kelly_criterion
from moon_agent.trading.state import JournalEntry


@dataclass
class TradeRef:
    id: str
    symbol: str
    pnl_pct: float
    pnl: Optional[float]


@dataclass
class Streaks:
    current: int = 0  # positive = wins in a row, negative = losses
    best_win: int = 0
    worst_lose: int = 0


@dataclass
class JournalAnalysis:
    total_trades: int = 0
    wins: int = 0
    losses: int = 0
    win_rate: float = 0.0
    avg_win_pct: float = 0.0
    avg_loss_pct: float = 0.0
    avg_pnl_pct: float = 0.0
    total_pnl: float = 0.0
    total_pnl_pct: float = 0.0
    profit_factor: float = 0.0
    best_trade: Optional[TradeRef] = None
    worst_trade: Optional[TradeRef] = None
    kelly_pct: float = 0.0
    half_kelly_pct: float = 0.0
    kelly_recommendation: str = ""
    by_narrative: dict = field(default_factory=dict)
    by_chain: dict = field(default_factory=dict)
    streaks: Streaks = field(default_factory=Streaks)
    message: Optional[str] = None

    @property
    def has_data(self) -> bool:
        return self.total_trades > 0

    def to_dict(self) -> dict:
        if not self.has_data:
            return {
                "total_trades": 0,
                "wins": 0,
                "losses": 0,
                "win_rate": 0.0,
                "avg_pnl_pct": 0.0,
                "message": self.message,
            }
        return asdict(self)


def _ref(entry: JournalEntry) -> TradeRef:
    return TradeRef(id=entry.id, symbol=entry.symbol, pnl_pct=entry.pnl_pct, pnl=entry.pnl)


def compute_streaks(closed: list[JournalEntry]) -> Streaks:
    streaks = Streaks()
    run = 0
    for entry in closed:
        if entry.pnl_pct > 0:
            run = run + 1 if run > 0 else 1
            streaks.best_win = max(streaks.best_win, run)
        else:
            run = run - 1 if run < 0 else -1
            streaks.worst_lose = max(streaks.worst_lose, -run)
    streaks.current = run
    return streaks


def analyze_journal(entries: list[JournalEntry]) -> JournalAnalysis:
    closed = [e for e in entries if e.status == "closed" and e.pnl_pct is not None]
    if not closed:
        return JournalAnalysis(message="No closed trades to analyze")

    wins = [e for e in closed if e.pnl_pct > 0]
    losses = [e for e in closed if e.pnl_pct <= 0]

    avg_win_pct = sum(e.pnl_pct for e in wins) / len(wins) if wins else 0.0
    avg_loss_pct = sum(abs(e.pnl_pct) for e in losses) / len(losses) if losses else 0.0

    total_pnl = sum(e.pnl or 0 for e in closed)
    total_pnl_pct = sum(e.pnl_pct for e in closed)

    gross_profit = sum(e.pnl or 0 for e in wins)
    gross_loss = abs(sum(e.pnl or 0 for e in losses))
    if gross_loss > 0:
        profit_factor = gross_profit / gross_loss
    else:
        profit_factor = float("inf") if gross_profit > 0 else 0.0

    ranked = sorted(closed, key=lambda e: e.pnl_pct, reverse=True)
    win_rate = len(wins) / len(closed)
    kelly = kelly_criterion(win_rate, avg_win_pct, avg_loss_pct)

    by_narrative: dict[str, dict] = {}
    for e in closed:
        for tag in e.narratives or []:
            bucket = by_narrative.setdefault(tag, {"trades": 0, "wins": 0, "total_pnl_pct": 0.0})
            bucket["trades"] += 1
            bucket["wins"] += 1 if e.pnl_pct > 0 else 0
            bucket["total_pnl_pct"] += e.pnl_pct
    for bucket in by_narrative.values():
        bucket["win_rate"] = bucket["wins"] / bucket["trades"]
        bucket["avg_pnl_pct"] = bucket["total_pnl_pct"] / bucket["trades"]

    by_chain: dict[str, dict] = {}
    for e in closed:
        bucket = by_chain.setdefault(e.chain or "unknown", {"trades": 0, "wins": 0, "total_pnl": 0.0})
        bucket["trades"] += 1
        bucket["wins"] += 1 if e.pnl_pct > 0 else 0
        bucket["total_pnl"] += e.pnl or 0

    return JournalAnalysis(
        total_trades=len(closed),
        wins=len(wins),
        losses=len(losses),
        win_rate=win_rate,
        avg_win_pct=avg_win_pct,
        avg_loss_pct=avg_loss_pct,
        avg_pnl_pct=total_pnl_pct / len(closed),
        total_pnl=total_pnl,
        total_pnl_pct=total_pnl_pct,
        profit_factor=profit_factor,
        best_trade=_ref(ranked[0]),
        worst_trade=_ref(ranked[-1]),
        kelly_pct=kelly["kelly_pct"],
        half_kelly_pct=kelly["half_kelly_pct"],
        kelly_recommendation=kelly["recommendation"],
        by_narrative=by_narrative,
        by_chain=by_chain,
        streaks=compute_streaks(closed),
    )
