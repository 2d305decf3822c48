"""
State Store - the journal, watchlist, narratives and scan history.

One JSON document per state directory. Every mutation loads the whole
document, changes it in memory and writes it back atomically (temp file in
the same directory, then rename), so a reader never sees half a file.

There is no locking: two processes writing at once means the last one wins.
"""

import json
import os
import time
import uuid
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any, Callable, Optional, Union

from moon_agent.config import StateConfig


STATE_VERSION = 1
SCAN_HISTORY_CAP = 50


def _known(cls, data: dict) -> dict:
    names = {f.name for f in fields(cls)}
    return {k: v for k, v in data.items() if k in names}


@dataclass
class JournalEntry:
    id: str
    type: str  # "buy", "sell", "bet"
    chain: str  # "sol", "base", "polygon"
    mint: str
    symbol: str = ""
    amount: Union[float, str, None] = None  # native spent on buys; "all" on full sells
    token_amount: Optional[float] = None
    price: Optional[float] = None
    mcap: Optional[float] = None
    status: str = "open"  # "open", "closed"
    exit_price: Optional[float] = None
    exit_timestamp: Optional[float] = None
    pnl: Optional[float] = None
    pnl_pct: Optional[float] = None
    narratives: list = field(default_factory=list)
    note: Optional[str] = None
    signature: Optional[str] = None
    timestamp: float = field(default_factory=time.time)
    polymarket: Optional[dict] = None

    @property
    def is_open(self) -> bool:
        return self.status == "open"

    @classmethod
    def from_dict(cls, data: dict) -> "JournalEntry":
        return cls(**_known(cls, data))


@dataclass
class WatchlistItem:
    mint: str
    chain: str = "sol"
    symbol: str = ""
    target_buy: Optional[float] = None
    target_sell: Optional[float] = None
    narratives: list = field(default_factory=list)
    price_at_add: Optional[float] = None
    last_price: Optional[float] = None
    last_mcap: Optional[float] = None
    last_holders: Optional[int] = None
    notes: Optional[str] = None
    added_at: float = field(default_factory=time.time)
    last_check: float = 0

    @classmethod
    def from_dict(cls, data: dict) -> "WatchlistItem":
        return cls(**_known(cls, data))


@dataclass
class NarrativeRecord:
    tokens: list = field(default_factory=list)
    notes: str = ""

    @classmethod
    def from_dict(cls, data: dict) -> "NarrativeRecord":
        return cls(**_known(cls, data))


@dataclass
class ScanRecord:
    top_mints: list = field(default_factory=list)
    best_score: float = 0.0
    timestamp: float = field(default_factory=time.time)

    @classmethod
    def from_dict(cls, data: dict) -> "ScanRecord":
        return cls(**_known(cls, data))


@dataclass
class PolyBet:
    condition_id: str
    token_id: Optional[str] = None
    question: str = ""
    outcome: str = "YES"
    amount: float = 0.0
    entry_price: Optional[float] = None
    shares: float = 0.0
    journal_id: Optional[str] = None
    order_id: Optional[str] = None
    status: str = "open"
    tracked_at: float = field(default_factory=time.time)
    resolved_outcome: Optional[str] = None
    won: Optional[bool] = None
    exit_price: Optional[float] = None
    pnl: Optional[float] = None
    pnl_pct: Optional[float] = None
    resolved_at: Optional[float] = None

    @classmethod
    def from_dict(cls, data: dict) -> "PolyBet":
        return cls(**_known(cls, data))


@dataclass
class Config:
    goal_usd: float = 1_000_000
    default_risk_pct: float = 2
    default_stop_loss_pct: float = 20
    last_watch_check: float = 0

    @classmethod
    def from_dict(cls, data: dict) -> "Config":
        return cls(**_known(cls, data))


@dataclass
class StateDocument:
    version: int = STATE_VERSION
    config: Config = field(default_factory=Config)
    journal: list = field(default_factory=list)
    watchlist: list = field(default_factory=list)
    narratives: dict = field(default_factory=dict)
    scan_history: list = field(default_factory=list)
    polymarket_bets: list = field(default_factory=list)
    extra: dict = field(default_factory=dict)  # unknown top-level keys, kept as-is

    def to_dict(self) -> dict:
        data = dict(self.extra)
        data.update({
            "version": self.version,
            "config": asdict(self.config),
            "journal": [asdict(e) for e in self.journal],
            "watchlist": [asdict(w) for w in self.watchlist],
            "narratives": {name: asdict(n) for name, n in self.narratives.items()},
            "scan_history": [asdict(s) for s in self.scan_history],
            "polymarket_bets": [asdict(b) for b in self.polymarket_bets],
        })
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "StateDocument":
        """Defaults fill anything missing; unknown keys ride along in ``extra``."""
        known = {f.name for f in fields(cls)} - {"extra"}
        return cls(
            version=data.get("version", STATE_VERSION),
            config=Config.from_dict(data.get("config") or {}),
            journal=[JournalEntry.from_dict(e) for e in data.get("journal") or []],
            watchlist=[WatchlistItem.from_dict(w) for w in data.get("watchlist") or []],
            narratives={
                name: NarrativeRecord.from_dict(n)
                for name, n in (data.get("narratives") or {}).items()
            },
            scan_history=[ScanRecord.from_dict(s) for s in data.get("scan_history") or []],
            polymarket_bets=[PolyBet.from_dict(b) for b in data.get("polymarket_bets") or []],
            extra={k: v for k, v in data.items() if k not in known},
        )

    def find_entry(self, entry_id: str) -> Optional[JournalEntry]:
        return next((e for e in self.journal if e.id == entry_id), None)

    def find_bet(self, condition_id: str) -> Optional[PolyBet]:
        return next((b for b in self.polymarket_bets if b.condition_id == condition_id), None)


def _apply(record, updates: dict):
    for key, value in updates.items():
        if not hasattr(record, key):
            raise ValueError(f"Unknown field for {type(record).__name__}: {key}")
        setattr(record, key, value)


class StateStore:
    """
    Load/modify/save access to the state document.

    Each public mutator is one self-contained cycle; nothing is held open
    between calls.
    """

    FILENAME = "state.json"

    def __init__(self, state_dir: Optional[Union[str, Path]] = None,
                 config: Optional[StateConfig] = None):
        self.config = config or StateConfig()
        self.state_dir = Path(state_dir) if state_dir else self.config.resolve_dir()

    @property
    def path(self) -> Path:
        return self.state_dir / self.FILENAME

    def load(self) -> StateDocument:
        """Current document. A missing or unreadable file means no prior state."""
        try:
            with open(self.path, encoding="utf-8") as f:
                data = json.load(f)
            if not isinstance(data, dict):
                return StateDocument()
            return StateDocument.from_dict(data)
        except (OSError, ValueError, TypeError, AttributeError):
            return StateDocument()

    def save(self, doc: StateDocument):
        self.state_dir.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_name(self.FILENAME + ".tmp")
        with open(tmp, "w", encoding="utf-8") as f:
            json.dump(doc.to_dict(), f, indent=2)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp, self.path)

    def _mutate(self, fn: Callable[[StateDocument], Any]) -> Any:
        doc = self.load()
        result = fn(doc)
        self.save(doc)
        return result

    # --- Journal -----------------------------------------------------------

    def add_journal_entry(self, type: str, chain: str, mint: str, **details) -> JournalEntry:
        entry = JournalEntry(id=f"j_{uuid.uuid4().hex[:10]}", type=type, chain=chain, mint=mint, **details)
        if not entry.symbol:
            entry.symbol = mint

        def _add(doc):
            doc.journal.append(entry)
            return entry
        return self._mutate(_add)

    def update_journal_entry(self, entry_id: str, **updates) -> Optional[JournalEntry]:
        """Merge ``updates`` into an entry. None (and no write) if the id is unknown."""
        doc = self.load()
        entry = doc.find_entry(entry_id)
        if entry is None:
            return None
        _apply(entry, updates)
        self.save(doc)
        return entry

    def close_journal_entry(self, entry_id: str, exit_price: Optional[float] = None,
                            pnl: Optional[float] = None, pnl_pct: Optional[float] = None,
                            exit_timestamp: Optional[float] = None) -> Optional[JournalEntry]:
        """open -> closed, once. None if the entry is unknown or already closed."""
        doc = self.load()
        entry = doc.find_entry(entry_id)
        if entry is None or not entry.is_open:
            return None
        _apply(entry, {
            "status": "closed",
            "exit_price": exit_price,
            "exit_timestamp": exit_timestamp or time.time(),
            "pnl": pnl,
            "pnl_pct": pnl_pct,
        })
        self.save(doc)
        return entry

    def get_journal(self, status: Optional[str] = None, narrative: Optional[str] = None,
                    last: Optional[int] = None) -> list[JournalEntry]:
        entries = self.load().journal
        if status:
            entries = [e for e in entries if e.status == status]
        if narrative:
            entries = [e for e in entries if narrative in (e.narratives or [])]
        if last:
            entries = entries[-last:]
        return entries

    def get_open_positions(self) -> list[JournalEntry]:
        return self.get_journal(status="open")

    # --- Watchlist ---------------------------------------------------------

    def add_watchlist_item(self, item: WatchlistItem) -> WatchlistItem:
        """Insert, replacing any existing item for the same mint."""
        def _add(doc):
            doc.watchlist = [w for w in doc.watchlist if w.mint != item.mint]
            doc.watchlist.append(item)
            return item
        return self._mutate(_add)

    def remove_watchlist_item(self, mint: str) -> bool:
        doc = self.load()
        remaining = [w for w in doc.watchlist if w.mint != mint]
        if len(remaining) == len(doc.watchlist):
            return False
        doc.watchlist = remaining
        self.save(doc)
        return True

    def get_watchlist(self) -> list[WatchlistItem]:
        return self.load().watchlist

    def refresh_watchlist(self, updates: dict[str, dict], checked_at: Optional[float] = None) -> int:
        """
        Apply fresh price/mcap/holder readings keyed by mint and stamp
        ``config.last_watch_check``. Returns how many items were updated.
        """
        checked_at = checked_at or time.time()

        def _refresh(doc):
            count = 0
            for item in doc.watchlist:
                if item.mint in updates:
                    _apply(item, updates[item.mint])
                    item.last_check = checked_at
                    count += 1
            doc.config.last_watch_check = checked_at
            return count
        return self._mutate(_refresh)

    # --- Narratives --------------------------------------------------------

    def add_narrative(self, name: str, mint: Optional[str] = None,
                      notes: Optional[str] = None) -> NarrativeRecord:
        def _add(doc):
            record = doc.narratives.setdefault(name, NarrativeRecord())
            if mint and mint not in record.tokens:
                record.tokens.append(mint)
            if notes:
                record.notes = notes
            return record
        return self._mutate(_add)

    def get_narratives(self) -> dict[str, NarrativeRecord]:
        return self.load().narratives

    # --- Scan history ------------------------------------------------------

    def add_scan_record(self, top_mints: list[str], best_score: float) -> ScanRecord:
        record = ScanRecord(top_mints=list(top_mints), best_score=best_score)
        cap = self.config.scan_history_cap or SCAN_HISTORY_CAP

        def _add(doc):
            doc.scan_history.append(record)
            doc.scan_history = doc.scan_history[-cap:]
            return record
        return self._mutate(_add)

    # --- Polymarket bets ---------------------------------------------------

    def add_poly_bet(self, bet: PolyBet) -> PolyBet:
        def _add(doc):
            doc.polymarket_bets.append(bet)
            return bet
        return self._mutate(_add)

    def get_poly_bets(self, condition_id: Optional[str] = None,
                      status: Optional[str] = None) -> list[PolyBet]:
        bets = self.load().polymarket_bets
        if condition_id:
            bets = [b for b in bets if b.condition_id == condition_id]
        if status:
            bets = [b for b in bets if b.status == status]
        return bets

    def update_poly_bet(self, condition_id: str, **updates) -> Optional[PolyBet]:
        doc = self.load()
        bet = doc.find_bet(condition_id)
        if bet is None:
            return None
        _apply(bet, updates)
        self.save(doc)
        return bet

    # --- Config ------------------------------------------------------------

    def get_config(self) -> Config:
        return self.load().config

    def update_config(self, **updates) -> Config:
        def _update(doc):
            _apply(doc.config, updates)
            return doc.config
        return self._mutate(_update)
