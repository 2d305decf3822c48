"""
The Agent - every moon command's body lives here.

The CLI parses arguments and prints; MoonAgent does the work and returns
plain dicts ready to be dumped as JSON. Providers are created lazily so a
command only needs the keys for the services it actually touches.
"""

import asyncio
import time
from contextlib import asynccontextmanager
from dataclasses import asdict
from datetime import datetime, timezone
from typing import Optional

from moon_agent.concurrency import run_bounded
from moon_agent.config import MoonConfig
from moon_agent.console import log, warn
from moon_agent.errors import InvalidInputError, MoonError, PreconditionError
from moon_agent.markets.bankr import BankrClient, build_buy_prompt, build_sell_prompt
from moon_agent.markets.base_chain import BaseChainClient
from moon_agent.markets.helius import HeliusClient
from moon_agent.markets.http import new_session
from moon_agent.markets.jupiter import JupiterClient, TokenListing
from moon_agent.markets.polymarket import PolymarketClient, PolymarketMarket, PolymarketSession
from moon_agent.markets.solana_rpc import WSOL
from moon_agent.strategies.scanner import scan_new_tokens
from moon_agent.strategies.sizing import (
    goal_progress,
    kelly_criterion,
    position_size,
    required_mcap,
    target_position,
)
from moon_agent.trading.journal import analyze_journal
from moon_agent.trading.state import JournalEntry, PolyBet, StateStore, WatchlistItem


BIG_MOVE_PCT = 30.0
HOLDER_DROP_RATIO = 0.8
KELLY_MIN_TRADES = 5
QUESTION_SYMBOL_LEN = 60


def iso(ts: Optional[float]) -> Optional[str]:
    if not ts:
        return None
    return datetime.fromtimestamp(ts, tz=timezone.utc).isoformat()


def pct_text(value: Optional[float]) -> Optional[str]:
    return f"{value:.2f}%" if value is not None else None


def change_pct(start: Optional[float], end: Optional[float]) -> Optional[float]:
    if not start or not end or start <= 0:
        return None
    return (end - start) / start * 100


def watch_alerts(item: WatchlistItem, price: float, holders: Optional[int]) -> list[dict]:
    """Alerts for one watched token given a fresh price and holder count."""
    alerts = []
    base = {"symbol": item.symbol, "mint": item.mint}

    if item.target_buy and price <= item.target_buy:
        alerts.append({"type": "target_buy_hit", **base, "price": price, "target": item.target_buy})
    if item.target_sell and price >= item.target_sell:
        alerts.append({"type": "target_sell_hit", **base, "price": price, "target": item.target_sell})

    move = change_pct(item.last_price or item.price_at_add, price)
    if move is not None and abs(move) >= BIG_MOVE_PCT:
        alerts.append({
            "type": "big_move", **base,
            "move_pct": pct_text(move),
            "from": item.last_price or item.price_at_add,
            "to": price,
        })

    if item.last_holders and holders and holders < item.last_holders * HOLDER_DROP_RATIO:
        alerts.append({"type": "holder_drop", **base, "was": item.last_holders, "now": holders})

    return alerts


def resolve_bet(bet: PolyBet, yes_price: Optional[float], resolved_price: float = 0.95) -> dict:
    """Outcome and P&L of a bet on a closed market. Winning shares pay out 1.0 each."""
    resolved_outcome = "YES" if (yes_price or 0) >= resolved_price else "NO"
    won = bet.outcome == resolved_outcome
    pnl = bet.shares - bet.amount if won else -bet.amount
    return {
        "resolved_outcome": resolved_outcome,
        "won": won,
        "exit_price": 1.0 if won else 0.0,
        "pnl": pnl,
        "pnl_pct": (pnl / bet.amount) * 100 if bet.amount > 0 else 0.0,
    }


class MoonAgent:
    """
    Orchestrates journal, watchlist, calculators, scanning and trading.

    Provider clients (``jupiter``, ``helius``, ``bankr``, ``polymarket``,
    ``base_chain``) can be passed in; otherwise the real ones are built on
    first use.
    """

    def __init__(self, config: Optional[MoonConfig] = None, store: Optional[StateStore] = None,
                 jupiter=None, bankr=None, polymarket=None, base_chain=None, helius=None):
        self.config = config or MoonConfig()
        self.store = store or StateStore(config=self.config.state)
        self._jupiter_client = jupiter
        self._bankr = bankr
        self._polymarket = polymarket
        self._base_chain = base_chain
        self._helius_client = helius

    # --- Providers ---------------------------------------------------------

    @property
    def bankr(self) -> BankrClient:
        if self._bankr is None:
            self._bankr = BankrClient(self.config)
        return self._bankr

    @property
    def polymarket(self) -> PolymarketClient:
        if self._polymarket is None:
            self._polymarket = PolymarketClient(self.config)
        return self._polymarket

    @property
    def base_chain(self) -> BaseChainClient:
        if self._base_chain is None:
            self._base_chain = BaseChainClient(self.config)
        return self._base_chain

    def polymarket_session(self) -> PolymarketSession:
        return PolymarketSession(self.config, self.store.state_dir / "polymarket-creds.json")

    @asynccontextmanager
    async def _jupiter(self):
        if self._jupiter_client is not None:
            yield self._jupiter_client
            return
        async with new_session(self.config.scanner.request_timeout) as session:
            yield JupiterClient(session, self.config)

    @asynccontextmanager
    async def _helius(self):
        if self._helius_client is not None:
            yield self._helius_client
            return
        api_key = self.config.rpc.helius_api_key
        if not api_key:
            raise PreconditionError("HELIUS_API_KEY", "Required for meta, holders and history.")
        async with new_session(self.config.scanner.request_timeout) as session:
            yield HeliusClient(session, api_key)

    def _run(self, provider, method: str, *args):
        """Call one async provider method from sync code."""
        async def call():
            async with provider() as client:
                return await getattr(client, method)(*args)
        return asyncio.run(call())

    async def _gather(self, mints: list[str], method: str) -> dict:
        async with self._jupiter() as jupiter:
            results = await run_bounded(
                list(dict.fromkeys(mints)), getattr(jupiter, method),
                concurrency=self.config.scanner.batch_size,
            )
        found = {}
        for result in results:
            if result.ok:
                found[result.item] = result.value
            else:
                log("Agent", f"{method} failed for {result.item[:8]}: {result.error}")
        return found

    def lookup_tokens(self, mints: list[str]) -> dict[str, Optional[TokenListing]]:
        """Jupiter listings by mint. Lookups that fail are simply absent."""
        if not mints:
            return {}
        return asyncio.run(self._gather(mints, "get_token"))

    def lookup_safety(self, mints: list[str]) -> dict:
        if not mints:
            return {}
        return asyncio.run(self._gather(mints, "get_token_safety"))

    def _token_details(self, chain: str, mint: str) -> dict:
        """Symbol, price and mcap for journaling. Unknowns stay None."""
        details = {"symbol": mint, "price": None, "mcap": None}
        if chain == "base":
            meta = self.base_chain.get_token_meta(mint)
            if meta and meta.symbol:
                details["symbol"] = meta.symbol
            return details

        listing = self.lookup_tokens([mint]).get(mint)
        if listing:
            details["symbol"] = listing.symbol or mint
            details["price"] = listing.usd_price
            details["mcap"] = listing.mcap
        return details

    # --- Scan --------------------------------------------------------------

    def scan(self, limit: int = 10) -> dict:
        result = asyncio.run(scan_new_tokens(self.config, limit))
        try:
            self.store.add_scan_record(result.top_mints, result.best_score)
        except OSError as e:
            warn("Agent", f"could not record scan: {e}")
        return result.to_dict()

    # --- Research ----------------------------------------------------------

    def price(self, chain: str, mint: str) -> dict:
        """USD price from Jupiter. Base pairs would need DEX pool decoding, which moon leaves out."""
        if chain != "sol":
            raise InvalidInputError("price is currently Solana-only.")
        out = {"command": "price", "chain": chain, "token": mint}
        listing = self._run(self._jupiter, "get_price", mint)
        if listing is None:
            return {**out, "error": "No price found"}
        return {
            **out,
            "symbol": listing.symbol,
            "name": listing.name,
            "price_usd": listing.usd_price,
            "mcap": listing.mcap,
            "liquidity": listing.liquidity,
        }

    def quote(self, input_mint: str, output_mint: str, amount: float, slippage_bps: int = 50) -> dict:
        """
        Jupiter swap quote. ``amount`` is in SOL when the input is SOL,
        otherwise in whole tokens assuming 6 decimals.
        """
        input_is_sol = input_mint == WSOL or input_mint.lower() == "sol"
        if output_mint.lower() == "sol":
            output_mint = WSOL
        raw_amount = round(amount * (1e9 if input_is_sol else 1e6))
        if raw_amount <= 0:
            raise InvalidInputError("Amount must be a positive number.")

        quote = self._run(self._jupiter, "get_quote",
                          WSOL if input_is_sol else input_mint, output_mint, raw_amount, slippage_bps)
        return {
            "command": "quote",
            **asdict(quote),
            "input_amount": amount,
            "input_is_sol": input_is_sol,
            "note": "output amount is in raw token units" if input_is_sol
                    else "input amount assumes 6 decimals",
        }

    def token_search(self, query: str) -> dict:
        tokens = self._run(self._jupiter, "search_tokens", query)
        return {"command": "token", "query": query, "count": len(tokens),
                "tokens": [asdict(t) for t in tokens]}

    def safety(self, mint: str) -> dict:
        report = self._run(self._jupiter, "get_token_safety", mint)
        return {
            "command": "safety",
            "mint": mint,
            "safe": report.safe,
            "risk_count": report.risk_count,
            "warning_count": report.warning_count,
            "risks": report.risks,
            "warnings": report.warnings,
            "token": asdict(report.token) if report.token else None,
        }

    def meta(self, mint: str) -> dict:
        return {"command": "meta", **asdict(self._run(self._helius, "get_asset", mint))}

    def holders(self, mint: str, limit: int = 20) -> dict:
        return {"command": "holders", **asdict(self._run(self._helius, "get_token_holders", mint, limit))}

    def history(self, address: str, limit: int = 10) -> dict:
        txs = self._run(self._helius, "get_enhanced_transactions", address, limit)
        return {"command": "history", "address": address, "count": len(txs),
                "transactions": [asdict(tx) for tx in txs]}

    # --- Journal -----------------------------------------------------------

    def journal_show(self, last: Optional[int] = None, status: Optional[str] = None,
                     narrative: Optional[str] = None) -> dict:
        entries = self.store.get_journal(status=status, narrative=narrative, last=last)
        rows = []
        for e in entries:
            row = asdict(e)
            row["pnl_pct_text"] = pct_text(e.pnl_pct)
            row["date"] = iso(e.timestamp)
            rows.append(row)
        return {"command": "journal", "count": len(rows), "entries": rows}

    def journal_add(self, type: str, chain: str, mint: str, amount: float, price: float,
                    note: Optional[str] = None, narrative: Optional[str] = None) -> dict:
        if type not in ("buy", "sell"):
            raise InvalidInputError(f"Journal type must be buy or sell, got {type!r}")

        details = self._token_details(chain, mint)
        entry = self.store.add_journal_entry(
            type, chain, mint,
            symbol=details["symbol"],
            amount=amount,
            token_amount=amount / price if price > 0 else 0,
            price=price,
            mcap=details["mcap"],
            note=note,
            narratives=[narrative] if narrative else [],
            status="closed" if type == "sell" else "open",
        )
        if narrative:
            self.store.add_narrative(narrative, mint)
        return {"command": "journal add", "success": True, "entry": asdict(entry)}

    def journal_close(self, entry_id: str, exit_price: float) -> dict:
        entry = self.store.load().find_entry(entry_id)
        if entry is None:
            raise InvalidInputError(f"No journal entry {entry_id}")
        if not entry.is_open:
            raise InvalidInputError(f"Journal entry {entry_id} is already closed")

        pnl, pnl_pct = self._trade_pnl(entry, exit_price)
        closed = self.store.close_journal_entry(entry_id, exit_price=exit_price, pnl=pnl, pnl_pct=pnl_pct)
        return {"command": "journal close", "success": closed is not None, "entry": asdict(closed)}

    def journal_review(self, narrative: Optional[str] = None) -> dict:
        entries = self.store.get_journal(narrative=narrative)
        config = self.store.get_config()
        positions = [asdict(e) for e in entries if e.is_open and e.type == "buy"]
        return {
            "command": "journal review",
            "goal_usd": config.goal_usd,
            **analyze_journal(entries).to_dict(),
            "goal": goal_progress(positions, config.goal_usd),
        }

    @staticmethod
    def _trade_pnl(entry: JournalEntry, exit_price: Optional[float]):
        if not entry.price or entry.price <= 0 or exit_price is None:
            return None, None
        pnl = (exit_price - entry.price) * (entry.token_amount or 0)
        pnl_pct = (exit_price - entry.price) / entry.price * 100
        return pnl, pnl_pct

    # --- Trades ------------------------------------------------------------

    def record_buy(self, chain: str, mint: str, amount: float, signature: Optional[str] = None,
                   note: Optional[str] = None, narrative: Optional[str] = None) -> JournalEntry:
        details = self._token_details(chain, mint)
        entry = self.store.add_journal_entry(
            "buy", chain, mint,
            symbol=details["symbol"],
            amount=amount,
            price=details["price"],
            mcap=details["mcap"],
            note=note,
            narratives=[narrative] if narrative else [],
            signature=signature,
        )
        if narrative:
            self.store.add_narrative(narrative, mint)
        return entry

    def record_sell(self, chain: str, mint: str, amount, signature: Optional[str] = None,
                    note: Optional[str] = None, exit_price: Optional[float] = None) -> dict:
        """
        Close the oldest open buy of ``mint`` at ``exit_price`` (looked up when
        not given) and log the sell itself as a closed entry.
        """
        details = self._token_details(chain, mint)
        if exit_price is None:
            exit_price = details["price"]

        closed = None
        open_buys = [e for e in self.store.get_open_positions() if e.mint == mint and e.type == "buy"]
        if open_buys:
            buy = open_buys[0]
            pnl, pnl_pct = self._trade_pnl(buy, exit_price)
            closed = self.store.close_journal_entry(buy.id, exit_price=exit_price, pnl=pnl, pnl_pct=pnl_pct)

        sell = self.store.add_journal_entry(
            "sell", chain, mint,
            symbol=details["symbol"],
            amount="all" if amount in ("all", "100%") else float(amount),
            price=exit_price,
            note=note,
            signature=signature,
            status="closed",
        )
        return {
            "closed": closed.id if closed else None,
            "pnl": closed.pnl if closed else None,
            "pnl_pct": pct_text(closed.pnl_pct) if closed else None,
            "journal_id": sell.id,
        }

    def buy(self, chain: str, token: str, amount: float, slippage_pct: float = 5,
            note: Optional[str] = None, narrative: Optional[str] = None) -> dict:
        result = self.bankr.execute_prompt(build_buy_prompt(chain, token, amount, slippage_pct))
        out = {"action": "buy", "chain": chain, "token": token, "amount": amount, **result.to_dict()}
        if result.success:
            try:
                entry = self.record_buy(chain, token, amount, result.tx_hash, note, narrative)
                out["auto_journal"] = {"journal_id": entry.id}
            except MoonError as e:
                warn("Agent", f"swap done but journaling failed: {e}")
        return out

    def sell(self, chain: str, token: str, amount, slippage_pct: float = 5,
             note: Optional[str] = None) -> dict:
        result = self.bankr.execute_prompt(build_sell_prompt(chain, token, amount, slippage_pct))
        out = {"action": "sell", "chain": chain, "token": token, "amount": amount, **result.to_dict()}
        if result.success:
            try:
                out["auto_journal"] = self.record_sell(chain, token, amount, result.tx_hash, note)
            except MoonError as e:
                warn("Agent", f"swap done but journaling failed: {e}")
        return out

    # --- Watchlist ---------------------------------------------------------

    def watch_add(self, mint: str, target_buy: Optional[float] = None,
                  target_sell: Optional[float] = None, narrative: Optional[str] = None,
                  note: Optional[str] = None) -> dict:
        listing = self.lookup_tokens([mint]).get(mint)
        item = WatchlistItem(
            mint=mint,
            chain="sol",
            symbol=(listing.symbol if listing else None) or mint,
            target_buy=target_buy,
            target_sell=target_sell,
            narratives=[narrative] if narrative else [],
            price_at_add=listing.usd_price if listing else None,
            last_price=listing.usd_price if listing else None,
            last_mcap=listing.mcap if listing else None,
            last_holders=listing.holder_count if listing else None,
            notes=note,
        )
        self.store.add_watchlist_item(item)
        if narrative:
            self.store.add_narrative(narrative, mint)
        return {"command": "watch add", "success": True, "item": asdict(item)}

    def watch_remove(self, mint: str) -> dict:
        return {"command": "watch remove", "success": self.store.remove_watchlist_item(mint), "mint": mint}

    def watch_list(self) -> dict:
        items = self.store.get_watchlist()
        if not items:
            return {"command": "watch list", "count": 0, "watchlist": [], "message": "Watchlist is empty"}

        listings = self.lookup_tokens([w.mint for w in items])
        rows = []
        for item in items:
            listing = listings.get(item.mint)
            current_price = item.last_price
            current_mcap = item.last_mcap
            if listing and listing.usd_price:
                current_price = listing.usd_price
                current_mcap = listing.mcap
            rows.append({
                "symbol": item.symbol,
                "mint": item.mint,
                "price_at_add": item.price_at_add,
                "current_price": current_price,
                "change_pct": pct_text(change_pct(item.price_at_add, current_price)),
                "current_mcap": current_mcap,
                "target_buy": item.target_buy,
                "target_sell": item.target_sell,
                "narratives": item.narratives,
                "notes": item.notes,
                "added_at": iso(item.added_at),
            })
        return {"command": "watch list", "count": len(rows), "watchlist": rows}

    def watch_check(self) -> dict:
        items = self.store.get_watchlist()
        if not items:
            return {"command": "watch check", "alerts": [], "message": "Watchlist is empty"}

        listings = self.lookup_tokens([w.mint for w in items])
        alerts = []
        updates = {}
        for item in items:
            listing = listings.get(item.mint)
            if not listing or not listing.usd_price:
                continue
            alerts.extend(watch_alerts(item, listing.usd_price, listing.holder_count))
            updates[item.mint] = {
                "last_price": listing.usd_price,
                "last_mcap": listing.mcap,
                "last_holders": listing.holder_count,
            }

        buy_hits = [a for a in alerts if a["type"] == "target_buy_hit"]
        reports = self.lookup_safety([a["mint"] for a in buy_hits])
        for alert in buy_hits:
            report = reports.get(alert["mint"])
            if report is not None and not report.safe:
                alerts.append({
                    "type": "safety_warning",
                    "symbol": alert["symbol"],
                    "mint": alert["mint"],
                    "risks": report.risk_count,
                    "warnings": report.warning_count,
                })

        checked_at = time.time()
        self.store.refresh_watchlist(updates, checked_at)
        log("Watch", f"{len(items)} checked, {len(alerts)} alerts")
        return {
            "command": "watch check",
            "checked_at": iso(checked_at),
            "tokens_checked": len(items),
            "alert_count": len(alerts),
            "alerts": alerts,
        }

    # --- Calculators -------------------------------------------------------

    def calc_target(self, price: float, supply: float, target_usd: float) -> dict:
        return {"command": "calc target", **target_position(price, supply, target_usd)}

    def calc_mcap(self, tokens_held: float, supply: float, target_usd: float,
                  current_mcap: Optional[float] = None) -> dict:
        return {"command": "calc mcap", **required_mcap(tokens_held, supply, target_usd, current_mcap)}

    def calc_size(self, portfolio_value: float, risk_pct: float, entry_price: float,
                  stop_loss: Optional[float] = None) -> dict:
        result = position_size(portfolio_value, risk_pct, entry_price, stop_loss)
        analysis = analyze_journal(self.store.get_journal())
        kelly_info = None
        if analysis.total_trades >= KELLY_MIN_TRADES:
            kelly_info = {
                "kelly_pct": analysis.kelly_pct,
                "half_kelly_pct": analysis.half_kelly_pct,
                "recommendation": analysis.kelly_recommendation,
            }
        return {"command": "calc size", **result, "kelly_info": kelly_info}

    def calc_kelly(self, win_rate: float, avg_win: float, avg_loss: float) -> dict:
        return {"command": "calc kelly", **kelly_criterion(win_rate, avg_win, avg_loss)}

    # --- Review ------------------------------------------------------------

    def review(self) -> dict:
        """
        Portfolio snapshot built from the journal. There is no on-chain wallet
        section: swaps run through Bankr's managed wallet, so open journal
        entries are the positions.
        """
        doc = self.store.load()
        config = doc.config
        open_entries = [e for e in doc.journal if e.is_open]

        listings = self.lookup_tokens([e.mint for e in open_entries if e.chain == "sol"])
        positions = []
        for entry in open_entries:
            listing = listings.get(entry.mint)
            current_price = listing.usd_price if listing and listing.usd_price else entry.price
            positions.append({
                "id": entry.id,
                "symbol": entry.symbol,
                "mint": entry.mint,
                "chain": entry.chain,
                "entry_price": entry.price,
                "current_price": current_price,
                "unrealized_pnl_pct": pct_text(change_pct(entry.price, current_price)),
                "amount": entry.amount,
                "token_amount": entry.token_amount,
                "narratives": entry.narratives,
                "date": iso(entry.timestamp),
            })

        analysis = analyze_journal(doc.journal)
        goal = goal_progress([
            {
                "symbol": p["symbol"],
                "mint": p["mint"],
                "token_amount": p["token_amount"],
                "current_price": p["current_price"],
                "price": p["entry_price"],
            }
            for p in positions
        ], config.goal_usd)

        if config.last_watch_check > 0:
            stale = time.time() - config.last_watch_check > self.store.config.watch_stale_seconds
        else:
            stale = len(doc.watchlist) > 0

        return {
            "command": "review",
            "goal": {"target_usd": config.goal_usd, **goal},
            "open_positions": {"count": len(positions), "positions": positions},
            "trading_stats": {
                "closed_trades": analysis.total_trades,
                "win_rate": analysis.win_rate,
                "avg_pnl_pct": analysis.avg_pnl_pct,
                "profit_factor": analysis.profit_factor,
                "kelly_pct": analysis.kelly_pct,
                "half_kelly_pct": analysis.half_kelly_pct,
                "best_trade": asdict(analysis.best_trade) if analysis.best_trade else None,
                "worst_trade": asdict(analysis.worst_trade) if analysis.worst_trade else None,
                "streaks": asdict(analysis.streaks),
            },
            "narratives": [
                {
                    "name": name,
                    "token_count": len(record.tokens),
                    "notes": record.notes,
                    "performance": analysis.by_narrative.get(name),
                }
                for name, record in doc.narratives.items()
            ],
            "watchlist": {
                "count": len(doc.watchlist),
                "stale": stale,
                "last_check": iso(config.last_watch_check) or "never",
            },
            "config": {
                "goal_usd": config.goal_usd,
                "default_risk_pct": config.default_risk_pct,
                "default_stop_loss_pct": config.default_stop_loss_pct,
            },
        }

    # --- Polymarket --------------------------------------------------------

    def bet_track(self, condition_id: str, outcome: str, amount: float,
                  narrative: Optional[str] = None, note: Optional[str] = None,
                  order_id: Optional[str] = None, limit_price: Optional[float] = None) -> dict:
        """Journal a bet placed on Polymarket and start tracking it for redemption."""
        outcome = outcome.upper()
        if outcome not in ("YES", "NO"):
            raise InvalidInputError("Outcome must be 'yes' or 'no'.")
        if amount <= 0:
            raise InvalidInputError("Amount must be a positive number (USDC).")

        market = self.polymarket.get_market(condition_id)
        if market.closed:
            raise InvalidInputError("Market is closed. Cannot track bet.")
        token_id = market.token_for(outcome)
        if not token_id:
            raise InvalidInputError(f"No CLOB token ID found for {outcome} outcome.")

        entry_price = market.price_for(outcome)
        shares = amount / entry_price if entry_price else 0.0
        question = market.question
        if len(question) > QUESTION_SYMBOL_LEN:
            question = question[:QUESTION_SYMBOL_LEN - 3] + "..."

        entry = self.store.add_journal_entry(
            "bet", "polygon", condition_id,
            symbol=question,
            amount=amount,
            price=entry_price,
            note=note,
            narratives=[narrative] if narrative else [],
            signature=order_id,
            polymarket={
                "condition_id": condition_id,
                "token_id": token_id,
                "outcome": outcome,
                "order_type": "GTC" if limit_price else "FOK",
                "shares": round(shares, 2),
                "limit_price": limit_price,
            },
        )
        if narrative:
            self.store.add_narrative(narrative, condition_id)

        bet = self.store.add_poly_bet(PolyBet(
            condition_id=condition_id,
            token_id=token_id,
            question=market.question,
            outcome=outcome,
            amount=amount,
            entry_price=entry_price,
            shares=shares,
            journal_id=entry.id,
            order_id=order_id,
        ))
        return {"action": "bet", "journal_id": entry.id, "bet": asdict(bet), "neg_risk": market.neg_risk}

    def redeem(self, condition_id: str) -> dict:
        market = self.polymarket.get_market(condition_id)
        bets = self.store.get_poly_bets(condition_id=condition_id)
        out = {"command": "redeem", "condition_id": condition_id, "question": market.question,
               "closed": market.closed}

        if not bets:
            return {**out, "message": "No tracked bet found for this market."}
        bet = bets[0]
        if bet.status == "closed":
            return {**out, "status": "closed", "won": bet.won, "pnl": bet.pnl,
                    "message": "Bet already redeemed."}
        if not market.closed:
            return {**out, "status": bet.status, "yes_price": market.yes_price,
                    "no_price": market.no_price, "message": "Market is still open. Cannot redeem yet."}

        resolution = resolve_bet(bet, market.yes_price, self.config.polymarket.resolved_price)
        now = time.time()
        journal_updated = False
        if bet.journal_id:
            journal_updated = self.store.close_journal_entry(
                bet.journal_id,
                exit_price=resolution["exit_price"],
                pnl=resolution["pnl"],
                pnl_pct=resolution["pnl_pct"],
                exit_timestamp=now,
            ) is not None
        self.store.update_poly_bet(condition_id, status="closed", resolved_at=now, **resolution)

        return {
            **out,
            **resolution,
            "your_outcome": bet.outcome,
            "entry_price": bet.entry_price,
            "shares": bet.shares,
            "cost_usdc": bet.amount,
            "pnl_pct_text": pct_text(resolution["pnl_pct"]),
            "journal_updated": journal_updated,
        }

    def redeem_list(self) -> dict:
        rows = []
        for bet in self.store.get_poly_bets():
            status = None
            try:
                m = self.polymarket.get_market(bet.condition_id)
                status = {"closed": m.closed, "active": m.active,
                          "yes_price": m.yes_price, "no_price": m.no_price}
            except MoonError as e:
                log("Polymarket", f"market lookup failed for {bet.condition_id[:10]}: {e}")
            rows.append({**asdict(bet), "market_status": status})
        return {"command": "redeem list", "count": len(rows), "bets": rows}

    def _order_books(self, market: PolymarketMarket) -> dict:
        """YES/NO books; a side whose book can't be fetched is None."""
        books = {}
        for outcome in ("yes", "no"):
            token_id = market.token_for(outcome)
            books[outcome] = None
            if not token_id:
                continue
            try:
                books[outcome] = self.polymarket.get_order_book(token_id)
            except MoonError as e:
                log("Polymarket", f"order book failed for {outcome.upper()}: {e}")
        return books

    def odds(self, condition_id: str) -> dict:
        market = self.polymarket.get_market(condition_id)
        books = self._order_books(market)
        out = {
            "command": "odds",
            "condition_id": market.condition_id,
            "question": market.question,
            "yes_price": market.yes_price,
            "no_price": market.no_price,
        }
        for outcome, book in books.items():
            out[f"{outcome}_best_bid"] = book.best_bid if book else None
            out[f"{outcome}_best_ask"] = book.best_ask if book else None
            out[f"{outcome}_spread"] = book.spread if book else None
        out.update({"volume": market.volume, "liquidity": market.liquidity, "end_date": market.end_date})
        return out

    def market_detail(self, condition_id: str) -> dict:
        market = self.polymarket.get_market(condition_id)
        books = self._order_books(market)
        return {
            "command": "market",
            **asdict(market),
            "order_book": {k: asdict(v) if v else None for k, v in books.items()},
        }

    def market_positions(self, session: Optional[PolymarketSession] = None) -> dict:
        """Wallet collateral from the CLOB plus the bets tracked locally."""
        session = session or self.polymarket_session()
        return {
            "command": "market positions",
            "address": session.address,
            "collateral": session.get_collateral(),
            "tracked_bets": [asdict(b) for b in self.store.get_poly_bets(status="open")],
        }

    def market_search(self, query: str, limit: int = 20) -> dict:
        markets = self.polymarket.search_markets(query, limit)
        return {"command": "market search", "query": query, "count": len(markets),
                "markets": [asdict(m) for m in markets]}

    def market_orders(self, session: Optional[PolymarketSession] = None) -> dict:
        session = session or self.polymarket_session()
        orders = session.get_open_orders()
        return {"command": "market orders", "address": session.address,
                "count": len(orders), "orders": orders}

    def market_trades(self, limit: int = 20, session: Optional[PolymarketSession] = None) -> dict:
        session = session or self.polymarket_session()
        trades = session.get_trades(limit)
        return {"command": "market trades", "count": len(trades), "trades": trades}

    # --- Config ------------------------------------------------------------

    def config_set(self, goal_usd: Optional[float] = None, risk_pct: Optional[float] = None,
                   stop_loss_pct: Optional[float] = None) -> dict:
        updates = {}
        if goal_usd is not None:
            updates["goal_usd"] = goal_usd
        if risk_pct is not None:
            updates["default_risk_pct"] = risk_pct
        if stop_loss_pct is not None:
            updates["default_stop_loss_pct"] = stop_loss_pct

        config = self.store.update_config(**updates) if updates else self.store.get_config()
        return {"command": "config", "updated": sorted(updates), "config": asdict(config),
                "state_path": str(self.store.path)}
