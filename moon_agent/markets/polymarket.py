"""
Polymarket Integration Module.

Public market data comes from the CLOB and Gamma APIs. Authenticated CLOB
endpoints (open orders, trades, collateral) go through a PolymarketSession,
which owns the wallet key and the derived API credentials.

Order placement is not done here: bets are placed by whatever holds the
keys and tracked in the journal afterwards.
"""

import json
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Optional

import requests
from eth_account import Account
from py_clob_client.client import ClobClient
from py_clob_client.clob_types import ApiCreds, AssetType, BalanceAllowanceParams
from py_clob_client.exceptions import PolyApiException, PolyException

from moon_agent.console import log
from moon_agent.errors import PreconditionError, UpstreamError


@dataclass
class PolymarketMarket:
    condition_id: str
    question: str
    yes_price: Optional[float] = None
    no_price: Optional[float] = None
    clob_token_ids: list = field(default_factory=list)
    end_date: str = ""
    neg_risk: bool = False
    tick_size: float = 0.01
    active: bool = True
    closed: bool = False
    volume: Optional[float] = None
    liquidity: Optional[float] = None
    event_title: Optional[str] = None

    @classmethod
    def from_clob(cls, m: dict) -> "PolymarketMarket":
        tokens = m.get("tokens") or []
        yes = next((t for t in tokens if t.get("outcome") == "Yes"), {})
        no = next((t for t in tokens if t.get("outcome") == "No"), {})
        return cls(
            condition_id=m.get("condition_id", ""),
            question=m.get("question", ""),
            yes_price=_price(yes.get("price")),
            no_price=_price(no.get("price")),
            clob_token_ids=[yes.get("token_id"), no.get("token_id")],
            end_date=m.get("end_date_iso") or "",
            neg_risk=bool(m.get("neg_risk")),
            tick_size=float(m.get("minimum_tick_size") or 0.01),
            active=bool(m.get("active")),
            closed=bool(m.get("closed")),
        )

    @classmethod
    def from_gamma(cls, m: dict, event: Optional[dict] = None) -> "PolymarketMarket":
        prices = _json_list(m.get("outcomePrices"))
        return cls(
            condition_id=m.get("conditionId", ""),
            question=m.get("question", ""),
            yes_price=_price(prices[0]) if len(prices) > 0 else None,
            no_price=_price(prices[1]) if len(prices) > 1 else None,
            clob_token_ids=_json_list(m.get("clobTokenIds")),
            end_date=m.get("endDate") or "",
            neg_risk=bool((event or {}).get("negRisk")),
            tick_size=float(m.get("minimumTickSize") or 0.01),
            active=bool(m.get("active")),
            closed=bool(m.get("closed")),
            volume=float(m.get("volume") or 0),
            liquidity=_price(m.get("liquidity")),
            event_title=(event or {}).get("title"),
        )

    def price_for(self, outcome: str) -> Optional[float]:
        return self.yes_price if outcome.upper() == "YES" else self.no_price

    def token_for(self, outcome: str) -> Optional[str]:
        index = 0 if outcome.upper() == "YES" else 1
        return self.clob_token_ids[index] if len(self.clob_token_ids) > index else None


def _price(value) -> Optional[float]:
    try:
        return float(value) if value is not None else None
    except (TypeError, ValueError):
        return None


def _json_list(value) -> list:
    # Gamma encodes some arrays as JSON strings
    if isinstance(value, str):
        try:
            value = json.loads(value)
        except ValueError:
            return []
    return list(value) if isinstance(value, list) else []


@dataclass
class OrderBook:
    token_id: str
    bids: list = field(default_factory=list)
    asks: list = field(default_factory=list)
    best_bid: Optional[float] = None
    best_ask: Optional[float] = None
    spread: Optional[float] = None

    @classmethod
    def from_api(cls, token_id: str, raw: dict, depth: int = 10) -> "OrderBook":
        """Best price first on both sides; the CLOB returns them best-last."""
        def levels(side, best_first):
            rows = [
                {"price": _price(o.get("price")), "size": _price(o.get("size"))}
                for o in raw.get(side) or []
            ]
            rows = [r for r in rows if r["price"] is not None]
            return sorted(rows, key=lambda r: r["price"], reverse=best_first)[:depth]

        bids = levels("bids", True)
        asks = levels("asks", False)
        best_bid = bids[0]["price"] if bids else None
        best_ask = asks[0]["price"] if asks else None
        spread = round(best_ask - best_bid, 4) if best_bid is not None and best_ask is not None else None
        return cls(token_id=token_id, bids=bids, asks=asks,
                   best_bid=best_bid, best_ask=best_ask, spread=spread)


class PolymarketClient:
    """Unauthenticated market lookups."""

    def __init__(self, config):
        self.config = config
        self.session = requests.Session()
        self.session.headers.update({
            "Accept": "application/json",
        })

    def _get(self, url: str, **params):
        try:
            response = self.session.get(url, params=params or None, timeout=30)
        except requests.RequestException as e:
            raise UpstreamError("Polymarket", None, str(e))
        if not response.ok:
            raise UpstreamError("Polymarket", response.status_code, response.text)
        try:
            return response.json()
        except ValueError as e:
            raise UpstreamError("Polymarket", response.status_code, f"malformed JSON: {e}")

    def get_market(self, condition_id: str) -> PolymarketMarket:
        """Single market from the CLOB API (Gamma's condition filter is unreliable)."""
        data = self._get(f"{self.config.polymarket.clob_url}/markets/{condition_id}")
        if not data or not data.get("condition_id"):
            raise UpstreamError("Polymarket", 404, f"Market not found: {condition_id}")
        return PolymarketMarket.from_clob(data)

    def get_order_book(self, token_id: str) -> OrderBook:
        data = self._get(f"{self.config.polymarket.clob_url}/book", token_id=token_id)
        return OrderBook.from_api(token_id, data or {}, self.config.polymarket.book_depth)

    def search_markets(self, query: str, limit: int = 20) -> list[PolymarketMarket]:
        """Gamma has no text search, so filter active events client-side."""
        events = self._get(
            f"{self.config.polymarket.gamma_url}/events",
            active="true", closed="false", limit=100,
        )
        q = query.lower()
        results = []
        for event in events or []:
            title_match = q in (event.get("title") or "").lower()
            for m in event.get("markets") or []:
                if title_match or q in (m.get("question") or "").lower():
                    results.append(PolymarketMarket.from_gamma(m, event))

        results.sort(key=lambda m: m.volume or 0, reverse=True)
        return results[:limit]


class PolymarketSession:
    """
    Authenticated CLOB access through py-clob-client.

    API credentials are derived from the wallet key on first use and cached
    on disk next to the state file. ``invalidate`` throws away the cached
    credentials and client so the next call derives fresh ones.
    """

    def __init__(self, config, creds_path: Path, client_factory: Callable = ClobClient):
        self.config = config
        self.creds_path = Path(creds_path)
        self._client_factory = client_factory
        self._account = None
        self._creds: Optional[ApiCreds] = None
        self._client = None

    @property
    def private_key(self) -> str:
        key = self.config.polymarket.private_key
        if not key:
            raise PreconditionError(
                "POLYMARKET_PRIVATE_KEY",
                "Set POLYMARKET_PRIVATE_KEY (hex, 0x prefix) for Polymarket account queries.",
            )
        return key

    @property
    def address(self) -> str:
        if self._account is None:
            self._account = Account.from_key(self.private_key)
        return self._account.address

    def _new_client(self, creds: Optional[ApiCreds] = None):
        pm = self.config.polymarket
        return self._client_factory(pm.clob_url, key=self.private_key, chain_id=pm.chain_id, creds=creds)

    @property
    def creds(self) -> ApiCreds:
        if self._creds is None:
            self._creds = self._load_creds()
        return self._creds

    def _load_creds(self) -> ApiCreds:
        try:
            with open(self.creds_path) as f:
                cached = json.load(f)
            if cached.get("api_key"):
                return ApiCreds(
                    api_key=cached["api_key"],
                    api_secret=cached["api_secret"],
                    api_passphrase=cached["api_passphrase"],
                )
        except (OSError, ValueError, KeyError):
            pass

        log("Polymarket", "deriving API credentials from wallet")
        creds = self._call(lambda: self._new_client().create_or_derive_api_creds())
        self.creds_path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.creds_path, "w") as f:
            json.dump({
                "api_key": creds.api_key,
                "api_secret": creds.api_secret,
                "api_passphrase": creds.api_passphrase,
                "derived_at": time.time(),
            }, f, indent=2)
        return creds

    @property
    def client(self):
        if self._client is None:
            self._client = self._new_client(self.creds)
        return self._client

    def invalidate(self):
        """Drop cached credentials (memory and disk) after an auth failure."""
        self._creds = None
        self._client = None
        try:
            self.creds_path.unlink()
        except FileNotFoundError:
            pass

    def _call(self, fn: Callable):
        try:
            result = fn()
        except PolyApiException as e:
            raise UpstreamError("Polymarket CLOB", e.status_code, str(e.error_msg))
        except PolyException as e:
            raise UpstreamError("Polymarket CLOB", None, str(e))
        # the SDK hands back the raw body when it is not JSON
        if isinstance(result, str):
            raise UpstreamError("Polymarket CLOB", None, f"malformed JSON: {result[:200]}")
        return result

    def with_auth_retry(self, fn: Callable):
        """Run ``fn``; on 401/403 invalidate credentials and try exactly once more."""
        try:
            return self._call(fn)
        except UpstreamError as e:
            if not e.is_auth_failure:
                raise
            log("Polymarket", f"auth failed ({e.status}), re-deriving credentials")
            self.invalidate()
            return self._call(fn)

    def get_open_orders(self) -> list:
        return _rows(self.with_auth_retry(lambda: self.client.get_orders()))

    def get_trades(self, limit: int = 20) -> list:
        return _rows(self.with_auth_retry(lambda: self.client.get_trades()))[:limit]

    def get_collateral(self) -> dict:
        """USDC balance and exchange allowance of the wallet."""
        params = BalanceAllowanceParams(asset_type=AssetType.COLLATERAL)
        data = self.with_auth_retry(lambda: self.client.get_balance_allowance(params))
        return data if isinstance(data, dict) else {}


def _rows(data) -> list:
    # Paginated endpoints wrap rows in {"data": [...]}
    if isinstance(data, dict):
        data = data.get("data")
    return data if isinstance(data, list) else []
