"""Shared fixtures: a throwaway state directory and in-process fake providers."""
import json

import pytest

from moon_agent.config import MoonConfig
from moon_agent.errors import UpstreamError
from moon_agent.markets.bankr import JobResult
from moon_agent.markets.helius import EnhancedTransaction, TokenAsset, TokenHolders
from moon_agent.markets.jupiter import Quote, SafetyReport, TokenListing
from moon_agent.markets.polymarket import OrderBook
from moon_agent.trading.state import StateStore


MINT = "MoonMint1111111111111111111111111111111111111"
OTHER_MINT = "OtherMint111111111111111111111111111111111111"


@pytest.fixture(autouse=True)
def quiet_env(monkeypatch):
    """No real keys or verbose output leak into tests."""
    for name in (
        "MOON_VERBOSE", "MOON_STATE_DIR", "HELIUS_API_KEY", "JUPITER_API_KEY",
        "BANKR_API_KEY", "POLYMARKET_PRIVATE_KEY",
    ):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def config():
    return MoonConfig()


@pytest.fixture
def store(tmp_path):
    return StateStore(state_dir=tmp_path / "moon")


def listing(mint=MINT, symbol="MOON", price=1.0, mcap=1_000_000.0, holders=500):
    return TokenListing(address=mint, symbol=symbol, usd_price=price, mcap=mcap, holder_count=holders)


class FakeJupiter:
    """Answers token lookups from dicts; unknown mints have no listing."""

    def __init__(self, listings=None, safety=None):
        self.listings = listings or {}
        self.safety = safety or {}
        self.lookups = []
        self.quotes = []

    async def get_token(self, mint):
        self.lookups.append(mint)
        return self.listings.get(mint)

    async def get_token_safety(self, mint):
        return self.safety.get(mint) or SafetyReport(mint=mint)

    async def get_price(self, mint):
        token = self.listings.get(mint)
        return token if token and token.usd_price else None

    async def search_tokens(self, query):
        q = query.lower()
        return [t for t in self.listings.values() if q in (t.symbol or "").lower() or q == t.address]

    async def get_quote(self, input_mint, output_mint, amount, slippage_bps=50):
        self.quotes.append((input_mint, output_mint, amount, slippage_bps))
        return Quote(input_mint=input_mint, output_mint=output_mint, in_amount=str(amount),
                     out_amount=str(amount * 1000), price_impact_pct=0.4, slippage_bps=slippage_bps)


class FakeBankr:
    def __init__(self, success=True, tx_hash="0xfeed"):
        self.success = success
        self.tx_hash = tx_hash
        self.prompts = []

    def execute_prompt(self, prompt):
        self.prompts.append(prompt)
        if self.success:
            return JobResult(success=True, job_id="job_1", status="completed", tx_hash=self.tx_hash)
        return JobResult(success=False, job_id="job_1", status="failed", error="Insufficient balance")


class FakePolymarket:
    def __init__(self, markets=None, books=None):
        self.markets = markets or {}
        self.books = books or {}

    def get_market(self, condition_id):
        return self.markets[condition_id]

    def get_order_book(self, token_id):
        if token_id not in self.books:
            raise UpstreamError("Polymarket", 404, f"no book for {token_id}")
        return OrderBook.from_api(token_id, self.books[token_id])


class FakeHelius:
    def __init__(self, holders=None, transactions=None, assets=None):
        self.holders = holders or {}
        self.transactions = transactions or {}
        self.assets = assets or {}

    async def get_asset(self, mint):
        return TokenAsset.from_das(mint, self.assets[mint])

    async def get_token_holders(self, mint, limit=20):
        return TokenHolders.from_das(mint, self.holders.get(mint), limit)

    async def get_enhanced_transactions(self, address, limit=10):
        return [EnhancedTransaction.from_api(tx) for tx in self.transactions.get(address, [])][:limit]


@pytest.fixture
def jupiter():
    return FakeJupiter({MINT: listing()})


def payload(text):
    """The JSON object in ``text``, skipping any diagnostic lines before it."""
    return json.loads(text[text.index("{"):])
