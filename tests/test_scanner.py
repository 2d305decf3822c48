"""
Scanner pipeline tests against in-process fake providers.
Nothing here touches the network.
"""
import asyncio
import time

import pytest

from moon_agent.config import MoonConfig
from moon_agent.errors import PreconditionError
from moon_agent.markets.helius import EnhancedTransaction, TokenHolders
from moon_agent.markets.jupiter import Quote, SafetyReport
from moon_agent.markets.solana_rpc import WSOL, ParsedTransaction, PoolSignature
from moon_agent.strategies.scanner import TokenScanner, scan_new_tokens


NOW = int(time.time())

GOOD, THIN, RISKY, ILLIQUID = "GoodMint", "ThinMint", "RiskyMint", "IlliquidMint"


class FakeRPC:
    def __init__(self, signatures, transactions):
        self.signatures = signatures
        self.transactions = transactions
        self.fetched = []

    async def discover_new_pools(self, limit):
        return self.signatures[:limit]

    async def get_parsed_transaction(self, signature):
        self.fetched.append(signature)
        return self.transactions.get(signature)


class FakeHelius:
    holders = {
        GOOD: TokenHolders(mint=GOOD, total_accounts=1000, top10_concentration_pct=20.0),
        THIN: TokenHolders(mint=THIN, total_accounts=5, top10_concentration_pct=90.0),
        RISKY: TokenHolders(mint=RISKY, total_accounts=800, top10_concentration_pct=30.0),
        ILLIQUID: TokenHolders(mint=ILLIQUID, total_accounts=300, top10_concentration_pct=40.0),
    }

    async def get_token_holders(self, mint, limit=20):
        return self.holders[mint]

    async def get_enhanced_transactions(self, address, limit=10):
        return [EnhancedTransaction(signature=f"s{i}", timestamp=NOW - 60) for i in range(25)]


class FakeJupiter:
    async def get_token_safety(self, mint):
        if mint == RISKY:
            return SafetyReport(mint=mint, risks=["mint_authority_active"])
        return SafetyReport(mint=mint, warnings=["unverified"])

    async def get_quote(self, input_mint, output_mint, amount, slippage_bps=50):
        if output_mint == ILLIQUID:
            raise RuntimeError("no route")
        return Quote(input_mint=input_mint, output_mint=output_mint, price_impact_pct=1.0)


def make_scanner(signatures=None, transactions=None, helius=None):
    if signatures is None:
        signatures = [
            PoolSignature(signature="sig1", dex="PumpSwap", block_time=NOW - 120),
            PoolSignature(signature="sig2", dex="Raydium AMM v4", block_time=NOW - 200),
            PoolSignature(signature="sig3", dex="Meteora DLMM", block_time=NOW - 300),
        ]
    if transactions is None:
        transactions = {
            "sig1": ParsedTransaction("sig1", NOW - 100, [WSOL, GOOD, THIN]),
            "sig2": ParsedTransaction("sig2", None, [GOOD, RISKY]),
            "sig3": ParsedTransaction("sig3", NOW - 300, [ILLIQUID]),
        }
    rpc = FakeRPC(signatures, transactions)
    return TokenScanner(MoonConfig(), rpc, helius or FakeHelius(), FakeJupiter())


class TestExtractMints:
    def test_distinct_mints_without_wsol(self):
        scanner = make_scanner()
        mints = asyncio.run(scanner.extract_mints(scanner.rpc.signatures, limit=30))
        assert list(mints) == [GOOD, THIN, RISKY, ILLIQUID]
        assert WSOL not in mints

    def test_first_sighting_wins(self):
        scanner = make_scanner()
        mints = asyncio.run(scanner.extract_mints(scanner.rpc.signatures, limit=30))
        assert mints[GOOD].signature == "sig1"
        assert mints[GOOD].dex == "PumpSwap"
        assert mints[GOOD].created_at == NOW - 100

    def test_falls_back_to_signature_block_time(self):
        scanner = make_scanner()
        mints = asyncio.run(scanner.extract_mints(scanner.rpc.signatures, limit=30))
        assert mints[RISKY].created_at == NOW - 200

    def test_stops_once_enough_mints(self):
        signatures = [PoolSignature(signature=f"s{i}", dex="PumpSwap") for i in range(20)]
        transactions = {f"s{i}": ParsedTransaction(f"s{i}", NOW, [f"mint{i}"]) for i in range(20)}
        scanner = make_scanner(signatures, transactions)
        asyncio.run(scanner.extract_mints(signatures, limit=3))
        assert len(scanner.rpc.fetched) < 20


class TestAnalyzeToken:
    def test_signals_feed_scores(self):
        scanner = make_scanner()
        m = asyncio.run(scanner.analyze_token(GOOD, NOW - 60, now=NOW))
        assert m.holder_count == 1000
        assert m.holders_score == pytest.approx(1.0)
        assert m.liquidity_score == pytest.approx(0.8)
        assert m.volume_score == 1.0
        assert m.tx_count_24h == 25
        assert m.safety_score == 1.0
        assert m.risk_count == 1  # the warning counts as a raw signal
        assert m.passed

    def test_failed_fetch_degrades_to_defaults(self):
        class BrokenHelius(FakeHelius):
            async def get_token_holders(self, mint, limit=20):
                raise RuntimeError("rate limited")

        scanner = make_scanner(helius=BrokenHelius())
        m = asyncio.run(scanner.analyze_token(GOOD, None, now=NOW))
        assert m.holder_count == 0
        assert m.holders_score == 0.0
        assert m.age_score == 0.5
        assert "too_few_holders" in m.filter_reasons
        assert m.score > 0


class TestScan:
    def test_ranked_and_filtered(self):
        result = asyncio.run(make_scanner().scan(limit=10))
        data = result.to_dict()
        assert data["total_discovered"] == 4
        assert data["total_analyzed"] == 4
        assert data["total_passed_filters"] == 1
        assert data["returned"] == 1

        token = data["tokens"][0]
        assert token["rank"] == 1
        assert token["mint"] == GOOD
        assert token["discovery_dex"] == "PumpSwap"
        assert token["score"] == round(token["score"], 3)
        assert set(token["breakdown"]) == {"liquidity", "volume", "holders", "safety", "age"}
        assert data["weights"]["liquidity"] == 0.25
        assert data["filters"]["min_holders"] == 10

    def test_best_score_and_top_mints(self):
        result = asyncio.run(make_scanner().scan(limit=10))
        assert result.top_mints == [GOOD]
        assert result.best_score > 0.9

    def test_no_signatures(self):
        result = asyncio.run(make_scanner(signatures=[]).scan(limit=5))
        assert result.to_dict() == {"tokens": [], "message": "No recent pool creations found"}

    def test_no_mints(self):
        result = asyncio.run(make_scanner(transactions={}).scan(limit=5))
        assert result.tokens == []
        assert "Could not extract" in result.message

    def test_missing_helius_key(self):
        with pytest.raises(PreconditionError) as exc:
            asyncio.run(scan_new_tokens(MoonConfig(), limit=5))
        assert exc.value.variable == "HELIUS_API_KEY"
