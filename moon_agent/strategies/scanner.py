"""
Token discovery and ranking.

1. Discover   recent activity on the big Solana pool programs (3x limit)
2. Extract    distinct token mints from those transactions
3. Analyze    holders, safety, a test quote and tx history per mint
4. Score      weighted blend of five signals (see scoring.py)
5. Filter     drop thin, concentrated, risky or unquotable tokens
6. Rank       best score first, top ``limit`` returned
"""

import asyncio
import time
from dataclasses import dataclass, field
from typing import Optional

from moon_agent.concurrency import run_bounded
from moon_agent.config import MoonConfig
from moon_agent.console import log
from moon_agent.errors import PreconditionError
from moon_agent.markets.helius import HeliusClient
from moon_agent.markets.http import new_session
from moon_agent.markets.jupiter import JupiterClient
from moon_agent.markets.solana_rpc import WSOL, PoolSignature, SolanaRPCClient
from moon_agent.strategies.scoring import (
    TokenMetrics,
    compute_score,
    filter_reasons,
    filter_summary,
    score_age,
    score_holders,
    score_liquidity,
    score_safety,
    score_volume,
)


DAY_SECONDS = 86400


@dataclass
class MintSighting:
    created_at: Optional[int]
    dex: str
    signature: str


@dataclass
class ScanResult:
    tokens: list = field(default_factory=list)
    total_discovered: int = 0
    total_analyzed: int = 0
    total_passed_filters: int = 0
    weights: dict = field(default_factory=dict)
    filters: dict = field(default_factory=dict)
    message: Optional[str] = None

    @property
    def best_score(self) -> float:
        return self.tokens[0]["score"] if self.tokens else 0.0

    @property
    def top_mints(self) -> list[str]:
        return [t["mint"] for t in self.tokens[:5]]

    def to_dict(self) -> dict:
        if self.message is not None:
            return {"tokens": self.tokens, "message": self.message}
        return {
            "tokens": self.tokens,
            "total_discovered": self.total_discovered,
            "total_analyzed": self.total_analyzed,
            "total_passed_filters": self.total_passed_filters,
            "returned": len(self.tokens),
            "weights": self.weights,
            "filters": self.filters,
        }


class TokenScanner:
    """
    Finds freshly created Solana tokens and ranks them.

    Every per-token fetch is allowed to fail on its own; a failure just
    leaves that signal at its worst-case default.
    """

    def __init__(self, config: MoonConfig, rpc: SolanaRPCClient,
                 helius: HeliusClient, jupiter: JupiterClient):
        self.config = config
        self.params = config.scanner
        self.rpc = rpc
        self.helius = helius
        self.jupiter = jupiter

    async def extract_mints(self, signatures: list[PoolSignature], limit: int) -> dict[str, MintSighting]:
        """Distinct non-SOL mints from the parsed transactions. First sighting wins."""
        seen: set[str] = set()

        async def _fetch(sig: PoolSignature):
            tx = await self.rpc.get_parsed_transaction(sig.signature)
            if tx is not None:
                seen.update(m for m in tx.post_token_mints if m != WSOL)
            return tx

        results = await run_bounded(
            signatures, _fetch,
            concurrency=self.params.batch_size,
            until=lambda: len(seen) >= limit,
        )

        # run_bounded returns in input order, so "first seen" stays deterministic
        mints: dict[str, MintSighting] = {}
        for result in results:
            if not result.ok or result.value is None:
                continue
            sig, tx = result.item, result.value
            for mint in tx.post_token_mints:
                if mint == WSOL or mint in mints:
                    continue
                mints[mint] = MintSighting(
                    created_at=tx.block_time or sig.block_time,
                    dex=sig.dex,
                    signature=sig.signature,
                )
        return mints

    async def analyze_token(self, mint: str, created_at: Optional[int],
                            now: Optional[float] = None) -> TokenMetrics:
        now = time.time() if now is None else now
        p = self.params
        metrics = TokenMetrics(mint=mint, age_score=score_age(created_at, now, p.age_decay_seconds))

        holders, safety, quote, txs = await asyncio.gather(
            self.helius.get_token_holders(mint, p.holder_sample),
            self.jupiter.get_token_safety(mint),
            self.jupiter.get_quote(WSOL, mint, p.test_quote_lamports, p.test_quote_slippage_bps),
            self.helius.get_enhanced_transactions(mint, p.tx_history_limit),
            return_exceptions=True,
        )

        if isinstance(holders, BaseException):
            log("Scanner", f"{mint[:8]} holders failed: {holders}")
        elif holders is not None:
            metrics.holder_count = holders.total_accounts
            metrics.holders_score = score_holders(metrics.holder_count, p.holder_log_scale)
            metrics.top_holder_pct = holders.top10_concentration_pct or 100.0

        if isinstance(safety, BaseException):
            log("Scanner", f"{mint[:8]} safety failed: {safety}")
        elif safety is not None:
            metrics.risk_count = safety.risk_count + safety.warning_count
            metrics.safety_score = score_safety(safety.risk_count, p.safety_risk_cap)
            metrics.has_critical_risk = safety.risk_count > 0

        if isinstance(quote, BaseException):
            log("Scanner", f"{mint[:8]} quote failed: {quote}")
        elif quote is not None:
            metrics.price_impact_pct = quote.price_impact_pct
            metrics.liquidity_score = score_liquidity(quote.price_impact_pct, p.max_price_impact_pct)
            metrics.quotable = True

        if isinstance(txs, BaseException):
            log("Scanner", f"{mint[:8]} tx history failed: {txs}")
        elif txs is not None:
            metrics.tx_count_24h = sum(
                1 for tx in txs if tx.timestamp and (now - tx.timestamp) < DAY_SECONDS
            )
            metrics.volume_score = score_volume(metrics.tx_count_24h, p.volume_saturation_txs)

        metrics.score = compute_score(metrics, p.weights)
        metrics.filter_reasons = filter_reasons(metrics, p)
        return metrics

    async def scan(self, limit: int = 10) -> ScanResult:
        discovery_limit = limit * self.params.discovery_multiplier

        signatures = await self.rpc.discover_new_pools(discovery_limit)
        if not signatures:
            return ScanResult(message="No recent pool creations found")
        log("Scanner", f"{len(signatures)} pool signatures discovered")

        sightings = await self.extract_mints(signatures, discovery_limit)
        if not sightings:
            return ScanResult(message="Could not extract token mints from recent transactions")
        log("Scanner", f"{len(sightings)} candidate mints")

        finished: list[TokenMetrics] = []
        analysis_cap = limit * self.params.analysis_multiplier

        async def _analyze(item):
            mint, sighting = item
            metrics = await self.analyze_token(mint, sighting.created_at)
            metrics.discovery_dex = sighting.dex
            metrics.discovery_signature = sighting.signature
            finished.append(metrics)
            return metrics

        results = await run_bounded(
            list(sightings.items()), _analyze,
            concurrency=self.params.batch_size,
            until=lambda: len(finished) >= analysis_cap,
        )
        analyzed = [r.value for r in results if r.ok]

        survivors = [m for m in analyzed if m.passed]
        survivors.sort(key=lambda m: m.score, reverse=True)

        tokens = [
            {
                "rank": i + 1,
                "mint": m.mint,
                "score": round(m.score, 3),
                "breakdown": m.breakdown(),
                "holder_count": m.holder_count,
                "tx_count_24h": m.tx_count_24h,
                "risk_count": m.risk_count,
                "price_impact_pct": m.price_impact_pct,
                "top_holder_pct": m.top_holder_pct,
                "discovery_dex": m.discovery_dex,
            }
            for i, m in enumerate(survivors[:limit])
        ]

        return ScanResult(
            tokens=tokens,
            total_discovered=len(sightings),
            total_analyzed=len(analyzed),
            total_passed_filters=len(survivors),
            weights=dict(self.params.weights),
            filters=filter_summary(self.params),
        )


async def scan_new_tokens(config: MoonConfig, limit: int = 10) -> ScanResult:
    """Build the provider clients and run one scan. Needs HELIUS_API_KEY."""
    api_key = config.rpc.helius_api_key
    if not api_key:
        raise PreconditionError("HELIUS_API_KEY", "Required for scan (holders + tx history).")

    async with new_session(config.scanner.request_timeout) as session:
        scanner = TokenScanner(
            config,
            rpc=SolanaRPCClient(session, config.rpc.scan_rpc_url),
            helius=HeliusClient(session, api_key),
            jupiter=JupiterClient(session, config),
        )
        return await scanner.scan(limit)
