"""
Jupiter: swap quotes, token search, safety audit and USD prices.

lite-api.jup.ag is free; with JUPITER_API_KEY set we use api.jup.ag for
the higher rate limits.
"""

from dataclasses import dataclass, field
from typing import Optional

import aiohttp

from moon_agent.markets.http import fetch_json


def _float(value, default=None) -> Optional[float]:
    if value is None or value == "":
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


@dataclass
class Quote:
    input_mint: str
    output_mint: str
    in_amount: str = "0"
    out_amount: str = "0"
    price_impact_pct: float = 0.0
    slippage_bps: int = 0
    route_labels: list = field(default_factory=list)

    @classmethod
    def from_api(cls, raw: dict) -> "Quote":
        return cls(
            input_mint=raw.get("inputMint", ""),
            output_mint=raw.get("outputMint", ""),
            in_amount=str(raw.get("inAmount", "0")),
            out_amount=str(raw.get("outAmount", "0")),
            price_impact_pct=_float(raw.get("priceImpactPct"), 0.0),
            slippage_bps=int(raw.get("slippageBps") or 0),
            route_labels=[
                (step.get("swapInfo") or {}).get("label", "")
                for step in raw.get("routePlan") or []
            ],
        )


@dataclass
class TokenAudit:
    mint_authority_disabled: bool = False
    freeze_authority_disabled: bool = False
    top_holders_percentage: float = 0.0
    dev_balance_percentage: float = 0.0
    dev_mints: int = 0

    @classmethod
    def from_api(cls, raw: Optional[dict]) -> Optional["TokenAudit"]:
        if not raw:
            return None
        return cls(
            mint_authority_disabled=bool(raw.get("mintAuthorityDisabled")),
            freeze_authority_disabled=bool(raw.get("freezeAuthorityDisabled")),
            top_holders_percentage=_float(raw.get("topHoldersPercentage"), 0.0),
            dev_balance_percentage=_float(raw.get("devBalancePercentage"), 0.0),
            dev_mints=int(raw.get("devMints") or 0),
        )


@dataclass
class TokenListing:
    address: str
    symbol: Optional[str] = None
    name: Optional[str] = None
    decimals: Optional[int] = None
    usd_price: Optional[float] = None
    mcap: Optional[float] = None
    liquidity: Optional[float] = None
    holder_count: Optional[int] = None
    is_verified: bool = False
    organic_score: Optional[float] = None
    organic_score_label: Optional[str] = None
    audit: Optional[TokenAudit] = None

    @classmethod
    def from_api(cls, raw: dict) -> "TokenListing":
        holders = raw.get("holderCount")
        return cls(
            address=raw.get("id") or raw.get("address", ""),
            symbol=raw.get("symbol"),
            name=raw.get("name"),
            decimals=raw.get("decimals"),
            usd_price=_float(raw.get("usdPrice")),
            mcap=_float(raw.get("mcap")),
            liquidity=_float(raw.get("liquidity")),
            holder_count=int(holders) if holders is not None else None,
            is_verified=bool(raw.get("isVerified")),
            organic_score=_float(raw.get("organicScore")),
            organic_score_label=raw.get("organicScoreLabel"),
            audit=TokenAudit.from_api(raw.get("audit")),
        )


@dataclass
class SafetyReport:
    mint: str
    risks: list = field(default_factory=list)
    warnings: list = field(default_factory=list)
    token: Optional[TokenListing] = None

    @property
    def risk_count(self) -> int:
        return len(self.risks)

    @property
    def warning_count(self) -> int:
        return len(self.warnings)

    @property
    def safe(self) -> bool:
        return not self.risks

    @classmethod
    def from_listing(cls, mint: str, token: Optional[TokenListing]) -> "SafetyReport":
        """Turn audit flags into critical risks and softer warnings."""
        risks, warnings = [], []

        audit = token.audit if token else None
        if audit:
            if not audit.mint_authority_disabled:
                risks.append("mint_authority_active")
            if not audit.freeze_authority_disabled:
                risks.append("freeze_authority_active")
            if audit.top_holders_percentage > 50:
                risks.append("high_concentration")
            elif audit.top_holders_percentage > 30:
                warnings.append("moderate_concentration")
            if audit.dev_balance_percentage > 5:
                warnings.append("high_dev_balance")
            if audit.dev_mints > 10:
                warnings.append("many_dev_mints")

        if not token or not token.is_verified:
            warnings.append("unverified")
        if token and token.organic_score_label == "low":
            warnings.append("low_organic_score")

        return cls(mint=mint, risks=risks, warnings=warnings, token=token)


class JupiterClient:
    def __init__(self, session: aiohttp.ClientSession, config):
        self.session = session
        self.config = config

    @property
    def headers(self) -> dict:
        headers = {"Accept": "application/json"}
        if self.config.jupiter.api_key:
            headers["x-api-key"] = self.config.jupiter.api_key
        return headers

    async def get_quote(self, input_mint: str, output_mint: str, amount: int,
                        slippage_bps: int = 50) -> Quote:
        data = await fetch_json(
            self.session, "Jupiter quote", "GET",
            f"{self.config.jupiter.api_url}/swap/v1/quote",
            headers=self.headers,
            params={
                "inputMint": input_mint,
                "outputMint": output_mint,
                "amount": str(amount),
                "slippageBps": str(slippage_bps),
            },
        )
        return Quote.from_api(data or {})

    async def search_tokens(self, query: str) -> list[TokenListing]:
        data = await fetch_json(
            self.session, "Jupiter search", "GET",
            f"{self.config.jupiter.api_url}/tokens/v2/search",
            headers=self.headers,
            params={"query": query},
        )
        if not isinstance(data, list):
            return []
        return [TokenListing.from_api(t) for t in data[:20] if isinstance(t, dict)]

    async def get_token(self, mint: str) -> Optional[TokenListing]:
        """Exact-address match from search, or None."""
        for token in await self.search_tokens(mint):
            if token.address == mint:
                return token
        return None

    async def get_token_safety(self, mint: str) -> SafetyReport:
        return SafetyReport.from_listing(mint, await self.get_token(mint))

    async def get_price(self, mint: str) -> Optional[TokenListing]:
        """Listing with a USD price, or None if Jupiter has no price for it."""
        token = await self.get_token(mint)
        if token and token.usd_price:
            return token
        return None
