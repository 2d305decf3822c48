"""
Helius: token metadata and holders (DAS) and decoded transaction history.

Every endpoint needs HELIUS_API_KEY.
"""

from dataclasses import dataclass, field
from typing import Optional

import aiohttp

from moon_agent.errors import UpstreamError
from moon_agent.markets.http import fetch_json, json_rpc


HELIUS_API_URL = "https://api.helius.xyz/v0"


@dataclass
class TokenHolder:
    rank: int
    owner: str
    account: str
    amount: float
    pct_of_visible: float


@dataclass
class TokenHolders:
    mint: str
    holders: list = field(default_factory=list)
    total_accounts: int = 0
    top10_concentration_pct: float = 100.0

    @classmethod
    def from_das(cls, mint: str, result: Optional[dict], limit: int) -> "TokenHolders":
        if not result or not result.get("token_accounts"):
            return cls(mint=mint)

        accounts = sorted(
            result["token_accounts"],
            key=lambda a: float(a.get("amount") or 0),
            reverse=True,
        )
        total_visible = sum(float(a.get("amount") or 0) for a in accounts)

        holders = []
        for i, a in enumerate(accounts[:limit]):
            amount = float(a.get("amount") or 0)
            pct = (amount / total_visible) * 100 if total_visible > 0 else 0.0
            holders.append(TokenHolder(
                rank=i + 1,
                owner=a.get("owner", ""),
                account=a.get("address", ""),
                amount=amount,
                pct_of_visible=round(pct, 2),
            ))

        top10 = sum(h.pct_of_visible for h in holders[:10])
        return cls(
            mint=mint,
            holders=holders,
            total_accounts=int(result.get("total") or len(accounts)),
            top10_concentration_pct=round(top10, 2),
        )


@dataclass
class EnhancedTransaction:
    signature: str
    type: str = "UNKNOWN"
    timestamp: Optional[int] = None
    fee: int = 0
    fee_payer: str = ""
    source: Optional[str] = None
    description: Optional[str] = None

    @classmethod
    def from_api(cls, raw: dict) -> "EnhancedTransaction":
        return cls(
            signature=raw.get("signature", ""),
            type=raw.get("type") or "UNKNOWN",
            timestamp=raw.get("timestamp"),
            fee=raw.get("fee") or 0,
            fee_payer=raw.get("feePayer") or "",
            source=raw.get("source"),
            description=raw.get("description"),
        )


@dataclass
class TokenAsset:
    mint: str
    name: Optional[str] = None
    symbol: Optional[str] = None
    description: Optional[str] = None
    image: Optional[str] = None
    authority: Optional[str] = None
    supply: Optional[int] = None
    decimals: Optional[int] = None
    token_program: Optional[str] = None
    mutable: Optional[bool] = None
    burnt: bool = False
    compressed: bool = False
    frozen: bool = False
    owner: Optional[str] = None

    @classmethod
    def from_das(cls, mint: str, result: dict) -> "TokenAsset":
        content = result.get("content") or {}
        metadata = content.get("metadata") or {}
        links = content.get("links") or {}
        token_info = result.get("token_info") or {}
        ownership = result.get("ownership") or {}
        authorities = result.get("authorities") or [{}]
        return cls(
            mint=mint,
            name=metadata.get("name") or None,
            symbol=metadata.get("symbol") or None,
            description=metadata.get("description") or None,
            image=links.get("image") or content.get("json_uri") or None,
            authority=authorities[0].get("address"),
            supply=token_info.get("supply"),
            decimals=token_info.get("decimals"),
            token_program=token_info.get("token_program"),
            mutable=result.get("mutable"),
            burnt=bool(result.get("burnt")),
            compressed=bool((result.get("compression") or {}).get("compressed")),
            frozen=bool(ownership.get("frozen")),
            owner=ownership.get("owner"),
        )


class HeliusClient:
    def __init__(self, session: aiohttp.ClientSession, api_key: str):
        self.session = session
        self.api_key = api_key

    @property
    def rpc_url(self) -> str:
        return f"https://mainnet.helius-rpc.com/?api-key={self.api_key}"

    async def get_token_holders(self, mint: str, limit: int = 20) -> TokenHolders:
        """Top holders by balance. Over-fetches so the sort is meaningful."""
        result = await json_rpc(self.session, "Helius DAS", self.rpc_url, "getTokenAccounts", {
            "mint": mint,
            "limit": min(limit * 2, 1000),
            "options": {"showZeroBalance": False},
        })
        return TokenHolders.from_das(mint, result, limit)

    async def get_enhanced_transactions(self, address: str, limit: int = 10) -> list[EnhancedTransaction]:
        data = await fetch_json(
            self.session, "Helius", "GET",
            f"{HELIUS_API_URL}/addresses/{address}/transactions",
            params={"api-key": self.api_key, "limit": min(limit, 100)},
        )
        return [EnhancedTransaction.from_api(tx) for tx in data or [] if isinstance(tx, dict)]

    async def get_asset(self, mint: str) -> TokenAsset:
        result = await json_rpc(self.session, "Helius DAS", self.rpc_url, "getAsset", {"id": mint})
        if not result:
            raise UpstreamError("Helius DAS", 404, f"Asset not found: {mint}")
        return TokenAsset.from_das(mint, result)
