"""
Solana JSON-RPC access for new-pool discovery.

Recently created pools are found by reading the latest signatures on the
big AMM programs, then pulling the parsed transactions to see which token
mints moved through them.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Optional

import aiohttp

from moon_agent.console import log
from moon_agent.markets.http import json_rpc


WSOL = "So11111111111111111111111111111111111111112"

# Pool programs watched for new liquidity
DEX_PROGRAMS = {
    "Raydium AMM v4": "675kPX9MHTjS2zt1qfr1NYHuzeLXfQM9H24wFSUt1Mp8",
    "PumpSwap": "pAMMBay6oceH9fJKBRHGP5D4bD4sWpmSwMn52FMfXEA",
    "Meteora DLMM": "LBUZKhRxPF3XUpBCjp4YzTKgLccjZhTSDM9YuVaPwxo",
    "Meteora CP-AMM": "cpamdpZCGKUy5JxQXB4dcpGPiikHawvSWAd6mEn1sGG",
}


@dataclass
class PoolSignature:
    signature: str
    dex: str
    block_time: Optional[int] = None
    slot: Optional[int] = None
    failed: bool = False

    @classmethod
    def from_rpc(cls, raw: dict, dex: str) -> "PoolSignature":
        return cls(
            signature=raw.get("signature", ""),
            dex=dex,
            block_time=raw.get("blockTime"),
            slot=raw.get("slot"),
            failed=raw.get("err") is not None,
        )


@dataclass
class ParsedTransaction:
    signature: str
    block_time: Optional[int] = None
    post_token_mints: list = field(default_factory=list)

    @classmethod
    def from_rpc(cls, signature: str, raw: dict) -> Optional["ParsedTransaction"]:
        meta = raw.get("meta") if raw else None
        if not meta:
            return None
        mints = []
        for balance in meta.get("postTokenBalances") or []:
            mint = balance.get("mint")
            if mint and mint not in mints:
                mints.append(mint)
        return cls(signature=signature, block_time=raw.get("blockTime"), post_token_mints=mints)


class SolanaRPCClient:
    """Thin async JSON-RPC client. Swap in the Helius URL for better rate limits."""

    def __init__(self, session: aiohttp.ClientSession, rpc_url: str):
        self.session = session
        self.rpc_url = rpc_url

    async def get_signatures(self, address: str, limit: int, dex: str = "") -> list[PoolSignature]:
        result = await json_rpc(
            self.session, "Solana RPC", self.rpc_url,
            "getSignaturesForAddress", [address, {"limit": min(limit, 1000)}],
        )
        return [PoolSignature.from_rpc(raw, dex) for raw in result or []]

    async def get_parsed_transaction(self, signature: str) -> Optional[ParsedTransaction]:
        result = await json_rpc(
            self.session, "Solana RPC", self.rpc_url,
            "getTransaction",
            [signature, {"encoding": "jsonParsed", "maxSupportedTransactionVersion": 0}],
        )
        if not result:
            return None
        return ParsedTransaction.from_rpc(signature, result)

    async def discover_new_pools(self, limit: int) -> list[PoolSignature]:
        """
        Latest activity across all watched pool programs, newest first.

        Each program is asked for 2x the limit since many signatures are
        swaps rather than pool creations. A program that errors just
        contributes nothing.
        """
        async def _one(dex: str, program: str) -> list[PoolSignature]:
            try:
                return await self.get_signatures(program, limit * 2, dex=dex)
            except Exception as e:
                log("SolanaRPC", f"{dex} signatures failed: {e}")
                return []

        batches = await asyncio.gather(*(_one(dex, program) for dex, program in DEX_PROGRAMS.items()))

        merged = [sig for batch in batches for sig in batch]
        merged.sort(key=lambda s: s.block_time or 0, reverse=True)
        return merged[:limit]
