"""
Configuration for moon-agent.

Everything comes from the environment (or a .env file next to where the
agent runs). Scanner thresholds and weights live here too so they can be
tuned without touching the scoring code.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from moon_agent.errors import PreconditionError

load_dotenv()


def _env(name: str, default: str = ""):
    return field(default_factory=lambda: os.getenv(name, default))


def require_env(name: str, reason: str) -> str:
    """Return an env var or raise a PreconditionError naming it."""
    value = os.getenv(name)
    if not value:
        raise PreconditionError(name, reason)
    return value


@dataclass
class RPCConfig:
    solana_rpc_url: str = _env("SOLANA_RPC_URL", "https://api.mainnet-beta.solana.com")
    base_rpc_url: str = _env("BASE_RPC_URL", "https://mainnet.base.org")
    helius_api_key: str = _env("HELIUS_API_KEY")

    @property
    def helius_rpc_url(self) -> Optional[str]:
        if not self.helius_api_key:
            return None
        return f"https://mainnet.helius-rpc.com/?api-key={self.helius_api_key}"

    @property
    def scan_rpc_url(self) -> str:
        """Helius RPC when a key is set, public RPC otherwise."""
        return self.helius_rpc_url or self.solana_rpc_url


@dataclass
class JupiterConfig:
    api_key: str = _env("JUPITER_API_KEY")
    lite_api_url: str = "https://lite-api.jup.ag"
    paid_api_url: str = "https://api.jup.ag"

    @property
    def api_url(self) -> str:
        return self.paid_api_url if self.api_key else self.lite_api_url


@dataclass
class BankrConfig:
    api_key: str = _env("BANKR_API_KEY")
    api_url: str = "https://bankr.fyi/api"
    poll_interval: float = 2.0
    poll_timeout: float = 60.0


@dataclass
class PolymarketConfig:
    private_key: str = _env("POLYMARKET_PRIVATE_KEY")
    clob_url: str = "https://clob.polymarket.com"
    gamma_url: str = "https://gamma-api.polymarket.com"
    chain_id: int = 137  # Polygon
    book_depth: int = 10
    resolved_price: float = 0.95  # YES price at/above this means YES won


@dataclass
class ScannerConfig:
    weights: dict = field(default_factory=lambda: {
        "liquidity": 0.25,
        "volume": 0.20,
        "holders": 0.20,
        "safety": 0.20,
        "age": 0.15,
    })
    min_holders: int = 10
    max_top_holder_pct: float = 50.0
    max_price_impact_pct: float = 5.0
    volume_saturation_txs: int = 20
    holder_log_scale: float = 3.0
    safety_risk_cap: int = 5
    age_decay_seconds: float = 86400.0
    batch_size: int = 5
    discovery_multiplier: int = 3
    analysis_multiplier: int = 2
    test_quote_lamports: int = 10_000_000  # 0.01 SOL
    test_quote_slippage_bps: int = 100
    holder_sample: int = 20
    tx_history_limit: int = 50
    request_timeout: float = 20.0


@dataclass
class StateConfig:
    state_dir: str = _env("MOON_STATE_DIR")
    volume_path: str = "/data"
    watch_stale_seconds: float = 2 * 60 * 60
    scan_history_cap: int = 50

    def resolve_dir(self) -> Path:
        """Override > mounted volume > home directory."""
        if self.state_dir:
            return Path(self.state_dir)
        volume = Path(self.volume_path)
        if volume.exists():
            return volume / ".moon"
        return Path.home() / ".moon"


@dataclass
class MoonConfig:
    rpc: RPCConfig = field(default_factory=RPCConfig)
    jupiter: JupiterConfig = field(default_factory=JupiterConfig)
    bankr: BankrConfig = field(default_factory=BankrConfig)
    polymarket: PolymarketConfig = field(default_factory=PolymarketConfig)
    scanner: ScannerConfig = field(default_factory=ScannerConfig)
    state: StateConfig = field(default_factory=StateConfig)
    verbose: bool = field(default_factory=lambda: os.getenv("MOON_VERBOSE", "") not in ("", "0", "false"))
