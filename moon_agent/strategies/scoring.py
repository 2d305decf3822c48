"""
Token scoring.

Five independent signals, each squashed into [0, 1], then blended with
fixed weights:

    liquidity  price impact of a small test swap (0% -> 1, 5%+ -> 0)
    volume     transactions in the last 24h (20+ -> 1)
    holders    log10(holders) / 3 (1000+ -> 1)
    safety     1 - critical_risks / 5
    age        exp(-age / 1 day); unknown age is neutral (0.5)

Scores are always computed. Filters run afterwards and only decide
whether a token is shown.
"""

import math
import time
from dataclasses import dataclass, field
from typing import Optional

from moon_agent.config import ScannerConfig


DEFAULT_PARAMS = ScannerConfig()


def _clamp(value: float) -> float:
    return max(0.0, min(1.0, value))


def score_liquidity(price_impact_pct: Optional[float], max_impact_pct: float = 5.0) -> float:
    if price_impact_pct is None:
        return 0.0
    return _clamp(1 - abs(float(price_impact_pct)) / max_impact_pct)


def score_volume(tx_count_24h: float, saturation: int = 20) -> float:
    return _clamp(tx_count_24h / saturation)


def score_holders(holder_count: float, log_scale: float = 3.0) -> float:
    if holder_count <= 1:
        return 0.0
    return _clamp(math.log10(holder_count) / log_scale)


def score_safety(risk_count: float, cap: int = 5) -> float:
    return _clamp(1 - risk_count / cap)


def score_age(created_at: Optional[float], now: Optional[float] = None,
              decay_seconds: float = 86400.0) -> float:
    """``created_at`` is a unix timestamp in seconds. Future timestamps count as brand new."""
    if not created_at:
        return 0.5
    now = time.time() if now is None else now
    age = max(0.0, now - created_at)
    return _clamp(math.exp(-age / decay_seconds))


@dataclass
class TokenMetrics:
    mint: str
    liquidity_score: float = 0.0
    volume_score: float = 0.0
    holders_score: float = 0.0
    safety_score: float = 0.0
    age_score: float = 0.5
    holder_count: int = 0
    tx_count_24h: int = 0
    risk_count: int = 0
    price_impact_pct: Optional[float] = None
    top_holder_pct: float = 100.0
    has_critical_risk: bool = False
    quotable: bool = False
    score: float = 0.0
    discovery_dex: Optional[str] = None
    discovery_signature: Optional[str] = None
    filter_reasons: list = field(default_factory=list)

    @property
    def passed(self) -> bool:
        return not self.filter_reasons

    def breakdown(self) -> dict:
        return {
            "liquidity": round(self.liquidity_score, 2),
            "volume": round(self.volume_score, 2),
            "holders": round(self.holders_score, 2),
            "safety": round(self.safety_score, 2),
            "age": round(self.age_score, 2),
        }


def compute_score(metrics: TokenMetrics, weights: Optional[dict] = None) -> float:
    w = weights or DEFAULT_PARAMS.weights
    return (
        w["liquidity"] * metrics.liquidity_score
        + w["volume"] * metrics.volume_score
        + w["holders"] * metrics.holders_score
        + w["safety"] * metrics.safety_score
        + w["age"] * metrics.age_score
    )


def filter_reasons(metrics: TokenMetrics, params: ScannerConfig = DEFAULT_PARAMS) -> list[str]:
    """Why a token is excluded. Empty list means it passes."""
    reasons = []
    if metrics.holder_count < params.min_holders:
        reasons.append("too_few_holders")
    if metrics.top_holder_pct > params.max_top_holder_pct:
        reasons.append("concentrated")
    if metrics.has_critical_risk:
        reasons.append("critical_risk")
    if not metrics.quotable:
        reasons.append("unquotable")
    return reasons


def passes_filters(metrics: TokenMetrics, params: ScannerConfig = DEFAULT_PARAMS) -> bool:
    return not filter_reasons(metrics, params)


def filter_summary(params: ScannerConfig = DEFAULT_PARAMS) -> dict:
    return {
        "min_holders": params.min_holders,
        "max_top_holder_pct": params.max_top_holder_pct,
        "no_critical_risks": True,
        "must_be_quotable": True,
    }
