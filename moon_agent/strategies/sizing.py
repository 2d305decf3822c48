"""
Position sizing, Kelly criterion and goal math.

Pure functions, no I/O. Bad input comes back as ``{"error": ...}`` rather
than an exception so callers can print it as-is.
"""

from typing import Optional


KELLY_CAP_PCT = 25.0


def target_position(current_price: float, total_supply: float, target_usd: float) -> dict:
    """I want $target_usd. How many tokens at this price?"""
    if not current_price or current_price <= 0:
        return {"error": "Invalid price"}

    tokens_needed = target_usd / current_price
    has_supply = bool(total_supply) and total_supply > 0
    return {
        "tokens_needed": tokens_needed,
        "cost_at_current_price": tokens_needed * current_price,
        "pct_of_supply": (tokens_needed / total_supply) * 100 if has_supply else None,
        "current_mcap": current_price * total_supply if has_supply else None,
        "target_usd": target_usd,
        "current_price": current_price,
    }


def required_mcap(tokens_held: float, total_supply: float, target_usd: float,
                  current_mcap: Optional[float] = None) -> dict:
    """I hold X tokens. What market cap makes them worth $target_usd?"""
    if not tokens_held or tokens_held <= 0:
        return {"error": "Invalid token amount"}
    if not total_supply or total_supply <= 0:
        return {"error": "Invalid supply"}

    required_price = target_usd / tokens_held
    mcap = required_price * total_supply
    result = {
        "required_mcap": mcap,
        "required_price": required_price,
        "tokens_held": tokens_held,
        "total_supply": total_supply,
        "target_usd": target_usd,
        "multiplier_needed": None,
    }
    if current_mcap is not None:
        result["current_mcap"] = current_mcap
        result["multiplier_needed"] = mcap / current_mcap if current_mcap > 0 else None
    return result


def position_size(portfolio_value: float, risk_pct: float, entry_price: float,
                  stop_loss_price: Optional[float] = None) -> dict:
    """
    Risk-based sizing.

    With a stop below entry, size so that hitting the stop loses exactly
    the risk amount. Without one, assume the whole position can go to zero.
    """
    if not portfolio_value or portfolio_value <= 0:
        return {"error": "Invalid portfolio value"}
    if not risk_pct or risk_pct <= 0:
        return {"error": "Invalid risk %"}
    if not entry_price or entry_price <= 0:
        return {"error": "Invalid entry price"}

    risk_amount = portfolio_value * (risk_pct / 100)

    if stop_loss_price and 0 < stop_loss_price < entry_price:
        risk_per_token = entry_price - stop_loss_price
        tokens_to_buy = risk_amount / risk_per_token
        size = tokens_to_buy * entry_price
    else:
        risk_per_token = None
        size = risk_amount
        tokens_to_buy = risk_amount / entry_price

    return {
        "position_size": size,
        "tokens_to_buy": tokens_to_buy,
        "risk_amount": risk_amount,
        "risk_per_token": risk_per_token,
        "risk_pct": risk_pct,
        "pct_of_portfolio": (size / portfolio_value) * 100,
        "entry_price": entry_price,
        "stop_loss_price": stop_loss_price or None,
    }


def kelly_criterion(win_rate: float, avg_win: float, avg_loss: float) -> dict:
    """
    Kelly% = W - (1 - W) / R, R = avg win / avg loss.

    Capped at 25%. We recommend half of it.
    """
    if avg_loss == 0:
        return {
            "kelly_pct": 0.0, "half_kelly_pct": 0.0, "win_loss_ratio": None,
            "recommendation": "No losses recorded - insufficient data",
        }
    if win_rate <= 0:
        return {
            "kelly_pct": 0.0, "half_kelly_pct": 0.0, "win_loss_ratio": None,
            "recommendation": "No wins - do not trade this strategy",
        }

    ratio = abs(avg_win) / abs(avg_loss)
    if ratio == 0:
        kelly_pct = -100.0
    else:
        kelly_pct = (win_rate - (1 - win_rate) / ratio) * 100
    kelly_pct = min(kelly_pct, KELLY_CAP_PCT)
    half_kelly_pct = max(kelly_pct / 2, 0.0)

    if kelly_pct <= 0:
        recommendation = "Negative edge - do not trade this strategy"
    elif half_kelly_pct < 1:
        recommendation = "Very small edge - trade minimum size"
    elif half_kelly_pct < 5:
        recommendation = f"Size positions at {half_kelly_pct:.1f}% of portfolio (half-Kelly)"
    else:
        recommendation = f"Size positions at {half_kelly_pct:.1f}% of portfolio (half-Kelly, capped)"

    return {
        "kelly_pct": max(kelly_pct, 0.0),
        "half_kelly_pct": half_kelly_pct,
        "win_loss_ratio": ratio,
        "recommendation": recommendation,
    }


def goal_progress(positions: list[dict], target_usd: float) -> dict:
    """
    How far the open book is from the goal, and what each position would
    need to do to get there on its own.

    Positions are dicts with ``token_amount`` and ``current_price`` (falling
    back to entry ``price``).
    """
    if not positions:
        return {
            "current_value": 0.0,
            "progress_pct": 0.0,
            "remaining_usd": target_usd,
            "target_usd": target_usd,
            "path_to_goal": [],
        }

    current_value = 0.0
    path = []
    for pos in positions:
        price = pos.get("current_price") or pos.get("price") or 0
        value = (pos.get("token_amount") or 0) * price
        current_value += value
        path.append({
            "symbol": pos.get("symbol") or pos.get("mint"),
            "mint": pos.get("mint"),
            "current_value": value,
            "multiplier_needed": target_usd / value if value > 0 else "N/A",
            "pct_of_goal": (value / target_usd) * 100 if target_usd else 0.0,
        })

    path.sort(key=lambda p: p["current_value"], reverse=True)
    return {
        "current_value": current_value,
        "progress_pct": (current_value / target_usd) * 100 if target_usd else 0.0,
        "remaining_usd": target_usd - current_value,
        "target_usd": target_usd,
        "path_to_goal": path,
    }
