"""
CLI Entry Point for moon.

Every command prints exactly one JSON object on stdout. Failures print
``{"error": true, "message": ...}`` on stderr and exit with status 1.

Commands:
  scan      - Discover and rank new Solana tokens
  price, quote, token, safety
            - Jupiter prices, swap quotes, token search and audits
  meta, holders, history
            - Helius metadata, top holders and decoded transactions
  journal   - Show, add, close and review journal entries
  watch     - Watchlist management and alert checks
  calc      - Target / market cap / position size calculators
  review    - Portfolio, goal progress and watchlist staleness
  buy/sell  - Swaps through Bankr, auto-journaled
  bet       - Track a Polymarket bet
  redeem    - Resolve tracked bets on closed markets
  odds      - Polymarket prices and spreads
  market    - Polymarket details, search, positions, orders and trades
  config    - Goal and risk defaults
"""

import json
import math
import time

import click
import schedule

from moon_agent import __version__
from moon_agent.agent import MoonAgent
from moon_agent.config import MoonConfig
from moon_agent.console import console
from moon_agent.errors import InvalidInputError, MoonError


CHAINS = {"sol": "sol", "solana": "sol", "base": "base"}


class ChainType(click.ParamType):
    name = "chain"

    def convert(self, value, param, ctx):
        chain = CHAINS.get(str(value).lower())
        if chain is None:
            self.fail(f"{value!r} is not a chain (use sol or base)", param, ctx)
        return chain


CHAIN = ChainType()


def _finite(value):
    """Swap inf/nan for JSON-safe values; profit factor is infinite with no losses."""
    if isinstance(value, float):
        if math.isinf(value):
            return "Infinity" if value > 0 else "-Infinity"
        if math.isnan(value):
            return None
        return value
    if isinstance(value, dict):
        return {k: _finite(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_finite(v) for v in value]
    return value


def emit(payload: dict):
    click.echo(json.dumps(_finite(payload), indent=2, default=str))


def fail(ctx: click.Context, payload: dict):
    click.echo(json.dumps(_finite(payload), indent=2, default=str), err=True)
    ctx.exit(1)


class MoonGroup(click.Group):
    """Turns every non-click exception into the JSON error contract."""

    def invoke(self, ctx):
        try:
            return super().invoke(ctx)
        except (click.exceptions.Exit, click.exceptions.Abort, click.ClickException):
            raise
        except MoonError as e:
            fail(ctx, e.to_payload())
        except Exception as e:
            fail(ctx, {"error": True, "message": f"{type(e).__name__}: {e}"})


def _agent(ctx: click.Context) -> MoonAgent:
    return ctx.find_object(MoonAgent)


@click.group(cls=MoonGroup)
@click.version_option(version=__version__, prog_name="moon")
@click.pass_context
def cli(ctx):
    """moon - on-chain research, trading journal and autonomous trading intelligence."""
    if ctx.obj is None:
        ctx.obj = MoonAgent(MoonConfig())


# --- Scan ------------------------------------------------------------------

@cli.command()
@click.argument("chain", type=CHAIN, default="sol")
@click.option("--limit", default=10, show_default=True, help="Tokens to return")
@click.pass_context
def scan(ctx, chain, limit):
    """Discover and rank new Solana tokens (needs HELIUS_API_KEY)."""
    if chain != "sol":
        raise InvalidInputError("scan is currently Solana-only.")
    console.print(f"[dim]Scanning new Solana tokens (top {limit})...[/dim]")
    emit(_agent(ctx).scan(limit))


# --- Research --------------------------------------------------------------

def _solana_only(chain: str, command: str):
    if chain != "sol":
        raise InvalidInputError(f"{command} is Solana-only.")


@cli.command()
@click.argument("chain", type=CHAIN)
@click.argument("token")
@click.pass_context
def price(ctx, chain, token):
    """USD price, market cap and liquidity from Jupiter."""
    emit(_agent(ctx).price(chain, token))


@cli.command()
@click.argument("chain", type=CHAIN)
@click.argument("input_mint")
@click.argument("output_mint")
@click.argument("amount", type=float)
@click.option("--slippage", "slippage_bps", type=int, default=50, show_default=True, help="Slippage in bps")
@click.pass_context
def quote(ctx, chain, input_mint, output_mint, amount, slippage_bps):
    """Jupiter swap quote with price impact (use `sol` for native SOL)."""
    _solana_only(chain, "quote")
    emit(_agent(ctx).quote(input_mint, output_mint, amount, slippage_bps))


@cli.command()
@click.argument("query", nargs=-1, required=True)
@click.pass_context
def token(ctx, query):
    """Search tokens by name, symbol or address."""
    emit(_agent(ctx).token_search(" ".join(query)))


@cli.command()
@click.argument("mint")
@click.pass_context
def safety(ctx, mint):
    """Rug/scam check from Jupiter's audit data."""
    emit(_agent(ctx).safety(mint))


@cli.command()
@click.argument("chain", type=CHAIN)
@click.argument("mint")
@click.pass_context
def meta(ctx, chain, mint):
    """DAS metadata (needs HELIUS_API_KEY)."""
    _solana_only(chain, "meta")
    emit(_agent(ctx).meta(mint))


@cli.command()
@click.argument("chain", type=CHAIN)
@click.argument("mint")
@click.option("--limit", default=20, show_default=True)
@click.pass_context
def holders(ctx, chain, mint, limit):
    """Top holders and concentration (needs HELIUS_API_KEY)."""
    _solana_only(chain, "holders")
    emit(_agent(ctx).holders(mint, limit))


@cli.command()
@click.argument("chain", type=CHAIN)
@click.argument("address")
@click.option("--limit", default=10, show_default=True)
@click.pass_context
def history(ctx, chain, address, limit):
    """Decoded recent transactions (needs HELIUS_API_KEY)."""
    _solana_only(chain, "history")
    emit(_agent(ctx).history(address, limit))


# --- Journal ---------------------------------------------------------------

@cli.group(invoke_without_command=True)
@click.option("--last", type=int, default=None, help="Only the last N entries")
@click.option("--status", type=click.Choice(["open", "closed"]), default=None)
@click.option("--narrative", default=None, help="Only entries with this tag")
@click.pass_context
def journal(ctx, last, status, narrative):
    """Show the trade journal."""
    if ctx.invoked_subcommand is None:
        emit(_agent(ctx).journal_show(last=last, status=status, narrative=narrative))


@journal.command("add")
@click.argument("type", type=click.Choice(["buy", "sell"]))
@click.argument("chain", type=CHAIN)
@click.argument("mint")
@click.argument("amount", type=float)
@click.argument("price", type=float)
@click.option("--note", default=None)
@click.option("--narrative", default=None)
@click.pass_context
def journal_add(ctx, type, chain, mint, amount, price, note, narrative):
    """Add a manual entry (amount in USD, price per token)."""
    emit(_agent(ctx).journal_add(type, chain, mint, amount, price, note=note, narrative=narrative))


@journal.command("close")
@click.argument("entry_id")
@click.argument("exit_price", type=float)
@click.pass_context
def journal_close(ctx, entry_id, exit_price):
    """Close an open entry at EXIT_PRICE."""
    emit(_agent(ctx).journal_close(entry_id, exit_price))


@journal.command("review")
@click.option("--narrative", default=None)
@click.pass_context
def journal_review(ctx, narrative):
    """Win rate, Kelly and P&L analysis of closed trades."""
    emit(_agent(ctx).journal_review(narrative=narrative))


# --- Watchlist -------------------------------------------------------------

@cli.group(invoke_without_command=True)
@click.pass_context
def watch(ctx):
    """Watchlist (defaults to list)."""
    if ctx.invoked_subcommand is None:
        emit(_agent(ctx).watch_list())


@watch.command("add")
@click.argument("mint")
@click.option("--target-buy", type=float, default=None)
@click.option("--target-sell", type=float, default=None)
@click.option("--narrative", default=None)
@click.option("--note", default=None)
@click.pass_context
def watch_add(ctx, mint, target_buy, target_sell, narrative, note):
    """Add (or replace) a watched token."""
    emit(_agent(ctx).watch_add(mint, target_buy=target_buy, target_sell=target_sell,
                               narrative=narrative, note=note))


@watch.command("remove")
@click.argument("mint")
@click.pass_context
def watch_remove(ctx, mint):
    emit(_agent(ctx).watch_remove(mint))


@watch.command("list")
@click.pass_context
def watch_list(ctx):
    """Watchlist with current prices."""
    emit(_agent(ctx).watch_list())


@watch.command("check")
@click.option("--every", type=int, default=None, help="Repeat every N minutes until interrupted")
@click.pass_context
def watch_check(ctx, every):
    """Check prices and holders, raise alerts."""
    agent = _agent(ctx)
    if not every:
        emit(agent.watch_check())
        return

    schedule.every(every).minutes.do(lambda: emit(agent.watch_check()))
    console.print(f"[dim]Checking watchlist every {every} min. Ctrl+C to stop.[/dim]")
    emit(agent.watch_check())
    try:
        while True:
            schedule.run_pending()
            time.sleep(1)
    except KeyboardInterrupt:
        console.print("[yellow]Watch stopped.[/yellow]")
    finally:
        schedule.clear()


# --- Calculators -----------------------------------------------------------

@cli.group()
def calc():
    """Position and goal calculators."""


@calc.command("target")
@click.argument("price", type=float)
@click.argument("supply", type=float)
@click.argument("target_usd", type=float)
@click.pass_context
def calc_target(ctx, price, supply, target_usd):
    """Tokens needed at PRICE to hold TARGET_USD."""
    emit(_agent(ctx).calc_target(price, supply, target_usd))


@calc.command("mcap")
@click.argument("tokens_held", type=float)
@click.argument("supply", type=float)
@click.argument("target_usd", type=float)
@click.option("--current-mcap", type=float, default=None)
@click.pass_context
def calc_mcap(ctx, tokens_held, supply, target_usd, current_mcap):
    """Market cap at which TOKENS_HELD are worth TARGET_USD."""
    emit(_agent(ctx).calc_mcap(tokens_held, supply, target_usd, current_mcap))


@calc.command("size")
@click.argument("portfolio", type=float)
@click.argument("risk_pct", type=float)
@click.argument("entry_price", type=float)
@click.option("--stop-loss", type=float, default=None, help="Stop-loss price")
@click.pass_context
def calc_size(ctx, portfolio, risk_pct, entry_price, stop_loss):
    """Risk-based position size, plus journal Kelly once there is history."""
    emit(_agent(ctx).calc_size(portfolio, risk_pct, entry_price, stop_loss))


@calc.command("kelly")
@click.argument("win_rate", type=float)
@click.argument("avg_win", type=float)
@click.argument("avg_loss", type=float)
@click.pass_context
def calc_kelly(ctx, win_rate, avg_win, avg_loss):
    """Kelly fraction for a win rate (0-1) and average win/loss."""
    emit(_agent(ctx).calc_kelly(win_rate, avg_win, avg_loss))


# --- Review ----------------------------------------------------------------

@cli.command()
@click.pass_context
def review(ctx):
    """Open positions, stats, goal progress and watchlist staleness."""
    emit(_agent(ctx).review())


# --- Trading ---------------------------------------------------------------

@cli.command()
@click.argument("chain", type=CHAIN)
@click.argument("token")
@click.argument("amount", type=float)
@click.option("--slippage", type=float, default=5, show_default=True, help="Slippage %")
@click.option("--note", default=None)
@click.option("--narrative", default=None)
@click.pass_context
def buy(ctx, chain, token, amount, slippage, note, narrative):
    """Buy TOKEN with AMOUNT SOL/ETH through Bankr (needs BANKR_API_KEY)."""
    emit(_agent(ctx).buy(chain, token, amount, slippage, note=note, narrative=narrative))


@cli.command()
@click.argument("chain", type=CHAIN)
@click.argument("token")
@click.argument("amount")
@click.option("--slippage", type=float, default=5, show_default=True, help="Slippage %")
@click.option("--note", default=None)
@click.pass_context
def sell(ctx, chain, token, amount, slippage, note):
    """Sell AMOUNT (tokens, or "all") of TOKEN through Bankr."""
    if amount not in ("all", "100%"):
        try:
            amount = float(amount)
        except ValueError:
            raise InvalidInputError(f"Amount must be a number or 'all', got {amount!r}")
    emit(_agent(ctx).sell(chain, token, amount, slippage, note=note))


# --- Polymarket ------------------------------------------------------------

@cli.command()
@click.argument("condition_id")
@click.argument("outcome", type=click.Choice(["yes", "no"], case_sensitive=False))
@click.argument("amount", type=float)
@click.option("--limit", "limit_price", type=float, default=None, help="Limit price the order was placed at")
@click.option("--order-id", default=None)
@click.option("--note", default=None)
@click.option("--narrative", default=None)
@click.pass_context
def bet(ctx, condition_id, outcome, amount, limit_price, order_id, note, narrative):
    """Track a bet of AMOUNT USDC on OUTCOME."""
    emit(_agent(ctx).bet_track(condition_id, outcome, amount, narrative=narrative, note=note,
                               order_id=order_id, limit_price=limit_price))


@cli.command()
@click.argument("target")
@click.pass_context
def redeem(ctx, target):
    """Resolve a tracked bet (CONDITION_ID), or `list` all of them."""
    agent = _agent(ctx)
    emit(agent.redeem_list() if target == "list" else agent.redeem(target))


class MarketGroup(click.Group):
    """``market <condition_id>`` is shorthand for ``market show <condition_id>``."""

    def resolve_command(self, ctx, args):
        if args and not args[0].startswith("-") and args[0] not in self.commands:
            args = ["show", *args]
        return super().resolve_command(ctx, args)


@cli.command()
@click.argument("condition_id")
@click.pass_context
def odds(ctx, condition_id):
    """Current YES/NO prices with best bid/ask and spread."""
    emit(_agent(ctx).odds(condition_id))


@cli.group(cls=MarketGroup)
def market():
    """Polymarket lookups. `market CONDITION_ID` shows one market."""


@market.command("show")
@click.argument("condition_id")
@click.pass_context
def market_show(ctx, condition_id):
    """Market details and YES/NO order books."""
    emit(_agent(ctx).market_detail(condition_id))


@market.command("positions")
@click.pass_context
def market_positions(ctx):
    """Wallet collateral and tracked open bets (needs POLYMARKET_PRIVATE_KEY)."""
    emit(_agent(ctx).market_positions())


@market.command("search")
@click.argument("query", nargs=-1, required=True)
@click.option("--limit", default=20, show_default=True)
@click.pass_context
def market_search(ctx, query, limit):
    emit(_agent(ctx).market_search(" ".join(query), limit))


@market.command("orders")
@click.pass_context
def market_orders(ctx):
    """Open CLOB orders (needs POLYMARKET_PRIVATE_KEY)."""
    emit(_agent(ctx).market_orders())


@market.command("trades")
@click.option("--last", "limit", default=20, show_default=True)
@click.pass_context
def market_trades(ctx, limit):
    emit(_agent(ctx).market_trades(limit))


# --- Config ----------------------------------------------------------------

@cli.command("config")
@click.option("--goal-usd", type=float, default=None)
@click.option("--risk-pct", type=float, default=None)
@click.option("--stop-loss-pct", type=float, default=None)
@click.pass_context
def config_cmd(ctx, goal_usd, risk_pct, stop_loss_pct):
    """Show or update goal and risk defaults."""
    emit(_agent(ctx).config_set(goal_usd=goal_usd, risk_pct=risk_pct, stop_loss_pct=stop_loss_pct))


def main():
    cli()


if __name__ == "__main__":
    main()
