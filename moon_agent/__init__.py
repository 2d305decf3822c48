"""
moon-agent - Autonomous trading intelligence for on-chain agents.

Token discovery and scoring on Solana, a trade journal with Kelly-based
position sizing, a watchlist, and Polymarket bet tracking. Every command
prints a single JSON object so an LLM agent can drive it from a shell.
"""

__version__ = "0.3.0"
