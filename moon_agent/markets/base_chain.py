"""
Base chain token metadata.

Read-only ERC-20 calls through web3, used to put a symbol on Base journal
entries and watchlist items.
"""

from dataclasses import dataclass
from typing import Optional

from web3 import Web3

from moon_agent.console import log


ERC20_ABI = [
    {"name": "name", "inputs": [], "outputs": [{"type": "string"}],
     "stateMutability": "view", "type": "function"},
    {"name": "symbol", "inputs": [], "outputs": [{"type": "string"}],
     "stateMutability": "view", "type": "function"},
    {"name": "decimals", "inputs": [], "outputs": [{"type": "uint8"}],
     "stateMutability": "view", "type": "function"},
    {"name": "totalSupply", "inputs": [], "outputs": [{"type": "uint256"}],
     "stateMutability": "view", "type": "function"},
]


@dataclass
class Erc20Meta:
    address: str
    symbol: Optional[str] = None
    name: Optional[str] = None
    decimals: int = 18
    total_supply: Optional[float] = None


class BaseChainClient:
    def __init__(self, config, w3: Optional[Web3] = None):
        self.config = config
        self.w3 = w3 or Web3(Web3.HTTPProvider(config.rpc.base_rpc_url))

    def get_token_meta(self, address: str) -> Optional[Erc20Meta]:
        """ERC-20 name/symbol/decimals/supply, or None if the calls fail."""
        try:
            contract = self.w3.eth.contract(address=Web3.to_checksum_address(address), abi=ERC20_ABI)
            decimals = contract.functions.decimals().call()
            raw_supply = contract.functions.totalSupply().call()
            return Erc20Meta(
                address=address,
                symbol=contract.functions.symbol().call(),
                name=contract.functions.name().call(),
                decimals=decimals,
                total_supply=raw_supply / (10 ** decimals),
            )
        except Exception as e:
            log("BaseChain", f"metadata lookup failed for {address}: {e}")
            return None
