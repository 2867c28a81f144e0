"""
Uniswap V3 swap agent
"""
# agents first: network imports agents.models
from .agents import TradingAgent, ExecutionAgent, PoolResolver, PriceOracle
from .config import Settings
from .network import NetworkContext, TokenRegistry, build_network_context

__all__ = [
    "TradingAgent",
    "ExecutionAgent",
    "PoolResolver",
    "PriceOracle",
    "Settings",
    "NetworkContext",
    "TokenRegistry",
    "build_network_context",
]

__version__ = "0.1.0"
