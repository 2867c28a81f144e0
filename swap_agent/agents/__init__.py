"""
Swap agent components: pool resolution, pricing, execution and the
scheduled trading loop
"""

from .models import (
    FEE_TIERS,
    Token,
    Pool,
    Quote,
    SwapParams,
    SwapTransaction,
    TradeAction,
    TradingDecision,
    TradeRecord,
    SwapResult,
)
from .pool_resolver import PoolResolver, FactoryLookup, FeeTierScan, KnownPoolLookup
from .price_oracle import PriceOracle, build_quote, build_swap_transaction, encode_swap_call, decode_swap_call
from .execution_agent import ExecutionAgent
from .trading_agent import TradingAgent

__all__ = [
    "FEE_TIERS",
    "Token",
    "Pool",
    "Quote",
    "SwapParams",
    "SwapTransaction",
    "TradeAction",
    "TradingDecision",
    "TradeRecord",
    "SwapResult",
    "PoolResolver",
    "FactoryLookup",
    "FeeTierScan",
    "KnownPoolLookup",
    "PriceOracle",
    "build_quote",
    "build_swap_transaction",
    "encode_swap_call",
    "decode_swap_call",
    "ExecutionAgent",
    "TradingAgent",
]
