"""
Error taxonomy for the swap agent
"""
from typing import List, Tuple


class SwapAgentError(Exception):
    """Base class for all swap agent errors"""


class PoolNotFoundError(SwapAgentError):
    """No pool could be located for a token pair"""

    def __init__(self, symbol_a: str, symbol_b: str, attempts: List[Tuple[str, str, int]]):
        self.symbol_a = symbol_a
        self.symbol_b = symbol_b
        self.attempts = list(attempts)
        tried = ", ".join(f"{a}/{b}@{fee}" for a, b, fee in self.attempts) or "none"
        super().__init__(
            f"No liquidity pool found for {symbol_a}/{symbol_b} "
            f"({len(self.attempts)} attempts: {tried})"
        )


class ZeroLiquidityError(SwapAgentError):
    """Pool exists but holds no in-range liquidity"""


class InvalidQuoteError(SwapAgentError):
    """Computed minimum output is non-positive or non-finite"""


class InsufficientBalanceError(SwapAgentError):
    """Wallet does not hold enough of the token being spent"""


class ApprovalFailedError(SwapAgentError):
    """ERC-20 approval transaction failed or reverted"""


class SwapExecutionError(SwapAgentError):
    """Swap transaction failed to submit or reverted"""


class DecisionServiceError(SwapAgentError):
    """External recommendation service call or response was unusable"""


class WalletConnectionError(SwapAgentError):
    """Chain connection could not be established after retries"""


class KeyStoreError(SwapAgentError):
    """Wallet key could not be stored or decrypted"""
