"""
Data models for the swap agent
"""
from datetime import datetime
from decimal import Decimal, localcontext
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from web3 import Web3

FEE_TIERS = (100, 500, 3000, 10000)  # hundredths of a bip: 0.01%, 0.05%, 0.3%, 1%
Q192 = 2 ** 192


def sqrt_price_x96_to_price(sqrt_price_x96: int, decimals0: int, decimals1: int) -> Decimal:
    """
    Convert a Q64.96 square-root price to a human price of token1 per token0

    price = sqrtPriceX96^2 / 2^192 * 10^(decimals0 - decimals1)
    """
    with localcontext() as ctx:
        ctx.prec = 78
        ratio = Decimal(sqrt_price_x96 * sqrt_price_x96) / Decimal(Q192)
        price = ratio.scaleb(decimals0 - decimals1)
    return +price


class Token(BaseModel):
    """ERC-20 token on a specific chain"""
    model_config = ConfigDict(frozen=True)

    chain_id: int
    address: str
    decimals: int
    symbol: str
    name: str = ""

    @field_validator("address")
    @classmethod
    def _checksum(cls, value: str) -> str:
        return Web3.to_checksum_address(value)

    @property
    def sort_key(self) -> int:
        return int(self.address, 16)

    def on_chain(self, chain_id: int) -> "Token":
        """Reconstruct this token for another chain"""
        return Token(
            chain_id=chain_id,
            address=self.address,
            decimals=self.decimals,
            symbol=self.symbol,
            name=self.name,
        )

    def same_as(self, other: "Token") -> bool:
        return self.chain_id == other.chain_id and self.address.lower() == other.address.lower()


class Pool(BaseModel):
    """Concentrated-liquidity pool snapshot, tokens in on-chain order"""
    model_config = ConfigDict(frozen=True)

    address: str
    token0: Token
    token1: Token
    fee: int
    tick: int
    liquidity: int
    sqrt_price_x96: int

    @field_validator("fee")
    @classmethod
    def _known_fee(cls, value: int) -> int:
        if value not in FEE_TIERS:
            raise ValueError(f"Unsupported fee tier {value}")
        return value

    @property
    def token0_price(self) -> Decimal:
        """token1 per token0"""
        return sqrt_price_x96_to_price(self.sqrt_price_x96, self.token0.decimals, self.token1.decimals)

    @property
    def token1_price(self) -> Decimal:
        """token0 per token1"""
        price = self.token0_price
        if price == 0:
            return Decimal(0)
        return Decimal(1) / price

    def involves(self, token: Token) -> bool:
        return self.token0.same_as(token) or self.token1.same_as(token)

    def other(self, token: Token) -> Token:
        if self.token0.same_as(token):
            return self.token1
        if self.token1.same_as(token):
            return self.token0
        raise ValueError(f"{token.symbol} is not part of pool {self.address}")


class Quote(BaseModel):
    """Priced prospective trade with slippage protection"""
    token_in: Token
    token_out: Token
    fee: int
    amount_in: Decimal
    amount_in_raw: int
    raw_output: Decimal
    price_impact: Decimal  # percent
    slippage: Decimal  # effective tolerance, percent
    min_output: Decimal
    min_output_raw: int
    exchange_ratio: Decimal


class SwapParams(BaseModel):
    """exactInputSingle call arguments"""
    token_in: str
    token_out: str
    fee: int
    recipient: str
    deadline: int
    amount_in: int
    amount_out_minimum: int
    sqrt_price_limit_x96: int = 0

    @field_validator("token_in", "token_out", "recipient")
    @classmethod
    def _checksum(cls, value: str) -> str:
        return Web3.to_checksum_address(value)

    def as_tuple(self) -> tuple:
        return (
            self.token_in,
            self.token_out,
            self.fee,
            self.recipient,
            self.deadline,
            self.amount_in,
            self.amount_out_minimum,
            self.sqrt_price_limit_x96,
        )


class SwapTransaction(BaseModel):
    """Router transaction ready for signing"""
    data: str
    to: str
    from_address: str
    value: int = 0
    gas_limit: int
    deadline: int
    params: SwapParams


class TradeAction(str, Enum):
    BUY = "BUY"
    SELL = "SELL"
    HOLD = "HOLD"


class TradingDecision(BaseModel):
    """Recommendation produced once per scheduler iteration"""
    action: TradeAction = TradeAction.HOLD
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    amount: float = 0.0
    reasoning: List[str] = Field(default_factory=list)
    suggested_slippage: float = 0.5  # percent
    source: str = "rules"

    @property
    def is_actionable(self) -> bool:
        return self.action != TradeAction.HOLD


class TradeRecord(BaseModel):
    """Executed trade kept as context for later decisions"""
    timestamp: datetime = Field(default_factory=datetime.now)
    action: TradeAction
    amount: float
    price: float
    tx_hash: Optional[str] = None

    def as_context(self) -> dict:
        return {
            "timestamp": self.timestamp.isoformat(),
            "action": self.action.value,
            "amount": self.amount,
            "price": self.price,
        }


class SwapResult(BaseModel):
    """Outcome of a swap attempt"""
    success: bool
    tx_hash: Optional[str] = None
    output_amount: Optional[str] = None
    error: Optional[str] = None
    timestamp: datetime = Field(default_factory=datetime.now)
