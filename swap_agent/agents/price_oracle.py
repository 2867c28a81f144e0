"""
Price Oracle - spot prices from pool state, slippage-protected quotes and
router call construction
"""
import time
import logging
from decimal import ROUND_DOWN, Decimal
from typing import Optional, Union

from eth_abi import decode, encode
from eth_utils import keccak

from ..exceptions import InvalidQuoteError, ZeroLiquidityError
from ..network import NetworkContext
from .models import Pool, Quote, SwapParams, SwapTransaction, Token
from .pool_resolver import DEFAULT_FEE_TIER, PoolResolver

logger = logging.getLogger(__name__)

EXACT_INPUT_SINGLE_SIGNATURE = (
    "exactInputSingle((address,address,uint24,address,uint256,uint256,uint256,uint160))"
)
EXACT_INPUT_SINGLE_SELECTOR = keccak(text=EXACT_INPUT_SINGLE_SIGNATURE)[:4]
EXACT_INPUT_SINGLE_TYPES = ["(address,address,uint24,address,uint256,uint256,uint256,uint160)"]

DEFAULT_SLIPPAGE = Decimal("0.5")  # percent
MIN_SLIPPAGE = Decimal("5")  # percent, floor applied to every quote
HIGH_IMPACT_WARNING = Decimal("5")  # percent
DEADLINE_SECONDS = 300
SWAP_GAS_LIMIT = 3_000_000

Number = Union[Decimal, float, int, str]


def price_of(pool: Pool, token_in: Token) -> Decimal:
    """Units of the other pool token received per unit of token_in"""
    if pool.token0.same_as(token_in):
        return pool.token0_price
    if pool.token1.same_as(token_in):
        return pool.token1_price
    raise ValueError(f"{token_in.symbol} is not part of pool {pool.address}")


def to_raw(amount: Decimal, decimals: int) -> int:
    """Human amount to smallest units, truncating"""
    return int(amount.scaleb(decimals).to_integral_value(rounding=ROUND_DOWN))


def estimate_price_impact(amount_in_raw: int, liquidity: int) -> Decimal:
    """
    Linear price impact estimate in percent

    (amountIn * 10000 // liquidity) / 100. This is an approximation: it
    ignores tick ranges and the square-root price curve.
    """
    if liquidity <= 0:
        raise ZeroLiquidityError("Pool has zero liquidity")
    return Decimal(amount_in_raw * 10000 // liquidity) / 100


def effective_slippage(requested: Number, price_impact: Decimal) -> Decimal:
    """Slippage tolerance actually applied: max(requested, 2 x impact, 5%)"""
    return max(Decimal(str(requested)), price_impact * 2, MIN_SLIPPAGE)


def build_quote(
    pool: Pool,
    token_in: Token,
    amount_in: Number,
    slippage: Number = DEFAULT_SLIPPAGE,
) -> Quote:
    """
    Price a prospective exact-input trade against a pool snapshot

    Raises:
        ZeroLiquidityError: pool has no liquidity
        InvalidQuoteError: minimum output is not a positive finite amount
    """
    token_out = pool.other(token_in)
    amount = Decimal(str(amount_in))
    if not amount.is_finite() or amount <= 0:
        raise InvalidQuoteError(f"Input amount must be positive, got {amount_in}")

    amount_raw = to_raw(amount, token_in.decimals)
    if amount_raw <= 0:
        raise InvalidQuoteError(f"Input amount {amount} is below one unit of {token_in.symbol}")
    impact = estimate_price_impact(amount_raw, pool.liquidity)
    slip = effective_slippage(slippage, impact)

    price = price_of(pool, token_in)
    raw_output = amount * price
    min_output_exact = raw_output * (1 - slip / 100)
    if not min_output_exact.is_finite() or min_output_exact <= 0:
        raise InvalidQuoteError(
            f"Invalid minimum output {min_output_exact} for {amount} {token_in.symbol}"
        )
    # Floor in the output token's smallest units
    min_output_raw = to_raw(min_output_exact, token_out.decimals)
    if min_output_raw <= 0:
        raise InvalidQuoteError(f"Minimum output rounds to zero {token_out.symbol}")
    min_output = Decimal(min_output_raw).scaleb(-token_out.decimals)

    if impact > HIGH_IMPACT_WARNING:
        logger.warning(
            f"High price impact {impact}% for {amount} {token_in.symbol} -> {token_out.symbol}"
        )

    return Quote(
        token_in=token_in,
        token_out=token_out,
        fee=pool.fee,
        amount_in=amount,
        amount_in_raw=amount_raw,
        raw_output=raw_output,
        price_impact=impact,
        slippage=slip,
        min_output=min_output,
        min_output_raw=min_output_raw,
        exchange_ratio=price,
    )


def encode_swap_call(params: SwapParams) -> str:
    """ABI-encode exactInputSingle calldata"""
    encoded = encode(EXACT_INPUT_SINGLE_TYPES, [params.as_tuple()])
    return "0x" + (EXACT_INPUT_SINGLE_SELECTOR + encoded).hex()


def decode_swap_call(data: Union[str, bytes]) -> SwapParams:
    """Inverse of encode_swap_call"""
    if isinstance(data, str):
        data = bytes.fromhex(data[2:] if data.startswith("0x") else data)
    if data[:4] != EXACT_INPUT_SINGLE_SELECTOR:
        raise ValueError("Calldata is not an exactInputSingle call")

    (values,) = decode(EXACT_INPUT_SINGLE_TYPES, data[4:])
    token_in, token_out, fee, recipient, deadline, amount_in, amount_out_min, limit = values
    return SwapParams(
        token_in=token_in,
        token_out=token_out,
        fee=fee,
        recipient=recipient,
        deadline=deadline,
        amount_in=amount_in,
        amount_out_minimum=amount_out_min,
        sqrt_price_limit_x96=limit,
    )


def build_swap_transaction(
    ctx: NetworkContext,
    quote: Quote,
    recipient: str,
    now: Optional[float] = None,
    deadline_seconds: int = DEADLINE_SECONDS,
    gas_limit: int = SWAP_GAS_LIMIT,
) -> SwapTransaction:
    """Router transaction for a quote; the fee is the resolved pool's fee"""
    if quote.min_output_raw <= 0:
        raise InvalidQuoteError("Refusing to build a swap without a positive minimum output")

    deadline = int(now if now is not None else time.time()) + deadline_seconds
    params = SwapParams(
        token_in=quote.token_in.address,
        token_out=quote.token_out.address,
        fee=quote.fee,
        recipient=recipient,
        deadline=deadline,
        amount_in=quote.amount_in_raw,
        amount_out_minimum=quote.min_output_raw,
    )
    return SwapTransaction(
        data=encode_swap_call(params),
        to=ctx.router_address,
        from_address=recipient,
        value=0,
        gas_limit=gas_limit,
        deadline=deadline,
        params=params,
    )


class PriceOracle:
    """Spot prices and quotes resolved through the pool resolver"""

    def __init__(self, resolver: PoolResolver):
        self.resolver = resolver

    async def get_pool(self, ctx: NetworkContext, token_a: Token, token_b: Token,
                       fee_hint: int = DEFAULT_FEE_TIER) -> Pool:
        return await self.resolver.resolve(ctx, token_a, token_b, fee_hint)

    async def get_price(self, ctx: NetworkContext, base: Token, quote: Token,
                        fee_hint: int = DEFAULT_FEE_TIER) -> Decimal:
        """Price of one `base` expressed in `quote`"""
        pool = await self.get_pool(ctx, base, quote, fee_hint)
        return price_of(pool, base)

    async def quote(
        self,
        ctx: NetworkContext,
        token_in: Token,
        token_out: Token,
        amount_in: Number,
        slippage: Number = DEFAULT_SLIPPAGE,
        fee_hint: int = DEFAULT_FEE_TIER,
    ) -> Quote:
        """Resolve the pool and build a quote, raising on any failure"""
        pool = await self.get_pool(ctx, token_in, token_out, fee_hint)
        return build_quote(pool, token_in, amount_in, slippage)

    async def get_quote(
        self,
        ctx: NetworkContext,
        token_in: Token,
        token_out: Token,
        amount_in: Number,
        slippage: Number = DEFAULT_SLIPPAGE,
        fee_hint: int = DEFAULT_FEE_TIER,
    ) -> Optional[Quote]:
        """
        Like quote() but returns None for an empty pool or an unusable
        minimum output
        """
        try:
            return await self.quote(ctx, token_in, token_out, amount_in, slippage, fee_hint)
        except ZeroLiquidityError as e:
            logger.warning(f"No quote for {token_in.symbol}->{token_out.symbol}: {e}")
        except InvalidQuoteError as e:
            logger.warning(f"No quote for {token_in.symbol}->{token_out.symbol}: {e}")
        return None
