"""
Pool Resolver - locates a concentrated-liquidity pool for a token pair

Resolution runs an ordered list of strategies and stops at the first one that
returns a pool address:

1. factory getPool(tokenA, tokenB, hint)
2. factory getPool(tokenB, tokenA, hint)
3. every other fee tier, both orderings
4. statically configured pool addresses
"""
import logging
from typing import Any, Dict, List, Optional, Tuple

from ..exceptions import PoolNotFoundError, SwapAgentError
from ..network import ZERO_ADDRESS, NetworkContext
from .models import FEE_TIERS, Pool, Token

logger = logging.getLogger(__name__)

DEFAULT_FEE_TIER = 500

# (symbol_in_first_position, symbol_in_second_position, fee)
Attempt = Tuple[str, str, int]


def _is_zero(address: Optional[str]) -> bool:
    return not address or address.lower() == ZERO_ADDRESS


class ResolverStrategy:
    """One way of finding a pool address; returns None when it has nothing"""

    name = "strategy"

    async def find(
        self,
        chain,
        ctx: NetworkContext,
        token_a: Token,
        token_b: Token,
        attempts: List[Attempt],
    ) -> Optional[str]:
        raise NotImplementedError


class FactoryLookup(ResolverStrategy):
    """Ask the factory for a single (ordering, fee) combination"""

    def __init__(self, fee: int, reverse: bool = False):
        self.fee = fee
        self.reverse = reverse
        self.name = f"factory[{fee}{',reversed' if reverse else ''}]"

    async def find(self, chain, ctx, token_a, token_b, attempts):
        first, second = (token_b, token_a) if self.reverse else (token_a, token_b)
        attempts.append((first.symbol, second.symbol, self.fee))
        try:
            address = await chain.get_pool_address(
                ctx.factory_address, first.address, second.address, self.fee
            )
        except Exception as e:
            logger.warning(f"getPool({first.symbol}, {second.symbol}, {self.fee}) failed: {e}")
            return None
        if _is_zero(address):
            return None
        return address


class FeeTierScan(ResolverStrategy):
    """Try every remaining fee tier in both orderings"""

    name = "fee-tier-scan"

    def __init__(self, skip_fee: Optional[int] = None, fee_tiers=FEE_TIERS):
        self.lookups = [
            FactoryLookup(fee, reverse)
            for fee in fee_tiers
            if fee != skip_fee
            for reverse in (False, True)
        ]

    async def find(self, chain, ctx, token_a, token_b, attempts):
        for lookup in self.lookups:
            address = await lookup.find(chain, ctx, token_a, token_b, attempts)
            if address:
                logger.info(f"Found {token_a.symbol}/{token_b.symbol} pool via {lookup.name}")
                return address
        return None


class KnownPoolLookup(ResolverStrategy):
    """Fall back to pool addresses configured for the network"""

    name = "known-pools"

    async def find(self, chain, ctx, token_a, token_b, attempts):
        return ctx.known_pool(token_a.symbol, token_b.symbol)


def default_strategies(fee_hint: int = DEFAULT_FEE_TIER) -> List[ResolverStrategy]:
    return [
        FactoryLookup(fee_hint),
        FactoryLookup(fee_hint, reverse=True),
        FeeTierScan(skip_fee=fee_hint),
        KnownPoolLookup(),
    ]


class PoolResolver:
    """Finds pools and reads their current state"""

    def __init__(self, chain):
        self.chain = chain

    async def find_pool_address(
        self,
        ctx: NetworkContext,
        token_a: Token,
        token_b: Token,
        fee_hint: int = DEFAULT_FEE_TIER,
        strategies: Optional[List[ResolverStrategy]] = None,
    ) -> str:
        """
        Run the resolver strategies in order

        Raises:
            PoolNotFoundError: every strategy came back empty
        """
        if token_a.chain_id != token_b.chain_id:
            raise ValueError(
                f"Tokens on different chains: {token_a.chain_id} vs {token_b.chain_id}"
            )

        attempts: List[Attempt] = []
        for strategy in strategies or default_strategies(fee_hint):
            address = await strategy.find(self.chain, ctx, token_a, token_b, attempts)
            if address:
                logger.debug(f"{strategy.name} resolved {token_a.symbol}/{token_b.symbol} -> {address}")
                return address

        raise PoolNotFoundError(token_a.symbol, token_b.symbol, attempts)

    async def resolve(
        self,
        ctx: NetworkContext,
        token_a: Token,
        token_b: Token,
        fee_hint: int = DEFAULT_FEE_TIER,
    ) -> Pool:
        """
        Locate the pool for a pair and snapshot its state

        The returned pool lists its tokens in on-chain order, whatever order
        the caller passed them in.
        """
        address = await self.find_pool_address(ctx, token_a, token_b, fee_hint)

        token0_address, token1_address, fee = await self.chain.get_pool_immutables(address)
        liquidity, sqrt_price_x96, tick = await self.chain.get_pool_state(address)

        if token_a.address.lower() == token0_address.lower():
            token0, token1 = token_a, token_b
        elif token_b.address.lower() == token0_address.lower():
            token0, token1 = token_b, token_a
        else:
            raise SwapAgentError(
                f"Pool {address} holds {token0_address}/{token1_address}, "
                f"not {token_a.symbol}/{token_b.symbol}"
            )
        if token1.address.lower() != token1_address.lower():
            raise SwapAgentError(f"Pool {address} token1 mismatch: {token1_address}")
        if fee not in FEE_TIERS:
            raise SwapAgentError(f"Pool {address} reports unsupported fee tier {fee}")

        pool = Pool(
            address=address,
            token0=token0,
            token1=token1,
            fee=fee,
            tick=tick,
            liquidity=liquidity,
            sqrt_price_x96=sqrt_price_x96,
        )
        logger.info(
            f"Resolved pool {token0.symbol}/{token1.symbol} fee={fee} "
            f"liquidity={liquidity} at {address}"
        )
        return pool

    async def check_pool_liquidity(
        self,
        ctx: NetworkContext,
        token_a: Token,
        token_b: Token,
        fee_hint: int = DEFAULT_FEE_TIER,
    ) -> Dict[str, Any]:
        """
        Report whether a pool with liquidity exists for a pair

        Returns:
            {'exists': bool, 'liquidity': str, 'fee': int, 'address': str}
            (only 'exists' and 'error' when no pool could be read)
        """
        try:
            pool = await self.resolve(ctx, token_a, token_b, fee_hint)
        except PoolNotFoundError as e:
            return {"exists": False, "error": str(e)}
        except Exception as e:
            logger.error(f"Liquidity check for {token_a.symbol}/{token_b.symbol} failed: {e}", exc_info=True)
            return {"exists": False, "error": str(e)}

        return {
            "exists": pool.liquidity > 0,
            "liquidity": str(pool.liquidity),
            "fee": pool.fee,
            "address": pool.address,
        }
