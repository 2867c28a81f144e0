"""Tests for pool discovery across fee tiers, orderings and configured pools."""

from __future__ import annotations

import asyncio

import pytest

from swap_agent.agents.pool_resolver import (
    FactoryLookup,
    FeeTierScan,
    KnownPoolLookup,
    PoolResolver,
    default_strategies,
)
from swap_agent.exceptions import PoolNotFoundError, SwapAgentError

from conftest import POOL_ADDRESS, Q96


def run(coro):
    return asyncio.run(coro)


class TestStrategies:

    def test_default_order(self):
        strategies = default_strategies(500)
        assert isinstance(strategies[0], FactoryLookup) and not strategies[0].reverse
        assert isinstance(strategies[1], FactoryLookup) and strategies[1].reverse
        assert isinstance(strategies[2], FeeTierScan)
        assert isinstance(strategies[3], KnownPoolLookup)

    def test_fee_tier_scan_skips_hint(self):
        scan = FeeTierScan(skip_fee=500)
        fees = [lookup.fee for lookup in scan.lookups]
        assert 500 not in fees
        assert fees == [100, 100, 3000, 3000, 10000, 10000]

    def test_factory_lookup_records_attempt(self, chain, ctx, weth, usdc):
        attempts = []
        result = run(FactoryLookup(3000, reverse=True).find(chain, ctx, weth, usdc, attempts))
        assert result is None
        assert attempts == [("USDC", "WETH", 3000)]
        assert chain.get_pool_calls == [(usdc.address, weth.address, 3000)]

    def test_known_pool_ignores_zero_address(self, chain, ctx, weth, usdc):
        ctx.known_pools["USDC/WETH"] = "0x0000000000000000000000000000000000000000"
        assert run(KnownPoolLookup().find(chain, ctx, weth, usdc, [])) is None

    def test_known_pool_unordered(self, chain, ctx, weth, usdc):
        ctx.known_pools["USDC/WETH"] = POOL_ADDRESS
        assert run(KnownPoolLookup().find(chain, ctx, usdc, weth, [])) == POOL_ADDRESS


class TestResolve:

    def test_direct_hit(self, priced_chain, ctx, weth, usdc):
        pool = run(PoolResolver(priced_chain).resolve(ctx, weth, usdc))
        assert pool.address == POOL_ADDRESS
        assert pool.fee == 500
        assert pool.liquidity == 10 ** 24
        assert len(priced_chain.get_pool_calls) == 1

    def test_resolution_is_commutative(self, priced_chain, ctx, weth, usdc):
        resolver = PoolResolver(priced_chain)
        forward = run(resolver.resolve(ctx, weth, usdc))
        backward = run(resolver.resolve(ctx, usdc, weth))
        assert forward.address == backward.address
        assert forward.token0.same_as(backward.token0)
        assert forward.token1.same_as(backward.token1)
        assert forward.token0.symbol == "WETH"

    def test_tokens_follow_onchain_order(self, chain, ctx, weth, usdc):
        chain.add_pool(POOL_ADDRESS, weth, usdc, 500, liquidity=1, sqrt_price_x96=Q96)
        pool = run(PoolResolver(chain).resolve(ctx, usdc, weth))
        assert pool.token0.symbol == "WETH"
        assert pool.token1.symbol == "USDC"

    def test_reverse_ordering_found(self, chain, ctx, weth, usdc):
        chain.add_pool(POOL_ADDRESS, weth, usdc, 500, liquidity=1, sqrt_price_x96=Q96,
                       orderings=("reverse",))
        pool = run(PoolResolver(chain).resolve(ctx, weth, usdc))
        assert pool.address == POOL_ADDRESS
        assert len(chain.get_pool_calls) == 2

    def test_other_fee_tier_found(self, chain, ctx, weth, usdc):
        chain.add_pool(POOL_ADDRESS, weth, usdc, 3000, liquidity=1, sqrt_price_x96=Q96)
        pool = run(PoolResolver(chain).resolve(ctx, weth, usdc, fee_hint=500))
        assert pool.fee == 3000
        # hint both ways, 100 both ways, then 3000 forward
        assert len(chain.get_pool_calls) == 5

    def test_known_pool_fallback(self, chain, ctx, weth, usdc):
        chain.add_pool(POOL_ADDRESS, weth, usdc, 500, liquidity=1, sqrt_price_x96=Q96, orderings=())
        ctx.known_pools["USDC/WETH"] = POOL_ADDRESS
        pool = run(PoolResolver(chain).resolve(ctx, weth, usdc))
        assert pool.address == POOL_ADDRESS
        assert len(chain.get_pool_calls) == 8

    def test_not_found_names_eight_attempts(self, chain, ctx, weth, usdc):
        with pytest.raises(PoolNotFoundError) as exc_info:
            run(PoolResolver(chain).resolve(ctx, weth, usdc))
        err = exc_info.value
        assert len(err.attempts) == 8
        assert {fee for _, _, fee in err.attempts} == {100, 500, 3000, 10000}
        assert ("WETH", "USDC", 500) in err.attempts
        assert ("USDC", "WETH", 500) in err.attempts
        assert "WETH/USDC" in str(err)
        assert "8 attempts" in str(err)

    def test_factory_errors_are_misses(self, chain, ctx, weth, usdc):
        async def broken(*args):
            raise ConnectionError("rpc down")

        chain.get_pool_address = broken
        with pytest.raises(PoolNotFoundError):
            run(PoolResolver(chain).resolve(ctx, weth, usdc))

    def test_unsupported_fee_tier_rejected(self, chain, ctx, weth, usdc):
        chain.add_pool(POOL_ADDRESS, weth, usdc, 500, liquidity=1, sqrt_price_x96=Q96, orderings=())
        chain.pools[POOL_ADDRESS.lower()]["fee"] = 2500
        ctx.known_pools["USDC/WETH"] = POOL_ADDRESS
        with pytest.raises(SwapAgentError, match="unsupported fee tier 2500"):
            run(PoolResolver(chain).resolve(ctx, weth, usdc))

    def test_cross_chain_pair_rejected(self, chain, ctx, weth, usdc):
        with pytest.raises(ValueError):
            run(PoolResolver(chain).resolve(ctx, weth, usdc.on_chain(1)))


class TestCheckPoolLiquidity:

    def test_existing_pool(self, priced_chain, ctx, weth, usdc):
        info = run(PoolResolver(priced_chain).check_pool_liquidity(ctx, weth, usdc))
        assert info == {
            "exists": True,
            "liquidity": str(10 ** 24),
            "fee": 500,
            "address": POOL_ADDRESS,
        }

    def test_missing_pool_does_not_raise(self, chain, ctx, weth, usdc):
        info = run(PoolResolver(chain).check_pool_liquidity(ctx, weth, usdc))
        assert info["exists"] is False
        assert "error" in info

    def test_empty_pool_reported(self, chain, ctx, weth, usdc):
        chain.add_pool(POOL_ADDRESS, weth, usdc, 500, liquidity=0, sqrt_price_x96=Q96)
        info = run(PoolResolver(chain).check_pool_liquidity(ctx, weth, usdc))
        assert info["exists"] is False
        assert info["liquidity"] == "0"
