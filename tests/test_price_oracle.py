"""Tests for price math, slippage-protected quotes and router calldata."""

from __future__ import annotations

import asyncio
from decimal import Decimal

import pytest

from swap_agent.agents.models import Pool, SwapParams, sqrt_price_x96_to_price
from swap_agent.agents.pool_resolver import PoolResolver
from swap_agent.agents.price_oracle import (
    EXACT_INPUT_SINGLE_SELECTOR,
    PriceOracle,
    build_quote,
    build_swap_transaction,
    decode_swap_call,
    effective_slippage,
    encode_swap_call,
    estimate_price_impact,
    price_of,
)
from swap_agent.exceptions import InvalidQuoteError, ZeroLiquidityError

from conftest import POOL_ADDRESS, Q96, ROUTER


def make_pool(weth, usdc, liquidity=10 ** 24, sqrt_price_x96=50 * Q96, fee=500):
    return Pool(
        address=POOL_ADDRESS,
        token0=weth,
        token1=usdc,
        fee=fee,
        tick=0,
        liquidity=liquidity,
        sqrt_price_x96=sqrt_price_x96,
    )


class TestPriceMath:

    def test_equal_decimals(self):
        assert sqrt_price_x96_to_price(50 * Q96, 18, 18) == Decimal(2500)

    def test_decimal_scaling(self):
        assert sqrt_price_x96_to_price(Q96, 18, 6) == Decimal(10 ** 12)
        assert sqrt_price_x96_to_price(Q96 * 10 ** 6, 6, 18) == Decimal(1)

    def test_price_for_each_side(self, weth, usdc):
        pool = make_pool(weth, usdc)
        assert price_of(pool, weth) == Decimal(2500)
        assert price_of(pool, usdc) == Decimal(1) / Decimal(2500)

    def test_pool_price_properties(self, weth, usdc):
        pool = make_pool(weth, usdc)
        assert pool.token0_price == Decimal(2500)
        assert pool.token1_price == Decimal("0.0004")


class TestSlippage:

    def test_price_impact_linear(self):
        assert estimate_price_impact(4 * 10 ** 22, 10 ** 24) == Decimal(4)
        assert estimate_price_impact(10 ** 18, 10 ** 24) == Decimal(0)

    def test_zero_liquidity(self):
        with pytest.raises(ZeroLiquidityError):
            estimate_price_impact(10 ** 18, 0)

    def test_floor_of_five_percent(self):
        assert effective_slippage("0.5", Decimal(0)) == Decimal(5)
        assert effective_slippage(1, Decimal("1.2")) == Decimal(5)

    def test_requested_above_floor_kept(self):
        assert effective_slippage(7, Decimal(1)) == Decimal(7)

    def test_double_impact(self):
        assert effective_slippage("0.5", Decimal(4)) == Decimal(8)


class TestBuildQuote:

    def test_small_trade(self, weth, usdc):
        quote = build_quote(make_pool(weth, usdc), weth, 1, "0.5")
        assert quote.token_out.symbol == "USDC"
        assert quote.fee == 500
        assert quote.amount_in_raw == 10 ** 18
        assert quote.raw_output == Decimal(2500)
        assert quote.slippage == Decimal(5)
        assert quote.min_output == Decimal(2375)
        assert quote.min_output_raw == 2375 * 10 ** 18
        assert quote.min_output < quote.raw_output

    def test_high_impact_widens_slippage(self, weth, usdc):
        quote = build_quote(make_pool(weth, usdc), weth, 40000, "0.5")
        assert quote.price_impact == Decimal(4)
        assert quote.slippage == Decimal(8)
        assert quote.min_output == Decimal(92_000_000)

    def test_reverse_direction(self, weth, usdc):
        quote = build_quote(make_pool(weth, usdc), usdc, 2500)
        assert quote.token_out.symbol == "WETH"
        assert quote.raw_output == Decimal(1)
        assert quote.min_output == Decimal("0.95")

    def test_min_output_always_below_raw(self, weth, usdc):
        pool = make_pool(weth, usdc)
        for amount in ("0.01", "1", "123.456", "5000"):
            quote = build_quote(pool, weth, amount)
            assert 0 < quote.min_output < quote.raw_output

    def test_zero_liquidity_raises(self, weth, usdc):
        with pytest.raises(ZeroLiquidityError):
            build_quote(make_pool(weth, usdc, liquidity=0), weth, 1)

    def test_dust_amount_is_invalid(self, weth, usdc):
        # one unit of USDC buys less than one unit of WETH
        with pytest.raises(InvalidQuoteError):
            build_quote(make_pool(weth, usdc), usdc, "0.000000000000000001")

    def test_amount_below_one_unit_is_invalid(self, weth, usdc):
        with pytest.raises(InvalidQuoteError):
            build_quote(make_pool(weth, usdc), weth, "1e-20")

    def test_tiny_minimum_kept_in_smallest_units(self, weth, usdc):
        quote = build_quote(make_pool(weth, usdc), weth, "0.000000000000000001")
        assert quote.min_output_raw == 2375
        assert quote.min_output == Decimal("2.375E-15")

    def test_non_positive_amount_is_invalid(self, weth, usdc):
        with pytest.raises(InvalidQuoteError):
            build_quote(make_pool(weth, usdc), weth, 0)

    def test_token_not_in_pool(self, weth, usdc):
        stranger = weth.model_copy(update={"address": "0x8C35B4b1Cb3e1A23BD7645A008798E26E9734293"})
        with pytest.raises(ValueError):
            build_quote(make_pool(weth, usdc), stranger, 1)


class TestSwapCall:

    def test_encode_decode_round_trip(self, weth, usdc, account):
        params = SwapParams(
            token_in=weth.address,
            token_out=usdc.address,
            fee=3000,
            recipient=account.address,
            deadline=1_700_000_300,
            amount_in=10 ** 18,
            amount_out_minimum=2375 * 10 ** 18,
        )
        data = encode_swap_call(params)
        assert data.startswith("0x" + EXACT_INPUT_SINGLE_SELECTOR.hex())
        assert decode_swap_call(data) == params

    def test_decode_rejects_other_selector(self):
        with pytest.raises(ValueError):
            decode_swap_call("0x095ea7b3" + "00" * 64)

    def test_build_transaction(self, ctx, weth, usdc, account):
        quote = build_quote(make_pool(weth, usdc, fee=3000), weth, 1)
        tx = build_swap_transaction(ctx, quote, account.address, now=1_700_000_000)
        assert tx.to.lower() == ROUTER.lower()
        assert tx.value == 0
        assert tx.gas_limit == 3_000_000
        assert tx.deadline == 1_700_000_300
        decoded = decode_swap_call(tx.data)
        assert decoded.fee == 3000
        assert decoded.amount_in == 10 ** 18
        assert decoded.amount_out_minimum == quote.min_output_raw
        assert decoded.sqrt_price_limit_x96 == 0
        assert decoded.recipient == account.address


class TestPriceOracle:

    def test_get_price(self, priced_chain, ctx, weth, usdc):
        oracle = PriceOracle(PoolResolver(priced_chain))
        assert asyncio.run(oracle.get_price(ctx, weth, usdc)) == Decimal(2500)
        assert asyncio.run(oracle.get_price(ctx, usdc, weth)) == Decimal("0.0004")

    def test_get_quote_returns_none_for_empty_pool(self, chain, ctx, weth, usdc):
        chain.add_pool(POOL_ADDRESS, weth, usdc, 500, liquidity=0, sqrt_price_x96=50 * Q96)
        oracle = PriceOracle(PoolResolver(chain))
        assert asyncio.run(oracle.get_quote(ctx, weth, usdc, 1)) is None

    def test_get_quote_returns_none_for_dust(self, priced_chain, ctx, weth, usdc):
        oracle = PriceOracle(PoolResolver(priced_chain))
        assert asyncio.run(oracle.get_quote(ctx, usdc, weth, "0.000000000000000001")) is None

    def test_get_quote(self, priced_chain, ctx, weth, usdc):
        oracle = PriceOracle(PoolResolver(priced_chain))
        quote = asyncio.run(oracle.get_quote(ctx, weth, usdc, 2))
        assert quote.min_output == Decimal(4750)
