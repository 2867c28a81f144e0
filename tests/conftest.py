"""Shared pytest fixtures and chain/analyst fakes for swap agent tests."""

from __future__ import annotations

import asyncio
from typing import Any, Dict, List, Optional

import pytest
import rlp
from eth_account import Account

from swap_agent.agents.models import Token
from swap_agent.config import Settings
from swap_agent.exceptions import DecisionServiceError
from swap_agent.network import ZERO_ADDRESS, NetworkContext, TokenRegistry

CHAIN_ID = 57054
Q96 = 2 ** 96

ROUTER = "0xfc75ee99C6D17195Da22b2A999035e608D17ab5B"
FACTORY = "0xf488B1da6fa35bb5597d11A5cc479e6D501F9628"
WETH_ADDRESS = "0x408550dccdcd95FB2116633859ad8fca2240134A"
USDC_ADDRESS = "0x677022Cd2a32Eee1274ce51dbe78aF690f7b5361"
POOL_ADDRESS = "0x551d92a02e249832365b29bCfC14EA4522551ff2"
WIDE_POOL_ADDRESS = "0x4a5Bc670aDc5B981D3845F4FC77DeB43cDe7eFaE"

TEST_PRIVATE_KEY = "0x" + "11" * 32
OTHER_PRIVATE_KEY = "0x" + "22" * 32


class FakeChain:
    """In-memory stand-in for ChainClient."""

    def __init__(self, chain_id: int = CHAIN_ID):
        self.chain_id = chain_id
        self.connected = True
        self.connect_failures = 0
        self.yield_on_connect = False
        self.factory: Dict[tuple, str] = {}
        self.pools: Dict[str, Dict[str, Any]] = {}
        self.get_pool_calls: List[tuple] = []
        self.balances: Dict[tuple, int] = {}
        self.native_balances: Dict[str, int] = {}
        self.allowances: Dict[tuple, int] = {}
        self.decimals: Dict[str, int] = {}
        self.receipt_statuses: List[int] = []
        self.sent: List[bytes] = []
        self.fail_sends = False
        self.gas_price = 10 ** 9
        self.nonce = 0

    # setup helpers

    def add_pool(self, address, token0, token1, fee, liquidity, sqrt_price_x96, tick=0,
                 orderings=("forward", "reverse")):
        self.pools[address.lower()] = {
            "token0": token0.address,
            "token1": token1.address,
            "fee": fee,
            "liquidity": liquidity,
            "sqrt_price_x96": sqrt_price_x96,
            "tick": tick,
        }
        if "forward" in orderings:
            self.factory[(token0.address.lower(), token1.address.lower(), fee)] = address
        if "reverse" in orderings:
            self.factory[(token1.address.lower(), token0.address.lower(), fee)] = address

    def set_balance(self, token, owner, raw):
        self.balances[(token.address.lower(), owner.lower())] = raw

    def sent_calldata(self, index=-1) -> bytes:
        """Data field of a sent legacy transaction"""
        nonce, gas_price, gas, to, value, data, v, r, s = rlp.decode(self.sent[index])
        return data

    # ChainClient interface

    async def is_connected(self):
        if self.yield_on_connect:
            await asyncio.sleep(0)
        if self.connect_failures > 0:
            self.connect_failures -= 1
            raise ConnectionError("provider unavailable")
        return self.connected

    async def get_chain_id(self):
        return self.chain_id

    async def get_pool_address(self, factory, token_a, token_b, fee):
        self.get_pool_calls.append((token_a, token_b, fee))
        return self.factory.get((token_a.lower(), token_b.lower(), fee), ZERO_ADDRESS)

    async def get_pool_immutables(self, pool):
        info = self.pools[pool.lower()]
        return info["token0"], info["token1"], info["fee"]

    async def get_pool_state(self, pool):
        info = self.pools[pool.lower()]
        return info["liquidity"], info["sqrt_price_x96"], info["tick"]

    async def get_token_decimals(self, token):
        return self.decimals.get(token.lower(), 18)

    async def get_token_symbol(self, token):
        return "TKN"

    async def get_token_balance(self, token, owner):
        return self.balances.get((token.lower(), owner.lower()), 0)

    async def get_allowance(self, token, owner, spender):
        return self.allowances.get((token.lower(), owner.lower(), spender.lower()), 0)

    async def get_native_balance(self, owner):
        return self.native_balances.get(owner.lower(), 10 ** 18)

    async def get_gas_price(self):
        return self.gas_price

    async def get_transaction_count(self, owner):
        return self.nonce

    async def send_raw_transaction(self, raw_tx):
        if self.fail_sends:
            raise ValueError("nonce too low")
        self.sent.append(bytes(raw_tx))
        self.nonce += 1
        return "0x" + f"{len(self.sent):064x}"

    async def wait_for_receipt(self, tx_hash, timeout=180, poll_latency=3):
        status = self.receipt_statuses.pop(0) if self.receipt_statuses else 1
        return {"transactionHash": tx_hash, "blockNumber": 100, "status": status, "gasUsed": 21000}


class FakeAnalyst:
    """Recommendation service double: returns `response` or raises `error`."""

    def __init__(self, response: Optional[Dict[str, Any]] = None, error: Optional[Exception] = None):
        self.response = response
        self.error = error
        self.contexts: List[Dict[str, Any]] = []
        self.closed = False
        self.gate: Optional[asyncio.Event] = None

    async def recommend(self, context):
        self.contexts.append(context)
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        if self.response is None:
            raise DecisionServiceError("no response configured")
        return self.response

    async def close(self):
        self.closed = True


@pytest.fixture
def weth() -> Token:
    return Token(chain_id=CHAIN_ID, address=WETH_ADDRESS, decimals=18, symbol="WETH", name="Wrapped Ether")


@pytest.fixture
def usdc() -> Token:
    return Token(chain_id=CHAIN_ID, address=USDC_ADDRESS, decimals=18, symbol="USDC", name="USD Coin")


@pytest.fixture
def ctx(weth, usdc) -> NetworkContext:
    return NetworkContext(
        chain_id=CHAIN_ID,
        name="Test Chain",
        rpc_url=None,
        router_address=ROUTER,
        factory_address=FACTORY,
        tokens=TokenRegistry([weth, usdc]),
        known_pools={},
        native_symbol="S",
    )


@pytest.fixture
def chain() -> FakeChain:
    return FakeChain()


@pytest.fixture
def priced_chain(chain, weth, usdc) -> FakeChain:
    """WETH/USDC pool at 2500 USDC per WETH (WETH sorts first)."""
    chain.add_pool(POOL_ADDRESS, weth, usdc, 500, liquidity=10 ** 24, sqrt_price_x96=50 * Q96)
    return chain


@pytest.fixture
def account():
    return Account.from_key(TEST_PRIVATE_KEY)


@pytest.fixture
def settings() -> Settings:
    return Settings(
        chain_id=CHAIN_ID,
        connect_retry_delay=0.0,
        trade_interval_seconds=0.01,
    )
