"""
Chain client - thin async wrapper over web3 for the contract reads and
transaction plumbing the agent needs
"""
import asyncio
import logging
from typing import Any, Dict, Optional, Tuple

from eth_abi import encode
from eth_utils import keccak
from web3 import AsyncWeb3, Web3
from web3.middleware import ExtraDataToPOAMiddleware

from .exceptions import WalletConnectionError

logger = logging.getLogger(__name__)

# Minimal ABIs
UNISWAP_V3_FACTORY_ABI = [
    {
        "inputs": [
            {"internalType": "address", "name": "tokenA", "type": "address"},
            {"internalType": "address", "name": "tokenB", "type": "address"},
            {"internalType": "uint24", "name": "fee", "type": "uint24"}
        ],
        "name": "getPool",
        "outputs": [{"internalType": "address", "name": "pool", "type": "address"}],
        "stateMutability": "view",
        "type": "function"
    }
]

UNISWAP_V3_POOL_ABI = [
    {
        "inputs": [],
        "name": "token0",
        "outputs": [{"internalType": "address", "name": "", "type": "address"}],
        "stateMutability": "view",
        "type": "function"
    },
    {
        "inputs": [],
        "name": "token1",
        "outputs": [{"internalType": "address", "name": "", "type": "address"}],
        "stateMutability": "view",
        "type": "function"
    },
    {
        "inputs": [],
        "name": "fee",
        "outputs": [{"internalType": "uint24", "name": "", "type": "uint24"}],
        "stateMutability": "view",
        "type": "function"
    },
    {
        "inputs": [],
        "name": "liquidity",
        "outputs": [{"internalType": "uint128", "name": "", "type": "uint128"}],
        "stateMutability": "view",
        "type": "function"
    },
    {
        "inputs": [],
        "name": "slot0",
        "outputs": [
            {"internalType": "uint160", "name": "sqrtPriceX96", "type": "uint160"},
            {"internalType": "int24", "name": "tick", "type": "int24"},
            {"internalType": "uint16", "name": "observationIndex", "type": "uint16"},
            {"internalType": "uint16", "name": "observationCardinality", "type": "uint16"},
            {"internalType": "uint16", "name": "observationCardinalityNext", "type": "uint16"},
            {"internalType": "uint8", "name": "feeProtocol", "type": "uint8"},
            {"internalType": "bool", "name": "unlocked", "type": "bool"}
        ],
        "stateMutability": "view",
        "type": "function"
    }
]

ERC20_ABI = [
    {
        "constant": True,
        "inputs": [{"name": "account", "type": "address"}],
        "name": "balanceOf",
        "outputs": [{"name": "", "type": "uint256"}],
        "type": "function"
    },
    {
        "constant": True,
        "inputs": [],
        "name": "decimals",
        "outputs": [{"name": "", "type": "uint8"}],
        "type": "function"
    },
    {
        "constant": True,
        "inputs": [],
        "name": "symbol",
        "outputs": [{"name": "", "type": "string"}],
        "type": "function"
    },
    {
        "constant": True,
        "inputs": [
            {"name": "owner", "type": "address"},
            {"name": "spender", "type": "address"}
        ],
        "name": "allowance",
        "outputs": [{"name": "", "type": "uint256"}],
        "type": "function"
    }
]

APPROVE_SELECTOR = keccak(b"approve(address,uint256)")[:4]


def encode_approve_call(spender: str, amount: int) -> str:
    """Calldata for ERC-20 approve(spender, amount)"""
    encoded = encode(["address", "uint256"], [Web3.to_checksum_address(spender), amount])
    return "0x" + (APPROVE_SELECTOR + encoded).hex()


class ChainClient:
    """Contract reads and raw transaction submission over JSON-RPC"""

    def __init__(self, rpc_url: str, poa_middleware: bool = False, request_timeout: int = 30):
        self.rpc_url = rpc_url
        self.w3 = AsyncWeb3(AsyncWeb3.AsyncHTTPProvider(
            rpc_url, request_kwargs={"timeout": request_timeout}
        ))
        if poa_middleware:
            self.w3.middleware_onion.inject(ExtraDataToPOAMiddleware, layer=0)

    def _contract(self, address: str, abi):
        return self.w3.eth.contract(address=Web3.to_checksum_address(address), abi=abi)

    async def is_connected(self) -> bool:
        return await self.w3.is_connected()

    async def get_chain_id(self) -> int:
        return await self.w3.eth.chain_id

    # Pools

    async def get_pool_address(self, factory: str, token_a: str, token_b: str, fee: int) -> str:
        contract = self._contract(factory, UNISWAP_V3_FACTORY_ABI)
        return await contract.functions.getPool(
            Web3.to_checksum_address(token_a),
            Web3.to_checksum_address(token_b),
            fee
        ).call()

    async def get_pool_immutables(self, pool: str) -> Tuple[str, str, int]:
        contract = self._contract(pool, UNISWAP_V3_POOL_ABI)
        token0, token1, fee = await asyncio.gather(
            contract.functions.token0().call(),
            contract.functions.token1().call(),
            contract.functions.fee().call(),
        )
        return token0, token1, fee

    async def get_pool_state(self, pool: str) -> Tuple[int, int, int]:
        """Returns (liquidity, sqrtPriceX96, tick)"""
        contract = self._contract(pool, UNISWAP_V3_POOL_ABI)
        liquidity, slot0 = await asyncio.gather(
            contract.functions.liquidity().call(),
            contract.functions.slot0().call(),
        )
        return liquidity, slot0[0], slot0[1]

    # Tokens

    async def get_token_decimals(self, token: str) -> int:
        return await self._contract(token, ERC20_ABI).functions.decimals().call()

    async def get_token_symbol(self, token: str) -> str:
        return await self._contract(token, ERC20_ABI).functions.symbol().call()

    async def get_token_balance(self, token: str, owner: str) -> int:
        return await self._contract(token, ERC20_ABI).functions.balanceOf(
            Web3.to_checksum_address(owner)
        ).call()

    async def get_allowance(self, token: str, owner: str, spender: str) -> int:
        return await self._contract(token, ERC20_ABI).functions.allowance(
            Web3.to_checksum_address(owner),
            Web3.to_checksum_address(spender)
        ).call()

    async def get_native_balance(self, owner: str) -> int:
        return await self.w3.eth.get_balance(Web3.to_checksum_address(owner))

    # Transactions

    async def get_gas_price(self) -> int:
        return await self.w3.eth.gas_price

    async def get_transaction_count(self, owner: str) -> int:
        return await self.w3.eth.get_transaction_count(Web3.to_checksum_address(owner), "pending")

    async def send_raw_transaction(self, raw_tx: bytes) -> str:
        tx_hash = await self.w3.eth.send_raw_transaction(raw_tx)
        return Web3.to_hex(tx_hash)

    async def wait_for_receipt(self, tx_hash: str, timeout: int = 180, poll_latency: float = 3) -> Dict[str, Any]:
        receipt = await self.w3.eth.wait_for_transaction_receipt(
            tx_hash, timeout=timeout, poll_latency=poll_latency
        )
        return {
            "transactionHash": Web3.to_hex(receipt["transactionHash"]),
            "blockNumber": receipt["blockNumber"],
            "status": receipt["status"],
            "gasUsed": receipt["gasUsed"],
        }


async def connect_with_retry(chain, max_retries: int = 3, retry_delay: float = 0.5) -> int:
    """
    Ensure the provider answers, retrying with a fixed delay

    Returns the chain id reported by the provider.
    """
    last_error: Optional[Exception] = None
    for attempt in range(max_retries):
        try:
            if await chain.is_connected():
                chain_id = await chain.get_chain_id()
                if attempt > 0:
                    logger.info(f"Connected on attempt {attempt + 1}")
                return chain_id
            last_error = None
        except Exception as e:
            last_error = e
        logger.warning(f"Connection attempt {attempt + 1} failed, retrying...")
        if attempt < max_retries - 1:
            await asyncio.sleep(retry_delay)

    detail = f": {last_error}" if last_error else ""
    raise WalletConnectionError(f"Failed to connect after {max_retries} attempts{detail}")
