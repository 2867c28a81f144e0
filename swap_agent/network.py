"""
Network context - per-chain contract addresses, token registry and known pools

A NetworkContext is passed explicitly to every pricing, pool and execution
call so that several chains can be traded side by side.
"""
import os
import logging
from typing import Dict, Iterable, List, Optional, Tuple

from web3 import Web3

from .agents.models import Token
from .config import Settings

logger = logging.getLogger(__name__)

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"

CHAIN_IDS = {
    "ABC_TESTNET": 112,
    "SONIC_BLAZE_TESTNET": 57054,
}

# Per-chain defaults; every entry can be overridden from the environment
NETWORK_DEFAULTS: Dict[int, Dict] = {
    CHAIN_IDS["ABC_TESTNET"]: {
        "name": "ABC Testnet",
        "env_prefix": "",
        "rpc_url": None,
        "router": None,
        "factory": None,
        "native_symbol": "ETH",
        "tokens": {
            "WETH": (None, 18, "Wrapped Ether"),
            "WBTC": (None, 18, "Wrapped Bitcoin"),
            "USDT": (None, 18, "Tether USD"),
            "USDC": (None, 18, "Circle USD"),
        },
        "pools": {},
    },
    CHAIN_IDS["SONIC_BLAZE_TESTNET"]: {
        "name": "Sonic Blaze Testnet",
        "env_prefix": "SONIC_",
        "rpc_url": "https://rpc.blaze.soniclabs.com",
        "router": "0xfc75ee99C6D17195Da22b2A999035e608D17ab5B",
        "factory": "0xf488B1da6fa35bb5597d11A5cc479e6D501F9628",
        "native_symbol": "S",
        "tokens": {
            "WETH": ("0x408550dccdcd95FB2116633859ad8fca2240134A", 18, "Wrapped Ether"),
            "WBTC": ("0x4C03bC58714D24d84812476c23c2F15E4a958F96", 18, "Wrapped Bitcoin"),
            "USDT": ("0x8C35B4b1Cb3e1A23BD7645A008798E26E9734293", 18, "Tether USD"),
            "USDC": ("0x677022Cd2a32Eee1274ce51dbe78aF690f7b5361", 18, "USD Coin"),
        },
        "pools": {
            "WETH/USDC": "0x551d92a02e249832365b29bCfC14EA4522551ff2",
            "USDT/USDC": "0x4a5Bc670aDc5B981D3845F4FC77DeB43cDe7eFaE",
        },
    },
}


def pair_key(symbol_a: str, symbol_b: str) -> str:
    """Order-independent key for a symbol pair"""
    a, b = sorted((symbol_a.upper(), symbol_b.upper()))
    return f"{a}/{b}"


class TokenRegistry:
    """Known tokens keyed by (chain id, address)"""

    def __init__(self, tokens: Iterable[Token] = ()):
        self._by_address: Dict[Tuple[int, str], Token] = {}
        self._by_symbol: Dict[Tuple[int, str], Token] = {}
        for token in tokens:
            self.register(token)

    def register(self, token: Token) -> Token:
        self._by_address[(token.chain_id, token.address.lower())] = token
        self._by_symbol[(token.chain_id, token.symbol.upper())] = token
        return token

    def get(self, chain_id: int, address: str) -> Optional[Token]:
        return self._by_address.get((chain_id, address.lower()))

    def by_symbol(self, chain_id: int, symbol: str) -> Optional[Token]:
        return self._by_symbol.get((chain_id, symbol.upper()))

    def require_symbol(self, chain_id: int, symbol: str) -> Token:
        token = self.by_symbol(chain_id, symbol)
        if token is None:
            raise KeyError(f"Token {symbol} is not registered for chain {chain_id}")
        return token

    def tokens(self, chain_id: Optional[int] = None) -> List[Token]:
        return [
            t for t in self._by_address.values()
            if chain_id is None or t.chain_id == chain_id
        ]

    def __len__(self) -> int:
        return len(self._by_address)


class NetworkContext:
    """Everything the agent needs to know about one chain"""

    def __init__(
        self,
        chain_id: int,
        name: str,
        rpc_url: Optional[str],
        router_address: str,
        factory_address: str,
        tokens: TokenRegistry,
        known_pools: Optional[Dict[str, str]] = None,
        native_symbol: str = "ETH",
    ):
        self.chain_id = chain_id
        self.name = name
        self.rpc_url = rpc_url
        self.router_address = Web3.to_checksum_address(router_address)
        self.factory_address = Web3.to_checksum_address(factory_address)
        self.tokens = tokens
        self.native_symbol = native_symbol
        self.known_pools: Dict[str, str] = {}
        for key, address in (known_pools or {}).items():
            a, b = key.split("/")
            self.known_pools[pair_key(a, b)] = address

    def token(self, symbol: str) -> Token:
        return self.tokens.require_symbol(self.chain_id, symbol)

    def known_pool(self, symbol_a: str, symbol_b: str) -> Optional[str]:
        """Pre-configured pool address for a symbol pair, ignoring placeholders"""
        address = self.known_pools.get(pair_key(symbol_a, symbol_b))
        if not address or address.lower() == ZERO_ADDRESS:
            return None
        return address

    def __repr__(self) -> str:
        return f"NetworkContext(chain_id={self.chain_id}, name={self.name!r})"


def _parse_known_pools(raw: Optional[str]) -> Dict[str, str]:
    """Parse "WETH/USDC=0xabc,USDT/USDC=0xdef" """
    pools: Dict[str, str] = {}
    if not raw:
        return pools
    for item in raw.split(","):
        item = item.strip()
        if not item:
            continue
        if "=" not in item or "/" not in item.split("=", 1)[0]:
            logger.warning(f"Ignoring malformed KNOWN_POOLS entry: {item!r}")
            continue
        key, address = item.split("=", 1)
        pools[key.strip()] = address.strip()
    return pools


def build_network_context(settings: Settings) -> NetworkContext:
    """Build a NetworkContext for settings.chain_id from defaults and environment"""
    chain_id = settings.chain_id
    defaults = NETWORK_DEFAULTS.get(chain_id)
    if defaults is None:
        logger.warning(f"No defaults for chain {chain_id}, relying on environment only")
        defaults = {
            "name": f"Chain {chain_id}",
            "env_prefix": "",
            "rpc_url": None,
            "router": None,
            "factory": None,
            "native_symbol": "ETH",
            "tokens": {},
            "pools": {},
        }

    prefix = defaults["env_prefix"]

    def env(key: str, default: Optional[str]) -> Optional[str]:
        return os.getenv(f"{prefix}{key}") or default

    router = env("UNISWAP_ROUTER_ADDRESS", defaults["router"])
    factory = env("UNISWAP_FACTORY_ADDRESS", defaults["factory"])
    if not router or not factory:
        raise ValueError(
            f"Router and factory addresses must be configured for chain {chain_id}"
        )

    registry = TokenRegistry()
    for symbol, (address, decimals, name) in defaults["tokens"].items():
        address = env(f"{symbol}_ADDRESS", address)
        if not address:
            continue
        registry.register(Token(
            chain_id=chain_id,
            address=address,
            decimals=decimals,
            symbol=symbol,
            name=name,
        ))

    pools = dict(defaults["pools"])
    pools.update(_parse_known_pools(os.getenv("KNOWN_POOLS")))

    context = NetworkContext(
        chain_id=chain_id,
        name=defaults["name"],
        rpc_url=settings.rpc_url or defaults["rpc_url"],
        router_address=router,
        factory_address=factory,
        tokens=registry,
        known_pools=pools,
        native_symbol=defaults["native_symbol"],
    )
    logger.info(
        f"Network {context.name} ({chain_id}): router={router} factory={factory} "
        f"tokens={len(registry)} known_pools={len(context.known_pools)}"
    )
    return context
