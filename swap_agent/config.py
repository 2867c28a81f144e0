"""
Runtime settings loaded from environment variables (.env supported)
"""
import os
import logging
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

DEFAULT_CHAIN_ID = 57054  # Sonic Blaze testnet


def _get_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning(f"Ignoring invalid value for {name}: {raw!r}")
        return default


def _get_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning(f"Ignoring invalid value for {name}: {raw!r}")
        return default


def _get_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


class Settings(BaseModel):
    """Agent settings"""
    chain_id: int = DEFAULT_CHAIN_ID
    rpc_url: Optional[str] = None
    poa_middleware: bool = False

    # Trading pair: BUY spends quote to acquire base, SELL the reverse
    base_symbol: str = "WETH"
    quote_symbol: str = "USDC"
    default_fee_tier: int = 500

    # Scheduling
    trade_interval_seconds: float = 120.0
    min_trade_interval_seconds: float = 300.0
    max_trade_history: int = 20
    price_history_size: int = 500

    # Balance warnings
    min_native_balance: float = 0.001

    # Transactions
    deadline_seconds: int = 300
    swap_gas_limit: int = 3_000_000
    approval_gas_limit: int = 500_000
    confirmation_timeout: int = 180
    connect_retries: int = 3
    connect_retry_delay: float = 0.5

    # Recommendation service
    analyst_url: Optional[str] = None
    analyst_api_key: Optional[str] = None
    analyst_timeout: float = 15.0

    # Wallet key store
    wallet_store_secret: Optional[str] = Field(default=None, repr=False)

    @classmethod
    def from_env(cls, dotenv: bool = True) -> "Settings":
        """Build settings from the process environment"""
        if dotenv:
            load_dotenv()

        return cls(
            chain_id=_get_int("CHAIN_ID", DEFAULT_CHAIN_ID),
            rpc_url=os.getenv("RPC_URL") or None,
            poa_middleware=_get_bool("POA_MIDDLEWARE", False),
            base_symbol=os.getenv("BASE_TOKEN_SYMBOL", "WETH"),
            quote_symbol=os.getenv("QUOTE_TOKEN_SYMBOL", "USDC"),
            default_fee_tier=_get_int("POOL_FEE", 500),
            trade_interval_seconds=_get_float("TRADE_INTERVAL_SECONDS", 120.0),
            min_trade_interval_seconds=_get_float("MIN_TRADE_INTERVAL_SECONDS", 300.0),
            max_trade_history=_get_int("MAX_TRADE_HISTORY", 20),
            price_history_size=_get_int("PRICE_HISTORY_SIZE", 500),
            min_native_balance=_get_float("MIN_NATIVE_BALANCE", 0.001),
            deadline_seconds=_get_int("SWAP_DEADLINE_SECONDS", 300),
            swap_gas_limit=_get_int("SWAP_GAS_LIMIT", 3_000_000),
            approval_gas_limit=_get_int("APPROVAL_GAS_LIMIT", 500_000),
            confirmation_timeout=_get_int("CONFIRMATION_TIMEOUT", 180),
            connect_retries=_get_int("CONNECT_RETRIES", 3),
            connect_retry_delay=_get_float("CONNECT_RETRY_DELAY", 0.5),
            analyst_url=os.getenv("AI_ANALYST_URL") or None,
            analyst_api_key=os.getenv("AI_ANALYST_KEY") or None,
            analyst_timeout=_get_float("AI_ANALYST_TIMEOUT", 15.0),
            wallet_store_secret=os.getenv("WALLET_STORE_SECRET") or None,
        )
