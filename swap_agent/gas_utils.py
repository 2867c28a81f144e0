"""
Gas utilities - legacy gas price recommendation with a safety buffer
"""
import logging
from typing import Any, Dict, Optional

from web3 import Web3
from web3.types import Wei

logger = logging.getLogger(__name__)

DEFAULT_GAS_PRICE = Web3.to_wei(1, "gwei")
MAX_GAS_PRICE = Web3.to_wei(100, "gwei")
GAS_PRICE_BUFFER_PERCENT = 10


def to_gwei_string(value: Optional[Wei]) -> Optional[str]:
    """Convert Wei to Gwei string"""
    if value is None:
        return None
    return str(Web3.from_wei(value, "gwei"))


async def get_gas_recommendation(
    chain,
    buffer_percent: int = GAS_PRICE_BUFFER_PERCENT,
    cap: int = MAX_GAS_PRICE,
) -> Dict[str, Any]:
    """
    Get a gas price for the next transaction

    - Uses the provider's gas price plus buffer_percent
    - Caps the result at `cap`
    - Falls back to DEFAULT_GAS_PRICE when the provider call fails

    Returns:
        {'gasPrice': int, 'source': str}
    """
    try:
        gas_price = await chain.get_gas_price()
        if gas_price:
            buffered = gas_price * (100 + buffer_percent) // 100
            if buffered > cap:
                logger.warning(
                    f"Gas price {to_gwei_string(buffered)} gwei above cap, "
                    f"using {to_gwei_string(cap)} gwei"
                )
                return {"gasPrice": cap, "source": "capped"}
            return {"gasPrice": buffered, "source": "provider.gas_price"}
    except Exception as e:
        logger.warning(f"Provider gas price failed: {e}")

    return {"gasPrice": DEFAULT_GAS_PRICE, "source": "fallback-default"}
