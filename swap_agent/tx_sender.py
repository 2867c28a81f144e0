"""
Transaction sending utilities - sign locally and broadcast raw transactions
"""
import logging
from typing import Any, Dict

from web3 import Web3

from .gas_utils import get_gas_recommendation

logger = logging.getLogger(__name__)


async def send_transaction(chain, account, tx_request: Dict[str, Any], chain_id: int) -> str:
    """
    Sign and broadcast a transaction from a local account

    Args:
        chain: ChainClient (or compatible)
        account: eth_account LocalAccount
        tx_request: to, data, gas, value (optional), nonce (optional)
        chain_id: Chain id the transaction is signed for

    Returns:
        Transaction hash as 0x-prefixed hex
    """
    nonce = tx_request.get("nonce")
    if nonce is None:
        nonce = await chain.get_transaction_count(account.address)

    rec = await get_gas_recommendation(chain)

    tx = {
        "to": Web3.to_checksum_address(tx_request["to"]),
        "data": tx_request.get("data", "0x"),
        "value": tx_request.get("value", 0),
        "gas": tx_request["gas"],
        "gasPrice": rec["gasPrice"],
        "nonce": nonce,
        "chainId": chain_id,
    }

    signed = account.sign_transaction(tx)
    tx_hash = await chain.send_raw_transaction(signed.raw_transaction)
    logger.info(f"Sent transaction {tx_hash} (nonce={nonce}, gas={tx['gas']}, gas_source={rec['source']})")
    return tx_hash


async def wait_for_confirmation(chain, tx_hash: str, timeout: int = 180) -> Dict[str, Any]:
    """Wait for a receipt and log the outcome"""
    receipt = await chain.wait_for_receipt(tx_hash, timeout=timeout)
    if receipt["status"] == 1:
        logger.info(f"Transaction {tx_hash} confirmed in block {receipt['blockNumber']}")
    else:
        logger.error(f"Transaction {tx_hash} reverted in block {receipt['blockNumber']}")
    return receipt
