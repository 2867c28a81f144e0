"""
Swap agent entry point - runs one trading session until interrupted

Environment:
    TRADER_PRIVATE_KEY     delegated wallet key
    CONFIDENCE_THRESHOLD   minimum decision confidence to trade (default 0.5)
    TRADE_AMOUNT           quote-token amount per trade (default 1)
"""
import os
import asyncio
import logging

from .agents.trading_agent import TradingAgent
from .config import Settings, _get_float
from .network import build_network_context

logger = logging.getLogger(__name__)


async def run():
    settings = Settings.from_env()
    ctx = build_network_context(settings)
    agent = TradingAgent(settings, ctx)

    private_key = os.getenv("TRADER_PRIVATE_KEY")
    if not private_key:
        logger.error("TRADER_PRIVATE_KEY is not set")
        return

    started = await agent.start_trading(
        private_key,
        confidence_threshold=_get_float("CONFIDENCE_THRESHOLD", 0.5),
        trade_amount=_get_float("TRADE_AMOUNT", 1.0),
    )
    if not started:
        for line in agent.get_logs():
            logger.error(line)
        return

    try:
        while agent.is_trading_active():
            await asyncio.sleep(1)
    finally:
        await agent.close()


def main():
    logging.basicConfig(level=logging.INFO)
    try:
        asyncio.run(run())
    except KeyboardInterrupt:
        logger.info("Interrupted, shutting down")


if __name__ == "__main__":
    main()
