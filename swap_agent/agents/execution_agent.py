"""
Execution Agent - approve-then-swap execution against the router
"""
import logging
from datetime import datetime
from decimal import Decimal
from typing import Optional, Union

from ..chain import encode_approve_call
from ..exceptions import (
    ApprovalFailedError,
    InsufficientBalanceError,
    SwapAgentError,
    SwapExecutionError,
)
from ..network import NetworkContext
from ..tx_sender import send_transaction, wait_for_confirmation
from .models import Quote, SwapResult, Token
from .pool_resolver import DEFAULT_FEE_TIER
from .price_oracle import DEADLINE_SECONDS, SWAP_GAS_LIMIT, PriceOracle, build_swap_transaction

logger = logging.getLogger(__name__)

APPROVAL_CEILING = 1000 * 10 ** 18
APPROVAL_GAS_LIMIT = 500_000


class ExecutionAgent:
    """Executes quoted swaps for a local signing account"""

    def __init__(
        self,
        chain,
        oracle: PriceOracle,
        swap_gas_limit: int = SWAP_GAS_LIMIT,
        approval_gas_limit: int = APPROVAL_GAS_LIMIT,
        deadline_seconds: int = DEADLINE_SECONDS,
        confirmation_timeout: int = 180,
    ):
        self.chain = chain
        self.oracle = oracle
        self.swap_gas_limit = swap_gas_limit
        self.approval_gas_limit = approval_gas_limit
        self.deadline_seconds = deadline_seconds
        self.confirmation_timeout = confirmation_timeout

    async def ensure_allowance(self, ctx: NetworkContext, account, token: Token, amount_raw: int) -> Optional[str]:
        """
        Make sure the router may spend `amount_raw` of `token`

        Returns the approval tx hash, or None when the allowance already
        covers the amount.

        Raises:
            ApprovalFailedError: approval could not be sent or reverted
        """
        allowance = await self.chain.get_allowance(token.address, account.address, ctx.router_address)
        if allowance >= amount_raw:
            logger.debug(f"Allowance {allowance} covers {amount_raw} {token.symbol}")
            return None

        ceiling = max(APPROVAL_CEILING, amount_raw)
        logger.info(f"Approving router for {ceiling} {token.symbol} (current allowance {allowance})")
        try:
            tx_hash = await send_transaction(
                self.chain,
                account,
                {
                    "to": token.address,
                    "data": encode_approve_call(ctx.router_address, ceiling),
                    "gas": self.approval_gas_limit,
                },
                ctx.chain_id,
            )
            receipt = await wait_for_confirmation(self.chain, tx_hash, self.confirmation_timeout)
        except Exception as e:
            raise ApprovalFailedError(f"Approval of {token.symbol} failed: {e}") from e

        if receipt.get("status") != 1:
            raise ApprovalFailedError(f"Approval transaction {tx_hash} reverted")
        return tx_hash

    async def submit_swap(self, ctx: NetworkContext, account, quote: Quote) -> str:
        """
        Send the exactInputSingle transaction for a quote and wait for it

        Raises:
            SwapExecutionError: submission failed or the transaction reverted
        """
        swap_tx = build_swap_transaction(
            ctx,
            quote,
            account.address,
            deadline_seconds=self.deadline_seconds,
            gas_limit=self.swap_gas_limit,
        )
        try:
            tx_hash = await send_transaction(
                self.chain,
                account,
                {
                    "to": swap_tx.to,
                    "data": swap_tx.data,
                    "value": swap_tx.value,
                    "gas": swap_tx.gas_limit,
                },
                ctx.chain_id,
            )
            receipt = await wait_for_confirmation(self.chain, tx_hash, self.confirmation_timeout)
        except Exception as e:
            raise SwapExecutionError(f"Swap transaction failed: {e}") from e

        if receipt.get("status") != 1:
            raise SwapExecutionError(f"Swap transaction {tx_hash} reverted")
        return tx_hash

    async def execute_quote(self, ctx: NetworkContext, account, quote: Quote) -> SwapResult:
        """Approve (if needed) and swap an already computed quote"""
        try:
            await self.ensure_allowance(ctx, account, quote.token_in, quote.amount_in_raw)
            tx_hash = await self.submit_swap(ctx, account, quote)
        except SwapAgentError as e:
            logger.error(f"Swap {quote.token_in.symbol}->{quote.token_out.symbol} failed: {e}")
            return SwapResult(success=False, error=str(e), timestamp=datetime.now())
        except Exception as e:
            logger.error(f"Swap {quote.token_in.symbol}->{quote.token_out.symbol} failed: {e}", exc_info=True)
            return SwapResult(success=False, error=str(e), timestamp=datetime.now())

        logger.info(
            f"Swapped {quote.amount_in} {quote.token_in.symbol} for at least "
            f"{quote.min_output} {quote.token_out.symbol} ({tx_hash})"
        )
        return SwapResult(
            success=True,
            tx_hash=tx_hash,
            output_amount=str(quote.min_output),
            timestamp=datetime.now(),
        )

    async def execute_swap(
        self,
        ctx: NetworkContext,
        account,
        token_in: Token,
        token_out: Token,
        amount_in: Union[Decimal, float, str],
        slippage: Union[Decimal, float, str] = Decimal("0.5"),
        fee_hint: int = DEFAULT_FEE_TIER,
    ) -> SwapResult:
        """
        Resolve, quote, check balance, approve and swap

        Every failure is folded into the returned SwapResult.
        """
        try:
            quote = await self.oracle.quote(ctx, token_in, token_out, amount_in, slippage, fee_hint)
            balance = await self.chain.get_token_balance(token_in.address, account.address)
            if balance < quote.amount_in_raw:
                raise InsufficientBalanceError(
                    f"Insufficient {token_in.symbol} balance: have {balance}, need {quote.amount_in_raw}"
                )
        except SwapAgentError as e:
            logger.warning(f"Swap {token_in.symbol}->{token_out.symbol} aborted: {e}")
            return SwapResult(success=False, error=str(e), timestamp=datetime.now())
        except Exception as e:
            logger.error(f"Swap {token_in.symbol}->{token_out.symbol} failed: {e}", exc_info=True)
            return SwapResult(success=False, error=str(e), timestamp=datetime.now())

        return await self.execute_quote(ctx, account, quote)
