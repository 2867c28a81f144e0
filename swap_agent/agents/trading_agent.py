"""
Trading Agent - scheduled trading loop for one delegated wallet

Each tick reads balances, prices the configured pair, asks the decision
engine for a recommendation and executes it when confident enough.
"""
import time
import asyncio
import logging
from collections import deque
from datetime import datetime
from decimal import Decimal
from typing import Callable, Deque, List, Optional, Set, Union

from eth_account import Account

from ..ai.decision_engine import DecisionEngine
from ..ai.price_history import PriceHistory, SyntheticPriceSource
from ..analyst_client import AnalystClient
from ..chain import ChainClient, connect_with_retry
from ..config import Settings
from ..exceptions import KeyStoreError, SwapAgentError, WalletConnectionError
from ..network import NetworkContext
from .execution_agent import ExecutionAgent
from .models import SwapResult, Token, TradeAction, TradeRecord, TradingDecision
from .pool_resolver import PoolResolver
from .price_oracle import PriceOracle

logger = logging.getLogger(__name__)

MAX_LOG_LINES = 1000
WARMUP_SAMPLES = 24


def to_human(raw: int, decimals: int) -> Decimal:
    return Decimal(raw).scaleb(-decimals)


class TradingAgent:
    """Owns the trading session state for a single wallet"""

    # Wallet addresses with a running session in this process
    _active_wallets: Set[str] = set()

    def __init__(
        self,
        settings: Settings,
        ctx: NetworkContext,
        chain=None,
        decision_engine: Optional[DecisionEngine] = None,
        history_source: Optional[SyntheticPriceSource] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.settings = settings
        self.ctx = ctx
        self.chain = chain or ChainClient(ctx.rpc_url, poa_middleware=settings.poa_middleware)
        self.resolver = PoolResolver(self.chain)
        self.oracle = PriceOracle(self.resolver)
        self.executor = ExecutionAgent(
            self.chain,
            self.oracle,
            swap_gas_limit=settings.swap_gas_limit,
            approval_gas_limit=settings.approval_gas_limit,
            deadline_seconds=settings.deadline_seconds,
            confirmation_timeout=settings.confirmation_timeout,
        )
        if decision_engine is None:
            analyst = None
            if settings.analyst_url:
                analyst = AnalystClient(
                    settings.analyst_url,
                    api_key=settings.analyst_api_key,
                    timeout=settings.analyst_timeout,
                )
            decision_engine = DecisionEngine(analyst)
        self.decision_engine = decision_engine
        self.history_source = history_source or SyntheticPriceSource()
        self.clock = clock

        self.running = False
        self.busy = False
        self.account = None
        self.last_trade_timestamp: Optional[float] = None
        self.trade_amount = 1.0
        self.confidence_threshold = 0.5
        self.trade_history: Deque[TradeRecord] = deque(maxlen=settings.max_trade_history)
        self.price_history = PriceHistory(capacity=settings.price_history_size)
        self.logs: List[str] = []
        self._task: Optional[asyncio.Task] = None
        self._wallet: Optional[str] = None
        self._stop_event: Optional[asyncio.Event] = None

    # Tokens

    @property
    def base_token(self) -> Token:
        return self.ctx.token(self.settings.base_symbol)

    @property
    def quote_token(self) -> Token:
        return self.ctx.token(self.settings.quote_symbol)

    def _resolve_token(self, token: Union[Token, str]) -> Token:
        return self.ctx.token(token) if isinstance(token, str) else token

    # Operational log

    def _log(self, message: str, level: int = logging.INFO):
        self.logs.append(f"[{datetime.now().isoformat(timespec='seconds')}] {message}")
        if len(self.logs) > MAX_LOG_LINES:
            del self.logs[:len(self.logs) - MAX_LOG_LINES]
        logger.log(level, message)

    def get_logs(self) -> List[str]:
        return list(self.logs)

    # Session control

    @classmethod
    def active_wallets(cls) -> Set[str]:
        return set(cls._active_wallets)

    def is_trading_active(self) -> bool:
        return self.running

    async def start_trading(
        self,
        private_key: str,
        confidence_threshold: float = 0.5,
        trade_amount: float = 1.0,
        run_loop: bool = True,
    ) -> bool:
        """
        Start a trading session for the wallet behind private_key

        Returns False (and logs why) when the session cannot start: already
        running, bad key, another session for the same wallet, or no chain
        connection.
        """
        if self.running:
            self._log("Trading is already active", logging.WARNING)
            return False
        if self.busy or (self._task is not None and not self._task.done()):
            self._log("Previous session is still finishing an iteration", logging.WARNING)
            return False

        try:
            account = Account.from_key(private_key)
        except (ValueError, TypeError) as e:
            self._log(f"Invalid private key: {e}", logging.ERROR)
            return False

        wallet = account.address.lower()
        if wallet in TradingAgent._active_wallets:
            self._log(f"Wallet {account.address} already has an active trading session", logging.WARNING)
            return False

        # Claimed before the first await so a concurrent start sees it
        TradingAgent._active_wallets.add(wallet)
        ready = False
        try:
            ready = await self._prepare_session()
        finally:
            if not ready:
                TradingAgent._active_wallets.discard(wallet)
        if not ready:
            return False

        self._wallet = wallet
        self.account = account
        self.confidence_threshold = confidence_threshold
        self.trade_amount = trade_amount
        self.running = True
        self._log(
            f"Starting AI trading for {account.address} on {self.ctx.name} with {trade_amount} "
            f"{self.settings.quote_symbol} per trade and {confidence_threshold * 100:.0f}% confidence threshold"
        )

        if run_loop:
            self._stop_event = asyncio.Event()
            self._task = asyncio.create_task(self._trading_loop())
        return True

    async def _prepare_session(self) -> bool:
        """Connect, check the chain id and sync token decimals"""
        try:
            chain_id = await connect_with_retry(
                self.chain, self.settings.connect_retries, self.settings.connect_retry_delay
            )
            if chain_id != self.ctx.chain_id:
                self._log(
                    f"Provider is on chain {chain_id}, expected {self.ctx.chain_id}", logging.ERROR
                )
                return False
            await self._sync_token_decimals()
        except (WalletConnectionError, KeyError) as e:
            self._log(f"Could not start trading: {e}", logging.ERROR)
            return False
        except Exception as e:
            self._log(f"Could not start trading: {e}", logging.ERROR)
            logger.error("Unexpected error starting trading session", exc_info=True)
            return False
        return True

    async def start_trading_for_owner(self, owner: str, key_store, **kwargs) -> bool:
        """Start trading with the delegated key stored for `owner`"""
        try:
            private_key = key_store.load_key(owner)
        except KeyStoreError as e:
            self._log(f"No usable trading key for {owner}: {e}", logging.ERROR)
            return False
        return await self.start_trading(private_key, **kwargs)

    def stop_trading(self) -> bool:
        """
        Stop scheduling new iterations

        An iteration already in flight runs to completion and the wallet
        stays claimed until it does.
        """
        if not self.running:
            return False

        self.running = False
        if self._stop_event is not None:
            self._stop_event.set()
        if not self.busy:
            self._release_wallet()
        self._log("Stopped AI trading")
        return True

    def _release_wallet(self):
        if self._wallet is not None:
            TradingAgent._active_wallets.discard(self._wallet)
            self._wallet = None

    async def close(self):
        self.stop_trading()
        if self._task is not None:
            await self._task
            self._task = None
        await self.decision_engine.close()

    async def _trading_loop(self):
        """First iteration runs immediately, then every trade interval"""
        try:
            while self.running:
                try:
                    await self.run_iteration()
                except Exception as e:
                    self._log(f"Trading iteration failed: {e}", logging.ERROR)
                    logger.error("Unhandled error in trading iteration", exc_info=True)

                try:
                    await asyncio.wait_for(
                        self._stop_event.wait(), timeout=self.settings.trade_interval_seconds
                    )
                except asyncio.TimeoutError:
                    continue
        finally:
            if not self.running:
                self._release_wallet()

    async def _sync_token_decimals(self):
        """Replace configured decimals with what the token contracts report"""
        for token in (self.base_token, self.quote_token):
            decimals = await self.chain.get_token_decimals(token.address)
            if decimals != token.decimals:
                logger.info(f"{token.symbol} reports {decimals} decimals (configured {token.decimals})")
                self.ctx.tokens.register(token.model_copy(update={"decimals": decimals}))

    # Balances

    async def _token_balance(self, token: Token, owner: str) -> Decimal:
        raw = await self.chain.get_token_balance(token.address, owner)
        return to_human(raw, token.decimals)

    async def check_balance(self, private_key: str) -> str:
        """Quote-token balance of the wallet as a decimal string, "0.00" on error"""
        try:
            account = Account.from_key(private_key)
            balance = await self._token_balance(self.quote_token, account.address)
        except Exception as e:
            self._log(f"Error checking balance: {e}", logging.ERROR)
            return "0.00"
        return f"{balance:.2f}"

    async def _read_balances(self):
        """Log balance warnings; never aborts the iteration"""
        owner = self.account.address
        quote_balance = Decimal(0)
        base_balance = Decimal(0)
        try:
            native = to_human(await self.chain.get_native_balance(owner), 18)
            quote_balance = await self._token_balance(self.quote_token, owner)
            base_balance = await self._token_balance(self.base_token, owner)
        except Exception as e:
            self._log(f"Could not read balances: {e}", logging.WARNING)
            return quote_balance, base_balance

        self._log(
            f"Balances: {native} {self.ctx.native_symbol}, {quote_balance} {self.settings.quote_symbol}, "
            f"{base_balance} {self.settings.base_symbol}"
        )
        if native < Decimal(str(self.settings.min_native_balance)):
            self._log(
                f"Low {self.ctx.native_symbol} balance for gas: {native}", logging.WARNING
            )
        if quote_balance < Decimal(str(self.trade_amount)):
            self._log(
                f"{self.settings.quote_symbol} balance {quote_balance} is below trade amount {self.trade_amount}",
                logging.WARNING,
            )
        return quote_balance, base_balance

    # Iteration

    async def run_iteration(self) -> Optional[TradingDecision]:
        """
        Run one trading tick

        Returns the decision taken, or None when the tick was skipped or
        ended early.
        """
        if self.account is None:
            self._log("No wallet connected, skipping iteration", logging.WARNING)
            return None
        if not self.running:
            self._log("Trading is stopped, skipping iteration")
            return None
        if self.busy:
            self._log("Previous iteration still running, skipping tick")
            return None

        self.busy = True
        try:
            return await self._iterate()
        finally:
            self.busy = False
            if not self.running:
                self._release_wallet()

    async def _iterate(self) -> Optional[TradingDecision]:
        now = self.clock()
        if self.last_trade_timestamp is not None:
            elapsed = now - self.last_trade_timestamp
            if elapsed < self.settings.min_trade_interval_seconds:
                self._log(
                    f"Skipping iteration: last trade {elapsed:.0f}s ago "
                    f"(minimum {self.settings.min_trade_interval_seconds:.0f}s)"
                )
                return None

        try:
            await connect_with_retry(
                self.chain, self.settings.connect_retries, self.settings.connect_retry_delay
            )
        except WalletConnectionError as e:
            self._log(f"Chain connection failed: {e}", logging.ERROR)
            return None

        quote_balance, base_balance = await self._read_balances()

        base, quote = self.base_token, self.quote_token
        try:
            price = await self.oracle.get_price(self.ctx, base, quote, self.settings.default_fee_tier)
        except SwapAgentError as e:
            self._log(f"Could not price {base.symbol}/{quote.symbol}: {e}", logging.ERROR)
            return None
        except Exception as e:
            self._log(f"Could not price {base.symbol}/{quote.symbol}: {e}", logging.ERROR)
            logger.error("Pricing failed", exc_info=True)
            return None

        current_price = float(price)
        if current_price <= 0:
            self._log(f"Pool returned a non-positive price for {base.symbol}", logging.ERROR)
            return None
        self._log(f"Current {base.symbol} price: {current_price:.6f} {quote.symbol}")

        if len(self.price_history) == 0:
            self.price_history.extend(self.history_source.generate(current_price, WARMUP_SAMPLES))
        self.price_history.append(current_price)

        decision = await self.decision_engine.decide(
            self.price_history.prices,
            trade_amount=self.trade_amount,
            confidence_threshold=self.confidence_threshold,
            quote_balance=float(quote_balance),
            base_balance=float(base_balance),
            recent_trades=list(self.trade_history),
        )
        self._log(
            f"AI decision ({decision.source}): {decision.action.value} with "
            f"{decision.confidence * 100:.2f}% confidence"
        )
        for reason in decision.reasoning:
            self._log(f"  - {reason}")

        if decision.confidence <= self.confidence_threshold or decision.action == TradeAction.HOLD:
            self._log(
                f"No trade executed: confidence ({decision.confidence * 100:.2f}%) "
                f"below threshold or action is HOLD"
            )
            return decision

        await self._act_on(decision, current_price)
        return decision

    async def _act_on(self, decision: TradingDecision, price: float):
        if decision.action == TradeAction.BUY:
            token_in, token_out = self.quote_token, self.base_token
        else:
            token_in, token_out = self.base_token, self.quote_token

        amount = Decimal(str(decision.amount))
        try:
            balance = await self._token_balance(token_in, self.account.address)
        except Exception as e:
            self._log(f"Could not re-check {token_in.symbol} balance: {e}", logging.ERROR)
            return
        if balance < amount:
            self._log(
                f"Insufficient {token_in.symbol} balance for {decision.action.value}: "
                f"have {balance}, need {amount}",
                logging.WARNING,
            )
            return

        self._log(f"Executing {decision.action.value}: {amount} {token_in.symbol} -> {token_out.symbol}")
        result = await self.execute_swap(
            token_in, token_out, amount, decision.suggested_slippage, self.settings.default_fee_tier
        )
        if not result.success:
            self._log(f"Trade failed: {result.error}", logging.ERROR)
            return

        self.last_trade_timestamp = self.clock()
        self.trade_history.append(TradeRecord(
            action=decision.action,
            amount=float(amount),
            price=price,
            tx_hash=result.tx_hash,
        ))
        self._log(
            f"Trade executed: {decision.action.value} {amount} {token_in.symbol}, "
            f"min output {result.output_amount} {token_out.symbol} (tx {result.tx_hash})"
        )

    async def execute_swap(
        self,
        token_in: Union[Token, str],
        token_out: Union[Token, str],
        amount_in: Union[Decimal, float, str],
        slippage: Union[Decimal, float, str] = Decimal("0.5"),
        fee_hint: Optional[int] = None,
    ) -> SwapResult:
        """
        Swap with the session wallet; failures come back in the result

        The pool is looked up starting from `fee_hint`, by default the same
        tier the scheduler prices with.
        """
        if self.account is None:
            return SwapResult(success=False, error="Wallet not connected")
        if fee_hint is None:
            fee_hint = self.settings.default_fee_tier
        try:
            token_in = self._resolve_token(token_in)
            token_out = self._resolve_token(token_out)
        except KeyError as e:
            return SwapResult(success=False, error=str(e))
        return await self.executor.execute_swap(
            self.ctx, self.account, token_in, token_out, amount_in, slippage, fee_hint
        )
