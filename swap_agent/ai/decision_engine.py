"""
Decision Engine - rule-based trading decisions with an optional external
analyst taking precedence when it answers with a usable recommendation
"""
import math
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

from ..agents.models import TradeAction, TradeRecord, TradingDecision
from ..exceptions import DecisionServiceError
from .indicators import MarketIndicators, compute_indicators

logger = logging.getLogger(__name__)

BASE_CONFIDENCE = 0.3
MIN_CONFIDENCE = 0.4
CONFLICT_PENALTY = 0.2
SUGGESTED_SLIPPAGE = 0.5  # percent

RSI_OVERSOLD = 30
RSI_OVERBOUGHT = 70
RSI_WEIGHT = 0.3
CROSSOVER_WEIGHT = 0.2
MOMENTUM_THRESHOLD = 5.0  # percent over 24 samples
MOMENTUM_WEIGHT = 0.1

RECENT_TRADES = 5
CONTEXT_PRICES = 20


def _amount_for(action: TradeAction, trade_amount: float, price: float) -> float:
    """BUY amounts are in the quote token, SELL amounts in the base token"""
    if action == TradeAction.SELL:
        return trade_amount / price if price > 0 else 0.0
    return trade_amount


def rule_based_decision(indicators: MarketIndicators, trade_amount: float = 1.0) -> TradingDecision:
    """
    Combine RSI, moving-average crossover and 24-sample momentum into a
    decision. Signals on both sides cost CONFLICT_PENALTY and the heavier
    side wins; a tie holds.
    """
    buy_weight = 0.0
    sell_weight = 0.0
    reasoning: List[str] = [f"RSI {indicators.rsi:.2f}"]

    if indicators.rsi < RSI_OVERSOLD:
        buy_weight += RSI_WEIGHT
        reasoning.append(f"RSI below {RSI_OVERSOLD}: oversold")
    elif indicators.rsi > RSI_OVERBOUGHT:
        sell_weight += RSI_WEIGHT
        reasoning.append(f"RSI above {RSI_OVERBOUGHT}: overbought")

    if indicators.crossover == "golden":
        buy_weight += CROSSOVER_WEIGHT
        reasoning.append("Short MA crossed above long MA (golden cross)")
    elif indicators.crossover == "death":
        sell_weight += CROSSOVER_WEIGHT
        reasoning.append("Short MA crossed below long MA (death cross)")

    change = indicators.price_change_24h
    if change > MOMENTUM_THRESHOLD:
        sell_weight += MOMENTUM_WEIGHT
        reasoning.append(f"Price up {change:.2f}% over 24 samples")
    elif change < -MOMENTUM_THRESHOLD:
        buy_weight += MOMENTUM_WEIGHT
        reasoning.append(f"Price down {abs(change):.2f}% over 24 samples")

    buy_weight = round(buy_weight, 6)
    sell_weight = round(sell_weight, 6)

    action = TradeAction.HOLD
    confidence = BASE_CONFIDENCE
    if buy_weight and sell_weight:
        reasoning.append("Conflicting signals")
        confidence -= CONFLICT_PENALTY
    if buy_weight > sell_weight:
        action = TradeAction.BUY
        confidence += buy_weight
    elif sell_weight > buy_weight:
        action = TradeAction.SELL
        confidence += sell_weight

    confidence = round(min(max(confidence, 0.0), 1.0), 4)
    if confidence < MIN_CONFIDENCE:
        if action != TradeAction.HOLD:
            reasoning.append(f"Confidence {confidence:.2f} below {MIN_CONFIDENCE}, holding")
        action = TradeAction.HOLD

    return TradingDecision(
        action=action,
        confidence=confidence,
        amount=_amount_for(action, trade_amount, indicators.current_price),
        reasoning=reasoning,
        suggested_slippage=SUGGESTED_SLIPPAGE,
        source="rules",
    )


def build_analyst_context(
    indicators: MarketIndicators,
    prices: Sequence[float],
    quote_balance: float,
    base_balance: float,
    trade_amount: float,
    confidence_threshold: float,
    recent_trades: Sequence[TradeRecord] = (),
) -> Dict[str, Any]:
    return {
        "currentPrice": indicators.current_price,
        "priceChange24h": indicators.price_change_24h,
        "rsi": indicators.rsi,
        "usdcBalance": quote_balance,
        "ethBalance": base_balance,
        "tradeAmount": trade_amount,
        "confidenceThreshold": confidence_threshold,
        "recentTrades": [t.as_context() for t in list(recent_trades)[-RECENT_TRADES:]],
        "timestamp": datetime.now().isoformat(),
        "priceHistory": list(prices)[-CONTEXT_PRICES:],
    }


def parse_recommendation(data: Dict[str, Any], trade_amount: float, price: float) -> TradingDecision:
    """
    Validate an analyst answer

    Raises:
        DecisionServiceError: missing or malformed action, confidence or reasoning
    """
    raw_action = data.get("action")
    if not isinstance(raw_action, str) or raw_action.upper() not in TradeAction.__members__:
        raise DecisionServiceError(f"Invalid action in recommendation: {raw_action!r}")
    action = TradeAction(raw_action.upper())

    confidence = data.get("confidence")
    if isinstance(confidence, bool) or not isinstance(confidence, (int, float)) or not math.isfinite(confidence):
        raise DecisionServiceError(f"Invalid confidence in recommendation: {confidence!r}")

    reasoning = data.get("reasoning")
    if not isinstance(reasoning, list) or not all(isinstance(r, str) for r in reasoning):
        raise DecisionServiceError("Recommendation reasoning must be a list of strings")

    return TradingDecision(
        action=action,
        confidence=min(max(float(confidence), 0.0), 1.0),
        amount=_amount_for(action, trade_amount, price),
        reasoning=reasoning,
        suggested_slippage=SUGGESTED_SLIPPAGE,
        source="analyst",
    )


class DecisionEngine:
    """Produces one TradingDecision per scheduler iteration"""

    def __init__(self, analyst=None):
        self.analyst = analyst

    async def decide(
        self,
        prices: Sequence[float],
        trade_amount: float = 1.0,
        confidence_threshold: float = 0.5,
        quote_balance: float = 0.0,
        base_balance: float = 0.0,
        recent_trades: Sequence[TradeRecord] = (),
    ) -> TradingDecision:
        """
        Ask the analyst when one is configured, otherwise (or when it fails)
        apply the rules. Never raises for analyst problems.
        """
        indicators = compute_indicators(list(prices))

        if self.analyst is not None:
            context = build_analyst_context(
                indicators,
                prices,
                quote_balance,
                base_balance,
                trade_amount,
                confidence_threshold,
                recent_trades,
            )
            try:
                data = await self.analyst.recommend(context)
                decision = parse_recommendation(data, trade_amount, indicators.current_price)
                logger.info(f"Analyst recommends {decision.action.value} ({decision.confidence:.2f})")
                return decision
            except DecisionServiceError as e:
                logger.warning(f"Analyst unavailable, using rule-based decision: {e}")
            except Exception as e:
                logger.error(f"Analyst call failed, using rule-based decision: {e}", exc_info=True)

        decision = rule_based_decision(indicators, trade_amount)
        logger.info(f"Rule-based decision {decision.action.value} ({decision.confidence:.2f})")
        return decision

    async def close(self):
        if self.analyst is not None:
            await self.analyst.close()
