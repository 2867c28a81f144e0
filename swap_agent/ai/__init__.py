"""
Indicators and decision making for the swap agent
"""
from .indicators import MarketIndicators, compute_indicators, rsi, sma, price_change_24h
from .price_history import PriceHistory, SyntheticPriceSource
from .decision_engine import DecisionEngine, rule_based_decision

__all__ = [
    'MarketIndicators',
    'compute_indicators',
    'rsi',
    'sma',
    'price_change_24h',
    'PriceHistory',
    'SyntheticPriceSource',
    'DecisionEngine',
    'rule_based_decision',
]
