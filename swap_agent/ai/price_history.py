"""
Session price history and a synthetic history source used to warm it up
"""
import logging
from collections import deque
from datetime import datetime
from typing import Deque, List, Optional, Tuple

import numpy as np

logger = logging.getLogger(__name__)


class PriceHistory:
    """Append-only price samples for a session, oldest dropped past capacity"""

    def __init__(self, capacity: Optional[int] = 500):
        self.capacity = capacity
        self._samples: Deque[Tuple[datetime, float]] = deque(maxlen=capacity)

    def append(self, price: float, timestamp: Optional[datetime] = None):
        if price <= 0:
            raise ValueError(f"Price must be positive, got {price}")
        self._samples.append((timestamp or datetime.now(), float(price)))

    def extend(self, prices: List[float]):
        for price in prices:
            self.append(price)

    @property
    def prices(self) -> List[float]:
        return [price for _, price in self._samples]

    def latest(self) -> Optional[float]:
        return self._samples[-1][1] if self._samples else None

    def tail(self, count: int) -> List[float]:
        return self.prices[-count:] if count > 0 else []

    def __len__(self) -> int:
        return len(self._samples)


class SyntheticPriceSource:
    """
    Random-walk price generator

    Used to give a fresh session enough samples for the indicators; every
    sample stays within `variation_pct` percent of the previous one.
    """

    def __init__(self, variation_pct: float = 1.0, seed: Optional[int] = None):
        self.variation_pct = variation_pct
        self._rng = np.random.default_rng(seed)

    def generate(self, base_price: float, count: int = 24) -> List[float]:
        steps = self._rng.uniform(-self.variation_pct, self.variation_pct, size=count) / 100
        prices = np.maximum(float(base_price) * np.cumprod(1 + steps), 1e-12).tolist()
        logger.debug(f"Generated {count} synthetic samples around {base_price}")
        return prices
