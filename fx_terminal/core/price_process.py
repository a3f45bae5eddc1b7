"""
Synthetic price process: bounded random walk with a slow sinusoidal drift
"""
import math
from typing import Optional, Tuple

import numpy as np

MIN_PRICE = 1e-9


class PriceProcess:
    """Stateful tick generator for one instrument session.

    Each call to ``next`` perturbs the previous price by a uniform shock of at
    most ``volatility`` (a fraction of price) and adds a drift term that slowly
    oscillates over ``drift_period`` ticks, giving the walk short-lived trends.
    Volume is an independent bounded integer draw.

    Randomness comes from a ``numpy.random.Generator`` so that a fixed seed
    reproduces the exact same sequence.
    """

    def __init__(self, rng: Optional[np.random.Generator] = None, seed: Optional[int] = None,
                 drift_period: int = 60, drift_strength: float = 0.35,
                 volume_range: Tuple[int, int] = (500, 9500)):
        if drift_period <= 0:
            raise ValueError(f"drift_period must be positive: {drift_period}")
        low, high = volume_range
        if low < 0 or high <= low:
            raise ValueError(f"Invalid volume range: {volume_range}")

        self.rng = rng if rng is not None else np.random.default_rng(seed)
        self.drift_period = drift_period
        self.drift_strength = drift_strength
        self.volume_range = (int(low), int(high))
        self.step = 0

    def reset(self):
        """Rewind the drift phase"""
        self.step = 0

    def drift(self, previous_price: float, volatility: float) -> float:
        phase = 2 * math.pi * self.step / self.drift_period
        return previous_price * volatility * self.drift_strength * math.sin(phase)

    def next(self, previous_price: float, volatility: float) -> Tuple[float, int]:
        """Produce the next (price, volume) from the previous price"""
        shock = (float(self.rng.random()) - 0.5) * previous_price * volatility * 2
        price = previous_price + shock + self.drift(previous_price, volatility)
        volume = self.draw_volume()
        self.step += 1
        return max(price, MIN_PRICE), volume

    def draw_volume(self) -> int:
        return int(self.rng.integers(self.volume_range[0], self.volume_range[1]))
