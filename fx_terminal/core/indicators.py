"""
Fast/slow exponential moving averages, updated one price at a time
"""
from typing import Optional, Tuple


def ema(prev: float, price: float, alpha: float) -> float:
    return alpha * price + (1 - alpha) * prev


def update_averages(prev_fast: float, prev_slow: float, new_price: float,
                    fast_alpha: float, slow_alpha: float) -> Tuple[float, float]:
    """Advance both averages by one price"""
    return ema(prev_fast, new_price, fast_alpha), ema(prev_slow, new_price, slow_alpha)


class IndicatorState:
    """Running fast/slow EMA pair for one instrument session"""

    def __init__(self, fast_alpha: float = 0.15, slow_alpha: float = 0.05):
        if not 0 < slow_alpha < fast_alpha <= 1:
            raise ValueError(f"Alphas must satisfy 0 < slow < fast <= 1: fast={fast_alpha}, slow={slow_alpha}")
        self.fast_alpha = fast_alpha
        self.slow_alpha = slow_alpha
        self.fast: Optional[float] = None
        self.slow: Optional[float] = None

    def seed(self, first_price: float):
        """Start both averages at the first price, no warm-up"""
        self.fast = first_price
        self.slow = first_price

    def update(self, price: float) -> Tuple[float, float]:
        if self.fast is None:
            self.seed(price)
        else:
            self.fast, self.slow = update_averages(
                self.fast, self.slow, price, self.fast_alpha, self.slow_alpha
            )
        return self.fast, self.slow

    @property
    def trend(self) -> str:
        if self.fast is None or self.fast == self.slow:
            return 'FLAT'
        return 'UP' if self.fast > self.slow else 'DOWN'
