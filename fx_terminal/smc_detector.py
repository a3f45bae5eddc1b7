"""
Smart Money Concepts detection on the rolling price history
"""
from typing import Iterable, Optional, Sequence, Tuple

from .models import BUY, DEMAND, SELL, SUPPLY, PricePoint, StructureMarker, Zone

DEFAULT_LOOKBACK = 20


def recent_range(history: Sequence[PricePoint], lookback: int = DEFAULT_LOOKBACK) -> Optional[Tuple[float, float]]:
    """High/low of the reference range preceding the last two points.

    The range covers the last ``lookback`` points minus the previous and the
    current point, which are the transition being classified.
    """
    if len(history) < lookback or lookback < 3:
        return None
    window = list(history)[-lookback:-2]
    prices = [p.price for p in window]
    return max(prices), min(prices)


def _zone_containing(zones: Iterable[Zone], price: float, kind: str) -> Optional[Zone]:
    hits = [z for z in zones if z.kind == kind and z.contains(price)]
    if not hits:
        return None
    return max(hits, key=lambda z: z.strength)


def detect(history: Sequence[PricePoint], zones: Iterable[Zone],
           lookback: int = DEFAULT_LOOKBACK) -> Tuple[Optional[str], Optional[StructureMarker]]:
    """Classify the newest point of history.

    Returns (reversal side, change-of-character marker). Both are None when
    history is shorter than lookback. The function keeps no state, so the same
    inputs always give the same answer.
    """
    rng = recent_range(history, lookback)
    if rng is None:
        return None, None

    recent_high, recent_low = rng
    current = history[-1]
    previous = history[-2]

    reversal = None
    marker = None

    # Change of character: swept below the range low and reclaimed it
    if previous.price < recent_low and current.price > recent_low:
        marker = StructureMarker(direction='UP', price=current.price, timestamp=current.timestamp)
        reversal = BUY
    # Swept above the range high and lost it
    elif previous.price > recent_high and current.price < recent_high:
        marker = StructureMarker(direction='DOWN', price=current.price, timestamp=current.timestamp)
        reversal = SELL

    # Zone mitigation overrides the structural reversal
    zones = list(zones)
    if _zone_containing(zones, current.price, DEMAND) and current.price > current.fast_ema:
        reversal = BUY
    elif _zone_containing(zones, current.price, SUPPLY) and current.price < current.fast_ema:
        reversal = SELL

    return reversal, marker


def premium_discount(price: float, range_low: float, range_high: float) -> float:
    """Calculate premium/discount level (0-1 scale, 0.5 = equilibrium)"""
    if range_high == range_low:
        return 0.5
    return (price - range_low) / (range_high - range_low)
