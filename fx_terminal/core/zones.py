"""
Supply/demand zone registry for the active instrument session
"""
from typing import Iterable, List, Optional, Sequence, Tuple

from ..models import DEMAND, SUPPLY, PricePoint, Zone


class ZoneRegistry:
    """Immutable set of zones built once per instrument session"""

    def __init__(self, zones: Iterable[Zone] = ()):
        self._zones: Tuple[Zone, ...] = tuple(zones)

    @classmethod
    def from_price(cls, price: float,
                   supply_offsets: Sequence[Tuple[float, float]] = ((0.010, 0.8), (0.025, 0.6)),
                   demand_offsets: Sequence[Tuple[float, float]] = ((0.010, 0.8), (0.025, 0.6)),
                   band_width: float = 0.002) -> 'ZoneRegistry':
        """Place bands at fixed offsets around the current price.

        The near edge of each band sits at the offset: supply bands extend
        upwards from ``price * (1 + offset)``, demand bands downwards from
        ``price * (1 - offset)``, each ``price * band_width`` wide.
        """
        width = price * band_width
        zones = []
        for offset, strength in supply_offsets:
            bottom = price * (1 + offset)
            zones.append(Zone(SUPPLY, top=bottom + width, bottom=bottom, strength=strength))
        for offset, strength in demand_offsets:
            top = price * (1 - offset)
            zones.append(Zone(DEMAND, top=top, bottom=top - width, strength=strength))
        return cls(zones)

    @property
    def zones(self) -> Tuple[Zone, ...]:
        return self._zones

    def __iter__(self):
        return iter(self._zones)

    def __len__(self):
        return len(self._zones)

    def _of_kind(self, kind: Optional[str]) -> List[Zone]:
        return [z for z in self._zones if kind is None or z.kind == kind]

    def contains(self, price: float, kind: Optional[str] = None) -> Optional[Zone]:
        """Zone whose band includes price; the strongest wins on overlap"""
        hits = [z for z in self._of_kind(kind) if z.contains(price)]
        if not hits:
            return None
        return max(hits, key=lambda z: z.strength)

    def nearest_above(self, price: float, kind: Optional[str] = None) -> Optional[Zone]:
        candidates = [z for z in self._of_kind(kind) if z.top > price]
        if not candidates:
            return None
        return min(candidates, key=lambda z: z.bottom)

    def nearest_below(self, price: float, kind: Optional[str] = None) -> Optional[Zone]:
        candidates = [z for z in self._of_kind(kind) if z.bottom < price]
        if not candidates:
            return None
        return max(candidates, key=lambda z: z.top)

    def mitigated(self, history: Iterable[PricePoint]) -> List[Zone]:
        """Zones touched by any point of history (informational only)"""
        prices = [p.price for p in history]
        return [z for z in self._zones if any(z.contains(price) for price in prices)]

    def to_list(self) -> List[dict]:
        return [z.to_dict() for z in self._zones]
