"""
Fixed-capacity rolling window of computed price points
"""
from collections import deque
from itertools import islice
from typing import Iterator, List, Optional

import pandas as pd

from ..models import PricePoint


class HistoryBuffer:
    """Append-only window with oldest-eviction and strictly increasing timestamps"""

    def __init__(self, capacity: int = 150):
        if capacity < 1:
            raise ValueError(f"History capacity must be positive: {capacity}")
        self.capacity = capacity
        self._points = deque(maxlen=capacity)

    def append(self, point: PricePoint) -> Optional[PricePoint]:
        """Append point, returning the evicted oldest point if any"""
        last = self.last
        if last is not None and point.timestamp <= last.timestamp:
            raise ValueError(
                f"Timestamps must be strictly increasing: {point.timestamp} <= {last.timestamp}"
            )
        evicted = self._points[0] if len(self._points) == self.capacity else None
        self._points.append(point)
        return evicted

    def clear(self):
        self._points.clear()

    @property
    def last(self) -> Optional[PricePoint]:
        return self._points[-1] if self._points else None

    def tail(self, n: int) -> List[PricePoint]:
        if n <= 0:
            return []
        start = max(len(self._points) - n, 0)
        return list(islice(self._points, start, None))

    def points(self) -> List[PricePoint]:
        return list(self._points)

    def prices(self) -> List[float]:
        return [p.price for p in self._points]

    def __len__(self) -> int:
        return len(self._points)

    def __iter__(self) -> Iterator[PricePoint]:
        return iter(self._points)

    def __getitem__(self, index):
        if isinstance(index, slice):
            return list(self._points)[index]
        return self._points[index]

    def to_dataframe(self) -> pd.DataFrame:
        """Tabular view indexed by timestamp"""
        rows = []
        for p in self._points:
            rows.append({
                'timestamp': p.timestamp,
                'price': p.price,
                'fast_ema': p.fast_ema,
                'slow_ema': p.slow_ema,
                'volume': p.volume,
                'signal': p.signal,
                'marker': p.marker.direction if p.marker else None,
            })
        df = pd.DataFrame(rows, columns=['timestamp', 'price', 'fast_ema', 'slow_ema',
                                         'volume', 'signal', 'marker'])
        df.set_index('timestamp', inplace=True)
        return df
