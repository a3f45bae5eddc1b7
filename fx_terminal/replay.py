"""
Replay a recorded price series through the indicator and signal pipeline
"""
import logging
from pathlib import Path
from typing import Iterable, Optional

import numpy as np
import pandas as pd

from .config.models import EngineConfig
from .core.history import HistoryBuffer
from .core.indicators import IndicatorState
from .core.zones import ZoneRegistry
from .models import PricePoint, Zone
from .smc_detector import detect

logger = logging.getLogger(__name__)


def load_prices(path: str) -> pd.DataFrame:
    """
    Load a price CSV with timestamp and price columns

    A 'close' column is accepted in place of 'price'; volume defaults to 0.

    Raises:
        FileNotFoundError: If file doesn't exist
        ValueError: If required columns are missing or no rows survive cleaning
    """
    if not Path(path).exists():
        raise FileNotFoundError(f"CSV file not found: {path}")

    df = pd.read_csv(path)
    df.columns = [c.lower() for c in df.columns]

    if 'price' not in df.columns and 'close' in df.columns:
        df = df.rename(columns={'close': 'price'})

    missing = {'timestamp', 'price'} - set(df.columns)
    if missing:
        raise ValueError(f"CSV must contain timestamp and price columns. Missing: {missing}")

    if 'volume' not in df.columns:
        df['volume'] = 0

    if np.issubdtype(df['timestamp'].dtype, np.number):
        df['timestamp'] = pd.to_datetime(df['timestamp'], unit='ms', utc=True)
    else:
        df['timestamp'] = pd.to_datetime(df['timestamp'], utc=True, errors='coerce')

    df = df.dropna(subset=['timestamp', 'price'])
    df = df.drop_duplicates(subset='timestamp', keep='last')
    df = df.sort_values('timestamp').reset_index(drop=True)

    if df.empty:
        raise ValueError("Price data is empty after cleaning")

    return df[['timestamp', 'price', 'volume']]


def replay(prices: pd.DataFrame, zones: Optional[Iterable[Zone]] = None,
           settings: Optional[EngineConfig] = None) -> pd.DataFrame:
    """Run prices through EMAs and the detector one row at a time.

    Zones default to bands placed around the first price, as a live session
    would build them. Returns one row per input price.
    """
    settings = settings or EngineConfig()
    if prices.empty:
        return pd.DataFrame(columns=['timestamp', 'price', 'fast_ema', 'slow_ema', 'signal', 'marker'])

    if zones is None:
        registry = ZoneRegistry.from_price(
            float(prices['price'].iloc[0]),
            supply_offsets=settings.supply_offsets,
            demand_offsets=settings.demand_offsets,
            band_width=settings.zone_band_width,
        )
    else:
        registry = zones if isinstance(zones, ZoneRegistry) else ZoneRegistry(zones)

    indicators = IndicatorState(settings.fast_alpha, settings.slow_alpha)
    history = HistoryBuffer(max(settings.history_capacity, settings.signal_lookback))
    lookback = settings.signal_lookback

    rows = []
    for row in prices.itertuples(index=False):
        price = float(row.price)
        fast, slow = indicators.update(price)
        timestamp = pd.Timestamp(row.timestamp).to_pydatetime()
        candidate = PricePoint(timestamp, price, fast, slow, int(getattr(row, 'volume', 0) or 0))

        signal, marker = detect(history.tail(lookback - 1) + [candidate], registry, lookback)
        history.append(PricePoint(timestamp, price, fast, slow, candidate.volume,
                                  marker=marker, signal=signal))
        rows.append({
            'timestamp': timestamp,
            'price': price,
            'fast_ema': fast,
            'slow_ema': slow,
            'signal': signal,
            'marker': marker.direction if marker else None,
        })

    result = pd.DataFrame(rows)
    logger.info(f"Replayed {len(result)} prices: {result['signal'].notna().sum()} signals, "
                f"{result['marker'].notna().sum()} markers")
    return result
