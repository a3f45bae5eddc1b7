"""
Data models for the FX terminal engine
"""
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, NamedTuple, Optional

BUY = 'BUY'
SELL = 'SELL'
SIDES = (BUY, SELL)

SUPPLY = 'SUPPLY'
DEMAND = 'DEMAND'

OPEN = 'OPEN'
CLOSED = 'CLOSED'


@dataclass(frozen=True)
class StructureMarker:
    """Change-of-character event attached to the point that produced it"""
    direction: str  # 'UP' or 'DOWN'
    price: float
    timestamp: datetime
    kind: str = 'CHOCH'

    def to_dict(self) -> Dict[str, Any]:
        return {
            'kind': self.kind,
            'direction': self.direction,
            'price': self.price,
            'timestamp': self.timestamp.isoformat(),
        }


@dataclass(frozen=True)
class PricePoint:
    """One heartbeat of the simulated feed"""
    timestamp: datetime
    price: float
    fast_ema: float
    slow_ema: float
    volume: int
    marker: Optional[StructureMarker] = None
    signal: Optional[str] = None  # 'BUY', 'SELL' or None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'timestamp': self.timestamp.isoformat(),
            'price': self.price,
            'fast_ema': self.fast_ema,
            'slow_ema': self.slow_ema,
            'volume': self.volume,
            'marker': self.marker.to_dict() if self.marker else None,
            'signal': self.signal,
        }


@dataclass(frozen=True)
class Zone:
    """Static supply/demand price band"""
    kind: str  # 'SUPPLY' or 'DEMAND'
    top: float
    bottom: float
    strength: float = 0.5

    def __post_init__(self):
        if self.kind not in (SUPPLY, DEMAND):
            raise ValueError(f"Unknown zone kind: {self.kind}")
        if self.top < self.bottom:
            raise ValueError(f"Zone top {self.top} below bottom {self.bottom}")
        if not 0.0 <= self.strength <= 1.0:
            raise ValueError(f"Zone strength out of range: {self.strength}")

    def contains(self, price: float) -> bool:
        return self.bottom <= price <= self.top

    @property
    def mid(self) -> float:
        return (self.top + self.bottom) / 2

    def to_dict(self) -> Dict[str, Any]:
        return {
            'kind': self.kind,
            'top': self.top,
            'bottom': self.bottom,
            'strength': self.strength,
        }


@dataclass
class Order:
    """Simulated order tracked by the order book"""
    order_id: str
    symbol: str
    side: str  # 'BUY' or 'SELL'
    entry_price: float
    stop_loss: float
    take_profit: float
    size: float
    contract_multiplier: float
    opened_at: datetime
    pnl: float = 0.0
    status: str = OPEN
    close_price: Optional[float] = None
    closed_at: Optional[datetime] = None
    close_reason: Optional[str] = None  # 'TP', 'SL' or 'MANUAL'

    @property
    def is_open(self) -> bool:
        return self.status == OPEN

    def pnl_at(self, price: float) -> float:
        """Profit/loss of the order if marked at price"""
        if self.side == BUY:
            move = price - self.entry_price
        else:
            move = self.entry_price - price
        return move * self.size * self.contract_multiplier

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for API responses"""
        return {
            'id': self.order_id,
            'symbol': self.symbol,
            'side': self.side,
            'entry': self.entry_price,
            'sl': self.stop_loss,
            'tp': self.take_profit,
            'size': self.size,
            'multiplier': self.contract_multiplier,
            'pnl': self.pnl,
            'status': self.status,
            'opened_at': self.opened_at.isoformat(),
            'close_price': self.close_price,
            'closed_at': self.closed_at.isoformat() if self.closed_at else None,
            'close_reason': self.close_reason,
        }


class RepriceResult(NamedTuple):
    order_id: str
    pnl: float
    closed_now: bool
