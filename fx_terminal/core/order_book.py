"""
Order book: zone-aware order placement, per-tick repricing and automatic exits
"""
import logging
import threading
import uuid
from datetime import datetime
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from ..models import (
    BUY, CLOSED, DEMAND, SELL, SIDES, SUPPLY, Order, RepriceResult, Zone
)
from .zones import ZoneRegistry

logger = logging.getLogger(__name__)


class OrderRejected(ValueError):
    """Raised when an order cannot be opened; the book is left unchanged"""


class OrderBook:
    """Holds every order of the terminal, independent of the active instrument.

    All mutations (open, reprice, close) are serialized through one lock so a
    user command and the heartbeat never interleave.
    """

    def __init__(self, min_size: float = 0.01, max_size: float = 5.0,
                 fallback_stop: float = 0.005, fallback_target: float = 0.015,
                 clock: Callable[[], datetime] = datetime.now):
        if not 0 < min_size <= max_size:
            raise ValueError(f"Invalid size band: [{min_size}, {max_size}]")
        self.min_size = min_size
        self.max_size = max_size
        self.fallback_stop = fallback_stop
        self.fallback_target = fallback_target
        self.clock = clock

        self._orders: Dict[str, Order] = {}
        self._lock = threading.RLock()

    # ------------------------------------------------------------------
    # Placement
    # ------------------------------------------------------------------

    def exit_levels(self, side: str, entry_price: float, zones: Iterable[Zone]) -> Tuple[float, float]:
        """Stop-loss and take-profit for an entry.

        The stop goes to the near side of the nearest opposing zone (demand
        bottom for BUY, supply top for SELL) and the target to the near side
        of the nearest zone in the favorable direction. Missing zones, or zone
        levels on the wrong side of entry, fall back to fixed distances.
        """
        registry = zones if isinstance(zones, ZoneRegistry) else ZoneRegistry(zones)
        if side == BUY:
            stop_zone = registry.nearest_below(entry_price, DEMAND)
            target_zone = registry.nearest_above(entry_price, SUPPLY)
            stop = stop_zone.bottom if stop_zone else None
            target = target_zone.bottom if target_zone else None
            if stop is None or stop >= entry_price:
                stop = entry_price * (1 - self.fallback_stop)
            if target is None or target <= entry_price:
                target = entry_price * (1 + self.fallback_target)
        else:
            stop_zone = registry.nearest_above(entry_price, SUPPLY)
            target_zone = registry.nearest_below(entry_price, DEMAND)
            stop = stop_zone.top if stop_zone else None
            target = target_zone.top if target_zone else None
            if stop is None or stop <= entry_price:
                stop = entry_price * (1 + self.fallback_stop)
            if target is None or target >= entry_price:
                target = entry_price * (1 - self.fallback_target)
        return stop, target

    def position_size(self, balance: float, risk_percent: float, stop_distance: float,
                      contract_multiplier: float) -> float:
        """Size that risks balance * risk_percent / 100 at the stop, clamped to the size band"""
        risk_amount = balance * risk_percent / 100
        raw = risk_amount / (stop_distance * contract_multiplier)
        return min(max(round(raw, 2), self.min_size), self.max_size)

    def open(self, symbol: str, side: str, entry_price: Optional[float], zones: Iterable[Zone],
             risk_percent: float, balance: float, contract_multiplier: float) -> Order:
        """Open a risk-sized order with zone-derived stop and target"""
        self._validate(side, entry_price, contract_multiplier)
        if balance is None or balance <= 0:
            raise OrderRejected(f"Balance must be positive: {balance}")
        if risk_percent is None or risk_percent <= 0:
            raise OrderRejected(f"Risk percent must be positive: {risk_percent}")

        stop, target = self.exit_levels(side, entry_price, zones)
        size = self.position_size(balance, risk_percent, abs(entry_price - stop), contract_multiplier)
        return self._add(symbol, side, entry_price, stop, target, size, contract_multiplier)

    def open_order(self, symbol: str, side: str, entry_price: float, stop_loss: float,
                   take_profit: float, size: float, contract_multiplier: float) -> Order:
        """Open an order with explicit levels and size"""
        self._validate(side, entry_price, contract_multiplier)
        if size is None or size <= 0:
            raise OrderRejected(f"Size must be positive: {size}")
        if side == BUY and not stop_loss < entry_price < take_profit:
            raise OrderRejected(f"BUY levels must satisfy SL < entry < TP: {stop_loss}, {entry_price}, {take_profit}")
        if side == SELL and not take_profit < entry_price < stop_loss:
            raise OrderRejected(f"SELL levels must satisfy TP < entry < SL: {take_profit}, {entry_price}, {stop_loss}")
        return self._add(symbol, side, entry_price, stop_loss, take_profit, size, contract_multiplier)

    def _validate(self, side: str, entry_price: Optional[float], contract_multiplier: float):
        if side not in SIDES:
            raise OrderRejected(f"Unknown side: {side}")
        if entry_price is None or entry_price <= 0:
            raise OrderRejected(f"No current price available: {entry_price}")
        if contract_multiplier is None or contract_multiplier <= 0:
            raise OrderRejected(f"Contract multiplier must be positive: {contract_multiplier}")

    def _add(self, symbol, side, entry_price, stop_loss, take_profit, size, contract_multiplier) -> Order:
        order = Order(
            order_id=uuid.uuid4().hex,
            symbol=symbol,
            side=side,
            entry_price=float(entry_price),
            stop_loss=float(stop_loss),
            take_profit=float(take_profit),
            size=float(size),
            contract_multiplier=float(contract_multiplier),
            opened_at=self.clock(),
        )
        with self._lock:
            self._orders[order.order_id] = order
        logger.info(f"Opened {side} {size} {symbol} @ {entry_price} (SL {stop_loss}, TP {take_profit})")
        return order

    # ------------------------------------------------------------------
    # Repricing and exits
    # ------------------------------------------------------------------

    def reprice_all(self, current_price: float, symbol: Optional[str] = None) -> List[RepriceResult]:
        """Mark every open order (of symbol, when given) to current_price.

        Orders whose stop or target is crossed are closed at this tick's
        price and reported with closed_now=True.
        """
        results = []
        with self._lock:
            for order in self._orders.values():
                if not order.is_open:
                    continue
                if symbol is not None and order.symbol != symbol:
                    continue

                order.pnl = order.pnl_at(current_price)
                reason = self._exit_reason(order, current_price)
                if reason:
                    self._close(order, current_price, reason)
                results.append(RepriceResult(order.order_id, order.pnl, reason is not None))
        return results

    @staticmethod
    def _exit_reason(order: Order, price: float) -> Optional[str]:
        if order.side == BUY:
            if price >= order.take_profit:
                return 'TP'
            if price <= order.stop_loss:
                return 'SL'
        else:
            if price <= order.take_profit:
                return 'TP'
            if price >= order.stop_loss:
                return 'SL'
        return None

    def _close(self, order: Order, price: Optional[float], reason: str):
        order.status = CLOSED
        order.close_price = price
        order.closed_at = self.clock()
        order.close_reason = reason
        logger.info(f"Closed {order.side} {order.symbol} {order.order_id[:8]} ({reason}) pnl={order.pnl:.2f}")

    def close_all(self) -> int:
        """Close every open order at its last computed PnL"""
        closed = 0
        with self._lock:
            for order in self._orders.values():
                if order.is_open:
                    self._close(order, None, 'MANUAL')
                    closed += 1
        return closed

    def close(self, order_id: str) -> bool:
        """Close one order; closing a closed or unknown order is a no-op"""
        with self._lock:
            order = self._orders.get(order_id)
            if order is None or not order.is_open:
                return False
            self._close(order, None, 'MANUAL')
            return True

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get(self, order_id: str) -> Optional[Order]:
        with self._lock:
            return self._orders.get(order_id)

    def orders(self) -> List[Order]:
        with self._lock:
            return list(self._orders.values())

    def open_orders(self) -> List[Order]:
        with self._lock:
            return [o for o in self._orders.values() if o.is_open]

    def floating_pnl(self) -> float:
        with self._lock:
            return sum(o.pnl for o in self._orders.values() if o.is_open)

    def realized_pnl(self) -> float:
        with self._lock:
            return sum(o.pnl for o in self._orders.values() if not o.is_open)

    def __len__(self) -> int:
        return len(self._orders)
