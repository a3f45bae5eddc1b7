"""
Terminal engine: per-instrument simulation session and command surface
"""
import asyncio
import logging
import threading
from collections import deque
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional, Tuple

import numpy as np

from ..analysis import (
    FALLBACK_ANALYSIS, AnalysisResult, Analyzer, EmaConfluenceAnalyzer,
    IndicatorSnapshot, run_analysis
)
from ..config.models import AppConfig, InstrumentConfig
from ..formatting import format_pnl, format_price
from ..models import Order, PricePoint, Zone
from ..sessions import session_status
from ..smc_detector import detect, premium_discount, recent_range
from .history import HistoryBuffer
from .indicators import IndicatorState
from .order_book import OrderBook, OrderRejected
from .price_process import PriceProcess
from .ticker import Ticker
from .zones import ZoneRegistry

logger = logging.getLogger(__name__)

PointCallback = Callable[[str, PricePoint], None]


@dataclass(frozen=True)
class InstrumentSnapshot:
    """Consistent view of the active instrument session"""
    symbol: str
    name: str
    current_price: float
    change_pct: float
    history: Tuple[PricePoint, ...]
    zones: Tuple[Zone, ...]
    state: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            'symbol': self.symbol,
            'name': self.name,
            'current_price': self.current_price,
            'change_pct': self.change_pct,
            'history': [p.to_dict() for p in self.history],
            'zones': [z.to_dict() for z in self.zones],
            'state': self.state,
        }


class TerminalEngine:
    """Owns the session context: price process, indicators, history, zones and orders.

    Lifecycle per instrument: 'init' (history back-filled, zones built) ->
    'running' (heartbeat ticking) -> 'stopped' (switch or shutdown). The
    order book outlives instrument switches.
    """

    def __init__(self, config: AppConfig, analyzer: Optional[Analyzer] = None,
                 order_book: Optional[OrderBook] = None, seed: Optional[int] = None,
                 clock: Callable[[], datetime] = datetime.now):
        errors = config.validate()
        if errors:
            raise ValueError(f"Invalid configuration: {errors}")

        self.config = config
        self.settings = config.engine
        self.analyzer = analyzer or EmaConfluenceAnalyzer()
        self.clock = clock
        self.seed = seed
        self.order_book = order_book or OrderBook(
            min_size=self.settings.min_size,
            max_size=self.settings.max_size,
            fallback_stop=self.settings.fallback_stop,
            fallback_target=self.settings.fallback_target,
            clock=clock,
        )

        # Session state, guarded by _lock
        self.state = 'stopped'
        self.instrument: Optional[InstrumentConfig] = None
        self.process: Optional[PriceProcess] = None
        self.indicators: Optional[IndicatorState] = None
        self.history = HistoryBuffer(self.settings.history_capacity)
        self.zones = ZoneRegistry()
        self.open_price: Optional[float] = None
        self._sessions = 0
        self._lock = threading.Lock()

        # Heartbeat and analysis
        self.ticker: Optional[Ticker] = None
        self.latest_analysis: Optional[AnalysisResult] = None
        self._analysis_task: Optional[asyncio.Task] = None

        # Serializes instrument switches and shutdown
        self._switch_lock = asyncio.Lock()

        # Display feed, newest first
        self.feed = deque(maxlen=self.settings.feed_size)

        # Callbacks
        self.tick_callbacks: List[PointCallback] = []
        self.signal_callbacks: List[PointCallback] = []

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self, symbol: Optional[str] = None):
        """Start the engine on symbol (or the configured default)"""
        symbol = symbol or (self.instrument.symbol if self.instrument else self.config.default_symbol)
        await self.select_instrument(symbol)

    async def stop(self):
        """Stop the heartbeat and cancel any pending analysis"""
        async with self._switch_lock:
            await self._teardown()
        logger.info("Terminal engine stopped")

    async def select_instrument(self, symbol: str) -> InstrumentSnapshot:
        """Switch the session to symbol and restart the heartbeat"""
        instrument = self.config.get_instrument(symbol)
        if instrument is None:
            raise ValueError(f"Unknown symbol: {symbol}")

        async with self._switch_lock:
            await self._teardown()
            self.load_instrument(symbol)

            self.ticker = Ticker(self.settings.tick_interval, self._on_tick, name=symbol)
            await self.ticker.start()
            with self._lock:
                self.state = 'running'

        self._feed(f"Switched to {instrument.name} feed.")
        return self.snapshot()

    def load_instrument(self, symbol: str) -> InstrumentSnapshot:
        """Enter INIT for symbol without starting the heartbeat"""
        instrument = self.config.get_instrument(symbol)
        if instrument is None:
            raise ValueError(f"Unknown symbol: {symbol}")
        if self.ticker is not None and self.ticker.running:
            raise RuntimeError("Stop the running heartbeat before loading another instrument")

        with self._lock:
            self._init_session(instrument)
        logger.info(f"Initialized {instrument.symbol} session at {instrument.initial_price} "
                    f"with {len(self.history)} points and {len(self.zones)} zones")
        return self.snapshot()

    def _session_rng(self) -> np.random.Generator:
        self._sessions += 1
        if self.seed is None:
            return np.random.default_rng()
        return np.random.default_rng([self.seed, self._sessions])

    def _init_session(self, instrument: InstrumentConfig):
        settings = self.settings
        self.state = 'init'
        self.instrument = instrument
        self.process = PriceProcess(rng=self._session_rng())
        self.indicators = IndicatorState(settings.fast_alpha, settings.slow_alpha)
        self.history = HistoryBuffer(settings.history_capacity)

        price = instrument.initial_price
        self.indicators.seed(price)
        self.open_price = price

        # Back-fill a window of points ending at now
        now = self.clock()
        interval = timedelta(seconds=settings.tick_interval)
        count = settings.initial_history
        for i in range(count):
            if i == 0:
                volume = self.process.draw_volume()
                fast, slow = self.indicators.fast, self.indicators.slow
            else:
                price, volume = self.process.next(price, instrument.volatility)
                fast, slow = self.indicators.update(price)
            timestamp = now - interval * (count - 1 - i)
            self.history.append(PricePoint(timestamp, price, fast, slow, volume))

        self.zones = ZoneRegistry.from_price(
            price,
            supply_offsets=settings.supply_offsets,
            demand_offsets=settings.demand_offsets,
            band_width=settings.zone_band_width,
        )

    async def _teardown(self):
        ticker, self.ticker = self.ticker, None
        if ticker is not None:
            await ticker.stop()

        task = self._analysis_task
        self._analysis_task = None
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

        self.latest_analysis = None
        with self._lock:
            self.state = 'stopped'

    # ------------------------------------------------------------------
    # Heartbeat
    # ------------------------------------------------------------------

    def _on_tick(self):
        self.step()

    def step(self, now: Optional[datetime] = None) -> PricePoint:
        """Advance the session by one tick as a single atomic transition"""
        with self._lock:
            if self.instrument is None or self.history.last is None:
                raise RuntimeError("No instrument session loaded")

            instrument = self.instrument
            last = self.history.last
            now = now or self.clock()
            if now <= last.timestamp:
                now = last.timestamp + timedelta(microseconds=1)

            price, volume = self.process.next(last.price, instrument.volatility)
            fast, slow = self.indicators.update(price)

            lookback = self.settings.signal_lookback
            candidate = PricePoint(now, price, fast, slow, volume)
            window = self.history.tail(lookback - 1) + [candidate]
            signal, marker = detect(window, self.zones, lookback)

            point = PricePoint(now, price, fast, slow, volume, marker=marker, signal=signal)
            self.history.append(point)
            results = self.order_book.reprice_all(price, instrument.symbol)

        for result in results:
            if result.closed_now:
                order = self.order_book.get(result.order_id)
                self._feed(f"{order.side} {order.symbol} closed on {order.close_reason}: {format_pnl(order.pnl)}")

        if marker or signal:
            parts = []
            if marker:
                parts.append(f"CHoCH {marker.direction}")
            if signal:
                parts.append(f"{signal} signal")
            self._feed(f"{' / '.join(parts)} @ {format_price(price, instrument.decimals)}")
            self._notify(self.signal_callbacks, instrument.symbol, point)

        self._notify(self.tick_callbacks, instrument.symbol, point)
        return point

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def execute_trade(self, side: str, risk_percent: Optional[float] = None) -> Order:
        """Open an order on the active instrument at the current price"""
        side = side.upper() if isinstance(side, str) else side
        if risk_percent is None:
            risk_percent = self.settings.default_risk_percent

        with self._lock:
            if self.instrument is None or self.history.last is None:
                raise OrderRejected("No active instrument price")
            instrument = self.instrument
            order = self.order_book.open(
                instrument.symbol, side, self.history.last.price, self.zones,
                risk_percent, self.balance, instrument.contract_multiplier
            )

        self._feed(f"Executed {side} {order.size} {instrument.name} @ "
                   f"{format_price(order.entry_price, instrument.decimals)}")
        return order

    def close_all_orders(self) -> int:
        closed = self.order_book.close_all()
        if closed:
            self._feed(f"Closed {closed} open order(s).")
        return closed

    def request_analysis_nowait(self) -> asyncio.Task:
        """Schedule analysis of the active instrument; returns the pending task.

        Only one analysis runs at a time; a second request while one is
        pending returns the same task.
        """
        if self._analysis_task is not None and not self._analysis_task.done():
            return self._analysis_task

        with self._lock:
            if self.instrument is None:
                raise ValueError("No active instrument to analyze")
            instrument = self.instrument
            price = self.history.last.price
            snapshot = self._indicator_snapshot()

        self._analysis_task = asyncio.create_task(self._analyze(instrument, price, snapshot))
        return self._analysis_task

    async def request_analysis(self) -> AnalysisResult:
        task = self.request_analysis_nowait()
        try:
            return await asyncio.shield(task)
        except asyncio.CancelledError:
            if not task.cancelled():
                raise
            return FALLBACK_ANALYSIS

    async def _analyze(self, instrument: InstrumentConfig, price: float,
                       snapshot: IndicatorSnapshot) -> AnalysisResult:
        self._feed(f"Analyzing {instrument.name} structure...")
        result = await run_analysis(
            self.analyzer, instrument.name, price, snapshot, timeout=self.settings.analysis_timeout
        )
        if self.instrument is not instrument:
            logger.info(f"Discarding analysis for {instrument.symbol}, instrument switched")
            return result

        self.latest_analysis = result
        self._feed(f"Analysis locked: {result.bias} ({result.score:+.1f}).")
        return result

    # ------------------------------------------------------------------
    # Observable state
    # ------------------------------------------------------------------

    @property
    def balance(self) -> float:
        return self.settings.starting_balance + self.order_book.realized_pnl()

    @property
    def equity(self) -> float:
        return self.balance + self.order_book.floating_pnl()

    @property
    def current_price(self) -> Optional[float]:
        last = self.history.last
        return last.price if last else None

    def _indicator_snapshot(self) -> IndicatorSnapshot:
        points = self.history.points()
        last = points[-1]
        rng = recent_range(points, self.settings.signal_lookback)
        recent_high, recent_low = rng if rng else (None, None)
        pd_level = premium_discount(last.price, recent_low, recent_high) if rng else None

        last_signal = next((p.signal for p in reversed(points) if p.signal), None)
        last_marker = next((p.marker.direction for p in reversed(points) if p.marker), None)
        return IndicatorSnapshot(
            price=last.price,
            fast_ema=last.fast_ema,
            slow_ema=last.slow_ema,
            trend=self.indicators.trend,
            recent_high=recent_high,
            recent_low=recent_low,
            premium_discount=pd_level,
            last_signal=last_signal,
            last_marker=last_marker,
        )

    def indicator_snapshot(self) -> IndicatorSnapshot:
        with self._lock:
            if self.instrument is None:
                raise ValueError("No active instrument")
            return self._indicator_snapshot()

    def snapshot(self) -> InstrumentSnapshot:
        with self._lock:
            if self.instrument is None:
                raise ValueError("No active instrument")
            price = self.history.last.price
            return InstrumentSnapshot(
                symbol=self.instrument.symbol,
                name=self.instrument.name,
                current_price=price,
                change_pct=(price - self.open_price) / self.open_price * 100,
                history=tuple(self.history.points()),
                zones=self.zones.zones,
                state=self.state,
            )

    def get_state(self) -> Dict[str, Any]:
        """JSON-friendly view for the presentation layer"""
        instrument = self.snapshot().to_dict() if self.instrument else None
        orders = self.order_book.orders()
        return {
            'instrument': instrument,
            'orders': [o.to_dict() for o in orders],
            'open_orders': sum(1 for o in orders if o.is_open),
            'floating_pnl': self.order_book.floating_pnl(),
            'realized_pnl': self.order_book.realized_pnl(),
            'balance': self.balance,
            'equity': self.equity,
            'analysis': self.latest_analysis.to_dict() if self.latest_analysis else None,
            'sessions': session_status(self.config.sessions),
            'feed': list(self.feed),
        }

    # ------------------------------------------------------------------
    # Callbacks and feed
    # ------------------------------------------------------------------

    def add_tick_callback(self, callback: PointCallback):
        self.tick_callbacks.append(callback)

    def add_signal_callback(self, callback: PointCallback):
        self.signal_callbacks.append(callback)

    def _notify(self, callbacks: List[PointCallback], symbol: str, point: PricePoint):
        for callback in callbacks:
            try:
                callback(symbol, point)
            except Exception as e:
                logger.error(f"Error in callback for {symbol}: {e}")

    def _feed(self, message: str):
        logger.info(message)
        self.feed.appendleft(f"[{self.clock().strftime('%H:%M:%S')}] {message}")
