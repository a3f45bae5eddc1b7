"""
Core modules for the FX terminal engine
"""

from .price_process import PriceProcess
from .indicators import IndicatorState, update_averages
from .zones import ZoneRegistry
from .history import HistoryBuffer
from .order_book import OrderBook, OrderRejected
from .ticker import Ticker
from .engine import InstrumentSnapshot, TerminalEngine

__all__ = [
    'PriceProcess', 'IndicatorState', 'update_averages', 'ZoneRegistry',
    'HistoryBuffer', 'OrderBook', 'OrderRejected', 'Ticker',
    'InstrumentSnapshot', 'TerminalEngine'
]
