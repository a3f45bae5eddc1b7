import sys
from datetime import datetime, timedelta
from pathlib import Path

# Ensure project root on sys.path before importing from fx_terminal
sys.path.append(str(Path(__file__).resolve().parents[1]))

from fx_terminal.core.indicators import IndicatorState
from fx_terminal.models import DEMAND, SUPPLY, PricePoint, Zone
from fx_terminal.smc_detector import detect, premium_discount, recent_range

START = datetime(2024, 1, 1, 12, 0)


def build_history(prices, fast_alpha=0.15, slow_alpha=0.05):
    state = IndicatorState(fast_alpha, slow_alpha)
    points = []
    for i, price in enumerate(prices):
        fast, slow = state.update(price)
        points.append(PricePoint(START + timedelta(seconds=2 * i), price, fast, slow, 1000))
    return points


def gold_path():
    start, low = 2352.40, 2308.00
    step = (start - low) / 20
    descent = [start - i * step for i in range(1, 21)]
    return [start] * 20 + descent + [2312.00]


def test_no_signal_with_short_history():
    history = build_history([100.0] * 10 + [90.0, 101.0])
    assert detect(history, [], lookback=20) == (None, None)
    assert recent_range(history, 20) is None


def test_gold_demand_zone_reclaim_gives_buy():
    zones = [Zone(DEMAND, top=2309.94, bottom=2305.64, strength=0.8)]
    history = build_history(gold_path())

    side, marker = detect(history, zones)
    assert side == 'BUY'
    assert marker is not None
    assert marker.direction == 'UP'
    assert marker.price == 2312.00
    assert marker.timestamp == history[-1].timestamp

    # The tick at 2308 is still falling through the zone below the fast average
    assert detect(history[:-1], zones) == (None, None)


def test_choch_down_gives_sell():
    history = build_history([100.0] * 20 + [101.0, 99.5])
    side, marker = detect(history, [])
    assert side == 'SELL'
    assert marker.direction == 'DOWN'


def test_demand_zone_above_fast_average_gives_buy():
    zones = [Zone(DEMAND, top=2309.94, bottom=2305.64)]
    history = build_history([2300.0] * 30 + [2307.0])
    assert history[-1].price > history[-1].fast_ema

    assert detect(history, zones) == ('BUY', None)


def test_supply_zone_below_fast_average_gives_sell():
    zones = [Zone(SUPPLY, top=2397.0, bottom=2393.0)]
    history = build_history([2400.0] * 30 + [2395.0])
    assert detect(history, zones) == ('SELL', None)


def test_zone_inside_but_against_fast_average_gives_nothing():
    zones = [Zone(DEMAND, top=2309.94, bottom=2305.64)]
    history = build_history([2320.0] * 30 + [2308.0])
    assert history[-1].price < history[-1].fast_ema
    assert detect(history, zones) == (None, None)


def test_zone_override_replaces_choch_reversal():
    # Sweep above the range high then lose it (CHoCH down) while sitting in demand above the fast EMA
    zones = [Zone(DEMAND, top=99.5, bottom=98.0)]
    history = build_history([90.0] * 25 + [100.0, 101.0, 99.0])
    assert history[-1].price > history[-1].fast_ema

    side, marker = detect(history, zones)
    assert side == 'BUY'
    assert marker.direction == 'DOWN'


def test_detect_is_idempotent():
    zones = [Zone(DEMAND, top=2309.94, bottom=2305.64)]
    history = build_history(gold_path())
    before = list(history)

    first = detect(history, zones)
    second = detect(history, zones)
    assert first == second
    assert history == before


def test_premium_discount():
    assert premium_discount(105, 100, 110) == 0.5
    assert premium_discount(100, 100, 110) == 0.0
    assert premium_discount(110, 100, 110) == 1.0
    assert premium_discount(42, 100, 100) == 0.5
