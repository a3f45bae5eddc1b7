import asyncio
import sys
from datetime import datetime, timedelta
from pathlib import Path

sys.path.append(str(Path(__file__).resolve().parents[1]))

import pytest

from fx_terminal.analysis import FALLBACK_ANALYSIS, AnalysisResult
from fx_terminal.config import default_config
from fx_terminal.core import engine as engine_module
from fx_terminal.core.engine import TerminalEngine
from fx_terminal.core.order_book import OrderRejected
from fx_terminal.core.ticker import Ticker
from fx_terminal.models import OPEN


class FakeClock:
    """Deterministic clock advancing one second per reading"""

    def __init__(self, start=datetime(2024, 1, 1, 9, 0)):
        self.now = start

    def __call__(self):
        self.now += timedelta(seconds=1)
        return self.now


def make_engine(seed=7, **engine_overrides):
    config = default_config()
    for key, value in engine_overrides.items():
        setattr(config.engine, key, value)
    return TerminalEngine(config, seed=seed, clock=FakeClock())


def test_invalid_config_is_rejected():
    config = default_config()
    config.engine.fast_alpha = 0.01
    with pytest.raises(ValueError):
        TerminalEngine(config)


def test_load_instrument_backfills_history_and_zones():
    engine = make_engine()
    snapshot = engine.load_instrument('GC=F')

    assert engine.state == 'init'
    assert snapshot.symbol == 'GC=F'
    assert snapshot.name == 'GOLD'
    assert len(snapshot.history) == engine.settings.initial_history
    assert snapshot.history[0].price == 2345.60
    assert len(snapshot.zones) == 4

    timestamps = [p.timestamp for p in snapshot.history]
    assert all(a < b for a, b in zip(timestamps, timestamps[1:]))


def test_unknown_symbol_leaves_state_unchanged():
    engine = make_engine()
    engine.load_instrument('EURUSD=X')
    with pytest.raises(ValueError):
        engine.load_instrument('XAU')
    assert engine.instrument.symbol == 'EURUSD=X'


def test_step_keeps_history_bounded_and_ordered():
    engine = make_engine()
    engine.load_instrument('EURUSD=X')
    for _ in range(200):
        engine.step()

    points = engine.history.points()
    assert len(points) == engine.settings.history_capacity
    assert all(a.timestamp < b.timestamp for a, b in zip(points, points[1:]))


def test_step_bumps_stale_timestamps():
    engine = make_engine()
    engine.load_instrument('EURUSD=X')
    last = engine.history.last.timestamp

    point = engine.step(now=last - timedelta(seconds=30))
    assert point.timestamp > last


def test_same_seed_reproduces_prices():
    first = make_engine(seed=11)
    second = make_engine(seed=11)
    first.load_instrument('BTC-USD')
    second.load_instrument('BTC-USD')
    for _ in range(30):
        first.step()
        second.step()
    assert first.history.prices() == second.history.prices()


def test_execute_trade_opens_sized_order():
    engine = make_engine()
    engine.load_instrument('EURUSD=X')

    order = engine.execute_trade('buy')
    assert order.side == 'BUY'
    assert order.symbol == 'EURUSD=X'
    assert order.status == OPEN
    assert order.entry_price == engine.current_price
    assert order.stop_loss < order.entry_price < order.take_profit
    assert engine.settings.min_size <= order.size <= engine.settings.max_size
    assert engine.feed[0].endswith(f"@ {order.entry_price:.5f}")


def test_execute_trade_without_instrument_is_rejected():
    engine = make_engine()
    with pytest.raises(OrderRejected):
        engine.execute_trade('BUY')


def test_execute_trade_with_invalid_risk_is_rejected():
    engine = make_engine()
    engine.load_instrument('EURUSD=X')
    with pytest.raises(OrderRejected):
        engine.execute_trade('BUY', risk_percent=-1)
    with pytest.raises(OrderRejected):
        engine.execute_trade('HOLD')
    assert len(engine.order_book) == 0


def test_orders_survive_instrument_switch():
    engine = make_engine()
    engine.load_instrument('EURUSD=X')
    order = engine.execute_trade('BUY')

    engine.load_instrument('GC=F')
    for _ in range(20):
        engine.step()

    assert engine.order_book.get(order.order_id) is order
    assert order.status == OPEN
    # Ticks of another instrument do not mark the order
    assert order.pnl == 0.0
    assert engine.history.points()[0].price == 2345.60


def test_close_all_then_step_has_zero_floating():
    engine = make_engine()
    engine.load_instrument('EURUSD=X')
    engine.execute_trade('BUY')
    engine.execute_trade('SELL')
    engine.step()

    assert engine.close_all_orders() == 2
    engine.step()
    assert engine.order_book.floating_pnl() == 0
    assert engine.balance == pytest.approx(engine.settings.starting_balance + engine.order_book.realized_pnl())
    assert engine.equity == engine.balance


def test_signal_callbacks_and_feed(monkeypatch):
    engine = make_engine()
    engine.load_instrument('GC=F')
    monkeypatch.setattr(engine_module, 'detect', lambda history, zones, lookback: ('BUY', None))

    seen = []
    engine.add_signal_callback(lambda symbol, point: seen.append((symbol, point.signal)))

    point = engine.step()
    assert point.signal == 'BUY'
    assert seen == [('GC=F', 'BUY')]
    assert 'BUY signal' in engine.feed[0]


def test_failing_callback_does_not_break_step():
    engine = make_engine()
    engine.load_instrument('GC=F')
    ticks = []

    def broken(symbol, point):
        raise RuntimeError("boom")

    engine.add_tick_callback(broken)
    engine.add_tick_callback(lambda symbol, point: ticks.append(point))

    engine.step()
    engine.step()
    assert len(ticks) == 2


def test_feed_keeps_newest_lines():
    engine = make_engine(feed_size=3)
    engine.load_instrument('EURUSD=X')
    for side in ('BUY', 'SELL', 'BUY', 'SELL'):
        engine.execute_trade(side)

    assert len(engine.feed) == 3
    assert 'Executed SELL' in engine.feed[0]
    assert engine.feed[0].startswith('[')


def test_get_state_shape():
    engine = make_engine()
    engine.load_instrument('EURUSD=X')
    engine.execute_trade('BUY')

    state = engine.get_state()
    assert state['instrument']['symbol'] == 'EURUSD=X'
    assert state['open_orders'] == 1
    assert len(state['orders']) == 1
    assert state['analysis'] is None
    assert {s['name'] for s in state['sessions']} == {'London', 'New York', 'Sydney', 'Tokyo'}


def test_snapshot_requires_instrument():
    engine = make_engine()
    with pytest.raises(ValueError):
        engine.snapshot()


def test_heartbeat_lifecycle():
    async def scenario():
        engine = make_engine(tick_interval=0.01)
        await engine.start('EURUSD=X')
        assert engine.state == 'running'
        await asyncio.sleep(0.1)
        assert engine.ticker.ticks > 0
        assert len(engine.history) > engine.settings.initial_history

        first_ticker = engine.ticker
        snapshot = await engine.select_instrument('GC=F')
        assert snapshot.symbol == 'GC=F'
        assert snapshot.state == 'running'
        assert not first_ticker.running

        with pytest.raises(RuntimeError):
            engine.load_instrument('EURUSD=X')

        await engine.stop()
        assert engine.state == 'stopped'
        assert engine.ticker is None

    asyncio.run(scenario())


def test_select_unknown_symbol_keeps_session():
    async def scenario():
        engine = make_engine(tick_interval=60)
        await engine.start('EURUSD=X')
        with pytest.raises(ValueError):
            await engine.select_instrument('NOPE')
        assert engine.state == 'running'
        assert engine.instrument.symbol == 'EURUSD=X'
        await engine.stop()

    asyncio.run(scenario())


def test_analysis_success_is_stored():
    async def analyzer(name, price, snapshot):
        return {'bias': 'bullish', 'score': 14, 'reasoning': f"{name} holds", 'insights': ['a']}

    async def scenario():
        engine = make_engine()
        engine.analyzer = analyzer
        engine.load_instrument('GC=F')
        return engine, await engine.request_analysis()

    engine, result = asyncio.run(scenario())
    assert result.bias == 'BULLISH'
    assert result.score == 10.0
    assert engine.latest_analysis == result
    assert engine.feed[0].endswith("Analysis locked: BULLISH (+10.0).")


def test_analysis_timeout_falls_back():
    async def slow(name, price, snapshot):
        await asyncio.sleep(5)

    async def scenario():
        engine = make_engine(analysis_timeout=0.05)
        engine.analyzer = slow
        engine.load_instrument('GC=F')
        return await engine.request_analysis()

    assert asyncio.run(scenario()) == FALLBACK_ANALYSIS


def test_analysis_error_falls_back():
    async def broken(name, price, snapshot):
        raise ConnectionError("analysis backend down")

    async def scenario():
        engine = make_engine()
        engine.analyzer = broken
        engine.load_instrument('GC=F')
        return await engine.request_analysis()

    assert asyncio.run(scenario()) == FALLBACK_ANALYSIS


def test_only_one_analysis_runs_at_a_time():
    calls = []

    async def analyzer(name, price, snapshot):
        calls.append(name)
        await asyncio.sleep(0.05)
        return AnalysisResult('NEUTRAL', 0.0, 'flat')

    async def scenario():
        engine = make_engine()
        engine.analyzer = analyzer
        engine.load_instrument('GC=F')
        first = engine.request_analysis_nowait()
        second = engine.request_analysis_nowait()
        assert first is second
        await first

    asyncio.run(scenario())
    assert calls == ['GOLD']


def test_analysis_for_switched_instrument_is_discarded():
    async def scenario():
        engine = make_engine()

        async def switching(name, price, snapshot):
            engine.load_instrument('EURUSD=X')
            return AnalysisResult('BEARISH', -4.0, 'gold rolling over')

        engine.analyzer = switching
        engine.load_instrument('GC=F')
        result = await engine.request_analysis()
        return engine, result

    engine, result = asyncio.run(scenario())
    assert result.bias == 'BEARISH'
    assert engine.latest_analysis is None
    assert engine.instrument.symbol == 'EURUSD=X'


def test_switch_cancels_pending_analysis():
    async def slow(name, price, snapshot):
        await asyncio.sleep(5)
        return AnalysisResult('BULLISH', 5.0, 'late')

    async def scenario():
        engine = make_engine(tick_interval=60)
        engine.analyzer = slow
        await engine.start('GC=F')
        task = engine.request_analysis_nowait()
        await asyncio.sleep(0.01)
        await engine.select_instrument('EURUSD=X')
        assert task.cancelled()
        assert engine.latest_analysis is None
        await engine.stop()

    asyncio.run(scenario())


def test_overlapping_switches_leave_one_heartbeat(monkeypatch):
    created = []

    class RecordingTicker(Ticker):
        def __init__(self, *args, **kwargs):
            super().__init__(*args, **kwargs)
            created.append(self)

    monkeypatch.setattr(engine_module, 'Ticker', RecordingTicker)

    async def scenario():
        engine = make_engine(tick_interval=60)
        await engine.start('EURUSD=X')
        await asyncio.gather(
            engine.select_instrument('GC=F'),
            engine.select_instrument('BTC-USD'),
        )

        assert [t.name for t in created if t.running] == ['BTC-USD']
        assert engine.ticker.name == engine.instrument.symbol == 'BTC-USD'

        await engine.stop()
        assert not any(t.running for t in created)

    asyncio.run(scenario())
