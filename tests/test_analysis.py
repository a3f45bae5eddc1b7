import asyncio
import sys
from pathlib import Path
from types import SimpleNamespace

sys.path.append(str(Path(__file__).resolve().parents[1]))

import pytest

from fx_terminal.analysis import (
    FALLBACK_ANALYSIS, AnalysisResult, EmaConfluenceAnalyzer, HttpAnalyzer,
    IndicatorSnapshot, run_analysis
)

SNAPSHOT = IndicatorSnapshot(
    price=2312.0, fast_ema=2320.0, slow_ema=2330.0, trend='DOWN',
    recent_high=2352.4, recent_low=2310.22, premium_discount=0.04,
    last_signal='BUY', last_marker='UP',
)


class FakeResponse:
    def __init__(self, status, payload=None):
        self.status = status
        self.payload = payload
        self.request_info = SimpleNamespace(real_url='http://analysis.test/analyze')
        self.history = ()

    async def json(self):
        return self.payload

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False


class FakeSession:
    def __init__(self, response):
        self.response = response
        self.calls = []
        self.closed = False

    def post(self, url, json=None, headers=None):
        self.calls.append((url, json))
        return self.response

    async def close(self):
        self.closed = True


def test_from_dict_normalizes_payload():
    result = AnalysisResult.from_dict({
        'bias': 'bearish',
        'score': -42,
        'reasoning': 'Distribution at premium',
        'institutionalInsights': ['Liquidity above highs', 'Supply holding'],
    })
    assert result.bias == 'BEARISH'
    assert result.score == -10.0
    assert result.insights == ['Liquidity above highs', 'Supply holding']


@pytest.mark.parametrize("payload", [
    {'bias': 'SIDEWAYS', 'score': 1},
    {'bias': 'BULLISH', 'score': 'high'},
    {},
])
def test_from_dict_rejects_malformed_payload(payload):
    with pytest.raises(ValueError):
        AnalysisResult.from_dict(payload)


def test_run_analysis_accepts_result_or_dict():
    async def as_dict(name, price, snapshot):
        return {'bias': 'NEUTRAL', 'score': 0.5, 'reasoning': 'balanced'}

    async def as_result(name, price, snapshot):
        return AnalysisResult('BULLISH', 3.0, 'reclaim', ['demand held'])

    first = asyncio.run(run_analysis(as_dict, 'GOLD', 2312.0, SNAPSHOT))
    second = asyncio.run(run_analysis(as_result, 'GOLD', 2312.0, SNAPSHOT))
    assert first.bias == 'NEUTRAL' and first.insights == []
    assert second.bias == 'BULLISH' and second.insights == ['demand held']


def test_run_analysis_falls_back_on_malformed_payload():
    async def garbage(name, price, snapshot):
        return {'bias': 'MAYBE'}

    assert asyncio.run(run_analysis(garbage, 'GOLD', 2312.0, SNAPSHOT)) == FALLBACK_ANALYSIS


def test_run_analysis_falls_back_on_timeout():
    async def slow(name, price, snapshot):
        await asyncio.sleep(1)

    assert asyncio.run(run_analysis(slow, 'GOLD', 2312.0, SNAPSHOT, timeout=0.01)) == FALLBACK_ANALYSIS


def test_fallback_analysis_is_neutral():
    assert FALLBACK_ANALYSIS.bias == 'NEUTRAL'
    assert FALLBACK_ANALYSIS.score == 0.0
    assert len(FALLBACK_ANALYSIS.insights) == 3


def test_ema_confluence_bias():
    analyzer = EmaConfluenceAnalyzer()
    bearish = asyncio.run(analyzer('GOLD', 2312.0, SNAPSHOT))
    assert bearish.bias == 'BEARISH'
    assert -10 <= bearish.score <= -1
    assert len(bearish.insights) == 3

    flat = IndicatorSnapshot(price=1.0854, fast_ema=1.0854, slow_ema=1.0854, trend='FLAT')
    neutral = asyncio.run(analyzer('EUR/USD', 1.0854, flat))
    assert neutral.bias == 'NEUTRAL'
    assert neutral.score == 0.0

    rising = IndicatorSnapshot(price=1.0900, fast_ema=1.0890, slow_ema=1.0860, trend='UP')
    bullish = asyncio.run(analyzer('EUR/USD', 1.0900, rising))
    assert bullish.bias == 'BULLISH'
    assert bullish.score == 10.0


def test_http_analyzer_posts_snapshot():
    session = FakeSession(FakeResponse(200, {'bias': 'BULLISH', 'score': 6, 'reasoning': 'ok'}))
    analyzer = HttpAnalyzer('http://analysis.test/analyze', session=session)

    result = asyncio.run(run_analysis(analyzer, 'GOLD', 2312.0, SNAPSHOT))
    assert result.bias == 'BULLISH'
    assert result.score == 6.0

    url, payload = session.calls[0]
    assert url == 'http://analysis.test/analyze'
    assert payload['instrument'] == 'GOLD'
    assert payload['indicators']['last_marker'] == 'UP'

    # Injected sessions belong to the caller
    asyncio.run(analyzer.close())
    assert session.closed is False


def test_http_analyzer_error_status_falls_back():
    session = FakeSession(FakeResponse(503))
    analyzer = HttpAnalyzer('http://analysis.test/analyze', session=session)

    assert asyncio.run(run_analysis(analyzer, 'GOLD', 2312.0, SNAPSHOT)) == FALLBACK_ANALYSIS
