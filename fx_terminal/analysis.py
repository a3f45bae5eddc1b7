"""
Narrative analysis seam: pluggable async analyzers with a bounded timeout
"""
import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

import aiohttp

logger = logging.getLogger(__name__)

BIASES = ('BULLISH', 'BEARISH', 'NEUTRAL')


@dataclass(frozen=True)
class IndicatorSnapshot:
    """Indicator state handed to the analyzer"""
    price: float
    fast_ema: float
    slow_ema: float
    trend: str  # 'UP', 'DOWN' or 'FLAT'
    recent_high: Optional[float] = None
    recent_low: Optional[float] = None
    premium_discount: Optional[float] = None
    last_signal: Optional[str] = None
    last_marker: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'price': self.price,
            'fast_ema': self.fast_ema,
            'slow_ema': self.slow_ema,
            'trend': self.trend,
            'recent_high': self.recent_high,
            'recent_low': self.recent_low,
            'premium_discount': self.premium_discount,
            'last_signal': self.last_signal,
            'last_marker': self.last_marker,
        }


@dataclass(frozen=True)
class AnalysisResult:
    bias: str
    score: float
    reasoning: str
    insights: List[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'AnalysisResult':
        """Validate a raw analyzer payload; raises ValueError when malformed"""
        bias = str(data.get('bias', '')).upper()
        if bias not in BIASES:
            raise ValueError(f"Unknown bias: {data.get('bias')}")
        try:
            score = float(data.get('score', 0))
        except (TypeError, ValueError):
            raise ValueError(f"Invalid score: {data.get('score')}")
        score = max(-10.0, min(10.0, score))
        insights = data.get('insights', data.get('institutionalInsights', [])) or []
        return cls(
            bias=bias,
            score=score,
            reasoning=str(data.get('reasoning', '')),
            insights=[str(item) for item in insights],
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'bias': self.bias,
            'score': self.score,
            'reasoning': self.reasoning,
            'insights': list(self.insights),
        }


FALLBACK_ANALYSIS = AnalysisResult(
    bias='NEUTRAL',
    score=0.0,
    reasoning="Analysis temporarily unavailable. Maintaining previous bias based on EMA confluence.",
    insights=["Market volatility increasing", "Awaiting session liquidity", "Order book stabilizing"],
)

Analyzer = Callable[[str, float, IndicatorSnapshot], Awaitable[Union[AnalysisResult, Dict[str, Any]]]]


async def run_analysis(analyzer: Analyzer, instrument_name: str, price: float,
                       snapshot: IndicatorSnapshot, timeout: float = 8.0) -> AnalysisResult:
    """Call analyzer within timeout; any failure resolves to FALLBACK_ANALYSIS"""
    try:
        result = await asyncio.wait_for(analyzer(instrument_name, price, snapshot), timeout=timeout)
        if isinstance(result, AnalysisResult):
            return AnalysisResult.from_dict(result.to_dict())
        return AnalysisResult.from_dict(result)
    except asyncio.TimeoutError:
        logger.warning(f"Analysis for {instrument_name} timed out after {timeout}s, using fallback")
    except asyncio.CancelledError:
        raise
    except Exception as e:
        logger.warning(f"Analysis for {instrument_name} failed: {e}")
    return FALLBACK_ANALYSIS


class EmaConfluenceAnalyzer:
    """Local analyzer reading bias from the fast/slow EMA spread and range position"""

    def __init__(self, full_scale: float = 0.002):
        # Spread (as a fraction of price) that maps to a full +/-10 score
        self.full_scale = full_scale

    async def __call__(self, instrument_name: str, price: float, snapshot: IndicatorSnapshot) -> AnalysisResult:
        spread = (snapshot.fast_ema - snapshot.slow_ema) / price if price else 0.0
        score = round(max(-10.0, min(10.0, spread / self.full_scale * 10)), 1)

        if score >= 1:
            bias = 'BULLISH'
        elif score <= -1:
            bias = 'BEARISH'
        else:
            bias = 'NEUTRAL'

        insights = [f"Fast EMA {'above' if spread > 0 else 'below'} slow EMA ({spread * 100:+.3f}%)"]
        if snapshot.premium_discount is not None:
            zone = 'premium' if snapshot.premium_discount > 0.5 else 'discount'
            insights.append(f"Price trading in {zone} of recent range ({snapshot.premium_discount:.2f})")
        if snapshot.last_marker:
            insights.append(f"Change of character {snapshot.last_marker} printed")
        if snapshot.last_signal:
            insights.append(f"Latest reversal signal: {snapshot.last_signal}")

        reasoning = (
            f"{instrument_name} at {price} shows a {snapshot.trend.lower()} EMA structure; "
            f"bias {bias.lower()} with score {score:+.1f}."
        )
        return AnalysisResult(bias=bias, score=score, reasoning=reasoning, insights=insights[:3])


class HttpAnalyzer:
    """Remote analyzer: POSTs the snapshot as JSON, expects an AnalysisResult payload"""

    def __init__(self, url: str, session: Optional[aiohttp.ClientSession] = None,
                 headers: Optional[Dict[str, str]] = None):
        self.url = url
        self.headers = headers or {}
        self.session = session
        self._owns_session = session is None

    async def __aenter__(self):
        await self._ensure_session()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def _ensure_session(self):
        if not self.session:
            self.session = aiohttp.ClientSession()
            self._owns_session = True

    async def close(self):
        if self.session and self._owns_session:
            await self.session.close()
            self.session = None

    async def __call__(self, instrument_name: str, price: float, snapshot: IndicatorSnapshot) -> Dict[str, Any]:
        await self._ensure_session()
        payload = {
            'instrument': instrument_name,
            'price': price,
            'indicators': snapshot.to_dict(),
        }
        async with self.session.post(self.url, json=payload, headers=self.headers) as response:
            if response.status != 200:
                raise aiohttp.ClientResponseError(
                    request_info=response.request_info,
                    history=response.history,
                    status=response.status
                )
            return await response.json()
