"""
FX Terminal - JSON API
FastAPI surface over the terminal engine commands and observable state
"""
import inspect
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from ..core.engine import TerminalEngine
from ..core.order_book import OrderRejected

logger = logging.getLogger(__name__)


class TradeRequest(BaseModel):
    side: str
    risk_percent: Optional[float] = None


def create_app(engine: TerminalEngine) -> FastAPI:
    """Build the API around an engine; the engine starts and stops with the app"""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Starting terminal engine")
        await engine.start()
        try:
            yield
        finally:
            await engine.stop()
            close = getattr(engine.analyzer, 'close', None)
            if close is not None and inspect.iscoroutinefunction(close):
                await close()
                logger.info("Analyzer session closed")

    app = FastAPI(
        title="FX Terminal",
        description="Simulated price feed with SMC signals and order management",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.engine = engine

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/api/status")
    async def get_status():
        return engine.get_state()

    @app.get("/api/instruments")
    async def list_instruments():
        active = engine.instrument.symbol if engine.instrument else None
        return [
            dict(instrument.to_dict(), active=instrument.symbol == active)
            for instrument in engine.config.instruments
        ]

    @app.post("/api/instrument/{symbol}")
    async def select_instrument(symbol: str):
        if engine.config.get_instrument(symbol) is None:
            raise HTTPException(status_code=404, detail=f"Unknown symbol: {symbol}")
        snapshot = await engine.select_instrument(symbol)
        return snapshot.to_dict()

    @app.post("/api/trade")
    async def execute_trade(request: TradeRequest):
        try:
            order = engine.execute_trade(request.side, request.risk_percent)
        except OrderRejected as e:
            logger.warning(f"Trade rejected: {e}")
            raise HTTPException(status_code=400, detail=str(e))
        return order.to_dict()

    @app.post("/api/orders/close-all")
    async def close_all_orders():
        closed = engine.close_all_orders()
        return {'closed': closed, 'floating_pnl': engine.order_book.floating_pnl()}

    @app.post("/api/analysis")
    async def request_analysis():
        try:
            result = await engine.request_analysis()
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))
        return result.to_dict()

    return app
