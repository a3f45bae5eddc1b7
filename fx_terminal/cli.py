"""
Command line entry point: live terminal monitor, replay and JSON API server
"""
import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import List, Optional

from rich import box
from rich.console import Console, Group
from rich.live import Live
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from .analysis import EmaConfluenceAnalyzer, HttpAnalyzer
from .config import AppConfig, load_config
from .config.loader import DEFAULT_CONFIG_PATH
from .core.engine import TerminalEngine
from .core.order_book import OrderRejected
from .formatting import format_pnl, format_price
from .replay import load_prices, replay
from .sessions import open_sessions

logger = logging.getLogger(__name__)

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def setup_logging(level: str = "INFO", log_to_file: bool = False,
                  log_file_path: str = "logs/fx_terminal.log", console: bool = True):
    handlers: List[logging.Handler] = []
    if console:
        handlers.append(logging.StreamHandler())
    if log_to_file:
        try:
            Path(log_file_path).parent.mkdir(parents=True, exist_ok=True)
            handlers.append(logging.FileHandler(log_file_path))
        except OSError as e:
            print(f"Warning: Could not set up file logging: {e}")
    if not handlers:
        handlers.append(logging.NullHandler())

    logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO),
                        format=LOG_FORMAT, handlers=handlers, force=True)
    logging.getLogger('asyncio').setLevel(logging.WARNING)


def build_engine(config: AppConfig, seed: Optional[int] = None) -> TerminalEngine:
    analyzer = HttpAnalyzer(config.analysis_url) if config.analysis_url else EmaConfluenceAnalyzer()
    return TerminalEngine(config, analyzer=analyzer, seed=seed)


# ----------------------------------------------------------------------
# Live monitor
# ----------------------------------------------------------------------

def render(engine: TerminalEngine, rows: int = 12) -> Group:
    """Build the monitor view from the engine state"""
    snapshot = engine.snapshot()
    decimals = engine.instrument.decimals
    change_style = "green" if snapshot.change_pct >= 0 else "red"

    header = Text()
    header.append(f"{snapshot.name} ", style="bold white")
    header.append(format_price(snapshot.current_price, decimals), style="bold cyan")
    header.append(f"  {snapshot.change_pct:+.2f}%", style=change_style)
    header.append(f"  | balance {engine.balance:,.2f}  equity {engine.equity:,.2f}"
                  f"  floating {format_pnl(engine.order_book.floating_pnl())}")
    sessions = open_sessions(engine.config.sessions)
    header.append(f"  | sessions: {', '.join(sessions) or 'none'}", style="dim")

    ticks = Table(box=box.SIMPLE, expand=True)
    ticks.add_column("Time")
    ticks.add_column("Price", justify="right")
    ticks.add_column("Fast EMA", justify="right")
    ticks.add_column("Slow EMA", justify="right")
    ticks.add_column("Volume", justify="right")
    ticks.add_column("Signal")
    for point in reversed(snapshot.history[-rows:]):
        label = ""
        if point.marker:
            label += f"CHoCH {point.marker.direction} "
        if point.signal:
            label += point.signal
        style = "green" if point.signal == 'BUY' else "red" if point.signal == 'SELL' else None
        ticks.add_row(
            point.timestamp.strftime('%H:%M:%S'),
            format_price(point.price, decimals),
            format_price(point.fast_ema, decimals),
            format_price(point.slow_ema, decimals),
            str(point.volume),
            Text(label, style=style) if style else label,
        )

    orders = Table(box=box.SIMPLE, expand=True)
    for column in ("Symbol", "Side", "Entry", "SL", "TP", "Size", "PnL", "Status"):
        orders.add_column(column)
    for order in engine.order_book.orders()[-8:]:
        orders.add_row(
            order.symbol, order.side, format_price(order.entry_price),
            format_price(order.stop_loss), format_price(order.take_profit),
            f"{order.size:.2f}", format_pnl(order.pnl),
            order.status if order.is_open else f"{order.status} ({order.close_reason})",
        )

    zones = ", ".join(
        f"{z.kind[0]} {format_price(z.bottom, decimals)}-{format_price(z.top, decimals)}" for z in snapshot.zones
    )
    analysis = engine.latest_analysis
    analysis_text = (f"{analysis.bias} {analysis.score:+.1f}: {analysis.reasoning}"
                     if analysis else "No analysis yet")

    return Group(
        Panel(header, title="FX Terminal", border_style="cyan"),
        Panel(ticks, title=f"Ticks | zones: {zones}"),
        Panel(orders, title="Orders"),
        Panel("\n".join(engine.feed) or "-", title=f"Feed | {analysis_text}", border_style="dim"),
    )


async def run_monitor(engine: TerminalEngine, symbol: Optional[str], ticks: int,
                      trade: Optional[str] = None, analyze: bool = False,
                      console: Optional[Console] = None):
    """Drive the engine for a number of heartbeats while rendering it"""
    console = console or Console()
    await engine.start(symbol)
    try:
        if trade:
            try:
                engine.execute_trade(trade)
            except OrderRejected as e:
                logger.error(f"Trade rejected: {e}")
        if analyze:
            engine.request_analysis_nowait()

        refresh = min(engine.settings.tick_interval, 1.0)
        with Live(render(engine), console=console, refresh_per_second=4, screen=False) as live:
            while engine.ticker is not None and engine.ticker.ticks < ticks:
                await asyncio.sleep(refresh)
                live.update(render(engine))
    finally:
        await engine.stop()
        if isinstance(engine.analyzer, HttpAnalyzer):
            await engine.analyzer.close()


# ----------------------------------------------------------------------
# Commands
# ----------------------------------------------------------------------

def cmd_run(args, config: AppConfig) -> int:
    if args.interval:
        config.engine.tick_interval = args.interval
    engine = build_engine(config, seed=args.seed)

    # Keep log lines from tearing the live display
    root = logging.getLogger()
    root.handlers = [h for h in root.handlers if type(h) is not logging.StreamHandler]

    try:
        asyncio.run(run_monitor(engine, args.symbol, args.ticks, trade=args.trade, analyze=args.analyze))
    except KeyboardInterrupt:
        pass
    return 0


def cmd_replay(args, config: AppConfig) -> int:
    try:
        prices = load_prices(args.csv)
    except (FileNotFoundError, ValueError) as e:
        print(f"Error: {e}")
        return 1

    result = replay(prices, settings=config.engine)
    signals = result[result['signal'].notna() | result['marker'].notna()]
    signals.to_csv(args.out, index=False)

    print(f"Replayed {len(result)} prices, {len(signals)} signal rows saved to {args.out}")
    if not signals.empty:
        print(signals.head(5).to_string(index=False))
    return 0


def cmd_web(args, config: AppConfig) -> int:
    import uvicorn
    from .web.app import create_app

    engine = build_engine(config, seed=args.seed)
    uvicorn.run(create_app(engine), host=args.host, port=args.port, log_level=config.log_level.lower())
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description='FX Terminal - simulated feed with SMC signals',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py run --symbol GC=F --ticks 60 --trade BUY
  python main.py replay --csv data/gold.csv --out gold_signals.csv
  python main.py web --port 8000
        """
    )
    parser.add_argument('--config', default=DEFAULT_CONFIG_PATH,
                        help=f'YAML configuration file (default: {DEFAULT_CONFIG_PATH})')
    parser.add_argument('--log-level', default=None, help='Override configured log level')
    parser.add_argument('--seed', type=int, default=None, help='Random seed for the price process')

    sub = parser.add_subparsers(dest='command', required=True)

    run = sub.add_parser('run', help='Run the live terminal monitor')
    run.add_argument('--symbol', default=None, help='Instrument symbol (default: configured default)')
    run.add_argument('--ticks', type=int, default=60, help='Heartbeats before exiting (default: 60)')
    run.add_argument('--interval', type=float, default=None, help='Tick interval in seconds')
    run.add_argument('--trade', choices=['BUY', 'SELL'], default=None, help='Open an order at start')
    run.add_argument('--analyze', action='store_true', help='Request analysis at start')

    rep = sub.add_parser('replay', help='Replay a price CSV through the detector')
    rep.add_argument('--csv', required=True, help='CSV with timestamp and price columns')
    rep.add_argument('--out', default='signals.csv', help='Output CSV file (default: signals.csv)')

    web = sub.add_parser('web', help='Serve the JSON API')
    web.add_argument('--host', default='127.0.0.1')
    web.add_argument('--port', type=int, default=8000)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    config = load_config(args.config)

    setup_logging(args.log_level or config.log_level, config.log_to_file, config.log_file_path)

    commands = {'run': cmd_run, 'replay': cmd_replay, 'web': cmd_web}
    return commands[args.command](args, config)


if __name__ == '__main__':
    sys.exit(main())
