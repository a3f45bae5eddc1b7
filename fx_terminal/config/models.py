"""
Configuration models for the FX terminal engine
"""
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple


@dataclass
class InstrumentConfig:
    """Static reference data for one tradable instrument"""
    symbol: str
    name: str
    initial_price: float
    volatility: float = 0.0004  # max fraction of price moved per tick
    contract_multiplier: float = 100000.0
    decimals: int = 5

    def to_dict(self) -> Dict[str, Any]:
        return {
            'symbol': self.symbol,
            'name': self.name,
            'initial_price': self.initial_price,
            'volatility': self.volatility,
            'contract_multiplier': self.contract_multiplier,
            'decimals': self.decimals,
        }


@dataclass
class SessionWindow:
    """Trading session window, hours in UTC"""
    name: str
    start: str  # 'HH:MM'
    end: str    # 'HH:MM'
    timezone: str = 'UTC'

    def to_dict(self) -> Dict[str, Any]:
        return {
            'name': self.name,
            'start': self.start,
            'end': self.end,
            'timezone': self.timezone,
        }


def _default_offsets() -> List[Tuple[float, float]]:
    return [(0.010, 0.8), (0.025, 0.6)]


@dataclass
class EngineConfig:
    """Simulation, signal and risk parameters"""
    # Heartbeat
    tick_interval: float = 2.0  # seconds
    history_capacity: int = 150
    initial_history: int = 120

    # Indicators
    fast_alpha: float = 0.15
    slow_alpha: float = 0.05

    # Signal detection
    signal_lookback: int = 20

    # Zones: (offset fraction, strength)
    supply_offsets: List[Tuple[float, float]] = field(default_factory=_default_offsets)
    demand_offsets: List[Tuple[float, float]] = field(default_factory=_default_offsets)
    zone_band_width: float = 0.002

    # Risk management
    starting_balance: float = 10000.0
    default_risk_percent: float = 1.0
    min_size: float = 0.01
    max_size: float = 5.0
    fallback_stop: float = 0.005
    fallback_target: float = 0.015

    # Analysis
    analysis_timeout: float = 8.0

    # Engine feed lines kept for display
    feed_size: int = 10

    def validate(self) -> List[str]:
        """Validate engine parameters and return list of errors"""
        errors = []

        if self.tick_interval <= 0:
            errors.append(f"tick_interval must be positive: {self.tick_interval}")
        if self.history_capacity < 2:
            errors.append(f"history_capacity too small: {self.history_capacity}")
        if not 0 < self.initial_history <= self.history_capacity:
            errors.append(f"initial_history must be within (0, {self.history_capacity}]: {self.initial_history}")
        if not 0 < self.slow_alpha < self.fast_alpha <= 1:
            errors.append(f"Alphas must satisfy 0 < slow < fast <= 1: fast={self.fast_alpha}, slow={self.slow_alpha}")
        if self.signal_lookback < 3:
            errors.append(f"signal_lookback too small: {self.signal_lookback}")
        if self.zone_band_width <= 0:
            errors.append(f"zone_band_width must be positive: {self.zone_band_width}")
        for offset, strength in list(self.supply_offsets) + list(self.demand_offsets):
            if offset <= 0 or not 0 <= strength <= 1:
                errors.append(f"Invalid zone offset/strength: {offset}/{strength}")
        if self.starting_balance <= 0:
            errors.append(f"starting_balance must be positive: {self.starting_balance}")
        if self.default_risk_percent <= 0:
            errors.append(f"default_risk_percent must be positive: {self.default_risk_percent}")
        if not 0 < self.min_size <= self.max_size:
            errors.append(f"Invalid size band: [{self.min_size}, {self.max_size}]")
        if self.fallback_stop <= 0 or self.fallback_target <= 0:
            errors.append("Fallback stop/target distances must be positive")
        if self.analysis_timeout <= 0:
            errors.append(f"analysis_timeout must be positive: {self.analysis_timeout}")

        return errors


@dataclass
class AppConfig:
    """Main application configuration"""
    engine: EngineConfig = field(default_factory=EngineConfig)
    instruments: List[InstrumentConfig] = field(default_factory=list)
    sessions: List[SessionWindow] = field(default_factory=list)
    default_symbol: Optional[str] = None

    # Analysis backend; None keeps the local EMA analyzer
    analysis_url: Optional[str] = None

    # Logging
    log_level: str = "INFO"
    log_to_file: bool = False
    log_file_path: str = "logs/fx_terminal.log"

    def get_instrument(self, symbol: str) -> Optional[InstrumentConfig]:
        """Get configuration for specific symbol"""
        for instrument in self.instruments:
            if instrument.symbol == symbol:
                return instrument
        return None

    @property
    def symbols(self) -> List[str]:
        return [instrument.symbol for instrument in self.instruments]

    def validate(self) -> List[str]:
        """Validate configuration and return list of errors"""
        errors = list(self.engine.validate())

        if not self.instruments:
            errors.append("No instruments configured")

        symbols = self.symbols
        if len(symbols) != len(set(symbols)):
            errors.append("Duplicate symbols found in configuration")

        for instrument in self.instruments:
            if instrument.initial_price <= 0:
                errors.append(f"Invalid initial price for {instrument.symbol}: {instrument.initial_price}")
            if instrument.volatility <= 0:
                errors.append(f"Invalid volatility for {instrument.symbol}: {instrument.volatility}")
            if instrument.contract_multiplier <= 0:
                errors.append(f"Invalid contract multiplier for {instrument.symbol}: {instrument.contract_multiplier}")

        if self.default_symbol is not None and self.default_symbol not in symbols:
            errors.append(f"Default symbol not configured: {self.default_symbol}")

        return errors
