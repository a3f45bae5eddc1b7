"""
Configuration loader for YAML files
"""
import dataclasses
import logging
from pathlib import Path
from typing import Any, Dict

import yaml

from .models import AppConfig, EngineConfig, InstrumentConfig, SessionWindow

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "config/terminal.yaml"


def default_instruments():
    return [
        InstrumentConfig(symbol="EURUSD=X", name="EUR/USD", initial_price=1.0854,
                         volatility=0.0004, contract_multiplier=100000.0, decimals=5),
        InstrumentConfig(symbol="GBPUSD=X", name="GBP/USD", initial_price=1.2672,
                         volatility=0.0004, contract_multiplier=100000.0, decimals=5),
        InstrumentConfig(symbol="USDJPY=X", name="USD/JPY", initial_price=151.42,
                         volatility=0.0004, contract_multiplier=1000.0, decimals=3),
        InstrumentConfig(symbol="GC=F", name="GOLD", initial_price=2345.60,
                         volatility=0.0006, contract_multiplier=100.0, decimals=2),
        InstrumentConfig(symbol="BTC-USD", name="BITCOIN", initial_price=67240.00,
                         volatility=0.001, contract_multiplier=1.0, decimals=2),
    ]


def default_sessions():
    return [
        SessionWindow(name="London", start="08:00", end="16:00", timezone="Europe/London"),
        SessionWindow(name="New York", start="13:00", end="21:00", timezone="America/New_York"),
        SessionWindow(name="Sydney", start="22:00", end="06:00", timezone="Australia/Sydney"),
        SessionWindow(name="Tokyo", start="00:00", end="08:00", timezone="Asia/Tokyo"),
    ]


def default_config() -> AppConfig:
    instruments = default_instruments()
    return AppConfig(
        engine=EngineConfig(),
        instruments=instruments,
        sessions=default_sessions(),
        default_symbol=instruments[0].symbol,
    )


def _engine_from_dict(data: Dict[str, Any]) -> EngineConfig:
    known = {f.name for f in dataclasses.fields(EngineConfig)}
    kwargs = {}
    for key, value in data.items():
        if key not in known:
            logger.warning(f"Unknown engine config parameter: {key}")
            continue
        if key in ('supply_offsets', 'demand_offsets'):
            value = [(float(offset), float(strength)) for offset, strength in value]
        kwargs[key] = value
    return EngineConfig(**kwargs)


def config_from_dict(data: Dict[str, Any]) -> AppConfig:
    """Build an AppConfig from parsed YAML data"""
    instruments = [InstrumentConfig(**item) for item in data.get('instruments', [])]
    sessions = [SessionWindow(**item) for item in data.get('sessions', [])]

    config = AppConfig(
        engine=_engine_from_dict(data.get('engine') or {}),
        instruments=instruments or default_instruments(),
        sessions=sessions,
        default_symbol=data.get('default_symbol'),
        analysis_url=data.get('analysis_url'),
        log_level=data.get('log_level', 'INFO'),
        log_to_file=data.get('log_to_file', False),
        log_file_path=data.get('log_file_path', 'logs/fx_terminal.log'),
    )
    if config.default_symbol is None:
        config.default_symbol = config.instruments[0].symbol
    return config


def config_to_dict(config: AppConfig) -> Dict[str, Any]:
    engine = dataclasses.asdict(config.engine)
    engine['supply_offsets'] = [list(pair) for pair in config.engine.supply_offsets]
    engine['demand_offsets'] = [list(pair) for pair in config.engine.demand_offsets]
    return {
        'default_symbol': config.default_symbol,
        'analysis_url': config.analysis_url,
        'log_level': config.log_level,
        'log_to_file': config.log_to_file,
        'log_file_path': config.log_file_path,
        'engine': engine,
        'instruments': [instrument.to_dict() for instrument in config.instruments],
        'sessions': [session.to_dict() for session in config.sessions],
    }


class ConfigLoader:
    """Loads and saves configuration from YAML files"""

    def __init__(self, config_path: str = DEFAULT_CONFIG_PATH):
        self.config_path = Path(config_path)

    def load(self) -> AppConfig:
        """Load configuration from YAML file"""
        if not self.config_path.exists():
            logger.info(f"Config file not found at {self.config_path}, creating default")
            return self._create_default_config()

        try:
            with open(self.config_path, 'r', encoding='utf-8') as f:
                data = yaml.safe_load(f)

            if not data:
                logger.warning("Empty config file, using defaults")
                return default_config()

            config = config_from_dict(data)

            errors = config.validate()
            if errors:
                logger.error(f"Configuration validation errors: {errors}")
                raise ValueError(f"Configuration validation failed: {errors}")

            logger.info(f"Loaded configuration with {len(config.instruments)} instruments")
            return config

        except (OSError, yaml.YAMLError, TypeError, ValueError) as e:
            logger.error(f"Failed to load config from {self.config_path}: {e}")
            logger.info("Using default configuration")
            return default_config()

    def save(self, config: AppConfig) -> bool:
        """Save configuration to YAML file"""
        errors = config.validate()
        if errors:
            logger.error(f"Cannot save invalid configuration: {errors}")
            return False

        try:
            self.config_path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.config_path, 'w', encoding='utf-8') as f:
                yaml.safe_dump(config_to_dict(config), f, default_flow_style=False, sort_keys=False, indent=2)

            logger.info(f"Configuration saved to {self.config_path}")
            return True

        except OSError as e:
            logger.error(f"Failed to save config to {self.config_path}: {e}")
            return False

    def _create_default_config(self) -> AppConfig:
        """Create default configuration and write it out"""
        config = default_config()
        self.save(config)
        return config


def load_config(config_path: str = DEFAULT_CONFIG_PATH) -> AppConfig:
    """Convenience function to load configuration"""
    return ConfigLoader(config_path).load()


def save_config(config: AppConfig, config_path: str = DEFAULT_CONFIG_PATH) -> bool:
    """Convenience function to save configuration"""
    return ConfigLoader(config_path).save(config)
