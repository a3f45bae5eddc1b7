"""
Configuration package for the FX terminal engine
"""

from .models import AppConfig, EngineConfig, InstrumentConfig, SessionWindow
from .loader import ConfigLoader, default_config, load_config, save_config

__all__ = [
    'AppConfig', 'EngineConfig', 'InstrumentConfig', 'SessionWindow',
    'ConfigLoader', 'default_config', 'load_config', 'save_config'
]
