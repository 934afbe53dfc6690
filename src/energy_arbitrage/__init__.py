"""Energy arbitrage engine: power allocation between AI inference and bitcoin mining."""

__version__ = "3.1.0"
__author__ = "Energy Arbitrage Team"
__license__ = "MIT"

from .engine import ArbitrageEngine, EngineStatus
from .config import EngineConfig, SiteConfig
from .broadcast import BroadcastHub
from .exceptions import (
    ArbitrageError,
    ConfigurationError,
    InvalidEventError,
    NoActiveEventError,
    DREventLimitError
)

# Import advanced modules
from . import optimization
from . import reporting

__all__ = [
    "ArbitrageEngine",
    "EngineStatus",
    "EngineConfig",
    "SiteConfig",
    "BroadcastHub",
    "ArbitrageError",
    "ConfigurationError",
    "InvalidEventError",
    "NoActiveEventError",
    "DREventLimitError",
    "optimization",
    "reporting"
]
