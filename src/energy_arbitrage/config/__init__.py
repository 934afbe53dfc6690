"""
Configuration package for the energy arbitrage engine.
Provides hierarchical and validatable configuration management.
"""

from .base import (
    BaseConfig,
    ConfigFormat,
    ConfigValidationResult
)

from .engine_config import (
    SiteConfig,
    DEFAULT_SITES,
    MarketConfig,
    ProfitConfig,
    AllocationConfig,
    DemandResponseConfig,
    SchedulerConfig,
    MonitoringConfig,
    EngineConfig
)

__all__ = [
    # Base configuration classes
    "BaseConfig",
    "ConfigFormat",
    "ConfigValidationResult",
    
    # Sites
    "SiteConfig",
    "DEFAULT_SITES",
    
    # Engine components
    "MarketConfig",
    "ProfitConfig",
    "AllocationConfig",
    "DemandResponseConfig",
    "SchedulerConfig",
    "MonitoringConfig",
    
    # Main configuration class
    "EngineConfig"
]
