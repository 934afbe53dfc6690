"""
Main engine configuration class that integrates all configuration components.
"""

from dataclasses import dataclass, field, asdict, fields
from typing import Dict, Any, Optional, List, Tuple
import logging

from .base import BaseConfig, ConfigValidationResult
from ..exceptions import ConfigurationError, ValidationError
from ..validation import SiteValidator


def _known_fields(cls, data: Dict[str, Any]) -> Dict[str, Any]:
    """Drop keys that are not dataclass fields of ``cls``."""
    names = {f.name for f in fields(cls)}
    return {key: value for key, value in data.items() if key in names}


@dataclass(frozen=True)
class SiteConfig:
    """Static description of a physical site, fixed for the process lifetime."""
    site_id: str
    name: str
    location: str
    capacity_mw: float
    dr_commitment_percent: float
    dr_annual_payment: float
    ramp_times: Dict[str, float] = field(
        default_factory=lambda: {"ai": 5, "bitcoin": 1, "demand_response": 0}
    )
    
    @property
    def committed_capacity_mw(self) -> float:
        """Capacity the site must shed during a demand-response event."""
        return self.capacity_mw * (self.dr_commitment_percent / 100)
    
    def validate(self) -> ConfigValidationResult:
        """Validate site configuration."""
        result = ConfigValidationResult(is_valid=True)
        
        checks = [
            ("id", SiteValidator.validate_identifier, self.site_id),
            ("capacity_mw", SiteValidator.validate_capacity, self.capacity_mw),
            ("dr_commitment_percent", SiteValidator.validate_commitment, self.dr_commitment_percent),
            ("dr_annual_payment", SiteValidator.validate_payment, self.dr_annual_payment),
        ]
        for name, check, value in checks:
            try:
                check(value)
            except ValidationError as e:
                result.add_error(f"{name}: {e}")
        
        if not self.name:
            result.add_warning(f"Site '{self.site_id}' has no display name")
        
        return result
    
    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.site_id,
            "name": self.name,
            "location": self.location,
            "capacity_mw": self.capacity_mw,
            "dr_commitment_percent": self.dr_commitment_percent,
            "dr_annual_payment": self.dr_annual_payment,
            "ramp_times": dict(self.ramp_times),
        }
    
    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'SiteConfig':
        try:
            return cls(
                site_id=data.get("id", data.get("site_id")),
                name=data.get("name", ""),
                location=data.get("location", ""),
                capacity_mw=data["capacity_mw"],
                dr_commitment_percent=data.get("dr_commitment_percent", 0),
                dr_annual_payment=data.get("dr_annual_payment", 0),
                ramp_times=dict(data.get("ramp_times", {"ai": 5, "bitcoin": 1, "demand_response": 0}))
            )
        except KeyError as e:
            raise ConfigurationError(f"Site configuration missing field: {e}") from e


DEFAULT_SITES: Tuple[SiteConfig, ...] = (
    SiteConfig(
        site_id="finland-1",
        name="Nordic Data Center",
        location="Finland",
        capacity_mw=200,
        dr_commitment_percent=70,
        dr_annual_payment=2100000,  # $15/MW/year * 200MW * 70% commitment
    ),
    SiteConfig(
        site_id="texas-1",
        name="Texas Energy Hub",
        location="Texas, USA",
        capacity_mw=150,
        dr_commitment_percent=60,
        dr_annual_payment=1350000,  # $15/MW/year * 150MW * 60% commitment
    ),
)


@dataclass
class MarketConfig:
    """Parameters of the synthetic market generator."""
    btc_price_base: float = 110000.0
    btc_price_half_width: float = 4000.0
    energy_prices: Dict[str, Dict[str, float]] = field(default_factory=lambda: {
        "finland-1": {"base": 0.04, "half_width": 0.0075},  # cheap Nordic hydro
        "texas-1": {"base": 0.06, "half_width": 0.01},
    })
    default_energy_price_base: float = 0.05
    default_energy_price_half_width: float = 0.01
    ai_demand_min: float = 0.7
    ai_demand_max: float = 1.3
    ai_base_rental_rate: float = 2.2  # $/GPU-hour
    network_difficulty_base: float = 72e12
    network_difficulty_half_width: float = 1e12
    random_seed: Optional[int] = None
    
    def energy_price_range(self, site_id: str) -> Tuple[float, float]:
        """Return (baseline, half-width) of the energy price for a site."""
        prices = self.energy_prices.get(site_id, {})
        return (
            prices.get("base", self.default_energy_price_base),
            prices.get("half_width", self.default_energy_price_half_width),
        )
    
    def validate(self) -> ConfigValidationResult:
        """Validate market configuration."""
        result = ConfigValidationResult(is_valid=True)
        
        if self.btc_price_base - self.btc_price_half_width <= 0:
            result.add_error("BTC price range must stay positive")
        
        ranges = [(site_id, *self.energy_price_range(site_id)) for site_id in self.energy_prices]
        ranges.append(("default", self.default_energy_price_base, self.default_energy_price_half_width))
        for site_id, base, half_width in ranges:
            if half_width < 0:
                result.add_error(f"Energy price half-width for {site_id} must be >= 0")
            if base - half_width <= 0:
                result.add_error(f"Energy price range for {site_id} must stay positive")
        
        if self.ai_demand_min < 0:
            result.add_error(f"AI demand minimum must be >= 0, got {self.ai_demand_min}")
        if self.ai_demand_max < self.ai_demand_min:
            result.add_error("AI demand maximum must be >= minimum")
        if self.ai_demand_min == 0:
            result.add_warning("AI demand may reach 0, producing a zero AI rental rate")
        
        if self.ai_base_rental_rate <= 0:
            result.add_error(f"AI rental rate must be > 0, got {self.ai_base_rental_rate}")
        
        if self.network_difficulty_base - self.network_difficulty_half_width <= 0:
            result.add_error("Network difficulty range must stay positive")
        
        return result


@dataclass
class ProfitConfig:
    """Constants of the per-workload profit model."""
    btc_per_mw_per_day: float = 0.035  # ~3.5 BTC per day per 100MW
    pue: float = 1.15                  # power usage effectiveness
    gpus_per_mw: float = 8
    ai_utilization: float = 0.85       # share of capacity AI actually draws
    
    def validate(self) -> ConfigValidationResult:
        """Validate profit model configuration."""
        result = ConfigValidationResult(is_valid=True)
        
        for name in ("btc_per_mw_per_day", "pue", "gpus_per_mw"):
            if getattr(self, name) <= 0:
                result.add_error(f"{name} must be > 0, got {getattr(self, name)}")
        
        if not 0 < self.ai_utilization <= 1:
            result.add_error(f"ai_utilization must be in (0, 1], got {self.ai_utilization}")
        
        return result


@dataclass
class AllocationConfig:
    """Thresholds and shares of the allocation policy.

    ``ai_preference_threshold`` gates switching a site to AI in normal
    operation; ``ai_protection_threshold`` gates keeping AI online during a
    demand-response event. The two are independent.
    """
    ai_preference_threshold: float = 0.6
    ai_protection_threshold: float = 0.3
    max_ai_share: float = 0.8
    dr_ai_share_cap: float = 0.6
    bitcoin_share: float = 0.9
    
    def validate(self) -> ConfigValidationResult:
        """Validate allocation configuration."""
        result = ConfigValidationResult(is_valid=True)
        
        for name in ("max_ai_share", "dr_ai_share_cap", "bitcoin_share"):
            value = getattr(self, name)
            if not 0 <= value <= 1:
                result.add_error(f"{name} must be between 0 and 1, got {value}")
        
        for name in ("ai_preference_threshold", "ai_protection_threshold"):
            if getattr(self, name) < 0:
                result.add_error(f"{name} must be >= 0, got {getattr(self, name)}")
        
        if self.ai_protection_threshold > self.ai_preference_threshold:
            result.add_warning("AI protection threshold exceeds AI preference threshold")
        
        return result


@dataclass
class DemandResponseConfig:
    """Configuration for demand-response event control."""
    max_events_per_year: int = 25
    event_log_size: int = 200
    recent_events: int = 10
    seconds_per_hour: float = 3600.0  # wall-clock seconds per event hour
    
    def validate(self) -> ConfigValidationResult:
        """Validate demand-response configuration."""
        result = ConfigValidationResult(is_valid=True)
        
        if self.max_events_per_year < 1:
            result.add_error(f"Max events per year must be >= 1, got {self.max_events_per_year}")
        
        if self.event_log_size < 1:
            result.add_error(f"Event log size must be >= 1, got {self.event_log_size}")
        
        if self.recent_events < 0:
            result.add_error(f"Recent events must be >= 0, got {self.recent_events}")
        
        if self.seconds_per_hour <= 0:
            result.add_error(f"Seconds per hour must be > 0, got {self.seconds_per_hour}")
        
        return result


@dataclass
class SchedulerConfig:
    """Configuration for the periodic optimization cycle."""
    cycle_interval: float = 15.0  # seconds
    history_capacity: int = 100
    broadcast_history: int = 20
    report_history: int = 50
    log_every: int = 5
    
    def validate(self) -> ConfigValidationResult:
        """Validate scheduler configuration."""
        result = ConfigValidationResult(is_valid=True)
        
        if self.cycle_interval <= 0:
            result.add_error(f"Cycle interval must be > 0, got {self.cycle_interval}")
        
        if self.history_capacity < 1:
            result.add_error(f"History capacity must be >= 1, got {self.history_capacity}")
        
        for name in ("broadcast_history", "report_history"):
            value = getattr(self, name)
            if value < 0:
                result.add_error(f"{name} must be >= 0, got {value}")
            elif value > self.history_capacity:
                result.add_warning(f"{name} ({value}) exceeds history capacity")
        
        if self.log_every < 1:
            result.add_error(f"log_every must be >= 1, got {self.log_every}")
        
        return result


@dataclass
class MonitoringConfig:
    """Configuration for logging."""
    log_level: str = "INFO"
    log_file: Optional[str] = None
    
    def validate(self) -> ConfigValidationResult:
        """Validate monitoring configuration."""
        result = ConfigValidationResult(is_valid=True)
        
        valid_log_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if self.log_level not in valid_log_levels:
            result.add_error(f"Invalid log level: {self.log_level}")
        
        return result


@dataclass
class EngineConfig(BaseConfig):
    """Main engine configuration class."""
    
    name: str = "Smart Energy Arbitrage"
    sites: List[SiteConfig] = field(default_factory=lambda: list(DEFAULT_SITES))
    
    market: MarketConfig = field(default_factory=MarketConfig)
    profit: ProfitConfig = field(default_factory=ProfitConfig)
    allocation: AllocationConfig = field(default_factory=AllocationConfig)
    demand_response: DemandResponseConfig = field(default_factory=DemandResponseConfig)
    scheduler: SchedulerConfig = field(default_factory=SchedulerConfig)
    monitoring: MonitoringConfig = field(default_factory=MonitoringConfig)
    
    def setup_logging(self) -> None:
        """Setup logging based on monitoring configuration."""
        logger = logging.getLogger("energy_arbitrage")
        logger.setLevel(getattr(logging, self.monitoring.log_level, logging.INFO))
        
        formatter = logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        )
        
        # Console handler
        if not any(type(h) is logging.StreamHandler for h in logger.handlers):
            console_handler = logging.StreamHandler()
            console_handler.setFormatter(formatter)
            logger.addHandler(console_handler)
        
        # File handler if specified
        if self.monitoring.log_file and not any(
            isinstance(h, logging.FileHandler) for h in logger.handlers
        ):
            file_handler = logging.FileHandler(self.monitoring.log_file)
            file_handler.setFormatter(formatter)
            logger.addHandler(file_handler)
    
    @property
    def site_ids(self) -> List[str]:
        return [site.site_id for site in self.sites]
    
    def get_site(self, site_id: str) -> Optional[SiteConfig]:
        """Get a site configuration by identifier."""
        for site in self.sites:
            if site.site_id == site_id:
                return site
        return None
    
    def validate(self) -> ConfigValidationResult:
        """Validate the entire engine configuration."""
        result = ConfigValidationResult(is_valid=True)
        
        if not self.name:
            result.add_error("Engine name cannot be empty")
        
        if not self.sites:
            result.add_error("At least one site must be configured")
        
        components = [
            ("market", self.market),
            ("profit", self.profit),
            ("allocation", self.allocation),
            ("demand_response", self.demand_response),
            ("scheduler", self.scheduler),
            ("monitoring", self.monitoring)
        ]
        for component_name, component in components:
            result.extend(component.validate(), prefix=f"{component_name}: ")
        
        site_ids = set()
        for site in self.sites:
            if site.site_id in site_ids:
                result.add_error(f"Duplicate site id: {site.site_id}")
            site_ids.add(site.site_id)
            result.extend(site.validate(), prefix=f"site '{site.site_id}': ")
        
        return result
    
    def require_valid(self) -> None:
        """Raise ConfigurationError if the configuration is invalid."""
        result = self.validate()
        
        for warning in result.warnings:
            self.logger.warning(f"Validation warning: {warning}")
        
        if not result.is_valid:
            raise ConfigurationError(
                "Invalid engine configuration: " + "; ".join(result.errors)
            )
    
    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to dictionary."""
        return {
            "name": self.name,
            "sites": [site.to_dict() for site in self.sites],
            "market": asdict(self.market),
            "profit": asdict(self.profit),
            "allocation": asdict(self.allocation),
            "demand_response": asdict(self.demand_response),
            "scheduler": asdict(self.scheduler),
            "monitoring": asdict(self.monitoring)
        }
    
    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'EngineConfig':
        """Create configuration from dictionary."""
        sites_data = data.get("sites")
        if sites_data is None:
            sites = list(DEFAULT_SITES)
        elif isinstance(sites_data, dict):
            # mapping form: {site_id: {...}}
            sites = [SiteConfig.from_dict({"id": site_id, **site}) for site_id, site in sites_data.items()]
        else:
            sites = [SiteConfig.from_dict(site) for site in sites_data]
        
        return cls(
            name=data.get("name", "Smart Energy Arbitrage"),
            sites=sites,
            market=MarketConfig(**_known_fields(MarketConfig, data.get("market", {}))),
            profit=ProfitConfig(**_known_fields(ProfitConfig, data.get("profit", {}))),
            allocation=AllocationConfig(**_known_fields(AllocationConfig, data.get("allocation", {}))),
            demand_response=DemandResponseConfig(
                **_known_fields(DemandResponseConfig, data.get("demand_response", {}))
            ),
            scheduler=SchedulerConfig(**_known_fields(SchedulerConfig, data.get("scheduler", {}))),
            monitoring=MonitoringConfig(**_known_fields(MonitoringConfig, data.get("monitoring", {})))
        )
