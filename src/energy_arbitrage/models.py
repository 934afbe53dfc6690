"""Data models for the energy arbitrage engine."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from types import MappingProxyType
from typing import Dict, Any, List, Mapping, Optional, Tuple

import numpy as np

from .config.engine_config import SiteConfig


def isoformat(timestamp: Optional[datetime]) -> Optional[str]:
    """Serialize a timestamp the way observers expect it."""
    return timestamp.isoformat() if timestamp is not None else None


class OperationMode(str, Enum):
    """Dominant workload a site is running."""
    BITCOIN = "bitcoin"
    AI = "ai"
    DEMAND_RESPONSE = "demand_response"


class DRStatus(str, Enum):
    """Demand-response status reported per site."""
    STANDBY = "STANDBY"
    ACTIVE_EVENT = "ACTIVE_EVENT"


@dataclass(frozen=True)
class MarketSnapshot:
    """One cycle's synthetic market conditions."""
    timestamp: datetime
    btc_price: float
    energy_prices: Dict[str, float]  # $/kWh per site
    ai_rental_rate: float            # $/GPU-hour
    ai_demand_level: float
    network_difficulty: float
    
    def energy_price(self, site_id: str) -> float:
        return self.energy_prices[site_id]
    
    @property
    def avg_energy_price(self) -> float:
        if not self.energy_prices:
            return 0.0
        return float(np.mean(list(self.energy_prices.values())))
    
    def conditions(self) -> Dict[str, float]:
        """Summarized conditions stored with each optimization record."""
        return {
            "btc_price": self.btc_price,
            "ai_demand": self.ai_demand_level,
            "avg_energy_price": self.avg_energy_price
        }
    
    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": isoformat(self.timestamp),
            "btc_price": self.btc_price,
            "energy_prices": dict(self.energy_prices),
            "ai_rental_rate": self.ai_rental_rate,
            "ai_demand_level": self.ai_demand_level,
            "network_difficulty": self.network_difficulty
        }


@dataclass(frozen=True)
class ProfitBreakdown:
    """Hourly economics of one workload at full site capacity.

    ``description``, ``flexibility`` and ``risk`` are informational only.
    """
    profit: float
    revenue: float
    cost: float
    description: str = ""
    flexibility: str = ""
    risk: str = ""
    
    def to_dict(self) -> Dict[str, Any]:
        return {
            "profit": self.profit,
            "revenue": self.revenue,
            "cost": self.cost,
            "description": self.description,
            "flexibility": self.flexibility,
            "risk": self.risk
        }


@dataclass(frozen=True)
class SiteProfits:
    """Profit breakdown of every workload at one site."""
    bitcoin: ProfitBreakdown
    ai: ProfitBreakdown
    demand_response: ProfitBreakdown
    
    def to_dict(self) -> Dict[str, Any]:
        return {
            "bitcoin": self.bitcoin.to_dict(),
            "ai": self.ai.to_dict(),
            "demand_response": self.demand_response.to_dict()
        }


@dataclass(frozen=True)
class PowerAllocation:
    """Split of a site's power between workloads, in MW."""
    ai_mw: float = 0.0
    bitcoin_mw: float = 0.0
    idle_mw: float = 0.0
    
    @property
    def total_mw(self) -> float:
        return self.ai_mw + self.bitcoin_mw + self.idle_mw
    
    def to_dict(self) -> Dict[str, float]:
        return {
            "ai": self.ai_mw,
            "bitcoin": self.bitcoin_mw,
            "idle": self.idle_mw
        }


@dataclass(frozen=True)
class SiteState:
    """Per-cycle derived state of a site."""
    site: SiteConfig
    operation_mode: OperationMode
    current_profit: float
    profits: SiteProfits
    power_allocation: PowerAllocation
    dr_status: DRStatus
    efficiency: float
    last_updated: datetime
    dr_events_this_year: int = 0
    ai_demand_level: float = 0.0
    
    @property
    def site_id(self) -> str:
        return self.site.site_id
    
    def to_dict(self) -> Dict[str, Any]:
        return {
            **self.site.to_dict(),
            "current_operation": self.operation_mode.value,
            "current_profit": self.current_profit,
            "profits": self.profits.to_dict(),
            "power_allocation": self.power_allocation.to_dict(),
            "last_updated": isoformat(self.last_updated),
            "efficiency": self.efficiency,
            "dr_status": self.dr_status.value,
            "dr_events_this_year": self.dr_events_this_year,
            "ai_demand_level": self.ai_demand_level
        }


@dataclass(frozen=True)
class DREvent:
    """A demand-response event installed by the controller."""
    id: str
    reason: str
    duration_hours: float
    affected_sites: Tuple[str, ...]
    capacity_reduced_mw: float = 0.0
    estimated_profit_impact: float = 0.0
    start_time: Optional[datetime] = None
    
    def affects(self, site_id: str) -> bool:
        return site_id in self.affected_sites
    
    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "reason": self.reason,
            "duration_hours": self.duration_hours,
            "affected_sites": list(self.affected_sites),
            "capacity_reduced_mw": self.capacity_reduced_mw,
            "estimated_profit_impact": self.estimated_profit_impact,
            "start_time": isoformat(self.start_time)
        }


@dataclass(frozen=True)
class OptimizationRecord:
    """Outcome of one optimization cycle; read-only once recorded."""
    timestamp: datetime
    total_profit: float
    sites: Mapping[str, SiteState]
    active_dr_event: Optional[DREvent]
    dr_events_this_year: int
    market_conditions: Mapping[str, float] = field(default_factory=dict)
    
    def __post_init__(self):
        object.__setattr__(self, "sites", MappingProxyType(dict(self.sites)))
        object.__setattr__(self, "market_conditions", MappingProxyType(dict(self.market_conditions)))
    
    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": isoformat(self.timestamp),
            "total_profit": self.total_profit,
            "sites": {site_id: state.to_dict() for site_id, state in self.sites.items()},
            "active_dr_event": self.active_dr_event.to_dict() if self.active_dr_event else None,
            "dr_events_this_year": self.dr_events_this_year,
            "market_conditions": dict(self.market_conditions)
        }


@dataclass
class EngineSnapshot:
    """Consistent read-only view of the engine state."""
    market: Optional[MarketSnapshot]
    sites: Dict[str, SiteState]
    history: List[OptimizationRecord]
    active_dr_event: Optional[DREvent]
    dr_events_this_year: int
    recent_dr_events: List[DREvent] = field(default_factory=list)
    connected_observers: int = 0
    cycle_count: int = 0
    
    @property
    def total_profit(self) -> float:
        return sum(state.current_profit for state in self.sites.values())
    
    @property
    def last_optimization(self) -> Optional[OptimizationRecord]:
        return self.history[-1] if self.history else None
