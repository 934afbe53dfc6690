"""Egress event definitions for the energy arbitrage engine."""

from enum import Enum
from typing import Dict, Any, Iterable, Optional, List
from dataclasses import dataclass, field
from datetime import datetime

from .models import MarketSnapshot, SiteState, OptimizationRecord, DREvent

class EventType(str, Enum):
    """Types of payloads pushed to observers."""
    MARKET_UPDATE = "market_update"
    SITES_UPDATE = "sites_update"
    OPTIMIZATION_UPDATE = "optimization_update"

@dataclass
class Event:
    """A self-contained payload ready for broadcast."""
    type: EventType
    timestamp: datetime
    payload: Dict[str, Any] = field(default_factory=dict)

def market_update(market: Optional[MarketSnapshot], timestamp: datetime) -> Event:
    """Current market snapshot."""
    return Event(
        type=EventType.MARKET_UPDATE,
        timestamp=timestamp,
        payload=market.to_dict() if market else {}
    )

def sites_update(sites: Dict[str, SiteState], timestamp: datetime) -> Event:
    """Mapping of site id to site state."""
    return Event(
        type=EventType.SITES_UPDATE,
        timestamp=timestamp,
        payload={site_id: state.to_dict() for site_id, state in sites.items()}
    )

def optimization_update(
    history: Iterable[OptimizationRecord],
    current_total_profit: float,
    active_dr_event: Optional[DREvent],
    dr_events_this_year: int,
    timestamp: datetime
) -> Event:
    """Recent optimization history plus demand-response status."""
    records: List[Dict[str, Any]] = [record.to_dict() for record in history]
    return Event(
        type=EventType.OPTIMIZATION_UPDATE,
        timestamp=timestamp,
        payload={
            "history": records,
            "current_total_profit": current_total_profit,
            "active_dr_event": active_dr_event.to_dict() if active_dr_event else None,
            "dr_events_this_year": dr_events_this_year
        }
    )
