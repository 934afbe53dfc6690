"""
Base classes for site power allocation policies.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Dict, Any, Optional
import logging

from ..config.engine_config import SiteConfig
from ..models import MarketSnapshot, SiteProfits, PowerAllocation, OperationMode, DREvent


@dataclass(frozen=True)
class AllocationDecision:
    """Result of allocating one site's power for a cycle."""
    operation_mode: OperationMode
    allocation: PowerAllocation
    realized_profit: float
    metadata: Dict[str, Any] = field(default_factory=dict)


class AllocationStrategy(ABC):
    """Base class for deterministic allocation policies."""
    
    def __init__(self, name: str):
        self.name = name
        self.logger = logging.getLogger(f"energy_arbitrage.optimization.{name}")
        self._decision_count = 0
        self._mode_counts: Dict[str, int] = {mode.value: 0 for mode in OperationMode}
    
    @abstractmethod
    def _decide(self, site: SiteConfig, profits: SiteProfits, market: MarketSnapshot,
                active_event: Optional[DREvent]) -> AllocationDecision:
        """Policy-specific allocation."""
        pass
    
    def allocate(self, site: SiteConfig, profits: SiteProfits, market: MarketSnapshot,
                 active_event: Optional[DREvent] = None) -> AllocationDecision:
        """Allocate a site's power and record decision statistics."""
        decision = self._decide(site, profits, market, active_event)
        self._decision_count += 1
        self._mode_counts[decision.operation_mode.value] += 1
        self.logger.debug(
            f"{site.site_id}: {decision.operation_mode.value} "
            f"ai={decision.allocation.ai_mw:.1f}MW bitcoin={decision.allocation.bitcoin_mw:.1f}MW "
            f"profit=${decision.realized_profit:.2f}/h"
        )
        return decision
    
    def get_metadata(self) -> Dict[str, Any]:
        """Return policy information for logging/debugging."""
        return {
            "name": self.name,
            "type": "rule_based",
            "decisions": self._decision_count,
            "mode_counts": dict(self._mode_counts)
        }
