"""
Priority-based power allocation between AI inference and bitcoin mining,
with a demand-response override that sheds committed capacity.
"""

from typing import Optional

from .base import AllocationStrategy, AllocationDecision
from ..config.engine_config import SiteConfig, AllocationConfig
from ..models import MarketSnapshot, SiteProfits, PowerAllocation, OperationMode, DREvent


class AllocationOptimizer(AllocationStrategy):
    """Splits each site's power budget between workloads.

    Demand-response events take precedence: committed capacity is shed and
    the remainder goes to AI first (customer obligations) unless AI demand is
    negligible, with bitcoin absorbing the reduction. Without an event, the
    site leans to AI only when AI is more profitable and demand is high.
    """
    
    def __init__(self, config: Optional[AllocationConfig] = None):
        super().__init__("priority_allocation")
        self.config = config or AllocationConfig()
    
    def _decide(self, site: SiteConfig, profits: SiteProfits, market: MarketSnapshot,
                active_event: Optional[DREvent]) -> AllocationDecision:
        if active_event is not None and active_event.affects(site.site_id):
            return self._curtailed(site, profits, market)
        return self._normal(site, profits, market)
    
    def _curtailed(self, site: SiteConfig, profits: SiteProfits,
                   market: MarketSnapshot) -> AllocationDecision:
        cfg = self.config
        available = site.capacity_mw - site.committed_capacity_mw
        
        if market.ai_demand_level > cfg.ai_protection_threshold:
            ai_mw = min(available, site.capacity_mw * cfg.dr_ai_share_cap)
            bitcoin_mw = max(0.0, available - ai_mw)
        else:
            ai_mw = 0.0
            bitcoin_mw = available
        
        allocation = PowerAllocation(ai_mw=ai_mw, bitcoin_mw=bitcoin_mw, idle_mw=0.0)
        return AllocationDecision(
            operation_mode=OperationMode.DEMAND_RESPONSE,
            allocation=allocation,
            realized_profit=self._realized_profit(site, profits, allocation),
            metadata={
                "committed_mw": site.committed_capacity_mw,
                "available_mw": available,
                "ai_protected": ai_mw > 0
            }
        )
    
    def _normal(self, site: SiteConfig, profits: SiteProfits,
                market: MarketSnapshot) -> AllocationDecision:
        cfg = self.config
        capacity = site.capacity_mw
        
        if (profits.ai.profit > profits.bitcoin.profit
                and market.ai_demand_level > cfg.ai_preference_threshold):
            ai_share = min(cfg.max_ai_share, market.ai_demand_level)
            ai_mw = capacity * ai_share
            mode = OperationMode.AI
        else:
            ai_mw = capacity * (1 - cfg.bitcoin_share)
            mode = OperationMode.BITCOIN
        
        # bitcoin takes the exact remainder so the split always sums to capacity
        allocation = PowerAllocation(ai_mw=ai_mw, bitcoin_mw=capacity - ai_mw, idle_mw=0.0)
        return AllocationDecision(
            operation_mode=mode,
            allocation=allocation,
            realized_profit=self._realized_profit(site, profits, allocation),
            metadata={"ai_share": ai_mw / capacity}
        )
    
    @staticmethod
    def _realized_profit(site: SiteConfig, profits: SiteProfits,
                         allocation: PowerAllocation) -> float:
        ai_per_mw = profits.ai.profit / site.capacity_mw
        bitcoin_per_mw = profits.bitcoin.profit / site.capacity_mw
        return (
            profits.demand_response.profit
            + ai_per_mw * allocation.ai_mw
            + bitcoin_per_mw * allocation.bitcoin_mw
        )
