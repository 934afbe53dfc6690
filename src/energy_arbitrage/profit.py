"""Per-workload profitability of a site under given market conditions."""

from typing import Optional

from .config.engine_config import SiteConfig, ProfitConfig
from .models import MarketSnapshot, ProfitBreakdown, SiteProfits

HOURS_PER_YEAR = 365 * 24


class ProfitModel:
    """Prices bitcoin mining, AI inference and the demand-response contract.

    All figures are hourly at full site capacity. The demand-response figure
    is the standing contract payment and accrues every hour whether or not an
    event is active.
    """
    
    def __init__(self, config: Optional[ProfitConfig] = None):
        self.config = config or ProfitConfig()
    
    def price(self, site: SiteConfig, market: MarketSnapshot) -> SiteProfits:
        """Compute the profit breakdown for every workload at a site."""
        energy_price = market.energy_price(site.site_id)
        return SiteProfits(
            bitcoin=self.bitcoin(site, market, energy_price),
            ai=self.ai(site, market, energy_price),
            demand_response=self.demand_response(site)
        )
    
    def bitcoin(self, site: SiteConfig, market: MarketSnapshot, energy_price: float) -> ProfitBreakdown:
        cfg = self.config
        capacity = site.capacity_mw
        
        revenue_per_mw_hour = (cfg.btc_per_mw_per_day * market.btc_price) / 24
        cost_per_mw_hour = energy_price * cfg.pue
        
        return ProfitBreakdown(
            profit=(revenue_per_mw_hour - cost_per_mw_hour) * capacity,
            revenue=revenue_per_mw_hour * capacity,
            cost=cost_per_mw_hour * capacity,
            description="Always Available • Safe Baseline",
            flexibility="Instant",
            risk="Low"
        )
    
    def ai(self, site: SiteConfig, market: MarketSnapshot, energy_price: float) -> ProfitBreakdown:
        cfg = self.config
        capacity = site.capacity_mw
        
        total_gpus = capacity * cfg.gpus_per_mw
        revenue = total_gpus * market.ai_rental_rate * market.ai_demand_level
        cost = capacity * cfg.ai_utilization * energy_price * cfg.pue
        
        return ProfitBreakdown(
            profit=revenue - cost,
            revenue=revenue,
            cost=cost,
            description="Customer Dependent • Higher Revenue",
            flexibility="5 minutes",
            risk="Medium"
        )
    
    def demand_response(self, site: SiteConfig) -> ProfitBreakdown:
        hourly_rate = site.dr_annual_payment / HOURS_PER_YEAR
        return ProfitBreakdown(
            profit=hourly_rate,
            revenue=hourly_rate,
            cost=0.0,
            description=f"Grid Stability • {site.dr_commitment_percent}% Committed",
            flexibility="Instant",
            risk="None"
        )
