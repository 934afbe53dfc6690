"""Synthetic market conditions for the optimization cycle."""

from datetime import datetime, timezone
from typing import Iterable, Optional

import numpy as np

from .config.engine_config import MarketConfig
from .models import MarketSnapshot

class MarketSimulator:
    """Draws independent market snapshots, one per cycle.

    Every value is sampled uniformly within its configured band; nothing is
    carried over from the previous snapshot.
    """
    
    def __init__(self, site_ids: Iterable[str], config: Optional[MarketConfig] = None,
                 seed: Optional[int] = None):
        """Initialize market simulator."""
        self.config = config or MarketConfig()
        self.site_ids = list(site_ids)
        self.rng = np.random.RandomState(seed if seed is not None else self.config.random_seed)
    
    def _around(self, base: float, half_width: float) -> float:
        return float(self.rng.uniform(base - half_width, base + half_width))
    
    def generate(self, timestamp: Optional[datetime] = None) -> MarketSnapshot:
        """Generate market conditions for the current cycle."""
        cfg = self.config
        
        btc_price = self._around(cfg.btc_price_base, cfg.btc_price_half_width)
        
        energy_prices = {
            site_id: self._around(*cfg.energy_price_range(site_id))
            for site_id in self.site_ids
        }
        
        # Customer demand doubles as the rental-rate multiplier
        ai_demand_level = float(self.rng.uniform(cfg.ai_demand_min, cfg.ai_demand_max))
        
        return MarketSnapshot(
            timestamp=timestamp or datetime.now(timezone.utc),
            btc_price=btc_price,
            energy_prices=energy_prices,
            ai_rental_rate=cfg.ai_base_rental_rate * ai_demand_level,
            ai_demand_level=ai_demand_level,
            network_difficulty=self._around(cfg.network_difficulty_base, cfg.network_difficulty_half_width)
        )
    
    def site_efficiency(self) -> float:
        """Synthetic efficiency gauge, clamped to [85, 100]."""
        return float(np.clip(self._around(92.0, 5.0), 85.0, 100.0))
