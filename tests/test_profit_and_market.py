"""Tests for the market simulator and the profit model."""

import sys
import unittest
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent))

from market_fixtures import SITE_A, SITE_B, snapshot_for

from energy_arbitrage.config import MarketConfig, ProfitConfig
from energy_arbitrage.market import MarketSimulator
from energy_arbitrage.profit import ProfitModel, HOURS_PER_YEAR


class TestMarketSimulator(unittest.TestCase):
    """Synthetic market draws."""
    
    def setUp(self):
        self.config = MarketConfig()
        self.site_ids = ["finland-1", "texas-1", "elsewhere-1"]
    
    def test_draws_stay_within_configured_bands(self):
        simulator = MarketSimulator(self.site_ids, self.config, seed=7)
        
        for _ in range(200):
            market = simulator.generate()
            self.assertGreaterEqual(market.btc_price, 106000.0)
            self.assertLessEqual(market.btc_price, 114000.0)
            self.assertGreaterEqual(market.ai_demand_level, 0.7)
            self.assertLessEqual(market.ai_demand_level, 1.3)
            self.assertAlmostEqual(market.ai_rental_rate, 2.2 * market.ai_demand_level)
            self.assertGreater(market.network_difficulty, 0)
            
            finland = market.energy_price("finland-1")
            self.assertTrue(0.0324 <= finland <= 0.0476)
            texas = market.energy_price("texas-1")
            self.assertTrue(0.0499 <= texas <= 0.0701)
            fallback = market.energy_price("elsewhere-1")
            self.assertTrue(0.0399 <= fallback <= 0.0601)
    
    def test_same_seed_same_sequence(self):
        first = MarketSimulator(self.site_ids, self.config, seed=42)
        second = MarketSimulator(self.site_ids, self.config, seed=42)
        
        for _ in range(5):
            a, b = first.generate(), second.generate()
            self.assertEqual(a.btc_price, b.btc_price)
            self.assertEqual(a.energy_prices, b.energy_prices)
            self.assertEqual(a.ai_demand_level, b.ai_demand_level)
    
    def test_seed_taken_from_config(self):
        config = MarketConfig(random_seed=3)
        a = MarketSimulator(self.site_ids, config).generate()
        b = MarketSimulator(self.site_ids, config).generate()
        self.assertEqual(a.btc_price, b.btc_price)
    
    def test_efficiency_gauge_is_clamped(self):
        simulator = MarketSimulator(self.site_ids, self.config, seed=1)
        for _ in range(100):
            efficiency = simulator.site_efficiency()
            self.assertGreaterEqual(efficiency, 85.0)
            self.assertLessEqual(efficiency, 100.0)
    
    def test_market_conditions_summary(self):
        market = snapshot_for(["a", "b"], btc_price=100000.0, energy_price=0.05, ai_demand_level=0.8)
        conditions = market.conditions()
        self.assertEqual(conditions["btc_price"], 100000.0)
        self.assertEqual(conditions["ai_demand"], 0.8)
        self.assertAlmostEqual(conditions["avg_energy_price"], 0.05)
        
        payload = market.to_dict()
        for key in ("timestamp", "btc_price", "energy_prices", "ai_rental_rate",
                    "ai_demand_level", "network_difficulty"):
            self.assertIn(key, payload)


class TestProfitModel(unittest.TestCase):
    """Per-workload profit figures."""
    
    def setUp(self):
        self.model = ProfitModel(ProfitConfig())
        self.market = snapshot_for(
            [SITE_A.site_id, SITE_B.site_id],
            btc_price=110000.0, energy_price=0.04, ai_demand_level=1.0
        )
    
    def test_bitcoin_profit(self):
        profits = self.model.price(SITE_A, self.market)
        
        revenue_per_mw_hour = 0.035 * 110000.0 / 24
        cost_per_mw_hour = 0.04 * 1.15
        self.assertAlmostEqual(profits.bitcoin.revenue, revenue_per_mw_hour * 200)
        self.assertAlmostEqual(profits.bitcoin.cost, cost_per_mw_hour * 200)
        self.assertAlmostEqual(profits.bitcoin.profit, (revenue_per_mw_hour - cost_per_mw_hour) * 200)
    
    def test_ai_profit(self):
        profits = self.model.price(SITE_A, self.market)
        
        revenue = 200 * 8 * self.market.ai_rental_rate * 1.0
        cost = 200 * 0.85 * 0.04 * 1.15
        self.assertAlmostEqual(profits.ai.revenue, revenue)
        self.assertAlmostEqual(profits.ai.cost, cost)
        self.assertAlmostEqual(profits.ai.profit, revenue - cost)
    
    def test_profit_is_revenue_minus_cost(self):
        profits = self.model.price(SITE_B, self.market)
        for breakdown in (profits.bitcoin, profits.ai, profits.demand_response):
            self.assertGreaterEqual(breakdown.cost, 0)
            self.assertAlmostEqual(breakdown.profit, breakdown.revenue - breakdown.cost)
    
    def test_demand_response_profit_ignores_market(self):
        expensive = snapshot_for([SITE_A.site_id], btc_price=50000.0, energy_price=0.2, ai_demand_level=0.1)
        
        for market in (self.market, expensive):
            profits = self.model.price(SITE_A, market)
            self.assertEqual(profits.demand_response.profit, SITE_A.dr_annual_payment / 8760)
            self.assertEqual(profits.demand_response.cost, 0.0)
        
        self.assertEqual(HOURS_PER_YEAR, 8760)
    
    def test_metadata_is_descriptive(self):
        profits = self.model.price(SITE_A, self.market)
        self.assertEqual(profits.bitcoin.risk, "Low")
        self.assertEqual(profits.ai.flexibility, "5 minutes")
        self.assertIn("70% Committed", profits.demand_response.description)


if __name__ == "__main__":
    unittest.main()
