"""Tests for the read-only reports."""

import sys
import unittest
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent))

from market_fixtures import FixedMarket, two_site_config

from energy_arbitrage import ArbitrageEngine, __version__
from energy_arbitrage.reporting import (
    STATUS_TEXT, dashboard_report, demand_response_report, health_report,
    history_report, profit_summary, status_report
)


class ReportingTestCase(unittest.TestCase):
    
    def setUp(self):
        config = two_site_config()
        self.engine = ArbitrageEngine(
            config, market_simulator=FixedMarket(config.site_ids, ai_demand_level=0.9)
        )
        self.addCleanup(self.engine.stop)


class TestReports(ReportingTestCase):
    
    def test_status_report(self):
        report = status_report(self.engine)
        
        self.assertEqual(report["status"], STATUS_TEXT)
        self.assertEqual(report["version"], __version__)
        self.assertEqual(report["engine_status"], "stopped")
        stats = report["current_stats"]
        self.assertEqual(stats["active_sites"], 2)
        self.assertEqual(stats["btc_price"], 5000.0)
        self.assertFalse(stats["active_dr_event"])
        self.assertAlmostEqual(stats["total_profit_per_hour"], self.engine.get_snapshot().total_profit)
        self.assertIsNotNone(report["last_optimization"])
    
    def test_dashboard_report(self):
        self.engine.trigger_dr({"id": "DR-1", "duration_hours": 2, "affected_sites": ["site-b"]})
        report = dashboard_report(self.engine)
        
        self.assertEqual(set(report["sites_summary"]), {"site-a", "site-b"})
        self.assertEqual(report["sites_summary"]["site-b"]["dr_status"], "ACTIVE_EVENT")
        self.assertEqual(report["sites_summary"]["site-a"]["dr_status"], "STANDBY")
        self.assertEqual(report["demand_response"]["active_event"]["id"], "DR-1")
        self.assertEqual(report["demand_response"]["events_this_year"], 1)
        self.assertEqual(report["market_data"]["ai_demand_level"], 0.9)
    
    def test_demand_response_report(self):
        for n in range(12):
            self.engine.trigger_dr({"id": f"DR-{n}", "duration_hours": 1, "affected_sites": ["site-a"]})
        report = demand_response_report(self.engine)
        
        self.assertEqual(report["events_this_year"], 12)
        self.assertEqual(report["max_events_per_year"], 25)
        self.assertEqual([e["id"] for e in report["recent_events"]],
                         [f"DR-{n}" for n in range(2, 12)])
        self.assertEqual(report["active_event"]["id"], "DR-11")
        
        commitment = report["site_commitments"]["site-a"]
        self.assertAlmostEqual(commitment["committed_capacity_mw"], 140.0)
        self.assertEqual(commitment["annual_payment"], 2100000)
    
    def test_history_report_defaults_to_fifty(self):
        for _ in range(70):
            self.engine.recompute()
        
        self.assertEqual(len(history_report(self.engine)), 50)
        records = history_report(self.engine, limit=5)
        self.assertEqual(len(records), 5)
        self.assertEqual(set(records[0]), {"timestamp", "total_profit", "sites", "active_dr_event",
                                           "dr_events_this_year", "market_conditions"})
    
    def test_health_report(self):
        self.engine.welcome("observer-1")
        report = health_report(self.engine)
        
        self.assertEqual(report["status"], "healthy")
        self.assertGreaterEqual(report["uptime"], 0)
        self.assertEqual(report["connected_clients"], 1)


class TestProfitSummary(ReportingTestCase):
    
    def test_empty_history(self):
        self.assertEqual(profit_summary([]), {"cycles": 0})
    
    def test_summary_over_history(self):
        self.engine.recompute()
        self.engine.trigger_dr({"duration_hours": 1, "affected_sites": ["site-a"]})
        history = self.engine.get_snapshot().history
        summary = profit_summary(history)
        
        self.assertEqual(summary["cycles"], 3)
        self.assertEqual(summary["dr_cycles"], 1)
        self.assertLessEqual(summary["min_profit"], summary["mean_profit"])
        self.assertLessEqual(summary["mean_profit"], summary["max_profit"])
        self.assertAlmostEqual(sum(summary["mode_share"].values()), 1.0)
        self.assertAlmostEqual(summary["mode_share"]["demand_response"], 1 / 6)
        self.assertAlmostEqual(summary["mode_share"]["ai"], 5 / 6)


if __name__ == "__main__":
    unittest.main()
