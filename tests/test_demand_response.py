"""Tests for the demand-response event controller."""

import sys
import time
import unittest
from datetime import datetime, timezone
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent))

from market_fixtures import SITE_A, SITE_B

from energy_arbitrage.config import DemandResponseConfig
from energy_arbitrage.demand_response import DemandResponseController, DRState
from energy_arbitrage.exceptions import InvalidEventError, NoActiveEventError, DREventLimitError


class FakeClock:
    """Settable wall clock."""
    
    def __init__(self, now):
        self.now = now
    
    def __call__(self):
        return self.now


def request(event_id="DR-1", sites=("site-a",), duration=2.0, reason="Grid Overload"):
    return {"id": event_id, "reason": reason, "duration_hours": duration, "affected_sites": list(sites)}


class TestDemandResponseController(unittest.TestCase):
    
    def setUp(self):
        self.clock = FakeClock(datetime(2026, 6, 1, 12, 0, tzinfo=timezone.utc))
        self.controller = self._controller()
    
    def tearDown(self):
        self.controller.shutdown()
    
    def _controller(self, **config):
        settings = {"seconds_per_hour": 3600.0}
        settings.update(config)
        return DemandResponseController(
            [SITE_A, SITE_B], DemandResponseConfig(**settings), clock=self.clock
        )
    
    def test_trigger_installs_event(self):
        event = self.controller.trigger(request())
        
        self.assertEqual(self.controller.state, DRState.ACTIVE)
        self.assertIs(self.controller.active_event, event)
        self.assertEqual(event.affected_sites, ("site-a",))
        self.assertEqual(event.start_time, self.clock.now)
        self.assertEqual(self.controller.events_this_year, 1)
        self.assertEqual(self.controller.pending_expiry, "DR-1")
        self.assertEqual(self.controller.recent_events(), [event])
    
    def test_defaults_are_filled_in(self):
        event = self.controller.trigger({"duration_hours": 1, "affected_sites": ["site-a", "site-b", "site-a"]})
        
        self.assertTrue(event.id.startswith("DR-"))
        self.assertEqual(event.reason, "Manual")
        self.assertEqual(event.affected_sites, ("site-a", "site-b"))
        self.assertAlmostEqual(event.capacity_reduced_mw, 140.0 + 90.0)
        self.assertEqual(event.estimated_profit_impact, 0.0)
    
    def test_legacy_impact_keys_are_accepted(self):
        payload = request()
        payload.update({"capacity_reduced": 12.5, "profit_impact": 99.0})
        event = self.controller.trigger(payload)
        
        self.assertEqual(event.capacity_reduced_mw, 12.5)
        self.assertEqual(event.estimated_profit_impact, 99.0)
    
    def test_empty_sites_rejected_and_active_event_kept(self):
        existing = self.controller.trigger(request())
        
        with self.assertRaises(InvalidEventError):
            self.controller.trigger(request(event_id="DR-2", sites=()))
        
        self.assertIs(self.controller.active_event, existing)
        self.assertEqual(self.controller.events_this_year, 1)
    
    def test_invalid_requests_rejected(self):
        bad_requests = [
            request(sites=("nowhere",)),
            request(sites=("site-a", "nowhere")),
            request(duration=0),
            request(duration=-1.5),
            request(duration="2"),
            request(duration=True),
            request(duration=float("inf")),
            {"duration_hours": 1},
            {"duration_hours": 1, "affected_sites": "site-a"},
        ]
        for bad in bad_requests:
            with self.assertRaises(InvalidEventError):
                self.controller.trigger(bad)
        
        self.assertIsNone(self.controller.active_event)
        self.assertEqual(self.controller.events_this_year, 0)
    
    def test_end_without_event(self):
        with self.assertRaises(NoActiveEventError):
            self.controller.end()
        
        self.assertEqual(self.controller.state, DRState.IDLE)
        self.assertEqual(self.controller.events_this_year, 0)
    
    def test_end_clears_event_and_keeps_bookkeeping(self):
        event = self.controller.trigger(request())
        ended = self.controller.end()
        
        self.assertIs(ended, event)
        self.assertIsNone(self.controller.active_event)
        self.assertIsNone(self.controller.pending_expiry)
        self.assertEqual(self.controller.events_this_year, 1)
        self.assertEqual(self.controller.recent_events(), [event])
    
    def test_stale_expiry_does_not_end_newer_event(self):
        self.controller.trigger(request(event_id="DR-1"))
        newer = self.controller.trigger(request(event_id="DR-2"))
        
        self.assertEqual(self.controller.pending_expiry, "DR-2")
        self.assertFalse(self.controller.expire("DR-1"))
        self.assertIs(self.controller.active_event, newer)
        
        self.assertTrue(self.controller.expire("DR-2"))
        self.assertIsNone(self.controller.active_event)
        self.assertEqual(self.controller.events_this_year, 2)
    
    def test_annual_cap_enforced(self):
        controller = self._controller(max_events_per_year=2)
        try:
            controller.trigger(request(event_id="DR-1"))
            controller.trigger(request(event_id="DR-2"))
            with self.assertRaises(DREventLimitError):
                controller.trigger(request(event_id="DR-3"))
            self.assertEqual(controller.active_event.id, "DR-2")
            self.assertEqual(controller.events_this_year, 2)
        finally:
            controller.shutdown()
    
    def test_counter_resets_on_first_trigger_of_new_year(self):
        controller = self._controller(max_events_per_year=2)
        try:
            self.clock.now = datetime(2025, 12, 31, 23, 0, tzinfo=timezone.utc)
            controller.trigger(request(event_id="DR-1"))
            controller.trigger(request(event_id="DR-2"))
            
            self.clock.now = datetime(2026, 1, 1, 0, 30, tzinfo=timezone.utc)
            # counter is only reset by a trigger
            self.assertEqual(controller.events_this_year, 2)
            controller.trigger(request(event_id="DR-3"))
            self.assertEqual(controller.events_this_year, 1)
        finally:
            controller.shutdown()
    
    def test_event_log_is_bounded(self):
        controller = self._controller(event_log_size=3, max_events_per_year=100)
        try:
            for i in range(5):
                controller.trigger(request(event_id=f"DR-{i}"))
            self.assertEqual([e.id for e in controller.recent_events(10)], ["DR-2", "DR-3", "DR-4"])
            self.assertEqual(controller.recent_events(0), [])
        finally:
            controller.shutdown()
    
    def test_timer_auto_ends_event(self):
        controller = self._controller(seconds_per_hour=0.01)
        try:
            controller.trigger(request(duration=1.0))
            deadline = time.monotonic() + 2.0
            while controller.active_event is not None and time.monotonic() < deadline:
                time.sleep(0.01)
            self.assertIsNone(controller.active_event)
            self.assertEqual(controller.events_this_year, 1)
        finally:
            controller.shutdown()
    
    def test_expiry_callback_receives_event_id(self):
        fired = []
        controller = DemandResponseController(
            [SITE_A], DemandResponseConfig(seconds_per_hour=0.01),
            clock=self.clock, on_expire=lambda event_id, token: fired.append(event_id)
        )
        try:
            controller.trigger(request(event_id="DR-cb", duration=1.0))
            deadline = time.monotonic() + 2.0
            while not fired and time.monotonic() < deadline:
                time.sleep(0.01)
            self.assertEqual(fired, ["DR-cb"])
            # the callback owns clearing; the event is still installed here
            self.assertEqual(controller.active_event.id, "DR-cb")
        finally:
            controller.shutdown()
    
    def test_fired_timer_ignored_after_id_is_reused(self):
        fired = []
        controller = DemandResponseController(
            [SITE_A], DemandResponseConfig(seconds_per_hour=0.01),
            clock=self.clock, on_expire=lambda event_id, token: fired.append((event_id, token))
        )
        try:
            controller.trigger(request(event_id="DR-same", duration=1.0))
            deadline = time.monotonic() + 2.0
            while not fired and time.monotonic() < deadline:
                time.sleep(0.01)
            self.assertEqual(len(fired), 1)
            
            # same id, triggered before the first timer's callback got to run
            newer = controller.trigger(request(event_id="DR-same", duration=1000.0))
            self.assertFalse(controller.expire(*fired[0]))
            self.assertIs(controller.active_event, newer)
            self.assertEqual(controller.pending_expiry, "DR-same")
        finally:
            controller.shutdown()
    
    def test_resume_rearms_with_remaining_time(self):
        controller = self._controller(seconds_per_hour=1.0)
        try:
            controller.trigger(request(duration=1000.0))
            controller.shutdown()
            self.assertIsNone(controller.pending_expiry)
            
            self.clock.now = datetime(2026, 6, 1, 12, 10, tzinfo=timezone.utc)
            delay = controller.resume()
            self.assertAlmostEqual(delay, 400.0)
            self.assertEqual(controller.pending_expiry, "DR-1")
            
            # already armed
            self.assertIsNone(controller.resume())
        finally:
            controller.shutdown()
    
    def test_resume_without_event_is_noop(self):
        self.assertIsNone(self.controller.resume())
        self.assertIsNone(self.controller.pending_expiry)
    
    def test_rollback_restores_replaced_event(self):
        first = self.controller.trigger(request(event_id="DR-1"))
        checkpoint = self.controller.checkpoint()
        self.controller.trigger(request(event_id="DR-2"))
        
        self.controller.rollback(checkpoint)
        
        self.assertIs(self.controller.active_event, first)
        self.assertEqual(self.controller.events_this_year, 1)
        self.assertEqual(self.controller.recent_events(), [first])
        self.assertEqual(self.controller.pending_expiry, "DR-1")
    
    def test_rollback_of_end_keeps_event_armed(self):
        event = self.controller.trigger(request())
        checkpoint = self.controller.checkpoint()
        self.controller.end()
        
        self.controller.rollback(checkpoint)
        
        self.assertIs(self.controller.active_event, event)
        self.assertEqual(self.controller.pending_expiry, "DR-1")
    
    def test_shutdown_cancels_pending_expiry(self):
        controller = self._controller(seconds_per_hour=0.05)
        controller.trigger(request(duration=1.0))
        controller.shutdown()
        
        time.sleep(0.15)
        self.assertIsNotNone(controller.active_event)
        self.assertIsNone(controller.pending_expiry)


if __name__ == "__main__":
    unittest.main()
