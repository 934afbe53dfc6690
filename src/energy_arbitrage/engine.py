"""
Allocation engine: drives the periodic optimization cycle and serves the
recompute / demand-response ingress operations.

All mutation of engine state happens inside one cycle critical section, so
periodic ticks, out-of-band recomputes and demand-response auto-ends never
interleave.
"""

import copy
import logging
import threading
import time
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Deque, Dict, List, Mapping, Optional

from .broadcast import BroadcastHub
from .config.engine_config import EngineConfig
from .demand_response import DemandResponseController, DRCheckpoint
from .events import Event, EventType, market_update, sites_update, optimization_update
from .exceptions import EngineError
from .history import HistoryStore
from .market import MarketSimulator
from .models import (
    MarketSnapshot, SiteState, DREvent, DRStatus, OptimizationRecord, EngineSnapshot
)
from .optimization import AllocationOptimizer, AllocationStrategy
from .profit import ProfitModel


class EngineStatus(Enum):
    """Engine lifecycle status."""
    STOPPED = "stopped"
    RUNNING = "running"
    STOPPING = "stopping"


@dataclass
class EngineState:
    """Process-wide engine state; written only inside a cycle."""
    history: HistoryStore
    demand_response: DemandResponseController
    market: Optional[MarketSnapshot] = None
    sites: Dict[str, SiteState] = field(default_factory=dict)
    cycle_count: int = 0
    failed_cycles: int = 0


class ArbitrageEngine:
    """
    Continuously splits each site's power budget between AI inference and
    bitcoin mining, honouring demand-response events.
    
    One synchronous cycle runs at construction so the state is never empty.
    ``start()`` launches the periodic loop and re-arms the auto-end of an
    event left active; ``stop()`` cancels the loop together with any pending
    demand-response auto-end. Events are built inside the cycle lock and
    handed to the broadcaster after it is released.
    """
    
    def __init__(self, config: Optional[EngineConfig] = None,
                 broadcaster: Optional[BroadcastHub] = None,
                 market_simulator: Optional[MarketSimulator] = None,
                 profit_model: Optional[ProfitModel] = None,
                 optimizer: Optional[AllocationStrategy] = None,
                 clock: Optional[Callable[[], datetime]] = None):
        """
        Initialize the engine.
        
        Args:
            config: Engine configuration; validated on construction
            broadcaster: Egress for recomputed state
            market_simulator: Source of per-cycle market snapshots
            profit_model: Per-workload profit calculator
            optimizer: Allocation policy
            clock: Wall-clock source, used for timestamps and year rollover
        
        Raises:
            ConfigurationError: if the configuration is invalid
        """
        self.config = config or EngineConfig()
        self.config.require_valid()
        self.logger = logging.getLogger("energy_arbitrage.engine")
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        
        self.broadcaster = broadcaster or BroadcastHub()
        self.market_simulator = market_simulator or MarketSimulator(
            self.config.site_ids, self.config.market
        )
        self.profit_model = profit_model or ProfitModel(self.config.profit)
        self.optimizer = optimizer or AllocationOptimizer(self.config.allocation)
        
        self.state = EngineState(
            history=HistoryStore(self.config.scheduler.history_capacity),
            demand_response=DemandResponseController(
                self.config.sites,
                self.config.demand_response,
                clock=self.clock,
                on_expire=self._handle_expiry
            )
        )
        
        self.status = EngineStatus.STOPPED
        self.created_at = time.monotonic()
        self._cycle_lock = threading.Lock()
        self._stop_event = threading.Event()
        self._outbox: Deque[List[Event]] = deque()
        self._flush_lock = threading.Lock()
        self._thread: Optional[threading.Thread] = None
        
        record = self.recompute()
        self._log_initial(record)
    
    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    
    @property
    def is_running(self) -> bool:
        return self.status == EngineStatus.RUNNING
    
    def start(self) -> None:
        """Start the periodic optimization loop."""
        if self.is_running:
            raise EngineError("Engine is already running")
        
        self._stop_event.clear()
        self.broadcaster.start()
        with self._cycle_lock:
            # an event left active by stop() gets its auto-end back
            self.state.demand_response.resume()
        self._thread = threading.Thread(target=self._run_loop, name="optimization-loop", daemon=True)
        self._thread.start()
        self.status = EngineStatus.RUNNING
        self.logger.info(
            f"Optimization loop started (updates every {self.config.scheduler.cycle_interval:g} seconds)"
        )
    
    def stop(self, timeout: float = 10.0) -> None:
        """Stop the loop and cancel any pending demand-response auto-end."""
        self.status = EngineStatus.STOPPING
        self._stop_event.set()
        
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            self._thread = None
        
        with self._cycle_lock:
            self.state.demand_response.shutdown()
        
        self.broadcaster.stop()
        self.status = EngineStatus.STOPPED
        self.logger.info("Optimization loop stopped")
    
    def __enter__(self) -> 'ArbitrageEngine':
        self.start()
        return self
    
    def __exit__(self, exc_type, exc, tb) -> None:
        self.stop()
    
    # ------------------------------------------------------------------
    # Ingress
    # ------------------------------------------------------------------
    
    def recompute(self) -> OptimizationRecord:
        """Run one cycle now and return its aggregate."""
        with self._cycle_lock:
            record = self._run_cycle()
            if self.broadcaster.observer_count > 0:
                self._publish(EventType.MARKET_UPDATE, EventType.SITES_UPDATE, EventType.OPTIMIZATION_UPDATE)
        self._flush()
        return record
    
    def trigger_dr(self, request: Mapping[str, Any]) -> DREvent:
        """
        Start a demand-response event and recompute immediately.
        
        Args:
            request: ``{reason, duration_hours, affected_sites, id}``; ``id``
                and ``reason`` are optional
        
        Returns:
            The installed event
        
        Raises:
            InvalidEventError: if the request is malformed
            DREventLimitError: if the annual event cap is reached
            EngineError: if the recompute failed; the trigger is rolled back
        """
        with self._cycle_lock:
            controller = self.state.demand_response
            checkpoint = controller.checkpoint()
            try:
                event = controller.trigger(request, self.state.sites)
            except Exception as e:
                self.logger.warning(f"DR trigger rejected: {e}")
                raise
            self._run_ingress_cycle(checkpoint, f"trigger of DR event {event.id}")
        self._flush()
        return event
    
    def end_dr(self) -> DREvent:
        """
        End the active demand-response event and recompute immediately.
        
        Raises:
            NoActiveEventError: if no event is active
            EngineError: if the recompute failed; the event stays active
        """
        with self._cycle_lock:
            controller = self.state.demand_response
            checkpoint = controller.checkpoint()
            event = controller.end()
            self._run_ingress_cycle(checkpoint, f"end of DR event {event.id}")
        self._flush()
        return event
    
    def get_snapshot(self, history: Optional[int] = None) -> EngineSnapshot:
        """Consistent read-only view of the current state, without recomputing."""
        limit = self.config.scheduler.history_capacity if history is None else history
        with self._cycle_lock:
            controller = self.state.demand_response
            return EngineSnapshot(
                market=self.state.market,
                sites=dict(self.state.sites),
                history=self.state.history.window(limit),
                active_dr_event=controller.active_event,
                dr_events_this_year=controller.events_this_year,
                recent_dr_events=controller.recent_events(),
                connected_observers=self.broadcaster.observer_count,
                cycle_count=self.state.cycle_count
            )
    
    def welcome(self, observer_id: str) -> List[Event]:
        """Register an observer and return its initial payloads."""
        self.broadcaster.connect(observer_id)
        with self._cycle_lock:
            return self._build_events(
                EventType.MARKET_UPDATE, EventType.SITES_UPDATE, EventType.OPTIMIZATION_UPDATE
            )
    
    def farewell(self, observer_id: str, reason: str = "") -> None:
        self.broadcaster.disconnect(observer_id, reason)
    
    # ------------------------------------------------------------------
    # Cycle
    # ------------------------------------------------------------------
    
    def _run_loop(self) -> None:
        """Periodic loop; a failing cycle is logged and the loop carries on."""
        interval = self.config.scheduler.cycle_interval
        while not self._stop_event.wait(interval):
            try:
                with self._cycle_lock:
                    if self._stop_event.is_set():
                        break
                    self._run_cycle()
                    if self.broadcaster.observer_count > 0:
                        self._publish(
                            EventType.MARKET_UPDATE, EventType.SITES_UPDATE, EventType.OPTIMIZATION_UPDATE
                        )
            except Exception:
                self.state.failed_cycles += 1
                self.logger.exception("Optimization cycle failed")
            self._flush()
    
    def _run_cycle(self) -> OptimizationRecord:
        """Compute a full cycle and commit it. Caller holds the cycle lock.

        Nothing is committed unless every site computes, so readers never see
        new market data paired with stale site states.
        """
        now = self.clock()
        market = self.market_simulator.generate(now)
        controller = self.state.demand_response
        active_event = controller.active_event
        
        sites: Dict[str, SiteState] = {}
        for site in self.config.sites:
            profits = self.profit_model.price(site, market)
            decision = self.optimizer.allocate(site, profits, market, active_event)
            affected = active_event is not None and active_event.affects(site.site_id)
            sites[site.site_id] = SiteState(
                site=site,
                operation_mode=decision.operation_mode,
                current_profit=decision.realized_profit,
                profits=profits,
                power_allocation=decision.allocation,
                dr_status=DRStatus.ACTIVE_EVENT if affected else DRStatus.STANDBY,
                efficiency=self.market_simulator.site_efficiency(),
                last_updated=now,
                dr_events_this_year=controller.events_this_year,
                ai_demand_level=market.ai_demand_level
            )
        
        total_profit = sum(state.current_profit for state in sites.values())
        record = OptimizationRecord(
            timestamp=now,
            total_profit=total_profit,
            sites=copy.deepcopy(sites),
            active_dr_event=active_event,
            dr_events_this_year=controller.events_this_year,
            market_conditions=market.conditions()
        )
        
        self.state.market = market
        self.state.sites = sites
        self.state.history.append(record)
        self.state.cycle_count += 1
        
        if self.state.cycle_count % self.config.scheduler.log_every == 0:
            dr_status = f" [DR EVENT: {active_event.reason}]" if active_event else ""
            self.logger.info(
                f"Optimization #{self.state.cycle_count} - Revenue: ${total_profit:,.2f}/h{dr_status}"
            )
        
        return record
    
    def _run_ingress_cycle(self, checkpoint: DRCheckpoint, action: str) -> None:
        """Recompute after a DR change, rolling the change back if the cycle fails.

        Caller holds the cycle lock.
        """
        try:
            self._run_cycle()
        except Exception as e:
            self.state.demand_response.rollback(checkpoint)
            self.state.failed_cycles += 1
            self.logger.exception(f"Recompute after {action} failed; change rolled back")
            raise EngineError(f"Recompute after {action} failed: {e}") from e
        self._publish(EventType.OPTIMIZATION_UPDATE)
    
    def _handle_expiry(self, event_id: str, token: int) -> None:
        """Auto-end callback fired by the demand-response timer.

        Runs whether or not the loop is started; stop() cancels the timer and
        start() re-arms it.
        """
        try:
            with self._cycle_lock:
                if not self.state.demand_response.expire(event_id, token):
                    return
                # a failed cycle leaves the event ended; the next cycle catches up
                self._run_cycle()
                self._publish(EventType.OPTIMIZATION_UPDATE)
        except Exception:
            self.state.failed_cycles += 1
            self.logger.exception(f"Auto-end of DR event {event_id} failed")
        self._flush()
    
    # ------------------------------------------------------------------
    # Egress
    # ------------------------------------------------------------------
    
    def _build_events(self, *kinds: EventType) -> List[Event]:
        """Serialize the committed state. Caller holds the cycle lock."""
        now = self.clock()
        controller = self.state.demand_response
        builders = {
            EventType.MARKET_UPDATE: lambda: market_update(self.state.market, now),
            EventType.SITES_UPDATE: lambda: sites_update(self.state.sites, now),
            EventType.OPTIMIZATION_UPDATE: lambda: optimization_update(
                self.state.history.window(self.config.scheduler.broadcast_history),
                sum(state.current_profit for state in self.state.sites.values()),
                controller.active_event,
                controller.events_this_year,
                now
            ),
        }
        return [builders[kind]() for kind in kinds]
    
    def _publish(self, *kinds: EventType) -> None:
        """Queue events built from the committed state. Caller holds the cycle lock."""
        self._outbox.append(self._build_events(*kinds))
    
    def _flush(self) -> None:
        """Hand queued events to the broadcaster, outside the cycle lock.

        One thread drains at a time, in commit order. A subscriber that calls
        back into the engine only queues; the draining thread delivers it.
        """
        while self._outbox:
            if not self._flush_lock.acquire(blocking=False):
                return
            try:
                while self._outbox:
                    self.broadcaster.emit(self._outbox.popleft())
            finally:
                self._flush_lock.release()
    
    def _log_initial(self, record: OptimizationRecord) -> None:
        market = self.state.market
        self.logger.info("Initial optimization complete:")
        self.logger.info(f"   Total Revenue: ${record.total_profit:,.2f}/hour")
        self.logger.info(f"   Active Sites: {len(self.state.sites)}")
        self.logger.info(f"   Bitcoin Price: ${market.btc_price:,.0f}")
        self.logger.info(f"   AI Demand: {market.ai_demand_level * 100:.0f}%")
        self.logger.info(f"   Avg Energy: {market.avg_energy_price * 100:.1f} c/kWh")
