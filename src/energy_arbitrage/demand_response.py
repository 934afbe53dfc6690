"""
Demand-response event lifecycle: trigger, scheduled auto-end, manual end and
annual event bookkeeping.
"""

import itertools
import logging
import threading
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Deque, Dict, Iterable, List, Mapping, Optional

from .config.engine_config import SiteConfig, DemandResponseConfig
from .exceptions import (
    ValidationError, InvalidEventError, NoActiveEventError, DREventLimitError
)
from .models import DREvent, SiteState
from .validation import EventValidator


class DRState(Enum):
    """State of the single demand-response event slot."""
    IDLE = "idle"
    ACTIVE = "active"


@dataclass
class DRCheckpoint:
    """Controller bookkeeping captured before an ingress recompute."""
    active: Optional[DREvent]
    events_this_year: int
    counter_year: Optional[int]
    events: List[DREvent] = field(default_factory=list)


class DemandResponseController:
    """Owns the active demand-response event and the event log.

    At most one event is active. Each triggered event gets a cancellable
    auto-end timer keyed by event id and a per-schedule token; the timer is
    cancelled whenever the event is replaced or ended, and on firing it only
    clears the event it was scheduled for.

    The controller does no locking of its own; callers serialize access.
    """
    
    def __init__(self, sites: Iterable[SiteConfig],
                 config: Optional[DemandResponseConfig] = None,
                 clock: Optional[Callable[[], datetime]] = None,
                 on_expire: Optional[Callable[[str, int], None]] = None):
        self.config = config or DemandResponseConfig()
        self.sites: Dict[str, SiteConfig] = {site.site_id: site for site in sites}
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self.on_expire = on_expire
        self.logger = logging.getLogger("energy_arbitrage.demand_response")
        
        self._active: Optional[DREvent] = None
        self._events: Deque[DREvent] = deque(maxlen=self.config.event_log_size)
        self._events_this_year = 0
        self._counter_year: Optional[int] = None
        
        self._timer: Optional[threading.Timer] = None
        self._timer_token: Optional[int] = None
        self._tokens = itertools.count(1)
        self._timer_event_id: Optional[str] = None
    
    @property
    def state(self) -> DRState:
        return DRState.ACTIVE if self._active is not None else DRState.IDLE
    
    @property
    def active_event(self) -> Optional[DREvent]:
        return self._active
    
    @property
    def events_this_year(self) -> int:
        return self._events_this_year
    
    @property
    def max_events_per_year(self) -> int:
        return self.config.max_events_per_year
    
    @property
    def pending_expiry(self) -> Optional[str]:
        """Id of the event with a scheduled auto-end, if any."""
        return self._timer_event_id
    
    def recent_events(self, limit: Optional[int] = None) -> List[DREvent]:
        """Most recent events in chronological order."""
        limit = self.config.recent_events if limit is None else limit
        if limit <= 0:
            return []
        return list(self._events)[-limit:]
    
    def build_event(self, request: Mapping[str, Any],
                    site_states: Optional[Mapping[str, SiteState]] = None) -> DREvent:
        """Validate a trigger request and turn it into an event.

        Raises:
            InvalidEventError: if sites are missing or unknown, or the
                duration is not a positive number.
        """
        affected_sites = request.get("affected_sites")
        duration_hours = request.get("duration_hours")
        try:
            EventValidator.validate_affected_sites(affected_sites, self.sites)
            EventValidator.validate_duration(duration_hours)
        except (ValidationError, TypeError) as e:
            raise InvalidEventError(str(e)) from e
        
        affected = tuple(dict.fromkeys(affected_sites))
        now = self.clock()
        
        capacity_reduced = request.get("capacity_reduced_mw", request.get("capacity_reduced"))
        if capacity_reduced is None:
            capacity_reduced = sum(self.sites[site_id].committed_capacity_mw for site_id in affected)
        
        profit_impact = request.get("estimated_profit_impact", request.get("profit_impact"))
        if profit_impact is None:
            profit_impact = self.estimate_profit_impact(affected, site_states or {})
        
        return DREvent(
            id=str(request.get("id") or f"DR-{int(now.timestamp() * 1000)}"),
            reason=str(request.get("reason") or "Manual"),
            duration_hours=float(duration_hours),
            affected_sites=affected,
            capacity_reduced_mw=float(capacity_reduced),
            estimated_profit_impact=float(profit_impact),
            start_time=now
        )
    
    def estimate_profit_impact(self, affected_sites: Iterable[str],
                               site_states: Mapping[str, SiteState]) -> float:
        """Bitcoin profit forgone on committed capacity, from current site states."""
        impact = 0.0
        for site_id in affected_sites:
            state = site_states.get(site_id)
            if state is None:
                continue
            site = self.sites[site_id]
            bitcoin_per_mw = state.profits.bitcoin.profit / site.capacity_mw
            impact += bitcoin_per_mw * site.committed_capacity_mw
        return impact
    
    def trigger(self, request: Mapping[str, Any],
                site_states: Optional[Mapping[str, SiteState]] = None) -> DREvent:
        """Install a new active event and schedule its automatic end.

        A trigger while another event is active replaces it.

        Raises:
            InvalidEventError: if the request is malformed.
            DREventLimitError: if this year's event count reached the cap.
        """
        event = self.build_event(request, site_states)
        
        year = event.start_time.year
        if self._counter_year is not None and year != self._counter_year:
            self.logger.info(
                f"New calendar year {year}: resetting DR event counter "
                f"({self._events_this_year} events in {self._counter_year})"
            )
            self._events_this_year = 0
        
        if self._events_this_year >= self.config.max_events_per_year:
            raise DREventLimitError(
                f"Annual DR event limit reached ({self.config.max_events_per_year} in {year})"
            )
        
        if self._active is not None:
            self.logger.warning(f"DR event {self._active.id} replaced by {event.id}")
        
        self._cancel_timer()
        self._active = event
        self._counter_year = year
        self._events_this_year += 1
        self._events.append(event)
        self._schedule_expiry(event)
        
        self.logger.info(
            f"DR event triggered: {event.reason} - Duration: {event.duration_hours}h "
            f"- Sites: {', '.join(event.affected_sites)}"
        )
        return event
    
    def end(self) -> DREvent:
        """Manually end the active event.

        Raises:
            NoActiveEventError: if no event is active.
        """
        if self._active is None:
            raise NoActiveEventError("No active DR event")
        
        event = self._active
        self._cancel_timer()
        self._active = None
        self.logger.info(f"DR event {event.id} manually ended")
        return event
    
    def expire(self, event_id: str, token: Optional[int] = None) -> bool:
        """End the active event if it is still the one identified by ``event_id``.

        ``token`` identifies the timer that fired. A token from a timer that
        has since been cancelled or replaced is ignored, even when the event
        id matches.
        """
        if token is not None:
            if token != self._timer_token:
                self.logger.debug(f"Cancelled auto-end for DR event {event_id} ignored")
                return False
            self._timer = None
            self._timer_token = None
            self._timer_event_id = None
        
        if self._active is None or self._active.id != event_id:
            self.logger.debug(f"Stale auto-end for DR event {event_id} ignored")
            return False
        
        event = self._active
        self._active = None
        self.logger.info(f"DR event {event.id} auto-ended after {event.duration_hours}h")
        return True
    
    def resume(self) -> Optional[float]:
        """Re-arm the auto-end of an active event whose timer was cancelled.

        Returns the delay in seconds, or None when nothing needed arming.
        """
        event = self._active
        if event is None or self._timer is not None:
            return None
        
        elapsed = (self.clock() - event.start_time).total_seconds()
        delay = max(0.0, event.duration_hours * self.config.seconds_per_hour - elapsed)
        self._schedule_expiry(event, delay)
        self.logger.info(f"DR event {event.id} auto-end re-armed in {delay:.1f}s")
        return delay
    
    def checkpoint(self) -> DRCheckpoint:
        """Capture the bookkeeping a failed recompute needs to roll back."""
        return DRCheckpoint(
            active=self._active,
            events_this_year=self._events_this_year,
            counter_year=self._counter_year,
            events=list(self._events)
        )
    
    def rollback(self, checkpoint: DRCheckpoint) -> None:
        """Restore a checkpoint; the restored event keeps its original deadline."""
        self._cancel_timer()
        self._active = checkpoint.active
        self._events_this_year = checkpoint.events_this_year
        self._counter_year = checkpoint.counter_year
        self._events.clear()
        self._events.extend(checkpoint.events)
        self.resume()
    
    def shutdown(self) -> None:
        """Cancel any pending auto-end task."""
        self._cancel_timer()
    
    def _schedule_expiry(self, event: DREvent, delay: Optional[float] = None) -> None:
        if delay is None:
            delay = event.duration_hours * self.config.seconds_per_hour
        token = next(self._tokens)
        timer = threading.Timer(delay, self._fire, args=(event.id, token))
        timer.daemon = True
        self._timer = timer
        self._timer_token = token
        self._timer_event_id = event.id
        timer.start()
    
    def _fire(self, event_id: str, token: int) -> None:
        if self.on_expire is not None:
            self.on_expire(event_id, token)
        else:
            self.expire(event_id, token)
    
    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
        self._timer = None
        self._timer_token = None
        self._timer_event_id = None
