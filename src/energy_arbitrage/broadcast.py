"""
Hand-off of engine payloads to the transport that pushes them to observers.
"""

import logging
import queue
import threading
from typing import Callable, Dict, List, Optional

from .events import Event

Subscriber = Callable[[Event], None]


class BroadcastHub:
    """Fan-out of engine events to registered subscribers.

    Delivery is fire-and-forget: a failing subscriber is logged and skipped,
    and nothing is retried. Once started, events are queued and delivered in
    order by a worker thread so publishers never wait on subscribers; before
    that they are delivered inline.

    The hub also tracks connected observers, which the engine uses to decide
    whether a periodic cycle is worth pushing.
    """
    
    def __init__(self):
        self.logger = logging.getLogger("energy_arbitrage.broadcast")
        self._subscribers: List[Subscriber] = []
        self._observers: Dict[str, Optional[str]] = {}
        self._lock = threading.Lock()
        
        self._queue: "queue.Queue[Optional[List[Event]]]" = queue.Queue()
        self._worker: Optional[threading.Thread] = None
        self.delivered = 0
        self.failed = 0
    
    @property
    def is_running(self) -> bool:
        return self._worker is not None and self._worker.is_alive()
    
    def start(self) -> None:
        """Start the background delivery worker."""
        if self.is_running:
            return
        self._worker = threading.Thread(target=self._deliver_loop, name="broadcast", daemon=True)
        self._worker.start()
    
    def stop(self, timeout: float = 5.0) -> None:
        """Deliver what is queued, then stop the worker."""
        if not self.is_running:
            return
        self._queue.put(None)
        self._worker.join(timeout=timeout)
        self._worker = None
    
    def subscribe(self, subscriber: Subscriber) -> None:
        """Register a transport callback."""
        with self._lock:
            self._subscribers.append(subscriber)
    
    def unsubscribe(self, subscriber: Subscriber) -> None:
        with self._lock:
            if subscriber in self._subscribers:
                self._subscribers.remove(subscriber)
    
    def connect(self, observer_id: str) -> int:
        """Record a connected observer; returns the observer count."""
        with self._lock:
            self._observers[observer_id] = None
            count = len(self._observers)
        self.logger.info(f"Observer connected: {observer_id} (Total: {count})")
        return count
    
    def disconnect(self, observer_id: str, reason: str = "") -> int:
        """Forget an observer; returns the remaining observer count."""
        with self._lock:
            self._observers.pop(observer_id, None)
            count = len(self._observers)
        suffix = f" ({reason})" if reason else ""
        self.logger.info(f"Observer disconnected: {observer_id}{suffix} (Remaining: {count})")
        return count
    
    @property
    def observer_count(self) -> int:
        with self._lock:
            return len(self._observers)
    
    def emit(self, events: List[Event]) -> None:
        """Hand events over for delivery without waiting for it."""
        if not events:
            return
        if self.is_running:
            self._queue.put(list(events))
        else:
            self._deliver(events)
    
    def _deliver_loop(self) -> None:
        while True:
            events = self._queue.get()
            if events is None:
                break
            self._deliver(events)
    
    def _deliver(self, events: List[Event]) -> None:
        with self._lock:
            subscribers = list(self._subscribers)
        
        for event in events:
            for subscriber in subscribers:
                try:
                    subscriber(event)
                    self.delivered += 1
                except Exception as e:
                    self.failed += 1
                    self.logger.error(f"Subscriber failed on {event.type.value}: {e}")
