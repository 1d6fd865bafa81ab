#!/usr/bin/env python3
"""
In-process event bus keeping a bounded history for the observability API
"""

import logging
import threading
from collections import defaultdict, deque
from typing import Deque, Dict, List, Optional

from .base import Event, EventHandler, EventType

logger = logging.getLogger(__name__)


class EventBus:
    """Synchronous publish/subscribe with a ring buffer of recent events"""

    def __init__(self, history_size: int = 1000):
        """
        Initialize the EventBus

        Args:
            history_size: Number of events kept for /history
        """
        self.subscribers: Dict[EventType, List[EventHandler]] = defaultdict(list)
        self.history: Deque[Event] = deque(maxlen=history_size)
        self._lock = threading.Lock()

    def register_handler(self, handler: EventHandler) -> None:
        """Register a handler for every event type it is subscribed to"""
        for event_type in handler.subscribed_events:
            self.subscribers[event_type].append(handler)
        logger.debug(f"Registered handler {handler.name} for {len(handler.subscribed_events)} event types")

    def publish(self, event: Event) -> None:
        with self._lock:
            self.history.append(event)

        logger.debug(f"Published event {event.event_type.value} ({event.event_id})")
        for handler in list(self.subscribers.get(event.event_type, ())):
            try:
                if not handler.handle(event):
                    logger.warning(f"Handler {handler.name} failed to handle {event.event_type.value}")
            except Exception as e:
                # A broken observer must not stop the control loop
                logger.error(f"Handler {handler.name} raised on {event.event_type.value}: {e}", exc_info=True)

    def get_history(self, limit: int = 50, event_type: Optional[EventType] = None) -> List[Event]:
        """Most recent events first"""
        with self._lock:
            events = list(self.history)
        if event_type is not None:
            events = [e for e in events if e.event_type == event_type]
        return list(reversed(events))[:limit]
