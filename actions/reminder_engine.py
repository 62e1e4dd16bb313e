"""
Reminder Engine
Hands due-now dose events to registered notification handlers
"""

import logging
from typing import List, Dict, Any, Optional, Callable, Iterable
from collections import deque
from threading import Lock

from config import settings
from tools.dose_reconciler import DueDoseEvent


logger = logging.getLogger(__name__)


ReminderHandler = Callable[[DueDoseEvent], Any]


class ReminderEngine:
    """
    Fan-out point between the reconciliation tick and whatever delivers
    notifications.

    Delivery is best effort: a failing handler is logged and counted, and
    never stops the remaining handlers or events.
    """

    def __init__(self, buffer_size: Optional[int] = None):
        self._handlers: List[ReminderHandler] = []
        self._recent: deque = deque(maxlen=buffer_size or settings.DUE_EVENT_BUFFER_SIZE)
        self._lock = Lock()
        self.failed_deliveries = 0

    def register_handler(self, handler: ReminderHandler):
        """Register a delivery handler"""
        self._handlers.append(handler)
        logger.info(f"Registered reminder handler {getattr(handler, '__name__', handler)!r}")

    def unregister_handler(self, handler: ReminderHandler) -> bool:
        if handler in self._handlers:
            self._handlers.remove(handler)
            return True
        return False

    def dispatch(self, events: Iterable[DueDoseEvent]) -> int:
        """Deliver events to every handler; returns successful deliveries"""
        delivered = 0

        for event in events:
            with self._lock:
                self._recent.append(event)

            for handler in list(self._handlers):
                try:
                    handler(event)
                    delivered += 1
                except Exception as e:
                    self.failed_deliveries += 1
                    logger.error(
                        f"Reminder handler failed for medication {event.medication_id} "
                        f"at {event.time_of_day}: {e}"
                    )

        return delivered

    def get_recent_events(self, owner_id: Optional[str] = None) -> List[DueDoseEvent]:
        """Recently dispatched events, newest first"""
        with self._lock:
            events = list(self._recent)
        if owner_id is not None:
            events = [e for e in events if e.owner_id == owner_id]
        events.reverse()
        return events

    def get_stats(self) -> Dict[str, Any]:
        with self._lock:
            buffered = len(self._recent)
        return {
            "handlers": len(self._handlers),
            "buffered_events": buffered,
            "failed_deliveries": self.failed_deliveries
        }

    def clear(self):
        with self._lock:
            self._recent.clear()


def log_reminder_handler(event: DueDoseEvent):
    """Default handler: record the reminder in the application log"""
    logger.info(f"Reminder: {event.name} ({event.dosage}) due at {event.time_of_day} for owner {event.owner_id}")


# Singleton instance
reminder_engine = ReminderEngine()
reminder_engine.register_handler(log_reminder_handler)
