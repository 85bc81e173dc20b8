# ============================================================================
# src/medical_digitizer/store/change_feed.py
# ============================================================================
"""
Change Feed

Row-level change notifications published by the datastore after each
commit. Observers subscribe per table and receive full-row payloads.
The pipeline itself never subscribes; it only writes.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Optional
import logging
import threading

from ..core.models import utcnow

logger = logging.getLogger(__name__)


class ChangeAction(str, Enum):
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


@dataclass
class ChangeEvent:
    table: str
    action: ChangeAction
    record_id: str
    new: Optional[Dict[str, Any]] = None
    old: Optional[Dict[str, Any]] = None
    user_id: Optional[str] = None
    timestamp: datetime = field(default_factory=utcnow)


ChangeCallback = Callable[[ChangeEvent], None]

# Subscribe to every table
ALL_TABLES = "*"


class ChangeFeed:
    """
    Fan-out of change events to table subscribers.

    Callbacks run synchronously on the publishing thread. A failing
    subscriber is logged and skipped; it never fails the write that
    produced the event.
    """

    def __init__(self):
        self._subscribers: Dict[str, List[ChangeCallback]] = {}
        self._lock = threading.Lock()

    def subscribe(self, table: str, callback: ChangeCallback) -> Callable[[], None]:
        """
        Register a callback for a table (or ALL_TABLES).

        Returns:
            Function that removes the subscription
        """
        with self._lock:
            self._subscribers.setdefault(table, []).append(callback)

        def unsubscribe():
            with self._lock:
                callbacks = self._subscribers.get(table, [])
                if callback in callbacks:
                    callbacks.remove(callback)

        return unsubscribe

    def publish(self, event: ChangeEvent) -> None:
        with self._lock:
            callbacks = list(self._subscribers.get(event.table, []))
            callbacks += self._subscribers.get(ALL_TABLES, [])

        for callback in callbacks:
            try:
                callback(event)
            except Exception as e:
                logger.error(
                    f"Change feed subscriber failed on {event.table} "
                    f"{event.action.value} {event.record_id}: {e}",
                    exc_info=True,
                )

    def subscriber_count(self, table: Optional[str] = None) -> int:
        with self._lock:
            if table is None:
                return sum(len(v) for v in self._subscribers.values())
            return len(self._subscribers.get(table, []))
