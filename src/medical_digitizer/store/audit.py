# ============================================================================
# src/medical_digitizer/store/audit.py
# ============================================================================
"""
Audit Trail Logger

Medical records need a complete change history. This subscriber listens
to the datastore change feed and appends one audit_logs row per
committed insert/update/delete:
- table name and record id
- action
- old and new row payloads
- acting user (created_by of the row)

Nothing in the processing pipeline reads the audit trail back.
"""

from typing import Any, Callable, Dict, List, Optional
import logging

from .base import Datastore
from .change_feed import ALL_TABLES, ChangeEvent
from ..utils.exceptions import DatastoreError


class AuditLogger:
    """
    Change-feed subscriber writing the append-only audit trail.
    """

    def __init__(self, store: Datastore, tables: Optional[List[str]] = None):
        self.store = store
        self.tables = tables or [ALL_TABLES]
        self.logger = logging.getLogger(__name__)
        self._unsubscribers: List[Callable[[], None]] = []

    def attach(self) -> "AuditLogger":
        """Start recording changes."""
        if not self._unsubscribers:
            for table in self.tables:
                self._unsubscribers.append(self.store.feed.subscribe(table, self.record))
            self.logger.info(f"Audit trail attached for tables: {self.tables}")
        return self

    def detach(self) -> None:
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers = []

    def record(self, event: ChangeEvent) -> None:
        """Append one audit row for a change event."""
        try:
            self.store.insert_audit_log({
                "table_name": event.table,
                "record_id": event.record_id,
                "action": event.action.value,
                "old_data": event.old,
                "new_data": event.new,
                "user_id": event.user_id,
                "timestamp": event.timestamp.isoformat(),
            })
        except DatastoreError as e:
            # The originating write already committed; losing the audit row
            # must be visible in the logs.
            self.logger.error(
                f"Failed to record audit entry for {event.table} {event.record_id}: {e}"
            )

    def get_trail(self, table_name: str, record_id: str) -> List[Dict[str, Any]]:
        """Retrieve the audit trail for one record, oldest first."""
        return self.store.list_audit_logs(table_name=table_name, record_id=record_id)
