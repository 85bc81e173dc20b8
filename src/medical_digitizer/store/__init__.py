# src/medical_digitizer/store/__init__.py

from .base import Datastore
from .change_feed import ALL_TABLES, ChangeAction, ChangeEvent, ChangeFeed
from .sqlite_store import SQLiteDatastore
from .audit import AuditLogger

__all__ = [
    "Datastore",
    "SQLiteDatastore",
    "ChangeFeed",
    "ChangeEvent",
    "ChangeAction",
    "ALL_TABLES",
    "AuditLogger",
]
