"""Synchronization and audit services."""

from .audit_log import AuditLog
from .presence import PresenceTracker
from .record_sync import RecordSynchronizer, record_counts
from .sync_store import SyncStore

__all__ = [
    "AuditLog",
    "PresenceTracker",
    "RecordSynchronizer",
    "record_counts",
    "SyncStore",
]
