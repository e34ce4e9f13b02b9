"""
Append-only change log persisted as a JSON array.

Two independent retention knobs:
- a hard cap (newest ``max_entries`` kept) applied after every append
- ``prune(days_to_keep)``, an explicit age cutoff for privileged callers

Entries are held in memory after the first load; this process is assumed to be
the only writer of the file.
"""
import logging
import re
import threading
import uuid
from datetime import date, datetime, time, timedelta, timezone
from typing import Callable, List, Optional

from pydantic import ValidationError as PydanticValidationError

from app.core.errors import PersistenceError, ValidationError
from app.schemas import AuditEntry, AuditEntryIn, AuditFilters, AuditPage, PruneResult, utcnow
from app.services.sync_store import read_json, write_json_atomic

logger = logging.getLogger("audit_log")

MAX_ENTRIES = 10_000
DEFAULT_LIMIT = 1000
DEFAULT_DAYS_TO_KEEP = 90

_DATE_ONLY = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def parse_date_bound(value: Optional[str], *, end: bool = False) -> Optional[datetime]:
    """
    Parse a startDate/endDate query value. End bounds cover the whole day
    (23:59:59.999999) so a plain date is inclusive.
    """
    if not value:
        return None
    raw = value.strip()
    try:
        if _DATE_ONLY.match(raw):
            parsed = datetime.combine(date.fromisoformat(raw), time.min)
        else:
            parsed = datetime.fromisoformat(raw.replace("Z", "+00:00"))
    except ValueError as e:
        raise ValidationError(f"Invalid date: {value}") from e
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    if end:
        parsed = parsed.replace(hour=23, minute=59, second=59, microsecond=999999)
    return parsed


class AuditLog:
    def __init__(self, path: str, max_entries: int = MAX_ENTRIES, clock: Callable[[], datetime] = utcnow):
        self.path = path
        self.max_entries = max_entries
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: Optional[List[AuditEntry]] = None

    # ------------------------------------------------------------------
    # persistence
    # ------------------------------------------------------------------
    def _load_locked(self) -> List[AuditEntry]:
        if self._entries is not None:
            return self._entries
        try:
            raw = read_json(self.path)
        except (OSError, ValueError) as e:
            logger.error(f"Error reading change logs from {self.path}: {e}",
                         extra={"operation": "load", "target": self.path})
            raise PersistenceError("load", self.path, e) from e
        if raw is None:
            raw = []
        if not isinstance(raw, list):
            raise PersistenceError("load", self.path, ValueError("expected a JSON array"))
        try:
            self._entries = [AuditEntry.model_validate(item) for item in raw]
        except PydanticValidationError as e:
            logger.error(f"Malformed change log entry in {self.path}: {e}",
                         extra={"operation": "load", "target": self.path})
            raise PersistenceError("load", self.path, e) from e
        logger.info(f"Loaded {len(self._entries)} change log entries from {self.path}")
        return self._entries

    def _persist_locked(self, entries: List[AuditEntry], operation: str) -> None:
        try:
            write_json_atomic(self.path, [e.to_json_dict() for e in entries])
        except (OSError, TypeError, ValueError) as e:
            logger.error(f"Error writing change logs to {self.path}: {e}",
                         extra={"operation": operation, "target": self.path})
            raise PersistenceError(operation, self.path, e) from e
        # memory follows disk only after the write succeeded
        self._entries = entries

    # ------------------------------------------------------------------
    # operations
    # ------------------------------------------------------------------
    def append(self, entry: AuditEntryIn) -> AuditEntry:
        with self._lock:
            entries = self._load_locked()
            now = self._clock()
            if entries and entries[-1].timestamp > now:
                # clock stepped back; keep appends ordered
                now = entries[-1].timestamp
            new_entry = AuditEntry(
                **entry.model_dump(),
                id=f"{int(now.timestamp() * 1000)}-{uuid.uuid4().hex[:9]}",
                timestamp=now,
            )
            updated = entries + [new_entry]
            if len(updated) > self.max_entries:
                updated = updated[-self.max_entries:]
            self._persist_locked(updated, "append")

        logger.info(
            f"New change log entry: {new_entry.action.value} {new_entry.entity.value} "
            f"by {new_entry.username}"
        )
        return new_entry

    def query(
        self,
        filters: Optional[AuditFilters] = None,
        limit: int = DEFAULT_LIMIT,
        offset: int = 0,
    ) -> AuditPage:
        if limit < 0 or offset < 0:
            raise ValidationError("limit and offset must be non-negative")
        filters = filters or AuditFilters()

        with self._lock:
            entries = list(self._load_locked())

        def keep(e: AuditEntry) -> bool:
            if filters.user_id and e.user_id != filters.user_id:
                return False
            if filters.action and e.action != filters.action:
                return False
            if filters.entity and e.entity != filters.entity:
                return False
            if filters.start_date and e.timestamp < filters.start_date:
                return False
            if filters.end_date and e.timestamp > filters.end_date:
                return False
            return True

        # newest first; on equal timestamps the later append comes first
        filtered = [e for e in reversed(entries) if keep(e)]
        filtered.sort(key=lambda e: e.timestamp, reverse=True)

        page = filtered[offset:offset + limit]
        return AuditPage(
            entries=page,
            total=len(filtered),
            limit=limit,
            offset=offset,
            has_more=offset + limit < len(filtered),
        )

    def prune(self, days_to_keep: Optional[int] = None) -> PruneResult:
        if days_to_keep is None:
            days_to_keep = DEFAULT_DAYS_TO_KEEP
        if days_to_keep < 0:
            raise ValidationError("daysToKeep must be non-negative")

        with self._lock:
            entries = self._load_locked()
            cutoff = self._clock() - timedelta(days=days_to_keep)
            kept = [e for e in entries if e.timestamp >= cutoff]
            removed = len(entries) - len(kept)
            if removed:
                self._persist_locked(kept, "prune")

        logger.info(f"Removed {removed} change log entries older than {days_to_keep} days")
        return PruneResult(removed_count=removed, remaining_count=len(kept))

    def count(self) -> int:
        with self._lock:
            return len(self._load_locked())
