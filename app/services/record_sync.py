"""
Record synchronizer over the shared dataset.

Conflict policy is last-writer-wins at whole-snapshot granularity: ``push``
replaces everything the candidate carries, no field merge and no version
check. Two clients pushing at once means one of them silently loses; record
id uniqueness is the client's job.

``merge`` is a separate, explicit operation (id-based add / newer-wins) used by
clients that want to contribute records without overwriting others.
"""
import logging
import threading
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from app.core.errors import NotFoundError
from app.schemas import CompanySettings, DatasetSnapshot, utcnow
from app.services.sync_store import SyncStore

logger = logging.getLogger("record_sync")


def _parse_ts(value: Any) -> Optional[datetime]:
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, str) and value:
        try:
            dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
    else:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def record_counts(snapshot: DatasetSnapshot) -> Dict[str, int]:
    return {"tenders": len(snapshot.tenders), "users": len(snapshot.users)}


class RecordSynchronizer:
    def __init__(self, store: SyncStore, clock: Callable[[], datetime] = utcnow):
        self.store = store
        self._clock = clock
        # serializes read-modify-write of the snapshot file
        self._write_lock = threading.Lock()

    def pull(self) -> DatasetSnapshot:
        return self.store.load()

    def push(self, candidate: DatasetSnapshot, source: Optional[str]) -> DatasetSnapshot:
        """Replace the stored snapshot with ``candidate`` (stamped)."""
        with self._write_lock:
            return self._write(candidate, source)

    def push_partial(
        self,
        source: Optional[str],
        tenders: Optional[List[Dict[str, Any]]] = None,
        users: Optional[List[Dict[str, Any]]] = None,
        files: Optional[List[Dict[str, Any]]] = None,
        settings: Optional[CompanySettings] = None,
    ) -> DatasetSnapshot:
        """
        Push from an HTTP body where collections may be omitted.
        Omitted (None) parts keep their stored value; supplied parts replace it.
        """
        with self._write_lock:
            current = self.store.load()
            candidate = DatasetSnapshot(
                tenders=tenders if tenders is not None else current.tenders,
                users=users if users is not None else current.users,
                files=files if files is not None else current.files,
                settings=settings if settings is not None else current.settings,
                version=current.version,
            )
            return self._write(candidate, source)

    def merge(
        self,
        tenders: Optional[List[Dict[str, Any]]] = None,
        users: Optional[List[Dict[str, Any]]] = None,
    ) -> DatasetSnapshot:
        """Add unknown records; replace a tender only when the incoming one is newer."""
        with self._write_lock:
            current = self.store.load()
            merged_tenders = [dict(t) for t in current.tenders]
            merged_users = [dict(u) for u in current.users]

            index = {t.get("id"): i for i, t in enumerate(merged_tenders)}
            for tender in tenders or []:
                pos = index.get(tender.get("id"))
                if pos is None:
                    index[tender.get("id")] = len(merged_tenders)
                    merged_tenders.append(tender)
                    continue
                incoming = _parse_ts(tender.get("updatedAt"))
                existing = _parse_ts(merged_tenders[pos].get("updatedAt"))
                if incoming and existing and incoming > existing:
                    merged_tenders[pos] = tender

            known_users = {u.get("id") for u in merged_users}
            for user in users or []:
                if user.get("id") not in known_users:
                    known_users.add(user.get("id"))
                    merged_users.append(user)

            candidate = current.model_copy(
                update={"tenders": merged_tenders, "users": merged_users}
            )
            return self._write(candidate, "merge")

    def set_company_logo(self, logo: str) -> DatasetSnapshot:
        with self._write_lock:
            current = self.store.load()
            settings = current.settings.model_copy(
                update={"company_logo": logo, "last_updated": self._clock()}
            )
            return self._write(current.model_copy(update={"settings": settings}), "company-logo")

    def set_user_password(self, username: str, password: str) -> DatasetSnapshot:
        with self._write_lock:
            current = self.store.load()
            users = [dict(u) for u in current.users]
            for user in users:
                if user.get("username") == username:
                    user["password"] = password
                    break
            else:
                raise NotFoundError(f"User {username} not found")
            return self._write(current.model_copy(update={"users": users}), "password")

    def _write(self, candidate: DatasetSnapshot, source: Optional[str]) -> DatasetSnapshot:
        stamped = candidate.model_copy(
            update={"last_updated": self._clock(), "update_source": source or "unknown"}
        )
        self.store.save(stamped)
        logger.info(
            f"Dataset replaced by {stamped.update_source}: "
            f"{len(stamped.tenders)} tenders, {len(stamped.users)} users",
            extra={"source": stamped.update_source},
        )
        return stamped
