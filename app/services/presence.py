"""
In-memory registry of who is online.

Presence is ephemeral: nothing is persisted and a restart empties the
registry. Every read and write sweeps entries idle for longer than the TTL.
"""
import logging
import threading
from datetime import datetime, timedelta
from typing import Callable, Dict, List

from app.schemas import PresenceEntry, PresenceUserIn, utcnow

logger = logging.getLogger("presence")

PRESENCE_TTL_SECONDS = 5 * 60


class PresenceTracker:
    def __init__(self, ttl_seconds: int = PRESENCE_TTL_SECONDS, clock: Callable[[], datetime] = utcnow):
        self.ttl = timedelta(seconds=ttl_seconds)
        self._clock = clock
        self._entries: Dict[str, PresenceEntry] = {}
        self._lock = threading.Lock()

    def heartbeat(self, user: PresenceUserIn) -> PresenceEntry:
        """Insert or refresh ``user``; entries are replaced whole, never patched."""
        with self._lock:
            now = self._clock()
            entry = PresenceEntry(
                user_id=user.id,
                username=user.username,
                display_name=user.name,
                role=user.role,
                last_activity=now,
            )
            self._entries[entry.user_id] = entry
            self._sweep_locked(now)
        logger.debug(f"Heartbeat: {user.username} - Total online: {len(self._entries)}")
        return entry

    def logout(self, user_id: str) -> bool:
        with self._lock:
            removed = self._entries.pop(user_id, None) is not None
            self._sweep_locked(self._clock())
        if removed:
            logger.info(f"User logout: {user_id}", extra={"user_id": user_id})
        return removed

    def sweep(self) -> int:
        with self._lock:
            return self._sweep_locked(self._clock())

    def list(self) -> List[PresenceEntry]:
        with self._lock:
            self._sweep_locked(self._clock())
            return list(self._entries.values())

    def count(self) -> int:
        return len(self.list())

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def _sweep_locked(self, now: datetime) -> int:
        expired = [uid for uid, e in self._entries.items() if now - e.last_activity > self.ttl]
        for uid in expired:
            del self._entries[uid]
        if expired:
            logger.info(f"Presence sweep removed {len(expired)} idle user(s)")
        return len(expired)
