"""Tests for the in-memory presence registry."""
from concurrent.futures import ThreadPoolExecutor
from datetime import timedelta

from app.schemas import PresenceUserIn
from app.services.presence import PRESENCE_TTL_SECONDS, PresenceTracker


def _user(uid: str, **kw) -> PresenceUserIn:
    return PresenceUserIn(id=uid, username=kw.pop("username", uid), **kw)


def test_default_ttl_is_five_minutes():
    assert PRESENCE_TTL_SECONDS == 300
    assert PresenceTracker().ttl.total_seconds() == 300


def test_heartbeat_registers_user(clock):
    presence = PresenceTracker(clock=clock)
    entry = presence.heartbeat(_user("u1", name="Alice", role="admin"))

    assert entry.user_id == "u1"
    assert entry.display_name == "Alice"
    assert entry.role == "admin"
    assert entry.last_activity == clock.now
    assert entry.is_online is True
    assert [e.user_id for e in presence.list()] == ["u1"]


def test_entry_expires_after_ttl(clock):
    presence = PresenceTracker(clock=clock)
    presence.heartbeat(_user("u1"))

    clock.advance(seconds=299)
    assert presence.count() == 1

    clock.advance(seconds=2)
    assert presence.list() == []


def test_exactly_ttl_is_still_online(clock):
    presence = PresenceTracker(ttl_seconds=10, clock=clock)
    presence.heartbeat(_user("u1"))
    clock.advance(seconds=10)
    assert presence.count() == 1


def test_heartbeat_refreshes_and_replaces_entry(clock):
    presence = PresenceTracker(clock=clock)
    presence.heartbeat(_user("u1", name="Old Name"))
    clock.advance(seconds=200)
    presence.heartbeat(_user("u1", name="New Name"))
    clock.advance(seconds=200)

    entries = presence.list()
    assert len(entries) == 1
    assert entries[0].display_name == "New Name"
    assert entries[0].last_activity == clock.now - timedelta(seconds=200)


def test_heartbeat_sweeps_other_idle_users(clock):
    presence = PresenceTracker(clock=clock)
    presence.heartbeat(_user("idle"))
    clock.advance(minutes=10)
    presence.heartbeat(_user("active"))

    assert [e.user_id for e in presence.list()] == ["active"]


def test_logout(clock):
    presence = PresenceTracker(clock=clock)
    presence.heartbeat(_user("u1"))
    presence.heartbeat(_user("u2"))

    assert presence.logout("u1") is True
    assert presence.logout("u1") is False
    assert [e.user_id for e in presence.list()] == ["u2"]


def test_sweep_reports_removed(clock):
    presence = PresenceTracker(ttl_seconds=60, clock=clock)
    presence.heartbeat(_user("a"))
    presence.heartbeat(_user("b"))
    clock.advance(seconds=61)

    assert presence.sweep() == 2
    assert presence.sweep() == 0


def test_clear(clock):
    presence = PresenceTracker(clock=clock)
    presence.heartbeat(_user("a"))
    presence.clear()
    assert presence.count() == 0


def test_concurrent_heartbeats(clock):
    presence = PresenceTracker(clock=clock)
    with ThreadPoolExecutor(max_workers=8) as pool:
        for f in [pool.submit(presence.heartbeat, _user(f"u{i}")) for i in range(50)]:
            f.result()
    assert presence.count() == 50
