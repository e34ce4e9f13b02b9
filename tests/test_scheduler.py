"""Tests for the recurring maintenance jobs."""
from app.core.errors import PersistenceError
from app.core.scheduler import build_scheduler, job_changelog_retention, job_presence_sweep
from app.schemas import AuditAction, AuditEntity, AuditEntryIn, PresenceUserIn
from app.services.audit_log import AuditLog
from app.services.presence import PresenceTracker


def test_build_scheduler_registers_sweep_only_by_default(cfg, clock, tmp_path):
    scheduler = build_scheduler(cfg, PresenceTracker(clock=clock), AuditLog(str(tmp_path / "c.json")))
    assert [job.id for job in scheduler.get_jobs()] == ["presence_sweep"]
    assert scheduler.running is False


def test_build_scheduler_with_retention(cfg, clock, tmp_path):
    cfg.CHANGELOG_RETENTION_DAYS = 30
    scheduler = build_scheduler(cfg, PresenceTracker(clock=clock), AuditLog(str(tmp_path / "c.json")))
    assert {job.id for job in scheduler.get_jobs()} == {"presence_sweep", "changelog_retention"}


def test_presence_sweep_job(clock):
    presence = PresenceTracker(ttl_seconds=60, clock=clock)
    presence.heartbeat(PresenceUserIn(id="u1", username="alice"))
    clock.advance(seconds=120)
    assert job_presence_sweep(presence) == 1


def test_changelog_retention_job(tmp_path, clock):
    log = AuditLog(str(tmp_path / "c.json"), clock=clock)
    log.append(AuditEntryIn(user_id="u1", username="alice", action=AuditAction.VIEW, entity=AuditEntity.REPORT))
    clock.advance(days=31)
    assert job_changelog_retention(log, 30) == 1
    assert log.count() == 0


def test_changelog_retention_job_logs_failures():
    class BrokenLog:
        def prune(self, days):
            raise PersistenceError("prune", "changelog.json", OSError("disk gone"))

    assert job_changelog_retention(BrokenLog(), 30) == 0
