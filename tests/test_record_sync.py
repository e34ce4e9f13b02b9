"""Tests for the record synchronizer (last-writer-wins)."""
import threading
from concurrent.futures import ThreadPoolExecutor

import pytest

from app.core.errors import NotFoundError
from app.schemas import CompanySettings, DatasetSnapshot
from app.services.record_sync import RecordSynchronizer, record_counts
from app.services.sync_store import SyncStore, default_company_settings


@pytest.fixture
def sync(tmp_path, cfg, clock) -> RecordSynchronizer:
    store = SyncStore(str(tmp_path / "store.json"), default_company_settings(cfg))
    return RecordSynchronizer(store, clock=clock)


def _snapshot(*tender_ids, users=()):
    return DatasetSnapshot(
        tenders=[{"id": tid, "customerName": f"Customer {tid}"} for tid in tender_ids],
        users=[{"id": f"u-{name}", "username": name} for name in users],
        settings=CompanySettings(company_name="Mirage"),
    )


class TestPushPull:
    def test_pull_returns_what_was_pushed_with_stamps(self, sync: RecordSynchronizer, clock):
        candidate = _snapshot("a", "b", users=["alice"])
        clock.advance(minutes=3)

        sync.push(candidate, "t")

        expected = candidate.model_copy(update={"last_updated": clock.now, "update_source": "t"})
        assert sync.pull().to_json_dict() == expected.to_json_dict()

    def test_push_replaces_whole_snapshot(self, sync: RecordSynchronizer):
        sync.push(_snapshot("a", "b", users=["alice"]), "clientA")
        sync.push(_snapshot("c"), "clientB")

        snap = sync.pull()
        assert [t["id"] for t in snap.tenders] == ["c"]
        assert snap.users == []
        assert snap.update_source == "clientB"

    def test_missing_source_is_unknown(self, sync: RecordSynchronizer):
        assert sync.push(_snapshot("a"), None).update_source == "unknown"

    def test_duplicate_ids_are_not_rejected(self, sync: RecordSynchronizer):
        # uniqueness belongs to the client building the candidate
        sync.push(DatasetSnapshot(tenders=[{"id": "a"}, {"id": "a"}]), "sloppy")
        assert len(sync.pull().tenders) == 2

    def test_push_partial_keeps_omitted_collections(self, sync: RecordSynchronizer):
        sync.push(_snapshot("a", users=["alice"]), "seed")

        snap = sync.push_partial("clientB", tenders=[{"id": "z"}])

        assert [t["id"] for t in snap.tenders] == ["z"]
        assert [u["username"] for u in snap.users] == ["alice"]
        assert snap.settings.company_name == "Mirage"
        assert snap.update_source == "clientB"

    def test_push_partial_empty_list_clears(self, sync: RecordSynchronizer):
        sync.push(_snapshot("a", users=["alice"]), "seed")
        snap = sync.push_partial("clientB", users=[])
        assert snap.users == []
        assert len(snap.tenders) == 1

    def test_record_counts(self):
        assert record_counts(_snapshot("a", "b", users=["x"])) == {"tenders": 2, "users": 1}


class TestConcurrentPush:
    def test_two_clients_race_one_wins_whole(self, sync: RecordSynchronizer):
        candidate_a = _snapshot("a", "b")
        candidate_b = _snapshot("c")
        barrier = threading.Barrier(2)

        def push(candidate, source):
            barrier.wait()
            sync.push(candidate, source)

        with ThreadPoolExecutor(max_workers=2) as pool:
            futures = [
                pool.submit(push, candidate_a, "clientA"),
                pool.submit(push, candidate_b, "clientB"),
            ]
            for f in futures:
                f.result()

        final = sync.pull()
        winners = {"clientA": candidate_a, "clientB": candidate_b}
        assert final.update_source in winners
        assert final.tenders == winners[final.update_source].tenders

    def test_many_pushes_never_tear(self, sync: RecordSynchronizer):
        candidates = {
            f"client{i}": _snapshot(*[f"{i}-{n}" for n in range(i % 5 + 1)], users=[f"user{i}"])
            for i in range(16)
        }

        with ThreadPoolExecutor(max_workers=8) as pool:
            for f in [pool.submit(sync.push, c, src) for src, c in candidates.items()]:
                f.result()

        final = sync.pull()
        chosen = candidates[final.update_source]
        assert final.tenders == chosen.tenders
        assert final.users == chosen.users


class TestMerge:
    def test_adds_unknown_and_prefers_newer(self, sync: RecordSynchronizer):
        sync.push(
            DatasetSnapshot(
                tenders=[
                    {"id": "a", "v": 1, "updatedAt": "2025-01-10T00:00:00Z"},
                    {"id": "b", "v": 1, "updatedAt": "2025-01-10T00:00:00Z"},
                ],
                users=[{"id": "u1", "username": "alice"}],
            ),
            "seed",
        )

        snap = sync.merge(
            tenders=[
                {"id": "a", "v": 2, "updatedAt": "2025-01-12T00:00:00Z"},  # newer
                {"id": "b", "v": 0, "updatedAt": "2025-01-01T00:00:00Z"},  # older
                {"id": "c", "v": 1, "updatedAt": "2025-01-01T00:00:00Z"},  # new
            ],
            users=[{"id": "u1", "username": "changed"}, {"id": "u2", "username": "bob"}],
        )

        by_id = {t["id"]: t for t in snap.tenders}
        assert by_id["a"]["v"] == 2
        assert by_id["b"]["v"] == 1
        assert by_id["c"]["v"] == 1
        assert [u["username"] for u in snap.users] == ["alice", "bob"]
        assert snap.update_source == "merge"
        assert sync.pull().to_json_dict() == snap.to_json_dict()

    def test_unparseable_timestamps_keep_stored(self, sync: RecordSynchronizer):
        sync.push(DatasetSnapshot(tenders=[{"id": "a", "v": 1, "updatedAt": "garbage"}]), "seed")
        snap = sync.merge(tenders=[{"id": "a", "v": 2, "updatedAt": "2025-01-12T00:00:00Z"}])
        assert snap.tenders[0]["v"] == 1


class TestSingletons:
    def test_set_company_logo(self, sync: RecordSynchronizer):
        sync.push(_snapshot("a"), "seed")
        snap = sync.set_company_logo("data:image/png;base64,AAAA")
        assert snap.settings.company_logo == "data:image/png;base64,AAAA"
        assert snap.update_source == "company-logo"
        # everything else untouched
        assert [t["id"] for t in sync.pull().tenders] == ["a"]

    def test_set_user_password(self, sync: RecordSynchronizer):
        sync.push(_snapshot(users=["alice", "bob"]), "seed")
        sync.set_user_password("bob", "s3cret")

        users = {u["username"]: u for u in sync.pull().users}
        assert users["bob"]["password"] == "s3cret"
        assert "password" not in users["alice"]

    def test_set_password_unknown_user(self, sync: RecordSynchronizer):
        sync.push(_snapshot(users=["alice"]), "seed")
        with pytest.raises(NotFoundError):
            sync.set_user_password("mallory", "x")
        assert sync.pull().update_source == "seed"
