"""Unit tests for the file store, session store and identifier generator."""
import threading

import pytest

from filerelay.errors import FileIdCollision, StorageFailure
from filerelay.files.schemas import FileRecord
from filerelay.files.store import FileStore
from filerelay.ids import new_file_id, new_session_id
from filerelay.sessions.store import SessionStore

from conftest import FakeClock


def _record(file_id=None, session_id="s1", upload_time=1000.0, ttl=100.0) -> FileRecord:
    file_id = file_id or new_file_id()
    return FileRecord(
        id=file_id,
        original_name="a.txt",
        storage_key=f"{file_id}.txt",
        size=10,
        upload_time=upload_time,
        expiry_time=upload_time + ttl,
        session_id=session_id,
    )


class TestIds:
    def test_file_id_shape(self):
        file_id = new_file_id()
        assert len(file_id) == 32
        assert int(file_id, 16) >= 0

    def test_session_id_is_longer(self):
        session_id = new_session_id()
        assert len(session_id) == 64
        assert int(session_id, 16) >= 0

    def test_ids_differ(self):
        assert len({new_file_id() for _ in range(100)}) == 100


class TestFileStore:
    def test_put_and_get(self):
        store = FileStore()
        record = _record()
        store.put(record)
        assert store.get(record.id) is record
        assert record.id in store
        assert len(store) == 1

    def test_put_refuses_to_overwrite(self):
        store = FileStore()
        record = _record()
        store.put(record)
        with pytest.raises(FileIdCollision):
            store.put(_record(file_id=record.id))
        assert issubclass(FileIdCollision, StorageFailure)
        assert store.get(record.id) is record

    def test_get_missing(self):
        assert FileStore().get("nope") is None

    def test_pop_is_exactly_once(self):
        store = FileStore()
        record = _record()
        store.put(record)
        assert store.pop(record.id) is record
        assert store.pop(record.id) is None

    def test_concurrent_pop_has_one_winner(self):
        store = FileStore()
        record = _record()
        store.put(record)
        winners = []
        barrier = threading.Barrier(8)

        def worker():
            barrier.wait()
            if store.pop(record.id) is not None:
                winners.append(1)

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert winners == [1]

    def test_claim_download_once(self):
        store = FileStore()
        record = _record()
        store.put(record)
        assert store.claim_download(record.id) is record
        assert record.downloaded is True
        assert store.claim_download(record.id) is None

    def test_release_download(self):
        store = FileStore()
        record = _record()
        store.put(record)
        store.claim_download(record.id)
        store.release_download(record.id)
        assert record.downloaded is False
        assert store.claim_download(record.id) is record

    def test_release_missing_is_noop(self):
        FileStore().release_download("gone")

    def test_list_by_session_filters_missing_and_foreign(self):
        store = FileStore()
        mine = _record(session_id="a")
        theirs = _record(session_id="b")
        store.put(mine)
        store.put(theirs)
        listed = store.list_by_session("a", [mine.id, theirs.id, "deleted-already"])
        assert listed == [mine]

    def test_expired(self):
        store = FileStore()
        old = _record(upload_time=0.0, ttl=10.0)
        fresh = _record(upload_time=100.0, ttl=10.0)
        store.put(old)
        store.put(fresh)
        assert store.expired(now=50.0) == [old]
        assert store.expired(now=10.0) == []


class TestSessionStore:
    def test_get_or_create_new(self):
        store = SessionStore()
        session_id, is_new = store.get_or_create(None)
        assert is_new
        assert len(session_id) == 64
        assert store.exists(session_id)

    def test_get_or_create_known(self):
        store = SessionStore()
        session_id, _ = store.get_or_create(None)
        assert store.get_or_create(session_id) == (session_id, False)

    def test_unknown_token_gets_fresh_session(self):
        store = SessionStore()
        session_id, is_new = store.get_or_create("forged-token")
        assert is_new
        assert session_id != "forged-token"

    def test_attach_and_detach(self):
        store = SessionStore()
        session_id, _ = store.get_or_create(None)
        assert store.attach_file(session_id, "f1")
        store.attach_file(session_id, "f2")
        store.attach_file(session_id, "f1")
        assert store.file_ids(session_id) == ["f1", "f2"]
        store.detach_file(session_id, "f1")
        store.detach_file(session_id, "f1")
        assert store.file_ids(session_id) == ["f2"]

    def test_attach_to_missing_session(self):
        store = SessionStore()
        assert store.attach_file("ghost", "f1") is False
        store.detach_file("ghost", "f1")
        assert store.file_ids("ghost") == []

    def test_reset_returns_owned_files_and_replacement(self):
        store = SessionStore()
        session_id, _ = store.get_or_create(None)
        store.attach_file(session_id, "f1")
        store.attach_file(session_id, "f2")
        owned, new_id = store.reset(session_id)
        assert owned == ["f1", "f2"]
        assert new_id != session_id
        assert not store.exists(session_id)
        assert store.exists(new_id)
        assert store.file_ids(new_id) == []

    def test_reset_unknown_session(self):
        store = SessionStore()
        owned, new_id = store.reset("unknown")
        assert owned == []
        assert store.exists(new_id)

    def test_sweep_stale_only_removes_old_empty_sessions(self):
        clock = FakeClock(start=0.0)
        store = SessionStore(stale_after_seconds=100, clock=clock)
        empty_old, _ = store.get_or_create(None)
        busy_old, _ = store.get_or_create(None)
        store.attach_file(busy_old, "f1")
        clock.advance(50)
        empty_young, _ = store.get_or_create(None)
        clock.advance(51)

        assert store.sweep_stale() == [empty_old]
        assert store.exists(busy_old)
        assert store.exists(empty_young)

    def test_sweep_stale_after_files_detached(self):
        clock = FakeClock(start=0.0)
        store = SessionStore(stale_after_seconds=10, clock=clock)
        session_id, _ = store.get_or_create(None)
        store.attach_file(session_id, "f1")
        clock.advance(11)
        assert store.sweep_stale() == []
        store.detach_file(session_id, "f1")
        assert store.sweep_stale() == [session_id]
