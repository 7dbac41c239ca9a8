"""
Tests for storage backends and nested transaction support
"""

import pytest

from custody_ledger.storage import (
    InMemoryStorage, SQLiteStorage, StorageInterface, create_storage
)


@pytest.fixture(params=["memory", "sqlite"])
def storage(request, tmp_path):
    if request.param == "memory":
        backend = InMemoryStorage()
    else:
        backend = SQLiteStorage(tmp_path / "test.db")
    yield backend
    backend.close()


class TestBasicOperations:
    """Test CRUD operations on every backend"""

    def test_save_and_load(self, storage):
        storage.save("accounts", "a1", {"identity": "a1", "balance": "10"})

        assert storage.load("accounts", "a1") == {"identity": "a1", "balance": "10"}
        assert storage.load("accounts", "missing") is None

    def test_overwrite(self, storage):
        storage.save("accounts", "a1", {"balance": "10"})
        storage.save("accounts", "a1", {"balance": "20"})

        assert storage.load("accounts", "a1") == {"balance": "20"}
        assert len(storage.load_all("accounts")) == 1

    def test_find_and_load_all(self, storage):
        storage.save("accounts", "a1", {"ledger": "x", "balance": "1"})
        storage.save("accounts", "a2", {"ledger": "y", "balance": "2"})
        storage.save("accounts", "a3", {"ledger": "x", "balance": "3"})

        assert len(storage.load_all("accounts")) == 3
        found = storage.find("accounts", {"ledger": "x"})
        assert sorted(r["balance"] for r in found) == ["1", "3"]

    def test_loaded_records_are_copies(self, storage):
        """Test callers cannot mutate stored data in place"""
        storage.save("accounts", "a1", {"balance": "1"})
        record = storage.load("accounts", "a1")
        record["balance"] = "999"

        assert storage.load("accounts", "a1") == {"balance": "1"}


class TestAtomic:
    """Test nested all-or-nothing frames"""

    def test_commit(self, storage):
        with storage.atomic():
            storage.save("t", "k", {"v": 1})

        assert storage.load("t", "k") == {"v": 1}
        assert storage.transaction_depth == 0

    def test_rollback_on_exception(self, storage):
        storage.save("t", "k", {"v": 1})

        with pytest.raises(RuntimeError):
            with storage.atomic():
                storage.save("t", "k", {"v": 2})
                storage.save("t", "other", {"v": 3})
                raise RuntimeError("abort")

        assert storage.load("t", "k") == {"v": 1}
        assert storage.load("t", "other") is None
        assert storage.transaction_depth == 0

    def test_inner_rollback_keeps_outer(self, storage):
        """Test a failed inner frame leaves the outer frame's work alone"""
        with storage.atomic():
            storage.save("t", "outer", {"v": 1})
            try:
                with storage.atomic():
                    assert storage.transaction_depth == 2
                    storage.save("t", "inner", {"v": 2})
                    raise ValueError("inner fails")
            except ValueError:
                pass
            storage.save("t", "after", {"v": 3})

        assert storage.load("t", "outer") == {"v": 1}
        assert storage.load("t", "inner") is None
        assert storage.load("t", "after") == {"v": 3}

    def test_outer_rollback_discards_committed_inner(self, storage):
        """Test an inner frame's commit is undone by its parent's rollback"""
        with pytest.raises(RuntimeError):
            with storage.atomic():
                with storage.atomic():
                    storage.save("t", "inner", {"v": 2})
                raise RuntimeError("outer fails")

        assert storage.load("t", "inner") is None

    def test_base_exception_rolls_back_every_frame(self, storage):
        """Test KeyboardInterrupt unwinds nested frames and their writes"""
        storage.save("t", "k", {"v": 1})

        with pytest.raises(KeyboardInterrupt):
            with storage.atomic():
                storage.save("t", "k", {"v": 2})
                with storage.atomic():
                    storage.save("t", "inner", {"v": 3})
                    raise KeyboardInterrupt()

        assert storage.transaction_depth == 0
        assert storage.load("t", "k") == {"v": 1}
        assert storage.load("t", "inner") is None

        with storage.atomic():
            storage.save("t", "later", {"v": 4})
        assert storage.load("t", "later") == {"v": 4}

    def test_rollback_restores_overwritten_keys(self, storage):
        """Test keys written twice in nested frames come back to their first value"""
        storage.save("t", "k", {"v": 1})

        with pytest.raises(RuntimeError):
            with storage.atomic():
                storage.save("t", "k", {"v": 2})
                with storage.atomic():
                    storage.save("t", "k", {"v": 3})
                raise RuntimeError("abort")

        assert storage.load("t", "k") == {"v": 1}
        assert storage.load_all("t") == [{"v": 1}]


class TestCommitCallbacks:
    """Test work deferred until the outermost frame commits"""

    def test_runs_immediately_outside_a_frame(self, storage):
        calls = []
        storage.on_commit(lambda: calls.append("now"))
        assert calls == ["now"]

    def test_waits_for_outermost_commit(self, storage):
        calls = []
        with storage.atomic():
            with storage.atomic():
                storage.on_commit(lambda: calls.append("inner"))
            storage.on_commit(lambda: calls.append("outer"))
            assert calls == []

        assert calls == ["inner", "outer"]

    def test_dropped_when_inner_frame_rolls_back(self, storage):
        calls = []
        with storage.atomic():
            try:
                with storage.atomic():
                    storage.on_commit(lambda: calls.append("inner"))
                    raise ValueError("inner fails")
            except ValueError:
                pass
            storage.on_commit(lambda: calls.append("outer"))

        assert calls == ["outer"]

    def test_dropped_when_enclosing_frame_rolls_back(self, storage):
        """Test an inner frame's commit does not release its callbacks early"""
        calls = []
        with pytest.raises(RuntimeError):
            with storage.atomic():
                with storage.atomic():
                    storage.on_commit(lambda: calls.append("inner"))
                raise RuntimeError("outer fails")

        assert calls == []


class TestCreateStorage:
    """Test building backends from URLs"""

    def test_memory_url(self):
        assert isinstance(create_storage("memory://"), InMemoryStorage)

    def test_sqlite_url(self, tmp_path):
        storage = create_storage(f"sqlite:///{tmp_path / 'x.db'}")
        assert isinstance(storage, SQLiteStorage)
        assert isinstance(storage, StorageInterface)
        storage.close()

    def test_unsupported_url(self):
        with pytest.raises(ValueError, match="Unsupported"):
            create_storage("postgresql://localhost/db")
