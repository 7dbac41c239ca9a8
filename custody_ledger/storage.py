"""
Storage Backend Module

Provides the abstract storage interface plus in-memory (testing) and SQLite
(persistence) implementations. Transactions nest: every ``atomic()`` frame
can be rolled back on its own without disturbing the enclosing frame, which
is what gives each ledger invocation its all-or-nothing outcome even when
invocations reenter one another.
"""

from abc import ABC, abstractmethod
from typing import Callable, Dict, List, Optional, Any, Tuple, Union
from decimal import Decimal
from datetime import datetime, timezone
import sqlite3
import json
import threading
from dataclasses import dataclass, asdict
from pathlib import Path
from contextlib import contextmanager


@dataclass
class StorageRecord:
    """Base class for all stored records"""
    id: str
    created_at: datetime
    updated_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for storage"""
        result = asdict(self)
        result['created_at'] = self.created_at.isoformat()
        result['updated_at'] = self.updated_at.isoformat()
        for key, value in result.items():
            if isinstance(value, Decimal):
                result[key] = str(value)
        return result


class StorageInterface(ABC):
    """Abstract interface for storage backends"""

    def __init__(self):
        # Held for the whole of an atomic frame; reentrant so nested frames
        # on the same thread are allowed
        self._lock = threading.RLock()
        self._depth = 0
        # One list of commit callbacks per open atomic frame
        self._on_commit: List[List[Callable[[], None]]] = []

    @property
    def lock(self) -> threading.RLock:
        """Lock serializing access to this storage"""
        return self._lock

    @property
    def transaction_depth(self) -> int:
        """Number of currently open atomic frames"""
        return self._depth

    @abstractmethod
    def save(self, table: str, record_id: str, data: Dict[str, Any]) -> None:
        """Save a record to storage"""
        pass

    @abstractmethod
    def load(self, table: str, record_id: str) -> Optional[Dict[str, Any]]:
        """Load a record from storage"""
        pass

    @abstractmethod
    def load_all(self, table: str) -> List[Dict[str, Any]]:
        """Load all records from a table"""
        pass

    @abstractmethod
    def find(self, table: str, filters: Dict[str, Any]) -> List[Dict[str, Any]]:
        """Find records matching filters"""
        pass

    @abstractmethod
    def close(self) -> None:
        """Close storage connection"""
        pass

    @abstractmethod
    def begin_transaction(self) -> None:
        """Open a (possibly nested) transaction frame"""
        pass

    @abstractmethod
    def commit(self) -> None:
        """Close the innermost frame, keeping its changes"""
        pass

    @abstractmethod
    def rollback(self) -> None:
        """Close the innermost frame, discarding its changes"""
        pass

    def on_commit(self, callback: Callable[[], None]) -> None:
        """
        Run ``callback`` once the outermost open frame has committed

        The callback is dropped if the current frame, or any frame around
        it, rolls back. Outside of any frame it runs immediately.
        """
        with self._lock:
            if self._on_commit:
                self._on_commit[-1].append(callback)
                return
        callback()

    @contextmanager
    def atomic(self):
        """
        Context manager for atomic operations

        Frames nest. Any exception, including KeyboardInterrupt and other
        BaseExceptions, discards everything done inside this frame
        (including inner frames that already committed) and is re-raised.
        """
        with self._lock:
            self.begin_transaction()
            self._on_commit.append([])
            committed = False
            try:
                yield
                self.commit()
                committed = True
            finally:
                callbacks = self._on_commit.pop()
                if not committed:
                    self.rollback()
                elif self._on_commit:
                    # Inner frame: callbacks wait for the enclosing frame
                    self._on_commit[-1].extend(callbacks)
                    callbacks = []

        for callback in callbacks:
            callback()


class InMemoryStorage(StorageInterface):
    """In-memory storage implementation for testing"""

    def __init__(self):
        super().__init__()
        self._data: Dict[str, Dict[str, Dict[str, Any]]] = {}
        # Per open frame: the value each touched key had before the frame
        # wrote it (None if it did not exist)
        self._undo: List[Dict[Tuple[str, str], Optional[Dict[str, Any]]]] = []

    @staticmethod
    def _copy(value):
        return json.loads(json.dumps(value, default=str))

    def _ensure_table(self, table: str) -> None:
        """Ensure table exists"""
        if table not in self._data:
            self._data[table] = {}

    def save(self, table: str, record_id: str, data: Dict[str, Any]) -> None:
        """Save a record to memory"""
        with self._lock:
            self._ensure_table(table)
            if self._undo:
                self._undo[-1].setdefault((table, record_id), self._data[table].get(record_id))
            # Deep copy to prevent external mutation
            self._data[table][record_id] = self._copy(data)

    def load(self, table: str, record_id: str) -> Optional[Dict[str, Any]]:
        """Load a record from memory"""
        with self._lock:
            self._ensure_table(table)
            record = self._data[table].get(record_id)
            if record:
                return self._copy(record)
            return None

    def load_all(self, table: str) -> List[Dict[str, Any]]:
        """Load all records from a table"""
        with self._lock:
            self._ensure_table(table)
            return [self._copy(record) for record in self._data[table].values()]

    def find(self, table: str, filters: Dict[str, Any]) -> List[Dict[str, Any]]:
        """Find records matching filters"""
        with self._lock:
            self._ensure_table(table)
            results = []
            for record in self._data[table].values():
                match = True
                for key, value in filters.items():
                    if key not in record or record[key] != value:
                        match = False
                        break
                if match:
                    results.append(self._copy(record))
            return results

    def begin_transaction(self) -> None:
        """Open an empty undo log"""
        with self._lock:
            self._undo.append({})
            self._depth += 1

    def commit(self) -> None:
        """Hand the innermost undo log to the enclosing frame"""
        with self._lock:
            if self._undo:
                undo = self._undo.pop()
                self._depth -= 1
                if self._undo:
                    parent = self._undo[-1]
                    for key, previous in undo.items():
                        parent.setdefault(key, previous)

    def rollback(self) -> None:
        """Restore every key the innermost frame wrote"""
        with self._lock:
            if self._undo:
                undo = self._undo.pop()
                self._depth -= 1
                for (table, record_id), previous in undo.items():
                    if previous is None:
                        self._data[table].pop(record_id, None)
                    else:
                        self._data[table][record_id] = previous

    def close(self) -> None:
        """Close storage (no-op for in-memory)"""
        pass


class SQLiteStorage(StorageInterface):
    """SQLite storage implementation for persistence"""

    def __init__(self, db_path: Union[str, Path] = ":memory:"):
        super().__init__()
        self.db_path = str(db_path)
        # Autocommit mode: transactions are driven explicitly with savepoints
        self._connection = sqlite3.connect(self.db_path, check_same_thread=False, isolation_level=None)
        self._connection.row_factory = sqlite3.Row

        # Enable WAL mode for better concurrent access
        if self.db_path != ":memory:":
            with self._lock:
                self._connection.execute("PRAGMA journal_mode = WAL")
                self._connection.execute("PRAGMA synchronous = NORMAL")

    def _ensure_table(self, table: str) -> None:
        """Ensure table exists with proper schema"""
        with self._lock:
            self._connection.execute(f"""
                CREATE TABLE IF NOT EXISTS {table} (
                    id TEXT PRIMARY KEY,
                    data TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
            """)

    def save(self, table: str, record_id: str, data: Dict[str, Any]) -> None:
        """Save a record to SQLite"""
        with self._lock:
            self._ensure_table(table)

            now = datetime.now(timezone.utc).isoformat()
            data_json = json.dumps(data, default=str)

            # Use INSERT OR REPLACE to handle updates
            self._connection.execute(f"""
                INSERT OR REPLACE INTO {table} (id, data, created_at, updated_at)
                VALUES (?, ?,
                    COALESCE((SELECT created_at FROM {table} WHERE id = ?), ?),
                    ?)
            """, (record_id, data_json, record_id, now, now))

    def load(self, table: str, record_id: str) -> Optional[Dict[str, Any]]:
        """Load a record from SQLite"""
        with self._lock:
            self._ensure_table(table)
            cursor = self._connection.execute(f"""
                SELECT data FROM {table} WHERE id = ?
            """, (record_id,))
            row = cursor.fetchone()
            if row:
                return json.loads(row['data'])
            return None

    def load_all(self, table: str) -> List[Dict[str, Any]]:
        """Load all records from a table"""
        with self._lock:
            self._ensure_table(table)
            cursor = self._connection.execute(f"""
                SELECT data FROM {table} ORDER BY rowid
            """)
            return [json.loads(row['data']) for row in cursor.fetchall()]

    def find(self, table: str, filters: Dict[str, Any]) -> List[Dict[str, Any]]:
        """Find records matching filters (simple JSON key matching)"""
        results = []
        for record in self.load_all(table):
            match = True
            for key, value in filters.items():
                if key not in record or record[key] != value:
                    match = False
                    break
            if match:
                results.append(record)
        return results

    def begin_transaction(self) -> None:
        """Open a savepoint; the outermost one starts the SQL transaction"""
        with self._lock:
            self._depth += 1
            self._connection.execute(f"SAVEPOINT frame_{self._depth}")

    def commit(self) -> None:
        """Release the innermost savepoint (commits when outermost)"""
        with self._lock:
            if self._depth:
                self._connection.execute(f"RELEASE SAVEPOINT frame_{self._depth}")
                self._depth -= 1

    def rollback(self) -> None:
        """Undo everything since the innermost savepoint"""
        with self._lock:
            if self._depth:
                self._connection.execute(f"ROLLBACK TO SAVEPOINT frame_{self._depth}")
                self._connection.execute(f"RELEASE SAVEPOINT frame_{self._depth}")
                self._depth -= 1

    def close(self) -> None:
        """Close SQLite connection"""
        with self._lock:
            if self._connection:
                self._connection.close()
                self._connection = None


def create_storage(database_url: str) -> StorageInterface:
    """
    Build a storage backend from a URL

    ``memory://`` gives InMemoryStorage, ``sqlite:///path`` (or
    ``sqlite://:memory:``) gives SQLiteStorage.
    """
    if database_url in ("memory://", "memory"):
        return InMemoryStorage()
    if database_url.startswith("sqlite:///"):
        return SQLiteStorage(database_url[len("sqlite:///"):])
    if database_url == "sqlite://:memory:":
        return SQLiteStorage(":memory:")
    raise ValueError(f"Unsupported database URL: {database_url}")
