"""
Storage Backend Module

Record stores for loan rows and plan penalty tiers. Records are JSON
documents keyed by id, with money kept as Decimal strings. Every record
carries an integer ``version`` so writers can update it with a single
compare-and-set instead of read-modify-write.
"""

from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Any, Union
from datetime import datetime, timezone
from pathlib import Path
import sqlite3
import json
import threading
import logging

from .exceptions import LoanNotFoundError, StaleWriteError

logger = logging.getLogger(__name__)

VERSION_FIELD = 'version'


def _copy(record: Dict[str, Any]) -> Dict[str, Any]:
    """Detach a record from the store (JSON round trip also stringifies Decimals)"""
    return json.loads(json.dumps(record, default=str))


class StorageInterface(ABC):
    """Abstract interface for storage backends"""

    @abstractmethod
    def save(self, table: str, record_id: str, data: Dict[str, Any]) -> None:
        """Insert or overwrite a record"""
        pass

    @abstractmethod
    def load(self, table: str, record_id: str) -> Optional[Dict[str, Any]]:
        """Load a record, None when absent"""
        pass

    @abstractmethod
    def load_all(self, table: str) -> List[Dict[str, Any]]:
        pass

    @abstractmethod
    def update_if_version(
        self,
        table: str,
        record_id: str,
        expected_version: int,
        changes: Dict[str, Any]
    ) -> Dict[str, Any]:
        """
        Merge changes into a record only if its version is unchanged

        The check and the write happen as one atomic step. On success the
        stored version is incremented.

        Args:
            table: Table name
            record_id: Record to update
            expected_version: Version the caller read
            changes: Top-level fields to overwrite

        Returns:
            The updated record

        Raises:
            LoanNotFoundError: If the record does not exist
            StaleWriteError: If the stored version differs from expected_version
        """
        pass

    def close(self) -> None:
        """Release backend resources (default no-op)"""
        pass


class InMemoryStorage(StorageInterface):
    """In-memory storage implementation for testing"""

    def __init__(self):
        self._tables: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self._lock = threading.RLock()

    def _table(self, table: str) -> Dict[str, Dict[str, Any]]:
        return self._tables.setdefault(table, {})

    def save(self, table: str, record_id: str, data: Dict[str, Any]) -> None:
        with self._lock:
            record = _copy(data)
            record.setdefault(VERSION_FIELD, 0)
            self._table(table)[record_id] = record

    def load(self, table: str, record_id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            record = self._table(table).get(record_id)
            return _copy(record) if record is not None else None

    def load_all(self, table: str) -> List[Dict[str, Any]]:
        with self._lock:
            return [_copy(record) for record in self._table(table).values()]

    def update_if_version(
        self,
        table: str,
        record_id: str,
        expected_version: int,
        changes: Dict[str, Any]
    ) -> Dict[str, Any]:
        with self._lock:
            current = self._table(table).get(record_id)
            if current is None:
                raise LoanNotFoundError(f"{table} record {record_id} not found")

            stored_version = current.get(VERSION_FIELD, 0)
            if stored_version != expected_version:
                raise StaleWriteError(
                    f"{table} record {record_id} is at version {stored_version}, "
                    f"expected {expected_version}"
                )

            updated = dict(current)
            updated.update(_copy(changes))
            updated[VERSION_FIELD] = stored_version + 1
            self._table(table)[record_id] = updated
            return _copy(updated)


class SQLiteStorage(StorageInterface):
    """SQLite storage implementation for persistence"""

    def __init__(self, db_path: Union[str, Path] = ":memory:"):
        self.db_path = str(db_path)
        self._connection = sqlite3.connect(self.db_path, check_same_thread=False, isolation_level='DEFERRED')
        self._connection.row_factory = sqlite3.Row
        self._lock = threading.RLock()
        self._known_tables = set()

        if self.db_path != ":memory:":
            with self._lock:
                self._connection.execute("PRAGMA journal_mode = WAL")
                self._connection.execute("PRAGMA synchronous = NORMAL")
                self._connection.commit()

    def _ensure_table(self, table: str) -> None:
        if table in self._known_tables:
            return
        with self._lock:
            self._connection.execute(f"""
                CREATE TABLE IF NOT EXISTS {table} (
                    id TEXT PRIMARY KEY,
                    data TEXT NOT NULL,
                    version INTEGER NOT NULL DEFAULT 0,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
            """)
            self._connection.commit()
            self._known_tables.add(table)

    @staticmethod
    def _decode(row: sqlite3.Row) -> Dict[str, Any]:
        record = json.loads(row['data'])
        # The column is authoritative for the version
        record[VERSION_FIELD] = row['version']
        return record

    def save(self, table: str, record_id: str, data: Dict[str, Any]) -> None:
        with self._lock:
            self._ensure_table(table)
            record = _copy(data)
            version = int(record.setdefault(VERSION_FIELD, 0))
            now = datetime.now(timezone.utc).isoformat()

            self._connection.execute(f"""
                INSERT INTO {table} (id, data, version, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    data = excluded.data,
                    version = excluded.version,
                    updated_at = excluded.updated_at
            """, (record_id, json.dumps(record), version, now, now))
            self._connection.commit()

    def load(self, table: str, record_id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            self._ensure_table(table)
            row = self._connection.execute(
                f"SELECT data, version FROM {table} WHERE id = ?", (record_id,)
            ).fetchone()
            return self._decode(row) if row else None

    def load_all(self, table: str) -> List[Dict[str, Any]]:
        with self._lock:
            self._ensure_table(table)
            cursor = self._connection.execute(
                f"SELECT data, version FROM {table} ORDER BY created_at, id"
            )
            return [self._decode(row) for row in cursor.fetchall()]

    def update_if_version(
        self,
        table: str,
        record_id: str,
        expected_version: int,
        changes: Dict[str, Any]
    ) -> Dict[str, Any]:
        with self._lock:
            current = self.load(table, record_id)
            if current is None:
                raise LoanNotFoundError(f"{table} record {record_id} not found")

            updated = dict(current)
            updated.update(_copy(changes))
            updated[VERSION_FIELD] = expected_version + 1
            now = datetime.now(timezone.utc).isoformat()

            # Conditional UPDATE: a concurrent writer that bumped the version wins
            cursor = self._connection.execute(f"""
                UPDATE {table}
                SET data = ?, version = ?, updated_at = ?
                WHERE id = ? AND version = ?
            """, (json.dumps(updated), expected_version + 1, now, record_id, expected_version))
            self._connection.commit()

            if cursor.rowcount != 1:
                raise StaleWriteError(
                    f"{table} record {record_id} is at version {current.get(VERSION_FIELD)}, "
                    f"expected {expected_version}"
                )
            return updated

    def close(self) -> None:
        with self._lock:
            if self._connection:
                self._connection.close()
                self._connection = None


def create_storage(settings=None) -> StorageInterface:
    """
    Build the storage backend named by configuration

    ``database_path`` of ":memory:" gives an InMemoryStorage, anything else
    a SQLiteStorage at that path.
    """
    if settings is None:
        from .config import get_config
        settings = get_config()

    if settings.database_path == ":memory:":
        logger.info("Using in-memory storage")
        return InMemoryStorage()

    logger.info("Using SQLite storage at %s", settings.database_path)
    return SQLiteStorage(settings.database_path)
