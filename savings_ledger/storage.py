"""
Storage Backend Module

Provides the abstract storage capability used by the ledger and rule table,
with implementations for in-memory (testing, default) and SQLite
(persistence). Records cross this boundary as plain dicts; all monetary
values are stored as Decimal strings and dates as ISO strings.
"""

from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Any, Union
from datetime import datetime, timezone
from contextlib import contextmanager
from pathlib import Path
import sqlite3
import json
import threading

from .errors import StorageUnavailableError


def _sort_key(record: Dict[str, Any]):
    # ISO dates sort lexicographically; txn ids embed the per-day sequence
    return (record['txn_date'], record['txn_id'])


def _in_range(record: Dict[str, Any], start_date: Optional[str], end_date: Optional[str]) -> bool:
    if start_date is not None and record['txn_date'] < start_date:
        return False
    if end_date is not None and record['txn_date'] > end_date:
        return False
    return True


class LedgerStorage(ABC):
    """Abstract interface for ledger storage backends"""

    @abstractmethod
    def ensure_account(self, account_id: str) -> None:
        """Create an empty account bucket if it does not exist"""
        pass

    @abstractmethod
    def account_exists(self, account_id: str) -> bool:
        """Check if an account bucket exists"""
        pass

    @abstractmethod
    def list_accounts(self) -> List[str]:
        """List known account ids, sorted"""
        pass

    @abstractmethod
    def append_transaction(self, data: Dict[str, Any]) -> None:
        """Append a transaction record"""
        pass

    @abstractmethod
    def load_transactions(
        self,
        account_id: str,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None
    ) -> List[Dict[str, Any]]:
        """Load an account's transactions within inclusive ISO date bounds"""
        pass

    @abstractmethod
    def load_all_transactions(self) -> List[Dict[str, Any]]:
        """Load every transaction for every account"""
        pass

    @abstractmethod
    def save_rule(self, data: Dict[str, Any]) -> None:
        """Insert or replace the interest rule keyed by its effective date"""
        pass

    @abstractmethod
    def load_rules(self) -> List[Dict[str, Any]]:
        """Load all interest rules ordered by effective date"""
        pass

    @abstractmethod
    def close(self) -> None:
        """Close storage connection"""
        pass


class InMemoryStorage(LedgerStorage):
    """In-memory storage implementation; retained for the process lifetime"""

    def __init__(self):
        self._accounts: Dict[str, List[Dict[str, Any]]] = {}
        self._rules: Dict[str, Dict[str, Any]] = {}
        self._lock = threading.RLock()
        self._closed = False

    def _check_open(self) -> None:
        if self._closed:
            raise StorageUnavailableError("In-memory storage has been closed")

    @staticmethod
    def _copy(record: Dict[str, Any]) -> Dict[str, Any]:
        # Deep copy to prevent external mutation
        return json.loads(json.dumps(record, default=str))

    def ensure_account(self, account_id: str) -> None:
        with self._lock:
            self._check_open()
            self._accounts.setdefault(account_id, [])

    def account_exists(self, account_id: str) -> bool:
        with self._lock:
            self._check_open()
            return account_id in self._accounts

    def list_accounts(self) -> List[str]:
        with self._lock:
            self._check_open()
            return sorted(self._accounts)

    def append_transaction(self, data: Dict[str, Any]) -> None:
        with self._lock:
            self._check_open()
            self._accounts.setdefault(data['account_id'], []).append(self._copy(data))

    def load_transactions(
        self,
        account_id: str,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None
    ) -> List[Dict[str, Any]]:
        with self._lock:
            self._check_open()
            records = [
                self._copy(record) for record in self._accounts.get(account_id, [])
                if _in_range(record, start_date, end_date)
            ]
            records.sort(key=_sort_key)
            return records

    def load_all_transactions(self) -> List[Dict[str, Any]]:
        with self._lock:
            self._check_open()
            records = []
            for account_id in sorted(self._accounts):
                records.extend(self.load_transactions(account_id))
            return records

    def save_rule(self, data: Dict[str, Any]) -> None:
        with self._lock:
            self._check_open()
            self._rules[data['effective_date']] = self._copy(data)

    def load_rules(self) -> List[Dict[str, Any]]:
        with self._lock:
            self._check_open()
            return [self._copy(self._rules[key]) for key in sorted(self._rules)]

    def close(self) -> None:
        """Close storage; later calls raise StorageUnavailableError"""
        with self._lock:
            self._closed = True


class SQLiteStorage(LedgerStorage):
    """SQLite storage implementation for persistence"""

    def __init__(self, db_path: Union[str, Path] = ":memory:"):
        self.db_path = str(db_path)
        self._lock = threading.RLock()
        try:
            self._connection = sqlite3.connect(self.db_path, check_same_thread=False)
        except sqlite3.Error as e:
            raise StorageUnavailableError(f"Cannot open SQLite database {self.db_path}: {e}") from e
        self._connection.row_factory = sqlite3.Row

        with self._guard():
            if self.db_path != ":memory:":
                self._connection.execute("PRAGMA journal_mode = WAL")
                self._connection.execute("PRAGMA synchronous = NORMAL")
            self._create_schema()

    @contextmanager
    def _guard(self):
        """Serialize access and surface sqlite failures as StorageUnavailableError"""
        with self._lock:
            if self._connection is None:
                raise StorageUnavailableError("SQLite storage has been closed")
            try:
                yield self._connection
            except sqlite3.Error as e:
                self._connection.rollback()
                raise StorageUnavailableError(str(e)) from e

    def _create_schema(self) -> None:
        self._connection.execute("""
            CREATE TABLE IF NOT EXISTS accounts (
                id TEXT PRIMARY KEY,
                created_at TEXT NOT NULL
            )
        """)
        self._connection.execute("""
            CREATE TABLE IF NOT EXISTS transactions (
                account_id TEXT NOT NULL,
                txn_id TEXT NOT NULL,
                txn_date TEXT NOT NULL,
                data TEXT NOT NULL,
                PRIMARY KEY (account_id, txn_id)
            )
        """)
        self._connection.execute("""
            CREATE INDEX IF NOT EXISTS idx_transactions_account_date
            ON transactions(account_id, txn_date)
        """)
        self._connection.execute("""
            CREATE TABLE IF NOT EXISTS interest_rules (
                effective_date TEXT PRIMARY KEY,
                data TEXT NOT NULL
            )
        """)
        self._connection.commit()

    def ensure_account(self, account_id: str) -> None:
        with self._guard() as conn:
            conn.execute(
                "INSERT OR IGNORE INTO accounts (id, created_at) VALUES (?, ?)",
                (account_id, datetime.now(timezone.utc).isoformat())
            )
            conn.commit()

    def account_exists(self, account_id: str) -> bool:
        with self._guard() as conn:
            cursor = conn.execute("SELECT 1 FROM accounts WHERE id = ? LIMIT 1", (account_id,))
            return cursor.fetchone() is not None

    def list_accounts(self) -> List[str]:
        with self._guard() as conn:
            cursor = conn.execute("SELECT id FROM accounts ORDER BY id")
            return [row['id'] for row in cursor.fetchall()]

    def append_transaction(self, data: Dict[str, Any]) -> None:
        with self._guard() as conn:
            conn.execute(
                "INSERT OR IGNORE INTO accounts (id, created_at) VALUES (?, ?)",
                (data['account_id'], datetime.now(timezone.utc).isoformat())
            )
            conn.execute(
                "INSERT INTO transactions (account_id, txn_id, txn_date, data) VALUES (?, ?, ?, ?)",
                (data['account_id'], data['txn_id'], data['txn_date'], json.dumps(data, default=str))
            )
            conn.commit()

    def load_transactions(
        self,
        account_id: str,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None
    ) -> List[Dict[str, Any]]:
        query = "SELECT data FROM transactions WHERE account_id = ?"
        params: List[Any] = [account_id]
        if start_date is not None:
            query += " AND txn_date >= ?"
            params.append(start_date)
        if end_date is not None:
            query += " AND txn_date <= ?"
            params.append(end_date)
        query += " ORDER BY txn_date, txn_id"

        with self._guard() as conn:
            cursor = conn.execute(query, params)
            return [json.loads(row['data']) for row in cursor.fetchall()]

    def load_all_transactions(self) -> List[Dict[str, Any]]:
        with self._guard() as conn:
            cursor = conn.execute("SELECT data FROM transactions ORDER BY account_id, txn_date, txn_id")
            return [json.loads(row['data']) for row in cursor.fetchall()]

    def save_rule(self, data: Dict[str, Any]) -> None:
        with self._guard() as conn:
            conn.execute(
                "INSERT OR REPLACE INTO interest_rules (effective_date, data) VALUES (?, ?)",
                (data['effective_date'], json.dumps(data, default=str))
            )
            conn.commit()

    def load_rules(self) -> List[Dict[str, Any]]:
        with self._guard() as conn:
            cursor = conn.execute("SELECT data FROM interest_rules ORDER BY effective_date")
            return [json.loads(row['data']) for row in cursor.fetchall()]

    def close(self) -> None:
        """Close SQLite connection"""
        with self._lock:
            if self._connection is not None:
                self._connection.close()
                self._connection = None


def create_storage(backend: str = "memory", sqlite_path: Union[str, Path] = "ledger.db") -> LedgerStorage:
    """Build a storage backend by name ("memory" or "sqlite")"""
    if backend == "memory":
        return InMemoryStorage()
    if backend == "sqlite":
        return SQLiteStorage(sqlite_path)
    raise ValueError(f"Unknown storage backend '{backend}'")
