"""
Claim storage.

An append-only table of claims indexed by sequential integer id plus a
single monotonic counter. Claims are never deleted; only the payout handle
of an existing claim is ever rewritten.
"""

import sqlite3
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Dict, Iterator, Optional, Union

from .errors import ClaimNotFoundError
from .handles import CiphertextHandle, FheType


class ClaimIdAllocator:
    """Issues unique, strictly increasing claim ids starting at 0."""

    def __init__(self, start: int = 0):
        if start < 0:
            raise ValueError("start must be non-negative")
        self._next = start

    def allocate(self) -> int:
        """Return the current counter, then advance it."""
        claim_id = self._next
        self._next += 1
        return claim_id

    def peek(self) -> int:
        """The id the next allocate() will return."""
        return self._next

    @property
    def count(self) -> int:
        return self._next

    def restore(self, value: int) -> None:
        """Seed the counter from persisted state. Never moves it backwards."""
        if value < self._next:
            raise ValueError(f"counter cannot move backwards ({self._next} -> {value})")
        self._next = value


@dataclass(frozen=True)
class Claim:
    """A ledger row: encrypted inputs, encrypted payout, existence flag."""
    loss_amount: CiphertextHandle
    risk_level: CiphertextHandle
    payout: CiphertextHandle
    exists: bool = True


class ClaimStore(ABC):
    """
    Abstract claim table.

    Implementations must keep the counter equal to the number of stored
    claims and must leave both untouched when append fails.
    """

    @abstractmethod
    def append(self, loss_amount: CiphertextHandle, risk_level: CiphertextHandle,
               payout: CiphertextHandle) -> int:
        """Store a new claim and return its id."""
        pass

    @abstractmethod
    def get(self, claim_id: int) -> Claim:
        """
        Raises:
            ClaimNotFoundError: no claim with this id
        """
        pass

    @abstractmethod
    def set_payout(self, claim_id: int, payout: CiphertextHandle) -> None:
        """
        Overwrite the payout handle of an existing claim.

        Raises:
            ClaimNotFoundError: no claim with this id
        """
        pass

    @abstractmethod
    def count(self) -> int:
        pass

    def exists(self, claim_id: int) -> bool:
        return 0 <= claim_id < self.count()

    def close(self) -> None:
        pass


class InMemoryClaimStore(ClaimStore):
    """Dict-backed store for tests and single-process use."""

    def __init__(self):
        self._allocator = ClaimIdAllocator()
        self._claims: Dict[int, Claim] = {}
        self._lock = threading.RLock()

    def append(self, loss_amount, risk_level, payout):
        with self._lock:
            claim_id = self._allocator.allocate()
            self._claims[claim_id] = Claim(loss_amount, risk_level, payout, exists=True)
            return claim_id

    def get(self, claim_id):
        with self._lock:
            claim = self._claims.get(claim_id)
            if claim is None or not claim.exists:
                raise ClaimNotFoundError(claim_id)
            return claim

    def set_payout(self, claim_id, payout):
        with self._lock:
            claim = self.get(claim_id)
            self._claims[claim_id] = replace(claim, payout=payout)

    def count(self):
        with self._lock:
            return self._allocator.count


class SqliteClaimStore(ClaimStore):
    """
    SQLite-backed store.

    One row per claim holding three handle ids, plus a single counter row.
    Each write runs in its own transaction: commit on success, rollback on
    failure, so a failed append never advances the counter.
    """

    def __init__(self, path: Union[str, Path]):
        self._path = Path(path)
        if str(path) != ":memory:":
            self._path.parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(str(path), check_same_thread=False)
        self._conn.execute("PRAGMA journal_mode=WAL;")
        self._conn.execute("PRAGMA synchronous=NORMAL;")
        self._conn.row_factory = sqlite3.Row
        self._lock = threading.RLock()
        self._allocator = ClaimIdAllocator()
        self._init_schema()
        self._allocator.restore(self._read_counter())

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        with self._lock:
            try:
                yield self._conn
                self._conn.commit()
            except Exception:
                self._conn.rollback()
                raise

    def _init_schema(self) -> None:
        with self._transaction() as conn:
            conn.execute("""
            CREATE TABLE IF NOT EXISTS claims (
                claim_id INTEGER PRIMARY KEY,
                fhe_type TEXT NOT NULL,
                loss_handle TEXT NOT NULL,
                risk_handle TEXT NOT NULL,
                payout_handle TEXT NOT NULL,
                exists_flag INTEGER NOT NULL DEFAULT 1,
                created_at INTEGER DEFAULT (strftime('%s', 'now'))
            );""")
            conn.execute("""
            CREATE TABLE IF NOT EXISTS claim_counter (
                singleton INTEGER PRIMARY KEY CHECK (singleton = 0),
                next_claim_id INTEGER NOT NULL
            );""")
            conn.execute(
                "INSERT OR IGNORE INTO claim_counter(singleton, next_claim_id) VALUES(0, 0)"
            )

    def _read_counter(self) -> int:
        cur = self._conn.execute("SELECT next_claim_id FROM claim_counter WHERE singleton=0")
        return int(cur.fetchone()["next_claim_id"])

    def append(self, loss_amount, risk_level, payout):
        with self._transaction() as conn:
            claim_id = self._allocator.peek()
            conn.execute(
                "INSERT INTO claims(claim_id, fhe_type, loss_handle, risk_handle, payout_handle, exists_flag) "
                "VALUES(?,?,?,?,?,1)",
                (claim_id, loss_amount.fhe_type.value, loss_amount.handle_id,
                 risk_level.handle_id, payout.handle_id)
            )
            conn.execute(
                "UPDATE claim_counter SET next_claim_id=? WHERE singleton=0",
                (claim_id + 1,)
            )
        self._allocator.allocate()
        return claim_id

    def get(self, claim_id):
        # ids past the counter may not fit a SQLite INTEGER
        if not self.exists(claim_id):
            raise ClaimNotFoundError(claim_id)
        with self._lock:
            cur = self._conn.execute(
                "SELECT fhe_type, loss_handle, risk_handle, payout_handle, exists_flag "
                "FROM claims WHERE claim_id=?",
                (claim_id,)
            )
            row = cur.fetchone()
        if row is None or not row["exists_flag"]:
            raise ClaimNotFoundError(claim_id)
        fhe_type = FheType(row["fhe_type"])
        return Claim(
            loss_amount=CiphertextHandle(row["loss_handle"], fhe_type),
            risk_level=CiphertextHandle(row["risk_handle"], fhe_type),
            payout=CiphertextHandle(row["payout_handle"], fhe_type),
            exists=True,
        )

    def set_payout(self, claim_id, payout):
        if not self.exists(claim_id):
            raise ClaimNotFoundError(claim_id)
        with self._transaction() as conn:
            cur = conn.execute(
                "UPDATE claims SET payout_handle=? WHERE claim_id=? AND exists_flag=1",
                (payout.handle_id, claim_id)
            )
            if cur.rowcount != 1:
                raise ClaimNotFoundError(claim_id)

    def count(self):
        with self._lock:
            return self._allocator.count

    def close(self) -> None:
        with self._lock:
            self._conn.close()


def open_store(db_path: Optional[str] = None) -> ClaimStore:
    """SQLite store when a path is given, in-memory otherwise."""
    if db_path:
        return SqliteClaimStore(db_path)
    return InMemoryClaimStore()
