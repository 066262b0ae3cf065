"""Persistence for transactions, holdings and portfolio snapshots.

Every component receives a :class:`PortfolioStore` explicitly; opening and
closing it is the job of the surrounding application.
"""

from abc import ABC, abstractmethod
from datetime import date, datetime
from pathlib import Path
from typing import Any, Callable
import json
import logging
import os
import tempfile
import threading

from .errors import StorageError
from .holdings import Holding
from .snapshots import PortfolioSnapshot
from .transactions import Transaction, sort_key

logger = logging.getLogger(__name__)


class PortfolioStore(ABC):
    """Abstract store for the transaction ledger and its derived data."""

    def open(self) -> None:
        """Acquire resources. The default implementation does nothing."""

    def close(self) -> None:
        """Release resources. The default implementation does nothing."""

    def __enter__(self) -> "PortfolioStore":
        self.open()
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    @abstractmethod
    def insert_transaction(self, transaction: Transaction) -> Transaction:
        """Store a transaction and return it with its assigned id and created_at."""

    @abstractmethod
    def get_transaction(self, transaction_id: int) -> Transaction | None:
        """Return the transaction with ``transaction_id``, or None."""

    @abstractmethod
    def delete_transaction(self, transaction_id: int) -> bool:
        """Delete a transaction. Returns False when no such id exists."""

    @abstractmethod
    def list_transactions(self, ticker: str | None = None) -> list[Transaction]:
        """Transactions, optionally for one ticker, ordered by date then id."""

    def list_tickers(self) -> list[str]:
        """Every ticker with at least one transaction, sorted."""
        return sorted({t.ticker for t in self.list_transactions()})

    @abstractmethod
    def get_holding(self, ticker: str) -> Holding | None:
        """Return the holding for ``ticker``, or None."""

    @abstractmethod
    def upsert_holding(self, holding: Holding) -> None:
        """Insert or replace the holding keyed by its ticker."""

    @abstractmethod
    def delete_holding(self, ticker: str) -> None:
        """Remove the holding for ``ticker`` if present."""

    @abstractmethod
    def list_holdings(self) -> list[Holding]:
        """All holdings ordered by ticker."""

    @abstractmethod
    def save_snapshot(self, snapshot: PortfolioSnapshot) -> None:
        """Insert or replace the snapshot for ``snapshot.snapshot_date``."""

    @abstractmethod
    def list_snapshots(self) -> list[PortfolioSnapshot]:
        """All snapshots ordered by date, oldest first."""


class InMemoryStore(PortfolioStore):
    """Store kept in process memory. Safe to share between threads.

    A mutation whose :meth:`_changed` hook raises is undone before the error
    propagates, so a failed write never lingers in memory.
    """

    def __init__(self):
        self._lock = threading.RLock()
        self._transactions: dict[int, Transaction] = {}
        self._holdings: dict[str, Holding] = {}
        self._snapshots: dict[date, PortfolioSnapshot] = {}
        self._next_id = 1

    def _changed(self) -> None:
        """Hook called with the lock held after every mutation."""

    def _commit(self, undo: Callable[[], None]) -> None:
        try:
            self._changed()
        except Exception:
            undo()
            raise

    @staticmethod
    def _restore(items: dict, key: Any, previous: Any) -> Callable[[], None]:
        """Undo action putting ``previous`` back under ``key`` (removing it when None)."""

        def undo() -> None:
            if previous is None:
                items.pop(key, None)
            else:
                items[key] = previous

        return undo

    def insert_transaction(self, transaction: Transaction) -> Transaction:
        with self._lock:
            stored = transaction.with_identity(self._next_id, datetime.now())
            assigned_id = self._next_id
            self._transactions[assigned_id] = stored
            self._next_id += 1

            def undo() -> None:
                del self._transactions[assigned_id]
                self._next_id = assigned_id

            self._commit(undo)
        return stored

    def get_transaction(self, transaction_id: int) -> Transaction | None:
        with self._lock:
            return self._transactions.get(transaction_id)

    def delete_transaction(self, transaction_id: int) -> bool:
        with self._lock:
            removed = self._transactions.pop(transaction_id, None)
            if removed is None:
                return False
            self._commit(self._restore(self._transactions, transaction_id, removed))
        return True

    def list_transactions(self, ticker: str | None = None) -> list[Transaction]:
        with self._lock:
            transactions = [t for t in self._transactions.values() if ticker is None or t.ticker == ticker]
        return sorted(transactions, key=sort_key)

    def get_holding(self, ticker: str) -> Holding | None:
        with self._lock:
            return self._holdings.get(ticker)

    def upsert_holding(self, holding: Holding) -> None:
        with self._lock:
            previous = self._holdings.get(holding.ticker)
            self._holdings[holding.ticker] = holding
            self._commit(self._restore(self._holdings, holding.ticker, previous))

    def delete_holding(self, ticker: str) -> None:
        with self._lock:
            removed = self._holdings.pop(ticker, None)
            if removed is not None:
                self._commit(self._restore(self._holdings, ticker, removed))

    def list_holdings(self) -> list[Holding]:
        with self._lock:
            return [self._holdings[t] for t in sorted(self._holdings)]

    def save_snapshot(self, snapshot: PortfolioSnapshot) -> None:
        with self._lock:
            previous = self._snapshots.get(snapshot.snapshot_date)
            self._snapshots[snapshot.snapshot_date] = snapshot
            self._commit(self._restore(self._snapshots, snapshot.snapshot_date, previous))

    def list_snapshots(self) -> list[PortfolioSnapshot]:
        with self._lock:
            return [self._snapshots[d] for d in sorted(self._snapshots)]


class JsonFileStore(InMemoryStore):
    """In-memory store persisted to a single JSON document.

    The document is read on :meth:`open` and rewritten atomically after every
    mutation. Read and write failures raise :class:`StorageError`.
    """

    def __init__(self, path: str | Path):
        super().__init__()
        self.path = Path(path)
        self._opened = False

    def open(self) -> None:
        with self._lock:
            self._transactions.clear()
            self._holdings.clear()
            self._snapshots.clear()
            self._next_id = 1
            if self.path.exists():
                self._load()
            self._opened = True

    def close(self) -> None:
        self._opened = False

    def _load(self) -> None:
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise StorageError(f"Cannot read portfolio store {self.path}: {e}") from e

        if not isinstance(data, dict):
            raise StorageError(f"Portfolio store {self.path} must contain a JSON object")

        try:
            for item in data.get("transactions", []):
                txn = Transaction.from_dict(item)
                self._transactions[txn.id] = txn  # type: ignore[index]
            for item in data.get("holdings", []):
                holding = Holding.from_dict(item)
                self._holdings[holding.ticker] = holding
            for item in data.get("snapshots", []):
                snapshot = PortfolioSnapshot.from_dict(item)
                self._snapshots[snapshot.snapshot_date] = snapshot
        except (KeyError, TypeError, ValueError, ArithmeticError) as e:
            raise StorageError(f"Malformed record in portfolio store {self.path}: {e}") from e

        self._next_id = max(data.get("next_id", 1), max(self._transactions, default=0) + 1)
        logger.info(
            "Loaded %d transactions and %d holdings from %s",
            len(self._transactions),
            len(self._holdings),
            self.path,
        )

    def _changed(self) -> None:
        if not self._opened:
            raise StorageError(f"Portfolio store {self.path} is not open")

        data = {
            "next_id": self._next_id,
            "transactions": [t.to_dict() for t in sorted(self._transactions.values(), key=sort_key)],
            "holdings": [self._holdings[t].to_dict() for t in sorted(self._holdings)],
            "snapshots": [self._snapshots[d].to_dict() for d in sorted(self._snapshots)],
        }
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp")
        except OSError as e:
            raise StorageError(f"Cannot write portfolio store {self.path}: {e}") from e

        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2)
            os.replace(tmp_name, self.path)
        except OSError as e:
            Path(tmp_name).unlink(missing_ok=True)
            raise StorageError(f"Cannot write portfolio store {self.path}: {e}") from e
