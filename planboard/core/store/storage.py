"""Keyed record storage behind one interface.

Records are flat JSON-safe dicts grouped by kind (``users``, ``projects``,
``memberships``, ``tasks``, ``comments``, ``events``).  Identifier
allocation lives behind the same interface so tests get deterministic ids.

Backends:
  - MemoryStorage: process-lifetime dicts, ids 1, 2, 3... per kind.
  - JsonFileStorage: MemoryStorage plus an atomically rewritten JSON snapshot
    after every committed transaction, reloaded on start.

Both are thread-safe.  ``transaction()`` holds the storage lock so a
check-then-write sequence (uniqueness checks) cannot interleave.  It is also
the unit of durability: the outermost transaction either persists every
write made inside it once, or restores the prior state on any exception.
Single writes outside a transaction run as their own transaction.
"""

from __future__ import annotations

import json
import logging
import os
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Union

logger = logging.getLogger("planboard.store")

Key = Union[int, str]
Record = Dict[str, Any]

KINDS = ("users", "projects", "memberships", "tasks", "comments", "events")


class StorageError(Exception):
    """Backend failure (I/O, corrupt snapshot). Never a business-rule outcome."""


class Storage(ABC):
    """Abstract keyed store."""

    @abstractmethod
    def next_id(self, kind: str) -> int:
        """Allocate the next identifier for ``kind``."""

    @abstractmethod
    def get(self, kind: str, key: Key) -> Optional[Record]:
        """Return a copy of the record, or None if no such key."""

    @abstractmethod
    def put(self, kind: str, key: Key, record: Record) -> None:
        """Insert or replace a record."""

    @abstractmethod
    def delete(self, kind: str, key: Key) -> bool:
        """Remove a record. Returns False if it did not exist."""

    @abstractmethod
    def scan(self, kind: str) -> List[Record]:
        """Copies of all records of ``kind``, in insertion order."""

    @abstractmethod
    @contextmanager
    def transaction(self) -> Iterator[None]:
        """Serialize a read-modify-write sequence; all-or-nothing."""

    def reset(self) -> None:
        """Clear all data (for test isolation)."""


class MemoryStorage(Storage):
    """Thread-safe in-memory storage with monotonically increasing ids."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._tables: Dict[str, Dict[Key, Record]] = {kind: {} for kind in KINDS}
        self._counters: Dict[str, int] = {kind: 0 for kind in KINDS}
        self._depth = 0
        self._dirty = False

    def _table(self, kind: str) -> Dict[Key, Record]:
        try:
            return self._tables[kind]
        except KeyError:
            raise StorageError(f"Unknown record kind: {kind}") from None

    def next_id(self, kind: str) -> int:
        with self.transaction():
            self._table(kind)
            self._counters[kind] += 1
            self._dirty = True
            return self._counters[kind]

    def get(self, kind: str, key: Key) -> Optional[Record]:
        with self._lock:
            rec = self._table(kind).get(key)
            return dict(rec) if rec is not None else None

    def put(self, kind: str, key: Key, record: Record) -> None:
        with self.transaction():
            self._table(kind)[key] = dict(record)
            self._dirty = True

    def delete(self, kind: str, key: Key) -> bool:
        with self.transaction():
            existed = self._table(kind).pop(key, None) is not None
            if existed:
                self._dirty = True
            return existed

    def scan(self, kind: str) -> List[Record]:
        with self._lock:
            return [dict(rec) for rec in self._table(kind).values()]

    @contextmanager
    def transaction(self) -> Iterator[None]:
        with self._lock:
            if self._depth:
                self._depth += 1
                try:
                    yield
                finally:
                    self._depth -= 1
                return

            # Records are replaced, never mutated in place, so shallow table
            # copies are enough to roll back.
            tables = {kind: dict(table) for kind, table in self._tables.items()}
            counters = dict(self._counters)
            self._depth = 1
            self._dirty = False
            try:
                yield
                if self._dirty:
                    self._commit()
            except BaseException:
                self._tables = tables
                self._counters = counters
                raise
            finally:
                self._depth = 0
                self._dirty = False

    def reset(self) -> None:
        with self._lock:
            for kind in KINDS:
                self._tables[kind].clear()
                self._counters[kind] = 0

    def _commit(self) -> None:
        """Persist the outermost transaction's writes; called with the lock held."""


class JsonFileStorage(MemoryStorage):
    """MemoryStorage persisted to a single JSON file.

    Schema:
      {"counters": {"users": 3, ...},
       "tables": {"users": {"1": {...}, ...}, "memberships": {"1:2": {...}}}}
    """

    def __init__(self, path: str) -> None:
        super().__init__()
        self._path = path
        self._load()

    @property
    def path(self) -> str:
        return self._path

    def _commit(self) -> None:
        self._save()

    def _load(self) -> None:
        if not (os.path.exists(self._path) and os.path.getsize(self._path) > 0):
            logger.info("json store: starting empty at %s", self._path)
            return
        try:
            with open(self._path, "r") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise StorageError(f"Cannot load store {self._path}: {e}") from e

        for kind in KINDS:
            self._counters[kind] = int(data.get("counters", {}).get(kind, 0))
            table = data.get("tables", {}).get(kind, {})
            self._tables[kind] = {_decode_key(k): rec for k, rec in table.items()}
        logger.info(
            "json store: loaded %s (%s)",
            self._path,
            ", ".join(f"{k}={len(self._tables[k])}" for k in KINDS),
        )

    def _save(self) -> None:
        """Atomically rewrite the snapshot."""
        data = {
            "counters": dict(self._counters),
            "tables": {
                kind: {str(k): rec for k, rec in self._tables[kind].items()}
                for kind in KINDS
            },
        }
        tmp_path = self._path + ".tmp"
        try:
            Path(self._path).parent.mkdir(parents=True, exist_ok=True)
            with open(tmp_path, "w") as f:
                json.dump(data, f, indent=2)
            os.replace(tmp_path, self._path)
        except OSError as e:
            raise StorageError(f"Cannot write store {self._path}: {e}") from e


def _decode_key(raw: str) -> Key:
    return int(raw) if raw.isdigit() else raw


def create_storage(backend: str, path: Optional[str] = None) -> Storage:
    """Build a storage backend by name (``memory`` or ``json``)."""
    if backend == "memory":
        return MemoryStorage()
    if backend == "json":
        if not path:
            raise ValueError("The json storage backend requires a store path")
        return JsonFileStorage(path)
    raise ValueError(f"Unknown storage backend: {backend!r}")
