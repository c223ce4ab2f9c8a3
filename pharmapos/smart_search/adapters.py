"""
Record Store Adapters - Bridge to the persistence layer.

The search controller and the import pipeline only talk to the RecordStore
interface, so the real storage can be swapped (in-memory for tests, a JSON
file for the CLI) without touching search or import logic.

Collections are addressed by name ("products", "parties"). Every mutation
re-emits the full collection snapshot to its observers.
"""

import copy
import json
import logging
import threading
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable, Mapping
from pathlib import Path
from typing import Any, Optional

from .errors import ConstraintError

logger = logging.getLogger(__name__)

Record = dict[str, Any]
Observer = Callable[[list[Record]], None]


class RecordStore(ABC):
    """
    Abstract interface for record persistence.

    Ids are integers assigned by the store. Reads return copies, so callers
    can never mutate stored records in place.
    """

    @abstractmethod
    def get(self, collection: str, record_id: int) -> Optional[Record]:
        """Fetch one record by id, or None."""
        pass

    @abstractmethod
    def add(self, collection: str, record: Mapping[str, Any]) -> int:
        """Insert a new record and return its id."""
        pass

    @abstractmethod
    def update(self, collection: str, record_id: int, changes: Mapping[str, Any]) -> int:
        """Merge changes into a record. Returns 1 if updated, 0 if not found."""
        pass

    @abstractmethod
    def put(self, collection: str, record: Mapping[str, Any]) -> int:
        """Insert or replace a record by its id; returns the id."""
        pass

    @abstractmethod
    def delete(self, collection: str, record_id: int) -> None:
        """Remove a record. Unknown ids are ignored."""
        pass

    @abstractmethod
    def bulk_add(self, collection: str, records: Iterable[Mapping[str, Any]]) -> list[int]:
        """Insert many records in one all-or-nothing write; returns their ids."""
        pass

    @abstractmethod
    def all(self, collection: str) -> list[Record]:
        """Full snapshot of a collection in id order."""
        pass

    @abstractmethod
    def observe(self, collection: str, callback: Observer) -> Callable[[], None]:
        """
        Subscribe to a collection's snapshots.

        The callback receives the current snapshot immediately and again
        after every mutation. Returns a function that unsubscribes.
        """
        pass


class InMemoryRecordStore(RecordStore):
    """
    Thread-safe in-memory store.

    Useful for unit tests and as the base for file-backed stores.
    """

    def __init__(self, data: Optional[Mapping[str, Iterable[Mapping[str, Any]]]] = None):
        self._lock = threading.RLock()
        self._collections: dict[str, dict[int, Record]] = {}
        self._next_id: dict[str, int] = {}
        self._observers: dict[str, list[Observer]] = {}
        for collection, records in (data or {}).items():
            for record in records:
                self._insert(collection, record)

    # ------------------------------------------------------------------
    # Internals (caller holds the lock)
    # ------------------------------------------------------------------

    def _records(self, collection: str) -> dict[int, Record]:
        return self._collections.setdefault(collection, {})

    def _insert(self, collection: str, record: Mapping[str, Any]) -> int:
        records = self._records(collection)
        new = copy.deepcopy(dict(record))
        record_id = new.get("id")
        if record_id is None:
            record_id = self._next_id.get(collection, 1)
            new["id"] = record_id
        elif record_id in records:
            raise ConstraintError(f"Key already exists in {collection}: {record_id}")
        records[record_id] = new
        self._bump_next_id(collection, record_id)
        return record_id

    def _bump_next_id(self, collection: str, record_id: Any):
        if isinstance(record_id, int) and record_id >= self._next_id.get(collection, 1):
            self._next_id[collection] = record_id + 1

    def _snapshot(self, collection: str) -> list[Record]:
        records = self._records(collection)
        return [copy.deepcopy(records[rid]) for rid in sorted(records)]

    def _changed(self, collection: str):
        """Hook for subclasses, called after every mutation while locked; raising undoes the mutation."""
        pass

    def _notify(self, collection: str):
        # Delivered under the lock so observers see snapshots in mutation order
        observers = list(self._observers.get(collection, []))
        if not observers:
            return
        snapshot = self._snapshot(collection)
        for callback in observers:
            callback(snapshot)

    def _restore(self, collection: str, records: dict[int, Record], next_id: Optional[int]):
        self._collections[collection] = records
        if next_id is None:
            self._next_id.pop(collection, None)
        else:
            self._next_id[collection] = next_id

    def _mutate(
        self,
        collection: str,
        action: Callable[[], Any],
        changed: Optional[Callable[[Any], bool]] = None,
    ) -> Any:
        """
        Apply one write atomically.

        If the action or the _changed hook raises, the collection is put back
        as it was and observers are not notified. Actions replace record
        dicts instead of editing them, so a shallow copy is enough to restore.
        """
        with self._lock:
            before = dict(self._records(collection))
            next_id = self._next_id.get(collection)
            try:
                result = action()
                modified = changed is None or changed(result)
                if modified:
                    self._changed(collection)
            except Exception:
                self._restore(collection, before, next_id)
                raise
            if modified:
                self._notify(collection)
        return result

    # ------------------------------------------------------------------
    # RecordStore interface
    # ------------------------------------------------------------------

    def get(self, collection: str, record_id: int) -> Optional[Record]:
        with self._lock:
            record = self._records(collection).get(record_id)
            return copy.deepcopy(record) if record is not None else None

    def add(self, collection: str, record: Mapping[str, Any]) -> int:
        return self._mutate(collection, lambda: self._insert(collection, record))

    def update(self, collection: str, record_id: int, changes: Mapping[str, Any]) -> int:
        def apply() -> int:
            records = self._records(collection)
            record = records.get(record_id)
            if record is None:
                return 0
            merged = dict(record)
            merged.update(copy.deepcopy({k: v for k, v in changes.items() if k != "id"}))
            records[record_id] = merged
            return 1

        return self._mutate(collection, apply, changed=bool)

    def put(self, collection: str, record: Mapping[str, Any]) -> int:
        def apply() -> int:
            record_id = record.get("id")
            if record_id is None:
                return self._insert(collection, record)
            self._records(collection)[record_id] = copy.deepcopy(dict(record))
            self._bump_next_id(collection, record_id)
            return record_id

        return self._mutate(collection, apply)

    def delete(self, collection: str, record_id: int) -> None:
        def apply() -> bool:
            return self._records(collection).pop(record_id, None) is not None

        self._mutate(collection, apply, changed=bool)

    def bulk_add(self, collection: str, records: Iterable[Mapping[str, Any]]) -> list[int]:
        batch = [dict(r) for r in records]
        # A ConstraintError part-way through rolls back the whole batch in _mutate
        return self._mutate(collection, lambda: [self._insert(collection, r) for r in batch])

    def all(self, collection: str) -> list[Record]:
        with self._lock:
            return self._snapshot(collection)

    def count(self, collection: str) -> int:
        with self._lock:
            return len(self._records(collection))

    def observe(self, collection: str, callback: Observer) -> Callable[[], None]:
        with self._lock:
            self._observers.setdefault(collection, []).append(callback)
            callback(self._snapshot(collection))

        def unsubscribe():
            with self._lock:
                observers = self._observers.get(collection, [])
                if callback in observers:
                    observers.remove(callback)

        return unsubscribe


class JsonFileRecordStore(InMemoryRecordStore):
    """
    In-memory store persisted to a JSON file after every mutation.

    File format:
        {"products": [{"id": 1, "name": "...", ...}, ...], "parties": [...]}
    """

    def __init__(self, data_path: str | Path):
        self._data_path = Path(data_path)
        super().__init__(self._load_data())

    def _load_data(self) -> dict[str, list[Record]]:
        """Load collections from file; a missing file is an empty store."""
        if not self._data_path.exists():
            return {}
        with open(self._data_path, "r", encoding="utf-8") as f:
            data = json.load(f)
        if not isinstance(data, dict):
            raise ValueError(f"Record store file must hold an object: {self._data_path}")
        logger.info(f"Loaded record store from {self._data_path}")
        return data

    def _changed(self, collection: str):
        self._save()

    def _save(self):
        payload = {name: self._snapshot(name) for name in sorted(self._collections)}
        self._data_path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self._data_path.with_suffix(self._data_path.suffix + ".tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(payload, f, indent=2, ensure_ascii=False)
        tmp_path.replace(self._data_path)
