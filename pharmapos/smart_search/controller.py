"""
Search Controller - Serve fast and accurate searches over a live collection.

The controller subscribes to a collection's snapshots and keeps:
- the latest snapshot, adopted immediately on every change
- a DocumentIndex, rebuilt on a scheduler thread after a short debounce

Queries never wait for the rebuild. Accurate searches always scan the live
snapshot; only the fast index may lag one rebuild behind it. Fast searches
issued before the first rebuild return nothing.
"""

import logging
import threading
from collections.abc import Mapping
from datetime import datetime, timedelta, timezone
from itertools import islice
from typing import Any, Optional

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.date import DateTrigger

from .adapters import Record, RecordStore
from .config import Config, default_config
from .index import DocumentIndex, build_index
from .models import SearchMode, SearchState
from .normalize import to_text

logger = logging.getLogger(__name__)


def _coerce_mode(mode: SearchMode | str) -> SearchMode:
    if isinstance(mode, SearchMode):
        return mode
    try:
        return SearchMode(str(mode).lower())
    except ValueError:
        raise ValueError(f"Unknown search mode: {mode!r}") from None


def _search_text(value: Any) -> str:
    # None is scanned as the text "null"
    return "null" if value is None else to_text(value)


def record_matches(record: Mapping[str, Any], lowered_term: str) -> bool:
    """True if any field value contains the (already lowercased) term."""
    return any(lowered_term in _search_text(value).lower() for value in record.values())


class SearchController:
    """
    Smart search over one record collection.

    Usage:
        with SearchController(store, "products") as search:
            search.set_query("para")
            search.state.results
    """

    def __init__(
        self,
        store: RecordStore,
        collection: str,
        config: Optional[Config] = None,
        scheduler: Optional[BackgroundScheduler] = None,
    ):
        self._config = config or default_config()
        self._collection = self._config.collection(collection)
        self._settings = self._config.settings

        self._lock = threading.RLock()
        self._snapshot: list[Record] = []
        self._version = 0
        self._index: Optional[DocumentIndex] = None
        self._index_version = 0
        self._query = ""
        self._mode = SearchMode.FAST
        self._closed = False

        self._owns_scheduler = scheduler is None
        if scheduler is None:
            scheduler = BackgroundScheduler()
            scheduler.start()
        self._scheduler = scheduler
        self._job_id = f"rebuild_index:{collection}:{id(self):x}"

        self._unsubscribe = store.observe(collection, self._on_snapshot)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def close(self):
        """Stop observing the store and drop any pending rebuild."""
        self._closed = True
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        self._cancel_rebuild()
        if self._owns_scheduler and self._scheduler.running:
            self._scheduler.shutdown(wait=False)

    def __enter__(self) -> "SearchController":
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    # ------------------------------------------------------------------
    # Snapshot and index maintenance
    # ------------------------------------------------------------------

    @property
    def collection(self) -> str:
        return self._collection.name

    @property
    def snapshot(self) -> list[Record]:
        with self._lock:
            return list(self._snapshot)

    @property
    def index_ready(self) -> bool:
        with self._lock:
            return self._index is not None

    def _on_snapshot(self, records: list[Record]):
        with self._lock:
            self._snapshot = list(records)
            self._version += 1
            version = self._version
            snapshot = self._snapshot

        if snapshot:
            self._schedule_rebuild(version, snapshot)
        else:
            self._cancel_rebuild()

    def _schedule_rebuild(self, version: int, snapshot: list[Record]):
        """(Re)arm the single pending rebuild job."""
        run_date = datetime.now(timezone.utc) + timedelta(seconds=self._settings.rebuild_delay_seconds)
        self._scheduler.add_job(
            self._rebuild_index,
            DateTrigger(run_date=run_date),
            args=[version, snapshot],
            id=self._job_id,
            name=f"Rebuild {self.collection} search index",
            replace_existing=True,
        )

    def _cancel_rebuild(self):
        try:
            self._scheduler.remove_job(self._job_id)
        except JobLookupError:
            pass

    def _rebuild_index(self, version: int, snapshot: list[Record]):
        index = build_index(snapshot, self._collection.index_fields)
        with self._lock:
            if version < self._index_version:
                logger.warning(
                    f"Discarding stale {self.collection} index (v{version} < v{self._index_version})"
                )
                return
            self._index = index
            self._index_version = version
            # A snapshot adopted mid-build had its job skipped (one running instance per job id)
            if self._version > version and self._snapshot and not self._closed:
                self._schedule_rebuild(self._version, self._snapshot)
        logger.info(f"Indexed {index.record_count} {self.collection} records (v{version})")

    def rebuild_now(self):
        """Cancel the pending rebuild and rebuild synchronously from the current snapshot."""
        self._cancel_rebuild()
        with self._lock:
            version, snapshot = self._version, self._snapshot
        if snapshot:
            self._rebuild_index(version, snapshot)

    # ------------------------------------------------------------------
    # Query surface
    # ------------------------------------------------------------------

    @property
    def query(self) -> str:
        return self._query

    @property
    def mode(self) -> SearchMode:
        return self._mode

    def set_query(self, term: str):
        self._query = term or ""

    def set_mode(self, mode: SearchMode | str):
        self._mode = _coerce_mode(mode)

    def toggle_mode(self) -> SearchMode:
        """Flip between fast and accurate; the index is untouched."""
        self._mode = SearchMode.ACCURATE if self._mode is SearchMode.FAST else SearchMode.FAST
        return self._mode

    @property
    def state(self) -> SearchState:
        """Current query and mode with results computed against the live snapshot."""
        query, mode = self._query, self._mode
        return SearchState(query=query, mode=mode, results=self.search(query, mode))

    def search(self, term: Optional[str] = None, mode: Optional[SearchMode | str] = None) -> list[Record]:
        """
        Search the current snapshot.

        Args:
            term: Query text (defaults to the controller's query)
            mode: SearchMode or "fast"/"accurate" (defaults to the controller's mode)

        Returns:
            Capped list of snapshot records, in snapshot order
        """
        term = self._query if term is None else (term or "")
        mode = self._mode if mode is None else _coerce_mode(mode)

        with self._lock:
            snapshot = self._snapshot
            index = self._index

        if not term.strip():
            return snapshot[: self._settings.result_limit]

        if mode is SearchMode.FAST:
            return self._fast_search(term, snapshot, index)
        return self._accurate_search(term, snapshot)

    def _fast_search(self, term: str, snapshot: list[Record], index: Optional[DocumentIndex]) -> list[Record]:
        if index is None:
            return []
        ids: set[Any] = set()
        for hits in index.search(term, limit=self._settings.index_limit):
            ids.update(hits.ids)
        return [record for record in snapshot if record.get("id") in ids]

    def _accurate_search(self, term: str, snapshot: list[Record]) -> list[Record]:
        lowered = term.lower()
        matches = (record for record in snapshot if record_matches(record, lowered))
        return list(islice(matches, self._settings.result_limit))
