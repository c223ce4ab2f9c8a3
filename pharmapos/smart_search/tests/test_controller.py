"""
Tests for the search controller.

Most tests drive the debounced rebuild through RecordingScheduler, which
holds jobs until run_pending() is called. TestBackgroundScheduler uses
a real BackgroundScheduler.

Run with: pytest pharmapos/smart_search/tests/test_controller.py -v
"""

import threading
import time

import pytest
from apscheduler.jobstores.base import ConflictingIdError, JobLookupError

from pharmapos.smart_search import controller as controller_module
from pharmapos.smart_search.adapters import InMemoryRecordStore
from pharmapos.smart_search.config import default_config
from pharmapos.smart_search.controller import SearchController, record_matches
from pharmapos.smart_search.models import SearchMode, SearchState


class RecordingScheduler:
    """Stands in for BackgroundScheduler; jobs run only when told to."""

    running = True

    def __init__(self):
        self.jobs = {}
        self.added = 0

    def add_job(self, func, trigger=None, args=None, id=None, replace_existing=False, **kwargs):
        if id in self.jobs and not replace_existing:
            raise ConflictingIdError(id)
        self.jobs[id] = (func, list(args or []), trigger)
        self.added += 1

    def remove_job(self, job_id, jobstore=None):
        if job_id not in self.jobs:
            raise JobLookupError(job_id)
        del self.jobs[job_id]

    def run_pending(self):
        jobs = list(self.jobs.values())
        self.jobs.clear()
        for func, args, _ in jobs:
            func(*args)


PRODUCTS = [
    {"name": "Paracetamol 500", "batch": "PCM01", "hsn": "3004", "manufacturer": "Micro Labs", "saleRate": 25.5},
    {"name": "Paracetamol 650", "batch": "PCM02", "hsn": "3004", "manufacturer": "Micro Labs", "saleRate": 30.0},
    {"name": "Amoxicillin", "batch": "AMX9", "hsn": "3004", "manufacturer": "Cipla", "saleRate": 80.0},
]


@pytest.fixture
def scheduler():
    return RecordingScheduler()


@pytest.fixture
def store():
    store = InMemoryRecordStore()
    store.bulk_add("products", PRODUCTS)
    return store


@pytest.fixture
def controller(store, scheduler):
    controller = SearchController(store, "products", scheduler=scheduler)
    scheduler.run_pending()
    yield controller
    controller.close()


def _names(records):
    return [r["name"] for r in records]


class TestEndToEndScenario:
    """Three products, fast and accurate modes."""

    def test_fast_para(self, controller):
        assert _names(controller.search("Para", SearchMode.FAST)) == ["Paracetamol 500", "Paracetamol 650"]

    def test_accurate_para(self, controller):
        assert _names(controller.search("Para", SearchMode.ACCURATE)) == ["Paracetamol 500", "Paracetamol 650"]

    @pytest.mark.parametrize("mode", ["fast", "accurate"])
    def test_no_match(self, controller, mode):
        assert controller.search("zzz", mode) == []


class TestBlankQuery:

    def test_returns_whole_small_snapshot(self, controller):
        assert len(controller.search("")) == 3
        assert len(controller.search("   ", SearchMode.ACCURATE)) == 3

    def test_caps_at_first_100_in_snapshot_order(self, scheduler):
        store = InMemoryRecordStore()
        store.bulk_add("products", [{"name": f"Item {i}"} for i in range(250)])
        with SearchController(store, "products", scheduler=scheduler) as controller:
            results = controller.search("")
            assert len(results) == 100
            assert [r["id"] for r in results] == list(range(1, 101))

    def test_works_before_index_is_built(self, store, scheduler):
        with SearchController(store, "products", scheduler=scheduler) as controller:
            assert len(controller.search("")) == 3


class TestFastMode:

    def test_no_results_before_first_rebuild(self, store, scheduler):
        with SearchController(store, "products", scheduler=scheduler) as controller:
            assert not controller.index_ready
            assert controller.search("para", SearchMode.FAST) == []
            scheduler.run_pending()
            assert controller.index_ready
            assert len(controller.search("para", SearchMode.FAST)) == 2

    def test_matches_indexed_fields_only(self, controller):
        assert _names(controller.search("cipla", "fast")) == ["Amoxicillin"]
        # saleRate is not an indexed product field
        assert controller.search("80", "fast") == []

    def test_results_are_snapshot_members(self, controller):
        snapshot = controller.snapshot
        for record in controller.search("micro", "fast"):
            assert record in snapshot

    def test_results_in_snapshot_order(self, store, scheduler):
        store.put("products", {"id": 1, "name": "Syrup Benadryl"})
        store.put("products", {"id": 2, "name": "Benadryl Syrup"})
        with SearchController(store, "products", scheduler=scheduler) as controller:
            scheduler.run_pending()
            # The index ranks id 2 first; results follow the snapshot
            assert [r["id"] for r in controller.search("benadryl", "fast")] == [1, 2]

    def test_results_capped_by_index_limit(self, scheduler):
        store = InMemoryRecordStore()
        store.bulk_add("products", [{"name": f"Cetirizine {i}"} for i in range(300)])
        with SearchController(store, "products", scheduler=scheduler) as controller:
            scheduler.run_pending()
            assert len(controller.search("cetir", "fast")) == 100


class TestAccurateMode:

    def test_any_field_substring(self, controller):
        assert _names(controller.search("25.5", "accurate")) == ["Paracetamol 500"]
        assert _names(controller.search("amx", "accurate")) == ["Amoxicillin"]

    def test_substring_inside_word(self, controller):
        assert len(controller.search("cetamol", "accurate")) == 2

    def test_case_insensitive(self, controller):
        assert _names(controller.search("MICRO labs", "accurate")) == ["Paracetamol 500", "Paracetamol 650"]

    def test_does_not_need_index(self, store, scheduler):
        with SearchController(store, "products", scheduler=scheduler) as controller:
            assert not controller.index_ready
            assert len(controller.search("para", "accurate")) == 2

    def test_capped_at_100_and_all_match(self, scheduler):
        store = InMemoryRecordStore()
        store.bulk_add("products", [{"name": f"Tab {i}", "batch": "X"} for i in range(250)])
        with SearchController(store, "products", scheduler=scheduler) as controller:
            results = controller.search("tab", "accurate")
            assert len(results) == 100
            assert all("tab" in r["name"].lower() for r in results)
            assert [r["id"] for r in results] == list(range(1, 101))

    def test_missing_values_scan_as_null(self, controller, store):
        store.add("products", {"name": "Dolo 650", "manufacturer": None})
        assert _names(controller.search("NULL", "accurate")) == ["Dolo 650"]

    def test_record_matches(self):
        assert record_matches({"id": 1, "stock": 10.0, "name": "Dolo"}, "10")
        assert record_matches({"name": "Dolo", "batch": None}, "null")
        assert not record_matches({"name": None}, "none")


class TestSnapshotChanges:

    def test_debounce_coalesces_rebuilds(self, controller, store, scheduler):
        for i in range(5):
            store.add("products", {"name": f"Zincovit {i}"})
        assert len(scheduler.jobs) == 1
        scheduler.run_pending()
        assert len(controller.search("zinc", "fast")) == 5

    def test_accurate_sees_new_snapshot_immediately(self, controller, store):
        store.add("products", {"name": "Dolo 650"})
        assert _names(controller.search("dolo", "accurate")) == ["Dolo 650"]

    def test_fast_index_lags_until_rebuild(self, controller, store, scheduler):
        store.add("products", {"name": "Dolo 650"})
        assert controller.search("dolo", "fast") == []
        scheduler.run_pending()
        assert _names(controller.search("dolo", "fast")) == ["Dolo 650"]

    def test_deleted_record_never_returned(self, controller, store):
        store.delete("products", 1)
        # Index still holds id 1 but results are filtered against the live snapshot
        assert [r["id"] for r in controller.search("para", "fast")] == [2]

    def test_empty_snapshot_cancels_pending_rebuild(self, controller, store, scheduler):
        store.add("products", {"name": "Dolo"})
        assert scheduler.jobs
        for record in store.all("products"):
            store.delete("products", record["id"])
        assert scheduler.jobs == {}
        assert controller.search("") == []
        assert controller.search("para", "fast") == []

    def test_stale_rebuild_does_not_replace_newer_index(self, controller, store, scheduler):
        store.add("products", {"name": "Dolo"})
        old_func, old_args, _ = next(iter(scheduler.jobs.values()))
        store.add("products", {"name": "Zerodol"})
        scheduler.run_pending()
        old_func(*old_args)
        assert _names(controller.search("zerodol", "fast")) == ["Zerodol"]

    def test_rebuild_now(self, controller, store, scheduler):
        store.add("products", {"name": "Dolo"})
        controller.rebuild_now()
        assert scheduler.jobs == {}
        assert _names(controller.search("dolo", "fast")) == ["Dolo"]

    def test_close_unsubscribes(self, controller, store, scheduler):
        controller.close()
        store.add("products", {"name": "Dolo"})
        assert scheduler.jobs == {}
        assert len(controller.snapshot) == 3


class TestSearchState:

    def test_defaults(self, controller):
        assert controller.query == ""
        assert controller.mode is SearchMode.FAST

    def test_state_tracks_query_and_mode(self, controller):
        controller.set_query("para")
        state = controller.state
        assert isinstance(state, SearchState)
        assert state.query == "para"
        assert state.mode is SearchMode.FAST
        assert len(state.results) == 2

    def test_search_uses_current_query(self, controller):
        controller.set_query("amox")
        controller.set_mode("accurate")
        assert _names(controller.search()) == ["Amoxicillin"]

    def test_toggle_mode_does_not_touch_index(self, controller, scheduler):
        added = scheduler.added
        assert controller.toggle_mode() is SearchMode.ACCURATE
        assert controller.toggle_mode() is SearchMode.FAST
        assert scheduler.added == added
        assert controller.index_ready

    def test_invalid_mode(self, controller):
        with pytest.raises(ValueError):
            controller.set_mode("turbo")

    def test_state_reflects_latest_snapshot(self, controller, store):
        controller.set_query("dolo")
        controller.set_mode(SearchMode.ACCURATE)
        assert controller.state.results == []
        store.add("products", {"name": "Dolo 650"})
        assert _names(controller.state.results) == ["Dolo 650"]


class TestPartiesCollection:

    @pytest.fixture
    def parties(self, scheduler):
        store = InMemoryRecordStore()
        store.bulk_add("parties", [
            {"name": "Ravi Medicals", "type": "WHOLESALE", "phone": "9845012345", "gstin": "29ABCDE1234F1Z5"},
            {"name": "City Pharma", "type": "RETAIL", "phone": "9900011122", "gstin": "27PQRSX9876K1Z2"},
        ])
        controller = SearchController(store, "parties", scheduler=scheduler)
        scheduler.run_pending()
        yield controller
        controller.close()

    def test_party_fields_indexed(self, parties):
        assert _names(parties.search("29abc", "fast")) == ["Ravi Medicals"]
        assert _names(parties.search("99000", "fast")) == ["City Pharma"]

    def test_unindexed_field_accurate_only(self, parties):
        assert parties.search("retail", "fast") == []
        assert _names(parties.search("retail", "accurate")) == ["City Pharma"]

    def test_unknown_collection(self, store, scheduler):
        with pytest.raises(KeyError):
            SearchController(store, "invoices", scheduler=scheduler)


class TestBackgroundScheduler:

    def test_debounced_rebuild_runs_on_real_scheduler(self):
        config = default_config()
        config.settings.rebuild_delay_seconds = 0.01
        store = InMemoryRecordStore()

        with SearchController(store, "products", config=config) as controller:
            store.bulk_add("products", PRODUCTS)
            deadline = time.monotonic() + 5
            while not controller.index_ready and time.monotonic() < deadline:
                time.sleep(0.02)
            assert controller.index_ready
            assert len(controller.search("para", "fast")) == 2

    def test_change_during_slow_rebuild_is_indexed(self, monkeypatch):
        started = threading.Event()
        release = threading.Event()
        real_build_index = controller_module.build_index
        builds = []

        def slow_build_index(records, fields):
            builds.append(len(records))
            if len(builds) == 1:
                started.set()
                release.wait(5)
            return real_build_index(records, fields)

        monkeypatch.setattr(controller_module, "build_index", slow_build_index)
        config = default_config()
        config.settings.rebuild_delay_seconds = 0.01
        store = InMemoryRecordStore()
        store.bulk_add("products", PRODUCTS)

        with SearchController(store, "products", config=config) as controller:
            try:
                assert started.wait(5)
                store.add("products", {"name": "Dolo 650"})
                # The re-armed job comes due while the first build is still running
                time.sleep(0.3)
            finally:
                release.set()

            deadline = time.monotonic() + 5
            while not controller.search("dolo", "fast") and time.monotonic() < deadline:
                time.sleep(0.02)
            assert _names(controller.search("dolo", "fast")) == ["Dolo 650"]
            assert builds[-1] == 4
