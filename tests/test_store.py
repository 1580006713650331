from __future__ import annotations

import threading
from datetime import datetime
from pathlib import Path

import pytest
from conftest import document, folder, leaf, read_plist, reading_list_folder

from readinglist.errors import DocumentIOError, LocationUnavailable, MalformedDocument
from readinglist.models import Location, StoreState
from readinglist.navigator import locate_reading_list
from readinglist.store import ReadingListStore, RefreshScheduler, SerialDispatcher


def _run_now(fn) -> None:
    fn()


@pytest.fixture()
def bookmarks(write_plist) -> Path:
    return write_plist(document([
        folder("BookmarksBar", [leaf("https://bar.example/", reading_list=False)]),
        reading_list_folder([
            leaf("https://a.example/", display_title="A", added=datetime(2024, 1, 1)),
            leaf(None, title="no url", added=datetime(2024, 6, 1)),
            leaf("https://c.example/", title="C", added=datetime(2024, 3, 1)),
        ]),
        leaf("https://flat.example/", title="flat lookalike"),
    ]))


@pytest.fixture()
def store_for(make_config):
    stores: list[ReadingListStore] = []

    def _make(path: Path, **kwargs) -> ReadingListStore:
        on_unavailable = kwargs.pop("on_unavailable", "clear")
        kwargs.setdefault("dispatch", _run_now)
        store = ReadingListStore(make_config(path, on_unavailable=on_unavailable), **kwargs)
        stores.append(store)
        return store

    yield _make
    for store in stores:
        store.close()


# ---------------------------------------------------------------------------
# load
# ---------------------------------------------------------------------------


def test_load_skips_leaf_without_url_and_sorts_newest_first(bookmarks: Path, store_for) -> None:
    store = store_for(bookmarks)
    assert store.state is StoreState.IDLE

    assert store.load() is StoreState.READY
    assert [r.title for r in store.items] == ["C", "A"]
    assert store.last_error is None
    assert store.source_path == bookmarks


def test_load_uses_dedicated_folder_even_when_empty(write_plist, store_for) -> None:
    path = write_plist(document([leaf("https://flat.example/"), reading_list_folder([])]))
    store = store_for(path)
    assert store.load() is StoreState.READY
    assert store.items == ()


def test_load_legacy_flat_layout(write_plist, store_for) -> None:
    path = write_plist(document([
        leaf("https://old.example/1", title="one"),
        leaf("https://old.example/plain", reading_list=False),
    ]))
    store = store_for(path)
    store.load()
    assert [r.locator for r in store.items] == ["https://old.example/1"]


def test_load_replaces_collection_and_regenerates_identity(bookmarks: Path, store_for) -> None:
    store = store_for(bookmarks)
    store.load()
    first = store.items
    store.load()
    assert store.items == first
    assert {r.identity for r in store.items}.isdisjoint({r.identity for r in first})


def test_missing_document_asks_picker_once(tmp_path: Path, store_for) -> None:
    calls: list[tuple[Path, StoreState]] = []

    def picker(path: Path, error: LocationUnavailable) -> None:
        calls.append((path, store.state))
        return None

    store = store_for(tmp_path / "missing.plist", picker=picker)
    assert store.load() is StoreState.DEGRADED
    assert calls == [(tmp_path / "missing.plist", StoreState.DEGRADED)]
    assert isinstance(store.last_error, LocationUnavailable)
    assert store.items == ()


def test_picked_alternate_is_loaded_and_remembered(tmp_path: Path, bookmarks: Path, store_for) -> None:
    calls: list[Path] = []

    def picker(path: Path, error: LocationUnavailable) -> Path:
        calls.append(path)
        return bookmarks

    store = store_for(tmp_path / "missing.plist", picker=picker)
    assert store.load() is StoreState.READY
    assert len(store.items) == 2
    assert store.document_path() == bookmarks

    # later non-interactive loads reuse the alternate without prompting
    assert store.refresh()
    assert store.state is StoreState.READY
    assert len(calls) == 1


def test_non_interactive_load_never_prompts(tmp_path: Path, store_for) -> None:
    def picker(path: Path, error: LocationUnavailable) -> None:
        raise AssertionError("picker must not run")

    store = store_for(tmp_path / "missing.plist", picker=picker)
    assert store.load(interactive=False) is StoreState.DEGRADED


def test_observers_see_degraded_before_picker_runs(tmp_path: Path, bookmarks: Path, store_for) -> None:
    seen: list[StoreState] = []
    seen_by_picker: list[list[StoreState]] = []

    def picker(path: Path, error: LocationUnavailable) -> Path:
        seen_by_picker.append(list(seen))
        return bookmarks

    store = store_for(tmp_path / "missing.plist", picker=picker)
    store.subscribe(lambda state, items: seen.append(state))
    store.load()

    assert seen_by_picker == [[StoreState.DEGRADED]]
    assert seen == [StoreState.DEGRADED, StoreState.READY]


def test_failing_picker_leaves_store_degraded(tmp_path: Path, store_for) -> None:
    seen: list[StoreState] = []

    def picker(path: Path, error: LocationUnavailable) -> Path:
        raise RuntimeError("dialog crashed")

    store = store_for(tmp_path / "missing.plist", picker=picker)
    store.subscribe(lambda state, items: seen.append(state))
    with pytest.raises(RuntimeError):
        store.load()
    assert store.state is StoreState.DEGRADED
    assert seen[-1] is StoreState.DEGRADED


def test_unavailable_keep_policy_keeps_last_snapshot(bookmarks: Path, store_for) -> None:
    store = store_for(bookmarks, on_unavailable="keep")
    store.load()
    snapshot = store.items
    bookmarks.unlink()

    assert store.load() is StoreState.DEGRADED
    assert store.items == snapshot


def test_unavailable_placeholder_policy(tmp_path: Path, store_for) -> None:
    store = store_for(tmp_path / "missing.plist", on_unavailable="placeholders")
    assert store.load() is StoreState.DEGRADED
    assert len(store.items) == 2
    assert all(r.placeholder for r in store.items)


def test_malformed_document_degrades_without_prompt(tmp_path: Path, store_for) -> None:
    path = tmp_path / "Bookmarks.plist"
    path.write_bytes(b"definitely not a plist")

    def picker(path: Path, error: LocationUnavailable) -> None:
        raise AssertionError("picker must not run")

    store = store_for(path, picker=picker, on_unavailable="keep")
    assert store.load() is StoreState.DEGRADED
    assert isinstance(store.last_error, MalformedDocument)
    assert store.items == ()


def test_root_without_children_degrades(write_plist, store_for) -> None:
    store = store_for(write_plist({"Title": "no children"}))
    assert store.load() is StoreState.DEGRADED
    assert isinstance(store.last_error, MalformedDocument)


def test_canonical_path_resolved_per_call(tmp_path: Path, monkeypatch: pytest.MonkeyPatch, write_plist, store_for) -> None:
    store = store_for(Path("~/Bookmarks.plist"))
    assert store.load(interactive=False) is StoreState.DEGRADED

    other_home = tmp_path / "other"
    other_home.mkdir()
    (other_home / "Bookmarks.plist").write_bytes(
        write_plist(document([reading_list_folder([leaf("https://a.example/")])])).read_bytes()
    )
    monkeypatch.setenv("HOME", str(other_home))

    assert store.load(interactive=False) is StoreState.READY
    assert store.source_path == other_home / "Bookmarks.plist"


# ---------------------------------------------------------------------------
# delete
# ---------------------------------------------------------------------------


def test_delete_removes_from_memory_and_disk(bookmarks: Path, store_for) -> None:
    store = store_for(bookmarks)
    store.load()
    target = store.items[0]

    result = store.delete(target)

    assert result.found
    assert result.location is Location.DEDICATED_FOLDER
    assert target not in store.items
    assert store.state is StoreState.READY
    leaves = locate_reading_list(read_plist(bookmarks)).leaves
    assert target.locator not in [n.get("URLString") for n in leaves]
    # flat lookalike and other folders untouched
    assert read_plist(bookmarks)["Children"][2]["URLString"] == "https://flat.example/"


def test_delete_is_optimistic(bookmarks: Path, store_for) -> None:
    seen: list[tuple[StoreState, int]] = []
    store = store_for(bookmarks)
    store.load()
    store.subscribe(lambda state, items: seen.append((state, len(items))))

    store.delete(store.items[0])

    assert seen == [(StoreState.DELETING, 1), (StoreState.READY, 1)]


def test_delete_not_found_on_disk(bookmarks: Path, store_for) -> None:
    store = store_for(bookmarks)
    store.load()
    target = store.items[0]
    store.delete(target)
    before = bookmarks.read_bytes()

    result = store.delete(target)

    assert result.removed == 0
    assert not result.found
    assert bookmarks.read_bytes() == before
    assert store.state is StoreState.READY


def test_delete_flat_layout(write_plist, store_for) -> None:
    path = write_plist(document([
        folder("BookmarksBar", []),
        leaf("https://old.example/1", added=datetime(2023, 1, 1)),
        leaf("https://old.example/2", added=datetime(2023, 2, 1)),
    ]))
    store = store_for(path)
    store.load()
    target = next(r for r in store.items if r.locator == "https://old.example/1")

    result = store.delete(target)

    tree = read_plist(path)
    assert result.removed == 1
    assert len(tree["Children"]) == 2
    assert not any(c.get("Title") == "com.apple.ReadingList" for c in tree["Children"])
    assert [r.locator for r in store.items] == ["https://old.example/2"]


def test_delete_failure_is_raised_and_not_rolled_back(bookmarks: Path, store_for) -> None:
    store = store_for(bookmarks)
    store.load()
    target = store.items[0]
    bookmarks.unlink()

    with pytest.raises(LocationUnavailable):
        store.delete(target)

    assert target not in store.items
    assert len(store.items) == 1
    assert store.state is StoreState.DEGRADED
    assert isinstance(store.last_error, LocationUnavailable)


def test_delete_io_error(bookmarks: Path, store_for, monkeypatch: pytest.MonkeyPatch) -> None:
    store = store_for(bookmarks)
    store.load()

    def boom(*args, **kwargs):
        raise DocumentIOError("disk on fire")

    monkeypatch.setattr("readinglist.store.remove_locator", boom)
    with pytest.raises(DocumentIOError):
        store.delete(store.items[0])
    assert store.state is StoreState.DEGRADED


@pytest.mark.parametrize("error", [RuntimeError("bug"), RecursionError("too deep")])
def test_delete_unexpected_error_still_settles(
    bookmarks: Path, store_for, monkeypatch: pytest.MonkeyPatch, error: Exception
) -> None:
    seen: list[StoreState] = []
    store = store_for(bookmarks)
    store.load()
    store.subscribe(lambda state, items: seen.append(state))

    def boom(*args, **kwargs):
        raise error

    monkeypatch.setattr("readinglist.store.remove_locator", boom)
    with pytest.raises(type(error)):
        store.delete(store.items[0])
    assert store.state is StoreState.DEGRADED
    assert seen == [StoreState.DELETING, StoreState.DEGRADED]

    # the lock was released and loads still work
    assert store.load() is StoreState.READY


def test_delete_stale_record_matches_by_locator(bookmarks: Path, store_for) -> None:
    store = store_for(bookmarks)
    store.load()
    stale = store.items[0]
    store.load()

    store.delete(stale)

    assert stale.locator not in [r.locator for r in store.items]


def test_delete_url_not_in_snapshot(bookmarks: Path, store_for) -> None:
    store = store_for(bookmarks)
    result = store.delete_url("https://a.example/")
    assert result.removed == 1
    assert store.state is StoreState.READY


def test_delete_placeholder_never_touches_disk(tmp_path: Path, store_for) -> None:
    store = store_for(tmp_path / "missing.plist", on_unavailable="placeholders")
    store.load()
    result = store.delete(store.items[0])
    assert result.removed == 0
    assert len(store.items) == 1
    assert store.state is StoreState.DEGRADED


# ---------------------------------------------------------------------------
# serialization, observers, refresh
# ---------------------------------------------------------------------------


def test_refresh_is_dropped_while_operation_in_flight(bookmarks: Path, store_for) -> None:
    entered = threading.Event()
    release = threading.Event()
    results: list[bool] = []

    def slow_picker(path: Path, error: LocationUnavailable) -> Path:
        entered.set()
        release.wait(5)
        return bookmarks

    store = store_for(bookmarks.parent / "missing.plist", picker=slow_picker)
    loader = threading.Thread(target=store.load)
    loader.start()
    assert entered.wait(5)

    results.append(store.refresh())
    release.set()
    loader.join(5)

    assert results == [False]
    assert store.state is StoreState.READY
    assert store.refresh() is True


def test_unsubscribe(bookmarks: Path, store_for) -> None:
    seen: list[StoreState] = []
    store = store_for(bookmarks)
    unsubscribe = store.subscribe(lambda state, items: seen.append(state))
    store.load()
    unsubscribe()
    store.load()
    assert seen == [StoreState.READY]


def test_failing_observer_does_not_break_load(bookmarks: Path, store_for) -> None:
    def bad(state, items):
        raise RuntimeError("observer bug")

    store = store_for(bookmarks)
    store.subscribe(bad)
    assert store.load() is StoreState.READY


def test_default_dispatcher_notifies_on_one_thread(bookmarks: Path, make_config) -> None:
    threads: set[str] = set()
    with ReadingListStore(make_config(bookmarks)) as store:
        store.subscribe(lambda state, items: threads.add(threading.current_thread().name))
        store.load()
        loader = threading.Thread(target=store.load)
        loader.start()
        store.refresh()
        loader.join(5)
        store._dispatch.flush()
    assert threads == {"readinglist-notify"}


def test_serial_dispatcher_preserves_order() -> None:
    dispatcher = SerialDispatcher()
    out: list[int] = []
    for i in range(50):
        dispatcher(lambda i=i: out.append(i))
    dispatcher.flush()
    dispatcher.close()
    assert out == list(range(50))


def test_auto_refresh_reloads_on_schedule(bookmarks: Path, store_for) -> None:
    ticks = threading.Semaphore(0)
    store = store_for(bookmarks)
    store.subscribe(lambda state, items: ticks.release())

    store.start_auto_refresh(0.01)
    assert store.auto_refreshing
    assert ticks.acquire(timeout=5)
    assert ticks.acquire(timeout=5)
    store.stop_auto_refresh()

    assert not store.auto_refreshing
    assert store.state is StoreState.READY


def test_scheduler_rejects_bad_interval() -> None:
    with pytest.raises(ValueError):
        RefreshScheduler(lambda: None, 0)


def test_scheduler_survives_failing_tick() -> None:
    calls = threading.Semaphore(0)

    def tick() -> None:
        calls.release()
        raise RuntimeError("tick failed")

    scheduler = RefreshScheduler(tick, 0.01)
    scheduler.start()
    try:
        assert calls.acquire(timeout=5)
        assert calls.acquire(timeout=5)
    finally:
        scheduler.stop()
    assert not scheduler.running
