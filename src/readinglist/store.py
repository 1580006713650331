"""ReadingListStore: the cached, periodically refreshed view of the reading list.

    store = ReadingListStore(load_config(), picker=ask_for_path)
    store.load()                     # READY or DEGRADED
    for record in store.items:       # immutable snapshot, newest first
        ...
    store.delete(store.items[0])     # optimistic in memory, then on disk
    store.start_auto_refresh()       # reload every refresh.interval seconds

State machine:

    IDLE -> LOADING -> READY | DEGRADED
    READY | DEGRADED -> DELETING -> READY | DEGRADED

load() and delete() share one lock, so a delete never interleaves with a
load against the same file. Timer ticks use a non-blocking acquire and are
dropped while an operation is in flight. Observer callbacks are delivered
through a single dispatcher (one thread by default), never from the caller's
thread directly.

No inter-process locking: whatever bytes are on disk when load/delete runs
are what the store sees. Last writer wins.
"""

from __future__ import annotations

import logging
import queue
import threading
from datetime import UTC, datetime
from functools import partial
from pathlib import Path
from typing import TYPE_CHECKING

from readinglist.config import ReadingListConfig
from readinglist.document import read_document, remove_locator
from readinglist.errors import (
    DocumentIOError,
    EntryNotFound,
    LocationUnavailable,
    MalformedDocument,
    ReadingListError,
)
from readinglist.extractor import extract_records
from readinglist.models import DeleteResult, Record, StoreState, placeholder_records
from readinglist.navigator import locate_reading_list

if TYPE_CHECKING:
    from collections.abc import Callable

    Observer = Callable[[StoreState, tuple[Record, ...]], None]
    Picker = Callable[[Path, LocationUnavailable], "Path | str | None"]
    Dispatch = Callable[[Callable[[], None]], None]

logger = logging.getLogger("readinglist.store")

_JOIN_TIMEOUT = 5.0


# ---------------------------------------------------------------------------
# Notification dispatch
# ---------------------------------------------------------------------------

class SerialDispatcher:
    """Run submitted callables in order on one daemon thread."""

    def __init__(self, name: str = "readinglist-notify") -> None:
        self._queue: queue.Queue[Callable[[], None] | None] = queue.Queue()
        self._thread = threading.Thread(target=self._run, name=name, daemon=True)
        self._thread.start()

    def __call__(self, fn: Callable[[], None]) -> None:
        self._queue.put(fn)

    def _run(self) -> None:
        while True:
            fn = self._queue.get()
            try:
                if fn is None:
                    return
                fn()
            except Exception:
                logger.exception("notification failed")
            finally:
                self._queue.task_done()

    def flush(self) -> None:
        """Block until everything submitted so far has run."""
        self._queue.join()

    def close(self) -> None:
        if not self._thread.is_alive():
            return
        self._queue.put(None)
        if threading.current_thread() is not self._thread:
            self._thread.join(timeout=_JOIN_TIMEOUT)


# ---------------------------------------------------------------------------
# Periodic refresh
# ---------------------------------------------------------------------------

class RefreshScheduler:
    """Call tick every interval seconds on a background thread until stopped."""

    def __init__(self, tick: Callable[[], object], interval: float) -> None:
        if interval <= 0:
            msg = f"refresh interval must be positive, got {interval}"
            raise ValueError(msg)
        self.interval = interval
        self._tick = tick
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.running:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="readinglist-refresh", daemon=True)
        self._thread.start()
        logger.info("auto refresh every %.1fs", self.interval)

    def _run(self) -> None:
        while not self._stop.wait(self.interval):
            try:
                self._tick()
            except Exception:
                logger.exception("refresh tick failed")

    def stop(self) -> None:
        self._stop.set()
        thread, self._thread = self._thread, None
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=_JOIN_TIMEOUT)


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------

class ReadingListStore:
    """Sole owner of the in-memory reading list."""

    def __init__(
        self,
        config: ReadingListConfig | None = None,
        *,
        picker: Picker | None = None,
        dispatch: Dispatch | None = None,
    ) -> None:
        self.config = config or ReadingListConfig()
        self._picker = picker
        self._owns_dispatch = dispatch is None
        self._dispatch: Dispatch = dispatch or SerialDispatcher()

        self._lock = threading.Lock()          # single flight for load/delete
        self._items: tuple[Record, ...] = ()
        self._state = StoreState.IDLE
        self._last_error: ReadingListError | None = None
        self._alternate: Path | None = None    # path picked after the canonical one failed
        self._source: Path | None = None       # path of the last successful load
        self._observers: list[Observer] = []
        self._scheduler: RefreshScheduler | None = None

    # ------------------------------------------------------------------
    # Observation
    # ------------------------------------------------------------------

    @property
    def items(self) -> tuple[Record, ...]:
        return self._items

    @property
    def state(self) -> StoreState:
        return self._state

    @property
    def last_error(self) -> ReadingListError | None:
        return self._last_error

    @property
    def source_path(self) -> Path | None:
        return self._source

    def subscribe(self, observer: Observer) -> Callable[[], None]:
        """Register observer(state, items); returns an unsubscribe function."""
        self._observers.append(observer)

        def _unsubscribe() -> None:
            if observer in self._observers:
                self._observers.remove(observer)

        return _unsubscribe

    def _notify(self) -> None:
        self._dispatch(partial(self._deliver, self._state, self._items))

    def _deliver(self, state: StoreState, items: tuple[Record, ...]) -> None:
        for observer in list(self._observers):
            try:
                observer(state, items)
            except Exception:
                logger.exception("observer %r failed", observer)

    def _set_state(self, state: StoreState) -> None:
        if state is not self._state:
            logger.debug("state %s -> %s", self._state.value, state.value)
            self._state = state

    # ------------------------------------------------------------------
    # Paths
    # ------------------------------------------------------------------

    def document_path(self) -> Path:
        """Canonical path, resolved fresh; the picked alternate if it is missing."""
        canonical = self.config.document.resolve_path()
        if self._alternate is not None and not canonical.is_file():
            return self._alternate
        return canonical

    # ------------------------------------------------------------------
    # Load
    # ------------------------------------------------------------------

    def load(self, *, interactive: bool = True) -> StoreState:
        """Reload from disk, replacing the collection. Blocks while another op runs.

        interactive=False never asks the picker for an alternate location.
        """
        with self._lock:
            return self._load_locked(interactive=interactive)

    def refresh(self) -> bool:
        """Non-interactive load; returns False if dropped because an op is in flight."""
        if not self._lock.acquire(blocking=False):
            logger.debug("refresh skipped: operation in flight")
            return False
        try:
            self._load_locked(interactive=False)
        finally:
            self._lock.release()
        return True

    def _load_locked(self, *, interactive: bool) -> StoreState:
        self._set_state(StoreState.LOADING)
        try:
            records = self._read_records(interactive=interactive)
        except LocationUnavailable as exc:
            self._degrade(exc, unavailable=True)
        except (MalformedDocument, DocumentIOError) as exc:
            self._degrade(exc, unavailable=False)
        except Exception:
            self._set_state(StoreState.DEGRADED)
            self._notify()
            raise
        else:
            self._items = tuple(records)
            self._last_error = None
            self._set_state(StoreState.READY)
        self._notify()
        return self._state

    def _read_records(self, *, interactive: bool) -> list[Record]:
        canonical = self.config.document.resolve_path()
        try:
            return self._extract(canonical)
        except LocationUnavailable as exc:
            logger.warning("%s", exc)
            first_error = exc

        if self._alternate is not None and self._alternate != canonical:
            try:
                return self._extract(self._alternate)
            except LocationUnavailable as exc:
                logger.warning("%s", exc)

        if not interactive or self._picker is None:
            raise first_error

        self._set_state(StoreState.DEGRADED)
        self._notify()
        picked = self._picker(canonical, first_error)
        if picked is None:
            logger.info("alternate location selection cancelled")
            raise first_error

        self._set_state(StoreState.LOADING)
        path = Path(picked).expanduser()
        records = self._extract(path)
        self._alternate = path
        return records

    def _extract(self, path: Path) -> list[Record]:
        tree = read_document(path)
        leaf_set = locate_reading_list(tree, self.config.document.folder_title)
        records = extract_records(leaf_set.leaves)
        self._source = path
        if records:
            logger.info("found %d reading list items (%s)", len(records), leaf_set.location.value)
        else:
            logger.info("reading list is empty (0 items found)")
        return records

    def _degrade(self, exc: ReadingListError, *, unavailable: bool) -> None:
        """Enter DEGRADED and set the collection according to on_unavailable."""
        self._last_error = exc
        policy = self.config.store.on_unavailable
        if policy == "placeholders":
            self._items = placeholder_records()
        elif policy == "keep" and unavailable:
            pass
        else:
            self._items = ()
        if unavailable:
            logger.warning("reading list unavailable: %s", exc)
        else:
            logger.error("cannot parse reading list: %s", exc)
        self._set_state(StoreState.DEGRADED)

    # ------------------------------------------------------------------
    # Delete
    # ------------------------------------------------------------------

    def delete(self, record: Record) -> DeleteResult:
        """Remove record from memory immediately, then from the document.

        Returns a DeleteResult with removed == 0 when the URL is not in the
        document. Disk and parse failures are re-raised after entering
        DEGRADED; the in-memory removal is not rolled back.
        """
        with self._lock:
            # A delete before any load (one-shot CLI) settles in READY.
            previous = StoreState.READY if self._state is StoreState.IDLE else self._state
            self._set_state(StoreState.DELETING)
            self._items = self._without(record)
            self._notify()

            if record.placeholder:
                self._set_state(previous)
                self._notify()
                return DeleteResult(locator=record.locator)

            try:
                result = remove_locator(
                    self.document_path(),
                    record.locator,
                    fmt=self.config.document.write_format,
                    folder_title=self.config.document.folder_title,
                )
            except EntryNotFound:
                logger.info("item not found in reading list document: %s", record.locator)
                result = DeleteResult(locator=record.locator)
            except ReadingListError as exc:
                self._last_error = exc
                self._set_state(StoreState.DEGRADED)
                self._notify()
                logger.error("failed to remove %s: %s", record.locator, exc)
                raise
            except Exception:
                self._set_state(StoreState.DEGRADED)
                self._notify()
                logger.exception("unexpected failure removing %s", record.locator)
                raise
            else:
                logger.info("removed from reading list: %s", record.title)

            self._set_state(previous)
            self._notify()
            return result

    def delete_url(self, locator: str) -> DeleteResult:
        """Delete by URL, whether or not it is in the current snapshot."""
        record = next((r for r in self._items if r.locator == locator), None)
        if record is None:
            record = Record(title=locator, locator=locator, added_at=datetime.now(UTC))
        return self.delete(record)

    def _without(self, record: Record) -> tuple[Record, ...]:
        kept = tuple(r for r in self._items if r.identity != record.identity)
        if len(kept) == len(self._items):
            # Record from an older snapshot: identities are regenerated per load
            kept = tuple(r for r in self._items if r.locator != record.locator)
        return kept

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start_auto_refresh(self, interval: float | None = None) -> None:
        if self._scheduler is not None and self._scheduler.running:
            return
        self._scheduler = RefreshScheduler(self.refresh, interval or self.config.refresh.interval)
        self._scheduler.start()

    def stop_auto_refresh(self) -> None:
        if self._scheduler is not None:
            self._scheduler.stop()
            self._scheduler = None

    @property
    def auto_refreshing(self) -> bool:
        return self._scheduler is not None and self._scheduler.running

    def close(self) -> None:
        self.stop_auto_refresh()
        if self._owns_dispatch and isinstance(self._dispatch, SerialDispatcher):
            self._dispatch.close()

    def __enter__(self) -> ReadingListStore:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()
