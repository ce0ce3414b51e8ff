"""
Watch loop: file watcher -> debounce -> process query -> status update.

The loop owns every moving part of a run: the watchdog observer, the
debounce timer, one query worker thread and the pgrep child it may be
waiting on.  Queries are serialised on the worker, so updates reach
subscribers in trigger order.
"""

from __future__ import annotations

import logging
import os
import queue
import threading
from collections.abc import Callable, Iterable
from typing import Any, NamedTuple

from nix_status.counter import DEFAULT_EXECUTABLE, ProcessCounter
from nix_status.debounce import DebounceTimer
from nix_status.errors import ProcessExecutionCrashed
from nix_status.models import (
    NOT_STARTED,
    Failure,
    StatusUpdate,
    UserScope,
    WatchState,
)
from nix_status.watcher import FileWatcher

logger = logging.getLogger(__name__)

_QUERY = "query"
_SHUTDOWN = "shutdown"


class _RunResources(NamedTuple):
    debounce: DebounceTimer | None
    watcher: FileWatcher | None
    counter: ProcessCounter | None
    worker: threading.Thread | None
    work_queue: queue.Queue


class StatusCell:
    """Single-slot holder for the latest status plus its subscribers.

    The held value is immutable and replaced wholesale, so readers always
    see either the previous or the new value.
    """

    def __init__(self) -> None:
        self._value: Any = NOT_STARTED
        self._subscribers: list[Callable[[StatusUpdate], None]] = []
        self._lock = threading.Lock()

    @property
    def value(self) -> Any:
        with self._lock:
            return self._value

    def subscribe(self, fn: Callable[[StatusUpdate], None]) -> None:
        with self._lock:
            if fn not in self._subscribers:
                self._subscribers.append(fn)

    def unsubscribe(self, fn: Callable[[StatusUpdate], None]) -> None:
        with self._lock:
            if fn in self._subscribers:
                self._subscribers.remove(fn)

    def publish(self, update: StatusUpdate) -> None:
        with self._lock:
            self._value = update
            subscribers = list(self._subscribers)
        for fn in subscribers:
            try:
                fn(update)
            except Exception:
                logger.exception("Error in status subscriber %r", fn)

    def reset(self) -> None:
        with self._lock:
            self._value = NOT_STARTED


class WatchLoop:
    """
    Long-lived watch/debounce/query pipeline.

    Parameters
    ----------
    paths : iterable of str
        Marker files to watch.  They need not exist yet.
    scope : UserScope
        Which process owners to count.
    pattern : str
        Process-name regular expression passed to the query tool.
    debounce_window : float
        Quiet period in seconds before a recount (must be > 0).
    executable : str
        The count tool (``pgrep`` compatible).
    initial_query : bool
        Queue one count as soon as the loop is running.
    retry_interval : float
        Seconds between checks for missing watch directories.
    stop_grace : float
        Seconds a hung query gets to exit on stop before it is killed.
    counter : ProcessCounter, optional
        Pre-built counter (mainly for tests).
    """

    def __init__(
        self,
        paths: Iterable[str | os.PathLike[str]],
        scope: UserScope,
        pattern: str,
        debounce_window: float,
        executable: str = DEFAULT_EXECUTABLE,
        initial_query: bool = True,
        retry_interval: float = 2.0,
        stop_grace: float = 1.0,
        counter: ProcessCounter | None = None,
    ):
        self.paths = [os.fspath(p) for p in paths]
        if not self.paths:
            raise ValueError("WatchLoop needs at least one path to watch")
        if debounce_window <= 0:
            raise ValueError(f"Debounce window must be positive, got {debounce_window}")
        self.scope = scope
        self.pattern = pattern
        self.debounce_window = debounce_window
        self.executable = executable
        self.initial_query = initial_query
        self._retry_interval = retry_interval
        self._stop_grace = stop_grace
        self._counter_override = counter

        self._state = WatchState.STOPPED
        self._run_id = 0
        self._lock = threading.RLock()
        self._cell = StatusCell()

        self._counter: ProcessCounter | None = None
        self._debounce: DebounceTimer | None = None
        self._watcher: FileWatcher | None = None
        self._queue: queue.Queue[str] = queue.Queue()
        self._worker: threading.Thread | None = None

    # ---- status ----

    @property
    def state(self) -> WatchState:
        with self._lock:
            return self._state

    @property
    def latest(self) -> Any:
        """The most recent StatusUpdate, or ``NOT_STARTED``."""
        return self._cell.value

    def subscribe(self, fn: Callable[[StatusUpdate], None]) -> None:
        """Call *fn* with every new StatusUpdate (on the worker thread)."""
        self._cell.subscribe(fn)

    def unsubscribe(self, fn: Callable[[StatusUpdate], None]) -> None:
        self._cell.unsubscribe(fn)

    # ---- lifecycle ----

    def start(self) -> None:
        """Start watching.  No-op when already running."""
        with self._lock:
            if self._state is WatchState.RUNNING:
                return
            if self._state is WatchState.ERRORED:
                raise RuntimeError("Watch loop crashed; call restart()")
            if self._state is not WatchState.STOPPED:
                raise RuntimeError(f"Cannot start from state {self._state.value}")
            self._state = WatchState.STARTING
            self._run_id += 1
            run_id = self._run_id

            self._counter = self._counter_override
            if self._counter is None:
                self._counter = ProcessCounter(
                    executable=self.executable, stop_grace=self._stop_grace
                )
            else:
                self._counter.reopen()
            self._queue = queue.Queue()
            queued = threading.Event()
            self._worker = threading.Thread(
                target=self._work,
                args=(run_id, self._queue, self._counter, queued),
                daemon=True,
                name="QueryWorker",
            )
            self._debounce = DebounceTimer(self.debounce_window)
            self._debounce.set_callback(self._queue_query(run_id, self._queue, queued))
            self._watcher = FileWatcher(
                self.paths, self._debounce.on_trigger, retry_interval=self._retry_interval
            )
            try:
                self._worker.start()
                self._watcher.start()
            except Exception:
                logger.exception("Failed to start watch loop.")
                self._run_id += 1
                self._release(self._detach())
                self._state = WatchState.STOPPED
                raise

            self._state = WatchState.RUNNING
            logger.info(
                "Watch loop running (scope=%s, pattern=%r, debounce=%.3fs)",
                self.scope.value,
                self.pattern,
                self.debounce_window,
            )
            if self.initial_query:
                queued.set()
                self._queue.put(_QUERY)

    def stop(self) -> None:
        """Stop the pipeline; nothing is published after this returns."""
        with self._lock:
            if self._state in (WatchState.STOPPED, WatchState.STOPPING):
                return
            self._state = WatchState.STOPPING
            # Bumping the run id fences off every late publish
            self._run_id += 1
            resources = self._detach()
        self._release(resources)
        with self._lock:
            self._cell.reset()
            self._state = WatchState.STOPPED
        logger.info("Watch loop stopped.")

    def restart(self) -> None:
        """Stop (from any state, including ERRORED) and start again."""
        self.stop()
        self.start()

    def refresh(self) -> None:
        """Request a recount through the debounce timer."""
        with self._lock:
            debounce = self._debounce if self._state is WatchState.RUNNING else None
        if debounce is None:
            logger.debug("Refresh ignored; loop is %s", self.state.value)
            return
        debounce.on_trigger()

    # ---- internals ----

    def _queue_query(
        self, run_id: int, work_queue: queue.Queue[str], queued: threading.Event
    ) -> Callable[[], None]:
        def _enqueue() -> None:
            with self._lock:
                if run_id != self._run_id or self._state is not WatchState.RUNNING:
                    return
                # A query that has not started yet will see this change too
                if queued.is_set():
                    return
                queued.set()
            work_queue.put(_QUERY)

        return _enqueue

    def _detach(self) -> _RunResources:
        """Take ownership of the current run's resources.  Caller holds the lock."""
        resources = _RunResources(
            self._debounce, self._watcher, self._counter, self._worker, self._queue
        )
        self._debounce = None
        self._watcher = None
        self._counter = None
        self._worker = None
        return resources

    def _release(self, res: _RunResources) -> None:
        if res.debounce is not None:
            res.debounce.cancel()
        if res.watcher is not None:
            res.watcher.stop()
        if res.counter is not None:
            res.counter.terminate()
        res.work_queue.put(_SHUTDOWN)
        worker = res.worker
        if worker is not None and worker.is_alive() and worker is not threading.current_thread():
            worker.join(timeout=self._stop_grace + 1.0)
            if worker.is_alive():
                logger.warning("Query worker did not exit; abandoning it.")

    def _publish(self, run_id: int, update: StatusUpdate) -> bool:
        with self._lock:
            if run_id != self._run_id or self._state is not WatchState.RUNNING:
                return False
            self._cell.publish(update)
            return True

    def _work(
        self,
        run_id: int,
        work_queue: queue.Queue[str],
        counter: ProcessCounter,
        queued: threading.Event,
    ) -> None:
        while True:
            item = work_queue.get()
            if item == _SHUTDOWN:
                return
            with self._lock:
                queued.clear()
            try:
                updates = counter.count(self.scope, self.pattern)
            except Exception as exc:
                logger.exception("Query worker crashed")
                self._crash(run_id, ProcessExecutionCrashed(f"Query worker crashed: {exc}"))
                return
            for update in updates:
                if not self._publish(run_id, update):
                    return

    def _crash(self, run_id: int, exc: ProcessExecutionCrashed) -> None:
        with self._lock:
            if run_id != self._run_id or self._state is not WatchState.RUNNING:
                return
            self._cell.publish(Failure(exc.kind, str(exc)))
            self._state = WatchState.ERRORED
            self._run_id += 1
            resources = self._detach()
        self._release(resources)


def loop_from_config(cfg: Any) -> WatchLoop:
    """Build a WatchLoop from a :class:`nix_status.config.Config`."""
    return WatchLoop(
        paths=cfg.trigger_files,
        scope=cfg.user_scope,
        pattern=cfg.process_pattern,
        debounce_window=cfg.debounce_seconds,
        executable=cfg.query_executable,
        initial_query=cfg.initial_query,
        retry_interval=cfg.retry_interval,
        stop_grace=cfg.stop_grace,
    )
