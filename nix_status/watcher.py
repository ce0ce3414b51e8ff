"""File system watcher for Nix Status.

Uses the watchdog library to monitor a small, fixed set of marker files.
Each file is watched through its parent directory, so deleting and
re-creating the file never invalidates the subscription.  Parent
directories that do not exist yet are polled for until they appear.
"""

from __future__ import annotations

import logging
import os
import stat
import threading
from collections.abc import Callable, Iterable
from typing import Any

from watchdog.events import (
    EVENT_TYPE_CLOSED,
    EVENT_TYPE_CREATED,
    EVENT_TYPE_DELETED,
    EVENT_TYPE_MODIFIED,
    EVENT_TYPE_MOVED,
    FileSystemEvent,
    FileSystemEventHandler,
)
from watchdog.observers import Observer
from watchdog.observers.polling import PollingObserver

from nix_status.errors import WatchPathUnavailable
from nix_status.models import TriggerEvent

logger = logging.getLogger(__name__)

# Opened / closed-without-write events never change the file
_RELEVANT_EVENTS = frozenset({
    EVENT_TYPE_CREATED,
    EVENT_TYPE_MODIFIED,
    EVENT_TYPE_DELETED,
    EVENT_TYPE_MOVED,
    EVENT_TYPE_CLOSED,
})


def normalize_path(path: str | os.PathLike[str]) -> str:
    """Expand ``~`` and return an absolute, normalised path string."""
    return os.path.normpath(os.path.abspath(os.path.expanduser(os.fspath(path))))


class MarkerFileHandler(FileSystemEventHandler):
    """Watchdog handler that turns events on monitored files into triggers."""

    def __init__(
        self,
        paths: Iterable[str],
        on_trigger: Callable[[TriggerEvent], None],
        on_directory_gone: Callable[[str], None] | None = None,
    ):
        super().__init__()
        self._paths = frozenset(paths)
        self._directories = frozenset(os.path.dirname(p) for p in self._paths)
        self._on_trigger = on_trigger
        self._on_directory_gone = on_directory_gone

    def match(self, event: FileSystemEvent) -> str | None:
        """Return the monitored path *event* concerns, or None."""
        if event.is_directory or event.event_type not in _RELEVANT_EVENTS:
            return None
        candidates = [event.src_path]
        if event.event_type == EVENT_TYPE_MOVED:
            candidates.insert(0, event.dest_path)
        for candidate in candidates:
            if not candidate:
                continue
            path = os.path.normpath(os.fsdecode(candidate))
            if path in self._paths:
                return path
        return None

    def match_directory(self, event: FileSystemEvent) -> str | None:
        """Return the watched directory *event* deletes or moves away, or None.

        inotify reports the deletion of the watched directory itself as a
        plain deleted event, so is_directory is not checked here.
        """
        if event.event_type not in (EVENT_TYPE_DELETED, EVENT_TYPE_MOVED):
            return None
        if not event.src_path:
            return None
        path = os.path.normpath(os.fsdecode(event.src_path))
        return path if path in self._directories else None

    def on_any_event(self, event: FileSystemEvent) -> None:
        gone = self.match_directory(event)
        if gone is not None and self._on_directory_gone is not None:
            logger.debug("Watched directory gone: %s", gone)
            self._on_directory_gone(gone)
            return
        path = self.match(event)
        if path is None:
            return
        logger.debug("%s: %s", event.event_type, path)
        self.emit(path, event.event_type)

    def emit(self, path: str, event_type: str) -> None:
        try:
            self._on_trigger(TriggerEvent(path=path, event_type=event_type))
        except Exception:
            logger.exception("Error in trigger callback for %s", path)


class FileWatcher:
    """Watches a fixed set of files and calls *on_trigger* per change.

    Usage:
        watcher = FileWatcher(["/nix/var/nix/db/db.sqlite"], on_trigger)
        watcher.start()
        ...
        watcher.stop()
    """

    def __init__(
        self,
        paths: Iterable[str | os.PathLike[str]],
        on_trigger: Callable[[TriggerEvent], None],
        retry_interval: float = 2.0,
        use_polling: bool = False,
    ):
        self.paths = list(dict.fromkeys(normalize_path(p) for p in paths))
        self._retry_interval = retry_interval
        self._use_polling = use_polling
        self._handler = MarkerFileHandler(self.paths, on_trigger, self._directory_gone)
        self._observer: Any | None = None
        # directory -> (ObservedWatch, (st_dev, st_ino))
        self._watches = {}
        self._invalidated: set[str] = set()
        self._pending: set[str] = set()
        self._lock = threading.Lock()
        self._stop = threading.Event()
        self._retry_thread: threading.Thread | None = None

    # ---- lifecycle ----

    def start(self) -> None:
        """Start watching; missing directories are retried in the background."""
        if not self.paths:
            raise ValueError("FileWatcher needs at least one path to watch")
        if self._observer is not None:
            return

        self._stop.clear()
        self._observer = self._start_observer()
        with self._lock:
            self._pending = {os.path.dirname(p) for p in self.paths}
            self._invalidated.clear()
        self._schedule_pending(initial=True)

        self._retry_thread = threading.Thread(
            target=self._retry_loop, daemon=True, name="FileWatcherRetry"
        )
        self._retry_thread.start()
        logger.info(
            "Watching %d file(s) in %d director(ies); %d pending",
            len(self.paths),
            len(self._watches),
            len(self._pending),
        )

    def stop(self) -> None:
        """Stop watching and release resources.  Safe to call repeatedly."""
        self._stop.set()
        observer, self._observer = self._observer, None
        if observer is None:
            return
        observer.stop()
        observer.join(timeout=5)
        if self._retry_thread is not None:
            self._retry_thread.join(timeout=5)
            self._retry_thread = None
        with self._lock:
            self._watches.clear()
            self._pending.clear()
            self._invalidated.clear()
        logger.info("Watcher stopped.")

    @property
    def is_running(self) -> bool:
        return self._observer is not None and self._observer.is_alive()

    # ---- status ----

    @property
    def watched_directories(self) -> list[str]:
        with self._lock:
            return sorted(self._watches)

    @property
    def pending_directories(self) -> list[str]:
        with self._lock:
            return sorted(self._pending)

    # ---- internals ----

    def _start_observer(self) -> Any:
        if not self._use_polling:
            observer = Observer()
            try:
                observer.start()
                return observer
            except OSError as exc:
                logger.warning("Native file events unavailable (%s); polling instead.", exc)
        observer = PollingObserver()
        observer.start()
        return observer

    def _schedule(self, directory: str) -> None:
        identity = _identity(directory)
        if identity is None:
            raise WatchPathUnavailable(directory)
        observer = self._observer
        if observer is None:
            return
        try:
            watch = observer.schedule(self._handler, directory, recursive=False)
        except OSError as exc:
            raise WatchPathUnavailable(directory) from exc
        with self._lock:
            self._watches[directory] = (watch, identity)
            self._pending.discard(directory)
        logger.debug("Scheduled watch on %s", directory)

    def _schedule_pending(self, initial: bool = False) -> None:
        for directory in self.pending_directories:
            if self._stop.is_set():
                return
            try:
                self._schedule(directory)
            except WatchPathUnavailable as exc:
                logger.debug("%s; will retry", exc)
                continue
            if initial:
                continue
            # Files created while the directory was unwatched
            for path in self.paths:
                if os.path.dirname(path) == directory and os.path.exists(path):
                    logger.info("Monitored file appeared: %s", path)
                    self._handler.emit(path, EVENT_TYPE_CREATED)

    def _directory_gone(self, directory: str) -> None:
        with self._lock:
            if directory in self._watches:
                self._invalidated.add(directory)

    def _drop_vanished(self) -> None:
        """Unschedule watches whose directory was removed or replaced."""
        with self._lock:
            stale = [
                d
                for d, (_, identity) in self._watches.items()
                if d in self._invalidated or _identity(d) != identity
            ]
            self._invalidated.clear()
        for directory in stale:
            with self._lock:
                watch, _ = self._watches.pop(directory, (None, None))
                self._pending.add(directory)
            logger.info("Watch directory vanished or was replaced: %s", directory)
            observer = self._observer
            if observer is None or watch is None:
                continue
            try:
                observer.unschedule(watch)
            except (KeyError, OSError):
                logger.debug("Unschedule of %s failed", directory, exc_info=True)

    def _retry_loop(self) -> None:
        while not self._stop.wait(timeout=self._retry_interval):
            try:
                self._drop_vanished()
                self._schedule_pending()
            except Exception:
                logger.exception("Error while re-scheduling watches")


def _identity(directory: str) -> tuple[int, int] | None:
    """Return ``(st_dev, st_ino)`` of *directory*, or None if it is not one."""
    try:
        st = os.stat(directory)
    except OSError:
        return None
    if not stat.S_ISDIR(st.st_mode):
        return None
    return st.st_dev, st.st_ino
