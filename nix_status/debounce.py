"""Trailing-edge debounce built on ``threading.Timer``."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable

logger = logging.getLogger(__name__)


class DebounceTimer:
    """Runs a callback once, *window* seconds after the last trigger.

    Every :meth:`on_trigger` cancels the pending run and starts a new
    window.  A timer that already fired but lost the race with a newer
    trigger (or with :meth:`cancel`) sees a stale generation and does
    nothing, so the callback runs once per quiet period.
    """

    def __init__(self, window: float):
        if window <= 0:
            raise ValueError(f"Debounce window must be positive, got {window}")
        self._window = window
        self._callback: Callable[[], None] | None = None
        self._timer: threading.Timer | None = None
        self._generation = 0
        self._lock = threading.Lock()

    @property
    def window(self) -> float:
        return self._window

    @property
    def pending(self) -> bool:
        """True while a callback is scheduled."""
        with self._lock:
            return self._timer is not None

    def set_callback(self, fn: Callable[[], None] | None) -> None:
        self._callback = fn

    def on_trigger(self, *_args: object) -> None:
        """(Re)start the window; extra arguments are accepted and ignored."""
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
            self._generation += 1
            timer = threading.Timer(self._window, self._fire, args=(self._generation,))
            timer.daemon = True
            timer.name = "DebounceTimer"
            self._timer = timer
            timer.start()

    def cancel(self) -> None:
        """Drop any pending run."""
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
            self._generation += 1

    def _fire(self, generation: int) -> None:
        with self._lock:
            if generation != self._generation:
                return
            self._timer = None
        callback = self._callback
        if callback is None:
            logger.debug("Debounce window elapsed with no callback set.")
            return
        try:
            callback()
        except Exception:
            logger.exception("Error in debounce callback")
