"""Shared fixtures and helpers for the Nix Status tests."""

from __future__ import annotations

import stat
import threading
import time
from pathlib import Path
from typing import Callable

import pytest

from nix_status.models import Count, StatusUpdate


def wait_for(predicate: Callable[[], bool], timeout: float = 5.0, interval: float = 0.01) -> bool:
    """Poll *predicate* until it is true or *timeout* elapses."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return predicate()


class Recorder:
    """Thread-safe list of received values, usable as a callback."""

    def __init__(self) -> None:
        self.items: list = []
        self._lock = threading.Lock()

    def __call__(self, item) -> None:
        with self._lock:
            self.items.append(item)

    def snapshot(self) -> list:
        with self._lock:
            return list(self.items)

    def __len__(self) -> int:
        with self._lock:
            return len(self.items)


class FakeCounter:
    """Stands in for ProcessCounter; replays scripted responses.

    Each response is a list of StatusUpdates, an exception instance to
    raise, or a callable returning either.  Once the script runs out the
    last response is repeated.
    """

    def __init__(self, *responses) -> None:
        self.responses = list(responses) or [[Count(0)]]
        self.calls: list[tuple] = []
        self.terminated = threading.Event()
        self._lock = threading.Lock()

    def count(self, scope, pattern) -> list[StatusUpdate]:
        with self._lock:
            self.calls.append((scope, pattern))
            index = min(len(self.calls), len(self.responses)) - 1
            response = self.responses[index]
        if callable(response):
            response = response()
        if isinstance(response, BaseException):
            raise response
        return list(response)

    def terminate(self) -> None:
        self.terminated.set()

    def reopen(self) -> None:
        self.terminated.clear()

    @property
    def call_count(self) -> int:
        with self._lock:
            return len(self.calls)


@pytest.fixture
def recorder() -> Recorder:
    return Recorder()


@pytest.fixture
def fake_tool(tmp_path: Path) -> Callable[[str], Path]:
    """Factory writing an executable ``/bin/sh`` script that acts as pgrep."""
    counter = {"n": 0}

    def _make(body: str) -> Path:
        counter["n"] += 1
        script = tmp_path / f"fake-pgrep-{counter['n']}"
        script.write_text("#!/bin/sh\n" + body + "\n", encoding="utf-8")
        script.chmod(script.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        return script

    return _make
