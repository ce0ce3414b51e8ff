"""Value types shared by the watcher, the query worker and the display."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Union


class UserScope(Enum):
    """Which process owners are counted."""

    SELF = "self"
    SELF_AND_ROOT = "self-and-root"
    ALL = "all"

    @classmethod
    def parse(cls, value: str | UserScope) -> UserScope:
        """Accept an enum member, its value, or its name (any case)."""
        if isinstance(value, cls):
            return value
        text = str(value).strip().lower()
        for member in cls:
            if text in (member.value, member.name.lower()):
                return member
        raise ValueError(f"Unknown user scope: {value!r}")


class FailureKind(Enum):
    QUERY_TOOL_MISSING = "query-tool-missing"
    QUERY_EXECUTION_FAILED = "query-execution-failed"
    QUERY_OUTPUT_MALFORMED = "query-output-malformed"
    PROCESS_EXECUTION_CRASHED = "process-execution-crashed"


class WatchState(Enum):
    """Lifecycle of a WatchLoop."""

    STOPPED = "stopped"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"
    ERRORED = "errored"


@dataclass(frozen=True)
class Count:
    """A successful query result: *n* matching processes."""

    n: int

    def __post_init__(self) -> None:
        if self.n < 0:
            raise ValueError(f"Count must be non-negative, got {self.n}")


@dataclass(frozen=True)
class Failure:
    """A query (or the query mechanism) failed."""

    kind: FailureKind
    reason: str = ""


StatusUpdate = Union[Count, Failure]


class _NotStarted:
    """Sentinel for "no update yet"; never equal to any StatusUpdate."""

    _instance: _NotStarted | None = None

    def __new__(cls) -> _NotStarted:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "NOT_STARTED"

    def __bool__(self) -> bool:
        return False


NOT_STARTED = _NotStarted()


@dataclass(frozen=True)
class TriggerEvent:
    """One filesystem notification for a monitored path."""

    path: str
    event_type: str
    timestamp: float = field(default_factory=time.monotonic)
