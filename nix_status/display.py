"""Text and colour rendering of status values for the tray and status bars."""

from __future__ import annotations

from typing import Any

from nix_status.config import DEFAULT_CONFIG
from nix_status.models import NOT_STARTED, Count, Failure, FailureKind

# Tray colours
COLOR_IDLE = "#5277C3"     # nix blue: no builders
COLOR_BUSY = "#E8A33D"     # amber: builders running
COLOR_ERROR = "#C4001A"    # red: query failure
COLOR_STOPPED = "#888888"  # grey: not started / paused

DEFAULT_TEXTS: dict[str, str] = {
    key[len("text_"):]: value
    for key, value in DEFAULT_CONFIG.items()
    if key.startswith("text_")
}

_FAILURE_TEXT_KEYS = {
    FailureKind.QUERY_TOOL_MISSING: "tool_missing",
    FailureKind.QUERY_EXECUTION_FAILED: "query_failed",
    FailureKind.QUERY_OUTPUT_MALFORMED: "malformed",
    FailureKind.PROCESS_EXECUTION_CRASHED: "crashed",
}


def render(value: Any, texts: dict[str, str] | None = None) -> str:
    """Return the indicator text for a StatusUpdate or ``NOT_STARTED``."""
    texts = {**DEFAULT_TEXTS, **(texts or {})}
    if isinstance(value, Count):
        if value.n == 0:
            return texts["idle"]
        return texts["running"].format(count=value.n)
    if isinstance(value, Failure):
        return texts[_FAILURE_TEXT_KEYS[value.kind]]
    return texts["not_started"]


def color_for(value: Any) -> str:
    if isinstance(value, Count):
        return COLOR_BUSY if value.n else COLOR_IDLE
    if isinstance(value, Failure):
        return COLOR_ERROR
    return COLOR_STOPPED


def describe(value: Any) -> str:
    """Longer, human-readable description for tooltips and logs."""
    if value is NOT_STARTED:
        return "Not started"
    if isinstance(value, Count):
        if value.n == 0:
            return "No Nix builds running"
        return f"{value.n} Nix build{'s' if value.n != 1 else ''} running"
    if isinstance(value, Failure):
        return f"Error: {value.reason or value.kind.value}"
    return str(value)
