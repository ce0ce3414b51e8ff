"""
Headless runner for Nix Status.

Runs the watch loop without any UI and prints one rendered line per
status update, which suits status bars that read a command's stdout
(i3blocks, waybar, polybar, tmux):

    nix-status --headless
    nix-status --once
"""

import logging
import signal
import sys
import threading
from typing import TextIO

from nix_status.config import Config
from nix_status.counter import ProcessCounter
from nix_status.display import render
from nix_status.loop import loop_from_config
from nix_status.models import Count, StatusUpdate

logger = logging.getLogger(__name__)


def run_foreground(config: Config, out: TextIO = sys.stdout) -> None:
    """Run the watch loop in the foreground until SIGINT/SIGTERM."""
    loop = loop_from_config(config)
    stop = threading.Event()

    def _print(update: StatusUpdate) -> None:
        out.write(render(update, config.texts) + "\n")
        out.flush()

    def _handler(sig, frame):
        stop.set()

    signal.signal(signal.SIGINT, _handler)
    signal.signal(signal.SIGTERM, _handler)

    loop.subscribe(_print)
    out.write(render(loop.latest, config.texts) + "\n")
    out.flush()
    loop.start()
    try:
        while not stop.wait(timeout=1):
            pass
    finally:
        loop.stop()
    logger.info("Headless runner stopped.")


def run_once(config: Config, out: TextIO = sys.stdout) -> int:
    """Run a single query, print it, and return a process exit status."""
    counter = ProcessCounter(
        executable=config.query_executable, stop_grace=config.stop_grace
    )
    updates = counter.count(config.user_scope, config.process_pattern)
    for update in updates:
        out.write(render(update, config.texts) + "\n")
    out.flush()
    return 0 if all(isinstance(u, Count) for u in updates) else 1
