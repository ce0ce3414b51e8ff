"""
Main application controller for Nix Status.

Ties together configuration, the watch loop and the system tray.
The tray owns the main thread; status updates arrive on the loop's
worker thread and are pushed straight into the icon.
"""

import logging

from nix_status import __app_name__, __version__
from nix_status.config import Config
from nix_status.display import COLOR_ERROR, color_for, describe, render
from nix_status.logsetup import setup_logging
from nix_status.loop import WatchLoop, loop_from_config
from nix_status.models import Count, StatusUpdate, WatchState
from nix_status.tray import SysTray

logger = logging.getLogger(__name__)


class App:
    """
    Central orchestrator.

    Implements the TrayCallbacks protocol expected by SysTray.
    """

    def __init__(self, config: Config | None = None) -> None:
        self.config = config or Config()
        self.loop: WatchLoop = loop_from_config(self.config)
        self.loop.subscribe(self._on_status)
        self._tray = SysTray(self)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def run(self) -> None:
        """Hand the main thread to the tray icon; watching starts once it shows."""
        setup_logging(self.config)
        logger.info("%s %s starting.", __app_name__, __version__)
        try:
            self._tray.run(on_ready=self._start_watch)
        finally:
            self.loop.stop()

    def _start_watch(self) -> None:
        try:
            self.loop.start()
        except Exception:
            logger.exception("Failed to start watching.")
        self._update_tray_state()

    # ------------------------------------------------------------------
    # TrayCallbacks implementation
    # ------------------------------------------------------------------

    def on_refresh(self) -> None:
        self.loop.refresh()

    def on_toggle_watch(self) -> None:
        """Pause or resume watching."""
        if self.is_watching():
            self.loop.stop()
            logger.info("Watching paused.")
            self._update_tray_state()
        else:
            if self.loop.state is WatchState.ERRORED:
                self.loop.stop()
            self._start_watch()
            logger.info("Watching resumed.")

    def on_restart(self) -> None:
        logger.info("Restarting watch loop.")
        try:
            self.loop.restart()
        except Exception:
            logger.exception("Failed to restart watching.")
        self._update_tray_state()

    def on_quit(self) -> None:
        """Cleanly shut down the application."""
        logger.info("Shutting down…")
        self.loop.stop()
        self._tray.stop()

    def is_watching(self) -> bool:
        return self.loop.state is WatchState.RUNNING

    def get_status_summary(self) -> str:
        """Return a short human-readable status string for the tray menu."""
        state = self.loop.state
        if state is WatchState.ERRORED:
            return "Crashed — restart required"
        if state is not WatchState.RUNNING:
            return "Paused"
        return describe(self.loop.latest)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _on_status(self, update: StatusUpdate) -> None:
        """Called (from the query worker) for every status update."""
        label = str(update.n) if isinstance(update, Count) and update.n else ""
        self._tray.update_icon(color_for(update), label)
        self._tray.update_tooltip(render(update, self.config.texts))
        self._tray.refresh_menu()

    def _update_tray_state(self) -> None:
        """Update tray icon and tooltip to reflect the loop state."""
        state = self.loop.state
        latest = self.loop.latest
        if state is WatchState.ERRORED:
            self._tray.update_icon(COLOR_ERROR)
        else:
            self._tray.update_icon(color_for(latest))
        self._tray.update_tooltip(render(latest, self.config.texts))
        self._tray.refresh_menu()
