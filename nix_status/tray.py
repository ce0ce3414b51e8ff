"""System tray icon for Nix Status.

Shows the current builder count on a coloured badge, with the rendered
status text as tooltip.  The context menu offers a manual recount,
pause/resume, restart and quit.
"""

import contextlib
import logging
from collections.abc import Callable
from typing import Any, Protocol

import pystray
from PIL import Image, ImageDraw, ImageFont
from PIL.Image import Image as PILImage

from nix_status.display import COLOR_STOPPED

logger = logging.getLogger(__name__)


class TrayCallbacks(Protocol):
    """Expected callback interface for the tray icon owner."""

    def on_refresh(self) -> None:
        """Recount running builders now."""
        ...

    def on_toggle_watch(self) -> None:
        """Pause or resume watching."""
        ...

    def on_restart(self) -> None:
        """Restart the watch loop (also recovers from a crash)."""
        ...

    def on_quit(self) -> None:
        """Quit the application."""
        ...

    def is_watching(self) -> bool:
        """Return whether the watch loop is active."""
        ...

    def get_status_summary(self) -> str:
        """Return a human-readable status string."""
        ...


def _create_icon_image(color: str = COLOR_STOPPED, label: str = "", size: int = 64) -> PILImage:
    """Create a solid-colour rounded badge, with *label* drawn in the middle."""
    img = Image.new("RGBA", (size, size), (0, 0, 0, 0))
    draw = ImageDraw.Draw(img)
    draw.rounded_rectangle(
        [(2, 2), (size - 2, size - 2)],
        radius=10,
        fill=color,
    )
    if label:
        font = ImageFont.load_default(size=size // 2)
        left, top, right, bottom = draw.textbbox((0, 0), label[:3], font=font)
        draw.text(
            ((size - (right - left)) // 2 - left, (size - (bottom - top)) // 2 - top),
            label[:3],
            fill="white",
            font=font,
        )
    else:
        margin = size // 4
        draw.ellipse(
            [(margin, margin), (size - margin, size - margin)],
            fill="white",
        )
    return img


class SysTray:
    """Manages the system-tray icon and its context menu."""

    def __init__(self, callbacks: TrayCallbacks):
        """Create the tray icon bound to *callbacks*."""
        self._callbacks = callbacks
        self._icon: Any | None = None

    def _build_menu(self) -> pystray.Menu:
        """Build the context menu with current status."""
        watch_label = "Pause" if self._callbacks.is_watching() else "Resume"
        status_text = self._callbacks.get_status_summary()
        return pystray.Menu(
            pystray.MenuItem(f"Nix Status — {status_text}", None, enabled=False),
            pystray.Menu.SEPARATOR,
            pystray.MenuItem("Recount Now", lambda: self._callbacks.on_refresh()),
            pystray.MenuItem(watch_label, lambda: self._callbacks.on_toggle_watch()),
            pystray.MenuItem("Restart", lambda: self._callbacks.on_restart()),
            pystray.Menu.SEPARATOR,
            pystray.MenuItem("Quit", lambda: self._callbacks.on_quit()),
        )

    def _create_icon(self) -> Any:
        self._icon = pystray.Icon(
            name="NixStatus",
            icon=_create_icon_image(),
            title="Nix Status",
            menu=self._build_menu(),
        )
        return self._icon

    def run(self, on_ready: Callable[[], None] | None = None) -> None:
        """Run the tray icon on the calling thread until :meth:`stop`.

        *on_ready* is called on a helper thread once the icon is visible.
        """
        icon = self._create_icon()

        def _setup(started: Any) -> None:
            started.visible = True
            logger.info("System tray icon started.")
            if on_ready is not None:
                on_ready()

        icon.run(setup=_setup)

    def stop(self) -> None:
        """Remove the tray icon, ending :meth:`run`."""
        if self._icon:
            with contextlib.suppress(Exception):
                self._icon.stop()
            self._icon = None
        logger.info("System tray icon stopped.")

    def update_tooltip(self, text: str) -> None:
        """Update the hover tooltip text."""
        if self._icon:
            self._icon.title = text

    def update_icon(self, color: str, label: str = "") -> None:
        """Redraw the badge in *color* with *label* (e.g. the builder count)."""
        if self._icon:
            self._icon.icon = _create_icon_image(color, label)

    def refresh_menu(self) -> None:
        """Rebuild the context menu (e.g. after pausing)."""
        if self._icon:
            self._icon.menu = self._build_menu()
            self._icon.update_menu()
