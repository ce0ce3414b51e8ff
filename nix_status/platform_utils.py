"""
Cross-platform utilities for Nix Status.

Centralises OS detection so every other module imports one set of
helpers rather than scattering ``sys.platform`` checks.

Supported platforms (wherever Nix runs):
  - Linux
  - macOS 12+ (Monterey and newer)
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

# ---- platform flags ----------------------------------------------------

IS_MACOS: bool = sys.platform == "darwin"
# procps pgrep (Linux) has -c; the BSD pgrep on macOS prints one PID per line
PGREP_HAS_COUNT: bool = sys.platform.startswith("linux")

# ---- directories -------------------------------------------------------


def get_config_dir() -> Path:
    """
    Return the application config directory, created if needed.

    - macOS   : ``~/Library/Application Support/NixStatus``
    - Linux   : ``$XDG_CONFIG_HOME/nix-status`` (default ``~/.config``)
    """
    if IS_MACOS:
        config_dir = Path.home() / "Library" / "Application Support" / "NixStatus"
    else:
        base = os.environ.get("XDG_CONFIG_HOME") or str(Path.home() / ".config")
        config_dir = Path(base) / "nix-status"
    config_dir.mkdir(parents=True, exist_ok=True)
    return config_dir


def get_log_path() -> Path:
    """Return the path to the log file (inside the config directory)."""
    return get_config_dir() / "nix_status.log"
