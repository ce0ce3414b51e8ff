"""Nix Status: live Nix builder indicator.

Watches the Nix store database for changes and, after each burst of
writes settles, counts running Nix builder processes and pushes the
count to a tray icon or a status-bar line.
"""

__version__ = "1.1.0"
__app_name__ = "Nix Status"
