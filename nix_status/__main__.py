"""Entry point for Nix Status.

Usage:
    python -m nix_status               Launch the tray indicator
    python -m nix_status --headless    Print one status line per update
    python -m nix_status --once        Count once, print, and exit
"""

import argparse
import sys
from pathlib import Path

from nix_status import __app_name__, __version__


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="nix-status",
        description="Live count of running Nix builds.",
    )
    parser.add_argument(
        "--version", action="version", version=f"{__app_name__} {__version__}"
    )
    parser.add_argument("--config", type=Path, help="Path to an alternative config.json")
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument(
        "--headless", action="store_true", help="Print status lines to stdout (no tray)"
    )
    mode.add_argument(
        "--once", action="store_true", help="Run a single count and exit"
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    """Launch the tray app or one of the headless modes."""
    args = build_parser().parse_args(argv)

    from nix_status.config import Config

    config = Config(args.config)

    if args.once:
        from nix_status.service import run_once

        return run_once(config)

    from nix_status.logsetup import setup_logging

    if args.headless:
        from nix_status.service import run_foreground

        setup_logging(config)
        run_foreground(config)
        return 0

    from nix_status.app import App

    App(config).run()
    return 0


if __name__ == "__main__":
    sys.exit(main())
