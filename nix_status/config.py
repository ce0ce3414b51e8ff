"""Configuration management for Nix Status.

Stores and retrieves user settings from a JSON config file
in the platform-appropriate application data directory.
"""

import json
import logging
from pathlib import Path
from typing import Any

from nix_status.models import UserScope
from nix_status.platform_utils import (
    get_config_dir as _platform_config_dir,
)
from nix_status.platform_utils import (
    get_log_path as _platform_log_path,
)

logger = logging.getLogger(__name__)

# Nix builder front-ends; pgrep matches the 15-character process name
DEFAULT_PROCESS_PATTERN = r"^nix(-(build|env|shell|store|instantiate|collect-garbage))?$"

DEFAULT_TRIGGER_FILES = [
    "/nix/var/nix/db/db.sqlite",
    "/nix/var/nix/db/db.sqlite-wal",
]

DEFAULT_CONFIG: dict[str, Any] = {
    "trigger_files": DEFAULT_TRIGGER_FILES,
    "user_scope": UserScope.SELF_AND_ROOT.value,  # self | self-and-root | all
    "process_pattern": DEFAULT_PROCESS_PATTERN,
    "debounce_seconds": 0.025,
    "query_executable": "pgrep",
    "initial_query": True,  # count once as soon as the watcher is up
    "retry_interval_seconds": 2.0,  # poll for missing watch directories
    "stop_grace_seconds": 1.0,  # wait for a hung query before killing it
    # ---- display texts ----
    "text_not_started": "λ ?",
    "text_idle": "λ idle",
    "text_running": "λ {count}",  # {count} = number of builders
    "text_tool_missing": "λ no pgrep",
    "text_query_failed": "λ error",
    "text_malformed": "λ ???",
    "text_crashed": "λ crashed",
    # ---- logging ----
    "log_level": "INFO",
    "max_log_size_mb": 10,  # rotate log when it exceeds this size
    "log_backup_count": 3,  # number of rotated log files to keep
}

_MIN_DEBOUNCE = 0.001


def get_config_dir() -> Path:
    """Return the platform-appropriate application config directory."""
    return _platform_config_dir()


def get_config_path() -> Path:
    """Return the path to the configuration file."""
    return get_config_dir() / "config.json"


def get_log_path() -> Path:
    """Return the path to the log file."""
    return _platform_log_path()


class Config:
    """Configuration manager backed by a JSON file.

    Values are read once per run; the watch loop is restarted to pick
    up changes.
    """

    def __init__(self, path: Path | None = None):
        """Load config from *path*, falling back to the platform default."""
        self._path = path or get_config_path()
        self._data: dict[str, Any] = dict(DEFAULT_CONFIG)
        self.load()

    @property
    def path(self) -> Path:
        return self._path

    # ---- persistence ----

    def load(self) -> None:
        """Load configuration from disk, applying defaults for missing keys."""
        if self._path.exists():
            try:
                with open(self._path, encoding="utf-8") as fh:
                    stored = json.load(fh)
                if not isinstance(stored, dict):
                    raise ValueError("top-level JSON value is not an object")
                # Merge stored values over defaults so new keys get defaults
                self._data = {**DEFAULT_CONFIG, **stored}
                logger.info("Configuration loaded from %s", self._path)
            except (json.JSONDecodeError, ValueError, OSError) as exc:
                logger.warning("Could not read config (%s); using defaults.", exc)
                self._data = dict(DEFAULT_CONFIG)
        else:
            self._data = dict(DEFAULT_CONFIG)
            self.save()
            logger.info("Created default configuration at %s", self._path)

    def save(self) -> None:
        """Persist the current configuration to disk."""
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with open(self._path, "w", encoding="utf-8") as fh:
                json.dump(self._data, fh, indent=2, ensure_ascii=False)
            logger.info("Configuration saved.")
        except OSError as exc:
            logger.error("Failed to save configuration: %s", exc)

    # ---- watch ----

    @property
    def trigger_files(self) -> list[str]:
        """Return the marker files whose changes trigger a recount."""
        files = self._data.get("trigger_files") or []
        if isinstance(files, str):
            files = [files]
        return [str(f) for f in files if str(f).strip()] or list(DEFAULT_TRIGGER_FILES)

    @property
    def debounce_seconds(self) -> float:
        """Return the quiet period before a recount (always > 0)."""
        try:
            value = float(self._data.get("debounce_seconds", 0.025))
        except (TypeError, ValueError):
            value = 0.025
        return max(_MIN_DEBOUNCE, value)

    @property
    def retry_interval(self) -> float:
        """Return seconds between checks for missing watch directories."""
        return max(0.1, float(self._data.get("retry_interval_seconds", 2.0)))

    # ---- query ----

    @property
    def user_scope(self) -> UserScope:
        """Return whose processes are counted; invalid values mean SELF."""
        try:
            return UserScope.parse(self._data.get("user_scope", UserScope.SELF.value))
        except ValueError:
            logger.warning(
                "Invalid user_scope %r; using %r.",
                self._data.get("user_scope"),
                UserScope.SELF.value,
            )
            return UserScope.SELF

    @property
    def process_pattern(self) -> str:
        """Return the process-name regular expression."""
        return str(self._data.get("process_pattern") or "").strip() or DEFAULT_PROCESS_PATTERN

    @property
    def query_executable(self) -> str:
        """Return the pgrep-compatible count tool."""
        return self._data.get("query_executable") or "pgrep"

    @property
    def initial_query(self) -> bool:
        return bool(self._data.get("initial_query", True))

    @property
    def stop_grace(self) -> float:
        """Return seconds a hung query gets on shutdown before it is killed."""
        return max(0.0, float(self._data.get("stop_grace_seconds", 1.0)))

    # ---- display ----

    @property
    def texts(self) -> dict[str, str]:
        """Return every ``text_*`` entry keyed without the prefix."""
        return {
            key[len("text_"):]: str(self._data.get(key, default))
            for key, default in DEFAULT_CONFIG.items()
            if key.startswith("text_")
        }

    # ---- logging ----

    @property
    def log_level(self) -> str:
        """Return the current logging level name."""
        return self._data.get("log_level", "INFO")

    @property
    def max_log_size_mb(self) -> int:
        """Return the maximum log file size in MB before rotation."""
        return max(1, int(self._data.get("max_log_size_mb", 10)))

    @property
    def log_backup_count(self) -> int:
        """Return the number of rotated log backups to keep."""
        return max(0, int(self._data.get("log_backup_count", 3)))
