"""Tests for the command-line entry point and headless runner."""

from __future__ import annotations

import io
import json
import signal
import threading

import pytest

from nix_status.__main__ import build_parser, main
from nix_status.config import Config
from nix_status.service import run_foreground

from conftest import wait_for


def _config(tmp_path, **overrides):
    path = tmp_path / "config.json"
    data = {"trigger_files": [str(tmp_path / "db.sqlite")], "debounce_seconds": 0.025}
    data.update(overrides)
    path.write_text(json.dumps(data), encoding="utf-8")
    return path


class TestOnce:
    def test_prints_count(self, tmp_path, fake_tool, capsys):
        tool = fake_tool("echo 3")
        path = _config(tmp_path, query_executable=str(tool))

        assert main(["--once", "--config", str(path)]) == 0
        assert capsys.readouterr().out == "λ 3\n"

    def test_prints_each_count(self, tmp_path, fake_tool, capsys):
        tool = fake_tool("printf '0\\n2\\n'")
        path = _config(tmp_path, query_executable=str(tool))

        assert main(["--once", "--config", str(path)]) == 0
        assert capsys.readouterr().out == "λ idle\nλ 2\n"

    def test_failure_exit_status(self, tmp_path, capsys):
        path = _config(tmp_path, query_executable=str(tmp_path / "missing"))

        assert main(["--once", "--config", str(path)]) == 1
        assert capsys.readouterr().out == "λ no pgrep\n"


class TestParser:
    def test_modes_are_exclusive(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["--once", "--headless"])

    def test_version(self, capsys):
        with pytest.raises(SystemExit):
            main(["--version"])
        assert "Nix Status" in capsys.readouterr().out


class _LockedBuffer(io.StringIO):
    def __init__(self):
        super().__init__()
        self._lock = threading.Lock()

    def write(self, text):
        with self._lock:
            return super().write(text)

    def lines(self):
        with self._lock:
            return self.getvalue().splitlines()


def test_run_foreground_prints_updates_until_signalled(tmp_path, fake_tool, monkeypatch):
    tool = fake_tool("echo 1")
    cfg = Config(_config(tmp_path, query_executable=str(tool)))
    out = _LockedBuffer()
    # signal.signal only works on the main thread
    handlers = {}
    monkeypatch.setattr(
        "nix_status.service.signal.signal",
        lambda sig, handler: handlers.setdefault(sig, handler),
    )

    runner = threading.Thread(target=run_foreground, args=(cfg, out))
    runner.start()
    assert wait_for(lambda: out.lines() == ["λ ?", "λ 1"])

    handlers[signal.SIGTERM](signal.SIGTERM, None)
    runner.join(timeout=5)

    assert not runner.is_alive()
