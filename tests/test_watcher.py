"""Tests for the marker-file watcher."""

from __future__ import annotations

import os
import shutil
import time

import pytest
from watchdog.events import (
    DirDeletedEvent,
    DirModifiedEvent,
    FileCreatedEvent,
    FileDeletedEvent,
    FileModifiedEvent,
    FileMovedEvent,
    FileOpenedEvent,
)

from nix_status.models import TriggerEvent
from nix_status.watcher import FileWatcher, MarkerFileHandler, normalize_path

from conftest import Recorder, wait_for


# ── Event filtering ──────────────────────────────────────────────────


class TestMarkerFileHandler:
    def _handler(self, tmp_path, recorder):
        target = str(tmp_path / "db.sqlite")
        return target, MarkerFileHandler([target], recorder)

    def test_modified_monitored_file_triggers(self, tmp_path, recorder):
        target, handler = self._handler(tmp_path, recorder)
        handler.dispatch(FileModifiedEvent(target))
        events = recorder.snapshot()
        assert len(events) == 1
        assert isinstance(events[0], TriggerEvent)
        assert events[0].path == target
        assert events[0].event_type == "modified"

    @pytest.mark.parametrize("event_cls", [FileCreatedEvent, FileDeletedEvent])
    def test_create_and_delete_trigger(self, tmp_path, recorder, event_cls):
        target, handler = self._handler(tmp_path, recorder)
        handler.dispatch(event_cls(target))
        assert len(recorder) == 1

    def test_other_files_are_ignored(self, tmp_path, recorder):
        _, handler = self._handler(tmp_path, recorder)
        handler.dispatch(FileModifiedEvent(str(tmp_path / "db.sqlite-journal")))
        assert len(recorder) == 0

    def test_directory_events_are_ignored(self, tmp_path, recorder):
        _, handler = self._handler(tmp_path, recorder)
        handler.dispatch(DirModifiedEvent(str(tmp_path)))
        assert len(recorder) == 0

    def test_opened_events_are_ignored(self, tmp_path, recorder):
        target, handler = self._handler(tmp_path, recorder)
        handler.dispatch(FileOpenedEvent(target))
        assert len(recorder) == 0

    def test_move_onto_monitored_file_triggers(self, tmp_path, recorder):
        target, handler = self._handler(tmp_path, recorder)
        handler.dispatch(FileMovedEvent(str(tmp_path / "tmp123"), target))
        events = recorder.snapshot()
        assert [e.path for e in events] == [target]

    def test_move_away_from_monitored_file_triggers(self, tmp_path, recorder):
        target, handler = self._handler(tmp_path, recorder)
        handler.dispatch(FileMovedEvent(target, str(tmp_path / "db.old")))
        assert len(recorder) == 1

    def test_deleting_watched_directory_is_reported(self, tmp_path, recorder):
        gone = []
        handler = MarkerFileHandler([str(tmp_path / "db.sqlite")], recorder, gone.append)
        handler.dispatch(FileDeletedEvent(str(tmp_path)))
        handler.dispatch(DirDeletedEvent(str(tmp_path)))
        handler.dispatch(DirDeletedEvent(str(tmp_path / "other")))
        assert gone == [str(tmp_path), str(tmp_path)]
        assert len(recorder) == 0

    def test_callback_errors_are_contained(self, tmp_path):
        target = str(tmp_path / "db.sqlite")

        def boom(event):
            raise RuntimeError("boom")

        handler = MarkerFileHandler([target], boom)
        handler.dispatch(FileModifiedEvent(target))


def test_normalize_path_expands_home(monkeypatch, tmp_path):
    monkeypatch.setenv("HOME", str(tmp_path))
    assert normalize_path("~/a/../b") == os.path.join(str(tmp_path), "b")


# ── Live watching ────────────────────────────────────────────────────


@pytest.fixture
def make_watcher():
    watchers = []

    def _make(paths, on_trigger, **kwargs):
        kwargs.setdefault("retry_interval", 0.05)
        watcher = FileWatcher(paths, on_trigger, **kwargs)
        watchers.append(watcher)
        return watcher

    yield _make
    for watcher in watchers:
        watcher.stop()


class TestFileWatcher:
    def test_requires_paths(self, recorder):
        with pytest.raises(ValueError):
            FileWatcher([], recorder).start()

    def test_duplicate_paths_are_collapsed(self, tmp_path, recorder):
        target = tmp_path / "db.sqlite"
        watcher = FileWatcher([target, str(target)], recorder)
        assert watcher.paths == [str(target)]

    def test_write_to_existing_file_triggers(self, tmp_path, recorder, make_watcher):
        target = tmp_path / "db.sqlite"
        target.write_text("v1")
        watcher = make_watcher([target], recorder)
        watcher.start()
        assert watcher.is_running
        assert watcher.watched_directories == [str(tmp_path)]

        target.write_text("v2")

        assert wait_for(lambda: len(recorder) >= 1)
        assert {e.path for e in recorder.snapshot()} == {str(target)}

    def test_unrelated_files_do_not_trigger(self, tmp_path, recorder, make_watcher):
        target = tmp_path / "db.sqlite"
        watcher = make_watcher([target], recorder)
        watcher.start()

        (tmp_path / "other.txt").write_text("x")
        time.sleep(0.3)

        assert len(recorder) == 0

    def test_file_created_later_triggers(self, tmp_path, recorder, make_watcher):
        target = tmp_path / "db.sqlite"
        watcher = make_watcher([target], recorder)
        watcher.start()

        target.write_text("hello")

        assert wait_for(lambda: len(recorder) >= 1)
        assert recorder.snapshot()[0].event_type == "created"

    def test_survives_delete_and_recreate(self, tmp_path, recorder, make_watcher):
        target = tmp_path / "db.sqlite"
        target.write_text("v1")
        watcher = make_watcher([target], recorder)
        watcher.start()

        target.unlink()
        assert wait_for(lambda: any(e.event_type == "deleted" for e in recorder.snapshot()))
        seen = len(recorder)

        target.write_text("v2")
        assert wait_for(lambda: len(recorder) > seen)

    def test_missing_directory_is_retried(self, tmp_path, recorder, make_watcher):
        directory = tmp_path / "nix" / "db"
        target = directory / "db.sqlite"
        watcher = make_watcher([target], recorder)
        watcher.start()

        assert watcher.pending_directories == [str(directory)]
        assert len(recorder) == 0

        directory.mkdir(parents=True)
        target.write_text("created")

        assert wait_for(lambda: len(recorder) >= 1)
        assert wait_for(lambda: watcher.watched_directories == [str(directory)])
        assert {e.path for e in recorder.snapshot()} == {str(target)}

    def test_vanished_directory_goes_back_to_pending(self, tmp_path, recorder, make_watcher):
        directory = tmp_path / "db"
        directory.mkdir()
        target = directory / "db.sqlite"
        watcher = make_watcher([target], recorder)
        watcher.start()
        assert watcher.watched_directories == [str(directory)]

        directory.rmdir()
        assert wait_for(lambda: watcher.pending_directories == [str(directory)])

        directory.mkdir()
        assert wait_for(lambda: watcher.watched_directories == [str(directory)])
        target.write_text("back")
        assert wait_for(lambda: len(recorder) >= 1)

    def test_directory_replaced_between_polls(self, tmp_path, recorder, make_watcher):
        directory = tmp_path / "db"
        directory.mkdir()
        target = directory / "db.sqlite"
        target.write_text("v1")
        watcher = make_watcher([target], recorder, retry_interval=0.5)
        watcher.start()

        shutil.rmtree(directory)
        directory.mkdir()
        time.sleep(1.2)
        seen = len(recorder)

        target.write_text("v2")

        assert wait_for(lambda: len(recorder) > seen)
        assert watcher.watched_directories == [str(directory)]

    def test_stop_is_idempotent(self, tmp_path, recorder):
        watcher = FileWatcher([tmp_path / "db.sqlite"], recorder)
        watcher.start()
        watcher.stop()
        watcher.stop()
        assert not watcher.is_running
        assert watcher.watched_directories == []

    def test_no_triggers_after_stop(self, tmp_path, recorder):
        target = tmp_path / "db.sqlite"
        watcher = FileWatcher([target], recorder)
        watcher.start()
        watcher.stop()

        target.write_text("late")
        time.sleep(0.3)

        assert len(recorder) == 0

    def test_polling_observer(self, tmp_path, make_watcher):
        recorder = Recorder()
        target = tmp_path / "db.sqlite"
        target.write_text("v1")
        watcher = make_watcher([target], recorder, use_polling=True)
        watcher.start()

        time.sleep(0.1)
        target.write_text("v2 with a different size")

        assert wait_for(lambda: len(recorder) >= 1, timeout=10)
