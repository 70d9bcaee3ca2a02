"""Tests for the watcher component."""

import time
import zipfile
from pathlib import Path
from unittest.mock import MagicMock

import pytest
from watchdog.events import DirCreatedEvent, FileCreatedEvent, FileMovedEvent

from downloadsorter.config import DownloadSorterConfig
from downloadsorter.exceptions import ConfigurationError
from downloadsorter.mover import OutcomeStatus
from downloadsorter.watcher import (
    IGNORED_EXTENSIONS,
    IGNORED_PATTERNS,
    ChangeEvent,
    EntryKind,
    NormalizingEventHandler,
    RawEventType,
    WatchSession,
)


def wait_for(condition, timeout: float = 5.0) -> bool:
    """Poll until a condition holds or the timeout passes."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if condition():
            return True
        time.sleep(0.05)
    return condition()


@pytest.fixture
def root(tmp_path):
    root = tmp_path / "Downloads"
    root.mkdir()
    return root


def make_config(root: Path, **overrides) -> DownloadSorterConfig:
    processing = {"debounce_seconds": 0.0, "shutdown_grace_seconds": 2.0}
    processing.update(overrides.pop("processing", {}))
    return DownloadSorterConfig(
        watch_root=root,
        processing=processing,
        logging={"file_enabled": False},
        **overrides,
    )


class TestChangeEvent:
    """Tests for ChangeEvent."""

    def test_for_path_detects_kind(self, tmp_path):
        """Test that for_path looks at what is on disk."""
        (tmp_path / "dir").mkdir()
        (tmp_path / "file.txt").write_text("x")

        assert ChangeEvent.for_path(tmp_path / "dir").kind is EntryKind.DIRECTORY
        assert ChangeEvent.for_path(tmp_path / "file.txt").kind is EntryKind.FILE

    def test_nonces_increase(self, tmp_path):
        """Test that every event gets a new number."""
        first = ChangeEvent(path=tmp_path / "a", kind=EntryKind.FILE)
        second = ChangeEvent(path=tmp_path / "a", kind=EntryKind.FILE)
        assert second.nonce > first.nonce


class TestNormalizingEventHandler:
    """Tests for NormalizingEventHandler."""

    def test_should_ignore_partial_downloads(self, root):
        """Test that in-progress downloads and temp files are ignored."""
        handler = NormalizingEventHandler(root, callback=MagicMock())
        assert handler._should_ignore(root / "movie.mkv.crdownload")
        assert handler._should_ignore(root / "file.part")
        assert handler._should_ignore(root / "file.tmp")
        assert handler._should_ignore(root / "notes.txt~")

    def test_should_ignore_system_files(self, root):
        """Test that OS metadata files are ignored."""
        handler = NormalizingEventHandler(root, callback=MagicMock())
        for name in IGNORED_PATTERNS:
            assert handler._should_ignore(root / name)

    def test_should_ignore_nested_and_reserved(self, root):
        """Test that only direct, non-category children are reported."""
        handler = NormalizingEventHandler(root, callback=MagicMock(), reserved_names=frozenset({"Images"}))
        assert handler._should_ignore(root / "Images")
        assert handler._should_ignore(root / "Images" / "cat.png")
        assert handler._should_ignore(root / ".bundle.partial-0123abcd")

    def test_hidden_files_not_ignored(self, root):
        """Test that dot-files are still sorted."""
        handler = NormalizingEventHandler(root, callback=MagicMock())
        assert not handler._should_ignore(root / ".png")
        assert not handler._should_ignore(root / "report.pdf")

    def test_ignored_extensions_are_lowercase(self):
        """Test that the ignore list is normalized."""
        assert all(ext == ext.lower() and ext.startswith(".") for ext in IGNORED_EXTENSIONS)

    def test_created_immediate(self, root):
        """Test that events are emitted at once without debounce."""
        callback = MagicMock()
        handler = NormalizingEventHandler(root, callback=callback, debounce_seconds=0)

        handler.dispatch(FileCreatedEvent(str(root / "report.pdf")))
        handler.dispatch(DirCreatedEvent(str(root / "notes")))

        events = [call.args[0] for call in callback.call_args_list]
        assert [(e.path, e.kind) for e in events] == [
            (root / "report.pdf", EntryKind.FILE),
            (root / "notes", EntryKind.DIRECTORY),
        ]

    def test_moved_uses_destination(self, root):
        """Test that a rename reports the new name."""
        callback = MagicMock()
        handler = NormalizingEventHandler(root, callback=callback, debounce_seconds=0)

        handler.dispatch(FileMovedEvent(str(root / "report.pdf.crdownload"), str(root / "report.pdf")))

        event = callback.call_args[0][0]
        assert event.path == root / "report.pdf"
        assert event.source is RawEventType.MOVED

    def test_moved_out_of_root_ignored(self, root, tmp_path):
        """Test that moves to elsewhere are not reported."""
        callback = MagicMock()
        handler = NormalizingEventHandler(root, callback=callback, debounce_seconds=0)

        handler.dispatch(FileMovedEvent(str(root / "a.pdf"), str(tmp_path / "a.pdf")))

        callback.assert_not_called()

    def test_debounce_coalesces(self, root):
        """Test that repeated notifications for a path become one event."""
        callback = MagicMock()
        handler = NormalizingEventHandler(root, callback=callback, debounce_seconds=0.1)

        handler.dispatch(FileCreatedEvent(str(root / "report.pdf")))
        handler.dispatch(FileCreatedEvent(str(root / "report.pdf")))
        assert handler.pending_count == 1
        callback.assert_not_called()

        assert wait_for(lambda: callback.call_count == 1, timeout=2.0)
        time.sleep(0.2)
        assert callback.call_count == 1
        assert handler.pending_count == 0

    def test_stop_cancels_pending_timers(self, root):
        """Test that stop() cancels pending timers."""
        callback = MagicMock()
        handler = NormalizingEventHandler(root, callback=callback, debounce_seconds=1.0)

        handler.dispatch(FileCreatedEvent(str(root / "report.pdf")))
        handler.stop()
        time.sleep(0.2)

        callback.assert_not_called()
        assert handler.pending_count == 0

    def test_callback_error_forwarded(self, root):
        """Test that errors while handling go to on_error and not the observer."""
        on_error = MagicMock()
        handler = NormalizingEventHandler(
            root,
            callback=MagicMock(side_effect=RuntimeError("queue broke")),
            on_error=on_error,
            debounce_seconds=0,
        )

        handler.dispatch(FileCreatedEvent(str(root / "report.pdf")))

        on_error.assert_called_once()
        assert str(on_error.call_args[0][0]) == "queue broke"


class TestWatchSession:
    """Tests for WatchSession."""

    def test_missing_root_is_fatal(self, tmp_path):
        """Test that starting on a missing folder fails before watching."""
        session = WatchSession(make_config(tmp_path / "missing"))

        with pytest.raises(ConfigurationError):
            session.start()

        assert not session.is_running

    def test_prepare_creates_folders(self, root):
        """Test that the category folders exist after prepare()."""
        session = WatchSession(make_config(root))
        session.prepare()
        try:
            assert (root / "Documents").is_dir()
            assert session.engine.paths.root == root.resolve()
        finally:
            session.stop()

    def test_scan_existing(self, root):
        """Test that pre-existing entries are found, folders and junk excluded."""
        session = WatchSession(make_config(root))
        session.prepare()
        (root / "report.pdf").write_text("x")
        (root / "notes").mkdir()
        (root / "Thumbs.db").write_text("x")
        (root / "movie.part").write_text("x")

        events = session.scan_existing()
        session.stop()

        assert sorted(e.path.name for e in events) == ["notes", "report.pdf"]

    def test_sort_existing(self, root):
        """Test one-shot sorting of a folder."""
        (root / "report.pdf").write_text("x")
        (root / "app.exe").write_text("MZ")
        (root / "script.py").write_text("print()")
        session = WatchSession(make_config(root))

        outcomes = session.sort_existing()
        session.stop()

        by_name = {o.source.name: o.status for o in outcomes}
        assert by_name == {
            "app.exe": OutcomeStatus.MOVED,
            "report.pdf": OutcomeStatus.MOVED,
            "script.py": OutcomeStatus.SKIPPED,
        }
        assert (root / "Documents" / "report.pdf").exists()
        assert (root / "script.py").exists()

    @pytest.mark.parametrize("collision_policy", ["reject", "suffix"])
    def test_sort_existing_twice_leaves_extracted_archives(self, root, collision_policy):
        """Test that sorting again does not extract archives a second time."""
        with zipfile.ZipFile(root / "bundle.zip", "w") as archive:
            archive.writestr("a.txt", "alpha")
        config = make_config(root, collision_policy=collision_policy)

        first = WatchSession(config)
        first_outcomes = first.sort_existing()
        first.stop()

        second = WatchSession(config)
        second_outcomes = second.sort_existing()
        second.stop()

        assert [o.status for o in first_outcomes] == [OutcomeStatus.EXTRACTED]
        assert second_outcomes == []
        assert sorted(p.name for p in (root / "Archives").iterdir()) == ["bundle"]
        assert (root / "bundle.zip").exists()

    def test_watch_sorts_new_files(self, root):
        """Test that files appearing while watching are relocated."""
        outcomes = []
        config = make_config(root, processing={"debounce_seconds": 0.2})

        with WatchSession(config, on_outcome=lambda event, outcome: outcomes.append(outcome)) as session:
            assert session.is_running
            assert session.check_health()
            (root / "report.pdf").write_text("report")
            (root / "app.exe").write_text("MZ")

            assert wait_for(lambda: (root / "Documents" / "report.pdf").exists())
            assert wait_for(lambda: (root / "Executables" / "app.exe").exists())

        assert not session.is_running
        assert {o.source.name for o in outcomes if o.success} >= {"report.pdf", "app.exe"}

    def test_stop_is_idempotent(self, root):
        """Test that stopping twice is harmless."""
        session = WatchSession(make_config(root))
        session.start()
        session.stop()
        session.stop()
        assert not session.is_running
        assert not session.check_health()
