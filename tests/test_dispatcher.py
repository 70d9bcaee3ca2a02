"""Tests for the event dispatcher."""

import threading
import zipfile
from unittest.mock import MagicMock

import pytest

from downloadsorter.classifier import Category
from downloadsorter.mover import OutcomeStatus, RelocationEngine, RelocationOutcome, ensure_category_directories
from downloadsorter.watcher import ChangeEvent, EntryKind, EventDispatcher


@pytest.fixture
def root(tmp_path):
    return ensure_category_directories(tmp_path).root


@pytest.fixture
def engine(root):
    return RelocationEngine(ensure_category_directories(root), sleep=MagicMock())


@pytest.fixture
def dispatcher(engine):
    """Create a dispatcher and make sure it is shut down."""
    dispatcher = EventDispatcher(engine, max_workers=2, shutdown_grace_seconds=1.0)
    yield dispatcher
    dispatcher.shutdown(grace_seconds=1.0)


def blocking_relocate(release: threading.Event):
    """Build a relocate replacement that waits for a release signal."""

    def relocate(path, category, cancel_event=None):
        release.wait(5)
        return RelocationOutcome.moved(path, category, None)

    return relocate


class TestProcess:
    """Tests for synchronous event handling."""

    def test_end_to_end(self, dispatcher, root):
        """Test a file, an executable, an archive and a directory together."""
        (root / "report.pdf").write_text("report")
        (root / "app.exe").write_text("MZ")
        with zipfile.ZipFile(root / "bundle.zip", "w") as archive:
            archive.writestr("a.txt", "inside")
        (root / "notes").mkdir()
        (root / "notes" / "todo.txt").write_text("todo")

        futures = [
            dispatcher.submit(ChangeEvent.for_path(root / name))
            for name in ("report.pdf", "app.exe", "bundle.zip", "notes")
        ]
        outcomes = [future.result(timeout=10) for future in futures]

        assert [o.status for o in outcomes] == [
            OutcomeStatus.MOVED,
            OutcomeStatus.MOVED,
            OutcomeStatus.EXTRACTED,
            OutcomeStatus.MOVED,
        ]
        assert (root / "Documents" / "report.pdf").read_text() == "report"
        assert (root / "Executables" / "app.exe").exists()
        assert (root / "Archives" / "bundle" / "a.txt").read_text() == "inside"
        assert (root / "Directories" / "notes" / "todo.txt").exists()
        assert dispatcher.stats["moved"] == 3
        assert dispatcher.stats["extracted"] == 1

    def test_vanished_then_normal(self, dispatcher, root):
        """Test that a vanished entry does not disturb the next event."""
        gone = dispatcher.process(ChangeEvent(path=root / "gone.pdf", kind=EntryKind.FILE))
        (root / "here.pdf").write_text("x")
        here = dispatcher.process(ChangeEvent(path=root / "here.pdf", kind=EntryKind.FILE))

        assert gone.status is OutcomeStatus.SKIPPED
        assert gone.reason == "vanished"
        assert here.status is OutcomeStatus.MOVED

    def test_unhandled_skipped(self, dispatcher, root):
        """Test that unknown file types stay where they are."""
        (root / "script.py").write_text("print()")
        outcome = dispatcher.process(ChangeEvent(path=root / "script.py", kind=EntryKind.FILE))

        assert outcome.status is OutcomeStatus.SKIPPED
        assert outcome.category is Category.UNHANDLED
        assert (root / "script.py").exists()

    def test_category_folder_skipped(self, dispatcher, root):
        """Test that events for category folders are ignored."""
        outcome = dispatcher.process(ChangeEvent(path=root / "Images", kind=EntryKind.DIRECTORY))
        assert outcome.status is OutcomeStatus.SKIPPED
        assert outcome.reason == "category folder"

    def test_staging_folder_skipped(self, dispatcher, root):
        """Test that in-progress extraction folders are ignored."""
        staging = root / ".bundle.partial-0123abcd"
        staging.mkdir()
        outcome = dispatcher.process(ChangeEvent(path=staging, kind=EntryKind.DIRECTORY))
        assert outcome.status is OutcomeStatus.SKIPPED
        assert staging.exists()

    def test_unexpected_error_becomes_failure(self, dispatcher, engine, root):
        """Test that a crash in one event is contained."""
        (root / "report.pdf").write_text("x")
        engine.relocate = MagicMock(side_effect=RuntimeError("boom"))

        outcome = dispatcher.process(ChangeEvent(path=root / "report.pdf", kind=EntryKind.FILE))

        assert outcome.status is OutcomeStatus.FAILED
        assert outcome.reason == "unexpected error"
        assert outcome.category is Category.DOCUMENTS
        assert dispatcher.stats["failed"] == 1

    def test_on_outcome_callback(self, engine, root):
        """Test that every outcome reaches the callback, even if it raises."""
        seen = []

        def callback(event, outcome):
            seen.append((event, outcome))
            raise ValueError("callback bug")

        dispatcher = EventDispatcher(engine, max_workers=1, on_outcome=callback)
        (root / "report.pdf").write_text("x")
        event = ChangeEvent(path=root / "report.pdf", kind=EntryKind.FILE)

        outcome = dispatcher.process(event)
        dispatcher.shutdown()

        assert outcome.status is OutcomeStatus.MOVED
        assert seen == [(event, outcome)]


class TestConcurrency:
    """Tests for queued and parallel events."""

    def test_cross_category_no_contention(self, dispatcher, engine, root):
        """Test that a locked Documents destination does not block an executable."""
        (root / "app.exe").write_text("MZ")

        with engine.locks.hold(engine.lock_key_for(root / "Documents" / "report.pdf")):
            future = dispatcher.submit(ChangeEvent.for_path(root / "app.exe"))
            outcome = future.result(timeout=5)

        assert outcome.status is OutcomeStatus.MOVED
        assert (root / "Executables" / "app.exe").exists()

    def test_duplicate_queued_event_dropped(self, engine, root):
        """Test that a second event for a queued path is dropped."""
        release = threading.Event()
        engine.relocate = MagicMock(side_effect=blocking_relocate(release))
        dispatcher = EventDispatcher(engine, max_workers=1)
        for name in ("first.pdf", "second.pdf"):
            (root / name).write_text("x")

        try:
            running = dispatcher.submit(ChangeEvent.for_path(root / "first.pdf"))
            queued = dispatcher.submit(ChangeEvent.for_path(root / "second.pdf"))
            duplicate = dispatcher.submit(ChangeEvent.for_path(root / "second.pdf"))

            assert running is not None
            assert queued is not None
            assert duplicate is None
            assert dispatcher.stats["duplicates"] == 1
        finally:
            release.set()
            dispatcher.shutdown()

        assert engine.relocate.call_count == 2

    def test_shutdown_cancels_queued_events(self, engine, root):
        """Test that events still queued after the grace period are cancelled."""
        outcomes = []

        def slow(path, category, cancel_event=None):
            cancel_event.wait(5)
            return RelocationOutcome.failed(path, category, "cancelled")

        engine.relocate = MagicMock(side_effect=slow)
        dispatcher = EventDispatcher(
            engine,
            max_workers=1,
            shutdown_grace_seconds=0.2,
            on_outcome=lambda event, outcome: outcomes.append(outcome),
        )
        for name in ("first.pdf", "second.pdf"):
            (root / name).write_text("x")

        running = dispatcher.submit(ChangeEvent.for_path(root / "first.pdf"))
        queued = dispatcher.submit(ChangeEvent.for_path(root / "second.pdf"))
        dispatcher.shutdown()

        assert running.done()
        assert queued.cancelled()
        assert engine.relocate.call_count == 1
        assert sorted(o.source.name for o in outcomes) == ["first.pdf", "second.pdf"]
        assert all(o.reason == "cancelled" for o in outcomes)
        assert dispatcher.stats["failed"] == 2

    def test_submit_after_shutdown(self, dispatcher, root):
        """Test that no events are accepted once shut down."""
        dispatcher.shutdown()
        assert not dispatcher.is_accepting
        assert dispatcher.submit(ChangeEvent(path=root / "late.pdf", kind=EntryKind.FILE)) is None

    def test_report_error(self, dispatcher):
        """Test that watch-source errors are counted."""
        dispatcher.report_error(OSError("inotify overflow"))
        assert dispatcher.stats["errors"] == 1
