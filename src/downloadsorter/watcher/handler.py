"""File system event handler normalizing watchdog events into change events."""

import threading
from collections.abc import Callable
from pathlib import Path

from watchdog.events import FileSystemEvent, FileSystemEventHandler

from ..mover.paths import is_staging_name
from ..utils.logging import get_logger
from .models import ChangeEvent, EntryKind, RawEventType

logger = get_logger(__name__)


# File extensions to ignore (partial downloads, editor temp files)
IGNORED_EXTENSIONS = {
    ".tmp",
    ".temp",
    ".part",
    ".partial",
    ".crdownload",  # Chrome partial download
    ".download",  # Safari partial download
    ".opdownload",  # Opera partial download
    ".aria2",  # aria2 partial download
    ".unconfirmed",
    ".swp",  # Vim swap files
    ".swo",
    ".swn",
    ".lock",
}

# File name patterns to ignore
IGNORED_PATTERNS = {
    ".DS_Store",
    "Thumbs.db",
    "desktop.ini",
}


class NormalizingEventHandler(FileSystemEventHandler):
    """
    File system event handler for the watch root.

    Turns created and moved-into-root notifications into ChangeEvents for
    direct children of the root. A per-path debounce timer coalesces bursts
    (create followed by rename, repeated creates) into a single event.
    """

    def __init__(
        self,
        root: Path,
        callback: Callable[[ChangeEvent], None],
        on_error: Callable[[BaseException], None] | None = None,
        debounce_seconds: float = 1.0,
        reserved_names: frozenset[str] = frozenset(),
    ):
        """
        Initialize the handler.

        Args:
            root: Watch root; only its direct children are reported
            callback: Receives each normalized ChangeEvent
            on_error: Receives exceptions raised while handling raw events
            debounce_seconds: Quiet period before an event is emitted (0 = immediate)
            reserved_names: Names of category folders, which are never reported
        """
        super().__init__()
        self.root = Path(root)
        self.callback = callback
        self.on_error = on_error
        self.debounce_seconds = debounce_seconds
        self.reserved_names = reserved_names

        # Track pending paths: path -> (timer, kind, source)
        self._pending: dict[Path, tuple[threading.Timer, EntryKind, RawEventType]] = {}
        self._lock = threading.Lock()
        self._stopped = False

    def _should_ignore(self, path: Path) -> bool:
        """Check if an entry should be ignored based on its location or name."""
        if path.parent != self.root:
            return True

        if path.name in self.reserved_names:
            return True

        if is_staging_name(path.name):
            return True

        if path.name in IGNORED_PATTERNS:
            return True

        if path.suffix.lower() in IGNORED_EXTENSIONS:
            return True

        # Backup files
        if path.name.endswith("~"):
            return True

        return False

    def _emit(self, path: Path, kind: EntryKind, source: RawEventType):
        event = ChangeEvent(path=path, kind=kind, source=source)
        logger.debug(f"Event #{event.nonce}: {source.value} {kind.value} {path}")
        self.callback(event)

    def _schedule(self, path: Path, kind: EntryKind, source: RawEventType):
        """Emit an event for a path once no new notification arrived for it."""
        if self.debounce_seconds <= 0:
            self._emit(path, kind, source)
            return

        with self._lock:
            if self._stopped:
                return

            # Cancel existing timer if any; the newest notification wins
            if path in self._pending:
                old_timer, _, _ = self._pending[path]
                old_timer.cancel()

            def fire():
                with self._lock:
                    pending = self._pending.get(path)
                    if pending is None or pending[0] is not timer:
                        return
                    del self._pending[path]

                # Call outside of lock
                try:
                    self._emit(path, kind, source)
                except Exception as e:
                    self._report(e)

            timer = threading.Timer(self.debounce_seconds, fire)
            timer.daemon = True
            self._pending[path] = (timer, kind, source)
            timer.start()

    def _report(self, error: BaseException):
        if self.on_error is not None:
            self.on_error(error)
        else:
            logger.error(f"Error handling file system event: {error}")

    def dispatch(self, event: FileSystemEvent):
        """Route a raw event, keeping the observer thread alive on errors."""
        try:
            super().dispatch(event)
        except Exception as e:
            self._report(e)

    def on_created(self, event: FileSystemEvent):
        """Handle entry creation events."""
        path = Path(event.src_path)
        if self._should_ignore(path):
            logger.debug(f"Ignoring created entry: {path}")
            return

        kind = EntryKind.DIRECTORY if event.is_directory else EntryKind.FILE
        self._schedule(path, kind, RawEventType.CREATED)

    def on_moved(self, event: FileSystemEvent):
        """Handle renames; only the destination matters."""
        path = Path(event.dest_path)
        if self._should_ignore(path):
            logger.debug(f"Ignoring moved entry: {event.src_path} -> {path}")
            return

        kind = EntryKind.DIRECTORY if event.is_directory else EntryKind.FILE
        self._schedule(path, kind, RawEventType.MOVED)

    @property
    def pending_count(self) -> int:
        with self._lock:
            return len(self._pending)

    def stop(self):
        """Cancel all pending timers."""
        with self._lock:
            self._stopped = True
            for timer, _, _ in self._pending.values():
                timer.cancel()
            self._pending.clear()
