"""Watch session owning the observer, handler and dispatcher for one watch root."""

import os
import threading
from concurrent.futures import Future, wait
from pathlib import Path

from watchdog.observers import Observer

from ..classifier import Category, classify
from ..config import DownloadSorterConfig
from ..mover import CategoryPaths, RelocationEngine, RelocationOutcome, ensure_category_directories
from ..mover.paths import is_staging_name
from ..utils.logging import get_logger
from .dispatcher import EventDispatcher, OutcomeCallback
from .handler import IGNORED_EXTENSIONS, IGNORED_PATTERNS, NormalizingEventHandler
from .models import ChangeEvent

logger = get_logger(__name__)


class WatchSession:
    """
    Watches the configured root and sorts every entry that appears in it.

    Uses watchdog for cross-platform file system monitoring. The session
    owns the observer handle; nothing about a running watch lives in
    module-level state.
    """

    def __init__(
        self,
        config: DownloadSorterConfig,
        on_outcome: OutcomeCallback | None = None,
    ):
        """
        Initialize the watch session.

        Args:
            config: Application configuration
            on_outcome: Optional callback receiving every (event, outcome) pair
        """
        self.config = config
        self.on_outcome = on_outcome

        self.paths: CategoryPaths | None = None
        self.engine: RelocationEngine | None = None
        self.dispatcher: EventDispatcher | None = None

        self._observer: Observer | None = None
        self._handler: NormalizingEventHandler | None = None
        self._running = False
        self._observer_failed = False
        self._lock = threading.Lock()

    @property
    def is_running(self) -> bool:
        """Check if the session is currently watching."""
        return self._running

    @property
    def watch_root(self) -> Path:
        """Get the folder being watched."""
        if self.paths is not None:
            return self.paths.root
        return self.config.watch_root

    def prepare(self) -> EventDispatcher:
        """
        Create the category folders and the processing pipeline.

        Safe to call before start() for one-shot sorting without a watch.

        Raises:
            ConfigurationError: If the watch root is unusable
        """
        if self.dispatcher is not None and self.dispatcher.is_accepting:
            return self.dispatcher

        self.paths = ensure_category_directories(self.config.watch_root)
        self.engine = RelocationEngine.from_config(self.paths, self.config)
        self.dispatcher = EventDispatcher(
            engine=self.engine,
            max_workers=self.config.processing.max_workers,
            shutdown_grace_seconds=self.config.processing.shutdown_grace_seconds,
            on_outcome=self.on_outcome,
        )
        return self.dispatcher

    def start(self):
        """
        Start watching the root folder.

        Raises:
            ConfigurationError: If the watch root is unusable
        """
        with self._lock:
            if self._running:
                logger.warning("Watch session is already running")
                return

            dispatcher = self.prepare()

            self._handler = NormalizingEventHandler(
                root=self.paths.root,
                callback=dispatcher.submit,
                on_error=dispatcher.report_error,
                debounce_seconds=self.config.processing.debounce_seconds,
                reserved_names=self.paths.reserved_names,
            )

            self._observer = Observer()
            self._observer.schedule(self._handler, str(self.paths.root), recursive=False)
            self._observer.start()
            self._observer_failed = False
            self._running = True
            logger.info(f"Watching folder: {self.paths.root}")

    def stop(self, grace_seconds: float | None = None):
        """
        Stop watching and wind down in-flight relocations.

        The observer is stopped first so no new events arrive, then the
        dispatcher gets its grace period.
        """
        with self._lock:
            if self._handler:
                self._handler.stop()
                self._handler = None

            if self._observer:
                self._observer.stop()
                self._observer.join(timeout=5.0)
                self._observer = None

            if self.dispatcher:
                self.dispatcher.shutdown(grace_seconds)

            was_running = self._running
            self._running = False

        if was_running:
            logger.info("Watch session stopped")

    def check_health(self) -> bool:
        """
        Check that the observer thread is still alive.

        A dead observer is reported as a watch-source error; the session
        stays up but will miss events until restarted.
        """
        if not self._running or self._observer is None:
            return False
        if self._observer.is_alive():
            return True
        if self.dispatcher is not None and not self._observer_failed:
            self._observer_failed = True
            self.dispatcher.report_error(RuntimeError("Observer thread stopped unexpectedly"), "observer")
        return False

    def scan_existing(self) -> list[ChangeEvent]:
        """
        List entries already in the watch root as change events.

        Category folders, staging directories and ignored names are left out,
        as are archives whose Archives/<stem> folder already exists. Archives
        stay in the root after extraction.
        """
        root = self.paths.root if self.paths is not None else self.config.watch_root
        if not root.is_dir():
            return []

        reserved = self.paths.reserved_names if self.paths is not None else frozenset()
        events: list[ChangeEvent] = []
        for entry in sorted(root.iterdir()):
            if entry.name in reserved or is_staging_name(entry.name):
                continue
            if entry.name in IGNORED_PATTERNS or entry.suffix.lower() in IGNORED_EXTENSIONS:
                continue
            if self._already_extracted(entry):
                logger.debug(f"Skipping already extracted archive: {entry}")
                continue
            events.append(ChangeEvent.for_path(entry))
            logger.debug(f"Found existing entry: {entry}")

        logger.info(f"Scan complete: found {len(events)} existing entr{'y' if len(events) == 1 else 'ies'}")
        return events

    def _already_extracted(self, entry: Path) -> bool:
        """Check if an archive in the root has an extraction folder already."""
        if self.paths is None or entry.is_dir():
            return False
        if classify(entry, is_directory=False) is not Category.ARCHIVES:
            return False
        return os.path.lexists(self.paths.destination_for(entry, Category.ARCHIVES))

    def sort_existing(self, wait_for_completion: bool = True) -> list[RelocationOutcome]:
        """
        Relocate entries that were in the watch root before watching began.

        Args:
            wait_for_completion: Block until every submitted entry is handled

        Returns:
            Outcomes of the handled entries (empty when not waiting)
        """
        dispatcher = self.prepare()
        futures: list[Future] = []
        for event in self.scan_existing():
            future = dispatcher.submit(event)
            if future is not None:
                futures.append(future)

        if not wait_for_completion:
            return []

        wait(futures)
        return [future.result() for future in futures if not future.cancelled()]

    def __enter__(self):
        """Context manager entry."""
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.stop()
        return False
