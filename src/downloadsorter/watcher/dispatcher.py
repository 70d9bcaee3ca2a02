"""Event dispatcher driving change events through classification and relocation."""

import os
import threading
from collections import Counter
from collections.abc import Callable
from concurrent.futures import Future, ThreadPoolExecutor, wait
from pathlib import Path

from ..classifier import Category, classify
from ..exceptions import RelocationCancelled, VanishedEntry
from ..mover import RelocationEngine, RelocationOutcome
from ..mover.paths import is_staging_name
from ..mover.results import (
    REASON_CANCELLED,
    REASON_RESERVED,
    REASON_UNEXPECTED,
    REASON_VANISHED,
    OutcomeStatus,
)
from ..utils.logging import get_logger
from .models import ChangeEvent

logger = get_logger(__name__)

OutcomeCallback = Callable[[ChangeEvent, RelocationOutcome], None]


class EventDispatcher:
    """
    Runs each change event on a worker thread.

    Pipeline: event -> vanished check -> classify -> relocate -> log outcome.

    Events are independent of each other. The only shared state is the
    queue of events not yet started (used to drop duplicate notifications)
    and the outcome statistics. Serialization of moves into the same
    destination happens inside the relocation engine.
    """

    def __init__(
        self,
        engine: RelocationEngine,
        max_workers: int = 4,
        shutdown_grace_seconds: float = 5.0,
        on_outcome: OutcomeCallback | None = None,
    ):
        """
        Initialize the dispatcher.

        Args:
            engine: Relocation engine for the watch root
            max_workers: Number of concurrent relocation workers
            shutdown_grace_seconds: Time in-flight work gets before cancellation
            on_outcome: Optional callback receiving every (event, outcome) pair
        """
        self.engine = engine
        self.max_workers = max_workers
        self.shutdown_grace_seconds = shutdown_grace_seconds
        self.on_outcome = on_outcome

        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="relocate")
        self._cancel_event = threading.Event()
        self._lock = threading.Lock()
        self._queued: dict[Path, ChangeEvent] = {}
        self._futures: dict[Future, ChangeEvent] = {}
        self._accepting = True

        self.stats: Counter = Counter()

    @property
    def is_accepting(self) -> bool:
        """Check if new events are still accepted."""
        return self._accepting

    @property
    def pending_count(self) -> int:
        """Number of events queued or running."""
        with self._lock:
            return len(self._futures)

    def submit(self, event: ChangeEvent) -> Future | None:
        """
        Queue an event for processing. Never blocks on filesystem work.

        Args:
            event: Normalized change event

        Returns:
            Future resolving to the RelocationOutcome, or None if the event
            was dropped as a duplicate or after shutdown
        """
        with self._lock:
            if not self._accepting:
                logger.warning(f"Dispatcher shut down, ignoring event for {event.path}")
                return None

            if event.path in self._queued:
                self.stats["duplicates"] += 1
                logger.debug(f"Duplicate event #{event.nonce} for {event.path}, already queued")
                return None

            self._queued[event.path] = event
            future = self._executor.submit(self._run, event)
            self._futures[future] = event

        future.add_done_callback(self._discard)
        return future

    def _discard(self, future: Future):
        with self._lock:
            self._futures.pop(future, None)

    def _run(self, event: ChangeEvent) -> RelocationOutcome:
        with self._lock:
            if self._queued.get(event.path) is event:
                del self._queued[event.path]
        return self.process(event)

    def process(self, event: ChangeEvent) -> RelocationOutcome:
        """
        Handle one event synchronously on the calling thread.

        Unexpected exceptions are logged and turned into a FAILED outcome,
        so a bad event never stops the caller.
        """
        category: Category | None = None
        try:
            category = classify(event.path, event.is_directory)
            outcome = self._dispatch(event, category)
        except Exception as e:
            logger.exception(
                f"Unexpected error handling {event.path} "
                f"(category: {category.name if category else 'unclassified'}): {e}"
            )
            outcome = RelocationOutcome.failed(
                event.path, category or Category.UNHANDLED, REASON_UNEXPECTED, e
            )

        self._report(event, outcome)
        return outcome

    def _dispatch(self, event: ChangeEvent, category: Category) -> RelocationOutcome:
        path = event.path

        if not os.path.lexists(path):
            return RelocationOutcome.skipped(
                path, category, REASON_VANISHED, VanishedEntry(f"{path} no longer exists", path=path)
            )

        if self.engine.paths.is_reserved(path) or is_staging_name(path.name):
            return RelocationOutcome.skipped(path, category, REASON_RESERVED)

        return self.engine.relocate(path, category, self._cancel_event)

    def _report(self, event: ChangeEvent, outcome: RelocationOutcome):
        """Log an outcome, update statistics and notify the callback."""
        with self._lock:
            self.stats[outcome.status.value] += 1

        extra = {
            "entry_path": str(outcome.source),
            "category": outcome.category.name,
            "destination": str(outcome.destination) if outcome.destination else None,
            "outcome": outcome.status.value,
            "event_nonce": event.nonce,
        }

        if outcome.status is OutcomeStatus.FAILED:
            logger.error(f"[#{event.nonce}] {outcome.describe()}", extra=extra)
            for child in outcome.failures:
                logger.error(f"[#{event.nonce}]   {child.describe()}")
        else:
            logger.info(f"[#{event.nonce}] {outcome.describe()}", extra=extra)

        if self.on_outcome is not None:
            try:
                self.on_outcome(event, outcome)
            except Exception as e:
                logger.exception(f"Outcome callback failed for {event.path}: {e}")

    def report_error(self, error: BaseException, context: str = "watch source"):
        """
        Record an error notification from the watch source.

        The session keeps running; events may have been missed.
        """
        with self._lock:
            self.stats["errors"] += 1
        logger.error(
            f"Error from {context}, some events may have been missed: {error}",
            exc_info=(type(error), error, error.__traceback__),
        )

    def shutdown(self, grace_seconds: float | None = None):
        """
        Stop accepting events and wind down the workers.

        In-flight relocations get the grace period to finish. After that
        the cancel flag is raised (stopping extractions between chunks) and
        events that never started are reported as cancelled.

        Args:
            grace_seconds: Overrides shutdown_grace_seconds
        """
        with self._lock:
            if not self._accepting:
                return
            self._accepting = False
            pending = dict(self._futures)

        grace = self.shutdown_grace_seconds if grace_seconds is None else grace_seconds
        _, not_done = wait(pending, timeout=grace)

        if not_done:
            logger.warning(f"{len(not_done)} relocation(s) still running after {grace}s, cancelling")
            self._cancel_event.set()
            for future in not_done:
                if future.cancel():
                    event = pending[future]
                    with self._lock:
                        self._queued.pop(event.path, None)
                    self._report(
                        event,
                        RelocationOutcome.failed(
                            event.path,
                            classify(event.path, event.is_directory),
                            REASON_CANCELLED,
                            RelocationCancelled(f"{event.path.name} cancelled before start", path=event.path),
                        ),
                    )

        self._executor.shutdown(wait=True)
        logger.debug("Dispatcher stopped")
