"""Relocation engine: moves, extracts and flattens classified entries."""

import errno
import os
import shutil
import threading
import time
import uuid
from collections.abc import Callable
from pathlib import Path
from typing import TypeVar

from ..classifier import Category, classify
from ..config.models import CollisionPolicy, DirectoryPolicy, DownloadSorterConfig
from ..exceptions import (
    Collision,
    MalformedArchive,
    PathTraversalAttempt,
    RelocationCancelled,
    TransientIOError,
    VanishedEntry,
)
from ..utils.logging import get_logger
from .archives import ExtractionLimits, extract_archive
from .locks import DestinationLocks
from .paths import STAGING_MARKER, STAGING_PREFIX, CategoryPaths
from .results import (
    REASON_BUSY,
    REASON_CANCELLED,
    REASON_COLLISION,
    REASON_IO_ERROR,
    REASON_MALFORMED,
    REASON_NO_RULE,
    REASON_RESERVED,
    REASON_TRAVERSAL,
    REASON_VANISHED,
    OutcomeStatus,
    RelocationOutcome,
)

logger = get_logger(__name__)

T = TypeVar("T")

# errno values meaning "another process still has the entry open"
TRANSIENT_ERRNOS = {errno.EBUSY, errno.ETXTBSY, errno.EAGAIN}

# ERROR_SHARING_VIOLATION, ERROR_LOCK_VIOLATION
WINDOWS_TRANSIENT_ERRORS = {32, 33}

# Filesystems or layouts where a hard link cannot stand in for a rename
LINK_UNSUPPORTED_ERRNOS = {errno.EXDEV, errno.EPERM, errno.ENOTSUP, errno.EOPNOTSUPP, errno.EMLINK, errno.ENOSYS}

# ERROR_INVALID_FUNCTION, ERROR_NOT_SAME_DEVICE, ERROR_NOT_SUPPORTED
WINDOWS_LINK_UNSUPPORTED = {1, 17, 50}

MAX_SUFFIX = 1000


def is_transient(error: OSError) -> bool:
    """Check if an OSError means the entry is locked or busy."""
    if getattr(error, "winerror", None) in WINDOWS_TRANSIENT_ERRORS:
        return True
    return error.errno in TRANSIENT_ERRNOS


class RelocationEngine:
    """
    Moves classified entries into their category folders.

    Files are moved, archives are extracted next to the other archives,
    and directories are either moved whole or flattened into categories.
    Expected failures come back as outcomes; relocate() never raises for
    them.
    """

    def __init__(
        self,
        paths: CategoryPaths,
        directory_policy: DirectoryPolicy = DirectoryPolicy.KEEP_TOGETHER,
        collision_policy: CollisionPolicy = CollisionPolicy.REJECT,
        retry_backoff: float = 0.5,
        limits: ExtractionLimits | None = None,
        locks: DestinationLocks | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """
        Initialize the relocation engine.

        Args:
            paths: Category folders of the watch root
            directory_policy: Move directories whole or flatten them
            collision_policy: Reject or suffix clashing destination names
            retry_backoff: Seconds to wait before retrying a busy entry
            limits: Archive extraction bounds
            locks: Destination lock registry, shared with callers that need to observe it
            sleep: Sleep function used for the retry backoff
        """
        self.paths = paths
        self.directory_policy = DirectoryPolicy(directory_policy)
        self.collision_policy = CollisionPolicy(collision_policy)
        self.retry_backoff = retry_backoff
        self.limits = limits or ExtractionLimits(
            max_bytes=4 * 1024 * 1024 * 1024,
            max_members=10_000,
        )
        self.locks = locks or DestinationLocks()
        self._sleep = sleep

    @classmethod
    def from_config(cls, paths: CategoryPaths, config: DownloadSorterConfig) -> "RelocationEngine":
        """Build an engine from the application configuration."""
        return cls(
            paths=paths,
            directory_policy=config.directory_policy,
            collision_policy=config.collision_policy,
            retry_backoff=config.processing.retry_backoff_seconds,
            limits=ExtractionLimits(
                max_bytes=config.processing.max_archive_bytes,
                max_members=config.processing.max_archive_members,
            ),
        )

    def destination_for(self, entry_path: Path, category: Category) -> Path | None:
        """Get where an entry would land, before collision handling."""
        return self.paths.destination_for(Path(entry_path), category)

    def lock_key_for(self, destination: Path) -> Path:
        """
        Get the lock guarding a destination.

        Rejecting collisions only has to guard the exact name. Suffixing
        scans the whole category folder for a free name, so the folder is
        the unit of serialization. Keys are case-folded so names that only
        differ in case share a lock on case-insensitive filesystems.
        """
        if self.collision_policy is CollisionPolicy.SUFFIX:
            destination = destination.parent
        return Path(str(destination).casefold())

    def relocate(
        self,
        entry_path: Path,
        category: Category,
        cancel_event: threading.Event | None = None,
    ) -> RelocationOutcome:
        """
        Relocate one entry according to its category.

        Args:
            entry_path: Entry in the watch root
            category: Category decided by the classifier
            cancel_event: Set on shutdown to stop long extractions

        Returns:
            RelocationOutcome describing what happened
        """
        entry_path = Path(entry_path)

        if category is Category.UNHANDLED:
            return RelocationOutcome.skipped(entry_path, category, REASON_NO_RULE)

        if self.paths.is_reserved(entry_path):
            return RelocationOutcome.skipped(entry_path, category, REASON_RESERVED)

        if not os.path.lexists(entry_path):
            return self._vanished(entry_path, category)

        if cancel_event is not None and cancel_event.is_set():
            return RelocationOutcome.failed(
                entry_path,
                category,
                REASON_CANCELLED,
                RelocationCancelled(f"{entry_path.name} not started before shutdown", path=entry_path),
            )

        destination = self.destination_for(entry_path, category)
        try:
            if category is Category.ARCHIVES:
                return self._extract(entry_path, cancel_event)
            if category is Category.DIRECTORIES and self.directory_policy is DirectoryPolicy.FLATTEN:
                return self._flatten(entry_path, cancel_event)
            return self._move(entry_path, category)

        except Collision as e:
            logger.warning(f"Destination already exists, leaving {entry_path.name} in place: {e.destination}")
            return RelocationOutcome.failed(entry_path, category, REASON_COLLISION, e, destination)
        except RelocationCancelled as e:
            return RelocationOutcome.failed(entry_path, category, REASON_CANCELLED, e, destination)
        except TransientIOError as e:
            return RelocationOutcome.failed(entry_path, category, REASON_BUSY, e, destination)
        except PathTraversalAttempt as e:
            return RelocationOutcome.failed(entry_path, category, REASON_TRAVERSAL, e, destination)
        except MalformedArchive as e:
            return RelocationOutcome.failed(entry_path, category, REASON_MALFORMED, e, destination)
        except OSError as e:
            if not os.path.lexists(entry_path):
                return self._vanished(entry_path, category)
            return RelocationOutcome.failed(entry_path, category, REASON_IO_ERROR, e, destination)

    def _vanished(self, entry_path: Path, category: Category) -> RelocationOutcome:
        return RelocationOutcome.skipped(
            entry_path,
            category,
            REASON_VANISHED,
            VanishedEntry(f"{entry_path} no longer exists", path=entry_path),
        )

    def _resolve_conflict(self, destination: Path, is_directory: bool = False) -> Path:
        """
        Resolve naming conflicts by adding (1), (2), etc.

        Args:
            destination: Original destination path
            is_directory: Directories keep their full name before the counter

        Returns:
            Conflict-free destination path
        """
        if not os.path.lexists(destination):
            return destination

        if is_directory:
            stem, suffix = destination.name, ""
        else:
            stem, suffix = destination.stem, destination.suffix
        parent = destination.parent

        for counter in range(1, MAX_SUFFIX + 1):
            new_path = parent / f"{stem} ({counter}){suffix}"
            if not os.path.lexists(new_path):
                return new_path

        raise Collision(f"Too many conflicts for {destination}", destination=destination)

    def _claim(self, entry_path: Path, destination: Path, is_directory: bool = False) -> Path:
        """
        Pick the final destination according to the collision policy.

        Must be called while holding the destination lock.

        Raises:
            Collision: Under REJECT when the destination is occupied
        """
        if self.collision_policy is CollisionPolicy.SUFFIX:
            return self._resolve_conflict(destination, is_directory)
        if os.path.lexists(destination):
            raise Collision(
                f"{destination} already exists",
                path=entry_path,
                destination=destination,
            )
        return destination

    def _with_retry(self, operation: Callable[[], T], entry_path: Path) -> T:
        """
        Run a filesystem operation, retrying once if the entry is busy.

        Raises:
            TransientIOError: If the entry is still busy after the retry
        """
        try:
            return operation()
        except OSError as e:
            if not is_transient(e):
                raise
            logger.warning(f"{entry_path.name} is busy, retrying in {self.retry_backoff}s: {e}")

        self._sleep(self.retry_backoff)

        try:
            return operation()
        except OSError as e:
            if not is_transient(e):
                raise
            raise TransientIOError(f"{entry_path.name} still busy after retry: {e}", path=entry_path) from e

    def _move(self, entry_path: Path, category: Category) -> RelocationOutcome:
        """Move a file or a whole directory into its category folder."""
        is_directory = category is Category.DIRECTORIES
        planned = self.destination_for(entry_path, category)

        with self.locks.hold(self.lock_key_for(planned)):
            destination = self._claim(entry_path, planned, is_directory)
            destination.parent.mkdir(parents=True, exist_ok=True)
            if self.collision_policy is CollisionPolicy.REJECT and self._is_plain_file(entry_path):
                self._with_retry(lambda: self._link_into_place(entry_path, destination), entry_path)
            else:
                self._with_retry(lambda: shutil.move(str(entry_path), str(destination)), entry_path)

        logger.debug(f"Moved: {entry_path} -> {destination}")
        return RelocationOutcome.moved(entry_path, category, destination)

    @staticmethod
    def _is_plain_file(entry_path: Path) -> bool:
        return os.path.isfile(entry_path) and not os.path.islink(entry_path)

    def _link_into_place(self, entry_path: Path, destination: Path):
        """
        Move a file without ever replacing an entry at the destination.

        The hard link fails if the name is taken, including by a writer
        outside this process or by a case variant on a case-insensitive
        filesystem. Where links are not available the file is moved with
        shutil.move instead.

        Raises:
            Collision: If the destination appeared after it was claimed
        """
        try:
            os.link(entry_path, destination)
        except FileExistsError as e:
            raise Collision(
                f"{destination} already exists",
                path=entry_path,
                destination=destination,
            ) from e
        except OSError as e:
            if e.errno not in LINK_UNSUPPORTED_ERRNOS and getattr(e, "winerror", None) not in WINDOWS_LINK_UNSUPPORTED:
                raise
            logger.debug(f"Hard links unavailable for {destination.parent}, moving instead: {e}")
            shutil.move(str(entry_path), str(destination))
            return

        try:
            os.unlink(entry_path)
        except OSError:
            os.unlink(destination)
            raise

    def _extract(self, archive_path: Path, cancel_event: threading.Event | None) -> RelocationOutcome:
        """
        Extract an archive into Archives/<stem>.

        Members are written to a hidden staging directory first and renamed
        into place once complete, so the final directory never holds a
        partial extraction. The archive itself is not moved.
        """
        planned = self.destination_for(archive_path, Category.ARCHIVES)

        # Fail fast before doing the extraction work
        if self.collision_policy is CollisionPolicy.REJECT and os.path.lexists(planned):
            raise Collision(f"{planned} already exists", path=archive_path, destination=planned)

        staging = planned.parent / f"{STAGING_PREFIX}{planned.name}{STAGING_MARKER}{uuid.uuid4().hex[:8]}"
        try:
            self._with_retry(
                lambda: extract_archive(archive_path, staging, self.limits, cancel_event),
                archive_path,
            )
            with self.locks.hold(self.lock_key_for(planned)):
                destination = self._claim(archive_path, planned, is_directory=True)
                os.rename(staging, destination)
        except Exception:
            shutil.rmtree(staging, ignore_errors=True)
            raise

        logger.debug(f"Extracted: {archive_path} -> {destination}")
        return RelocationOutcome.extracted(archive_path, Category.ARCHIVES, destination)

    def _flatten(self, directory: Path, cancel_event: threading.Event | None) -> RelocationOutcome:
        """
        Relocate every file of a directory tree into its own category.

        Each file is classified and relocated independently. Files without
        a category stay where they are; directories left empty afterwards
        are removed.
        """
        files: list[Path] = []
        for dirpath, _dirnames, filenames in os.walk(directory):
            files.extend(Path(dirpath) / name for name in sorted(filenames))

        children: list[RelocationOutcome] = []
        for file_path in files:
            category = classify(file_path, is_directory=False)
            children.append(self.relocate(file_path, category, cancel_event))

        self._prune_empty_directories(directory)

        failures = [child for child in children if child.status is OutcomeStatus.FAILED]
        if failures:
            names = ", ".join(child.source.name for child in failures)
            return RelocationOutcome.failed(
                directory,
                Category.DIRECTORIES,
                f"{len(failures)} of {len(children)} entries failed ({names})",
                children=children,
            )
        if children and not any(child.success for child in children):
            return RelocationOutcome.skipped(directory, Category.DIRECTORIES, REASON_NO_RULE, children=children)
        return RelocationOutcome.moved(directory, Category.DIRECTORIES, None, children=children)

    @staticmethod
    def _prune_empty_directories(directory: Path):
        """Remove directories of a tree that no longer contain anything."""
        for dirpath, _dirnames, _filenames in os.walk(directory, topdown=False):
            try:
                os.rmdir(dirpath)
            except OSError:
                # Still holds entries that were left in place
                continue
