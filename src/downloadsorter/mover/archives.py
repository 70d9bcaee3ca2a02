"""Archive readers and validated extraction for zip, 7z and rar files."""

import lzma
import os
import threading
import zipfile
import zlib
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path, PureWindowsPath
from typing import Any

import py7zr
import rarfile
from py7zr.exceptions import ArchiveError as SevenZipError

from ..exceptions import (
    ArchiveLimitExceeded,
    MalformedArchive,
    PathTraversalAttempt,
    RelocationCancelled,
)
from ..utils.logging import get_logger

logger = get_logger(__name__)

CHUNK_SIZE = 1024 * 1024


@dataclass
class ArchiveMember:
    """One entry of an archive as declared in its index."""

    name: str
    size: int
    is_dir: bool
    info: Any = field(default=None, repr=False, compare=False)


@dataclass
class ExtractionLimits:
    """Bounds on what a single archive may expand to."""

    max_bytes: int
    max_members: int


def member_target(destination: Path, name: str) -> Path | None:
    """
    Compute where an archive member lands inside the destination.

    Args:
        destination: Extraction directory
        name: Member name as stored in the archive

    Returns:
        Target path, or None for entries that name the destination itself

    Raises:
        PathTraversalAttempt: If the member is absolute or escapes the destination
    """
    normalized = name.replace("\\", "/")
    if normalized.startswith("/") or PureWindowsPath(name).drive:
        raise PathTraversalAttempt(f"Absolute member path rejected: {name!r}", member=name)

    parts = [part for part in normalized.split("/") if part not in ("", ".")]
    if not parts:
        return None

    base = Path(os.path.normpath(destination))
    target = Path(os.path.normpath(base.joinpath(*parts)))
    if target == base or base not in target.parents:
        raise PathTraversalAttempt(f"Member escapes extraction directory: {name!r}", member=name)
    return target


def plan_extraction(
    members: list[ArchiveMember],
    destination: Path,
    limits: ExtractionLimits,
) -> list[tuple[ArchiveMember, Path]]:
    """
    Validate every member before anything is written.

    Returns:
        (member, target) pairs in archive order

    Raises:
        ArchiveLimitExceeded: Too many members or too many declared bytes
        PathTraversalAttempt: A member would land outside the destination,
            or below another member that is a file (symlink write-through)
    """
    if len(members) > limits.max_members:
        raise ArchiveLimitExceeded(
            f"Archive has {len(members)} entries, limit is {limits.max_members}"
        )

    declared = sum(member.size for member in members if not member.is_dir)
    if declared > limits.max_bytes:
        raise ArchiveLimitExceeded(
            f"Archive expands to {declared} bytes, limit is {limits.max_bytes}"
        )

    plan: list[tuple[ArchiveMember, Path]] = []
    file_targets: set[Path] = set()
    for member in members:
        target = member_target(destination, member.name)
        if target is None:
            continue
        plan.append((member, target))
        if not member.is_dir:
            file_targets.add(target)

    for member, target in plan:
        for parent in target.parents:
            if parent in file_targets:
                raise PathTraversalAttempt(
                    f"Member {member.name!r} is nested under a file entry", member=member.name
                )

    return plan


class BaseArchiveReader(ABC):
    """Base class for archive readers."""

    @property
    @abstractmethod
    def supported_extensions(self) -> set[str]:
        """Return set of supported file extensions (lowercase, with dot)."""
        pass

    @abstractmethod
    def list_members(self, archive_path: Path) -> list[ArchiveMember]:
        """
        Read the archive index.

        Raises:
            MalformedArchive: If the archive cannot be read
        """
        pass

    @abstractmethod
    def extract(
        self,
        archive_path: Path,
        destination: Path,
        plan: list[tuple[ArchiveMember, Path]],
        limits: ExtractionLimits,
        cancel_event: threading.Event | None = None,
    ) -> int:
        """
        Write the planned members to their targets.

        Returns:
            Number of files written

        Raises:
            MalformedArchive: If member data cannot be read
            RelocationCancelled: If cancel_event is set during extraction
        """
        pass

    def can_handle(self, archive_path: Path) -> bool:
        """Check if this reader can handle the given file."""
        return archive_path.suffix.lower() in self.supported_extensions


def _check_cancelled(cancel_event: threading.Event | None, archive_path: Path):
    if cancel_event is not None and cancel_event.is_set():
        raise RelocationCancelled(f"Extraction of {archive_path.name} cancelled", path=archive_path)


class _StreamingArchiveReader(BaseArchiveReader):
    """Reader for formats whose members can be opened as file objects."""

    errors: tuple[type[BaseException], ...] = ()

    @abstractmethod
    def _open(self, archive_path: Path):
        """Open the archive; the result must support infolist() and open()."""
        pass

    def list_members(self, archive_path: Path) -> list[ArchiveMember]:
        try:
            with self._open(archive_path) as archive:
                return [
                    ArchiveMember(
                        name=info.filename,
                        size=info.file_size,
                        is_dir=info.is_dir(),
                        info=info,
                    )
                    for info in archive.infolist()
                ]
        except self.errors as e:
            raise MalformedArchive(f"Cannot read {archive_path.name}: {e}", path=archive_path) from e

    def extract(self, archive_path, destination, plan, limits, cancel_event=None) -> int:
        written = 0
        budget = limits.max_bytes
        try:
            with self._open(archive_path) as archive:
                for member, target in plan:
                    _check_cancelled(cancel_event, archive_path)

                    if member.is_dir:
                        target.mkdir(parents=True, exist_ok=True)
                        continue

                    target.parent.mkdir(parents=True, exist_ok=True)
                    with archive.open(member.info) as src, open(target, "wb") as dst:
                        while True:
                            _check_cancelled(cancel_event, archive_path)
                            chunk = src.read(CHUNK_SIZE)
                            if not chunk:
                                break
                            budget -= len(chunk)
                            if budget < 0:
                                raise ArchiveLimitExceeded(
                                    f"{archive_path.name} produced more than {limits.max_bytes} bytes",
                                    path=archive_path,
                                )
                            dst.write(chunk)
                    written += 1
        except self.errors as e:
            raise MalformedArchive(f"Cannot extract {archive_path.name}: {e}", path=archive_path) from e
        return written


class ZipArchiveReader(_StreamingArchiveReader):
    """Reader for .zip files using the standard library."""

    # zipfile raises RuntimeError for encrypted members, NotImplementedError
    # for unsupported compression methods and lets zlib.error escape from
    # damaged deflate streams
    errors = (
        zipfile.BadZipFile,
        zipfile.LargeZipFile,
        RuntimeError,
        NotImplementedError,
        EOFError,
        zlib.error,
    )

    @property
    def supported_extensions(self) -> set[str]:
        return {".zip"}

    def _open(self, archive_path: Path):
        return zipfile.ZipFile(archive_path)


class RarArchiveReader(_StreamingArchiveReader):
    """Reader for .rar files using rarfile (needs unrar, unar or bsdtar for data)."""

    errors = (rarfile.Error, zlib.error, lzma.LZMAError, EOFError)

    @property
    def supported_extensions(self) -> set[str]:
        return {".rar"}

    def _open(self, archive_path: Path):
        return rarfile.RarFile(str(archive_path))


class SevenZipArchiveReader(BaseArchiveReader):
    """Reader for .7z files using py7zr."""

    errors = (SevenZipError, lzma.LZMAError, zlib.error, EOFError)

    @property
    def supported_extensions(self) -> set[str]:
        return {".7z"}

    def list_members(self, archive_path: Path) -> list[ArchiveMember]:
        try:
            with py7zr.SevenZipFile(archive_path, mode="r") as archive:
                return [
                    ArchiveMember(
                        name=info.filename,
                        size=info.uncompressed or 0,
                        is_dir=info.is_directory,
                    )
                    for info in archive.list()
                ]
        except self.errors as e:
            raise MalformedArchive(f"Cannot read {archive_path.name}: {e}", path=archive_path) from e

    def extract(self, archive_path, destination, plan, limits, cancel_event=None) -> int:
        # py7zr decodes solid blocks in one pass, so cancellation is only
        # honoured before extraction starts
        _check_cancelled(cancel_event, archive_path)
        if not plan:
            return 0

        targets = [member.name for member, _ in plan]
        try:
            with py7zr.SevenZipFile(archive_path, mode="r") as archive:
                archive.extract(path=destination, targets=targets)
        except self.errors as e:
            raise MalformedArchive(f"Cannot extract {archive_path.name}: {e}", path=archive_path) from e
        return sum(1 for member, _ in plan if not member.is_dir)


# Registry of all available archive readers
READERS: list[BaseArchiveReader] = [
    ZipArchiveReader(),
    SevenZipArchiveReader(),
    RarArchiveReader(),
]


def get_reader(archive_path: Path) -> BaseArchiveReader | None:
    """
    Get the appropriate reader for an archive.

    Args:
        archive_path: Path to the archive

    Returns:
        Reader instance if one is available, None otherwise
    """
    for reader in READERS:
        if reader.can_handle(archive_path):
            return reader
    return None


def extract_archive(
    archive_path: Path,
    destination: Path,
    limits: ExtractionLimits,
    cancel_event: threading.Event | None = None,
) -> int:
    """
    Extract an archive into a directory, validating every member first.

    Nothing is written when validation fails. The destination is created
    if needed.

    Args:
        archive_path: Archive to extract
        destination: Directory to extract into
        limits: Size and member-count bounds
        cancel_event: Set to stop extraction between chunks

    Returns:
        Number of files written

    Raises:
        MalformedArchive: Unsupported, unreadable or oversized archive
        PathTraversalAttempt: A member would escape the destination
        RelocationCancelled: cancel_event was set
    """
    archive_path = Path(archive_path)
    reader = get_reader(archive_path)
    if reader is None:
        raise MalformedArchive(f"Unsupported archive format: {archive_path.suffix}", path=archive_path)

    members = reader.list_members(archive_path)
    try:
        plan = plan_extraction(members, destination, limits)
    except PathTraversalAttempt as e:
        e.path = archive_path
        raise
    except ArchiveLimitExceeded as e:
        e.path = archive_path
        raise

    destination.mkdir(parents=True, exist_ok=True)
    written = reader.extract(archive_path, destination, plan, limits, cancel_event)
    logger.debug(f"Extracted {written} file(s) from {archive_path.name} into {destination}")
    return written
