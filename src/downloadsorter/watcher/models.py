"""Normalized change events produced by the watcher."""

import itertools
import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

_nonces = itertools.count(1)


class EntryKind(str, Enum):
    """Kind of filesystem entry an event refers to."""

    FILE = "file"
    DIRECTORY = "directory"


class RawEventType(str, Enum):
    """Raw notification kinds accepted from the watch source."""

    CREATED = "created"
    MOVED = "moved"


def next_nonce() -> int:
    """Return a process-unique, increasing event number."""
    return next(_nonces)


@dataclass(frozen=True)
class ChangeEvent:
    """One entry that appeared in the watch root."""

    path: Path
    kind: EntryKind
    source: RawEventType = RawEventType.CREATED
    timestamp: float = field(default_factory=time.time)
    nonce: int = field(default_factory=next_nonce)

    @property
    def is_directory(self) -> bool:
        return self.kind is EntryKind.DIRECTORY

    @classmethod
    def for_path(cls, path: Path, source: RawEventType = RawEventType.CREATED) -> "ChangeEvent":
        """Build an event by looking at what currently sits at a path."""
        path = Path(path)
        kind = EntryKind.DIRECTORY if path.is_dir() and not path.is_symlink() else EntryKind.FILE
        return cls(path=path, kind=kind, source=source)
