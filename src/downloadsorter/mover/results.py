"""Relocation outcome types."""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from ..classifier.rules import Category
from ..exceptions import RelocationError


class OutcomeStatus(str, Enum):
    """Terminal state of one relocation attempt."""

    MOVED = "moved"
    EXTRACTED = "extracted"
    SKIPPED = "skipped"
    FAILED = "failed"


# Outcome reasons
REASON_VANISHED = "vanished"
REASON_NO_RULE = "no matching rule"
REASON_RESERVED = "category folder"
REASON_COLLISION = "collision"
REASON_BUSY = "busy"
REASON_CANCELLED = "cancelled"
REASON_MALFORMED = "malformed archive"
REASON_TRAVERSAL = "path traversal"
REASON_IO_ERROR = "io error"
REASON_UNEXPECTED = "unexpected error"


@dataclass
class RelocationOutcome:
    """Result of relocating one entry. Only used for logging and stats."""

    status: OutcomeStatus
    source: Path
    category: Category
    destination: Path | None = None
    reason: str | None = None
    error: BaseException | None = None
    children: list["RelocationOutcome"] = field(default_factory=list)

    @property
    def success(self) -> bool:
        """True for MOVED and EXTRACTED."""
        return self.status in (OutcomeStatus.MOVED, OutcomeStatus.EXTRACTED)

    @property
    def failures(self) -> list["RelocationOutcome"]:
        """Failed sub-entries of a flattened directory."""
        return [child for child in self.children if child.status is OutcomeStatus.FAILED]

    @classmethod
    def moved(
        cls,
        source: Path,
        category: Category,
        destination: Path | None,
        children: list["RelocationOutcome"] | None = None,
    ) -> "RelocationOutcome":
        return cls(
            status=OutcomeStatus.MOVED,
            source=source,
            category=category,
            destination=destination,
            children=children or [],
        )

    @classmethod
    def extracted(cls, source: Path, category: Category, destination: Path) -> "RelocationOutcome":
        return cls(
            status=OutcomeStatus.EXTRACTED,
            source=source,
            category=category,
            destination=destination,
        )

    @classmethod
    def skipped(
        cls,
        source: Path,
        category: Category,
        reason: str,
        error: RelocationError | None = None,
        children: list["RelocationOutcome"] | None = None,
    ) -> "RelocationOutcome":
        return cls(
            status=OutcomeStatus.SKIPPED,
            source=source,
            category=category,
            reason=reason,
            error=error,
            children=children or [],
        )

    @classmethod
    def failed(
        cls,
        source: Path,
        category: Category,
        reason: str,
        error: BaseException | None = None,
        destination: Path | None = None,
        children: list["RelocationOutcome"] | None = None,
    ) -> "RelocationOutcome":
        return cls(
            status=OutcomeStatus.FAILED,
            source=source,
            category=category,
            destination=destination,
            reason=reason,
            error=error,
            children=children or [],
        )

    def describe(self) -> str:
        """One-line human readable summary."""
        name = self.source.name
        if self.status is OutcomeStatus.MOVED:
            if self.children or self.destination is None:
                return f"Flattened {name} ({len(self.children)} entries)"
            return f"Moved {name} -> {self.destination}"
        if self.status is OutcomeStatus.EXTRACTED:
            return f"Extracted {name} -> {self.destination}"
        if self.status is OutcomeStatus.SKIPPED:
            return f"Skipped {name}: {self.reason}"
        detail = f": {self.error}" if self.error else ""
        return f"Failed {name} ({self.reason}){detail}"
