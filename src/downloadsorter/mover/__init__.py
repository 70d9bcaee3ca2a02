"""Mover module: category folders, archive extraction and relocation."""

from .archives import ExtractionLimits, extract_archive, get_reader
from .locks import DestinationLocks
from .mover import RelocationEngine, is_transient
from .paths import CategoryPaths, ensure_category_directories, validate_watch_root
from .results import OutcomeStatus, RelocationOutcome

__all__ = [
    "RelocationEngine",
    "RelocationOutcome",
    "OutcomeStatus",
    "CategoryPaths",
    "DestinationLocks",
    "ExtractionLimits",
    "ensure_category_directories",
    "validate_watch_root",
    "extract_archive",
    "get_reader",
    "is_transient",
]
