"""
DownloadSorter - keeps a downloads folder tidy.

Watches a single folder and moves every new entry into a category
subfolder by extension: images, installers, documents and executables are
moved, archives are extracted, and directories are set aside whole.
"""

__version__ = "0.1.0"
__license__ = "MIT"

from .utils.logging import get_logger

from .classifier import Category, classify
from .exceptions import ConfigurationError
from .mover import (
    CategoryPaths,
    OutcomeStatus,
    RelocationEngine,
    RelocationOutcome,
    ensure_category_directories,
)
from .watcher import ChangeEvent, EventDispatcher, WatchSession

__all__ = [
    "get_logger",
    # Classifier
    "Category",
    "classify",
    # Mover
    "CategoryPaths",
    "ensure_category_directories",
    "RelocationEngine",
    "RelocationOutcome",
    "OutcomeStatus",
    # Watcher
    "ChangeEvent",
    "EventDispatcher",
    "WatchSession",
    # Errors
    "ConfigurationError",
]
