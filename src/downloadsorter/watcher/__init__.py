"""Watcher module for monitoring the watch root and dispatching events."""

from .dispatcher import EventDispatcher
from .handler import IGNORED_EXTENSIONS, IGNORED_PATTERNS, NormalizingEventHandler
from .models import ChangeEvent, EntryKind, RawEventType
from .watcher import WatchSession

__all__ = [
    "WatchSession",
    "EventDispatcher",
    "NormalizingEventHandler",
    "ChangeEvent",
    "EntryKind",
    "RawEventType",
    "IGNORED_EXTENSIONS",
    "IGNORED_PATTERNS",
]
