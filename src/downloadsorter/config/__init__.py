"""Configuration module for DownloadSorter."""

from .manager import ConfigManager, get_config_manager
from .models import (
    CollisionPolicy,
    DirectoryPolicy,
    DownloadSorterConfig,
    LoggingSettings,
    ProcessingSettings,
)

__all__ = [
    "DownloadSorterConfig",
    "ProcessingSettings",
    "LoggingSettings",
    "DirectoryPolicy",
    "CollisionPolicy",
    "ConfigManager",
    "get_config_manager",
]
