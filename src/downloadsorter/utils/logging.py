"""Logging for DownloadSorter: Rich on the console, rotating files on disk."""

import logging
from logging.handlers import RotatingFileHandler
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler
from rich.theme import Theme

from ..config.models import LoggingSettings

ROOT_LOGGER_NAME = "downloadsorter"
LOG_FILE_NAME = "downloadsorter.log"

FILE_FORMAT = "%(asctime)s | %(levelname)-8s | %(threadName)s | %(name)s:%(lineno)d | %(message)s"

CONSOLE_THEME = Theme(
    {
        "info": "cyan",
        "warning": "yellow",
        "error": "red bold",
    }
)


class DownloadSorterLogger:
    """Owns the shared console and the handlers of the package logger."""

    _instance: Optional["DownloadSorterLogger"] = None

    def __new__(cls):
        if cls._instance is None:
            instance = super().__new__(cls)
            instance.console = Console(theme=CONSOLE_THEME)
            instance.logger = logging.getLogger(ROOT_LOGGER_NAME)
            instance.configured = False
            cls._instance = instance
        return cls._instance

    def configure(self, settings: LoggingSettings):
        """
        Replace the package logger's handlers according to settings.

        Worker threads log through the same logger, so the thread name is
        part of every file record.
        """
        for handler in list(self.logger.handlers):
            handler.close()
        self.logger.handlers.clear()

        level = getattr(logging, settings.level, logging.INFO)
        self.logger.setLevel(level)
        self.logger.propagate = False

        if settings.console_enabled:
            console_handler = RichHandler(
                console=self.console,
                rich_tracebacks=True,
                show_path=False,
                markup=False,
            )
            console_handler.setLevel(level)
            self.logger.addHandler(console_handler)

        if settings.file_enabled:
            settings.log_dir.mkdir(parents=True, exist_ok=True)
            file_handler = RotatingFileHandler(
                settings.log_dir / LOG_FILE_NAME,
                maxBytes=settings.max_bytes,
                backupCount=settings.backup_count,
                encoding="utf-8",
            )
            file_handler.setFormatter(logging.Formatter(FILE_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
            file_handler.setLevel(level)
            self.logger.addHandler(file_handler)

        self.configured = True

    def child(self, name: Optional[str]) -> logging.Logger:
        if not name:
            return self.logger
        prefix = f"{ROOT_LOGGER_NAME}."
        if name.startswith(prefix):
            name = name[len(prefix) :]
        return self.logger.getChild(name)


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """
    Get the package logger or one of its children.

    Module names such as ``downloadsorter.mover.mover`` map onto children
    of the package logger. Until setup_logging() runs, records go to the
    console only.
    """
    manager = DownloadSorterLogger()
    if not manager.configured:
        manager.configure(LoggingSettings(file_enabled=False))
    return manager.child(name)


def setup_logging(settings: LoggingSettings):
    """Configure logging from the ``logging`` section of the config."""
    DownloadSorterLogger().configure(settings)


def get_console() -> Console:
    """Get the Rich console shared by the CLI and the log handler."""
    return DownloadSorterLogger().console
