"""Command line interface for DownloadSorter."""

from .main import cli

__all__ = ["cli"]
