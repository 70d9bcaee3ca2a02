"""Allow running DownloadSorter with ``python -m downloadsorter``."""

from .cli.main import cli

if __name__ == "__main__":
    cli()
