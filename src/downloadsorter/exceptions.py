"""Exception taxonomy for DownloadSorter."""


class DownloadSorterError(Exception):
    """Base exception for all DownloadSorter errors."""

    pass


class ConfigurationError(DownloadSorterError):
    """Watch root is missing or category folders cannot be created. Fatal."""

    pass


class RelocationError(DownloadSorterError):
    """Base class for errors carried inside relocation outcomes."""

    def __init__(self, message: str, path=None):
        super().__init__(message)
        self.path = path


class VanishedEntry(RelocationError):
    """Entry disappeared between notification and processing."""

    pass


class Collision(RelocationError):
    """Destination name is already occupied."""

    def __init__(self, message: str, path=None, destination=None):
        super().__init__(message, path)
        self.destination = destination


class TransientIOError(RelocationError):
    """Entry stayed locked or busy after the retry."""

    pass


class RelocationCancelled(RelocationError):
    """Relocation was interrupted by shutdown."""

    pass


class MalformedArchive(RelocationError):
    """Archive could not be read."""

    pass


class ArchiveLimitExceeded(MalformedArchive):
    """Archive declares more members or bytes than allowed."""

    pass


class PathTraversalAttempt(RelocationError):
    """Archive member would be written outside the extraction directory."""

    def __init__(self, message: str, path=None, member: str | None = None):
        super().__init__(message, path)
        self.member = member
