"""Destination path resolution for category folders under the watch root."""

from dataclasses import dataclass
from pathlib import Path

from ..classifier.rules import CATEGORY_FOLDERS, Category
from ..exceptions import ConfigurationError
from ..utils.logging import get_logger

logger = get_logger(__name__)

# Prefix of the staging directories archives are extracted into
STAGING_PREFIX = "."
STAGING_MARKER = ".partial-"


@dataclass(frozen=True)
class CategoryPaths:
    """Deterministic destination folders for one watch root."""

    root: Path

    def folder_for(self, category: Category) -> Path:
        """
        Get the destination folder for a category.

        Raises:
            ValueError: For UNHANDLED, which has no folder
        """
        folder_name = CATEGORY_FOLDERS.get(category)
        if folder_name is None:
            raise ValueError(f"Category {category.name} has no destination folder")
        return self.root / folder_name

    def destination_for(self, entry: Path, category: Category) -> Path | None:
        """
        Get the path an entry would occupy after relocation.

        Archives map to a directory named after the archive stem; every
        other category keeps the entry name. Returns None for UNHANDLED.
        """
        if category is Category.UNHANDLED:
            return None
        entry = Path(entry)
        if category is Category.ARCHIVES:
            return self.folder_for(category) / archive_folder_name(entry.name)
        return self.folder_for(category) / entry.name

    @property
    def reserved_names(self) -> frozenset[str]:
        """Names of the category folders, which are never relocated themselves."""
        return frozenset(CATEGORY_FOLDERS.values())

    def is_reserved(self, path: Path) -> bool:
        """Check if a path is one of the category folders of this root."""
        path = Path(path)
        return path.parent == self.root and path.name in self.reserved_names


def archive_folder_name(filename: str) -> str:
    """Return the archive name without its final extension."""
    index = filename.rfind(".")
    if index <= 0:
        return filename
    return filename[:index]


def is_staging_name(name: str) -> bool:
    """Check if a name belongs to an in-progress extraction directory."""
    return name.startswith(STAGING_PREFIX) and STAGING_MARKER in name


def validate_watch_root(watch_root: Path) -> Path:
    """
    Resolve the watch root and make sure it is an existing directory.

    Raises:
        ConfigurationError: If the path is missing or not a directory
    """
    root = Path(watch_root).expanduser()
    if not root.exists():
        raise ConfigurationError(f"Watch root does not exist: {root}")
    if not root.is_dir():
        raise ConfigurationError(f"Watch root is not a directory: {root}")
    return root.resolve()


def ensure_category_directories(watch_root: Path) -> CategoryPaths:
    """
    Create the category folders under the watch root.

    Creation is idempotent: a folder that already exists is success.

    Args:
        watch_root: Directory being watched

    Returns:
        CategoryPaths for the resolved root

    Raises:
        ConfigurationError: If the root is missing, or a folder cannot be
            created for any reason other than already existing
    """
    paths = CategoryPaths(root=validate_watch_root(watch_root))

    for category in CATEGORY_FOLDERS:
        folder = paths.folder_for(category)
        try:
            folder.mkdir(exist_ok=False)
            logger.info(f"Created {category.folder_name} folder at {folder}")
        except FileExistsError:
            if not folder.is_dir():
                raise ConfigurationError(
                    f"Cannot create {folder}: a file with that name already exists"
                )
            logger.debug(f"Folder already exists: {folder}")
        except OSError as e:
            raise ConfigurationError(f"Failed to create folder {folder}: {e}") from e

    return paths
