"""Extension-based classification of watched entries."""

from pathlib import Path

from .rules import EXTENSION_MAP, Category


def extension_of(name: str) -> str:
    """
    Return the extension of a file name, including the leading dot.

    The extension is everything from the last dot onward. Names without a
    dot, names ending in a dot, and names made only of dots have no
    extension.
    """
    index = name.rfind(".")
    if index == -1 or index == len(name) - 1:
        return ""
    return name[index:]


def classify(path: Path | str, is_directory: bool) -> Category:
    """
    Decide which category an entry belongs to.

    Pure function: only the name is inspected, the filesystem is never
    touched.

    Args:
        path: Entry path (only the final component matters)
        is_directory: Whether the entry is a directory

    Returns:
        Category for the entry, UNHANDLED when no rule matches
    """
    if is_directory:
        return Category.DIRECTORIES

    extension = extension_of(Path(path).name)
    if not extension:
        return Category.UNHANDLED

    return EXTENSION_MAP.get(extension.lower(), Category.UNHANDLED)
