"""Compiled-in extension table mapping file extensions to categories."""

from dataclasses import dataclass
from enum import Enum


class Category(str, Enum):
    """Destination bucket for a watched entry."""

    IMAGES = "images"
    INSTALLERS = "installers"
    ARCHIVES = "archives"
    DOCUMENTS = "documents"
    EXECUTABLES = "executables"
    DIRECTORIES = "directories"
    UNHANDLED = "unhandled"

    @property
    def folder_name(self) -> str | None:
        """Name of the subfolder under the watch root, None for UNHANDLED."""
        return CATEGORY_FOLDERS.get(self)


CATEGORY_FOLDERS: dict[Category, str] = {
    Category.IMAGES: "Images",
    Category.INSTALLERS: "Installers",
    Category.ARCHIVES: "Archives",
    Category.DOCUMENTS: "Documents",
    Category.EXECUTABLES: "Executables",
    Category.DIRECTORIES: "Directories",
}


@dataclass(frozen=True)
class ExtensionRule:
    """Maps one lowercase extension (with leading dot) to a category."""

    extension: str
    category: Category


def _rules(category: Category, *extensions: str) -> list[ExtensionRule]:
    return [ExtensionRule(extension=ext, category=category) for ext in extensions]


EXTENSION_RULES: tuple[ExtensionRule, ...] = tuple(
    _rules(Category.IMAGES, ".png", ".jpg", ".jpeg", ".gif", ".tif")
    + _rules(Category.INSTALLERS, ".msi")
    + _rules(Category.ARCHIVES, ".zip", ".rar", ".7z")
    + _rules(
        Category.DOCUMENTS,
        ".docx",
        ".doc",
        ".xlsx",
        ".xls",
        ".pptx",
        ".ppt",
        ".csv",
        ".tsv",
        ".pdf",
        ".txt",
    )
    + _rules(Category.EXECUTABLES, ".exe")
)


def build_extension_map(rules: tuple[ExtensionRule, ...]) -> dict[str, Category]:
    """
    Build the lookup table for a rule set.

    Raises:
        ValueError: If an extension is listed more than once or is not
            lowercase with a leading dot.
    """
    mapping: dict[str, Category] = {}
    for rule in rules:
        if not rule.extension.startswith(".") or rule.extension != rule.extension.lower():
            raise ValueError(f"Extension must be lowercase with a leading dot: {rule.extension!r}")
        if rule.extension in mapping:
            raise ValueError(
                f"Extension {rule.extension} mapped to both "
                f"{mapping[rule.extension].name} and {rule.category.name}"
            )
        mapping[rule.extension] = rule.category
    return mapping


EXTENSION_MAP: dict[str, Category] = build_extension_map(EXTENSION_RULES)


def extensions_for(category: Category) -> list[str]:
    """Return the extensions mapped to a category, in table order."""
    return [rule.extension for rule in EXTENSION_RULES if rule.category is category]
