"""Classifier module mapping entries to destination categories."""

from .classifier import classify, extension_of
from .rules import (
    CATEGORY_FOLDERS,
    EXTENSION_MAP,
    EXTENSION_RULES,
    Category,
    ExtensionRule,
    build_extension_map,
    extensions_for,
)

__all__ = [
    "classify",
    "extension_of",
    "Category",
    "ExtensionRule",
    "CATEGORY_FOLDERS",
    "EXTENSION_RULES",
    "EXTENSION_MAP",
    "build_extension_map",
    "extensions_for",
]
