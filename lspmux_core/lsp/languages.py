"""Language detection and project discovery for the TypeScript language server."""

from __future__ import annotations

import os
from enum import Enum
from pathlib import Path


class LanguageId(str, Enum):
    """Document language identifiers understood by the server."""

    TYPESCRIPT = "typescript"
    TYPESCRIPT_REACT = "typescriptreact"
    JAVASCRIPT = "javascript"
    JAVASCRIPT_REACT = "javascriptreact"


class ProjectType(str, Enum):
    """Dominant source language of a project."""

    TYPESCRIPT = "typescript"
    JAVASCRIPT = "javascript"
    MIXED = "mixed"


# File extension to language id mapping
EXTENSION_TO_LANGUAGE_ID: dict[str, LanguageId] = {
    # TypeScript
    ".ts": LanguageId.TYPESCRIPT,
    ".mts": LanguageId.TYPESCRIPT,
    ".cts": LanguageId.TYPESCRIPT,
    ".tsx": LanguageId.TYPESCRIPT_REACT,
    # JavaScript
    ".js": LanguageId.JAVASCRIPT,
    ".mjs": LanguageId.JAVASCRIPT,
    ".cjs": LanguageId.JAVASCRIPT,
    ".jsx": LanguageId.JAVASCRIPT_REACT,
}

TYPESCRIPT_EXTENSIONS = frozenset({".ts", ".tsx", ".mts", ".cts"})
JAVASCRIPT_EXTENSIONS = frozenset({".js", ".jsx", ".mjs", ".cjs"})

# Directories never worth walking when classifying a project
IGNORED_DIRECTORIES = frozenset({"node_modules", ".git", "dist", "build", "coverage"})


def detect_language_id(file_path: str | Path) -> LanguageId:
    """Detect the document language id from the file extension.

    Unknown extensions are treated as TypeScript, which the server accepts
    for any script-like content.

    Args:
        file_path: Path to the source file

    Returns:
        The LanguageId to announce in didOpen
    """
    suffix = Path(file_path).suffix.lower()
    return EXTENSION_TO_LANGUAGE_ID.get(suffix, LanguageId.TYPESCRIPT)


def is_supported_file(file_path: str | Path) -> bool:
    return Path(file_path).suffix.lower() in EXTENSION_TO_LANGUAGE_ID


# Project root markers, checked in order at each directory level
PROJECT_ROOT_MARKERS: list[str] = [
    "tsconfig.json",
    "jsconfig.json",
    "package.json",
    # Version control
    ".git",
    ".hg",
    ".svn",
]


def find_project_root(file_path: str | Path) -> Path:
    """Find project root by looking for common markers.

    Args:
        file_path: Path to a file in the project

    Returns:
        Project root directory, or file's parent if no markers found
    """
    file_path = Path(file_path).resolve()

    # Start from file's directory and walk up
    start = file_path if file_path.is_dir() else file_path.parent
    current = start

    while current != current.parent:
        for marker in PROJECT_ROOT_MARKERS:
            if (current / marker).exists():
                return current
        current = current.parent

    return start


def detect_project_type(root: str | Path) -> ProjectType:
    """Classify a project by the script files it contains.

    Args:
        root: Project root directory

    Returns:
        MIXED when both TypeScript and JavaScript sources exist, the single
        language found otherwise, TYPESCRIPT when neither is present
    """
    has_ts = False
    has_js = False

    for _dirpath, dirnames, filenames in os.walk(root):
        dirnames[:] = [d for d in dirnames if d not in IGNORED_DIRECTORIES]
        for name in filenames:
            suffix = os.path.splitext(name)[1].lower()
            if suffix in TYPESCRIPT_EXTENSIONS:
                has_ts = True
            elif suffix in JAVASCRIPT_EXTENSIONS:
                has_js = True
        if has_ts and has_js:
            return ProjectType.MIXED

    if has_js and not has_ts:
        return ProjectType.JAVASCRIPT
    return ProjectType.TYPESCRIPT
