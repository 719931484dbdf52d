"""Canonical path handling for catalog records."""

from __future__ import annotations

from typing import Iterable, List, Optional, Tuple

SEPARATOR = "/"
# Stands in for a separator inside a single file name (Drive allows "/" in names).
SLASH_SUBSTITUTE = "\u2215"

_FILE_TYPES = {
    "image": frozenset({"jpg", "jpeg", "png", "gif", "bmp", "webp", "svg"}),
    "video": frozenset({"mp4", "avi", "mov", "wmv", "flv", "mkv", "webm"}),
    "audio": frozenset({"mp3", "wav", "flac", "aac", "ogg"}),
    "document": frozenset({"pdf", "doc", "docx", "txt", "rtf", "md"}),
}


def _clean_segment(segment: Optional[str]) -> str:
    if segment is None:
        return ""
    return str(segment).strip(SEPARATOR)


def _collapse(path: str) -> str:
    while "//" in path:
        path = path.replace("//", SEPARATOR)
    return path


def clean_leaf(name: Optional[str]) -> str:
    """Return ``name`` as a single path segment.

    Edge separators are stripped and any run of separators inside the name is
    replaced with ``SLASH_SUBSTITUTE``.
    """

    parts = _clean_segment(name).split(SEPARATOR)
    return SLASH_SUBSTITUTE.join(part for part in parts if part)


def restore_leaf(segment: str) -> str:
    """Undo ``clean_leaf`` substitutions to get the name the backend stores."""

    return segment.replace(SLASH_SUBSTITUTE, SEPARATOR)


def normalize(
    ancestor_names: Iterable[Optional[str]], leaf_name: Optional[str]
) -> Tuple[str, str]:
    """Return ``(full_path, folder_path)`` for a leaf below ``ancestor_names``.

    Empty or ``None`` segments are dropped. ``folder_path`` is ``/`` for files
    directly under the root. When both the leaf and the ancestors are empty the
    full path is the empty string.
    """

    segments = [_collapse(_clean_segment(name)) for name in ancestor_names or ()]
    segments = [segment for segment in segments if segment]
    leaf = clean_leaf(leaf_name)

    folder_path = SEPARATOR + SEPARATOR.join(segments) if segments else SEPARATOR
    if not leaf and not segments:
        return "", folder_path
    prefix = folder_path if segments else ""
    full_path = _collapse(f"{prefix}{SEPARATOR}{leaf}")
    return full_path, folder_path


def split_path(path: Optional[str]) -> Tuple[List[str], str]:
    """Split ``path`` into its ancestor names and leaf name."""

    segments = [segment for segment in (path or "").split(SEPARATOR) if segment]
    if not segments:
        return [], ""
    return segments[:-1], segments[-1]


def extension_of(file_name: Optional[str]) -> str:
    """Lowercased suffix after the final dot, or ``""`` when there is none."""

    _stem, dot, suffix = (file_name or "").rpartition(".")
    if not dot:
        return ""
    return suffix.lower()


def file_type(extension: str) -> str:
    """Broad media category used by clients to pick an icon or viewer."""

    lowered = (extension or "").lower()
    for category, extensions in _FILE_TYPES.items():
        if lowered in extensions:
            return category
    return "file"


__all__ = [
    "SEPARATOR",
    "SLASH_SUBSTITUTE",
    "clean_leaf",
    "extension_of",
    "file_type",
    "normalize",
    "restore_leaf",
    "split_path",
]
