"""Local filesystem connector useful for development and testing."""

from __future__ import annotations

from pathlib import Path
from typing import List, Optional

from ..errors import BackendUnavailable
from .base import RemoteFile, StorageConnector, StorageSession, TreeNode


class LocalFolderSession(StorageSession):
    """Expose a directory on disk as a hierarchical remote tree.

    Identifiers are root-relative POSIX paths. Lookups by path are relative to
    the root as well, so absolute paths never match.
    """

    def __init__(self, root: Path):
        self._root = root

    def tree(self) -> TreeNode:
        return TreeNode(
            name=self._root.name,
            identifier="",
            is_directory=True,
            children=self._children(self._root),
        )

    def find_by_path(self, path: str) -> Optional[RemoteFile]:
        if not path or path.startswith("/"):
            return None
        return self._remote_file(self._root / path)

    def find_by_identifier(self, identifier: str) -> Optional[RemoteFile]:
        return self.find_by_path(identifier)

    def close(self) -> None:  # pragma: no cover - nothing to release
        return None

    def _children(self, directory: Path) -> tuple:
        nodes: List[TreeNode] = []
        for entry in sorted(directory.iterdir(), key=lambda item: item.name):
            if entry.is_symlink():
                continue
            identifier = entry.relative_to(self._root).as_posix()
            if entry.is_dir():
                nodes.append(
                    TreeNode(
                        name=entry.name,
                        identifier=identifier,
                        is_directory=True,
                        children=self._children(entry),
                    )
                )
            elif entry.is_file():
                nodes.append(TreeNode(name=entry.name, identifier=identifier))
        return tuple(nodes)

    def _remote_file(self, candidate: Path) -> Optional[RemoteFile]:
        resolved = candidate.resolve()
        if not resolved.is_relative_to(self._root) or not resolved.is_file():
            return None
        return RemoteFile(
            identifier=resolved.relative_to(self._root).as_posix(),
            name=resolved.name,
            minter=resolved.as_uri,
        )


class LocalFolderConnector(StorageConnector):
    """Treat a folder on the local filesystem as the storage account."""

    name = "local"

    def __init__(self, folder: str | Path):
        self._folder = Path(folder).expanduser().resolve()

    def connect(self) -> LocalFolderSession:
        if not self._folder.is_dir():
            raise BackendUnavailable(
                "Local folder is not available.", details=str(self._folder)
            )
        return LocalFolderSession(self._folder)


__all__ = ["LocalFolderConnector", "LocalFolderSession"]
