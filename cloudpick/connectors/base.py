"""Connector interfaces for enumerating remote files and minting links."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Iterable, Optional, Protocol, Tuple, Union


@dataclass(frozen=True, slots=True)
class TreeNode:
    """A node of a hierarchical remote tree.

    Directories carry their children; the root node passed to the catalog
    builder anchors the tree and does not contribute a path segment.
    """

    name: Optional[str]
    identifier: Optional[str] = None
    is_directory: bool = False
    children: Tuple["TreeNode", ...] = ()


@dataclass(frozen=True, slots=True)
class FlatNode:
    """A node from a flat listing that already knows its ancestor names."""

    name: Optional[str]
    identifier: Optional[str] = None
    ancestor_names: Tuple[str, ...] = ()
    is_directory: bool = False


NodeShape = Union[TreeNode, FlatNode]
TreeSource = Union[TreeNode, Iterable[FlatNode]]


@dataclass(frozen=True, slots=True)
class RemoteFile:
    """A file located by a session lookup, able to request a fresh link."""

    identifier: str
    name: str
    minter: Callable[[], str] = field(repr=False, compare=False)

    def request_link(self) -> str:
        """Ask the backend for a new access URL; may raise on remote errors."""

        return self.minter()


class StorageSession(Protocol):
    """An open, authenticated connection to a storage backend."""

    def tree(self) -> TreeSource:
        """Return the remote tree as a root ``TreeNode`` or ``FlatNode`` collection."""

    def find_by_path(self, path: str) -> Optional[RemoteFile]:
        """Return the file at ``path`` or ``None`` when the backend has no match."""

    def find_by_identifier(self, identifier: str) -> Optional[RemoteFile]:
        """Return the file with ``identifier`` or ``None`` when it is unknown."""

    def close(self) -> None:
        """Release the connection."""


class StorageConnector(Protocol):
    """Factory for backend sessions, holding the credentials to use."""

    name: str

    def connect(self) -> StorageSession:
        """Authenticate and return a ready session."""


__all__ = [
    "FlatNode",
    "NodeShape",
    "RemoteFile",
    "StorageConnector",
    "StorageSession",
    "TreeNode",
    "TreeSource",
]
