"""Flatten remote trees into an addressable catalog of file records."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Iterator, List, Optional, Sequence, Set, Tuple

from .connectors.base import FlatNode, StorageSession, TreeNode, TreeSource
from .errors import BackendUnavailable, CloudPickError, MalformedTree
from .paths import clean_leaf, extension_of, file_type, normalize

LOGGER = logging.getLogger("cloudpick.catalog")


@dataclass(frozen=True, slots=True)
class FileRecord:
    """One remote file with its normalized identity.

    ``id`` is only meaningful inside the catalog that produced it; use
    ``full_path`` or ``identifier`` to refer to the same file across rebuilds.
    """

    id: int
    file_name: str
    full_path: str
    folder_path: str
    extension: str
    identifier: Optional[str] = None

    @property
    def file_type(self) -> str:
        return file_type(self.extension)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "fileName": self.file_name,
            "fullPath": self.full_path,
            "folderPath": self.folder_path,
            "extension": self.extension,
            "identifier": self.identifier,
            "type": self.file_type,
        }


class Catalog(Sequence[FileRecord]):
    """Immutable, ordered collection of ``FileRecord`` values."""

    __slots__ = ("_records",)

    def __init__(self, records: Iterable[FileRecord] = ()) -> None:
        self._records: Tuple[FileRecord, ...] = tuple(records)

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[FileRecord]:
        return iter(self._records)

    def __getitem__(self, index):  # type: ignore[override]
        return self._records[index]

    def __repr__(self) -> str:
        return f"Catalog({len(self._records)} files)"

    @property
    def folder_count(self) -> int:
        return len({record.folder_path for record in self._records})

    def stats(self) -> Dict[str, int]:
        return {"files": len(self._records), "folders": self.folder_count}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "files": [record.to_dict() for record in self._records],
            "stats": self.stats(),
        }


@dataclass(frozen=True, slots=True)
class _Visit:
    is_directory: bool
    ancestor_names: Tuple[str, ...]
    name: Optional[str]
    identifier: Optional[str]


class CatalogBuilder:
    """Produce a ``Catalog`` from either node shape a backend exposes."""

    def build(self, source: TreeSource) -> Catalog:
        records: List[FileRecord] = []
        seen: Set[str] = set()
        directories = 0

        for visit in self._iter_nodes(source):
            if visit.is_directory:
                directories += 1
                continue
            full_path, folder_path = normalize(visit.ancestor_names, visit.name)
            if not full_path:
                LOGGER.debug("Skipping unnamed node at the root (%s)", visit.identifier)
                continue
            if full_path.endswith("/"):
                raise MalformedTree(
                    "File node is missing a name",
                    details=f"folder {folder_path!r}, identifier {visit.identifier!r}",
                )
            key = visit.identifier or f"path:{full_path}"
            if key in seen:
                LOGGER.debug("Skipping duplicate node %s", key)
                continue
            seen.add(key)
            file_name = clean_leaf(visit.name)
            records.append(
                FileRecord(
                    id=len(records),
                    file_name=file_name,
                    full_path=full_path,
                    folder_path=folder_path,
                    extension=extension_of(file_name),
                    identifier=visit.identifier,
                )
            )

        catalog = Catalog(records)
        LOGGER.info(
            "Built catalog with %s file(s) across %s folder node(s)",
            len(catalog),
            directories,
        )
        return catalog

    def build_from_session(self, session: StorageSession) -> Catalog:
        """Fetch the tree from ``session`` and build the catalog from it."""

        try:
            source = session.tree()
        except CloudPickError:
            raise
        except Exception as exc:
            LOGGER.error("Failed to retrieve remote tree: %s", exc)
            raise BackendUnavailable(
                "Failed to retrieve the remote file tree.", details=str(exc)
            ) from exc
        if source is None:
            raise BackendUnavailable("The backend returned no file tree.")
        return self.build(source)

    def _iter_nodes(self, source: TreeSource) -> Iterator[_Visit]:
        if isinstance(source, TreeNode):
            yield from self._walk_tree(source)
        elif isinstance(source, (str, bytes)) or not isinstance(source, Iterable):
            raise MalformedTree(
                "Unsupported tree source", details=type(source).__name__
            )
        else:
            yield from self._walk_flat(source)

    @staticmethod
    def _walk_tree(root: TreeNode) -> Iterator[_Visit]:
        visited: Set[int] = {id(root)}
        if not root.is_directory:
            yield _Visit(False, (), root.name, root.identifier)
            return

        # Children are pushed in reverse so they pop in their listed order.
        stack: List[Tuple[TreeNode, Tuple[str, ...]]] = [
            (child, ()) for child in reversed(root.children)
        ]
        while stack:
            node, ancestors = stack.pop()
            if not isinstance(node, TreeNode):
                raise MalformedTree(
                    "Unexpected node in tree", details=type(node).__name__
                )
            if id(node) in visited:
                continue
            visited.add(id(node))
            yield _Visit(node.is_directory, ancestors, node.name, node.identifier)
            if node.is_directory:
                if not node.name:
                    raise MalformedTree(
                        "Directory node is missing a name",
                        details=f"identifier {node.identifier!r}",
                    )
                child_ancestors = ancestors + (node.name,)
                for child in reversed(node.children):
                    stack.append((child, child_ancestors))

    @staticmethod
    def _walk_flat(nodes: Iterable[FlatNode]) -> Iterator[_Visit]:
        for node in nodes:
            if not isinstance(node, FlatNode):
                raise MalformedTree(
                    "Unexpected node in flat listing", details=type(node).__name__
                )
            yield _Visit(
                node.is_directory,
                tuple(node.ancestor_names),
                node.name,
                node.identifier,
            )


__all__ = ["Catalog", "CatalogBuilder", "FileRecord"]
