"""Parse precomputed handle listings into flat catalog nodes.

The listing format is what ``megacmd find / --show-handles`` prints: one file
per line, the path followed by whitespace and ``<H:handle>``.
"""

from __future__ import annotations

import re
from pathlib import Path
from typing import Iterable, List

from .connectors.base import FlatNode
from .paths import split_path

_LINE_PATTERN = re.compile(r"^(.+?)\s+<H:([^>]+)>$")


def parse_handle_listing(lines: Iterable[str]) -> List[FlatNode]:
    nodes: List[FlatNode] = []
    for line in lines:
        if "<H:" not in line:
            continue
        match = _LINE_PATTERN.match(line.strip())
        if match is None:
            continue
        path = match.group(1).strip()
        handle = match.group(2).strip()
        if path.endswith("/"):
            continue
        ancestors, name = split_path(path)
        if not name:
            continue
        nodes.append(
            FlatNode(name=name, identifier=handle, ancestor_names=tuple(ancestors))
        )
    return nodes


def load_handle_listing(path: str | Path) -> List[FlatNode]:
    """Read a listing file from disk."""

    listing_path = Path(path).expanduser().resolve()
    if not listing_path.exists():
        raise FileNotFoundError(f"Handle listing not found: {listing_path}")
    with listing_path.open("r", encoding="utf-8") as handle:
        return parse_handle_listing(handle)


__all__ = ["load_handle_listing", "parse_handle_listing"]
