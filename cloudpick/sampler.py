"""Random selection of files and batches from a catalog."""

from __future__ import annotations

import random
from dataclasses import dataclass
from typing import Any, Dict, Iterator, Optional, Sequence, Tuple

from .catalog import FileRecord
from .errors import EmptyCatalog

DEFAULT_BATCH_SIZE = 10


@dataclass(frozen=True, slots=True)
class Batch:
    """Duplicate-free selection of records; the first one is current."""

    records: Tuple[FileRecord, ...] = ()

    def __len__(self) -> int:
        return len(self.records)

    def __iter__(self) -> Iterator[FileRecord]:
        return iter(self.records)

    @property
    def current(self) -> Optional[FileRecord]:
        return self.records[0] if self.records else None

    def to_dict(self) -> Dict[str, Any]:
        current = self.current
        return {
            "files": [record.to_dict() for record in self.records],
            "current": current.to_dict() if current is not None else None,
        }


class Sampler:
    """Uniform random picks over a read-only catalog."""

    def __init__(self, rng: Optional[random.Random] = None) -> None:
        self._rng = rng or random.Random()

    def pick_one(self, catalog: Sequence[FileRecord]) -> FileRecord:
        if not catalog:
            raise EmptyCatalog("The catalog contains no files.")
        return catalog[self._rng.randrange(len(catalog))]

    def pick_batch(self, catalog: Sequence[FileRecord], count: int) -> Batch:
        if not catalog:
            raise EmptyCatalog("The catalog contains no files.")
        limit = min(int(count), len(catalog))
        if limit <= 0:
            return Batch()
        indexes = self._rng.sample(range(len(catalog)), limit)
        return Batch(tuple(catalog[index] for index in indexes))


__all__ = ["Batch", "DEFAULT_BATCH_SIZE", "Sampler"]
