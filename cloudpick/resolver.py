"""Resolve catalog entries to freshly minted access links."""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, ContextManager, List, Mapping, Optional, Tuple, Union

from .catalog import FileRecord
from .connectors.base import RemoteFile, StorageSession
from .errors import (
    BackendUnavailable,
    CloudPickError,
    LinkGenerationFailed,
    NotFound,
)
from .session import call_with_deadline

LOGGER = logging.getLogger("cloudpick.resolver")

SessionFactory = Callable[[], ContextManager[StorageSession]]


class ResolveState(enum.Enum):
    IDLE = "idle"
    CONNECTION_READY = "connection_ready"
    BY_IDENTIFIER = "by_identifier"
    BY_PATH = "by_path"
    BY_PATH_FALLBACK = "by_path_fallback"
    LINK_ISSUED = "link_issued"
    NOT_FOUND = "not_found"
    LINK_GENERATION_FAILED = "link_generation_failed"


@dataclass(frozen=True, slots=True)
class LinkReference:
    """What the caller knows about the file: its path, its identifier, or both."""

    full_path: Optional[str] = None
    identifier: Optional[str] = None

    def __post_init__(self) -> None:
        if not self.full_path and not self.identifier:
            raise ValueError("A file path or identifier is required")

    @classmethod
    def coerce(
        cls, value: Union["LinkReference", FileRecord, Mapping[str, Any]]
    ) -> "LinkReference":
        if isinstance(value, LinkReference):
            return value
        if isinstance(value, FileRecord):
            return cls(full_path=value.full_path, identifier=value.identifier)
        if isinstance(value, Mapping):
            path = value.get("path") or value.get("fullPath") or value.get("full_path")
            identifier = value.get("identifier")
            return cls(
                full_path=str(path) if path else None,
                identifier=str(identifier) if identifier else None,
            )
        raise TypeError(f"Cannot build a link reference from {type(value).__name__}")

    def describe(self) -> str:
        parts = []
        if self.identifier:
            parts.append(f"identifier {self.identifier!r}")
        if self.full_path:
            parts.append(f"path {self.full_path!r}")
        return " / ".join(parts)


@dataclass(frozen=True, slots=True)
class FreshLink:
    """A URL minted for one request; expiry is controlled by the backend."""

    url: str
    minted_at: datetime
    lookup: ResolveState
    full_path: Optional[str] = None
    identifier: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "url": self.url,
            "mintedAt": self.minted_at.isoformat(),
            "lookup": self.lookup.value,
        }


class LinkResolver:
    """Look a file up through an ordered fallback chain and mint a link.

    The chain tries the identifier first, then the path, then the path without
    its leading separator. The first hit wins; exhausting the chain raises
    ``NotFound``. Link minting is attempted once per call.
    """

    def __init__(
        self, session_factory: SessionFactory, *, timeout: Optional[float] = None
    ) -> None:
        self._session_factory = session_factory
        self._timeout = timeout

    def resolve(
        self, reference: Union[LinkReference, FileRecord, Mapping[str, Any]]
    ) -> FreshLink:
        ref = LinkReference.coerce(reference)
        return call_with_deadline(
            lambda: self._resolve(ref), self._timeout, f"resolve {ref.describe()}"
        )

    @staticmethod
    def lookup_chain(ref: LinkReference) -> List[Tuple[ResolveState, str]]:
        chain: List[Tuple[ResolveState, str]] = []
        if ref.identifier:
            chain.append((ResolveState.BY_IDENTIFIER, ref.identifier))
        if ref.full_path:
            chain.append((ResolveState.BY_PATH, ref.full_path))
            if ref.full_path.startswith("/"):
                stripped = ref.full_path[1:]
                if stripped:
                    chain.append((ResolveState.BY_PATH_FALLBACK, stripped))
        return chain

    def _resolve(self, ref: LinkReference) -> FreshLink:
        state = ResolveState.IDLE
        with self._session_factory() as session:
            state = self._transition(state, ResolveState.CONNECTION_READY, ref)
            node: Optional[RemoteFile] = None
            attempted: List[str] = []
            for step, target in self.lookup_chain(ref):
                state = self._transition(state, step, ref)
                attempted.append(f"{step.value}:{target}")
                node = self._lookup(session, step, target)
                if node is not None:
                    break

            if node is None:
                self._transition(state, ResolveState.NOT_FOUND, ref)
                raise NotFound(
                    f"File not found: {ref.describe()}",
                    attempted=attempted,
                    details=f"Tried {len(attempted)} lookup(s)",
                )
            lookup = state

            try:
                url = node.request_link()
            except CloudPickError:
                self._transition(state, ResolveState.LINK_GENERATION_FAILED, ref)
                raise
            except Exception as exc:
                self._transition(state, ResolveState.LINK_GENERATION_FAILED, ref)
                LOGGER.warning("Link generation failed for %s: %s", ref.describe(), exc)
                raise LinkGenerationFailed(
                    "Failed to generate link.", details=str(exc)
                ) from exc
            if not url:
                self._transition(state, ResolveState.LINK_GENERATION_FAILED, ref)
                raise LinkGenerationFailed(
                    "Failed to generate link.", details="The backend returned an empty URL"
                )

            self._transition(state, ResolveState.LINK_ISSUED, ref)
            LOGGER.info("Minted link for %s via %s", ref.describe(), lookup.value)
            return FreshLink(
                url=str(url),
                minted_at=datetime.now(timezone.utc),
                lookup=lookup,
                full_path=ref.full_path,
                identifier=node.identifier or ref.identifier,
            )

    @staticmethod
    def _lookup(
        session: StorageSession, step: ResolveState, target: str
    ) -> Optional[RemoteFile]:
        try:
            if step is ResolveState.BY_IDENTIFIER:
                return session.find_by_identifier(target)
            return session.find_by_path(target)
        except CloudPickError:
            raise
        except Exception as exc:
            LOGGER.error("Lookup %s for %r failed: %s", step.value, target, exc)
            raise BackendUnavailable(
                "Failed to look up the file on the storage backend.", details=str(exc)
            ) from exc

    @staticmethod
    def _transition(
        current: ResolveState, target: ResolveState, ref: LinkReference
    ) -> ResolveState:
        LOGGER.debug("resolve %s: %s -> %s", ref.describe(), current.value, target.value)
        return target


__all__ = ["FreshLink", "LinkReference", "LinkResolver", "ResolveState"]
