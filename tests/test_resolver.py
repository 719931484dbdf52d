"""Tests for the link resolution fallback chain."""

from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Dict, List, Optional

import pytest

from cloudpick.catalog import FileRecord
from cloudpick.connectors.base import RemoteFile
from cloudpick.errors import (
    BackendTimeout,
    BackendUnavailable,
    LinkGenerationFailed,
    NotFound,
)
from cloudpick.resolver import LinkReference, LinkResolver, ResolveState


class _FakeSession:
    """Backend whose path matcher only accepts paths without a leading slash."""

    def __init__(
        self,
        files: Dict[str, str],
        *,
        link_error: Optional[Exception] = None,
        lookup_error: Optional[Exception] = None,
    ) -> None:
        self._files = files  # path -> identifier
        self._link_error = link_error
        self._lookup_error = lookup_error
        self.path_lookups: List[str] = []
        self.identifier_lookups: List[str] = []
        self.minted = 0
        self.closed = False

    def _file(self, path: str, identifier: str) -> RemoteFile:
        def _mint() -> str:
            if self._link_error is not None:
                raise self._link_error
            self.minted += 1
            return f"https://files.example/{identifier}?sig={self.minted}"

        return RemoteFile(identifier=identifier, name=path.rsplit("/", 1)[-1], minter=_mint)

    def find_by_path(self, path: str) -> Optional[RemoteFile]:
        self.path_lookups.append(path)
        if self._lookup_error is not None:
            raise self._lookup_error
        if path in self._files:
            return self._file(path, self._files[path])
        return None

    def find_by_identifier(self, identifier: str) -> Optional[RemoteFile]:
        self.identifier_lookups.append(identifier)
        for path, known in self._files.items():
            if known == identifier:
                return self._file(path, known)
        return None

    def tree(self):  # pragma: no cover - unused here
        return []

    def close(self) -> None:
        self.closed = True


def _factory(session: _FakeSession):
    @contextmanager
    def _connect():
        try:
            yield session
        finally:
            session.close()

    return _connect


FILES = {"docs/report.pdf": "h-report", "readme.txt": "h-readme"}


def test_leading_slash_path_resolves_through_fallback() -> None:
    session = _FakeSession(FILES)
    link = LinkResolver(_factory(session)).resolve({"path": "/docs/report.pdf"})

    assert link.url.startswith("https://files.example/h-report")
    assert link.lookup is ResolveState.BY_PATH_FALLBACK
    assert session.path_lookups == ["/docs/report.pdf", "docs/report.pdf"]
    assert session.closed


def test_path_with_and_without_leading_slash_both_succeed() -> None:
    session = _FakeSession(FILES)
    resolver = LinkResolver(_factory(session))

    with_slash = resolver.resolve(LinkReference(full_path="/readme.txt"))
    without_slash = resolver.resolve(LinkReference(full_path="readme.txt"))

    assert with_slash.identifier == without_slash.identifier == "h-readme"
    assert without_slash.lookup is ResolveState.BY_PATH


def test_identifier_is_tried_first() -> None:
    session = _FakeSession(FILES)
    link = LinkResolver(_factory(session)).resolve(
        {"identifier": "h-report", "path": "/docs/report.pdf"}
    )

    assert link.lookup is ResolveState.BY_IDENTIFIER
    assert session.identifier_lookups == ["h-report"]
    assert session.path_lookups == []


def test_unknown_identifier_falls_back_to_path() -> None:
    session = _FakeSession(FILES)
    link = LinkResolver(_factory(session)).resolve(
        {"identifier": "stale", "path": "/readme.txt"}
    )

    assert link.identifier == "h-readme"
    assert link.lookup is ResolveState.BY_PATH_FALLBACK
    assert session.identifier_lookups == ["stale"]


def test_resolve_accepts_file_records() -> None:
    record = FileRecord(0, "report.pdf", "/docs/report.pdf", "/docs", "pdf", "h-report")
    link = LinkResolver(_factory(_FakeSession(FILES))).resolve(record)
    assert link.lookup is ResolveState.BY_IDENTIFIER


def test_missing_file_is_not_found_after_bounded_attempts() -> None:
    session = _FakeSession(FILES)
    with pytest.raises(NotFound) as excinfo:
        LinkResolver(_factory(session)).resolve({"path": "/missing.txt"})

    assert session.path_lookups == ["/missing.txt", "missing.txt"]
    assert excinfo.value.attempted == (
        "by_path:/missing.txt",
        "by_path_fallback:missing.txt",
    )
    assert excinfo.value.to_dict()["kind"] == "not_found"
    assert session.closed


def test_no_fallback_for_relative_paths() -> None:
    session = _FakeSession(FILES)
    with pytest.raises(NotFound):
        LinkResolver(_factory(session)).resolve({"path": "missing.txt"})
    assert session.path_lookups == ["missing.txt"]


def test_fallback_strips_only_one_leading_separator() -> None:
    assert LinkResolver.lookup_chain(LinkReference(full_path="//x")) == [
        (ResolveState.BY_PATH, "//x"),
        (ResolveState.BY_PATH_FALLBACK, "/x"),
    ]


def test_link_generation_failure_is_not_retried() -> None:
    session = _FakeSession(FILES, link_error=RuntimeError("signing service down"))
    with pytest.raises(LinkGenerationFailed) as excinfo:
        LinkResolver(_factory(session)).resolve({"path": "readme.txt"})

    assert "signing service down" in (excinfo.value.details or "")
    assert session.path_lookups == ["readme.txt"]
    assert session.closed


def test_lookup_errors_are_classified() -> None:
    session = _FakeSession(FILES, lookup_error=OSError("connection reset"))
    with pytest.raises(BackendUnavailable):
        LinkResolver(_factory(session)).resolve({"path": "/readme.txt"})
    assert session.closed


def test_every_call_mints_a_new_link() -> None:
    session = _FakeSession(FILES)
    resolver = LinkResolver(_factory(session))
    first = resolver.resolve({"path": "readme.txt"})
    second = resolver.resolve({"path": "readme.txt"})
    assert first.url != second.url
    assert session.minted == 2


def test_reference_requires_path_or_identifier() -> None:
    with pytest.raises(ValueError):
        LinkReference()
    with pytest.raises(ValueError):
        LinkReference.coerce({"path": "", "identifier": None})


def test_resolve_past_deadline_times_out() -> None:
    release = threading.Event()

    class _SlowSession(_FakeSession):
        def find_by_path(self, path: str):
            release.wait(5)
            return super().find_by_path(path)

    session = _SlowSession(FILES)
    resolver = LinkResolver(_factory(session), timeout=0.05)
    try:
        with pytest.raises(BackendTimeout):
            resolver.resolve({"path": "readme.txt"})
    finally:
        release.set()


def test_fresh_link_serializes() -> None:
    link = LinkResolver(_factory(_FakeSession(FILES))).resolve({"path": "readme.txt"})
    payload = link.to_dict()
    assert payload["url"] == link.url
    assert payload["lookup"] == "by_path"
    assert "mintedAt" in payload
