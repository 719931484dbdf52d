"""Tests for the Google Drive connector implementation."""

from __future__ import annotations

import types
from contextlib import contextmanager
from typing import Dict, List

import pytest

from cloudpick.catalog import CatalogBuilder
from cloudpick.connectors.google_drive import (
    FOLDER_MIME_TYPE,
    GoogleDriveConnector,
    GoogleDriveSession,
    _extract_code_from_user_input,
)
from cloudpick.errors import AuthenticationFailed, BackendUnavailable
from cloudpick.resolver import LinkResolver, ResolveState


class _HttpError(Exception):
    def __init__(self, status: int):
        super().__init__(f"HTTP {status}")
        self.resp = types.SimpleNamespace(status=status)


class _FakeRequest:
    def __init__(self, producer):
        self._producer = producer

    def execute(self):
        return self._producer()


class _FakeFilesResource:
    """In-memory Drive with a parent -> children index."""

    def __init__(self, items: List[dict], links: Dict[str, dict], page_size: int = 2):
        self._items = {item["id"]: item for item in items}
        self._links = links
        self._page_size = page_size
        self.list_calls: List[dict] = []
        self.get_calls: List[dict] = []
        self.flaky_lists = 0

    def _children(self, parent: str) -> List[dict]:
        return [item for item in self._items.values() if parent in item.get("parents", [])]

    def list(self, **kwargs):
        self.list_calls.append(kwargs)
        if self.flaky_lists:
            self.flaky_lists -= 1
            raise _HttpError(503)
        query = kwargs["q"]
        parent = query.split("' in parents")[0].rsplit("'", 1)[-1]
        matches = self._children(parent)
        if query.startswith("name = '"):
            wanted = query[len("name = '"):].split("' and ", 1)[0].replace("\\'", "'")
            matches = [item for item in matches if item["name"] == wanted]
        matches = [item for item in matches if not item.get("trashed")]
        start = int(kwargs.get("pageToken") or 0)
        page = matches[start:start + self._page_size]
        response = {
            "files": [
                {key: item[key] for key in ("id", "name", "mimeType")} for item in page
            ]
        }
        if start + self._page_size < len(matches):
            response["nextPageToken"] = str(start + self._page_size)
        return _FakeRequest(lambda: response)

    def get(self, fileId: str, fields: str, **kwargs):  # noqa: N803 - API parity
        self.get_calls.append({"fileId": fileId, "fields": fields})

        def _produce():
            if fileId not in self._items:
                raise _HttpError(404)
            if fields.startswith("webContentLink"):
                return self._links.get(fileId, {})
            return dict(self._items[fileId])

        return _FakeRequest(_produce)


class _FakeDriveService:
    def __init__(self, files_resource: _FakeFilesResource):
        self._files_resource = files_resource

    def files(self):
        return self._files_resource


def _folder(item_id: str, name: str, parent: str) -> dict:
    return {"id": item_id, "name": name, "mimeType": FOLDER_MIME_TYPE, "parents": [parent]}


def _file(item_id: str, name: str, parent: str, **extra) -> dict:
    data = {"id": item_id, "name": name, "mimeType": "application/octet-stream", "parents": [parent]}
    data.update(extra)
    return data


@pytest.fixture()
def drive() -> _FakeFilesResource:
    items = [
        {"id": "root-id", "name": "My Drive", "mimeType": FOLDER_MIME_TYPE},
        _folder("docs", "docs", "root-id"),
        _file("report", "report.pdf", "docs"),
        _folder("photos", "photos", "docs"),
        _file("a", "a.jpg", "photos"),
        _file("readme", "readme.txt", "root-id"),
        _file("notes", "notes.md", "root-id"),
        _file("old", "old.txt", "root-id", trashed=True),
    ]
    links = {
        "report": {"webContentLink": "https://drive.example/download/report"},
        "readme": {"webViewLink": "https://drive.example/view/readme"},
    }
    return _FakeFilesResource(items, links)


def _session(resource: _FakeFilesResource) -> GoogleDriveSession:
    return GoogleDriveSession(_FakeDriveService(resource), "root-id", page_size=2)


def test_tree_walks_nested_folders_with_pagination(drive: _FakeFilesResource) -> None:
    catalog = CatalogBuilder().build(_session(drive).tree())

    assert sorted(record.full_path for record in catalog) == [
        "/docs/photos/a.jpg",
        "/docs/report.pdf",
        "/notes.md",
        "/readme.txt",
    ]
    assert {record.identifier for record in catalog} == {"report", "a", "readme", "notes"}
    assert any("pageToken" in call and call["pageToken"] for call in drive.list_calls)


def test_find_by_path_ignores_leading_separator(drive: _FakeFilesResource) -> None:
    session = _session(drive)

    assert session.find_by_path("/docs/report.pdf").identifier == "report"
    assert session.find_by_path("docs/photos/a.jpg").identifier == "a"
    assert session.find_by_path("/docs/missing.pdf") is None
    assert session.find_by_path("/docs") is None


def test_find_by_identifier_skips_folders_trashed_and_unknown(drive: _FakeFilesResource) -> None:
    session = _session(drive)

    assert session.find_by_identifier("readme").name == "readme.txt"
    assert session.find_by_identifier("docs") is None
    assert session.find_by_identifier("old") is None
    assert session.find_by_identifier("nope") is None


def test_request_link_prefers_download_link(drive: _FakeFilesResource) -> None:
    session = _session(drive)

    assert session.find_by_identifier("report").request_link() == "https://drive.example/download/report"
    assert session.find_by_identifier("readme").request_link() == "https://drive.example/view/readme"
    with pytest.raises(RuntimeError):
        session.find_by_identifier("a").request_link()


def test_list_retries_on_server_error(monkeypatch: pytest.MonkeyPatch, drive: _FakeFilesResource) -> None:
    session = _session(drive)
    monkeypatch.setattr(session, "_sleep", lambda _delay: None)
    drive.flaky_lists = 1

    assert session.find_by_path("readme.txt").identifier == "readme"


def test_connector_resolves_links_end_to_end(drive: _FakeFilesResource) -> None:
    connector = GoogleDriveConnector(lambda: _FakeDriveService(drive), "root-id", page_size=2)

    @contextmanager
    def _connection():
        session = connector.connect()
        try:
            yield session
        finally:
            session.close()

    link = LinkResolver(_connection).resolve({"path": "/docs/report.pdf"})
    assert link.url == "https://drive.example/download/report"
    assert link.lookup is ResolveState.BY_PATH


def test_connect_classifies_failures(drive: _FakeFilesResource) -> None:
    def _deny():
        raise _HttpError(403)

    class _DeniedFiles(_FakeFilesResource):
        def get(self, fileId: str, fields: str, **kwargs):  # noqa: N803
            return _FakeRequest(_deny)

    denied = GoogleDriveConnector(lambda: _FakeDriveService(_DeniedFiles([], {})), "root-id")
    with pytest.raises(AuthenticationFailed):
        denied.connect()

    missing = GoogleDriveConnector(lambda: _FakeDriveService(drive), "no-such-folder")
    with pytest.raises(BackendUnavailable):
        missing.connect()


def test_extract_code_from_user_input() -> None:
    assert _extract_code_from_user_input(" abc ") == "abc"
    assert (
        _extract_code_from_user_input("http://localhost/?code=xyz&scope=drive")
        == "xyz"
    )
    with pytest.raises(ValueError):
        _extract_code_from_user_input("https://localhost/?state=1")
    with pytest.raises(ValueError):
        _extract_code_from_user_input("   ")


def test_find_by_path_matches_names_containing_separators() -> None:
    resource = _FakeFilesResource(
        [
            {"id": "root-id", "name": "My Drive", "mimeType": FOLDER_MIME_TYPE},
            _folder("docs", "docs", "root-id"),
            _file("q", "Q1/Q2 report.pdf", "docs"),
        ],
        {},
    )
    session = _session(resource)

    record = CatalogBuilder().build(session.tree())[0]

    assert record.full_path == "/docs/Q1\u2215Q2 report.pdf"
    assert session.find_by_path(record.full_path).identifier == "q"
