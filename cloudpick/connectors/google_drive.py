"""Google Drive connector."""

from __future__ import annotations

import logging
import os
import time
from typing import TYPE_CHECKING, Any, Callable, Dict, Iterable, List, Optional, TypeVar
from urllib.parse import parse_qs, urlparse

from ..errors import AuthenticationFailed, BackendUnavailable, ConfigurationError
from ..paths import restore_leaf
from .base import RemoteFile, StorageConnector, StorageSession, TreeNode

if TYPE_CHECKING:  # pragma: no cover
    from ..config import GoogleDriveConfig

LOGGER = logging.getLogger("cloudpick.connectors.google_drive")

FOLDER_MIME_TYPE = "application/vnd.google-apps.folder"

T = TypeVar("T")


def _status_of(error: Exception) -> Optional[int]:
    resp = getattr(error, "resp", None)
    status = getattr(resp, "status", None)
    if status is None:
        return None
    try:
        return int(status)
    except (TypeError, ValueError):
        return None


def _quote(value: str) -> str:
    return value.replace("\\", "\\\\").replace("'", "\\'")


class GoogleDriveSession(StorageSession):
    """Browse a Drive folder tree and mint links for its files."""

    def __init__(
        self,
        service: "Resource",
        root_folder_id: str,
        page_size: int = 100,
        *,
        max_retries: int = 3,
        retry_initial_backoff: float = 1.0,
    ):
        self._service = service
        self._root_folder_id = root_folder_id
        self._page_size = page_size
        self._max_retries = max(1, int(max_retries))
        self._retry_initial_backoff = max(0.1, float(retry_initial_backoff))

    def tree(self) -> TreeNode:
        root = self._with_retry(
            lambda: self._service.files()
            .get(
                fileId=self._root_folder_id,
                fields="id, name, mimeType",
                supportsAllDrives=True,
            )
            .execute()
        )
        return TreeNode(
            name=root.get("name"),
            identifier=root.get("id", self._root_folder_id),
            is_directory=True,
            children=self._children(self._root_folder_id),
        )

    def find_by_identifier(self, identifier: str) -> Optional[RemoteFile]:
        item = self._get_item(identifier)
        if item is None or item.get("trashed") or item.get("mimeType") == FOLDER_MIME_TYPE:
            return None
        return self._remote_file(item)

    def find_by_path(self, path: str) -> Optional[RemoteFile]:
        segments = [segment for segment in (path or "").split("/") if segment]
        if not segments:
            return None
        parent_id = self._root_folder_id
        item: Optional[Dict[str, Any]] = None
        for index, segment in enumerate(segments):
            is_leaf = index == len(segments) - 1
            name = restore_leaf(segment) if is_leaf else segment
            item = self._find_child(parent_id, name, want_folder=not is_leaf)
            if item is None:
                return None
            parent_id = item["id"]
        return self._remote_file(item) if item is not None else None

    def close(self) -> None:
        http = getattr(self._service, "_http", None)
        close = getattr(http, "close", None)
        if callable(close):
            close()

    def request_link(self, file_id: str) -> str:
        item = self._with_retry(
            lambda: self._service.files()
            .get(
                fileId=file_id,
                fields="webContentLink, webViewLink",
                supportsAllDrives=True,
            )
            .execute()
        )
        url = item.get("webContentLink") or item.get("webViewLink")
        if not url:
            raise RuntimeError(f"Drive returned no link for file {file_id}")
        return url

    # Internal helpers -------------------------------------------------

    def _children(self, folder_id: str) -> tuple:
        nodes: List[TreeNode] = []
        for item in self._list(f"'{_quote(folder_id)}' in parents and trashed = false"):
            if item.get("mimeType") == FOLDER_MIME_TYPE:
                nodes.append(
                    TreeNode(
                        name=item.get("name"),
                        identifier=item["id"],
                        is_directory=True,
                        children=self._children(item["id"]),
                    )
                )
            else:
                nodes.append(TreeNode(name=item.get("name"), identifier=item["id"]))
        return tuple(nodes)

    def _list(self, query: str) -> Iterable[Dict[str, Any]]:
        fields = "nextPageToken, files(id, name, mimeType)"
        page_token: Optional[str] = None
        items: List[Dict[str, Any]] = []
        while True:
            response = self._with_retry(
                lambda page_token=page_token: self._service.files()
                .list(
                    q=query,
                    fields=fields,
                    orderBy="folder,name",
                    pageToken=page_token,
                    pageSize=self._page_size,
                    supportsAllDrives=True,
                    includeItemsFromAllDrives=True,
                )
                .execute()
            )
            items.extend(response.get("files", []))
            page_token = response.get("nextPageToken")
            if not page_token:
                break
        return items

    def _find_child(
        self, parent_id: str, name: str, *, want_folder: bool
    ) -> Optional[Dict[str, Any]]:
        query = (
            f"name = '{_quote(name)}' and '{_quote(parent_id)}' in parents "
            "and trashed = false"
        )
        for item in self._list(query):
            if (item.get("mimeType") == FOLDER_MIME_TYPE) == want_folder:
                return item
        return None

    def _get_item(self, file_id: str) -> Optional[Dict[str, Any]]:
        try:
            return self._with_retry(
                lambda: self._service.files()
                .get(
                    fileId=file_id,
                    fields="id, name, mimeType, trashed",
                    supportsAllDrives=True,
                )
                .execute()
            )
        except Exception as exc:
            if _status_of(exc) in (400, 404):
                return None
            raise

    def _remote_file(self, item: Dict[str, Any]) -> RemoteFile:
        file_id = item["id"]
        return RemoteFile(
            identifier=file_id,
            name=item.get("name", file_id),
            minter=lambda: self.request_link(file_id),
        )

    def _with_retry(self, operation: Callable[[], T]) -> T:
        delay = self._retry_initial_backoff
        for attempt in range(self._max_retries):
            try:
                return operation()
            except Exception as exc:
                if not self._is_retryable_error(exc) or attempt == self._max_retries - 1:
                    raise
                LOGGER.debug("Retrying Drive call after %s (attempt %s)", exc, attempt + 1)
                self._sleep(delay)
                delay = min(delay * 2, 30.0)
        raise RuntimeError("Retry logic reached an unexpected state")  # pragma: no cover

    @staticmethod
    def _is_retryable_error(error: Exception) -> bool:
        status = _status_of(error)
        return status is not None and 500 <= status < 600

    @staticmethod
    def _sleep(seconds: float) -> None:
        time.sleep(seconds)


class GoogleDriveConnector(StorageConnector):
    """Open sessions against a Drive folder using an authorized service."""

    name = "google_drive"

    def __init__(
        self,
        service_factory: Callable[[], "Resource"],
        root_folder_id: str,
        page_size: int = 100,
        *,
        max_retries: int = 3,
    ):
        self._service_factory = service_factory
        self._root_folder_id = root_folder_id
        self._page_size = page_size
        self._max_retries = max_retries

    def connect(self) -> GoogleDriveSession:
        service = self._service_factory()
        session = GoogleDriveSession(
            service,
            self._root_folder_id,
            self._page_size,
            max_retries=self._max_retries,
        )
        try:
            session._with_retry(
                lambda: service.files()
                .get(fileId=self._root_folder_id, fields="id", supportsAllDrives=True)
                .execute()
            )
        except Exception as exc:
            status = _status_of(exc)
            if status in (401, 403):
                raise AuthenticationFailed(
                    "Google Drive rejected the stored credentials.", details=str(exc)
                ) from exc
            raise BackendUnavailable(
                "Failed to connect to Google Drive.", details=str(exc)
            ) from exc
        return session


def _extract_code_from_user_input(raw_value: str) -> str:
    """Return the OAuth authorization code from direct input or a pasted URL."""

    value = (raw_value or "").strip()
    if not value:
        raise ValueError("Missing authorization input")

    if value.lower().startswith(("http://", "https://")):
        parsed = urlparse(value)
        code_candidates = parse_qs(parsed.query).get("code") or []
        if code_candidates and code_candidates[0].strip():
            return code_candidates[0].strip()
        raise ValueError("Redirect URL did not include an authorization code")

    return value


def _complete_console_oauth_flow(flow, prompt: Callable[[str], str] = input):
    """Guide the user through the console-based OAuth exchange."""

    if not flow.redirect_uri:
        redirect_uris = flow.client_config.get("redirect_uris") or []
        if redirect_uris:
            flow.redirect_uri = redirect_uris[0]

    authorization_url, _ = flow.authorization_url(
        prompt="consent",
        access_type="offline",
        include_granted_scopes="true",
    )
    LOGGER.info("Authorize access by visiting:\n%s\n", authorization_url)

    while True:
        user_input = prompt("Paste the verification code or redirected URL from Google: ")
        try:
            code = _extract_code_from_user_input(user_input)
        except ValueError as exc:
            LOGGER.error("%s. Please try again.", exc)
            continue
        try:
            flow.fetch_token(code=code)
        except Exception as exc:  # pragma: no cover - depends on oauthlib internals
            LOGGER.error("Token exchange failed: %s", exc)
            continue
        return flow.credentials


def authorize_drive(
    gd_config: "GoogleDriveConfig", *, force_console_oauth: bool = False
) -> None:
    """Run the interactive OAuth flow and cache the resulting token."""

    from google_auth_oauthlib.flow import InstalledAppFlow

    secrets_file = gd_config.oauth_client_secrets_file
    if secrets_file is None or not secrets_file.exists():
        raise ConfigurationError(
            "Google Drive OAuth client secrets file is missing.",
            details=str(secrets_file),
        )
    flow = InstalledAppFlow.from_client_secrets_file(
        str(secrets_file), list(gd_config.scopes)
    )
    open_browser = bool(
        os.environ.get("DISPLAY")
        or os.environ.get("WAYLAND_DISPLAY")
        or os.environ.get("BROWSER")
    )
    credentials = None
    if open_browser and not force_console_oauth:
        try:
            credentials = flow.run_local_server(port=0, open_browser=True)
        except Exception as exc:  # pragma: no cover - depends on the local desktop
            LOGGER.warning(
                "Local server OAuth flow failed (%s); falling back to console flow.", exc
            )
    if credentials is None:
        credentials = _complete_console_oauth_flow(flow)

    token_path = gd_config.oauth_token_file
    token_path.parent.mkdir(parents=True, exist_ok=True)
    token_path.write_text(credentials.to_json(), encoding="utf-8")
    LOGGER.info("Stored Google Drive token at %s", token_path)


def build_drive_service(gd_config: "GoogleDriveConfig"):
    """Build an authorized Drive v3 service from the cached OAuth token.

    The server never starts an interactive flow; a missing or unusable token is
    a configuration problem fixed with ``cloudpick authorize``.
    """

    from google.auth.exceptions import RefreshError
    from google.auth.transport.requests import Request
    from google.oauth2.credentials import Credentials
    from googleapiclient.discovery import build

    token_path = gd_config.oauth_token_file
    if token_path is None or not token_path.exists():
        raise ConfigurationError(
            "Google Drive credentials are not configured on the server.",
            details="Run `cloudpick authorize` to create the OAuth token cache.",
        )

    credentials = Credentials.from_authorized_user_file(
        str(token_path), list(gd_config.scopes)
    )
    if not credentials.valid:
        if not (credentials.expired and credentials.refresh_token):
            raise ConfigurationError(
                "Google Drive credentials are not configured on the server.",
                details=f"Cached token at {token_path} cannot be refreshed",
            )
        try:
            credentials.refresh(Request())
        except RefreshError as exc:
            raise AuthenticationFailed(
                "Google Drive token refresh failed.", details=str(exc)
            ) from exc
        token_path.write_text(credentials.to_json(), encoding="utf-8")

    return build("drive", "v3", credentials=credentials, cache_discovery=False)


__all__ = [
    "GoogleDriveConnector",
    "GoogleDriveSession",
    "authorize_drive",
    "build_drive_service",
]
