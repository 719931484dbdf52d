"""Wire configuration, connectors, catalog sessions, sampling and link resolution."""

from __future__ import annotations

import logging
import random
import threading
from typing import Any, Callable, Mapping, Optional, Union

from .catalog import Catalog, CatalogBuilder, FileRecord
from .config import AppConfig
from .connectors.base import StorageConnector
from .connectors.google_drive import GoogleDriveConnector, build_drive_service
from .connectors.local import LocalFolderConnector
from .connectors.s3 import S3Connector
from .errors import ConfigurationError
from .resolver import FreshLink, LinkReference, LinkResolver
from .sampler import Batch, Sampler
from .session import CatalogSession, SessionManager

LOGGER = logging.getLogger("cloudpick")


def build_connector(config: AppConfig) -> StorageConnector:
    """Return the connector for the configured provider.

    Raises ``ConfigurationError`` when the provider section or its credentials
    are missing, so callers can report it without touching the backend.
    """

    if config.provider == "local":
        if not config.local or config.local.path is None:
            raise ConfigurationError("Local folder path is not configured on the server.")
        return LocalFolderConnector(config.local.path)

    if config.provider == "google_drive":
        gd_config = config.google_drive
        if gd_config is None:
            raise ConfigurationError(
                "Google Drive credentials are not configured on the server."
            )
        return GoogleDriveConnector(
            service_factory=lambda: build_drive_service(gd_config),
            root_folder_id=gd_config.root_folder_id,
            page_size=gd_config.page_size,
        )

    if config.provider == "s3":
        s3_config = config.s3
        if s3_config is None or not s3_config.bucket:
            raise ConfigurationError("S3 bucket is not configured on the server.")
        if bool(s3_config.access_key_id) != bool(s3_config.secret_access_key):
            raise ConfigurationError(
                "S3 credentials are not configured on the server.",
                details="access_key_id and secret_access_key must be set together",
            )
        return S3Connector(
            bucket=s3_config.bucket,
            prefix=s3_config.prefix,
            region=s3_config.region,
            endpoint_url=s3_config.endpoint_url,
            access_key_id=s3_config.access_key_id,
            secret_access_key=s3_config.secret_access_key,
            session_token=s3_config.session_token,
            use_path_style=s3_config.use_path_style,
            verify_ssl=s3_config.verify_ssl,
            presign_ttl_seconds=s3_config.presign_ttl_seconds,
        )

    raise ConfigurationError(f"Unsupported provider: {config.provider}")


class CatalogService:
    """Hold the current catalog session and serve picks and links from it.

    Only one catalog session is current at a time. Refreshing opens a new one
    and closes the one it replaces; failed refreshes leave the current session
    untouched.
    """

    def __init__(
        self,
        connector_factory: Callable[[], StorageConnector],
        *,
        sampler: Optional[Sampler] = None,
        builder: Optional[CatalogBuilder] = None,
        catalog_timeout: Optional[float] = None,
        resolve_timeout: Optional[float] = None,
        batch_size: int = 10,
    ) -> None:
        self._connector_factory = connector_factory
        self._builder = builder or CatalogBuilder()
        self.sampler = sampler or Sampler()
        self.catalog_timeout = catalog_timeout
        self.resolve_timeout = resolve_timeout
        self.batch_size = batch_size
        self._lock = threading.Lock()
        self._current: Optional[CatalogSession] = None

    def _manager(self) -> SessionManager:
        return SessionManager(
            self._connector_factory(),
            self._builder,
            catalog_timeout=self.catalog_timeout,
        )

    def refresh(self) -> Catalog:
        """Rebuild the catalog from the backend and make it current."""

        session = self._manager().open_catalog_session()
        with self._lock:
            previous, self._current = self._current, session
        if previous is not None:
            previous.close()
        return session.catalog

    def catalog(self) -> Catalog:
        """Return the current catalog, building one if none exists yet."""

        with self._lock:
            current = self._current
        if current is not None and not current.closed:
            return current.catalog
        return self.refresh()

    def pick_one(self) -> FileRecord:
        return self.sampler.pick_one(self.catalog())

    def pick_batch(self, count: Optional[int] = None) -> Batch:
        return self.sampler.pick_batch(
            self.catalog(), self.batch_size if count is None else count
        )

    def resolve(
        self, reference: Union[LinkReference, FileRecord, Mapping[str, Any]]
    ) -> FreshLink:
        resolver = LinkResolver(self._manager().connection, timeout=self.resolve_timeout)
        return resolver.resolve(reference)

    def close(self) -> None:
        with self._lock:
            current, self._current = self._current, None
        if current is not None:
            current.close()


def build_service(config: AppConfig) -> CatalogService:
    """Construct the catalog service for ``config``.

    The connector is rebuilt for every session so credential problems surface
    per request instead of at startup.
    """

    rng = random.Random(config.sampling.seed)
    return CatalogService(
        lambda: build_connector(config),
        sampler=Sampler(rng),
        catalog_timeout=config.timeouts.catalog_seconds,
        resolve_timeout=config.timeouts.resolve_seconds,
        batch_size=config.sampling.batch_size,
    )


__all__ = ["CatalogService", "build_connector", "build_service"]
