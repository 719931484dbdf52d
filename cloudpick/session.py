"""Backend connection lifetimes and deadline handling."""

from __future__ import annotations

import logging
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from contextlib import contextmanager
from typing import Callable, Iterator, Optional, TypeVar

from .catalog import Catalog, CatalogBuilder
from .connectors.base import StorageConnector, StorageSession
from .errors import BackendTimeout, BackendUnavailable, CloudPickError

LOGGER = logging.getLogger("cloudpick.session")

T = TypeVar("T")


def call_with_deadline(
    operation: Callable[[], T],
    timeout: Optional[float],
    description: str,
    *,
    on_late_result: Optional[Callable[[T], None]] = None,
) -> T:
    """Run ``operation`` and give up with ``BackendTimeout`` after ``timeout`` seconds.

    The worker thread cannot be interrupted, so a result that arrives after the
    deadline is passed to ``on_late_result`` for cleanup instead of being lost.
    """

    if timeout is None:
        return operation()

    executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="cloudpick")
    future: Future = executor.submit(operation)
    try:
        return future.result(timeout=timeout)
    except FutureTimeout as exc:
        LOGGER.warning("%s exceeded its %.1fs deadline", description, timeout)
        if on_late_result is not None:
            future.add_done_callback(_late_result_handler(on_late_result))
        raise BackendTimeout(
            f"Timed out waiting for the storage backend ({description}).",
            details=f"deadline of {timeout:g}s exceeded",
        ) from exc
    finally:
        executor.shutdown(wait=False)


def _late_result_handler(callback: Callable[[T], None]) -> Callable[[Future], None]:
    def _handle(future: Future) -> None:
        if future.cancelled() or future.exception() is not None:
            return
        try:
            callback(future.result())
        except Exception:  # noqa: BLE001 - cleanup must not raise in a worker
            LOGGER.exception("Cleanup of a late backend result failed")

    return _handle


def close_quietly(session: Optional[StorageSession]) -> None:
    if session is None:
        return
    try:
        session.close()
    except Exception as exc:  # noqa: BLE001 - releasing must not mask the original error
        LOGGER.warning("Failed to close storage session: %s", exc)


class CatalogSession:
    """A backend connection together with the catalog built from it.

    The catalog lives exactly as long as this object; closing it releases the
    connection and a new session must be opened to rebuild.
    """

    def __init__(self, storage: StorageSession, catalog: Catalog) -> None:
        self._storage: Optional[StorageSession] = storage
        self._catalog = catalog

    @property
    def catalog(self) -> Catalog:
        return self._catalog

    @property
    def closed(self) -> bool:
        return self._storage is None

    def close(self) -> None:
        storage, self._storage = self._storage, None
        close_quietly(storage)

    def __enter__(self) -> "CatalogSession":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


class SessionManager:
    """Open backend connections and catalog sessions for one connector."""

    def __init__(
        self,
        connector: StorageConnector,
        builder: Optional[CatalogBuilder] = None,
        *,
        catalog_timeout: Optional[float] = None,
    ) -> None:
        self.connector = connector
        self.builder = builder or CatalogBuilder()
        self.catalog_timeout = catalog_timeout

    def connect(self) -> StorageSession:
        name = getattr(self.connector, "name", type(self.connector).__name__)
        LOGGER.debug("Connecting to %s backend", name)
        try:
            return self.connector.connect()
        except CloudPickError:
            raise
        except Exception as exc:
            LOGGER.error("Connection to %s backend failed: %s", name, exc)
            raise BackendUnavailable(
                "Failed to connect to the storage backend.", details=str(exc)
            ) from exc

    @contextmanager
    def connection(self) -> Iterator[StorageSession]:
        """Yield a connected session and release it on every exit path."""

        session = self.connect()
        try:
            yield session
        finally:
            close_quietly(session)

    def open_catalog_session(self) -> CatalogSession:
        """Connect and build the catalog; the connection is closed on failure."""

        def _open() -> CatalogSession:
            storage = self.connect()
            try:
                catalog = self.builder.build_from_session(storage)
            except BaseException:
                close_quietly(storage)
                raise
            return CatalogSession(storage, catalog)

        return call_with_deadline(
            _open,
            self.catalog_timeout,
            "catalog build",
            on_late_result=lambda session: session.close(),
        )


__all__ = [
    "CatalogSession",
    "SessionManager",
    "call_with_deadline",
    "close_quietly",
]
