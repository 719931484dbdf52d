"""Top-level package for cloudpick."""

from .catalog import Catalog, CatalogBuilder, FileRecord
from .config import AppConfig, load_config
from .resolver import FreshLink, LinkReference, LinkResolver
from .sampler import Batch, Sampler
from .service import CatalogService, build_connector, build_service

__all__ = [
    "AppConfig",
    "Batch",
    "Catalog",
    "CatalogBuilder",
    "CatalogService",
    "FileRecord",
    "FreshLink",
    "LinkReference",
    "LinkResolver",
    "Sampler",
    "build_connector",
    "build_service",
    "load_config",
]
