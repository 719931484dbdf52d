"""Error taxonomy shared by the catalog, resolver and HTTP layers."""

from __future__ import annotations

from typing import Any, Dict, Optional, Sequence


class CloudPickError(Exception):
    """Base class for every classified failure.

    Each subclass carries a stable ``kind`` string and the HTTP status the API
    layer answers with, so callers never see an unclassified failure.
    """

    kind = "internal_error"
    http_status = 500

    def __init__(self, message: str, *, details: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"error": self.message, "kind": self.kind}
        if self.details is not None:
            payload["details"] = self.details
        return payload


class ConfigurationError(CloudPickError):
    """Credentials or provider settings are missing; never retried."""

    kind = "configuration_error"


class BackendError(CloudPickError):
    """The remote storage backend could not be used."""

    kind = "backend_error"


class BackendUnavailable(BackendError):
    kind = "backend_unavailable"


class AuthenticationFailed(BackendError):
    kind = "authentication_failed"


class BackendTimeout(BackendError):
    """A connect, catalog build or resolve call exceeded its deadline."""

    kind = "backend_timeout"
    http_status = 504


class MalformedTree(CloudPickError):
    kind = "malformed_tree"


class EmptyCatalog(CloudPickError):
    """Raised by the sampler when there is nothing to pick from."""

    kind = "empty_catalog"
    http_status = 200


class NotFound(CloudPickError):
    """No lookup strategy located the requested file."""

    kind = "not_found"
    http_status = 404

    def __init__(
        self,
        message: str,
        *,
        attempted: Sequence[str] = (),
        details: Optional[str] = None,
    ) -> None:
        super().__init__(message, details=details)
        self.attempted = tuple(attempted)

    def to_dict(self) -> Dict[str, Any]:
        payload = super().to_dict()
        payload["attempted"] = list(self.attempted)
        return payload


class LinkGenerationFailed(CloudPickError):
    """The node was found but the backend failed to mint a link."""

    kind = "link_generation_failed"


__all__ = [
    "AuthenticationFailed",
    "BackendError",
    "BackendTimeout",
    "BackendUnavailable",
    "CloudPickError",
    "ConfigurationError",
    "EmptyCatalog",
    "LinkGenerationFailed",
    "MalformedTree",
    "NotFound",
]
