"""S3-compatible storage connector (AWS S3 / MinIO)."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from botocore.exceptions import BotoCoreError, ClientError

from ..errors import AuthenticationFailed, BackendUnavailable
from .base import FlatNode, RemoteFile, StorageConnector, StorageSession

LOGGER = logging.getLogger("cloudpick.connectors.s3")

_MISSING_CODES = ("404", "NoSuchKey", "NotFound")
_AUTH_CODES = ("401", "403", "AccessDenied", "InvalidAccessKeyId", "SignatureDoesNotMatch")


def _error_code(exc: ClientError) -> tuple:
    response = getattr(exc, "response", {}) or {}
    status_code = (response.get("ResponseMetadata") or {}).get("HTTPStatusCode")
    error_code = str((response.get("Error") or {}).get("Code") or "")
    return status_code, error_code


def normalize_prefix(prefix: Optional[str]) -> str:
    cleaned = (prefix or "").replace("\\", "/").strip("/")
    return f"{cleaned}/" if cleaned else ""


class S3Session(StorageSession):
    """Flat view over the keys below a prefix; links are presigned GET URLs.

    Keys are used verbatim as identifiers. Path lookups append the path to the
    prefix without normalizing it, so ``/docs/a.pdf`` and ``docs/a.pdf`` address
    different keys.
    """

    def __init__(self, client, bucket: str, prefix: str = "", presign_ttl_seconds: int = 3600):
        self._client = client
        self.bucket = bucket
        self.prefix = normalize_prefix(prefix)
        self.presign_ttl_seconds = int(presign_ttl_seconds)

    def tree(self) -> List[FlatNode]:
        paginator = self._client.get_paginator("list_objects_v2")
        nodes: List[FlatNode] = []
        for page in paginator.paginate(Bucket=self.bucket, Prefix=self.prefix):
            for item in page.get("Contents", []) or []:
                key = item["Key"]
                relative = key[len(self.prefix):]
                is_directory = relative.endswith("/")
                segments = [segment for segment in relative.split("/") if segment]
                if not segments:
                    continue
                nodes.append(
                    FlatNode(
                        name=segments[-1],
                        identifier=key,
                        ancestor_names=tuple(segments[:-1]),
                        is_directory=is_directory,
                    )
                )
        return nodes

    def find_by_path(self, path: str) -> Optional[RemoteFile]:
        if not path:
            return None
        return self._head(f"{self.prefix}{path}")

    def find_by_identifier(self, identifier: str) -> Optional[RemoteFile]:
        if not identifier:
            return None
        return self._head(identifier)

    def close(self) -> None:
        # The boto3 client belongs to the connector and is reused across sessions.
        self._client = None

    def presign_get_url(self, key: str) -> str:
        return self._client.generate_presigned_url(
            "get_object",
            Params={"Bucket": self.bucket, "Key": key},
            ExpiresIn=self.presign_ttl_seconds,
        )

    def _head(self, key: str) -> Optional[RemoteFile]:
        if key.endswith("/"):
            return None
        try:
            self._client.head_object(Bucket=self.bucket, Key=key)
        except ClientError as exc:
            status_code, error_code = _error_code(exc)
            if status_code == 404 or error_code in _MISSING_CODES:
                return None
            raise
        return RemoteFile(
            identifier=key,
            name=key.rsplit("/", 1)[-1],
            minter=lambda: self.presign_get_url(key),
        )


class S3Connector(StorageConnector):
    """S3 connector with lazy boto3 client creation."""

    name = "s3"

    def __init__(
        self,
        *,
        bucket: str,
        prefix: str = "",
        region: Optional[str] = None,
        endpoint_url: Optional[str] = None,
        access_key_id: Optional[str] = None,
        secret_access_key: Optional[str] = None,
        session_token: Optional[str] = None,
        use_path_style: bool = False,
        verify_ssl: bool = True,
        presign_ttl_seconds: int = 3600,
        client=None,
    ):
        self.bucket = bucket
        self.prefix = prefix
        self.region = region
        self.endpoint_url = endpoint_url
        self.access_key_id = access_key_id
        self.secret_access_key = secret_access_key
        self.session_token = session_token
        self.use_path_style = use_path_style
        self.verify_ssl = verify_ssl
        self.presign_ttl_seconds = presign_ttl_seconds
        self._client = client

    def _get_client(self):
        if self._client is not None:
            return self._client

        import boto3
        from botocore.config import Config

        client_kwargs: Dict[str, Any] = {
            "service_name": "s3",
            "verify": self.verify_ssl,
        }
        if self.region:
            client_kwargs["region_name"] = self.region
        if self.endpoint_url:
            client_kwargs["endpoint_url"] = self.endpoint_url
        if self.access_key_id:
            client_kwargs["aws_access_key_id"] = self.access_key_id
        if self.secret_access_key:
            client_kwargs["aws_secret_access_key"] = self.secret_access_key
        if self.session_token:
            client_kwargs["aws_session_token"] = self.session_token

        addressing_style = "path" if self.use_path_style else "auto"
        client_kwargs["config"] = Config(
            signature_version="s3v4", s3={"addressing_style": addressing_style}
        )
        self._client = boto3.client(**client_kwargs)
        return self._client

    def connect(self) -> S3Session:
        try:
            client = self._get_client()
            client.head_bucket(Bucket=self.bucket)
        except ClientError as exc:
            status_code, error_code = _error_code(exc)
            if status_code in (401, 403) or error_code in _AUTH_CODES:
                raise AuthenticationFailed(
                    "S3 rejected the configured credentials.", details=str(exc)
                ) from exc
            raise BackendUnavailable(
                f"S3 bucket {self.bucket!r} is not available.", details=str(exc)
            ) from exc
        except BotoCoreError as exc:
            raise BackendUnavailable("Failed to connect to S3.", details=str(exc)) from exc
        LOGGER.debug("Connected to bucket %s (prefix %r)", self.bucket, self.prefix)
        return S3Session(client, self.bucket, self.prefix, self.presign_ttl_seconds)


__all__ = ["S3Connector", "S3Session", "normalize_prefix"]
