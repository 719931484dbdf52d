"""Configuration utilities for the cloudpick service."""

from __future__ import annotations

import json
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Literal, Optional, Sequence, Tuple

Provider = Literal["local", "google_drive", "s3"]
PROVIDERS: Tuple[str, ...] = ("local", "google_drive", "s3")
_ENV_REFERENCE = re.compile(r"\$(\w+|\{\w+\})")


@dataclass(slots=True)
class GoogleDriveConfig:
    """Settings required to browse a Google Drive folder.

    When the token cache path is omitted it defaults to `<client_secrets_stem>_token.json`
    in the same directory as the supplied client secrets file.
    """

    root_folder_id: str
    oauth_client_secrets_file: Optional[Path]
    oauth_token_file: Path
    page_size: int = 100
    scopes: Tuple[str, ...] = ("https://www.googleapis.com/auth/drive.readonly",)


@dataclass(slots=True)
class S3Config:
    """Settings for an S3-compatible bucket.

    Credential values may reference environment variables (``${AWS_SECRET}``);
    a reference to an unset variable counts as not configured.
    """

    bucket: Optional[str]
    prefix: str = ""
    region: Optional[str] = None
    endpoint_url: Optional[str] = None
    access_key_id: Optional[str] = None
    secret_access_key: Optional[str] = None
    session_token: Optional[str] = None
    use_path_style: bool = False
    verify_ssl: bool = True
    presign_ttl_seconds: int = 3600


@dataclass(slots=True)
class LocalFolderConfig:
    """Settings for the built-in local filesystem connector."""

    path: Optional[Path]


@dataclass(slots=True)
class ServerConfig:
    host: str = "127.0.0.1"
    port: int = 8080


@dataclass(slots=True)
class SamplingConfig:
    """Defaults for random picks."""

    batch_size: int = 10
    seed: Optional[int] = None


@dataclass(slots=True)
class TimeoutConfig:
    """Deadlines, in seconds, for remote operations. ``None`` disables one."""

    catalog_seconds: Optional[float] = 120.0
    resolve_seconds: Optional[float] = 30.0


@dataclass(slots=True)
class LoggingConfig:
    directory: Optional[Path] = None
    keep_days: int = 7


@dataclass(slots=True)
class AppConfig:
    """Top-level application configuration."""

    provider: Provider
    server: ServerConfig = field(default_factory=ServerConfig)
    sampling: SamplingConfig = field(default_factory=SamplingConfig)
    timeouts: TimeoutConfig = field(default_factory=TimeoutConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    google_drive: Optional[GoogleDriveConfig] = None
    s3: Optional[S3Config] = None
    local: Optional[LocalFolderConfig] = None

    @staticmethod
    def _coerce_path(value: Optional[str | Path]) -> Optional[Path]:
        if value is None:
            return None
        expanded = AppConfig._expand_env(value)
        if not expanded:
            return None
        return Path(expanded).expanduser().resolve()

    @staticmethod
    def _expand_env(value: Optional[str | Path]) -> Optional[str]:
        """Expand environment references, treating unresolved ones as missing."""

        if value is None:
            return None
        raw = str(value).strip()
        expanded = os.path.expandvars(raw).strip()
        if not expanded:
            return None
        if expanded == raw and _ENV_REFERENCE.fullmatch(raw):
            return None
        return expanded

    @staticmethod
    def _coerce_timeout(value: Any, default: Optional[float]) -> Optional[float]:
        if value is None:
            return default
        seconds = float(value)
        return seconds if seconds > 0 else None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AppConfig":
        provider = str(data.get("provider", "local")).lower()
        if provider not in PROVIDERS:
            raise ValueError(f"provider must be one of {', '.join(PROVIDERS)}")

        server_data = data.get("server") or {}
        server = ServerConfig(
            host=str(server_data.get("host", "127.0.0.1")),
            port=int(server_data.get("port", 8080)),
        )

        sampling_data = data.get("sampling") or {}
        batch_size = int(sampling_data.get("batch_size", 10))
        if batch_size < 1:
            raise ValueError("sampling.batch_size must be at least 1")
        seed = sampling_data.get("seed")
        sampling = SamplingConfig(
            batch_size=batch_size, seed=int(seed) if seed is not None else None
        )

        timeouts_data = data.get("timeouts") or {}
        timeouts = TimeoutConfig(
            catalog_seconds=cls._coerce_timeout(
                timeouts_data.get("catalog_seconds"), 120.0
            ),
            resolve_seconds=cls._coerce_timeout(
                timeouts_data.get("resolve_seconds"), 30.0
            ),
        )

        logging_data = data.get("logging") or {}
        logging_cfg = LoggingConfig(
            directory=cls._coerce_path(logging_data.get("directory")),
            keep_days=max(1, int(logging_data.get("keep_days", 7))),
        )

        google_drive_cfg = None
        if "google_drive" in data:
            gd = data["google_drive"] or {}
            root_folder_id = gd.get("root_folder_id") or gd.get("folder_id") or "root"

            oauth_client_secrets_file = cls._coerce_path(
                gd.get("oauth_client_secrets_file")
            )
            token_override = gd.get("oauth_token_file")
            if token_override is not None:
                oauth_token_file = cls._coerce_path(token_override)
            elif oauth_client_secrets_file is not None:
                oauth_token_file = oauth_client_secrets_file.with_name(
                    f"{oauth_client_secrets_file.stem}_token.json"
                )
            else:
                raise ValueError(
                    "google_drive.oauth_client_secrets_file or google_drive.oauth_token_file "
                    "is required for OAuth-based access"
                )

            scopes: Sequence[str] = gd.get(
                "scopes", ["https://www.googleapis.com/auth/drive.readonly"]
            )
            google_drive_cfg = GoogleDriveConfig(
                root_folder_id=str(root_folder_id),
                oauth_client_secrets_file=oauth_client_secrets_file,
                oauth_token_file=oauth_token_file,
                page_size=int(gd.get("page_size", 100)),
                scopes=tuple(str(scope) for scope in scopes),
            )

        s3_cfg = None
        if "s3" in data:
            s3_data = data["s3"] or {}
            s3_cfg = S3Config(
                bucket=cls._expand_env(s3_data.get("bucket")),
                prefix=cls._expand_env(s3_data.get("prefix")) or "",
                region=cls._expand_env(s3_data.get("region")),
                endpoint_url=cls._expand_env(s3_data.get("endpoint_url")),
                access_key_id=cls._expand_env(s3_data.get("access_key_id")),
                secret_access_key=cls._expand_env(s3_data.get("secret_access_key")),
                session_token=cls._expand_env(s3_data.get("session_token")),
                use_path_style=bool(s3_data.get("use_path_style", False)),
                verify_ssl=bool(s3_data.get("verify_ssl", True)),
                presign_ttl_seconds=int(s3_data.get("presign_ttl_seconds", 3600)),
            )
            if s3_cfg.presign_ttl_seconds < 1:
                raise ValueError("s3.presign_ttl_seconds must be positive")

        local_cfg = None
        if "local" in data:
            local_data = data["local"] or {}
            local_cfg = LocalFolderConfig(path=cls._coerce_path(local_data.get("path")))

        return cls(
            provider=provider,  # type: ignore[arg-type]
            server=server,
            sampling=sampling,
            timeouts=timeouts,
            logging=logging_cfg,
            google_drive=google_drive_cfg,
            s3=s3_cfg,
            local=local_cfg,
        )


def load_config(path: str | Path) -> AppConfig:
    """Load configuration data from a JSON file."""

    config_path = Path(path).expanduser().resolve()
    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    with config_path.open("r", encoding="utf-8") as handle:
        data = json.load(handle)

    return AppConfig.from_dict(data)


__all__ = [
    "AppConfig",
    "GoogleDriveConfig",
    "LocalFolderConfig",
    "LoggingConfig",
    "PROVIDERS",
    "S3Config",
    "SamplingConfig",
    "ServerConfig",
    "TimeoutConfig",
    "load_config",
]
