"""Configuration loading and Pydantic models for s3proxy."""

from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator

DEFAULT_INDEX_NAMES = ["index.html", "index.txt"]

# Sentinel error-page value that hands the request to the next handler.
PASS_THROUGH = "pass_through"

# Largest page a single list call may return.
MAX_PAGE_SIZE_LIMIT = 1000


class ServerConfig(BaseModel):
    """Server binding and runtime configuration."""

    host: str = "0.0.0.0"
    port: int = 8080
    log_level: str = "INFO"
    log_format: str = "text"
    shutdown_timeout: int = 30


class StorageConfig(BaseModel):
    """Object store connection configuration."""

    backend: str = "aws"
    region: str = ""
    endpoint: str = ""
    profile: str = ""
    access_key_id: str = ""
    secret_access_key: str = ""
    force_path_style: bool = False
    use_accelerate: bool = False

    @field_validator("backend")
    @classmethod
    def _check_backend(cls, value: str) -> str:
        if value not in ("aws", "memory"):
            raise ValueError(f"unknown storage backend '{value}'")
        return value


class ProxyConfig(BaseModel):
    """How request paths map onto the bucket, and what is allowed.

    Frozen: one instance is shared read-only by every request.
    """

    model_config = ConfigDict(frozen=True)

    root: str = ""
    bucket: str
    index_names: tuple[str, ...] = tuple(DEFAULT_INDEX_NAMES)
    hide: tuple[str, ...] = ()
    enable_put: bool = False
    enable_delete: bool = False
    enable_browse: bool = False
    browse_template: str = ""
    error_pages: dict[int, str] = Field(default_factory=dict)
    default_error_page: str = ""
    hide_uses_error_pages: bool = False
    max_page_size: int | None = None
    pass_through_upstream: str = ""

    @field_validator("bucket")
    @classmethod
    def _check_bucket(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError("bucket must be set and not empty")
        return value

    @field_validator("error_pages", mode="before")
    @classmethod
    def _check_error_pages(cls, value: Any) -> dict[int, str]:
        if value is None:
            return {}
        pages: dict[int, str] = {}
        for status, key in dict(value).items():
            try:
                code = int(status)
            except (TypeError, ValueError):
                raise ValueError(f"'{status}' is not a valid HTTP status code") from None
            if not 100 <= code <= 599:
                raise ValueError(f"'{status}' is not a valid HTTP status code")
            pages[code] = str(key)
        return pages

    @field_validator("max_page_size")
    @classmethod
    def _check_max_page_size(cls, value: int | None) -> int | None:
        if value is not None and not 0 < value <= MAX_PAGE_SIZE_LIMIT:
            raise ValueError(f"max_page_size must be in (0, {MAX_PAGE_SIZE_LIMIT}]")
        return value


class ObservabilityConfig(BaseModel):
    """Metrics configuration."""

    metrics: bool = True
    metrics_path: str = "/metrics"


class S3ProxyConfig(BaseModel):
    """Top-level s3proxy configuration."""

    server: ServerConfig = Field(default_factory=ServerConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    proxy: ProxyConfig
    observability: ObservabilityConfig = Field(default_factory=ObservabilityConfig)


def _parse_server(data: dict[str, Any] | None) -> dict[str, Any]:
    """Parse the server section from YAML data into a dict for Pydantic."""
    if data is None:
        return {}
    return {
        "host": data.get("host", "0.0.0.0"),
        "port": data.get("port", 8080),
        "log_level": data.get("log_level", "INFO"),
        "log_format": data.get("log_format", "text"),
        "shutdown_timeout": data.get("shutdown_timeout", 30),
    }


def _parse_storage(data: dict[str, Any] | None) -> dict[str, Any]:
    """Parse the storage section from YAML data.

    ``credentials`` may be nested: storage.credentials.access_key_id, etc.
    """
    if data is None:
        return {}
    result: dict[str, Any] = {
        key: data[key]
        for key in (
            "backend",
            "region",
            "endpoint",
            "profile",
            "force_path_style",
            "use_accelerate",
        )
        if key in data
    }
    credentials = data.get("credentials")
    if isinstance(credentials, dict):
        result["access_key_id"] = credentials.get("access_key_id", "")
        result["secret_access_key"] = credentials.get("secret_access_key", "")
    return result


def _parse_proxy(data: dict[str, Any] | None) -> dict[str, Any]:
    """Parse the proxy section from YAML data.

    ``index`` and ``hide`` accept a single string or a list; ``errors`` is a
    mapping of HTTP status to key where the ``default`` entry becomes the
    default error page.
    """
    if data is None:
        return {}
    result = dict(data)

    for name in ("index_names", "hide"):
        value = result.get(name)
        if isinstance(value, str):
            result[name] = [value]

    errors = result.pop("errors", None)
    if isinstance(errors, dict):
        errors = dict(errors)
        if "default" in errors:
            result.setdefault("default_error_page", errors.pop("default"))
        result["error_pages"] = {**errors, **result.get("error_pages", {})}
    return result


def load_config(path: Path) -> S3ProxyConfig:
    """Load an S3ProxyConfig from a YAML file.

    Args:
        path: Path to the YAML configuration file.

    Returns:
        A fully populated S3ProxyConfig validated by Pydantic.

    Raises:
        FileNotFoundError: If the config file does not exist.
        yaml.YAMLError: If the file is not valid YAML.
        pydantic.ValidationError: If a value is invalid (e.g. missing bucket).
    """
    with open(path, "r") as fh:
        raw: dict[str, Any] = yaml.safe_load(fh) or {}

    return S3ProxyConfig(
        server=ServerConfig(**_parse_server(raw.get("server"))),
        storage=StorageConfig(**_parse_storage(raw.get("storage"))),
        proxy=ProxyConfig(**_parse_proxy(raw.get("proxy"))),
        observability=ObservabilityConfig(**(raw.get("observability") or {})),
    )
