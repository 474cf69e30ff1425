"""
Settings and configuration for chartpush.

Centralizes configuration values and provides validation with fail-fast behavior.
Loads settings from environment variables when a push is set up.
"""
from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional
from urllib.parse import urlparse

__all__ = ["Settings", "create_settings_from_env"]


@dataclass(frozen=True)
class Settings:
    """
    Configuration settings for pushing charts.

    Registry Settings:
        registry_url: Repository URL including namespace, e.g. https://ghcr.io/myorg (required)
        registry_user: Username for registry authentication
        registry_pass: Password or access token for registry authentication
        registry_insecure: Skip TLS certificate verification
        docker_config: Docker config.json consulted when no username is set

    HTTP Settings:
        http_timeout_s: HTTP request timeout in seconds
        http_retry: Number of retries for failed connection attempts (0=no retry)
        parallel_uploads: Upload config and chart blobs concurrently
    """
    registry_url: str
    registry_user: Optional[str] = None
    registry_pass: Optional[str] = field(default=None, repr=False)
    registry_insecure: bool = False
    docker_config: Optional[Path] = None
    http_timeout_s: float = 30.0
    http_retry: int = 0
    parallel_uploads: bool = False

    def __post_init__(self):
        """Validate settings on construction."""
        if not self.registry_url:
            raise ValueError("registry_url is required")

        parsed = urlparse(self.registry_url)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ValueError(
                f"Invalid registry_url format: {self.registry_url}. "
                "Expected http(s)://host[:port][/namespace]"
            )

        if self.registry_pass and not self.registry_user:
            raise ValueError("registry_pass specified but registry_user is missing")

        if self.http_timeout_s <= 0:
            raise ValueError(f"http_timeout_s must be positive, got {self.http_timeout_s}")

        if self.http_retry < 0:
            raise ValueError(f"http_retry must be non-negative, got {self.http_retry}")


def create_settings_from_env(**overrides) -> Settings:
    """
    Load settings from environment variables.

    Environment Variables:
        - CHARTPUSH_REGISTRY_URL (required)
        - CHARTPUSH_REGISTRY_USERNAME (optional)
        - CHARTPUSH_REGISTRY_PASSWORD (optional)
        - CHARTPUSH_REGISTRY_INSECURE (default: false)
        - CHARTPUSH_HTTP_TIMEOUT (default: 30.0)
        - CHARTPUSH_HTTP_RETRY (default: 0)
        - CHARTPUSH_PARALLEL_UPLOADS (default: false)
        - CHARTPUSH_DOCKER_CONFIG (default: ~/.docker/config.json)

    Args:
        **overrides: Field values that take precedence over the environment;
            None values are ignored

    Returns:
        Settings object with validated configuration

    Raises:
        ValueError: If configuration is invalid or required values missing

    Note:
        Creates a fresh Settings instance every time (no caching).
    """
    values = _read_env()
    values.update({key: value for key, value in overrides.items() if value is not None})

    if not values.get("registry_url"):
        raise ValueError("CHARTPUSH_REGISTRY_URL environment variable is required")

    return Settings(**values)


def _read_env() -> dict:
    """Collect settings fields present in the environment."""
    def str_to_bool(value: str) -> bool:
        return value.lower() in ('true', '1', 'yes', 'on')

    def get_float(key: str, default: float) -> float:
        value = os.getenv(key)
        try:
            return float(value) if value else default
        except ValueError:
            raise ValueError(f"{key} must be a number, got {value!r}") from None

    def get_int(key: str, default: int) -> int:
        value = os.getenv(key)
        try:
            return int(value) if value else default
        except ValueError:
            raise ValueError(f"{key} must be an integer, got {value!r}") from None

    docker_config = os.getenv("CHARTPUSH_DOCKER_CONFIG")

    return {
        "registry_url": os.getenv("CHARTPUSH_REGISTRY_URL"),
        "registry_user": os.getenv("CHARTPUSH_REGISTRY_USERNAME"),
        "registry_pass": os.getenv("CHARTPUSH_REGISTRY_PASSWORD"),
        "registry_insecure": str_to_bool(os.getenv("CHARTPUSH_REGISTRY_INSECURE", "false")),
        "docker_config": Path(docker_config) if docker_config else None,
        "http_timeout_s": get_float("CHARTPUSH_HTTP_TIMEOUT", 30.0),
        "http_retry": get_int("CHARTPUSH_HTTP_RETRY", 0),
        "parallel_uploads": str_to_bool(os.getenv("CHARTPUSH_PARALLEL_UPLOADS", "false")),
    }
