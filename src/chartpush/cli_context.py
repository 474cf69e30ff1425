"""
CLI Context for managing application dependencies.

Provides a clean way to manage CLI-level dependencies like settings, the HTTP
executor and the registry client, avoiding global state and enabling proper
dependency injection.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from .models import RepositoryTarget
from .registry.auth import DockerAuth
from .registry.client import RegistryClient
from .registry.http import HttpExecutor, HttpxExecutor
from .settings import Settings, create_settings_from_env


@dataclass
class CLIContext:
    """
    Shared context for CLI commands.

    Manages application-level dependencies (settings, executor, client) that
    are initialized once and shared across a CLI command execution.
    """
    settings: Settings
    _executor: Optional[HttpExecutor] = None
    _client: Optional[RegistryClient] = None

    @classmethod
    def from_env(cls, **overrides) -> CLIContext:
        """
        Create CLI context from environment variables.

        Args:
            **overrides: Settings fields given on the command line

        Returns:
            CLIContext with settings loaded from environment
        """
        settings = create_settings_from_env(**overrides)
        return cls(settings=settings)

    @property
    def executor(self) -> HttpExecutor:
        """Get or create the HTTP executor (lazy initialization)."""
        if self._executor is None:
            self._executor = HttpxExecutor(
                timeout_s=self.settings.http_timeout_s,
                insecure=self.settings.registry_insecure,
                retries=self.settings.http_retry,
            )
        return self._executor

    @property
    def client(self) -> RegistryClient:
        """
        Get or create the registry client (lazy initialization).

        Credentials missing from settings are looked up in the Docker config.

        Returns:
            RegistryClient for the configured repository URL
        """
        if self._client is None:
            target = RepositoryTarget.from_settings(self.settings, DockerAuth(self.settings.docker_config))
            self._client = RegistryClient(target, self.executor)
        return self._client

    def close(self) -> None:
        """Release the HTTP executor if one was created."""
        if self._executor is not None and hasattr(self._executor, "close"):
            self._executor.close()
