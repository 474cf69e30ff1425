"""
Operations Facade - Application service layer.

Provides a clean interface between CLI and the publisher, centralizing
command orchestration, configuration, and policy decisions while keeping
CLI commands thin and testable.
"""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

from ..chart import read_chart_metadata
from ..models import BytesBlob, ChartArtifact, ChartMetadata, FileBlob, PushPlan, PushResult
from ..publisher import ChartUploader
from ..registry.client import RegistryClient


@dataclass(frozen=True)
class OpsConfig:
    """
    Configuration for Operations facade.

    Centralizes policy decisions so they are not scattered across commands.
    """
    parallel: bool = False        # Upload both blobs concurrently
    verbose: bool = False         # Show detailed output


@dataclass(frozen=True)
class InspectResult:
    """Local view of a packaged chart: metadata and both blobs."""
    metadata: ChartMetadata
    artifact: ChartArtifact
    chart_blob: FileBlob
    config_blob: BytesBlob


class Operations:
    """
    Application service facade for CLI operations.

    One method per CLI verb. The registry client is injected (fakes in
    tests) or created from settings on first use, so inspect never needs
    registry configuration. Exceptions bubble up for central mapping.

    close() releases the HTTP executor of a client created here; an injected
    client belongs to the caller.
    """

    def __init__(self, config: OpsConfig, client: Optional[RegistryClient] = None,
                 settings=None):
        """
        Initialize Operations facade.

        Args:
            config: Configuration settings
            client: Registry client (if None, created from settings on first push)
            settings: Optional settings (if None, loaded from environment on first push)
        """
        self.cfg = config
        self.settings = settings
        self._client = client
        self._context = None

    @property
    def client(self) -> RegistryClient:
        if self._client is None:
            from ..cli_context import CLIContext
            if self.settings is None:
                from ..settings import create_settings_from_env
                self.settings = create_settings_from_env()
            self._context = CLIContext(settings=self.settings)
            self._client = self._context.client
        return self._client

    def close(self) -> None:
        if self._context is not None:
            self._context.close()
            self._context = None
            self._client = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def load_metadata(self, chart_file: Union[str, Path], *, name: Optional[str] = None,
                      version: Optional[str] = None) -> ChartMetadata:
        """
        Read Chart.yaml from the tarball, applying name/version overrides.

        Raises:
            FileNotFoundError: If chart_file does not exist
            ValueError: If Chart.yaml is missing or invalid
        """
        metadata = read_chart_metadata(chart_file)
        updates = {}
        if name is not None:
            updates["name"] = name
        if version is not None:
            updates["version"] = version
        if updates:
            metadata = ChartMetadata.model_validate({**metadata.model_dump(), **updates})
        return metadata

    def push(self, chart_file: Union[str, Path], *, name: Optional[str] = None,
             version: Optional[str] = None,
             dry_run: bool = False) -> Union[PushResult, PushPlan]:
        """
        Push a packaged chart, or plan the push when dry_run is set.

        Args:
            chart_file: Packaged chart tarball
            name: Chart name override
            version: Chart version override
            dry_run: Compute digests and manifest without network calls

        Returns:
            PushPlan for dry runs, PushResult otherwise
        """
        metadata = self.load_metadata(chart_file, name=name, version=version)
        uploader = ChartUploader(self.client, parallel=self.cfg.parallel)
        if dry_run:
            return uploader.plan(chart_file, metadata)
        return uploader.push(chart_file, metadata)

    def inspect(self, chart_file: Union[str, Path]) -> InspectResult:
        """
        Describe what a push of chart_file would upload, offline.

        Args:
            chart_file: Packaged chart tarball

        Returns:
            Metadata, config payload and both blob digests/sizes
        """
        metadata = self.load_metadata(chart_file)
        artifact = ChartArtifact.from_metadata(metadata)
        return InspectResult(
            metadata=metadata,
            artifact=artifact,
            chart_blob=FileBlob.from_path(chart_file),
            config_blob=BytesBlob.from_bytes(artifact.to_json_bytes()),
        )
