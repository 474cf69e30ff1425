"""
Chart publishing.

Main entry point for pushing a packaged Helm chart to an OCI registry.
Orchestrates authentication, blob deduplication, blob uploads and the
manifest upload.
"""
from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import List, Optional, Tuple, Union

from .models import (
    BlobSource,
    BytesBlob,
    ChartArtifact,
    ChartMetadata,
    FileBlob,
    OCIManifest,
    PushPlan,
    PushResult,
    RepositoryTarget,
)
from .registry.client import RegistryClient
from .registry.http import HttpExecutor
from .settings import Settings, create_settings_from_env

logger = logging.getLogger(__name__)


class ChartUploader:
    """
    Pushes one chart at a time through a RegistryClient.

    A push never rolls back. Blobs uploaded before a failure stay on the
    registry; they are content-addressed, so re-running the push finds them
    and only repeats the remaining steps.
    """

    def __init__(self, client: RegistryClient, *, parallel: bool = False):
        """
        Initialize uploader.

        Args:
            client: Registry client for the target repository
            parallel: Upload the config and chart blobs concurrently
        """
        self.client = client
        self.parallel = parallel

    def plan(self, chart_file: Union[str, Path], metadata: ChartMetadata) -> PushPlan:
        """
        Compute everything a push would send, without touching the network.

        Args:
            chart_file: Packaged chart tarball
            metadata: Chart metadata

        Returns:
            Push plan with both blobs and the manifest
        """
        artifact = ChartArtifact.from_metadata(metadata)
        chart_blob = FileBlob.from_path(chart_file)
        config_blob = BytesBlob.from_bytes(artifact.to_json_bytes())
        manifest = OCIManifest.for_chart(
            config_blob.digest, chart_blob.digest, config_blob.size, chart_blob.size
        )
        return PushPlan(
            reference=self.client.reference(artifact.name, artifact.version),
            artifact=artifact,
            chart_blob=chart_blob,
            config_blob=config_blob,
            manifest=manifest,
        )

    def push(self, chart_file: Union[str, Path], metadata: ChartMetadata) -> PushResult:
        """
        Push a packaged chart.

        Steps:
        1. Build the config payload from the chart metadata
        2. Authenticate using the chart tarball's blob URL
        3. Digest both blobs
        4. Upload each blob unless the registry already has it
        5. Upload the manifest referencing both blobs

        Args:
            chart_file: Packaged chart tarball
            metadata: Chart metadata

        Returns:
            Push result with the manifest digest

        Raises:
            FileNotFoundError: If chart_file does not exist
            RegistryError: If any step fails
        """
        artifact = ChartArtifact.from_metadata(metadata)
        chart_blob = FileBlob.from_path(chart_file)

        self.client.verify_authorized_to_push(artifact.name, chart_blob)

        config_blob = BytesBlob.from_bytes(artifact.to_json_bytes())
        blobs: List[BlobSource] = [chart_blob, config_blob]

        if self.parallel:
            with ThreadPoolExecutor(max_workers=len(blobs), thread_name_prefix="chartpush-upload") as pool:
                futures = [pool.submit(self._ensure_blob, artifact.name, blob) for blob in blobs]
                results = [future.result() for future in futures]
        else:
            results = [self._ensure_blob(artifact.name, blob) for blob in blobs]

        (chart_digest, chart_uploaded), (config_digest, config_uploaded) = results

        manifest_digest = self.client.upload_manifest(
            artifact.name,
            artifact.version,
            config_digest,
            chart_digest,
            config_blob.size,
            chart_blob.size,
        )

        reference = self.client.reference(artifact.name, artifact.version)
        logger.info(f"Pushed: {reference}")
        logger.info(f"Digest: {manifest_digest}")

        outcomes = [(chart_blob.digest, chart_uploaded), (config_blob.digest, config_uploaded)]

        return PushResult(
            reference=reference,
            manifest_digest=manifest_digest,
            config_digest=config_digest,
            chart_digest=chart_digest,
            uploaded=tuple(digest for digest, done in outcomes if done),
            skipped=tuple(digest for digest, done in outcomes if not done),
        )

    def _ensure_blob(self, artifact_name: str, blob: BlobSource) -> Tuple[str, bool]:
        """
        Upload a blob unless the registry already holds it.

        Returns:
            (digest to reference in the manifest, whether it was uploaded)
        """
        if self.client.is_blob_present(artifact_name, blob.hex_digest):
            logger.info(f"Skipping push, blob already exists on target registry: {blob.hex_digest}")
            return blob.digest, False

        upload_url = self.client.initiate_upload(artifact_name)
        digest = self.client.upload_blob(upload_url, blob.hex_digest, blob)
        if digest != blob.digest:
            logger.warning(f"Registry reported digest {digest} for blob {blob.digest}")
        logger.debug(f"Uploaded blob {digest} ({blob.size} bytes)")
        return digest, True


def push_chart(chart_file: Union[str, Path], metadata: Optional[ChartMetadata] = None, *,
               settings: Optional[Settings] = None,
               executor: Optional[HttpExecutor] = None,
               target: Optional[RepositoryTarget] = None) -> PushResult:
    """
    Push a packaged chart using settings from the environment.

    Args:
        chart_file: Packaged chart tarball
        metadata: Chart metadata (read from the tarball's Chart.yaml if None)
        settings: Settings (loaded from env if None)
        executor: HTTP executor (httpx-based if None)
        target: Repository target (built from settings if None)

    Returns:
        Push result with the manifest digest
    """
    if settings is None:
        settings = create_settings_from_env()

    if metadata is None:
        from .chart import read_chart_metadata
        metadata = read_chart_metadata(chart_file)

    if target is None:
        from .registry.auth import DockerAuth
        target = RepositoryTarget.from_settings(settings, DockerAuth(settings.docker_config))

    owns_executor = executor is None
    if executor is None:
        from .registry.http import HttpxExecutor
        executor = HttpxExecutor(
            timeout_s=settings.http_timeout_s,
            insecure=settings.registry_insecure,
            retries=settings.http_retry,
        )

    try:
        client = RegistryClient(target, executor)
        return ChartUploader(client, parallel=settings.parallel_uploads).push(chart_file, metadata)
    finally:
        if owns_executor:
            executor.close()


__all__ = ["ChartUploader", "push_chart"]
