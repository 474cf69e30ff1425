"""
Data models for pushing Helm charts to OCI registries.

The Pydantic models describe the JSON documents that go over the wire
(chart config blob and OCI manifest). The frozen dataclasses describe the
push inputs and results, plus the content-addressed blobs being uploaded.
"""
from __future__ import annotations

import json
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterator, List, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .digest import format_digest, sha256_bytes, sha256_file
from .registry.media_types import HELM_CHART_CONTENT, HELM_CONFIG

_UPLOAD_CHUNK_SIZE = 64 * 1024


def _compact_json(data: dict) -> bytes:
    """Serialize to compact UTF-8 JSON, preserving key order."""
    return json.dumps(data, separators=(',', ':'), ensure_ascii=False).encode('utf-8')


@dataclass(frozen=True)
class RepositoryTarget:
    """
    Registry root and credentials for one push.

    url is the repository URL including the namespace path,
    e.g. "https://ghcr.io/myorg".
    """
    url: str
    username: Optional[str] = None
    password: Optional[str] = field(default=None, repr=False)

    @classmethod
    def from_settings(cls, settings, docker_auth=None) -> RepositoryTarget:
        """
        Build a target from settings, falling back to Docker config credentials.

        Args:
            settings: Settings with registry_url/registry_user/registry_pass
            docker_auth: Optional DockerAuth used when no username is configured
        """
        username = settings.registry_user
        password = settings.registry_pass

        if not username and docker_auth is not None:
            from urllib.parse import urlparse
            host = urlparse(settings.registry_url).netloc
            creds = docker_auth.get_credentials(host)
            if creds:
                username, password = creds

        return cls(url=settings.registry_url, username=username, password=password)


class Maintainer(BaseModel):
    """Chart maintainer entry as found in Chart.yaml."""
    name: Optional[str] = Field(default=None, description="Maintainer name")
    email: Optional[str] = Field(default=None, description="Maintainer email")
    url: Optional[str] = Field(default=None, description="Maintainer URL")


class ChartMetadata(BaseModel):
    """
    Caller-supplied chart metadata.

    Usually parsed from the chart's Chart.yaml; keys we don't push are ignored.
    """
    model_config = ConfigDict(extra="ignore")

    name: str = Field(..., min_length=1, description="Chart name")
    version: str = Field(..., min_length=1, description="Chart version")
    description: Optional[str] = Field(default=None, description="Chart description")
    home: Optional[str] = Field(default=None, description="Project home page")
    sources: List[str] = Field(default_factory=list, description="Source code URLs")
    maintainers: List[Maintainer] = Field(default_factory=list, description="Chart maintainers")

    @field_validator("version", mode="before")
    @classmethod
    def coerce_version(cls, v):
        """YAML reads `version: 1.0` as a float; keep it textual."""
        if isinstance(v, (int, float)):
            return str(v)
        return v


class ChartArtifact(BaseModel):
    """
    Chart config blob payload.

    Field order is the serialized order. Empty values are left out of the
    JSON so identical metadata always yields an identical config digest.
    """
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    api_version: str = Field(default="v1", alias="apiVersion")
    name: str
    home: Optional[str] = None
    sources: Optional[List[str]] = None
    version: str
    description: Optional[str] = None
    maintainers: Optional[List[Maintainer]] = None

    @field_validator("sources", "maintainers", mode="before")
    @classmethod
    def empty_to_none(cls, v):
        return v or None

    @classmethod
    def from_metadata(cls, metadata: ChartMetadata) -> ChartArtifact:
        """Build the config payload from caller-supplied chart fields."""
        return cls(
            api_version="v1",
            name=metadata.name,
            home=metadata.home,
            sources=metadata.sources,
            version=metadata.version,
            description=metadata.description,
            maintainers=metadata.maintainers,
        )

    def to_json_bytes(self) -> bytes:
        """Serialize to the exact bytes uploaded as the config blob."""
        return _compact_json(self.model_dump(by_alias=True, exclude_none=True))


class Descriptor(BaseModel):
    """OCI content descriptor."""
    model_config = ConfigDict(populate_by_name=True)

    media_type: str = Field(..., alias="mediaType")
    digest: str = Field(..., description="Content digest (sha256:...)")
    size: int = Field(..., ge=0, description="Content size in bytes")


class OCIManifest(BaseModel):
    """OCI image manifest referencing a chart's config and content blobs."""
    model_config = ConfigDict(populate_by_name=True)

    schema_version: int = Field(default=2, alias="schemaVersion")
    config: Descriptor
    layers: List[Descriptor]

    @classmethod
    def for_chart(cls, config_digest: str, chart_digest: str,
                  config_size: int, chart_size: int) -> OCIManifest:
        """
        Build the manifest for a Helm chart artifact.

        Args:
            config_digest: Config blob digest (sha256:...)
            chart_digest: Chart tarball blob digest (sha256:...)
            config_size: Config blob size in bytes
            chart_size: Chart tarball size in bytes
        """
        return cls(
            schema_version=2,
            config=Descriptor(media_type=HELM_CONFIG, digest=config_digest, size=config_size),
            layers=[Descriptor(media_type=HELM_CHART_CONTENT, digest=chart_digest, size=chart_size)],
        )

    def to_json_bytes(self) -> bytes:
        return _compact_json(self.model_dump(by_alias=True))


@dataclass(frozen=True)
class FileBlob:
    """
    Blob backed by a file on disk.

    Digest and size are computed once, before any upload, and never change.
    """
    path: Path
    hex_digest: str
    size: int

    @classmethod
    def from_path(cls, path: Union[str, Path]) -> FileBlob:
        path = Path(path)
        if not path.is_file():
            raise FileNotFoundError(f"Blob file not found: {path}")
        return cls(path=path, hex_digest=sha256_file(path), size=path.stat().st_size)

    @property
    def digest(self) -> str:
        return format_digest(self.hex_digest)

    @contextmanager
    def open_body(self) -> Iterator[Iterator[bytes]]:
        """
        Open the file as a chunked request body.

        The file is closed when the block exits, including when the request
        fails before the body was fully read.
        """
        with open(self.path, "rb") as f:
            yield iter(lambda: f.read(_UPLOAD_CHUNK_SIZE), b"")


@dataclass(frozen=True)
class BytesBlob:
    """Blob held in memory."""
    content: bytes = field(repr=False)
    hex_digest: str
    size: int

    @classmethod
    def from_bytes(cls, content: bytes) -> BytesBlob:
        return cls(content=content, hex_digest=sha256_bytes(content), size=len(content))

    @property
    def digest(self) -> str:
        return format_digest(self.hex_digest)

    @contextmanager
    def open_body(self) -> Iterator[bytes]:
        yield self.content


# A blob is either a file on disk or bytes in memory
BlobSource = Union[FileBlob, BytesBlob]


@dataclass
class AuthSession:
    """
    Bearer token state for one registry client.

    Starts empty and is filled at most once by a successful token exchange.
    """
    bearer_token: Optional[str] = field(default=None, repr=False)

    @property
    def authenticated(self) -> bool:
        return bool(self.bearer_token and self.bearer_token.strip())

    def authorization_headers(self) -> dict:
        """Authorization header for registry requests, or {} without a token."""
        if not self.authenticated:
            return {}
        return {"Authorization": f"Bearer {self.bearer_token}"}


@dataclass(frozen=True)
class PushResult:
    """Outcome of pushing one chart."""
    reference: str
    manifest_digest: str
    config_digest: str
    chart_digest: str
    uploaded: Tuple[str, ...] = ()
    skipped: Tuple[str, ...] = ()


@dataclass(frozen=True)
class PushPlan:
    """Everything a push would send, computed locally (dry run)."""
    reference: str
    artifact: ChartArtifact
    chart_blob: FileBlob
    config_blob: BytesBlob
    manifest: OCIManifest

    @property
    def manifest_bytes(self) -> bytes:
        return self.manifest.to_json_bytes()


__all__ = [
    "RepositoryTarget",
    "Maintainer",
    "ChartMetadata",
    "ChartArtifact",
    "Descriptor",
    "OCIManifest",
    "FileBlob",
    "BytesBlob",
    "BlobSource",
    "AuthSession",
    "PushResult",
    "PushPlan",
]
