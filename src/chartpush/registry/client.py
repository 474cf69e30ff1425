"""
Registry client for pushing OCI artifacts.

Drives the monolithic-upload subset of the Distribution Spec: existence
checks, upload sessions, blob PUTs and manifest PUTs. URLs come from
RegistryEndpoint and credentials from RegistryAuthenticator.
"""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, Optional, Union

from ..models import AuthSession, BlobSource, FileBlob, OCIManifest, RepositoryTarget
from .auth import STEP_AUTHENTICATION, RegistryAuthenticator
from .endpoint import RegistryEndpoint, append_query_param
from .errors import AuthenticationDenied, ContentRejected, ProtocolViolation, at_step
from .http import HttpExecutor, HttpResponse
from .media_types import (
    DOCKER_CONTENT_DIGEST,
    LOCATION,
    OCI_IMAGE_MANIFEST,
    OCTET_STREAM,
    USER_AGENT,
)

logger = logging.getLogger(__name__)

STEP_EXISTENCE_CHECK = "existence check"
STEP_UPLOAD_INIT = "upload initiation"
STEP_BLOB_UPLOAD = "blob upload"
STEP_MANIFEST_UPLOAD = "manifest upload"


def _hex(digest: str) -> str:
    """Accept "sha256:<hex>" or bare hex, return bare hex."""
    return digest[len("sha256:"):] if digest.startswith("sha256:") else digest


class RegistryClient:
    """
    Protocol driver for pushing to one repository URL.

    Each client owns one AuthSession. Reusing a client for several charts on
    the same registry reuses its token; nothing refreshes an expired token.

    Every RegistryError raised here, TransportError included, carries the
    step that failed.
    """

    def __init__(self, target: RepositoryTarget, executor: HttpExecutor,
                 authenticator: Optional[RegistryAuthenticator] = None,
                 session: Optional[AuthSession] = None):
        """
        Initialize registry client.

        Args:
            target: Repository URL and credentials
            executor: HTTP executor for all requests
            authenticator: Authenticator override (built from target if None)
            session: Session to share with the default authenticator
        """
        self.target = target
        self.executor = executor
        self.endpoint = RegistryEndpoint(target.url)
        self.authenticator = authenticator or RegistryAuthenticator(target, executor, session)
        self.session = self.authenticator.session

    @property
    def base_url(self) -> str:
        return self.endpoint.base_url

    def reference(self, artifact_name: str, version: str) -> str:
        return self.endpoint.reference(artifact_name, version)

    def verify_authorized_to_push(self, artifact_name: str,
                                  content: Union[FileBlob, str, Path]) -> None:
        """
        Authenticate against the registry before any bytes are sent.

        Args:
            artifact_name: Chart name
            content: Chart tarball (path or already-digested FileBlob)

        Raises:
            AuthenticationDenied: If no push access was obtained
            ProtocolViolation: If the registry sent a 401 without a challenge
        """
        blob = content if isinstance(content, FileBlob) else FileBlob.from_path(content)
        url = self.endpoint.blob_url(artifact_name, blob.hex_digest)
        with at_step(STEP_AUTHENTICATION):
            authorized = self.authenticator.authenticate(url)
        if not authorized:
            raise AuthenticationDenied(
                f"Failure in authentication against registry {self.base_url}",
                step=STEP_AUTHENTICATION,
            )

    def is_blob_present(self, artifact_name: str, digest: str) -> bool:
        """
        Check whether the repository already holds a blob.

        Returns:
            True on 200, False on 404

        Raises:
            ProtocolViolation: For any other status; an outage is not "absent"
        """
        url = self.endpoint.blob_url(artifact_name, _hex(digest))
        with at_step(STEP_EXISTENCE_CHECK):
            response = self.executor.request("HEAD", url, self._standard_headers())

        if response.status_code == 200:
            return True
        if response.status_code == 404:
            return False
        raise ProtocolViolation(
            f"Unexpected status {response.status_code} during {STEP_EXISTENCE_CHECK} of {url}",
            step=STEP_EXISTENCE_CHECK,
            status_code=response.status_code,
        )

    def initiate_upload(self, artifact_name: str) -> str:
        """
        Open a monolithic upload session.

        Returns:
            Absolute upload session URL from the Location header

        Raises:
            ProtocolViolation: If the status isn't 202 or Location is missing
        """
        url = self.endpoint.blob_upload_init_url(artifact_name)
        with at_step(STEP_UPLOAD_INIT):
            response = self.executor.request("POST", url, self._standard_headers())

        if response.status_code != 202:
            raise ProtocolViolation(
                f"Failure in initiating upload request: received {response.status_code} "
                f"[{response.text}]",
                step=STEP_UPLOAD_INIT,
                status_code=response.status_code,
            )

        location = response.header(LOCATION)
        if not location or not location.strip():
            raise ProtocolViolation(
                f"No {LOCATION} header found in upload initiation response",
                step=STEP_UPLOAD_INIT,
                status_code=response.status_code,
            )

        # Some registries (e.g. GitHub Container Registry) return only a path
        return self.endpoint.resolve_location(location.strip())

    def upload_blob(self, upload_url: str, digest: str, content: BlobSource) -> str:
        """
        PUT a whole blob into an upload session.

        Args:
            upload_url: Session URL from initiate_upload()
            digest: Blob digest, bare hex or sha256:<hex>
            content: Blob to send

        Returns:
            Docker-Content-Digest reported by the registry

        Raises:
            ContentRejected: On HTTP 400
            ProtocolViolation: On other failures or a missing digest header
        """
        url = append_query_param(upload_url, "digest", f"sha256:{_hex(digest)}")
        headers = self._standard_headers()
        headers["Content-Type"] = OCTET_STREAM
        headers["Content-Length"] = str(content.size)

        with content.open_body() as body, at_step(STEP_BLOB_UPLOAD):
            response = self.executor.request("PUT", url, headers, body)
        if not response.is_success:
            self._handle_failure(response, STEP_BLOB_UPLOAD)
        return self._docker_content_digest(response, STEP_BLOB_UPLOAD)

    def upload_manifest(self, artifact_name: str, version: str, config_digest: str,
                        layer_digest: str, config_size: int, layer_size: int) -> str:
        """
        PUT the chart manifest under its version tag.

        Returns:
            Docker-Content-Digest of the stored manifest

        Raises:
            ContentRejected: On HTTP 400
            ProtocolViolation: On other failures or a missing digest header
        """
        url = self.endpoint.manifest_url(artifact_name, version)
        manifest = OCIManifest.for_chart(config_digest, layer_digest, config_size, layer_size)
        payload = manifest.to_json_bytes()

        headers = self._standard_headers()
        headers["Content-Type"] = OCI_IMAGE_MANIFEST
        headers["Content-Length"] = str(len(payload))

        with at_step(STEP_MANIFEST_UPLOAD):
            response = self.executor.request("PUT", url, headers, payload)
        if not response.is_success:
            self._handle_failure(response, STEP_MANIFEST_UPLOAD)
        return self._docker_content_digest(response, STEP_MANIFEST_UPLOAD)

    def _standard_headers(self) -> Dict[str, str]:
        headers = {"User-Agent": USER_AGENT}
        headers.update(self.session.authorization_headers())
        return headers

    def _handle_failure(self, response: HttpResponse, step: str) -> None:
        if response.status_code == 400:
            raise ContentRejected(response.text, step=step)
        raise ProtocolViolation(
            f"Received {response.status_code} during {step} [{response.text}]",
            step=step,
            status_code=response.status_code,
        )

    def _docker_content_digest(self, response: HttpResponse, step: str) -> str:
        digest = response.header(DOCKER_CONTENT_DIGEST)
        if not digest or not digest.strip():
            raise ProtocolViolation(
                f"No {DOCKER_CONTENT_DIGEST} header found in {step} response",
                step=step,
                status_code=response.status_code,
            )
        return digest.strip()


__all__ = ["RegistryClient"]
