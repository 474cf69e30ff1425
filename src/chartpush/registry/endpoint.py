"""
Distribution Spec v2 URL construction.

Maps a repository URL such as "https://ghcr.io/myorg" plus a chart name,
version and digest onto the registry API paths used by a push.
"""
from __future__ import annotations

from urllib.parse import quote, urlparse

__all__ = ["RegistryEndpoint", "append_query_param"]


def append_query_param(url: str, key: str, value: str) -> str:
    """
    Append a query parameter, respecting any query the URL already has.

    Upload session URLs returned in Location headers usually carry state
    parameters, so the digest must be joined with "&" in that case.
    """
    separator = "&" if "?" in url else "?"
    return f"{url}{separator}{key}={quote(value, safe=':,/')}"


class RegistryEndpoint:
    """
    URL builder for one repository URL.

    The scheme and host form the base URL; the path of the repository URL
    is the namespace that prefixes every chart repository.
    """

    def __init__(self, repository_url: str):
        parsed = urlparse(repository_url)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ValueError(
                f"Invalid repository URL: {repository_url!r}. Expected http(s)://host[:port]/namespace"
            )
        self.repository_url = repository_url
        self.base_url = f"{parsed.scheme}://{parsed.netloc}"
        self.namespace = parsed.path.strip("/")

    def _repo_path(self, name: str) -> str:
        if not name:
            raise ValueError("Chart name cannot be empty")
        if self.namespace:
            return f"{self.namespace}/{name}"
        return name

    def blob_url(self, name: str, hex_digest: str) -> str:
        """URL for HEAD/GET of a blob: /v2/<ns>/<name>/blobs/sha256:<hex>."""
        return f"{self.base_url}/v2/{self._repo_path(name)}/blobs/sha256:{hex_digest}"

    def blob_upload_init_url(self, name: str) -> str:
        """URL that opens an upload session: /v2/<ns>/<name>/blobs/uploads/."""
        return f"{self.base_url}/v2/{self._repo_path(name)}/blobs/uploads/"

    def manifest_url(self, name: str, version: str) -> str:
        """URL for the tagged manifest: /v2/<ns>/<name>/manifests/<version>."""
        return f"{self.base_url}/v2/{self._repo_path(name)}/manifests/{version}"

    def reference(self, name: str, version: str) -> str:
        """Human-readable pushed reference: <base>/<ns>/<name>:<version>."""
        return f"{self.base_url}/{self._repo_path(name)}:{version}"

    def resolve_location(self, location: str) -> str:
        """Turn a path-only Location header into an absolute URL."""
        if location.startswith("/"):
            return self.base_url + location
        return location
