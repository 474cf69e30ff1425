"""
OCI media types and registry constants.

Single source of truth for the media types and fixed header values used
when pushing Helm charts.
"""
from __future__ import annotations

# OCI standard manifest type
OCI_IMAGE_MANIFEST = "application/vnd.oci.image.manifest.v1+json"

# Helm chart artifact types
HELM_CONFIG = "application/vnd.cncf.helm.config.v1+json"
HELM_CHART_CONTENT = "application/vnd.cncf.helm.chart.content.v1.tar+gzip"

# Blob upload body
OCTET_STREAM = "application/octet-stream"
FORM_URLENCODED = "application/x-www-form-urlencoded"

# Response headers consumed by the push flow
DOCKER_CONTENT_DIGEST = "Docker-Content-Digest"
LOCATION = "Location"
WWW_AUTHENTICATE = "WWW-Authenticate"

USER_AGENT = "chartpush/0.1.0"

# Docker Hub issues tokens via POST instead of GET + Basic auth
DOCKER_HUB_TOKEN_URL = "https://auth.docker.io/token"
TOKEN_CLIENT_ID = "chartpush"


__all__ = [
    "OCI_IMAGE_MANIFEST",
    "HELM_CONFIG",
    "HELM_CHART_CONTENT",
    "OCTET_STREAM",
    "FORM_URLENCODED",
    "DOCKER_CONTENT_DIGEST",
    "LOCATION",
    "WWW_AUTHENTICATE",
    "USER_AGENT",
    "DOCKER_HUB_TOKEN_URL",
    "TOKEN_CLIENT_ID",
]
