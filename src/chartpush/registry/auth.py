"""
Registry authentication.

Implements the Docker Registry v2 challenge/response flow for pushes:
probe the registry, parse the WWW-Authenticate challenge, exchange
credentials for a bearer token scoped to push, and keep that token in the
client's AuthSession. Also reads credentials from the Docker config file.
"""
from __future__ import annotations

import base64
import binascii
import json
import logging
import re
import subprocess
from pathlib import Path
from typing import Dict, Optional, Tuple
from urllib.parse import urlencode

from ..models import AuthSession, RepositoryTarget
from .endpoint import append_query_param
from .errors import ProtocolViolation, at_step
from .http import HttpExecutor, HttpResponse
from .media_types import (
    DOCKER_HUB_TOKEN_URL,
    FORM_URLENCODED,
    TOKEN_CLIENT_ID,
    USER_AGENT,
    WWW_AUTHENTICATE,
)

logger = logging.getLogger(__name__)

# key="quoted value" or key=bare-value
_CHALLENGE_PARAM_RE = re.compile(r'(\w+)=(?:"([^"]*)"|([^,\s]*))')

STEP_AUTHENTICATION = "authentication"

TOKEN_KEY = "token"
ACCESS_TOKEN_KEY = "access_token"


def parse_www_authenticate(header: str) -> Tuple[str, Dict[str, str]]:
    """
    Parse a WWW-Authenticate challenge.

    Format: Bearer realm="...",service="...",scope="..."

    Commas inside quoted values (e.g. "repository:a/b:pull,push") are kept.

    Returns:
        (scheme, params), scheme as sent (e.g. "Bearer")
    """
    header = header.strip()
    scheme, _, rest = header.partition(" ")
    params = {}
    for match in _CHALLENGE_PARAM_RE.finditer(rest):
        key, quoted, bare = match.groups()
        params[key] = quoted if quoted is not None else bare
    return scheme, params


def ensure_push_scope(scope: Optional[str]) -> Optional[str]:
    """
    Add the push action to a scope that only grants pull.

    Registries answer a HEAD probe with a pull-only scope; the token must
    also cover push. A scope already mentioning push is left untouched.
    """
    if scope is None:
        return None
    if "push" not in scope:
        return f"{scope},push"
    return scope


DOCKER_HUB_CONFIG_KEY = "https://index.docker.io/v1/"
_DOCKER_HUB_HOSTS = {"docker.io", "index.docker.io", "registry-1.docker.io"}


def _config_host(key: str) -> str:
    """Reduce a config key ("https://host:port/v1/", "host") to host[:port]."""
    host = key.split("://", 1)[-1].split("/", 1)[0].lower()
    return "index.docker.io" if host in _DOCKER_HUB_HOSTS else host


def _decode_auth_entry(entry) -> Optional[Tuple[str, str]]:
    """Credentials stored inline in an "auths" entry, if any."""
    if not isinstance(entry, dict):
        return None

    if entry.get("auth"):
        try:
            decoded = base64.b64decode(entry["auth"]).decode("utf-8")
        except (binascii.Error, UnicodeDecodeError) as e:
            logger.debug(f"Ignoring malformed auth field: {e}")
        else:
            username, sep, password = decoded.partition(":")
            if sep and username:
                return username, password

    if entry.get("username") and "password" in entry:
        return entry["username"], entry["password"]
    return None


class DockerAuth:
    """
    Registry credentials from a Docker CLI config file.

    Lookup order for a registry host:
    1. A credHelpers entry naming a helper for that host
    2. Inline credentials in the matching auths entry
    3. The global credsStore helper

    Config keys match on host[:port], so "https://ghcr.io", "ghcr.io" and
    "ghcr.io/v2/" are the same registry. Docker Hub's aliases all map to
    its legacy "https://index.docker.io/v1/" key.
    """

    def __init__(self, config_path: Optional[Path] = None, helper_timeout_s: float = 5.0):
        self.config_path = config_path or Path.home() / ".docker" / "config.json"
        self.helper_timeout_s = helper_timeout_s
        self._config_cache: Optional[dict] = None
        self._config_mtime: Optional[float] = None

    def get_credentials(self, registry: str) -> Optional[Tuple[str, str]]:
        """
        Look up credentials for a registry host.

        Args:
            registry: Registry host, with or without scheme (e.g. "ghcr.io")

        Returns:
            (username, password) or None if the config has none for registry
        """
        config = self._load_config()
        if not config:
            return None

        host = _config_host(registry)
        server = DOCKER_HUB_CONFIG_KEY if host == "index.docker.io" else host

        helpers = config.get("credHelpers") or {}
        helper = next((name for key, name in helpers.items() if _config_host(key) == host), None)
        if helper:
            return self._run_helper(helper, server)

        auths = config.get("auths") or {}
        auth_key = next((key for key in auths if _config_host(key) == host), None)
        if auth_key is not None:
            creds = _decode_auth_entry(auths[auth_key])
            if creds:
                return creds
            # Entries left by `docker login` with a store hold no secret
            server = auth_key

        store = config.get("credsStore")
        if store:
            return self._run_helper(store, server)
        return None

    def _run_helper(self, helper: str, server: str) -> Optional[Tuple[str, str]]:
        """Ask docker-credential-<helper> for the credentials of server."""
        command = [f"docker-credential-{helper}", "get"]
        try:
            result = subprocess.run(
                command,
                input=server,
                capture_output=True,
                text=True,
                timeout=self.helper_timeout_s,
            )
        except (OSError, subprocess.TimeoutExpired) as e:
            logger.debug(f"Credential helper {command[0]} failed: {e}")
            return None

        if result.returncode != 0:
            logger.debug(f"Credential helper {command[0]} has no entry for {server}: "
                         f"{(result.stdout or result.stderr).strip()}")
            return None

        try:
            data = json.loads(result.stdout)
        except json.JSONDecodeError as e:
            logger.debug(f"Credential helper {command[0]} returned invalid JSON: {e}")
            return None

        username = data.get("Username") if isinstance(data, dict) else None
        secret = data.get("Secret") if isinstance(data, dict) else None
        # "<token>" marks an identity token, which is not a Basic auth password
        if not username or not secret or username == "<token>":
            return None
        return username, secret

    def _load_config(self) -> Optional[dict]:
        """Load the config file, reusing the parsed copy while its mtime is unchanged."""
        try:
            current_mtime = self.config_path.stat().st_mtime
            if self._config_cache is not None and current_mtime == self._config_mtime:
                return self._config_cache

            with open(self.config_path, "r") as f:
                config = json.load(f)
        except FileNotFoundError:
            return None
        except (OSError, json.JSONDecodeError) as e:
            logger.debug(f"Failed to read Docker config {self.config_path}: {e}")
            return None

        if not isinstance(config, dict):
            logger.debug(f"Docker config {self.config_path} is not a JSON object")
            return None

        self._config_cache = config
        self._config_mtime = current_mtime
        return config


class RegistryAuthenticator:
    """
    Challenge/response authenticator for one push target.

    authenticate() is called once per push. Its outcome is terminal: the
    token it stores in the session (if any) is attached to every later
    request, and failures are not retried.
    """

    def __init__(self, target: RepositoryTarget, executor: HttpExecutor,
                 session: Optional[AuthSession] = None):
        """
        Initialize authenticator.

        Args:
            target: Repository URL and credentials
            executor: HTTP executor used for the probe and token requests
            session: Session receiving the bearer token (a new one if None)
        """
        self.target = target
        self.executor = executor
        self.session = session if session is not None else AuthSession()

    def authenticate(self, url: str) -> bool:
        """
        Probe url and, if challenged, obtain a push token.

        Args:
            url: Blob URL of the content about to be pushed

        Returns:
            True if the registry accepts our requests, False if the token
            exchange failed or the probe was refused outright

        Raises:
            ProtocolViolation: If a 401 carries no usable challenge
            TransportError: If the registry cannot be reached
        """
        headers = {"User-Agent": USER_AGENT}
        headers.update(self.session.authorization_headers())
        with at_step(STEP_AUTHENTICATION):
            response = self.executor.request("HEAD", url, headers)

        # 404 just means the blob isn't there yet; the registry served us
        if response.is_success or response.status_code == 404:
            logger.debug(f"Registry accepted probe of {url} without a challenge ({response.status_code})")
            return True

        if response.status_code != 401:
            logger.error(f"Authentication probe of {url} returned {response.status_code}")
            return False

        challenge = response.header(WWW_AUTHENTICATE)
        if not challenge or not challenge.strip():
            raise ProtocolViolation(
                f"Got 401 but no challenge header found ({WWW_AUTHENTICATE}) in response for {url}",
                step=STEP_AUTHENTICATION,
                status_code=401,
            )

        return self._exchange_token(challenge)

    def _exchange_token(self, challenge: str) -> bool:
        """Exchange credentials for a bearer token as directed by the challenge."""
        scheme, params = parse_www_authenticate(challenge)
        realm = params.get("realm")
        if not realm:
            raise ProtocolViolation(
                f"{WWW_AUTHENTICATE} challenge has no realm: {challenge}",
                step=STEP_AUTHENTICATION,
                status_code=401,
            )

        scope = ensure_push_scope(params.get("scope"))
        service = params.get("service")
        logger.debug(f"{scheme} challenge: realm={realm} service={service} scope={scope}")

        if realm == DOCKER_HUB_TOKEN_URL:
            response = self._submit_post_request(realm, service, scope)
        else:
            response = self._submit_get_request(realm, service, scope)

        if not response.is_success:
            logger.error(f"Token request to {realm} failed with {response.status_code}: {response.text}")
            return False

        return self._store_token(response)

    def _submit_get_request(self, realm: str, service: Optional[str],
                            scope: Optional[str]) -> HttpResponse:
        url = realm
        if service is not None:
            url = append_query_param(url, "service", service)
        if scope is not None:
            url = append_query_param(url, "scope", scope)

        headers = {"User-Agent": USER_AGENT}
        if self.target.username:
            credentials = f"{self.target.username}:{self.target.password or ''}"
            encoded = base64.b64encode(credentials.encode("utf-8")).decode("ascii")
            headers["Authorization"] = f"Basic {encoded}"

        with at_step(STEP_AUTHENTICATION):
            return self.executor.request("GET", url, headers)

    def _submit_post_request(self, realm: str, service: Optional[str],
                             scope: Optional[str]) -> HttpResponse:
        form = {
            "grant_type": "password",
            "refresh_token": self.target.password,
            "service": service,
            "scope": scope,
            "client_id": TOKEN_CLIENT_ID,
            "username": self.target.username,
            "password": self.target.password,
        }
        body = urlencode({key: value for key, value in form.items() if value is not None})
        headers = {
            "User-Agent": USER_AGENT,
            "Content-Type": FORM_URLENCODED,
        }
        with at_step(STEP_AUTHENTICATION):
            return self.executor.request("POST", realm, headers, body.encode("utf-8"))

    def _store_token(self, response: HttpResponse) -> bool:
        """Pick the token out of a token endpoint response body."""
        try:
            data = json.loads(response.content)
        except ValueError as e:
            logger.error(f"Token response is not valid JSON: {e}")
            return False

        if not isinstance(data, dict):
            logger.error("Token response is not a JSON object")
            return False

        # access_token wins when both are present
        token = data.get(TOKEN_KEY)
        if ACCESS_TOKEN_KEY in data:
            token = data[ACCESS_TOKEN_KEY]

        if not isinstance(token, str) or not token.strip():
            logger.error("Token response did not contain a token")
            return False

        self.session.bearer_token = token
        return True


__all__ = [
    "DockerAuth",
    "RegistryAuthenticator",
    "parse_www_authenticate",
    "ensure_push_scope",
]
