"""
Tests for registry authentication.

Covers challenge parsing, scope augmentation, the Docker Hub POST and
generic GET token flows, token selection and Docker config credentials.
"""
from __future__ import annotations

import base64
import json
import logging
import subprocess
from unittest.mock import patch
from urllib.parse import parse_qs

import pytest

from chartpush.models import AuthSession, RepositoryTarget
from chartpush.registry.auth import (
    DockerAuth,
    RegistryAuthenticator,
    ensure_push_scope,
    parse_www_authenticate,
)
from chartpush.registry.errors import ProtocolViolation, TransportError
from chartpush.registry.media_types import DOCKER_HUB_TOKEN_URL, USER_AGENT
from tests.fakes import FakeHttpExecutor, response

BLOB_URL = "https://r.example.com/v2/myuser/test-chart/blobs/sha256:" + "b" * 64
REALM = "https://auth.example.com/token"


class TestParseWwwAuthenticate:
    """Test WWW-Authenticate challenge parsing."""

    def test_bearer_challenge(self):
        """Test scheme and quoted parameters are extracted."""
        scheme, params = parse_www_authenticate(
            'Bearer realm="https://auth.example.com/token",service="r.example.com",'
            'scope="repository:myuser/test-chart:pull"'
        )
        assert scheme == "Bearer"
        assert params == {
            "realm": "https://auth.example.com/token",
            "service": "r.example.com",
            "scope": "repository:myuser/test-chart:pull",
        }

    def test_comma_inside_quoted_value_is_kept(self):
        """Test a multi-action scope is not split."""
        _, params = parse_www_authenticate('Bearer realm="x",scope="repository:a/b:pull,push"')
        assert params["scope"] == "repository:a/b:pull,push"

    def test_unquoted_values_and_spaces(self):
        """Test bare values and spaces after commas."""
        _, params = parse_www_authenticate('Bearer realm=https://auth/token, service=reg')
        assert params == {"realm": "https://auth/token", "service": "reg"}

    def test_missing_parameters(self):
        """Test a challenge with no parameters."""
        scheme, params = parse_www_authenticate("Basic")
        assert scheme == "Basic"
        assert params == {}


class TestEnsurePushScope:
    """Test push action augmentation."""

    def test_pull_scope_gets_push(self):
        assert ensure_push_scope("repository:user/chart:pull") == "repository:user/chart:pull,push"

    def test_push_scope_unchanged(self):
        """Test no duplicate append."""
        assert ensure_push_scope("repository:user/chart:pull,push") == "repository:user/chart:pull,push"
        assert ensure_push_scope("repository:user/chart:push") == "repository:user/chart:push"

    def test_missing_scope_stays_missing(self):
        assert ensure_push_scope(None) is None


class TestRegistryAuthenticator:
    """Test the challenge/response flow."""

    def setup_method(self):
        self.http = FakeHttpExecutor()
        self.target = RepositoryTarget(url="https://r.example.com/myuser", username="myuser", password="secret")
        self.auth = RegistryAuthenticator(self.target, self.http)

    def _challenge(self, realm=REALM, scope="repository:myuser/test-chart:pull"):
        header = f'Bearer realm="{realm}",service="r.example.com"'
        if scope is not None:
            header += f',scope="{scope}"'
        return response(401, {"WWW-Authenticate": header})

    def test_success_without_challenge(self):
        """Test a 2xx probe needs no token."""
        self.http.on("HEAD", BLOB_URL, response(200))
        assert self.auth.authenticate(BLOB_URL) is True
        assert self.auth.session.bearer_token is None
        assert len(self.http.calls) == 1
        assert self.http.calls[0].headers["User-Agent"] == USER_AGENT

    def test_not_found_probe_counts_as_authenticated(self):
        """Test a 404 probe means the registry served us without a challenge."""
        self.http.on("HEAD", BLOB_URL, response(404))
        assert self.auth.authenticate(BLOB_URL) is True

    def test_other_status_fails(self, caplog):
        """Test a 403 probe is reported as not authenticated."""
        self.http.on("HEAD", BLOB_URL, response(403))
        with caplog.at_level(logging.ERROR):
            assert self.auth.authenticate(BLOB_URL) is False
        assert "403" in caplog.text

    def test_401_without_challenge_raises(self):
        """Test a 401 with no WWW-Authenticate is a protocol violation."""
        self.http.on("HEAD", BLOB_URL, response(401))
        with pytest.raises(ProtocolViolation, match="no challenge header found") as exc_info:
            self.auth.authenticate(BLOB_URL)
        assert exc_info.value.status_code == 401
        assert exc_info.value.step == "authentication"
        assert len(self.http.calls) == 1

    def test_challenge_without_realm_raises(self):
        """Test a challenge with no realm is a protocol violation."""
        self.http.on("HEAD", BLOB_URL, response(401, {"WWW-Authenticate": 'Bearer service="x"'}))
        with pytest.raises(ProtocolViolation, match="no realm"):
            self.auth.authenticate(BLOB_URL)

    def test_generic_realm_uses_get_with_basic_auth(self):
        """Test non-Docker-Hub realms get a GET with Basic auth and query params."""
        self.http.on("HEAD", BLOB_URL, self._challenge())
        self.http.on("GET", REALM, response(200, body=json.dumps({"token": "tok-123"})), prefix=True)

        assert self.auth.authenticate(BLOB_URL) is True
        assert self.auth.session.bearer_token == "tok-123"

        token_call = self.http.calls_to("GET", REALM)[0]
        assert token_call.url == (
            f"{REALM}?service=r.example.com&scope=repository:myuser/test-chart:pull,push"
        )
        expected = base64.b64encode(b"myuser:secret").decode()
        assert token_call.headers["Authorization"] == f"Basic {expected}"
        assert not self.http.calls_to("POST")

    def test_anonymous_get_has_no_basic_auth(self):
        """Test no Authorization header without a username."""
        auth = RegistryAuthenticator(RepositoryTarget(url="https://r.example.com/myuser"), self.http)
        self.http.on("HEAD", BLOB_URL, self._challenge(scope=None))
        self.http.on("GET", REALM, response(200, body='{"token": "anon"}'), prefix=True)

        assert auth.authenticate(BLOB_URL) is True
        token_call = self.http.calls_to("GET", REALM)[0]
        assert "Authorization" not in token_call.headers
        assert token_call.url == f"{REALM}?service=r.example.com"

    def test_docker_hub_realm_uses_post_form(self):
        """Test the Docker Hub realm gets a form-encoded POST."""
        self.http.on("HEAD", BLOB_URL, self._challenge(realm=DOCKER_HUB_TOKEN_URL))
        self.http.on("POST", DOCKER_HUB_TOKEN_URL, response(200, body='{"access_token": "hub-tok"}'))

        assert self.auth.authenticate(BLOB_URL) is True
        assert self.auth.session.bearer_token == "hub-tok"

        post = self.http.calls_to("POST", DOCKER_HUB_TOKEN_URL)[0]
        assert post.headers["Content-Type"] == "application/x-www-form-urlencoded"
        form = {key: values[0] for key, values in parse_qs(post.body.decode()).items()}
        assert form == {
            "grant_type": "password",
            "refresh_token": "secret",
            "service": "r.example.com",
            "scope": "repository:myuser/test-chart:pull,push",
            "client_id": "chartpush",
            "username": "myuser",
            "password": "secret",
        }
        assert not self.http.calls_to("GET")

    def test_access_token_wins_over_token(self):
        """Test access_token is preferred when both keys are present."""
        self.http.on("HEAD", BLOB_URL, self._challenge())
        body = json.dumps({"token": "old", "access_token": "new"})
        self.http.on("GET", REALM, response(200, body=body), prefix=True)

        assert self.auth.authenticate(BLOB_URL) is True
        assert self.auth.session.bearer_token == "new"

    def test_token_endpoint_failure(self, caplog):
        """Test a non-2xx token response fails authentication and is logged."""
        self.http.on("HEAD", BLOB_URL, self._challenge())
        self.http.on("GET", REALM, response(401, body="bad credentials"), prefix=True)

        with caplog.at_level(logging.ERROR):
            assert self.auth.authenticate(BLOB_URL) is False
        assert self.auth.session.bearer_token is None
        assert "bad credentials" in caplog.text

    def test_token_endpoint_unreachable(self):
        """Test a network failure on the token request is attributed to authentication."""
        self.http.on("HEAD", BLOB_URL, self._challenge())
        self.http.on("GET", REALM, TransportError("Network error during GET: refused"), prefix=True)

        with pytest.raises(TransportError) as exc_info:
            self.auth.authenticate(BLOB_URL)
        assert exc_info.value.step == "authentication"

    @pytest.mark.parametrize("body", ["not json", "[]", '{"token": ""}', '{"expires_in": 300}'])
    def test_unusable_token_body(self, body):
        """Test bodies without a usable token fail authentication."""
        self.http.on("HEAD", BLOB_URL, self._challenge())
        self.http.on("GET", REALM, response(200, body=body), prefix=True)
        assert self.auth.authenticate(BLOB_URL) is False
        assert not self.auth.session.authenticated

    def test_probe_sends_existing_token(self):
        """Test a session that already holds a token attaches it to the probe."""
        auth = RegistryAuthenticator(self.target, self.http, AuthSession(bearer_token="cached"))
        self.http.on("HEAD", BLOB_URL, response(200))
        assert auth.authenticate(BLOB_URL) is True
        assert self.http.calls[0].headers["Authorization"] == "Bearer cached"


class TestDockerAuth:
    """Test credential lookup in Docker config files."""

    def _write(self, tmp_path, auths, **extra):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"auths": auths, **extra}))
        return path

    @staticmethod
    def _helper_output(returncode=0, stdout=""):
        return subprocess.CompletedProcess(args=[], returncode=returncode, stdout=stdout, stderr="")

    def test_base64_auth_entry(self, tmp_path):
        encoded = base64.b64encode(b"alice:pa:ss").decode()
        auth = DockerAuth(self._write(tmp_path, {"r.example.com": {"auth": encoded}}))
        assert auth.get_credentials("r.example.com") == ("alice", "pa:ss")

    def test_username_password_entry_with_scheme_key(self, tmp_path):
        auth = DockerAuth(self._write(tmp_path, {"https://r.example.com": {"username": "bob", "password": "pw"}}))
        assert auth.get_credentials("r.example.com") == ("bob", "pw")

    def test_unknown_registry(self, tmp_path):
        auth = DockerAuth(self._write(tmp_path, {"other.io": {"username": "u", "password": "p"}}))
        assert auth.get_credentials("r.example.com") is None

    def test_missing_or_corrupt_config(self, tmp_path):
        assert DockerAuth(tmp_path / "missing.json").get_credentials("r.example.com") is None
        corrupt = tmp_path / "corrupt.json"
        corrupt.write_text("{not json")
        assert DockerAuth(corrupt).get_credentials("r.example.com") is None

    def test_target_falls_back_to_docker_config(self, tmp_path, settings):
        """Test RepositoryTarget picks up Docker credentials when no username is configured."""
        from dataclasses import replace
        config = self._write(tmp_path, {"r.example.com": {"username": "carol", "password": "pw"}})
        bare = replace(settings, registry_user=None, registry_pass=None)
        target = RepositoryTarget.from_settings(bare, DockerAuth(config))
        assert (target.username, target.password) == ("carol", "pw")

        explicit = RepositoryTarget.from_settings(settings, DockerAuth(config))
        assert (explicit.username, explicit.password) == ("myuser", "secret")

    def test_key_with_path_matches_host(self, tmp_path):
        """Test "host/v2/" style keys match the bare host."""
        auth = DockerAuth(self._write(tmp_path, {"https://R.example.com/v2/": {"username": "dan", "password": "pw"}}))
        assert auth.get_credentials("r.example.com") == ("dan", "pw")

    def test_docker_hub_aliases(self, tmp_path):
        """Test docker.io hosts resolve to the legacy index key."""
        encoded = base64.b64encode(b"erin:pw").decode()
        auth = DockerAuth(self._write(tmp_path, {"https://index.docker.io/v1/": {"auth": encoded}}))
        assert auth.get_credentials("registry-1.docker.io") == ("erin", "pw")
        assert auth.get_credentials("docker.io") == ("erin", "pw")

    def test_cred_helper_for_registry(self, tmp_path):
        """Test a credHelpers entry is asked before inline auths."""
        config = self._write(
            tmp_path,
            {"r.example.com": {"username": "inline", "password": "pw"}},
            credHelpers={"r.example.com": "ecr-login"},
        )
        output = self._helper_output(stdout='{"ServerURL": "r.example.com", "Username": "AWS", "Secret": "s3cret"}')
        with patch("chartpush.registry.auth.subprocess.run", return_value=output) as run:
            assert DockerAuth(config).get_credentials("r.example.com") == ("AWS", "s3cret")

        args, kwargs = run.call_args
        assert args[0] == ["docker-credential-ecr-login", "get"]
        assert kwargs["input"] == "r.example.com"

    def test_creds_store_uses_auths_key(self, tmp_path):
        """Test the global store is asked with the key `docker login` recorded."""
        config = self._write(tmp_path, {"https://index.docker.io/v1/": {}}, credsStore="desktop")
        output = self._helper_output(stdout='{"Username": "frank", "Secret": "pw"}')
        with patch("chartpush.registry.auth.subprocess.run", return_value=output) as run:
            assert DockerAuth(config).get_credentials("docker.io") == ("frank", "pw")
        assert run.call_args.kwargs["input"] == "https://index.docker.io/v1/"

    @pytest.mark.parametrize("output", [
        subprocess.CompletedProcess(args=[], returncode=1, stdout="credentials not found in native keychain", stderr=""),
        subprocess.CompletedProcess(args=[], returncode=0, stdout="not json", stderr=""),
        subprocess.CompletedProcess(args=[], returncode=0, stdout='{"Username": "<token>", "Secret": "idtoken"}', stderr=""),
    ])
    def test_creds_store_without_usable_entry(self, tmp_path, output):
        config = self._write(tmp_path, {}, credsStore="desktop")
        with patch("chartpush.registry.auth.subprocess.run", return_value=output):
            assert DockerAuth(config).get_credentials("r.example.com") is None

    def test_missing_helper_binary(self, tmp_path):
        config = self._write(tmp_path, {}, credsStore="nonexistent")
        with patch("chartpush.registry.auth.subprocess.run", side_effect=FileNotFoundError("docker-credential-nonexistent")):
            assert DockerAuth(config).get_credentials("r.example.com") is None
