"""Tests for OIDC token acquisition and PDC client authentication."""

import base64
import json
from unittest.mock import MagicMock, patch

import pytest
import requests

from pdcsync import oidc
from pdcsync.config import Settings
from pdcsync.errors import ConfigurationError, TokenError


def _jwt(claims):
    def enc(obj):
        return base64.urlsafe_b64encode(json.dumps(obj).encode()).rstrip(b"=").decode()
    return f"{enc({'alg': 'RS256'})}.{enc(claims)}.signature"


def _response(status=200, body=None):
    r = MagicMock()
    r.status_code = status
    r.text = json.dumps(body)
    r.json.return_value = body
    if status >= 400:
        r.raise_for_status.side_effect = requests.HTTPError(f"{status}")
    return r


@pytest.fixture
def session():
    """Patch requests.Session inside oidc.py and hand back the instance."""
    with patch("pdcsync.oidc.requests.Session") as cls:
        instance = MagicMock()
        cls.return_value.__enter__.return_value = instance
        yield instance


class TestDecode:
    def test_payload_claims(self):
        assert oidc.decode_jwt_claims(_jwt({"jti": "abc", "sub": "svc"})) == {"jti": "abc", "sub": "svc"}

    @pytest.mark.parametrize("token", ["opaque-token", "a.b", "a.!!!.c"])
    def test_non_jwt(self, token):
        assert oidc.decode_jwt_claims(token) == {}


class TestGetToken:
    def test_discovery_then_client_credentials(self, session):
        session.get.return_value = _response(body={
            "issuer": "https://auth.example.org/realms/pdc",
            "token_endpoint": "https://auth.example.org/token",
        })
        session.post.return_value = _response(body={
            "access_token": _jwt({"jti": "t-1"}), "token_type": "Bearer", "expires_in": 300,
        })

        token = oidc.get_token("https://auth.example.org/realms/pdc/", "id", "secret")

        assert session.get.call_args.args[0] == "https://auth.example.org/realms/pdc/.well-known/openid-configuration"
        post = session.post.call_args
        assert post.args[0] == "https://auth.example.org/token"
        assert post.kwargs["data"] == {"grant_type": "client_credentials"}
        assert post.kwargs["auth"].username == "id"
        assert token.claims["jti"] == "t-1"
        assert token.expires_in == 300

    def test_discovery_failure(self, session):
        session.get.return_value = _response(404, body={})
        with pytest.raises(TokenError, match="discovery"):
            oidc.get_token("https://auth.example.org", "id", "secret")

    def test_missing_token_endpoint(self, session):
        session.get.return_value = _response(body={"issuer": "x"})
        with pytest.raises(TokenError, match="token_endpoint"):
            oidc.get_token("https://auth.example.org", "id", "secret")

    def test_grant_refused(self, session):
        session.get.return_value = _response(body={"token_endpoint": "https://auth/token"})
        session.post.return_value = _response(401, body={"error": "invalid_client"})
        with pytest.raises(TokenError, match="401"):
            oidc.get_token("https://auth.example.org", "id", "bad")

    def test_no_access_token(self, session):
        session.get.return_value = _response(body={"token_endpoint": "https://auth/token"})
        session.post.return_value = _response(body={"token_type": "Bearer"})
        with pytest.raises(TokenError, match="access token"):
            oidc.get_token("https://auth.example.org", "id", "secret")


class TestPdcClient:
    def test_static_token(self):
        client = oidc.pdc_client(Settings(pdc_api_base_url="https://pdc", bearer_token="tok"))
        assert client.s.headers["Authorization"] == "Bearer tok"
        client.close()

    def test_oidc_grant(self):
        settings = Settings(pdc_api_base_url="https://pdc", oidc_base_url="https://auth",
                            oidc_client_id="id", oidc_client_secret="s")
        with patch("pdcsync.oidc.get_token", return_value=oidc.AccessToken("granted")) as get_token:
            client = oidc.pdc_client(settings)
        get_token.assert_called_once_with("https://auth", "id", "s", 60)
        assert client.s.headers["Authorization"] == "Bearer granted"
        client.close()

    def test_no_credentials(self):
        with pytest.raises(ConfigurationError, match="bearer-token"):
            oidc.pdc_client(Settings(pdc_api_base_url="https://pdc"))

    def test_no_base_url(self):
        with pytest.raises(ConfigurationError, match="pdc-api-base-url"):
            oidc.pdc_client(Settings(bearer_token="tok"))
