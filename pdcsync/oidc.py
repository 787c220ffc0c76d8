"""
oidc.py - Access Tokens
========================
Exchanges OpenID Connect client credentials for a PDC access token.

Flow:
-----
1. GET <oidc base url>/.well-known/openid-configuration to discover the
   token endpoint
2. POST grant_type=client_credentials to that endpoint, authenticating with
   the client id and secret as HTTP Basic credentials
3. Decode the JWT payload (without verifying it) so the token id can be logged

The PDC verifies the signature; we only look inside for display.
"""

import base64
import json
import logging
from dataclasses import dataclass, field
from pathlib import Path

import requests
from requests.auth import HTTPBasicAuth

from .config import Settings
from .errors import ConfigurationError, TokenError
from .http_client import HttpClient


logger = logging.getLogger(__name__)

DISCOVERY_PATH = "/.well-known/openid-configuration"


@dataclass
class AccessToken:
    access_token: str
    token_type: str = "Bearer"
    expires_in: int | None = None
    claims: dict = field(default_factory=dict)


# =============================================================================
# JWT DECODING (DISPLAY ONLY)
# =============================================================================

def decode_jwt_claims(token: str) -> dict:
    """
    Return the payload of a JWT without verifying its signature.

    Returns an empty dict for tokens that are not JWTs (opaque tokens are
    legal in OAuth2).
    """
    parts = token.split(".")
    if len(parts) != 3:
        return {}
    payload = parts[1]
    # base64url without padding
    payload += "=" * (-len(payload) % 4)
    try:
        claims = json.loads(base64.urlsafe_b64decode(payload))
    except ValueError:
        return {}
    return claims if isinstance(claims, dict) else {}


# =============================================================================
# TOKEN ACQUISITION
# =============================================================================

def _token_endpoint(session: requests.Session, base_url: str, timeout: int) -> str:
    url = base_url.rstrip("/") + DISCOVERY_PATH
    try:
        r = session.get(url, timeout=timeout)
        r.raise_for_status()
        metadata = r.json()
    except (requests.RequestException, ValueError) as e:
        raise TokenError(f"OIDC discovery at {url} failed: {e}") from e

    endpoint = metadata.get("token_endpoint") if isinstance(metadata, dict) else None
    if not endpoint:
        raise TokenError(f"OIDC discovery document at {url} has no token_endpoint")
    logger.debug(f"Discovered OIDC issuer at {metadata.get('issuer', base_url)}")
    return endpoint


def get_token(base_url: str, client_id: str, client_secret: str, timeout: int = 60) -> AccessToken:
    """
    Perform a client-credentials grant and return the access token.

    Raises:
        TokenError: if discovery fails, the grant is refused, or the response
            carries no access_token
    """
    with requests.Session() as session:
        endpoint = _token_endpoint(session, base_url, timeout)
        try:
            r = session.post(
                endpoint,
                data={"grant_type": "client_credentials"},
                auth=HTTPBasicAuth(client_id, client_secret),
                headers={"Accept": "application/json"},
                timeout=timeout,
            )
        except requests.RequestException as e:
            raise TokenError(f"Token request to {endpoint} failed: {e}") from e

    if r.status_code != 200:
        raise TokenError(f"Token request failed with status {r.status_code}. Response: {r.text[:300]}")

    try:
        data = r.json()
    except ValueError as e:
        raise TokenError(f"Token endpoint returned non-JSON body: {r.text[:200]}") from e

    if not isinstance(data, dict) or not data.get("access_token"):
        keys = list(data.keys()) if isinstance(data, dict) else type(data).__name__
        logger.error(f"Received token response without access_token: {keys}")
        raise TokenError("Token set does not include an access token")

    token = AccessToken(
        access_token=data["access_token"],
        token_type=data.get("token_type", "Bearer"),
        expires_in=data.get("expires_in"),
        claims=decode_jwt_claims(data["access_token"]),
    )
    jti = token.claims.get("jti")
    logger.debug(f"Retrieved token with id {jti}" if jti else "Retrieved token")
    return token


def pdc_client(settings: Settings) -> HttpClient:
    """
    An HttpClient for the PDC API, authenticated from settings.

    Uses the static bearer token if one is configured, otherwise performs
    the OIDC client-credentials grant.
    """
    settings.require("pdc_api_base_url")
    client = HttpClient(settings.pdc_api_base_url, settings.timeout_sec)

    if settings.bearer_token:
        client.set_bearer_token(settings.bearer_token)
        logger.info("Using static bearer token")
        return client

    if not (settings.oidc_base_url and settings.oidc_client_id and settings.oidc_client_secret):
        client.close()
        raise ConfigurationError(
            "No bearer token configured; pass --bearer-token or all of "
            "--oidc-base-url, --oidc-client-id and --oidc-client-secret."
        )
    try:
        token = get_token(
            settings.oidc_base_url,
            settings.oidc_client_id,
            settings.oidc_client_secret,
            settings.timeout_sec,
        )
    except TokenError:
        client.close()
        raise
    client.set_bearer_token(token.access_token)
    return client


# =============================================================================
# COMMAND: test-client-credentials
# =============================================================================

def cmd_test_client_credentials(args, settings: Settings) -> int:
    """Validate the OIDC configuration by retrieving a token."""
    settings.require("oidc_base_url", "oidc_client_id", "oidc_client_secret")
    token = get_token(
        settings.oidc_base_url,
        settings.oidc_client_id,
        settings.oidc_client_secret,
        settings.timeout_sec,
    )

    if args.output_file:
        Path(args.output_file).write_text(token.access_token, encoding="utf-8")
        logger.info(f"Wrote token to {args.output_file}")
    else:
        logger.info(f"Successfully retrieved token: {json.dumps(token.claims)}")
    return 0
