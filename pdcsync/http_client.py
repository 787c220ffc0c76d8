"""
http_client.py - HTTP Client for API Communication
===================================================
This module handles all HTTP communication with the PDC API and the
third-party providers, including:
- Attaching credentials (bearer token, subscription key, raw API key)
- Making GET/POST requests and decoding JSON responses
- Turning non-2xx responses and network failures into ApiError

There is no retry loop here. A failed call is reported to the
caller, which decides whether the failure is fatal for a row or for the run.
"""

import logging
from typing import Any
from urllib.parse import urlencode

import requests
from requests.adapters import HTTPAdapter

from .errors import ApiError, ConflictError, MalformedResponse


logger = logging.getLogger(__name__)


# =============================================================================
# HTTP CLIENT CLASS
# =============================================================================

class HttpClient:
    """
    JSON-over-HTTP client bound to one base URL.

    Usage:
        client = HttpClient("https://api.pdc.example.org", timeout_sec=60)
        client.set_bearer_token(token)

        form = client.get_json("/applicationForms/7", {"includeFields": "true"})
        created = client.post_json("/applicants", {"externalId": "abc"})

        client.close()
    """

    def __init__(self, base_url: str, timeout_sec: int = 60):
        """
        Args:
            base_url: Prefix for every relative path, without trailing slash
            timeout_sec: Per-request timeout; there is no run-level timeout
        """
        # Shared by the upload workers. Headers are set before they start and
        # only read while they run.
        self.s = requests.Session()
        self.s.headers.update({
            "Accept": "application/json",
            "Accept-Encoding": "gzip, deflate",
        })

        self.base = base_url.rstrip("/")
        self.timeout = timeout_sec

    # -------------------------------------------------------------------------
    # AUTHENTICATION METHODS
    # -------------------------------------------------------------------------

    def set_bearer_token(self, token: str):
        """Send `Authorization: Bearer <token>` with every request."""
        self.s.headers["Authorization"] = f"Bearer {token}"

    def set_header(self, name: str, value: str):
        """Set an arbitrary header, e.g. Candid's Subscription-Key."""
        self.s.headers[name] = value

    # -------------------------------------------------------------------------
    # CONNECTION POOL
    # -------------------------------------------------------------------------

    def set_pool_size(self, size: int):
        """Keep up to `size` pooled connections per host, one per concurrent worker."""
        adapter = HTTPAdapter(pool_maxsize=max(size, 1))
        self.s.mount("https://", adapter)
        self.s.mount("http://", adapter)

    # -------------------------------------------------------------------------
    # API REQUEST METHODS
    # -------------------------------------------------------------------------

    def url_for(self, path: str) -> str:
        if path.startswith("http://") or path.startswith("https://"):
            return path
        if not path:
            return self.base
        if not path.startswith("/"):
            path = "/" + path
        return f"{self.base}{path}"

    def request_json(
        self,
        method: str,
        path: str,
        params: dict | None = None,
        payload: Any = None,
    ) -> Any:
        """
        Make a request and return the decoded JSON body.

        Returns None for an empty 2xx body (e.g. 201/204 without content).

        Raises:
            ConflictError: on HTTP 409
            ApiError: on any other non-2xx status, or status 0 for network errors
            MalformedResponse: if a 2xx body is not valid JSON
        """
        url = self.url_for(path)
        shown = f"{url}?{urlencode(params)}" if params else url
        logger.debug(f"{method} {shown}")

        try:
            r = self.s.request(
                method,
                url,
                params=params,
                json=payload,
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            # Timeout, connection refused, DNS failure, etc.
            raise ApiError(method, url, 0, f"Network error: {type(e).__name__}: {e}") from e

        logger.debug(f"{method} {shown} => {r.status_code} {r.reason}")

        if r.status_code == 409:
            raise ConflictError(method, url, r.status_code, r.text or "")
        if not 200 <= r.status_code < 300:
            raise ApiError(method, url, r.status_code, r.text or "")

        if not r.content:
            return None
        try:
            return r.json()
        except ValueError as e:
            content_type = r.headers.get("content-type", "")
            raise MalformedResponse(
                f"Expected JSON from {method} {url} but got {content_type!r}: {r.text[:200]}"
            ) from e

    def get_json(self, path: str, params: dict | None = None) -> Any:
        return self.request_json("GET", path, params=params)

    def post_json(self, path: str, payload: Any, params: dict | None = None) -> Any:
        return self.request_json("POST", path, params=params, payload=payload)

    # -------------------------------------------------------------------------
    # CLEANUP METHODS
    # -------------------------------------------------------------------------

    def close(self):
        """Close the HTTP session and release pooled connections."""
        self.s.close()
