"""
charity_navigator.py - Charity Navigator GraphQL API
=====================================================
Queries Charity Navigator's public nonprofit records for a set of EINs.

Commands:
---------
    charity-navigator lookup --eins 12-3456789 987654321
    charity-navigator update --eins 12-3456789

The API key is sent as the raw Authorization header value (no "Bearer").
"""

import json
import logging
from pathlib import Path
from typing import List, Sequence

from . import pdc_api
from .config import Settings
from .ein import is_valid_ein
from .errors import ConfigurationError, MalformedResponse, SyncError
from .http_client import HttpClient
from .oidc import pdc_client


logger = logging.getLogger(__name__)

CHARITY_NAVIGATOR_API_URL = "https://api.charitynavigator.org/graphql"
PLATFORM_PROVIDER = "charitynavigator"

NONPROFITS_PUBLIC_QUERY = """
query NonprofitsPublic(
  $filter: NonprofitFilters
  $page: Int
  $resultSize: Int
) {
  nonprofitsPublic(
    filter: $filter
    page: $page
    resultSize: $resultSize
  ) {
    edges {
      ein
      name
    }
    pageInfo {
      totalPages
      totalItems
      currentPage
    }
  }
}
"""


def charity_navigator_client(api_key: str, timeout_sec: int = 60) -> HttpClient:
    client = HttpClient(CHARITY_NAVIGATOR_API_URL, timeout_sec)
    client.set_header("Authorization", api_key)
    return client


def graphql_query(client: HttpClient, query: str, variables: dict | None = None) -> dict:
    """
    Run a GraphQL query and return its `data` object.

    GraphQL reports errors in a 200 response, so `errors` is checked too.
    """
    payload = {"query": query, "variables": variables or {}}
    result = client.post_json("", payload)

    if not isinstance(result, dict):
        raise MalformedResponse("GraphQL response is not a JSON object")
    if result.get("errors"):
        messages = "; ".join(str(e.get("message", e)) if isinstance(e, dict) else str(e)
                             for e in result["errors"])
        raise SyncError(f"GraphQL query failed: {messages}")
    if not isinstance(result.get("data"), dict):
        raise MalformedResponse("GraphQL response has no 'data' object")
    return result["data"]


def get_nonprofits(client: HttpClient, eins: Sequence[str]) -> List[dict]:
    """Public nonprofit records for `eins`, one per EIN that Charity Navigator knows."""
    logger.debug(f"Looking up EINs {list(eins)} in Charity Navigator GraphQL API")
    variables = {
        "filter": {"ein": {"in": list(eins)}},
        "page": 1,
        "resultSize": len(eins),
    }
    data = graphql_query(client, NONPROFITS_PUBLIC_QUERY, variables)

    nonprofits = data.get("nonprofitsPublic")
    if not isinstance(nonprofits, dict) or not isinstance(nonprofits.get("edges"), list):
        raise MalformedResponse("nonprofitsPublic has no 'edges' list")
    return nonprofits["edges"]


def _require_eins(eins: Sequence[str]) -> List[str]:
    if not eins:
        raise ConfigurationError("At least one EIN is required (--eins)")
    invalid = [e for e in eins if not is_valid_ein(e)]
    if invalid:
        raise ConfigurationError(f"Invalid EIN(s): {invalid}")
    return list(eins)


# =============================================================================
# COMMANDS
# =============================================================================

def cmd_lookup(args, settings: Settings) -> int:
    eins = _require_eins(args.eins)
    settings.require("charity_navigator_api_key")

    client = charity_navigator_client(settings.charity_navigator_api_key, settings.timeout_sec)
    try:
        nonprofits = get_nonprofits(client, eins)
    finally:
        client.close()

    if args.output_file:
        Path(args.output_file).write_text(json.dumps(nonprofits, indent=2), encoding="utf-8")
        logger.info(f"Wrote Charity Navigator data for {len(nonprofits)} EINs to {args.output_file}")
    else:
        logger.info(f"Charity Navigator result: {json.dumps(nonprofits, indent=2)}")
    return 0


def cmd_update(args, settings: Settings) -> int:
    eins = _require_eins(args.eins)
    settings.require("charity_navigator_api_key", "pdc_api_base_url")

    client = charity_navigator_client(settings.charity_navigator_api_key, settings.timeout_sec)
    pdc = None
    written = 0
    try:
        nonprofits = get_nonprofits(client, eins)
        pdc = pdc_client(settings)
        for nonprofit in nonprofits:
            ein = nonprofit.get("ein") if isinstance(nonprofit, dict) else None
            if not ein:
                logger.warning(f"Skipping Charity Navigator record without EIN: {nonprofit!r}")
                continue
            pdc_api.post_platform_provider_data(pdc, ein, PLATFORM_PROVIDER, nonprofit)
            written += 1
    finally:
        client.close()
        if pdc:
            pdc.close()

    missing = len(eins) - written
    logger.info(f"Wrote Charity Navigator data for {written} EINs to PDC ({missing} not found)")
    return 0
