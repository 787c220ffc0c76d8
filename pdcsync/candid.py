"""
candid.py - Candid Premier API
===============================
Looks up organizations by EIN in the Candid Premier API and stores the
results in the PDC as platform provider responses.

Commands:
---------
    candid lookup <ein>      Print (or write) one organization's profile
    candid update <ein>      Look up one EIN and store it in the PDC
    candid update-all        Look up every EIN found in PDC proposals

Our Candid subscription allows 10 calls per minute. update-all does not
handle 429 responses; it waits a fixed delay (6 seconds by default,
Settings.candid_delay) after every EIN instead.
"""

import json
import logging
from pathlib import Path
from typing import Any, Iterable, List, Sequence

from . import pdc_api
from .config import FixedDelay, Settings
from .ein import is_valid_ein
from .errors import ConfigurationError, MalformedResponse, SyncError
from .http_client import HttpClient
from .models import Proposal
from .oidc import pdc_client


logger = logging.getLogger(__name__)

CANDID_API_URL = "https://api.candid.org/premier/v3"
PLATFORM_PROVIDER = "candid"

# Base field whose values are organization EINs
EIN_SHORT_CODE = "organization_tax_id"


# =============================================================================
# CANDID CLIENT
# =============================================================================

def candid_client(api_key: str, timeout_sec: int = 60) -> HttpClient:
    client = HttpClient(CANDID_API_URL, timeout_sec)
    client.set_header("Subscription-Key", api_key)
    return client


def get_candid_profile(client: HttpClient, ein: str) -> dict:
    """
    Fetch the Premier profile for one EIN.

    Returns the full result envelope: {"code": ..., "message": ..., "data": {...}}
    """
    logger.debug(f"Looking up EIN {ein} in Candid Premier API")
    result = client.get_json(f"/{ein}")
    if not isinstance(result, dict) or "data" not in result:
        raise MalformedResponse(f"Candid response for {ein} has no 'data' object")
    logger.debug(f"Fetched Candid data for {ein}: {result.get('message')}")
    return result


# =============================================================================
# EINS FROM THE PDC
# =============================================================================

def get_ein_base_field_id(pdc: HttpClient) -> int:
    base_fields = pdc_api.get_base_fields(pdc)
    for base_field in base_fields:
        if base_field.short_code == EIN_SHORT_CODE:
            return base_field.id
    raise SyncError(f"Could not find base field with short code `{EIN_SHORT_CODE}`")


def eins_from_proposals(proposals: Iterable[Proposal], ein_base_field_id: int) -> List[str]:
    """
    Distinct valid EINs from the latest version of each proposal.

    Only versions[0] is inspected; the PDC lists the newest version first.
    Values that are not valid EINs are logged and dropped.
    """
    eins: dict[str, None] = {}
    for proposal in proposals:
        if not proposal.versions or not isinstance(proposal.versions[0], dict):
            continue
        for field_value in proposal.versions[0].get("fieldValues") or []:
            if not isinstance(field_value, dict):
                continue
            form_field = field_value.get("applicationFormField") or {}
            if form_field.get("baseFieldId") != ein_base_field_id:
                continue
            value = field_value.get("value")
            if is_valid_ein(value):
                eins.setdefault(value)
            else:
                logger.warning(f"Proposal {proposal.id} has invalid EIN {value!r}: skipped.")
    return list(eins)


def get_eins_from_pdc(pdc: HttpClient) -> List[str]:
    ein_base_field_id = get_ein_base_field_id(pdc)
    return eins_from_proposals(pdc_api.get_proposals(pdc), ein_base_field_id)


# =============================================================================
# UPDATE
# =============================================================================

def update_ein(candid: HttpClient, pdc: HttpClient, ein: str) -> Any:
    """Look up one EIN in Candid and store the profile in the PDC."""
    profile = get_candid_profile(candid, ein)
    return pdc_api.post_platform_provider_data(pdc, ein, PLATFORM_PROVIDER, profile["data"])


def update_all(
    candid: HttpClient,
    pdc: HttpClient,
    eins: Sequence[str],
    delay: FixedDelay,
) -> tuple[int, int]:
    """
    Update every EIN one at a time, waiting `delay` after each one.

    A failure is logged and the loop moves on. The delay applies after
    failures too, since the call still counts against the rate limit.

    Returns:
        (succeeded, failed)
    """
    succeeded = failed = 0
    for i, ein in enumerate(eins, start=1):
        try:
            update_ein(candid, pdc, ein)
            succeeded += 1
            logger.debug(f"[{i}/{len(eins)}] Wrote data for {ein} to PDC")
        except SyncError as e:
            failed += 1
            logger.error(f"Error loading data for {ein}: {e}")
        delay.wait()
    return succeeded, failed


# =============================================================================
# COMMANDS
# =============================================================================

def _require_ein(ein: str) -> str:
    if not is_valid_ein(ein):
        raise ConfigurationError(f"Invalid EIN {ein!r}; expected 9 digits, e.g. 12-3456789")
    return ein


def cmd_lookup(args, settings: Settings) -> int:
    ein = _require_ein(args.ein)
    settings.require("candid_api_key")

    candid = candid_client(settings.candid_api_key, settings.timeout_sec)
    try:
        result = get_candid_profile(candid, ein)
    finally:
        candid.close()

    if args.output_file:
        Path(args.output_file).write_text(json.dumps(result, indent=2), encoding="utf-8")
        logger.info(f"Wrote Candid data for {ein} to {args.output_file}")
    else:
        logger.info(f"Candid result: {json.dumps(result, indent=2)}")
    return 0


def cmd_update(args, settings: Settings) -> int:
    ein = _require_ein(args.ein)
    settings.require("candid_api_key", "pdc_api_base_url")

    candid = candid_client(settings.candid_api_key, settings.timeout_sec)
    pdc = None
    try:
        pdc = pdc_client(settings)
        update_ein(candid, pdc, ein)
    finally:
        candid.close()
        if pdc:
            pdc.close()
    logger.info(f"Wrote data for {ein} to PDC")
    return 0


def cmd_update_all(args, settings: Settings) -> int:
    settings.require("candid_api_key", "pdc_api_base_url")

    candid = candid_client(settings.candid_api_key, settings.timeout_sec)
    pdc = None
    try:
        pdc = pdc_client(settings)
        eins = get_eins_from_pdc(pdc)
        logger.info(f"Found {len(eins)} valid EINs to look up in Candid")
        succeeded, failed = update_all(candid, pdc, eins, settings.candid_delay)
    finally:
        candid.close()
        if pdc:
            pdc.close()

    logger.info(f"Updated {succeeded} of {len(eins)} EINs ({failed} failed)")
    return 1 if failed else 0
