"""
pdc_api.py - PDC Endpoint Functions
====================================
One function per PDC endpoint. Each takes an authenticated HttpClient,
makes the call, and validates the response into records from models.py.
"""

import logging
from typing import Any

from .http_client import HttpClient
from .models import (
    Applicant,
    ApplicationForm,
    BaseField,
    Proposal,
    ProposalVersion,
    parse_bundle,
    expect_list,
)


logger = logging.getLogger(__name__)

# GET /proposals is paginated; one huge page gets everything in one call
PROPOSALS_PAGE_SIZE = 100000


def _entries(data: Any, what: str) -> list:
    # /applicants has been served both as a bare array and as a bundle
    if isinstance(data, dict) and "entries" in data:
        return parse_bundle(data, what)
    return expect_list(data, what)


def get_application_form(client: HttpClient, form_id: int) -> ApplicationForm:
    data = client.get_json(f"/applicationForms/{form_id}", {"includeFields": "true"})
    return ApplicationForm.from_json(data)


def get_proposals(client: HttpClient) -> list[Proposal]:
    data = client.get_json("/proposals", {"_page": 1, "_count": PROPOSALS_PAGE_SIZE})
    return [Proposal.from_json(p) for p in parse_bundle(data, "proposals")]


def get_applicants(client: HttpClient) -> list[Applicant]:
    data = client.get_json("/applicants")
    return [Applicant.from_json(a) for a in _entries(data, "applicants")]


def post_applicant(client: HttpClient, external_id: str) -> Applicant:
    """Raises ConflictError if the applicant already exists."""
    return Applicant.from_json(client.post_json("/applicants", {"externalId": external_id}))


def post_proposal(
    client: HttpClient,
    applicant_id: int,
    opportunity_id: int,
    external_id: str,
) -> Proposal:
    data = client.post_json("/proposals", {
        "applicantId": applicant_id,
        "opportunityId": opportunity_id,
        "externalId": external_id,
    })
    return Proposal.from_json(data)


def post_proposal_version(client: HttpClient, version: ProposalVersion) -> Any:
    # Accepted as-is; nothing in the response is reconciled
    return client.post_json("/proposalVersions", version.to_json())


def get_base_fields(client: HttpClient) -> list[BaseField]:
    data = client.get_json("/baseFields")
    return [BaseField.from_json(f) for f in _entries(data, "base fields")]


def post_platform_provider_data(
    client: HttpClient,
    external_id: str,
    platform_provider: str,
    data: Any,
) -> Any:
    """Store a provider's raw record for an organization, keyed by EIN."""
    return client.post_json("/platformProviderResponses", {
        "externalId": external_id,
        "platformProvider": platform_provider,
        "data": data,
    })
