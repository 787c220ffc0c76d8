"""
reconcile.py - Row Reconciliation
==================================
Turns one CSV row into one posted proposal version.

For every row:
1. Resolve the applicant by its external id (look up, create if absent)
2. Resolve the proposal by (opportunity id, applicant id, external id),
   looking in the proposal list fetched at the start of the run and
   creating it if absent
3. Match CSV column names to application form field labels and post a
   new proposal version with the non-empty values

Applicants and proposals are never updated. Proposal versions are never
deduplicated: running the same file twice posts every version twice, and
the PDC keeps both as separate revisions.

The proposal cache is a snapshot and is not updated when a proposal is
created here. Two rows with the same triple in one file will therefore
each create a proposal; the PDC's unique constraint (if enforced) decides
what happens to the second one.
"""

import logging
from typing import Sequence

from . import pdc_api
from .errors import (
    ApiError,
    ConflictError,
    MalformedResponse,
    MissingKeyColumn,
    SubmissionFailed,
    UnresolvableApplicant,
    UnresolvableProposal,
)
from .http_client import HttpClient
from .loader import CsvRow, row_excerpt
from .models import (
    Applicant,
    ApplicationForm,
    Proposal,
    ProposalFieldValue,
    ProposalVersion,
)


logger = logging.getLogger(__name__)


# =============================================================================
# APPLICANTS
# =============================================================================

def _find_applicant(applicants: Sequence[Applicant], external_id: str) -> Applicant | None:
    return next((a for a in applicants if a.external_id == external_id), None)


def resolve_applicant(client: HttpClient, external_id: str) -> Applicant:
    """
    Find the applicant with `external_id`, creating it if needed.

    A 409 on creation means someone (possibly another row of this same run)
    created it between our GET and POST, so the list is fetched one more time.

    Raises:
        UnresolvableApplicant: if the applicant is still missing after the retry,
            or the create call returned something that is not an applicant
        ApiError: for any other failed call
    """
    applicant = _find_applicant(pdc_api.get_applicants(client), external_id)
    if applicant is not None:
        logger.debug(f"Found existing applicant id={applicant.id} for externalId={external_id}")
        return applicant

    try:
        applicant = pdc_api.post_applicant(client, external_id)
        logger.info(f"Created applicant id={applicant.id} for externalId={external_id}")
        return applicant
    except ConflictError:
        logger.info(f"Applicant externalId={external_id} already exists (409), fetching applicants again")
    except MalformedResponse as e:
        raise UnresolvableApplicant(
            f"Creating applicant externalId={external_id} returned no usable record: {e}"
        ) from e

    applicant = _find_applicant(pdc_api.get_applicants(client), external_id)
    if applicant is None:
        raise UnresolvableApplicant(f"Could not GET or POST an applicant with externalId={external_id}")
    return applicant


# =============================================================================
# PROPOSALS
# =============================================================================

def resolve_proposal(
    client: HttpClient,
    proposals: Sequence[Proposal],
    opportunity_id: int,
    applicant: Applicant,
    external_id: str,
) -> Proposal:
    """
    Pick the cached proposal for the triple, or create one.

    `proposals` is the run-start snapshot and is not modified.

    Raises:
        UnresolvableProposal: if the create call returned no usable record
        ApiError: if the create call failed
    """
    proposal = next(
        (p for p in proposals if p.matches(opportunity_id, applicant.id, external_id)),
        None,
    )
    if proposal is not None:
        logger.info(
            f"Found existing proposal with id={proposal.id} for opportunityId={opportunity_id}, "
            f"applicantId={applicant.id}, and externalId={external_id}"
        )
        return proposal

    logger.info(
        f"No existing proposal for opportunityId={opportunity_id}, "
        f"applicantId={applicant.id}, and externalId={external_id}"
    )
    try:
        proposal = pdc_api.post_proposal(client, applicant.id, opportunity_id, external_id)
    except MalformedResponse as e:
        raise UnresolvableProposal(
            f"Creating proposal for externalId={external_id} returned no usable record: {e}"
        ) from e
    logger.info(f"Created proposal id={proposal.id}")
    return proposal


# =============================================================================
# FIELD VALUES
# =============================================================================

def build_field_values(
    proposal: Proposal,
    form: ApplicationForm,
    row: CsvRow,
) -> list[ProposalFieldValue]:
    """
    One value per (column, matching form field) pair with a non-empty cell.

    A column may match several fields (e.g. "Organization Legal Name" feeding
    both a legal-name and a display-name field); each match gets the value.
    Columns matching no field label are logged and ignored.
    """
    values = []
    for key, value in row.items():
        matches = form.fields_labelled(key)
        if not matches:
            logger.info(f"Failed to find any field label matching '{key}' in row '{row_excerpt(row)}'")
            continue

        if value is None or value == "":
            logger.info(f"Field value for '{key}' for proposal '{proposal.id}' was null or empty: skipped.")
            continue

        for form_field in matches:
            values.append(ProposalFieldValue(
                application_form_field_id=form_field.id,
                position=form_field.position,
                value=value,
            ))
    return values


def submit_proposal_version(
    client: HttpClient,
    proposal: Proposal,
    form: ApplicationForm,
    row: CsvRow,
) -> ProposalVersion:
    """
    Compose and post a new proposal version for `proposal`.

    A 2xx reply counts as accepted whatever its body; the body is not read.

    Raises:
        SubmissionFailed: if the POST fails; not retried
    """
    version = ProposalVersion(
        proposal_id=proposal.id,
        application_form_id=form.id,
        field_values=build_field_values(proposal, form, row),
    )
    try:
        pdc_api.post_proposal_version(client, version)
    except MalformedResponse as e:
        logger.debug(f"Version for proposal {proposal.id} accepted with a non-JSON reply: {e}")
    except ApiError as e:
        raise SubmissionFailed(f"Posting version for proposal {proposal.id} failed: {e}") from e

    logger.debug(f"Posted version for proposal {proposal.id} with {len(version.field_values)} values")
    return version


# =============================================================================
# ONE ROW, END TO END
# =============================================================================

def _key_value(row: CsvRow, column: str) -> str:
    value = row.get(column)
    if not value:
        raise MissingKeyColumn(f"Row '{row_excerpt(row)}' had no value in column '{column}'")
    return value


def process_row(
    client: HttpClient,
    form: ApplicationForm,
    proposals: Sequence[Proposal],
    row: CsvRow,
    applicant_column: str,
    proposal_column: str,
) -> ProposalVersion:
    """Resolve applicant, resolve proposal, post the version."""
    applicant = resolve_applicant(client, _key_value(row, applicant_column))

    proposal_external_id = _key_value(row, proposal_column)
    proposal = resolve_proposal(
        client, proposals, form.opportunity_id, applicant, proposal_external_id
    )

    return submit_proposal_version(client, proposal, form, row)
