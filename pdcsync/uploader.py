"""
uploader.py - Proposal Version Upload Driver
=============================================
Runs the row reconciliation (reconcile.py) over every row of a CSV file.

What it does:
-------------
1. Fetches the application form (with its fields) and every existing proposal,
   once, before any row is touched
2. Submits every row to a thread pool at the same time
3. Waits for all of them and collects successes and failures
4. Logs the totals: rows read, versions posted, rows failed

A failed row never stops the other rows. The caller gets the failures back
and decides the exit code.
"""

import json
import logging
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Sequence

from . import pdc_api
from .config import Settings
from .errors import SyncError
from .http_client import HttpClient
from .loader import CsvRow, load_rows, row_excerpt
from .models import ApplicationForm, Proposal, ProposalVersion
from .oidc import pdc_client
from .reconcile import process_row


logger = logging.getLogger(__name__)


# =============================================================================
# RESULT TYPES
# =============================================================================

@dataclass
class RowFailure:
    row_number: int  # 1-based, first data line = 1
    excerpt: str
    error: Exception


@dataclass
class UploadSummary:
    rows_read: int = 0
    versions: List[ProposalVersion] = field(default_factory=list)
    failures: List[RowFailure] = field(default_factory=list)

    @property
    def versions_posted(self) -> int:
        return len(self.versions)

    @property
    def ok(self) -> bool:
        return not self.failures


# =============================================================================
# SETUP
# =============================================================================

def fetch_snapshot(client: HttpClient, application_form_id: int) -> tuple[ApplicationForm, list[Proposal]]:
    """
    The read-only state every row shares: the form and the proposal list.

    Any error here is fatal for the whole run.
    """
    form = pdc_api.get_application_form(client, application_form_id)
    logger.info(
        f"Got application form id={form.id} for opportunityId={form.opportunity_id} "
        f"with {len(form.fields)} fields"
    )

    proposals = pdc_api.get_proposals(client)
    logger.info(f"Got {len(proposals)} existing proposals.")
    return form, proposals


def describe_column_matches(form: ApplicationForm, columns: Sequence[str]) -> None:
    """Log which CSV columns will feed which form fields (dry runs)."""
    for column in columns:
        matches = form.fields_labelled(column)
        if matches:
            ids = ", ".join(str(f.id) for f in matches)
            logger.info(f"Column '{column}' -> form field id(s) {ids}")
        else:
            logger.info(f"Column '{column}' matches no form field label and will be skipped")


# =============================================================================
# MAIN DRIVER
# =============================================================================

def upload_rows(
    client: HttpClient,
    form: ApplicationForm,
    proposals: Sequence[Proposal],
    rows: Sequence[CsvRow],
    applicant_column: str,
    proposal_column: str,
    max_workers: int | None = None,
) -> UploadSummary:
    """
    Post one proposal version per row.

    Args:
        client: Authenticated PDC client
        form: Application form fetched by fetch_snapshot()
        proposals: Proposal list fetched by fetch_snapshot(); never modified
        rows: CSV rows
        applicant_column: Column holding the applicant external id
        proposal_column: Column holding the proposal external id
        max_workers: Concurrency cap; None runs every row at once

    Returns:
        UploadSummary with the posted versions and per-row failures
    """
    summary = UploadSummary(rows_read=len(rows))
    if not rows:
        logger.warning("No rows to upload")
        return summary

    workers = max_workers or len(rows)
    client.set_pool_size(workers)
    start_time = time.time()

    with ThreadPoolExecutor(max_workers=workers) as executor:
        futures = {
            executor.submit(
                process_row, client, form, proposals, row, applicant_column, proposal_column
            ): number
            for number, row in enumerate(rows, start=1)
        }

        for future in as_completed(futures):
            number = futures[future]
            row = rows[number - 1]
            try:
                version = future.result()
            except SyncError as e:
                logger.error(f"Row {number} ('{row_excerpt(row)}') failed: {e}")
                summary.failures.append(RowFailure(number, row_excerpt(row), e))
                continue
            logger.info(f"Row {number}: posted version for proposal {version.proposal_id}")
            summary.versions.append(version)

    elapsed = time.time() - start_time
    logger.info("-" * 50)
    logger.info(f"Finished in {elapsed:.1f} seconds.")
    logger.info(
        f"Read {summary.rows_read} rows, posted {summary.versions_posted} proposal versions, "
        f"{len(summary.failures)} rows failed."
    )
    logger.info("-" * 50)
    return summary


def write_versions_json(versions: Sequence[ProposalVersion], output_path: Path) -> None:
    """Write the posted payloads, exactly as sent, to a JSON file."""
    output_path.parent.mkdir(parents=True, exist_ok=True)
    with open(output_path, "w", encoding="utf-8") as f:
        json.dump([v.to_json() for v in versions], f, indent=2)
    logger.info(f"Wrote {len(versions)} proposal versions to {output_path.resolve()}")


# =============================================================================
# COMMAND: post-proposal-versions
# =============================================================================

def cmd_post_proposal_versions(args, settings: Settings) -> int:
    """
    Load the CSV, fetch the shared snapshot, upload every row.

    Returns 1 if any row failed, 0 otherwise. Setup failures (bad input file,
    unreachable PDC) raise and are handled by the CLI.
    """
    logger.info(f"Loading data from {args.input_file}...")
    rows = load_rows(
        args.input_file,
        delimiter=args.delimiter,
        required_columns=[args.applicant_column_name, args.proposal_external_id_column_name],
    )
    logger.info(f"Loaded {len(rows)} rows")

    client = pdc_client(settings)
    try:
        form, proposals = fetch_snapshot(client, args.application_form_id)

        if args.dry_run:
            logger.info("DRY RUN MODE - nothing will be created")
            describe_column_matches(form, list(rows[0].keys()) if rows else [])
            return 0

        summary = upload_rows(
            client,
            form,
            proposals,
            rows,
            args.applicant_column_name,
            args.proposal_external_id_column_name,
            max_workers=settings.max_workers,
        )
    finally:
        client.close()

    if args.output_file:
        write_versions_json(summary.versions, Path(args.output_file))

    return 0 if summary.ok else 1
