"""
form_schema.py - Application Form JSON Generator
=================================================
Builds the JSON body for POST /applicationForms from the shared field
mapping spreadsheet (exported to CSV).

Input columns:
--------------
- Internal field name        : base field short code, e.g. "organization_name"
- <funder>: external ID      : the funder's own id for the field; empty means
                               the funder's form does not use this field
- <funder>: field label      : label shown on the funder's form
- <funder>: form position    : (optional) position on the funder's form

Output:
-------
    {"opportunityId": 12,
     "fields": [{"baseFieldId": 3, "position": 1, "label": "Organization Name"}, ...]}
"""

import json
import logging
from pathlib import Path
from typing import Dict, List, Sequence

from . import pdc_api
from .config import Settings
from .loader import CsvRow, load_rows
from .models import BaseField
from .oidc import pdc_client


logger = logging.getLogger(__name__)

SHORT_CODE_COLUMN = "Internal field name"


def funder_columns(funder: str) -> Dict[str, str]:
    return {
        "external_id": f"{funder}: external ID",
        "label": f"{funder}: field label",
        "position": f"{funder}: form position",
    }


def build_application_form(
    opportunity_id: int,
    funder: str,
    rows: Sequence[CsvRow],
    base_fields: Sequence[BaseField],
) -> dict:
    """
    One form field per row that the funder uses and whose short code is known.

    Position comes from the funder's form position column when it holds a
    number; otherwise fields are numbered in file order.
    """
    columns = funder_columns(funder)
    by_short_code = {bf.short_code: bf for bf in base_fields}
    fields: List[dict] = []

    for row in rows:
        if not row.get(columns["external_id"]):
            continue

        short_code = row.get(SHORT_CODE_COLUMN, "")
        base_field = by_short_code.get(short_code)
        if base_field is None:
            logger.warning(f"No base field with short code '{short_code}': skipped.")
            continue

        raw_position = row.get(columns["position"], "").strip()
        position = int(raw_position) if raw_position.isdigit() else len(fields) + 1

        fields.append({
            "baseFieldId": base_field.id,
            "position": position,
            "label": row.get(columns["label"], ""),
        })

    return {"opportunityId": opportunity_id, "fields": fields}


def cmd_generate_application_form_json(args, settings: Settings) -> int:
    columns = funder_columns(args.funder)
    rows = load_rows(
        args.input_file,
        delimiter=args.delimiter,
        required_columns=[SHORT_CODE_COLUMN, columns["external_id"], columns["label"]],
    )
    logger.info(f"Loaded {len(rows)} rows from {args.input_file}")

    pdc = pdc_client(settings)
    try:
        base_fields = pdc_api.get_base_fields(pdc)
    finally:
        pdc.close()
    logger.info(f"Got {len(base_fields)} base fields")

    form = build_application_form(args.opportunity_id, args.funder, rows, base_fields)

    output = Path(args.output_file)
    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_text(json.dumps(form, indent=2), encoding="utf-8")
    logger.info(f"Wrote application form with {len(form['fields'])} fields to {output.resolve()}")
    return 0
