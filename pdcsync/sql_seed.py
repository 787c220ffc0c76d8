"""
sql_seed.py - Base Field INSERT Generator
==========================================
Turns the field definition spreadsheet (exported to CSV, columns `Label`,
`Internal field name`, `Type`) into one multi-row INSERT statement for
seeding the base fields table.
"""

import logging
from pathlib import Path
from typing import Sequence

from .config import Settings
from .errors import ConfigurationError
from .loader import CsvRow, load_rows


logger = logging.getLogger(__name__)

REQUIRED_COLUMNS = ["Label", "Internal field name", "Type"]

# canonical_fields is the table's name in older PDC schemas
ALLOWED_TABLES = ("base_fields", "canonical_fields")


def _quote(value: str) -> str:
    return "'" + value.replace("'", "''") + "'"


def build_insert_statement(rows: Sequence[CsvRow], table: str = "base_fields") -> str:
    if table not in ALLOWED_TABLES:
        raise ConfigurationError(f"Unknown table {table!r}; expected one of {ALLOWED_TABLES}")
    if not rows:
        raise ConfigurationError("No field definitions to insert")

    values = [
        f"({_quote(row['Label'])}, {_quote(row['Internal field name'])}, {_quote(row['Type'])})"
        for row in rows
    ]
    return (
        f"INSERT INTO {table} (label, short_code, data_type) VALUES\n"
        + ",\n".join(values)
        + ";\n"
    )


def cmd_generate_base_fields_inserts(args, settings: Settings) -> int:
    rows = load_rows(args.input_file, delimiter=args.delimiter, required_columns=REQUIRED_COLUMNS)
    sql = build_insert_statement(rows, args.table)

    output = Path(args.output_file)
    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_text(sql, encoding="utf-8")
    logger.info(f"Wrote INSERT for {len(rows)} fields into {args.table} to {output.resolve()}")
    return 0
