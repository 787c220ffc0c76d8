"""
loader.py - Input File Loader
==============================
This module loads delimited text files (comma- or pipe-separated) exported
from spreadsheets into a list of rows, one dict per line.

Every value is kept as text:
- No numeric conversion (EINs and ids keep their leading zeros)
- No NA detection (an empty cell is "" rather than NaN, so "N/A" stays "N/A")

Column names are NOT normalized. They are matched verbatim against
application form field labels, so "Org Name" and "org_name" are different
columns. A header that repeats a label is rejected, since pandas would
rename the copy ("Org Name.1") and it would silently match nothing.
"""

import logging
from pathlib import Path
from typing import Dict, Iterable, List

import pandas as pd

from .errors import ConfigurationError


logger = logging.getLogger(__name__)

CsvRow = Dict[str, str]

SUPPORTED_DELIMITERS = {",": "comma", "|": "pipe", "\t": "tab"}


def row_excerpt(row: CsvRow, limit: int = 40) -> str:
    """The first few characters of a row, for log lines."""
    text = ", ".join(f"{k}={v}" for k, v in row.items())
    return text if len(text) <= limit else text[:limit] + "..."


# =============================================================================
# MAIN DATA LOADER
# =============================================================================

def _duplicate_labels(path: Path, delimiter: str) -> List[str]:
    header = pd.read_csv(path, sep=delimiter, header=None, nrows=1, dtype=str,
                         keep_default_na=False, encoding="utf-8")
    labels = header.iloc[0].tolist() if len(header) else []
    seen = set()
    duplicates = []
    for label in labels:
        if label in seen and label not in duplicates:
            duplicates.append(label)
        seen.add(label)
    return duplicates


def load_rows(
    filepath: str,
    delimiter: str = ",",
    required_columns: Iterable[str] = (),
) -> List[CsvRow]:
    """
    Load a delimited file into a list of text-only rows.

    Args:
        filepath: Path to the input file
        delimiter: Field separator; "," or "|" in practice
        required_columns: Columns that must be present in the header

    Returns:
        One dict per data line, keyed by header name, in file order.

    Raises:
        FileNotFoundError: If the input file doesn't exist
        ConfigurationError: If the file is empty or unparseable, repeats a
            header label, or lacks a required column
    """
    path = Path(filepath)
    if not path.exists():
        raise FileNotFoundError(f"Input file not found: {filepath}")

    try:
        duplicates = _duplicate_labels(path, delimiter)
        df = pd.read_csv(
            path,
            sep=delimiter,
            dtype=str,
            keep_default_na=False,
            encoding="utf-8",
            skipinitialspace=False,
        )
    except pd.errors.EmptyDataError as e:
        raise ConfigurationError(f"Input file {path.name} is empty") from e
    except pd.errors.ParserError as e:
        raise ConfigurationError(f"Could not parse {path.name}: {e}") from e

    if duplicates:
        raise ConfigurationError(f"Duplicate column labels in {path.name}: {duplicates}")

    # Lines with nothing but separators
    df = df[~(df == "").all(axis=1)]

    missing = [col for col in required_columns if col not in df.columns]
    if missing:
        raise ConfigurationError(
            f"Required columns missing from {path.name}: {missing}. "
            f"Available columns: {list(df.columns)}"
        )

    rows = df.to_dict("records")
    logger.debug(
        f"Loaded {len(rows)} rows with {len(df.columns)} columns from {path} "
        f"({SUPPORTED_DELIMITERS.get(delimiter, repr(delimiter))}-delimited)"
    )
    return rows
