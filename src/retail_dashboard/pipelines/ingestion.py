from __future__ import annotations

import csv
import io
from pathlib import Path
from typing import Any, Iterable, Iterator, List, Sequence, Union

import pandas as pd

from retail_dashboard.domain.errors import SchemaMismatch
from retail_dashboard.utilities.log import get_logger

log = get_logger(__name__)

CsvSource = Union[str, Path, bytes, io.IOBase, pd.DataFrame]


# -----------------------------------------------------------------------------
# Helpers
# -----------------------------------------------------------------------------
def _infer_delimiter(path: Path) -> str:
    suffix = path.suffix.lower()
    if suffix in {".csv", ".txt", ""}:
        return ","
    if suffix in {".tsv"}:
        return "\t"
    raise SchemaMismatch(f"Unsupported dataset format: '{suffix}'. Use CSV/TSV.")


def _iter_rows(handle: Iterable[str], *, delimiter: str) -> Iterator[List[str]]:
    # blank lines carry no record
    reader = csv.reader(handle, delimiter=delimiter, skipinitialspace=True)
    for row in reader:
        if row and any(cell.strip() for cell in row):
            yield row


def _read(handle: Iterable[str], *, delimiter: str) -> pd.DataFrame:
    """
    Parse delimited text into a raw table of strings.

    Every record must have exactly one field per header column: a short row
    and a long row are both a SchemaMismatch. Blank fields become None (missing)
    and are left for the cleaner.
    """
    try:
        rows = _iter_rows(handle, delimiter=delimiter)
        header = next(rows, None)
        if header is None:
            raise SchemaMismatch("The uploaded file is empty (no header row).")
        records = ([cell if cell.strip() else None for cell in row] for row in rows)
        return records_to_frame(header, records)
    except csv.Error as exc:
        raise SchemaMismatch(f"Malformed CSV: {exc}") from exc
    except UnicodeDecodeError as exc:
        raise SchemaMismatch(f"The uploaded file is not valid text: {exc}") from exc


# -----------------------------------------------------------------------------
# Public API
# -----------------------------------------------------------------------------
def load_raw_table(source: CsvSource) -> pd.DataFrame:
    """
    Read an uploaded CSV (header row required) into a raw DataFrame.

    Accepts a path, raw bytes, a binary/text file handle, or an already
    parsed DataFrame (returned as a copy). Rows whose field count differs
    from the header fail with SchemaMismatch; missing values are left for
    the cleaner.
    """
    if isinstance(source, pd.DataFrame):
        return source.copy()

    if isinstance(source, bytes):
        try:
            text = source.decode("utf-8-sig")
        except UnicodeDecodeError as exc:
            raise SchemaMismatch(f"The uploaded file is not valid text: {exc}") from exc
        df = _read(io.StringIO(text, newline=""), delimiter=",")
    elif isinstance(source, (str, Path)):
        path = Path(source)
        if not path.exists():
            raise FileNotFoundError(f"Dataset not found: {path}")
        delimiter = _infer_delimiter(path)
        with open(path, "r", newline="", encoding="utf-8-sig") as f:
            df = _read(f, delimiter=delimiter)
    elif isinstance(source, io.TextIOBase):
        df = _read(source, delimiter=",")
    else:
        text = io.TextIOWrapper(source, encoding="utf-8-sig", newline="")
        try:
            df = _read(text, delimiter=",")
        finally:
            # leave the caller's binary handle open
            text.detach()

    log.info("Loaded raw table: %d rows x %d columns", len(df), df.shape[1])
    return df


def records_to_frame(header: Sequence[str], rows: Iterable[Sequence[Any]]) -> pd.DataFrame:
    """
    Build a raw table from already-split records. Every record must have
    exactly one value per header field.
    """
    header = [str(h).strip() for h in header]
    if len(set(header)) != len(header):
        raise SchemaMismatch(f"Duplicate column names in header: {header}")

    data = []
    for i, row in enumerate(rows):
        row = list(row)
        if len(row) != len(header):
            raise SchemaMismatch(
                f"Record {i} has {len(row)} fields, expected {len(header)} ({header})"
            )
        data.append(row)

    return pd.DataFrame(data, columns=header)
