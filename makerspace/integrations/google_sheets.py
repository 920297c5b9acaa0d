"""Thin helpers for reading tabular data out of Google Sheets."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import gspread
import pandas as pd

from . import sheets_client

log = logging.getLogger(__name__)


def open_spreadsheet(sheet_id: str, credentials_json: Optional[str] = None) -> gspread.Spreadsheet:
    if not sheet_id:
        raise RuntimeError("Spreadsheet id is not configured.")
    log.debug("Opening spreadsheet %s", sheet_id)
    try:
        return sheets_client(credentials_json).open_by_key(sheet_id)
    except Exception:
        log.exception("Failed to open spreadsheet", extra={"sheet_id": sheet_id})
        raise


def get_worksheet(spreadsheet, tab_name: str) -> Optional[gspread.Worksheet]:
    """Return the named tab, or ``None`` when the workbook has no such tab."""
    try:
        return spreadsheet.worksheet(tab_name)
    except gspread.exceptions.WorksheetNotFound:
        log.debug("Worksheet %s not found", tab_name)
        return None


def sheet_values(ws) -> List[List[Any]]:
    log.debug("Fetching all values for worksheet %s", ws.title)
    rows = ws.get_all_values()
    log.debug("Worksheet %s returned %d rows", ws.title, len(rows))
    return rows


def _pad(rows: List[List[Any]], width: int) -> List[List[Any]]:
    return [(list(r) + [""] * width)[:width] for r in rows]


def values_to_frame(values: List[List[Any]], header_fn=None) -> pd.DataFrame:
    """Turn a header row plus data rows into a DataFrame.

    ``header_fn`` normalises each header cell; when two headers collapse
    to the same key the right-most column wins.
    """
    if not values:
        return pd.DataFrame()
    header_fn = header_fn or (lambda h: str(h if h is not None else "").strip())
    header = [header_fn(h) for h in values[0]]
    df = pd.DataFrame(_pad(values[1:], len(header)), columns=header, dtype=object)
    return df.loc[:, ~df.columns.duplicated(keep="last")]


def table_to_records(ws) -> List[Dict[str, Any]]:
    """Read a worksheet whose first row is a header into a list of dicts."""
    if ws is None:
        return []
    values = sheet_values(ws)
    if not values:
        return []
    return values_to_frame(values).to_dict("records")


def read_tables(spreadsheet, tab_names: List[str]) -> Dict[str, List[Dict[str, Any]]]:
    tables = {}
    for name in tab_names:
        tables[name] = table_to_records(get_worksheet(spreadsheet, name))
        log.debug("Read %d rows from %s", len(tables[name]), name)
    return tables
