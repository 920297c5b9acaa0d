"""Machine records for the machines grid.

Rows are read straight from the Machines tab on every load; caching of
the derived payloads happens one level up, keyed by the cache version.
"""

from __future__ import annotations

import logging
import re
from typing import Any, Dict, List, Optional

from .google_sheets import get_worksheet, open_spreadsheet, sheet_values, values_to_frame

log = logging.getLogger(__name__)

TEXT_FIELDS = ("name", "category", "location", "status", "access", "description", "specs")

DEFAULT_BRAND = {
    "ok": "#22C55E",
    "warn": "#F59E0B",
    "danger": "#EF4444",
    "cardEdge": "#e5e7eb",
}


def normalize_key(key: Any) -> str:
    return re.sub(r"\s+", "_", str(key).strip().lower())


def split_to_list(value: Any) -> List[str]:
    if not value:
        return []
    return [part.strip() for part in re.split(r"[;,]", str(value)) if part.strip()]


def _text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def _first(record: Dict[str, Any], *keys: str) -> Any:
    for key in keys:
        if record.get(key):
            return record[key]
    return ""


def pick_status_color(status: Any, brand: Optional[Dict[str, str]] = None) -> str:
    brand = brand or DEFAULT_BRAND
    s = _text(status).lower()
    if "down" in s or "offline" in s or "out of service" in s:
        return brand["danger"]
    if "restricted" in s or "limited" in s:
        return brand["warn"]
    return brand["ok"]


def pick_hazard_color(hazard: Any, brand: Optional[Dict[str, str]] = None) -> str:
    brand = brand or DEFAULT_BRAND
    h = _text(hazard)
    if h == "3":
        return brand["danger"]
    if h == "2":
        return brand["warn"]
    if h == "1":
        return brand["ok"]
    return brand["cardEdge"]


def _is_blank_row(row: List[Any]) -> bool:
    return all(cell is None or cell == "" for cell in row)


def load_machines(values: List[List[Any]], brand: Optional[Dict[str, str]] = None) -> List[Dict[str, Any]]:
    """Shape raw sheet values (header row first) into machine records."""
    if len(values) < 2:
        return []

    rows = [values[0]] + [r for r in values[1:] if not _is_blank_row(r)]
    df = values_to_frame(rows, header_fn=normalize_key)

    machines = []
    for record in df.to_dict("records"):
        for field in TEXT_FIELDS:
            record[field] = _text(record.get(field))
        record["hazard_class"] = _text(_first(record, "hazard_class", "hazardclass"))
        record["access_chips"] = split_to_list(_first(record, "access_chips", "accesschips"))
        record["tags"] = split_to_list(record.get("tags"))
        record["thumbnail_url"] = _text(_first(record, "thumbnail_url", "thumbnailurl"))
        record["detail_url"] = _text(_first(record, "detail_url", "detailurl"))

        record["status_color"] = pick_status_color(record["status"], brand)
        record["hazard_color"] = pick_hazard_color(record["hazard_class"], brand)
        machines.append(record)
    return machines


def get_machines(app) -> List[Dict[str, Any]]:
    """Read the Machines tab configured on *app* and shape its rows."""
    sheet_id = app.config.get("MACHINES_SPREADSHEET_ID")
    tab_name = app.config.get("MACHINES_SHEET_NAME", "Machines")
    if not sheet_id:
        raise RuntimeError("MACHINES_SPREADSHEET_ID is not configured.")

    spreadsheet = open_spreadsheet(sheet_id, app.config.get("GOOGLE_SERVICE_ACCOUNT_JSON") or None)
    ws = get_worksheet(spreadsheet, tab_name)
    if ws is None:
        raise ValueError(f'Sheet "{tab_name}" not found.')

    machines = load_machines(sheet_values(ws), app.config.get("BRAND"))
    log.info("Loaded %d machines from %s", len(machines), tab_name)
    return machines
