"""Google client utilities shared by the sheet and calendar integrations.

Credentials come from ``GOOGLE_SERVICE_ACCOUNT_JSON`` which may hold
either the full JSON payload of a service account key or a path to the
key file.  The service account must be shared on the workbooks and
calendars it reads.
"""

from __future__ import annotations

import json
import logging
import os
from typing import Any, Dict, List, Optional

import gspread
from google.oauth2.service_account import Credentials
from googleapiclient.discovery import build

log = logging.getLogger(__name__)

ENV_KEY = "GOOGLE_SERVICE_ACCOUNT_JSON"

SHEETS_SCOPES = [
    "https://www.googleapis.com/auth/spreadsheets.readonly",
    "https://www.googleapis.com/auth/drive.readonly",
]
CALENDAR_SCOPES = ["https://www.googleapis.com/auth/calendar.readonly"]


def _service_account_info(raw: Optional[str] = None) -> Dict[str, Any]:
    raw = (raw if raw is not None else os.getenv(ENV_KEY, "")).strip()
    if not raw:
        log.error("Environment variable %s is not configured.", ENV_KEY)
        raise RuntimeError(
            f"Environment variable {ENV_KEY} not found. "
            "Set it to the full JSON payload of your service account key."
        )

    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        pass

    # maybe it's a filepath
    try:
        with open(raw, "r", encoding="utf-8") as fh:
            return json.load(fh)
    except (OSError, json.JSONDecodeError) as exc:
        log.exception("Failed to parse service account JSON from %s", ENV_KEY)
        raise RuntimeError("Invalid service account JSON payload.") from exc


def _credentials(scopes: List[str], raw: Optional[str] = None) -> Credentials:
    info = _service_account_info(raw)
    try:
        return Credentials.from_service_account_info(info, scopes=scopes)
    except Exception:
        log.exception("Failed to build Google credentials from service account info.")
        raise


def sheets_client(raw: Optional[str] = None) -> gspread.Client:
    log.debug("Initialising Google Sheets client using %s", ENV_KEY)
    creds = _credentials(SHEETS_SCOPES, raw)
    try:
        client = gspread.authorize(creds)
    except Exception:
        log.exception("Failed to authorise Google Sheets client.")
        raise
    log.debug("Google Sheets client initialised successfully.")
    return client


def calendar_service(raw: Optional[str] = None):
    log.debug("Initialising Google Calendar service using %s", ENV_KEY)
    creds = _credentials(CALENDAR_SCOPES, raw)
    try:
        return build("calendar", "v3", credentials=creds, cache_discovery=False)
    except Exception:
        log.exception("Failed to build Google Calendar service.")
        raise
