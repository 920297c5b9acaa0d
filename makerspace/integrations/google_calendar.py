"""Google Calendar helpers: event listing and free/busy lookups."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, List, Tuple

import pandas as pd
from googleapiclient.errors import HttpError

log = logging.getLogger(__name__)

Interval = Tuple[datetime, datetime]


def parse_timestamp(value: str, tz=None) -> datetime:
    """Parse an RFC 3339 timestamp into an aware datetime (in *tz* if given)."""
    ts = pd.Timestamp(value)
    if ts.tzinfo is None and tz is not None:
        ts = ts.tz_localize(tz)
    elif tz is not None:
        ts = ts.tz_convert(tz)
    return ts.to_pydatetime()


def list_events(service, calendar_id: str, start: datetime, end: datetime) -> List[Dict[str, Any]]:
    """Return every single (expanded) event overlapping ``[start, end)``."""
    events: List[Dict[str, Any]] = []
    page_token = None
    while True:
        try:
            resp = service.events().list(
                calendarId=calendar_id,
                timeMin=start.isoformat(),
                timeMax=end.isoformat(),
                singleEvents=True,
                orderBy="startTime",
                pageToken=page_token,
            ).execute()
        except HttpError as exc:
            if getattr(exc, "status_code", None) == 404 or getattr(exc.resp, "status", None) == 404:
                raise LookupError("Calendar not found. Check Settings.calendar_id.") from exc
            log.exception("Failed to list events", extra={"calendar_id": calendar_id})
            raise
        events.extend(resp.get("items", []))
        page_token = resp.get("nextPageToken")
        if not page_token:
            break
    log.debug("Calendar %s returned %d events", calendar_id, len(events))
    return events


def is_all_day(event: Dict[str, Any]) -> bool:
    start = event.get("start") or {}
    return "dateTime" not in start and "date" in start


def event_bounds(event: Dict[str, Any], tz=None) -> Interval:
    start = parse_timestamp(event["start"]["dateTime"], tz)
    end = parse_timestamp(event["end"]["dateTime"], tz)
    return start, end


def event_guest_emails(event: Dict[str, Any]) -> List[str]:
    return [(a.get("email") or "").lower() for a in event.get("attendees", []) or []]


def get_busy_intervals(service, calendar_id: str, start: datetime, end: datetime, tz_name: str) -> List[Interval]:
    """Query free/busy for one calendar and return its busy intervals."""
    body = {
        "timeMin": start.isoformat(),
        "timeMax": end.isoformat(),
        "timeZone": tz_name,
        "items": [{"id": calendar_id}],
    }
    resp = service.freebusy().query(body=body).execute()
    calendars = resp.get("calendars") or {}
    key = next(iter(calendars), calendar_id)
    busy = (calendars.get(key) or {}).get("busy") or []
    intervals = [(parse_timestamp(b["start"]), parse_timestamp(b["end"])) for b in busy]
    log.debug("Free/busy for %s returned %d busy intervals", calendar_id, len(intervals))
    return intervals


def is_busy_at(intervals: List[Interval], when: datetime) -> bool:
    return any(start <= when < end for start, end in intervals)
