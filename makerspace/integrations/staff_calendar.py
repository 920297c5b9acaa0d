#!/usr/bin/env python3
"""Weekly staff calendar assembly.

The staff workbook holds four tabs:

- ``Settings``  key/value rows (timezone, calendar ids, match mode, ...)
- ``Skills``    the canonical skill names shown as filter chips
- ``Staff``     one row per person (staff_id, name, email, skills_csv, ...)
- ``Shifts``    optional fallback rows (staff_id, start, end, location)

Shifts normally come from a shared Google Calendar: each event title is
matched against staff names, falling back to the guest list when the
title names nobody.  A second calendar can be queried for free/busy so
that one person shows up as "available" whenever they are not busy.

The result is a JSON-friendly dict with one row per hour and one cell per
weekday, each cell listing who is on duty and which skills are covered.
"""

from __future__ import annotations

import logging
import re
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from typing import Any, Callable, Dict, List, Optional, Pattern

import pandas as pd
import pytz

from .google_calendar import event_bounds, event_guest_emails, get_busy_intervals, is_all_day, is_busy_at, list_events

log = logging.getLogger(__name__)

TABLES = ("Settings", "Skills", "Staff", "Shifts")

DEFAULT_TIMEZONE = "America/Los_Angeles"
DEFAULT_EXCLUDE_RE = re.compile(r"\bout\b", re.I)
MATCH_MODES = ("title_only", "title_first", "guests_only")
WEEKDAY_ABBR = ("Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun")

DEFAULT_FIRST_HOUR = 9
DEFAULT_LAST_HOUR = 18


# ---------------------------------------------------------------------------
# Small helpers
# ---------------------------------------------------------------------------


def normalize(value: Any) -> str:
    return re.sub(r"\s+", " ", str(value or "").lower()).strip()


def _text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def parse_int(value: Any, default: int) -> int:
    """Read a leading integer the way a browser's ``parseInt`` would."""
    m = re.match(r"\s*([+-]?\d+)", str(value if value is not None else ""))
    return int(m.group(1)) if m else default


def split_csv(value: Any) -> List[str]:
    return [part.strip() for part in str(value or "").split(",") if part.strip()]


def dedupe(items: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    seen = set()
    out = []
    for item in items:
        key = item.get("id") or item.get("email") or item.get("name")
        if key in seen:
            continue
        seen.add(key)
        out.append(item)
    return out


def _word_re(text: str) -> Pattern:
    return re.compile(r"\b" + re.escape(text) + r"\b", re.I)


def staff_from_title(title: str, staff_by_name: Dict[str, Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Find staff whose name appears as whole words in *title*.

    Full names win; only when no full name matches are first names tried,
    and then only first names that belong to exactly one person.
    """
    lower = (title or "").lower()

    hits = [staff for norm_name, staff in staff_by_name.items() if _word_re(norm_name).search(lower)]
    if hits:
        return dedupe(hits)

    first_count: Dict[str, int] = {}
    first_map: Dict[str, Dict[str, Any]] = {}
    for staff in staff_by_name.values():
        first = normalize(staff.get("name")).split(" ")[0]
        if not first:
            continue
        first_count[first] = first_count.get(first, 0) + 1
        first_map.setdefault(first, staff)

    for first, count in first_count.items():
        if count == 1 and _word_re(first).search(lower):
            hits.append(first_map[first])
    return dedupe(hits)


def monday_of_week(when: datetime, tz) -> date:
    local = when.astimezone(tz).date()
    return local - timedelta(days=local.weekday())


def _localize(tz, day: date, hour: int = 0) -> datetime:
    return tz.localize(datetime.combine(day, time(hour=hour)))


def _hour_label(hour: int) -> str:
    return f"{(hour % 12) or 12}:00 {'PM' if hour >= 12 else 'AM'}"


def _compile_optional(pattern: str, what: str) -> Optional[Pattern]:
    if not pattern:
        return None
    try:
        return re.compile(pattern, re.I)
    except re.error as exc:
        log.warning("Ignoring invalid %s regex %r: %s", what, pattern, exc)
        return None


# ---------------------------------------------------------------------------
# Settings / staff tables
# ---------------------------------------------------------------------------


@dataclass
class CalendarSettings:
    timezone: str
    slot_minutes: int = 60
    week_start: str = ""
    calendar_id: str = ""
    title_re: Optional[Pattern] = None
    exclude_re: Optional[Pattern] = DEFAULT_EXCLUDE_RE
    match_mode: str = "title_first"
    guest_max: int = 2
    avail_calendar_id: str = ""
    avail_email: str = ""
    avail_name: str = ""
    avail_label: str = ""
    avail_skills: List[str] = field(default_factory=list)
    hours_start: int = -1
    hours_end: int = -1
    weekdays_only: bool = True

    @property
    def restrict_by_hour(self) -> bool:
        return self.hours_start >= 0 and self.hours_end >= 0

    @classmethod
    def from_rows(cls, rows: List[Dict[str, Any]], default_tz: str = "", default_calendar_id: str = "") -> "CalendarSettings":
        settings = {}
        for row in rows or []:
            key = _text(row.get("key")).lower()
            value = row.get("value")
            settings[key] = "" if value is None else str(value)

        exclude_re = DEFAULT_EXCLUDE_RE
        exclude_raw = settings.get("exclude_title_regex", "").strip()
        if exclude_raw:
            exclude_re = _compile_optional(exclude_raw, "exclude_title_regex") or DEFAULT_EXCLUDE_RE

        match_mode = (settings.get("calendar_match_mode") or "title_first").strip().lower()
        if match_mode not in MATCH_MODES:
            log.warning("Unknown calendar_match_mode %r; using title_first", match_mode)
            match_mode = "title_first"

        return cls(
            timezone=settings.get("timezone") or default_tz or DEFAULT_TIMEZONE,
            slot_minutes=parse_int(settings.get("slot_minutes") or "60", 60),
            week_start=settings.get("week_start", "").strip(),
            calendar_id=(settings.get("calendar_id") or default_calendar_id or "").strip(),
            title_re=_compile_optional(settings.get("calendar_title_filter", ""), "calendar_title_filter"),
            exclude_re=exclude_re,
            match_mode=match_mode,
            guest_max=parse_int(settings.get("calendar_guest_match_max") or "2", 2),
            avail_calendar_id=settings.get("availability_calendar_id", "").strip(),
            avail_email=settings.get("availability_staff_email", "").strip().lower(),
            avail_name=settings.get("availability_staff_name", "").strip(),
            avail_label=settings.get("availability_label", "").strip(),
            avail_skills=split_csv(settings.get("availability_skills_csv")),
            hours_start=parse_int(settings.get("availability_hours_start") or "-1", -1),
            hours_end=parse_int(settings.get("availability_hours_end") or "-1", -1),
            weekdays_only=settings.get("availability_weekdays_only", "true").strip().lower() != "false",
        )


@dataclass
class StaffDirectory:
    by_id: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    by_email: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    by_name: Dict[str, Dict[str, Any]] = field(default_factory=dict)

    @classmethod
    def from_rows(cls, rows: List[Dict[str, Any]]) -> "StaffDirectory":
        directory = cls()
        for row in rows or []:
            staff_id = _text(row.get("staff_id")) or _text(row.get("id"))
            if not staff_id:
                continue
            item = {
                "id": staff_id,
                "name": _text(row.get("name")),
                "email": _text(row.get("email")).lower(),
                "pronouns": _text(row.get("pronouns")),
                "bio": _text(row.get("bio")),
                "location": _text(row.get("location")),
                "skills": split_csv(row.get("skills_csv") or row.get("skills")),
            }
            directory.by_id[staff_id] = item
            if item["email"]:
                directory.by_email[item["email"]] = item
            if item["name"]:
                directory.by_name[normalize(item["name"])] = item
        return directory

    def lookup(self, email: str = "", name: str = "") -> Optional[Dict[str, Any]]:
        return (email and self.by_email.get(email)) or (name and self.by_name.get(normalize(name))) or None


def canonical_skills(rows: List[Dict[str, Any]]) -> List[str]:
    names = {_text(r.get("name")) for r in rows or []}
    names.discard("")
    return sorted(names, key=lambda s: (s.casefold(), s))


# ---------------------------------------------------------------------------
# Shift sources
# ---------------------------------------------------------------------------


def _shift(staff: Dict[str, Any], start: datetime, end: datetime, location: str = "", notes: str = "", shift_id: str = "") -> Dict[str, Any]:
    return {
        "shift_id": shift_id or str(uuid.uuid4()),
        "staff_id": staff["id"],
        "staff_name": staff["name"],
        "staff_skills": staff["skills"],
        "location": location,
        "notes": notes,
        "start": start,
        "end": end,
    }


def _match_event_staff(event: Dict[str, Any], directory: StaffDirectory, cfg: CalendarSettings) -> List[Dict[str, Any]]:
    title = _text(event.get("summary"))

    if cfg.exclude_re and cfg.exclude_re.search(title):
        return []
    if cfg.title_re and not cfg.title_re.search(title):
        return []

    staffers = staff_from_title(title, directory.by_name)
    if not staffers and cfg.match_mode != "title_only":
        matched = [directory.by_email[e] for e in event_guest_emails(event) if e in directory.by_email]
        if matched and (cfg.match_mode == "guests_only" or len(matched) <= cfg.guest_max):
            staffers = dedupe(matched)
    return staffers


def shifts_from_calendar(service, cfg: CalendarSettings, directory: StaffDirectory, start: datetime, end: datetime) -> List[Dict[str, Any]]:
    """Build shifts from calendar events; events that fail are skipped."""
    tz = pytz.timezone(cfg.timezone)
    shifts = []
    for event in list_events(service, cfg.calendar_id, start, end):
        try:
            if is_all_day(event):
                continue
            staffers = _match_event_staff(event, directory, cfg)
            if not staffers:
                continue
            ev_start, ev_end = event_bounds(event, tz)
            for staff in staffers:
                shifts.append(
                    _shift(
                        staff,
                        ev_start,
                        ev_end,
                        location=event.get("location") or "",
                        notes=event.get("description") or "",
                    )
                )
        except Exception as exc:
            log.warning("Skipping calendar event %s: %s", event.get("id"), exc)
    log.info("Built %d shifts from calendar %s", len(shifts), cfg.calendar_id)
    return shifts


def _parse_sheet_datetime(value: Any, tz) -> Optional[datetime]:
    ts = pd.to_datetime(value, errors="coerce")
    if ts is None or pd.isna(ts):
        return None
    ts = ts.tz_localize(tz) if ts.tzinfo is None else ts.tz_convert(tz)
    return ts.to_pydatetime()


def shifts_from_sheet(rows: List[Dict[str, Any]], directory: StaffDirectory, tz_name: str) -> List[Dict[str, Any]]:
    tz = pytz.timezone(tz_name)
    shifts = []
    for row in rows or []:
        staff = directory.by_id.get(_text(row.get("staff_id")))
        if not staff:
            continue
        try:
            start = _parse_sheet_datetime(row.get("start"), tz)
            end = _parse_sheet_datetime(row.get("end"), tz)
        except (ValueError, TypeError, pytz.exceptions.InvalidTimeError) as exc:
            log.warning("Skipping shift row for %s: %s", staff["id"], exc)
            continue
        if start is None or end is None:
            continue
        shifts.append(
            _shift(
                staff,
                start,
                end,
                location=_text(row.get("location")),
                notes=_text(row.get("notes")),
                shift_id=_text(row.get("shift_id")),
            )
        )
    log.info("Built %d shifts from the Shifts sheet", len(shifts))
    return shifts


# ---------------------------------------------------------------------------
# Grid assembly
# ---------------------------------------------------------------------------


def _week_start(cfg: CalendarSettings, tz, now: datetime) -> date:
    raw = cfg.week_start
    if raw and raw.lower() != "auto":
        try:
            return datetime.strptime(raw[:10], "%Y-%m-%d").date()
        except ValueError:
            log.warning("Invalid week_start %r; using the current week", raw)
    return monday_of_week(now, tz)


def hour_range(shifts: List[Dict[str, Any]], tz) -> List[int]:
    if not shifts:
        return list(range(DEFAULT_FIRST_HOUR, DEFAULT_LAST_HOUR))

    min_h, max_h = 24, 0
    for sh in shifts:
        start = sh["start"].astimezone(tz)
        end = sh["end"].astimezone(tz)
        h1 = start.hour
        h2 = 24 if end.date() > start.date() else end.hour + (1 if end.minute > 0 else 0)
        min_h = min(min_h, h1)
        max_h = max(max_h, h2)
    if max_h <= min_h:
        max_h = DEFAULT_LAST_HOUR if min_h < DEFAULT_LAST_HOUR else min(24, min_h + 1)
    return list(range(min_h, max_h))


def build_calendar_data(
    week_offset: int,
    tables: Dict[str, List[Dict[str, Any]]],
    calendar_factory: Optional[Callable[[], Any]] = None,
    now: Optional[datetime] = None,
    default_tz: str = "",
    default_calendar_id: str = "",
    default_label: str = "Riley",
) -> Dict[str, Any]:
    """Assemble the weekly grid for ``week_offset`` weeks from the anchor week.

    ``tables`` maps tab names to row dicts; ``calendar_factory`` returns a
    Calendar API service and is only called when a calendar is needed.
    """
    cfg = CalendarSettings.from_rows(tables.get("Settings", []), default_tz, default_calendar_id)
    tz = pytz.timezone(cfg.timezone)
    now = now or datetime.now(pytz.UTC)

    base = _week_start(cfg, tz, now)
    first_day = base + timedelta(days=7 * week_offset)
    days = [first_day + timedelta(days=i) for i in range(7)]
    week_start = _localize(tz, first_day)
    week_end = _localize(tz, first_day + timedelta(days=7))
    day_labels = [f"{WEEKDAY_ABBR[d.weekday()]} {d.month}/{d.day}" for d in days]

    directory = StaffDirectory.from_rows(tables.get("Staff", []))

    service = None
    if cfg.calendar_id or cfg.avail_calendar_id:
        if calendar_factory is None:
            raise RuntimeError("A calendar is configured but no calendar service is available.")
        service = calendar_factory()

    if cfg.calendar_id:
        shifts = shifts_from_calendar(service, cfg, directory, week_start, week_end)
    else:
        shifts = shifts_from_sheet(tables.get("Shifts", []), directory, cfg.timezone)

    busy = []
    avail_staff = None
    if cfg.avail_calendar_id:
        busy = get_busy_intervals(service, cfg.avail_calendar_id, week_start, week_end, cfg.timezone)
        avail_staff = directory.lookup(cfg.avail_email, cfg.avail_name)

    hours = hour_range(shifts, tz)

    grid = []
    for hour in hours:
        row = []
        for day_index, day in enumerate(days):
            slot_start = _localize(tz, day, hour)
            staff_list = [
                {"name": sh["staff_name"], "location": sh["location"] or "", "skills": sh["staff_skills"] or []}
                for sh in shifts
                if sh["start"] <= slot_start < sh["end"]
            ]

            if cfg.avail_calendar_id:
                hour_ok = not cfg.restrict_by_hour or cfg.hours_start <= hour < cfg.hours_end
                day_ok = not cfg.weekdays_only or day.weekday() < 5
                if hour_ok and day_ok and not is_busy_at(busy, slot_start):
                    label = cfg.avail_label or (avail_staff and avail_staff["name"]) or default_label
                    if not any(s["name"] == label for s in staff_list):
                        staff_list.append(
                            {
                                "name": label,
                                "location": (avail_staff or {}).get("location", ""),
                                "skills": (avail_staff and avail_staff["skills"]) or cfg.avail_skills,
                            }
                        )

            skill_set = {k for s in staff_list for k in s["skills"]}
            row.append(
                {
                    "dayIndex": day_index,
                    "hour": hour,
                    "staff": staff_list,
                    "skills": sorted(skill_set, key=lambda s: (s.casefold(), s)),
                }
            )
        grid.append(row)

    log.debug(
        "Calendar data built",
        extra={"week_start": first_day.isoformat(), "shifts": len(shifts), "hours": len(hours)},
    )
    return {
        "timezone": cfg.timezone,
        "slotMinutes": cfg.slot_minutes,
        "weekStart": first_day.isoformat(),
        "dayLabels": day_labels,
        "hourLabels": [_hour_label(h) for h in hours],
        "grid": grid,
        "skills": canonical_skills(tables.get("Skills", [])),
        "weekOffset": week_offset,
    }


def get_calendar_data(app, week_offset: int) -> Dict[str, Any]:
    """Read the staff workbook configured on *app* and build the week."""
    from . import calendar_service
    from .google_sheets import open_spreadsheet, read_tables

    sheet_id = app.config.get("STAFF_SPREADSHEET_ID")
    if not sheet_id:
        raise RuntimeError("STAFF_SPREADSHEET_ID is not configured.")

    credentials_json = app.config.get("GOOGLE_SERVICE_ACCOUNT_JSON") or None
    spreadsheet = open_spreadsheet(sheet_id, credentials_json)
    tables = read_tables(spreadsheet, list(TABLES))

    return build_calendar_data(
        week_offset,
        tables,
        calendar_factory=lambda: calendar_service(credentials_json),
        default_tz=app.config.get("TZ", ""),
        default_calendar_id=app.config.get("STAFF_CALENDAR_ID", ""),
        default_label=app.config.get("STAFF_AVAILABILITY_DEFAULT_LABEL", "Riley"),
    )
