import os


def _flag(name: str, default: str = "False") -> bool:
    return os.getenv(name, default).lower() == "true"


class Config:
    """Base configuration loaded from environment variables."""

    # --- General ---
    SECRET_KEY = os.getenv("SECRET_KEY", "change-me")
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
    LOG_DIR = os.getenv("LOG_DIR", "")
    TZ = os.getenv("TZ", "America/Los_Angeles")

    # --- Google ---
    GOOGLE_SERVICE_ACCOUNT_JSON = os.getenv("GOOGLE_SERVICE_ACCOUNT_JSON", "")

    # --- Machines grid ---
    MACHINES_SPREADSHEET_ID = os.getenv("MACHINES_SPREADSHEET_ID", "")
    MACHINES_SHEET_NAME = os.getenv("MACHINES_SHEET_NAME", "Machines")
    MACHINES_CACHE_SECONDS = int(os.getenv("MACHINES_CACHE_SECONDS", "300"))
    MACHINES_HTML_CACHE_SECONDS = int(os.getenv("MACHINES_HTML_CACHE_SECONDS", "300"))
    # rendered pages above this are served but never cached
    MACHINES_HTML_CACHE_MAX_CHARS = int(os.getenv("MACHINES_HTML_CACHE_MAX_CHARS", "95000"))
    EDIT_HOOK_TOKEN = os.getenv("EDIT_HOOK_TOKEN", "")

    BRAND = {
        "pageGrey": "#747678",
        "ok": "#22C55E",
        "warn": "#F59E0B",
        "danger": "#EF4444",
        "access": "#00C6D7",
        "text": "#0f172a",
        "card": "#800080",
        "cardEdge": "#e5e7eb",
    }

    # --- Staff calendar ---
    STAFF_SPREADSHEET_ID = os.getenv("STAFF_SPREADSHEET_ID", "")
    STAFF_CALENDAR_ID = os.getenv("STAFF_CALENDAR_ID", "")
    STAFF_AVAILABILITY_DEFAULT_LABEL = os.getenv("STAFF_AVAILABILITY_DEFAULT_LABEL", "Riley")

    # --- Cache ---
    CACHE_DIR = os.getenv("CACHE_DIR", os.path.join(os.path.dirname(__file__), "cache"))
    CACHE_MAX_BYTES = int(os.getenv("CACHE_MAX_BYTES", "100000"))
    WARM_INTERVAL_MINUTES = int(os.getenv("WARM_INTERVAL_MINUTES", "5"))
    WARM_SCHEDULER_ENABLED = _flag("WARM_SCHEDULER_ENABLED")

    # --- Access ---
    ADMIN_TOKEN = os.getenv("ADMIN_TOKEN", "")

    # --- Misc ---
    DEBUG = _flag("FLASK_DEBUG")
    NAVIGATION_ITEMS = (
        {"label": "Machines", "endpoint": "machines.index"},
        {"label": "Staff calendar", "endpoint": "staff.index"},
    )
