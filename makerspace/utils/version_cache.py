"""Version-keyed response cache for the web apps.

The machines grid never caches the sheet itself.  Instead, rendered
responses are stored under keys that embed a *version* counter, and the
counter is bumped whenever the sheet is edited.  A bump therefore makes
every previous entry unreachable without having to delete anything;
stale entries age out through their TTL and are swept on the
next bump or warm.

Entries are pickled to small files in ``CACHE_DIR`` so that every worker
process sees the same cache.  The version counter lives next to them in
``properties.json``.
"""

from __future__ import annotations

import json
import logging
import os
import pickle
import re
import threading
import time
from typing import Callable, Dict, List, Optional

log = logging.getLogger(__name__)

PROPERTIES_FILE = "properties.json"
VERSION_PROPERTY = "BUMP"
ENTRY_SUFFIX = ".pkl"

_properties_lock = threading.Lock()


# ---------------------------------------------------------------------------
# Paths
# ---------------------------------------------------------------------------


def _cache_dir(app) -> str:
    cache_dir = app.config.get("CACHE_DIR") or os.path.join(
        os.path.dirname(os.path.dirname(__file__)), "cache"
    )
    os.makedirs(cache_dir, exist_ok=True)
    return cache_dir


def _cache_path(app, key: str) -> str:
    safe = re.sub(r"[^A-Za-z0-9_.-]+", "_", key)
    return os.path.join(_cache_dir(app), safe + ENTRY_SUFFIX)


def _properties_path(app) -> str:
    return os.path.join(_cache_dir(app), PROPERTIES_FILE)


def _is_expired(entry, now: Optional[float] = None) -> bool:
    return entry.get("expires_at", 0) <= (time.time() if now is None else now)


def _remove(path: str) -> bool:
    try:
        os.remove(path)
    except OSError:
        return False
    return True


# ---------------------------------------------------------------------------
# Property store / version counter
# ---------------------------------------------------------------------------


def _read_properties(app) -> Dict[str, str]:
    path = _properties_path(app)
    try:
        with open(path, "r", encoding="utf-8") as fh:
            data = json.load(fh)
    except FileNotFoundError:
        return {}
    except (OSError, ValueError):
        log.exception("Could not read properties from %s; treating as empty", path)
        return {}
    return data if isinstance(data, dict) else {}


def get_property(app, name: str) -> Optional[str]:
    value = _read_properties(app).get(name)
    return None if value is None else str(value)


def set_property(app, name: str, value: str) -> None:
    path = _properties_path(app)
    with _properties_lock:
        props = _read_properties(app)
        props[name] = value
        tmp_path = path + ".tmp"
        with open(tmp_path, "w", encoding="utf-8") as fh:
            json.dump(props, fh)
        os.replace(tmp_path, path)


def get_version(app) -> str:
    """Return the current cache version (``"0"`` until the first bump)."""
    return get_property(app, VERSION_PROPERTY) or "0"


def bump_version(app) -> str:
    """Move the cache version to the current epoch milliseconds."""
    version = str(int(time.time() * 1000))
    set_property(app, VERSION_PROPERTY, version)
    app.logger.info("Cache version bumped to %s", version)
    purge_expired(app)
    return version


# ---------------------------------------------------------------------------
# Keyed cache
# ---------------------------------------------------------------------------


def cache_get(app, key: str) -> Optional[str]:
    path = _cache_path(app, key)
    try:
        with open(path, "rb") as fh:
            entry = pickle.load(fh)
    except FileNotFoundError:
        return None
    except Exception:
        app.logger.exception("Error reading cache entry %s; treating as a miss", key)
        return None

    if not isinstance(entry, dict):
        app.logger.warning("Cache entry %s is malformed; treating as a miss", key)
        return None
    if _is_expired(entry):
        app.logger.debug("Cache entry %s expired", key)
        _remove(path)
        return None
    return entry.get("value")


def cache_put(app, key: str, value: str, ttl_seconds: int) -> bool:
    """Store *value* under *key* for *ttl_seconds*.

    Values larger than ``CACHE_MAX_BYTES`` are refused, mirroring the
    size limit of a hosted key-value cache.
    """
    max_bytes = app.config.get("CACHE_MAX_BYTES", 100000)
    size = len(value.encode("utf-8"))
    if size > max_bytes:
        app.logger.warning(
            "Refusing to cache %s: %d bytes exceeds limit of %d", key, size, max_bytes
        )
        return False

    path = _cache_path(app, key)
    entry = {"value": value, "expires_at": time.time() + ttl_seconds}
    try:
        tmp_path = path + ".tmp"
        with open(tmp_path, "wb") as fh:
            pickle.dump(entry, fh)
        os.replace(tmp_path, path)
    except Exception:
        app.logger.exception("Cache write failed for %s", key)
        return False
    app.logger.debug("Cached %s (%d bytes, ttl=%ss)", key, size, ttl_seconds)
    return True


def purge_expired(app) -> int:
    """Delete expired or unreadable entries left behind by older versions."""
    removed = 0
    now = time.time()
    cache_dir = _cache_dir(app)
    for name in os.listdir(cache_dir):
        if not name.endswith(ENTRY_SUFFIX):
            continue
        path = os.path.join(cache_dir, name)
        try:
            with open(path, "rb") as fh:
                entry = pickle.load(fh)
        except FileNotFoundError:
            continue
        except Exception:
            entry = None
        if isinstance(entry, dict) and not _is_expired(entry, now):
            continue
        if _remove(path):
            removed += 1
    if removed:
        app.logger.info("Purged %d expired cache entries", removed)
    return removed


def cache_clear(app) -> int:
    """Remove every cache entry, keeping the property store intact."""
    removed = 0
    cache_dir = _cache_dir(app)
    for name in os.listdir(cache_dir):
        if not name.endswith(ENTRY_SUFFIX):
            continue
        try:
            os.remove(os.path.join(cache_dir, name))
            removed += 1
        except OSError:
            app.logger.warning("Could not remove cache file %s", name)
    app.logger.info("Cleared %d cache entries", removed)
    return removed


# ---------------------------------------------------------------------------
# Warmers / scheduler
# ---------------------------------------------------------------------------


WARMERS: Dict[str, Callable] = {}


def register_warmer(name: str, fn: Callable) -> None:
    WARMERS[name] = fn


def run_warmers(app) -> List[str]:
    """Run every registered warmer; return the names that succeeded."""
    warmed = []
    for name, fn in WARMERS.items():
        try:
            app.logger.info("Running cache warmer %s", name)
            with app.app_context():
                fn(app)
            warmed.append(name)
        except Exception:
            app.logger.exception("Cache warmer %s failed", name)
    purge_expired(app)
    return warmed


def _scheduler_loop(app):
    interval = max(1, int(app.config.get("WARM_INTERVAL_MINUTES", 5))) * 60
    while True:
        app.logger.debug("Next cache warm in %d seconds", interval)
        time.sleep(interval)
        run_warmers(app)


def init_warm_scheduler(app):
    thread = threading.Thread(target=_scheduler_loop, args=(app,), daemon=True)
    thread.start()
    app.logger.info(
        "Cache warm scheduler started (every %s minutes).",
        app.config.get("WARM_INTERVAL_MINUTES", 5),
    )
