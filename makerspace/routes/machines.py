import json
import secrets
from datetime import datetime

import pytz
from flask import Blueprint, Response, current_app, jsonify, render_template, request

from ..integrations.machines import get_machines
from ..utils.version_cache import bump_version, cache_get, cache_put, get_version, register_warmer

bp = Blueprint("machines", __name__, url_prefix="/machines")

PAGE_TITLE = "Machines Grid"
DATA_KEY = "data_v1_{version}"
HTML_KEY = "html_v1_{version}"


def _frameable(resp: Response) -> Response:
    resp.headers.pop("X-Frame-Options", None)
    resp.headers["Content-Security-Policy"] = "frame-ancestors *"
    return resp


def _utc_now_iso() -> str:
    return datetime.now(pytz.UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def render_grid(app, machines=None) -> str:
    if machines is None:
        machines = get_machines(app)
    return render_template(
        "machines.html",
        title=PAGE_TITLE,
        initial_data=machines,
        brand=app.config.get("BRAND", {}),
    )


def warm_machines(app) -> None:
    """Render the grid with fresh rows and park it under the current version."""
    with app.test_request_context("/machines/"):
        html = render_grid(app)
    if len(html) < app.config.get("MACHINES_HTML_CACHE_MAX_CHARS", 95000):
        cache_put(
            app,
            HTML_KEY.format(version=get_version(app)),
            html,
            app.config.get("MACHINES_HTML_CACHE_SECONDS", 300),
        )


register_warmer("machines", warm_machines)


def _json_payload(app, version: str, use_cache: bool) -> Response:
    key = DATA_KEY.format(version=version)
    if use_cache:
        hit = cache_get(app, key)
        if hit:
            app.logger.debug("Machines JSON served from cache", extra={"key": key})
            return Response(hit, mimetype="application/json")

    payload = json.dumps({"updated": _utc_now_iso(), "machines": get_machines(app)})
    cache_put(app, key, payload, app.config.get("MACHINES_CACHE_SECONDS", 300))
    return Response(payload, mimetype="application/json")


def _html_page(app, version: str, use_cache: bool) -> Response:
    key = HTML_KEY.format(version=version)
    if use_cache:
        hit = cache_get(app, key)
        if hit:
            app.logger.debug("Machines page served from cache", extra={"key": key})
            return Response(hit, mimetype="text/html")

    html = render_grid(app)
    if len(html) < app.config.get("MACHINES_HTML_CACHE_MAX_CHARS", 95000):
        cache_put(app, key, html, app.config.get("MACHINES_HTML_CACHE_SECONDS", 300))
    else:
        app.logger.info("Machines page too large to cache (%d chars)", len(html))
    return Response(html, mimetype="text/html")


@bp.get("/")
def index():
    app = current_app
    version = get_version(app)
    use_cache = not request.args.get("nocache")
    want_json = request.args.get("format") == "json"
    app.logger.debug(
        "Machines grid requested",
        extra={"version": version, "format": request.args.get("format"), "cache": use_cache},
    )

    try:
        if want_json:
            resp = _json_payload(app, version, use_cache)
        else:
            resp = _html_page(app, version, use_cache)
    except Exception as exc:
        app.logger.exception("Failed to build machines grid")
        if want_json:
            return jsonify({"error": str(exc)}), 500
        return render_template("error.html", title=PAGE_TITLE, msg=str(exc)), 500
    return _frameable(resp)


@bp.post("/hooks/edit")
def sheet_edited():
    """Bust the machines caches after an edit to the Machines sheet."""
    app = current_app
    body = request.get_json(silent=True)
    if not isinstance(body, dict):
        body = request.form

    expected = app.config.get("EDIT_HOOK_TOKEN")
    if expected:
        provided = (
            request.headers.get("X-Hook-Token")
            or request.args.get("token")
            or body.get("token")
            or ""
        )
        if not secrets.compare_digest(str(provided), expected):
            app.logger.warning("Rejected sheet edit hook", extra={"remote_addr": request.remote_addr})
            return jsonify({"error": "forbidden"}), 403

    sheet = str(body.get("sheet") or "").strip()
    if sheet and sheet != app.config.get("MACHINES_SHEET_NAME", "Machines"):
        app.logger.debug("Ignoring edit on sheet %s", sheet)
        return jsonify({"bumped": False})

    version = bump_version(app)
    return jsonify({"bumped": True, "version": version})
