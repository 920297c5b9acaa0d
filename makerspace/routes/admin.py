# makerspace/routes/admin.py
import secrets

from flask import Blueprint, current_app, jsonify, request

from ..utils.version_cache import bump_version, cache_clear, run_warmers, WARMERS

bp = Blueprint("admin", __name__, url_prefix="/admin")


@bp.before_request
def _require_token():
    expected = current_app.config.get("ADMIN_TOKEN")
    if not expected:
        return None
    provided = request.headers.get("X-Admin-Token") or request.args.get("token") or ""
    if secrets.compare_digest(provided, expected):
        return None
    current_app.logger.warning(
        "Rejected admin request", extra={"endpoint": request.endpoint, "remote_addr": request.remote_addr}
    )
    return jsonify({"error": "forbidden"}), 403


@bp.get("/warm-cache")
def warm_cache():
    current_app.logger.info("Manual cache warm requested", extra={"remote_addr": request.remote_addr})
    warmed = run_warmers(current_app._get_current_object())
    return jsonify({"ok": len(warmed) == len(WARMERS), "warmed": warmed})


@bp.post("/bump-version")
def bump():
    version = bump_version(current_app)
    return jsonify({"version": version})


@bp.post("/clear-cache")
def clear():
    removed = cache_clear(current_app)
    return jsonify({"removed": removed})
