from flask import Blueprint, current_app, jsonify, render_template, request

from ..integrations.staff_calendar import get_calendar_data, parse_int

bp = Blueprint("staff", __name__, url_prefix="/staff")

PAGE_TITLE = "Sandbox Weekly Staff Calendar"


@bp.get("/")
def index():
    """Serve the page shell; the browser fetches the week afterwards."""
    init_offset = str(request.args.get("offset") or "0")
    resp = current_app.make_response(
        render_template("staff_calendar.html", title=PAGE_TITLE, init_offset=init_offset)
    )
    resp.headers.pop("X-Frame-Options", None)
    resp.headers["Content-Security-Policy"] = "frame-ancestors *"
    return resp


@bp.get("/data")
def data():
    app = current_app
    offset = parse_int(request.args.get("offset"), 0)
    app.logger.debug("Staff calendar data requested", extra={"offset": offset})
    try:
        payload = get_calendar_data(app, offset)
    except Exception as exc:
        app.logger.exception("Failed to build staff calendar", extra={"offset": offset})
        return jsonify({"error": str(exc)}), 500
    return jsonify(payload)
