"""Flask route handlers for the investment tracker (Blueprint)."""

from datetime import datetime
from functools import wraps

from flask import Blueprint, Response, jsonify, redirect, request, session

from config import LOCAL_USER
from dashboard import chart_series, render_dashboard, render_login_page, trend_lines
from errors import TrackerError, ValidationError
from export import build_workbook

bp = Blueprint("main", __name__)

# Module-level references, set by init_routes()
_deps = {}

_PUBLIC_PATHS = ("/login", "/logout", "/api/user")
_PUBLIC_PREFIXES = ("/api/metals/", "/api/crypto/")


def init_routes(config):
    """Inject dependencies (tracker, resolver, users). Call before registering blueprint."""
    _deps.clear()
    _deps.update(config)


def tracker():
    return _deps["tracker"]


def resolver():
    return _deps["resolver"]


def auth_enabled() -> bool:
    return bool(_deps.get("users"))


def current_user():
    """Signed-in identity, or the local user when no identities are configured."""
    if not auth_enabled():
        return dict(LOCAL_USER)
    return session.get("user")


def _public_user(user: dict) -> dict:
    return {k: user.get(k, "") for k in ("id", "email", "displayName", "photo")}


def json_errors(fn):
    """Translate TrackerError into its status; anything else is a 500."""
    @wraps(fn)
    def wrapper(*args, **kwargs):
        try:
            return fn(*args, **kwargs)
        except TrackerError as e:
            return jsonify(e.to_dict()), e.status
        except Exception as e:
            print(f"[API] {request.method} {request.path} failed: {e}")
            return jsonify({"error": str(e)}), 500
    return wrapper


@bp.before_request
def check_auth():
    if not auth_enabled() or current_user():
        return
    if request.path in _PUBLIC_PATHS or request.path.startswith(_PUBLIC_PREFIXES):
        return
    if request.path.startswith("/api/"):
        return jsonify({"error": "Not authenticated"}), 401
    return render_login_page()


@bp.route("/login", methods=["GET", "POST"])
def login():
    if request.method == "POST":
        pin = request.form.get("pin", "")
        for user in _deps.get("users", []):
            if pin and pin == user.get("pin"):
                session["user"] = _public_user(user)
                return redirect("/")
        return render_login_page(error="Incorrect PIN")
    return render_login_page()


@bp.route("/logout")
def logout():
    session.pop("user", None)
    return redirect("/")


@bp.route("/api/user")
def api_user():
    user = current_user()
    if not user:
        return jsonify({"authenticated": False})
    return jsonify({"authenticated": True, "user": _public_user(user)})


@bp.route("/")
def index():
    """Dashboard. Stale investments are refreshed once before rendering."""
    user = current_user()
    selected = request.args.get("investment") or None
    snapshots, refreshed = tracker().load_view(user["id"], selected)
    data = {
        "snapshots": snapshots,
        "investments": tracker().investment_names(user["id"]),
        "selected": selected,
        "refreshed": refreshed,
    }
    return render_dashboard(data, user, saved=request.args.get("saved", ""))


# ── Prices ──

@bp.route("/api/metals/<metal>")
@json_errors
def api_metal_price(metal):
    metal = metal.upper()
    if metal not in ("GOLD", "SILVER"):
        raise ValidationError("Unsupported metal")
    return jsonify({"price": resolver().resolve_price(metal)})


@bp.route("/api/crypto/<symbol>")
@json_errors
def api_crypto_price(symbol):
    symbol = symbol.upper()
    if symbol in ("GOLD", "SILVER", "CUSTOM"):
        raise ValidationError("Unsupported cryptocurrency")
    return jsonify({"price": resolver().resolve_price(symbol)})


# ── Ledger ──

@bp.route("/api/save", methods=["POST"])
@json_errors
def api_save():
    snapshot = tracker().save(current_user()["id"], request.get_json(silent=True) or {})
    return jsonify({"success": True, "timestamp": snapshot.timestamp_iso})


@bp.route("/api/update", methods=["POST"])
@json_errors
def api_update():
    data = request.get_json(silent=True) or {}
    result = tracker().refresh(current_user()["id"], data.get("investmentName"))
    return jsonify(dict(success=True, **result))


@bp.route("/api/refresh-stale", methods=["POST"])
@json_errors
def api_refresh_stale():
    """Refresh every investment whose latest value is over a day old. Best-effort."""
    updated = tracker().refresh_stale(current_user()["id"])
    return jsonify({"success": True, "updated": updated})


@bp.route("/api/data")
@bp.route("/api/data/<investment_name>")
@json_errors
def api_data(investment_name=None):
    snapshots = tracker().history(current_user()["id"], investment_name)
    return jsonify([s.to_dict() for s in snapshots])


@bp.route("/api/investments")
@json_errors
def api_investments():
    return jsonify(tracker().investment_names(current_user()["id"]))


@bp.route("/api/chart")
@json_errors
def api_chart():
    """Chart points ({x, y}) per investment plus a trend line for each."""
    selected = request.args.get("investment") or None
    series = chart_series(tracker().history(current_user()["id"]), selected)
    return jsonify({"series": series, "trend": trend_lines(series)})


@bp.route("/api/export")
@json_errors
def api_export():
    """Download full history as an Excel workbook."""
    content = build_workbook(tracker().history(current_user()["id"]))
    filename = f"investments_{datetime.now().strftime('%Y%m%d')}.xlsx"
    return Response(
        content,
        mimetype="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        headers={"Content-Disposition": f"attachment; filename={filename}"},
    )
