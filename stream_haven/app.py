# stream_haven/app.py
# Stream Haven: local dashboard API (Flask)
# Wires local storage → record store → session manager/repositories and exposes
# them as JSON endpoints for the dashboard pages. Single user, bound to localhost.

import logging
from datetime import datetime
from types import SimpleNamespace

from flask import Blueprint, Flask, current_app, jsonify, request, url_for
from flask_login import LoginManager, UserMixin, login_required, login_user, logout_user

from stream_haven.config import Config
from stream_haven.exceptions import (
    ConstraintViolation, NotFound, NotReady, ValidationError
)
from stream_haven.hooks import RecordingHooks
from stream_haven.insights import dashboard_summary
from stream_haven.models import MAX_INTEGER, MIN_INTEGER, utcnow
from stream_haven.repositories import Repositories, Result
from stream_haven.session import SessionManager
from stream_haven.storage import LocalStorage
from stream_haven.store import RecordStore
from stream_haven.utils import is_valid_url, month_range, parse_datetime, to_iso_z

bp = Blueprint("dashboard", __name__)
login_manager = LoginManager()

# Redirect targets issued by the session manager → endpoints.
PAGES = {"login": "dashboard.home", "dashboard": "dashboard.dashboard"}

# URL segment → attribute on Repositories (account-scoped collections only).
COLLECTIONS = {
    "streams": "streams",
    "content": "content",
    "goals": "goals",
    "sims-goals": "sims_goals",
    "ideas": "ideas",
    "links": "links",
    "growth": "growth",
}

DATE_FIELDS = {"date", "deadline"}
INT_FIELDS = {"duration", "target", "current", "followers"}
BOOL_FIELDS = {"completed"}
# Fields the session decides, never the payload.
OWNER_FIELDS = {"user_id", "account_id"}


# -----------------------------
# App factory
# -----------------------------
def create_app(config=None):
    """
    Build the Flask app. `config` may be a Config instance or a dict of
    overrides (e.g. {"STORAGE_DIR": tmp_path}).
    """
    cfg = config if isinstance(config, Config) else Config(**(config or {}))

    app = Flask(__name__)
    app.config["SECRET_KEY"] = cfg.SECRET_KEY
    app.logger.setLevel(logging.INFO)

    storage = LocalStorage(cfg.STORAGE_DIR)
    store = RecordStore(storage, ready_timeout=cfg.STORE_READY_TIMEOUT).open()
    hooks = RecordingHooks()
    sessions = SessionManager(store, storage, hooks=hooks, config=cfg)
    repos = Repositories(store, hooks=hooks, config=cfg)

    # Restore the last session (if any) before serving requests.
    sessions.check_auth()
    hooks.clear()

    app.extensions["stream_haven"] = SimpleNamespace(
        config=cfg, storage=storage, store=store, hooks=hooks, sessions=sessions, repos=repos
    )

    login_manager.init_app(app)
    login_manager.login_view = "dashboard.home"
    app.register_blueprint(bp)
    return app


def _haven():
    return current_app.extensions["stream_haven"]


# -----------------------------
# Login / Session
# -----------------------------
class SessionUser(UserMixin):
    """Flask-Login view of the session manager's current user."""

    def __init__(self, user: dict):
        self.id = user["id"]
        self.email = user["email"]
        self.name = user["name"]


@login_manager.user_loader
def load_user(user_id: str):
    """Only the session manager's current user is ever 'logged in'."""
    sessions = _haven().sessions
    if sessions.is_authenticated() and sessions.current_user["id"] == user_id:
        return SessionUser(sessions.current_user)
    return None


@login_manager.request_loader
def load_user_from_session(_request):
    """A session restored from storage at startup counts as logged in."""
    sessions = _haven().sessions
    if sessions.is_authenticated():
        return SessionUser(sessions.current_user)
    return None


@bp.before_app_request
def _reset_notifications():
    # Notifications/redirects are collected per request and returned in the body.
    _haven().hooks.clear()


# -----------------------------
# Helpers
# -----------------------------
def _status_for(error) -> int:
    if isinstance(error, ValidationError):
        return 400
    if isinstance(error, NotFound):
        return 404
    if isinstance(error, ConstraintViolation):
        return 409
    if isinstance(error, NotReady):
        return 503
    return 500


def serialize(record):
    """Record dict → JSON-safe dict (ISO 'Z' datetimes, no password hash)."""
    if record is None:
        return None
    out = {}
    for key, value in record.items():
        if key == "password":
            continue
        out[key] = to_iso_z(value) if isinstance(value, datetime) else value
    return out


def reply(result: Result, **extra):
    """
    JSON response for a Result: {ok, message, redirect?, ...extra}.
    'message' is the last notification issued while handling the request.
    """
    hooks = _haven().hooks
    body = {"ok": result.ok, "message": hooks.last_message}
    if hooks.redirects:
        body["redirect"] = url_for(PAGES.get(hooks.redirects[-1], "dashboard.home"))
    if not result.ok:
        body["message"] = body["message"] or str(result.error)
        return jsonify(**body), _status_for(result.error)
    body.update(extra)
    return jsonify(**body)


def read_payload():
    """Accepts JSON or form-encoded data."""
    return request.get_json(silent=True) or request.form


def coerce_fields(payload) -> dict:
    """
    Convert incoming values to column types:
      - date/deadline strings → naive UTC datetimes ("" clears the value)
      - numeric fields → int (within SQLite's 64-bit range)
      - completed → bool
      - other strings are stripped
    Raises ValidationError on unparseable values.
    """
    fields = {}
    for key, value in payload.items():
        if isinstance(value, str):
            value = value.strip()
        if key in DATE_FIELDS and isinstance(value, str):
            dt = parse_datetime(value)
            if value and dt is None:
                raise ValidationError(f"Invalid {key}: {value}", field=key)
            value = dt
        elif key in INT_FIELDS and isinstance(value, str):
            if value == "":
                value = None
            else:
                try:
                    value = int(value)
                except ValueError:
                    raise ValidationError(f"{key} must be a whole number", field=key) from None
                if not MIN_INTEGER <= value <= MAX_INTEGER:
                    raise ValidationError(f"{key} is out of range", field=key)
        elif key in BOOL_FIELDS and isinstance(value, str):
            value = value.lower() in ("1", "true", "yes", "on")
        fields[key] = value
    return fields


def _collection(name):
    attr = COLLECTIONS.get(name)
    if attr is None:
        raise NotFound(f"Unknown collection '{name}'")
    return getattr(_haven().repos, attr)


def _owned(repo, record_id) -> Result:
    """Fetch a record only if it belongs to the active account."""
    found = repo.get_by_id(record_id)
    if not found.ok:
        return found
    account_id = _haven().sessions.current_account["id"]
    if found.data is None or found.data.get("account_id") != account_id:
        return Result(None, NotFound("Not found"))
    return found


def _list_reply(result: Result):
    if not result.ok:
        return reply(result)
    return reply(result, items=[serialize(r) for r in result.data])


# -----------------------------
# Auth: register / login / logout
# -----------------------------
@bp.route("/register", methods=["POST"])
def register():
    payload = read_payload()
    result = _haven().sessions.sign_up(
        payload.get("name"),
        payload.get("email"),
        payload.get("password"),
        payload.get("confirm_password"),
    )
    if result.ok:
        login_user(SessionUser(result.data.user))
    return reply(result)


@bp.route("/login", methods=["POST"])
def login():
    payload = read_payload()
    result = _haven().sessions.sign_in(payload.get("email"), payload.get("password"))
    if result.ok:
        login_user(SessionUser(result.data.user))
    return reply(result)


@bp.route("/logout", methods=["POST"])
@login_required
def logout():
    result = _haven().sessions.sign_out()
    logout_user()
    return reply(result)


# -----------------------------
# Health / Pages
# -----------------------------
@bp.route("/health")
def health():
    """Lightweight health endpoint; reports whether the store is open."""
    return {"status": "ok" if _haven().store.ready else "starting"}


@bp.route("/")
def home():
    """Landing/login page data (public): app name and the theme to paint."""
    haven = _haven()
    theme, mode = haven.sessions.load_theme()
    return jsonify(
        ok=True,
        app=haven.config.APP_NAME,
        version=haven.config.VERSION,
        authenticated=haven.sessions.is_authenticated(),
        theme=theme,
        theme_mode=mode,
    )


@bp.route("/dashboard")
@login_required
def dashboard():
    """Signed-in shell: user, active account, accounts and theme."""
    sessions = _haven().sessions
    theme, mode = sessions.load_theme()
    return jsonify(
        ok=True,
        user=serialize(sessions.current_user),
        account=serialize(sessions.current_account),
        accounts=[serialize(a) for a in sessions.context.accounts],
        theme=theme,
        theme_mode=mode,
    )


# -----------------------------
# Accounts / Settings
# -----------------------------
@bp.route("/api/accounts", methods=["GET"])
@login_required
def api_list_accounts():
    sessions = _haven().sessions
    result = _haven().repos.accounts.get_all(sessions.current_user["id"])
    if not result.ok:
        return reply(result)
    return reply(result, items=[serialize(a) for a in result.data], current_account_id=sessions.current_account["id"])


@bp.route("/api/accounts", methods=["POST"])
@login_required
def api_create_account():
    haven = _haven()
    payload = read_payload()
    fields = {"user_id": haven.sessions.current_user["id"], "name": (payload.get("name") or "").strip()}
    if payload.get("color"):
        fields["color"] = payload["color"].strip()
    result = haven.repos.accounts.create(fields)
    if result.ok:
        haven.sessions.reload()
    return reply(result, item=serialize(result.data))


def _own_account(account_id) -> Result:
    haven = _haven()
    found = haven.repos.accounts.get_by_id(account_id)
    if found.ok and (found.data is None or found.data["user_id"] != haven.sessions.current_user["id"]):
        return Result(None, NotFound("Account not found"))
    return found


@bp.route("/api/accounts/<account_id>", methods=["PATCH"])
@login_required
def api_update_account(account_id):
    haven = _haven()
    found = _own_account(account_id)
    if not found.ok:
        return reply(found)
    payload = read_payload()
    fields = {k: (v.strip() if isinstance(v, str) else v) for k, v in payload.items() if k in ("name", "color")}
    result = haven.repos.accounts.update(account_id, fields)
    if result.ok:
        haven.sessions.reload()
    return reply(result, item=serialize(result.data))


@bp.route("/api/accounts/<account_id>", methods=["DELETE"])
@login_required
def api_delete_account(account_id):
    """Delete one of the user's accounts (and everything planned under it). The last one stays."""
    haven = _haven()
    found = _own_account(account_id)
    if not found.ok:
        return reply(found)
    if len(haven.sessions.context.accounts) <= 1:
        return reply(Result(None, ValidationError("You need at least one account")))
    result = haven.repos.accounts.delete(account_id)
    if result.ok:
        haven.sessions.reload()
    return reply(result, current_account_id=haven.sessions.current_account["id"])


@bp.route("/api/accounts/switch", methods=["POST"])
@login_required
def api_switch_account():
    sessions = _haven().sessions
    result = sessions.switch_account(read_payload().get("account_id"))
    if result.ok and result.data is False:
        # Already active: nothing changed.
        return jsonify(ok=False, message=None, current_account_id=sessions.current_account["id"])
    return reply(result, account=serialize(result.data) if result.ok else None)


@bp.route("/api/settings", methods=["GET"])
@login_required
def api_get_settings():
    return jsonify(ok=True, settings=serialize(_haven().sessions.current_settings))


@bp.route("/api/settings/theme", methods=["PATCH"])
@login_required
def api_update_theme():
    payload = read_payload()
    result = _haven().sessions.set_theme(payload.get("theme"), payload.get("theme_mode"))
    return reply(result, settings=serialize(result.data))


# -----------------------------
# Filtered reads
# -----------------------------
def _account_id():
    return _haven().sessions.current_account["id"]


@bp.route("/api/streams/upcoming", methods=["GET"])
@login_required
def api_upcoming_streams():
    return _list_reply(_haven().repos.streams.get_upcoming(_account_id()))


@bp.route("/api/streams/completed", methods=["GET"])
@login_required
def api_completed_streams():
    return _list_reply(_haven().repos.streams.get_completed(_account_id()))


@bp.route("/api/content/status/<status>", methods=["GET"])
@login_required
def api_content_by_status(status):
    return _list_reply(_haven().repos.content.get_by_status(_account_id(), status))


@bp.route("/api/goals/active", methods=["GET"])
@login_required
def api_active_goals():
    return _list_reply(_haven().repos.goals.get_active(_account_id()))


@bp.route("/api/goals/completed", methods=["GET"])
@login_required
def api_completed_goals():
    return _list_reply(_haven().repos.goals.get_completed(_account_id()))


@bp.route("/api/ideas/priority/<priority>", methods=["GET"])
@login_required
def api_ideas_by_priority(priority):
    return _list_reply(_haven().repos.ideas.get_by_priority(_account_id(), priority))


@bp.route("/api/links/category/<category>", methods=["GET"])
@login_required
def api_links_by_category(category):
    return _list_reply(_haven().repos.links.get_by_category(_account_id(), category))


@bp.route("/api/growth/<platform>/latest", methods=["GET"])
@login_required
def api_growth_latest(platform):
    return _list_reply(_haven().repos.growth.get_latest(_account_id(), platform))


@bp.route("/api/growth/<platform>/history", methods=["GET"])
@login_required
def api_growth_history(platform):
    days = request.args.get("days", default=30, type=int)
    return _list_reply(_haven().repos.growth.get_history(_account_id(), platform, days))


# -----------------------------
# Generic account-scoped CRUD
# -----------------------------
@bp.route("/api/<collection>", methods=["GET"])
@login_required
def api_list(collection):
    try:
        repo = _collection(collection)
    except NotFound as e:
        return reply(Result(None, e))
    return _list_reply(repo.get_all(_account_id()))


@bp.route("/api/<collection>", methods=["POST"])
@login_required
def api_create(collection):
    """Create a record under the active account. Owner ids come from the session."""
    sessions = _haven().sessions
    try:
        repo = _collection(collection)
        fields = coerce_fields(read_payload())
    except (NotFound, ValidationError) as e:
        return reply(Result(None, e))
    for key in OWNER_FIELDS:
        fields.pop(key, None)
    fields["user_id"] = sessions.current_user["id"]
    fields["account_id"] = sessions.current_account["id"]

    extra = {}
    if collection == "links" and not is_valid_url(fields.get("url")):
        extra["warning"] = "That URL doesn't look valid."
    result = repo.create(fields)
    return reply(result, id=result.data["id"] if result.ok else None, item=serialize(result.data), **extra)


@bp.route("/api/<collection>/<record_id>", methods=["GET"])
@login_required
def api_get(collection, record_id):
    try:
        repo = _collection(collection)
    except NotFound as e:
        return reply(Result(None, e))
    found = _owned(repo, record_id)
    return reply(found, item=serialize(found.data))


@bp.route("/api/<collection>/<record_id>", methods=["PATCH"])
@login_required
def api_update(collection, record_id):
    """Partial update. Only provided keys change; owner fields are rejected."""
    try:
        repo = _collection(collection)
        fields = coerce_fields(read_payload())
    except (NotFound, ValidationError) as e:
        return reply(Result(None, e))
    found = _owned(repo, record_id)
    if not found.ok:
        return reply(found)
    result = repo.update(record_id, fields)
    return reply(result, item=serialize(result.data))


@bp.route("/api/<collection>/<record_id>", methods=["DELETE"])
@login_required
def api_delete(collection, record_id):
    try:
        repo = _collection(collection)
    except NotFound as e:
        return reply(Result(None, e))
    found = _owned(repo, record_id)
    if not found.ok:
        return reply(found)
    return reply(repo.delete(record_id))


# -----------------------------
# Calendar / Insights
# -----------------------------
@bp.route("/api/calendar-events", methods=["GET"])
@login_required
def api_calendar_events():
    """
    Streams and dated content of the requested window (default: this month),
    in FullCalendar's event shape.
    """
    default_start, default_end = month_range(utcnow())
    start = parse_datetime(request.args.get("start", "")) or default_start
    end = parse_datetime(request.args.get("end", "")) or default_end

    result = _haven().repos.calendar.get_all_events(_account_id(), start, end)
    if not result.ok:
        return reply(result)
    events = [{
        "id": e["id"],
        "title": e["title"],
        "start": to_iso_z(e["date"]),
        "color": e["color"],
        "extendedProps": {
            "source": e["source"],
            "platform": e.get("platform"),
            "type": e.get("type"),
            "status": e.get("status"),
            "notes": e.get("notes") or "",
        },
    } for e in result.data]
    return jsonify(ok=True, events=events)


@bp.route("/api/insights", methods=["GET"])
@login_required
def api_insights():
    result = dashboard_summary(_haven().repos, _account_id())
    if not result.ok:
        return reply(result)
    return jsonify(ok=True, data=result.data)


# -----------------------------
# Main
# -----------------------------
if __name__ == "__main__":
    cfg = Config()
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    # One user, one process: keep request handling on a single thread.
    create_app(cfg).run(host=cfg.HOST, port=cfg.PORT, threaded=False)
