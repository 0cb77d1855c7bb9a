# stream_haven/session.py
# Session manager: who is signed in and which account is active.
#
# State machine:
#   UNAUTHENTICATED --sign_up/sign_in/check_auth--> AUTHENTICATING --> AUTHENTICATED
#   AUTHENTICATED --sign_out--> UNAUTHENTICATED
#   AUTHENTICATED --switch_account--> AUTHENTICATED
# Any failure while loading the user's data drops back to UNAUTHENTICATED.
#
# The signed-in state lives in a SessionContext owned by the manager (built on
# authentication, discarded on sign-out); the session token is mirrored into
# local storage so it survives restarts.

import enum
import json
import logging
from dataclasses import dataclass, field

from werkzeug.security import check_password_hash, generate_password_hash

from stream_haven.config import (
    SESSION_KEY, THEME_KEY, THEME_MODE_KEY, THEME_MODES, THEMES, Config
)
from stream_haven.exceptions import NotFound, StreamHavenError, ValidationError, WriteError
from stream_haven.hooks import Hooks
from stream_haven.models import utcnow
from stream_haven.repositories import Repositories, Result
from stream_haven.utils import is_valid_email, to_iso_z

logger = logging.getLogger(__name__)

INVALID_CREDENTIALS = "Invalid email or password"


class SessionState(enum.Enum):
    UNAUTHENTICATED = "unauthenticated"
    AUTHENTICATING = "authenticating"
    AUTHENTICATED = "authenticated"


@dataclass
class SessionContext:
    """Everything the dashboard needs about the signed-in user."""
    user: dict
    token: dict
    settings: dict = None
    account: dict = None
    accounts: list = field(default_factory=list)

    @property
    def user_id(self) -> str:
        return self.user["id"]

    @property
    def account_id(self):
        return self.account["id"] if self.account else None


def _unwrap(result: Result):
    if result.error is not None:
        raise result.error
    return result.data


class SessionManager:
    def __init__(self, store, storage, hooks: Hooks = None, config: Config = None):
        self.store = store
        self.storage = storage
        self.hooks = hooks or Hooks()
        self.config = config or Config()
        # Internal repositories stay silent; the manager sends one notification per action.
        self.repos = Repositories(store, config=self.config)
        self.state = SessionState.UNAUTHENTICATED
        self.context = None

    # -----------------------------
    # Accessors
    # -----------------------------
    @property
    def current_user(self):
        return self.context.user if self.context else None

    @property
    def current_account(self):
        return self.context.account if self.context else None

    @property
    def current_settings(self):
        return self.context.settings if self.context else None

    def is_authenticated(self) -> bool:
        return (
            self.state is SessionState.AUTHENTICATED
            and self.context is not None
            and self.context.account is not None
        )

    # -----------------------------
    # Internals
    # -----------------------------
    def _fail(self, error: Exception, message: str = None) -> Result:
        self.hooks.notify(message or str(error), "error")
        return Result(None, error)

    def _teardown(self, clear_token: bool = True) -> None:
        if clear_token:
            try:
                self.storage.remove_item(SESSION_KEY)
            except OSError:
                logger.exception("[session] Could not remove session token")
        self.context = None
        self.state = SessionState.UNAUTHENTICATED

    def _authenticate(self, user: dict) -> None:
        """Mint a session token for user, persist it and load their data."""
        self.state = SessionState.AUTHENTICATING
        token = {
            "userId": user["id"],
            "email": user["email"],
            "name": user["name"],
            "createdAt": to_iso_z(utcnow()),
        }
        try:
            try:
                self.storage.set_item(SESSION_KEY, json.dumps(token))
            except OSError as e:
                raise WriteError(f"Could not save session: {e}") from e
            self.context = SessionContext(user=user, token=token)
            self._load_user_data()
        except StreamHavenError:
            self._teardown()
            raise
        self.state = SessionState.AUTHENTICATED
        logger.info("[session] Authenticated %s", user["email"])

    def _load_user_data(self) -> None:
        """
        Load settings + accounts for the context user:
          - missing settings → create defaults
          - no accounts → create the default account and make it current
          - otherwise the active account is settings.current_account_id, else the first one
        """
        ctx = self.context
        repos = self.repos

        settings = _unwrap(repos.settings.get(ctx.user_id))
        if settings is None:
            settings = _unwrap(repos.settings.create({
                "user_id": ctx.user_id,
                "pastel_theme": self.config.DEFAULT_THEME,
                "theme_mode": self.config.DEFAULT_THEME_MODE,
            }))

        accounts = _unwrap(repos.accounts.get_all(ctx.user_id))
        if not accounts:
            account = _unwrap(repos.accounts.create({
                "user_id": ctx.user_id,
                "name": self.config.DEFAULT_ACCOUNT_NAME,
                "color": self.config.DEFAULT_ACCOUNT_COLOR,
            }))
            settings = _unwrap(repos.settings.update(ctx.user_id, {"current_account_id": account["id"]}))
            accounts = [account]
        else:
            current_id = settings.get("current_account_id")
            account = next((a for a in accounts if a["id"] == current_id), accounts[0])

        ctx.settings = settings
        ctx.accounts = accounts
        ctx.account = account

    def _require_session(self):
        if not self.is_authenticated():
            raise ValidationError("You need to be signed in")

    # -----------------------------
    # Public API
    # -----------------------------
    def sign_up(self, name, email, password, confirm_password) -> Result:
        """Register a new user and sign them in. Result.data is the SessionContext."""
        name = (name or "").strip()
        email = (email or "").strip().lower()
        password = password or ""
        try:
            if not name or not email or not password:
                raise ValidationError("Please fill in all fields")
            if not is_valid_email(email):
                raise ValidationError("Please enter a valid email address", field="email")
            if len(password) < self.config.MIN_PASSWORD_LENGTH:
                raise ValidationError(
                    f"Password must be at least {self.config.MIN_PASSWORD_LENGTH} characters", field="password"
                )
            if password != (confirm_password or ""):
                raise ValidationError("Passwords do not match", field="confirm_password")

            self.store.wait_ready(self.config.STORE_READY_TIMEOUT)
            if _unwrap(self.repos.users.get_by_email(email)) is not None:
                raise ValidationError("Email already registered", field="email")

            user = _unwrap(self.repos.users.create({
                "email": email,
                "password": generate_password_hash(password, method=self.config.PASSWORD_HASH_METHOD),
                "name": name,
            }))
            logger.info("[session] Created user %s", email)
            self._authenticate(user)
        except ValidationError as e:
            return self._fail(e)
        except StreamHavenError as e:
            logger.exception("[session] Sign up failed")
            return self._fail(e, f"Failed to create account: {e}")

        self.hooks.notify(f"Account created successfully! Welcome to {self.config.APP_NAME}!", "success")
        self.hooks.redirect("dashboard")
        return Result(self.context)

    def sign_in(self, email, password) -> Result:
        """
        Check credentials and sign in. Unknown email and wrong password produce
        the same message; only the log tells them apart.
        """
        email = (email or "").strip().lower()
        password = password or ""
        try:
            if not email or not password:
                raise ValidationError("Please enter email and password")
            if not is_valid_email(email):
                raise ValidationError("Please enter a valid email address", field="email")

            self.store.wait_ready(self.config.STORE_READY_TIMEOUT)
            lookup = self.repos.users.get_by_email(email)
            if lookup.error is not None or lookup.data is None:
                logger.info("[session] Sign in rejected for %s: user not found (%s)", email, lookup.error)
                raise ValidationError(INVALID_CREDENTIALS)
            user = lookup.data
            if not check_password_hash(user["password"], password):
                logger.info("[session] Sign in rejected for %s: password mismatch", email)
                raise ValidationError(INVALID_CREDENTIALS)

            self._authenticate(user)
        except ValidationError as e:
            return self._fail(e)
        except StreamHavenError as e:
            logger.exception("[session] Sign in failed")
            return self._fail(e, "Failed to sign in")

        self.hooks.notify("Welcome back!", "success")
        self.hooks.redirect("dashboard")
        return Result(self.context)

    def sign_out(self) -> Result:
        try:
            self.storage.remove_item(SESSION_KEY)
        except OSError as e:
            logger.exception("[session] Log out failed")
            return self._fail(WriteError(str(e)), "Failed to log out")
        self._teardown(clear_token=False)
        self.hooks.notify("Logged out successfully", "success")
        self.hooks.redirect("login")
        return Result(True)

    def check_auth(self) -> Result:
        """
        Restore a persisted session (startup path).
        Result.data is True when a session was restored, False when there was none.
        """
        try:
            self.store.wait_ready(self.config.STORE_READY_TIMEOUT)
            raw = self.storage.get_item(SESSION_KEY)
            if not raw:
                logger.info("[session] No session found")
                self._teardown(clear_token=False)
                self.hooks.redirect("login")
                return Result(False)

            try:
                token = json.loads(raw)
                user_id = token["userId"]
            except (ValueError, KeyError, TypeError):
                user_id = None
            user = _unwrap(self.repos.users.get_by_id(user_id)) if user_id else None
            if user is None:
                logger.info("[session] Invalid session, clearing it")
                self._teardown()
                self.hooks.redirect("login")
                return Result(False)

            self.state = SessionState.AUTHENTICATING
            self.context = SessionContext(user=user, token=token)
            self._load_user_data()
        except (StreamHavenError, OSError) as e:
            logger.exception("[session] Auth check failed")
            self._teardown(clear_token=False)
            self.hooks.notify("Failed to load user data", "error")
            self.hooks.redirect("login")
            return Result(None, e)

        self.state = SessionState.AUTHENTICATED
        return Result(True)

    def switch_account(self, account_id) -> Result:
        """
        Make account_id the active account.
          - same as the current one (or empty) → Result(False), nothing written
          - unknown / another user's account → error, nothing written
        """
        try:
            self._require_session()
        except ValidationError as e:
            return self._fail(e)

        if not account_id or account_id == self.context.account_id:
            return Result(False)

        try:
            account = _unwrap(self.repos.accounts.get_by_id(account_id))
            if account is None or account["user_id"] != self.context.user_id:
                raise NotFound("Account not found")
            _unwrap(self.repos.settings.update(self.context.user_id, {"current_account_id": account_id}))
            self._load_user_data()
        except StreamHavenError as e:
            logger.warning("[session] Failed to switch account to %s: %s", account_id, e)
            return self._fail(e, "Failed to switch account")

        self.hooks.account_switched(account_id, self.context.account)
        self.hooks.notify(f"Switched to {self.context.account['name']}", "success")
        return Result(self.context.account)

    def reload(self) -> Result:
        """Re-read settings/accounts (e.g. after an account was added or renamed)."""
        try:
            self._require_session()
            self._load_user_data()
        except StreamHavenError as e:
            return Result(None, e)
        return Result(self.context)

    def set_theme(self, theme: str = None, mode: str = None) -> Result:
        """Persist the theme in Settings and mirror it into local storage."""
        fields = {}
        if theme is not None:
            fields["pastel_theme"] = theme
        if mode is not None:
            fields["theme_mode"] = mode
        try:
            self._require_session()
            if not fields:
                raise ValidationError("Nothing to change")
            settings = _unwrap(self.repos.settings.update(self.context.user_id, fields))
        except StreamHavenError as e:
            return self._fail(e, f"Failed to update theme: {e}")

        self.context.settings = settings
        try:
            self.storage.set_item(THEME_KEY, settings["pastel_theme"])
            self.storage.set_item(THEME_MODE_KEY, settings["theme_mode"])
        except OSError:
            # Only the pre-login hint is lost; Settings already holds the value.
            logger.exception("[session] Could not cache theme in storage")
        self.hooks.notify("Theme updated", "success")
        return Result(settings)

    def load_theme(self):
        """
        Resolve (theme, mode): defaults, overridden by the cached storage values,
        overridden by Settings once a user is loaded.
        """
        theme = self.config.DEFAULT_THEME
        mode = self.config.DEFAULT_THEME_MODE
        try:
            theme = self.storage.get_item(THEME_KEY) or theme
            mode = self.storage.get_item(THEME_MODE_KEY) or mode
        except OSError:
            logger.exception("[session] Could not read cached theme")
        if self.current_settings:
            theme = self.current_settings.get("pastel_theme") or theme
            mode = self.current_settings.get("theme_mode") or mode
        if theme not in THEMES:
            theme = self.config.DEFAULT_THEME
        if mode not in THEME_MODES:
            mode = self.config.DEFAULT_THEME_MODE
        return theme, mode
