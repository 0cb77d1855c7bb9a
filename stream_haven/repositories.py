# stream_haven/repositories.py
# Entity repositories: thin, typed facades over the record store.
# Each one fixes the table, the owner scope used in WHERE clauses and the
# default sort order, and returns Result(data, error) instead of raising.

import heapq
import logging
from datetime import datetime, timedelta
from typing import Any, NamedTuple, Optional

from stream_haven.config import (
    CONTENT_STATUSES, CONTENT_TYPES, DEFAULT_CONTENT_COLOR, DEFAULT_STREAM_COLOR,
    PLATFORMS, PRIORITIES, THEME_MODES, THEMES, Config
)
from stream_haven.exceptions import NotFound, StreamHavenError, ValidationError
from stream_haven.models import MAX_INTEGER, utcnow

logger = logging.getLogger(__name__)


class Result(NamedTuple):
    """Outcome of a repository/session call: data on success, error otherwise."""
    data: Any = None
    error: Optional[Exception] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def capture(fn, *args, **kwargs) -> Result:
    """Run fn and fold Stream Haven errors into a Result."""
    try:
        return Result(fn(*args, **kwargs))
    except StreamHavenError as e:
        logger.warning("[repo] %s failed: %s: %s", getattr(fn, "__name__", fn), type(e).__name__, e)
        return Result(None, e)


class Repository:
    """
    Base CRUD mapping for one table:
      - get_by_id / create / update / delete
      - 'required' fields must be present (and non-empty) on create
      - 'choices' restrict enum-like fields; 'datetimes' must be datetime values
      - 'non_negative' numeric fields reject values below zero
    Owner columns (user_id/account_id) are fixed after creation.
    """

    table = None
    label = "record"
    required = ()
    choices = {}
    datetimes = ()
    non_negative = ()
    owner_fields = ("user_id", "account_id")

    def __init__(self, store, hooks=None):
        self.store = store
        self.hooks = hooks

    # --- validation ---
    def validate(self, fields: dict, partial: bool = False) -> dict:
        fields = dict(fields or {})
        if not partial:
            for name in self.required:
                value = fields.get(name)
                if value is None or (isinstance(value, str) and not value.strip()):
                    raise ValidationError(f"{name.replace('_', ' ').capitalize()} is required", field=name)
        for name, allowed in self.choices.items():
            if name in fields and fields[name] not in allowed:
                raise ValidationError(
                    f"Invalid {name} '{fields[name]}' (expected one of: {', '.join(allowed)})", field=name
                )
        for name in self.datetimes:
            value = fields.get(name)
            if value is not None and not isinstance(value, datetime):
                raise ValidationError(f"{name} must be a datetime", field=name)
        for name in self.non_negative:
            value = fields.get(name)
            if value is None:
                continue
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise ValidationError(f"{name} must be a number", field=name)
            if value < 0:
                raise ValidationError(f"{name} cannot be negative", field=name)
            if value > MAX_INTEGER:
                raise ValidationError(f"{name} is too large", field=name)
        return fields

    # --- notifications ---
    def _notify(self, result: Result, done: str, verb: str) -> Result:
        if self.hooks is not None:
            if result.ok:
                self.hooks.notify(f"{self.label.capitalize()} {done}", "success")
            else:
                self.hooks.notify(f"Failed to {verb} {self.label}: {result.error}", "error")
        return result

    # --- operations ---
    def get_by_id(self, record_id) -> Result:
        return capture(self.store.query_one, self.table, {"id": record_id})

    def _create(self, fields):
        return self.store.insert(self.table, self.validate(fields))

    def _update(self, record_id, fields):
        fields = self.validate(fields, partial=True)
        locked = [name for name in self.owner_fields if name in fields]
        if locked:
            raise ValidationError(f"{locked[0]} cannot be changed", field=locked[0])
        if not self.store.update(self.table, fields, {"id": record_id}):
            raise NotFound(f"{self.label.capitalize()} not found")
        return self.store.query_one(self.table, {"id": record_id})

    def _delete(self, record_id):
        if not self.store.delete(self.table, {"id": record_id}):
            raise NotFound(f"{self.label.capitalize()} not found")
        return record_id

    def create(self, fields) -> Result:
        return self._notify(capture(self._create, fields), "created", "create")

    def update(self, record_id, fields) -> Result:
        return self._notify(capture(self._update, record_id, fields), "updated", "update")

    def delete(self, record_id) -> Result:
        return self._notify(capture(self._delete, record_id), "deleted", "delete")


class ScopedRepository(Repository):
    """Repository whose list reads are always restricted to one owner."""

    scope = "account_id"
    order = ("-created_at", "-rowid")

    def _require_scope(self, scope_id):
        if not scope_id:
            raise ValidationError(f"{self.scope} is required", field=self.scope)

    def _check_owner(self, fields):
        """account_id must name an account of the same user_id."""
        account = self.store.query_one("accounts", {"id": fields["account_id"], "user_id": fields["user_id"]})
        if account is None:
            raise ValidationError("Account not found for this user", field="account_id")

    def _create(self, fields):
        fields = self.validate(fields)
        if "user_id" in self.owner_fields and "account_id" in self.owner_fields:
            self._check_owner(fields)
        return self.store.insert(self.table, fields)

    def _list(self, scope_id, order=None, **predicate):
        self._require_scope(scope_id)
        predicate[self.scope] = scope_id
        return self.store.query_all(self.table, predicate, order or self.order)

    def get_all(self, scope_id) -> Result:
        return capture(self._list, scope_id)

    def count(self, scope_id) -> Result:
        def _count():
            self._require_scope(scope_id)
            return self.store.count(self.table, {self.scope: scope_id})
        return capture(_count)


# -----------------------------
# Users / Accounts / Settings
# -----------------------------
class UsersRepository(Repository):
    table = "users"
    label = "user"
    required = ("email", "password", "name")
    owner_fields = ()

    def get_by_email(self, email) -> Result:
        return capture(self.store.query_one, self.table, {"email": email})


class AccountsRepository(ScopedRepository):
    table = "accounts"
    label = "account"
    scope = "user_id"
    order = ("created_at", "rowid")
    required = ("user_id", "name")
    owner_fields = ("user_id",)

    def __init__(self, store, hooks=None, max_accounts: int = Config.MAX_ACCOUNTS):
        super().__init__(store, hooks)
        self.max_accounts = max_accounts

    def _create(self, fields):
        fields = self.validate(fields)
        if self.store.count(self.table, {"user_id": fields["user_id"]}) >= self.max_accounts:
            raise ValidationError(f"You can have at most {self.max_accounts} accounts", field="user_id")
        return self.store.insert(self.table, fields)


class SettingsRepository(Repository):
    """One row per user; reads and updates are keyed by user_id."""

    table = "user_settings"
    label = "settings"
    required = ("user_id",)
    choices = {"pastel_theme": tuple(THEMES), "theme_mode": THEME_MODES}
    owner_fields = ("user_id",)

    def get(self, user_id) -> Result:
        return capture(self.store.query_one, self.table, {"user_id": user_id})

    def _update_for_user(self, user_id, fields):
        fields = self.validate(fields, partial=True)
        if "user_id" in fields:
            raise ValidationError("user_id cannot be changed", field="user_id")
        if not self.store.update(self.table, fields, {"user_id": user_id}):
            raise NotFound("Settings not found")
        return self.store.query_one(self.table, {"user_id": user_id})

    def update(self, user_id, fields) -> Result:
        return self._notify(capture(self._update_for_user, user_id, fields), "updated", "update")


# -----------------------------
# Account-scoped entities
# -----------------------------
class StreamsRepository(ScopedRepository):
    table = "streams"
    label = "stream"
    order = ("date", "rowid")
    required = ("user_id", "account_id", "title", "platform", "date")
    choices = {"platform": tuple(PLATFORMS)}
    datetimes = ("date",)
    non_negative = ("duration",)

    def get_upcoming(self, account_id, now: datetime = None) -> Result:
        """Not-completed streams from now on, soonest first."""
        return capture(self._list, account_id, date__gte=now or utcnow(), completed=False)

    def get_completed(self, account_id) -> Result:
        return capture(self._list, account_id, ("-date", "-rowid"), completed=True)

    def get_in_range(self, account_id, start: datetime, end: datetime) -> Result:
        return capture(self._list, account_id, date__gte=start, date__lte=end)


class ContentRepository(ScopedRepository):
    table = "content_planner"
    label = "content item"
    order = ("date", "rowid")
    required = ("user_id", "account_id", "title", "type")
    choices = {"type": tuple(CONTENT_TYPES), "status": tuple(CONTENT_STATUSES)}
    datetimes = ("date",)

    def get_by_status(self, account_id, status) -> Result:
        def _by_status():
            self.validate({"status": status}, partial=True)
            return self._list(account_id, status=status)
        return capture(_by_status)

    def get_in_range(self, account_id, start: datetime, end: datetime) -> Result:
        return capture(self._list, account_id, date__gte=start, date__lte=end)


class GoalsRepository(ScopedRepository):
    table = "goals"
    label = "goal"
    required = ("user_id", "account_id", "title", "target")
    datetimes = ("deadline",)
    non_negative = ("target", "current")

    def get_active(self, account_id) -> Result:
        return capture(self._list, account_id, completed=False)

    def get_completed(self, account_id) -> Result:
        return capture(self._list, account_id, completed=True)


class SimsGoalsRepository(ScopedRepository):
    table = "sims_goals"
    label = "sims goal"
    required = ("user_id", "account_id", "title", "target")
    non_negative = ("target", "current")


class IdeasRepository(ScopedRepository):
    table = "ideas"
    label = "idea"
    required = ("user_id", "account_id", "title")
    choices = {"priority": PRIORITIES}

    def get_by_priority(self, account_id, priority) -> Result:
        def _by_priority():
            self.validate({"priority": priority}, partial=True)
            return self._list(account_id, priority=priority)
        return capture(_by_priority)


class LinksRepository(ScopedRepository):
    table = "quick_links"
    label = "link"
    required = ("user_id", "account_id", "title", "url")

    def get_by_category(self, account_id, category) -> Result:
        return capture(self._list, account_id, category=category)


class GrowthRepository(ScopedRepository):
    table = "growth_stats"
    label = "growth stat"
    order = ("-date", "-rowid")
    required = ("user_id", "account_id", "platform", "date")
    datetimes = ("date",)
    non_negative = ("followers",)

    def get_latest(self, account_id, platform) -> Result:
        """All samples for one platform, newest first (index 0 is the latest)."""
        return capture(self._list, account_id, platform=platform)

    def get_history(self, account_id, platform, days: int, now: datetime = None) -> Result:
        """Samples of the trailing `days` window, oldest first (for charts)."""
        def _history():
            if isinstance(days, bool) or not isinstance(days, int) or days < 0:
                raise ValidationError("days must be a whole number of days, 0 or more", field="days")
            try:
                start = (now or utcnow()) - timedelta(days=days)
            except OverflowError:
                raise ValidationError(f"days is out of range: {days}", field="days") from None
            return self._list(account_id, ("date", "rowid"), platform=platform, date__gte=start)
        return capture(_history)


# -----------------------------
# Calendar
# -----------------------------
class CalendarRepository:
    """Read-only view merging dated streams and content items for the calendar."""

    def __init__(self, streams: StreamsRepository, content: ContentRepository):
        self.streams = streams
        self.content = content

    def get_events(self, account_id, start: datetime, end: datetime) -> Result:
        return self.streams.get_in_range(account_id, start, end)

    def get_all_events(self, account_id, start: datetime, end: datetime) -> Result:
        """
        One date-ordered list. Each record gets:
          - 'source': 'stream' or 'content'
          - 'color': platform colour (streams) / status colour (content)
        Both inputs are already sorted by date, so a stable merge keeps streams
        ahead of content on equal dates.
        """
        streams = self.streams.get_in_range(account_id, start, end)
        content = self.content.get_in_range(account_id, start, end)
        if not streams.ok or not content.ok:
            return Result([], streams.error or content.error)

        stream_events = [
            {**s, "source": "stream", "color": PLATFORMS.get(s["platform"], {}).get("color", DEFAULT_STREAM_COLOR)}
            for s in streams.data
        ]
        content_events = [
            {**c, "source": "content",
             "color": CONTENT_STATUSES.get(c["status"], {}).get("color", DEFAULT_CONTENT_COLOR)}
            for c in content.data
        ]
        return Result(list(heapq.merge(stream_events, content_events, key=lambda e: e["date"])))


class Repositories:
    """All repositories over one store, sharing the same hooks."""

    def __init__(self, store, hooks=None, config: Config = None):
        config = config or Config()
        self.users = UsersRepository(store, hooks)
        self.accounts = AccountsRepository(store, hooks, max_accounts=config.MAX_ACCOUNTS)
        self.settings = SettingsRepository(store, hooks)
        self.streams = StreamsRepository(store, hooks)
        self.content = ContentRepository(store, hooks)
        self.goals = GoalsRepository(store, hooks)
        self.sims_goals = SimsGoalsRepository(store, hooks)
        self.ideas = IdeasRepository(store, hooks)
        self.links = LinksRepository(store, hooks)
        self.growth = GrowthRepository(store, hooks)
        self.calendar = CalendarRepository(self.streams, self.content)
