# stream_haven/models.py
# SQLAlchemy schema for Stream Haven.
# Each model is the closed field set of one table; the record store validates
# every field map against these columns before building SQL.
# Rows are read and written through SQLAlchemy Core by the record store, so
# ownership cascades live in the FK definitions (ON DELETE), not in ORM relationships.

from datetime import datetime, timezone

from flask_sqlalchemy import SQLAlchemy

# Single SQLAlchemy instance; only its metadata/declarative base is used.
db = SQLAlchemy()

# SQLite INTEGER is a signed 64-bit value.
MAX_INTEGER = 2 ** 63 - 1
MIN_INTEGER = -(2 ** 63)


def utcnow() -> datetime:
    """Naive UTC 'now' (timestamps are stored without tzinfo)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _in(column: str, values) -> str:
    quoted = ", ".join(f"'{v}'" for v in values)
    return f"{column} IN ({quoted})"


def _owner_columns():
    """user_id + account_id pair carried by every account-scoped table."""
    return (
        db.Column(db.String(36), db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True),
        db.Column(db.String(36), db.ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False, index=True),
    )


class User(db.Model):
    """
    Application user:
      - 'email' is unique at the DB level; duplicate sign-ups fail at insert time.
      - 'password' holds a werkzeug salted hash, never the raw password.
    """
    __tablename__ = "users"

    id = db.Column(db.String(36), primary_key=True)
    email = db.Column(db.String(120), unique=True, nullable=False)
    password = db.Column(db.String(256), nullable=False)
    name = db.Column(db.String(100), nullable=False)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    def __repr__(self):
        return f"<User {self.email}>"


class Account(db.Model):
    """A channel/brand the user plans for. Deleting the user removes its accounts."""
    __tablename__ = "accounts"

    id = db.Column(db.String(36), primary_key=True)
    user_id = db.Column(db.String(36), db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    name = db.Column(db.String(100), nullable=False)
    color = db.Column(db.String(20), nullable=False, default="#7c3aed")
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow)


class Settings(db.Model):
    """
    Per-user preferences (exactly one row per user, enforced by UNIQUE user_id).
    current_account_id falls back to NULL if the referenced account is deleted.
    """
    __tablename__ = "user_settings"

    id = db.Column(db.String(36), primary_key=True)
    user_id = db.Column(db.String(36), db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True)
    pastel_theme = db.Column(db.String(20), nullable=False, default="lavender")
    theme_mode = db.Column(db.String(10), nullable=False, default="dark")
    current_account_id = db.Column(db.String(36), db.ForeignKey("accounts.id", ondelete="SET NULL"), nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow)


class Stream(db.Model):
    """A planned live stream on one of the supported platforms."""
    __tablename__ = "streams"
    __table_args__ = (
        db.CheckConstraint(_in("platform", ("twitch", "youtube", "tiktok", "instagram")), name="ck_streams_platform"),
    )

    id = db.Column(db.String(36), primary_key=True)
    user_id, account_id = _owner_columns()
    title = db.Column(db.String(200), nullable=False)
    platform = db.Column(db.String(20), nullable=False)
    date = db.Column(db.DateTime, nullable=False)  # naive UTC
    duration = db.Column(db.Integer, nullable=True)  # minutes
    completed = db.Column(db.Boolean, nullable=False, default=False)
    notes = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow)


class ContentItem(db.Model):
    """
    A piece of content moving through the pipeline:
      idea → planning → recording → editing → published.
    'date' is optional; undated items never show on the calendar.
    """
    __tablename__ = "content_planner"
    __table_args__ = (
        db.CheckConstraint(_in("type", ("stream", "video", "short", "post")), name="ck_content_type"),
        db.CheckConstraint(
            _in("status", ("idea", "planning", "recording", "editing", "published")), name="ck_content_status"
        ),
    )

    id = db.Column(db.String(36), primary_key=True)
    user_id, account_id = _owner_columns()
    title = db.Column(db.String(200), nullable=False)
    type = db.Column(db.String(20), nullable=False)
    status = db.Column(db.String(20), nullable=False, default="idea")
    date = db.Column(db.DateTime, nullable=True)
    notes = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow)


class Goal(db.Model):
    """Numeric target with progress; both sides are non-negative."""
    __tablename__ = "goals"
    __table_args__ = (
        db.CheckConstraint("target >= 0", name="ck_goals_target"),
        db.CheckConstraint("current >= 0", name="ck_goals_current"),
    )

    id = db.Column(db.String(36), primary_key=True)
    user_id, account_id = _owner_columns()
    title = db.Column(db.String(200), nullable=False)
    target = db.Column(db.Integer, nullable=False)
    current = db.Column(db.Integer, nullable=False, default=0)
    unit = db.Column(db.String(30), nullable=False, default="count")
    deadline = db.Column(db.DateTime, nullable=True)
    completed = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow)


class SimsGoal(db.Model):
    """Lightweight checklist-style goal (no unit/deadline)."""
    __tablename__ = "sims_goals"
    __table_args__ = (
        db.CheckConstraint("target >= 0", name="ck_sims_goals_target"),
        db.CheckConstraint("current >= 0", name="ck_sims_goals_current"),
    )

    id = db.Column(db.String(36), primary_key=True)
    user_id, account_id = _owner_columns()
    title = db.Column(db.String(200), nullable=False)
    target = db.Column(db.Integer, nullable=False)
    current = db.Column(db.Integer, nullable=False, default=0)
    completed = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow)


class Idea(db.Model):
    __tablename__ = "ideas"
    __table_args__ = (
        db.CheckConstraint(_in("priority", ("low", "medium", "high")), name="ck_ideas_priority"),
    )

    id = db.Column(db.String(36), primary_key=True)
    user_id, account_id = _owner_columns()
    title = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=True)
    category = db.Column(db.String(50), nullable=False, default="general")
    priority = db.Column(db.String(10), nullable=False, default="medium")
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow)


class QuickLink(db.Model):
    # URL shape is checked by callers (is_valid_url); the table accepts any text.
    __tablename__ = "quick_links"

    id = db.Column(db.String(36), primary_key=True)
    user_id, account_id = _owner_columns()
    title = db.Column(db.String(100), nullable=False)
    url = db.Column(db.Text, nullable=False)
    category = db.Column(db.String(50), nullable=False, default="general")
    icon = db.Column(db.String(16), nullable=False, default="🔗")
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow)


class GrowthStat(db.Model):
    """Follower count sample; (account_id, platform) ordered by date is one series."""
    __tablename__ = "growth_stats"

    id = db.Column(db.String(36), primary_key=True)
    user_id, account_id = _owner_columns()
    platform = db.Column(db.String(20), nullable=False)
    followers = db.Column(db.Integer, nullable=False, default=0)
    date = db.Column(db.DateTime, nullable=False)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)


# Creation order matters only for readability; create_all sorts by FK dependency.
TABLES = {
    model.__tablename__: model.__table__
    for model in (User, Account, Settings, Stream, ContentItem, Goal, SimsGoal, Idea, QuickLink, GrowthStat)
}
