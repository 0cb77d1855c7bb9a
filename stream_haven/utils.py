# stream_haven/utils.py
# Small helpers shared by the session manager, insights and the web layer:
# input checks, datetime parsing/formatting and dashboard number formatting.

import re
from datetime import datetime, timedelta, timezone
from urllib.parse import urlparse

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def is_valid_email(email: str) -> bool:
    return bool(EMAIL_RE.match(email or ""))


def is_valid_url(url: str) -> bool:
    """Advisory check for quick links: needs a scheme and a host."""
    try:
        parsed = urlparse((url or "").strip())
    except ValueError:
        return False
    return bool(parsed.scheme and parsed.netloc)


def parse_datetime(s: str):
    """
    Parse common datetime formats into a *naive UTC* datetime.
    Returns None if empty/unparseable.
    Supported:
      - ISO-8601 with 'Z' or offsets (e.g., 2025-10-20T12:00:00Z)
      - 'YYYY-MM-DD', 'YYYY-MM-DD HH:MM' or 'YYYY-MM-DD HH:MM AM/PM'
    """
    s = (s or "").strip()
    if not s:
        return None

    # ISO-8601 (…Z or with offset). Normalize 'Z' → '+00:00' for fromisoformat.
    try:
        iso = s[:-1] + "+00:00" if s.endswith("Z") else s
        dt = datetime.fromisoformat(iso)
        if dt.tzinfo is not None:
            dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
        return dt
    except ValueError:
        pass

    for fmt in ("%Y-%m-%d %H:%M", "%Y-%m-%d %I:%M %p", "%Y-%m-%d"):
        try:
            return datetime.strptime(s, fmt)
        except ValueError:
            continue

    return None


def to_iso_z(dt):
    """Naive UTC datetime → '...Z' string (None passes through)."""
    if dt is None:
        return None
    return dt.replace(tzinfo=timezone.utc).isoformat().replace("+00:00", "Z")


def calculate_percentage(current, target) -> int:
    """Progress as a whole percentage, capped at 100; a zero target reads as 0%."""
    if not target:
        return 0
    return min(100, round((current or 0) / target * 100))


def format_number(num) -> str:
    """1234 → '1.2K', 2500000 → '2.5M'."""
    if num >= 1_000_000:
        return f"{num / 1_000_000:.1f}M"
    if num >= 1_000:
        return f"{num / 1_000:.1f}K"
    return str(num)


def time_until(target: datetime, now: datetime) -> str:
    """Compact countdown: '2d 3h', '4h 10m', '15m', or 'Now' once reached."""
    if target is None:
        return ""
    seconds = int((target - now).total_seconds())
    if seconds <= 0:
        return "Now"
    days, rem = divmod(seconds, 86400)
    hours, rem = divmod(rem, 3600)
    minutes = rem // 60
    if days > 0:
        return f"{days}d {hours}h"
    if hours > 0:
        return f"{hours}h {minutes}m"
    return f"{minutes}m"


def week_range(now: datetime):
    """Sunday 00:00 through Saturday 23:59:59.999999 of the week containing now."""
    days_since_sunday = (now.weekday() + 1) % 7
    start = (now - timedelta(days=days_since_sunday)).replace(hour=0, minute=0, second=0, microsecond=0)
    end = start + timedelta(days=7) - timedelta(microseconds=1)
    return start, end


def month_range(now: datetime):
    """First day 00:00 through last day 23:59:59.999999 of now's month."""
    start = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    next_month = (start + timedelta(days=32)).replace(day=1)
    return start, next_month - timedelta(microseconds=1)


def week_floor(dt: datetime) -> datetime:
    """Monday 00:00:00 of dt's week (bucket key for weekly series)."""
    d = dt.replace(hour=0, minute=0, second=0, microsecond=0)
    return d - timedelta(days=d.weekday())
