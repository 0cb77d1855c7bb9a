# stream_haven/insights.py
# Dashboard analytics for one account:
#   - streams: this week's count, next stream countdown, weekly series
#   - content pipeline counts per status
#   - goal progress percentages
#   - follower growth per platform over a trailing window
#   - a few simple suggestions

from collections import Counter
from datetime import timedelta

from stream_haven.config import CONTENT_STATUSES
from stream_haven.exceptions import StreamHavenError
from stream_haven.models import utcnow
from stream_haven.repositories import Result
from stream_haven.utils import (
    calculate_percentage, format_number, time_until, to_iso_z, week_floor, week_range
)


def _data(result: Result):
    if result.error is not None:
        raise result.error
    return result.data


def _weekly_series(streams, now, weeks_back):
    """Streams per week (Monday buckets) for the last `weeks_back` weeks, zeros included."""
    window_start = week_floor(now - timedelta(weeks=weeks_back - 1))
    counts = Counter(week_floor(s["date"]) for s in streams if s["date"] >= window_start)
    series = []
    for w in range(weeks_back):
        ws = week_floor(now - timedelta(weeks=(weeks_back - 1 - w)))
        series.append({"week_start": ws.isoformat(), "count": int(counts[ws])})
    return series


def _growth(samples, now, days):
    """
    samples: every platform, newest first.
    Returns per-platform latest followers and the change across the window.
    """
    window_start = now - timedelta(days=days)
    by_platform = {}
    for s in samples:
        by_platform.setdefault(s["platform"], []).append(s)

    out = []
    for platform, rows in sorted(by_platform.items()):
        latest = rows[0]
        in_window = [r for r in rows if r["date"] >= window_start]
        oldest = in_window[-1] if in_window else latest
        change = latest["followers"] - oldest["followers"]
        out.append({
            "platform": platform,
            "followers": latest["followers"],
            "followers_display": format_number(latest["followers"]),
            "change": change,
            "as_of": to_iso_z(latest["date"]),
        })
    return out


def dashboard_summary(repos, account_id, now=None, weeks_back: int = 8, growth_days: int = 30) -> Result:
    """Compute the dashboard numbers for account_id. Returns Result(dict)."""
    now = now or utcnow()
    try:
        streams = _data(repos.streams.get_all(account_id))
        upcoming = _data(repos.streams.get_upcoming(account_id, now=now))
        content = _data(repos.content.get_all(account_id))
        goals = _data(repos.goals.get_all(account_id))
        growth = _data(repos.growth.get_all(account_id))
    except StreamHavenError as e:
        return Result(None, e)

    start, end = week_range(now)
    this_week = [s for s in streams if start <= s["date"] <= end]
    next_stream = upcoming[0] if upcoming else None

    pipeline = {status: 0 for status in CONTENT_STATUSES}
    pipeline.update(Counter(c["status"] for c in content))

    goal_rows = [{
        "id": g["id"],
        "title": g["title"],
        "current": g["current"],
        "target": g["target"],
        "unit": g["unit"],
        "percent": calculate_percentage(g["current"], g["target"]),
        "completed": bool(g["completed"]),
    } for g in goals]

    suggestions = []
    if not upcoming:
        suggestions.append("No upcoming streams. Schedule your next one to keep your audience engaged.")
    if pipeline["idea"] >= 5 and pipeline["planning"] == 0:
        suggestions.append("Lots of ideas waiting. Move one into planning this week.")
    nearly_done = [g for g in goal_rows if not g["completed"] and g["percent"] >= 90]
    if nearly_done:
        suggestions.append(f"You're almost there on '{nearly_done[0]['title']}'. One more push!")

    return Result({
        "streams": {
            "total": len(streams),
            "this_week": len(this_week),
            "upcoming": len(upcoming),
            "completed": sum(1 for s in streams if s["completed"]),
            "next": None if next_stream is None else {
                "id": next_stream["id"],
                "title": next_stream["title"],
                "platform": next_stream["platform"],
                "date": to_iso_z(next_stream["date"]),
                "starts_in": time_until(next_stream["date"], now),
            },
            "weekly_series": _weekly_series(streams, now, weeks_back),
        },
        "content_pipeline": pipeline,
        "goals": {
            "active": sum(1 for g in goal_rows if not g["completed"]),
            "completed": sum(1 for g in goal_rows if g["completed"]),
            "items": goal_rows,
        },
        "growth": _growth(growth, now, growth_days),
        "suggestions": suggestions,
    })
