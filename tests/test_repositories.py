# tests/test_repositories.py
"""
Entity repository tests.

Covers:
1) owner scoping: get_all(account) never returns another account's rows
2) create → get_by_id round trip, validation before the store
3) entity-specific reads (upcoming/completed streams, active goals,
   ideas by priority, links by category, growth history)
4) calendar merge (ordering, source tags, colours)
5) Result(data, error) contract and one notification per mutation
6) bad input that only the driver would catch (huge ints, date windows),
   user/account pairing on create
"""

import os
import sys
from datetime import datetime, timedelta

# --- Make the project importable when running `pytest` from repo root ---
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from stream_haven.exceptions import NotFound, NotReady, ValidationError, WriteError  # noqa: E402
from stream_haven.hooks import RecordingHooks  # noqa: E402
from stream_haven.repositories import AccountsRepository, Repositories  # noqa: E402
from stream_haven.storage import LocalStorage  # noqa: E402
from stream_haven.store import RecordStore  # noqa: E402

NOW = datetime(2030, 6, 15, 12, 0)


# ---------- Helper utilities ----------

def setup_repos(tmp_path, hooks=None):
    """
    Open a fresh store and create one user with two accounts.
    Returns (repos, user, account_a, account_b).
    """
    store = RecordStore(LocalStorage(str(tmp_path)), ready_timeout=1).open()
    repos = Repositories(store, hooks=hooks)
    user = repos.users.create({"email": "a@x.com", "password": "hash", "name": "A"}).data
    account_a = repos.accounts.create({"user_id": user["id"], "name": "Main"}).data
    account_b = repos.accounts.create({"user_id": user["id"], "name": "Side"}).data
    if hooks is not None:
        hooks.clear()
    return repos, user, account_a, account_b


def owned(user, account, **fields):
    """Field map carrying the owner ids."""
    return {"user_id": user["id"], "account_id": account["id"], **fields}


# ---------- Tests ----------

def test_get_all_is_scoped_to_the_account(tmp_path):
    """Rows of account B never show up in account A's lists (streams ordered by date)."""
    repos, user, a, b = setup_repos(tmp_path)
    repos.streams.create(owned(user, a, title="Late", platform="twitch", date=NOW + timedelta(days=2)))
    repos.streams.create(owned(user, b, title="Other", platform="youtube", date=NOW))
    repos.streams.create(owned(user, a, title="Early", platform="tiktok", date=NOW + timedelta(days=1)))
    repos.ideas.create(owned(user, b, title="B idea"))

    streams = repos.streams.get_all(a["id"])
    assert streams.ok
    assert [s["title"] for s in streams.data] == ["Early", "Late"]
    assert all(s["account_id"] == a["id"] for s in streams.data)
    assert repos.ideas.get_all(a["id"]).data == []


def test_create_then_get_by_id_round_trip(tmp_path):
    """The stored record is the given fields plus id, defaults and timestamps."""
    repos, user, a, _ = setup_repos(tmp_path)
    fields = owned(user, a, title="Hit 1k followers", target=1000, current=250, unit="followers")

    created = repos.goals.create(fields)
    fetched = repos.goals.get_by_id(created.data["id"])

    assert created.ok and fetched.ok
    record = fetched.data
    assert {k: record[k] for k in fields} == fields
    assert record["id"] == created.data["id"]
    assert record["completed"] is False
    assert record["deadline"] is None
    assert isinstance(record["created_at"], datetime)
    assert isinstance(record["updated_at"], datetime)


def test_newest_first_lists_break_ties_by_insertion(tmp_path):
    """created_at DESC lists (ideas, goals, links) show the most recent insert first."""
    repos, user, a, _ = setup_repos(tmp_path)
    for title in ("first", "second", "third"):
        repos.ideas.create(owned(user, a, title=title))
    assert [i["title"] for i in repos.ideas.get_all(a["id"]).data] == ["third", "second", "first"]


def test_accounts_are_listed_oldest_first(tmp_path):
    repos, user, a, b = setup_repos(tmp_path)
    assert [acc["id"] for acc in repos.accounts.get_all(user["id"]).data] == [a["id"], b["id"]]


def test_validation_happens_before_the_store(tmp_path):
    """Missing required fields and bad enum values come back as ValidationError."""
    repos, user, a, _ = setup_repos(tmp_path)

    missing = repos.streams.create(owned(user, a, platform="twitch", date=NOW))
    assert not missing.ok
    assert isinstance(missing.error, ValidationError)
    assert missing.error.field == "title"

    bad_platform = repos.streams.create(owned(user, a, title="X", platform="myspace", date=NOW))
    assert isinstance(bad_platform.error, ValidationError)

    bad_date = repos.streams.create(owned(user, a, title="X", platform="twitch", date="tomorrow"))
    assert isinstance(bad_date.error, ValidationError)

    bad_status = repos.content.create(owned(user, a, title="X", type="video", status="done"))
    assert isinstance(bad_status.error, ValidationError)

    negative = repos.goals.create(owned(user, a, title="X", target=-5))
    assert isinstance(negative.error, ValidationError)

    unknown = repos.ideas.create(owned(user, a, title="X", mood="happy"))
    assert isinstance(unknown.error, ValidationError)

    assert repos.streams.get_all(a["id"]).data == []
    assert repos.content.get_all(a["id"]).data == []


def test_scoped_reads_require_a_scope(tmp_path):
    repos, *_ = setup_repos(tmp_path)
    result = repos.streams.get_all(None)
    assert isinstance(result.error, ValidationError)


def test_update_and_delete(tmp_path):
    """Partial update by id; owner columns are fixed; unknown ids are NotFound."""
    repos, user, a, b = setup_repos(tmp_path)
    item = repos.content.create(owned(user, a, title="Vlog", type="video")).data
    assert item["status"] == "idea"

    updated = repos.content.update(item["id"], {"status": "editing", "notes": "cut intro"})
    assert updated.ok
    assert updated.data["status"] == "editing"
    assert updated.data["title"] == "Vlog"
    assert updated.data["updated_at"] >= item["updated_at"]

    moved = repos.content.update(item["id"], {"account_id": b["id"]})
    assert isinstance(moved.error, ValidationError)

    assert isinstance(repos.content.update("missing", {"title": "x"}).error, NotFound)

    assert repos.content.delete(item["id"]).ok
    assert repos.content.get_by_id(item["id"]).data is None
    assert isinstance(repos.content.delete(item["id"]).error, NotFound)


def test_upcoming_and_completed_streams(tmp_path):
    repos, user, a, _ = setup_repos(tmp_path)
    future = repos.streams.create(owned(user, a, title="Future", platform="twitch", date=NOW + timedelta(hours=3))).data
    repos.streams.create(owned(user, a, title="Past", platform="twitch", date=NOW - timedelta(days=1)))
    repos.streams.create(owned(user, a, title="Done early", platform="youtube",
                               date=NOW + timedelta(days=1), completed=True))
    repos.streams.create(owned(user, a, title="Done late", platform="youtube",
                               date=NOW + timedelta(days=2), completed=True))

    upcoming = repos.streams.get_upcoming(a["id"], now=NOW).data
    assert [s["id"] for s in upcoming] == [future["id"]]

    completed = repos.streams.get_completed(a["id"]).data
    assert [s["title"] for s in completed] == ["Done late", "Done early"]


def test_goal_filters(tmp_path):
    repos, user, a, _ = setup_repos(tmp_path)
    active = repos.goals.create(owned(user, a, title="Active", target=10)).data
    done = repos.goals.create(owned(user, a, title="Done", target=10, current=10, completed=True)).data

    assert [g["id"] for g in repos.goals.get_active(a["id"]).data] == [active["id"]]
    assert [g["id"] for g in repos.goals.get_completed(a["id"]).data] == [done["id"]]


def test_ideas_by_priority_and_links_by_category(tmp_path):
    repos, user, a, _ = setup_repos(tmp_path)
    repos.ideas.create(owned(user, a, title="Collab", priority="high"))
    repos.ideas.create(owned(user, a, title="Q&A"))
    repos.links.create(owned(user, a, title="OBS", url="https://obsproject.com", category="tools"))
    repos.links.create(owned(user, a, title="Docs", url="https://example.com"))

    high = repos.ideas.get_by_priority(a["id"], "high").data
    assert [i["title"] for i in high] == ["Collab"]
    assert repos.ideas.get_by_priority(a["id"], "medium").data[0]["title"] == "Q&A"
    assert isinstance(repos.ideas.get_by_priority(a["id"], "urgent").error, ValidationError)

    tools = repos.links.get_by_category(a["id"], "tools").data
    assert [link["title"] for link in tools] == ["OBS"]
    assert repos.links.get_by_category(a["id"], "general").data[0]["icon"] == "🔗"


def test_growth_latest_and_history(tmp_path):
    """History keeps the trailing window (oldest first); latest is newest first."""
    repos, user, a, _ = setup_repos(tmp_path)
    for days_ago, followers in ((40, 100), (20, 150), (5, 180)):
        repos.growth.create(owned(user, a, platform="twitch", followers=followers,
                                  date=NOW - timedelta(days=days_ago)))
    repos.growth.create(owned(user, a, platform="youtube", followers=999, date=NOW))

    latest = repos.growth.get_latest(a["id"], "twitch").data
    assert [g["followers"] for g in latest] == [180, 150, 100]

    history = repos.growth.get_history(a["id"], "twitch", 30, now=NOW).data
    assert [g["followers"] for g in history] == [150, 180]


def test_calendar_merges_streams_and_content_by_date(tmp_path):
    """Events are ordered by date, tagged with their source and a display colour."""
    repos, user, a, b = setup_repos(tmp_path)
    day = NOW.replace(hour=0)
    repos.content.create(owned(user, a, title="Edit vlog", type="video", status="editing", date=day + timedelta(hours=5)))
    repos.streams.create(owned(user, a, title="Morning", platform="twitch", date=day + timedelta(hours=9)))
    repos.streams.create(owned(user, a, title="Tie stream", platform="youtube", date=day + timedelta(hours=5)))
    repos.content.create(owned(user, a, title="Undated", type="post"))
    repos.streams.create(owned(user, b, title="Other account", platform="twitch", date=day + timedelta(hours=6)))
    repos.streams.create(owned(user, a, title="Out of range", platform="tiktok", date=day + timedelta(days=40)))

    events = repos.calendar.get_all_events(a["id"], day, day + timedelta(days=1))

    assert events.ok
    assert [(e["title"], e["source"]) for e in events.data] == [
        ("Tie stream", "stream"),
        ("Edit vlog", "content"),
        ("Morning", "stream"),
    ]
    colours = {e["title"]: e["color"] for e in events.data}
    assert colours == {"Tie stream": "#ff0000", "Edit vlog": "#f97316", "Morning": "#9146ff"}

    streams_only = repos.calendar.get_events(a["id"], day, day + timedelta(days=1)).data
    assert [s["title"] for s in streams_only] == ["Tie stream", "Morning"]


def test_settings_are_keyed_by_user(tmp_path):
    repos, user, a, _ = setup_repos(tmp_path)
    created = repos.settings.create({"user_id": user["id"], "current_account_id": a["id"]})
    assert created.data["pastel_theme"] == "lavender"
    assert created.data["theme_mode"] == "dark"

    updated = repos.settings.update(user["id"], {"pastel_theme": "mint"})
    assert updated.data["pastel_theme"] == "mint"
    assert repos.settings.get(user["id"]).data["pastel_theme"] == "mint"

    assert isinstance(repos.settings.update(user["id"], {"theme_mode": "sepia"}).error, ValidationError)
    assert isinstance(repos.settings.update("nobody", {"theme_mode": "light"}).error, NotFound)


def test_account_limit(tmp_path):
    repos, user, *_ = setup_repos(tmp_path)
    limited = AccountsRepository(repos.accounts.store, max_accounts=2)

    third = limited.create({"user_id": user["id"], "name": "Third"})

    assert isinstance(third.error, ValidationError)
    assert repos.accounts.count(user["id"]).data == 2


def test_deleting_a_user_removes_their_data(tmp_path):
    repos, user, a, b = setup_repos(tmp_path)
    repos.streams.create(owned(user, a, title="S", platform="twitch", date=NOW))
    repos.goals.create(owned(user, b, title="G", target=1))

    assert repos.users.delete(user["id"]).ok

    assert repos.accounts.get_all(user["id"]).data == []
    assert repos.streams.get_all(a["id"]).data == []
    assert repos.goals.get_all(b["id"]).data == []
    assert repos.users.get_by_email("a@x.com").data is None


def test_one_notification_per_mutation(tmp_path):
    hooks = RecordingHooks()
    repos, user, a, _ = setup_repos(tmp_path, hooks=hooks)

    created = repos.ideas.create(owned(user, a, title="Idea"))
    assert hooks.notifications == [("Idea created", "success")]

    hooks.clear()
    repos.ideas.update(created.data["id"], {"priority": "meh"})
    assert len(hooks.notifications) == 1
    message, kind = hooks.notifications[0]
    assert kind == "error" and message.startswith("Failed to update idea")

    hooks.clear()
    repos.ideas.get_all(a["id"])
    assert hooks.notifications == []


def test_store_errors_become_results(tmp_path):
    """A store that never opened surfaces NotReady inside the Result."""
    store = RecordStore(LocalStorage(str(tmp_path)), ready_timeout=0.05)
    repos = Repositories(store)

    result = repos.streams.get_all("some-account")

    assert result.data is None
    assert isinstance(result.error, NotReady)
    assert not result.ok


def test_out_of_range_integers_fail_with_one_notification(tmp_path):
    """Counts beyond SQLite's 64-bit INTEGER come back as errors, never as raised exceptions."""
    hooks = RecordingHooks()
    repos, user, a, _ = setup_repos(tmp_path, hooks=hooks)

    huge = repos.goals.create(owned(user, a, title="Moon", target=10 ** 30))
    assert isinstance(huge.error, ValidationError)
    assert huge.error.field == "target"
    assert len(hooks.notifications) == 1 and hooks.notifications[0][1] == "error"

    # A field without a numeric check still fails inside the Result.
    hooks.clear()
    odd = repos.ideas.create(owned(user, a, title=10 ** 30))
    assert isinstance(odd.error, WriteError)
    assert len(hooks.notifications) == 1 and hooks.notifications[0][1] == "error"

    assert repos.goals.get_all(a["id"]).data == []
    assert repos.ideas.get_all(a["id"]).data == []


def test_growth_history_rejects_bad_windows(tmp_path):
    repos, user, a, _ = setup_repos(tmp_path)
    repos.growth.create(owned(user, a, platform="twitch", followers=10, date=NOW))

    for days in (-1, 10 ** 6, 10 ** 12, "30"):
        result = repos.growth.get_history(a["id"], "twitch", days, now=NOW)
        assert isinstance(result.error, ValidationError), days
        assert result.error.field == "days"

    assert len(repos.growth.get_history(a["id"], "twitch", 0, now=NOW).data) == 1


def test_create_rejects_account_of_another_user(tmp_path):
    """user_id and account_id must belong together on every account-scoped record."""
    repos, user, a, _ = setup_repos(tmp_path)
    other = repos.users.create({"email": "b@x.com", "password": "hash", "name": "B"}).data

    crossed = repos.streams.create(owned(other, a, title="S", platform="twitch", date=NOW))
    assert isinstance(crossed.error, ValidationError)
    assert crossed.error.field == "account_id"

    missing = repos.ideas.create({"user_id": user["id"], "account_id": "no-such-account", "title": "I"})
    assert isinstance(missing.error, ValidationError)

    assert repos.streams.get_all(a["id"]).data == []

    # Deleting the other user leaves this account's data alone.
    repos.streams.create(owned(user, a, title="Mine", platform="twitch", date=NOW))
    repos.users.delete(other["id"])
    assert [s["title"] for s in repos.streams.get_all(a["id"]).data] == ["Mine"]
