# tracker/tests/test_api.py
import datetime as dt
from datetime import timedelta

import pytest
from django.db import DatabaseError, IntegrityError
from django.utils import timezone
from rest_framework.test import APIClient

from tracker import services
from tracker.exceptions import RetrievalError
from tracker.models import Follow, Profile, SolvedRecord


def iso(dt_):
    """Ensure tz-aware UTC -> ISO string"""
    if timezone.is_naive(dt_):
        dt_ = timezone.make_aware(dt_, dt.timezone.utc)
    return dt_.astimezone(dt.timezone.utc).isoformat()


def _make_user(c, user_id, username=None):
    payload = {"user_id": user_id}
    if username:
        payload["username"] = username
    r = c.post("/api/users", payload, format="json")
    assert r.status_code == 201, r.content
    return r


def _post_solve(c, user_id, number, when=None, difficulty="Easy", name=None):
    payload = {
        "user_id": user_id,
        "number": number,
        "name": name or f"Problem {number}",
        "difficulty": difficulty,
    }
    if when is not None:
        payload["date_solved"] = iso(when)
    r = c.post("/api/solves", payload, format="json")
    assert r.status_code in (200, 201), r.content
    return r


# --- profiles ---

@pytest.mark.django_db
def test_profile_create_then_duplicate_user_is_409():
    c = APIClient()
    r1 = c.post("/api/users", {"user_id": "u-1", "username": "alice"}, format="json")
    assert r1.status_code == 201
    assert r1.json()["username"] == "alice"
    assert r1.json()["current_streak"] == 0

    r2 = c.post("/api/users", {"user_id": "u-1", "username": "bob"}, format="json")
    assert r2.status_code == 409
    assert "already exists" in r2.json()["detail"]
    assert Profile.objects.count() == 1
    assert Profile.objects.get(user_id="u-1").username == "alice"


@pytest.mark.django_db
def test_username_taken_is_409():
    c = APIClient()
    _make_user(c, "u-1", "alice")
    r = c.post("/api/users", {"user_id": "u-2", "username": "alice"}, format="json")
    assert r.status_code == 409
    assert "already taken" in r.json()["detail"]

    _make_user(c, "u-3", "bob")
    r_patch = c.patch("/api/users/u-3", {"username": "alice"}, format="json")
    assert r_patch.status_code == 409


@pytest.mark.django_db
def test_profile_update_and_detail():
    c = APIClient()
    _make_user(c, "u-1")
    r = c.patch(
        "/api/users/u-1",
        {"username": "carol", "bio": "grinding", "github_handle": "carol-gh"},
        format="json",
    )
    assert r.status_code == 200
    g = c.get("/api/users/u-1").json()
    assert g["username"] == "carol"
    assert g["bio"] == "grinding"
    assert g["follow_counts"] == {"followers": 0, "following": 0}

    assert c.get("/api/users/nobody").status_code == 404
    assert c.patch("/api/users/u-1", {"username": "   "}, format="json").status_code == 400


@pytest.mark.django_db
def test_public_profile_by_username():
    c = APIClient()
    _make_user(c, "u-pub", "dana")
    _make_user(c, "u-fan", "erin")
    c.post("/api/users/u-pub/follow", {"follower_id": "u-fan"}, format="json")
    now = timezone.now().replace(microsecond=0)
    _post_solve(c, "u-pub", 1, when=now - timedelta(days=1), difficulty="Easy")
    _post_solve(c, "u-pub", 2, when=now, difficulty="Hard")
    _post_solve(c, "u-pub", 3, when=now, difficulty="Hard")
    _post_solve(c, "u-pub", 3, when=now, difficulty="Hard")

    r = c.get("/api/profiles/dana")
    assert r.status_code == 200
    data = r.json()
    assert data["user_id"] == "u-pub"
    assert data["follow_counts"] == {"followers": 1, "following": 0}
    assert data["solved"] == {"easy": 1, "medium": 0, "hard": 2, "total_solved": 3}
    assert len(data["recent"]) == 3

    assert c.get("/api/profiles/nobody").status_code == 404


# --- solves ---

@pytest.mark.django_db
def test_first_solve_creates_and_repeat_increments():
    c = APIClient()
    _make_user(c, "u-solve")
    first = timezone.now().replace(microsecond=0) - timedelta(days=1)

    r1 = _post_solve(c, "u-solve", 42, when=first)
    assert r1.status_code == 201
    assert r1.json()["times_solved"] == 1

    later = first + timedelta(hours=20)
    r2 = _post_solve(c, "u-solve", 42, when=later)
    assert r2.status_code == 200
    body = r2.json()
    assert body["id"] == r1.json()["id"]
    assert body["times_solved"] == 2
    assert body["date_solved"] == iso(later).replace("+00:00", "Z")

    assert SolvedRecord.objects.filter(user_id="u-solve", number=42).count() == 1


@pytest.mark.django_db
def test_older_repeat_solve_does_not_move_date_back():
    c = APIClient()
    _make_user(c, "u-back")
    now = timezone.now().replace(microsecond=0)
    _post_solve(c, "u-back", 1, when=now)
    _post_solve(c, "u-back", 1, when=now - timedelta(days=3))
    obj = SolvedRecord.objects.get(user_id="u-back", number=1)
    assert obj.times_solved == 2
    assert obj.date_solved == now


@pytest.mark.django_db
def test_solve_defaults_to_now_when_date_missing():
    c = APIClient()
    _make_user(c, "u-now")
    before = timezone.now()
    _post_solve(c, "u-now", 7)
    obj = SolvedRecord.objects.get(user_id="u-now", number=7)
    assert obj.date_solved >= before - timedelta(seconds=1)


@pytest.mark.django_db
def test_solve_validation_errors():
    c = APIClient()
    _make_user(c, "u-bad")
    bad_difficulty = c.post(
        "/api/solves",
        {"user_id": "u-bad", "number": 1, "name": "Two Sum", "difficulty": "Insane"},
        format="json",
    )
    assert bad_difficulty.status_code == 400
    assert "difficulty" in bad_difficulty.json()

    bad_number = c.post(
        "/api/solves",
        {"user_id": "u-bad", "number": 0, "name": "Two Sum", "difficulty": "Easy"},
        format="json",
    )
    assert bad_number.status_code == 400

    unknown = c.post(
        "/api/solves",
        {"user_id": "ghost", "number": 1, "name": "Two Sum", "difficulty": "Easy"},
        format="json",
    )
    assert unknown.status_code == 404


@pytest.mark.django_db
def test_future_solve_date_is_rejected():
    c = APIClient()
    _make_user(c, "u-future")
    r = c.post(
        "/api/solves",
        {
            "user_id": "u-future",
            "number": 1,
            "name": "Two Sum",
            "difficulty": "Easy",
            "date_solved": iso(timezone.now() + timedelta(days=1)),
        },
        format="json",
    )
    assert r.status_code == 400
    assert "date_solved" in r.json()
    assert SolvedRecord.objects.count() == 0
    assert Profile.objects.get(user_id="u-future").current_streak == 0


@pytest.mark.django_db
def test_failed_streak_refresh_rolls_back_the_solve(monkeypatch):
    c = APIClient()
    _make_user(c, "u-atomic")

    def fail(*args, **kwargs):
        raise RetrievalError("could not update profile 'u-atomic'.")

    monkeypatch.setattr(services, "recompute", fail)
    payload = {"user_id": "u-atomic", "number": 1, "name": "Two Sum", "difficulty": "Easy"}
    r = c.post("/api/solves", payload, format="json")
    assert r.status_code == 503
    assert SolvedRecord.objects.count() == 0

    monkeypatch.undo()
    assert c.post("/api/solves", payload, format="json").status_code == 201
    assert SolvedRecord.objects.get(user_id="u-atomic", number=1).times_solved == 1


@pytest.mark.django_db
def test_solve_refreshes_streak_in_requested_timezone(monkeypatch):
    c = APIClient()
    _make_user(c, "u-tz")
    seen = []
    real_recompute = services.recompute

    def spy(user_id, **kwargs):
        seen.append(kwargs.get("tz"))
        return real_recompute(user_id, **kwargs)

    monkeypatch.setattr(services, "recompute", spy)
    payload = {"user_id": "u-tz", "number": 1, "name": "Two Sum", "difficulty": "Easy"}
    assert c.post("/api/solves?tz=Asia/Tokyo", payload, format="json").status_code == 201
    assert seen == ["Asia/Tokyo"]

    bad = c.post("/api/solves?tz=Mars/Olympus", payload, format="json")
    assert bad.status_code == 400
    assert bad.json()["detail"] == "invalid tz."
    assert SolvedRecord.objects.get(user_id="u-tz", number=1).times_solved == 1


@pytest.mark.django_db
def test_solve_refreshes_cached_streak():
    c = APIClient()
    _make_user(c, "u-cache")
    now = timezone.now().replace(microsecond=0)
    for i, days_ago in enumerate([2, 1, 0]):
        _post_solve(c, "u-cache", i + 1, when=now - timedelta(days=days_ago))

    profile = Profile.objects.get(user_id="u-cache")
    assert profile.current_streak == 3
    assert profile.longest_streak == 3


@pytest.mark.django_db
def test_list_solves_filters_and_pagination():
    c = APIClient()
    _make_user(c, "u-list")
    now = timezone.now().replace(microsecond=0)
    _post_solve(c, "u-list", 1, when=now - timedelta(days=3), name="Two Sum")
    _post_solve(c, "u-list", 15, when=now - timedelta(days=2), name="3Sum", difficulty="Medium")
    _post_solve(c, "u-list", 42, when=now - timedelta(days=1), name="Trapping Rain Water", difficulty="Hard")
    _post_solve(c, "u-list", 167, when=now, name="Two Sum II", difficulty="Medium")

    r = c.get("/api/users/u-list/solves").json()
    assert r["count"] == 4
    assert [x["number"] for x in r["results"]] == [167, 42, 15, 1]

    by_name = c.get("/api/users/u-list/solves?name=two%20sum").json()
    assert sorted(x["number"] for x in by_name["results"]) == [1, 167]

    by_diff = c.get("/api/users/u-list/solves?difficulty=Medium").json()
    assert sorted(x["number"] for x in by_diff["results"]) == [15, 167]

    by_number = c.get("/api/users/u-list/solves?number=42").json()
    assert [x["name"] for x in by_number["results"]] == ["Trapping Rain Water"]

    page2 = c.get("/api/users/u-list/solves?page=2&page_size=3").json()
    assert page2["total_pages"] == 2
    assert [x["number"] for x in page2["results"]] == [1]

    assert c.get("/api/users/u-list/solves?difficulty=Insane").status_code == 400
    assert c.get("/api/users/u-list/solves?page=abc").status_code == 400
    assert c.get("/api/users/ghost/solves").status_code == 404


# --- stats ---

@pytest.mark.django_db
def test_stats_summary_for_three_day_streak():
    c = APIClient()
    _make_user(c, "u-stats")
    now = timezone.now().replace(microsecond=0)
    _post_solve(c, "u-stats", 1, when=now - timedelta(days=2), difficulty="Easy")
    _post_solve(c, "u-stats", 2, when=now - timedelta(days=1), difficulty="Medium")
    _post_solve(c, "u-stats", 3, when=now, difficulty="Hard")
    _post_solve(c, "u-stats", 3, when=now, difficulty="Hard")

    r = c.get("/api/users/u-stats/stats?tz=UTC")
    assert r.status_code == 200
    data = r.json()
    assert data["total_solved"] == 3
    assert data["current_streak"] == 3
    assert data["longest_streak"] == 3
    assert data["streak_message"] == "Three days strong! 💪"
    assert (data["easy_count"], data["medium_count"], data["hard_count"]) == (1, 1, 1)
    assert data["solved_today"] == 1
    assert data["solved_this_week"] == 3
    assert data["average_per_day"] == round(3 / 7, 2)
    assert [x["number"] for x in data["recent"]][0] == 3


@pytest.mark.django_db
def test_stats_for_user_without_solves_is_zero():
    c = APIClient()
    _make_user(c, "u-empty")
    data = c.get("/api/users/u-empty/stats").json()
    assert data["total_solved"] == 0
    assert data["current_streak"] == 0
    assert data["longest_streak"] == 0
    assert data["recent"] == []


@pytest.mark.django_db
def test_stats_errors():
    c = APIClient()
    _make_user(c, "u-err")
    assert c.get("/api/users/ghost/stats").status_code == 404
    r = c.get("/api/users/u-err/stats?tz=Mars/Olympus")
    assert r.status_code == 400
    assert r.json()["detail"] == "invalid tz."


@pytest.mark.django_db
def test_stats_storage_failure_is_503_and_nothing_fabricated(monkeypatch):
    c = APIClient()
    _make_user(c, "u-down")

    def boom(*args, **kwargs):
        raise DatabaseError("connection lost")

    monkeypatch.setattr(SolvedRecord.objects, "filter", boom)
    r = c.get("/api/users/u-down/stats")
    assert r.status_code == 503
    assert "total_solved" not in r.json()


@pytest.mark.django_db
def test_recent_solves_failure_is_503(monkeypatch):
    c = APIClient()
    _make_user(c, "u-recent")

    def boom(*args, **kwargs):
        raise DatabaseError("connection lost")

    monkeypatch.setattr(services, "list_solves", boom)
    r = c.get("/api/users/u-recent/stats")
    assert r.status_code == 503
    assert "total_solved" not in r.json()


@pytest.mark.django_db
def test_recompute_overrides_stale_cached_streak():
    c = APIClient()
    _make_user(c, "u-stale")
    Profile.objects.filter(user_id="u-stale").update(current_streak=9, longest_streak=9)

    summary = services.recompute("u-stale")
    assert summary.current_streak == 0
    profile = Profile.objects.get(user_id="u-stale")
    assert (profile.current_streak, profile.longest_streak) == (0, 0)


# --- contributions ---

@pytest.mark.django_db
def test_contributions_cover_every_day():
    c = APIClient()
    _make_user(c, "u-cal")
    now = timezone.now().replace(microsecond=0)
    _post_solve(c, "u-cal", 1, when=now)
    _post_solve(c, "u-cal", 2, when=now)
    _post_solve(c, "u-cal", 3, when=now - timedelta(days=2))

    r = c.get("/api/users/u-cal/contributions?days=7&tz=UTC")
    assert r.status_code == 200
    days = r.json()["days"]
    assert len(days) == 8
    assert days[-1] == {"date": now.date().isoformat(), "count": 2}
    assert sum(d["count"] for d in days) == 3

    assert c.get("/api/users/u-cal/contributions?days=0").status_code == 400


@pytest.mark.django_db
def test_contributions_window_is_capped():
    c = APIClient()
    _make_user(c, "u-cap")
    r = c.get("/api/users/u-cap/contributions?days=1000000")
    assert r.status_code == 400
    assert r.json()["detail"] == "days must be <= 3660."

    r_max = c.get("/api/users/u-cap/contributions?days=3660&tz=UTC")
    assert r_max.status_code == 200
    assert len(r_max.json()["days"]) == 3661

    with pytest.raises(ValueError):
        services.contributions("u-cap", days=3661)


# --- leaderboard ---

@pytest.mark.django_db
def test_leaderboard_by_problems_and_streak():
    c = APIClient()
    now = timezone.now().replace(microsecond=0)
    _make_user(c, "u-a", "alice")
    _make_user(c, "u-b", "bob")
    _make_user(c, "u-c", "carol")
    _make_user(c, "u-anon")  # no username -> not ranked

    # alice: 3 problems, last solved 5 days ago (streak 0)
    for n in (1, 2, 3):
        _post_solve(c, "u-a", n, when=now - timedelta(days=5))
    _post_solve(c, "u-a", 1, when=now - timedelta(days=5))
    # bob: 2 problems, today and yesterday (streak 2)
    _post_solve(c, "u-b", 1, when=now - timedelta(days=1))
    _post_solve(c, "u-b", 2, when=now)
    # carol: 1 problem today (streak 1)
    _post_solve(c, "u-c", 1, when=now)
    _post_solve(c, "u-anon", 1, when=now)

    by_problems = c.get("/api/leaderboard?type=problems").json()
    assert by_problems["total_users"] == 3
    assert [r["username"] for r in by_problems["results"]] == ["alice", "bob", "carol"]
    assert [r["total_problems"] for r in by_problems["results"]] == [3, 2, 1]

    by_streak = c.get("/api/leaderboard?type=streak").json()
    assert [r["username"] for r in by_streak["results"]] == ["bob", "carol", "alice"]
    assert [r["current_streak"] for r in by_streak["results"]] == [2, 1, 0]

    assert c.get("/api/leaderboard?type=karma").status_code == 400


@pytest.mark.django_db
def test_leaderboard_pagination():
    for i in range(5):
        Profile.objects.create(user_id=f"u-{i}", username=f"user{i}")
    rows, total = services.leaderboard("problems", page=2, per_page=2)
    assert total == 5
    assert [r["username"] for r in rows] == ["user2", "user3"]
    rows, _ = services.leaderboard("problems", page=4, per_page=2)
    assert rows == []


# --- follows ---

@pytest.mark.django_db
def test_follow_unfollow_flow():
    c = APIClient()
    _make_user(c, "u-a", "alice")
    _make_user(c, "u-b", "bob")
    _make_user(c, "u-c", "carol")

    r = c.post("/api/users/u-b/follow", {"follower_id": "u-a"}, format="json")
    assert r.status_code == 201
    assert r.json()["follow_counts"] == {"followers": 1, "following": 0}
    assert c.post("/api/users/u-b/follow", {"follower_id": "u-a"}, format="json").status_code == 200
    c.post("/api/users/u-b/follow", {"follower_id": "u-c"}, format="json")
    c.post("/api/users/u-c/follow", {"follower_id": "u-a"}, format="json")

    followers = c.get("/api/users/u-b/followers").json()
    assert [u["username"] for u in followers] == ["alice", "carol"]
    following = c.get("/api/users/u-a/following").json()
    assert [u["username"] for u in following] == ["bob", "carol"]

    d = c.delete("/api/users/u-b/follow", {"follower_id": "u-a"}, format="json")
    assert d.status_code == 200
    assert d.json()["follow_counts"] == {"followers": 1, "following": 0}
    assert c.delete("/api/users/u-b/follow", {"follower_id": "u-a"}, format="json").status_code == 404


@pytest.mark.django_db
def test_follow_errors():
    c = APIClient()
    _make_user(c, "u-a", "alice")
    assert c.post("/api/users/u-a/follow", {"follower_id": "u-a"}, format="json").status_code == 400
    assert c.post("/api/users/u-a/follow", {}, format="json").status_code == 400
    assert c.post("/api/users/ghost/follow", {"follower_id": "u-a"}, format="json").status_code == 404
    assert c.get("/api/users/ghost/followers").status_code == 404


@pytest.mark.django_db
def test_concurrent_follow_of_same_pair_is_not_an_error(monkeypatch):
    c = APIClient()
    _make_user(c, "u-a", "alice")
    _make_user(c, "u-b", "bob")
    # The other request's insert already committed; ours hits the unique constraint.
    Follow.objects.create(follower_id="u-a", following_id="u-b")

    def racing_get_or_create(**kwargs):
        raise IntegrityError("UNIQUE constraint failed: tracker_follow")

    monkeypatch.setattr(Follow.objects, "get_or_create", racing_get_or_create)
    assert services.follow("u-a", "u-b") is False
    assert Follow.objects.count() == 1
