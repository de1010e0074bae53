# tracker/services.py
from __future__ import annotations

import datetime as dt
import logging
from collections import defaultdict
from typing import Dict, List, Optional, Tuple

import pytz
from django.conf import settings
from django.db import DatabaseError, IntegrityError, transaction
from django.db.models import Count, QuerySet
from django.utils import timezone

from .exceptions import FollowError, RetrievalError, UnknownUserError, UserExists, UsernameTaken
from .models import Difficulty, Follow, Profile, SolvedRecord
from .stats import StatsSummary, compute_stats, current_streak, daily_counts, local_days

logger = logging.getLogger(__name__)

LEADERBOARD_KINDS = ("problems", "streak")
PROFILE_FIELDS = ("username", "bio", "avatar_url", "leetcode_handle", "github_handle", "linkedin_url")
# Ten years of calendar; larger windows are rejected.
MAX_CONTRIBUTION_DAYS = 3660


def default_tz() -> str:
    return getattr(settings, "TRACKER_DEFAULT_TZ", "UTC")


def leaderboard_page_size() -> int:
    return getattr(settings, "TRACKER_LEADERBOARD_PAGE_SIZE", 20)


def get_profile(user_id: str) -> Profile:
    try:
        return Profile.objects.get(user_id=user_id)
    except Profile.DoesNotExist:
        raise UnknownUserError(user_id)


def get_profile_by_username(username: str) -> Profile:
    try:
        return Profile.objects.get(username=username)
    except Profile.DoesNotExist:
        raise UnknownUserError(username)


def fetch_records(user_id: str) -> List[SolvedRecord]:
    """
    Load the complete list of a user's solved records.

    Never paginated: streaks and totals are only correct over the full history.
    Raises UnknownUserError when the user has no profile and RetrievalError
    when the store fails; an empty list is a valid, successful answer.
    """
    try:
        if not Profile.objects.filter(user_id=user_id).exists():
            raise UnknownUserError(user_id)
        return list(SolvedRecord.objects.filter(user_id=user_id))
    except DatabaseError as e:
        logger.exception("Failed to load solved records for user %s", user_id)
        raise RetrievalError(f"could not load records for user {user_id!r}.") from e


def recompute(user_id: str, *, tz: str | None = None, now: dt.datetime | None = None) -> StatsSummary:
    """Recompute a user's stats from raw history and refresh the cached streak counters."""
    summary = compute_stats(fetch_records(user_id), now=now, tz=tz or default_tz())
    try:
        with transaction.atomic():
            changed = Profile.objects.filter(user_id=user_id).exclude(
                current_streak=summary.current_streak,
                longest_streak=summary.longest_streak,
            ).update(
                current_streak=summary.current_streak,
                longest_streak=summary.longest_streak,
            )
    except DatabaseError as e:
        logger.exception("Failed to refresh cached streak for user %s", user_id)
        raise RetrievalError(f"could not update profile {user_id!r}.") from e
    if changed:
        logger.info("Streak cache for %s now current=%d longest=%d",
                    user_id, summary.current_streak, summary.longest_streak)
    return summary


def _bump(obj: SolvedRecord, solved_at: dt.datetime) -> None:
    obj.times_solved += 1
    if solved_at > obj.date_solved:
        obj.date_solved = solved_at
    obj.save(update_fields=["times_solved", "date_solved"])


def record_solve(
    user_id: str,
    *,
    number: int,
    name: str,
    difficulty: str,
    date_solved: dt.datetime | None = None,
    tz: str | None = None,
) -> Tuple[SolvedRecord, bool]:
    """
    Store one solve submission. The first solve of a problem creates the record;
    later ones bump times_solved and move date_solved forward.
    The cached streak is refreshed in the same transaction, so a failed
    refresh leaves no record change behind.
    Returns (record, created).
    """
    get_profile(user_id)
    solved_at = date_solved or timezone.now()

    try:
        with transaction.atomic():
            obj, created = SolvedRecord.objects.select_for_update().get_or_create(
                user_id=user_id,
                number=number,
                defaults={
                    "name": name,
                    "difficulty": difficulty,
                    "date_solved": solved_at,
                },
            )
            if not created:
                _bump(obj, solved_at)
            recompute(user_id, tz=tz)
    except IntegrityError:
        # Race on the first solve: the unique constraint fired, the other insert won.
        with transaction.atomic():
            obj = SolvedRecord.objects.select_for_update().get(user_id=user_id, number=number)
            _bump(obj, solved_at)
            recompute(user_id, tz=tz)
        created = False

    return obj, created


def list_solves(
    user_id: str,
    *,
    number: Optional[int] = None,
    name: Optional[str] = None,
    difficulty: Optional[str] = None,
) -> QuerySet:
    qs = SolvedRecord.objects.filter(user_id=user_id)
    if number is not None:
        qs = qs.filter(number=number)
    if name:
        qs = qs.filter(name__icontains=name)
    if difficulty:
        qs = qs.filter(difficulty=difficulty)
    return qs.order_by("-date_solved", "number")


def recent_solves(user_id: str, limit: int = 5) -> List[SolvedRecord]:
    try:
        return list(list_solves(user_id)[:limit])
    except DatabaseError as e:
        logger.exception("Failed to load recent solves for user %s", user_id)
        raise RetrievalError(f"could not load records for user {user_id!r}.") from e


def difficulty_breakdown(user_id: str) -> Dict[str, int]:
    """Solved problems per difficulty, plus total_solved across all records."""
    try:
        per_difficulty = dict(
            SolvedRecord.objects.filter(user_id=user_id)
            .order_by()
            .values_list("difficulty")
            .annotate(n=Count("number", distinct=True))
        )
    except DatabaseError as e:
        logger.exception("Failed to count solves by difficulty for user %s", user_id)
        raise RetrievalError(f"could not load records for user {user_id!r}.") from e
    counts = {d.value.lower(): per_difficulty.get(d.value, 0) for d in Difficulty}
    counts["total_solved"] = sum(per_difficulty.values())
    return counts


def contributions(
    user_id: str,
    *,
    tz: str | None = None,
    days: int = 365,
    now: dt.datetime | None = None,
) -> List[Dict]:
    """Solve counts for every local day from `days` ago through today."""
    if not 1 <= days <= MAX_CONTRIBUTION_DAYS:
        raise ValueError(f"days must be between 1 and {MAX_CONTRIBUTION_DAYS}.")
    tz = tz or default_tz()
    records = fetch_records(user_id)
    now = now or timezone.now()
    end = now.astimezone(pytz.timezone(tz)).date()
    return daily_counts(records, start=end - dt.timedelta(days=days), end=end, tz=tz)


def leaderboard(
    kind: str = "problems",
    page: int = 1,
    per_page: int | None = None,
    *,
    tz: str | None = None,
    now: dt.datetime | None = None,
) -> Tuple[List[Dict], int]:
    """
    Rank users that have picked a username, by distinct problems solved or by
    current streak. Streaks are recomputed from history, not read from the
    cached profile counter. Returns (rows for the page, total users).
    """
    if kind not in LEADERBOARD_KINDS:
        raise ValueError("type must be problems|streak")
    per_page = per_page or leaderboard_page_size()
    page = max(1, page)
    tz = tz or default_tz()
    now = now or timezone.now()
    today = now.astimezone(pytz.timezone(tz)).date()

    try:
        profiles = list(
            Profile.objects.exclude(username__isnull=True).exclude(username="").order_by("username")
        )
        ids = [p.user_id for p in profiles]
        totals = dict(
            SolvedRecord.objects.filter(user_id__in=ids)
            .order_by()
            .values_list("user_id")
            .annotate(n=Count("number", distinct=True))
        )
        by_user = defaultdict(list)
        for rec in SolvedRecord.objects.filter(user_id__in=ids).only("user_id", "number", "date_solved"):
            by_user[rec.user_id].append(rec)
    except DatabaseError as e:
        logger.exception("Failed to build %s leaderboard", kind)
        raise RetrievalError("could not load the leaderboard.") from e

    rows = [
        {
            "user_id": p.user_id,
            "username": p.username,
            "avatar_url": p.avatar_url,
            "total_problems": totals.get(p.user_id, 0),
            "current_streak": current_streak(local_days(by_user[p.user_id], tz), today),
        }
        for p in profiles
    ]
    key = "total_problems" if kind == "problems" else "current_streak"
    # Stable sort keeps username order among ties.
    rows.sort(key=lambda r: r[key], reverse=True)

    start = (page - 1) * per_page
    return rows[start:start + per_page], len(rows)


def create_profile(user_id: str, **fields) -> Profile:
    """Create the profile for `user_id`. Raises UserExists if it already has one."""
    if Profile.objects.filter(user_id=user_id).exists():
        raise UserExists(user_id)
    username = fields.get("username")
    if username and Profile.objects.filter(username=username).exists():
        raise UsernameTaken(username)
    values = {k: v for k, v in fields.items() if k in PROFILE_FIELDS}
    try:
        with transaction.atomic():
            return Profile.objects.create(user_id=user_id, **values)
    except IntegrityError:
        # Lost a race on either unique column.
        if Profile.objects.filter(user_id=user_id).exists():
            raise UserExists(user_id)
        raise UsernameTaken(username or "")


def update_profile(user_id: str, **fields) -> Profile:
    profile = get_profile(user_id)
    username = fields.get("username")
    if username and Profile.objects.filter(username=username).exclude(user_id=user_id).exists():
        raise UsernameTaken(username)
    changed = []
    for k, v in fields.items():
        if k in PROFILE_FIELDS:
            setattr(profile, k, v)
            changed.append(k)
    if changed:
        try:
            with transaction.atomic():
                profile.save(update_fields=changed)
        except IntegrityError:
            raise UsernameTaken(username or "")
    return profile


def follow(follower_id: str, following_id: str) -> bool:
    """Returns True if a new follow was created, False if it already existed."""
    if follower_id == following_id:
        raise FollowError("users cannot follow themselves.")
    follower = get_profile(follower_id)
    following = get_profile(following_id)
    try:
        with transaction.atomic():
            _, created = Follow.objects.get_or_create(follower=follower, following=following)
    except IntegrityError:
        # Concurrent follow of the same pair: the other insert won.
        Follow.objects.get(follower=follower, following=following)
        created = False
    return created


def unfollow(follower_id: str, following_id: str) -> bool:
    deleted, _ = Follow.objects.filter(follower_id=follower_id, following_id=following_id).delete()
    return deleted > 0


def followers(user_id: str) -> List[Profile]:
    get_profile(user_id)
    return list(Profile.objects.filter(following_set__following_id=user_id).order_by("username"))


def following(user_id: str) -> List[Profile]:
    get_profile(user_id)
    return list(Profile.objects.filter(follower_set__follower_id=user_id).order_by("username"))


def follow_counts(user_id: str) -> Dict[str, int]:
    return {
        "followers": Follow.objects.filter(following_id=user_id).count(),
        "following": Follow.objects.filter(follower_id=user_id).count(),
    }
