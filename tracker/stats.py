# tracker/stats.py
from __future__ import annotations

import datetime as dt
import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional

import pytz
from django.utils import timezone
from django.utils.dateparse import parse_datetime

from .models import Difficulty

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StatsSummary:
    total_solved: int = 0
    solved_today: int = 0
    solved_this_week: int = 0
    solved_this_month: int = 0
    current_streak: int = 0
    longest_streak: int = 0
    streak_message: str = ""
    easy_count: int = 0
    medium_count: int = 0
    hard_count: int = 0
    average_per_day: float = 0.0


# (lowest streak, message); scanned from the top, first band whose floor is reached wins.
STREAK_BANDS = (
    (100, "100+ days! You're a legend of the grind! 🏅"),
    (50, "50+ days! Nothing can stop you now! 💎"),
    (30, "30+ days! Ultimate dedication! 🏆"),
    (21, "Three weeks+! Legendary status! 👑"),
    (14, "Two weeks+! You're a coding machine! 🤖"),
    (8, "Amazing streak! Keep it up! 🌟"),
    (7, "A full week! You're unstoppable! 🚀"),
    (6, "Six days! Almost a week! ⭐"),
    (5, "Five days! Incredible dedication!"),
    (4, "Four days! You're on fire! 🔥"),
    (3, "Three days strong! 💪"),
    (2, "Two days and counting!"),
    (1, "Great start! Keep going!"),
    (0, "Start your journey today!"),
)


def streak_message(streak: int) -> str:
    for floor, message in STREAK_BANDS:
        if streak >= floor:
            return message
    return STREAK_BANDS[-1][1]


def _to_aware_utc(x: str | dt.datetime | None) -> Optional[dt.datetime]:
    """Parse an ISO string or datetime into a tz-aware UTC datetime; None if it can't be read."""
    if isinstance(x, dt.datetime):
        d = x
    elif isinstance(x, str):
        try:
            d = parse_datetime(x)
        except ValueError:
            d = None
        if d is None:
            return None
    else:
        return None
    if timezone.is_naive(d):
        d = timezone.make_aware(d, dt.timezone.utc)
    return d.astimezone(dt.timezone.utc)


def _solved_at(record) -> Optional[dt.datetime]:
    solved_at = _to_aware_utc(getattr(record, "date_solved", None))
    if solved_at is None:
        logger.warning(
            "Skipping record %s in date aggregates: unreadable date_solved %r",
            getattr(record, "number", "?"), getattr(record, "date_solved", None),
        )
    return solved_at


def local_days(records: Iterable, tz: str = "UTC") -> List[dt.date]:
    """Sorted, de-duplicated local calendar days on which something was solved."""
    tzinfo = pytz.timezone(tz)
    days = set()
    for rec in records:
        solved_at = _solved_at(rec)
        if solved_at is not None:
            days.add(solved_at.astimezone(tzinfo).date())
    return sorted(days)


def current_streak(days: List[dt.date], today: dt.date) -> int:
    """
    Length of the run of consecutive days ending at the latest solved day.

    The run only counts while it is still alive: the latest day must be today
    or yesterday. An unsolved "today" does not break a streak until tomorrow.
    Days after `today` are ignored.
    """
    days = [d for d in days if d <= today]
    if not days:
        return 0
    latest = days[-1]
    if not 0 <= (today - latest).days <= 1:
        return 0
    streak = 1
    for i in range(len(days) - 1, 0, -1):
        if (days[i] - days[i - 1]).days != 1:
            break
        streak += 1
    return streak


def longest_streak(days: List[dt.date], current: int = 0) -> int:
    if not days:
        return current
    best = run = 1
    for prev, cur in zip(days, days[1:]):
        run = run + 1 if (cur - prev).days == 1 else 1
        best = max(best, run)
    return max(best, current)


def compute_stats(
    records: Iterable,
    *,
    now: dt.datetime | None = None,
    tz: str = "UTC",
) -> StatsSummary:
    """
    Derive a StatsSummary from the complete collection of one user's solved records.

    Rules:
      1) Calendar windows (today, this month) and streak days use the local day in `tz`.
      2) "This week" is the trailing 7 days, [now - 7d, now].
      3) Records with an unreadable date_solved are left out of every date-based
         figure but still count toward total_solved and the difficulty breakdown.
    """
    tzinfo = pytz.timezone(tz)
    now_utc = _to_aware_utc(now) if now is not None else timezone.now().astimezone(dt.timezone.utc)
    local_now = now_utc.astimezone(tzinfo)
    today = local_now.date()
    week_ago = now_utc - dt.timedelta(days=7)
    numbers = set()
    by_difficulty: Dict[str, int] = {d.value: 0 for d in Difficulty}
    solved_today = solved_this_week = solved_this_month = 0
    days = set()

    for rec in records:
        numbers.add(rec.number)
        difficulty = str(rec.difficulty)
        if difficulty in by_difficulty:
            by_difficulty[difficulty] += 1

        solved_at = _solved_at(rec)
        if solved_at is None:
            continue
        local_day = solved_at.astimezone(tzinfo).date()
        days.add(local_day)
        if local_day == today:
            solved_today += 1
        if (local_day.year, local_day.month) == (today.year, today.month):
            solved_this_month += 1
        if week_ago <= solved_at <= now_utc:
            solved_this_week += 1

    # Future-dated days never extend a streak.
    sorted_days = sorted(d for d in days if d <= today)
    current = current_streak(sorted_days, today)
    return StatsSummary(
        total_solved=len(numbers),
        solved_today=solved_today,
        solved_this_week=solved_this_week,
        solved_this_month=solved_this_month,
        current_streak=current,
        longest_streak=longest_streak(sorted_days, current),
        streak_message=streak_message(current),
        easy_count=by_difficulty[Difficulty.EASY.value],
        medium_count=by_difficulty[Difficulty.MEDIUM.value],
        hard_count=by_difficulty[Difficulty.HARD.value],
        average_per_day=round(solved_this_week / 7, 2),
    )


def daily_counts(
    records: Iterable,
    *,
    start: dt.date,
    end: dt.date,
    tz: str = "UTC",
) -> List[Dict]:
    """Per-day solve counts over [start, end] inclusive, including empty days."""
    tzinfo = pytz.timezone(tz)
    counts: Dict[dt.date, int] = {}
    cur = start
    while cur <= end:
        counts[cur] = 0
        cur += dt.timedelta(days=1)

    for rec in records:
        solved_at = _solved_at(rec)
        if solved_at is None:
            continue
        day = solved_at.astimezone(tzinfo).date()
        if day in counts:
            counts[day] += 1

    return [{"date": day.isoformat(), "count": n} for day, n in counts.items()]
