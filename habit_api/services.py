"""Streak and statistics computations.

Everything here is a pure function of a completion snapshot. Completions are
anything exposing ``habit_id`` and ``date`` (a ``YYYY-MM-DD`` string) so the
same code runs over ORM rows on the server and cached records on the client.
"""
from __future__ import annotations

import math
from datetime import date, timedelta
from typing import Iterable, Optional, Protocol

from .config import settings


class CompletionLike(Protocol):
    habit_id: int
    date: str


def parse_day(value: str) -> date:
    return date.fromisoformat(value)


def fmt_day(d: date) -> str:
    return d.isoformat()


def round_half_up(numerator: float, denominator: float) -> int:
    """Nearest integer to numerator / denominator, .5 rounding up."""
    return int(math.floor(numerator / denominator + 0.5))


def current_window(today: date) -> tuple[date, date]:
    """First and last day of the stats window ending today."""
    return today - timedelta(days=settings.stats_window_days - 1), today


def completion_days(completions: Iterable[CompletionLike], habit_id: Optional[int] = None) -> set[date]:
    """Distinct calendar days with a completion, optionally for one habit."""
    return {
        parse_day(c.date)
        for c in completions
        if habit_id is None or c.habit_id == habit_id
    }


def calc_current_streak(days: set[date], today: date, limit: Optional[int] = None) -> int:
    # a streak only counts while today is done
    if today not in days:
        return 0
    limit = limit or settings.streak_scan_limit
    streak = 1
    d = today - timedelta(days=1)
    while d in days and streak < limit:
        streak += 1
        d = d - timedelta(days=1)
    return streak


def calc_longest_streak(days: set[date]) -> int:
    longest = 0
    run = 0
    prev: Optional[date] = None
    for d in sorted(days):
        if prev is not None and d == prev + timedelta(days=1):
            run += 1
        else:
            run = 1
        longest = max(longest, run)
        prev = d
    return longest


def habit_current_streak(completions: Iterable[CompletionLike], habit_id: int, today: date) -> int:
    return calc_current_streak(completion_days(completions, habit_id), today)


def habit_longest_streak(completions: Iterable[CompletionLike], habit_id: int) -> int:
    return calc_longest_streak(completion_days(completions, habit_id))


def weekly_progress(completions: Iterable[CompletionLike], habit_id: int, today: date) -> int:
    """Percent of the trailing 7 days (today included) the habit was done.

    The habit's frequency is not taken into account.
    """
    week = {today - timedelta(days=i) for i in range(7)}
    done = len(completion_days(completions, habit_id) & week)
    return round_half_up(done * 100, 7)


def overall_weekly_progress(completions: Iterable[CompletionLike], habit_ids: Iterable[int], today: date) -> int:
    completions = list(completions)
    habit_ids = list(habit_ids)
    if not habit_ids:
        return 0
    total = sum(weekly_progress(completions, h, today) for h in habit_ids)
    return round_half_up(total, len(habit_ids))


def last_completed_text(completions: Iterable[CompletionLike], habit_id: int, today: date) -> str:
    days = completion_days(completions, habit_id)
    if not days:
        return "Never"
    diff = (today - max(days)).days
    if diff == 0:
        return "Today"
    if diff == 1:
        return "Yesterday"
    return f"{diff} days ago"


def is_completed_on(completions: Iterable[CompletionLike], habit_id: int, day: date) -> bool:
    key = fmt_day(day)
    return any(c.habit_id == habit_id and c.date == key for c in completions)


def completions_per_day(
    completions: Iterable[CompletionLike],
    start: date,
    end: date,
    habit_id: Optional[int] = None,
) -> dict[date, int]:
    """Count completions for every day in ``[start, end]``, zero-filled."""
    counts = {start + timedelta(days=i): 0 for i in range((end - start).days + 1)}
    for c in completions:
        if habit_id is not None and c.habit_id != habit_id:
            continue
        d = parse_day(c.date)
        if d in counts:
            counts[d] += 1
    return counts


def _rate(count: int, habit_count: int, window: int) -> int:
    possible = habit_count * window
    if possible <= 0:
        return 0
    return round_half_up(count * 100, possible)


def compute_stats(completions: Iterable[CompletionLike], habit_count: int, today: date) -> dict:
    window = settings.stats_window_days
    current_start, _ = current_window(today)
    previous_start = current_start - timedelta(days=window)

    days = [parse_day(c.date) for c in completions]
    recent = sum(1 for d in days if current_start <= d <= today)
    previous = sum(1 for d in days if previous_start <= d < current_start)

    rate = _rate(recent, habit_count, window)
    previous_rate = _rate(previous, habit_count, window)

    all_days = set(days)
    current_streak = calc_current_streak(all_days, today)
    longest_streak = max(calc_longest_streak(all_days), current_streak)

    return dict(
        completion_rate=rate,
        completion_rate_change=rate - previous_rate,
        current_streak=current_streak,
        longest_streak=longest_streak,
        total_completions=recent,
        total_completions_change=recent - previous,
    )


def habit_progress(completions: Iterable[CompletionLike], habit_id: int, today: date) -> dict:
    completions = list(completions)
    return dict(
        habit_id=habit_id,
        current_streak=habit_current_streak(completions, habit_id, today),
        longest_streak=habit_longest_streak(completions, habit_id),
        weekly_progress=weekly_progress(completions, habit_id, today),
        last_completed=last_completed_text(completions, habit_id, today),
        completed_today=is_completed_on(completions, habit_id, today),
    )
