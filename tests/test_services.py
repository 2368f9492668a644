import datetime as dt

from habit_api import services
from habit_api.client import CompletionRecord

from conftest import TODAY, days_ago


def completions(habit_id, *offsets):
    return [CompletionRecord(id=i + 1, habit_id=habit_id, date=days_ago(n)) for i, n in enumerate(offsets)]


def test_streak_is_zero_without_completions():
    assert services.habit_current_streak([], 1, TODAY) == 0


def test_streak_counts_consecutive_days_until_gap():
    rows = completions(1, 0, 1, 2, 4, 5)
    assert services.habit_current_streak(rows, 1, TODAY) == 3


def test_streak_with_gap_yesterday_is_one():
    rows = completions(1, 0, 2)
    assert services.habit_current_streak(rows, 1, TODAY) == 1


def test_streak_is_zero_when_today_not_done():
    rows = completions(1, 1, 2, 3)
    assert services.habit_current_streak(rows, 1, TODAY) == 0


def test_streak_ignores_other_habits():
    rows = completions(1, 0) + completions(2, 1, 2)
    assert services.habit_current_streak(rows, 1, TODAY) == 1


def test_streak_scan_is_capped():
    rows = completions(1, *range(150))
    assert services.habit_current_streak(rows, 1, TODAY) == 100


def test_longest_streak_scans_full_history():
    rows = completions(1, 0, 10, 11, 12, 13, 20, 21)
    assert services.habit_longest_streak(rows, 1) == 4
    assert services.habit_longest_streak([], 1) == 0


def test_weekly_progress():
    assert services.weekly_progress(completions(1, *range(7)), 1, TODAY) == 100
    assert services.weekly_progress([], 1, TODAY) == 0
    assert services.weekly_progress(completions(1, 0, 3, 6), 1, TODAY) == 43
    # day 7 falls outside the trailing week
    assert services.weekly_progress(completions(1, 7), 1, TODAY) == 0


def test_overall_weekly_progress_averages_habits():
    rows = completions(1, *range(7)) + completions(2)
    assert services.overall_weekly_progress(rows, [1, 2], TODAY) == 50
    assert services.overall_weekly_progress(rows, [], TODAY) == 0


def test_last_completed_text():
    assert services.last_completed_text([], 1, TODAY) == "Never"
    assert services.last_completed_text(completions(1, 5, 0), 1, TODAY) == "Today"
    assert services.last_completed_text(completions(1, 1, 9), 1, TODAY) == "Yesterday"
    assert services.last_completed_text(completions(1, 12, 4), 1, TODAY) == "4 days ago"


def test_completion_rate_is_zero_without_habits():
    stats = services.compute_stats(completions(1, 0, 1, 2), 0, TODAY)
    assert stats["completion_rate"] == 0
    assert stats["completion_rate_change"] == 0
    assert stats["total_completions"] == 3


def test_compute_stats_windows():
    rows = completions(1, 0, 1) + completions(2, 40, 41, 42)
    stats = services.compute_stats(rows, 2, TODAY)
    assert stats == dict(
        completion_rate=3,             # 2 / 60
        completion_rate_change=3 - 5,  # previous window: 3 / 60
        current_streak=2,
        longest_streak=3,
        total_completions=2,
        total_completions_change=-1,
    )


def test_compute_stats_empty():
    stats = services.compute_stats([], 0, TODAY)
    assert set(stats.values()) == {0}


def test_global_streak_uses_any_habit():
    rows = completions(1, 0) + completions(2, 1) + completions(3, 2)
    assert services.compute_stats(rows, 3, TODAY)["current_streak"] == 3


def test_completions_per_day_zero_fills_range():
    start, end = dt.date(2024, 6, 1), dt.date(2024, 6, 30)
    rows = completions(1, 0, 1) + completions(2, 0) + completions(1, 30)
    counts = services.completions_per_day(rows, start, end)
    assert len(counts) == 30
    assert counts[TODAY] == 2
    assert counts[TODAY - dt.timedelta(days=1)] == 1
    assert sum(counts.values()) == 3

    only_two = services.completions_per_day(rows, start, end, habit_id=2)
    assert sum(only_two.values()) == 1


def test_steady_daily_habit_scores_full_rate_with_no_change():
    stats = services.compute_stats(completions(1, *range(60)), 1, TODAY)
    assert stats["completion_rate"] == 100
    assert stats["completion_rate_change"] == 0
    assert stats["total_completions"] == 30
    assert stats["total_completions_change"] == 0


def test_stats_window_edges():
    # day 29 is the oldest in the current window, 30..59 the previous one
    stats = services.compute_stats(completions(1, 29, 30, 59, 60), 1, TODAY)
    assert stats["total_completions"] == 1
    assert stats["total_completions_change"] == 1 - 2
    assert stats["completion_rate"] == 3        # 1 / 30
    assert stats["completion_rate_change"] == 3 - 7  # 2 / 30


def test_future_completions_fall_outside_both_windows():
    rows = [CompletionRecord(id=1, habit_id=1, date=(TODAY + dt.timedelta(days=1)).isoformat())]
    assert services.compute_stats(rows, 1, TODAY)["total_completions"] == 0


def test_rates_round_half_up():
    # 3 of 4 * 30 possible is exactly 2.5%
    assert services.compute_stats(completions(1, 0, 1, 2), 4, TODAY)["completion_rate"] == 3
    # mean of 43 and 14 is 28.5
    rows = completions(1, 0, 1, 2) + completions(2, 0)
    assert services.overall_weekly_progress(rows, [1, 2], TODAY) == 29
    assert services.round_half_up(1, 2) == 1
    assert services.round_half_up(5, 2) == 3
    assert services.round_half_up(2, 3) == 1
