from __future__ import annotations

import calendar
from dataclasses import dataclass
from datetime import date
from io import BytesIO
from typing import Dict

import matplotlib
matplotlib.use("Agg")
import matplotlib.pyplot as plt  # noqa: E402


@dataclass(frozen=True)
class StatsCard:
    title: str
    period_label: str
    completion_rate: int
    completion_rate_change: int
    current_streak: int
    longest_streak: int
    total_completions: int
    total_completions_change: int


def _signed(n: int) -> str:
    return f"+{n}" if n > 0 else str(n)


def render_stats_card_png(card: StatsCard) -> bytes:
    fig = plt.figure(figsize=(9, 5), dpi=160)
    ax = fig.add_subplot(111)
    ax.axis("off")

    title = f"{card.title} — {card.period_label}"
    lines = [
        f"Completion rate: {card.completion_rate}% ({_signed(card.completion_rate_change)}%)",
        f"Current streak: {card.current_streak} days",
        f"Longest streak: {card.longest_streak} days",
        f"Completions: {card.total_completions} ({_signed(card.total_completions_change)})",
    ]

    ax.text(0.03, 0.92, title, fontsize=18, fontweight="bold", va="top")
    y = 0.78
    for ln in lines:
        ax.text(0.05, y, ln, fontsize=14, va="top")
        y -= 0.12

    buf = BytesIO()
    fig.savefig(buf, format="png", bbox_inches="tight", pad_inches=0.3)
    plt.close(fig)
    return buf.getvalue()


def render_month_heatmap_png(year: int, month: int, counts: Dict[date, int], title: str = "Completions") -> bytes:
    """Month grid (Mon-first weeks), each day shaded by its completion count."""
    weeks = calendar.Calendar(firstweekday=0).monthdayscalendar(year, month)
    peak = max(counts.values(), default=0) or 1

    fig = plt.figure(figsize=(7, 1.2 + 0.9 * len(weeks)), dpi=160)
    ax = fig.add_subplot(111)

    grid = [[0.0] * 7 for _ in weeks]
    for row, week in enumerate(weeks):
        for col, day in enumerate(week):
            if not day:
                continue
            n = counts.get(date(year, month, day), 0)
            grid[row][col] = n / peak
            ax.text(col, row, str(day), ha="center", va="center", fontsize=9,
                    color="white" if n and n / peak > 0.5 else "black")

    ax.imshow(grid, cmap="Greens", vmin=0, vmax=1)
    ax.set_xticks(range(7))
    ax.set_xticklabels(["Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun"])
    ax.set_yticks([])
    ax.set_title(f"{title} — {calendar.month_name[month]} {year}")

    buf = BytesIO()
    fig.savefig(buf, format="png", bbox_inches="tight", pad_inches=0.2)
    plt.close(fig)
    return buf.getvalue()
