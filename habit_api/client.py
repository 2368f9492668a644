"""Client-side data layer for the habit API.

Keeps cached copies of habits, completions and stats, applies user actions
to the cache before the server answers, then either reconciles with the
server (success) or reverts to server truth and notifies the user (failure).
"""
from __future__ import annotations

import copy
import itertools
import logging
from dataclasses import dataclass, field, replace
from datetime import date, datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

import httpx

from . import services

logger = logging.getLogger(__name__)

HABITS = "/api/habits"
COMPLETIONS = "/api/completions"
STATS = "/api/stats"

EMPTY_STATS = {
    "completionRate": 0,
    "completionRateChange": 0,
    "currentStreak": 0,
    "longestStreak": 0,
    "totalCompletions": 0,
    "totalCompletionsChange": 0,
}


class ApiError(Exception):
    def __init__(self, status_code: int, detail: str):
        super().__init__(f"{status_code}: {detail}")
        self.status_code = status_code
        self.detail = detail


@dataclass(frozen=True)
class HabitRecord:
    id: int
    name: str
    frequency: str
    reminder_time: Optional[str] = None
    created_at: Optional[str] = None
    pending: bool = False

    @classmethod
    def from_json(cls, d: dict) -> "HabitRecord":
        return cls(
            id=d["id"],
            name=d["name"],
            frequency=d["frequency"],
            reminder_time=d.get("reminderTime"),
            created_at=d.get("createdAt"),
        )


@dataclass(frozen=True)
class CompletionRecord:
    id: int
    habit_id: int
    date: str
    created_at: Optional[str] = None
    pending: bool = False

    @classmethod
    def from_json(cls, d: dict) -> "CompletionRecord":
        return cls(id=d["id"], habit_id=d["habitId"], date=d["date"], created_at=d.get("createdAt"))


class HabitApiClient:
    """One method per API route. Non-2xx answers raise ApiError."""

    def __init__(
        self,
        base_url: str = "http://localhost:8000",
        api_key: Optional[str] = None,
        http: Optional[httpx.Client] = None,
        timeout: float = 10.0,
    ):
        self.http = http or httpx.Client(base_url=base_url, timeout=timeout)
        self.headers = {"X-API-Key": api_key} if api_key else {}

    def close(self) -> None:
        self.http.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()

    def _request(self, method: str, path: str, **kwargs) -> Any:
        r = self.http.request(method, path, headers=self.headers, **kwargs)
        if r.status_code >= 400:
            try:
                detail = r.json().get("detail", r.text)
            except ValueError:
                detail = r.text
            raise ApiError(r.status_code, detail)
        if r.status_code == 204 or not r.content:
            return None
        return r.json()

    def list_habits(self) -> List[dict]:
        return self._request("GET", "/api/habits")

    def get_habit(self, habit_id: int) -> dict:
        return self._request("GET", f"/api/habits/{habit_id}")

    def create_habit(self, name: str, frequency: str, reminder_time: Optional[str] = None) -> dict:
        body = {"name": name, "frequency": frequency, "reminderTime": reminder_time}
        return self._request("POST", "/api/habits", json=body)

    def update_habit(self, habit_id: int, **fields) -> dict:
        body = {}
        for key, value in fields.items():
            body["reminderTime" if key == "reminder_time" else key] = value
        return self._request("PATCH", f"/api/habits/{habit_id}", json=body)

    def delete_habit(self, habit_id: int) -> None:
        self._request("DELETE", f"/api/habits/{habit_id}")

    def get_habit_progress(self, habit_id: int) -> dict:
        return self._request("GET", f"/api/habits/{habit_id}/progress")

    def list_completions(self) -> List[dict]:
        return self._request("GET", "/api/completions")

    def completions_for_habit(self, habit_id: int) -> List[dict]:
        return self._request("GET", f"/api/completions/habit/{habit_id}")

    def completions_for_date(self, day: str) -> List[dict]:
        return self._request("GET", f"/api/completions/date/{day}")

    def create_completion(self, habit_id: int, day: str) -> dict:
        return self._request("POST", "/api/completions", json={"habitId": habit_id, "date": day})

    def delete_completion(self, habit_id: int, day: str) -> None:
        self._request("DELETE", f"/api/completions/{habit_id}/{day}")

    def get_stats(self) -> dict:
        return self._request("GET", "/api/stats")

    def get_today(self) -> List[dict]:
        return self._request("GET", "/api/today")


@dataclass
class CacheEntry:
    fetcher: Callable[[], Any]
    data: Any = None
    stale: bool = True
    error: Optional[Exception] = None


class QueryCache:
    """Keyed cache of server collections.

    Stale entries are refetched on the next read. A failed fetch keeps the
    previous data and leaves the entry stale.
    """

    def __init__(self):
        self.entries: Dict[str, CacheEntry] = {}

    def register(self, key: str, fetcher: Callable[[], Any], initial: Any = None) -> None:
        self.entries[key] = CacheEntry(fetcher=fetcher, data=initial)

    def fetch(self, key: str) -> bool:
        entry = self.entries[key]
        try:
            data = entry.fetcher()
        except (ApiError, httpx.HTTPError) as e:
            entry.error = e
            entry.stale = True
            logger.warning("fetching %s failed: %s", key, e)
            return False
        entry.data = data
        entry.error = None
        entry.stale = False
        return True

    def get(self, key: str) -> Any:
        entry = self.entries[key]
        if entry.stale:
            self.fetch(key)
        return entry.data

    def peek(self, key: str) -> Any:
        return self.entries[key].data

    def set_data(self, key: str, updater: Callable[[Any], Any]) -> None:
        entry = self.entries[key]
        entry.data = updater(entry.data)

    def snapshot(self, key: str) -> Any:
        return copy.deepcopy(self.entries[key].data)

    def restore(self, key: str, data: Any) -> None:
        self.entries[key].data = data

    def invalidate(self, key: str) -> None:
        self.entries[key].stale = True

    def refetch(self, key: str) -> bool:
        return self.fetch(key)

    def fetch_all(self) -> None:
        for key in self.entries:
            self.fetch(key)

    # data is never trusted across a focus or reconnect
    on_focus = fetch_all
    on_reconnect = fetch_all


class MutationState(str, Enum):
    IDLE = "idle"
    PENDING = "pending"
    RECONCILED = "reconciled"
    REVERTED = "reverted"


@dataclass
class CachePatch:
    key: str
    update: Callable[[Any], Any]


Notifier = Callable[[str, str], None]


def log_notification(title: str, description: str) -> None:
    logger.warning("%s: %s", title, description)


@dataclass
class OptimisticMutation:
    """Apply patches, send the request, then reconcile or revert.

    ``affects`` lists the cache keys to resynchronise once the request
    settles; it defaults to the patched keys.
    """

    cache: QueryCache
    request: Callable[[], Any]
    patches: List[CachePatch] = field(default_factory=list)
    affects: List[str] = field(default_factory=list)
    description: str = "Request failed"
    notify: Notifier = log_notification

    state: MutationState = MutationState.IDLE
    result: Any = None
    error: Optional[Exception] = None

    def run(self) -> "OptimisticMutation":
        if self.state is not MutationState.IDLE:
            raise RuntimeError(f"mutation already {self.state.value}")
        keys = self.affects or list(dict.fromkeys(p.key for p in self.patches))
        saved = {p.key: self.cache.snapshot(p.key) for p in self.patches}

        for patch in self.patches:
            self.cache.set_data(patch.key, patch.update)
        self.state = MutationState.PENDING

        try:
            self.result = self.request()
        except (ApiError, httpx.HTTPError) as e:
            self.error = e
            for key, data in saved.items():
                self.cache.restore(key, data)
            for key in keys:
                self.cache.refetch(key)
            self.state = MutationState.REVERTED
            logger.warning("reverted optimistic update: %s", e)
            self.notify("Error", f"{self.description}: {e}")
            return self

        # server answer is authoritative; replace the guess right away
        for key in keys:
            self.cache.invalidate(key)
            self.cache.refetch(key)
        self.state = MutationState.RECONCILED
        return self


class HabitSync:
    """Cached view of the API plus the optimistic write operations."""

    def __init__(
        self,
        api: HabitApiClient,
        notify: Notifier = log_notification,
        today: Callable[[], date] = date.today,
    ):
        self.api = api
        self.notify = notify
        self.today = today
        self._temp_ids = itertools.count(-1, -1)

        self.cache = QueryCache()
        self.cache.register(
            HABITS, lambda: [HabitRecord.from_json(h) for h in api.list_habits()], initial=[]
        )
        self.cache.register(
            COMPLETIONS, lambda: [CompletionRecord.from_json(c) for c in api.list_completions()], initial=[]
        )
        self.cache.register(STATS, api.get_stats, initial=dict(EMPTY_STATS))

    def mount(self) -> None:
        self.cache.fetch_all()

    @property
    def habits(self) -> List[HabitRecord]:
        return self.cache.get(HABITS)

    @property
    def completions(self) -> List[CompletionRecord]:
        return self.cache.get(COMPLETIONS)

    @property
    def stats(self) -> dict:
        return self.cache.get(STATS)

    def _mutate(self, request, patches, affects, description) -> OptimisticMutation:
        return OptimisticMutation(
            cache=self.cache,
            request=request,
            patches=patches,
            affects=affects,
            description=description,
            notify=self.notify,
        ).run()

    def toggle_completion(self, habit_id: int, day: str, completed: bool) -> OptimisticMutation:
        delta = 1 if completed else -1
        start, end = services.current_window(self.today())
        try:
            in_window = start <= services.parse_day(day) <= end
        except ValueError:
            # malformed dates are left for the server to reject
            in_window = False
        changed = []

        def patch_completions(rows):
            rows = list(rows or [])
            exists = any(c.habit_id == habit_id and c.date == day for c in rows)
            if completed == exists:
                return rows
            changed.append(day)
            if completed:
                temp = CompletionRecord(
                    id=next(self._temp_ids),
                    habit_id=habit_id,
                    date=day,
                    created_at=datetime.now().isoformat(),
                    pending=True,
                )
                return rows + [temp]
            return [c for c in rows if not (c.habit_id == habit_id and c.date == day)]

        def patch_stats(stats):
            # only a row that really appeared or vanished inside the window moves the totals
            if not stats or not changed or not in_window:
                return stats
            stats = dict(stats)
            stats["totalCompletions"] = max(0, stats.get("totalCompletions", 0) + delta)
            stats["totalCompletionsChange"] = stats.get("totalCompletionsChange", 0) + delta
            return stats

        def request():
            if completed:
                return self.api.create_completion(habit_id, day)
            return self.api.delete_completion(habit_id, day)

        return self._mutate(
            request,
            [CachePatch(COMPLETIONS, patch_completions), CachePatch(STATS, patch_stats)],
            [COMPLETIONS, STATS],
            "Failed to update habit",
        )

    def add_habit(self, name: str, frequency: str, reminder_time: Optional[str] = None) -> OptimisticMutation:
        temp = HabitRecord(
            id=next(self._temp_ids),
            name=name,
            frequency=frequency,
            reminder_time=reminder_time,
            created_at=datetime.now().isoformat(),
            pending=True,
        )
        return self._mutate(
            lambda: self.api.create_habit(name, frequency, reminder_time),
            [CachePatch(HABITS, lambda rows: list(rows or []) + [temp])],
            [HABITS, STATS],
            "Failed to add habit",
        )

    def delete_habit(self, habit_id: int) -> OptimisticMutation:
        return self._mutate(
            lambda: self.api.delete_habit(habit_id),
            [
                CachePatch(HABITS, lambda rows: [h for h in rows or [] if h.id != habit_id]),
                CachePatch(COMPLETIONS, lambda rows: [c for c in rows or [] if c.habit_id != habit_id]),
            ],
            [HABITS, COMPLETIONS, STATS],
            "Failed to delete habit",
        )

    def rename_habit(self, habit_id: int, name: str) -> OptimisticMutation:
        def patch(rows):
            return [replace(h, name=name) if h.id == habit_id else h for h in rows or []]

        return self._mutate(
            lambda: self.api.update_habit(habit_id, name=name),
            [CachePatch(HABITS, patch)],
            [HABITS],
            "Failed to update habit",
        )

    # read helpers over the cached snapshot

    def is_completed_today(self, habit_id: int) -> bool:
        return services.is_completed_on(self.completions or [], habit_id, self.today())

    def current_streak(self, habit_id: int) -> int:
        return services.habit_current_streak(self.completions or [], habit_id, self.today())

    def weekly_progress(self, habit_id: int) -> int:
        return services.weekly_progress(self.completions or [], habit_id, self.today())

    def last_completed_text(self, habit_id: int) -> str:
        return services.last_completed_text(self.completions or [], habit_id, self.today())

    def overall_weekly_progress(self) -> int:
        habit_ids = [h.id for h in self.habits or []]
        return services.overall_weekly_progress(self.completions or [], habit_ids, self.today())
