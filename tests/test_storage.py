import pytest

from habit_api.storage import SqlCompletionStore, SqlHabitStore


@pytest.fixture
def habits(db):
    return SqlHabitStore(db)


@pytest.fixture
def completions(db):
    return SqlCompletionStore(db)


def test_create_assigns_increasing_ids(habits):
    a = habits.create("Read", "Daily")
    b = habits.create("Run", "Mon, Wed, Fri", "07:30")
    assert b.id > a.id
    assert b.reminder_time == "07:30"
    assert b.created_at is not None
    assert [h.name for h in habits.list()] == ["Read", "Run"]
    assert habits.count() == 2


def test_get_unknown_is_none(habits):
    assert habits.get(42) is None


def test_update_merges_fields(habits):
    h = habits.create("Read", "Daily", "21:00")
    updated = habits.update(h.id, {"name": "Read 20 pages"})
    assert updated.name == "Read 20 pages"
    assert updated.frequency == "Daily"
    assert updated.reminder_time == "21:00"

    cleared = habits.update(h.id, {"reminder_time": None})
    assert cleared.reminder_time is None
    assert habits.update(999, {"name": "x"}) is None


def test_completion_create_is_idempotent(habits, completions):
    h = habits.create("Read", "Daily")
    first = completions.create(h.id, "2024-01-01")
    second = completions.create(h.id, "2024-01-01")
    assert first.id == second.id
    assert len(completions.list_by_habit(h.id)) == 1


def test_completion_round_trip(habits, completions):
    h = habits.create("Read", "Daily")
    completions.create(h.id, "2024-01-01")
    assert completions.delete(h.id, "2024-01-01") is True
    assert completions.list_by_habit(h.id) == []
    assert completions.delete(h.id, "2024-01-01") is False


def test_list_by_date(habits, completions):
    a = habits.create("Read", "Daily")
    b = habits.create("Run", "Daily")
    completions.create(a.id, "2024-01-01")
    completions.create(b.id, "2024-01-01")
    completions.create(b.id, "2024-01-02")
    assert {c.habit_id for c in completions.list_by_date("2024-01-01")} == {a.id, b.id}
    assert len(completions.list_all()) == 3


def test_delete_habit_cascades_to_completions(habits, completions):
    a = habits.create("Read", "Daily")
    b = habits.create("Run", "Daily")
    for day in ("2024-01-01", "2024-01-02"):
        completions.create(a.id, day)
        completions.create(b.id, day)

    assert habits.delete(a.id) is True
    assert habits.get(a.id) is None
    assert completions.list_by_habit(a.id) == []
    assert len(completions.list_by_habit(b.id)) == 2
    assert habits.delete(a.id) is False
