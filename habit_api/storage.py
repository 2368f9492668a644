from __future__ import annotations

import logging
from typing import Optional, Protocol

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from . import models

logger = logging.getLogger(__name__)


class HabitStore(Protocol):
    """Repository for habit records."""

    def create(self, name: str, frequency: str, reminder_time: Optional[str] = None) -> models.Habit:
        ...

    def get(self, habit_id: int) -> Optional[models.Habit]:
        ...

    def list(self) -> list[models.Habit]:
        ...

    def count(self) -> int:
        ...

    def update(self, habit_id: int, fields: dict) -> Optional[models.Habit]:
        ...

    def delete(self, habit_id: int) -> bool:
        """Delete the habit and every completion that references it."""
        ...


class CompletionStore(Protocol):
    """Repository for completion records, unique per (habit, date)."""

    def create(self, habit_id: int, date: str) -> models.HabitCompletion:
        """Return the existing completion for (habit, date) if there is one."""
        ...

    def list_all(self) -> list[models.HabitCompletion]:
        ...

    def list_by_habit(self, habit_id: int) -> list[models.HabitCompletion]:
        ...

    def list_by_date(self, date: str) -> list[models.HabitCompletion]:
        ...

    def delete(self, habit_id: int, date: str) -> bool:
        ...


class SqlHabitStore:
    def __init__(self, db: Session):
        self.db = db

    def create(self, name: str, frequency: str, reminder_time: Optional[str] = None) -> models.Habit:
        habit = models.Habit(name=name, frequency=frequency, reminder_time=reminder_time)
        self.db.add(habit)
        self.db.commit()
        self.db.refresh(habit)
        logger.info("created habit %s (%r, %s)", habit.id, habit.name, habit.frequency)
        return habit

    def get(self, habit_id: int) -> Optional[models.Habit]:
        return self.db.get(models.Habit, habit_id)

    def list(self) -> list[models.Habit]:
        return self.db.query(models.Habit).order_by(models.Habit.id).all()

    def count(self) -> int:
        return self.db.query(models.Habit).count()

    def update(self, habit_id: int, fields: dict) -> Optional[models.Habit]:
        habit = self.get(habit_id)
        if not habit:
            return None
        for key, value in fields.items():
            setattr(habit, key, value)
        self.db.commit()
        self.db.refresh(habit)
        return habit

    def delete(self, habit_id: int) -> bool:
        habit = self.get(habit_id)
        if not habit:
            return False
        removed = len(habit.completions)
        # relationship cascade removes the completions with the habit
        self.db.delete(habit)
        self.db.commit()
        logger.info("deleted habit %s and %d completion(s)", habit_id, removed)
        return True


class SqlCompletionStore:
    def __init__(self, db: Session):
        self.db = db

    def _find(self, habit_id: int, date: str) -> Optional[models.HabitCompletion]:
        return self.db.query(models.HabitCompletion).filter(
            models.HabitCompletion.habit_id == habit_id,
            models.HabitCompletion.date == date,
        ).first()

    def create(self, habit_id: int, date: str) -> models.HabitCompletion:
        existing = self._find(habit_id, date)
        if existing:
            return existing

        completion = models.HabitCompletion(habit_id=habit_id, date=date)
        self.db.add(completion)
        try:
            self.db.commit()
        except IntegrityError:
            # lost an insert race for the same (habit, date); keep the winner
            self.db.rollback()
            winner = self._find(habit_id, date)
            if winner is None:
                raise
            return winner
        self.db.refresh(completion)
        logger.info("habit %s completed on %s", habit_id, date)
        return completion

    def list_all(self) -> list[models.HabitCompletion]:
        return self.db.query(models.HabitCompletion).order_by(models.HabitCompletion.id).all()

    def list_by_habit(self, habit_id: int) -> list[models.HabitCompletion]:
        return self.db.query(models.HabitCompletion).filter(
            models.HabitCompletion.habit_id == habit_id
        ).order_by(models.HabitCompletion.id).all()

    def list_by_date(self, date: str) -> list[models.HabitCompletion]:
        return self.db.query(models.HabitCompletion).filter(
            models.HabitCompletion.date == date
        ).order_by(models.HabitCompletion.id).all()

    def delete(self, habit_id: int, date: str) -> bool:
        completion = self._find(habit_id, date)
        if not completion:
            return False
        self.db.delete(completion)
        self.db.commit()
        logger.info("habit %s un-completed on %s", habit_id, date)
        return True
