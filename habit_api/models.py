from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, UniqueConstraint, Index
from sqlalchemy.orm import relationship
from datetime import datetime
from .db import Base


class Habit(Base):
    __tablename__ = "habits"

    id = Column(Integer, primary_key=True)
    name = Column(String(120), nullable=False)
    frequency = Column(String(64), nullable=False)     # "Daily", "Weekly" or "Mon, Wed, Fri"
    reminder_time = Column(String(5), nullable=True)   # HH:MM
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    completions = relationship(
        "HabitCompletion",
        back_populates="habit",
        cascade="all, delete-orphan",
        order_by="HabitCompletion.id",
    )


class HabitCompletion(Base):
    __tablename__ = "habit_completions"

    id = Column(Integer, primary_key=True)
    habit_id = Column(Integer, ForeignKey("habits.id", ondelete="CASCADE"), nullable=False)
    date = Column(String(10), nullable=False)          # YYYY-MM-DD
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    habit = relationship("Habit", back_populates="completions")

    __table_args__ = (
        UniqueConstraint("habit_id", "date", name="uq_completions_habit_date"),
        Index("ix_completions_date", "date"),
    )
