import re
from datetime import date as Date, datetime
from typing import Annotated, Optional

from pydantic import AfterValidator, BaseModel, Field, field_validator, model_validator


DATE_PATTERN = r"^\d{4}-\d{2}-\d{2}$"
MONTH_PATTERN = r"^\d{4}-\d{2}$"
TIME_PATTERN = r"^([01]\d|2[0-3]):[0-5]\d$"

WEEKDAYS = ("Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun")
FIXED_FREQUENCIES = ("Daily", "Weekly")


def check_day(value: str) -> str:
    """Reject strings that look like YYYY-MM-DD but are not calendar dates."""
    if not re.match(DATE_PATTERN, value):
        raise ValueError("Invalid date format. Use YYYY-MM-DD")
    try:
        Date.fromisoformat(value)
    except ValueError:
        raise ValueError(f"{value} is not a calendar date")
    return value


def normalize_frequency(value: str) -> str:
    value = value.strip()
    if value in FIXED_FREQUENCIES:
        return value
    days = [d.strip() for d in value.split(",") if d.strip()]
    if not days:
        raise ValueError("frequency must be Daily, Weekly or a list of weekdays")
    unknown = [d for d in days if d not in WEEKDAYS]
    if unknown:
        raise ValueError(f"unknown weekday(s): {', '.join(unknown)}")
    if len(set(days)) != len(days):
        raise ValueError("weekdays must not repeat")
    return ", ".join(days)


Day = Annotated[str, AfterValidator(check_day)]


class HabitCreate(BaseModel):
    name: str = Field(min_length=1, max_length=120)
    frequency: str = Field(min_length=1, max_length=64)
    reminder_time: Optional[str] = Field(default=None, alias="reminderTime", pattern=TIME_PATTERN)

    class Config:
        populate_by_name = True

    @field_validator("name")
    @classmethod
    def name_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("name must not be blank")
        return v

    @field_validator("frequency")
    @classmethod
    def frequency_known(cls, v: str) -> str:
        return normalize_frequency(v)


class HabitUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=120)
    frequency: Optional[str] = Field(default=None, min_length=1, max_length=64)
    reminder_time: Optional[str] = Field(default=None, alias="reminderTime", pattern=TIME_PATTERN)

    class Config:
        populate_by_name = True

    @model_validator(mode="after")
    def required_fields_not_null(self):
        # reminder_time may be cleared with null, the others may not
        for field in ("name", "frequency"):
            if field in self.model_fields_set and getattr(self, field) is None:
                raise ValueError(f"{field} cannot be null")
        return self

    @field_validator("name")
    @classmethod
    def name_not_blank(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not v.strip():
            raise ValueError("name must not be blank")
        return v

    @field_validator("frequency")
    @classmethod
    def frequency_known(cls, v: Optional[str]) -> Optional[str]:
        return normalize_frequency(v) if v is not None else v

    def changes(self) -> dict:
        return self.model_dump(exclude_unset=True)


class HabitOut(BaseModel):
    id: int
    name: str
    frequency: str
    reminder_time: Optional[str] = Field(default=None, alias="reminderTime")
    created_at: datetime = Field(alias="createdAt")

    class Config:
        from_attributes = True
        populate_by_name = True


class TodayHabitOut(HabitOut):
    completed: bool


class CompletionCreate(BaseModel):
    habit_id: int = Field(alias="habitId")
    date: Day

    class Config:
        populate_by_name = True


class CompletionOut(BaseModel):
    id: int
    habit_id: int = Field(alias="habitId")
    date: str
    created_at: datetime = Field(alias="createdAt")

    class Config:
        from_attributes = True
        populate_by_name = True


class StatsOut(BaseModel):
    completion_rate: int = Field(alias="completionRate")
    completion_rate_change: int = Field(alias="completionRateChange")
    current_streak: int = Field(alias="currentStreak")
    longest_streak: int = Field(alias="longestStreak")
    total_completions: int = Field(alias="totalCompletions")
    total_completions_change: int = Field(alias="totalCompletionsChange")

    class Config:
        populate_by_name = True


class HabitProgressOut(BaseModel):
    habit_id: int = Field(alias="habitId")
    current_streak: int = Field(alias="currentStreak")
    longest_streak: int = Field(alias="longestStreak")
    weekly_progress: int = Field(alias="weeklyProgress")
    last_completed: str = Field(alias="lastCompleted")
    completed_today: bool = Field(alias="completedToday")

    class Config:
        populate_by_name = True
