from __future__ import annotations

import datetime
import uuid

from pydantic import BaseModel, Field, field_validator, model_validator

TITLE_MAX_LEN = 100
DESCRIPTION_MAX_LEN = 500
TAG_NAME_MAX_LEN = 50
MAX_DAYS_AHEAD = 30


def _utc_now() -> datetime.datetime:
    return datetime.datetime.now(datetime.UTC)


class Tag(BaseModel):
    """A user-defined label, reused across that user's tasks.

    Names are unique per user ignoring case; the stored name keeps the casing
    it was first created with.
    """

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    user_id: str
    name: str = Field(min_length=1, max_length=TAG_NAME_MAX_LEN)
    color: str | None = None

    @field_validator("name", mode="before")
    @classmethod
    def _strip_name(cls, value: object) -> object:
        return value.strip() if isinstance(value, str) else value

    @property
    def key(self) -> str:
        return self.name.casefold()


class Task(BaseModel):
    """A postponed task owned by exactly one user."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    user_id: str
    title: str = Field(min_length=1, max_length=TITLE_MAX_LEN)
    description: str | None = Field(default=None, max_length=DESCRIPTION_MAX_LEN)
    due_date: datetime.datetime
    created_at: datetime.datetime = Field(default_factory=_utc_now)
    completed: bool = False
    tags: list[Tag] = Field(default_factory=list)

    @field_validator("title", mode="before")
    @classmethod
    def _strip_title(cls, value: object) -> object:
        return value.strip() if isinstance(value, str) else value

    @field_validator("description", mode="before")
    @classmethod
    def _blank_description_is_none(cls, value: object) -> object:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("due_date", "created_at", mode="after")
    @classmethod
    def _assume_utc(cls, value: datetime.datetime) -> datetime.datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=datetime.UTC)
        return value

    @property
    def tag_names(self) -> list[str]:
        return [t.name for t in self.tags]

    def is_overdue(self, now: datetime.datetime | None = None) -> bool:
        return not self.completed and self.due_date < (now or _utc_now())


class Settings(BaseModel):
    """Bounds for random due-date generation."""

    min_days_ahead: int = Field(default=1, ge=0, le=MAX_DAYS_AHEAD)
    max_days_ahead: int = Field(default=4, ge=0, le=MAX_DAYS_AHEAD)
    earliest_hour: int = Field(default=8, ge=0, le=23)
    latest_hour: int = Field(default=23, ge=0, le=23)

    @model_validator(mode="after")
    def _check_ranges(self) -> Settings:
        if self.min_days_ahead > self.max_days_ahead:
            raise ValueError("Minimum days ahead cannot be greater than maximum days ahead")
        if self.earliest_hour > self.latest_hour:
            raise ValueError("Earliest hour cannot be greater than latest hour")
        return self

    @classmethod
    def defaults(cls) -> Settings:
        return cls()


__all__ = [
    "Settings",
    "Tag",
    "Task",
    "TITLE_MAX_LEN",
    "DESCRIPTION_MAX_LEN",
    "TAG_NAME_MAX_LEN",
    "MAX_DAYS_AHEAD",
]
