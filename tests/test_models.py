from __future__ import annotations

import datetime as dt

import pytest
from pydantic import ValidationError

from postpone.models import Settings, Tag, Task


def _task(**kwargs: object) -> Task:
    data: dict[str, object] = {
        "user_id": "u1",
        "title": "Sort the mail",
        "due_date": dt.datetime(2026, 1, 2, 10, 15, tzinfo=dt.UTC),
    }
    data.update(kwargs)
    return Task.model_validate(data)


def test_task_defaults() -> None:
    task = _task()
    assert task.id
    assert task.completed is False
    assert task.tags == []
    assert task.description is None
    assert task.created_at.tzinfo is not None


def test_title_and_description_limits() -> None:
    assert _task(title="  padded  ").title == "padded"
    assert len(_task(title="x" * 100).title) == 100
    with pytest.raises(ValidationError):
        _task(title="x" * 101)
    with pytest.raises(ValidationError):
        _task(title="  ")
    assert len(_task(description="d" * 500).description or "") == 500
    with pytest.raises(ValidationError):
        _task(description="d" * 501)
    assert _task(description="   ").description is None


def test_naive_datetimes_are_treated_as_utc() -> None:
    task = _task(due_date=dt.datetime(2026, 1, 2, 10, 15))
    assert task.due_date.tzinfo == dt.UTC


def test_overdue() -> None:
    now = dt.datetime(2026, 1, 3, tzinfo=dt.UTC)
    assert _task().is_overdue(now) is True
    assert _task(completed=True).is_overdue(now) is False
    assert _task().is_overdue(dt.datetime(2026, 1, 1, tzinfo=dt.UTC)) is False


def test_tag_key_ignores_case() -> None:
    a = Tag(user_id="u1", name=" Work ")
    b = Tag(user_id="u1", name="WORK")
    assert a.name == "Work"
    assert a.key == b.key
    task = _task(tags=[a])
    assert task.tag_names == ["Work"]


def test_settings_defaults_and_validation() -> None:
    s = Settings.defaults()
    assert (s.min_days_ahead, s.max_days_ahead, s.earliest_hour, s.latest_hour) == (1, 4, 8, 23)
    with pytest.raises(ValidationError, match="Minimum days ahead"):
        Settings(min_days_ahead=3, max_days_ahead=2)
    with pytest.raises(ValidationError, match="Earliest hour"):
        Settings(earliest_hour=20, latest_hour=10)
    with pytest.raises(ValidationError):
        Settings(latest_hour=24)
    with pytest.raises(ValidationError):
        Settings(min_days_ahead=-1)


def test_settings_day_bounds_are_capped() -> None:
    widest = Settings(min_days_ahead=0, max_days_ahead=30)
    assert widest.max_days_ahead == 30
    with pytest.raises(ValidationError):
        Settings(min_days_ahead=1, max_days_ahead=31)
    with pytest.raises(ValidationError):
        Settings(min_days_ahead=10_000_000, max_days_ahead=10_000_000)
