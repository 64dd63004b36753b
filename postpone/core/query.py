from __future__ import annotations

import math
from collections.abc import Iterable, Sequence
from enum import StrEnum

from postpone.models import Task


class StatusFilter(StrEnum):
    ALL = "all"
    PENDING = "pending"
    COMPLETED = "completed"


class SortMode(StrEnum):
    DUE_DATE = "due_date"
    CREATED_AT = "created_at"
    RANDOM = "random"


def shuffle_key(task_id: str, seed: int) -> float:
    """Deterministic pseudo-random sort key for a task id and shuffle seed.

    Same id and seed always give the same key; bumping the seed reorders.
    """
    h = sum(ord(ch) for ch in task_id)
    x = math.sin(h + seed) * 10000
    return x - math.floor(x)


def _status_ok(task: Task, status: StatusFilter) -> bool:
    if status is StatusFilter.PENDING:
        return not task.completed
    if status is StatusFilter.COMPLETED:
        return task.completed
    return True


def _tags_ok(task: Task, wanted: frozenset[str]) -> bool:
    if not wanted:
        return True
    return any(t.name in wanted for t in task.tags)


def query_tasks(
    tasks: Sequence[Task],
    status: StatusFilter | str = StatusFilter.ALL,
    tags: Iterable[str] = (),
    sort: SortMode | str = SortMode.DUE_DATE,
    shuffle_seed: int = 0,
) -> list[Task]:
    """Filter and order tasks for display.

    A task is kept when it matches the status filter and, if any tag names
    are given, carries at least one of them. Sorting is stable so ties keep
    input order. The input sequence is never modified.
    """
    st = StatusFilter(status)
    mode = SortMode(sort)
    wanted = frozenset(tags)
    selected = [t for t in tasks if _status_ok(t, st) and _tags_ok(t, wanted)]
    if mode is SortMode.DUE_DATE:
        selected.sort(key=lambda t: t.due_date)
    elif mode is SortMode.CREATED_AT:
        # reverse=True keeps equal keys in input order
        selected.sort(key=lambda t: t.created_at, reverse=True)
    else:
        selected.sort(key=lambda t: shuffle_key(t.id, shuffle_seed))
    return selected


__all__ = ["SortMode", "StatusFilter", "query_tasks", "shuffle_key"]
