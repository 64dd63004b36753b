from __future__ import annotations

import datetime as _dt
import random
from collections.abc import Callable, Iterable
from typing import Any

from postpone.core import SortMode, StatusFilter, generate_due_date, query_tasks
from postpone.errors import RepositoryError, StoreError, TaskNotFoundError
from postpone.models import Settings, Tag, Task
from postpone.observability import get_json_logger, get_metrics
from postpone.storage import TaskRepository


class TaskStore:
    """Per-user write-through cache over a TaskRepository.

    Reads are answered from memory once `load()` has run. Every mutation is
    written to the repository first and applied to memory only when the write
    succeeds, so a failed write leaves the cached state untouched. Writes are
    last-writer-wins: edits made concurrently from another session are not
    detected and will be overwritten.
    """

    def __init__(
        self,
        repository: TaskRepository,
        user_id: str,
        settings: Settings | None = None,
        *,
        clock: Callable[[], _dt.datetime] | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self._repo = repository
        self.user_id = user_id
        self._clock = clock
        self._rng = rng
        self._tasks: list[Task] = []
        self._tags: list[Tag] = []
        self._settings = settings or Settings.defaults()
        self._shuffle_seed = 0
        self._loaded = False
        self._logger = get_json_logger("postpone.store")
        self._metrics = get_metrics()

    # ----------------------------
    # Reads
    # ----------------------------
    @property
    def tasks(self) -> list[Task]:
        return list(self._tasks)

    @property
    def tags(self) -> list[Tag]:
        return list(self._tags)

    @property
    def settings(self) -> Settings:
        return self._settings

    @property
    def shuffle_seed(self) -> int:
        return self._shuffle_seed

    @property
    def loaded(self) -> bool:
        return self._loaded

    def get_task(self, task_id: str) -> Task:
        for task in self._tasks:
            if task.id == task_id:
                return task
        raise TaskNotFoundError(task_id)

    def view(
        self,
        status: StatusFilter | str = StatusFilter.ALL,
        tags: Iterable[str] = (),
        sort: SortMode | str = SortMode.DUE_DATE,
    ) -> list[Task]:
        return query_tasks(self._tasks, status, tags, sort, self._shuffle_seed)

    def recent(self, limit: int = 3) -> list[Task]:
        return query_tasks(self._tasks, sort=SortMode.CREATED_AT)[: max(0, limit)]

    def preview_due_date(self) -> _dt.datetime:
        now = self._clock() if self._clock is not None else None
        return generate_due_date(self._settings, now=now, rng=self._rng)

    def _now(self) -> _dt.datetime:
        if self._clock is not None:
            return self._clock()
        return _dt.datetime.now().astimezone()

    def reshuffle(self) -> int:
        self._shuffle_seed += 1
        return self._shuffle_seed

    # ----------------------------
    # Loading
    # ----------------------------
    def load(self) -> None:
        def _fetch() -> tuple[list[Task], list[Tag], Settings | None]:
            return (
                self._repo.list_tasks(self.user_id),
                self._repo.list_tags(self.user_id),
                self._repo.get_settings(self.user_id),
            )

        tasks, tags, settings = self._call("load", _fetch)
        if settings is None:
            settings = self._call(
                "init_settings", lambda: self._repo.save_settings(self.user_id, self._settings)
            )
        self._tasks = tasks
        self._tags = tags
        self._settings = settings
        self._loaded = True
        self._logger.info(
            "store loaded",
            extra={
                "event": "store_loaded",
                "user_id": self.user_id,
                "attributes": {"tasks": len(tasks), "tags": len(tags)},
            },
        )

    # ----------------------------
    # Task mutations
    # ----------------------------
    def add_task(
        self,
        title: str,
        description: str | None = None,
        tag_names: Iterable[str] = (),
        due_date: _dt.datetime | None = None,
    ) -> Task:
        due = due_date or self.preview_due_date()
        task = Task(
            user_id=self.user_id,
            title=title,
            description=description,
            due_date=due,
            tags=[],
        )
        task.tags = self._resolve_tags(tag_names)
        saved = self._call("add_task", lambda: self._repo.save_task(task), task_id=task.id)
        self._tasks.append(saved)
        return saved

    def edit_task(
        self,
        task_id: str,
        *,
        title: str | None = None,
        description: str | None = None,
        due_date: _dt.datetime | None = None,
        completed: bool | None = None,
    ) -> Task:
        changes: dict[str, Any] = {}
        if title is not None:
            changes["title"] = title
        if description is not None:
            changes["description"] = description
        if due_date is not None:
            changes["due_date"] = due_date
        if completed is not None:
            changes["completed"] = completed
        if not changes:
            raise ValueError("no fields to update")
        return self._replace(task_id, "edit_task", changes)

    def set_completed(self, task_id: str, completed: bool) -> Task:
        return self._replace(task_id, "set_completed", {"completed": completed})

    def toggle_complete(self, task_id: str) -> Task:
        current = self.get_task(task_id)
        return self._replace(task_id, "toggle_complete", {"completed": not current.completed})

    def set_task_tags(self, task_id: str, tag_names: Iterable[str]) -> Task:
        self.get_task(task_id)
        tags = self._resolve_tags(tag_names)
        return self._replace(task_id, "set_task_tags", {"tags": tags})

    def regenerate_due_date(self, task_id: str) -> Task:
        return self._replace(task_id, "regenerate_due_date", {"due_date": self.preview_due_date()})

    def regenerate_overdue(self) -> list[Task]:
        """Give every pending task whose due date has passed a fresh one."""
        now = self._now()
        overdue = [t.id for t in self._tasks if t.is_overdue(now)]
        updated = [self.regenerate_due_date(tid) for tid in overdue]
        if updated:
            self._logger.info(
                "overdue regenerated",
                extra={
                    "event": "overdue_regenerated",
                    "user_id": self.user_id,
                    "attributes": {"count": len(updated)},
                },
            )
        return updated

    def delete_task(self, task_id: str) -> None:
        self.get_task(task_id)
        self._call(
            "delete_task", lambda: self._repo.delete_task(self.user_id, task_id), task_id=task_id
        )
        self._tasks = [t for t in self._tasks if t.id != task_id]

    # ----------------------------
    # Settings
    # ----------------------------
    def update_settings(self, settings: Settings) -> Settings:
        saved = self._call(
            "update_settings", lambda: self._repo.save_settings(self.user_id, settings)
        )
        self._settings = saved
        return saved

    def reset_settings(self) -> Settings:
        return self.update_settings(Settings.defaults())

    # ----------------------------
    # Internals
    # ----------------------------
    def _replace(self, task_id: str, op: str, changes: dict[str, Any]) -> Task:
        current = self.get_task(task_id)
        data = current.model_dump()
        data.update(changes)
        updated = Task.model_validate(data)
        saved = self._call(op, lambda: self._repo.save_task(updated), task_id=task_id)
        self._tasks = [saved if t.id == task_id else t for t in self._tasks]
        return saved

    def _resolve_tags(self, names: Iterable[str]) -> list[Tag]:
        """Map names to the user's tags, creating the missing ones.

        Matching ignores case; an existing tag keeps its stored casing and a
        new tag takes the casing of its first occurrence.
        """
        by_key = {t.key: t for t in self._tags}
        resolved: list[Tag] = []
        seen: set[str] = set()
        for raw in names:
            name = raw.strip()
            key = name.casefold()
            if not name or key in seen:
                continue
            seen.add(key)
            tag = by_key.get(key)
            if tag is None:
                new_tag = Tag(user_id=self.user_id, name=name)
                tag = self._call("create_tag", lambda t=new_tag: self._repo.save_tag(t))
                self._tags.append(tag)
                by_key[key] = tag
            resolved.append(tag)
        return resolved

    def _call(self, op: str, fn: Callable[[], Any], *, task_id: str | None = None) -> Any:
        labels = {"op": op}
        try:
            result = fn()
        except RepositoryError as e:
            extra: dict[str, Any] = {
                "event": "store_error",
                "user_id": self.user_id,
                "attributes": {"op": op, "error": str(e)[:200], "transient": e.transient},
            }
            if task_id:
                extra["task_id"] = task_id
            self._logger.error("store operation failed", extra=extra)
            self._metrics.increment("store_errors", labels)
            raise StoreError(f"{op} failed: {e}") from e
        self._metrics.increment("store_ops", labels)
        return result


__all__ = ["TaskStore"]
