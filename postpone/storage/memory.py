from __future__ import annotations

from postpone.models import Settings, Tag, Task

from .interface import TaskRepository


class InMemoryTaskRepository(TaskRepository):
    """Process-local repository; data is lost on restart."""

    def __init__(self) -> None:
        self._tasks: dict[str, Task] = {}
        self._tags: dict[str, Tag] = {}
        self._settings: dict[str, Settings] = {}

    def list_tasks(self, user_id: str) -> list[Task]:
        owned = [t for t in self._tasks.values() if t.user_id == user_id]
        return [t.model_copy(deep=True) for t in sorted(owned, key=lambda t: t.created_at)]

    def get_task(self, user_id: str, task_id: str) -> Task | None:
        task = self._tasks.get(task_id)
        if task is None or task.user_id != user_id:
            return None
        return task.model_copy(deep=True)

    def save_task(self, task: Task) -> Task:
        self._tasks[task.id] = task.model_copy(deep=True)
        return task

    def delete_task(self, user_id: str, task_id: str) -> bool:
        if self.get_task(user_id, task_id) is None:
            return False
        del self._tasks[task_id]
        return True

    def list_tags(self, user_id: str) -> list[Tag]:
        owned = [t for t in self._tags.values() if t.user_id == user_id]
        return sorted(owned, key=lambda t: t.key)

    def save_tag(self, tag: Tag) -> Tag:
        self._tags[tag.id] = tag.model_copy()
        return tag

    def get_settings(self, user_id: str) -> Settings | None:
        settings = self._settings.get(user_id)
        return settings.model_copy() if settings is not None else None

    def save_settings(self, user_id: str, settings: Settings) -> Settings:
        self._settings[user_id] = settings.model_copy()
        return settings

    def ping(self) -> None:
        return None


__all__ = ["InMemoryTaskRepository"]
