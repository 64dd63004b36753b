from __future__ import annotations

from typing import Protocol

from postpone.models import Settings, Tag, Task


class TaskRepository(Protocol):
    """Minimal CRUD interface over the external storage backend.

    Every call is scoped to one user. Implementations raise RepositoryError
    when the backend fails; a missing row is not an error.
    """

    def list_tasks(self, user_id: str) -> list[Task]:
        """Return the user's tasks with their tags, oldest first."""

    def get_task(self, user_id: str, task_id: str) -> Task | None:
        """Return one task or None when it does not exist for this user."""

    def save_task(self, task: Task) -> Task:
        """Insert or replace a task together with its tag associations."""

    def delete_task(self, user_id: str, task_id: str) -> bool:
        """Delete a task. Returns True when something was removed."""

    def list_tags(self, user_id: str) -> list[Tag]:
        """Return every tag the user has created."""

    def save_tag(self, tag: Tag) -> Tag:
        """Insert or replace a tag."""

    def get_settings(self, user_id: str) -> Settings | None:
        """Return stored settings or None when the user has none yet."""

    def save_settings(self, user_id: str, settings: Settings) -> Settings:
        """Persist settings for the user."""

    def ping(self) -> None:
        """Raise RepositoryError if the backend is unreachable."""


__all__ = ["TaskRepository"]
