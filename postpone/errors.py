from __future__ import annotations


class PostponeError(Exception):
    """Base class for errors raised by postpone."""


class RepositoryError(PostponeError):
    """The storage backend rejected a call or could not be reached.

    `transient` is True for connectivity problems that may succeed on retry.
    """

    def __init__(self, message: str, *, transient: bool = True) -> None:
        super().__init__(message)
        self.transient = transient


class StoreError(PostponeError):
    """A store mutation failed to persist; in-memory state was left unchanged."""


class TaskNotFoundError(PostponeError):
    def __init__(self, task_id: str) -> None:
        super().__init__(f"unknown task_id: {task_id}")
        self.task_id = task_id


__all__ = ["PostponeError", "RepositoryError", "StoreError", "TaskNotFoundError"]
