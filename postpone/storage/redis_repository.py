from __future__ import annotations

import json
from typing import Any, cast

import redis

from postpone.errors import RepositoryError
from postpone.models import Settings, Tag, Task

from .interface import TaskRepository


class RedisTaskRepository(TaskRepository):
    """Redis-backed repository.

    Data structures:
    - String per task: key `{prefix}:task:{id}` holding the task JSON (tags embedded)
    - Sorted set per user for ordering by `created_at`:
      key `{prefix}:user:{user_id}:tasks` with score=created_at epoch seconds, member=task_id
    - Hash per user of tags: key `{prefix}:user:{user_id}:tags`, field=tag_id, value=tag JSON
    - String per user: key `{prefix}:user:{user_id}:settings` holding settings JSON
    """

    def __init__(
        self, *, url: str | None = None, key_prefix: str = "postpone", client: Any | None = None
    ) -> None:
        if client is not None:
            self._redis = client
        else:
            self._redis = redis.Redis.from_url(url or "redis://localhost:6379/0")
        self._prefix = key_prefix.rstrip(":")

    # key helpers
    def _task_key(self, task_id: str) -> str:
        return f"{self._prefix}:task:{task_id}"

    def _tasks_key(self, user_id: str) -> str:
        return f"{self._prefix}:user:{user_id}:tasks"

    def _tags_key(self, user_id: str) -> str:
        return f"{self._prefix}:user:{user_id}:tags"

    def _settings_key(self, user_id: str) -> str:
        return f"{self._prefix}:user:{user_id}:settings"

    @staticmethod
    def _dumps(data: dict[str, Any]) -> str:
        return json.dumps(data, separators=(",", ":"))

    @staticmethod
    def _decode(raw: bytes | str) -> Any:
        text = raw.decode("utf-8") if isinstance(raw, bytes) else raw
        return json.loads(text)

    def _load_task(self, task_id: str) -> Task | None:
        raw = cast(bytes | None, self._redis.get(self._task_key(task_id)))
        if raw is None:
            return None
        return Task.model_validate(self._decode(raw))

    def list_tasks(self, user_id: str) -> list[Task]:
        try:
            ids_raw = cast(list[bytes], self._redis.zrange(self._tasks_key(user_id), 0, -1))
            result: list[Task] = []
            for raw_id in ids_raw:
                tid = raw_id.decode("utf-8") if isinstance(raw_id, bytes) else raw_id
                task = self._load_task(tid)
                if task is not None:
                    result.append(task)
            return result
        except redis.exceptions.RedisError as e:
            raise RepositoryError(f"list_tasks failed: {e}") from e

    def get_task(self, user_id: str, task_id: str) -> Task | None:
        try:
            task = self._load_task(task_id)
        except redis.exceptions.RedisError as e:
            raise RepositoryError(f"get_task failed: {e}") from e
        if task is None or task.user_id != user_id:
            return None
        return task

    def save_task(self, task: Task) -> Task:
        payload = self._dumps(task.model_dump(mode="json"))
        try:
            p = self._redis.pipeline()
            p.set(self._task_key(task.id), payload)
            p.zadd(self._tasks_key(task.user_id), {task.id: task.created_at.timestamp()})
            p.execute()
        except redis.exceptions.RedisError as e:
            raise RepositoryError(f"save_task failed: {e}") from e
        return task

    def delete_task(self, user_id: str, task_id: str) -> bool:
        if self.get_task(user_id, task_id) is None:
            return False
        try:
            p = self._redis.pipeline()
            p.delete(self._task_key(task_id))
            p.zrem(self._tasks_key(user_id), task_id)
            res = p.execute()
        except redis.exceptions.RedisError as e:
            raise RepositoryError(f"delete_task failed: {e}") from e
        return bool(sum(int(x) for x in res))

    def list_tags(self, user_id: str) -> list[Tag]:
        try:
            raw = cast(dict[bytes, bytes], self._redis.hgetall(self._tags_key(user_id)))
        except redis.exceptions.RedisError as e:
            raise RepositoryError(f"list_tags failed: {e}") from e
        tags = [Tag.model_validate(self._decode(v)) for v in raw.values()]
        return sorted(tags, key=lambda t: t.key)

    def save_tag(self, tag: Tag) -> Tag:
        try:
            self._redis.hset(
                self._tags_key(tag.user_id), tag.id, self._dumps(tag.model_dump(mode="json"))
            )
        except redis.exceptions.RedisError as e:
            raise RepositoryError(f"save_tag failed: {e}") from e
        return tag

    def get_settings(self, user_id: str) -> Settings | None:
        try:
            raw = cast(bytes | None, self._redis.get(self._settings_key(user_id)))
        except redis.exceptions.RedisError as e:
            raise RepositoryError(f"get_settings failed: {e}") from e
        if raw is None:
            return None
        return Settings.model_validate(self._decode(raw))

    def save_settings(self, user_id: str, settings: Settings) -> Settings:
        try:
            self._redis.set(self._settings_key(user_id), self._dumps(settings.model_dump()))
        except redis.exceptions.RedisError as e:
            raise RepositoryError(f"save_settings failed: {e}") from e
        return settings

    def ping(self) -> None:
        try:
            self._redis.ping()
        except redis.exceptions.RedisError as e:
            raise RepositoryError(f"redis unreachable: {e}") from e


__all__ = ["RedisTaskRepository"]
