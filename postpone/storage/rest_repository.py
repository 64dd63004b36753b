from __future__ import annotations

import datetime as _dt
from typing import Any

import httpx

from postpone.errors import RepositoryError
from postpone.models import Settings, Tag, Task
from postpone.observability import get_json_logger

from .interface import TaskRepository

_TASK_COLUMNS = ("id", "user_id", "title", "description", "due_date", "created_at", "completed")
_SETTINGS_COLUMNS = ("min_days_ahead", "max_days_ahead", "earliest_hour", "latest_hour")


def _iso(value: _dt.datetime) -> str:
    return value.isoformat()


def task_to_row(task: Task) -> dict[str, Any]:
    return {
        "id": task.id,
        "user_id": task.user_id,
        "title": task.title,
        "description": task.description,
        "due_date": _iso(task.due_date),
        "created_at": _iso(task.created_at),
        "completed": task.completed,
    }


def row_to_task(row: dict[str, Any]) -> Task:
    """Build a Task from a `tasks` row with embedded `task_tags(tags(*))`."""
    tags: list[Tag] = []
    for link in row.get("task_tags") or []:
        tag_row = link.get("tags") if isinstance(link, dict) else None
        if isinstance(tag_row, dict):
            tags.append(row_to_tag(tag_row))
    data = {k: row.get(k) for k in _TASK_COLUMNS}
    data["completed"] = bool(data.get("completed"))
    data["tags"] = tags
    return Task.model_validate(data)


def tag_to_row(tag: Tag) -> dict[str, Any]:
    return {"id": tag.id, "user_id": tag.user_id, "name": tag.name, "color": tag.color}


def row_to_tag(row: dict[str, Any]) -> Tag:
    return Tag(id=row["id"], user_id=row["user_id"], name=row["name"], color=row.get("color"))


class RestTaskRepository(TaskRepository):
    """Repository over a hosted table backend with a PostgREST-style API.

    Tables:
    - `tasks` one row per task
    - `tags` one row per user tag
    - `task_tags` join table (task_id, tag_id) for the many-to-many association
    - `user_settings` one row per user keyed by user_id

    Tag associations are replaced wholesale on every task save; concurrent
    writers are not reconciled (last write wins).
    """

    def __init__(
        self,
        *,
        base_url: str,
        api_key: str | None = None,
        timeout: float = 10.0,
        client: httpx.Client | None = None,
    ) -> None:
        headers = {"Accept": "application/json"}
        if api_key:
            headers["apikey"] = api_key
            headers["Authorization"] = f"Bearer {api_key}"
        self._client = client or httpx.Client(timeout=timeout)
        self._headers = headers
        self._base = base_url.rstrip("/") + "/rest/v1"
        self._logger = get_json_logger("postpone.storage")

    def close(self) -> None:
        self._client.close()

    def _request(
        self,
        method: str,
        table: str,
        *,
        params: dict[str, str] | None = None,
        json: Any | None = None,
        prefer: str | None = None,
    ) -> httpx.Response:
        headers = dict(self._headers)
        if prefer:
            headers["Prefer"] = prefer
        url = f"{self._base}/{table}" if table else f"{self._base}/"
        try:
            resp = self._client.request(method, url, params=params, json=json, headers=headers)
        except httpx.TransportError as e:
            self._logger.error(
                "backend unreachable",
                extra={"event": "backend_error", "backend": "rest", "attributes": {"table": table}},
            )
            raise RepositoryError(f"{method} {table} failed: {e}") from e
        if resp.status_code >= 400:
            self._logger.error(
                "backend rejected request",
                extra={
                    "event": "backend_error",
                    "backend": "rest",
                    "attributes": {
                        "table": table,
                        "method": method,
                        "status": resp.status_code,
                        "body": resp.text[:200],
                    },
                },
            )
            raise RepositoryError(
                f"{method} {table} returned {resp.status_code}",
                transient=resp.status_code >= 500,
            )
        return resp

    @staticmethod
    def _rows(resp: httpx.Response) -> list[dict[str, Any]]:
        if not resp.content:
            return []
        data = resp.json()
        return data if isinstance(data, list) else [data]

    # ----------------------------
    # Tasks
    # ----------------------------
    def list_tasks(self, user_id: str) -> list[Task]:
        resp = self._request(
            "GET",
            "tasks",
            params={
                "select": "*,task_tags(tags(*))",
                "user_id": f"eq.{user_id}",
                "order": "created_at.asc",
            },
        )
        return [row_to_task(r) for r in self._rows(resp)]

    def get_task(self, user_id: str, task_id: str) -> Task | None:
        resp = self._request(
            "GET",
            "tasks",
            params={
                "select": "*,task_tags(tags(*))",
                "id": f"eq.{task_id}",
                "user_id": f"eq.{user_id}",
            },
        )
        rows = self._rows(resp)
        return row_to_task(rows[0]) if rows else None

    def save_task(self, task: Task) -> Task:
        self._request(
            "POST",
            "tasks",
            json=task_to_row(task),
            prefer="resolution=merge-duplicates,return=minimal",
        )
        self._request("DELETE", "task_tags", params={"task_id": f"eq.{task.id}"})
        if task.tags:
            self._request(
                "POST",
                "task_tags",
                json=[{"task_id": task.id, "tag_id": t.id} for t in task.tags],
                prefer="return=minimal",
            )
        return task

    def delete_task(self, user_id: str, task_id: str) -> bool:
        self._request("DELETE", "task_tags", params={"task_id": f"eq.{task_id}"})
        resp = self._request(
            "DELETE",
            "tasks",
            params={"id": f"eq.{task_id}", "user_id": f"eq.{user_id}"},
            prefer="return=representation",
        )
        return bool(self._rows(resp))

    # ----------------------------
    # Tags
    # ----------------------------
    def list_tags(self, user_id: str) -> list[Tag]:
        resp = self._request(
            "GET", "tags", params={"user_id": f"eq.{user_id}", "order": "name.asc"}
        )
        return [row_to_tag(r) for r in self._rows(resp)]

    def save_tag(self, tag: Tag) -> Tag:
        self._request(
            "POST",
            "tags",
            json=tag_to_row(tag),
            prefer="resolution=merge-duplicates,return=minimal",
        )
        return tag

    # ----------------------------
    # Settings
    # ----------------------------
    def get_settings(self, user_id: str) -> Settings | None:
        resp = self._request("GET", "user_settings", params={"user_id": f"eq.{user_id}"})
        rows = self._rows(resp)
        if not rows:
            return None
        return Settings.model_validate({k: rows[0][k] for k in _SETTINGS_COLUMNS})

    def save_settings(self, user_id: str, settings: Settings) -> Settings:
        self._request(
            "POST",
            "user_settings",
            params={"on_conflict": "user_id"},
            json={"user_id": user_id, **settings.model_dump()},
            prefer="resolution=merge-duplicates,return=minimal",
        )
        return settings

    def ping(self) -> None:
        self._request("GET", "")


__all__ = [
    "RestTaskRepository",
    "row_to_tag",
    "row_to_task",
    "tag_to_row",
    "task_to_row",
]
