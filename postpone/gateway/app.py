from __future__ import annotations

import datetime as _dt
import threading
import uuid
from collections import OrderedDict
from collections.abc import Callable, Generator
from contextlib import contextmanager
from typing import Any

from fastapi import Depends, FastAPI, Header, HTTPException, Query, Request, Response
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from postpone.core import SortMode, StatusFilter
from postpone.errors import RepositoryError, StoreError, TaskNotFoundError
from postpone.models import Settings, Task
from postpone.models.task import DESCRIPTION_MAX_LEN, TITLE_MAX_LEN
from postpone.observability import (
    configure_uvicorn_logging,
    get_json_logger,
    get_metrics,
    use_request_context,
)
from postpone.storage import TaskRepository
from postpone.store import TaskStore


class CreateTaskRequest(BaseModel):
    title: str = Field(min_length=1, max_length=TITLE_MAX_LEN)
    description: str | None = Field(default=None, max_length=DESCRIPTION_MAX_LEN)
    tags: list[str] = Field(default_factory=list)
    due_date: _dt.datetime | None = None


class UpdateTaskRequest(BaseModel):
    title: str | None = Field(default=None, min_length=1, max_length=TITLE_MAX_LEN)
    description: str | None = Field(default=None, max_length=DESCRIPTION_MAX_LEN)
    due_date: _dt.datetime | None = None
    completed: bool | None = None


class TagsRequest(BaseModel):
    tags: list[str] = Field(default_factory=list)


def _serialize_task(task: Task) -> dict[str, Any]:
    return task.model_dump(mode="json")


class StoreRegistry:
    """One TaskStore per user, loaded lazily and used under a per-user lock.

    The lock serializes a user's requests so writes reach the backend one at
    a time. At most `max_users` stores stay cached; the least recently used
    idle one is dropped first and reloaded from the backend on its next
    request.
    """

    def __init__(self, factory: Callable[[str], TaskStore], *, max_users: int = 1024) -> None:
        self._factory = factory
        self._max_users = max(1, max_users)
        self._stores: OrderedDict[str, TaskStore] = OrderedDict()
        self._locks: dict[str, threading.Lock] = {}
        self._active: dict[str, int] = {}
        self._guard = threading.Lock()

    def __len__(self) -> int:
        return len(self._stores)

    def __contains__(self, user_id: object) -> bool:
        return user_id in self._stores

    @contextmanager
    def use(self, user_id: str) -> Generator[TaskStore, None, None]:
        with self._guard:
            lock = self._locks.setdefault(user_id, threading.Lock())
            self._active[user_id] = self._active.get(user_id, 0) + 1
        try:
            with lock:
                store = self._stores.get(user_id)
                if store is None:
                    store = self._factory(user_id)
                if not store.loaded:
                    store.load()
                with self._guard:
                    self._stores[user_id] = store
                    self._stores.move_to_end(user_id)
                    self._evict()
                yield store
        finally:
            with self._guard:
                self._active[user_id] -= 1
                if not self._active[user_id]:
                    del self._active[user_id]
                    if user_id not in self._stores:
                        self._locks.pop(user_id, None)

    def _evict(self) -> None:
        # Callers hold self._guard; users with requests in flight are kept
        idle = [uid for uid in self._stores if uid not in self._active]
        for uid in idle[: max(0, len(self._stores) - self._max_users)]:
            del self._stores[uid]
            self._locks.pop(uid, None)


def _require_user(x_user_id: str | None = Header(default=None)) -> str:
    user_id = (x_user_id or "").strip()
    if not user_id:
        raise HTTPException(status_code=401, detail="missing X-User-Id")
    return user_id


def create_app(
    repository: TaskRepository,
    *,
    store_factory: Callable[[str], TaskStore] | None = None,
    max_cached_users: int = 1024,
) -> FastAPI:
    app = FastAPI(title="postpone")
    # Configure uvicorn logging at app startup to avoid import-time side effects
    configure_uvicorn_logging()
    logger = get_json_logger("postpone.gateway")
    metrics = get_metrics()
    registry = StoreRegistry(
        store_factory or (lambda uid: TaskStore(repository, uid)), max_users=max_cached_users
    )
    app.state.stores = registry

    @app.middleware("http")
    async def _request_context(request: Request, call_next: Any) -> Response:
        request_id = request.headers.get("X-Request-Id") or str(uuid.uuid4())
        with use_request_context(request.headers.get("X-User-Id"), request_id):
            response = await call_next(request)
        response.headers["X-Request-Id"] = request_id
        return response

    @app.exception_handler(TaskNotFoundError)
    async def _not_found(request: Request, exc: TaskNotFoundError) -> JSONResponse:
        return JSONResponse(status_code=404, content={"detail": str(exc)})

    @app.exception_handler(StoreError)
    async def _store_error(request: Request, exc: StoreError) -> JSONResponse:
        metrics.increment("gateway_store_errors", {"path": request.url.path})
        return JSONResponse(status_code=503, content={"detail": str(exc)})

    @app.exception_handler(ValueError)
    async def _invalid(request: Request, exc: ValueError) -> JSONResponse:
        return JSONResponse(status_code=422, content={"detail": str(exc)})

    @app.get("/health")
    def health() -> dict[str, str]:
        return {"status": "ok"}

    @app.get("/ready")
    def ready() -> dict[str, str]:
        try:
            repository.ping()
        except RepositoryError as exc:
            logger.error(
                "gateway not ready",
                extra={"event": "gateway_error", "attributes": {"path": "ready"}},
            )
            metrics.increment("gateway_ready_errors", {})
            raise HTTPException(status_code=503, detail="backend not ready") from exc
        return {"status": "ok"}

    # ----------------------------
    # Tasks
    # ----------------------------
    @app.get("/tasks")
    def list_tasks(
        status: StatusFilter = StatusFilter.ALL,
        tag: list[str] = Query(default=[]),
        sort: SortMode = SortMode.DUE_DATE,
        user_id: str = Depends(_require_user),
    ) -> dict[str, Any]:
        with registry.use(user_id) as store:
            tasks = store.view(status, tag, sort)
            seed = store.shuffle_seed
        return {"tasks": [_serialize_task(t) for t in tasks], "shuffle_seed": seed}

    @app.get("/tasks/recent")
    def recent_tasks(
        limit: int = Query(default=3, ge=0, le=100), user_id: str = Depends(_require_user)
    ) -> dict[str, Any]:
        with registry.use(user_id) as store:
            tasks = store.recent(limit)
        return {"tasks": [_serialize_task(t) for t in tasks]}

    @app.post("/tasks", status_code=201)
    def create_task(
        body: CreateTaskRequest, user_id: str = Depends(_require_user)
    ) -> dict[str, Any]:
        with registry.use(user_id) as store:
            task = store.add_task(body.title, body.description, body.tags, body.due_date)
        logger.info(
            "task created",
            extra={
                "event": "task_created",
                "task_id": task.id,
                "attributes": {"tags": len(task.tags), "title_len": len(task.title)},
            },
        )
        metrics.increment("tasks_created", {})
        return {"task": _serialize_task(task)}

    @app.post("/tasks/reshuffle")
    def reshuffle(user_id: str = Depends(_require_user)) -> dict[str, int]:
        with registry.use(user_id) as store:
            seed = store.reshuffle()
        return {"shuffle_seed": seed}

    @app.post("/tasks/regenerate-overdue")
    def regenerate_overdue(user_id: str = Depends(_require_user)) -> dict[str, Any]:
        with registry.use(user_id) as store:
            updated = store.regenerate_overdue()
        return {"tasks": [_serialize_task(t) for t in updated]}

    @app.get("/tasks/{task_id}")
    def get_task(task_id: str, user_id: str = Depends(_require_user)) -> dict[str, Any]:
        with registry.use(user_id) as store:
            task = store.get_task(task_id)
        return {"task": _serialize_task(task)}

    @app.patch("/tasks/{task_id}")
    def update_task(
        task_id: str, body: UpdateTaskRequest, user_id: str = Depends(_require_user)
    ) -> dict[str, Any]:
        fields = body.model_dump(exclude_none=True)
        if not fields:
            raise HTTPException(status_code=422, detail="no fields to update")
        with registry.use(user_id) as store:
            task = store.edit_task(task_id, **fields)
        return {"task": _serialize_task(task)}

    @app.delete("/tasks/{task_id}")
    def delete_task(task_id: str, user_id: str = Depends(_require_user)) -> dict[str, bool]:
        with registry.use(user_id) as store:
            store.delete_task(task_id)
        logger.info("task deleted", extra={"event": "task_deleted", "task_id": task_id})
        return {"ok": True}

    @app.post("/tasks/{task_id}/toggle")
    def toggle_task(task_id: str, user_id: str = Depends(_require_user)) -> dict[str, Any]:
        with registry.use(user_id) as store:
            task = store.toggle_complete(task_id)
        return {"task": _serialize_task(task)}

    @app.post("/tasks/{task_id}/regenerate")
    def regenerate_task(task_id: str, user_id: str = Depends(_require_user)) -> dict[str, Any]:
        with registry.use(user_id) as store:
            task = store.regenerate_due_date(task_id)
        return {"task": _serialize_task(task)}

    @app.put("/tasks/{task_id}/tags")
    def set_tags(
        task_id: str, body: TagsRequest, user_id: str = Depends(_require_user)
    ) -> dict[str, Any]:
        with registry.use(user_id) as store:
            task = store.set_task_tags(task_id, body.tags)
        return {"task": _serialize_task(task)}

    # ----------------------------
    # Tags and settings
    # ----------------------------
    @app.get("/tags")
    def list_tags(user_id: str = Depends(_require_user)) -> dict[str, Any]:
        with registry.use(user_id) as store:
            tags = store.tags
        return {"tags": [t.model_dump(mode="json") for t in tags]}

    @app.get("/settings")
    def get_settings(user_id: str = Depends(_require_user)) -> dict[str, Any]:
        with registry.use(user_id) as store:
            return {"settings": store.settings.model_dump()}

    @app.put("/settings")
    def put_settings(body: Settings, user_id: str = Depends(_require_user)) -> dict[str, Any]:
        with registry.use(user_id) as store:
            saved = store.update_settings(body)
        return {"settings": saved.model_dump()}

    @app.post("/settings/reset")
    def reset_settings(user_id: str = Depends(_require_user)) -> dict[str, Any]:
        with registry.use(user_id) as store:
            saved = store.reset_settings()
        return {"settings": saved.model_dump()}

    @app.get("/due-date/preview")
    def preview_due_date(user_id: str = Depends(_require_user)) -> dict[str, str]:
        with registry.use(user_id) as store:
            due = store.preview_due_date()
        return {"due_date": due.isoformat()}

    return app


__all__ = ["CreateTaskRequest", "StoreRegistry", "UpdateTaskRequest", "create_app"]
