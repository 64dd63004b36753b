from __future__ import annotations

from postpone.config import AppConfig

from .interface import TaskRepository
from .memory import InMemoryTaskRepository


def build_repository(config: AppConfig) -> TaskRepository:
    """Construct the repository selected by STORE_BACKEND."""
    if config.store_backend == "memory":
        return InMemoryTaskRepository()
    if config.store_backend == "rest":
        if not config.backend_url:
            raise ValueError("BACKEND_URL is required when STORE_BACKEND=rest")
        from .rest_repository import RestTaskRepository

        return RestTaskRepository(
            base_url=config.backend_url,
            api_key=config.backend_api_key,
            timeout=config.backend_timeout,
        )
    from .redis_repository import RedisTaskRepository

    return RedisTaskRepository(url=config.redis_url, key_prefix=config.store_prefix)


__all__ = ["InMemoryTaskRepository", "TaskRepository", "build_repository"]
