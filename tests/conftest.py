from __future__ import annotations

import datetime as dt
import os
import random
import time
import uuid
from collections.abc import Callable, Generator

import pytest

from postpone.observability import reset_metrics
from postpone.storage import InMemoryTaskRepository
from postpone.store import TaskStore

# Fixed local reference time used by clock-dependent tests
NOW = dt.datetime(2026, 3, 10, 9, 41, 27, 123456, tzinfo=dt.UTC)


def _wait_until(timeout_s: float, pause_s: float, check: Callable[[], bool]) -> bool:
    deadline = time.time() + timeout_s
    while time.time() < deadline:
        if check():
            return True
        time.sleep(pause_s)
    return False


def _redis_ping(url: str) -> bool:
    try:
        import redis

        r = redis.Redis.from_url(url)
        return bool(r.ping())
    except Exception:
        return False


@pytest.fixture(scope="session")
def redis_url() -> str:
    """Provide a reachable Redis URL or skip.

    Priority:
    1) REDIS_URL env if reachable
    2) localhost:6379 if reachable
    """
    env_url = os.getenv("REDIS_URL")
    if env_url and _wait_until(5.0, 0.2, lambda: _redis_ping(env_url)):
        return env_url
    local_url = "redis://localhost:6379/0"
    if _wait_until(1.0, 0.2, lambda: _redis_ping(local_url)):
        return local_url
    pytest.skip("Redis not available; set REDIS_URL or start local Redis")


@pytest.fixture()
def unique_prefix() -> str:
    return f"test:postpone:{uuid.uuid4()}"


@pytest.fixture(autouse=True)
def _fresh_metrics() -> Generator[None, None, None]:
    reset_metrics()
    yield
    reset_metrics()


@pytest.fixture()
def now() -> dt.datetime:
    return NOW


@pytest.fixture()
def repository() -> InMemoryTaskRepository:
    return InMemoryTaskRepository()


@pytest.fixture()
def store(repository: InMemoryTaskRepository, now: dt.datetime) -> TaskStore:
    s = TaskStore(repository, "user-1", clock=lambda: now, rng=random.Random(7))
    s.load()
    return s
