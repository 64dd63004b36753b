from __future__ import annotations

import datetime as dt
from collections.abc import Generator

import pytest
import redis

from postpone.errors import RepositoryError
from postpone.models import Settings, Tag
from postpone.storage.redis_repository import RedisTaskRepository
from postpone.store import TaskStore
from tests.helpers.repository import make_task

BASE = dt.datetime(2026, 2, 1, 12, 0, tzinfo=dt.UTC)


@pytest.fixture()
def repo(redis_url: str, unique_prefix: str) -> Generator[RedisTaskRepository, None, None]:
    r = RedisTaskRepository(url=redis_url, key_prefix=unique_prefix)
    yield r
    client = redis.Redis.from_url(redis_url)
    for key in client.scan_iter(f"{unique_prefix}:*"):
        client.delete(key)


def test_save_and_get_persists_across_instances(
    repo: RedisTaskRepository, redis_url: str, unique_prefix: str
) -> None:
    task = make_task("t1", due=BASE, tags=("Home",), description="details")
    repo.save_task(task)

    again = RedisTaskRepository(url=redis_url, key_prefix=unique_prefix)
    fetched = again.get_task("user-1", "t1")
    assert fetched is not None
    assert fetched.title == task.title
    assert fetched.due_date == BASE
    assert fetched.tag_names == ["Home"]
    assert again.get_task("someone-else", "t1") is None


def test_list_ordering_by_created_at(repo: RedisTaskRepository) -> None:
    repo.save_task(make_task("third", due=BASE, created=BASE + dt.timedelta(minutes=2)))
    repo.save_task(make_task("first", due=BASE, created=BASE))
    repo.save_task(make_task("second", due=BASE, created=BASE + dt.timedelta(minutes=1)))
    assert [t.id for t in repo.list_tasks("user-1")] == ["first", "second", "third"]


def test_update_and_delete(repo: RedisTaskRepository) -> None:
    task = make_task("t1", due=BASE)
    repo.save_task(task)
    repo.save_task(task.model_copy(update={"completed": True}))
    fetched = repo.get_task("user-1", "t1")
    assert fetched is not None and fetched.completed is True

    assert repo.delete_task("user-1", "t1") is True
    assert repo.get_task("user-1", "t1") is None
    assert repo.list_tasks("user-1") == []
    assert repo.delete_task("user-1", "t1") is False


def test_tags_and_settings(repo: RedisTaskRepository) -> None:
    repo.save_tag(Tag(id="g2", user_id="user-1", name="work"))
    repo.save_tag(Tag(id="g1", user_id="user-1", name="Admin", color="#00f"))
    assert [t.name for t in repo.list_tags("user-1")] == ["Admin", "work"]
    assert repo.list_tags("user-2") == []

    assert repo.get_settings("user-1") is None
    custom = Settings(min_days_ahead=0, max_days_ahead=2, earliest_hour=6, latest_hour=9)
    repo.save_settings("user-1", custom)
    assert repo.get_settings("user-1") == custom


def test_store_over_redis(repo: RedisTaskRepository) -> None:
    store = TaskStore(repo, "user-1", clock=lambda: BASE)
    store.load()
    task = store.add_task("Through redis", tag_names=["x"])
    store.toggle_complete(task.id)

    reloaded = TaskStore(repo, "user-1")
    reloaded.load()
    assert reloaded.get_task(task.id).completed is True
    assert [t.name for t in reloaded.tags] == ["x"]


def test_redis_errors_are_wrapped(monkeypatch: pytest.MonkeyPatch, repo: RedisTaskRepository) -> None:
    def _boom(*args: object, **kwargs: object) -> None:
        raise redis.exceptions.ConnectionError("down")

    monkeypatch.setattr(repo._redis, "zrange", _boom)
    with pytest.raises(RepositoryError):
        repo.list_tasks("user-1")
