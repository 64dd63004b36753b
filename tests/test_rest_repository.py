from __future__ import annotations

import datetime as dt
import json
from typing import Any

import httpx
import pytest

from postpone.errors import RepositoryError
from postpone.models import Settings, Tag
from postpone.storage.rest_repository import RestTaskRepository, row_to_task
from tests.helpers.repository import make_task

DUE = dt.datetime(2026, 5, 2, 14, 30, tzinfo=dt.UTC)


class Recorder:
    def __init__(self, responses: dict[tuple[str, str], httpx.Response] | None = None) -> None:
        self.requests: list[httpx.Request] = []
        self._responses = responses or {}

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        table = request.url.path.rsplit("/", 1)[-1]
        return self._responses.get((request.method, table), httpx.Response(200, json=[]))


def _repo(recorder: Recorder) -> RestTaskRepository:
    client = httpx.Client(transport=httpx.MockTransport(recorder))
    return RestTaskRepository(base_url="https://backend.test/", api_key="anon-key", client=client)


def test_list_tasks_maps_rows_and_embedded_tags() -> None:
    rows = [
        {
            "id": "t1",
            "user_id": "u1",
            "title": "Plan trip",
            "description": None,
            "due_date": "2026-05-02T14:30:00+00:00",
            "created_at": "2026-04-01T08:00:00+00:00",
            "completed": False,
            "task_tags": [{"tags": {"id": "g1", "user_id": "u1", "name": "Fun", "color": "#f00"}}],
        }
    ]
    rec = Recorder({("GET", "tasks"): httpx.Response(200, json=rows)})
    tasks = _repo(rec).list_tasks("u1")

    assert len(tasks) == 1
    assert tasks[0].due_date == DUE
    assert tasks[0].tag_names == ["Fun"]
    assert tasks[0].tags[0].color == "#f00"

    req = rec.requests[0]
    assert req.url.path == "/rest/v1/tasks"
    assert req.url.params["user_id"] == "eq.u1"
    assert req.url.params["order"] == "created_at.asc"
    assert req.headers["apikey"] == "anon-key"
    assert req.headers["Authorization"] == "Bearer anon-key"


def test_save_task_upserts_and_replaces_associations() -> None:
    rec = Recorder()
    task = make_task("t9", due=DUE, user_id="u1", tags=("a", "b"))
    _repo(rec).save_task(task)

    methods = [(r.method, r.url.path.rsplit("/", 1)[-1]) for r in rec.requests]
    assert methods == [("POST", "tasks"), ("DELETE", "task_tags"), ("POST", "task_tags")]

    upsert = rec.requests[0]
    assert "merge-duplicates" in upsert.headers["Prefer"]
    row = json.loads(upsert.content)
    assert row["due_date"] == "2026-05-02T14:30:00+00:00"
    assert "tags" not in row

    links = json.loads(rec.requests[2].content)
    assert links == [{"task_id": "t9", "tag_id": "tag-a"}, {"task_id": "t9", "tag_id": "tag-b"}]


def test_save_task_without_tags_skips_link_insert() -> None:
    rec = Recorder()
    _repo(rec).save_task(make_task("t1", due=DUE, user_id="u1"))
    assert [r.method for r in rec.requests] == ["POST", "DELETE"]


def test_delete_task_reports_removed_rows() -> None:
    rec = Recorder({("DELETE", "tasks"): httpx.Response(200, json=[{"id": "t1"}])})
    assert _repo(rec).delete_task("u1", "t1") is True

    rec_empty = Recorder()
    assert _repo(rec_empty).delete_task("u1", "t1") is False


def test_settings_roundtrip() -> None:
    row = {
        "user_id": "u1",
        "min_days_ahead": 2,
        "max_days_ahead": 6,
        "earliest_hour": 7,
        "latest_hour": 21,
    }
    rec = Recorder({("GET", "user_settings"): httpx.Response(200, json=[row])})
    repo = _repo(rec)
    assert repo.get_settings("u1") == Settings(
        min_days_ahead=2, max_days_ahead=6, earliest_hour=7, latest_hour=21
    )
    assert _repo(Recorder()).get_settings("u1") is None

    repo.save_settings("u1", Settings.defaults())
    sent = json.loads(rec.requests[-1].content)
    assert sent["user_id"] == "u1"
    assert rec.requests[-1].url.params["on_conflict"] == "user_id"


def test_tags_listing_and_save() -> None:
    rows = [{"id": "g1", "user_id": "u1", "name": "Errands", "color": None}]
    rec = Recorder({("GET", "tags"): httpx.Response(200, json=rows)})
    repo = _repo(rec)
    assert [t.name for t in repo.list_tags("u1")] == ["Errands"]
    repo.save_tag(Tag(id="g2", user_id="u1", name="Later"))
    assert json.loads(rec.requests[-1].content)["name"] == "Later"


@pytest.mark.parametrize("status,transient", [(500, True), (503, True), (401, False)])
def test_http_errors_become_repository_errors(status: int, transient: bool) -> None:
    rec = Recorder({("GET", "tasks"): httpx.Response(status, text="nope")})
    with pytest.raises(RepositoryError) as ei:
        _repo(rec).list_tasks("u1")
    assert ei.value.transient is transient


def test_transport_errors_become_repository_errors() -> None:
    def _boom(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    client = httpx.Client(transport=httpx.MockTransport(_boom))
    repo = RestTaskRepository(base_url="https://backend.test", client=client)
    with pytest.raises(RepositoryError):
        repo.ping()


def test_row_to_task_tolerates_missing_links() -> None:
    row: dict[str, Any] = {
        "id": "t1",
        "user_id": "u1",
        "title": "Bare",
        "due_date": "2026-05-02T14:30:00Z",
        "created_at": "2026-05-01T10:00:00Z",
        "completed": None,
    }
    task = row_to_task(row)
    assert task.tags == []
    assert task.completed is False
