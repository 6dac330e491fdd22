"""Task snapshot fetcher: one GET per call, errors returned verbatim."""

from __future__ import annotations

from datetime import datetime, timezone

import httpx
import pytest

from meili_client.core.errors import (
    ApiError,
    CommunicationError,
    RequestTimeoutError,
    ResponseDecodeError,
    TaskNotFoundError,
)
from meili_client.core.transport import RetryPolicy, Transport
from meili_client.models.task_models import TasksQuery, TaskStatus, TaskType
from meili_client.services.task_fetcher import TaskFetcher


def _fetcher(handler) -> TaskFetcher:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return TaskFetcher(Transport("http://meili.test", "masterKey", http_client=client, retry=RetryPolicy(disabled=True)))


@pytest.mark.asyncio
async def test_fetch_decodes_full_snapshot():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(
            200,
            json={
                "uid": 12,
                "indexUid": "movies",
                "batchUid": 3,
                "status": "failed",
                "type": "documentAdditionOrUpdate",
                "canceledBy": None,
                "details": {"receivedDocuments": 2, "indexedDocuments": 0},
                "error": {
                    "message": "Document doesn't have a `id` attribute",
                    "code": "missing_document_id",
                    "type": "invalid_request",
                    "link": "https://docs.example/errors#missing_document_id",
                },
                "duration": "PT0.01S",
                "enqueuedAt": "2024-05-01T10:00:00.123456789Z",
                "startedAt": "2024-05-01T10:00:00.2Z",
                "finishedAt": "2024-05-01T10:00:01Z",
                "customMetadata": "import-42",
            },
        )

    task = await _fetcher(handler).fetch(12)

    assert len(seen) == 1
    assert seen[0].method == "GET"
    assert seen[0].url.path == "/tasks/12"
    assert seen[0].headers["Authorization"] == "Bearer masterKey"
    assert task.uid == 12
    assert task.status is TaskStatus.failed
    assert task.is_terminal
    assert task.type == TaskType.document_addition_or_update.value
    assert task.error is not None and task.error.code == "missing_document_id"
    assert task.details == {"receivedDocuments": 2, "indexedDocuments": 0}
    assert task.custom_metadata == "import-42"
    assert task.enqueued_at == datetime(2024, 5, 1, 10, 0, 0, 123456, tzinfo=timezone.utc)


@pytest.mark.asyncio
async def test_fetch_unknown_status_is_terminal():
    task = await _fetcher(
        lambda _req: httpx.Response(200, json={"uid": 1, "status": "paused", "type": "export"})
    ).fetch(1)
    assert task.status is TaskStatus.unknown
    assert task.is_terminal


@pytest.mark.asyncio
async def test_fetch_unknown_task_raises_not_found():
    def handler(_request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            404,
            json={"message": "Task `99` not found.", "code": "task_not_found", "type": "invalid_request", "link": "x"},
        )

    with pytest.raises(TaskNotFoundError) as exc:
        await _fetcher(handler).fetch(99)
    assert exc.value.status_code == 404
    assert exc.value.code == "task_not_found"
    assert exc.value.kind == "task_not_found"


@pytest.mark.asyncio
async def test_fetch_other_status_raises_api_error():
    with pytest.raises(ApiError) as exc:
        await _fetcher(lambda _req: httpx.Response(401, json={"message": "nope"})).fetch(1)
    assert not isinstance(exc.value, TaskNotFoundError)
    assert exc.value.status_code == 401


@pytest.mark.asyncio
async def test_fetch_transport_failure_is_propagated():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(CommunicationError) as exc:
        await _fetcher(handler).fetch(1)
    assert exc.value.path == "/tasks/1"
    assert isinstance(exc.value.__cause__, httpx.ConnectError)


@pytest.mark.asyncio
async def test_fetch_timeout_is_a_transport_error():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("slow", request=request)

    with pytest.raises(RequestTimeoutError):
        await _fetcher(handler).fetch(1)


@pytest.mark.asyncio
async def test_fetch_decode_failures_are_reported():
    with pytest.raises(ResponseDecodeError):
        await _fetcher(lambda _req: httpx.Response(200, content=b"<html>")).fetch(1)
    with pytest.raises(ResponseDecodeError):
        await _fetcher(lambda _req: httpx.Response(200, json={"status": "enqueued"})).fetch(1)


@pytest.mark.asyncio
async def test_fetch_rejects_negative_uid():
    calls = []
    with pytest.raises(ValueError):
        await _fetcher(lambda req: calls.append(req)).fetch(-1)
    assert calls == []


@pytest.mark.asyncio
async def test_list_tasks_encodes_query():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(
            200,
            json={
                "results": [{"uid": 5, "status": "succeeded", "type": "indexCreation"}],
                "limit": 2,
                "from": 5,
                "next": 4,
                "total": 9,
            },
        )

    query = TasksQuery(
        uids=[5, 4],
        index_uids=["movies"],
        statuses=[TaskStatus.succeeded, "failed"],
        types=[TaskType.index_creation],
        after_enqueued_at=datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc),
        limit=2,
        from_=5,
    )
    page = await _fetcher(handler).list_tasks(query)

    params = seen[0].url.params
    assert params["uids"] == "5,4"
    assert params["indexUids"] == "movies"
    assert params["statuses"] == "succeeded,failed"
    assert params["types"] == "indexCreation"
    assert params["afterEnqueuedAt"] == "2024-01-02T03:04:05Z"
    assert params["limit"] == "2"
    assert params["from"] == "5"
    assert page.total == 9
    assert page.from_ == 5
    assert page.results[0].uid == 5
