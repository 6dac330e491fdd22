"""Task snapshot reads: `GET /tasks/{uid}` and `GET /tasks`."""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable

from pydantic import ValidationError

from meili_client.core.errors import ResponseDecodeError, TaskNotFoundError
from meili_client.core.transport import Transport
from meili_client.models.task_models import Task, TaskResults, TasksQuery


@runtime_checkable
class SnapshotFetcher(Protocol):
    """Anything able to read the latest snapshot of a task."""

    async def fetch(self, task_uid: int) -> Task:
        raise NotImplementedError


def _decode(model: type[Task] | type[TaskResults], payload: Any, *, path: str) -> Any:
    try:
        return model.model_validate(payload)
    except ValidationError as e:
        raise ResponseDecodeError(
            f"unexpected {model.__name__} payload from GET {path}: {e.error_count()} error(s)",
            status_code=200,
            body=str(payload),
        ) from e


class TaskFetcher:
    """Performs exactly one read per call; no retry, no caching."""

    def __init__(self, transport: Transport) -> None:
        self._transport = transport

    async def fetch(self, task_uid: int) -> Task:
        if task_uid < 0:
            raise ValueError("task uid must be non-negative")
        path = f"/tasks/{task_uid}"
        payload = await self._transport.request("GET", path, function="GetTask", not_found=TaskNotFoundError)
        return _decode(Task, payload, path=path)

    async def list_tasks(self, query: TasksQuery | None = None) -> TaskResults:
        params = query.to_params() if query is not None else {}
        payload = await self._transport.request("GET", "/tasks", params=params, function="GetTasks")
        return _decode(TaskResults, payload, path="/tasks")
