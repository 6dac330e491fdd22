"""`MeiliClient`: task-producing calls, task tracking and tenant tokens in one place."""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from typing import Any

import httpx
import structlog
from pydantic import ValidationError

from meili_client.core.cancellation import CancellationToken
from meili_client.core.errors import ResponseDecodeError
from meili_client.core.logging import configure_logging
from meili_client.core.settings import Settings, get_settings
from meili_client.core.transport import RetryPolicy, Transport
from meili_client.models.key_models import Key, KeysQuery, KeysResults
from meili_client.models.task_models import (
    CancelTasksQuery,
    DeleteTasksQuery,
    Task,
    TaskInfo,
    TaskResults,
    TasksQuery,
)
from meili_client.models.token_models import SearchRules, TenantTokenOptions
from meili_client.services.key_resolver import DEFAULT_ADMIN_KEY_NAME, DefaultAdminKeyResolver, KeyFetcher
from meili_client.services.task_fetcher import TaskFetcher
from meili_client.services.task_waiter import DEFAULT_POLL_INTERVAL_S, TaskCheck, TaskRef, TaskWaiter, ensure_succeeded
from meili_client.services.tenant_token import TenantTokenIssuer

log = structlog.get_logger(__name__)


def _task_info(payload: Any, *, function: str) -> TaskInfo:
    try:
        return TaskInfo.model_validate(payload)
    except ValidationError as e:
        raise ResponseDecodeError(f"{function}: unexpected task handle payload", status_code=202, body=str(payload)) from e


class MeiliClient:
    """Async client for the engine's task and key endpoints.

    Usage::

        async with MeiliClient("http://localhost:7700", "masterKey") as client:
            info = await client.add_documents("movies", docs)
            task = await client.wait_for_task(info, timeout=30)
    """

    def __init__(
        self,
        host: str,
        api_key: str | None = None,
        *,
        timeout: float = 10.0,
        retry: RetryPolicy | None = None,
        http_client: httpx.AsyncClient | None = None,
        poll_interval: float = DEFAULT_POLL_INTERVAL_S,
        wait_timeout: float | None = None,
        admin_key_name: str = DEFAULT_ADMIN_KEY_NAME,
    ) -> None:
        self.transport = Transport(host, api_key, timeout=timeout, retry=retry, http_client=http_client)
        self.tasks = TaskFetcher(self.transport)
        self.keys = KeyFetcher(self.transport)
        self.waiter = TaskWaiter(self.tasks, default_interval=poll_interval, default_timeout=wait_timeout)
        self.tokens = TenantTokenIssuer(DefaultAdminKeyResolver(self.keys, name=admin_key_name))

    @classmethod
    def from_settings(cls, settings: Settings | None = None, **kwargs: Any) -> MeiliClient:
        """Build a client from env/.env settings and configure structured logging."""
        settings = settings or get_settings()
        configure_logging(settings.LOG_LEVEL)
        retry = RetryPolicy(
            max_retries=settings.HTTP_MAX_RETRIES,
            retry_on_status=frozenset(settings.HTTP_RETRY_ON_STATUS),
            disabled=settings.HTTP_DISABLE_RETRY,
        )
        options: dict[str, Any] = {
            "timeout": settings.HTTP_TIMEOUT_S,
            "retry": retry,
            "poll_interval": settings.TASK_POLL_INTERVAL_MS / 1000.0,
            "wait_timeout": settings.TASK_WAIT_TIMEOUT_S,
            "admin_key_name": settings.DEFAULT_ADMIN_KEY_NAME,
        }
        # Explicit keyword arguments win over the environment.
        options.update(kwargs)
        log.info("client_configured", host=settings.MEILI_URL, retry_enabled=options["retry"].enabled)
        return cls(settings.MEILI_URL, settings.MEILI_API_KEY, **options)

    async def aclose(self) -> None:
        await self.transport.aclose()

    async def __aenter__(self) -> MeiliClient:
        return self

    async def __aexit__(self, *_exc: object) -> None:
        await self.aclose()

    # -------------------------------------------------------------------------
    # Tasks
    # -------------------------------------------------------------------------

    async def get_task(self, task_uid: int) -> Task:
        return await self.tasks.fetch(task_uid)

    async def get_tasks(self, query: TasksQuery | None = None) -> TaskResults:
        return await self.tasks.list_tasks(query)

    async def cancel_tasks(self, query: CancelTasksQuery) -> TaskInfo:
        """Cancel enqueued/processing tasks matching `query` (at least one filter)."""
        if not query.has_filter():
            raise ValueError("cancel_tasks needs at least one filter")
        payload = await self.transport.request(
            "POST", "/tasks/cancel", params=query.to_params(), accepted=(202,), function="CancelTasks"
        )
        return _task_info(payload, function="CancelTasks")

    async def delete_tasks(self, query: DeleteTasksQuery) -> TaskInfo:
        """Delete finished tasks matching `query` (at least one filter)."""
        if not query.has_filter():
            raise ValueError("delete_tasks needs at least one filter")
        payload = await self.transport.request(
            "DELETE", "/tasks", params=query.to_params(), accepted=(202,), function="DeleteTasks"
        )
        return _task_info(payload, function="DeleteTasks")

    async def wait_for_task(
        self,
        task: TaskRef,
        interval: float | None = None,
        *,
        timeout: float | None = None,
        cancel_token: CancellationToken | None = None,
    ) -> Task:
        return await self.waiter.wait(task, interval, timeout=timeout, cancel_token=cancel_token)

    async def wait_for_tasks(
        self,
        tasks: Iterable[TaskRef],
        interval: float | None = None,
        *,
        timeout: float | None = None,
        cancel_token: CancellationToken | None = None,
        check: TaskCheck | None = ensure_succeeded,
    ) -> list[Task]:
        return await self.waiter.wait_all(tasks, interval, timeout=timeout, cancel_token=cancel_token, check=check)

    # -------------------------------------------------------------------------
    # Keys and tenant tokens
    # -------------------------------------------------------------------------

    async def get_keys(self, query: KeysQuery | None = None) -> KeysResults:
        return await self.keys.list_keys(query)

    async def get_key(self, key_or_uid: str) -> Key:
        return await self.keys.get_key(key_or_uid)

    async def generate_tenant_token(
        self,
        api_key_uid: str,
        search_rules: SearchRules,
        options: TenantTokenOptions | None = None,
    ) -> str:
        """Mint a tenant token; without `options.api_key` the default admin key signs it."""
        return await self.tokens.issue(api_key_uid, search_rules, options)

    # -------------------------------------------------------------------------
    # Task-producing calls
    # -------------------------------------------------------------------------

    async def create_index(self, index_uid: str, primary_key: str | None = None) -> TaskInfo:
        body: dict[str, Any] = {"uid": index_uid}
        if primary_key:
            body["primaryKey"] = primary_key
        payload = await self.transport.request(
            "POST", "/indexes", json=body, accepted=(202,), function="CreateIndex"
        )
        return _task_info(payload, function="CreateIndex")

    async def delete_index(self, index_uid: str) -> TaskInfo:
        payload = await self.transport.request(
            "DELETE", f"/indexes/{index_uid}", accepted=(202,), function="DeleteIndex"
        )
        return _task_info(payload, function="DeleteIndex")

    async def add_documents(
        self,
        index_uid: str,
        documents: Sequence[Mapping[str, Any]],
        *,
        primary_key: str | None = None,
        custom_metadata: str | None = None,
    ) -> TaskInfo:
        params: dict[str, str] = {}
        if primary_key:
            params["primaryKey"] = primary_key
        if custom_metadata is not None:
            params["customMetadata"] = custom_metadata
        payload = await self.transport.request(
            "POST",
            f"/indexes/{index_uid}/documents",
            json=[dict(doc) for doc in documents],
            params=params,
            accepted=(202,),
            function="AddDocuments",
        )
        return _task_info(payload, function="AddDocuments")

    async def add_documents_in_batches(
        self,
        index_uid: str,
        documents: Sequence[Mapping[str, Any]],
        batch_size: int,
        *,
        primary_key: str | None = None,
    ) -> list[TaskInfo]:
        """Submit `documents` in chunks; wait on the result with `wait_for_tasks` to keep order."""
        if batch_size <= 0:
            raise ValueError("batch_size must be positive")
        handles: list[TaskInfo] = []
        for start in range(0, len(documents), batch_size):
            chunk = documents[start : start + batch_size]
            handles.append(await self.add_documents(index_uid, chunk, primary_key=primary_key))
        return handles

    async def update_settings(self, index_uid: str, settings: Mapping[str, Any]) -> TaskInfo:
        payload = await self.transport.request(
            "PATCH",
            f"/indexes/{index_uid}/settings",
            json=dict(settings),
            accepted=(202,),
            function="UpdateSettings",
        )
        return _task_info(payload, function="UpdateSettings")

    async def swap_indexes(self, pairs: Iterable[tuple[str, str]]) -> TaskInfo:
        body = [{"indexes": [first, second]} for first, second in pairs]
        if not body:
            raise ValueError("swap_indexes needs at least one pair")
        payload = await self.transport.request(
            "POST", "/swap-indexes", json=body, accepted=(202,), function="SwapIndexes"
        )
        return _task_info(payload, function="SwapIndexes")
