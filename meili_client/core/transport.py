"""HTTP transport: one `httpx.AsyncClient` shared by every service of a client."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

import httpx
import structlog
from tenacity import AsyncRetrying, RetryCallState, RetryError, retry_if_exception_type, stop_after_attempt, wait_incrementing

from meili_client.core.errors import (
    ApiError,
    CommunicationError,
    MaxRetriesExceededError,
    NotFoundError,
    RequestTimeoutError,
    ResponseDecodeError,
)

log = structlog.get_logger(__name__)

USER_AGENT = "meili-task-client/0.1.0"


@dataclass(frozen=True)
class RetryPolicy:
    """Retry on gateway-style statuses with linear backoff (attempt * backoff_s)."""

    max_retries: int = 3
    retry_on_status: frozenset[int] = field(default_factory=lambda: frozenset({502, 503, 504}))
    backoff_s: float = 1.0
    disabled: bool = False

    @property
    def enabled(self) -> bool:
        return not self.disabled and self.max_retries > 0


class _RetryableStatus(Exception):
    def __init__(self, response: httpx.Response) -> None:
        super().__init__(f"retryable status {response.status_code}")
        self.response = response


def _json_or_none(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return None


class Transport:
    """Executes `METHOD path -> decoded JSON` against the engine.

    Maps every failure to a `MeiliClientError` subclass; never swallows one.
    """

    def __init__(
        self,
        host: str,
        api_key: str | None = None,
        *,
        timeout: float = 10.0,
        retry: RetryPolicy | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        if not host:
            raise ValueError("Transport host must be set")
        self._host = host.rstrip("/")
        self._api_key = api_key
        self._retry = retry or RetryPolicy()
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(timeout=timeout)

    @property
    def host(self) -> str:
        return self._host

    @property
    def retry_policy(self) -> RetryPolicy:
        return self._retry

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> Transport:
        return self

    async def __aexit__(self, *_exc: object) -> None:
        await self.aclose()

    def _headers(self) -> dict[str, str]:
        headers = {"Accept": "application/json", "User-Agent": USER_AGENT}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"
        return headers

    async def request(
        self,
        method: str,
        path: str,
        *,
        json: Any | None = None,
        params: dict[str, str] | None = None,
        accepted: tuple[int, ...] = (200,),
        function: str = "",
        not_found: type[NotFoundError] = NotFoundError,
    ) -> Any:
        """Send one logical request and return the decoded JSON body (or None)."""
        response = await self._send(method, path, json=json, params=params, function=function)

        if response.status_code not in accepted:
            error_cls: type[ApiError] = not_found if response.status_code == 404 else ApiError
            error = error_cls.from_payload(
                _json_or_none(response),
                status_code=response.status_code,
                method=method,
                path=path,
                function=function,
            )
            log.warning(
                "http_request_failed",
                method=method,
                path=path,
                function=function,
                status_code=response.status_code,
                error_code=error.code,
            )
            raise error

        if not response.content or response.content.strip() == b"null":
            return None
        try:
            return response.json()
        except ValueError as e:
            raise ResponseDecodeError(
                f"unable to decode response body of {method} {path}",
                status_code=response.status_code,
                body=response.text,
            ) from e

    async def _send(
        self,
        method: str,
        path: str,
        *,
        json: Any | None,
        params: dict[str, str] | None,
        function: str,
    ) -> httpx.Response:
        if not self._retry.enabled:
            return await self._send_once(method, path, json=json, params=params, function=function)

        def _log_retry(state: RetryCallState) -> None:
            log.info("http_request_retry", method=method, path=path, attempt=state.attempt_number)

        retrying = AsyncRetrying(
            stop=stop_after_attempt(self._retry.max_retries + 1),
            wait=wait_incrementing(start=self._retry.backoff_s, increment=self._retry.backoff_s),
            retry=retry_if_exception_type(_RetryableStatus),
            before_sleep=_log_retry,
        )
        try:
            async for attempt in retrying:
                with attempt:
                    response = await self._send_once(method, path, json=json, params=params, function=function)
                    if response.status_code in self._retry.retry_on_status:
                        raise _RetryableStatus(response)
        except RetryError as e:
            raise MaxRetriesExceededError(
                f"{method} {path} still failing after {self._retry.max_retries} retries",
                method=method,
                path=path,
                function=function,
            ) from e
        return response

    async def _send_once(
        self,
        method: str,
        path: str,
        *,
        json: Any | None,
        params: dict[str, str] | None,
        function: str,
    ) -> httpx.Response:
        url = f"{self._host}{path}"
        try:
            response = await self._client.request(method, url, json=json, params=params or None, headers=self._headers())
        except httpx.TimeoutException as e:
            raise RequestTimeoutError(
                f"{method} {path} timed out", method=method, path=path, function=function
            ) from e
        except httpx.TransportError as e:
            raise CommunicationError(
                f"unable to execute {method} {path}: {e}", method=method, path=path, function=function
            ) from e
        log.debug("http_request", method=method, path=path, status_code=response.status_code)
        return response
