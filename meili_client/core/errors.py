"""Exception hierarchy for the task tracking and tenant token client.

Every error raised by this package derives from `MeiliClientError` and carries a
``kind`` string so callers (and logs) can tell "we gave up waiting" apart from
"the engine reported a failure" without isinstance chains.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from meili_client.models.task_models import Task, TaskError


class MeiliClientError(Exception):
    """Base error for all client failures."""

    kind: str = "unknown"


# =============================================================================
# Transport / API errors
# =============================================================================


class TransportError(MeiliClientError):
    """The request could not be executed (network, TLS, timeout...)."""

    kind = "transport"

    def __init__(self, message: str, *, method: str = "", path: str = "", function: str = "") -> None:
        super().__init__(message)
        self.method = method
        self.path = path
        self.function = function


class CommunicationError(TransportError):
    kind = "communication"


class RequestTimeoutError(TransportError):
    kind = "request_timeout"


class MaxRetriesExceededError(TransportError):
    kind = "max_retries_exceeded"


class ResponseDecodeError(MeiliClientError):
    """The engine answered but the body is not the JSON we expected."""

    kind = "decode"

    def __init__(self, message: str, *, status_code: int, body: str) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class ApiError(MeiliClientError):
    """Unaccepted status code returned by the engine."""

    kind = "api"

    def __init__(
        self,
        message: str,
        *,
        status_code: int,
        method: str = "",
        path: str = "",
        function: str = "",
        code: str | None = None,
        error_type: str | None = None,
        link: str | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.method = method
        self.path = path
        self.function = function
        self.code = code
        self.error_type = error_type
        self.link = link

    @classmethod
    def from_payload(cls, payload: Any, **kwargs: Any) -> ApiError:
        """Build the error from the engine's ``{message, code, type, link}`` body."""
        status_code = kwargs["status_code"]
        if isinstance(payload, dict) and payload.get("code"):
            message = (
                f"unaccepted status code {status_code}: {payload.get('message')} "
                f"(code={payload.get('code')}, type={payload.get('type')})"
            )
            return cls(
                message,
                code=payload.get("code"),
                error_type=payload.get("type"),
                link=payload.get("link"),
                **kwargs,
            )
        return cls(f"unaccepted status code {status_code}", **kwargs)


class NotFoundError(ApiError):
    kind = "not_found"


class TaskNotFoundError(NotFoundError):
    kind = "task_not_found"


class KeyNotFoundError(NotFoundError):
    kind = "key_not_found"


# =============================================================================
# Task waiting
# =============================================================================


class TaskWaitError(MeiliClientError):
    """The wait was aborted before a terminal status was observed."""

    def __init__(self, message: str, *, task_uid: int) -> None:
        super().__init__(message)
        self.task_uid = task_uid


class TaskTimeoutError(TaskWaitError, TimeoutError):
    kind = "timeout"

    def __init__(self, task_uid: int, timeout: float) -> None:
        super().__init__(f"task {task_uid} did not finish within {timeout:.3f}s", task_uid=task_uid)
        self.timeout = timeout


class TaskCanceledError(TaskWaitError):
    kind = "canceled"

    def __init__(self, task_uid: int) -> None:
        super().__init__(f"wait for task {task_uid} was canceled by the caller", task_uid=task_uid)


class TaskFailedError(MeiliClientError):
    """A terminal snapshot was rejected by a success assertion."""

    kind = "task_failed"

    def __init__(self, task: Task) -> None:
        detail = task.error.message if task.error is not None else None
        message = f"task {task.uid} ({task.type}) ended with status {task.status.value}"
        if detail:
            message += f": {detail}"
        super().__init__(message)
        self.task = task

    @property
    def task_uid(self) -> int:
        return self.task.uid

    @property
    def error(self) -> TaskError | None:
        return self.task.error


# =============================================================================
# Tenant tokens
# =============================================================================


class TenantTokenError(MeiliClientError):
    """Local validation failure; no token was signed."""


class InvalidSearchRulesError(TenantTokenError):
    kind = "invalid_search_rules"


class KeyMismatchError(TenantTokenError):
    kind = "key_mismatch"


class ExpiredTokenError(TenantTokenError):
    kind = "expired_token"


class MissingKeyError(TenantTokenError):
    kind = "missing_key"
