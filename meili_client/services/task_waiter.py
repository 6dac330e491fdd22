"""Task waiting: poll a task snapshot until it reaches a terminal status.

The waiter turns the engine's "task enqueued" answer into a blocking
"task finished" contract:

- the first fetch happens immediately, so a task that is already done is
  returned without sleeping (even when the interval exceeds the timeout);
- polling uses a fixed interval, never a backoff;
- the caller's `CancellationToken` is checked before every fetch and raced
  against every poll sleep, and sleeps are clipped to the remaining deadline;
- a `failed`/`canceled` snapshot is a normal return value, only `wait_all`
  escalates it (through its `check` callable).

A waiter holds no per-wait state, so one instance can serve many concurrent
waits on different tasks.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable, Iterable

import structlog

from meili_client.core.cancellation import CancellationToken
from meili_client.core.errors import MeiliClientError, TaskCanceledError, TaskFailedError, TaskTimeoutError
from meili_client.models.task_models import Task, TaskInfo, TaskStatus
from meili_client.services.task_fetcher import SnapshotFetcher

log = structlog.get_logger(__name__)

DEFAULT_POLL_INTERVAL_S = 0.05

TaskCheck = Callable[[Task], None]
TaskRef = int | TaskInfo


def ensure_succeeded(task: Task) -> None:
    """Default batch assertion: anything but `succeeded` is a failure."""
    if task.status is not TaskStatus.succeeded:
        raise TaskFailedError(task)


def _uid_of(task: TaskRef) -> int:
    return task.task_uid if isinstance(task, TaskInfo) else int(task)


class TaskWaiter:
    def __init__(
        self,
        fetcher: SnapshotFetcher,
        *,
        default_interval: float = DEFAULT_POLL_INTERVAL_S,
        default_timeout: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if default_interval <= 0:
            raise ValueError("default_interval must be positive")
        self._fetcher = fetcher
        self._default_interval = default_interval
        self._default_timeout = default_timeout
        self._clock = clock

    def _interval(self, interval: float | None) -> float:
        if not interval:
            return self._default_interval
        if interval < 0:
            raise ValueError("interval must not be negative")
        return interval

    def _deadline(self, timeout: float | None) -> tuple[float | None, float | None]:
        if timeout is None:
            timeout = self._default_timeout
        if timeout is None:
            return None, None
        return timeout, self._clock() + timeout

    async def wait(
        self,
        task: TaskRef,
        interval: float | None = None,
        *,
        timeout: float | None = None,
        cancel_token: CancellationToken | None = None,
    ) -> Task:
        """Block until `task` is terminal and return that snapshot.

        Raises `TaskTimeoutError` once `timeout` seconds elapsed, or
        `TaskCanceledError` once `cancel_token` fires; the last non-terminal
        snapshot is dropped in both cases. Fetch errors propagate untouched.
        """
        timeout, deadline = self._deadline(timeout)
        return await self._wait(_uid_of(task), self._interval(interval), timeout, deadline, cancel_token)

    async def wait_all(
        self,
        tasks: Iterable[TaskRef],
        interval: float | None = None,
        *,
        timeout: float | None = None,
        cancel_token: CancellationToken | None = None,
        check: TaskCheck | None = ensure_succeeded,
    ) -> list[Task]:
        """Wait for each task in order, stopping at the first failure.

        `timeout` bounds the whole batch. `check` runs on every terminal
        snapshot and may raise to reject it; pass None to accept any status.
        Tasks after the failing one are never fetched.
        """
        poll = self._interval(interval)
        timeout, deadline = self._deadline(timeout)
        done: list[Task] = []
        for ref in tasks:
            task_uid = _uid_of(ref)
            try:
                snapshot = await self._wait(task_uid, poll, timeout, deadline, cancel_token)
                if check is not None:
                    check(snapshot)
            except MeiliClientError as e:
                log.warning("task_batch_failed", task_uid=task_uid, completed=len(done), error_kind=e.kind)
                raise
            done.append(snapshot)
        return done

    async def _wait(
        self,
        task_uid: int,
        poll: float,
        timeout: float | None,
        deadline: float | None,
        cancel_token: CancellationToken | None,
    ) -> Task:
        log.debug("task_wait_started", task_uid=task_uid, interval_s=poll, timeout_s=timeout)
        polls = 0
        while True:
            if cancel_token is not None and cancel_token.cancelled:
                log.info("task_wait_canceled", task_uid=task_uid, polls=polls)
                raise TaskCanceledError(task_uid)
            # The deadline is only checked once something was fetched.
            if polls and deadline is not None and self._clock() >= deadline:
                raise self._timed_out(task_uid, timeout, polls)

            snapshot = await self._fetcher.fetch(task_uid)
            polls += 1
            if snapshot.is_terminal:
                log.info("task_wait_completed", task_uid=task_uid, status=snapshot.status.value, polls=polls)
                return snapshot

            delay = poll
            if deadline is not None:
                remaining = deadline - self._clock()
                if remaining <= 0:
                    raise self._timed_out(task_uid, timeout, polls)
                delay = min(delay, remaining)
            if await self._sleep(delay, cancel_token):
                log.info("task_wait_canceled", task_uid=task_uid, polls=polls)
                raise TaskCanceledError(task_uid)

    @staticmethod
    async def _sleep(delay: float, cancel_token: CancellationToken | None) -> bool:
        if cancel_token is None:
            await asyncio.sleep(delay)
            return False
        return await cancel_token.sleep(delay)

    @staticmethod
    def _timed_out(task_uid: int, timeout: float | None, polls: int) -> TaskTimeoutError:
        log.warning("task_wait_timeout", task_uid=task_uid, timeout_s=timeout, polls=polls)
        return TaskTimeoutError(task_uid, timeout or 0.0)
