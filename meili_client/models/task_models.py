"""Pydantic models for engine tasks, task handles and task queries."""

from __future__ import annotations

import re
from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

# The engine emits RFC 3339 timestamps with nanosecond precision.
_FRACTION_RE = re.compile(r"(\.\d{6})\d+")


def _trim_fraction(value: Any) -> Any:
    if isinstance(value, str):
        return _FRACTION_RE.sub(r"\1", value)
    return value


EngineDatetime = Annotated[datetime, BeforeValidator(_trim_fraction)]


def format_query_date(value: datetime) -> str:
    """Format a datetime the way task query filters expect it."""
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc)
    return value.strftime("%Y-%m-%dT%H:%M:%SZ")


class EngineModel(BaseModel):
    """Base for models exchanged with the engine (camelCase on the wire)."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class TaskStatus(str, Enum):
    unknown = "unknown"
    enqueued = "enqueued"
    processing = "processing"
    succeeded = "succeeded"
    failed = "failed"
    canceled = "canceled"

    @property
    def is_terminal(self) -> bool:
        # Only queued or running tasks can still change; anything else ends a wait.
        return self not in PENDING_STATUSES


PENDING_STATUSES = frozenset({TaskStatus.enqueued, TaskStatus.processing})


class TaskType(str, Enum):
    """Known operation kinds; `Task.type` itself stays an opaque string."""

    index_creation = "indexCreation"
    index_update = "indexUpdate"
    index_deletion = "indexDeletion"
    index_swap = "indexSwap"
    document_addition_or_update = "documentAdditionOrUpdate"
    document_deletion = "documentDeletion"
    settings_update = "settingsUpdate"
    dump_creation = "dumpCreation"
    task_cancelation = "taskCancelation"
    task_deletion = "taskDeletion"
    snapshot_creation = "snapshotCreation"
    export = "export"


class TaskError(EngineModel):
    message: str = ""
    code: str | None = None
    type: str | None = None
    link: str | None = None


class TaskInfo(EngineModel):
    """Handle returned immediately by a mutating call."""

    model_config = ConfigDict(frozen=True)

    task_uid: int = Field(..., ge=0)
    index_uid: str | None = None
    status: TaskStatus = TaskStatus.enqueued
    type: str = ""
    enqueued_at: EngineDatetime | None = None


class Task(EngineModel):
    """Point-in-time read of a task's state."""

    uid: int = Field(..., ge=0)
    index_uid: str | None = None
    batch_uid: int | None = None
    status: TaskStatus
    type: str = ""
    canceled_by: int | None = None
    details: dict[str, Any] | None = None
    error: TaskError | None = None
    duration: str | None = None
    enqueued_at: EngineDatetime | None = None
    started_at: EngineDatetime | None = None
    finished_at: EngineDatetime | None = None
    custom_metadata: str | None = None

    @field_validator("status", mode="before")
    @classmethod
    def _coerce_status(cls, value: Any) -> Any:
        # Don't fail a whole poll because the engine grew a new status.
        if isinstance(value, str) and value not in {s.value for s in TaskStatus}:
            return TaskStatus.unknown
        return value

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal


class TaskResults(EngineModel):
    results: list[Task] = Field(default_factory=list)
    limit: int | None = None
    from_: int | None = Field(default=None, alias="from")
    next: int | None = None
    total: int | None = None


class TasksQuery(BaseModel):
    """Filters for `GET /tasks`; serialized into query parameters."""

    uids: list[int] = Field(default_factory=list)
    index_uids: list[str] = Field(default_factory=list)
    statuses: list[TaskStatus | str] = Field(default_factory=list)
    types: list[TaskType | str] = Field(default_factory=list)
    canceled_by: list[int] = Field(default_factory=list)
    before_enqueued_at: datetime | None = None
    after_enqueued_at: datetime | None = None
    before_started_at: datetime | None = None
    after_started_at: datetime | None = None
    before_finished_at: datetime | None = None
    after_finished_at: datetime | None = None
    limit: int | None = Field(default=None, ge=0)
    from_: int | None = Field(default=None, ge=0)

    def to_params(self) -> dict[str, str]:
        params: dict[str, str] = {}
        if self.limit:
            params["limit"] = str(self.limit)
        if self.from_:
            params["from"] = str(self.from_)
        lists = {
            "uids": self.uids,
            "indexUids": self.index_uids,
            "statuses": [getattr(s, "value", s) for s in self.statuses],
            "types": [getattr(t, "value", t) for t in self.types],
            "canceledBy": self.canceled_by,
        }
        for name, values in lists.items():
            if values:
                params[name] = ",".join(str(v) for v in values)
        dates = {
            "beforeEnqueuedAt": self.before_enqueued_at,
            "afterEnqueuedAt": self.after_enqueued_at,
            "beforeStartedAt": self.before_started_at,
            "afterStartedAt": self.after_started_at,
            "beforeFinishedAt": self.before_finished_at,
            "afterFinishedAt": self.after_finished_at,
        }
        for name, value in dates.items():
            if value is not None:
                params[name] = format_query_date(value)
        return params

    def has_filter(self) -> bool:
        params = self.to_params()
        params.pop("limit", None)
        params.pop("from", None)
        return bool(params)


class CancelTasksQuery(TasksQuery):
    """Filters accepted by `POST /tasks/cancel` (no pagination, no finish bounds)."""

    def to_params(self) -> dict[str, str]:
        params = super().to_params()
        for name in ("limit", "from", "canceledBy", "beforeFinishedAt", "afterFinishedAt"):
            params.pop(name, None)
        return params


class DeleteTasksQuery(TasksQuery):
    """Filters accepted by `DELETE /tasks` (no pagination)."""

    def to_params(self) -> dict[str, str]:
        params = super().to_params()
        params.pop("limit", None)
        params.pop("from", None)
        return params
