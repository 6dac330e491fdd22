"""Pydantic models for API keys listed by the engine."""

from __future__ import annotations

from pydantic import BaseModel, Field

from meili_client.models.task_models import EngineDatetime, EngineModel


class Key(EngineModel):
    uid: str
    key: str = Field(..., repr=False)
    name: str | None = None
    description: str | None = None
    actions: list[str] = Field(default_factory=list)
    indexes: list[str] = Field(default_factory=list)
    expires_at: EngineDatetime | None = None
    created_at: EngineDatetime | None = None
    updated_at: EngineDatetime | None = None


class KeysResults(EngineModel):
    results: list[Key] = Field(default_factory=list)
    offset: int = 0
    limit: int = 20
    total: int = 0


class KeysQuery(BaseModel):
    limit: int | None = Field(default=None, ge=1)
    offset: int | None = Field(default=None, ge=0)

    def to_params(self) -> dict[str, str]:
        params: dict[str, str] = {}
        if self.limit:
            params["limit"] = str(self.limit)
        if self.offset:
            params["offset"] = str(self.offset)
        return params
