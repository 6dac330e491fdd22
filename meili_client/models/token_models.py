"""Pydantic models for tenant token claims and issuance options."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

# Index uid (or "*") -> filter object / null, or a plain list of index uids.
SearchRules = dict[str, Any] | list[str]


class TenantTokenClaims(BaseModel):
    """Payload embedded in a tenant token before signing."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    api_key_uid: str = Field(..., min_length=1, alias="apiKeyUid")
    search_rules: SearchRules = Field(..., alias="searchRules")
    exp: int | None = None

    def to_payload(self) -> dict[str, Any]:
        """Wire payload; `exp` is omitted entirely when the token never expires."""
        payload: dict[str, Any] = {"apiKeyUid": self.api_key_uid, "searchRules": self.search_rules}
        if self.exp is not None:
            payload["exp"] = self.exp
        return payload


class TenantTokenOptions(BaseModel):
    """Optional knobs for `TenantTokenIssuer.issue`."""

    model_config = ConfigDict(frozen=True)

    # Signing secret (the key's value, not its uid). Falls back to the issuer's resolver.
    api_key: str | None = Field(default=None, repr=False)
    expires_at: datetime | None = None
