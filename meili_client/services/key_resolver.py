"""Signing key resolution for tenant tokens.

The key whose secret signs a tenant token is either handed in explicitly or
found by an explicit fallback strategy; there is no implicit global lookup.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Protocol, runtime_checkable

import structlog
from pydantic import ValidationError

from meili_client.core.errors import KeyNotFoundError, MissingKeyError, ResponseDecodeError
from meili_client.core.transport import Transport
from meili_client.models.key_models import Key, KeysQuery, KeysResults

log = structlog.get_logger(__name__)

DEFAULT_ADMIN_KEY_NAME = "Default Admin API Key"


@dataclass(frozen=True)
class ResolvedKey:
    """Signing secret plus the uid of the key it belongs to (when known)."""

    secret: str = field(repr=False)
    uid: str | None = None


@runtime_checkable
class KeyResolver(Protocol):
    async def resolve(self) -> ResolvedKey:
        raise NotImplementedError


class KeyFetcher:
    """Reads API keys from the engine (requires a master or admin key)."""

    def __init__(self, transport: Transport) -> None:
        self._transport = transport

    async def list_keys(self, query: KeysQuery | None = None) -> KeysResults:
        params = query.to_params() if query is not None else {}
        payload = await self._transport.request("GET", "/keys", params=params, function="GetKeys")
        try:
            return KeysResults.model_validate(payload)
        except ValidationError as e:
            raise ResponseDecodeError("unexpected KeysResults payload from GET /keys", status_code=200, body="<redacted>") from e

    async def get_key(self, key_or_uid: str) -> Key:
        if not key_or_uid:
            raise ValueError("key_or_uid must not be empty")
        payload = await self._transport.request(
            "GET", f"/keys/{key_or_uid}", function="GetKey", not_found=KeyNotFoundError
        )
        try:
            return Key.model_validate(payload)
        except ValidationError as e:
            raise ResponseDecodeError("unexpected Key payload from GET /keys/{uid}", status_code=200, body="<redacted>") from e


class ExplicitKeyResolver:
    """Uses the caller's secret as-is; performs no lookup."""

    def __init__(self, secret: str, uid: str | None = None) -> None:
        if not secret:
            raise MissingKeyError("an explicit signing key must not be empty")
        self._key = ResolvedKey(secret=secret, uid=uid)

    async def resolve(self) -> ResolvedKey:
        return self._key


class DefaultAdminKeyResolver:
    """Fallback strategy: scan `GET /keys` for the default administrative key."""

    def __init__(self, keys: KeyFetcher, *, name: str = DEFAULT_ADMIN_KEY_NAME, page_size: int = 50) -> None:
        self._keys = keys
        self._name = name
        self._page_size = page_size

    async def resolve(self) -> ResolvedKey:
        offset = 0
        while True:
            page = await self._keys.list_keys(KeysQuery(limit=self._page_size, offset=offset))
            for key in page.results:
                if key.name and self._name in key.name:
                    log.info("signing_key_resolved", strategy="default_admin", key_uid=key.uid)
                    return ResolvedKey(secret=key.key, uid=key.uid)
            offset += len(page.results)
            if not page.results or offset >= page.total:
                break
        raise MissingKeyError(f"no API key named like {self._name!r} is available to sign tenant tokens")


async def resolve_signing_key(explicit_key: str | None, fallback: KeyResolver | None) -> ResolvedKey:
    """Explicit secret wins; otherwise defer to `fallback`; never go unsigned."""
    if explicit_key:
        return await ExplicitKeyResolver(explicit_key).resolve()
    if fallback is None:
        raise MissingKeyError("no signing key given and no fallback key resolver configured")
    return await fallback.resolve()
