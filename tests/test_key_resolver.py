"""Signing key lookup through `GET /keys`."""

from __future__ import annotations

import httpx
import pytest

from meili_client.core.errors import KeyNotFoundError, MissingKeyError
from meili_client.core.transport import RetryPolicy, Transport
from meili_client.services.key_resolver import (
    DefaultAdminKeyResolver,
    ExplicitKeyResolver,
    KeyFetcher,
    resolve_signing_key,
)

ADMIN_UID = "6062abda-a5aa-4414-ac91-ecd7944c0f8d"


def _key(uid: str, name: str | None, key: str = "secret") -> dict:
    return {"uid": uid, "key": key, "name": name, "actions": ["*"], "indexes": ["*"], "expiresAt": None}


def _keys(handler) -> KeyFetcher:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return KeyFetcher(Transport("http://meili.test", "masterKey", http_client=client, retry=RetryPolicy(disabled=True)))


@pytest.mark.asyncio
async def test_default_admin_key_found_on_second_page():
    offsets = []

    def handler(request: httpx.Request) -> httpx.Response:
        offset = int(request.url.params.get("offset", "0"))
        offsets.append(offset)
        pages = {
            0: [_key("a0e1f6a4-1a53-4c3b-8f55-2c8a0b2f0c11", "Default Search API Key")],
            1: [_key(ADMIN_UID, "Default Admin API Key", key="admin-secret")],
        }
        return httpx.Response(200, json={"results": pages[offset], "offset": offset, "limit": 1, "total": 2})

    resolver = DefaultAdminKeyResolver(_keys(handler), page_size=1)
    key = await resolver.resolve()

    assert offsets == [0, 1]
    assert key.uid == ADMIN_UID
    assert key.secret == "admin-secret"
    assert "admin-secret" not in repr(key)


@pytest.mark.asyncio
async def test_default_admin_key_missing_fails_closed():
    def handler(_request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200,
            json={"results": [_key("a0e1f6a4-1a53-4c3b-8f55-2c8a0b2f0c11", "ci")], "offset": 0, "limit": 50, "total": 1},
        )

    with pytest.raises(MissingKeyError):
        await DefaultAdminKeyResolver(_keys(handler)).resolve()


@pytest.mark.asyncio
async def test_get_key_unknown_raises_key_not_found():
    def handler(_request: httpx.Request) -> httpx.Response:
        return httpx.Response(404, json={"message": "missing", "code": "api_key_not_found", "type": "invalid_request"})

    with pytest.raises(KeyNotFoundError) as exc:
        await _keys(handler).get_key(ADMIN_UID)
    assert exc.value.code == "api_key_not_found"


@pytest.mark.asyncio
async def test_get_key_decodes_payload():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request.url.path)
        return httpx.Response(200, json={**_key(ADMIN_UID, "Default Admin API Key"), "createdAt": "2024-01-01T00:00:00Z"})

    key = await _keys(handler).get_key(ADMIN_UID)
    assert seen == [f"/keys/{ADMIN_UID}"]
    assert key.name == "Default Admin API Key"
    assert key.created_at is not None


@pytest.mark.asyncio
async def test_explicit_key_wins_over_fallback():
    class ExplodingResolver:
        async def resolve(self):
            raise AssertionError("fallback must not be consulted")

    key = await resolve_signing_key("given-secret", ExplodingResolver())
    assert key.secret == "given-secret"
    assert key.uid is None


@pytest.mark.asyncio
async def test_explicit_resolver_keeps_uid():
    key = await ExplicitKeyResolver("s3cret", uid=ADMIN_UID).resolve()
    assert key.uid == ADMIN_UID
