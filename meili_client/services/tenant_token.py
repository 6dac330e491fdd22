"""Tenant token issuance: HS256 JWTs scoping search to given indexes/filters."""

from __future__ import annotations

import math
from collections.abc import Callable, Mapping
from datetime import datetime, timezone
from typing import Any

import structlog
from jose import jwt

from meili_client.core.errors import (
    ExpiredTokenError,
    InvalidSearchRulesError,
    KeyMismatchError,
    TenantTokenError,
)
from meili_client.models.token_models import SearchRules, TenantTokenClaims, TenantTokenOptions
from meili_client.services.key_resolver import KeyResolver, resolve_signing_key

log = structlog.get_logger(__name__)

ALGORITHM = "HS256"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    # Naive datetimes are taken as UTC, not local time.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _canonical(value: Any) -> Any:
    # Sorted keys at every level so equal rules always sign to the same token.
    if isinstance(value, Mapping):
        return {k: _canonical(value[k]) for k in sorted(value)}
    if isinstance(value, (list, tuple)):
        return [_canonical(v) for v in value]
    return value


def validate_search_rules(rules: Any) -> SearchRules:
    """Accept `{index_or_*: filter_object | None}` or `[index_uid, ...]`, never empty."""
    if isinstance(rules, Mapping):
        if not rules:
            raise InvalidSearchRulesError("search rules must contain at least one index rule")
        for index, rule in rules.items():
            if not isinstance(index, str) or not index:
                raise InvalidSearchRulesError("search rule keys must be non-empty index uids or '*'")
            if rule is not None and not isinstance(rule, Mapping):
                raise InvalidSearchRulesError(f"search rule for {index!r} must be an object or null")
        return _canonical(rules)
    if isinstance(rules, (list, tuple)):
        if not rules or not all(isinstance(index, str) and index for index in rules):
            raise InvalidSearchRulesError("search rules list must contain non-empty index uids")
        return list(rules)
    raise InvalidSearchRulesError("search rules must be an object or an array of index uids")


def sign_tenant_token(secret: str, claims: TenantTokenClaims) -> str:
    """Sign `claims` with `secret`. Purely local; no validation, no I/O."""
    return jwt.encode(claims.to_payload(), secret, algorithm=ALGORITHM)


class TenantTokenIssuer:
    """Mints tenant tokens after fail-closed validation of every input.

    Only the signing-key fallback may touch the network; with an explicit
    ``TenantTokenOptions.api_key`` issuance is entirely offline.
    """

    def __init__(self, fallback: KeyResolver | None = None, *, now: Callable[[], datetime] = _utcnow) -> None:
        self._fallback = fallback
        self._now = now

    async def issue(
        self,
        api_key_uid: str,
        search_rules: SearchRules,
        options: TenantTokenOptions | None = None,
    ) -> str:
        options = options or TenantTokenOptions()
        try:
            claims, secret = await self._build_claims(api_key_uid, search_rules, options)
        except TenantTokenError as e:
            log.warning("tenant_token_rejected", api_key_uid=api_key_uid, error_kind=e.kind)
            raise
        token = sign_tenant_token(secret, claims)
        log.info(
            "tenant_token_issued",
            api_key_uid=api_key_uid,
            indexes=sorted(claims.search_rules) if isinstance(claims.search_rules, dict) else claims.search_rules,
            exp=claims.exp,
        )
        return token

    async def _build_claims(
        self,
        api_key_uid: str,
        search_rules: SearchRules,
        options: TenantTokenOptions,
    ) -> tuple[TenantTokenClaims, str]:
        rules = validate_search_rules(search_rules)

        if not api_key_uid:
            raise KeyMismatchError("api_key_uid must be the uid of the signing key")

        exp: int | None = None
        if options.expires_at is not None:
            expires_at = _as_utc(options.expires_at)
            if expires_at <= self._now():
                raise ExpiredTokenError("expires_at must be a date in the future")
            # Rounded up so `exp` never lands at or before the current second.
            exp = math.ceil(expires_at.timestamp())

        key = await resolve_signing_key(options.api_key, self._fallback)
        if key.uid is not None and key.uid != api_key_uid:
            raise KeyMismatchError(f"api_key_uid {api_key_uid!r} does not match the signing key's uid")

        return TenantTokenClaims(api_key_uid=api_key_uid, search_rules=rules, exp=exp), key.secret
