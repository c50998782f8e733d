"""Session (refresh token) stores with an invalidate-everything operation per account."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Protocol

import psycopg
from redis import Redis
from redis.exceptions import RedisError

from ..config import Settings
from ..domain.errors import SessionStoreError
from ..repository import AccountRepository
from .tokens import generate_refresh_token, hash_refresh_token

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class SessionRecord:
    token_id: str
    account_id: str
    expires_at: datetime


class SessionStore(Protocol):
    """Contract shared by the session backends."""

    def issue(self, account_id: str, metadata: dict[str, Any] | None = None) -> tuple[str, int]:
        """Create a session and return ``(raw token, ttl seconds)``."""

    def resolve(self, token: str) -> SessionRecord | None:
        """Return the active session for a raw token, or ``None``."""

    def revoke(self, token_id: str) -> None:
        """Revoke a single session."""

    def invalidate_all_sessions(self, account_id: str) -> int:
        """Revoke every session of an account and return how many were active."""


class RepositorySessionStore:
    """Sessions kept in the Postgres ``refresh_tokens`` table."""

    def __init__(self, repository: AccountRepository, *, ttl_seconds: int) -> None:
        self._repository = repository
        self._ttl = ttl_seconds

    def issue(self, account_id: str, metadata: dict[str, Any] | None = None) -> tuple[str, int]:
        token, token_hash = generate_refresh_token()
        self._repository.create_refresh_token(
            account_id=account_id,
            token_hash=token_hash,
            expires_at=datetime.now(timezone.utc) + timedelta(seconds=self._ttl),
            metadata=metadata,
        )
        return token, self._ttl

    def resolve(self, token: str) -> SessionRecord | None:
        record = self._repository.find_refresh_token(hash_refresh_token(token))
        if record is None or record.revoked_at is not None:
            return None
        return SessionRecord(
            token_id=record.token_id,
            account_id=record.account_id,
            expires_at=record.expires_at,
        )

    def revoke(self, token_id: str) -> None:
        self._repository.revoke_refresh_token(token_id)

    def invalidate_all_sessions(self, account_id: str) -> int:
        try:
            return self._repository.revoke_account_refresh_tokens(account_id)
        except psycopg.Error as exc:
            raise SessionStoreError(str(exc)) from exc


class RedisSessionStore:
    """Sessions kept in Redis: one key per token plus a per-account index set."""

    def __init__(self, client: Redis, *, ttl_seconds: int, key_prefix: str = "sessions") -> None:
        """Store the Redis client, session lifetime, and key namespace."""
        self._client = client
        self._ttl = ttl_seconds
        self._key_prefix = key_prefix

    def _token_key(self, token_hash: str) -> str:
        return f"{self._key_prefix}:token:{token_hash}"

    def _account_key(self, account_id: str) -> str:
        return f"{self._key_prefix}:account:{account_id}"

    def issue(self, account_id: str, metadata: dict[str, Any] | None = None) -> tuple[str, int]:
        token, token_hash = generate_refresh_token()
        expires_at = datetime.now(timezone.utc) + timedelta(seconds=self._ttl)
        try:
            pipe = self._client.pipeline()
            pipe.hset(
                self._token_key(token_hash),
                mapping={"account_id": account_id, "expires_at": expires_at.isoformat()},
            )
            pipe.expire(self._token_key(token_hash), self._ttl)
            pipe.sadd(self._account_key(account_id), token_hash)
            pipe.expire(self._account_key(account_id), self._ttl)
            pipe.execute()
        except RedisError as exc:
            raise SessionStoreError(str(exc)) from exc
        return token, self._ttl

    def resolve(self, token: str) -> SessionRecord | None:
        token_hash = hash_refresh_token(token)
        try:
            data = self._client.hgetall(self._token_key(token_hash))
        except RedisError as exc:
            raise SessionStoreError(str(exc)) from exc
        if not data:
            return None
        decoded = {_text(key): _text(value) for key, value in data.items()}
        return SessionRecord(
            token_id=token_hash,
            account_id=decoded["account_id"],
            expires_at=datetime.fromisoformat(decoded["expires_at"]),
        )

    def revoke(self, token_id: str) -> None:
        try:
            account_id = self._client.hget(self._token_key(token_id), "account_id")
            self._client.delete(self._token_key(token_id))
            if account_id is not None:
                self._client.srem(self._account_key(_text(account_id)), token_id)
        except RedisError as exc:
            raise SessionStoreError(str(exc)) from exc

    def invalidate_all_sessions(self, account_id: str) -> int:
        account_key = self._account_key(account_id)
        try:
            token_hashes = [_text(member) for member in self._client.smembers(account_key)]
            keys = [self._token_key(token_hash) for token_hash in token_hashes]
            # Index entries can outlive their token keys; count only live sessions.
            live = self._client.delete(*keys) if keys else 0
            self._client.delete(account_key)
        except RedisError as exc:
            raise SessionStoreError(str(exc)) from exc
        return int(live)


def _text(value: bytes | str) -> str:
    return value.decode("utf-8") if isinstance(value, bytes) else value


def build_session_store(settings: Settings, repository: AccountRepository) -> SessionStore:
    """Instantiate the configured session backend, preferring Redis when available."""
    if settings.session_backend == "redis" and settings.redis_url:
        try:
            client = Redis.from_url(settings.redis_url)
            # ensure connectivity early to fail fast and fall back
            client.ping()
            logger.info("session store configured for redis backend at %s", settings.redis_url)
            return RedisSessionStore(client, ttl_seconds=settings.refresh_ttl_seconds)
        except (RedisError, ValueError) as exc:
            logger.warning("redis session store unavailable, falling back to postgres: %s", exc)

    logger.info("session store using postgres backend")
    return RepositorySessionStore(repository, ttl_seconds=settings.refresh_ttl_seconds)
