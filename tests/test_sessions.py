"""Tests for the session stores and backend selection."""

from __future__ import annotations

from datetime import datetime, timezone

import fakeredis
import pytest

from login_disable.config import Settings
from login_disable.security.sessions import (
    RedisSessionStore,
    RepositorySessionStore,
    build_session_store,
)
from login_disable.security.tokens import hash_refresh_token


@pytest.fixture()
def redis_client() -> fakeredis.FakeStrictRedis:
    client = fakeredis.FakeStrictRedis()
    client.flushall()
    return client


@pytest.fixture()
def redis_store(redis_client) -> RedisSessionStore:
    return RedisSessionStore(redis_client, ttl_seconds=60, key_prefix="test")


def test_redis_store_issues_and_resolves(redis_store):
    token, ttl = redis_store.issue("2")

    record = redis_store.resolve(token)
    assert ttl == 60
    assert record is not None
    assert record.account_id == "2"
    assert record.token_id == hash_refresh_token(token)
    assert record.expires_at > datetime.now(timezone.utc)


def test_redis_store_unknown_token(redis_store):
    assert redis_store.resolve("not-a-token") is None


def test_redis_store_revokes_single_session(redis_store):
    first, _ = redis_store.issue("2")
    second, _ = redis_store.issue("2")

    redis_store.revoke(redis_store.resolve(first).token_id)

    assert redis_store.resolve(first) is None
    assert redis_store.resolve(second) is not None


def test_redis_store_invalidates_every_session_of_one_account(redis_store):
    alice_tokens = [redis_store.issue("2")[0] for _ in range(3)]
    bob_token, _ = redis_store.issue("3")

    assert redis_store.invalidate_all_sessions("2") == 3

    assert all(redis_store.resolve(token) is None for token in alice_tokens)
    assert redis_store.resolve(bob_token) is not None
    assert redis_store.invalidate_all_sessions("2") == 0


def test_repository_store_invalidates_sessions(directory):
    store = RepositorySessionStore(directory, ttl_seconds=60)
    token, _ = store.issue("2")
    store.issue("2")

    assert store.invalidate_all_sessions("2") == 2
    assert store.resolve(token) is None


def test_build_session_store_defaults_to_postgres(directory):
    store = build_session_store(Settings(session_backend="postgres"), directory)

    assert isinstance(store, RepositorySessionStore)


def test_build_session_store_falls_back_when_redis_unreachable(directory):
    settings = Settings(session_backend="redis", redis_url="redis://127.0.0.1:1/0")

    store = build_session_store(settings, directory)

    assert isinstance(store, RepositorySessionStore)
