from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime, timezone

import pytest
from argon2 import PasswordHasher

from login_disable.domain.account import (
    ADMINISTRATOR_ROLE,
    Account,
    DISABLED_META_KEY,
    DISABLED_SENTINEL,
)
from login_disable.domain.contracts import AccountFields, AccountFilter, DisabledState
from login_disable.domain.errors import DirectoryError
from login_disable.domain.resolver import IdentifierResolver
from login_disable.domain.service import AccountService
from login_disable.domain.state import AccountStateService
from login_disable.security.passwords import hash_password
from login_disable.security.sessions import RepositorySessionStore

FAST_HASHER = PasswordHasher(time_cost=1, memory_cost=8, parallelism=1)


@dataclass
class FakeRefreshToken:
    token_id: str
    account_id: str
    expires_at: datetime
    revoked_at: datetime | None


@dataclass
class FakeAuditLogRecord:
    audit_id: int
    account_id: str | None
    event_type: str
    actor: str | None
    metadata: dict
    created_at: datetime


class FakeDirectory:
    """In-memory account directory mimicking the Postgres-backed repository.

    ``calls`` records directory mutations and session invalidations in order.
    """

    def __init__(self) -> None:
        self._accounts: dict[str, tuple[str, str, frozenset[str]]] = {}
        self._passwords: dict[str, str] = {}
        self.meta: dict[tuple[str, str], str] = {}
        self._refresh_tokens: dict[str, FakeRefreshToken] = {}
        self.audit_log: list[FakeAuditLogRecord] = []
        self._audit_seq = 0
        self.calls: list[tuple] = []
        self.queries: list[AccountFilter] = []
        self.failing_writes: set[str] = set()

    def add_account(
        self,
        account_id: str,
        login: str,
        email: str,
        *,
        roles: tuple[str, ...] = ("subscriber",),
        password: str = "secret",
        disabled: str | None = None,
    ) -> None:
        self._accounts[account_id] = (login, email, frozenset(roles))
        self._passwords[account_id] = hash_password(password, hasher=FAST_HASHER)
        if disabled is not None:
            self.meta[(account_id, DISABLED_META_KEY)] = disabled

    def _build(self, account_id: str) -> Account:
        login, email, roles = self._accounts[account_id]
        return Account(
            account_id=account_id,
            login=login,
            email=email,
            roles=roles,
            disabled=self.meta.get((account_id, DISABLED_META_KEY)) == DISABLED_SENTINEL,
        )

    def query_accounts(self, account_filter: AccountFilter) -> list[Account]:
        self.queries.append(account_filter)
        results = []
        for account_id in self._accounts:
            account = self._build(account_id)
            if account.roles & account_filter.exclude_roles:
                continue
            if account_filter.state is DisabledState.DISABLED and not account.disabled:
                continue
            if account_filter.state is DisabledState.ENABLED and account.disabled:
                continue
            if account_filter.fields is AccountFields.IDS:
                account = Account(account_id=account_id, login="", email="")
            results.append(account)
        return results

    def get_account(self, account_id: str) -> Account | None:
        if account_id not in self._accounts:
            return None
        return self._build(account_id)

    def find_account_by_login(self, login_or_email: str) -> Account | None:
        for account_id, (login, email, _) in self._accounts.items():
            if login_or_email == login or login_or_email.lower() == email.lower():
                return self._build(account_id)
        return None

    def get_password_hash(self, account_id: str) -> str | None:
        return self._passwords.get(account_id)

    def get_account_metadata(self, account_id: str, key: str) -> str | None:
        return self.meta.get((account_id, key))

    def set_account_metadata(self, account_id: str, key: str, value: str) -> bool:
        if account_id in self.failing_writes:
            raise DirectoryError(f"could not write {key} for account {account_id}")
        self.calls.append(("set_meta", account_id, key, value))
        self.meta[(account_id, key)] = value
        return True

    def create_refresh_token(
        self,
        *,
        account_id: str,
        token_hash: str,
        expires_at: datetime,
        metadata: dict | None = None,
    ):
        token = FakeRefreshToken(
            token_id=str(uuid.uuid4()),
            account_id=account_id,
            expires_at=expires_at,
            revoked_at=None,
        )
        self._refresh_tokens[token_hash] = token
        return token

    def find_refresh_token(self, token_hash: str):
        record = self._refresh_tokens.get(token_hash)
        if record and record.revoked_at is None:
            return record
        return None

    def revoke_refresh_token(self, token_id: str) -> None:
        for record in self._refresh_tokens.values():
            if record.token_id == token_id:
                record.revoked_at = datetime.now(timezone.utc)
                break

    def revoke_account_refresh_tokens(self, account_id: str) -> int:
        self.calls.append(("invalidate_sessions", account_id))
        revoked = 0
        for record in self._refresh_tokens.values():
            if record.account_id == account_id and record.revoked_at is None:
                record.revoked_at = datetime.now(timezone.utc)
                revoked += 1
        return revoked

    def active_sessions(self, account_id: str) -> int:
        return sum(
            1
            for record in self._refresh_tokens.values()
            if record.account_id == account_id and record.revoked_at is None
        )

    def write_audit_event(
        self,
        *,
        account_id: str | None,
        event_type: str,
        actor: str | None,
        metadata: dict | None = None,
    ) -> None:
        self._audit_seq += 1
        self.audit_log.append(
            FakeAuditLogRecord(
                audit_id=self._audit_seq,
                account_id=account_id,
                event_type=event_type,
                actor=actor,
                metadata=metadata or {},
                created_at=datetime.now(timezone.utc),
            )
        )

    def list_audit_events(
        self,
        *,
        account_id: str | None = None,
        event_type: str | None = None,
        created_after: datetime | None = None,
        created_before: datetime | None = None,
        limit: int = 50,
        cursor: tuple[datetime, int] | None = None,
    ):
        results = list(self.audit_log)
        if account_id:
            results = [record for record in results if record.account_id == account_id]
        if event_type:
            results = [record for record in results if record.event_type == event_type]
        if created_after:
            results = [record for record in results if record.created_at >= created_after]
        if created_before:
            results = [record for record in results if record.created_at <= created_before]
        results.sort(key=lambda r: (r.created_at, r.audit_id), reverse=True)
        if cursor:
            results = [record for record in results if (record.created_at, record.audit_id) < cursor]
        slice_ = results[:limit]
        next_cursor = None
        if len(results) > limit:
            last = slice_[-1]
            next_cursor = (last.created_at, last.audit_id)
        return slice_, next_cursor


@pytest.fixture
def directory() -> FakeDirectory:
    """A directory seeded with one administrator and four regular accounts."""
    fake = FakeDirectory()
    fake.add_account(
        "1", "admin", "admin@example.com", roles=(ADMINISTRATOR_ROLE,), password="admin-pass"
    )
    fake.add_account("2", "alice", "alice@example.com")
    fake.add_account("3", "bob", "bob@example.com", roles=("editor",))
    fake.add_account("4", "carol", "carol@example.com", disabled=DISABLED_SENTINEL)
    # Unexpected stored value: treated as enabled.
    fake.add_account("5", "dave", "dave@example.com", disabled="yes")
    return fake


@pytest.fixture
def sessions(directory: FakeDirectory) -> RepositorySessionStore:
    return RepositorySessionStore(directory, ttl_seconds=3600)


@pytest.fixture
def state(directory: FakeDirectory, sessions: RepositorySessionStore) -> AccountStateService:
    return AccountStateService(directory, sessions)


@pytest.fixture
def resolver(directory: FakeDirectory) -> IdentifierResolver:
    return IdentifierResolver(directory)


@pytest.fixture
def account_service(directory, state, resolver, sessions) -> AccountService:
    return AccountService(directory, state, resolver, sessions)
