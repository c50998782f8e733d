"""Construct the service graph once per process and hand it to every caller."""

from __future__ import annotations

from dataclasses import dataclass

from psycopg_pool import ConnectionPool

from .config import Settings
from .domain.resolver import IdentifierResolver
from .domain.service import AccountService
from .domain.state import AccountStateService
from .repository import AccountRepository
from .security.sessions import SessionStore, build_session_store


@dataclass(slots=True)
class Services:
    repository: AccountRepository
    sessions: SessionStore
    state: AccountStateService
    resolver: IdentifierResolver
    accounts: AccountService


def build_services(pool: ConnectionPool, settings: Settings) -> Services:
    """Wire the directory, session store, and domain services over a connection pool."""
    repository = AccountRepository(pool)
    sessions = build_session_store(settings, repository)
    state = AccountStateService(repository, sessions)
    resolver = IdentifierResolver(repository)
    return Services(
        repository=repository,
        sessions=sessions,
        state=state,
        resolver=resolver,
        accounts=AccountService(repository, state, resolver, sessions),
    )
