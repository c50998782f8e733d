"""Postgres-backed account directory, session tokens, and audit trail."""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional, Tuple

import psycopg
from psycopg.rows import tuple_row
from psycopg.types.json import Json
from psycopg_pool import ConnectionPool

from .domain.account import Account, DISABLED_META_KEY, DISABLED_SENTINEL
from .domain.contracts import AccountFields, AccountFilter, DisabledState
from .domain.errors import DirectoryError


@dataclass(slots=True)
class RefreshTokenRecord:
    """DTO mapping the refresh_tokens table for repository consumers."""

    token_id: str
    account_id: str
    expires_at: datetime
    revoked_at: datetime | None


@dataclass(slots=True)
class AuditLogRecord:
    """Row projection for items in account_audit_log."""

    audit_id: int
    account_id: str | None
    event_type: str
    actor: str | None
    metadata: dict[str, Any]
    created_at: datetime


_ACCOUNT_COLUMNS = """
    a.account_id, a.login, a.email, a.roles, m.meta_value
    FROM accounts a
    LEFT JOIN account_meta m
        ON m.account_id = a.account_id AND m.meta_key = %s
"""


class AccountRepository:
    """Account directory over the ``accounts`` and ``account_meta`` tables."""

    def __init__(self, pool: ConnectionPool) -> None:
        """Store the connection pool used for all database interactions."""
        self._pool = pool

    def query_accounts(self, account_filter: AccountFilter) -> list[Account]:
        """Return accounts matching the role exclusion and disabled-state predicate."""
        clauses: list[str] = []
        params: list[Any] = [DISABLED_META_KEY]

        if account_filter.exclude_roles:
            clauses.append("NOT (a.roles && %s::text[])")
            params.append(sorted(account_filter.exclude_roles))
        if account_filter.state is DisabledState.DISABLED:
            clauses.append("m.meta_value = %s")
            params.append(DISABLED_SENTINEL)
        elif account_filter.state is DisabledState.ENABLED:
            clauses.append("(m.meta_value IS NULL OR m.meta_value <> %s)")
            params.append(DISABLED_SENTINEL)

        where_sql = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        query = f"SELECT {_ACCOUNT_COLUMNS} {where_sql} ORDER BY a.created_at, a.account_id"

        with self._pool.connection() as conn:
            with conn.cursor(row_factory=tuple_row) as cur:
                cur.execute(query, params)
                rows = cur.fetchall()

        if account_filter.fields is AccountFields.IDS:
            return [Account(account_id=row[0], login="", email="") for row in rows]
        return [self._map_record(row) for row in rows]

    def get_account(self, account_id: str) -> Account | None:
        """Fetch an account by id or return ``None``."""
        with self._pool.connection() as conn:
            with conn.cursor(row_factory=tuple_row) as cur:
                cur.execute(
                    f"SELECT {_ACCOUNT_COLUMNS} WHERE a.account_id = %s",
                    (DISABLED_META_KEY, account_id),
                )
                row = cur.fetchone()
                if not row:
                    return None
        return self._map_record(row)

    def find_account_by_login(self, login_or_email: str) -> Account | None:
        """Fetch an account by login name or email address."""
        with self._pool.connection() as conn:
            with conn.cursor(row_factory=tuple_row) as cur:
                cur.execute(
                    f"SELECT {_ACCOUNT_COLUMNS} WHERE a.login = %s OR lower(a.email) = lower(%s)",
                    (DISABLED_META_KEY, login_or_email, login_or_email),
                )
                row = cur.fetchone()
                if not row:
                    return None
        return self._map_record(row)

    def get_password_hash(self, account_id: str) -> str | None:
        with self._pool.connection() as conn:
            with conn.cursor(row_factory=tuple_row) as cur:
                cur.execute(
                    "SELECT password_hash FROM accounts WHERE account_id = %s",
                    (account_id,),
                )
                row = cur.fetchone()
        return row[0] if row else None

    def get_account_metadata(self, account_id: str, key: str) -> str | None:
        """Return the stored metadata value, or ``None`` when the key was never written."""
        with self._pool.connection() as conn:
            with conn.cursor(row_factory=tuple_row) as cur:
                cur.execute(
                    """
                    SELECT meta_value
                    FROM account_meta
                    WHERE account_id = %s AND meta_key = %s
                    """,
                    (account_id, key),
                )
                row = cur.fetchone()
        return row[0] if row else None

    def set_account_metadata(self, account_id: str, key: str, value: str) -> bool:
        """Upsert a metadata value and report whether a row was written.

        Raises
        ------
        DirectoryError
            When the database rejects the write.
        """
        try:
            with self._pool.connection() as conn:
                with conn.cursor() as cur:
                    cur.execute(
                        """
                        INSERT INTO account_meta (account_id, meta_key, meta_value, updated_at)
                        VALUES (%s, %s, %s, NOW())
                        ON CONFLICT (account_id, meta_key)
                        DO UPDATE SET meta_value = EXCLUDED.meta_value, updated_at = NOW()
                        """,
                        (account_id, key, value),
                    )
                    written = cur.rowcount == 1
                    conn.commit()
        except psycopg.Error as exc:
            raise DirectoryError(f"could not write {key} for account {account_id}") from exc
        return written

    def _map_record(self, row: tuple) -> Account:
        """Convert a raw database tuple into the domain ``Account`` dataclass."""
        return Account(
            account_id=row[0],
            login=row[1],
            email=row[2],
            roles=frozenset(row[3] or ()),
            disabled=row[4] == DISABLED_SENTINEL,
        )

    def create_refresh_token(
        self,
        *,
        account_id: str,
        token_hash: str,
        expires_at: datetime,
        metadata: dict[str, Any] | None = None,
    ) -> RefreshTokenRecord:
        """Persist a hashed refresh token associated with an account."""
        token_id = str(uuid.uuid4())
        with self._pool.connection() as conn:
            with conn.cursor(row_factory=tuple_row) as cur:
                cur.execute(
                    """
                    INSERT INTO refresh_tokens (token_id, account_id, token_hash, expires_at, metadata)
                    VALUES (%s, %s, %s, %s, %s)
                    RETURNING token_id, account_id, expires_at, revoked_at
                    """,
                    (token_id, account_id, token_hash, expires_at, Json(metadata or {})),
                )
                row = cur.fetchone()
                conn.commit()
        return RefreshTokenRecord(*row)

    def find_refresh_token(self, token_hash: str) -> RefreshTokenRecord | None:
        """Return an active refresh token record for the provided hash."""
        with self._pool.connection() as conn:
            with conn.cursor(row_factory=tuple_row) as cur:
                cur.execute(
                    """
                    SELECT token_id, account_id, expires_at, revoked_at
                    FROM refresh_tokens
                    WHERE token_hash = %s AND revoked_at IS NULL
                    """,
                    (token_hash,),
                )
                row = cur.fetchone()
                if not row:
                    return None
        return RefreshTokenRecord(*row)

    def revoke_refresh_token(self, token_id: str) -> None:
        """Mark the given refresh token as revoked."""
        with self._pool.connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    UPDATE refresh_tokens
                    SET revoked_at = NOW()
                    WHERE token_id = %s AND revoked_at IS NULL
                    """,
                    (token_id,),
                )
                conn.commit()

    def revoke_account_refresh_tokens(self, account_id: str) -> int:
        """Revoke every active refresh token held by an account and return how many."""
        with self._pool.connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    UPDATE refresh_tokens
                    SET revoked_at = NOW()
                    WHERE account_id = %s AND revoked_at IS NULL
                    """,
                    (account_id,),
                )
                revoked = cur.rowcount
                conn.commit()
        return revoked

    def write_audit_event(
        self,
        *,
        account_id: str | None,
        event_type: str,
        actor: str | None,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        """Record an audit trail entry for account-state activity."""
        with self._pool.connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    INSERT INTO account_audit_log (account_id, event_type, actor, metadata)
                    VALUES (%s, %s, %s, %s)
                    """,
                    (account_id, event_type, actor, Json(metadata or {})),
                )
                conn.commit()

    def list_audit_events(
        self,
        *,
        account_id: str | None = None,
        event_type: str | None = None,
        created_after: datetime | None = None,
        created_before: datetime | None = None,
        limit: int = 50,
        cursor: Tuple[datetime, int] | None = None,
    ) -> tuple[list[AuditLogRecord], Optional[Tuple[datetime, int]]]:
        """Return audit log entries with optional filters and cursor pagination."""
        limit = max(1, min(limit, 100))
        clauses = ["TRUE"]
        params: list[Any] = []

        if account_id:
            clauses.append("account_id = %s")
            params.append(account_id)
        if event_type:
            clauses.append("event_type = %s")
            params.append(event_type)
        if created_after:
            clauses.append("created_at >= %s")
            params.append(created_after)
        if created_before:
            clauses.append("created_at <= %s")
            params.append(created_before)
        if cursor:
            clauses.append("(created_at, audit_id) < (%s, %s)")
            params.extend(cursor)

        where_sql = " AND ".join(clauses)
        query = f"""
            SELECT audit_id, account_id, event_type, actor, metadata, created_at
            FROM account_audit_log
            WHERE {where_sql}
            ORDER BY created_at DESC, audit_id DESC
            LIMIT %s
        """
        params.append(limit)

        records: list[AuditLogRecord] = []
        with self._pool.connection() as conn:
            with conn.cursor(row_factory=tuple_row) as cur:
                cur.execute(query, params)
                for row in cur.fetchall():
                    records.append(
                        AuditLogRecord(
                            audit_id=row[0],
                            account_id=row[1],
                            event_type=row[2],
                            actor=row[3],
                            metadata=row[4] or {},
                            created_at=row[5],
                        )
                    )

        next_cursor: Tuple[datetime, int] | None = None
        if len(records) == limit:
            last = records[-1]
            next_cursor = (last.created_at, last.audit_id)
        return records, next_cursor
