"""Account service orchestrating authentication, account-state changes, and auditing."""

from __future__ import annotations

from base64 import urlsafe_b64decode, urlsafe_b64encode
from dataclasses import dataclass
from datetime import datetime, timezone
import json
import logging
from typing import Tuple, Optional

from .account import Account
from .contracts import AccountFilter, BulkAction, BulkActionInput, BulkActionResult
from .errors import (
    AccountDisabledError,
    AccountNotFound,
    CallerInputError,
    INVALID_CREDENTIALS_ERROR,
    InvalidCredentials,
)
from .resolver import IdentifierResolver
from .state import AccountStateService
from ..repository import AccountRepository, AuditLogRecord
from ..security.passwords import verify_password
from ..security.sessions import SessionStore
from ..security.tokens import issue_access_token, scopes_for

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class TokenBundle:
    """Encapsulates the access/refresh token pair returned to API consumers."""

    access_token: str
    access_expires_in: int
    refresh_token: str
    refresh_expires_in: int
    account_id: str


class AccountService:
    """Account workflows shared by the HTTP API and the CLI."""

    def __init__(
        self,
        repository: AccountRepository,
        state: AccountStateService,
        resolver: IdentifierResolver,
        sessions: SessionStore,
    ) -> None:
        """Store dependencies used to orchestrate persistence and token issuance."""
        self._repository = repository
        self._state = state
        self._resolver = resolver
        self._sessions = sessions

    def authenticate(self, login: str, password: str) -> TokenBundle:
        """Verify credentials, apply the disabled gate, then issue tokens.

        Raises
        ------
        InvalidCredentials
            When the login is unknown or the password does not match.
        AccountDisabledError
            When the credentials are valid but the account is disabled.
        """
        account = self._repository.find_account_by_login(login)
        if account is None or not verify_password(
            password, self._repository.get_password_hash(account.account_id)
        ):
            raise InvalidCredentials("invalid credentials")

        try:
            self._state.reject_if_disabled(account, password)
        except AccountDisabledError:
            self._repository.write_audit_event(
                account_id=account.account_id,
                event_type="auth.rejected_disabled",
                actor=account.account_id,
                metadata={"login": account.login},
            )
            raise

        return self.issue_token(account)

    def check_api_credentials(self, login: str, password: str) -> tuple[Account | None, list[tuple[str, str]]]:
        """Validate API credentials without issuing tokens.

        Every failure is collected as a ``(code, message)`` pair so that callers
        fronting other services can report all of them at once. A disabled
        account with a valid password yields the ``user_disabled`` error.
        """
        errors: list[tuple[str, str]] = []
        account = self._repository.find_account_by_login(login)
        if account is None or not verify_password(
            password, self._repository.get_password_hash(account.account_id)
        ):
            errors.append((INVALID_CREDENTIALS_ERROR, "invalid credentials"))
            return None, errors

        self._state.collect_api_errors(errors, account, password)
        if errors:
            self._repository.write_audit_event(
                account_id=account.account_id,
                event_type="auth.rejected_disabled",
                actor=account.account_id,
                metadata={"login": account.login, "via": "api_credentials"},
            )
            return None, errors
        return account, errors

    def issue_token(self, account: Account) -> TokenBundle:
        """Issue access and refresh tokens for an account that passed the gate."""
        scopes = scopes_for(account)
        access_token, expires_in = issue_access_token(
            subject=account.account_id,
            login=account.login,
            scopes=scopes,
        )
        refresh_token, refresh_expires_in = self._sessions.issue(
            account.account_id, {"scopes": scopes}
        )

        self._repository.write_audit_event(
            account_id=account.account_id,
            event_type="token.issued",
            actor=account.account_id,
            metadata={"scopes": scopes},
        )

        return TokenBundle(
            access_token=access_token,
            access_expires_in=expires_in,
            refresh_token=refresh_token,
            refresh_expires_in=refresh_expires_in,
            account_id=account.account_id,
        )

    def refresh_access_token(self, refresh_token: str) -> TokenBundle:
        """Exchange a refresh token for a new access/refresh pair.

        A disabled account's session is revoked and the gate's error propagates.
        """
        record = self._sessions.resolve(refresh_token)
        if record is None:
            raise ValueError("invalid refresh token")
        if record.expires_at <= datetime.now(timezone.utc):
            self._sessions.revoke(record.token_id)
            raise ValueError("refresh token expired")

        account = self._repository.get_account(record.account_id)
        if account is None:
            self._sessions.revoke(record.token_id)
            raise ValueError("account unavailable")

        self._sessions.revoke(record.token_id)
        self._state.reject_if_disabled(account)

        new_bundle = self.issue_token(account)
        self._repository.write_audit_event(
            account_id=record.account_id,
            event_type="token.refreshed",
            actor=record.account_id,
            metadata={"previous_token_id": record.token_id},
        )
        return new_bundle

    def get_account(self, account_id: str) -> Account | None:
        """Retrieve an account, including its current disabled state."""
        return self._repository.get_account(account_id)

    def list_accounts(self) -> list[Account]:
        """Return every account with its disabled state for the admin listing."""
        return self._repository.query_accounts(AccountFilter())

    def set_account_disabled(self, account_id: str, disabled: bool, *, actor: str) -> bool:
        """Toggle a single account from its profile.

        Returns ``False`` for administrators, which are never modified.

        Raises
        ------
        AccountNotFound
            When no account has the given id.
        """
        account = self._repository.get_account(account_id)
        if account is None:
            raise AccountNotFound("account not found")

        changed = self._state.set_disabled(account_id, disabled)
        if changed:
            self._record_state_change(account_id, disabled, actor=actor)
        return changed

    def apply_bulk_action(self, payload: BulkActionInput, *, actor: str) -> BulkActionResult:
        """Resolve the selection and enable or disable every target, counting successes.

        Explicit ``account_ids`` are used as given; ``identifiers`` and
        ``select_all`` go through the identifier resolver.

        Raises
        ------
        CallerInputError
            When the selection is empty.
        """
        enabling = payload.action is BulkAction.ENABLE
        targets = list(payload.account_ids)
        if payload.select_all or payload.identifiers:
            targets.extend(
                self._resolver.resolve_targets(
                    payload.select_all, enabling, payload.identifiers
                )
            )
        elif not targets:
            raise CallerInputError("Please specify one or more users, or use --all")

        changed = self._state.set_disabled_each(targets, not enabling)
        for account_id in changed:
            self._record_state_change(account_id, not enabling, actor=actor)
        count = len(changed)

        logger.info("%s: %s of %s target(s) updated by %s", payload.action.value, count, len(targets), actor)
        self._repository.write_audit_event(
            account_id=None,
            event_type="accounts.bulk_enabled" if enabling else "accounts.bulk_disabled",
            actor=actor,
            metadata={"targets": targets, "count": count},
        )
        return BulkActionResult(action=payload.action, count=count)

    def _record_state_change(self, account_id: str, disabled: bool, *, actor: str) -> None:
        self._repository.write_audit_event(
            account_id=account_id,
            event_type="account.disabled" if disabled else "account.enabled",
            actor=actor,
            metadata={},
        )

    def list_audit_events(
        self,
        *,
        account_id: str | None = None,
        event_type: str | None = None,
        created_after: datetime | None = None,
        created_before: datetime | None = None,
        limit: int = 50,
        cursor: str | None = None,
    ) -> tuple[list[AuditLogRecord], str | None]:
        """Return audit log records with optional filters and cursor pagination."""
        decoded_cursor: Optional[Tuple[datetime, int]] = None
        if cursor:
            decoded_cursor = self._decode_cursor(cursor)
        records, next_cursor_tuple = self._repository.list_audit_events(
            account_id=account_id,
            event_type=event_type,
            created_after=created_after,
            created_before=created_before,
            limit=limit,
            cursor=decoded_cursor,
        )
        next_cursor = self._encode_cursor(next_cursor_tuple) if next_cursor_tuple else None
        return records, next_cursor

    def _encode_cursor(self, cursor: Tuple[datetime, int] | None) -> str | None:
        if cursor is None:
            return None
        created_at, audit_id = cursor
        payload = json.dumps({"created_at": created_at.isoformat(), "audit_id": audit_id})
        return urlsafe_b64encode(payload.encode("utf-8")).decode("utf-8")

    def _decode_cursor(self, cursor: str) -> Tuple[datetime, int]:
        try:
            data = json.loads(urlsafe_b64decode(cursor.encode("utf-8")).decode("utf-8"))
            created_at = datetime.fromisoformat(data["created_at"])
            audit_id = int(data["audit_id"])
            return created_at, audit_id
        except Exception as exc:
            raise ValueError("invalid cursor") from exc
