"""Account-state service: the disabled flag and its enforcement at login."""

from __future__ import annotations

import logging
from typing import Iterable, MutableSequence

from .account import Account, DISABLED_META_KEY, DISABLED_SENTINEL, ENABLED_VALUE
from .errors import AccountDisabledError, DirectoryError, SessionStoreError
from ..repository import AccountRepository
from ..security.sessions import SessionStore

logger = logging.getLogger(__name__)


class AccountStateService:
    """Reads and writes the per-account disabled flag.

    The service is stateless; the directory is the only source of truth. One
    instance is built at process start and passed to the CLI, the API, and the
    authentication routine.
    """

    def __init__(self, directory: AccountRepository, sessions: SessionStore) -> None:
        """Store the directory used for metadata and the session store used on disable."""
        self._directory = directory
        self._sessions = sessions

    def is_disabled(self, account_id: str) -> bool:
        """Return ``True`` only when the stored flag is exactly the disabled sentinel."""
        value = self._directory.get_account_metadata(account_id, DISABLED_META_KEY)
        return value == DISABLED_SENTINEL

    def set_disabled(self, account_id: str, disabled: bool) -> bool:
        """Persist the disabled flag for a single account.

        Administrators are never modified and yield ``False``. When disabling,
        every session of the account is invalidated before the flag is written,
        so a failure between the two steps leaves the account logged out rather
        than logged in.

        Returns
        -------
        bool
            ``True`` when the directory accepted the write.
        """
        account = self._directory.get_account(account_id)
        if account is None:
            logger.warning("account %s not found; skipping", account_id)
            return False
        if account.is_administrator:
            logger.info("account %s is an administrator; leaving state untouched", account_id)
            return False

        if disabled:
            try:
                revoked = self._sessions.invalidate_all_sessions(account_id)
                logger.info("invalidated %s session(s) for account %s", revoked, account_id)
                self._directory.write_audit_event(
                    account_id=account_id,
                    event_type="sessions.invalidated",
                    actor=None,
                    metadata={"revoked": revoked},
                )
            except SessionStoreError as exc:
                logger.warning("session invalidation failed for account %s: %s", account_id, exc)

        value = DISABLED_SENTINEL if disabled else ENABLED_VALUE
        try:
            stored = self._directory.set_account_metadata(account_id, DISABLED_META_KEY, value)
        except DirectoryError as exc:
            logger.warning("could not persist disabled=%s for account %s: %s", disabled, account_id, exc)
            return False

        if stored:
            logger.info("account %s %s", account_id, "disabled" if disabled else "enabled")
        return stored

    def disable_account(self, account_id: str) -> bool:
        return self.set_disabled(account_id, True)

    def enable_account(self, account_id: str) -> bool:
        return self.set_disabled(account_id, False)

    def set_disabled_each(self, account_ids: Iterable[str], disabled: bool) -> list[str]:
        """Apply ``set_disabled`` to every id independently; return the ids that changed."""
        return [account_id for account_id in account_ids if self.set_disabled(account_id, disabled)]

    def disable_multiple_accounts(self, account_ids: Iterable[str]) -> int:
        """Disable each account independently and return how many succeeded."""
        return len(self.set_disabled_each(account_ids, True))

    def enable_multiple_accounts(self, account_ids: Iterable[str]) -> int:
        """Enable each account independently and return how many succeeded."""
        return len(self.set_disabled_each(account_ids, False))

    def reject_if_disabled(self, account: Account, password: str | None = None) -> Account:
        """Authentication gate run after the credential check and before any token is issued.

        ``password`` is the credential that was just verified; the gate only
        consults the account's state.

        Raises
        ------
        AccountDisabledError
            When the account is disabled.
        """
        if self.is_disabled(account.account_id):
            logger.info("rejecting authentication for disabled account %s", account.account_id)
            raise AccountDisabledError(account.account_id)
        return account

    def collect_api_errors(
        self,
        errors: MutableSequence[tuple[str, str]],
        account: Account,
        password: str | None = None,
    ) -> None:
        """Append the disabled error to an existing error list instead of raising."""
        try:
            self.reject_if_disabled(account, password)
        except AccountDisabledError as exc:
            errors.append((exc.code, exc.message))
