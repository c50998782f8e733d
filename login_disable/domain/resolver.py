"""Resolve mixed user identifiers (ids, logins, emails) into target account ids."""

from __future__ import annotations

import logging
import re
from decimal import Decimal, InvalidOperation
from typing import Iterable, Sequence

from .account import Account
from .contracts import AccountFields, AccountFilter, DisabledState
from .errors import CallerInputError
from ..repository import AccountRepository

logger = logging.getLogger(__name__)

# Whole-token numbers only: "12", "+3", "4.5", ".5", "1e3" with optional surrounding whitespace.
_NUMERIC_RE = re.compile(r"^\s*[+-]?(\d+(\.\d*)?|\.\d+)([eE][+-]?\d+)?\s*$")


def is_numeric(token: str) -> bool:
    return bool(_NUMERIC_RE.match(token))


def _numeric_key(value: str) -> Decimal | str:
    """Canonical comparison key so that "07" and "7" name the same id."""
    if not is_numeric(value):
        return value
    try:
        return Decimal(value.strip())
    except InvalidOperation:
        return value


def split_identifiers(tokens: Iterable[str]) -> tuple[list[str], list[str]]:
    """Partition raw tokens into ``(numeric_ids, logins_and_emails)`` preserving order."""
    numeric_ids: list[str] = []
    others: list[str] = []
    for token in tokens:
        (numeric_ids if is_numeric(token) else others).append(token)
    return numeric_ids, others


def select_matching_accounts(
    candidates: Sequence[Account],
    numeric_ids: Sequence[str],
    non_numeric_tokens: Sequence[str],
) -> list[str]:
    """Return ids of candidates matched by id, login, or email, in candidate order."""
    wanted_ids = {_numeric_key(value) for value in numeric_ids}
    wanted_names = set(non_numeric_tokens)
    return [
        account.account_id
        for account in candidates
        if _numeric_key(account.account_id) in wanted_ids
        or account.login in wanted_names
        or account.email in wanted_names
    ]


class IdentifierResolver:
    """Builds the target set for bulk enable/disable operations."""

    def __init__(self, directory: AccountRepository) -> None:
        self._directory = directory

    def resolve_targets(
        self,
        select_all: bool,
        want_disabled: bool,
        raw_tokens: Sequence[str] = (),
    ) -> list[str]:
        """Return the account ids a bulk operation should act on.

        With ``select_all`` every non-administrator whose current state equals
        ``want_disabled`` is returned. Otherwise the raw tokens are matched
        against every non-administrator regardless of state, so explicit
        identifiers stay actionable even when the caller's view is stale.

        Raises
        ------
        CallerInputError
            When neither ``select_all`` nor any token is given.
        """
        if select_all:
            query = AccountFilter.non_administrators(
                state=DisabledState.matching(want_disabled),
                fields=AccountFields.IDS,
            )
            targets = [account.account_id for account in self._directory.query_accounts(query)]
            logger.info("selected %s account(s) with disabled=%s", len(targets), want_disabled)
            return targets

        if not raw_tokens:
            raise CallerInputError("Please specify one or more users, or use --all")

        numeric_ids, logins_emails = split_identifiers(raw_tokens)
        candidates = self._directory.query_accounts(AccountFilter.non_administrators())
        targets = select_matching_accounts(candidates, numeric_ids, logins_emails)
        logger.info("resolved %s of %s identifier(s) to accounts", len(targets), len(raw_tokens))
        return targets


def verify_account_ids(tokens: Sequence[str]) -> list[str]:
    """Require every token to be a positive integer id.

    Raises
    ------
    CallerInputError
        When the list is empty or a token is not a positive integer.
    """
    if not tokens:
        raise CallerInputError("Must pass a list of user ids!")
    for token in tokens:
        stripped = token.strip()
        if not re.fullmatch(r"[0-9]+", stripped) or int(stripped) < 1:
            raise CallerInputError("User ids must be positive integers!")
    return list(tokens)
