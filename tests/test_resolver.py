from __future__ import annotations

import pytest

from login_disable.domain.account import Account, ADMINISTRATOR_ROLE
from login_disable.domain.contracts import AccountFields, DisabledState
from login_disable.domain.errors import CallerInputError
from login_disable.domain.resolver import (
    select_matching_accounts,
    split_identifiers,
    verify_account_ids,
)


def test_split_identifiers_preserves_order_within_groups():
    assert split_identifiers(["5", "bob", "7", "a@b.com"]) == (["5", "7"], ["bob", "a@b.com"])


def test_split_identifiers_empty():
    assert split_identifiers([]) == ([], [])


@pytest.mark.parametrize("token", ["12", "+3", "-4", "4.5", ".5", "1e3", " 8 "])
def test_whole_numbers_are_numeric(token):
    assert split_identifiers([token]) == ([token], [])


@pytest.mark.parametrize("token", ["12abc", "abc12", "0x1A", "", "1.2.3", "nan", "inf"])
def test_partial_numbers_are_not_numeric(token):
    assert split_identifiers([token]) == ([], [token])


def test_select_matching_accounts_by_id():
    candidates = [
        Account(account_id="1", login="a", email="x@x"),
        Account(account_id="2", login="b", email="y@y"),
    ]

    assert select_matching_accounts(candidates, ["2"], []) == ["2"]


def test_select_matching_accounts_by_login_and_email_in_candidate_order():
    candidates = [
        Account(account_id="1", login="a", email="x@x"),
        Account(account_id="2", login="b", email="y@y"),
        Account(account_id="3", login="c", email="z@z"),
    ]

    assert select_matching_accounts(candidates, [], ["z@z", "a"]) == ["1", "3"]


def test_select_matching_accounts_compares_ids_numerically():
    candidates = [Account(account_id="7", login="g", email="g@g")]

    assert select_matching_accounts(candidates, ["07"], []) == ["7"]


def test_select_matching_accounts_does_not_deduplicate():
    account = Account(account_id="1", login="a", email="x@x")

    assert select_matching_accounts([account, account], ["1"], ["a"]) == ["1", "1"]


def test_select_matching_accounts_without_matches():
    candidates = [Account(account_id="1", login="a", email="x@x")]

    assert select_matching_accounts(candidates, ["9"], ["nobody"]) == []


def test_resolve_targets_rejects_empty_selection_before_querying(resolver, directory):
    with pytest.raises(CallerInputError):
        resolver.resolve_targets(select_all=False, want_disabled=True, raw_tokens=[])

    assert directory.queries == []


def test_resolve_all_enabled_non_administrators(resolver, directory):
    targets = resolver.resolve_targets(select_all=True, want_disabled=False)

    assert targets == ["2", "3", "5"]
    (query,) = directory.queries
    assert ADMINISTRATOR_ROLE in query.exclude_roles
    assert query.state is DisabledState.ENABLED
    assert query.fields is AccountFields.IDS


def test_resolve_all_disabled_non_administrators(resolver, directory):
    assert resolver.resolve_targets(select_all=True, want_disabled=True) == ["4"]


def test_resolve_all_ignores_tokens(resolver):
    assert resolver.resolve_targets(True, True, ["alice"]) == ["4"]


def test_resolve_tokens_ignores_current_state(resolver, directory):
    targets = resolver.resolve_targets(
        select_all=False, want_disabled=False, raw_tokens=["carol", "2", "bob@example.com"]
    )

    assert targets == ["2", "3", "4"]
    (query,) = directory.queries
    assert query.state is DisabledState.ANY


def test_resolve_tokens_never_selects_administrators(resolver):
    assert resolver.resolve_targets(False, False, ["1", "admin", "admin@example.com"]) == []


def test_verify_account_ids_accepts_positive_integers():
    assert verify_account_ids(["1", "42"]) == ["1", "42"]


@pytest.mark.parametrize("tokens", [["0"], ["-3"], ["alice"], ["2", "1.5"]])
def test_verify_account_ids_rejects_non_positive_or_non_integer(tokens):
    with pytest.raises(CallerInputError, match="positive integers"):
        verify_account_ids(tokens)


def test_verify_account_ids_rejects_empty_list():
    with pytest.raises(CallerInputError):
        verify_account_ids([])
