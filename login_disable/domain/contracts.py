"""Domain-level request contracts shared by multiple layers."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from .account import ADMINISTRATOR_ROLE


class DisabledState(str, Enum):
    """Predicate over the stored disabled flag used when querying the directory."""

    ANY = "any"
    ENABLED = "enabled"
    DISABLED = "disabled"

    @classmethod
    def matching(cls, want_disabled: bool) -> "DisabledState":
        return cls.DISABLED if want_disabled else cls.ENABLED


class AccountFields(str, Enum):
    """Which account columns a directory query needs to populate."""

    IDS = "ids"
    IDENTITY = "identity"


@dataclass(frozen=True, slots=True)
class AccountFilter:
    """Typed directory query: role exclusion plus a disabled-state predicate."""

    exclude_roles: frozenset[str] = field(default_factory=frozenset)
    state: DisabledState = DisabledState.ANY
    fields: AccountFields = AccountFields.IDENTITY

    @classmethod
    def non_administrators(
        cls,
        state: DisabledState = DisabledState.ANY,
        fields: AccountFields = AccountFields.IDENTITY,
    ) -> "AccountFilter":
        return cls(exclude_roles=frozenset({ADMINISTRATOR_ROLE}), state=state, fields=fields)


class BulkAction(str, Enum):
    """Bulk actions offered on the account list."""

    DISABLE = "disable_user"
    ENABLE = "enable_user"


@dataclass(slots=True)
class BulkActionInput:
    """Validated selection for a bulk enable/disable request."""

    action: BulkAction
    account_ids: list[str] = field(default_factory=list)
    identifiers: list[str] = field(default_factory=list)
    select_all: bool = False


@dataclass(slots=True)
class BulkActionResult:
    action: BulkAction
    count: int

    @property
    def message(self) -> str:
        verb = "Disabled" if self.action is BulkAction.DISABLE else "Enabled"
        return f"{verb} {self.count} user(s)."
