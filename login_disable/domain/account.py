from __future__ import annotations

from dataclasses import dataclass, field

ADMINISTRATOR_ROLE = "administrator"

DISABLED_META_KEY = "disabled"
# Only this exact stored value means "login forbidden"; anything else is enabled.
DISABLED_SENTINEL = "1"
ENABLED_VALUE = ""

# Capability (and JWT scope) required to toggle other accounts.
DISABLE_USERS_CAP = "disable_users"


@dataclass(slots=True)
class Account:
    """User identity record owned by the account directory."""

    account_id: str
    login: str
    email: str
    roles: frozenset[str] = field(default_factory=frozenset)
    disabled: bool = False

    @property
    def is_administrator(self) -> bool:
        return ADMINISTRATOR_ROLE in self.roles
