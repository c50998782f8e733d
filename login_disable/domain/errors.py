"""Exceptions raised by the account-state domain."""

from __future__ import annotations

ACCOUNT_DISABLED_ERROR = "user_disabled"
ACCOUNT_DISABLED_MESSAGE = "User is disabled"
INVALID_CREDENTIALS_ERROR = "invalid_credentials"


class LoginDisableError(Exception):
    """Base class for errors surfaced by this package."""


class CallerInputError(LoginDisableError, ValueError):
    """The caller's target selection is empty or malformed."""


class AuthorizationDenied(LoginDisableError):
    """The acting account lacks the capability to manage other accounts."""


class AccountNotFound(LoginDisableError, LookupError):
    """No account exists for the requested id."""


class InvalidCredentials(LoginDisableError):
    """Login name or password did not match."""


class DirectoryError(LoginDisableError):
    """A read or write against the account directory failed."""


class SessionStoreError(LoginDisableError):
    """The session backend could not complete a request."""


class AccountDisabledError(LoginDisableError):
    """Raised by the authentication gate when a verified account is disabled."""

    code = ACCOUNT_DISABLED_ERROR

    def __init__(self, account_id: str, message: str = ACCOUNT_DISABLED_MESSAGE) -> None:
        super().__init__(message)
        self.account_id = account_id
        self.message = message
