"""HTTP route definitions for the login-disable service."""

from __future__ import annotations

import logging

from datetime import datetime
from typing import Any

import jwt
from fastapi import APIRouter, Depends, FastAPI, Header, HTTPException, Query, Request, Response, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from ..domain.account import Account, DISABLE_USERS_CAP
from ..domain.contracts import BulkAction, BulkActionInput
from ..domain.errors import (
    ACCOUNT_DISABLED_ERROR,
    AccountDisabledError,
    AccountNotFound,
    AuthorizationDenied,
    CallerInputError,
    InvalidCredentials,
)
from ..domain.service import AccountService, TokenBundle
from ..security.tokens import decode_access_token

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1")


class AccountResponse(BaseModel):
    """Serialised representation of an `Account` with its disabled column."""

    account_id: str
    login: str
    email: str
    roles: list[str]
    disabled: bool

    @classmethod
    def from_domain(cls, account: Account) -> "AccountResponse":
        """Build a response model from the domain dataclass."""
        return cls(
            account_id=account.account_id,
            login=account.login,
            email=account.email,
            roles=sorted(account.roles),
            disabled=account.disabled,
        )


class AccountListResponse(BaseModel):
    items: list[AccountResponse]


class TokenRequest(BaseModel):
    """Credentials exchanged for a JWT; ``login`` may also be an email address."""

    login: str
    password: str


class TokenResponse(BaseModel):
    """Token issuance response containing the bearer token and metadata."""

    access_token: str
    token_type: str = "bearer"
    expires_in: int
    refresh_token: str
    refresh_expires_in: int
    account_id: str

    @classmethod
    def from_bundle(cls, bundle: TokenBundle) -> "TokenResponse":
        return cls(
            access_token=bundle.access_token,
            expires_in=bundle.access_expires_in,
            refresh_token=bundle.refresh_token,
            refresh_expires_in=bundle.refresh_expires_in,
            account_id=bundle.account_id,
        )


class CredentialError(BaseModel):
    code: str
    message: str


class CredentialCheckResponse(BaseModel):
    """Outcome of an API credential check; no tokens are issued."""

    valid: bool
    account_id: str | None = None
    errors: list[CredentialError] = Field(default_factory=list)


class RefreshTokenRequest(BaseModel):
    """Request body for exchanging refresh tokens for new access credentials."""

    refresh_token: str


class DisabledStateRequest(BaseModel):
    disabled: bool


class BulkActionRequest(BaseModel):
    """Bulk enable/disable selection: explicit ids, raw identifiers, or everything."""

    action: BulkAction
    account_ids: list[str] = Field(default_factory=list)
    identifiers: list[str] = Field(default_factory=list)
    all: bool = False


class BulkActionResponse(BaseModel):
    action: BulkAction
    count: int
    message: str


class AuditLogEntry(BaseModel):
    """Audit log response entry."""

    audit_id: int
    account_id: str | None
    event_type: str
    actor: str | None
    metadata: dict[str, Any]
    created_at: datetime


class AuditLogResponse(BaseModel):
    """Envelope for paginated audit log data."""

    items: list[AuditLogEntry]
    next_cursor: str | None = None


def get_service(request: Request) -> AccountService:
    """Resolve the `AccountService` stored on the FastAPI application state."""
    service: AccountService = request.app.state.account_service
    return service


def get_claims(authorization: str | None = Header(default=None)) -> dict[str, Any]:
    """Decode the caller's bearer token."""
    scheme, _, token = (authorization or "").partition(" ")
    if scheme.lower() != "bearer" or not token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="missing bearer token")
    try:
        return decode_access_token(token)
    except jwt.PyJWTError as exc:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid token") from exc


def current_actor_can_manage_accounts(claims: dict[str, Any]) -> bool:
    return DISABLE_USERS_CAP in claims.get("scopes", [])


def require_account_manager(claims: dict[str, Any] = Depends(get_claims)) -> str:
    """Return the acting account id when it holds the manage-accounts capability."""
    if not current_actor_can_manage_accounts(claims):
        logger.info("denied account management to %s", claims.get("sub"))
        raise AuthorizationDenied(f"{DISABLE_USERS_CAP} capability required")
    return str(claims["sub"])


def register_error_handlers(app: FastAPI) -> None:
    """Map domain errors raised outside route bodies to HTTP responses."""

    @app.exception_handler(AuthorizationDenied)
    async def _authorization_denied(request: Request, exc: AuthorizationDenied) -> JSONResponse:
        return JSONResponse(status_code=status.HTTP_403_FORBIDDEN, content={"detail": str(exc)})


@router.post("/token", response_model=TokenResponse)
def issue_token(
    payload: TokenRequest,
    service: AccountService = Depends(get_service),
) -> TokenResponse:
    """Authenticate with login (or email) and password, rejecting disabled accounts."""
    try:
        bundle = service.authenticate(payload.login, payload.password)
    except InvalidCredentials as exc:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(exc)) from exc
    except AccountDisabledError as exc:
        raise _http_error_from_disabled(exc) from exc
    return TokenResponse.from_bundle(bundle)


@router.post("/credentials/verify", response_model=CredentialCheckResponse)
def verify_credentials(
    payload: TokenRequest,
    response: Response,
    service: AccountService = Depends(get_service),
) -> CredentialCheckResponse:
    """Check API credentials for another service, reporting every error found."""
    account, errors = service.check_api_credentials(payload.login, payload.password)
    if errors:
        codes = {code for code, _ in errors}
        response.status_code = (
            status.HTTP_403_FORBIDDEN if ACCOUNT_DISABLED_ERROR in codes else status.HTTP_401_UNAUTHORIZED
        )
        return CredentialCheckResponse(
            valid=False,
            errors=[CredentialError(code=code, message=message) for code, message in errors],
        )
    return CredentialCheckResponse(valid=True, account_id=account.account_id)


@router.post("/token/refresh", response_model=TokenResponse)
def refresh_token(
    payload: RefreshTokenRequest,
    service: AccountService = Depends(get_service),
) -> TokenResponse:
    try:
        bundle = service.refresh_access_token(payload.refresh_token)
    except AccountDisabledError as exc:
        raise _http_error_from_disabled(exc) from exc
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    return TokenResponse.from_bundle(bundle)


@router.get("/accounts", response_model=AccountListResponse)
def list_accounts(
    service: AccountService = Depends(get_service),
    actor: str = Depends(require_account_manager),
) -> AccountListResponse:
    """List accounts with their disabled state."""
    return AccountListResponse(
        items=[AccountResponse.from_domain(account) for account in service.list_accounts()]
    )


@router.get("/accounts/{account_id}", response_model=AccountResponse)
def get_account(
    account_id: str,
    service: AccountService = Depends(get_service),
    actor: str = Depends(require_account_manager),
) -> AccountResponse:
    """Retrieve a single account with its disabled state."""
    account = service.get_account(account_id)
    if account is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="account not found")
    return AccountResponse.from_domain(account)


@router.put("/accounts/{account_id}/disabled", response_model=AccountResponse)
def set_account_disabled(
    account_id: str,
    payload: DisabledStateRequest,
    service: AccountService = Depends(get_service),
    actor: str = Depends(require_account_manager),
) -> AccountResponse:
    """Enable or disable one account's ability to log in."""
    try:
        changed = service.set_account_disabled(account_id, payload.disabled, actor=actor)
    except AccountNotFound as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc

    account = service.get_account(account_id)
    if account is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="account not found")
    if not changed:
        if account.is_administrator:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="administrators cannot be disabled",
            )
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail="account directory rejected the update")
    return AccountResponse.from_domain(account)


@router.post("/accounts/bulk", response_model=BulkActionResponse)
def bulk_action(
    payload: BulkActionRequest,
    service: AccountService = Depends(get_service),
    actor: str = Depends(require_account_manager),
) -> BulkActionResponse:
    """Apply a bulk enable/disable; administrators are skipped and not counted."""
    try:
        result = service.apply_bulk_action(
            BulkActionInput(
                action=payload.action,
                account_ids=payload.account_ids,
                identifiers=payload.identifiers,
                select_all=payload.all,
            ),
            actor=actor,
        )
    except CallerInputError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    return BulkActionResponse(action=result.action, count=result.count, message=result.message)


@router.get("/audit/logs", response_model=AuditLogResponse)
def list_audit_logs(
    account_id: str | None = Query(default=None),
    event_type: str | None = Query(default=None),
    created_after: datetime | None = Query(default=None),
    created_before: datetime | None = Query(default=None),
    limit: int = Query(default=50, ge=1, le=100),
    cursor: str | None = Query(default=None),
    service: AccountService = Depends(get_service),
    actor: str = Depends(require_account_manager),
) -> AuditLogResponse:
    """Return paginated audit events with optional filtering."""
    try:
        records, next_cursor = service.list_audit_events(
            account_id=account_id,
            event_type=event_type,
            created_after=created_after,
            created_before=created_before,
            limit=limit,
            cursor=cursor,
        )
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc

    items = [
        AuditLogEntry(
            audit_id=record.audit_id,
            account_id=record.account_id,
            event_type=record.event_type,
            actor=record.actor,
            metadata=record.metadata,
            created_at=record.created_at,
        )
        for record in records
    ]
    return AuditLogResponse(items=items, next_cursor=next_cursor)


def _http_error_from_disabled(exc: AccountDisabledError) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_403_FORBIDDEN,
        detail={"code": exc.code, "message": exc.message},
    )
