from typing import Optional
from fastapi import APIRouter, Depends, Request
from starlette import status

from core.exceptions import NotFoundError, ValidationError
from middleware.rate_limiter import limiter
from schemas.auth_schemas import (SignupRequest, LoginRequest, LogoutRequest, RefreshTokenRequest,
    ConsolidateTokenRequest, AuthResponse, TokenPair, PermissionCheckResponse, CurrentUserResponse,
    ReconciliationReport, UserSummary, MessageResponse)
from services.auth_service import AuthService
from services.blacklist_service import BlacklistService
from services.permission_service import PermissionService
from services.token_service import TokenService
from utils.deps import (db_dependency, cache_dependency, user_dependency, get_bearer_token,
    get_client_info, require_permission)
from utils.logger import get_logger, sanitize_log_data

# Setup logger
logger = get_logger(__name__)


router = APIRouter(
    prefix="/auth",
    tags=["auth"]
)


@router.post("/signup", status_code=status.HTTP_201_CREATED, response_model=AuthResponse)
@limiter.limit("3/minute")
async def signup(request: Request, body: SignupRequest, db: db_dependency, cache: cache_dependency):
    user, role = AuthService.create_user(body, db)
    permissions = AuthService.role_permissions(role)

    user_agent, ip_address = get_client_info(request)
    tokens = TokenService.issue_session(user, db, cache, permissions, user_agent, ip_address)

    logger.info(
        "User registered successfully",
        extra={"user_id": user.id, "email": user.email}
    )

    return AuthResponse(
        user=AuthService.user_summary(user, role, permissions),
        token=tokens["token"],
        refresh_token=tokens["refresh_token"],
    )


@router.post("/login", response_model=AuthResponse)
@limiter.limit("5/minute")
async def login(request: Request, body: LoginRequest, db: db_dependency, cache: cache_dependency):
    user = AuthService.authenticate_user(body.email, body.password, db)
    role = AuthService.get_user_role(user, db)
    permissions = AuthService.role_permissions(role)

    user_agent, ip_address = get_client_info(request)
    tokens = TokenService.issue_session(user, db, cache, permissions, user_agent, ip_address)

    logger.info(
        "User logged in successfully",
        extra={"user_id": user.id, "email": user.email}
    )

    return AuthResponse(
        user=AuthService.user_summary(user, role, permissions),
        token=tokens["token"],
        refresh_token=tokens["refresh_token"],
    )


async def _read_logout_token(request: Request) -> Optional[str]:
    try:
        body = LogoutRequest.model_validate(await request.json())
    except ValueError:
        # invalid JSON and schema errors (pydantic.ValidationError is a ValueError)
        return None
    return body.refresh_token or None


@router.post("/logout", status_code=status.HTTP_200_OK, response_model=MessageResponse)
@limiter.limit("10/minute")
async def logout(request: Request, db: db_dependency, cache: cache_dependency):
    """
    Revoke the session's tokens. Always succeeds so the client can log out
    even when storage is having problems.
    The body is read leniently: a missing or malformed body counts as
    "no refresh token" rather than a validation error.
    """
    refresh_token = await _read_logout_token(request)
    access_token = get_bearer_token(request)

    logger.debug(
        "Logout request received",
        extra=sanitize_log_data({"refresh_token": refresh_token or "", "access_token": access_token or ""})
    )

    try:
        if refresh_token:
            TokenService.revoke(db, refresh_token)
        else:
            logger.info("No refresh token provided in logout request")

        if access_token:
            TokenService.revoke(db, access_token)
            BlacklistService.add(cache, access_token)
    except Exception:
        db.rollback()
        logger.exception("Error revoking tokens during logout")

    logger.info("User logged out")

    return {"message": "Logged out successfully"}


@router.post("/logout-all", status_code=status.HTTP_200_OK, response_model=MessageResponse)
@limiter.limit("5/minute")
async def logout_all(request: Request, user: user_dependency, db: db_dependency, cache: cache_dependency):
    """
    Revoke every token record of the caller (logout from all devices).
    """
    revoked = TokenService.revoke_all_user_tokens(user.id, db)
    TokenService.clear_refresh_mirror(cache, user.id)
    BlacklistService.add(cache, get_bearer_token(request))

    logger.info("User logged out from all devices", extra={"user_id": user.id, "revoked": revoked})

    return {"message": "Logged out from all devices"}


@router.post("/refresh-token", response_model=TokenPair)
@limiter.limit("10/minute")
async def refresh_token(request: Request, db: db_dependency, cache: cache_dependency,
                        body: Optional[RefreshTokenRequest] = None):
    """
    Exchange a refresh token for a new access + refresh token pair.
    """
    user_agent, ip_address = get_client_info(request)
    tokens = TokenService.refresh_session(
        body.refresh_token if body else None, db, cache, user_agent, ip_address
    )

    logger.info("Access token refreshed")

    return TokenPair(token=tokens["token"], refresh_token=tokens["refresh_token"])


@router.get("/check-permission", response_model=PermissionCheckResponse)
async def check_permission(user: user_dependency, db: db_dependency,
                           role: Optional[str] = None, permission: Optional[str] = None):
    """
    Whether the caller is an admin, has the given role, or holds the given permission.
    """
    logger.debug(
        "Permission check request",
        extra={"user_id": user.id, "requested_role": role, "requested_permission": permission}
    )

    if user.is_admin:
        return PermissionCheckResponse(has_access=True)

    if role and user.role == role:
        return PermissionCheckResponse(has_access=True)

    if permission:
        decision = PermissionService.authorize(db, user, permission)
        return PermissionCheckResponse(has_access=decision.allowed)

    return PermissionCheckResponse(has_access=False)


@router.get("/me", response_model=CurrentUserResponse)
async def get_current_user_info(user: user_dependency, db: db_dependency):
    """
    Current user with role and permissions read from the database.
    """
    model = AuthService.get_active_user_by_id(db, user.id)
    if not model:
        raise NotFoundError("User not found")

    role = model.role if model.role is not None and not model.role.is_deleted else None

    return CurrentUserResponse(user=AuthService.user_summary(model, role))


@router.get("/check-status", response_model=CurrentUserResponse)
async def check_status(user: user_dependency):
    """
    Current user as seen by the access token, without touching the database.
    """
    return CurrentUserResponse(user=UserSummary(
        id=user.id,
        username=user.username,
        email=user.email,
        role=user.role,
        permissions=user.permissions,
        is_admin=user.is_admin,
    ))


@router.post("/consolidate-token", response_model=ReconciliationReport,
             dependencies=[Depends(require_permission("manage_system"))])
async def consolidate_token(body: ConsolidateTokenRequest, db: db_dependency, cache: cache_dependency):
    """
    Compare the database and cache copies of a user's refresh token.
    `tokenId` is the user id the cache mirror is keyed by.
    """
    if body.token_id is None or body.token_id == "":
        raise ValidationError("Token ID is required")

    report = TokenService.reconcile(db, cache, body.token_id)

    return ReconciliationReport(**report)
