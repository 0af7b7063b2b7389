from core.database import SessionLocal
from typing import Annotated, Optional
from fastapi import Depends, Request
from jose import JWTError, ExpiredSignatureError
from pydantic import ValidationError as SchemaError
from sqlalchemy.orm import Session

from core.cache import CacheClient
from core.config import settings
from core.exceptions import AuthenticationError, AuthorizationError
from schemas.identity import IdentityContext
from services.blacklist_service import BlacklistService
from services.permission_service import PermissionService, UNAUTHENTICATED, ROLE_NOT_FOUND
from services.token_service import TokenService
from utils.logger import get_logger

logger = get_logger(__name__)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()

db_dependency = Annotated[Session, Depends(get_db)]


# Used when the lifespan did not attach a cache: every call degrades
_disabled_cache = CacheClient(url=None)


def get_cache(request: Request) -> CacheClient:
    return getattr(request.app.state, "cache", None) or _disabled_cache

cache_dependency = Annotated[CacheClient, Depends(get_cache)]


def get_bearer_token(request: Request) -> Optional[str]:
    """Token from an `Authorization: Bearer <token>` header, None otherwise."""
    authorization = request.headers.get("Authorization")
    if not authorization or not authorization.startswith("Bearer "):
        return None
    token = authorization[len("Bearer "):].strip()
    return token or None


def get_client_info(request: Request) -> tuple[str, str]:
    user_agent = request.headers.get("user-agent", "unknown")
    ip_address = request.client.host if request.client else "unknown"
    return user_agent, ip_address


def claims_to_identity(claims: dict) -> IdentityContext:
    """
    Normalize decoded access token claims into an IdentityContext.

    Raises:
        AuthenticationError: no user id under `id` or `sub`, or unusable claims
    """
    user_id = claims.get("id")
    if user_id is None:
        user_id = claims.get("sub")
    if user_id is None:
        logger.warning("Token doesn't contain a user ID")
        raise AuthenticationError("Invalid token: user ID missing")

    role = claims.get("role") or settings.DEFAULT_ROLE
    role_id = claims.get("role_id")
    if isinstance(role, dict):
        role_id = role.get("id", role_id)
        role = role.get("name") or settings.DEFAULT_ROLE

    try:
        return IdentityContext(
            id=user_id,
            username=claims.get("username") or "",
            email=claims.get("email") or "",
            role=role,
            role_id=role_id,
            permissions=claims.get("permissions") or [],
            is_admin=bool(claims.get("is_admin")) or role == settings.ADMIN_ROLE,
        )
    except SchemaError:
        raise AuthenticationError("Invalid token")


def get_current_user(request: Request, cache: cache_dependency) -> IdentityContext:
    token = get_bearer_token(request)
    if token is None:
        raise AuthenticationError("No token, authorization denied")

    try:
        claims = TokenService.decode_access_token(token)
    except ExpiredSignatureError:
        raise AuthenticationError("Token expired")
    except JWTError as e:
        logger.info(f"Token verification failed: {e}")
        raise AuthenticationError("Invalid token")

    identity = claims_to_identity(claims)

    if BlacklistService.is_blacklisted(cache, token):
        logger.warning("Blacklisted token presented", extra={"user_id": identity.id})
        raise AuthenticationError("Token has been revoked")

    return identity


user_dependency = Annotated[IdentityContext, Depends(get_current_user)]


def require_permission(permission: str):
    """
    Returns a dependency that lets the request through only when the caller
    holds `permission`.

    Usage:
        @router.post(..., dependencies=[Depends(require_permission("manage_roles"))])
    """

    def permission_checker(user: user_dependency, db: db_dependency) -> IdentityContext:
        decision = PermissionService.authorize(db, user, permission)
        if decision.allowed:
            return user
        if decision.reason == UNAUTHENTICATED:
            raise AuthenticationError("Authentication required")
        if decision.reason == ROLE_NOT_FOUND:
            raise AuthorizationError("Role not found")
        raise AuthorizationError(f"Access denied. You don't have permission: {permission}")

    return permission_checker
