from dataclasses import dataclass
from typing import Any, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from core.config import settings
from models.roles import Role
from services.auth_service import AuthService
from utils.logger import get_logger
from utils.permission_refs import permission_keys

logger = get_logger(__name__)

UNAUTHENTICATED = "unauthenticated"
ROLE_NOT_FOUND = "role not found"
MISSING_PERMISSION = "missing permission"


@dataclass(frozen=True)
class PermissionDecision:
    allowed: bool
    reason: Optional[str] = None

    def __bool__(self):
        return self.allowed


def _field(source: Any, name: str, default=None):
    if source is None:
        return default
    if isinstance(source, dict):
        return source.get(name, default)
    return getattr(source, name, default)


def _role_name_and_id(identity: Any) -> tuple[Optional[str], Any]:
    """The role may be a plain name or a nested {name, id} object."""
    role = _field(identity, "role")
    role_id = _field(identity, "role_id")
    if role is None or isinstance(role, str):
        return role, role_id
    return _field(role, "name"), _field(role, "id", role_id)


def looks_like_id(value: Any) -> bool:
    if isinstance(value, bool):
        return False
    if isinstance(value, int):
        return value > 0
    return isinstance(value, str) and value.isdigit() and int(value) > 0


class PermissionService:
    """
    Decides whether an authenticated identity holds a permission.

    Cheap checks on the token claims run first. The database is consulted
    last so a stale permission snapshot in a token never denies access that
    the role currently grants.
    """

    @staticmethod
    def resolve_role(db: Session, role_name: Optional[str], role_id: Any) -> Optional[Role]:
        role = None
        if role_name:
            role = AuthService.get_role_by_name(db, role_name)
        if role is None and looks_like_id(role_id):
            role = AuthService.get_role_by_id(db, int(role_id))
        return role

    @staticmethod
    def authorize(db: Session, identity: Any, required_permission: str) -> PermissionDecision:
        """
        `identity` is normally an IdentityContext. Raw decoded claims (a dict,
        possibly with a nested `{name, id}` role) are accepted as well, so
        callers holding only a token payload can authorize without building
        the context first.
        """
        if identity is None or _field(identity, "id") is None:
            return PermissionDecision(False, UNAUTHENTICATED)

        if _field(identity, "is_admin") is True:
            logger.debug(f"Admin user bypassing permission check for: {required_permission}")
            return PermissionDecision(True)

        if required_permission in (_field(identity, "permissions") or []):
            return PermissionDecision(True)

        role_name, role_id = _role_name_and_id(identity)
        if role_name == settings.ADMIN_ROLE:
            logger.debug(f"User with admin role bypassing permission check for: {required_permission}")
            return PermissionDecision(True)

        try:
            role = PermissionService.resolve_role(db, role_name, role_id)
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(
                f"Error checking role permissions: {e}",
                extra={"role": role_name, "permission": required_permission}
            )
            return PermissionDecision(False, MISSING_PERMISSION)

        if role is None:
            logger.info(f"Role not found for name: {role_name}")
            return PermissionDecision(False, ROLE_NOT_FOUND)

        if required_permission in permission_keys(role.permissions):
            logger.debug(f"User has permission through role DB: {required_permission}")
            return PermissionDecision(True)

        logger.info(
            f"Permission denied: {required_permission}",
            extra={"user_id": _field(identity, "id"), "role": role_name}
        )
        return PermissionDecision(False, MISSING_PERMISSION)
