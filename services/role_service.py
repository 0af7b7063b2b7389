from sqlalchemy.orm import Session

from core.config import settings
from core.exceptions import NotFoundError, ValidationError
from models.roles import Role, Permission
from schemas.role_schemas import RoleCreate, RoleUpdate, PermissionCreate, PermissionUpdate
from utils.logger import get_logger

logger = get_logger(__name__)

DEFAULT_PERMISSIONS = {
    "create_note": "Create notes",
    "read_note": "Read own notes",
    "update_note": "Update own notes",
    "delete_note": "Delete own notes",
    "manage_tags": "Create, update and delete tags",
    "manage_users": "Administer user accounts",
    "manage_roles": "Create, update and delete roles",
    "manage_permissions": "Create, update and delete permissions",
    "manage_system": "Inspect system status and token storage",
}

DEFAULT_USER_PERMISSIONS = ("create_note", "read_note", "update_note", "delete_note", "manage_tags")


class RoleService:

    @staticmethod
    def ensure_default_roles(db: Session) -> Role:
        """
        Idempotently seeds the built-in permissions and the default and admin
        roles. Existing rows are left as they are, except that a soft-deleted
        default role is restored.

        Returns:
            The default role
        """
        permissions = {}
        for name, description in DEFAULT_PERMISSIONS.items():
            permission = db.query(Permission).filter(Permission.name == name).first()
            if permission is None:
                permission = Permission(name=name, description=description)
                db.add(permission)
            permissions[name] = permission

        default_role = db.query(Role).filter(Role.name == settings.DEFAULT_ROLE).first()
        if default_role is None:
            default_role = Role(
                name=settings.DEFAULT_ROLE,
                description="Default role for registered users",
                permissions=[permissions[name] for name in DEFAULT_USER_PERMISSIONS],
            )
            db.add(default_role)
            logger.info("Default role created", extra={"role": settings.DEFAULT_ROLE})
        elif default_role.is_deleted:
            default_role.is_deleted = False
            default_role.deleted_at = None
            logger.warning("Default role was deleted and has been restored")

        admin_role = db.query(Role).filter(Role.name == settings.ADMIN_ROLE).first()
        if admin_role is None:
            db.add(Role(
                name=settings.ADMIN_ROLE,
                description="Administrators",
                permissions=list(permissions.values()),
            ))
            logger.info("Admin role created", extra={"role": settings.ADMIN_ROLE})

        db.commit()
        db.refresh(default_role)
        return default_role

    # ---- roles ---------------------------------------------------------

    @staticmethod
    def list_roles(db: Session) -> list[Role]:
        return db.query(Role).filter(Role.is_deleted == False).order_by(Role.id).all()

    @staticmethod
    def get_role(db: Session, role_id: int) -> Role:
        role = db.query(Role).filter(Role.id == role_id, Role.is_deleted == False).one_or_none()
        if not role:
            raise NotFoundError("Role not found")
        return role

    @staticmethod
    def _valid_permissions(db: Session, permission_ids: list[int]) -> list[Permission]:
        if not permission_ids:
            return []
        wanted = set(permission_ids)
        found = db.query(Permission).filter(
            Permission.id.in_(wanted),
            Permission.is_deleted == False
        ).all()
        if len(found) != len(wanted):
            raise ValidationError("One or more permissions are invalid")
        return found

    @staticmethod
    def create_role(db: Session, body: RoleCreate) -> Role:
        # names stay reserved by soft-deleted roles (unique column)
        existing = db.query(Role).filter(Role.name == body.name).first()
        if existing:
            raise ValidationError("Role with this name already exists")

        role = Role(
            name=body.name,
            description=body.description,
            permissions=RoleService._valid_permissions(db, body.permissions),
        )
        db.add(role)
        db.commit()
        db.refresh(role)

        logger.info("Role created", extra={"role_id": role.id, "role": role.name})
        return role

    @staticmethod
    def update_role(db: Session, role_id: int, body: RoleUpdate) -> Role:
        role = RoleService.get_role(db, role_id)

        if role.name == settings.DEFAULT_ROLE and body.name != settings.DEFAULT_ROLE:
            raise ValidationError("The default role cannot be renamed")

        existing = db.query(Role).filter(
            Role.name == body.name,
            Role.id != role_id
        ).first()
        if existing:
            raise ValidationError("Another role with this name already exists")

        role.name = body.name
        role.description = body.description
        role.permissions = RoleService._valid_permissions(db, body.permissions)
        db.commit()
        db.refresh(role)

        logger.info("Role updated", extra={"role_id": role.id, "role": role.name})
        return role

    @staticmethod
    def delete_role(db: Session, role_id: int) -> None:
        role = RoleService.get_role(db, role_id)
        if role.name == settings.DEFAULT_ROLE:
            raise ValidationError("The default role cannot be deleted")

        role.soft_delete()
        db.commit()
        logger.info("Role deleted", extra={"role_id": role_id})

    # ---- permissions ---------------------------------------------------

    @staticmethod
    def list_permissions(db: Session) -> list[Permission]:
        return db.query(Permission).filter(Permission.is_deleted == False).order_by(Permission.id).all()

    @staticmethod
    def get_permission(db: Session, permission_id: int) -> Permission:
        permission = db.query(Permission).filter(
            Permission.id == permission_id,
            Permission.is_deleted == False
        ).one_or_none()
        if not permission:
            raise NotFoundError("Permission not found")
        return permission

    @staticmethod
    def create_permission(db: Session, body: PermissionCreate) -> Permission:
        if db.query(Permission).filter(Permission.name == body.name).first():
            raise ValidationError("Permission with this name already exists")

        permission = Permission(name=body.name, description=body.description)
        db.add(permission)
        db.commit()
        db.refresh(permission)
        return permission

    @staticmethod
    def update_permission(db: Session, permission_id: int, body: PermissionUpdate) -> Permission:
        permission = RoleService.get_permission(db, permission_id)

        if body.name is not None and body.name != permission.name:
            if db.query(Permission).filter(Permission.name == body.name).first():
                raise ValidationError("Permission with this name already exists")
            permission.name = body.name
        if body.description is not None:
            permission.description = body.description

        db.commit()
        db.refresh(permission)
        return permission

    @staticmethod
    def delete_permission(db: Session, permission_id: int) -> None:
        permission = RoleService.get_permission(db, permission_id)
        permission.soft_delete()
        db.commit()
        logger.info("Permission deleted", extra={"permission_id": permission_id})
