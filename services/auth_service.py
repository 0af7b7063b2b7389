from typing import Optional
from fastapi import HTTPException
from sqlalchemy import or_
from sqlalchemy.orm import Session
from starlette import status

from core.config import settings
from core.exceptions import ValidationError
from models.roles import Role
from models.users import User
from schemas.auth_schemas import SignupRequest, UserSummary
from utils.hashing import verify_password, get_password_hash, VerificationError
from utils.logger import get_logger
from utils.permission_refs import permission_keys

logger = get_logger(__name__)


class AuthService:

    @staticmethod
    def get_role_by_name(db: Session, name: str) -> Optional[Role]:
        return db.query(Role).filter(Role.name == name, Role.is_deleted == False).first()

    @staticmethod
    def get_role_by_id(db: Session, role_id: int) -> Optional[Role]:
        return db.query(Role).filter(Role.id == role_id, Role.is_deleted == False).one_or_none()

    @staticmethod
    def role_permissions(role: Optional[Role]) -> list:
        if role is None or role.is_deleted:
            return []
        return permission_keys(role.permissions)

    @staticmethod
    def create_user(request: SignupRequest, db: Session) -> tuple[User, Role]:
        """
        Creates a new user attached to the default role.

        Flow:
        1. Reject duplicate email or username
        2. Resolve the default role (must have been seeded)
        3. Hash the password and store the user
        """
        email = request.email.lower().strip()
        username = request.username or email

        existing_user = db.query(User).filter(
            or_(User.email == email, User.username == username)
        ).first()
        if existing_user:
            logger.warning(
                "Registration attempt with existing email or username",
                extra={"email": email}
            )
            raise ValidationError("User already exists")

        role = AuthService.get_role_by_name(db, settings.DEFAULT_ROLE)
        if not role:
            logger.error(
                "Default role missing during signup",
                extra={"role": settings.DEFAULT_ROLE}
            )
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="Default role not found. Run role initialization first."
            )

        model = User(
            email=email,
            username=username,
            first_name=request.first_name,
            last_name=request.last_name,
            hashed_password=get_password_hash(request.password),
            role_id=role.id,
            is_admin=False,
        )

        db.add(model)
        db.commit()
        db.refresh(model)

        return model, role

    @staticmethod
    def authenticate_user(email: str, password: str, db: Session) -> User:
        email = email.lower().strip()
        user = db.query(User).filter(User.email == email, User.is_deleted == False).first()

        if not user:
            logger.warning(
                "Login failed - user not found",
                extra={"email": email}
            )
            raise ValidationError("Invalid credentials")

        try:
            password_ok = verify_password(password, user.hashed_password)
        except VerificationError as e:
            logger.error(
                "Password digest could not be verified",
                extra={"user_id": user.id, "error": str(e)}
            )
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="Error verifying credentials"
            )

        if not password_ok:
            logger.warning(
                "Login failed - invalid password",
                extra={"user_id": user.id, "email": email}
            )
            raise ValidationError("Invalid credentials")

        logger.debug(
            "User authenticated successfully",
            extra={"user_id": user.id, "email": email}
        )

        return user

    @staticmethod
    def get_user_role(user: User, db: Session) -> Role:
        """
        Role of an authenticated user, with its permissions.

        A user whose role reference is missing or points at a deleted role
        cannot be issued tokens.
        """
        if user.role_id is None:
            logger.error("User role not found", extra={"user_id": user.id})
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="User role not found"
            )

        role = AuthService.get_role_by_id(db, user.role_id)
        if not role:
            logger.error(
                "Role not found in database",
                extra={"user_id": user.id, "role_id": user.role_id}
            )
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="Role not found"
            )
        return role

    @staticmethod
    def get_active_user_by_id(db: Session, user_id) -> User | None:
        return db.query(User).filter(User.id == user_id, User.is_deleted == False).one_or_none()

    @staticmethod
    def user_summary(user: User, role: Optional[Role], permissions: Optional[list] = None) -> UserSummary:
        role_name = role.name if role is not None else None
        return UserSummary(
            id=user.id,
            username=user.username or "",
            first_name=user.first_name or "",
            last_name=user.last_name or "",
            email=user.email or "",
            bio=user.bio or "",
            role=role_name,
            permissions=permissions if permissions is not None else AuthService.role_permissions(role),
            is_admin=bool(user.is_admin) or role_name == settings.ADMIN_ROLE,
        )
