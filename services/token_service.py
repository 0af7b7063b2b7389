import secrets
from datetime import timedelta
from typing import Optional

from fastapi import HTTPException, status
from jose import jwt, JWTError, ExpiredSignatureError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from core.cache import CacheClient
from core.config import settings
from core.exceptions import DependencyDegraded, NotFoundError, ValidationError
from models.tokens import TokenRecord, ACCESS, REFRESH
from models.users import User
from services.auth_service import AuthService
from utils.datetime_utils import utcnow, ensure_utc, is_past
from utils.logger import get_logger, mask_token
from utils.permission_refs import permission_keys

logger = get_logger(__name__)


def refresh_cache_key(user_id) -> str:
    return f"refresh:{user_id}"


class TokenService:
    """
    Handles all token operations: issuing, verification, durable storage,
    the Redis refresh-token mirror, rotation and revocation.
    """

    # ---- issuing -------------------------------------------------------

    @staticmethod
    def resolve_permissions(user: User, permissions: Optional[list] = None) -> list:
        """
        Permission list embedded in an access token.

        An explicit, non-empty list wins. Otherwise the list is derived from
        the user's role, whose entries may be loaded Permission rows or bare ids.
        """
        if permissions:
            return list(permissions)
        role = user.role
        if role is None or role.is_deleted:
            return []
        return permission_keys(role.permissions)

    @staticmethod
    def create_access_token(user: User, permissions: Optional[list] = None, expires_delta: timedelta = None) -> str:
        """
        Creates a signed access token (default: 1 hour).

        Args:
            user: User with its role relationship available
            permissions: Permission names to embed; derived from the role when empty
            expires_delta: Override for the token lifetime

        Returns:
            JWT access token string
        """
        if expires_delta is None:
            expires_delta = timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)

        role = user.role
        role_name = role.name if role is not None else settings.DEFAULT_ROLE
        role_id = role.id if role is not None else user.role_id

        payload = {
            "id": user.id,
            "sub": str(user.id),
            "username": user.username or "",
            "first_name": user.first_name or "",
            "last_name": user.last_name or "",
            "email": user.email or "",
            "role": role_name,
            "role_id": role_id,
            "permissions": TokenService.resolve_permissions(user, permissions),
            "is_admin": bool(user.is_admin) or role_name == settings.ADMIN_ROLE,
            "type": "access",
            "exp": utcnow() + expires_delta,
        }

        return jwt.encode(payload, settings.ACCESS_TOKEN_SECRET, algorithm=settings.ALGORITHM)

    @staticmethod
    def create_refresh_token(user: User, expires_delta: timedelta = None) -> TokenRecord:
        """
        Creates a signed refresh token (default: 7 days) and the record that
        will hold it. The record is not added to any session.

        The jti keeps two tokens issued for the same user in the same second
        distinct.
        """
        if expires_delta is None:
            expires_delta = timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS)

        expires_at = utcnow() + expires_delta

        payload = {
            "id": user.id,
            "sub": str(user.id),
            "role": user.role_id,
            "jti": secrets.token_urlsafe(16),
            "type": "refresh",
            "exp": expires_at,
        }

        token = jwt.encode(payload, settings.REFRESH_TOKEN_SECRET, algorithm=settings.ALGORITHM)

        return TokenRecord(
            user_id=user.id,
            token=token,
            kind=REFRESH,
            revoked=False,
            expires_at=expires_at,
        )

    # ---- verification --------------------------------------------------

    @staticmethod
    def decode_with_keys(token: str, keys: list[str]) -> dict:
        """
        Verify a token against an ordered key ring.

        The first key that verifies wins. When none does, the error raised by
        the first key is re-raised so callers see why the current key failed.
        """
        if not keys:
            raise JWTError("No signing keys configured")

        first_error = None
        for index, key in enumerate(keys):
            try:
                claims = jwt.decode(token, key, algorithms=[settings.ALGORITHM])
                if index > 0:
                    logger.info("Token verified with a retired signing key", extra={"key_index": index})
                return claims
            except JWTError as e:
                if first_error is None:
                    first_error = e

        raise first_error

    @staticmethod
    def decode_access_token(token: str) -> dict:
        claims = TokenService.decode_with_keys(token, settings.access_token_keys)
        token_type = claims.get("type")
        if token_type is not None and token_type != "access":
            raise JWTError("Invalid token type. Access token required.")
        return claims

    @staticmethod
    def decode_refresh_token(token: str) -> dict:
        claims = jwt.decode(token, settings.REFRESH_TOKEN_SECRET, algorithms=[settings.ALGORITHM])
        token_type = claims.get("type")
        if token_type is not None and token_type != "refresh":
            raise JWTError("Invalid token type. Refresh token required.")
        return claims

    # ---- durable store -------------------------------------------------

    @staticmethod
    def persist_access(db: Session, user_id: int, token: str,
                       user_agent: Optional[str] = None, ip_address: Optional[str] = None) -> TokenRecord:
        record = TokenRecord(
            user_id=user_id,
            token=token,
            kind=ACCESS,
            revoked=False,
            expires_at=utcnow() + timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES),
            user_agent=user_agent or "unknown",
            ip_address=ip_address or "unknown",
        )
        db.add(record)
        db.commit()
        return record

    @staticmethod
    def persist_refresh(db: Session, record: TokenRecord) -> TokenRecord:
        db.add(record)
        db.commit()
        return record

    @staticmethod
    def revoke(db: Session, token_value: str) -> Optional[str]:
        """
        Marks the durable record of a token as revoked.

        Access records are checked first, refresh records second.

        Returns:
            The kind of record revoked, or None if the token is unknown.
        """
        for kind in (ACCESS, REFRESH):
            updated = db.query(TokenRecord).filter(
                TokenRecord.token == token_value,
                TokenRecord.kind == kind
            ).update({"revoked": True})
            if updated:
                db.commit()
                logger.info(f"Token marked as revoked ({kind})")
                return kind

        logger.info("Token not found in any record kind")
        return None

    @staticmethod
    def discard_expired_refresh(db: Session, token_value: str) -> int:
        """
        Deletes the record of a refresh token whose signature has expired.
        The signature is still checked; only the expiry is ignored.
        """
        try:
            claims = jwt.decode(
                token_value,
                settings.REFRESH_TOKEN_SECRET,
                algorithms=[settings.ALGORITHM],
                options={"verify_exp": False}
            )
        except JWTError:
            return 0

        user_id = claims.get("id") or claims.get("sub")
        count = db.query(TokenRecord).filter(
            TokenRecord.user_id == user_id,
            TokenRecord.token == token_value,
            TokenRecord.kind == REFRESH
        ).delete(synchronize_session=False)
        db.commit()
        if count:
            logger.info("Expired refresh token record deleted", extra={"user_id": user_id})
        return count

    @staticmethod
    def revoke_all_user_tokens(user_id: int, db: Session) -> int:
        """
        Revokes every live token record of a user (logout from all devices).
        """
        count = db.query(TokenRecord).filter(
            TokenRecord.user_id == user_id,
            TokenRecord.revoked == False
        ).update({"revoked": True})
        db.commit()
        return count

    @staticmethod
    def purge_expired_records(db: Session) -> int:
        """
        Deletes records whose expiry is older than the retention window.
        The window keeps recently expired tokens around for audit.
        """
        cutoff = utcnow() - timedelta(days=settings.TOKEN_RECORD_RETENTION_DAYS)
        count = db.query(TokenRecord).filter(
            TokenRecord.expires_at < cutoff
        ).delete(synchronize_session=False)
        db.commit()
        if count:
            logger.info("Purged expired token records", extra={"count": count})
        return count

    # ---- cache mirror --------------------------------------------------

    @staticmethod
    def mirror_refresh(cache: CacheClient, user_id: int, token: str, ttl_seconds: Optional[int] = None) -> bool:
        """
        Best-effort copy of the user's current refresh token into Redis.
        The database stays authoritative, so a failure is only logged.
        """
        if ttl_seconds is None:
            ttl_seconds = settings.REFRESH_TOKEN_EXPIRE_DAYS * 24 * 60 * 60
        try:
            cache.set(refresh_cache_key(user_id), token, ex=ttl_seconds)
            return True
        except DependencyDegraded as e:
            logger.warning(f"Refresh token not mirrored to cache: {e}", extra={"user_id": user_id})
            return False

    @staticmethod
    def clear_refresh_mirror(cache: CacheClient, user_id) -> bool:
        try:
            cache.delete(refresh_cache_key(user_id))
            return True
        except DependencyDegraded as e:
            logger.warning(f"Refresh token mirror not cleared: {e}", extra={"user_id": user_id})
            return False

    @staticmethod
    def read_refresh_mirror(cache: CacheClient, user_id) -> Optional[str]:
        try:
            return cache.get(refresh_cache_key(user_id))
        except DependencyDegraded as e:
            logger.warning(f"Cache error, skipping cache check: {e}", extra={"user_id": user_id})
            return None

    @staticmethod
    def reconcile(db: Session, cache: CacheClient, user_id) -> dict:
        """
        Compares the database and cache views of a user's refresh token.

        Each side is looked up independently; a failing side counts as
        "not found". `match` is None unless both sides returned a token.
        """
        db_token = None
        db_value = None
        try:
            record = db.query(TokenRecord).filter(
                TokenRecord.user_id == user_id,
                TokenRecord.kind == REFRESH,
                TokenRecord.revoked == False,
                TokenRecord.expires_at > utcnow()
            ).order_by(TokenRecord.created_at.desc(), TokenRecord.id.desc()).first()

            if record:
                db_value = record.token
                db_token = {
                    "id": record.id,
                    "userId": record.user_id,
                    "kind": record.kind,
                    "revoked": record.revoked,
                    "expiresAt": ensure_utc(record.expires_at).isoformat(),
                    "token": mask_token(record.token),
                    "source": "database",
                }
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Database error when finding token: {e}", extra={"user_id": user_id})

        cache_token = None
        cache_value = None
        try:
            cache_value = cache.get(refresh_cache_key(user_id))
            if cache_value:
                cache_token = {
                    "key": refresh_cache_key(user_id),
                    "token": mask_token(cache_value),
                    "source": "cache",
                }
        except DependencyDegraded as e:
            logger.warning(f"Cache error when finding token: {e}", extra={"user_id": user_id})

        match = None
        if db_token is not None and cache_token is not None:
            match = db_value == cache_value

        if match is True:
            logger.info("Token matching successful", extra={"user_id": user_id})
        elif match is False:
            logger.warning("Token mismatch between database and cache", extra={"user_id": user_id})
        else:
            logger.info("Token reconciliation indeterminate", extra={"user_id": user_id})

        return {"db_token": db_token, "cache_token": cache_token, "match": match}

    # ---- flows ---------------------------------------------------------

    @staticmethod
    def issue_session(user: User, db: Session, cache: CacheClient, permissions: Optional[list] = None,
                      user_agent: Optional[str] = None, ip_address: Optional[str] = None) -> dict:
        """
        Creates access + refresh tokens for a freshly authenticated user.

        Order: refresh record, access audit record, then the cache mirror.

        Returns:
            Dictionary with token and refresh_token
        """
        access_token = TokenService.create_access_token(user, permissions)
        refresh_record = TokenService.create_refresh_token(user)

        TokenService.persist_refresh(db, refresh_record)
        TokenService.persist_access(db, user.id, access_token, user_agent, ip_address)
        TokenService.mirror_refresh(cache, user.id, refresh_record.token)

        return {"token": access_token, "refresh_token": refresh_record.token}

    @staticmethod
    def refresh_session(refresh_token: Optional[str], db: Session, cache: CacheClient,
                        user_agent: Optional[str] = None, ip_address: Optional[str] = None) -> dict:
        """
        Validates a refresh token and rotates it.

        The old record is deleted after the new one is stored. A concurrent
        refresh holding the old token then gets "not found" (403).

        Raises:
            ValidationError: no token supplied (400)
            HTTPException: any rejection of the token (403)
        """
        if not refresh_token or not refresh_token.strip():
            raise ValidationError("Refresh token is required")

        try:
            claims = TokenService.decode_refresh_token(refresh_token)
        except ExpiredSignatureError:
            TokenService.discard_expired_refresh(db, refresh_token)
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Refresh token has expired")
        except JWTError:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Invalid token format")

        user_id = claims.get("id") or claims.get("sub")
        user = AuthService.get_active_user_by_id(db, user_id) if user_id is not None else None
        if not user:
            logger.warning("Refresh for unknown user", extra={"user_id": user_id})
            raise NotFoundError("User not found", status_code=status.HTTP_403_FORBIDDEN)

        stored = db.query(TokenRecord).filter(
            TokenRecord.user_id == user.id,
            TokenRecord.token == refresh_token,
            TokenRecord.kind == REFRESH,
            TokenRecord.revoked == False
        ).first()

        if not stored:
            logger.warning("Refresh token not found in database", extra={"user_id": user.id})
            raise NotFoundError("Refresh token not found in database", status_code=status.HTTP_403_FORBIDDEN)

        if is_past(stored.expires_at):
            logger.info("Refresh token has expired", extra={"user_id": user.id})
            db.delete(stored)
            db.commit()
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Refresh token has expired")

        cached = TokenService.read_refresh_mirror(cache, user.id)
        if cached and cached != refresh_token:
            logger.warning("Token mismatch in cache", extra={"user_id": user.id})
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Token mismatch in cache: a different session might be active"
            )

        role = user.role if user.role is not None and not user.role.is_deleted else None
        access_token = TokenService.create_access_token(user, AuthService.role_permissions(role))
        new_record = TokenService.create_refresh_token(user)

        TokenService.persist_refresh(db, new_record)

        # May already be gone if a concurrent refresh won the race
        db.query(TokenRecord).filter(TokenRecord.id == stored.id).delete(synchronize_session=False)
        db.commit()

        TokenService.persist_access(db, user.id, access_token, user_agent, ip_address)
        TokenService.mirror_refresh(cache, user.id, new_record.token)

        logger.info("Token refresh successful", extra={"user_id": user.id})

        return {"token": access_token, "refresh_token": new_record.token}
