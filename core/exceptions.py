"""
Error taxonomy for the auth backend.

HTTP-facing errors subclass HTTPException so services can raise them directly
and FastAPI renders them as {"detail": ...}. DependencyDegraded and
VerificationError never reach the client as-is: callers catch them.
"""

from typing import Optional
from fastapi import HTTPException
from starlette import status


class AuthenticationError(HTTPException):
    """Missing, malformed, expired or revoked credentials (401)."""

    def __init__(self, detail: str = "Could not validate credentials."):
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=detail,
            headers={"WWW-Authenticate": "Bearer"},
        )


class AuthorizationError(HTTPException):
    """Valid identity without the required permission (403)."""

    def __init__(self, detail: str = "Access denied"):
        super().__init__(status_code=status.HTTP_403_FORBIDDEN, detail=detail)


class NotFoundError(HTTPException):
    """Referenced entity is absent. Some endpoints report this as 403."""

    def __init__(self, detail: str = "Not found", status_code: int = status.HTTP_404_NOT_FOUND):
        super().__init__(status_code=status_code, detail=detail)


class ValidationError(HTTPException):
    """Malformed or rejected input (400)."""

    def __init__(self, detail: str = "Invalid request"):
        super().__init__(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)


class DependencyDegraded(Exception):
    """A soft dependency (cache, secondary store) is unavailable."""

    def __init__(self, dependency: str, original_error: Optional[Exception] = None):
        message = f"{dependency} unavailable"
        if original_error is not None:
            message = f"{message}: {original_error}"
        super().__init__(message)
        self.dependency = dependency
        self.original_error = original_error
