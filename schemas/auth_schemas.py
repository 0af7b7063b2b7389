from typing import Any, Optional, Union
from pydantic import BaseModel, ConfigDict, EmailStr, field_validator
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Snake_case in Python, camelCase on the wire. Both spellings are accepted on input."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class SignupRequest(CamelModel):
    email: EmailStr
    password: str
    username: Optional[str] = None
    first_name: str = ""
    last_name: str = ""

    @field_validator('password')
    @classmethod
    def validate_password(cls, value):
        if len(value) < 8:
            raise ValueError('Password must be at least 8 characters')
        return value

    @field_validator('username')
    @classmethod
    def validate_username(cls, value):
        if value is None:
            return value
        value = value.strip()
        if not value:
            raise ValueError('Username cannot be blank')
        return value


class LoginRequest(CamelModel):
    email: EmailStr
    password: str


class RefreshTokenRequest(CamelModel):
    # Optional on purpose: a missing token is a 400, not a schema error
    refresh_token: Optional[str] = None


class LogoutRequest(CamelModel):
    refresh_token: Optional[str] = None


class ConsolidateTokenRequest(CamelModel):
    token_id: Optional[Union[int, str]] = None


class UserSummary(CamelModel):
    id: int
    username: str = ""
    first_name: str = ""
    last_name: str = ""
    email: str = ""
    bio: str = ""
    role: Optional[str] = None
    permissions: list[Any] = []
    is_admin: bool = False


class AuthResponse(CamelModel):
    user: UserSummary
    token: str
    refresh_token: str


class TokenPair(CamelModel):
    token: str
    refresh_token: str


class PermissionCheckResponse(CamelModel):
    has_access: bool


class CurrentUserResponse(CamelModel):
    is_authenticated: bool = True
    user: UserSummary


class ReconciliationReport(CamelModel):
    db_token: Optional[dict] = None
    cache_token: Optional[dict] = None
    match: Optional[bool] = None


class MessageResponse(BaseModel):
    message: str
