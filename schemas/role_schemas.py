from typing import Optional
from pydantic import BaseModel, ConfigDict, field_validator


class PermissionCreate(BaseModel):
    name: str
    description: str

    @field_validator('name')
    @classmethod
    def validate_name(cls, value):
        value = value.strip()
        if not value:
            raise ValueError('Permission name is required')
        return value


class PermissionUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None


class PermissionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    description: Optional[str] = ""


class RoleCreate(BaseModel):
    name: str
    description: str = ""
    permissions: list[int] = []

    @field_validator('name')
    @classmethod
    def validate_name(cls, value):
        value = value.strip()
        if not value:
            raise ValueError('Role name is required')
        return value


class RoleUpdate(RoleCreate):
    pass


class RoleOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    description: Optional[str] = ""
    permissions: list[PermissionOut] = []

    @field_validator('permissions', mode='before')
    @classmethod
    def drop_deleted(cls, value):
        return [p for p in value or [] if not getattr(p, "is_deleted", False)]
