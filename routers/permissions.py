from fastapi import APIRouter, Depends, Request
from starlette import status

from middleware.rate_limiter import limiter
from schemas.role_schemas import PermissionCreate, PermissionUpdate, PermissionOut
from services.role_service import RoleService
from utils.deps import db_dependency, user_dependency, require_permission


router = APIRouter(
    prefix="/permissions",
    tags=["permissions"]
)

manage_permissions = [Depends(require_permission("manage_permissions"))]


@router.get("", response_model=list[PermissionOut])
async def list_permissions(user: user_dependency, db: db_dependency):
    return RoleService.list_permissions(db)


@router.post("", status_code=status.HTTP_201_CREATED, response_model=PermissionOut,
             dependencies=manage_permissions)
@limiter.limit("20/minute")
async def create_permission(request: Request, body: PermissionCreate, db: db_dependency):
    return RoleService.create_permission(db, body)


@router.put("/{permission_id}", response_model=PermissionOut, dependencies=manage_permissions)
@limiter.limit("20/minute")
async def update_permission(request: Request, permission_id: int, body: PermissionUpdate, db: db_dependency):
    return RoleService.update_permission(db, permission_id, body)


@router.delete("/{permission_id}", dependencies=manage_permissions)
@limiter.limit("20/minute")
async def delete_permission(request: Request, permission_id: int, db: db_dependency):
    """
    Soft delete. Roles keep the link row but the permission stops resolving.
    """
    RoleService.delete_permission(db, permission_id)
    return {"message": "Permission deleted successfully"}
