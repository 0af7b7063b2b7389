from fastapi import APIRouter, Depends, Request
from starlette import status

from middleware.rate_limiter import limiter
from schemas.role_schemas import RoleCreate, RoleUpdate, RoleOut
from services.role_service import RoleService
from utils.deps import db_dependency, user_dependency, require_permission


router = APIRouter(
    prefix="/roles",
    tags=["roles"]
)

manage_roles = [Depends(require_permission("manage_roles"))]


@router.get("", response_model=list[RoleOut])
async def list_roles(user: user_dependency, db: db_dependency):
    return RoleService.list_roles(db)


@router.get("/{role_id}", response_model=RoleOut, dependencies=manage_roles)
async def get_role(role_id: int, db: db_dependency):
    return RoleService.get_role(db, role_id)


@router.post("", status_code=status.HTTP_201_CREATED, response_model=RoleOut, dependencies=manage_roles)
@limiter.limit("20/minute")
async def create_role(request: Request, body: RoleCreate, db: db_dependency):
    """
    Create a role. `permissions` lists permission ids, all of which must exist.
    """
    return RoleService.create_role(db, body)


@router.put("/{role_id}", response_model=RoleOut, dependencies=manage_roles)
@limiter.limit("20/minute")
async def update_role(request: Request, role_id: int, body: RoleUpdate, db: db_dependency):
    return RoleService.update_role(db, role_id, body)


@router.delete("/{role_id}", dependencies=manage_roles)
@limiter.limit("20/minute")
async def delete_role(request: Request, role_id: int, db: db_dependency):
    RoleService.delete_role(db, role_id)
    return {"message": "Role deleted successfully"}
