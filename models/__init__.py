from models.users import User
from models.roles import Role, Permission, role_permissions
from models.tokens import TokenRecord

__all__ = ["User", "Role", "Permission", "role_permissions", "TokenRecord"]
