from typing import Optional, Union
from pydantic import BaseModel


class IdentityContext(BaseModel):
    """
    Canonical view of an authenticated caller, built from access token claims.

    Downstream authorization reads this, never the raw claims.
    """
    id: int
    username: str = ""
    email: str = ""
    role: str = "user"
    role_id: Optional[Union[int, str]] = None
    permissions: list[Union[int, str]] = []
    is_admin: bool = False
