from slowapi import Limiter
from slowapi.util import get_remote_address
from fastapi import Request
from jose import JWTError
from core.config import settings
from services.token_service import TokenService


def get_user_id(request: Request):
    """Rate-limit key: the access token's user id, or the client address."""
    token = request.headers.get("Authorization")
    if token and token.startswith("Bearer "):
        try:
            payload = TokenService.decode_access_token(token[len("Bearer "):].strip())
            user_id = payload.get("id") or payload.get("sub")
            if user_id:
                return f"user:{user_id}"
        except JWTError:
            pass

    return get_remote_address(request)


limiter = Limiter(
    key_func=get_user_id,
    default_limits=[settings.RATE_LIMIT_DEFAULT],
    enabled=settings.ENV != "testing"
)
