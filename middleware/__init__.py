"""
Middleware package exports.
"""

from middleware.request_id import RequestIDMiddleware, get_request_id, install_request_id_filter
from middleware.rate_limiter import limiter, get_user_id

__all__ = ["RequestIDMiddleware", "get_request_id", "install_request_id_filter", "limiter", "get_user_id"]
