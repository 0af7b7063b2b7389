# Essential imports
import time
from fastapi import FastAPI, Request, status, HTTPException
from fastapi.exceptions import RequestValidationError
from routers import auth, roles, permissions, system
from contextlib import asynccontextmanager

# Import all models for SQLAlchemy relationship resolution
import models  # noqa: F401

# Rate limiter imports
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from middleware.rate_limiter import limiter

# Logging imports
from core.logging_config import setup_logging, get_logger
from middleware import RequestIDMiddleware, get_request_id, install_request_id_filter
from core.config import settings
from fastapi.responses import JSONResponse

# Storage imports
from core.cache import CacheClient
from core.database import Base, SessionLocal, engine
from services.role_service import RoleService
from services.token_service import TokenService

# CORS imports
from fastapi.middleware.cors import CORSMiddleware

# Initialize logging
setup_logging(
    log_level=settings.LOG_LEVEL,
    log_dir=settings.LOG_DIR
)
install_request_id_filter()

logger = get_logger(__name__)


def init_storage():
    """Create tables, seed the built-in roles and drop long-expired token records."""
    Base.metadata.create_all(bind=engine)

    db = SessionLocal()
    try:
        if settings.SEED_DEFAULT_ROLES:
            RoleService.ensure_default_roles(db)
        TokenService.purge_expired_records(db)
    finally:
        db.close()


# Lifecycle: storage setup and the shared cache handle
@asynccontextmanager
async def lifespan(app: FastAPI):
    init_storage()

    cache = CacheClient(
        settings.REDIS_URL,
        socket_timeout=settings.REDIS_SOCKET_TIMEOUT,
        max_retries=settings.REDIS_MAX_RETRIES,
    )
    cache.connect()
    app.state.cache = cache

    logger.info("Application startup complete", extra={"event": "startup"})
    yield

    cache.close()
    logger.info("Application shutting down", extra={"event": "shutdown"})


app = FastAPI(
    title="Auth API",
    description="Authentication, session and permission backend",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan
)


# CORS configuration
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# HTTP Request Logging Middleware
@app.middleware("http")
async def log_requests(request: Request, call_next):
    """
    Log every HTTP request with method, path, status code and duration.
    """
    start_time = time.time()

    response = await call_next(request)

    duration = (time.time() - start_time) * 1000

    client_ip = request.client.host if request.client else "unknown"

    logger.info(
        f'{client_ip} - "{request.method} {request.url.path} HTTP/1.1" {response.status_code}',
        extra={
            "method": request.method,
            "path": request.url.path,
            "status_code": response.status_code,
            "duration_ms": round(duration, 2),
            "client_ip": client_ip
        }
    )

    return response


# Added last so it runs first and the request log line carries the ID
app.add_middleware(RequestIDMiddleware)


# Global exception handler
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """
    Log unhandled exceptions with a stack trace and answer with a generic 500.
    """
    if isinstance(exc, (HTTPException, RequestValidationError)):
        raise

    logger.error(
        f"Unhandled exception: {str(exc)}",
        extra={
            "path": request.url.path,
            "method": request.method,
            "error_type": type(exc).__name__,
            "request_id": get_request_id(request)
        },
        exc_info=True
    )

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Internal server error"}
    )


# Including routers
app.include_router(auth.router)
app.include_router(roles.router)
app.include_router(permissions.router)
app.include_router(system.router)


# Add rate limiter to the app
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
