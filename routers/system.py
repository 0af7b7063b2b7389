from fastapi import APIRouter, Depends
from sqlalchemy import text, func
from sqlalchemy.exc import SQLAlchemyError

from models.tokens import TokenRecord
from services.token_service import TokenService
from utils.datetime_utils import utcnow
from utils.deps import db_dependency, cache_dependency, require_permission
from utils.logger import get_logger

logger = get_logger(__name__)


router = APIRouter(tags=["system"])

manage_system = [Depends(require_permission("manage_system"))]


@router.get("/health")
async def health_check(db: db_dependency, cache: cache_dependency):
    """
    Liveness of the database and the cache. A disabled cache does not count
    as degraded.
    """
    logger.debug("Health check requested")

    try:
        db.execute(text("SELECT 1"))
        database = "ok"
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Health check database error: {e}")
        database = "unavailable"

    if not cache.enabled:
        cache_state = "disabled"
    elif cache.ping():
        cache_state = "ok"
    else:
        cache_state = "unavailable"

    healthy = database == "ok" and cache_state != "unavailable"

    return {
        "status": "ok" if healthy else "degraded",
        "database": database,
        "cache": cache_state,
    }


@router.get("/system/status", dependencies=manage_system)
async def system_status(db: db_dependency, cache: cache_dependency):
    total = db.query(func.count(TokenRecord.id)).scalar()
    active = db.query(func.count(TokenRecord.id)).filter(
        TokenRecord.revoked == False,
        TokenRecord.expires_at > utcnow()
    ).scalar()

    return {
        "cache": cache.status(),
        "tokens": {"total": total, "active": active},
    }


@router.post("/system/purge-tokens", dependencies=manage_system)
async def purge_tokens(db: db_dependency):
    """
    Delete token records that expired before the retention window.
    """
    purged = TokenService.purge_expired_records(db)
    return {"purged": purged}
