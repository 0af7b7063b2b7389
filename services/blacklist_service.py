"""
Redis-backed deny-list for revoked tokens.

Entries expire on their own. When Redis is down the blacklist fails open:
adding reports False and every token reads as not blacklisted, so an outage
never blocks logout or locks out legitimate callers.
"""

from typing import Optional

from core.cache import CacheClient
from core.config import settings
from core.exceptions import DependencyDegraded
from utils.logger import get_logger

logger = get_logger(__name__)

BLACKLIST_PREFIX = "blacklist:"


class BlacklistService:

    @staticmethod
    def key(token: str) -> str:
        return f"{BLACKLIST_PREFIX}{token}"

    @staticmethod
    def add(cache: CacheClient, token: str, ttl_seconds: Optional[int] = None) -> bool:
        if ttl_seconds is None:
            ttl_seconds = settings.BLACKLIST_TTL_SECONDS
        try:
            cache.set(BlacklistService.key(token), "1", ex=ttl_seconds)
        except DependencyDegraded as e:
            logger.warning(f"Cache not available, token blacklisting skipped: {e}")
            return False

        logger.info(f"Token blacklisted successfully. Expires in {ttl_seconds}s")
        return True

    @staticmethod
    def is_blacklisted(cache: CacheClient, token: str) -> bool:
        try:
            return cache.get(BlacklistService.key(token)) is not None
        except DependencyDegraded as e:
            logger.warning(f"Cache not available, skipping blacklist check: {e}")
            return False
