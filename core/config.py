from typing import Optional
from pydantic_settings import BaseSettings
from pydantic import ConfigDict

class Settings(BaseSettings):
    model_config = ConfigDict(env_file=".env", extra="ignore")

    ENV: str = "development"

    DATABASE_URL: str

    # Token signing
    ACCESS_TOKEN_SECRET: str
    REFRESH_TOKEN_SECRET: str
    RETIRED_ACCESS_TOKEN_SECRETS: list[str] = []
    JWT_SECRET: Optional[str] = None  # legacy single-secret deployments
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60
    REFRESH_TOKEN_EXPIRE_DAYS: int = 7
    TOKEN_RECORD_RETENTION_DAYS: int = 30
    BLACKLIST_TTL_SECONDS: int = 86400

    # Cache
    REDIS_URL: Optional[str] = None
    REDIS_SOCKET_TIMEOUT: float = 5.0
    REDIS_MAX_RETRIES: int = 3

    # Roles
    DEFAULT_ROLE: str = "user"
    ADMIN_ROLE: str = "admin"
    SEED_DEFAULT_ROLES: bool = True

    LOG_LEVEL: str = "INFO"
    LOG_DIR: str = "logs"
    CORS_ORIGINS: list[str] = ["http://localhost:3000"]
    RATE_LIMIT_DEFAULT: str = "200/hour"

    @property
    def access_token_keys(self) -> list[str]:
        """
        Ordered key ring used to verify access tokens.

        The current secret comes first, followed by retired secrets and the
        legacy JWT_SECRET. Duplicates and empty values are dropped.
        """
        keys = [self.ACCESS_TOKEN_SECRET, *self.RETIRED_ACCESS_TOKEN_SECRETS]
        if self.JWT_SECRET:
            keys.append(self.JWT_SECRET)

        ring = []
        for key in keys:
            if key and key not in ring:
                ring.append(key)
        return ring


settings = Settings()
