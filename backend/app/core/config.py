from pydantic import BaseModel
import os
import logging
from typing import List
from functools import lru_cache

logger = logging.getLogger(__name__)

DEV_JWT_SECRET = "dev-secret-change-me"

DEFAULT_ENODE_SCOPES = "charger:read:data,charger:control:charging"


class Settings(BaseModel):
    # Environment and logging
    ENV: str = os.getenv("ENV", "dev")  # local, dev, staging, prod
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")
    DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite:///./plogo.db")
    RUN_MIGRATIONS_ON_STARTUP: bool = os.getenv("RUN_MIGRATIONS_ON_STARTUP", "false").lower() == "true"

    # Identity provider tokens (HS256, `sub` = profile id)
    JWT_SECRET: str = os.getenv("JWT_SECRET", DEV_JWT_SECRET)
    JWT_ALGORITHM: str = os.getenv("JWT_ALGORITHM", "HS256")
    JWT_AUDIENCE: str = os.getenv("JWT_AUDIENCE", "")  # empty disables audience verification

    # Enode charger platform
    ENODE_CLIENT_ID: str = os.getenv("ENODE_CLIENT_ID", "")
    ENODE_CLIENT_SECRET: str = os.getenv("ENODE_CLIENT_SECRET", "")
    ENODE_API_URL: str = os.getenv("ENODE_API_URL", "")
    ENODE_OAUTH_URL: str = os.getenv("ENODE_OAUTH_URL", "")
    ENODE_REDIRECT_URI: str = os.getenv("ENODE_REDIRECT_URI", "")
    ENODE_STATE_SECRET: str = os.getenv("ENODE_STATE_SECRET", "")
    ENODE_CHARGER_SCOPES: str = os.getenv("ENODE_CHARGER_SCOPES", DEFAULT_ENODE_SCOPES)
    ENODE_LINK_LANGUAGE: str = os.getenv("ENODE_LINK_LANGUAGE", "fr-FR")
    ENODE_HTTP_TIMEOUT_SECONDS: float = float(os.getenv("ENODE_HTTP_TIMEOUT_SECONDS", "15"))
    ENODE_TOKEN_REFRESH_MARGIN_SECONDS: int = int(os.getenv("ENODE_TOKEN_REFRESH_MARGIN_SECONDS", "30"))

    @property
    def enode_scopes(self) -> List[str]:
        """Charger scopes requested when creating a link session."""
        raw = self.ENODE_CHARGER_SCOPES or DEFAULT_ENODE_SCOPES
        return [scope.strip() for scope in raw.split(",") if scope.strip()]

    @property
    def enode_configured(self) -> bool:
        return bool(
            self.ENODE_CLIENT_ID
            and self.ENODE_CLIENT_SECRET
            and self.ENODE_API_URL
            and self.ENODE_OAUTH_URL
            and self.ENODE_REDIRECT_URI
            and self.ENODE_STATE_SECRET
        )


settings = Settings()


@lru_cache(maxsize=1)
def get_env_name() -> str:
    return settings.ENV.lower()


def is_local_env() -> bool:
    """True for local/dev environments, where error responses may carry details."""
    return get_env_name() in {"local", "dev", "test"}


def validate_config():
    """Validate configuration at startup. Raises ValueError if invalid in prod."""
    problems = []

    if settings.DATABASE_URL.startswith("sqlite") and not is_local_env():
        problems.append("SQLite is not supported outside local/dev, use PostgreSQL")

    if settings.JWT_SECRET == DEV_JWT_SECRET:
        problems.append("JWT_SECRET is the development default")

    if not settings.enode_configured:
        problems.append("Enode configuration is incomplete (ENODE_* variables)")

    if not problems:
        logger.info("Configuration validated for env=%s", get_env_name())
        return

    if get_env_name() == "prod":
        raise ValueError("Invalid production configuration: " + "; ".join(problems))

    for problem in problems:
        logger.warning("Configuration warning: %s", problem)
