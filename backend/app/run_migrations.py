"""
Run Alembic migrations programmatically.

Safe to call multiple times: Alembic is a no-op when already at head.
"""
import logging
from pathlib import Path
from typing import Optional

from alembic import command
from alembic.config import Config

from app.core.config import settings

logger = logging.getLogger(__name__)


def _redacted(database_url: str) -> str:
    return database_url.split("@")[-1] if "@" in database_url else database_url


def run_migrations(database_url: Optional[str] = None) -> None:
    """Upgrade the database at `database_url` (default: settings.DATABASE_URL) to head."""
    # alembic.ini lives in backend/, one level above this package
    project_root = Path(__file__).resolve().parents[1]
    alembic_ini = project_root / "alembic.ini"

    if not alembic_ini.exists():
        logger.error(f"Alembic config not found at {alembic_ini}")
        raise FileNotFoundError(f"Alembic config not found at {alembic_ini}")

    cfg = Config(str(alembic_ini))
    cfg.set_main_option("script_location", str(project_root / "alembic"))

    url = database_url or settings.DATABASE_URL
    # Force URL from runtime configuration (overrides alembic.ini default)
    cfg.set_main_option("sqlalchemy.url", url)
    cfg.attributes["configured_by_app"] = True

    logger.info(f"Running Alembic migrations to head on {_redacted(url)}")
    try:
        command.upgrade(cfg, "head")
    except Exception as e:
        logger.error(f"Migration failed: {e}", exc_info=True)
        raise
    logger.info("Alembic migrations complete.")


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(name)s: %(message)s")
    run_migrations()
