"""
Migration Runner - Runs Alembic migrations at application startup.

Pending migrations are applied automatically when RUN_MIGRATIONS_ON_STARTUP is
set; otherwise the schema is managed with the ``alembic`` CLI.
"""

from pathlib import Path

from pydantic import BaseModel
from sqlalchemy import Engine, create_engine
from structlog import get_logger

from alembic import command
from alembic.config import Config
from alembic.runtime.migration import MigrationContext
from alembic.script import ScriptDirectory
from app.config import settings

logger = get_logger(__name__)

# Path to alembic.ini relative to project root
ALEMBIC_INI_PATH = Path(__file__).parent.parent.parent / "alembic.ini"


class MigrationStatus(BaseModel):
    current_revision: str | None = None
    head_revision: str | None = None
    pending: bool = False
    error: str | None = None


def get_sync_database_url(url: str | None = None) -> str:
    """Get synchronous database URL for migrations.

    Alembic's command API uses synchronous connections, so asyncpg URLs are
    converted to psycopg2 URLs.
    """
    return (url or settings.database_url).replace("asyncpg", "psycopg2")


def _alembic_config() -> Config:
    alembic_cfg = Config(str(ALEMBIC_INI_PATH))
    alembic_cfg.set_main_option("sqlalchemy.url", get_sync_database_url().replace("%", "%%"))
    return alembic_cfg


def _get_current_revision(engine: Engine) -> str | None:
    with engine.connect() as conn:
        context = MigrationContext.configure(conn)
        return context.get_current_revision()


def _get_head_revision(alembic_cfg: Config) -> str | None:
    script = ScriptDirectory.from_config(alembic_cfg)
    return script.get_current_head()


def run_migrations() -> None:
    """
    Run pending Alembic migrations.

    Blocking; the lifespan calls it in a worker thread.

    Raises:
        RuntimeError: a migration failed
    """
    if not ALEMBIC_INI_PATH.exists():
        logger.warning("alembic_config_missing", path=str(ALEMBIC_INI_PATH))
        return

    try:
        alembic_cfg = _alembic_config()
        engine = create_engine(get_sync_database_url())

        try:
            current = _get_current_revision(engine)
            head = _get_head_revision(alembic_cfg)

            if current == head:
                logger.info("database_schema_up_to_date", revision=current)
                return

            logger.info("migrations_starting", from_revision=current, to_revision=head)
            command.upgrade(alembic_cfg, "head")

            logger.info("migrations_complete", revision=_get_current_revision(engine))
        finally:
            engine.dispose()

    except Exception as e:
        logger.error("migration_failed", error=str(e))
        raise RuntimeError(f"Database migration failed: {e}") from e


def check_migrations_status() -> MigrationStatus:
    """Report current and head revisions without applying anything."""
    if not ALEMBIC_INI_PATH.exists():
        return MigrationStatus(error="Alembic config not found")

    try:
        alembic_cfg = _alembic_config()
        engine = create_engine(get_sync_database_url())
        try:
            current = _get_current_revision(engine)
            head = _get_head_revision(alembic_cfg)
            return MigrationStatus(
                current_revision=current, head_revision=head, pending=current != head
            )
        finally:
            engine.dispose()

    except Exception as e:
        return MigrationStatus(error=str(e))
