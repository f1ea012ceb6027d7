# auth_service/db/bootstrap.py
import os

from alembic import command
from alembic.config import Config
from sqlalchemy.engine import Engine

from auth_service.core.logging import get_logger
from auth_service.db.base import Base

log = get_logger(__name__)

BASE_DIR = os.path.abspath(os.path.join(os.path.dirname(__file__), "..", ".."))


def alembic_config(database_url: str) -> Config:
    # points explicitly at alembic.ini and migrations/ so the cwd does not matter
    cfg = Config(os.path.join(BASE_DIR, "alembic.ini"))
    cfg.set_main_option("script_location", os.path.join(BASE_DIR, "migrations"))
    cfg.set_main_option("sqlalchemy.url", database_url)
    return cfg


def run_migrations(database_url: str) -> None:
    log.info("migrations_upgrade_head")
    command.upgrade(alembic_config(database_url), "head")


def create_schema(engine: Engine) -> None:
    """Create tables straight from the models (dev sqlite and tests)."""
    import auth_service.models  # noqa: F401  registers every table

    Base.metadata.create_all(bind=engine)
