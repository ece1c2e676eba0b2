"""Programmatic alembic upgrade.

The migration scripts ship inside the package, so no alembic.ini is
needed: the Config is built here and pointed at db/migrations.
"""

from pathlib import Path
from typing import Optional

from alembic import command
from alembic.config import Config

MIGRATIONS_DIR = Path(__file__).parent / "migrations"


def alembic_config(database_url: Optional[str] = None) -> Config:
    cfg = Config()
    cfg.set_main_option("script_location", str(MIGRATIONS_DIR))
    if database_url:
        # configparser interpolation: escape % in passwords
        cfg.set_main_option("sqlalchemy.url", database_url.replace("%", "%%"))
    return cfg


def upgrade_database(database_url: Optional[str] = None, revision: str = "head") -> None:
    """Apply migrations up to `revision`.

    Blocking: env.py runs its own event loop, so async callers must
    hand this to a worker thread (asyncio.to_thread).
    """
    command.upgrade(alembic_config(database_url), revision)
