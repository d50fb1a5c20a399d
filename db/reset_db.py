import os
import sys

# ───────────────────────────────────────────────
# Ensure project root on sys.path
# ───────────────────────────────────────────────
if __package__ is None or __package__ == "":
    PROJECT_ROOT = os.path.dirname(os.path.dirname(__file__))
    if PROJECT_ROOT not in sys.path:
        sys.path.insert(0, PROJECT_ROOT)

import logging

from sqlalchemy.engine import Engine

# Shared Base + engine
from db.base import Base
from db.db_conn import engine as default_engine
from db.init_db import init_database

# Import ALL model modules so their tables register on Base
import db.models  # noqa: F401

from logging_setup import setup_logging

logger = logging.getLogger(__name__)


# ───────────────────────────────────────────────
# Drop All Tables
# ───────────────────────────────────────────────
def drop_database(engine: Engine = default_engine, confirm: bool = True) -> bool:
    """Drop all point system tables. Returns False when aborted."""
    if confirm:
        ans = input(
            "This will DROP ALL TABLES in the current database. Continue? (y/N): "
        ).strip().lower()
        if ans != "y":
            logger.info("Aborted.")
            return False

    logger.info("Dropping all tables...")
    Base.metadata.drop_all(bind=engine)
    logger.info("All tables dropped successfully.")
    return True


if __name__ == "__main__":
    setup_logging("reset_db")
    if drop_database():
        init_database()
