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
from sqlalchemy.orm import sessionmaker

# Shared Base + engine
from db.base import Base
from db.db_conn import engine as default_engine

# Import ALL model modules so their tables register on Base
import db.models  # noqa: F401

from logging_setup import setup_logging
from services.metrics.decay import seed_decay_lookup

logger = logging.getLogger(__name__)


# ───────────────────────────────────────────────
# Initialize DB
# ───────────────────────────────────────────────
def init_database(engine: Engine = default_engine) -> None:
    logger.info("Creating database tables (if not exist)...")
    logger.info("Models loaded tables: %s", list(Base.metadata.tables.keys()))

    Base.metadata.create_all(engine)

    with sessionmaker(bind=engine, future=True)() as sess:
        seed_decay_lookup(sess)
        sess.commit()

    logger.info("All tables ready.")


if __name__ == "__main__":
    setup_logging("init_db")
    init_database()
