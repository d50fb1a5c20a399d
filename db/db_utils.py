from __future__ import annotations

import logging
import threading
from typing import Dict, Iterable, List, Optional, Tuple

from sqlalchemy import inspect, text
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)

# Key pair used by pg_try_advisory_lock for the pipeline initialization lock
PIPELINE_LOCK_KEY: Tuple[int, int] = (123456, 424242)


def dialect_name(session: Session) -> str:
    return session.get_bind().dialect.name


def dialect_insert(session: Session, model):
    """INSERT construct that supports ON CONFLICT for the bound dialect."""
    if dialect_name(session) == "postgresql":
        return pg_insert(model)
    return sqlite_insert(model)


def chunked(rows: List[dict], size: int = 1000) -> Iterable[List[dict]]:
    for i in range(0, len(rows), size):
        yield rows[i:i + size]


def check_database_health(session: Session) -> bool:
    """Lightweight pre-flight check (SELECT 1)."""
    try:
        session.execute(text("SELECT 1"))
        return True
    except Exception as e:
        logger.warning("Database health check failed: %s", e)
        return False


def missing_tables(engine: Engine, required: Iterable[str]) -> List[str]:
    existing = set(inspect(engine).get_table_names())
    return [name for name in required if name not in existing]


def apply_statement_timeout(session: Session, timeout_ms: int) -> None:
    """Bound every statement of the current transaction (Postgres only)."""
    if dialect_name(session) != "postgresql":
        return
    session.execute(text(f"SET LOCAL statement_timeout = {int(timeout_ms)}"))


class AdvisoryLock:
    """
    Scoped lock guarding pipeline jobs against concurrent instances.

    On Postgres this is a session-level advisory lock held on a dedicated
    connection; elsewhere it degrades to a process-local lock.

        with AdvisoryLock(engine) as acquired:
            if not acquired:
                return
    """

    _local_locks: Dict[Tuple[int, int], threading.Lock] = {}
    _registry_guard = threading.Lock()

    def __init__(self, engine: Engine, key: Tuple[int, int] = PIPELINE_LOCK_KEY):
        self.engine = engine
        self.key = key
        self.acquired = False
        self._conn = None
        self._local: Optional[threading.Lock] = None

    def _local_lock(self) -> threading.Lock:
        with AdvisoryLock._registry_guard:
            return AdvisoryLock._local_locks.setdefault(self.key, threading.Lock())

    def acquire(self) -> bool:
        if self.engine.dialect.name == "postgresql":
            self._conn = self.engine.connect()
            self.acquired = bool(
                self._conn.execute(
                    text("SELECT pg_try_advisory_lock(:k1, :k2)"),
                    {"k1": self.key[0], "k2": self.key[1]},
                ).scalar()
            )
            if not self.acquired:
                self._conn.close()
                self._conn = None
        else:
            self._local = self._local_lock()
            self.acquired = self._local.acquire(blocking=False)

        if not self.acquired:
            logger.warning("Advisory lock %s is held by another instance", self.key)
        return self.acquired

    def release(self) -> None:
        if not self.acquired:
            return
        try:
            if self._conn is not None:
                self._conn.execute(
                    text("SELECT pg_advisory_unlock(:k1, :k2)"),
                    {"k1": self.key[0], "k2": self.key[1]},
                )
                self._conn.close()
                self._conn = None
            elif self._local is not None:
                self._local.release()
        finally:
            self.acquired = False

    def __enter__(self) -> bool:
        return self.acquire()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.release()
