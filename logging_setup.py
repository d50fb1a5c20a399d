from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import List

from config import settings

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"


def build_handlers(log_name: str | None = "point_system") -> List[logging.Handler]:
    """Console handler plus a size-rotated file under settings.log_dir."""
    fmt = logging.Formatter(LOG_FORMAT)

    console = logging.StreamHandler()
    console.setFormatter(fmt)

    log_dir = Path(settings.log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)
    rotating = RotatingFileHandler(
        log_dir / f"{log_name or 'point_system'}.log",
        maxBytes=settings.log_file_max_bytes,
        backupCount=settings.log_file_backups,
        encoding="utf-8",
    )
    rotating.setFormatter(fmt)
    return [console, rotating]


def configure_http_logging() -> None:
    # citation fetch retries happen inside the requests adapter
    level = getattr(logging, settings.http_log_level.upper(), logging.WARNING)
    logging.getLogger("urllib3").setLevel(level)


def setup_logging(log_name: str | None = "point_system") -> None:
    """
    Call once at process start.
    Configures root logger (console + rotating file) and the urllib3 level.
    """
    root = logging.getLogger()
    if root.handlers:
        return

    root.setLevel(getattr(logging, settings.log_level.upper(), logging.INFO))
    for handler in build_handlers(log_name):
        root.addHandler(handler)
    configure_http_logging()
