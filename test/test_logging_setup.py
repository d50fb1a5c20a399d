import sys
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(PROJECT_ROOT))

import logging
from logging.handlers import RotatingFileHandler

import logging_setup
from config import settings


def test_handlers_rotate_into_log_dir(tmp_path, monkeypatch):
    monkeypatch.setattr(settings, "log_dir", tmp_path / "logs")
    monkeypatch.setattr(settings, "log_file_max_bytes", 2048)

    handlers = logging_setup.build_handlers("init_db")
    try:
        rotating = [h for h in handlers if isinstance(h, RotatingFileHandler)]
        assert len(rotating) == 1
        assert Path(rotating[0].baseFilename) == tmp_path / "logs" / "init_db.log"
        assert rotating[0].maxBytes == 2048
        assert all(h.formatter._fmt == logging_setup.LOG_FORMAT for h in handlers)
    finally:
        for h in handlers:
            h.close()


def test_adapter_retry_warnings_reach_the_log(monkeypatch):
    urllib3_logger = logging.getLogger("urllib3")
    previous = urllib3_logger.level
    monkeypatch.setattr(settings, "http_log_level", "warning")

    try:
        logging_setup.configure_http_logging()

        assert urllib3_logger.level == logging.WARNING
        assert logging.getLogger("urllib3.connectionpool").isEnabledFor(logging.WARNING)
        assert not logging.getLogger("urllib3.connectionpool").isEnabledFor(logging.DEBUG)
    finally:
        urllib3_logger.setLevel(previous)
