# registry/logger.py
import logging
import os
import sys
from logging.handlers import RotatingFileHandler

DEFAULT_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"

# Libraries that log every request at DEBUG; kept at WARNING unless asked for
NOISY_LOGGERS = ("urllib3", "charset_normalizer")

_configured = False


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() == "true"


def _file_handler(path: str, formatter: logging.Formatter, level: int) -> logging.Handler:
    os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
    handler = RotatingFileHandler(
        path,
        maxBytes=int(os.getenv("LOG_MAX_BYTES", str(2 * 1024 * 1024))),
        backupCount=int(os.getenv("LOG_BACKUPS", "3")),
        encoding="utf-8",
    )
    handler.setLevel(level)
    handler.setFormatter(formatter)
    return handler


def setup_logging():
    """Configure the root logger once per process from LOG_* env vars."""
    global _configured
    if _configured:
        return

    level = getattr(logging, os.getenv("LOG_LEVEL", "INFO").upper(), logging.INFO)
    formatter = logging.Formatter(os.getenv("LOG_FORMAT", DEFAULT_FORMAT))

    root = logging.getLogger()
    root.setLevel(level)

    if not root.handlers:
        if _env_flag("LOG_TO_STDOUT", "true"):
            ch = logging.StreamHandler(sys.stdout)
            ch.setLevel(level)
            ch.setFormatter(formatter)
            root.addHandler(ch)

        if _env_flag("LOG_TO_FILE", "true"):
            log_file = os.getenv("LOG_FILE", "/data/giftlist.log")
            try:
                root.addHandler(_file_handler(log_file, formatter, level))
            except OSError as e:
                root.warning("Failed to initialize file logging at %s: %s", log_file, e)

    if not _env_flag("LOG_HTTP_DEBUG", "false"):
        for name in NOISY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)

    _configured = True


def get_logger(name: str | None = None) -> logging.Logger:
    setup_logging()
    return logging.getLogger(name)
