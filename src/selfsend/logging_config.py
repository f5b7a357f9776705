import logging
import logging.config
import os
import sys

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_FILE = os.getenv("LOG_FILE", "/tmp/selfsend.log")
# Progress events only, in the same shape as /logs/export.
EVENTS_LOG_FILE = os.getenv("EVENTS_LOG_FILE", "/tmp/selfsend-events.log")

# Libraries that log every HTTP request or RPC call at INFO/DEBUG.
NOISY_LOGGERS = ("web3", "aiohttp", "httpx", "httpcore", "urllib3", "uvicorn.access")


def build_logging_config(level: str = LOG_LEVEL, log_file: str = LOG_FILE, events_file: str = EVENTS_LOG_FILE) -> dict:
    handlers = ["console", "file"]
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "default": {
                "format": "%(asctime)s %(levelname)-7s %(name)s:%(lineno)d %(message)s",
                "datefmt": "%Y-%m-%d %H:%M:%S",
            },
            "event": {
                "format": "[%(asctime)s] [%(levelname)s] %(message)s",
                "datefmt": "%H:%M:%S",
            },
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "formatter": "default",
                "stream": sys.stdout,
            },
            "file": {
                "class": "logging.handlers.RotatingFileHandler",
                "formatter": "default",
                "filename": log_file,
                "maxBytes": 10 * 1024 * 1024,
                "backupCount": 3,
            },
            "events_file": {
                "class": "logging.handlers.RotatingFileHandler",
                "formatter": "event",
                "filename": events_file,
                "maxBytes": 10 * 1024 * 1024,
                "backupCount": 3,
            },
        },
        "loggers": {
            "selfsend": {
                "level": level,
                "handlers": handlers,
                "propagate": False,
            },
            "selfsend.events": {
                "level": "INFO",
                "handlers": [*handlers, "events_file"],
                "propagate": False,
            },
            "fastapi": {
                "level": "INFO",
                "handlers": handlers,
                "propagate": False,
            },
            **{name: {"level": "WARNING", "handlers": handlers, "propagate": False} for name in NOISY_LOGGERS},
        },
        "root": {
            "level": "WARNING",
            "handlers": handlers,
        },
    }


def setup_logging(level: str | None = None) -> None:
    """Apply the logging configuration; ``level`` overrides LOG_LEVEL for the selfsend loggers."""
    logging.config.dictConfig(build_logging_config(level=(level or LOG_LEVEL).upper()))
    os.environ.setdefault("PYTHONUNBUFFERED", "1")
