# logging_config.py
import logging
import logging.config
from pathlib import Path
from typing import Any, Dict, Optional

# third-party loggers and the level they are held at
LIBRARY_LEVELS = {
    "httpx": "WARNING",        # one INFO line per upstream call
    "httpcore": "WARNING",
    "apscheduler": "WARNING",
    "pymongo": "WARNING",
    "uvicorn": "INFO",
    "uvicorn.access": "INFO",
}

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
FILE_FORMAT = "%(asctime)s [%(levelname)s] %(process)d %(name)s:%(lineno)d: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def build_config(log_level: str = "INFO", log_file: Optional[str] = None) -> Dict[str, Any]:
    """
    dictConfig for the web tier.

    Console always; a rotating file when `log_file` is set (production).
    Application loggers follow `log_level`, library loggers are held at
    the levels in LIBRARY_LEVELS.
    """
    handlers = {
        "console": {
            "level": log_level,
            "class": "logging.StreamHandler",
            "formatter": "console",
            "stream": "ext://sys.stdout",
        }
    }
    if log_file:
        handlers["file"] = {
            "level": log_level,
            "class": "logging.handlers.RotatingFileHandler",
            "formatter": "file",
            "filename": log_file,
            "maxBytes": 10 * 1024 * 1024,
            "backupCount": 5,
            "encoding": "utf-8",
        }
    names = list(handlers)

    loggers = {
        name: {"handlers": names, "level": level, "propagate": False}
        for name, level in LIBRARY_LEVELS.items()
    }
    loggers["fitacademy"] = {"handlers": names, "level": log_level, "propagate": False}

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "console": {"format": LOG_FORMAT, "datefmt": DATE_FORMAT},
            "file": {"format": FILE_FORMAT, "datefmt": DATE_FORMAT},
        },
        "handlers": handlers,
        "root": {"handlers": names, "level": log_level},
        "loggers": loggers,
    }


def setup_logging(log_level: str = "INFO", log_file: Optional[str] = None) -> None:
    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)

    logging.config.dictConfig(build_config(log_level, log_file))

    logger = logging.getLogger(__name__)
    logger.info(f"Logging configured with level: {log_level}")
    if log_file:
        logger.info(f"Log file: {log_file}")
