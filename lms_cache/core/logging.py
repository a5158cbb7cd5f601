import logging
import logging.config
from pathlib import Path
from typing import Optional

from lms_cache.core.config import settings

LOGGING_CONFIG = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "default": {
            "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "level": "DEBUG",
            "formatter": "default",
            "stream": "ext://sys.stdout"
        },
    },
    "root": {
        "level": "INFO",
        "handlers": ["console"]
    },
    "loggers": {
        "lms_cache": {
            "level": "INFO",
            "handlers": ["console"],
            "propagate": False
        },
        "lms_cache.store": {
            "level": "INFO",
            "handlers": ["console"],
            "propagate": False
        },
        "httpx": {
            "level": "WARNING",
            "handlers": ["console"],
            "propagate": False
        },
        "uvicorn.access": {
            "level": "WARNING",
            "handlers": ["console"],
            "propagate": False
        }
    }
}

def build_logging_config(level: Optional[str] = None, log_file: Optional[str] = None) -> dict:
    level = (level or settings.LOG_LEVEL).upper()
    log_file = log_file or settings.LOG_FILE

    config = {
        **LOGGING_CONFIG,
        "handlers": dict(LOGGING_CONFIG["handlers"]),
        "loggers": {name: dict(cfg) for name, cfg in LOGGING_CONFIG["loggers"].items()},
    }
    config["root"] = {**LOGGING_CONFIG["root"], "level": level}
    for name in ("lms_cache", "lms_cache.store"):
        config["loggers"][name]["level"] = level

    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        config["handlers"]["file"] = {
            "class": "logging.handlers.RotatingFileHandler",
            "level": level,
            "formatter": "default",
            "filename": log_file,
            "maxBytes": 10485760,
            "backupCount": 5
        }
        config["root"]["handlers"] = ["console", "file"]
        for name in ("lms_cache", "lms_cache.store"):
            config["loggers"][name]["handlers"] = ["console", "file"]

    return config

def configure_logging(level: Optional[str] = None, log_file: Optional[str] = None):
    logging.config.dictConfig(build_logging_config(level, log_file))
