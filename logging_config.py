"""
Logging configuration for the relay server.

Console logging always; a rotating file handler is added when a log file is given.
"""

import logging
import logging.config
import os
import sys
from typing import Any, Dict, Optional

ROOT_LOGGER_NAME = "relay"


def setup_logging(log_level: str = "INFO", log_file: Optional[str] = None) -> None:
    """Setup logging for the relay and the uvicorn server loggers"""
    log_level = log_level.upper()
    handlers = ["console"]

    log_config: Dict[str, Any] = {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "default": {
                "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
                "datefmt": "%Y-%m-%d %H:%M:%S",
            },
            "detailed": {
                "format": "%(asctime)s - %(name)s - %(levelname)s - %(pathname)s:%(lineno)d - %(funcName)s() - %(message)s",
                "datefmt": "%Y-%m-%d %H:%M:%S",
            },
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "level": log_level,
                "formatter": "default",
                "stream": sys.stdout,
            },
        },
        "loggers": {
            ROOT_LOGGER_NAME: {
                "level": log_level,
                "handlers": handlers,
                "propagate": False,
            },
            "uvicorn.error": {
                "level": "INFO",
                "handlers": handlers,
                "propagate": False,
            },
            "uvicorn.access": {
                "level": "WARNING",
                "handlers": handlers,
                "propagate": False,
            },
        },
    }

    if log_file:
        log_dir = os.path.dirname(log_file)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)
        log_config["handlers"]["file"] = {
            "class": "logging.handlers.RotatingFileHandler",
            "level": log_level,
            "formatter": "detailed",
            "filename": log_file,
            "maxBytes": 10485760,  # 10MB
            "backupCount": 5,
            "encoding": "utf-8",
        }
        handlers.append("file")

    logging.config.dictConfig(log_config)

    logging.getLogger(f"{ROOT_LOGGER_NAME}.startup").debug(
        f"Logging initialized: level={log_level}, file={log_file}"
    )


def get_logger(name: str) -> logging.Logger:
    """Get logger under the relay namespace"""
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")
