"""
Logging configuration for the application.

Call setup_logging() once at startup (API app, scripts). Library modules only
create loggers with logging.getLogger(__name__).
"""
import logging
import logging.config
import os
from typing import Any, Dict, Optional


def get_logging_config(level: Optional[str] = None) -> Dict[str, Any]:
    """
    Get logging configuration dictionary.

    Returns:
        Logging configuration dict
    """
    log_level = (level or os.getenv("LOG_LEVEL", "INFO")).upper()
    log_format = os.getenv("LOG_FORMAT", "detailed")

    formatters = {
        "simple": {
            "format": "%(levelname)s - %(message)s"
        },
        "detailed": {
            "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            "datefmt": "%Y-%m-%d %H:%M:%S"
        },
    }

    handlers = {
        "console": {
            "class": "logging.StreamHandler",
            "level": log_level,
            "formatter": log_format if log_format in formatters else "detailed",
            "stream": "ext://sys.stdout"
        },
    }

    loggers = {
        "client_pricing": {
            "level": log_level,
            "handlers": ["console"],
            "propagate": False
        },
        "uvicorn": {
            "level": "INFO",
            "handlers": ["console"],
            "propagate": False
        },
    }

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": formatters,
        "handlers": handlers,
        "loggers": loggers,
        "root": {
            "level": "WARNING",
            "handlers": ["console"]
        }
    }


def setup_logging(level: Optional[str] = None) -> None:
    """Apply the logging configuration."""
    logging.config.dictConfig(get_logging_config(level))
