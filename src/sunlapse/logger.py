"""Logging configuration module for Sunlapse."""

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

from sunlapse.config import LoggingConfig

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logger(
    config: Optional[LoggingConfig] = None,
    name: str = "sunlapse",
) -> logging.Logger:
    """Set up and configure the application logger.

    Args:
        config: Logging configuration. If None, uses defaults.
        name: Logger name.

    Returns:
        Configured logger instance.
    """
    if config is None:
        config = LoggingConfig()

    logger = logging.getLogger(name)
    logger.setLevel(getattr(logging, config.level))

    # Clear existing handlers
    logger.handlers.clear()

    formatter = logging.Formatter(LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(getattr(logging, config.level))
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if config.file:
        try:
            log_path = Path(config.file)
            log_path.parent.mkdir(parents=True, exist_ok=True)

            file_handler = RotatingFileHandler(
                log_path,
                maxBytes=config.max_size_mb * 1024 * 1024,
                backupCount=config.backup_count,
                encoding="utf-8",
            )
            file_handler.setLevel(getattr(logging, config.level))
            file_handler.setFormatter(formatter)
            logger.addHandler(file_handler)
        except PermissionError:
            logger.warning(
                f"Cannot write to log file {config.file}, logging to console only"
            )
        except OSError as e:
            logger.warning(f"Error setting up file logging: {e}, logging to console only")

    return logger


def get_logger(name: str = "sunlapse") -> logging.Logger:
    """Get an existing logger or create a basic one.

    Module loggers (``sunlapse.*``) propagate to the application logger
    configured by setup_logger, so only the root package gets a fallback
    handler here.
    """
    logger = logging.getLogger(name)
    root_name = name.split(".")[0]
    root = logging.getLogger(root_name)
    if not root.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        root.addHandler(handler)
        root.setLevel(logging.INFO)
    return logger


class FieldsAdapter(logging.LoggerAdapter):
    """Logger adapter appending ``[key=value ...]`` context to each message."""

    def process(self, msg, kwargs):
        fields = " ".join(f"{k}={v}" for k, v in self.extra.items())
        return f"{msg} [{fields}]", kwargs


def with_fields(logger: logging.Logger, **fields) -> FieldsAdapter:
    """Bind structured context (date, path, op, ...) to a logger."""
    return FieldsAdapter(logger, fields)
