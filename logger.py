"""
Logging setup for the e-Stamp backend.

All module loggers hang off the "estamp" logger, which writes to the console
and, when LOG_DIR is configured, to rotating files (estamp.log and errors.log).
"""
import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path

import config

ROOT_LOGGER_NAME = "estamp"
LOG_FORMAT = "[%(asctime)s] [%(levelname)s] [%(name)s] %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

_configured = False


def _configure_root():
    global _configured
    root = logging.getLogger(ROOT_LOGGER_NAME)
    root.setLevel(getattr(logging, config.LOG_LEVEL, logging.INFO))
    root.handlers.clear()
    root.propagate = False

    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    root.addHandler(console_handler)

    if config.LOG_DIR:
        log_path = Path(config.LOG_DIR)
        log_path.mkdir(parents=True, exist_ok=True)

        # 10MB per file, keep 5
        main_handler = RotatingFileHandler(
            log_path / "estamp.log",
            maxBytes=10 * 1024 * 1024,
            backupCount=5,
            encoding="utf-8",
        )
        main_handler.setLevel(logging.DEBUG)
        main_handler.setFormatter(formatter)
        root.addHandler(main_handler)

        error_handler = RotatingFileHandler(
            log_path / "errors.log",
            maxBytes=5 * 1024 * 1024,
            backupCount=3,
            encoding="utf-8",
        )
        error_handler.setLevel(logging.ERROR)
        error_handler.setFormatter(formatter)
        root.addHandler(error_handler)

    _configured = True


def get_logger(name: str = "") -> logging.Logger:
    """Return a child of the "estamp" logger, configuring handlers on first use."""
    if not _configured:
        _configure_root()
    if not name or name == ROOT_LOGGER_NAME:
        return logging.getLogger(ROOT_LOGGER_NAME)
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")
