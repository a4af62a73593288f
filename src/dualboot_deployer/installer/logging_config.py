"""
DualBoot Deployer Logging Configuration

Configurable logging with debug mode support.
"""

import os
import logging
import sys
from pathlib import Path
from datetime import datetime
from typing import Optional


ROOT_LOGGER = "dualboot_deployer"

# Check for debug mode
DEBUG_MODE = os.environ.get("DUALBOOT_DEPLOYER_DEBUG", "").lower() in ("1", "true", "yes")


def setup_logging(
    level: Optional[int] = None,
    log_file: Optional[Path] = None,
    quiet: bool = False
) -> logging.Logger:
    """Set up logging configuration.

    Args:
        level: Logging level (default: DEBUG if DUALBOOT_DEPLOYER_DEBUG, else INFO)
        log_file: Optional path to log file
        quiet: If True, suppress console output

    Returns:
        Configured logger
    """
    # Determine log level
    if level is None:
        level = logging.DEBUG if DEBUG_MODE else logging.INFO

    logger = logging.getLogger(ROOT_LOGGER)
    # The file handler records DEBUG whatever the console level
    logger.setLevel(min(level, logging.DEBUG) if log_file else level)

    # Clear existing handlers
    logger.handlers.clear()

    if quiet:
        logger.addHandler(logging.NullHandler())
    else:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(level)

        if DEBUG_MODE or level <= logging.DEBUG:
            console_format = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
        else:
            console_format = "%(message)s"

        console_handler.setFormatter(logging.Formatter(console_format))
        logger.addHandler(console_handler)

    # File handler (if specified)
    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)
        file_format = "[%(asctime)s] [%(levelname)s] %(name)s:%(lineno)d: %(message)s"
        file_handler.setFormatter(logging.Formatter(file_format))
        logger.addHandler(file_handler)

    return logger


def get_logger(name: str = ROOT_LOGGER) -> logging.Logger:
    """Get a logger under the deployer namespace.

    Args:
        name: Logger name (prefixed with 'dualboot_deployer.' when needed)

    Returns:
        Logger; the namespace root gets a default configuration on first use
    """
    if not name.startswith(ROOT_LOGGER):
        name = f"{ROOT_LOGGER}.{name}"

    logger = logging.getLogger(name)

    # Ensure parent logger is configured
    parent = logging.getLogger(ROOT_LOGGER)
    if not parent.handlers:
        setup_logging()

    return logger


def get_log_path(log_dir: Path) -> Path:
    """Get a timestamped log file path inside ``log_dir``."""
    return log_dir / f"Log_{datetime.now().strftime('%Y-%m-%d_%H-%M-%S')}.log"
