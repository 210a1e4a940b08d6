"""Logging configuration using Loguru."""

from __future__ import annotations

import sys
from pathlib import Path

from loguru import logger


def setup_logging(
    level: str = "INFO",
    log_to_file: bool = False,
    log_dir: str = "logs",
    file_rotation: str = "10 MB",
    file_retention: str = "7 days",
) -> None:
    """Configure Loguru with a stderr sink and an optional rotating JSON file sink."""
    logger.remove()

    logger.add(
        sys.stderr,
        level=level,
        format=(
            "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | "
            "<cyan>{extra[module]}</cyan> - <level>{message}</level>"
        ),
        colorize=True,
    )

    if log_to_file:
        log_path = Path(log_dir)
        log_path.mkdir(parents=True, exist_ok=True)
        logger.add(
            log_path / "pagemind_{time:YYYY-MM-DD}.log",
            level=level,
            rotation=file_rotation,
            retention=file_retention,
            serialize=True,
            enqueue=True,
        )


def get_logger(name: str):
    """Get a logger bound to *name* (shown in the ``module`` field)."""
    return logger.bind(module=name)


# Records emitted before setup_logging() still need the "module" key.
logger.configure(extra={"module": "pagemind"})
