"""
Logging configuration using loguru.

Library modules log through ``from loguru import logger`` directly; an
application embedding the store calls setup_logging() once at startup.
"""

import sys

from loguru import logger


def setup_logging(
    level: str = "INFO",
    log_file: str | None = None,
    fmt: str = "<level>[{level.name}]</level> {name}: {message}",
    rotation: str = "10 MB",
    retention: str = "7 days",
) -> None:
    """
    Configure loguru with a stderr sink and an optional rotating file sink.

    Args:
        level: Minimum log level (DEBUG, INFO, WARNING, ERROR).
        log_file: Path to log file. If None, only logs to stderr.
        fmt: Loguru format string for the stderr sink.
        rotation: Log file rotation size.
        retention: How long to keep rotated logs.
    """
    logger.remove()
    logger.add(sys.stderr, level=level.upper(), format=fmt)

    if log_file:
        logger.add(
            log_file,
            level=level.upper(),
            format="{time:YYYY-MM-DD HH:mm:ss} | {level} | {name} | {message}",
            rotation=rotation,
            retention=retention,
        )


def configure_logging(config) -> None:
    """Apply the logging settings of a StoreConfig."""
    setup_logging(level=config.log_level, log_file=config.log_file)
