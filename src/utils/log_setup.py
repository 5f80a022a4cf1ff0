"""
Logging setup for the test session.

Configures loguru sinks from LoggingSettings:
- Coloured console sink on stderr.
- Optional JSON-serialised file sink (LOG_TO_FILE / LOG_FILE_PATH).

Also provides small helpers that give test logs a consistent narrative
(test start/end, steps, actions, assertions).
"""

from __future__ import annotations

import sys
from pathlib import Path
from typing import List

from loguru import logger

from src.config.settings import LoggingSettings

CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> "
    "[<level>{level}</level>]: {message}"
)

_handler_ids: List[int] = []


def configure_logging(settings: LoggingSettings) -> None:
    """
    Install the console (and optional file) sinks.

    Safe to call more than once: sinks added by a previous call are removed
    first, so the last call wins.
    """
    global _handler_ids

    if not _handler_ids:
        # Drop loguru's default stderr sink on first configuration
        logger.remove()
    for handler_id in _handler_ids:
        try:
            logger.remove(handler_id)
        except ValueError:
            logger.debug(f"Log sink {handler_id} was already removed")
    _handler_ids = []

    _handler_ids.append(
        logger.add(sys.stderr, level=settings.level, format=CONSOLE_FORMAT, colorize=True)
    )

    if settings.to_file:
        log_path = Path(settings.file_path)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        _handler_ids.append(
            logger.add(str(log_path), level=settings.level, serialize=True)
        )

    logger.debug(
        f"Logging configured: level={settings.level}, "
        f"file={settings.file_path if settings.to_file else 'disabled'}"
    )


def log_test_start(test_name: str) -> None:
    logger.info(f"Test started: {test_name}")


def log_test_end(test_name: str, status: str) -> None:
    if status == "passed":
        logger.info(f"Test passed: {test_name}")
    elif status == "skipped":
        logger.warning(f"Test skipped: {test_name}")
    else:
        logger.error(f"Test {status}: {test_name}")


def log_step(step: str) -> None:
    logger.info(f"Step: {step}")


def log_action(action: str) -> None:
    logger.info(f"Action: {action}")


def log_assertion(assertion: str) -> None:
    logger.info(f"Assertion: {assertion}")
