"""Centralized logging setup for the donation form OCR system.

Provides a structured logging configuration with consistent formatting
across all modules, plus a timer used to measure pipeline stages.
"""

import logging
import sys
import time
from types import TracebackType


def setup_logging(level: str = "INFO") -> None:
    """Configure the root logger with a standard format.

    Args:
        level: Logging level string (DEBUG, INFO, WARNING, ERROR, CRITICAL).
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)
    root = logging.getLogger()

    if root.handlers:
        return

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    )
    root.addHandler(handler)
    root.setLevel(numeric_level)


def get_logger(name: str) -> logging.Logger:
    """Get a named logger instance.

    Args:
        name: Logger name, typically ``__name__`` of the calling module.

    Returns:
        Configured logger instance.
    """
    return logging.getLogger(name)


class StageTimer:
    """Context manager measuring the wall-clock duration of a pipeline stage.

    The elapsed time is available as ``elapsed_ms`` once the block exits,
    whether it exits normally or by exception.

    Args:
        logger: Logger receiving the DEBUG timing line.
        stage: Human-readable stage name used in the log line.
    """

    def __init__(self, logger: logging.Logger, stage: str) -> None:
        self.logger = logger
        self.stage = stage
        self.elapsed_ms = 0.0
        self._start = 0.0

    def __enter__(self) -> "StageTimer":
        self._start = time.perf_counter()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.elapsed_ms = (time.perf_counter() - self._start) * 1000
        self.logger.debug("%s took %.1f ms", self.stage, self.elapsed_ms)
