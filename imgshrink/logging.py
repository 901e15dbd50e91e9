from __future__ import annotations

import sys
import time
import uuid
from contextlib import contextmanager
from pathlib import Path
from typing import TYPE_CHECKING, Iterable

if TYPE_CHECKING:
    from loguru import Logger

from loguru import logger


def setup_logging(
    *,
    verbose: bool = False,
    log_file: Path | None = None,
) -> Logger:
    """
    Setup console logging and the optional mirrored log file.

    Sinks:
    - stderr: INFO+ (DEBUG+ with verbose), colorized
    - log file: everything at DEBUG+ when ``log_file`` is given (the -d flag)

    Args:
        verbose: Enable DEBUG level console output
        log_file: Path of the file mirroring all output
    """
    logger.remove()
    logger.configure(extra={"job_id": "-", "tags": [], "source": "imgshrink"})

    console_level = "DEBUG" if verbose else "INFO"

    # SINK 1: Console (stderr)
    logger.add(
        sys.stderr,
        level=console_level,
        backtrace=False,
        diagnose=False,
        colorize=True,
        format=(
            "<green>{time:HH:mm:ss}</green> | "
            "<level>{level: <8}</level> | "
            "<cyan>{extra[source]: <12}</cyan> | "
            "{message}"
        ),
    )

    # SINK 2: Debug log file
    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        logger.add(
            log_file,
            level="DEBUG",
            backtrace=True,
            diagnose=False,
            format=(
                "{time:YYYY-MM-DD HH:mm:ss.SSS} | "
                "{level: <8} | "
                "{extra[source]: <12} | "
                "{extra[job_id]: <15} | "
                "{message}"
            ),
        )

    return logger


def get_logger(
    *,
    job_id: str | None = None,
    tags: Iterable[str] | None = None,
    source: str | None = None,
) -> Logger:
    """
    Get a logger with bound context.

    Args:
        job_id: Job identifier for tracking a run
        tags: Tags for filtering (e.g., ["command"])
        source: Source component (e.g., "attach", "partition")

    Returns:
        Logger with bound context
    """
    extras: dict[str, object] = {}
    if job_id is not None:
        extras["job_id"] = job_id
    if tags is not None:
        extras["tags"] = list(tags)
    if source is not None:
        extras["source"] = source
    return logger.bind(**extras)


@contextmanager
def operation_context(operation: str, **details):
    """
    Context manager for tracking long-running operations with automatic timing.

    Logs operation start, completion, and failure with duration tracking.

    Args:
        operation: Operation name (e.g., "shrink")
        **details: Operation-specific details to log

    Yields:
        Logger bound with job_id and operation context

    Example:
        with operation_context("shrink", image="disk.img") as log:
            log.debug("Attaching image")
    """
    job_id = f"{operation}-{uuid.uuid4().hex[:8]}"

    with logger.contextualize(job_id=job_id, operation=operation, **details):
        start_time = time.time()
        log = logger.bind(source=operation, job_id=job_id, tags=[operation])

        log.info(f"{operation.capitalize()} started", **details)

        try:
            yield log
            duration = time.time() - start_time
            log.success(
                f"{operation.capitalize()} completed", duration_seconds=round(duration, 2)
            )
        except Exception as e:
            duration = time.time() - start_time
            log.error(
                f"{operation.capitalize()} failed",
                error=str(e),
                error_type=type(e).__name__,
                duration_seconds=round(duration, 2),
            )
            raise


class LoggerFactory:
    """
    Factory for creating domain-specific loggers with automatic context.

    Each factory method returns a logger pre-configured with the source and
    tags of one pipeline component.
    """

    @staticmethod
    def for_device() -> Logger:
        """Logger for attaching and detaching images."""
        return logger.bind(source="device", tags=["device"])

    @staticmethod
    def for_filesystem() -> Logger:
        """Logger for filesystem inspection, checks and resizing."""
        return logger.bind(source="filesystem", tags=["filesystem"])

    @staticmethod
    def for_partition() -> Logger:
        """Logger for partition table rewrites."""
        return logger.bind(source="partition", tags=["partition"])

    @staticmethod
    def for_compression() -> Logger:
        """Logger for compressing finished images."""
        return logger.bind(source="compression", tags=["compression"])

    @staticmethod
    def for_command() -> Logger:
        """Logger for raw external command execution."""
        return logger.bind(source="command", tags=["command"])

    @staticmethod
    def for_system() -> Logger:
        """Logger for startup, preconditions and configuration."""
        return logger.bind(source="system", tags=["system"])
