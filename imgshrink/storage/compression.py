"""Compression of finished images."""

from __future__ import annotations

from pathlib import Path
from typing import Callable, Optional

from imgshrink.config import settings
from imgshrink.domain.models import CompressionStrategy, ImageHandle
from imgshrink.logging import LoggerFactory

from .commands import run_checked_command, tool_available
from .exceptions import CompressError, UnsupportedStrategyError


log = LoggerFactory.for_compression()

PARALLEL_EXIT_CODE = 18
SERIAL_EXIT_CODE = 19


def compressed_path(path: Path, strategy: CompressionStrategy) -> Path:
    """Path the compressor writes for ``path`` (input plus suffix)."""
    if strategy == CompressionStrategy.NONE:
        return path
    return path.with_name(path.name + strategy.suffix)


def strip_compression_suffix(path: Path, strategy: CompressionStrategy) -> Path:
    """Drop a trailing ``.gz``/``.xz`` matching ``strategy`` from a target name."""
    suffix = strategy.suffix
    if suffix and path.name.endswith(suffix):
        return path.with_name(path.name[: -len(suffix)])
    return path


def select_strategy(
    compressor: Optional[str],
    parallel: bool = False,
    available: Optional[Callable[[str], bool]] = None,
) -> CompressionStrategy:
    """Map command line choices to a strategy.

    ``parallel`` only applies to gzip. When pigz is not installed the
    strategy falls back to serial gzip with a warning.
    """
    if compressor is None:
        return CompressionStrategy.NONE
    if compressor == "xz":
        return CompressionStrategy.XZ
    if compressor != "gzip":
        raise ValueError(f"Unknown compressor: {compressor}")
    if not parallel:
        return CompressionStrategy.GZIP
    if (available or tool_available)("pigz"):
        return CompressionStrategy.GZIP_PARALLEL
    log.warning("pigz not found; falling back to serial gzip")
    return CompressionStrategy.GZIP


class Compressor:
    """Compresses an image in place with gzip, pigz or xz."""

    def __init__(self, level: Optional[int] = None):
        self.level = level

    def compress(self, image: ImageHandle, strategy: CompressionStrategy) -> Path:
        """Compress ``image`` and return the path of the compressed file.

        The tool replaces the source file, so ``image.path`` no longer exists
        afterwards.

        Raises:
            UnsupportedStrategyError: If the strategy's tool is not installed
            CompressError: If the tool fails
        """
        if strategy == CompressionStrategy.NONE:
            return image.path

        tool = strategy.tool
        exit_code = (
            PARALLEL_EXIT_CODE
            if strategy == CompressionStrategy.GZIP_PARALLEL
            else SERIAL_EXIT_CODE
        )
        if not tool or not tool_available(tool):
            raise UnsupportedStrategyError(strategy, tool, exit_code=exit_code)

        level = self.level or settings.get_int(
            "compression_level", settings.DEFAULT_COMPRESSION_LEVEL
        )
        log.info(f"Using {tool} to compress {image.name}")
        run_checked_command(
            [tool, f"-{level}", str(image.path)],
            error=CompressError,
            message=f"{tool} failed",
            exit_code=exit_code,
        )
        return compressed_path(image.path, strategy)
