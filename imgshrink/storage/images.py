"""Image file preconditions and bookkeeping."""

from __future__ import annotations

import os
import shutil
from pathlib import Path
from typing import Optional

from imgshrink.domain.models import CompressionStrategy, ImageHandle
from imgshrink.logging import LoggerFactory

from .compression import strip_compression_suffix
from .exceptions import ImageNotFoundError, PrivilegeError


log = LoggerFactory.for_system()


def human_size(size_bytes):
    if size_bytes is None:
        return "0B"
    size = float(size_bytes)
    for unit in ["B", "KB", "MB", "GB", "TB"]:
        if size < 1024.0:
            return f"{size:.1f}{unit}"
        size /= 1024.0
    return f"{size:.1f}PB"


def ensure_root() -> None:
    """Raise PrivilegeError unless running as root."""
    if os.geteuid() != 0:
        raise PrivilegeError()


def open_image(path: Path) -> ImageHandle:
    """Return a handle for an existing regular image file."""
    path = Path(path)
    if not path.is_file():
        raise ImageNotFoundError(path)
    return ImageHandle.from_path(path)


def prepare_image(
    source: Path,
    target: Optional[Path] = None,
    strategy: CompressionStrategy = CompressionStrategy.NONE,
) -> ImageHandle:
    """Return the handle of the image to shrink.

    With a ``target`` the source is copied first (metadata preserved) and
    the copy is shrunk instead. A target already named with the chosen
    compressor's suffix is copied without it, since compression adds it back.
    """
    source_image = open_image(source)
    if target is None:
        return source_image
    destination = strip_compression_suffix(Path(target), strategy)
    log.info(f"Copying {source_image.path} to {destination}...")
    shutil.copy2(source_image.path, destination)
    return ImageHandle.from_path(destination)
