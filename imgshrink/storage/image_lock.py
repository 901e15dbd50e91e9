"""Exclusive ownership of an image for the duration of a shrink run.

Usage:
    from imgshrink.storage.image_lock import image_operation

    with image_operation(Path("disk.img")):
        # attach, resize, rewrite, truncate
        ...
"""

from __future__ import annotations

import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Generator

from imgshrink.logging import LoggerFactory

from .exceptions import ImageBusyError


log = LoggerFactory.for_device()

# Lock for thread-safe access to the active image set
_lock = threading.Lock()

_active_images: set[Path] = set()


def _key(path: Path) -> Path:
    return Path(path).resolve()


@contextmanager
def image_operation(path: Path) -> Generator[None, None, None]:
    """Context manager that claims ``path`` for one run.

    Raises:
        ImageBusyError: If another run in this process holds the image
    """
    key = _key(path)
    with _lock:
        if key in _active_images:
            raise ImageBusyError(path)
        _active_images.add(key)
        log.debug(f"Image operation started on {key}")

    try:
        yield
    finally:
        with _lock:
            _active_images.discard(key)
            log.debug(f"Image operation completed on {key}")


def is_image_active(path: Path) -> bool:
    """Check whether a run currently owns ``path``."""
    with _lock:
        return _key(path) in _active_images
