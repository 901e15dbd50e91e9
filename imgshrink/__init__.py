"""Shrink ext2/3/4 disk images to their minimum size."""

from .__version__ import __version__

__all__ = ["__version__"]
