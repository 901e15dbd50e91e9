"""
Pytest configuration and shared fixtures for imgshrink tests.

This module provides common fixtures and utilities used across all test modules.
"""

from pathlib import Path
from typing import List
from unittest.mock import Mock

import pytest

from imgshrink.domain.models import AttachedDevice, ImageHandle


# ==============================================================================
# Tool Output Fixtures
# ==============================================================================


@pytest.fixture
def parted_print_output() -> str:
    """Fixture providing ``parted -ms IMG unit B print`` output for a Pi image."""
    return (
        "BYT;\n"
        "/images/raspios.img:3980394496B:file:512:512:msdos::;\n"
        "1:4194304B:272629759B:268435456B:fat32::lba;\n"
        "2:272629760B:3980394495B:3707764736B:ext4::;\n"
    )


@pytest.fixture
def parted_print_free_output() -> str:
    """Fixture providing ``print free`` output after the partition was shrunk."""
    return (
        "BYT;\n"
        "/images/raspios.img:3980394496B:file:512:512:msdos::;\n"
        "1:512B:4194303B:4193792B:free;\n"
        "1:4194304B:272629759B:268435456B:fat32::lba;\n"
        "2:272629760B:1072629760B:800000001B:ext4::;\n"
        "1:1072629761B:3980394495B:2907764735B:free;\n"
    )


@pytest.fixture
def tune2fs_output() -> str:
    """Fixture providing the relevant part of ``tune2fs -l`` output."""
    return (
        "tune2fs 1.46.5 (30-Dec-2021)\n"
        "Filesystem volume name:   rootfs\n"
        "Filesystem UUID:          deadbeef-1234-5678-90ab-cdef12345678\n"
        "Filesystem features:      has_journal ext_attr resize_inode dir_index\n"
        "Block count:              905216\n"
        "Reserved block count:     45260\n"
        "Free blocks:              512340\n"
        "Block size:               4096\n"
        "Last mount time:          Thu Jan  1 00:00:00 1970\n"
    )


@pytest.fixture
def resize2fs_minimum_output() -> str:
    """Fixture providing ``resize2fs -P`` stdout."""
    return "Estimated minimum size of the filesystem: 190000\n"


# ==============================================================================
# Domain Fixtures
# ==============================================================================


@pytest.fixture
def attached_device() -> AttachedDevice:
    """Fixture providing an attached loop device for partition 2."""
    return AttachedDevice(
        identifier="/dev/loop3",
        partition_path="/dev/loop3p2",
        partition_index=2,
        partition_start=272629760,
    )


@pytest.fixture
def image_file(tmp_path) -> Path:
    """Fixture providing a sparse 4 MiB image file on disk."""
    path = tmp_path / "disk.img"
    with open(path, "wb") as image:
        image.truncate(4 * 1024 * 1024)
    return path


@pytest.fixture
def image_handle(image_file) -> ImageHandle:
    """Fixture providing a handle for ``image_file``."""
    return ImageHandle.from_path(image_file)


# ==============================================================================
# Subprocess Mock Fixtures
# ==============================================================================


def completed(returncode: int = 0, stdout: str = "", stderr: str = "") -> Mock:
    """Build a stand-in for subprocess.CompletedProcess."""
    result = Mock()
    result.returncode = returncode
    result.stdout = stdout
    result.stderr = stderr
    return result


@pytest.fixture
def mock_subprocess_run(mocker):
    """
    Fixture providing a mock for subprocess.run.

    Returns:
        Mock object for subprocess.run
    """
    return mocker.patch("subprocess.run")


@pytest.fixture
def capture_subprocess_calls(mocker) -> List[List]:
    """
    Fixture that captures all subprocess.run calls for inspection.

    Returns:
        List that will contain all subprocess command arguments.
    """
    calls = []

    def track_call(cmd, **kwargs):
        calls.append(cmd)
        return completed()

    mocker.patch("subprocess.run", side_effect=track_call)
    return calls

