"""Attaching image files as block devices.

Backends:
    HdiutilAttacher: macOS ``hdiutil attach -nomount``; partitions appear as
        ``/dev/diskNsM`` (block) and ``/dev/rdiskNsM`` (raw, preferred)
    LoopAttacher: Linux ``losetup --show -f -P``; partitions appear as
        ``/dev/loopNpM``

Attach reads the partition table first so the partition index and start
offset come from the image itself. If the partition node cannot be found the
attacher detaches again before raising, so a failed attach never leaves a
device behind.
"""

from __future__ import annotations

import os
import re
import stat
import sys
from typing import Callable, Optional

from imgshrink.domain.models import AttachedDevice, ImageHandle, PartitionEntry
from imgshrink.logging import LoggerFactory

from .commands import describe_failure, run_command
from .exceptions import (
    AttachError,
    DeviceNotResolvedError,
    PartitionNodeNotFoundError,
)
from .partition_table import read_filesystem_partition
from .parsers import parse_attach_device


log = LoggerFactory.for_device()


def is_device_node(path: str, allow_char: bool = False) -> bool:
    """True if ``path`` is a block special file (or character, if allowed)."""
    try:
        mode = os.stat(path).st_mode
    except OSError:
        return False
    if stat.S_ISBLK(mode):
        return True
    return allow_char and stat.S_ISCHR(mode)


class DeviceAttacher:
    """Base class: attach an image, find its partition node, detach it."""

    name = "attach"

    def __init__(
        self,
        partition_reader: Callable[[ImageHandle], PartitionEntry] = read_filesystem_partition,
    ):
        self.partition_reader = partition_reader

    def attach(self, image: ImageHandle) -> AttachedDevice:
        """Expose ``image`` as a device and locate the filesystem partition.

        Raises:
            PartitionTableReadError: If the partition table cannot be read
            AttachError: If the attach tool fails
            DeviceNotResolvedError: If no device identifier was printed
            PartitionNodeNotFoundError: If the partition node is missing
        """
        partition = self.partition_reader(image)
        log.info(f"Attaching image with {self.name}")
        identifier = self.attach_image(image)
        log.info(
            f"Device: {identifier} ; partition: {partition.number} "
            f"(start {partition.start})"
        )
        try:
            partition_path = self.resolve_partition_node(identifier, partition.number)
        except PartitionNodeNotFoundError:
            self.log_diagnostics(identifier)
            self.detach_identifier(identifier)
            raise
        log.info(f"Using partition device: {partition_path}")
        return AttachedDevice(
            identifier=identifier,
            partition_path=partition_path,
            partition_index=partition.number,
            partition_start=partition.start,
        )

    def reattach(self, image: ImageHandle, previous: AttachedDevice) -> AttachedDevice:
        """Attach ``image`` again after its partition table was rewritten."""
        identifier = self.attach_image(image)
        log.debug(f"Re-attached {image.name} as {identifier}")
        partition_path = self.partition_path_for(identifier, previous.partition_index)
        return AttachedDevice(
            identifier=identifier,
            partition_path=partition_path,
            partition_index=previous.partition_index,
            partition_start=previous.partition_start,
        )

    def detach(self, device: AttachedDevice) -> bool:
        """Best-effort detach; failures are logged, never raised."""
        return self.detach_identifier(device.identifier)

    def detach_identifier(self, identifier: str) -> bool:
        try:
            result = run_command(self.detach_command(identifier))
        except OSError as error:
            log.warning(f"Failed to detach {identifier}: {error}")
            return False
        if result.returncode != 0:
            log.warning(f"Failed to detach {identifier}: {describe_failure(result)}")
            return False
        log.debug(f"Detached {identifier}")
        return True

    def resolve_partition_node(self, identifier: str, index: int) -> str:
        candidates = self.partition_candidates(identifier, index)
        for path, allow_char in candidates:
            if is_device_node(path, allow_char=allow_char):
                return path
        raise PartitionNodeNotFoundError(identifier, [path for path, _ in candidates])

    def partition_path_for(self, identifier: str, index: int) -> str:
        """Preferred partition node name, whether or not it exists yet."""
        return self.partition_candidates(identifier, index)[0][0]

    def log_diagnostics(self, identifier: str) -> None:
        command = self.diagnostic_command(identifier)
        if not command:
            return
        result = run_command(command)
        log.error(f"Partition device not present; listing attached devices:\n{result.stdout}")

    # Backend hooks

    def attach_image(self, image: ImageHandle) -> str:
        raise NotImplementedError

    def partition_candidates(self, identifier: str, index: int) -> list[tuple[str, bool]]:
        raise NotImplementedError

    def detach_command(self, identifier: str) -> list[str]:
        raise NotImplementedError

    def diagnostic_command(self, identifier: str) -> Optional[list[str]]:
        return None

    def _resolve_identifier(self, output: str) -> str:
        identifier = parse_attach_device(output)
        if not identifier or not identifier.startswith("/dev/"):
            raise DeviceNotResolvedError(output)
        return identifier


class HdiutilAttacher(DeviceAttacher):
    """macOS disk image attachment via hdiutil."""

    name = "hdiutil"

    def attach_image(self, image: ImageHandle) -> str:
        path = str(image.path)
        result = run_command(["hdiutil", "attach", "-nomount", path])
        output = result.stdout.strip() if result.returncode == 0 else ""
        if not output:
            # Some images only attach without -nomount
            result = run_command(["hdiutil", "attach", path])
            output = result.stdout.strip() if result.returncode == 0 else ""
        if not output:
            raise AttachError(
                f"hdiutil failed to attach image: {describe_failure(result)}",
                command=["hdiutil", "attach", path],
                returncode=result.returncode,
            )
        return self._resolve_identifier(output)

    def partition_candidates(self, identifier: str, index: int) -> list[tuple[str, bool]]:
        block = f"{identifier}s{index}"
        raw = re.sub(r"^/dev/", "/dev/r", block, count=1)
        return [(raw, True), (block, False)]

    def detach_command(self, identifier: str) -> list[str]:
        return ["hdiutil", "detach", identifier]

    def diagnostic_command(self, identifier: str) -> Optional[list[str]]:
        return ["diskutil", "list", identifier]


class LoopAttacher(DeviceAttacher):
    """Linux loop device attachment via losetup."""

    name = "losetup"

    def attach_image(self, image: ImageHandle) -> str:
        command = ["losetup", "--show", "-f", "-P", str(image.path)]
        result = run_command(command)
        if result.returncode != 0 or not result.stdout.strip():
            raise AttachError(
                f"losetup failed to attach image: {describe_failure(result)}",
                command=command,
                returncode=result.returncode,
            )
        return self._resolve_identifier(result.stdout)

    def partition_candidates(self, identifier: str, index: int) -> list[tuple[str, bool]]:
        return [(f"{identifier}p{index}", False)]

    def detach_command(self, identifier: str) -> list[str]:
        return ["losetup", "-d", identifier]

    def diagnostic_command(self, identifier: str) -> Optional[list[str]]:
        return ["lsblk", identifier]


def select_attacher(platform: Optional[str] = None) -> DeviceAttacher:
    """Pick the attach backend for the host platform."""
    platform = platform or sys.platform
    if platform == "darwin":
        return HdiutilAttacher()
    return LoopAttacher()


def required_tools(platform: Optional[str] = None) -> list[str]:
    """Attach tools the selected backend needs."""
    platform = platform or sys.platform
    if platform == "darwin":
        return ["hdiutil", "diskutil"]
    return ["losetup"]
