"""Domain model for image shrinking.

Frozen dataclasses describing the image, the attached device, the filesystem
snapshot and the shrink plan that flow between pipeline stages.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path


# ==============================================================================
# Image Domain
# ==============================================================================


@dataclass(frozen=True)
class ImageHandle:
    """A disk image file and its byte length."""

    path: Path
    byte_length: int

    @classmethod
    def from_path(cls, path: Path | str) -> ImageHandle:
        """Build a handle from the file currently on disk.

        Raises:
            FileNotFoundError: If the image does not exist
        """
        path = Path(path)
        return cls(path=path, byte_length=path.stat().st_size)

    @property
    def name(self) -> str:
        return self.path.name


@dataclass(frozen=True)
class PartitionEntry:
    """One row of a partition table listing (byte units, end inclusive)."""

    number: int
    start: int
    end: int
    size: int
    fstype: str | None = None

    @property
    def is_free(self) -> bool:
        """True for unallocated regions reported by ``print free``."""
        return self.fstype == "free"


@dataclass(frozen=True)
class AttachedDevice:
    """An image exposed to the host as a block device."""

    identifier: str  # e.g., "/dev/disk4" or "/dev/loop3"
    partition_path: str  # node the filesystem tools operate on
    partition_index: int
    partition_start: int  # byte offset of the partition inside the image


# ==============================================================================
# Filesystem Domain
# ==============================================================================


@dataclass(frozen=True)
class FilesystemStats:
    """Snapshot of ext filesystem geometry, taken once per run."""

    block_count: int
    block_size: int
    minimum_block_count: int

    @property
    def byte_size(self) -> int:
        return self.block_count * self.block_size


class CheckOutcome(Enum):
    """Result of a successful filesystem check."""

    HEALTHY = "healthy"
    REPAIRED = "repaired"


@dataclass(frozen=True)
class ShrinkPlan:
    """Target filesystem size, in the same block units as FilesystemStats."""

    current_blocks: int
    minimum_blocks: int
    slack_blocks: int
    target_blocks: int

    @property
    def is_noop(self) -> bool:
        """True when the filesystem is already as small as the plan allows."""
        return self.target_blocks == self.current_blocks


@dataclass(frozen=True)
class PartitionSpec:
    """New geometry for the filesystem partition."""

    partition_index: int
    start: int
    end: int

    @classmethod
    def for_plan(
        cls, device: AttachedDevice, plan: ShrinkPlan, block_size: int
    ) -> PartitionSpec:
        """Compute the partition range holding ``plan.target_blocks`` blocks."""
        return cls(
            partition_index=device.partition_index,
            start=device.partition_start,
            end=device.partition_start + plan.target_blocks * block_size,
        )


# ==============================================================================
# Compression Domain
# ==============================================================================


class CompressionStrategy(Enum):
    """How the finished image is compressed."""

    NONE = "none"
    GZIP = "gzip"
    GZIP_PARALLEL = "gzip-parallel"
    XZ = "xz"

    @property
    def suffix(self) -> str:
        """Canonical file suffix appended by the compressor."""
        if self in (CompressionStrategy.GZIP, CompressionStrategy.GZIP_PARALLEL):
            return ".gz"
        if self == CompressionStrategy.XZ:
            return ".xz"
        return ""

    @property
    def tool(self) -> str | None:
        """Executable implementing the strategy."""
        return {
            CompressionStrategy.GZIP: "gzip",
            CompressionStrategy.GZIP_PARALLEL: "pigz",
            CompressionStrategy.XZ: "xz",
        }.get(self)


# ==============================================================================
# Pipeline Domain
# ==============================================================================


class PipelineState(Enum):
    """States visited by a shrink run."""

    START = "start"
    ATTACHED = "attached"
    CHECKED = "checked"
    PLANNED = "planned"
    ALREADY_MINIMAL = "already_minimal"
    RESIZED = "resized"
    DETACHED = "detached"
    REPARTITIONED = "repartitioned"
    TRUNCATED = "truncated"
    REATTACHED = "reattached"
    RELEASED = "released"
    COMPRESSED = "compressed"
    DONE = "done"
    ABORTED = "aborted"


@dataclass(frozen=True)
class PipelineContext:
    """Immutable configuration for one shrink run."""

    image: ImageHandle
    repair_allowed: bool = False
    compression: CompressionStrategy = CompressionStrategy.NONE
    zero_fill: bool = True
    skip_autoexpand: bool = False


@dataclass(frozen=True)
class ShrinkResult:
    """Outcome of a completed run."""

    output_path: Path
    bytes_before: int
    bytes_after: int
    plan: ShrinkPlan
    states: list[PipelineState] = field(default_factory=list)
