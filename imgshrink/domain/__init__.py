"""Domain models for image shrinking."""

from .models import (
    AttachedDevice,
    CheckOutcome,
    CompressionStrategy,
    FilesystemStats,
    ImageHandle,
    PartitionEntry,
    PartitionSpec,
    PipelineContext,
    PipelineState,
    ShrinkPlan,
    ShrinkResult,
)

__all__ = [
    "AttachedDevice",
    "CheckOutcome",
    "CompressionStrategy",
    "FilesystemStats",
    "ImageHandle",
    "PartitionEntry",
    "PartitionSpec",
    "PipelineContext",
    "PipelineState",
    "ShrinkPlan",
    "ShrinkResult",
]
