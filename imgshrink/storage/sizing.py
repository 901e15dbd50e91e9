"""Target size calculation for filesystem shrinking."""

from __future__ import annotations

from imgshrink.domain.models import ShrinkPlan


# Checked largest first; the first value strictly below the freed block
# count becomes the slack.
SLACK_CANDIDATES = (5000, 1000, 100)


def select_slack(extra_blocks: int) -> int:
    """Return the slack blocks to keep for ``extra_blocks`` of free space."""
    for candidate in SLACK_CANDIDATES:
        if extra_blocks > candidate:
            return candidate
    return 0


def plan(current: int, minimum: int, block_size: int) -> ShrinkPlan:
    """Compute the shrink target for a filesystem.

    Args:
        current: Current block count
        minimum: Minimum block count reported by the resize tool
        block_size: Filesystem block size in bytes

    Returns:
        ShrinkPlan with ``target_blocks = minimum + slack``

    Raises:
        ValueError: If the inputs cannot describe a shrink
    """
    if block_size <= 0:
        raise ValueError(f"Block size must be positive, got {block_size}")
    if minimum < 0 or current < 0:
        raise ValueError("Block counts cannot be negative")
    if minimum > current:
        raise ValueError(
            f"Minimum block count {minimum} exceeds current block count {current}"
        )

    if current == minimum:
        return ShrinkPlan(
            current_blocks=current,
            minimum_blocks=minimum,
            slack_blocks=0,
            target_blocks=current,
        )

    slack = select_slack(current - minimum)
    return ShrinkPlan(
        current_blocks=current,
        minimum_blocks=minimum,
        slack_blocks=slack,
        target_blocks=minimum + slack,
    )
