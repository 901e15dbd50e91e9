"""Parsers for collaborator tool output.

Each function understands the output of exactly one tool and raises
``ParseError`` when the text does not have the expected shape, so format
fragility stays out of the pipeline stages.

Formats:
    parted -ms ... unit B print [free]:
        BYT;
        /path/disk.img:3980394496B:file:512:512:msdos::;
        1:4194304B:272629759B:268435456B:fat32::lba;
        2:272629760B:3980394495B:3707764736B:ext4::;
        1:3980394496B:3980394999B:504B:free;

    tune2fs -l:
        Block count:              905216
        Block size:               4096

    resize2fs -P:
        Estimated minimum size of the filesystem: 190000
"""

from __future__ import annotations

import re
from typing import Optional

from imgshrink.domain.models import PartitionEntry

from .exceptions import ParseError


_BYTES_RE = re.compile(r"^(\d+)B?$")


def _parse_bytes(value: str) -> Optional[int]:
    match = _BYTES_RE.match(value.strip())
    if not match:
        return None
    return int(match.group(1))


def parse_parted_machine_output(output: str) -> list[PartitionEntry]:
    """Parse ``parted -ms IMG unit B print [free]`` into table rows.

    Header lines (``BYT;`` and the device line) are skipped. Rows keep their
    listing order so callers can look at the last one.
    """
    entries: list[PartitionEntry] = []
    for line in output.splitlines():
        stripped = line.strip().rstrip(";")
        if not stripped or not stripped[0].isdigit():
            continue
        fields = stripped.split(":")
        if len(fields) < 4 or not fields[0].isdigit():
            continue
        start = _parse_bytes(fields[1])
        end = _parse_bytes(fields[2])
        size = _parse_bytes(fields[3])
        if start is None or end is None or size is None:
            continue
        fstype = fields[4].strip() if len(fields) > 4 and fields[4].strip() else None
        entries.append(
            PartitionEntry(
                number=int(fields[0]), start=start, end=end, size=size, fstype=fstype
            )
        )
    if not entries:
        raise ParseError("parted", "no partition rows found", output)
    return entries


def parse_last_partition(output: str) -> PartitionEntry:
    """Return the last allocated partition from a ``print`` listing."""
    partitions = [
        entry for entry in parse_parted_machine_output(output) if not entry.is_free
    ]
    if not partitions:
        raise ParseError("parted", "no allocated partitions found", output)
    return partitions[-1]


def parse_free_boundary(output: str) -> int:
    """Return the byte offset where the image's used area ends.

    Reads a ``print free`` listing: when the final row is free space, its
    start is the boundary; otherwise the boundary is one past the final
    partition's inclusive end.
    """
    last = parse_parted_machine_output(output)[-1]
    if last.is_free:
        return last.start
    return last.end + 1


def parse_key_value_output(output: str) -> dict[str, str]:
    """Split ``Key:   value`` lines into a dict (first colon wins)."""
    values: dict[str, str] = {}
    for line in output.splitlines():
        if ":" not in line:
            continue
        key, value = line.split(":", 1)
        values[key.strip()] = value.strip()
    return values


def _required_int(values: dict[str, str], key: str, tool: str, output: str) -> int:
    raw = values.get(key)
    if raw is None:
        raise ParseError(tool, f"'{key}' missing", output)
    digits = raw.replace(" ", "")
    if not digits.isdigit():
        raise ParseError(tool, f"'{key}' is not a number: {raw!r}", output)
    return int(digits)


def parse_tune2fs_output(output: str) -> tuple[int, int]:
    """Return ``(block_count, block_size)`` from ``tune2fs -l`` output."""
    values = parse_key_value_output(output)
    block_count = _required_int(values, "Block count", "tune2fs", output)
    block_size = _required_int(values, "Block size", "tune2fs", output)
    if block_size <= 0:
        raise ParseError("tune2fs", "block size must be positive", output)
    return block_count, block_size


def parse_minimum_blocks(output: str) -> int:
    """Return the minimum block count from ``resize2fs -P`` output."""
    candidates = [line for line in output.splitlines() if ":" in line]
    preferred = [line for line in candidates if "minimum size" in line.lower()]
    for line in preferred or candidates[-1:]:
        value = line.rsplit(":", 1)[1].replace(" ", "").strip()
        if value.isdigit():
            return int(value)
    raise ParseError("resize2fs", "minimum block count not found", output)


def parse_attach_device(output: str) -> Optional[str]:
    """Return the top-level device identifier from attach output.

    The identifier is the first whitespace-separated field of the first
    non-empty line, e.g. ``/dev/disk4`` from hdiutil or ``/dev/loop3`` from
    losetup.
    """
    for line in output.splitlines():
        fields = line.split()
        if fields:
            return fields[0]
    return None
