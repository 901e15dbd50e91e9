"""Tests for collaborator tool output parsers."""

import pytest

from imgshrink.storage.exceptions import ParseError, ToolInvocationError
from imgshrink.storage.parsers import (
    parse_attach_device,
    parse_free_boundary,
    parse_key_value_output,
    parse_last_partition,
    parse_minimum_blocks,
    parse_parted_machine_output,
    parse_tune2fs_output,
)


class TestParsePartedMachineOutput:
    """Tests for parse_parted_machine_output()."""

    def test_skips_header_lines(self, parted_print_output):
        """Test BYT and device lines are not treated as partitions."""
        entries = parse_parted_machine_output(parted_print_output)

        assert [entry.number for entry in entries] == [1, 2]

    def test_parses_byte_fields(self, parted_print_output):
        """Test start, end and size are parsed without the B unit."""
        entry = parse_parted_machine_output(parted_print_output)[1]

        assert entry.start == 272629760
        assert entry.end == 3980394495
        assert entry.size == 3707764736
        assert entry.fstype == "ext4"

    def test_free_rows_are_marked(self, parted_print_free_output):
        """Test free-space rows are recognised."""
        entries = parse_parted_machine_output(parted_print_free_output)

        assert entries[0].is_free is True
        assert entries[-1].is_free is True
        assert entries[2].is_free is False

    def test_empty_fstype_is_none(self):
        """Test a partition without a filesystem reports None."""
        entries = parse_parted_machine_output("BYT;\n/x.img:10B:file:512:512:gpt::;\n1:1B:5B:5B:::;\n")

        assert entries[0].fstype is None

    def test_no_rows_raises(self):
        """Test output with only headers raises ParseError."""
        with pytest.raises(ParseError, match="no partition rows"):
            parse_parted_machine_output("BYT;\n/x.img:10B:file:512:512:loop::;\n")

    def test_parse_error_is_tool_invocation_error(self):
        """Test ParseError belongs to the tool invocation family."""
        with pytest.raises(ToolInvocationError):
            parse_parted_machine_output("")


class TestParseLastPartition:
    """Tests for parse_last_partition()."""

    def test_returns_last_allocated_partition(self, parted_print_output):
        """Test the filesystem partition is the last one listed."""
        entry = parse_last_partition(parted_print_output)

        assert entry.number == 2
        assert entry.start == 272629760

    def test_ignores_trailing_free_space(self, parted_print_free_output):
        """Test free rows are skipped when looking for the last partition."""
        assert parse_last_partition(parted_print_free_output).number == 2

    def test_only_free_space_raises(self):
        """Test a table with no allocated partitions raises ParseError."""
        with pytest.raises(ParseError, match="no allocated"):
            parse_last_partition("BYT;\n1:512B:1000B:489B:free;\n")


class TestParseFreeBoundary:
    """Tests for parse_free_boundary()."""

    def test_trailing_free_row_start_is_boundary(self, parted_print_free_output):
        """Test the boundary is where the trailing free region starts."""
        assert parse_free_boundary(parted_print_free_output) == 1072629761

    def test_without_trailing_free_uses_partition_end(self, parted_print_output):
        """Test the boundary is one past the last partition when nothing is free."""
        assert parse_free_boundary(parted_print_output) == 3980394496


class TestParseTune2fsOutput:
    """Tests for parse_tune2fs_output()."""

    def test_reads_block_count_and_size(self, tune2fs_output):
        """Test block count and size are extracted."""
        assert parse_tune2fs_output(tune2fs_output) == (905216, 4096)

    def test_reserved_block_count_not_confused(self, tune2fs_output):
        """Test only the exact 'Block count' key is used."""
        values = parse_key_value_output(tune2fs_output)

        assert values["Reserved block count"] == "45260"
        assert values["Block count"] == "905216"

    def test_missing_block_size_raises(self):
        """Test missing keys raise ParseError."""
        with pytest.raises(ParseError, match="Block size"):
            parse_tune2fs_output("Block count: 100\n")

    def test_non_numeric_value_raises(self):
        """Test a garbled value raises ParseError."""
        with pytest.raises(ParseError, match="not a number"):
            parse_tune2fs_output("Block count: lots\nBlock size: 4096\n")


class TestParseMinimumBlocks:
    """Tests for parse_minimum_blocks()."""

    def test_reads_estimated_minimum(self, resize2fs_minimum_output):
        """Test the minimum size line is parsed."""
        assert parse_minimum_blocks(resize2fs_minimum_output) == 190000

    def test_ignores_version_banner(self):
        """Test the resize2fs banner does not confuse the parser."""
        output = "resize2fs 1.46.5 (30-Dec-2021)\nEstimated minimum size of the filesystem: 4321\n"

        assert parse_minimum_blocks(output) == 4321

    def test_falls_back_to_last_colon_line(self):
        """Test other wordings still parse from the last colon-delimited line."""
        assert parse_minimum_blocks("Minimum blocks: 77\n") == 77

    def test_unparsable_raises(self):
        """Test output without a number raises ParseError."""
        with pytest.raises(ParseError):
            parse_minimum_blocks("resize2fs: Bad magic number in super-block\n")


class TestParseAttachDevice:
    """Tests for parse_attach_device()."""

    def test_hdiutil_output(self):
        """Test the first field of the first line is the device."""
        output = (
            "/dev/disk4          \tFDisk_partition_scheme\n"
            "/dev/disk4s1        \tWindows_FAT_32\n"
            "/dev/disk4s2        \tLinux\n"
        )

        assert parse_attach_device(output) == "/dev/disk4"

    def test_losetup_output(self):
        """Test losetup --show output."""
        assert parse_attach_device("/dev/loop3\n") == "/dev/loop3"

    def test_empty_output(self):
        """Test empty output yields None."""
        assert parse_attach_device("\n\n") is None
