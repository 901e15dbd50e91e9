"""Tests for storage/images.py - preconditions and image preparation."""

from unittest.mock import patch

import pytest

from imgshrink.domain.models import CompressionStrategy
from imgshrink.storage.exceptions import ImageNotFoundError, PrivilegeError
from imgshrink.storage.images import ensure_root, human_size, open_image, prepare_image


class TestHumanSize:
    """Tests for human_size()."""

    def test_bytes(self):
        assert human_size(512) == "512.0B"

    def test_megabytes(self):
        assert human_size(4 * 1024 * 1024) == "4.0MB"

    def test_none(self):
        assert human_size(None) == "0B"


class TestEnsureRoot:
    """Tests for ensure_root()."""

    @patch("imgshrink.storage.images.os.geteuid", return_value=0)
    def test_root_passes(self, mock_geteuid):
        ensure_root()

    @patch("imgshrink.storage.images.os.geteuid", return_value=1000)
    def test_non_root_exit_code_3(self, mock_geteuid):
        with pytest.raises(PrivilegeError) as info:
            ensure_root()

        assert info.value.exit_code == 3


class TestOpenImage:
    """Tests for open_image()."""

    def test_existing_image(self, image_file):
        handle = open_image(image_file)

        assert handle.path == image_file
        assert handle.byte_length == 4 * 1024 * 1024

    def test_missing_image(self, tmp_path):
        with pytest.raises(ImageNotFoundError):
            open_image(tmp_path / "missing.img")

    def test_directory_is_not_an_image(self, tmp_path):
        with pytest.raises(ImageNotFoundError):
            open_image(tmp_path)


class TestPrepareImage:
    """Tests for prepare_image()."""

    def test_in_place_without_target(self, image_file):
        assert prepare_image(image_file).path == image_file

    def test_copies_to_target(self, image_file, tmp_path):
        """Test the copy is shrunk and the source stays as it was."""
        target = tmp_path / "copy.img"

        handle = prepare_image(image_file, target)

        assert handle.path == target
        assert handle.byte_length == image_file.stat().st_size
        assert image_file.exists()

    def test_target_compression_suffix_stripped(self, image_file, tmp_path):
        """Test a target named like the compressed output is copied without the suffix."""
        handle = prepare_image(image_file, tmp_path / "copy.img.gz", CompressionStrategy.GZIP)

        assert handle.path == tmp_path / "copy.img"
        assert not (tmp_path / "copy.img.gz").exists()

    def test_missing_source(self, tmp_path):
        with pytest.raises(ImageNotFoundError):
            prepare_image(tmp_path / "missing.img", tmp_path / "copy.img")
