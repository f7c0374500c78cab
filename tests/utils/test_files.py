"""
Tests for atomic file writes.
"""

import os
import stat

import pytest

from cipherscore.utils.files import atomic_write


class TestAtomicWrite:
    """Key and model artifacts are written atomically."""

    def test_writes_text_and_bytes(self, tmp_path):
        atomic_write(tmp_path / "a.json", "{}")
        atomic_write(tmp_path / "b.bin", b"\x00\x01")
        assert (tmp_path / "a.json").read_text() == "{}"
        assert (tmp_path / "b.bin").read_bytes() == b"\x00\x01"

    def test_creates_parent_directories(self, tmp_path):
        atomic_write(tmp_path / "nested" / "dir" / "f", b"x")
        assert (tmp_path / "nested" / "dir" / "f").exists()

    def test_leaves_no_temp_files(self, tmp_path):
        atomic_write(tmp_path / "f", b"x")
        atomic_write(tmp_path / "f", b"y")
        assert [p.name for p in tmp_path.iterdir()] == ["f"]
        assert (tmp_path / "f").read_bytes() == b"y"

    @pytest.mark.skipif(os.name != "posix", reason="POSIX permissions")
    def test_mode_applied(self, tmp_path):
        atomic_write(tmp_path / "secret", b"x", mode=0o600)
        assert stat.S_IMODE((tmp_path / "secret").stat().st_mode) == 0o600
