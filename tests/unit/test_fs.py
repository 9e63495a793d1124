"""Tests for file system helpers."""

import pytest

from specloop.utils.fs import FileSystemError, ensure_dir, read_file, remove_file, safe_write


class TestSafeWrite:
    def test_writes_and_replaces(self, tmp_path):
        target = tmp_path / "a" / "b.txt"
        safe_write(target, "one")
        safe_write(target, "two")
        assert target.read_text() == "two"

    def test_no_temp_files_left(self, tmp_path):
        safe_write(tmp_path / "x.txt", "data")
        assert [p.name for p in tmp_path.iterdir()] == ["x.txt"]

    def test_empty_content(self, tmp_path):
        safe_write(tmp_path / "empty.txt", "")
        assert (tmp_path / "empty.txt").read_bytes() == b""

    def test_failure_raises(self, tmp_path):
        (tmp_path / "file").write_text("x")
        with pytest.raises(FileSystemError):
            safe_write(tmp_path / "file" / "child.txt", "y")


class TestRemoveAndRead:
    def test_remove_file(self, tmp_path):
        target = tmp_path / "x.txt"
        target.write_text("x")
        assert remove_file(target) is True
        assert remove_file(target) is False

    def test_read_file_preserves_newlines(self, tmp_path):
        (tmp_path / "x.txt").write_bytes(b"a\r\nb")
        assert read_file(tmp_path / "x.txt") == "a\r\nb"

    def test_read_missing(self, tmp_path):
        with pytest.raises(FileSystemError, match="File not found"):
            read_file(tmp_path / "missing.txt")

    def test_read_invalid_utf8(self, tmp_path):
        (tmp_path / "bin").write_bytes(b"\xff\xfe\x00")
        with pytest.raises(FileSystemError, match="Failed to read"):
            read_file(tmp_path / "bin")

    def test_ensure_dir_idempotent(self, tmp_path):
        path = ensure_dir(tmp_path / "a" / "b")
        assert ensure_dir(path) == path
        assert path.is_dir()
