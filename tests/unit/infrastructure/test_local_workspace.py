"""Unit tests for LocalWorkspace file operations."""

import os

import pytest

from taskpilot.infrastructure.workspace.local_workspace import LocalWorkspace


class TestLocalWorkspaceFiles:
    @pytest.mark.asyncio
    async def test_write_and_read(self, workspace, tmp_path):
        await workspace.write_file("nested/dir/file.txt", "héllo")

        assert await workspace.path_exists("nested/dir/file.txt")
        assert await workspace.read_file(str(tmp_path / "nested" / "dir" / "file.txt")) == "héllo"

    @pytest.mark.asyncio
    async def test_bytes_round_trip_without_newline_translation(self, workspace, tmp_path):
        await workspace.write_file("crlf.txt", "x\r\ny\n")

        assert (tmp_path / "crlf.txt").read_bytes() == b"x\r\ny\n"
        assert await workspace.read_bytes("crlf.txt") == b"x\r\ny\n"

    @pytest.mark.asyncio
    async def test_read_directory_paths_are_root_relative(self, workspace, tmp_path):
        (tmp_path / "a" / "b").mkdir(parents=True)
        (tmp_path / "a" / "c.txt").write_text("", encoding="utf-8")

        entries = await workspace.read_directory("a")

        assert [(e.name, e.type, e.path) for e in entries] == [
            ("b", "directory", "a/b"),
            ("c.txt", "file", "a/c.txt"),
        ]

    def test_root_is_absolute(self, tmp_path):
        workspace = LocalWorkspace(str(tmp_path / "x" / ".."))
        assert os.path.isabs(workspace.root)
        assert workspace.root == str(tmp_path.resolve())
