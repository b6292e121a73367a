"""Unit tests for the file system tools."""

import pytest

from taskpilot.core.domain.errors import ToolExecutionError
from taskpilot.core.domain.models import Session
from taskpilot.core.interfaces.tools import ToolContext
from taskpilot.infrastructure.tools.file_tools import ListDirectoryTool, ReadFileTool, WriteFileTool


@pytest.fixture
def context(workspace):
    return ToolContext(session=Session(goal="g"), workspace=workspace)


class TestReadFileTool:
    @pytest.mark.asyncio
    async def test_reads_relative_to_working_directory(self, context, tmp_path):
        (tmp_path / "app").mkdir()
        (tmp_path / "app" / "main.py").write_text("print(1)\n", encoding="utf-8")
        context.session.working_directory = "app"

        result = await ReadFileTool().execute({"file_path": "main.py"}, context)

        assert result.success
        assert result.output == "print(1)\n"

    @pytest.mark.asyncio
    async def test_missing_file(self, context):
        result = await ReadFileTool().execute({"file_path": "nope.txt"}, context)
        assert not result.success
        assert result.error == "File not found: nope.txt"

    @pytest.mark.asyncio
    async def test_binary_file_raises_tool_error(self, context, tmp_path):
        (tmp_path / "logo.bin").write_bytes(b"\xff\xfe\x00\x81")

        with pytest.raises(ToolExecutionError) as exc_info:
            await ReadFileTool().execute({"file_path": "logo.bin"}, context)

        assert exc_info.value.tool_name == "read_file"
        assert exc_info.value.arguments == {"file_path": "logo.bin"}

    @pytest.mark.asyncio
    async def test_execute_safe_converts_tool_error(self, context, tmp_path):
        (tmp_path / "logo.bin").write_bytes(b"\xff\xfe\x00\x81")

        result = await ReadFileTool().execute_safe({"file_path": "logo.bin"}, context)

        assert not result.success
        assert result.error == "Cannot read logo.bin: not a UTF-8 text file"
        assert result.data["tool"] == "read_file"


class TestWriteFileTool:
    """Tests for writes, identical-content skips and file scope."""

    @pytest.mark.asyncio
    async def test_creates_parent_directories(self, context, tmp_path):
        result = await WriteFileTool().execute({"file_path": "src/a/b.txt", "content": "x"}, context)

        assert result.success
        assert result.data["skipped"] is False
        assert (tmp_path / "src" / "a" / "b.txt").read_text(encoding="utf-8") == "x"

    @pytest.mark.asyncio
    async def test_identical_content_skipped(self, context, tmp_path):
        target = tmp_path / "same.txt"
        target.write_text("unchanged", encoding="utf-8")
        before = target.stat().st_mtime_ns

        result = await WriteFileTool().execute({"file_path": "same.txt", "content": "unchanged"}, context)

        assert result.success
        assert result.data["skipped"] is True
        assert target.stat().st_mtime_ns == before

    @pytest.mark.asyncio
    async def test_overwrites_changed_content(self, context, tmp_path):
        (tmp_path / "f.txt").write_text("old", encoding="utf-8")

        result = await WriteFileTool().execute({"file_path": "f.txt", "content": "new"}, context)

        assert result.output == "File updated: f.txt"
        assert (tmp_path / "f.txt").read_text(encoding="utf-8") == "new"

    @pytest.mark.asyncio
    async def test_line_ending_change_is_written(self, context, tmp_path):
        target = tmp_path / "f.txt"
        target.write_bytes(b"a\r\nb\r\n")

        result = await WriteFileTool().execute({"file_path": "f.txt", "content": "a\nb\n"}, context)

        assert result.data["skipped"] is False
        assert target.read_bytes() == b"a\nb\n"

    @pytest.mark.asyncio
    async def test_crlf_content_is_kept_verbatim(self, context, tmp_path):
        target = tmp_path / "f.txt"
        target.write_bytes(b"a\r\nb\r\n")

        result = await WriteFileTool().execute({"file_path": "f.txt", "content": "a\r\nb\r\n"}, context)

        assert result.data["skipped"] is True
        assert target.read_bytes() == b"a\r\nb\r\n"

    @pytest.mark.asyncio
    async def test_overwrites_non_utf8_file(self, context, tmp_path):
        target = tmp_path / "legacy.txt"
        target.write_bytes(b"caf\xe9\n")

        result = await WriteFileTool().execute_safe({"file_path": "legacy.txt", "content": "cafe\n"}, context)

        assert result.success
        assert result.data["skipped"] is False
        assert target.read_bytes() == b"cafe\n"

    @pytest.mark.asyncio
    async def test_file_scope_rejects_new_files(self, context, tmp_path):
        context.session.active_file = "src/app.py"

        result = await WriteFileTool().execute({"file_path": "src/other.py", "content": "x"}, context)

        assert not result.success
        assert "EXISTING files only" in result.error
        assert "Did you mean 'src/app.py'?" in result.error
        assert not (tmp_path / "src" / "other.py").exists()

    @pytest.mark.asyncio
    async def test_file_scope_allows_existing_files(self, context, tmp_path):
        (tmp_path / "app.py").write_text("a", encoding="utf-8")
        context.session.active_file = "app.py"

        result = await WriteFileTool().execute({"file_path": "app.py", "content": "b"}, context)

        assert result.success


class TestListDirectoryTool:
    @pytest.mark.asyncio
    async def test_lists_entries(self, context, tmp_path):
        (tmp_path / "pkg").mkdir()
        (tmp_path / "setup.cfg").write_text("", encoding="utf-8")

        result = await ListDirectoryTool().execute({}, context)

        assert result.success
        assert result.output == [
            {"name": "pkg", "type": "directory", "path": "pkg"},
            {"name": "setup.cfg", "type": "file", "path": "setup.cfg"},
        ]
        assert result.data["count"] == 2

    @pytest.mark.asyncio
    async def test_missing_directory(self, context):
        result = await ListDirectoryTool().execute({"path": "ghost"}, context)
        assert not result.success
        assert result.error == "Directory not found: ghost"
