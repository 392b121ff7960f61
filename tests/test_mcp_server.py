"""Tests for the MCP rule-file server."""

import asyncio
from pathlib import Path

import pytest
from conftest import local_entry

from rulem.exceptions import FileOperationError
from rulem.filemanager import FileManager
from rulem.mcp_server import (
    RuleFile,
    RuleFileProcessor,
    build_server,
    create_server,
    sanitize_identifier,
    split_frontmatter,
    validate_frontmatter,
)
from rulem.models import PreparedRepository, SkipReason, SyncOutcome

GO_RULE = """---
description: Go coding standards
applyTo: "**/*.go"
---
# Go

Use gofmt.
"""

PYTHON_RULE = """---
description: Python style
name: python-style
---
# Python
"""


@pytest.fixture
def storage(tmp_path: Path) -> Path:
    """A repository with rule files, plain notes and broken frontmatter."""
    root = tmp_path / "storage"
    (root / "lang").mkdir(parents=True)
    (root / "lang" / "go-standards.md").write_text(GO_RULE)
    (root / "python.md").write_text(PYTHON_RULE)
    (root / "notes.md").write_text("# Just notes\n")
    (root / "nodesc.md").write_text("---\nname: nodesc\n---\nbody\n")
    (root / "broken.md").write_text("---\ndescription: [unclosed\n---\nbody\n")
    return root


def _rule(file_name: str, name: str = "", description: str = "d", apply_to: str = "") -> RuleFile:
    return RuleFile(
        file_name=file_name, file_path=file_name, description=description, content="", name=name, apply_to=apply_to
    )


def _prepared(path: Path) -> PreparedRepository:
    entry = local_entry("Team", path, 1700000000)
    return PreparedRepository(
        entry=entry,
        local_path=path,
        sync=SyncOutcome.skipped(entry.id, entry.name, SkipReason.NOT_A_REMOTE),
    )


class TestFrontmatter:
    """Test frontmatter splitting and field validation."""

    def test_split(self) -> None:
        """Test that the body excludes the frontmatter."""
        matter, body = split_frontmatter(GO_RULE)
        assert matter == {"description": "Go coding standards", "applyTo": "**/*.go"}
        assert body == "# Go\n\nUse gofmt.\n"

    @pytest.mark.parametrize(
        ("text", "code"),
        [
            ("# No frontmatter\n", "no-frontmatter"),
            ("", "no-frontmatter"),
            ("---\ndescription: x\n", "invalid-frontmatter"),
            ("---\n- a\n- b\n---\n", "invalid-frontmatter"),
            ("---\ndescription: [x\n---\n", "invalid-frontmatter"),
        ],
    )
    def test_split_rejects(self, text: str, code: str) -> None:
        """Test missing, unclosed and non-mapping frontmatter."""
        with pytest.raises(FileOperationError) as exc_info:
            split_frontmatter(text)
        assert exc_info.value.code == code

    def test_validate_fields(self) -> None:
        """Test that all three fields are returned."""
        assert validate_frontmatter({"description": "d", "name": "n", "applyTo": "*.py"}) == ("d", "n", "*.py")

    @pytest.mark.parametrize(
        "matter",
        [
            {},
            {"description": "   "},
            {"description": "x" * 501},
            {"description": "ok", "name": "n" * 101},
            {"description": "ok", "applyTo": "a" * 201},
            {"description": "<script>alert(1)</script>"},
            {"description": "bell\x07"},
            {"description": 42},
        ],
    )
    def test_validate_rejects(self, matter: dict) -> None:
        """Test required, length and content rules."""
        with pytest.raises(FileOperationError):
            validate_frontmatter(matter)


class TestToolNames:
    """Test tool naming and descriptions."""

    @pytest.mark.parametrize(
        ("rule", "expected"),
        [
            (_rule("test-file.md", name="custom_tool_name"), "custom_tool_name"),
            (_rule("go-standards.md"), "go_standards"),
            (_rule("coding standards.md"), "coding_standards"),
            (_rule("test-file@#$.md"), "test_file"),
            (_rule(""), "rule_file"),
            (_rule("bubbletea-patterns"), "bubbletea_patterns"),
        ],
    )
    def test_tool_name(self, rule: RuleFile, expected: str) -> None:
        """Test names from frontmatter or file name."""
        assert RuleFileProcessor().tool_name(rule) == expected

    def test_duplicates_get_suffixes(self, tmp_path: Path) -> None:
        """Test that clashing names are numbered."""
        processor = RuleFileProcessor()
        for directory in ("a", "b", "c"):
            (tmp_path / directory).mkdir()
            (tmp_path / directory / "style.md").write_text("---\ndescription: style\n---\n")
        tools = processor.process(FileManager(tmp_path).scan())
        assert sorted(tools) == ["style", "style_1", "style_2"]

    def test_sanitize_identifier(self) -> None:
        """Test separator collapsing and trimming."""
        assert sanitize_identifier("  my  tool@name#123 ") == "my_toolname123"
        assert sanitize_identifier("--x--") == "x"
        assert sanitize_identifier("@#$") == ""

    def test_description(self) -> None:
        """Test the applyTo suffix."""
        assert RuleFileProcessor.tool_description(_rule("a.md", description="Go")) == "Go"
        described = _rule("a.md", description="Go", apply_to="*.go")
        assert RuleFileProcessor.tool_description(described) == "Go (apply to: *.go)"


class TestProcessor:
    """Test scanning repositories into tools."""

    def test_only_described_files(self, storage: Path) -> None:
        """Test that files without a description are skipped."""
        tools = RuleFileProcessor().process(FileManager(storage).scan())

        assert sorted(tools) == ["go_standards", "python-style"]
        go = tools["go_standards"]
        assert go.description == "Go coding standards (apply to: **/*.go)"
        assert go.read() == "# Go\n\nUse gofmt.\n"
        assert go.rule_file.file_path == "lang/go-standards.md"

    def test_large_file_skipped(self, storage: Path) -> None:
        """Test the file size limit."""
        tools = RuleFileProcessor(max_file_size=10).process(FileManager(storage).scan())
        assert tools == {}

    def test_symlink_outside_repository_skipped(self, storage: Path, tmp_path: Path) -> None:
        """Test that links leaving the repository are not served."""
        outside = tmp_path / "outside.md"
        outside.write_text("---\ndescription: secret\n---\nsecret\n")
        (storage / "linked.md").symlink_to(outside)

        tools = RuleFileProcessor().process(FileManager(storage).scan())

        assert "linked" not in tools


class TestServer:
    """Test the FastMCP server wiring."""

    def test_tools_listed(self, storage: Path) -> None:
        """Test that every rule file is a tool with its description."""
        server = create_server([_prepared(storage)])

        listed = asyncio.run(server.list_tools())

        assert {tool.name: tool.description for tool in listed} == {
            "go_standards": "Go coding standards (apply to: **/*.go)",
            "python-style": "Python style",
        }

    def test_empty_server(self) -> None:
        """Test that no tools yields an empty listing."""
        assert asyncio.run(build_server({}).list_tools()) == []

    def test_unreadable_repositories(self, tmp_path: Path) -> None:
        """Test that a server is not built when no repository can be scanned."""
        with pytest.raises(FileOperationError):
            create_server([_prepared(tmp_path / "gone")])
