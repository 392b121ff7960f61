"""Model Context Protocol server exposing rule files as tools.

Every rule file whose YAML frontmatter carries a ``description`` becomes one
tool. Calling the tool returns the rule body without its frontmatter. Files
without usable frontmatter are skipped, so a repository can mix plain notes
with rules meant for assistants.
"""

from __future__ import annotations

import logging
import os
import re
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from pathlib import Path

import yaml
from mcp.server.fastmcp import FastMCP

from .exceptions import FileOperationError
from .filemanager import FileItem, scan_all_repositories
from .models import PreparedRepository

logger = logging.getLogger(__name__)

SERVER_NAME = "rulem"
SERVER_INSTRUCTIONS = (
    "Rule files from the user's rulem repositories. Each tool returns the "
    "instructions of one rule file."
)

MAX_RULE_FILE_SIZE = 5 * 1024 * 1024
MAX_DESCRIPTION_LENGTH = 500
MAX_NAME_LENGTH = 100
MAX_APPLY_TO_LENGTH = 200

FALLBACK_TOOL_NAME = "rule_file"
APPLY_TO_FORMAT = "apply to"

FRONTMATTER_DELIMITER = "---"

SUSPICIOUS_PATTERNS = (
    "<script",
    "javascript:",
    "vbscript:",
    "data:text/html",
    "eval(",
    "exec(",
    "onload=",
    "onerror=",
    "onclick=",
)

_IDENTIFIER_DROP = re.compile(r"[^A-Za-z0-9 ._-]")


@dataclass
class RuleFile:
    """A rule file with parsed frontmatter."""

    file_name: str
    file_path: str  # relative to its repository
    description: str
    content: str
    name: str = ""
    apply_to: str = ""
    repository_name: str = ""


@dataclass
class RuleFileTool:
    """A rule file registered under a tool name."""

    name: str
    description: str
    rule_file: RuleFile

    def read(self) -> str:
        return self.rule_file.content


def _has_control_characters(text: str) -> bool:
    return any(ord(ch) < 32 and ch not in "\n\r\t" for ch in text)


def check_content_security(text: str, *, patterns: bool = True) -> None:
    """Reject control characters and, optionally, script-injection patterns.

    Raises:
        FileOperationError: With code ``unsafe-content``
    """
    if _has_control_characters(text):
        raise FileOperationError("content contains control characters", code="unsafe-content")
    if not patterns:
        return
    lowered = text.lower()
    for pattern in SUSPICIOUS_PATTERNS:
        if pattern in lowered:
            msg = f"content contains potentially malicious pattern: {pattern}"
            raise FileOperationError(msg, code="unsafe-content")


def split_frontmatter(text: str) -> tuple[dict, str]:
    """Split ``---`` delimited YAML frontmatter from the body.

    Returns:
        The frontmatter mapping and the remaining body

    Raises:
        FileOperationError: If there is no frontmatter or it is not a YAML mapping
    """
    lines = text.splitlines(keepends=True)
    if not lines or lines[0].strip() != FRONTMATTER_DELIMITER:
        raise FileOperationError("no frontmatter found", code="no-frontmatter")

    for index, line in enumerate(lines[1:], start=1):
        if line.strip() == FRONTMATTER_DELIMITER:
            break
    else:
        raise FileOperationError("frontmatter is not closed", code="invalid-frontmatter")

    try:
        matter = yaml.safe_load("".join(lines[1:index]))
    except yaml.YAMLError as e:
        msg = f"invalid YAML in frontmatter: {e}"
        raise FileOperationError(msg, code="invalid-frontmatter") from e
    if matter is None:
        matter = {}
    if not isinstance(matter, dict):
        raise FileOperationError("frontmatter must be a mapping", code="invalid-frontmatter")
    return matter, "".join(lines[index + 1 :])


def _text_field(matter: dict, key: str) -> str:
    value = matter.get(key)
    if value is None:
        return ""
    if not isinstance(value, str):
        msg = f"frontmatter field '{key}' must be a string"
        raise FileOperationError(msg, code="invalid-frontmatter")
    return value


def validate_frontmatter(matter: dict) -> tuple[str, str, str]:
    """Check the ``description``, ``name`` and ``applyTo`` fields.

    Returns:
        ``(description, name, apply_to)``

    Raises:
        FileOperationError: If a field is missing, too long or unsafe
    """
    description = _text_field(matter, "description")
    name = _text_field(matter, "name")
    apply_to = _text_field(matter, "applyTo")

    if not description.strip():
        raise FileOperationError("missing required 'description' field", code="invalid-frontmatter")
    if len(description) > MAX_DESCRIPTION_LENGTH:
        msg = f"description too long (max {MAX_DESCRIPTION_LENGTH} characters)"
        raise FileOperationError(msg, code="invalid-frontmatter")
    check_content_security(description)

    if name:
        if len(name) > MAX_NAME_LENGTH:
            msg = f"name too long (max {MAX_NAME_LENGTH} characters)"
            raise FileOperationError(msg, code="invalid-frontmatter")
        check_content_security(name)

    if apply_to:
        if len(apply_to) > MAX_APPLY_TO_LENGTH:
            msg = f"applyTo field too long (max {MAX_APPLY_TO_LENGTH} characters)"
            raise FileOperationError(msg, code="invalid-frontmatter")
        check_content_security(apply_to)

    return description, name, apply_to


def sanitize_identifier(value: str, max_length: int = MAX_NAME_LENGTH) -> str:
    """Reduce ``value`` to letters, digits, ``.``, ``-`` and ``_``.

    Runs of spaces become one underscore and separators are trimmed from
    both ends. Returns an empty string when nothing usable is left.
    """
    cleaned = _IDENTIFIER_DROP.sub("", value).strip()
    cleaned = re.sub(r" +", "_", cleaned)
    cleaned = re.sub(r"--+", "_", cleaned)
    cleaned = re.sub(r"__+", "_", cleaned)
    return cleaned[:max_length].strip("_-.")


class RuleFileProcessor:
    """Turns scanned rule files into uniquely named tools.

    Args:
        max_file_size: Files larger than this many bytes are skipped
    """

    def __init__(self, max_file_size: int = MAX_RULE_FILE_SIZE) -> None:
        self.max_file_size = max_file_size
        self.tools: dict[str, RuleFileTool] = {}

    def _read(self, item: FileItem) -> str:
        path = Path(item.path)
        if item.root is not None:
            resolved = Path(os.path.realpath(path))
            if not resolved.is_relative_to(Path(os.path.realpath(item.root))):
                raise FileOperationError("file is not within the repository directory", code="outside-repository")
        try:
            size = path.stat().st_size
        except OSError as e:
            msg = f"cannot access file: {e}"
            raise FileOperationError(msg, code="missing-file") from e
        if size > self.max_file_size:
            msg = f"file too large ({size} bytes, maximum {self.max_file_size})"
            raise FileOperationError(msg, code="file-too-large")
        try:
            return path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            msg = f"failed to read file: {e}"
            raise FileOperationError(msg) from e

    def parse(self, item: FileItem) -> RuleFile:
        """Read one file and parse its frontmatter.

        Raises:
            FileOperationError: If the file cannot be used as a rule
        """
        text = self._read(item)
        check_content_security(text, patterns=False)
        matter, body = split_frontmatter(text)
        description, name, apply_to = validate_frontmatter(matter)
        return RuleFile(
            file_name=item.name,
            file_path=item.relative_path,
            description=description,
            content=body,
            name=name,
            apply_to=apply_to,
            repository_name=item.repository_name,
        )

    def parse_all(self, files: Sequence[FileItem]) -> list[RuleFile]:
        """Parse every file, skipping the ones without a usable frontmatter."""
        rule_files = []
        for item in files:
            try:
                rule_files.append(self.parse(item))
            except FileOperationError as e:
                logger.debug("Skipping file %s: %s", item.relative_path, e)
        logger.info(
            "Rule file parsing completed: total=%d valid=%d skipped=%d",
            len(files),
            len(rule_files),
            len(files) - len(rule_files),
        )
        return rule_files

    def tool_name(self, rule_file: RuleFile) -> str:
        """Pick a tool name not yet registered.

        The frontmatter ``name`` wins; otherwise the file stem is used with
        hyphens turned into underscores. Clashes get ``_1``, ``_2``, ...
        """
        if rule_file.name:
            base = sanitize_identifier(rule_file.name)
        else:
            stem = rule_file.file_name
            if "." in stem:
                stem = stem[: stem.rindex(".")]
            base = sanitize_identifier(stem).replace("-", "_")
        base = base or FALLBACK_TOOL_NAME

        candidate = base
        counter = 1
        while candidate in self.tools:
            candidate = f"{base}_{counter}"
            counter += 1
        return candidate

    @staticmethod
    def tool_description(rule_file: RuleFile) -> str:
        if not rule_file.description:
            return "Rule file tool"
        if rule_file.apply_to:
            return f"{rule_file.description} ({APPLY_TO_FORMAT}: {rule_file.apply_to})"
        return rule_file.description

    def process(self, files: Sequence[FileItem]) -> dict[str, RuleFileTool]:
        """Parse ``files`` and register one tool per rule file."""
        for rule_file in self.parse_all(files):
            name = self.tool_name(rule_file)
            self.tools[name] = RuleFileTool(
                name=name,
                description=self.tool_description(rule_file),
                rule_file=rule_file,
            )
        logger.info("Rule file tools registered: files=%d tools=%d", len(files), len(self.tools))
        return self.tools


def _tool_handler(tool: RuleFileTool) -> Callable[[], str]:
    def read_rule() -> str:
        return tool.read()

    read_rule.__doc__ = tool.description
    return read_rule


def build_server(tools: dict[str, RuleFileTool]) -> FastMCP:
    """Create a FastMCP server with one tool per rule file."""
    server = FastMCP(SERVER_NAME, instructions=SERVER_INSTRUCTIONS)
    for name, tool in tools.items():
        server.add_tool(_tool_handler(tool), name=name, description=tool.description)
        logger.debug("Registered tool %s for %s", name, tool.rule_file.file_path)
    return server


def create_server(prepared: Sequence[PreparedRepository]) -> FastMCP:
    """Scan prepared repositories and build the server for their rule files.

    Raises:
        FileOperationError: If repositories were given but none could be scanned
    """
    files = scan_all_repositories(prepared)
    tools = RuleFileProcessor().process(files)
    for tool in tools.values():
        logger.info(
            "Rule %s: %s (%s)", tool.name, tool.rule_file.file_path, tool.rule_file.repository_name
        )
    return build_server(tools)
