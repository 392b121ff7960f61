"""Where each AI assistant expects its rule files."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import PurePosixPath


class RenameOption(str, Enum):
    """How a rule file is renamed when imported for an assistant."""

    NONE = "none"  # keep the file name
    PREFIX = "prefix"  # new_name + file name
    SUFFIX = "suffix"  # file stem + new_name
    FULL = "full"  # replace with new_name


@dataclass(frozen=True)
class EditorRuleConfig:
    """Destination of a rule file for one assistant."""

    key: str
    name: str
    explanation: str
    rule_path: str
    rename: RenameOption
    new_name: str = ""

    def destination(self, current_name: str) -> str:
        """Path, relative to the working directory, where a rule file should go.

        Args:
            current_name: File name of the rule in its repository

        Returns:
            Relative destination path, e.g. ``.github/instructions/go.instructions.md``
        """
        if self.rename == RenameOption.PREFIX:
            name = self.new_name + current_name
        elif self.rename == RenameOption.SUFFIX and self.new_name:
            name = _strip_extension(current_name) + self.new_name
        elif self.rename == RenameOption.FULL:
            name = self.new_name
        else:
            name = current_name
        return str(PurePosixPath(self.rule_path) / name)


def _strip_extension(filename: str) -> str:
    stem, dot, _ = filename.rpartition(".")
    if not dot or not stem:
        return filename
    return stem


EDITOR_RULE_CONFIGS: tuple[EditorRuleConfig, ...] = (
    EditorRuleConfig(
        key="copilot",
        name="GitHub Copilot - General instructions",
        explanation="General instructions file added to every chat message.",
        rule_path=".github",
        rename=RenameOption.FULL,
        new_name="copilot-instructions.md",
    ),
    EditorRuleConfig(
        key="copilot-instructions",
        name="GitHub Copilot - Instructions",
        explanation="Scoped instructions applied depending on the files in the chat context.",
        rule_path=".github/instructions",
        rename=RenameOption.SUFFIX,
        new_name=".instructions.md",
    ),
    EditorRuleConfig(
        key="agents",
        name="AGENTS.md",
        explanation="General instructions file read by tools such as opencode.",
        rule_path=".",
        rename=RenameOption.FULL,
        new_name="AGENTS.md",
    ),
    EditorRuleConfig(
        key="cursor",
        name="Cursor rules",
        explanation="Cursor rules; run inside a subdirectory for directory-scoped rules.",
        rule_path=".cursor/rules",
        rename=RenameOption.NONE,
    ),
    EditorRuleConfig(
        key="claude",
        name="Claude Code",
        explanation="Project memory file added to every conversation.",
        rule_path=".",
        rename=RenameOption.FULL,
        new_name="CLAUDE.md",
    ),
    EditorRuleConfig(
        key="gemini",
        name="Gemini CLI",
        explanation="Context file added to every conversation.",
        rule_path=".",
        rename=RenameOption.FULL,
        new_name="GEMINI.md",
    ),
)


def get_editor_config(key: str) -> EditorRuleConfig | None:
    """Look up an editor by key, case-insensitively."""
    wanted = key.strip().lower()
    for config in EDITOR_RULE_CONFIGS:
        if config.key == wanted:
            return config
    return None
