"""Tests for rulem data models and exceptions."""

from pathlib import Path

import pytest
from conftest import github_entry, local_entry
from pydantic import ValidationError

from rulem.exceptions import GitAuthError, NoTokenError, RulemError
from rulem.models import (
    DirectoryClassification,
    DirectoryStatus,
    GitURLInfo,
    PreparedRepository,
    RepositoryEntry,
    SkipReason,
    SyncOutcome,
    SyncStatus,
)


class TestRepositoryEntry:
    """Test RepositoryEntry."""

    def test_type_from_string(self) -> None:
        """Test that the type field accepts its string values."""
        entry = RepositoryEntry.model_validate(
            {"id": "a-1", "name": "A", "type": "github", "created_at": 1, "path": "/x", "remote_url": "u"}
        )
        assert entry.is_remote()
        assert not entry.is_local()

    def test_unknown_type(self) -> None:
        """Test that unknown types are rejected."""
        with pytest.raises(ValidationError):
            RepositoryEntry.model_validate({"id": "a-1", "name": "A", "type": "svn", "created_at": 1, "path": "/x"})

    def test_str(self) -> None:
        """Test the display form for each type."""
        assert "path=/x" in str(local_entry("A", "/x", 1))
        assert "remote_url=https://github.com/a/b" in str(github_entry("B", "https://github.com/a/b", "/y", None, 1))


class TestSyncOutcome:
    """Test SyncOutcome messages."""

    def test_messages(self) -> None:
        """Test the user-facing status line of each outcome."""
        assert SyncOutcome.success("a-1", "A", 2.0).message == "Synced successfully in 2.0s"
        assert SyncOutcome.failed("a-1", "A", RulemError("boom"), 0.1).message == "Sync failed: boom"
        skipped = SyncOutcome.skipped("a-1", "A", SkipReason.UNCOMMITTED_CHANGES)
        assert skipped.message == "Skipped: uncommitted-changes"
        assert skipped.status == SyncStatus.SKIPPED

    def test_prepared_repository_state(self) -> None:
        """Test the PreparedRepository status helpers."""
        entry = local_entry("A", "/x", 1)
        repository = PreparedRepository(
            entry=entry,
            local_path=Path("/x"),
            sync=SyncOutcome.skipped(entry.id, entry.name, SkipReason.NOT_A_REMOTE),
        )
        assert repository.was_skipped()
        assert not repository.was_synced()
        assert not repository.has_error()
        assert (repository.id, repository.name) == (entry.id, "A")


class TestSmallModels:
    """Test URL info, directory classification and error codes."""

    def test_git_url_info(self) -> None:
        """Test derived URL forms."""
        info = GitURLInfo("github.com", "acme", "rules")
        assert info.normalized == "github.com/acme/rules"
        assert info.https_url == "https://github.com/acme/rules.git"

    @pytest.mark.parametrize(
        ("status", "safe"),
        [
            (DirectoryStatus.EMPTY, True),
            (DirectoryStatus.SAME_REPO, True),
            (DirectoryStatus.DIFFERENT_REPO, False),
            (DirectoryStatus.NON_GIT_CONTENT, False),
            (DirectoryStatus.ERROR, False),
        ],
    )
    def test_is_safe(self, status: DirectoryStatus, safe: bool) -> None:
        """Test which classifications allow Git operations."""
        assert DirectoryClassification(status, Path("/x")).is_safe is safe

    def test_error_codes(self) -> None:
        """Test class default codes and per-instance overrides."""
        assert NoTokenError("x").code == "no-token"
        assert GitAuthError("x").code == "authentication-required"
        assert GitAuthError("x", code="token-lacks-scope").code == "token-lacks-scope"
        assert RulemError("x").code is None
        assert RulemError("x").details == {}
