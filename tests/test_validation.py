"""Tests for repository entry validation."""

import pytest
from conftest import github_entry, local_entry

from rulem.exceptions import RepositoryValidationError
from rulem.models import RepositoryEntry, RepositoryType
from rulem.repository.validation import (
    MAX_NAME_LENGTH,
    validate_all_repositories,
    validate_repository_entry,
    validate_repository_id,
    validate_repository_name,
)

URL = "https://github.com/acme/rules"


class TestName:
    """Test display name rules."""

    def test_length_boundary(self) -> None:
        """Test that 100 characters pass and 101 fail."""
        validate_repository_name("a" * MAX_NAME_LENGTH)
        with pytest.raises(RepositoryValidationError, match="too long"):
            validate_repository_name("a" * (MAX_NAME_LENGTH + 1))

    def test_trimmed_before_length_check(self) -> None:
        """Test that surrounding whitespace does not count."""
        validate_repository_name("  " + "a" * MAX_NAME_LENGTH + "  ")

    @pytest.mark.parametrize("name", ["", "   "])
    def test_empty(self, name: str) -> None:
        """Test that blank names are rejected."""
        with pytest.raises(RepositoryValidationError, match="cannot be empty"):
            validate_repository_name(name)

    @pytest.mark.parametrize("name", ["bad\x01name", "tab\there", "del\x7f", "c1\u0085x", "c1\u009fx"])
    def test_control_characters(self, name: str) -> None:
        """Test that control characters are rejected."""
        with pytest.raises(RepositoryValidationError, match="control characters"):
            validate_repository_name(name)


class TestRepositoryID:
    """Test the id format."""

    @pytest.mark.parametrize("repository_id", ["rules-1700000000", "my-team-rules-1", "a1-2"])
    def test_valid(self, repository_id: str) -> None:
        """Test accepted ids."""
        validate_repository_id(repository_id)

    @pytest.mark.parametrize(
        "repository_id",
        [
            "",
            "rules",
            "Rules-1700000000",
            "rules_x-1",
            "rules-",
            "-1700000000",
            "rules-0",
            "rules-abc",
            "a-\u0661",
            "rules-1\n",
        ],
    )
    def test_invalid(self, repository_id: str) -> None:
        """Test rejected ids."""
        with pytest.raises(RepositoryValidationError):
            validate_repository_id(repository_id)


class TestEntry:
    """Test per-entry validation."""

    def test_valid_local(self) -> None:
        """Test a valid local entry."""
        validate_repository_entry(local_entry("Team", "/home/me/rules", 1700000000))

    def test_valid_github(self) -> None:
        """Test a valid GitHub entry with and without a branch."""
        validate_repository_entry(github_entry("Team", URL, "/home/me/rules", None, 1700000000))
        validate_repository_entry(github_entry("Team", URL, "/home/me/rules", "dev", 1700000000))

    def test_created_at_must_be_positive(self) -> None:
        """Test that created_at 0 is rejected."""
        entry = RepositoryEntry(
            id="team-1700000000", name="Team", type=RepositoryType.LOCAL, created_at=0, path="/x"
        )
        with pytest.raises(RepositoryValidationError, match="created_at"):
            validate_repository_entry(entry)

    def test_local_with_remote_fields(self) -> None:
        """Test that local entries cannot carry GitHub fields."""
        for field, value in (("remote_url", URL), ("branch", "main"), ("last_sync_time", 1)):
            entry = local_entry("Team", "/x", 1700000000)
            setattr(entry, field, value)
            with pytest.raises(RepositoryValidationError, match="local repository should not"):
                validate_repository_entry(entry)

    def test_github_requires_url(self) -> None:
        """Test that GitHub entries need a remote URL."""
        entry = github_entry("Team", "  ", "/x", None, 1700000000)
        with pytest.raises(RepositoryValidationError, match="remote URL"):
            validate_repository_entry(entry)

    def test_github_blank_branch(self) -> None:
        """Test that an explicit blank branch is rejected."""
        with pytest.raises(RepositoryValidationError, match="branch cannot be empty"):
            validate_repository_entry(github_entry("Team", URL, "/x", " ", 1700000000))

    def test_github_last_sync_time(self) -> None:
        """Test that last_sync_time must be positive when present."""
        entry = github_entry("Team", URL, "/x", None, 1700000000)
        entry.last_sync_time = 0
        with pytest.raises(RepositoryValidationError, match="last_sync_time"):
            validate_repository_entry(entry)

    def test_path_null_byte(self) -> None:
        """Test that null bytes in paths are rejected."""
        with pytest.raises(RepositoryValidationError, match="null"):
            validate_repository_entry(local_entry("Team", "/x\x00y", 1700000000))


class TestBatch:
    """Test validate_all_repositories."""

    def test_empty(self) -> None:
        """Test that an empty batch is valid."""
        validate_all_repositories([])

    def test_duplicate_names_case_insensitive(self) -> None:
        """Test that names differing only by case collide."""
        entries = [local_entry("Team", "/a", 1700000000), local_entry("team ", "/b", 1700000001)]
        entries[1].id = "other-1700000001"
        with pytest.raises(RepositoryValidationError, match="duplicate repository name"):
            validate_all_repositories(entries)

    def test_duplicate_ids_reported_first(self) -> None:
        """Test that duplicate ids win over other problems."""
        entries = [local_entry("A", "/a", 1700000000), local_entry("B", "", 1700000000)]
        entries[1].id = entries[0].id
        with pytest.raises(RepositoryValidationError, match="duplicate repository ID"):
            validate_all_repositories(entries)

    def test_all_problems_aggregated(self) -> None:
        """Test that every invalid entry is listed with its index and name."""
        entries = [
            local_entry("Good", "/a", 1700000000),
            local_entry("NoPath", " ", 1700000001),
            github_entry("NoURL", "", "/c", None, 1700000002),
        ]
        with pytest.raises(RepositoryValidationError) as exc_info:
            validate_all_repositories(entries)
        message = str(exc_info.value)
        assert "repository[1] (NoPath)" in message
        assert "repository[2] (NoURL)" in message
        assert "Good" not in message
        assert len(exc_info.value.details["errors"]) == 2
