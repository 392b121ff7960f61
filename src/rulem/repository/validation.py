"""Structural validation of repository entries."""

from __future__ import annotations

import re
import unicodedata
from collections.abc import Sequence

from ..exceptions import RepositoryValidationError
from ..models import RepositoryEntry, RepositoryType

MAX_NAME_LENGTH = 100

REPOSITORY_ID_PATTERN = re.compile(r"^[a-z0-9-]+-([0-9]+)$")


def validate_repository_name(name: str) -> None:
    """Check a display name: 1-100 characters after trimming, no control characters.

    Raises:
        RepositoryValidationError: If the name is invalid
    """
    trimmed = name.strip()
    if not trimmed:
        raise RepositoryValidationError("repository name cannot be empty")
    if len(trimmed) > MAX_NAME_LENGTH:
        msg = f"repository name too long ({len(trimmed)} characters, maximum {MAX_NAME_LENGTH})"
        raise RepositoryValidationError(msg)
    if any(unicodedata.category(ch) == "Cc" for ch in trimmed):
        raise RepositoryValidationError("repository name contains invalid control characters")


def validate_repository_path(path: str) -> None:
    """Cheap, filesystem-free sanity check of a configured path.

    Raises:
        RepositoryValidationError: If the path is blank or contains a null byte
    """
    if not path.strip():
        raise RepositoryValidationError("repository path cannot be empty")
    if "\x00" in path:
        raise RepositoryValidationError("repository path contains null bytes")


def validate_repository_id(repository_id: str) -> None:
    """Check the ``<slug>-<unix-timestamp>`` identifier format.

    Raises:
        RepositoryValidationError: If the identifier is malformed
    """
    if not repository_id:
        raise RepositoryValidationError("repository ID cannot be empty")
    match = REPOSITORY_ID_PATTERN.fullmatch(repository_id)
    if match is None:
        msg = (
            f"invalid repository ID format {repository_id!r} "
            "(expected: lowercase-name-timestamp)"
        )
        raise RepositoryValidationError(msg)
    if int(match.group(1)) <= 0:
        msg = f"invalid repository ID format {repository_id!r} (timestamp must be positive)"
        raise RepositoryValidationError(msg)


def _validate_basic_fields(entry: RepositoryEntry) -> None:
    validate_repository_id(entry.id)
    validate_repository_name(entry.name)
    if entry.created_at <= 0:
        msg = (
            f"invalid created_at timestamp: {entry.created_at} "
            "(must be positive Unix timestamp)"
        )
        raise RepositoryValidationError(msg)
    validate_repository_path(entry.path)


def _validate_type_specific_fields(entry: RepositoryEntry) -> None:
    if entry.type == RepositoryType.GITHUB:
        if entry.remote_url is None or not entry.remote_url.strip():
            raise RepositoryValidationError("github repository must have a remote URL")
        if entry.branch is not None and not entry.branch.strip():
            msg = "branch cannot be empty string (omit it to use the default branch)"
            raise RepositoryValidationError(msg)
        if entry.last_sync_time is not None and entry.last_sync_time <= 0:
            msg = f"last_sync_time must be positive Unix timestamp, got: {entry.last_sync_time}"
            raise RepositoryValidationError(msg)
        return

    if entry.remote_url is not None:
        raise RepositoryValidationError("local repository should not have a remote URL")
    if entry.branch is not None:
        raise RepositoryValidationError("local repository should not have a branch")
    if entry.last_sync_time is not None:
        raise RepositoryValidationError("local repository should not have a last_sync_time")


def validate_repository_entry(entry: RepositoryEntry) -> None:
    """Validate one entry, naming the first failing field.

    Raises:
        RepositoryValidationError: If any field is invalid
    """
    _validate_basic_fields(entry)
    _validate_type_specific_fields(entry)


def validate_all_repositories(entries: Sequence[RepositoryEntry]) -> None:
    """Validate a batch of entries.

    Duplicate ids and duplicate names (case-insensitive, trimmed) are
    reported before any per-entry problem. Per-entry problems are collected
    into one error listing every offending index and name.

    Raises:
        RepositoryValidationError: If the batch is invalid
    """
    if not entries:
        return

    seen_ids: dict[str, str] = {}
    for entry in entries:
        if entry.id in seen_ids:
            msg = (
                f"duplicate repository ID {entry.id!r} found in repositories "
                f"{seen_ids[entry.id]!r} and {entry.name!r}"
            )
            raise RepositoryValidationError(msg, details={"id": entry.id})
        seen_ids[entry.id] = entry.name

    seen_names: dict[str, str] = {}
    for entry in entries:
        key = entry.name.strip().casefold()
        if key in seen_names:
            msg = (
                f"duplicate repository name found: {seen_names[key]!r} and {entry.name!r} "
                "(names must be unique, case-insensitive)"
            )
            raise RepositoryValidationError(msg, details={"name": entry.name})
        seen_names[key] = entry.name

    problems = []
    for index, entry in enumerate(entries):
        try:
            validate_repository_entry(entry)
        except RepositoryValidationError as e:
            problems.append(f"repository[{index}] ({entry.name}): {e}")

    if problems:
        msg = "repository validation failed:\n  - " + "\n  - ".join(problems)
        raise RepositoryValidationError(msg, details={"errors": problems})
