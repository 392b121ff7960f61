"""Preparation of repository entries into ready-to-read local directories."""

from __future__ import annotations

import logging
from collections.abc import Sequence

from ..exceptions import BatchPreparationError, RepositoryPreparationError, RulemError
from ..models import PreparedRepository, PrepareResult, RepositoryEntry, SkipReason, SyncOutcome
from .base import Source
from .credentials import CredentialManager
from .git import GitSource
from .local import LocalSource
from .sync import sync_all_repositories
from .validation import validate_all_repositories

module_logger = logging.getLogger(__name__)


def source_for(entry: RepositoryEntry, credentials: CredentialManager | None = None) -> Source:
    """Build the source matching an entry's type."""
    if entry.is_local():
        return LocalSource(entry.path)
    return GitSource(entry.remote_url or "", entry.branch, entry.path, credentials)


def prepare_repository(
    entry: RepositoryEntry,
    logger: logging.Logger | None = None,
    credentials: CredentialManager | None = None,
) -> PrepareResult:
    """Prepare a single entry with the source matching its type.

    Raises:
        RepositoryPreparationError: Wrapping the underlying failure with the
            entry's id and name
    """
    log = logger or module_logger
    log.info("Preparing repository %s (%s, %s)", entry.id, entry.name, entry.type.value)

    try:
        result = source_for(entry, credentials).prepare(log)
    except (RulemError, OSError) as e:
        msg = f"failed to prepare repository {entry.id} ({entry.name}): {e}"
        details = {"cause_code": getattr(e, "code", None)}
        raise RepositoryPreparationError(msg, entry.id, entry.name, details=details) from e

    log.info("Repository %s (%s) prepared at %s", entry.id, entry.name, result.local_path)
    return result


def prepare_all_repositories(
    entries: Sequence[RepositoryEntry],
    logger: logging.Logger | None = None,
    credentials: CredentialManager | None = None,
) -> list[PreparedRepository]:
    """Validate, prepare and synchronize a batch of repositories.

    Validation runs first and touches neither the filesystem nor the
    network. Each entry is then prepared independently in input order. If
    every entry prepared, all of them are synchronized and each result
    carries its sync outcome.

    Args:
        entries: Repository entries from the configuration
        logger: Logger for progress messages; the module logger when omitted
        credentials: Token store for private repositories

    Returns:
        Prepared repositories in input order

    Raises:
        RepositoryValidationError: If validation fails; nothing was prepared
        BatchPreparationError: If any entry failed to prepare; the entries
            that did prepare are on ``prepared`` with a ``not-yet-synced`` outcome
    """
    log = logger or module_logger
    if not entries:
        return []

    log.info("Starting multi-repository preparation: %d repositories", len(entries))
    validate_all_repositories(entries)

    prepared: list[PreparedRepository] = []
    failures: list[RepositoryPreparationError] = []

    for entry in entries:
        try:
            result = prepare_repository(entry, log, credentials)
        except RepositoryPreparationError as e:
            log.error("Repository preparation failed: %s", e)
            failures.append(e)
            continue

        prepared.append(
            PreparedRepository(
                entry=entry,
                local_path=result.local_path,
                sync=SyncOutcome.skipped(entry.id, entry.name, SkipReason.NOT_YET_SYNCED),
                warnings=list(result.warnings),
            )
        )

    if failures:
        msg = f"failed to prepare {len(failures)} repositories:\n  - " + "\n  - ".join(
            f"repository {f.repository_id} ({f.repository_name}): {f.__cause__ or f}"
            for f in failures
        )
        raise BatchPreparationError(msg, prepared, failures)

    log.info("Starting repository synchronization")
    outcomes = {
        outcome.repository_id: outcome
        for outcome in sync_all_repositories([p.entry for p in prepared], log, credentials)
    }
    for repository in prepared:
        if repository.id in outcomes:
            repository.sync = outcomes[repository.id]

    log.info(
        "Multi-repository preparation completed: total=%d prepared=%d",
        len(entries),
        len(prepared),
    )
    return prepared
