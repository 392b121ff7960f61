"""Fetch pass over already-prepared remote repositories."""

from __future__ import annotations

import logging
import time
from collections import Counter
from collections.abc import Sequence

from ..exceptions import GitError, RulemError
from ..models import RepositoryEntry, SkipReason, SyncOutcome, SyncStatus
from .credentials import CredentialManager
from .git import GitSource, check_repository_status
from .paths import expand_path

module_logger = logging.getLogger(__name__)


def _sync_repository(
    entry: RepositoryEntry,
    log: logging.Logger,
    credentials: CredentialManager | None,
) -> SyncOutcome:
    start = time.monotonic()

    def elapsed() -> float:
        return time.monotonic() - start

    if not entry.is_remote():
        return SyncOutcome.skipped(entry.id, entry.name, SkipReason.NOT_A_REMOTE, elapsed())

    try:
        dirty = check_repository_status(expand_path(entry.path.strip()))
    except GitError as e:
        return SyncOutcome.failed(entry.id, entry.name, e, elapsed())

    if dirty:
        return SyncOutcome.skipped(
            entry.id, entry.name, SkipReason.UNCOMMITTED_CHANGES, elapsed()
        )

    source = GitSource(entry.remote_url or "", entry.branch, entry.path, credentials)
    try:
        source.fetch_updates(log)
    except RulemError as e:
        return SyncOutcome.failed(entry.id, entry.name, e, elapsed())

    return SyncOutcome.success(entry.id, entry.name, elapsed())


def sync_all_repositories(
    entries: Sequence[RepositoryEntry],
    logger: logging.Logger | None = None,
    credentials: CredentialManager | None = None,
) -> list[SyncOutcome]:
    """Synchronize each entry independently, in input order.

    Local entries are skipped, dirty clones are skipped, and everything else
    is fetched. A failure is recorded on that entry's outcome and never
    stops the others.

    Args:
        entries: Repository entries (typically already prepared)
        logger: Logger for progress messages; the module logger when omitted
        credentials: Token store for private repositories

    Returns:
        One outcome per entry, in the same order
    """
    log = logger or module_logger
    log.info("Starting multi-repository sync: %d repositories", len(entries))

    outcomes = []
    for entry in entries:
        outcome = _sync_repository(entry, log, credentials)
        outcomes.append(outcome)
        if outcome.skip_reason == SkipReason.NOT_A_REMOTE:
            log.debug("Repository %s (%s): %s", entry.id, entry.name, outcome.message)
        elif outcome.status == SyncStatus.SKIPPED:
            log.warning("Repository %s (%s): %s", entry.id, entry.name, outcome.message)
        elif outcome.status == SyncStatus.FAILED:
            log.error("Repository %s (%s): %s", entry.id, entry.name, outcome.message)
        else:
            log.info("Repository %s (%s): %s", entry.id, entry.name, outcome.message)

    counts = Counter(outcome.status for outcome in outcomes)
    log.info(
        "Multi-repository sync completed: total=%d success=%d failed=%d skipped=%d",
        len(outcomes),
        counts[SyncStatus.SUCCESS],
        counts[SyncStatus.FAILED],
        counts[SyncStatus.SKIPPED],
    )
    return outcomes
