"""Git-backed repository source.

Remote repositories are kept as shallow clones under the storage directory.
Every operation first runs anonymously; only when the remote asks for
credentials is the stored GitHub token fetched and the operation retried
with it.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Callable
from pathlib import Path
from typing import TypeVar

from git import FetchInfo, RemoteReference, Repo
from git.exc import GitCommandError, InvalidGitRepositoryError, NoSuchPathError

from ..exceptions import (
    CredentialStoreError,
    DirectoryConflictError,
    FilesystemError,
    GitAuthError,
    GitBranchError,
    GitError,
    InternalError,
    NoTokenError,
    PathSecurityError,
    RulemError,
)
from ..models import DirectoryStatus, PrepareResult
from .base import Source
from .conflicts import classify_clone_directory
from .credentials import CredentialManager
from .paths import expand_path, validate_path_security
from .transport import (
    AUTH_REMEDIATION,
    git_environment,
    is_authentication_error,
    is_missing_branch_error,
    translate_clone_error,
    translate_fetch_error,
)
from .urls import to_https_url

module_logger = logging.getLogger(__name__)

T = TypeVar("T")

CLONE_DEPTH = 1


def open_repository(repo_path: str | os.PathLike[str]) -> Repo:
    """Open an existing working tree.

    Raises:
        GitError: If the path is missing or is not a git repository
    """
    try:
        return Repo(repo_path)
    except (InvalidGitRepositoryError, NoSuchPathError) as e:
        msg = f"failed to open repository at {repo_path}: not a git repository"
        raise GitError(msg, details={"path": str(repo_path)}) from e


def check_repository_status(repo_path: str | os.PathLike[str]) -> bool:
    """Check whether a clone has uncommitted changes.

    Untracked files count as changes.

    Returns:
        True if the working tree is dirty

    Raises:
        GitError: If the repository cannot be opened or its status read
    """
    repo = open_repository(repo_path)
    try:
        return repo.is_dirty(untracked_files=True)
    except GitCommandError as e:
        msg = f"failed to get repository status: {e}"
        raise GitError(msg, details={"path": str(repo_path)}) from e
    finally:
        repo.close()


def _remote_branch_ref(repo: Repo, branch: str) -> RemoteReference:
    return RemoteReference(repo, f"refs/remotes/origin/{branch}")


def validate_remote_branch_exists(repo_path: str | os.PathLike[str], branch: str | None) -> None:
    """Check that ``origin/<branch>`` is known to a local clone.

    A blank branch means "remote default" and always passes.

    Raises:
        GitError: If the repository cannot be opened
        GitBranchError: If the remote-tracking branch does not exist
    """
    if branch is None or not branch.strip():
        return
    repo = open_repository(repo_path)
    try:
        if not _remote_branch_ref(repo, branch).is_valid():
            msg = f"branch '{branch}' does not exist on remote 'origin'"
            raise GitBranchError(msg, details={"branch": branch})
    finally:
        repo.close()


class GitSource(Source):
    """A remote Git repository cached in a local clone.

    Args:
        remote_url: SSH or HTTPS URL; always accessed over HTTPS
        branch: Branch to track, or None for the remote default branch
        path: Local clone destination
        credentials: Token store used when the remote requires authentication
    """

    def __init__(
        self,
        remote_url: str,
        branch: str | None,
        path: str,
        credentials: CredentialManager | None = None,
    ) -> None:
        self.remote_url = remote_url
        self.branch = branch
        self.path = path
        self.credentials = credentials or CredentialManager()

    def __repr__(self) -> str:
        return (
            f"GitSource(remote_url={self.remote_url!r}, branch={self.branch!r}, "
            f"path={self.path!r})"
        )

    def prepare(self, logger: logging.Logger | None = None) -> PrepareResult:
        """Clone the repository, or update the existing clone.

        The target directory is classified first. Foreign content (another
        repository or plain files) is never touched. A dirty working tree is
        left alone and reported as ``dirty``. Branch checkout problems become
        warnings on the result instead of errors.

        Raises:
            RulemError: For invalid input (``invalid-url``, ``empty-path``)
            PathSecurityError: If the clone path is unsafe
            DirectoryConflictError: If the directory holds foreign content
            GitError: If cloning or fetching fails
        """
        log = logger or module_logger
        log.info(
            "Preparing Git repository source: url=%s branch=%s path=%s",
            self.remote_url,
            self.branch or "<default>",
            self.path,
        )

        self._validate_inputs()
        https_url = self._https_url()
        target = self._validate_local_path()

        classification = classify_clone_directory(target, https_url)
        if classification.status in (DirectoryStatus.NON_GIT_CONTENT, DirectoryStatus.DIFFERENT_REPO):
            msg = (
                f"directory conflict at {target} ({classification.status.description}): "
                "please resolve manually by removing or relocating the existing directory"
            )
            raise DirectoryConflictError(
                msg,
                classification,
                details={"path": str(target), "detail": classification.detail},
            )
        if classification.status == DirectoryStatus.ERROR:
            msg = f"cannot use clone directory {target}: {classification.detail}"
            raise FilesystemError(msg, details={"path": str(target)}, code="invalid-clone-directory")

        if classification.status == DirectoryStatus.EMPTY:
            result = self._clone(target, https_url, log)
        elif classification.status == DirectoryStatus.SAME_REPO:
            result = self._update(target, log)
        else:
            msg = f"unexpected directory status: {classification.status.description}"
            raise InternalError(msg)

        log.info("Git repository prepared successfully: %s", target)
        return result

    def fetch_updates(self, logger: logging.Logger | None = None) -> PrepareResult:
        """Fetch an existing clone without ever cloning.

        Raises:
            GitError: If the clone does not exist or the fetch fails
        """
        log = logger or module_logger
        target = Path(os.path.abspath(os.path.normpath(expand_path(self.path.strip()))))
        log.info("Fetch requested: url=%s path=%s", self.remote_url, target)

        if not target.exists():
            msg = f"repository does not exist at {target} - cannot fetch updates"
            raise GitError(msg, details={"path": str(target)}, code="missing-directory")
        return self._update(target, log)

    def _validate_inputs(self) -> None:
        if not self.remote_url.strip():
            raise RulemError("remote URL cannot be empty", code="invalid-url")
        if not self.path.strip():
            raise PathSecurityError("local path cannot be empty", code="empty-path")

    def _https_url(self) -> str:
        try:
            return to_https_url(self.remote_url)
        except RulemError as e:
            msg = f"invalid remote URL: {e}"
            raise RulemError(msg, details={"url": self.remote_url}, code="invalid-url") from e

    def _validate_local_path(self) -> Path:
        try:
            clean = validate_path_security(self.path)
        except PathSecurityError as e:
            msg = f"invalid local path: {e}"
            raise PathSecurityError(msg, details=e.details, code=e.code) from e
        return Path(os.path.abspath(clean))

    def _stored_token(self, log: logging.Logger) -> str:
        try:
            token = self.credentials.get_token()
        except NoTokenError as e:
            msg = f"GitHub authentication required - {AUTH_REMEDIATION}"
            raise GitAuthError(msg, details={"url": self.remote_url}) from e
        except CredentialStoreError as e:
            msg = f"GitHub authentication failed: {e}"
            raise GitAuthError(msg, details={"url": self.remote_url}, code=e.code) from e
        log.debug("Using GitHub personal access token for authentication")
        return token

    def _with_auth_retry(
        self,
        operation: Callable[[str | None], T],
        translate: Callable[[GitCommandError], GitError],
        log: logging.Logger,
    ) -> T:
        try:
            return operation(None)
        except GitCommandError as e:
            if not is_authentication_error(e):
                raise translate(e) from e
            log.debug("Anonymous access failed (%s), retrying with authentication", e.status)

        token = self._stored_token(log)
        try:
            return operation(token)
        except GitCommandError as e:
            raise translate(e) from e

    def _translate_clone_error(self, error: GitCommandError) -> GitError:
        if self.branch and is_missing_branch_error(error):
            msg = f"branch '{self.branch}' does not exist on remote 'origin'"
            return GitBranchError(msg, details={"branch": self.branch})
        return translate_clone_error(error)

    def _clone_once(self, target: Path, url: str, branch: str | None, token: str | None) -> None:
        options: dict[str, object] = {"depth": CLONE_DEPTH}
        if branch:
            options["branch"] = branch
            options["single_branch"] = True
        else:
            options["no_single_branch"] = True
        repo = Repo.clone_from(url, target, env=git_environment(token), **options)
        repo.close()

    def _clone(self, target: Path, url: str, log: logging.Logger) -> PrepareResult:
        parent = target.parent
        try:
            validate_path_security(str(parent))
        except PathSecurityError as e:
            msg = f"parent directory failed security validation: {e}"
            raise PathSecurityError(msg, details=e.details, code=e.code) from e
        try:
            parent.mkdir(mode=0o755, parents=True, exist_ok=True)
        except OSError as e:
            msg = f"failed to create parent directory: {e}"
            raise FilesystemError(msg, details={"path": str(parent)}, code="access-denied") from e

        log.info("Cloning repository %s into %s", url, target)
        warnings: list[str] = []
        try:
            self._with_auth_retry(
                lambda token: self._clone_once(target, url, self.branch, token),
                self._translate_clone_error,
                log,
            )
        except GitBranchError as e:
            log.warning("%s; cloning the default branch instead", e)
            warnings.append(f"{e.code}: {e}")
            self._with_auth_retry(
                lambda token: self._clone_once(target, url, None, token),
                translate_clone_error,
                log,
            )

        log.info("Repository cloned successfully: %s", target)
        return PrepareResult(
            local_path=target,
            cloned=True,
            warnings=warnings,
            message="cloned",
        )

    def _fetch_once(self, repo: Repo, token: str | None) -> list[FetchInfo]:
        with repo.git.custom_environment(**git_environment(token)):
            return list(repo.remote("origin").fetch(force=True))

    def _fetch_branch_once(self, repo: Repo, branch: str, token: str | None) -> list[FetchInfo]:
        refspec = f"+refs/heads/{branch}:refs/remotes/origin/{branch}"
        with repo.git.custom_environment(**git_environment(token)):
            return list(repo.remote("origin").fetch(refspec, depth=CLONE_DEPTH))

    def _translate_branch_fetch_error(self, error: GitCommandError) -> GitError:
        if self.branch and is_missing_branch_error(error):
            msg = f"branch '{self.branch}' does not exist on remote 'origin'"
            return GitBranchError(msg, details={"branch": self.branch})
        return translate_fetch_error(error)

    def _update(self, target: Path, log: logging.Logger) -> PrepareResult:
        log.info("Fetching repository updates: %s", target)
        repo = open_repository(target)
        try:
            try:
                dirty = repo.is_dirty(untracked_files=True)
            except GitCommandError as e:
                msg = f"failed to get working tree status: {e}"
                raise GitError(msg, details={"path": str(target)}) from e
            if dirty:
                log.warning("Working tree has uncommitted changes, skipping sync: %s", target)
                return PrepareResult(
                    local_path=target,
                    dirty=True,
                    message="uncommitted changes, sync skipped",
                )

            try:
                infos = self._with_auth_retry(
                    lambda token: self._fetch_once(repo, token),
                    translate_fetch_error,
                    log,
                )
            except ValueError as e:
                msg = f"failed to get origin remote: {e}"
                raise GitError(msg, details={"path": str(target)}) from e

            if all(info.flags & FetchInfo.HEAD_UPTODATE for info in infos):
                log.debug("Repository already up to date: %s", target)

            warnings: list[str] = []
            if self.branch:
                try:
                    self._checkout_branch(repo, self.branch, log)
                except GitBranchError as e:
                    log.warning(
                        "Failed to checkout configured branch %s, repository stays on its "
                        "current branch: %s",
                        self.branch,
                        e,
                    )
                    warnings.append(f"{e.code}: {e}")

            updated = self._reset_to_upstream(repo, log)
        finally:
            repo.close()

        log.info("Repository updated successfully: %s", target)
        return PrepareResult(
            local_path=target,
            updated=updated,
            warnings=warnings,
            message="updated" if updated else "up to date",
        )

    def _checkout_branch(self, repo: Repo, branch: str, log: logging.Logger) -> None:
        log.debug("Checking out branch %s", branch)
        if not repo.head.is_detached and repo.active_branch.name == branch:
            log.debug("Already on target branch %s", branch)
            return

        remote_ref = _remote_branch_ref(repo, branch)
        track_branch = False
        if not remote_ref.is_valid():
            # Single-branch clones only track the branch they were cloned with.
            log.debug("Fetching branch %s from origin", branch)
            self._with_auth_retry(
                lambda token: self._fetch_branch_once(repo, branch, token),
                self._translate_branch_fetch_error,
                log,
            )
            if not remote_ref.is_valid():
                msg = f"branch '{branch}' does not exist on remote 'origin'"
                raise GitBranchError(msg, details={"branch": branch})
            track_branch = True

        try:
            if track_branch:
                repo.git.remote("set-branches", "--add", "origin", branch)
            if branch in repo.heads:
                head = repo.heads[branch]
            else:
                log.debug("Creating local branch %s", branch)
                head = repo.create_head(branch, remote_ref.commit)
                head.set_tracking_branch(remote_ref)
            head.checkout(force=False)
        except (GitCommandError, OSError, ValueError) as e:
            msg = f"failed to checkout branch '{branch}': {e}"
            raise GitBranchError(msg, details={"branch": branch}, code="checkout-failed") from e

    def _reset_to_upstream(self, repo: Repo, log: logging.Logger) -> bool:
        """Move a clean working tree to the fetched upstream commit."""
        try:
            if repo.head.is_detached:
                return False
            tracking = repo.active_branch.tracking_branch()
            if tracking is None or not tracking.is_valid():
                return False
            if repo.head.commit == tracking.commit:
                return False
            repo.head.reset(tracking.commit, index=True, working_tree=True)
        except (GitCommandError, OSError, ValueError) as e:
            msg = f"failed to update working tree: {e}"
            raise GitError(msg, details={"path": str(repo.working_dir)}, code="reset-failed") from e
        log.info("Working tree moved to %s (%s)", tracking.name, tracking.commit.hexsha[:8])
        return True
