"""Core data models for rulem repositories."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from pydantic import BaseModel, Field


class RepositoryType(str, Enum):
    """Storage backend of a central rule repository."""

    LOCAL = "local"
    GITHUB = "github"


class RepositoryEntry(BaseModel):
    """A user-declared central repository.

    Field values are not checked here; ``rulem.repository.validation``
    validates whole batches and reports each problem with its index and name.
    """

    id: str = Field(..., description="Identifier of the form '<slug>-<unix-timestamp>'")
    name: str = Field(..., description="Display name, unique case-insensitively")
    type: RepositoryType = Field(..., description="Repository backend")
    created_at: int = Field(..., description="Unix timestamp when the entry was added")
    path: str = Field(..., description="Local directory or clone destination")
    remote_url: str | None = Field(
        default=None,
        description="Git remote URL (GitHub repositories only)",
    )
    branch: str | None = Field(
        default=None,
        description="Branch to track; omitted means the remote default branch",
    )
    last_sync_time: int | None = Field(
        default=None,
        description="Unix timestamp of the last successful sync",
    )

    def is_remote(self) -> bool:
        """Check if this entry is backed by a Git remote."""
        return self.type == RepositoryType.GITHUB

    def is_local(self) -> bool:
        """Check if this entry is a plain local directory."""
        return self.type == RepositoryType.LOCAL

    def __str__(self) -> str:
        if self.is_remote():
            return f"Repository{{id={self.id}, name={self.name}, remote_url={self.remote_url}}}"
        return f"Repository{{id={self.id}, name={self.name}, path={self.path}}}"


@dataclass(frozen=True)
class GitURLInfo:
    """Host, owner and repository name parsed from a Git URL."""

    host: str
    owner: str
    repo: str  # without .git suffix

    @property
    def normalized(self) -> str:
        """Protocol-free key used only for equality checks."""
        return f"{self.host}/{self.owner}/{self.repo}"

    @property
    def https_url(self) -> str:
        """Canonical HTTPS clone URL."""
        return f"https://{self.host}/{self.owner}/{self.repo}.git"


class DirectoryStatus(str, Enum):
    """Classification of a clone target directory."""

    EMPTY = "empty"
    SAME_REPO = "same-repo"
    DIFFERENT_REPO = "different-repo"
    NON_GIT_CONTENT = "non-git-content"
    ERROR = "error"

    @property
    def description(self) -> str:
        """Human-readable description used in error messages."""
        return {
            DirectoryStatus.EMPTY: "empty or doesn't exist",
            DirectoryStatus.SAME_REPO: "same git repository",
            DirectoryStatus.DIFFERENT_REPO: "different git repository",
            DirectoryStatus.NON_GIT_CONTENT: "non-git content",
            DirectoryStatus.ERROR: "validation error",
        }[self]


@dataclass(frozen=True)
class DirectoryClassification:
    """Result of inspecting a clone target directory."""

    status: DirectoryStatus
    path: Path
    detail: str | None = None
    current_url: str | None = None

    @property
    def is_safe(self) -> bool:
        """Whether a clone or fetch may proceed in this directory."""
        return self.status in (DirectoryStatus.EMPTY, DirectoryStatus.SAME_REPO)


class SyncStatus(str, Enum):
    """Outcome kind of a synchronization attempt."""

    SUCCESS = "success"
    FAILED = "failed"
    SKIPPED = "skipped"


class SkipReason(str, Enum):
    """Why a repository was not synchronized."""

    NOT_A_REMOTE = "not-a-remote"
    UNCOMMITTED_CHANGES = "uncommitted-changes"
    NOT_YET_SYNCED = "not-yet-synced"


@dataclass
class SyncOutcome:
    """Synchronization result for one repository entry."""

    repository_id: str
    repository_name: str
    status: SyncStatus
    duration: float = 0.0  # seconds
    error: Exception | None = None
    skip_reason: SkipReason | None = None

    @classmethod
    def success(cls, repository_id: str, repository_name: str, duration: float) -> SyncOutcome:
        return cls(repository_id, repository_name, SyncStatus.SUCCESS, duration)

    @classmethod
    def failed(
        cls,
        repository_id: str,
        repository_name: str,
        error: Exception,
        duration: float,
    ) -> SyncOutcome:
        return cls(repository_id, repository_name, SyncStatus.FAILED, duration, error=error)

    @classmethod
    def skipped(
        cls,
        repository_id: str,
        repository_name: str,
        reason: SkipReason,
        duration: float = 0.0,
    ) -> SyncOutcome:
        return cls(
            repository_id,
            repository_name,
            SyncStatus.SKIPPED,
            duration,
            skip_reason=reason,
        )

    @property
    def message(self) -> str:
        """User-facing one-line status."""
        if self.status == SyncStatus.SUCCESS:
            return f"Synced successfully in {self.duration:.1f}s"
        if self.status == SyncStatus.FAILED:
            return f"Sync failed: {self.error}" if self.error else "Sync failed: unknown error"
        if self.skip_reason is not None:
            return f"Skipped: {self.skip_reason.value}"
        return "Skipped"


@dataclass
class PrepareResult:
    """What a source did while resolving its local root."""

    local_path: Path
    cloned: bool = False
    updated: bool = False
    dirty: bool = False
    warnings: list[str] = field(default_factory=list)
    message: str = ""


@dataclass
class PreparedRepository:
    """A validated repository entry resolved to an absolute local path."""

    entry: RepositoryEntry
    local_path: Path
    sync: SyncOutcome
    warnings: list[str] = field(default_factory=list)

    @property
    def id(self) -> str:
        return self.entry.id

    @property
    def name(self) -> str:
        return self.entry.name

    @property
    def type(self) -> RepositoryType:
        return self.entry.type

    def was_synced(self) -> bool:
        """Check if the last sync succeeded."""
        return self.sync.status == SyncStatus.SUCCESS

    def has_error(self) -> bool:
        """Check if the last sync failed."""
        return self.sync.status == SyncStatus.FAILED

    def was_skipped(self) -> bool:
        """Check if the last sync was skipped."""
        return self.sync.status == SyncStatus.SKIPPED


@dataclass
class CredentialStoreStatus:
    """Availability report for the OS credential store."""

    available: bool
    error: str | None = None
    warning: str | None = None
