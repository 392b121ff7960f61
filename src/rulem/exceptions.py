"""Custom exceptions for rulem."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .models import DirectoryClassification, PreparedRepository


class RulemError(Exception):
    """Base exception for all rulem errors.

    ``code`` is a short machine-readable kind (e.g. ``missing-directory``)
    that callers can branch on without parsing the message.
    """

    code: str | None = None

    def __init__(
        self,
        message: str,
        details: dict[str, Any] | None = None,
        code: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}
        if code is not None:
            self.code = code


class RepositoryValidationError(RulemError):
    """Raised when repository entries fail structural validation."""

    code = "validation"


class PathSecurityError(RulemError):
    """Raised when a path is empty, traverses, or points at a reserved root."""

    code = "invalid-path"


class FilesystemError(RulemError):
    """Raised when a directory is missing, inaccessible, or not writable."""


class DirectoryConflictError(RulemError):
    """Raised when a clone target already holds foreign content."""

    code = "directory-conflict"

    def __init__(
        self,
        message: str,
        classification: DirectoryClassification,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, details=details)
        self.classification = classification


class GitError(RulemError):
    """Base class for Git operation failures."""


class GitTransportError(GitError):
    """Raised on network failures, timeouts and other transport errors."""

    code = "git-transport"


class GitAuthError(GitError):
    """Raised when the remote rejects or requires credentials."""

    code = "authentication-required"


class GitNotFoundError(GitError):
    """Raised when the remote repository does not exist or is inaccessible."""

    code = "repository-not-found"


class GitBranchError(GitError):
    """Raised when a configured branch cannot be resolved or checked out."""

    code = "branch-not-on-remote"


class CredentialStoreError(RulemError):
    """Raised when the OS credential store is unavailable or inconsistent."""

    code = "credential-store-unavailable"


class NoTokenError(CredentialStoreError):
    """Raised when no token has been stored."""

    code = "no-token"


class TokenFormatError(CredentialStoreError):
    """Raised when a token fails syntactic validation."""

    code = "invalid-token-format"


class RepositoryPreparationError(RulemError):
    """Raised when a single repository entry cannot be prepared."""

    code = "preparation-failed"

    def __init__(
        self,
        message: str,
        repository_id: str,
        repository_name: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, details=details)
        self.repository_id = repository_id
        self.repository_name = repository_name


class BatchPreparationError(RulemError):
    """Raised when one or more entries of a batch failed to prepare.

    The entries that did prepare are available on ``prepared`` in input order.
    """

    code = "preparation-failed"

    def __init__(
        self,
        message: str,
        prepared: list[PreparedRepository],
        failures: list[RepositoryPreparationError],
    ) -> None:
        super().__init__(message, details={"failed": len(failures)})
        self.prepared = prepared
        self.failures = failures


class ConfigError(RulemError):
    """Raised when the configuration file cannot be loaded or saved."""

    code = "config"


class FileOperationError(RulemError):
    """Raised when a rule file cannot be saved or imported."""

    code = "file-operation"


class InternalError(RulemError):
    """Raised when an internal invariant is violated."""

    code = "internal"
