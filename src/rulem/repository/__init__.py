"""Central rule repositories: local directories and cached Git clones."""

from .conflicts import classify_clone_directory
from .credentials import CREDENTIAL_SERVICE, GITHUB_TOKEN_KEY, CredentialManager
from .git import GitSource, check_repository_status, validate_remote_branch_exists
from .local import LocalSource
from .paths import (
    ensure_local_storage_directory,
    expand_path,
    is_reserved_directory,
    validate_path_in_home,
    validate_path_security,
    validate_storage_path,
)
from .preparation import prepare_all_repositories, prepare_repository
from .sync import sync_all_repositories
from .urls import default_storage_dir, derive_clone_path, normalize_git_url, parse_git_url
from .validation import validate_all_repositories, validate_repository_entry

__all__ = [
    "CREDENTIAL_SERVICE",
    "GITHUB_TOKEN_KEY",
    "CredentialManager",
    "GitSource",
    "LocalSource",
    "check_repository_status",
    "classify_clone_directory",
    "default_storage_dir",
    "derive_clone_path",
    "ensure_local_storage_directory",
    "expand_path",
    "is_reserved_directory",
    "normalize_git_url",
    "parse_git_url",
    "prepare_all_repositories",
    "prepare_repository",
    "sync_all_repositories",
    "validate_all_repositories",
    "validate_path_in_home",
    "validate_path_security",
    "validate_remote_branch_exists",
    "validate_repository_entry",
    "validate_storage_path",
]
