"""Git URL parsing, normalization and clone path derivation."""

from __future__ import annotations

import os
import re
from pathlib import Path
from urllib.parse import urlsplit

from platformdirs import user_data_dir

from ..exceptions import PathSecurityError, RulemError
from ..models import GitURLInfo
from .paths import validate_path_security

APP_NAME = "rulem"

SSH_URL_PATTERN = re.compile(r"^git@([^:]+):([^/]+)/(.+?)(?:\.git)?$")
SSH_LOOSE_PATTERN = re.compile(r"^git@([^:]+):(.+)$")

ALLOWED_SCHEMES = ("http", "https")


def default_storage_dir() -> Path:
    """Return the application's data directory.

    ``$XDG_DATA_HOME/rulem`` (default ``~/.local/share/rulem``) on Linux,
    ``~/Library/Application Support/rulem`` on macOS and
    ``%LOCALAPPDATA%\\rulem`` on Windows. The directory is not created.
    """
    return Path(user_data_dir(APP_NAME, appauthor=False))


def parse_git_url(git_url: str) -> GitURLInfo:
    """Parse an SSH or HTTP(S) Git URL into host, owner and repository.

    Args:
        git_url: URL such as ``git@github.com:owner/repo.git`` or
            ``https://github.com/owner/repo``

    Returns:
        Parsed URL components with any ``.git`` suffix removed

    Raises:
        RulemError: With code ``invalid-url`` if the URL is not recognized
    """
    url = git_url.strip()
    if not url:
        raise RulemError("Git URL cannot be empty", code="invalid-url")

    match = SSH_URL_PATTERN.match(url)
    if match:
        host, owner, repo = match.groups()
        return GitURLInfo(host=host, owner=owner, repo=repo)

    try:
        parsed = urlsplit(url)
    except ValueError as e:
        msg = f"invalid URL format: {e}"
        raise RulemError(msg, code="invalid-url") from e

    if parsed.scheme.lower() not in ALLOWED_SCHEMES:
        msg = f"unsupported Git URL (expected git@host:owner/repo or https://host/owner/repo): {url}"
        raise RulemError(msg, code="invalid-url")

    # Drop any userinfo, keep the port
    host = parsed.netloc.rsplit("@", 1)[-1]
    if not host:
        msg = f"URL missing host component: {url}"
        raise RulemError(msg, code="invalid-url")

    parts = parsed.path.strip("/").split("/")
    if len(parts) < 2:
        msg = f"URL path should contain owner/repo: {parsed.path}"
        raise RulemError(msg, code="invalid-url")

    owner = parts[0]
    repo = parts[1].removesuffix(".git")
    if not owner or not repo:
        msg = f"could not extract owner/repo from URL path: {parsed.path}"
        raise RulemError(msg, code="invalid-url")

    return GitURLInfo(host=host, owner=owner, repo=repo)


def normalize_git_url(git_url: str) -> str:
    """Reduce a Git URL to ``host/owner/repo`` for equality checks.

    SSH and HTTPS forms of the same remote collapse to the same key. URLs the
    parser does not accept are normalized lexically instead.
    """
    try:
        return parse_git_url(git_url).normalized
    except RulemError:
        pass

    url = git_url.strip().removesuffix(".git")
    match = SSH_LOOSE_PATTERN.match(url)
    if match:
        return f"{match.group(1)}/{match.group(2)}"
    for prefix in ("https://", "http://"):
        if url.startswith(prefix):
            return url[len(prefix):]
    return url


def to_https_url(git_url: str) -> str:
    """Rewrite any accepted Git URL to ``https://host/owner/repo.git``."""
    return parse_git_url(git_url).https_url


def derive_clone_path(remote_url: str) -> Path:
    """Derive the default clone destination for a remote.

    The path is ``<default storage dir>/<repo>``. Same-named repositories
    from different owners map to the same path; the directory classifier
    reports that as a different-repo conflict.

    Raises:
        RulemError: If the URL is invalid
        PathSecurityError: If the derived path fails security validation
    """
    info = parse_git_url(remote_url)
    clone_path = Path(os.path.normpath(default_storage_dir() / info.repo))

    try:
        validate_path_security(str(clone_path))
    except PathSecurityError as e:
        msg = f"derived path failed security validation: {e}"
        raise PathSecurityError(msg, details=e.details, code=e.code) from e

    if not clone_path.is_absolute():
        msg = f"derived clone path must be absolute: {clone_path}"
        raise PathSecurityError(msg, details={"path": str(clone_path)})

    return clone_path
