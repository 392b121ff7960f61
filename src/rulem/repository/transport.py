"""Git process environment and transport error translation.

Tokens are handed to git through ``GIT_CONFIG_*`` environment variables as
an ``http.extraHeader``; they are never written to ``.git/config`` and never
appear on a command line.
"""

from __future__ import annotations

import base64
import re

from git.exc import GitCommandError

from ..exceptions import GitAuthError, GitError, GitNotFoundError, GitTransportError

TOKEN_USERNAME = "token"

# Keep git (and credential helpers) from blocking on an interactive prompt
NON_INTERACTIVE_ENV = {
    "GIT_TERMINAL_PROMPT": "0",
    "GCM_INTERACTIVE": "never",
}

AUTH_REMEDIATION = "run 'rulem auth set' to configure a GitHub personal access token"

_AUTH_PATTERNS = (
    re.compile(r"\b401\b"),
    re.compile(r"\b403\b"),
    re.compile(r"authentication required", re.IGNORECASE),
    re.compile(r"authentication failed", re.IGNORECASE),
    re.compile(r"unauthorized", re.IGNORECASE),
    re.compile(r"forbidden", re.IGNORECASE),
    re.compile(r"could not read username", re.IGNORECASE),
    re.compile(r"terminal prompts disabled", re.IGNORECASE),
)
_FORBIDDEN_PATTERN = re.compile(r"\b403\b|forbidden", re.IGNORECASE)
_NOT_FOUND_PATTERN = re.compile(r"\b404\b|not found", re.IGNORECASE)
_NETWORK_PATTERN = re.compile(
    r"network|connection|timeout|timed out|could not resolve host",
    re.IGNORECASE,
)
_MISSING_BRANCH_PATTERN = re.compile(
    r"remote branch .+ not found|couldn't find remote ref",
    re.IGNORECASE,
)


def basic_auth_header(token: str, username: str = TOKEN_USERNAME) -> str:
    """Build an HTTP basic ``Authorization`` header value."""
    encoded = base64.b64encode(f"{username}:{token}".encode()).decode("ascii")
    return f"Authorization: Basic {encoded}"


def git_environment(token: str | None = None) -> dict[str, str]:
    """Environment overrides for a git subprocess.

    Args:
        token: Personal access token for basic auth, or None for anonymous access

    Returns:
        Environment variables to merge into the git process environment
    """
    env = dict(NON_INTERACTIVE_ENV)
    if token:
        env.update(
            {
                "GIT_CONFIG_COUNT": "1",
                "GIT_CONFIG_KEY_0": "http.extraHeader",
                "GIT_CONFIG_VALUE_0": basic_auth_header(token),
            }
        )
    return env


def error_text(error: BaseException) -> str:
    """Text used for error classification (stderr first for git failures)."""
    if isinstance(error, GitCommandError):
        stderr = error.stderr or ""
        if isinstance(stderr, bytes):
            stderr = stderr.decode("utf-8", errors="replace")
        return f"{stderr} {error}"
    return str(error)


def is_authentication_error(error: BaseException) -> bool:
    """Check whether a git failure means the remote wants (other) credentials."""
    text = error_text(error)
    return any(pattern.search(text) for pattern in _AUTH_PATTERNS)


def is_missing_branch_error(error: BaseException) -> bool:
    """Check whether a clone failed because the requested branch does not exist."""
    return bool(_MISSING_BRANCH_PATTERN.search(error_text(error)))


def is_timeout_error(error: BaseException) -> bool:
    text = error_text(error).lower()
    return "timeout" in text or "timed out" in text or "deadline exceeded" in text


def _summary(error: BaseException) -> str:
    if isinstance(error, GitCommandError):
        stderr = error.stderr or ""
        if isinstance(stderr, bytes):
            stderr = stderr.decode("utf-8", errors="replace")
        stderr = stderr.strip()
        if stderr.startswith("stderr:"):
            stderr = stderr[len("stderr:"):].strip()
        return stderr.strip("'\" ") or str(error)
    return str(error)


def _translate(error: BaseException, operation: str, network_message: str) -> GitError:
    text = error_text(error)
    details = {"operation": operation, "cause": _summary(error)}

    if _FORBIDDEN_PATTERN.search(text):
        return GitAuthError(
            "access denied: token lacks required scope - update the token's permissions or "
            f"{AUTH_REMEDIATION}",
            details=details,
            code="token-lacks-scope",
        )
    if is_authentication_error(error):
        return GitAuthError(
            f"authentication failed: token invalid or missing - {AUTH_REMEDIATION}",
            details=details,
        )
    if _NOT_FOUND_PATTERN.search(text):
        return GitNotFoundError(
            "repository not found: check the URL or your access to it",
            details=details,
        )
    if _NETWORK_PATTERN.search(text):
        return GitTransportError(network_message, details=details)
    return GitError(f"failed to {operation} repository: {_summary(error)}", details=details)


def translate_clone_error(error: BaseException) -> GitError:
    """Map a clone failure to a user-facing error."""
    return _translate(error, "clone", "network error during clone: check your connection")


def translate_fetch_error(error: BaseException) -> GitError:
    """Map a fetch failure to a user-facing error."""
    return _translate(
        error,
        "fetch",
        "network error during fetch - repository will use cached version",
    )
