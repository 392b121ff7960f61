"""GitHub token storage in the operating system credential store."""

from __future__ import annotations

import logging

import keyring
from git import Git
from git.exc import GitCommandError
from keyring.backend import KeyringBackend
from keyring.errors import KeyringError, PasswordDeleteError

from ..exceptions import (
    CredentialStoreError,
    GitAuthError,
    GitTransportError,
    NoTokenError,
    RulemError,
    TokenFormatError,
)
from ..models import CredentialStoreStatus
from .transport import (
    git_environment,
    is_authentication_error,
    is_timeout_error,
    translate_clone_error,
)
from .urls import parse_git_url

logger = logging.getLogger(__name__)

CREDENTIAL_SERVICE = "rulem"
GITHUB_TOKEN_KEY = "github_pat"

MIN_TOKEN_LENGTH = 20
VALID_TOKEN_PREFIXES = (
    "ghp_",  # classic personal access token
    "github_pat_",  # fine-grained personal access token
    "gho_",  # OAuth
    "ghu_",  # user-to-server
    "ghs_",  # server-to-server
)

_PROBE_KEY = "rulem_test"
_PROBE_VALUE = "test_value"

AUTH_SETTINGS_HINT = "run 'rulem auth set'"


def validate_token_format(token: str) -> None:
    """Check the shape of a GitHub token.

    This is a paste-error check, not a verification.

    Raises:
        TokenFormatError: If the token is too short or has an unknown prefix
    """
    trimmed = token.strip()
    if not trimmed:
        raise TokenFormatError("token cannot be empty")
    if len(trimmed) < MIN_TOKEN_LENGTH:
        msg = f"invalid token format: token too short (minimum {MIN_TOKEN_LENGTH} characters)"
        raise TokenFormatError(msg)
    if not trimmed.startswith(VALID_TOKEN_PREFIXES):
        msg = (
            "invalid token format: token does not match expected GitHub PAT format "
            "(should start with ghp_ or github_pat_)"
        )
        raise TokenFormatError(msg)


class CredentialManager:
    """Stores a single GitHub personal access token.

    The token lives under ``(service, "github_pat")`` in the keyring backend.
    By default the active ``keyring`` backend is used; tests pass their own.
    """

    def __init__(
        self,
        service: str = CREDENTIAL_SERVICE,
        backend: KeyringBackend | None = None,
    ) -> None:
        self.service = service
        self._backend = backend

    @property
    def backend(self) -> KeyringBackend:
        if self._backend is None:
            return keyring.get_keyring()
        return self._backend

    def validate_token(self, token: str) -> None:
        """Validate token syntax. See ``validate_token_format``."""
        validate_token_format(token)

    def store_token(self, token: str) -> None:
        """Write the token to the credential store.

        Raises:
            CredentialStoreError: If the backend rejects the write
        """
        try:
            self.backend.set_password(self.service, GITHUB_TOKEN_KEY, token)
        except KeyringError as e:
            msg = f"failed to store token in credential store: {e}"
            raise CredentialStoreError(msg) from e
        logger.info("Stored GitHub token in credential store")

    def get_token(self) -> str:
        """Read the stored token.

        Raises:
            NoTokenError: If no token has been stored
            CredentialStoreError: If the store is unavailable or holds a blank value
        """
        try:
            token = self.backend.get_password(self.service, GITHUB_TOKEN_KEY)
        except KeyringError as e:
            msg = f"failed to retrieve token from credential store: {e}"
            raise CredentialStoreError(msg) from e

        if token is None:
            msg = f"no GitHub token found - {AUTH_SETTINGS_HINT} to configure authentication"
            raise NoTokenError(msg)
        if not token.strip():
            msg = f"stored token is empty - {AUTH_SETTINGS_HINT} to update authentication"
            raise CredentialStoreError(msg, code="empty-token")
        return token

    def has_token(self) -> bool:
        """Check if a token is stored. Store failures count as no token."""
        try:
            return self.backend.get_password(self.service, GITHUB_TOKEN_KEY) is not None
        except KeyringError as e:
            logger.debug("Credential store lookup failed: %s", e)
            return False

    def delete_token(self) -> None:
        """Remove the stored token. Deleting a missing token is not an error.

        Raises:
            CredentialStoreError: If the backend fails for another reason
        """
        try:
            self.backend.delete_password(self.service, GITHUB_TOKEN_KEY)
        except PasswordDeleteError:
            logger.debug("No GitHub token to delete")
        except KeyringError as e:
            msg = f"failed to delete token from credential store: {e}"
            raise CredentialStoreError(msg) from e
        else:
            logger.info("Deleted GitHub token from credential store")

    def update_token(self, new_token: str) -> None:
        """Validate and store a replacement token."""
        self.validate_token(new_token)
        self.store_token(new_token)

    def probe(self) -> CredentialStoreStatus:
        """Check the credential store with a write-read-delete round trip.

        Never raises; problems are reported on the returned status.
        """
        backend = self.backend
        try:
            backend.set_password(self.service, _PROBE_KEY, _PROBE_VALUE)
        except KeyringError as e:
            return CredentialStoreStatus(available=False, error=str(e))

        try:
            value = backend.get_password(self.service, _PROBE_KEY)
        except KeyringError as e:
            self._discard_probe(backend)
            return CredentialStoreStatus(available=False, error=str(e))

        if value != _PROBE_VALUE:
            self._discard_probe(backend)
            return CredentialStoreStatus(
                available=False,
                error="credential store corrupted - values don't match",
            )

        try:
            backend.delete_password(self.service, _PROBE_KEY)
        except KeyringError as e:
            return CredentialStoreStatus(
                available=True,
                warning=f"credential store works but cleanup failed: {e}",
            )
        return CredentialStoreStatus(available=True)

    def _discard_probe(self, backend: KeyringBackend) -> None:
        try:
            backend.delete_password(self.service, _PROBE_KEY)
        except KeyringError as e:
            logger.debug("Could not remove credential probe entry: %s", e)

    def verify_token_with_repo(self, token: str, repo_url: str, timeout: float = 10.0) -> None:
        """Check that a token can read a repository.

        Runs ``git ls-remote`` against the HTTPS form of ``repo_url`` with the
        token as basic auth. The git process is killed after ``timeout`` seconds.

        Raises:
            TokenFormatError: If the token is malformed
            RulemError: If the URL is missing or invalid
            GitAuthError: If the token is rejected
            GitTransportError: On timeout (code ``timeout``) or network failure
        """
        self.validate_token(token)
        if not repo_url.strip():
            raise RulemError("repository URL is required for token validation", code="invalid-url")
        https_url = parse_git_url(repo_url).https_url

        try:
            Git().ls_remote(
                https_url,
                env=git_environment(token.strip()),
                kill_after_timeout=timeout,
            )
        except GitCommandError as e:
            if is_authentication_error(e):
                raise GitAuthError("token is invalid or expired") from e
            if is_timeout_error(e):
                msg = "timeout while validating token - please check your network connection"
                raise GitTransportError(msg, code="timeout") from e
            raise translate_clone_error(e) from e
        logger.debug("Token verified against %s", https_url)
