"""Local directory repository source."""

from __future__ import annotations

import logging
import os
from pathlib import Path

from ..exceptions import FilesystemError, PathSecurityError
from ..models import PrepareResult
from .base import Source
from .paths import expand_path, validate_storage_path

module_logger = logging.getLogger(__name__)


class LocalSource(Source):
    """A local directory used directly as a central repository.

    Preparation only validates; it never creates or writes anything and
    never touches the network.
    """

    def __init__(self, path: str) -> None:
        self.path = path

    def __repr__(self) -> str:
        return f"LocalSource(path={self.path!r})"

    def prepare(self, logger: logging.Logger | None = None) -> PrepareResult:
        """Validate the directory and return its absolute path.

        Raises:
            PathSecurityError: ``empty-path`` or ``invalid-path``
            FilesystemError: ``missing-directory``, ``not-a-directory`` or
                ``access-denied``
        """
        log = logger or module_logger
        log.info("Preparing local repository source: %s", self.path)

        trimmed = self.path.strip()
        if not trimmed:
            raise PathSecurityError("local source path cannot be empty", code="empty-path")

        clean = os.path.normpath(expand_path(trimmed))
        try:
            validate_storage_path(trimmed)
        except PathSecurityError as e:
            msg = f"invalid local source path: {e}"
            raise PathSecurityError(msg, details=e.details, code="invalid-path") from e
        except FilesystemError as e:
            # A missing parent means the directory itself is missing too
            if e.code == "missing-directory":
                msg = f"local source directory does not exist: {clean}"
            else:
                msg = f"cannot access local source directory: {e}"
            raise FilesystemError(msg, details={"path": clean}, code=e.code) from e

        path = Path(clean)
        try:
            path.stat()
        except FileNotFoundError as e:
            msg = f"local source directory does not exist: {clean}"
            raise FilesystemError(msg, details={"path": clean}, code="missing-directory") from e
        except OSError as e:
            msg = f"cannot access local source directory: {e}"
            raise FilesystemError(msg, details={"path": clean}, code="access-denied") from e

        if not path.is_dir():
            msg = f"local source path is not a directory: {clean}"
            raise FilesystemError(msg, details={"path": clean}, code="not-a-directory")

        if not os.access(path, os.R_OK | os.X_OK):
            msg = f"cannot read local source directory: {clean}"
            raise FilesystemError(msg, details={"path": clean}, code="access-denied")

        resolved = Path(os.path.abspath(clean))
        log.debug("Local repository source validated: %s", resolved)
        return PrepareResult(local_path=resolved, message="local directory ready")
