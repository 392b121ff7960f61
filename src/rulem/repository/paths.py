"""Path security validation for repository and storage directories."""

from __future__ import annotations

import logging
import os
import sys
import tempfile
from pathlib import Path

from ..exceptions import FilesystemError, PathSecurityError

logger = logging.getLogger(__name__)

WRITE_TEST_FILENAME = ".rulem-write-test"

_LINUX_RESERVED = (
    "/bin",
    "/sbin",
    "/usr/bin",
    "/usr/sbin",
    "/etc",
    "/boot",
    "/dev",
    "/proc",
    "/sys",
    "/var/log",
    "/var/lib",
    "/var/cache",
    "/root",
)

_MACOS_RESERVED = (
    "/System",
    "/usr/bin",
    "/usr/sbin",
    "/bin",
    "/sbin",
    "/etc",
    "/var/log",
    "/var/db",
    "/var/root",
    "/Library/System",
    "/Applications",
    "/private/etc",
)

_WINDOWS_RESERVED = (
    "C:\\Windows",
    "C:\\Program Files",
    "C:\\Program Files (x86)",
    "C:\\System32",
    "C:\\ProgramData\\Microsoft",
)

# Sensitive directories inside the user's home
_HOME_RESERVED = (".ssh", ".gnupg")


def home_dir() -> Path:
    """Return the invoking user's home directory."""
    return Path(os.path.expanduser("~"))


def expand_path(path: str) -> str:
    """Expand a leading ``~/`` (or a bare ``~``) to the user's home directory."""
    if path == "~" or path.startswith(("~/", "~" + os.sep)):
        return os.path.join(str(home_dir()), path[2:])
    return path


def _system_reserved_directories() -> tuple[str, ...]:
    if sys.platform.startswith("win"):
        return _WINDOWS_RESERVED
    if sys.platform == "darwin":
        return _MACOS_RESERVED
    return _LINUX_RESERVED


def reserved_directories() -> list[Path]:
    """Platform reserved roots plus sensitive directories in the user's home."""
    home = home_dir()
    dirs = [Path(d) for d in _system_reserved_directories()]
    dirs.extend(home / name for name in _HOME_RESERVED)
    return dirs


def _is_within(path: Path, root: Path) -> bool:
    path_key = Path(os.path.normcase(str(path)))
    root_key = Path(os.path.normcase(str(root)))
    return path_key == root_key or path_key.is_relative_to(root_key)


def _is_temp_directory(path: Path) -> bool:
    temp_root = Path(os.path.normpath(tempfile.gettempdir()))
    if _is_within(path, temp_root):
        return True
    text = str(path)
    if sys.platform == "darwin" and "/var/folders/" in text:
        return True
    return sys.platform.startswith("linux") and (text == "/tmp" or text.startswith("/tmp/"))


def _is_reserved_lexical(path: Path) -> bool:
    if path == Path(path.anchor):
        return True

    home = Path(os.path.normpath(str(home_dir())))
    for name in _HOME_RESERVED:
        if _is_within(path, home / name):
            return True

    # The user's own data area is never treated as a system root, even when
    # the home directory itself lives under one (e.g. /root).
    if home != Path(home.anchor) and _is_within(path, home):
        return False
    if _is_temp_directory(path):
        return False

    return any(_is_within(path, Path(reserved)) for reserved in _system_reserved_directories())


def is_reserved_directory(path: str | os.PathLike[str]) -> bool:
    """Check whether a path is, or lies inside, a system or reserved directory.

    Both the lexical path and its symlink-resolved form are checked, so a
    link pointing into ``/etc`` is rejected as well.
    """
    lexical = Path(os.path.abspath(os.fspath(path)))
    if _is_reserved_lexical(lexical):
        return True
    try:
        resolved = Path(os.path.realpath(lexical))
    except OSError:
        return True
    return resolved != lexical and _is_reserved_lexical(resolved)


def _has_traversal(path: str) -> bool:
    parts = path.replace("\\", "/").split("/")
    return ".." in parts


def validate_path_security(path: str, require_absolute: bool = False) -> Path:
    """Validate a raw user path and return its expanded, cleaned form.

    Args:
        path: Raw path, may start with ``~/``
        require_absolute: Reject paths that are still relative after expansion

    Returns:
        The expanded and lexically cleaned path

    Raises:
        PathSecurityError: If the path is empty, contains a null byte or
            ``..`` segments, is relative when an absolute path is required,
            or points into a reserved directory
    """
    trimmed = path.strip()
    if not trimmed:
        raise PathSecurityError("path cannot be empty", code="empty-path")
    if "\x00" in trimmed:
        raise PathSecurityError("path contains null byte", details={"path": trimmed})
    if _has_traversal(trimmed):
        msg = f"path traversal not allowed: {trimmed}"
        raise PathSecurityError(msg, details={"path": trimmed})

    expanded = expand_path(trimmed)
    clean = os.path.normpath(expanded)
    if _has_traversal(clean):
        msg = f"path traversal not allowed: {trimmed}"
        raise PathSecurityError(msg, details={"path": trimmed})

    if require_absolute and not os.path.isabs(clean):
        msg = f"path must be absolute or relative to home directory (~): {trimmed}"
        raise PathSecurityError(msg, details={"path": trimmed})

    if os.path.isabs(clean) and is_reserved_directory(clean):
        msg = f"cannot use system or reserved directories: {clean}"
        raise PathSecurityError(msg, details={"path": clean})

    return Path(clean)


def validate_storage_path(path: str) -> Path:
    """Validate a directory intended to hold rule files.

    On top of ``validate_path_security`` this requires an absolute path and
    an existing, accessible parent directory.

    Raises:
        PathSecurityError: If the path fails security validation
        FilesystemError: If the parent directory is missing or inaccessible
    """
    clean = validate_path_security(path, require_absolute=True)

    parent = clean.parent
    try:
        parent.stat()
    except FileNotFoundError as e:
        msg = f"parent directory does not exist: {parent}"
        raise FilesystemError(msg, code="missing-directory") from e
    except OSError as e:
        msg = f"cannot access parent directory: {e}"
        raise FilesystemError(msg, code="access-denied") from e

    return clean


def validate_path_in_home(target: str | os.PathLike[str]) -> Path:
    """Return ``target`` relative to the user's home directory.

    Symlinks are resolved on both sides, so a link inside home that points
    elsewhere does not pass.

    Raises:
        PathSecurityError: If the resolved path is outside the home directory
    """
    home = Path(os.path.realpath(home_dir()))
    resolved = Path(os.path.realpath(os.path.normpath(os.fspath(target))))
    if not _is_within(resolved, home):
        msg = f"path is outside home directory: {target}"
        raise PathSecurityError(msg, details={"path": str(target), "home": str(home)})
    return resolved.relative_to(home)


def is_dir_empty(path: str | os.PathLike[str]) -> bool:
    """Check if a directory has no entries."""
    with os.scandir(path) as entries:
        return next(entries, None) is None


def ensure_local_storage_directory(user_path: str) -> Path:
    """Create (if needed) and write-probe a storage directory inside home.

    Used by configuration setup, never by preparation.

    Args:
        user_path: Directory path, may start with ``~/``

    Returns:
        Absolute path of the ready directory

    Raises:
        PathSecurityError: If the path is empty, unsafe, or outside home
        FilesystemError: If the path is not a directory or is not writable
    """
    if not user_path.strip():
        raise PathSecurityError("local storage directory path cannot be empty", code="empty-path")

    clean = validate_path_security(user_path, require_absolute=True)
    try:
        relative = validate_path_in_home(clean)
    except PathSecurityError as e:
        msg = f"storage path must be within your home directory: {e}"
        raise PathSecurityError(msg, details=e.details) from e

    # All further operations go through the resolved home root
    target = Path(os.path.realpath(home_dir())) / relative

    if target.exists():
        if not target.is_dir():
            logger.error("Storage path exists but is not a directory: %s", target)
            msg = f"storage path exists but is not a directory: {target}"
            raise FilesystemError(msg, code="not-a-directory")
        logger.debug("Local storage directory already exists: %s", target)
    else:
        try:
            target.mkdir(mode=0o755, parents=True)
        except OSError as e:
            logger.error("Failed to create local storage directory %s: %s", target, e)
            msg = f"cannot create local storage directory: {e}"
            raise FilesystemError(msg, code="access-denied") from e
        logger.info("Created local storage directory: %s", target)

    probe = target / WRITE_TEST_FILENAME
    try:
        probe.write_text("rulem write permission test", encoding="utf-8")
    except OSError as e:
        logger.error("Storage directory is not writable: %s", e)
        msg = f"local storage directory is not writable: {e}"
        raise FilesystemError(msg, code="access-denied") from e
    finally:
        probe.unlink(missing_ok=True)

    logger.info("Local storage directory ready: %s", target)
    return target
