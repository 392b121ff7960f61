"""Rule file materialization between central repositories and working directories."""

from __future__ import annotations

import logging
import os
import shutil
import tempfile
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path

from .exceptions import FileOperationError, RulemError
from .models import PreparedRepository
from .repository.paths import validate_path_security

logger = logging.getLogger(__name__)

MARKDOWN_EXTENSIONS = frozenset({".md", ".mdown", ".mkdn", ".mkd", ".markdown", ".mdc"})

SKIP_DIRECTORIES = frozenset(
    {
        ".git",
        "node_modules",
        "vendor",
        "target",
        "build",
        ".next",
        "dist",
        ".cache",
        "__pycache__",
        ".vscode",
        ".idea",
    }
)

MAX_SCAN_DEPTH = 50


def is_markdown_file(filename: str) -> bool:
    """Check the extension against the known Markdown extensions."""
    return Path(filename).suffix.lower() in MARKDOWN_EXTENSIONS


@dataclass
class FileItem:
    """A rule file found in a repository."""

    name: str
    path: Path  # absolute
    relative_path: str
    root: Path | None = None
    repository_id: str = ""
    repository_name: str = ""
    repository_type: str = ""


def _validate_relative_destination(dest: str) -> Path:
    if not dest.strip():
        raise FileOperationError("destination path cannot be empty")
    if os.path.isabs(dest):
        raise FileOperationError("destination path must be relative to current working directory")
    if ".." in Path(dest).parts:
        raise FileOperationError("path traversal not allowed in destination path")
    return Path(os.path.normpath(dest))


def _validate_file_name(name: str) -> str:
    if not name.strip() or name in (".", ".."):
        msg = f"invalid filename: {name!r}"
        raise FileOperationError(msg)
    if "/" in name or "\\" in name or ".." in name:
        raise FileOperationError("invalid filename: contains path separators or traversal attempts")
    return name


def _atomic_copy(src: Path, dest: Path) -> None:
    fd, temp_name = tempfile.mkstemp(prefix=f".{dest.name}.", suffix=".tmp", dir=dest.parent)
    temp = Path(temp_name)
    try:
        with os.fdopen(fd, "wb") as out, src.open("rb") as inp:
            shutil.copyfileobj(inp, out)
            out.flush()
            os.fsync(out.fileno())
        temp.chmod(0o644)
        os.replace(temp, dest)
    except OSError:
        temp.unlink(missing_ok=True)
        raise


class FileManager:
    """Reads and writes rule files in one repository directory.

    Args:
        storage_dir: The repository's local root
        working_dir: Directory that relative destinations resolve against
            (default: the process working directory)
    """

    def __init__(self, storage_dir: str | os.PathLike[str], working_dir: Path | None = None) -> None:
        root = Path(storage_dir)
        if not root.exists():
            msg = f"storage directory does not exist: {root}"
            raise FileOperationError(msg, code="missing-directory")
        if not root.is_dir():
            msg = f"storage path is not a directory: {root}"
            raise FileOperationError(msg, code="not-a-directory")
        self.storage_dir = Path(os.path.realpath(root))
        try:
            validate_path_security(str(self.storage_dir))
        except RulemError as e:
            msg = f"storage directory failed security validation: {e}"
            raise FileOperationError(msg, code=e.code) from e
        self.working_dir = working_dir

    def _cwd(self) -> Path:
        return self.working_dir or Path.cwd()

    def _validate_in_storage(self, storage_path: str | os.PathLike[str]) -> Path:
        path = Path(storage_path)
        if not path.is_absolute():
            path = self.storage_dir / path
        resolved = Path(os.path.realpath(path))
        if not resolved.is_relative_to(self.storage_dir):
            raise FileOperationError("file is not within the repository directory")
        if not resolved.exists():
            msg = f"file does not exist: {path.name}"
            raise FileOperationError(msg, code="missing-file")
        if not resolved.is_file():
            raise FileOperationError("path is a directory, not a file")
        return resolved

    def scan(self) -> list[FileItem]:
        """List Markdown files in the repository, sorted by relative path.

        Build and tool directories such as ``.git`` and ``node_modules`` are
        skipped; unreadable directories are ignored.
        """
        items = []
        root_depth = len(self.storage_dir.parts)
        for dirpath, dirnames, filenames in os.walk(self.storage_dir):
            current = Path(dirpath)
            if len(current.parts) - root_depth >= MAX_SCAN_DEPTH:
                dirnames[:] = []
            dirnames[:] = sorted(d for d in dirnames if d not in SKIP_DIRECTORIES)
            for filename in sorted(filenames):
                if not is_markdown_file(filename):
                    continue
                path = current / filename
                items.append(
                    FileItem(
                        name=filename,
                        path=path,
                        relative_path=path.relative_to(self.storage_dir).as_posix(),
                        root=self.storage_dir,
                    )
                )
        logger.debug("Scanned %s: %d rule files", self.storage_dir, len(items))
        return sorted(items, key=lambda item: item.relative_path)

    def copy_to_storage(
        self,
        src: str | os.PathLike[str],
        new_name: str | None = None,
        overwrite: bool = False,
    ) -> Path:
        """Save a local file into the repository root.

        Returns:
            Path of the stored file

        Raises:
            FileOperationError: If the source is missing, the name is unsafe,
                or the destination exists and ``overwrite`` is False
        """
        src_path = Path(src)
        if not src_path.is_absolute():
            src_path = self._cwd() / src_path
        if not src_path.exists():
            msg = f"source file does not exist: {src}"
            raise FileOperationError(msg, code="missing-file")
        if src_path.is_dir():
            msg = f"source is a directory, not a file: {src}"
            raise FileOperationError(msg)

        file_name = _validate_file_name(new_name) if new_name is not None else src_path.name
        dest = self.storage_dir / file_name
        if dest.exists() and not overwrite:
            msg = f"destination file already exists: {file_name} (use overwrite to replace)"
            raise FileOperationError(msg, code="file-exists")

        try:
            _atomic_copy(src_path, dest)
        except OSError as e:
            msg = f"failed to copy file: {e}"
            raise FileOperationError(msg) from e
        logger.info("Saved %s to %s", src_path, dest)
        return dest

    def _prepare_destination(self, dest: str, overwrite: bool) -> Path:
        relative = _validate_relative_destination(dest)
        target = self._cwd() / relative
        try:
            target.parent.mkdir(mode=0o755, parents=True, exist_ok=True)
        except OSError as e:
            msg = f"cannot create destination directory: {e}"
            raise FileOperationError(msg) from e
        if target.exists() or target.is_symlink():
            if not overwrite:
                msg = f"destination file already exists: {dest} (use overwrite to replace)"
                raise FileOperationError(msg, code="file-exists")
            logger.debug("Overwriting existing file %s", target)
        return target

    def copy_from_storage(
        self,
        storage_path: str | os.PathLike[str],
        dest: str,
        overwrite: bool = False,
    ) -> Path:
        """Copy a repository file to a path relative to the working directory.

        Returns:
            Absolute path of the copy
        """
        source = self._validate_in_storage(storage_path)
        target = self._prepare_destination(dest, overwrite)
        if target.is_symlink():
            target.unlink()
        try:
            _atomic_copy(source, target)
        except OSError as e:
            msg = f"failed to copy file from storage: {e}"
            raise FileOperationError(msg) from e
        logger.info("Copied %s to %s", source, target)
        return target

    def symlink_from_storage(
        self,
        storage_path: str | os.PathLike[str],
        dest: str,
        overwrite: bool = False,
    ) -> Path:
        """Link a repository file into the working directory with a relative symlink.

        Returns:
            Absolute path of the link
        """
        source = self._validate_in_storage(storage_path)
        target = self._prepare_destination(dest, overwrite)
        try:
            if target.exists() or target.is_symlink():
                target.unlink()
            link = os.path.relpath(source, start=os.path.realpath(target.parent))
            target.symlink_to(link)
        except OSError as e:
            msg = f"failed to create symlink: {e}"
            raise FileOperationError(msg) from e
        logger.info("Linked %s -> %s", target, link)
        return target


def scan_all_repositories(prepared: Sequence[PreparedRepository]) -> list[FileItem]:
    """Scan every prepared repository and tag files with their repository.

    A repository that cannot be scanned is logged and skipped.

    Raises:
        FileOperationError: If repositories were given but none could be scanned
    """
    files: list[FileItem] = []
    errors = []
    for repository in prepared:
        try:
            items = FileManager(repository.local_path).scan()
        except (FileOperationError, OSError) as e:
            logger.error("Repository %s (%s): scan failed: %s", repository.id, repository.name, e)
            errors.append(f"repository {repository.id} ({repository.name}): {e}")
            continue
        for item in items:
            item.repository_id = repository.id
            item.repository_name = repository.name
            item.repository_type = repository.type.value
        files.extend(items)

    if prepared and len(errors) == len(prepared):
        msg = "failed to scan any repository:\n  - " + "\n  - ".join(errors)
        raise FileOperationError(msg)
    return files
