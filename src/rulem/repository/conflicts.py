"""Classification of clone target directories."""

from __future__ import annotations

import configparser
import logging
import os
from pathlib import Path

from git import Repo
from git.exc import InvalidGitRepositoryError, NoSuchPathError

from ..models import DirectoryClassification, DirectoryStatus
from .paths import is_dir_empty
from .urls import normalize_git_url

logger = logging.getLogger(__name__)


class _OriginUnavailable(Exception):
    pass


def read_origin_url(repo: Repo) -> str:
    """Return the first configured URL of the ``origin`` remote.

    The value is read from the repository config as stored, so
    ``url.<base>.insteadOf`` rewrites are not applied.

    Raises:
        _OriginUnavailable: If there is no origin or it has no URL
    """
    reader = repo.config_reader("repository")
    try:
        urls = reader.get_values('remote "origin"', "url")
    except configparser.NoSectionError as e:
        raise _OriginUnavailable("cannot get origin remote: remote 'origin' not found") from e
    except configparser.NoOptionError as e:
        raise _OriginUnavailable("no URLs configured for origin remote") from e
    except configparser.Error as e:
        raise _OriginUnavailable(f"cannot read origin remote URLs: {e}") from e
    finally:
        reader.release()
    urls = [url for url in urls if str(url).strip()]
    if not urls:
        raise _OriginUnavailable("no URLs configured for origin remote")
    return str(urls[0])


def classify_clone_directory(
    clone_path: str | os.PathLike[str],
    expected_url: str,
) -> DirectoryClassification:
    """Decide whether a clone or fetch may use ``clone_path``.

    Checks run in order and the first match wins: missing path, not a
    directory, empty directory, not a git repository, origin unreadable,
    then an origin comparison on normalized URLs (so SSH and HTTPS forms of
    one remote are the same repository). Nothing is ever written or removed.

    Args:
        clone_path: Target directory
        expected_url: Remote URL the directory should hold

    Returns:
        The classification; errors are reported as ``DirectoryStatus.ERROR``
    """
    path = Path(clone_path)

    try:
        path.stat()
    except FileNotFoundError:
        return DirectoryClassification(DirectoryStatus.EMPTY, path)
    except OSError as e:
        return DirectoryClassification(
            DirectoryStatus.ERROR, path, detail=f"cannot access directory {path}: {e}"
        )

    if not path.is_dir():
        return DirectoryClassification(
            DirectoryStatus.ERROR, path, detail=f"path exists but is not a directory: {path}"
        )

    try:
        if is_dir_empty(path):
            return DirectoryClassification(DirectoryStatus.EMPTY, path)
    except OSError as e:
        return DirectoryClassification(
            DirectoryStatus.ERROR, path, detail=f"cannot check if directory is empty: {e}"
        )

    try:
        repo = Repo(path)
    except (InvalidGitRepositoryError, NoSuchPathError):
        return DirectoryClassification(
            DirectoryStatus.NON_GIT_CONTENT,
            path,
            detail=f"directory contains non-git content: {path}",
        )

    try:
        current_url = read_origin_url(repo)
    except _OriginUnavailable as e:
        return DirectoryClassification(
            DirectoryStatus.ERROR, path, detail=f"cannot get current git remote URL: {e}"
        )
    finally:
        repo.close()

    if normalize_git_url(current_url) == normalize_git_url(expected_url):
        logger.debug("Directory %s already holds %s", path, expected_url)
        return DirectoryClassification(DirectoryStatus.SAME_REPO, path, current_url=current_url)

    return DirectoryClassification(
        DirectoryStatus.DIFFERENT_REPO,
        path,
        detail=(
            "directory contains different git repository "
            f"(current: {current_url}, expected: {expected_url})"
        ),
        current_url=current_url,
    )
