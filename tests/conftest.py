"""Shared fixtures: an isolated home, an offline Git remote, and keyring backends."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Iterator
from pathlib import Path

import pytest
from git import Actor, Repo
from keyring.backend import KeyringBackend
from keyring.errors import KeyringError, PasswordDeleteError

from rulem.models import RepositoryEntry, RepositoryType
from rulem.repository import CredentialManager

REMOTE_BASE = "https://git.example.test/"
AUTHOR = Actor("Rule Author", "author@example.test")
VALID_TOKEN = "ghp_" + "a" * 36


class MemoryKeyring(KeyringBackend):
    """Keyring backend that keeps passwords in a dict."""

    priority = 1

    def __init__(self) -> None:
        super().__init__()
        self.passwords: dict[tuple[str, str], str] = {}

    def get_password(self, service: str, username: str) -> str | None:
        return self.passwords.get((service, username))

    def set_password(self, service: str, username: str, password: str) -> None:
        self.passwords[(service, username)] = password

    def delete_password(self, service: str, username: str) -> None:
        try:
            del self.passwords[(service, username)]
        except KeyError as e:
            raise PasswordDeleteError("password not found") from e


class BrokenKeyring(KeyringBackend):
    """Keyring backend where every operation fails."""

    priority = 1

    def get_password(self, service: str, username: str) -> str | None:
        raise KeyringError("no secret service available")

    def set_password(self, service: str, username: str, password: str) -> None:
        raise KeyringError("no secret service available")

    def delete_password(self, service: str, username: str) -> None:
        raise KeyringError("no secret service available")


@pytest.fixture(autouse=True)
def reset_rulem_logger() -> Iterator[None]:
    """Undo handlers and levels installed by configure_logging."""
    yield
    root = logging.getLogger("rulem")
    for handler in list(root.handlers):
        root.removeHandler(handler)
    root.setLevel(logging.NOTSET)


@pytest.fixture
def home(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Point HOME, XDG directories and the config path into the test directory."""
    home_dir = tmp_path / "home"
    home_dir.mkdir()
    monkeypatch.setenv("HOME", str(home_dir))
    monkeypatch.setenv("XDG_DATA_HOME", str(home_dir / ".local" / "share"))
    monkeypatch.setenv("XDG_CONFIG_HOME", str(home_dir / ".config"))
    monkeypatch.setenv("RULEM_CONFIG_PATH", str(home_dir / ".config" / "rulem" / "config.yaml"))
    return home_dir


@pytest.fixture
def remotes_dir(tmp_path: Path, home: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Serve ``https://git.example.test/<owner>/<repo>.git`` from local directories.

    A private global git config rewrites the HTTPS base to a ``file://``
    directory, so clones and fetches never leave the machine.
    """
    remotes = tmp_path / "remotes"
    remotes.mkdir()
    gitconfig = tmp_path / "gitconfig"
    gitconfig.write_text(
        f'[url "file://{remotes.as_posix()}/"]\n'
        f"\tinsteadOf = {REMOTE_BASE}\n"
        "[protocol \"file\"]\n"
        "\tallow = always\n"
        "[user]\n"
        "\tname = Rule Author\n"
        "\temail = author@example.test\n",
        encoding="utf-8",
    )
    monkeypatch.setenv("GIT_CONFIG_GLOBAL", str(gitconfig))
    monkeypatch.setenv("GIT_CONFIG_NOSYSTEM", "1")
    return remotes


def commit_file(repo: Repo, relative: str, content: str, message: str | None = None) -> str:
    """Write a file into a working tree and commit it. Returns the commit sha."""
    path = Path(repo.working_tree_dir) / relative
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
    repo.index.add([relative])
    commit = repo.index.commit(message or f"Add {relative}", author=AUTHOR, committer=AUTHOR)
    return commit.hexsha


@pytest.fixture
def make_remote(remotes_dir: Path) -> Callable[..., tuple[str, Repo]]:
    """Create an upstream repository and return its HTTPS URL and Repo."""

    def _make(owner: str = "acme", name: str = "rules", files: dict[str, str] | None = None):
        path = remotes_dir / owner / f"{name}.git"
        path.mkdir(parents=True)
        repo = Repo.init(path, initial_branch="main")
        for relative, content in (files or {"python.md": "# Python rules\n"}).items():
            commit_file(repo, relative, content)
        return f"{REMOTE_BASE}{owner}/{name}.git", repo

    return _make


@pytest.fixture
def memory_keyring() -> MemoryKeyring:
    """An empty in-memory keyring."""
    return MemoryKeyring()


@pytest.fixture
def credentials(memory_keyring: MemoryKeyring) -> CredentialManager:
    """Credential manager backed by the in-memory keyring."""
    return CredentialManager(backend=memory_keyring)


def local_entry(name: str, path: Path | str, created_at: int | None = None) -> RepositoryEntry:
    """Build a valid local repository entry."""
    created = created_at or int(time.time())
    slug = name.lower().replace(" ", "-")
    return RepositoryEntry(
        id=f"{slug}-{created}",
        name=name,
        type=RepositoryType.LOCAL,
        created_at=created,
        path=str(path),
    )


def github_entry(
    name: str,
    url: str,
    path: Path | str,
    branch: str | None = None,
    created_at: int | None = None,
) -> RepositoryEntry:
    """Build a valid GitHub repository entry."""
    created = created_at or int(time.time())
    slug = name.lower().replace(" ", "-")
    return RepositoryEntry(
        id=f"{slug}-{created}",
        name=name,
        type=RepositoryType.GITHUB,
        created_at=created,
        path=str(path),
        remote_url=url,
        branch=branch,
    )
