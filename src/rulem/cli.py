"""rulem command-line interface."""

from __future__ import annotations

import logging
import sys
import time
from importlib.metadata import PackageNotFoundError
from importlib.metadata import version as get_version
from pathlib import Path

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from .config import Config, config_path, generate_repository_id, load_config, save_config
from .editors import EDITOR_RULE_CONFIGS, get_editor_config
from .exceptions import (
    BatchPreparationError,
    ConfigError,
    RepositoryValidationError,
    RulemError,
)
from .filemanager import FileManager, scan_all_repositories
from .logging import RedactingFilter, configure_logging
from .mcp_server import create_server
from .models import PreparedRepository, RepositoryEntry, RepositoryType, SyncStatus
from .repository import (
    CredentialManager,
    derive_clone_path,
    ensure_local_storage_directory,
    parse_git_url,
    prepare_all_repositories,
    prepare_repository,
    sync_all_repositories,
    validate_all_repositories,
)

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_VALIDATION = 2

app = typer.Typer(
    name="rulem",
    help="rulem: manage AI-assistant rule files from central repositories",
    add_completion=False,
)
repo_app = typer.Typer(help="Manage central repositories", add_completion=False)
auth_app = typer.Typer(help="Manage the GitHub personal access token", add_completion=False)
app.add_typer(repo_app, name="repo")
app.add_typer(auth_app, name="auth")

console = Console()
err_console = Console(stderr=True)


def _get_version_string() -> str:
    try:
        return get_version("rulem")
    except PackageNotFoundError:
        return "unknown"


def version_callback(value: bool) -> None:
    """Callback for --version flag."""
    if value:
        console.print(f"rulem version {_get_version_string()}")
        raise typer.Exit


@app.callback()
def main_callback(
    version: bool = typer.Option(
        False,
        "--version",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Show debug logging",
    ),
) -> None:
    """rulem: manage AI-assistant rule files from central repositories."""
    handler = RichHandler(console=err_console, show_path=False)
    handler.addFilter(RedactingFilter())
    configure_logging(
        level=logging.DEBUG if verbose else logging.WARNING,
        handler=handler,
        format_string="%(message)s",
    )


def _fail(error: Exception, code: int = EXIT_FAILURE) -> typer.Exit:
    console.print(f"[red]Error:[/red] {error}")
    return typer.Exit(code)


def _load_config_or_empty() -> Config:
    if not config_path().exists():
        return Config()
    return load_config()


def _find_entry(config: Config, id_or_name: str) -> RepositoryEntry:
    entry = config.find_repository(id_or_name)
    if entry is None:
        msg = f"repository not found: {id_or_name}"
        raise ConfigError(msg)
    return entry


def _save_with_entry(config: Config, entry: RepositoryEntry) -> None:
    config.add_repository(entry)
    validate_all_repositories(config.repositories)
    save_config(config)


def _status_text(repository: PreparedRepository) -> str:
    if repository.sync.status == SyncStatus.SUCCESS:
        return f"[green]{repository.sync.message}[/green]"
    if repository.sync.status == SyncStatus.FAILED:
        return f"[red]{repository.sync.message}[/red]"
    return f"[yellow]{repository.sync.message}[/yellow]"


def _print_prepared(prepared: list[PreparedRepository]) -> None:
    table = Table(title="Repositories")
    table.add_column("ID", style="cyan")
    table.add_column("Name")
    table.add_column("Type")
    table.add_column("Local path")
    table.add_column("Status")
    for repository in prepared:
        table.add_row(
            repository.id,
            repository.name,
            repository.type.value,
            str(repository.local_path),
            _status_text(repository),
        )
    console.print(table)
    for repository in prepared:
        for warning in repository.warnings:
            console.print(f"[yellow]Warning:[/yellow] {repository.name}: {warning}")


@repo_app.command("list")
def repo_list() -> None:
    """List configured repositories."""
    try:
        config = _load_config_or_empty()
    except RulemError as e:
        raise _fail(e) from e

    if not config.repositories:
        console.print("No repositories configured. Use 'rulem repo add-local' or 'rulem repo add-github'.")
        return

    table = Table(title="Configured repositories")
    table.add_column("ID", style="cyan")
    table.add_column("Name")
    table.add_column("Type")
    table.add_column("Source")
    table.add_column("Branch")
    table.add_column("Last sync")
    for entry in config.repositories:
        last_sync = (
            time.strftime("%Y-%m-%d %H:%M", time.localtime(entry.last_sync_time))
            if entry.last_sync_time
            else "-"
        )
        table.add_row(
            entry.id,
            entry.name,
            entry.type.value,
            entry.remote_url or entry.path,
            entry.branch or "-",
            last_sync,
        )
    console.print(table)


@repo_app.command("add-local")
def repo_add_local(
    name: str = typer.Argument(..., help="Display name"),
    path: str = typer.Argument(..., help="Directory inside your home (created if missing)"),
) -> None:
    """Add a local directory as a central repository."""
    try:
        config = _load_config_or_empty()
        directory = ensure_local_storage_directory(path)
        now = int(time.time())
        entry = RepositoryEntry(
            id=generate_repository_id(name, now),
            name=name.strip(),
            type=RepositoryType.LOCAL,
            created_at=now,
            path=str(directory),
        )
        _save_with_entry(config, entry)
    except RulemError as e:
        raise _fail(e) from e

    console.print(f"[green]✓[/green] Added local repository {entry.name} ({entry.id}) at {directory}")


@repo_app.command("add-github")
def repo_add_github(
    url: str = typer.Argument(..., help="Repository URL (SSH or HTTPS)"),
    name: str | None = typer.Option(None, "--name", "-n", help="Display name (default: repository name)"),
    branch: str | None = typer.Option(None, "--branch", "-b", help="Branch (default: remote default branch)"),
    path: str | None = typer.Option(None, "--path", "-p", help="Clone destination"),
) -> None:
    """Add a GitHub repository as a central repository."""
    try:
        config = _load_config_or_empty()
        info = parse_git_url(url)
        display_name = (name or info.repo).strip()
        clone_path = path or str(derive_clone_path(url))
        now = int(time.time())
        entry = RepositoryEntry(
            id=generate_repository_id(display_name, now),
            name=display_name,
            type=RepositoryType.GITHUB,
            created_at=now,
            path=clone_path,
            remote_url=url.strip(),
            branch=branch,
        )
        _save_with_entry(config, entry)
    except RulemError as e:
        raise _fail(e) from e

    console.print(f"[green]✓[/green] Added GitHub repository {entry.name} ({entry.id})")
    console.print(f"  Clone path: {entry.path}")
    console.print("Run 'rulem prepare' to clone it.")


@repo_app.command("remove")
def repo_remove(
    id_or_name: str = typer.Argument(..., help="Repository ID or name"),
) -> None:
    """Remove a repository from the configuration. Files on disk are kept."""
    try:
        config = load_config()
        entry = config.remove_repository(id_or_name)
        save_config(config)
    except RulemError as e:
        raise _fail(e) from e
    console.print(f"[green]✓[/green] Removed {entry.name} ({entry.id}); files at {entry.path} were kept")


@app.command()
def prepare() -> None:
    """Validate, clone or update, and sync all repositories."""
    try:
        config = load_config()
    except RulemError as e:
        raise _fail(e) from e

    try:
        prepared = prepare_all_repositories(config.repositories)
    except RepositoryValidationError as e:
        raise _fail(e, EXIT_VALIDATION) from e
    except BatchPreparationError as e:
        if e.prepared:
            _print_prepared(e.prepared)
        raise _fail(e) from e

    _print_prepared(prepared)
    if any(repository.has_error() for repository in prepared):
        raise typer.Exit(EXIT_FAILURE)


@app.command()
def sync() -> None:
    """Fetch updates for all GitHub repositories."""
    try:
        config = load_config()
        validate_all_repositories(config.repositories)
    except RepositoryValidationError as e:
        raise _fail(e, EXIT_VALIDATION) from e
    except RulemError as e:
        raise _fail(e) from e

    outcomes = sync_all_repositories(config.repositories)
    now = int(time.time())
    failed = False
    for entry, outcome in zip(config.repositories, outcomes, strict=True):
        if outcome.status == SyncStatus.SUCCESS:
            entry.last_sync_time = now
            console.print(f"[green]✓[/green] {entry.name}: {outcome.message}")
        elif outcome.status == SyncStatus.FAILED:
            failed = True
            console.print(f"[red]✗[/red] {entry.name}: {outcome.message}")
        else:
            console.print(f"[yellow]-[/yellow] {entry.name}: {outcome.message}")

    try:
        save_config(config)
    except RulemError as e:
        raise _fail(e) from e
    if failed:
        raise typer.Exit(EXIT_FAILURE)


@auth_app.command("set")
def auth_set(
    token: str = typer.Option(
        ...,
        prompt="GitHub personal access token",
        hide_input=True,
        help="Token to store (prompted when omitted)",
    ),
) -> None:
    """Store a GitHub personal access token in the OS credential store."""
    try:
        CredentialManager().update_token(token.strip())
    except RulemError as e:
        raise _fail(e) from e
    console.print("[green]✓[/green] GitHub token stored")


@auth_app.command("status")
def auth_status() -> None:
    """Show credential store availability and whether a token is stored."""
    manager = CredentialManager()
    status = manager.probe()
    if status.available:
        console.print("[green]✓[/green] Credential store available")
    else:
        console.print(f"[red]✗[/red] Credential store unavailable: {status.error}")
    if status.warning:
        console.print(f"[yellow]Warning:[/yellow] {status.warning}")
    if manager.has_token():
        console.print("[green]✓[/green] GitHub token configured")
    else:
        console.print("[yellow]-[/yellow] No GitHub token configured (public repositories only)")
    if not status.available:
        raise typer.Exit(EXIT_FAILURE)


@auth_app.command("delete")
def auth_delete() -> None:
    """Delete the stored GitHub token."""
    try:
        CredentialManager().delete_token()
    except RulemError as e:
        raise _fail(e) from e
    console.print("[green]✓[/green] GitHub token deleted")


@auth_app.command("verify")
def auth_verify(
    url: str = typer.Argument(..., help="Repository URL to test access against"),
    timeout: float = typer.Option(10.0, "--timeout", help="Seconds before giving up"),
) -> None:
    """Check that the stored token can read a repository."""
    manager = CredentialManager()
    try:
        manager.verify_token_with_repo(manager.get_token(), url, timeout=timeout)
    except RulemError as e:
        raise _fail(e) from e
    console.print(f"[green]✓[/green] Token has access to {url}")


def _prepare_one(id_or_name: str) -> Path:
    config = load_config()
    entry = _find_entry(config, id_or_name)
    validate_all_repositories(config.repositories)
    return prepare_repository(entry).local_path


@app.command()
def rules() -> None:
    """List rule files across all repositories."""
    try:
        config = load_config()
        try:
            prepared = prepare_all_repositories(config.repositories)
        except BatchPreparationError as e:
            console.print(f"[yellow]Warning:[/yellow] {e}")
            prepared = e.prepared
        files = scan_all_repositories(prepared)
    except RepositoryValidationError as e:
        raise _fail(e, EXIT_VALIDATION) from e
    except RulemError as e:
        raise _fail(e) from e

    if not files:
        console.print("No rule files found.")
        return

    table = Table(title="Rule files")
    table.add_column("Repository", style="cyan")
    table.add_column("File")
    for item in files:
        table.add_row(item.repository_name, item.relative_path)
    console.print(table)


@app.command()
def editors() -> None:
    """List supported assistants and where their rule files go."""
    table = Table(title="Editors")
    table.add_column("Key", style="cyan")
    table.add_column("Name")
    table.add_column("Destination")
    for config in EDITOR_RULE_CONFIGS:
        table.add_row(config.key, config.name, config.destination("<rule>.md"))
    console.print(table)


@app.command()
def save(
    file: Path = typer.Argument(..., help="Markdown file to save"),
    repo: str = typer.Option(..., "--repo", "-r", help="Target repository ID or name"),
    name: str | None = typer.Option(None, "--name", "-n", help="File name in the repository"),
    overwrite: bool = typer.Option(False, "--overwrite", help="Replace an existing file"),
) -> None:
    """Save a local rule file into a central repository."""
    try:
        local_path = _prepare_one(repo)
        stored = FileManager(local_path).copy_to_storage(file, new_name=name, overwrite=overwrite)
    except RepositoryValidationError as e:
        raise _fail(e, EXIT_VALIDATION) from e
    except RulemError as e:
        raise _fail(e) from e
    console.print(f"[green]✓[/green] Saved {file} to {stored}")


@app.command("import")
def import_rule(
    rule: str = typer.Argument(..., help="Rule file path inside the repository"),
    repo: str = typer.Option(..., "--repo", "-r", help="Source repository ID or name"),
    editor: str | None = typer.Option(None, "--editor", "-e", help="Editor key (see 'rulem editors')"),
    symlink: bool = typer.Option(False, "--symlink", help="Link instead of copying"),
    overwrite: bool = typer.Option(False, "--overwrite", help="Replace an existing file"),
) -> None:
    """Import a rule file into the current directory."""
    try:
        destination = Path(rule).name
        if editor is not None:
            editor_config = get_editor_config(editor)
            if editor_config is None:
                msg = f"unknown editor: {editor} (see 'rulem editors')"
                raise RulemError(msg)
            destination = editor_config.destination(Path(rule).name)

        manager = FileManager(_prepare_one(repo))
        if symlink:
            target = manager.symlink_from_storage(rule, destination, overwrite=overwrite)
        else:
            target = manager.copy_from_storage(rule, destination, overwrite=overwrite)
    except RepositoryValidationError as e:
        raise _fail(e, EXIT_VALIDATION) from e
    except RulemError as e:
        raise _fail(e) from e
    console.print(f"[green]✓[/green] Imported {rule} to {target}")


@app.command()
def mcp() -> None:
    """Serve rule files to AI assistants over MCP (stdio)."""
    try:
        config = load_config()
        try:
            prepared = prepare_all_repositories(config.repositories)
        except BatchPreparationError as e:
            err_console.print(f"[yellow]Warning:[/yellow] {e}")
            prepared = e.prepared
        server = create_server(prepared)
    except RepositoryValidationError as e:
        err_console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(EXIT_VALIDATION) from e
    except RulemError as e:
        err_console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(EXIT_FAILURE) from e

    # stdout carries the protocol from here on
    server.run()


def main() -> None:
    """Entry point for the CLI."""
    try:
        app()
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted[/yellow]")
        sys.exit(130)


if __name__ == "__main__":
    main()
