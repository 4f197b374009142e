"""
CLI entry point for git_snapsync.

Provides the command-line interface for syncing a directory with its remote
repository and inspecting the cached snapshot.
"""

import re
from pathlib import Path

import click
from pydantic import ValidationError
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from .config import DEFAULT_SNAPSHOT_FILE, SyncConfig
from .errors import SyncError
from .snapshot import SnapshotStore, read_manifest
from .syncer import SyncEngine

console = Console()
err_console = Console(stderr=True, soft_wrap=True)


def inject_token_into_url(url: str, token: str) -> str:
    """
    Inject a token into a git URL for authentication.

    Converts SSH URLs to HTTPS and adds the token.
    """
    # Already carries credentials
    if url.startswith("https://") and "@" in url.split("/", 3)[2]:
        return url

    # git@github.com:org/repo.git -> https://x-access-token:<token>@github.com/org/repo.git
    ssh_match = re.match(r"git@([^:]+):(.+)", url)
    if ssh_match:
        host, path = ssh_match.groups()
        return f"https://x-access-token:{token}@{host}/{path}"

    https_match = re.match(r"https://([^/]+)/(.+)", url)
    if https_match:
        host, path = https_match.groups()
        return f"https://x-access-token:{token}@{host}/{path}"

    return url


@click.group()
@click.version_option(package_name="git-snapsync")
def cli():
    """Git Snapsync - Sync a monorepo directory with a public repository."""
    pass


@cli.command()
@click.option(
    "--remote",
    "-r",
    "remote_url",
    type=str,
    default=None,
    help="Git remote URL to sync with (e.g., git@github.com:org/repo.git); "
    "required unless --config sets remote_url",
)
@click.option(
    "--branch",
    "-b",
    type=str,
    default=None,
    help="Remote branch to sync with [default: main]",
)
@click.option(
    "--message",
    "-m",
    "commit_message",
    type=str,
    default=None,
    help="Commit message for local changes [default: Sync changes]",
)
@click.option(
    "--dir",
    "-C",
    "working_dir",
    type=click.Path(exists=True, file_okay=False, dir_okay=True, path_type=Path),
    default=None,
    help="Directory to sync [default: current directory]",
)
@click.option(
    "--copy-symlinks/--follow-symlinks",
    default=None,
    help="Store symbolic links in the snapshot as links instead of following them",
)
@click.option(
    "--no-gc",
    is_flag=True,
    help="Skip 'git gc' before writing a new snapshot",
)
@click.option(
    "--token",
    "-t",
    envvar="GIT_SNAPSYNC_TOKEN",
    help="Access token for the remote (or set GIT_SNAPSYNC_TOKEN env var)",
)
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="YAML file with sync settings; command-line options take precedence",
)
def sync(
    remote_url: str | None,
    branch: str | None,
    commit_message: str | None,
    working_dir: Path | None,
    copy_symlinks: bool | None,
    no_gc: bool,
    token: str | None,
    config_path: Path | None,
):
    """Sync the directory with the remote repository."""
    if not remote_url and not config_path:
        raise click.UsageError("Missing option '--remote' / '-r'.")

    overrides = {
        "remote_url": remote_url,
        "branch": branch,
        "commit_message": commit_message,
        "working_dir": working_dir,
        "copy_symlinks": copy_symlinks,
        "gc_before_snapshot": False if no_gc else None,
    }
    try:
        if config_path:
            config = SyncConfig.from_yaml(config_path, **overrides)
        else:
            config = SyncConfig(**{k: v for k, v in overrides.items() if v is not None})
    except (ValidationError, ValueError, OSError) as e:
        err_console.print(f"[red]Error loading config: {escape(str(e))}[/red]")
        raise SystemExit(1)

    if token:
        config = config.model_copy(
            update={"remote_url": inject_token_into_url(config.remote_url, token)}
        )

    engine = SyncEngine(config)
    try:
        engine.run()
    except SyncError as e:
        err_console.print(f"[red]✗ Sync failed: {escape(e.message)} (exit status {e.status})[/red]")
        if e.leaves_metadata and config.git_dir.exists():
            err_console.print(
                f"[yellow]Git metadata was left in place at {escape(str(config.git_dir))}; resolve the "
                "situation there with git, then run the sync again. The snapshot was "
                "not modified.[/yellow]"
            )
        raise SystemExit(e.status)

    console.print("[green]✓ Sync completed successfully![/green]")


@cli.command()
@click.option(
    "--dir",
    "-C",
    "working_dir",
    type=click.Path(exists=True, file_okay=False, dir_okay=True, path_type=Path),
    default=Path("."),
    help="Synced directory [default: current directory]",
)
@click.option(
    "--snapshot-file",
    type=str,
    default=DEFAULT_SNAPSHOT_FILE,
    show_default=True,
    help="File name of the snapshot archive",
)
def status(working_dir: Path, snapshot_file: str):
    """Show the state of the cached snapshot."""
    store = SnapshotStore(working_dir / snapshot_file)
    git_dir = working_dir / ".git"

    console.print("\n[bold]Git Snapsync Status[/bold]\n")

    table = Table(show_header=False)
    table.add_column("Key", style="cyan")
    table.add_column("Value")
    table.add_row("Snapshot", str(store.path))

    exit_code = 0
    if not store.exists():
        table.add_row("State", "[yellow]no snapshot (next sync bootstraps from the remote)[/yellow]")
    else:
        table.add_row("Size", f"{store.size()} bytes")
        try:
            manifest = read_manifest(store.load())
        except SyncError as e:
            table.add_row("State", f"[red]corrupt: {escape(e.message)}[/red]")
            exit_code = 1
        else:
            if manifest.is_legacy:
                table.add_row("Schema", "0 (legacy, no manifest)")
            else:
                table.add_row("Schema", str(manifest.schema_version))
                table.add_row("Branch", manifest.branch or "-")
                table.add_row("Head", (manifest.head or "-")[:12])
                table.add_row("Created", manifest.created_at or "-")

    if git_dir.exists():
        table.add_row(
            "Metadata",
            "[yellow]materialized (a previous sync stopped for manual resolution)[/yellow]",
        )
    else:
        table.add_row("Metadata", "[green]clean[/green]")

    console.print(table)
    if exit_code:
        raise SystemExit(exit_code)


if __name__ == "__main__":
    cli()
