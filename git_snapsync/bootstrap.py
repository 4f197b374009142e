"""
First-run bootstrap: seed the snapshot from a fresh clone of the remote.
"""

import tempfile
from pathlib import Path

from rich.console import Console
from rich.markup import escape

from .config import SyncConfig
from .errors import BootstrapFailure, EmptyRemote
from .git_ops import ProcessRunner
from .snapshot import SnapshotStore, pack_git_dir

console = Console()


class RemoteBootstrapper:
    """Clones the remote into a scratch directory and saves its metadata as the first snapshot."""

    def __init__(self, config: SyncConfig, runner: ProcessRunner, store: SnapshotStore):
        self.config = config
        self.runner = runner
        self.store = store

    def bootstrap(self) -> bytes:
        """
        Create the initial snapshot.

        Only the clone's ``.git`` is kept; its checked-out files are discarded
        because the working directory's own files stay authoritative.

        Returns:
            The snapshot bytes that were saved

        Raises:
            EmptyRemote: If the remote has no commits
            BootstrapFailure: If cloning fails or the branch does not exist
        """
        branch = self.config.branch
        console.print(
            f"[dim]No snapshot found, creating initial clone of branch {escape(branch)}...[/dim]"
        )

        with tempfile.TemporaryDirectory(prefix="git-snapsync-") as tmpdir:
            scratch = Path(tmpdir)

            result = self.runner.run("clone", [self.config.remote_url, "."], cwd=scratch)
            if not result.ok:
                raise BootstrapFailure(
                    "Initial clone of the remote failed",
                    status=result.status,
                    stdout=result.stdout,
                    stderr=result.stderr,
                )

            remote_ref = f"refs/remotes/origin/{branch}"
            result = self.runner.run(
                "rev-parse", ["--verify", "--quiet", remote_ref], cwd=scratch
            )
            if not result.ok:
                refs = self.runner.run(
                    "for-each-ref", ["--count=1", "refs/remotes/origin"], cwd=scratch
                )
                if refs.ok and not refs.stdout.strip():
                    raise EmptyRemote(
                        f"Remote {self.config.remote_url} has no commits to sync with"
                    )
                raise BootstrapFailure(
                    f"Branch '{branch}' not found on remote {self.config.remote_url}",
                    status=result.status,
                )
            head = result.stdout.strip()

            result = self.runner.run("checkout", ["-B", branch, remote_ref], cwd=scratch)
            if not result.ok:
                raise BootstrapFailure(
                    f"Cannot check out branch '{branch}' in the initial clone",
                    status=result.status,
                    stdout=result.stdout,
                    stderr=result.stderr,
                )

            git_dir = scratch / ".git"
            try:
                data = pack_git_dir(
                    git_dir,
                    branch=branch,
                    head=head,
                    copy_symlinks=self.config.copy_symlinks,
                )
            except OSError as e:
                raise BootstrapFailure(f"Cannot archive the initial clone: {e}") from e

        self.store.save(data)
        console.print(f"[green]Created snapshot {escape(str(self.store.path))}[/green]")
        return data
