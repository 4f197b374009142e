"""
Main sync logic.

A session stages the cached metadata, commits local changes, rebases them onto
the remote branch and pushes. Only a successful push refreshes the snapshot
and removes the materialized ``.git``; any earlier failure leaves both alone so
the situation can be resolved with ordinary git commands.
"""

from dataclasses import dataclass
from enum import Enum

from rich.console import Console
from rich.markup import escape

from .bootstrap import RemoteBootstrapper
from .config import SyncConfig
from .errors import (
    CommitFailure,
    PushRejected,
    SnapshotWriteFailure,
    SyncConflict,
    SyncError,
)
from .git_ops import GitProcessRunner, ProcessResult, ProcessRunner
from .snapshot import SnapshotManifest, SnapshotStore, pack_git_dir, read_manifest
from .stager import RepoStager

console = Console()


class SyncState(str, Enum):
    """Steps of a sync session, in order."""

    PENDING = "pending"
    STAGED = "staged"
    COMMITTED = "committed"
    INTEGRATED = "integrated"
    PUBLISHED = "published"
    SUCCESS = "success"


@dataclass
class SyncSession:
    """Outcome of one sync run."""

    state: SyncState = SyncState.PENDING
    bootstrapped: bool = False
    resumed: bool = False
    committed: bool = False
    head_before: str | None = None
    head_after: str | None = None
    snapshot_updated: bool = False
    error: SyncError | None = None

    @property
    def success(self) -> bool:
        return self.state == SyncState.SUCCESS

    @property
    def failed(self) -> bool:
        return self.error is not None


class SyncEngine:
    """Runs the stage, commit, integrate and publish sequence for one directory."""

    def __init__(
        self,
        config: SyncConfig,
        runner: ProcessRunner | None = None,
        store: SnapshotStore | None = None,
        stager: RepoStager | None = None,
        bootstrapper: RemoteBootstrapper | None = None,
    ):
        """Initialize the engine; collaborators default to ones built from the config."""
        self.config = config
        self.runner = runner or GitProcessRunner()
        self.store = store or SnapshotStore(config.snapshot_path)
        self.stager = stager or RepoStager(config)
        self.bootstrapper = bootstrapper or RemoteBootstrapper(
            config, self.runner, self.store
        )
        self.session = SyncSession()

    def run(self) -> SyncSession:
        """
        Perform one sync session.

        Returns:
            The finished SyncSession

        Raises:
            SyncError: The terminal failure; ``self.session.state`` keeps the
                last state reached and ``self.session.error`` the failure
        """
        try:
            self._run()
        except SyncError as e:
            self.session.error = e
            raise
        return self.session

    def _run(self) -> None:
        session = self.session

        data = self.store.load()
        if data is None:
            data = self.bootstrapper.bootstrap()
            session.bootstrapped = True
        manifest = read_manifest(data)

        console.print("[bold]Syncing changes with the remote repository...[/bold]")
        session.resumed = not self.stager.stage(data)
        session.state = SyncState.STAGED
        session.head_before = self._head()

        self._commit()
        session.state = SyncState.COMMITTED

        result = self._git("pull", ["--rebase", self.config.remote_url, self.config.branch])
        if not result.ok:
            raise SyncConflict(
                f"Could not rebase onto {self.config.branch}; resolve the conflict "
                f"in {self.config.working_dir} with git and run the sync again",
                status=result.status,
                stdout=result.stdout,
                stderr=result.stderr,
            )
        session.state = SyncState.INTEGRATED

        result = self._git(
            "push", [self.config.remote_url, f"HEAD:{self.config.branch}"]
        )
        if not result.ok:
            raise PushRejected(
                f"Push to {self.config.branch} was rejected; not updating snapshot",
                status=result.status,
                stdout=result.stdout,
                stderr=result.stderr,
            )
        session.state = SyncState.PUBLISHED
        session.head_after = self._head()

        if self._needs_snapshot(manifest):
            self._save_snapshot()
            session.snapshot_updated = True
        else:
            console.print("[dim]Snapshot already up to date[/dim]")

        self.stager.unstage()
        session.state = SyncState.SUCCESS
        console.print(
            f"[dim]Snapshot size: {self.store.size()} bytes ({escape(str(self.store.path))})[/dim]"
        )

    def _git(self, operation: str, args: list[str]) -> ProcessResult:
        return self.runner.run(operation, args, cwd=self.config.working_dir)

    def _head(self) -> str | None:
        result = self._git("rev-parse", ["--verify", "--quiet", "HEAD"])
        if not result.ok:
            return None
        return result.stdout.strip() or None

    def _commit(self) -> None:
        """Commit every working-tree change; an empty change set is a no-op."""
        result = self._git("add", ["--all", "."])
        if not result.ok:
            raise CommitFailure(
                "Could not stage working tree changes",
                status=result.status,
                stdout=result.stdout,
                stderr=result.stderr,
            )

        # Exit status 1 means the index differs from HEAD
        result = self._git("diff", ["--cached", "--quiet"])
        if result.status == 0:
            console.print("[dim]No local changes to commit[/dim]")
            return
        if result.status != 1:
            raise CommitFailure(
                "Could not inspect staged changes",
                status=result.status,
                stdout=result.stdout,
                stderr=result.stderr,
            )

        result = self._git("commit", ["-m", self.config.commit_message])
        if not result.ok:
            raise CommitFailure(
                "Commit of local changes failed",
                status=result.status,
                stdout=result.stdout,
                stderr=result.stderr,
            )
        self.session.committed = True

    def _needs_snapshot(self, manifest: SnapshotManifest) -> bool:
        # Legacy archives record no head
        if manifest.head is None:
            return True
        return self.session.head_after != manifest.head

    def _save_snapshot(self) -> None:
        console.print("[dim]Push successful, updating snapshot...[/dim]")
        if self.config.gc_before_snapshot:
            result = self._git("gc", ["--aggressive", "--prune=now"])
            if not result.ok:
                console.print(
                    "[yellow]git gc failed; snapshot will not be compacted[/yellow]"
                )

        try:
            data = pack_git_dir(
                self.config.git_dir,
                branch=self.config.branch,
                head=self.session.head_after,
                copy_symlinks=self.config.copy_symlinks,
            )
        except OSError as e:
            raise SnapshotWriteFailure(f"Cannot archive {self.config.git_dir}: {e}") from e
        self.store.save(data)
        console.print(f"[green]Snapshot updated: {escape(str(self.store.path))}[/green]")
