"""Failures that end a sync session."""


class SyncError(Exception):
    """Base class for terminal sync failures.

    ``status`` is the exit status of the failing git operation (or 1 when the
    failure did not come from git). A process killed by signal N reports -N,
    which is mapped to 128 + N as shells do. ``stdout``/``stderr`` hold git's
    own output.
    """

    # Whether the materialized .git directory is left behind for manual fixing
    leaves_metadata = False

    def __init__(self, message: str, status: int = 1, stdout: str = "", stderr: str = ""):
        super().__init__(message)
        self.message = message
        if status < 0:
            status = 128 - status
        self.status = status or 1
        self.stdout = stdout
        self.stderr = stderr


class BootstrapFailure(SyncError):
    """Raised when the initial clone of the remote cannot be turned into a snapshot."""


class EmptyRemote(BootstrapFailure):
    """Raised when the remote repository has no commits to bootstrap from."""


class SnapshotCorrupt(SyncError):
    """Raised when the snapshot archive cannot be decompressed or read."""


class SnapshotWriteFailure(SyncError):
    """Raised when the snapshot archive cannot be written."""

    leaves_metadata = True


class StageFailure(SyncError):
    """Raised when the snapshot cannot be materialized into the working directory."""


class CommitFailure(SyncError):
    """Raised when local changes cannot be staged or committed."""

    leaves_metadata = True


class SyncConflict(SyncError):
    """Raised when rebasing onto the remote branch stops, usually on a conflict."""

    leaves_metadata = True


class PushRejected(SyncError):
    """Raised when the remote refuses the pushed commits."""

    leaves_metadata = True
