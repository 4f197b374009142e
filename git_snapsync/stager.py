"""
Materializes snapshot metadata into the working directory and removes it again.
"""

import shutil
import tarfile

from rich.console import Console
from rich.markup import escape

from .config import SyncConfig
from .errors import SnapshotCorrupt, StageFailure
from .snapshot import unpack_git_dir

console = Console()


class RepoStager:
    """Turns the working directory into a git checkout for the duration of a session."""

    def __init__(self, config: SyncConfig):
        self.config = config
        self.git_dir = config.git_dir

    def is_staged(self) -> bool:
        return self.git_dir.exists()

    def stage(self, data: bytes) -> bool:
        """
        Extract the snapshot's ``.git`` over the working directory.

        A ``.git`` left behind by an interrupted or failed session is reused
        untouched, so manual fixes made in it are kept.

        Returns:
            True if the snapshot was extracted, False if existing metadata was reused

        Raises:
            StageFailure: If the snapshot cannot be extracted
        """
        extracted = False
        if self.is_staged():
            console.print(
                f"[yellow]Reusing existing {escape(str(self.git_dir))} from a previous session[/yellow]"
            )
        else:
            try:
                unpack_git_dir(data, self.config.working_dir)
            except (SnapshotCorrupt, tarfile.TarError, OSError, EOFError) as e:
                self._discard()
                raise StageFailure(f"Cannot extract snapshot: {e}") from e
            extracted = True

        # Never let git run against an enclosing repository
        if not (self.git_dir / "HEAD").is_file():
            if extracted:
                self._discard()
            raise StageFailure(f"{self.git_dir} has no HEAD; refusing to run git here")

        try:
            self._exclude_snapshot_file()
        except OSError as e:
            if extracted:
                self._discard()
            raise StageFailure(f"Cannot update git exclude file: {e}") from e

        return extracted

    def unstage(self) -> None:
        """Remove the materialized ``.git``. Failures are reported, never raised."""
        try:
            shutil.rmtree(self.git_dir)
        except FileNotFoundError:
            pass
        except OSError as e:
            console.print(f"[yellow]Could not remove {escape(str(self.git_dir))}: {escape(str(e))}[/yellow]")

    def _discard(self) -> None:
        if self.git_dir.exists():
            shutil.rmtree(self.git_dir, ignore_errors=True)

    def _exclude_snapshot_file(self) -> None:
        # Keep the archive itself out of the remote repository
        exclude = self.git_dir / "info" / "exclude"
        pattern = f"/{self.config.snapshot_file}"
        content = exclude.read_text() if exclude.exists() else ""
        if pattern in content.splitlines():
            return
        if content and not content.endswith("\n"):
            content += "\n"
        exclude.parent.mkdir(parents=True, exist_ok=True)
        exclude.write_text(content + pattern + "\n")
