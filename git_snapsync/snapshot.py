"""
Snapshot archive handling.

A snapshot is a gzip-compressed tar of the remote repository's ``.git``
directory plus a small JSON manifest. The ``.git`` members are stored in git's
native on-disk format so the archive stays readable by plain ``tar`` as well.
Archives written by older tooling carry no manifest and are read as schema 0.
"""

import gzip
import io
import os
import tarfile
import tempfile
import zlib
from datetime import datetime, timezone
from pathlib import Path

from pydantic import BaseModel, Field, ValidationError

from .errors import SnapshotCorrupt, SnapshotWriteFailure


SCHEMA_VERSION = 1
MANIFEST_NAME = ".git-snapsync.json"
GIT_DIR_NAME = ".git"


class SnapshotManifest(BaseModel):
    """Versioned header stored alongside the cached git metadata."""

    schema_version: int = Field(
        default=SCHEMA_VERSION, description="Layout version of the archive"
    )
    branch: str | None = Field(None, description="Branch the metadata tracks")
    head: str | None = Field(None, description="HEAD commit when the snapshot was taken")
    created_at: str | None = Field(None, description="ISO timestamp of the snapshot")

    @property
    def is_legacy(self) -> bool:
        return self.schema_version == 0


def _member_name(name: str) -> str:
    # "tar -czf x ./.git" style archives prefix members with "./"
    while name.startswith("./"):
        name = name[2:]
    return name


def _is_git_member(name: str) -> bool:
    name = _member_name(name)
    return name == GIT_DIR_NAME or name.startswith(GIT_DIR_NAME + "/")


def _walk(root: Path, follow_links: bool) -> list[Path]:
    # Path.rglob never descends into symlinked directories
    paths = []
    for dirpath, dirnames, filenames in os.walk(root, followlinks=follow_links):
        for name in dirnames + filenames:
            paths.append(Path(dirpath) / name)
    return sorted(paths)


def pack_git_dir(
    git_dir: Path,
    branch: str | None = None,
    head: str | None = None,
    copy_symlinks: bool = False,
) -> bytes:
    """
    Archive a ``.git`` directory into snapshot bytes.

    Members are added in sorted order and the gzip header carries no timestamp,
    so identical metadata always produces identical bytes (apart from the
    manifest's ``created_at``).

    Args:
        git_dir: The ``.git`` directory to archive
        branch: Branch recorded in the manifest
        head: HEAD commit recorded in the manifest
        copy_symlinks: Store symlinks as links rather than their targets' content
    """
    git_dir = Path(git_dir)
    manifest = SnapshotManifest(
        branch=branch,
        head=head,
        created_at=datetime.now(timezone.utc).isoformat(),
    )
    manifest_bytes = manifest.model_dump_json(indent=2).encode("utf-8")

    buffer = io.BytesIO()
    with gzip.GzipFile(fileobj=buffer, mode="wb", mtime=0) as gz:
        with tarfile.open(
            fileobj=gz,
            mode="w",
            format=tarfile.PAX_FORMAT,
            dereference=not copy_symlinks,
        ) as tar:
            info = tarfile.TarInfo(name=MANIFEST_NAME)
            info.size = len(manifest_bytes)
            info.mode = 0o644
            tar.addfile(info, io.BytesIO(manifest_bytes))

            tar.add(git_dir, arcname=GIT_DIR_NAME, recursive=False)
            for path in _walk(git_dir, follow_links=not copy_symlinks):
                arcname = f"{GIT_DIR_NAME}/{path.relative_to(git_dir).as_posix()}"
                tar.add(path, arcname=arcname, recursive=False)

    return buffer.getvalue()


def _open(data: bytes) -> tarfile.TarFile:
    # tarfile stops at the end-of-archive marker and never reaches the gzip
    # trailer, so decompress in full to have the CRC and length checked
    try:
        raw = gzip.decompress(data)
    except (OSError, EOFError, zlib.error) as e:
        raise SnapshotCorrupt(f"Snapshot archive cannot be read: {e}") from e
    return tarfile.open(fileobj=io.BytesIO(raw), mode="r:")


def read_manifest(data: bytes) -> SnapshotManifest:
    """
    Validate snapshot bytes and return their manifest.

    Raises:
        SnapshotCorrupt: If the archive cannot be decompressed, has no
            ``.git/HEAD``, or declares an unsupported schema
    """
    manifest: SnapshotManifest | None = None
    has_head = False
    try:
        with _open(data) as tar:
            for member in tar.getmembers():
                name = _member_name(member.name)
                if name == f"{GIT_DIR_NAME}/HEAD":
                    has_head = True
                elif name == MANIFEST_NAME:
                    f = tar.extractfile(member)
                    if f is None:
                        raise SnapshotCorrupt("Snapshot manifest is not a regular file")
                    manifest = SnapshotManifest.model_validate_json(f.read())
    except (tarfile.TarError, OSError, EOFError, ValueError) as e:
        if isinstance(e, ValidationError):
            raise SnapshotCorrupt(f"Snapshot manifest is invalid: {e}") from e
        raise SnapshotCorrupt(f"Snapshot archive cannot be read: {e}") from e

    if not has_head:
        raise SnapshotCorrupt("Snapshot archive contains no .git/HEAD")
    if manifest is None:
        return SnapshotManifest(schema_version=0)
    if manifest.schema_version > SCHEMA_VERSION:
        raise SnapshotCorrupt(
            f"Snapshot schema version {manifest.schema_version} is newer than "
            f"supported ({SCHEMA_VERSION})"
        )
    return manifest


def unpack_git_dir(data: bytes, dest_dir: Path) -> None:
    """
    Extract the ``.git`` members of a snapshot into ``dest_dir``.

    Anything outside ``.git/`` (the manifest included) is skipped, and
    tarfile's ``data`` filter refuses members escaping ``dest_dir``.

    Raises:
        SnapshotCorrupt: If the archive cannot be decompressed
    """
    with _open(data) as tar:
        members = [m for m in tar.getmembers() if _is_git_member(m.name)]
        tar.extractall(dest_dir, members=members, filter="data")


class SnapshotStore:
    """Reads and writes the single snapshot archive of a working directory."""

    def __init__(self, path: Path):
        self.path = Path(path)

    def exists(self) -> bool:
        return self.path.is_file()

    def size(self) -> int:
        return self.path.stat().st_size

    def load(self) -> bytes | None:
        """
        Load the snapshot archive.

        Returns:
            The archive bytes, or None if no snapshot exists yet

        Raises:
            SnapshotCorrupt: If the archive exists but cannot be read
        """
        if not self.exists():
            return None
        try:
            data = self.path.read_bytes()
        except OSError as e:
            raise SnapshotCorrupt(f"Cannot read snapshot {self.path}: {e}") from e
        read_manifest(data)
        return data

    def save(self, data: bytes) -> None:
        """
        Replace the snapshot archive atomically.

        The bytes go to a temporary file in the same directory which is then
        renamed over the archive, so a crash never leaves a torn snapshot.

        Raises:
            SnapshotWriteFailure: If the archive cannot be written
        """
        temp_path = None
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, temp_path = tempfile.mkstemp(
                dir=self.path.parent,
                prefix=f".{self.path.name}.",
                suffix=".tmp",
            )
            with os.fdopen(fd, "wb") as f:
                f.write(data)
                f.flush()
                os.fsync(f.fileno())
            os.replace(temp_path, self.path)
            temp_path = None
        except OSError as e:
            raise SnapshotWriteFailure(f"Cannot write snapshot {self.path}: {e}") from e
        finally:
            if temp_path is not None and os.path.exists(temp_path):
                os.unlink(temp_path)
