"""
Configuration handling for git_snapsync.

Defines the sync configuration passed into the engine and provides methods for
loading/saving it from YAML files.
"""

from pathlib import Path

import yaml
from pydantic import BaseModel, Field, field_validator


DEFAULT_SNAPSHOT_FILE = ".git-sync-snapshot.tar.gz"
DEFAULT_BRANCH = "main"
DEFAULT_COMMIT_MESSAGE = "Sync changes"


class SyncConfig(BaseModel):
    """Configuration for syncing one directory with its remote repository."""

    # Remote repository configuration
    remote_url: str = Field(
        ..., description="Git remote URL (e.g., git@github.com:org/repo.git)"
    )
    branch: str = Field(
        default=DEFAULT_BRANCH, description="Remote branch to integrate and publish"
    )

    # Local directory that mirrors the remote repository
    working_dir: Path = Field(
        default=Path("."), description="Directory synchronized with the remote"
    )
    snapshot_file: str = Field(
        default=DEFAULT_SNAPSHOT_FILE,
        description="File name of the snapshot archive inside the working directory",
    )

    commit_message: str = Field(
        default=DEFAULT_COMMIT_MESSAGE,
        description="Message used for the commit of local changes",
    )
    copy_symlinks: bool = Field(
        default=False,
        description="Store symbolic links in the snapshot instead of following them",
    )
    gc_before_snapshot: bool = Field(
        default=True,
        description="Run 'git gc --aggressive' before writing a new snapshot",
    )

    @field_validator("branch", "commit_message")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("must not be empty")
        return value

    @field_validator("snapshot_file")
    @classmethod
    def _bare_file_name(cls, value: str) -> str:
        if not value or Path(value).name != value or value in (".", ".."):
            raise ValueError("snapshot_file must be a plain file name")
        if value == ".git":
            raise ValueError("snapshot_file must not be '.git'")
        return value

    @property
    def snapshot_path(self) -> Path:
        """Path of the snapshot archive."""
        return self.working_dir / self.snapshot_file

    @property
    def git_dir(self) -> Path:
        """Path of the materialized git metadata directory."""
        return self.working_dir / ".git"

    @classmethod
    def from_yaml(cls, path: Path, **overrides) -> "SyncConfig":
        """Load configuration from a YAML file.

        Keyword arguments that are not None take precedence over the file.
        """
        with open(path) as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise ValueError(f"Expected a mapping in {path}")
        data.update({k: v for k, v in overrides.items() if v is not None})
        return cls.model_validate(data)

    def to_yaml(self, path: Path) -> None:
        """Save configuration to a YAML file."""
        with open(path, "w") as f:
            yaml.dump(
                self.model_dump(mode="json"),
                f,
                default_flow_style=False,
                sort_keys=False,
            )
