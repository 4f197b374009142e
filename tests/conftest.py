"""Pytest configuration and fixtures for git_snapsync tests."""

from pathlib import Path

import pytest
from git import Repo

from git_snapsync.config import SyncConfig
from git_snapsync.git_ops import ProcessResult
from git_snapsync.snapshot import pack_git_dir


@pytest.fixture
def temp_dir(tmp_path: Path):
    """Create a temporary directory for tests."""
    yield tmp_path


@pytest.fixture(autouse=True)
def git_identity(monkeypatch):
    """Give git commands run by the syncer a committer identity."""
    monkeypatch.setenv("GIT_AUTHOR_NAME", "Test User")
    monkeypatch.setenv("GIT_AUTHOR_EMAIL", "test@example.com")
    monkeypatch.setenv("GIT_COMMITTER_NAME", "Test User")
    monkeypatch.setenv("GIT_COMMITTER_EMAIL", "test@example.com")


def _configure_user(repo: Repo) -> None:
    repo.config_writer().set_value("user", "name", "Test User").release()
    repo.config_writer().set_value("user", "email", "test@example.com").release()


@pytest.fixture
def remote_repo(temp_dir: Path):
    """Create a bare repository with one commit on main to act as the public remote."""
    seed_path = temp_dir / "seed"
    seed = Repo.init(seed_path, initial_branch="main")
    _configure_user(seed)

    (seed_path / "README.md").write_text("# Public Repo\n")
    (seed_path / "shared.txt").write_text("base\n")
    seed.index.add(["README.md", "shared.txt"])
    seed.index.commit("Initial commit")

    bare_path = temp_dir / "remote.git"
    Repo.clone_from(seed_path, bare_path, bare=True)
    yield bare_path


@pytest.fixture
def empty_remote(temp_dir: Path):
    """Create a bare repository without any commits."""
    bare_path = temp_dir / "empty.git"
    Repo.init(bare_path, bare=True, initial_branch="main")
    yield bare_path


@pytest.fixture
def working_dir(temp_dir: Path):
    """Create the monorepo subdirectory holding the same files as the remote."""
    path = temp_dir / "monorepo" / "packages" / "public-lib"
    path.mkdir(parents=True)
    (path / "README.md").write_text("# Public Repo\n")
    (path / "shared.txt").write_text("base\n")
    yield path


@pytest.fixture
def config(working_dir: Path, remote_repo: Path):
    """Sync configuration pointing the working directory at the bare remote."""
    return SyncConfig(
        remote_url=str(remote_repo),
        working_dir=working_dir,
        gc_before_snapshot=False,
    )


def push_remote_change(remote: Path, scratch: Path, files: dict[str, str], message: str) -> str:
    """Commit files to the remote from an independent clone and return the new head."""
    repo = Repo.clone_from(remote, scratch)
    _configure_user(repo)
    for name, content in files.items():
        target = scratch / name
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(content)
    repo.index.add(list(files))
    commit = repo.index.commit(message)
    repo.git.push("origin", "HEAD:main")
    return commit.hexsha


def remote_head(remote: Path) -> str:
    return Repo(remote).commit("main").hexsha


def tree_contents(path: Path) -> dict[str, bytes]:
    """Map of relative file path to content, ignoring git metadata."""
    return {
        p.relative_to(path).as_posix(): p.read_bytes()
        for p in sorted(path.rglob("*"))
        if p.is_file() and ".git" not in p.relative_to(path).parts
    }


class FakeRunner:
    """Scripted stand-in for GitProcessRunner.

    ``responses`` maps an operation to a ProcessResult, a list of results
    consumed in order (the last one repeats), or a callable taking
    ``(args, cwd)`` and returning a result. Unlisted operations succeed.
    """

    def __init__(self, responses=None):
        self.responses = dict(responses or {})
        self.calls: list[tuple[str, list[str]]] = []

    def run(self, operation, args, cwd=None):
        self.calls.append((operation, list(args)))
        response = self.responses.get(operation, ProcessResult(0, "", ""))
        if callable(response):
            return response(args, cwd)
        if isinstance(response, list):
            return response.pop(0) if len(response) > 1 else response[0]
        return response

    @property
    def operations(self) -> list[str]:
        return [operation for operation, _ in self.calls]


def make_git_dir(parent: Path, head_ref: str = "ref: refs/heads/main\n") -> Path:
    """Create a minimal fake .git directory."""
    git_dir = parent / ".git"
    (git_dir / "refs" / "heads").mkdir(parents=True)
    (git_dir / "HEAD").write_text(head_ref)
    (git_dir / "config").write_text("[core]\n\tbare = false\n")
    return git_dir


@pytest.fixture
def fake_snapshot(temp_dir: Path) -> bytes:
    """Snapshot bytes of a minimal .git whose manifest head is 'a' * 40."""
    source = temp_dir / "snapshot-source"
    source.mkdir()
    git_dir = make_git_dir(source)
    return pack_git_dir(git_dir, branch="main", head="a" * 40)
