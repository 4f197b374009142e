"""
Git process execution for the syncer.

Every git invocation goes through a runner object exposing
``run(operation, args, cwd=None) -> ProcessResult`` so the bootstrapper,
stager and engine can be exercised against fakes.
"""

import re
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

import click
from git import Git
from git.exc import GitCommandNotFound
from rich.console import Console
from rich.markup import escape

console = Console()

# user:password@ or token@ part of an https URL
_CREDENTIALS_RE = re.compile(r"(https?://)[^/@\s]+@")


@dataclass
class ProcessResult:
    """Outcome of one git invocation."""

    status: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.status == 0


class ProcessRunner(Protocol):
    """Anything able to run a git operation and report its outcome."""

    def run(
        self, operation: str, args: list[str], cwd: Path | None = None
    ) -> ProcessResult: ...


def redact_url(text: str) -> str:
    """Hide credentials embedded in URLs."""
    return _CREDENTIALS_RE.sub(r"\1***@", text)


class GitProcessRunner:
    """Runs git commands through GitPython, never raising on a non-zero status."""

    def __init__(self, echo: bool = True):
        self.echo = echo

    def run(
        self, operation: str, args: list[str], cwd: Path | None = None
    ) -> ProcessResult:
        command = ["git", operation, *args]
        if self.echo:
            console.print(
                f"[dim]> {escape(redact_url(' '.join(command)))}[/dim]", highlight=False
            )

        try:
            status, stdout, stderr = Git(cwd).execute(
                command,
                with_extended_output=True,
                with_exceptions=False,
            )
        except GitCommandNotFound as e:
            result = ProcessResult(status=127, stdout="", stderr=str(e))
        else:
            result = ProcessResult(status=status, stdout=stdout, stderr=stderr)

        if self.echo:
            if result.stdout:
                click.echo(result.stdout)
            if result.stderr:
                click.echo(result.stderr, err=True)
        return result
