"""Thin wrapper over the git command line for a single repository.

Only the fixed set of command forms the sync engine needs is exposed. Every
method returns a :class:`GitResult` or raises :class:`GitCommandError`; none of
them interpret git's error wording, which is left to :mod:`git_air.failures`.
"""

import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

from .config import Config, default_config
from .models import ChangeStatus
from .utils import SubprocessHandler

__all__ = ["GitAirError", "GitCommandError", "GitResult", "GitRepository",
           "parse_branch_header", "parse_remote_descriptor"]

logger = logging.getLogger(__name__)

# Never block on a credential prompt in a background daemon
GIT_ENV = {"GIT_TERMINAL_PROMPT": "0", "GIT_MERGE_AUTOEDIT": "no", "LC_ALL": "C"}

_AHEAD_RE = re.compile(r"\[ahead \d+")
_REMOTE_RE = re.compile(r"^(\S+)\s+(\S+)(?:\s+\((fetch|push)\))?$")


class GitAirError(Exception):
    """Base class for errors raised by git-air."""


class GitCommandError(GitAirError):
    """A git command exited with a non-zero status."""

    def __init__(self, command: Sequence[str], returncode: int,
                 stderr: str = "", stdout: str = "") -> None:
        self.command = list(command)
        self.returncode = returncode
        self.stderr = stderr
        self.stdout = stdout
        super().__init__(f"{' '.join(self.command)} exited with {returncode}: {self.output.strip()}")

    @property
    def output(self) -> str:
        return "\n".join(part for part in (self.stderr, self.stdout) if part)


@dataclass(frozen=True)
class GitResult:
    command: Tuple[str, ...]
    stdout: str
    stderr: str
    returncode: int

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    @property
    def output(self) -> str:
        """Combined stderr and stdout; git reports push/pull errors on either."""
        return "\n".join(part for part in (self.stderr, self.stdout) if part)


def parse_branch_header(header: str) -> Tuple[str, bool, bool]:
    """Parse a ``## branch...upstream [ahead N]`` line.

    Returns:
        Tuple[str, bool, bool]: branch name, whether an upstream is set, whether ahead.
    """
    header = header[3:] if header.startswith("## ") else header
    status_part = header.split(" [", 1)
    names = status_part[0].strip()

    if names.startswith("No commits yet on ") or names.startswith("Initial commit on "):
        return names.rsplit(" ", 1)[-1], False, False
    if names.startswith("HEAD (no branch)"):
        return "", False, False

    branch, sep, _upstream = names.partition("...")
    return branch, bool(sep), bool(_AHEAD_RE.search(header))


def parse_remote_descriptor(remote_output: str) -> Optional[str]:
    """Render the first ``git remote -v`` line as ``"name → url"``."""
    for line in remote_output.splitlines():
        match = _REMOTE_RE.match(line.strip())
        if match:
            return f"{match.group(1)} → {match.group(2)}"
    return None


class GitRepository:
    """Runs git commands inside one repository working tree."""

    def __init__(self, path: Path, config: Config = default_config,
                 handler: Optional[SubprocessHandler] = None) -> None:
        self.path = Path(path)
        self.config = config
        self.handler = handler or SubprocessHandler(timeout=config.git_timeout)

    def run(self, *args: str, check: bool = False) -> GitResult:
        """Run ``git <args>`` in the repository.

        Raises:
            GitCommandError: If ``check`` is set and git fails, or git cannot be started.
            TimeoutError: If git exceeds the configured timeout.
        """
        command = ["git", *args]
        try:
            stdout, stderr, code = self.handler.run_command(command, cwd=str(self.path),
                                                            env=GIT_ENV)
        except FileNotFoundError as e:
            # git missing, or the working tree vanished
            raise GitCommandError(command, 127, stderr=str(e)) from e
        result = GitResult(tuple(command), stdout, stderr, code)
        if check and not result.ok:
            raise GitCommandError(command, code, stderr=stderr, stdout=stdout)
        return result

    # -- inspection -------------------------------------------------------

    def status_lines(self) -> List[str]:
        result = self.run("status", "--porcelain", check=True)
        return [line for line in result.stdout.splitlines() if line.strip()]

    def inspect(self) -> ChangeStatus:
        """Report whether the repository has anything to synchronize."""
        result = self.run("status", "--porcelain", "--branch", check=True)
        lines = result.stdout.splitlines()
        header = lines[0] if lines and lines[0].startswith("## ") else ""
        entries = [line for line in lines if line.strip() and not line.startswith("## ")]
        branch, has_upstream, ahead = parse_branch_header(header) if header else ("", False, False)

        return ChangeStatus(
            has_uncommitted_changes=bool(entries),
            has_unpushed_commits=ahead,
            remote_descriptor=self.remote_descriptor(),
            branch=branch,
            has_upstream=has_upstream,
        )

    def remote_descriptor(self) -> Optional[str]:
        result = self.run("remote", "-v")
        return parse_remote_descriptor(result.stdout) if result.ok else None

    def has_remote(self) -> bool:
        result = self.run("remote")
        return result.ok and bool(result.stdout.strip())

    def current_branch(self) -> str:
        result = self.run("branch", "--show-current")
        branch = result.stdout.strip() if result.ok else ""
        if branch:
            return branch
        result = self.run("rev-parse", "--abbrev-ref", "HEAD")
        branch = result.stdout.strip() if result.ok else ""
        return "" if branch == "HEAD" else branch

    def upstream(self) -> Optional[str]:
        result = self.run("rev-parse", "--abbrev-ref", "--symbolic-full-name", "@{u}")
        if not result.ok:
            return None
        return result.stdout.strip() or None

    def diff_stat(self) -> str:
        result = self.run("diff", "--cached", "--stat")
        return result.stdout if result.ok else ""

    # -- mutation ---------------------------------------------------------

    def stage_all(self) -> GitResult:
        return self.run("add", "-A")

    def commit(self, message: str) -> GitResult:
        return self.run("commit", "-m", message)

    def push(self) -> GitResult:
        return self.run("push")

    def push_set_upstream(self, branch: str, remote: str = "origin") -> GitResult:
        return self.run("push", "--set-upstream", remote, branch)

    def pull(self, rebase: bool = False, remote: Optional[str] = None,
             branch: Optional[str] = None) -> GitResult:
        args = ["pull", "--rebase" if rebase else "--no-rebase"]
        if remote and branch:
            args += [remote, branch]
        return self.run(*args)

    def abort_merge(self) -> GitResult:
        return self.run("merge", "--abort")

    def abort_rebase(self) -> GitResult:
        return self.run("rebase", "--abort")

    def update_submodules(self) -> GitResult:
        return self.run("submodule", "update", "--remote", "--merge")
