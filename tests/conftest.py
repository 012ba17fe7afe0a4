from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple

import git
import pytest

from git_air.config import Config
from git_air.git_ops import GitResult
from git_air.models import ChangeStatus


def init_repo(path: Path) -> git.Repo:
    """Create a repository with a committer identity and one initial commit."""
    path.mkdir(parents=True, exist_ok=True)
    repo = git.Repo.init(path)
    with repo.config_writer() as writer:
        writer.set_value("user", "name", "Test User")
        writer.set_value("user", "email", "test@example.com")
        writer.set_value("commit", "gpgsign", "false")
    (path / "README.md").write_text("# test\n")
    repo.index.add(["README.md"])
    repo.index.commit("Initial commit")
    return repo


def commit_count(repo: git.Repo) -> int:
    return int(repo.git.rev_list("--count", "HEAD"))


@pytest.fixture
def config() -> Config:
    """Configuration that never reaches for an AI tool."""
    return Config(use_ai=False, use_model=False, oracle_timeout=5.0, git_timeout=60.0)


@pytest.fixture
def bare_remote(tmp_path: Path) -> git.Repo:
    return git.Repo.init(tmp_path / "remote.git", bare=True)


@pytest.fixture
def local_repo(tmp_path: Path) -> git.Repo:
    return init_repo(tmp_path / "work" / "project")


@pytest.fixture
def tracked_repo(local_repo: git.Repo, bare_remote: git.Repo) -> git.Repo:
    """A repository whose branch is pushed and tracking ``origin``."""
    local_repo.create_remote("origin", bare_remote.git_dir)
    branch = local_repo.active_branch.name
    local_repo.git.push("--set-upstream", "origin", branch)
    return local_repo


class FakeRepository:
    """Stand-in for GitRepository that records every git call it receives.

    Results are looked up by method name; a list of results is consumed in order
    and the last one repeats.
    """

    MUTATIONS = ("stage_all", "commit", "push", "push_set_upstream", "pull",
                 "pull_rebase", "abort_merge", "abort_rebase", "update_submodules")

    def __init__(self, path: Path, status: Optional[ChangeStatus] = None,
                 results: Optional[Dict[str, object]] = None,
                 remote: bool = True, branch: str = "main") -> None:
        self.path = path
        self.status = status or ChangeStatus(False, False)
        self.results = dict(results or {})
        self.remote = remote
        self.branch = branch
        self.calls: List[Tuple[str, tuple, dict]] = []

    def _result(self, name: str, *args, **kwargs) -> GitResult:
        self.calls.append((name, args, kwargs))
        value = self.results.get(name, "")
        if isinstance(value, list):
            value = value.pop(0) if len(value) > 1 else value[0]
        if isinstance(value, GitResult):
            return value
        return GitResult(("git", name), "", "", 0) if value == "" else \
            GitResult(("git", name), "", str(value), 1)

    def called(self, name: str) -> int:
        return sum(1 for call in self.calls if call[0] == name)

    def mutation_calls(self) -> List[str]:
        return [call[0] for call in self.calls if call[0] in self.MUTATIONS]

    def inspect(self) -> ChangeStatus:
        self.calls.append(("inspect", (), {}))
        return self.status

    def status_lines(self) -> List[str]:
        return ["?? a.txt", "?? b.txt"]

    def diff_stat(self) -> str:
        return " a.txt | 1 +\n b.txt | 1 +\n"

    def has_remote(self) -> bool:
        return self.remote

    def current_branch(self) -> str:
        return self.branch

    def stage_all(self) -> GitResult:
        return self._result("stage_all")

    def commit(self, message: str) -> GitResult:
        return self._result("commit", message)

    def push(self) -> GitResult:
        return self._result("push")

    def push_set_upstream(self, branch: str, remote: str = "origin") -> GitResult:
        return self._result("push_set_upstream", branch, remote)

    def pull(self, rebase: bool = False, remote=None, branch=None) -> GitResult:
        return self._result("pull_rebase" if rebase else "pull", remote, branch)

    def abort_merge(self) -> GitResult:
        return self._result("abort_merge")

    def abort_rebase(self) -> GitResult:
        return self._result("abort_rebase")

    def update_submodules(self) -> GitResult:
        return self._result("update_submodules")


@pytest.fixture
def fake_repo_factory(tmp_path: Path) -> Callable[..., FakeRepository]:
    """Build a FakeRepository over a directory that has a ``.git`` entry."""

    def factory(**kwargs) -> FakeRepository:
        path = tmp_path / "fake"
        (path / ".git").mkdir(parents=True, exist_ok=True)
        return FakeRepository(path, **kwargs)

    return factory
