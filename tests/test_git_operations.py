from pathlib import Path

import pytest

from git_air.git_ops import (
    GitCommandError,
    GitRepository,
    GitResult,
    parse_branch_header,
    parse_remote_descriptor,
)


@pytest.mark.parametrize("header,expected", [
    ("## main", ("main", False, False)),
    ("## main...origin/main", ("main", True, False)),
    ("## main...origin/main [ahead 2]", ("main", True, True)),
    ("## main...origin/main [ahead 1, behind 3]", ("main", True, True)),
    ("## main...origin/main [behind 3]", ("main", True, False)),
    ("## feature/x...upstream/feature/x [gone]", ("feature/x", True, False)),
    ("## No commits yet on trunk", ("trunk", False, False)),
    ("## HEAD (no branch)", ("", False, False)),
])
def test_parse_branch_header(header, expected):
    assert parse_branch_header(header) == expected


def test_parse_remote_descriptor():
    output = ("origin\tgit@github.com:me/project.git (fetch)\n"
              "origin\tgit@github.com:me/project.git (push)\n")
    assert parse_remote_descriptor(output) == "origin → git@github.com:me/project.git"


def test_parse_remote_descriptor_without_remote():
    assert parse_remote_descriptor("") is None


def test_git_result_output_combines_streams():
    result = GitResult(("git", "push"), "out", "err", 1)
    assert not result.ok
    assert result.output == "err\nout"


def test_git_command_error_message():
    error = GitCommandError(["git", "status"], 128, stderr="fatal: not a git repository")
    assert error.returncode == 128
    assert "git status exited with 128" in str(error)
    assert error.output == "fatal: not a git repository"


class TestGitRepository:
    def test_inspect_clean_tracked_repository(self, tracked_repo, config):
        status = GitRepository(Path(tracked_repo.working_dir), config).inspect()

        assert not status.has_uncommitted_changes
        assert not status.has_unpushed_commits
        assert status.has_upstream
        assert status.branch == tracked_repo.active_branch.name
        assert status.remote_descriptor.startswith("origin → ")

    def test_inspect_detects_uncommitted_changes(self, tracked_repo, config):
        (Path(tracked_repo.working_dir) / "new.txt").write_text("new")

        status = GitRepository(Path(tracked_repo.working_dir), config).inspect()

        assert status.has_uncommitted_changes
        assert not status.has_unpushed_commits

    def test_inspect_detects_unpushed_commits(self, tracked_repo, config):
        work = Path(tracked_repo.working_dir)
        (work / "local.txt").write_text("local")
        tracked_repo.index.add(["local.txt"])
        tracked_repo.index.commit("Local only")

        status = GitRepository(work, config).inspect()

        assert not status.has_uncommitted_changes
        assert status.has_unpushed_commits

    def test_inspect_without_upstream_is_not_ahead(self, local_repo, config):
        status = GitRepository(Path(local_repo.working_dir), config).inspect()

        assert not status.has_unpushed_commits
        assert not status.has_upstream
        assert status.remote_descriptor is None

    def test_inspect_outside_repository_raises(self, tmp_path, config, monkeypatch):
        monkeypatch.setenv("GIT_CEILING_DIRECTORIES", str(tmp_path))
        plain = tmp_path / "plain"
        plain.mkdir()

        with pytest.raises(GitCommandError):
            GitRepository(plain, config).inspect()

    def test_missing_directory_raises_git_error(self, tmp_path, config):
        with pytest.raises(GitCommandError) as excinfo:
            GitRepository(tmp_path / "gone", config).run("status", check=True)
        assert excinfo.value.returncode == 127

    def test_stage_and_commit(self, local_repo, config):
        work = Path(local_repo.working_dir)
        (work / "a.txt").write_text("a")
        (work / "README.md").unlink()
        repo = GitRepository(work, config)

        assert repo.stage_all().ok
        assert len(repo.status_lines()) == 2
        assert "a.txt" in repo.diff_stat()
        assert repo.commit("Add a, drop readme").ok
        assert local_repo.head.commit.message.strip() == "Add a, drop readme"
        assert repo.status_lines() == []

    def test_commit_with_nothing_staged_fails(self, local_repo, config):
        result = GitRepository(Path(local_repo.working_dir), config).commit("empty")

        assert not result.ok
        assert "nothing to commit" in result.output

    def test_current_branch_and_upstream(self, tracked_repo, config):
        repo = GitRepository(Path(tracked_repo.working_dir), config)
        branch = tracked_repo.active_branch.name

        assert repo.current_branch() == branch
        assert repo.upstream() == f"origin/{branch}"
        assert repo.has_remote()

    def test_no_upstream_and_no_remote(self, local_repo, config):
        repo = GitRepository(Path(local_repo.working_dir), config)

        assert repo.upstream() is None
        assert not repo.has_remote()

    def test_push_set_upstream(self, local_repo, bare_remote, config):
        local_repo.create_remote("origin", bare_remote.git_dir)
        repo = GitRepository(Path(local_repo.working_dir), config)
        branch = repo.current_branch()

        assert repo.push_set_upstream(branch).ok
        assert repo.upstream() == f"origin/{branch}"
        assert bare_remote.heads[branch].commit.hexsha == local_repo.head.commit.hexsha
